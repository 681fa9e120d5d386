"""
Data access layer for uploads, analysis results and findings.
"""

import json
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from threatlens.database.db import get_db
from threatlens.models.finding import Finding, FindingSource, Severity, ThreatCategory, utcnow
from threatlens.models.upload import AnalysisResult, AnalysisStatus, Upload, UploadStatus


class UploadRepository:
    """Repository for upload records. Status changes go through the pipeline."""

    @staticmethod
    async def create(upload: Upload) -> Upload:
        async with await get_db() as db:
            await db.execute(
                """
                INSERT INTO uploads (
                    id, user_id, file_name, file_size, storage_path,
                    status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    upload.id,
                    upload.user_id,
                    upload.file_name,
                    upload.file_size,
                    upload.storage_path,
                    upload.status.value,
                    _ts(upload.created_at),
                    _ts(upload.updated_at),
                )
            )
            await db.commit()
        return upload

    @staticmethod
    async def get(upload_id: str) -> Optional[Upload]:
        async with await get_db() as db:
            db.row_factory = _dict_factory
            cursor = await db.execute("SELECT * FROM uploads WHERE id = ?", (upload_id,))
            row = await cursor.fetchone()
            return _row_to_upload(row) if row else None

    @staticmethod
    async def claim_for_analysis(upload_id: str, expected: UploadStatus) -> bool:
        """
        Atomically move an upload from ``expected`` to ANALYZING.

        The previous analysis result and its findings are deleted in the
        same transaction, so an ANALYZING upload never carries a stale
        phase marker.

        Returns:
            False when the stored status was no longer ``expected``
        """
        async with await get_db() as db:
            cursor = await db.execute(
                "UPDATE uploads SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (UploadStatus.ANALYZING.value, _ts(utcnow()), upload_id, expected.value)
            )
            if cursor.rowcount == 0:
                await db.rollback()
                return False
            await db.execute(
                """
                DELETE FROM findings WHERE analysis_result_id IN (
                    SELECT id FROM analysis_results WHERE upload_id = ?
                )
                """,
                (upload_id,)
            )
            await db.execute("DELETE FROM analysis_results WHERE upload_id = ?", (upload_id,))
            await db.commit()
            return True

    @staticmethod
    async def set_status(upload_id: str, status: UploadStatus) -> bool:
        async with await get_db() as db:
            cursor = await db.execute(
                "UPDATE uploads SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, _ts(utcnow()), upload_id)
            )
            await db.commit()
            return cursor.rowcount > 0

    @staticmethod
    async def touch(upload_id: str) -> None:
        """Refresh ``updated_at`` so the recovery sweep sees progress."""
        async with await get_db() as db:
            await db.execute(
                "UPDATE uploads SET updated_at = ? WHERE id = ?",
                (_ts(utcnow()), upload_id)
            )
            await db.commit()

    @staticmethod
    async def list_by_status(status: UploadStatus) -> List[Upload]:
        async with await get_db() as db:
            db.row_factory = _dict_factory
            cursor = await db.execute(
                "SELECT * FROM uploads WHERE status = ? ORDER BY updated_at",
                (status.value,)
            )
            rows = await cursor.fetchall()
            return [_row_to_upload(row) for row in rows]

    @staticmethod
    async def list_for_user(user_id: str, status: UploadStatus) -> List[Upload]:
        """A user's uploads in ``status``, oldest first."""
        async with await get_db() as db:
            db.row_factory = _dict_factory
            cursor = await db.execute(
                "SELECT * FROM uploads WHERE user_id = ? AND status = ? ORDER BY created_at",
                (user_id, status.value)
            )
            rows = await cursor.fetchall()
            return [_row_to_upload(row) for row in rows]

    @staticmethod
    async def list_stalled(older_than: datetime) -> List[Upload]:
        """ANALYZING uploads whose last update is before ``older_than``."""
        async with await get_db() as db:
            db.row_factory = _dict_factory
            cursor = await db.execute(
                """
                SELECT * FROM uploads
                WHERE status = ? AND updated_at < ?
                ORDER BY updated_at
                """,
                (UploadStatus.ANALYZING.value, _ts(older_than))
            )
            rows = await cursor.fetchall()
            return [_row_to_upload(row) for row in rows]


class AnalysisResultRepository:
    """Repository for the one-per-upload analysis result."""

    @staticmethod
    async def create(result: AnalysisResult) -> AnalysisResult:
        async with await get_db() as db:
            await db.execute(
                """
                INSERT INTO analysis_results (
                    id, upload_id, status, rule_based_completed,
                    llm_available, llm_completed, warnings,
                    analysis_started_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.id,
                    result.upload_id,
                    result.status.value,
                    int(result.rule_based_completed),
                    int(result.llm_available),
                    int(result.llm_completed),
                    json.dumps(result.warnings),
                    _ts(result.analysis_started_at),
                    _ts(result.created_at),
                    _ts(result.updated_at),
                )
            )
            await db.commit()
        return result

    @staticmethod
    async def get_by_upload(upload_id: str) -> Optional[AnalysisResult]:
        async with await get_db() as db:
            db.row_factory = _dict_factory
            cursor = await db.execute(
                "SELECT * FROM analysis_results WHERE upload_id = ?",
                (upload_id,)
            )
            row = await cursor.fetchone()
            return _row_to_result(row) if row else None

    @staticmethod
    async def update(result: AnalysisResult) -> AnalysisResult:
        """Persist every mutable field of ``result``."""
        result.updated_at = utcnow()
        async with await get_db() as db:
            await db.execute(
                """
                UPDATE analysis_results SET
                    status = ?, rule_based_completed = ?,
                    llm_available = ?, llm_completed = ?,
                    total_lines_analyzed = ?, total_findings = ?,
                    critical_count = ?, high_count = ?, medium_count = ?,
                    low_count = ?, info_count = ?, warnings = ?,
                    overall_summary = ?, error_message = ?, analysis_started_at = ?,
                    analysis_ended_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    result.status.value,
                    int(result.rule_based_completed),
                    int(result.llm_available),
                    int(result.llm_completed),
                    result.total_lines_analyzed,
                    result.total_findings,
                    result.critical_count,
                    result.high_count,
                    result.medium_count,
                    result.low_count,
                    result.info_count,
                    json.dumps(result.warnings),
                    result.overall_summary,
                    result.error_message,
                    _ts(result.analysis_started_at),
                    _ts(result.analysis_ended_at),
                    _ts(result.updated_at),
                    result.id,
                )
            )
            await db.commit()
        return result


class FindingRepository:
    """Repository for append-only findings."""

    @staticmethod
    async def insert_many(analysis_result_id: str, findings: Iterable[Finding]) -> int:
        """
        Insert findings, ignoring any whose fingerprint is already stored
        for this result.

        Returns:
            Number of rows actually inserted
        """
        inserted = 0
        async with await get_db() as db:
            for finding in findings:
                finding.id = finding.id or str(uuid.uuid4())
                finding.analysis_result_id = analysis_result_id
                cursor = await db.execute(
                    """
                    INSERT OR IGNORE INTO findings (
                        id, analysis_result_id, severity, severity_rank,
                        category, title, description, line_number,
                        line_content, matched_pattern, source, fingerprint,
                        recommendation, confidence, mitre_tactic,
                        mitre_technique, event_timestamp, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        finding.id,
                        analysis_result_id,
                        finding.severity.value,
                        finding.severity.rank,
                        finding.category.value,
                        finding.title,
                        finding.description,
                        finding.line_number,
                        finding.line_content,
                        finding.matched_pattern,
                        finding.source.value,
                        finding.fingerprint,
                        finding.recommendation,
                        finding.confidence,
                        finding.mitre_tactic,
                        finding.mitre_technique,
                        _ts(finding.event_timestamp),
                        _ts(finding.created_at),
                    )
                )
                inserted += cursor.rowcount
            await db.commit()
        return inserted

    @staticmethod
    async def fingerprints(analysis_result_id: str) -> Set[str]:
        async with await get_db() as db:
            cursor = await db.execute(
                "SELECT fingerprint FROM findings WHERE analysis_result_id = ?",
                (analysis_result_id,)
            )
            rows = await cursor.fetchall()
            return {row[0] for row in rows}

    @staticmethod
    async def list_for_result(analysis_result_id: str) -> List[Finding]:
        """All findings of a result, most severe first, then by line."""
        async with await get_db() as db:
            db.row_factory = _dict_factory
            cursor = await db.execute(
                """
                SELECT * FROM findings
                WHERE analysis_result_id = ?
                ORDER BY severity_rank, line_number IS NULL, line_number
                """,
                (analysis_result_id,)
            )
            rows = await cursor.fetchall()
            return [_row_to_finding(row) for row in rows]

    @staticmethod
    async def delete_by_source(analysis_result_id: str, source: FindingSource) -> int:
        async with await get_db() as db:
            cursor = await db.execute(
                "DELETE FROM findings WHERE analysis_result_id = ? AND source = ?",
                (analysis_result_id, source.value)
            )
            await db.commit()
            return cursor.rowcount

    @staticmethod
    async def count_by_severity(analysis_result_id: str) -> Dict[Severity, int]:
        async with await get_db() as db:
            cursor = await db.execute(
                """
                SELECT severity, COUNT(*) FROM findings
                WHERE analysis_result_id = ?
                GROUP BY severity
                """,
                (analysis_result_id,)
            )
            rows = await cursor.fetchall()
        counts = {severity: 0 for severity in Severity}
        for severity, count in rows:
            counts[Severity(severity)] = count
        return counts

    @staticmethod
    async def query_for_user(
        user_id: str,
        page: int = 1,
        limit: int = 25,
        severity: Optional[Severity] = None,
        category: Optional[ThreatCategory] = None,
        source: Optional[FindingSource] = None,
        search: Optional[str] = None,
        date_start: Optional[date] = None,
        date_end: Optional[date] = None,
    ) -> Tuple[List[Finding], int]:
        """
        Paginated findings across all of a user's uploads.

        Ordered most severe first, then newest first. Date bounds apply to
        ``event_timestamp`` and are inclusive whole UTC days.

        Returns:
            (findings on this page, total matching findings)
        """
        clauses = ["u.user_id = ?"]
        params: list = [user_id]

        if severity is not None:
            clauses.append("f.severity = ?")
            params.append(severity.value)
        if category is not None:
            clauses.append("f.category = ?")
            params.append(category.value)
        if source is not None:
            clauses.append("f.source = ?")
            params.append(source.value)
        if search:
            clauses.append("(f.title LIKE ? ESCAPE '\\' OR f.description LIKE ? ESCAPE '\\')")
            pattern = f"%{_escape_like(search)}%"
            params.extend([pattern, pattern])
        if date_start is not None:
            clauses.append("f.event_timestamp >= ?")
            params.append(_ts(_day_start(date_start)))
        if date_end is not None:
            clauses.append("f.event_timestamp < ?")
            params.append(_ts(_day_start(date_end) + timedelta(days=1)))

        where = " AND ".join(clauses)
        base = f"""
            FROM findings f
            JOIN analysis_results r ON r.id = f.analysis_result_id
            JOIN uploads u ON u.id = r.upload_id
            WHERE {where}
        """

        async with await get_db() as db:
            cursor = await db.execute(f"SELECT COUNT(*) {base}", params)
            total = (await cursor.fetchone())[0]

            db.row_factory = _dict_factory
            cursor = await db.execute(
                f"""
                SELECT f.* {base}
                ORDER BY f.severity_rank ASC, f.created_at DESC
                LIMIT ? OFFSET ?
                """,
                params + [limit, (page - 1) * limit]
            )
            rows = await cursor.fetchall()

        return [_row_to_finding(row) for row in rows], total


def _dict_factory(cursor, row):
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def _ts(value: Optional[datetime]) -> Optional[str]:
    # Fixed-width UTC text so string comparison orders correctly
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_upload(row: dict) -> Upload:
    return Upload(
        id=row["id"],
        user_id=row["user_id"],
        file_name=row["file_name"],
        file_size=row["file_size"],
        storage_path=row["storage_path"],
        status=UploadStatus(row["status"]),
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
    )


def _row_to_result(row: dict) -> AnalysisResult:
    return AnalysisResult(
        id=row["id"],
        upload_id=row["upload_id"],
        status=AnalysisStatus(row["status"]),
        rule_based_completed=bool(row["rule_based_completed"]),
        llm_available=bool(row["llm_available"]),
        llm_completed=bool(row["llm_completed"]),
        total_lines_analyzed=row["total_lines_analyzed"],
        total_findings=row["total_findings"],
        critical_count=row["critical_count"],
        high_count=row["high_count"],
        medium_count=row["medium_count"],
        low_count=row["low_count"],
        info_count=row["info_count"],
        warnings=json.loads(row.get("warnings") or "[]"),
        overall_summary=row.get("overall_summary"),
        error_message=row.get("error_message"),
        analysis_started_at=_dt(row.get("analysis_started_at")),
        analysis_ended_at=_dt(row.get("analysis_ended_at")),
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
    )


def _row_to_finding(row: dict) -> Finding:
    return Finding(
        id=row["id"],
        analysis_result_id=row["analysis_result_id"],
        severity=Severity(row["severity"]),
        category=ThreatCategory(row["category"]),
        title=row["title"],
        description=row["description"],
        line_number=row.get("line_number"),
        line_content=row.get("line_content"),
        matched_pattern=row.get("matched_pattern"),
        source=FindingSource(row["source"]),
        fingerprint=row["fingerprint"],
        recommendation=row.get("recommendation"),
        confidence=row.get("confidence"),
        mitre_tactic=row.get("mitre_tactic"),
        mitre_technique=row.get("mitre_technique"),
        event_timestamp=_dt(row.get("event_timestamp")),
        created_at=_dt(row["created_at"]),
    )
