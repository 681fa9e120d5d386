"""
Tests for log parsers and field extraction.
"""

from datetime import datetime, timezone

from threatlens.models.log_entry import LogFormat
from threatlens.parsers import CSVLogParser, JSONLogParser, ParserOrchestrator, PlainLogParser
from threatlens.parsers.csv_parser import split_csv_values
from threatlens.parsers.fields import (
    extract_ip,
    extract_path,
    extract_status_code,
    extract_timestamp,
    extract_user_agent,
    extract_username,
)


APACHE_LINE = (
    '192.168.1.50 - - [15/Jan/2024:04:15:22 +0000] "GET /admin HTTP/1.1" 404 1234 "-" "sqlmap/1.7.2"'
)


class TestFieldExtraction:
    """Tests for the shared field extractors."""

    def test_extract_ip_skips_invalid_octets(self):
        assert extract_ip("from 999.1.1.1 via 10.0.0.7 port 22") == "10.0.0.7"

    def test_extract_ip_missing(self):
        assert extract_ip("service restarted") is None

    def test_extract_status_code_combined_format(self):
        assert extract_status_code(APACHE_LINE) == 404

    def test_extract_status_code_key_value(self):
        assert extract_status_code("ip=10.0.0.1 status=503 path=/api") == 503

    def test_extract_status_code_ignores_plain_numbers(self):
        assert extract_status_code("processed 404 records in 200 ms") is None

    def test_extract_path(self):
        assert extract_path(APACHE_LINE) == "/admin"
        assert extract_path("src_ip=10.0.0.1 url=/login status=401") == "/login"

    def test_extract_username_key_value(self):
        assert extract_username("login failed user=alice ip=203.0.113.5") == "alice"

    def test_extract_username_sshd_invalid_user(self):
        line = "sshd[1]: Failed password for invalid user oracle from 10.0.0.1 port 22 ssh2"
        assert extract_username(line) == "oracle"

    def test_extract_user_agent_from_combined_format(self):
        assert extract_user_agent(APACHE_LINE) == "sqlmap/1.7.2"

    def test_extract_user_agent_empty(self):
        line = '10.0.0.1 - - [15/Jan/2024:04:15:22 +0000] "GET / HTTP/1.1" 200 10 "-" ""'
        assert extract_user_agent(line) == ""

    def test_extract_user_agent_unknown(self):
        assert extract_user_agent("kernel: eth0 link up") is None

    def test_extract_timestamp_apache(self):
        ts = extract_timestamp(APACHE_LINE)
        assert ts == datetime(2024, 1, 15, 4, 15, 22, tzinfo=timezone.utc)

    def test_extract_timestamp_iso_is_utc(self):
        ts = extract_timestamp("2024-01-15T06:15:22+02:00 level=warn msg=retry")
        assert ts == datetime(2024, 1, 15, 4, 15, 22, tzinfo=timezone.utc)

    def test_extract_timestamp_naive_iso_assumed_utc(self):
        ts = extract_timestamp("2024-01-15 04:15:22 ERROR worker crashed")
        assert ts.tzinfo is not None
        assert ts.hour == 4


class TestJSONLogParser:
    """Tests for JSONLogParser."""

    def setup_method(self):
        self.parser = JSONLogParser()

    def test_can_parse_object(self):
        assert self.parser.can_parse('{"event": "login", "ip": "10.0.0.1"}') is True

    def test_cannot_parse_array_or_text(self):
        assert self.parser.can_parse("[1, 2]") is False
        assert self.parser.can_parse("plain text line") is False

    def test_normalize_flattens_nested_values(self):
        line = '{"src": {"ip": "10.0.0.1"}, "status": 404, "ok": true, "tags": ["a", "b"], "note": null}'
        normalized, error = self.parser.normalize(line)

        assert error is False
        assert normalized == "src_ip=10.0.0.1 status=404 ok=true tags=a,b note="

    def test_normalize_invalid_json_keeps_line(self):
        normalized, error = self.parser.normalize("{broken")
        assert error is True
        assert normalized == "{broken"


class TestCSVLogParser:
    """Tests for CSVLogParser."""

    def test_split_honours_quotes(self):
        assert split_csv_values('a,"b,c","d ""q"""') == ["a", "b,c", 'd "q"']

    def test_header_detection(self):
        parser = CSVLogParser()
        assert parser.can_parse("timestamp,src_ip,method,url,status") is True
        assert parser.can_parse("hello,world") is False

    def test_rows_become_key_value_pairs(self):
        parser = CSVLogParser()
        parser.prepare(["Timestamp,Src_IP,Status", "2024-01-15T04:15:22Z,10.0.0.1,500"])

        assert parser.is_header(0, "Timestamp,Src_IP,Status") is True
        normalized, error = parser.normalize("2024-01-15T04:15:22Z,10.0.0.1,500")
        assert error is False
        assert normalized == "timestamp=2024-01-15T04:15:22Z src_ip=10.0.0.1 status=500"


class TestPlainLogParser:
    """Tests for PlainLogParser."""

    def test_passthrough(self):
        parser = PlainLogParser()
        assert parser.normalize(APACHE_LINE) == (APACHE_LINE, False)


class TestParserOrchestrator:
    """Tests for format detection and orchestrated parsing."""

    def setup_method(self):
        self.orchestrator = ParserOrchestrator()

    def test_detect_plain(self):
        assert self.orchestrator.detect_format([APACHE_LINE]) == LogFormat.PLAIN

    def test_detect_jsonl_after_blank_lines(self):
        lines = ["", "   ", '{"event": "login"}']
        assert self.orchestrator.detect_format(lines) == LogFormat.JSONL

    def test_detect_csv(self):
        lines = ["timestamp,src_ip,method,url,status", "2024-01-15T04:15:22Z,10.0.0.1,GET,/,200"]
        assert self.orchestrator.detect_format(lines) == LogFormat.CSV

    def test_detect_empty_file(self):
        assert self.orchestrator.detect_format([]) == LogFormat.PLAIN

    def test_parse_keeps_original_line_numbers(self):
        result = self.orchestrator.parse(["", "first line", "   ", "second line"])

        assert [line.number for line in result.lines] == [2, 4]
        assert result.skipped_lines == 0

    def test_parse_csv_extracts_fields(self):
        lines = [
            "timestamp,src_ip,method,url,status",
            "2024-01-15T04:15:22Z,203.0.113.5,GET,/admin,404",
        ]
        result = self.orchestrator.parse(lines)

        assert result.log_format == LogFormat.CSV
        assert len(result.lines) == 1
        line = result.lines[0]
        assert line.number == 2
        assert line.source_ip == "203.0.113.5"
        assert line.status_code == 404
        assert line.path == "/admin"
        assert line.raw == lines[1]

    def test_parse_jsonl_counts_malformed_lines(self):
        lines = ['{"ip": "10.0.0.1", "status": 200}', "not json at all"]
        result = self.orchestrator.parse(lines)

        assert result.log_format == LogFormat.JSONL
        assert result.skipped_lines == 1
        # Malformed lines are still kept for signature matching
        assert [line.normalized for line in result.lines] == ["ip=10.0.0.1 status=200", "not json at all"]

    def test_format_hint_overrides_detection(self):
        result = self.orchestrator.parse(['{"ip": "10.0.0.1"}'], log_format=LogFormat.PLAIN)
        assert result.log_format == LogFormat.PLAIN
        assert result.lines[0].normalized == '{"ip": "10.0.0.1"}'
