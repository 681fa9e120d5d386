"""
Local filesystem storage for uploaded log files.
"""

import logging
import re
from pathlib import Path
from typing import List, Union

import aiofiles


logger = logging.getLogger(__name__)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class LocalLogStorage:
    """
    Stores each upload under ``<base_dir>/<user_id>/<upload_id>/<file_name>``.
    """

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)

    async def save(self, user_id: str, upload_id: str, file_name: str, data: bytes) -> str:
        """
        Write an uploaded file.

        Returns:
            The storage path to record on the Upload
        """
        directory = self.base_dir / _safe_name(user_id) / _safe_name(upload_id)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / (_safe_name(Path(file_name).name) or "upload.log")

        async with aiofiles.open(path, "wb") as f:
            await f.write(data)

        logger.info("Stored upload %s (%d bytes) at %s", upload_id, len(data), path)
        return str(path)

    async def read_lines(self, storage_path: Union[str, Path]) -> List[str]:
        """
        Read a stored file as text lines.

        Undecodable bytes are replaced rather than failing the analysis.
        """
        async with aiofiles.open(storage_path, encoding="utf-8", errors="replace") as f:
            content = await f.read()
        return content.splitlines()


def _safe_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name).strip("._")
