"""
Shared fixtures: isolated settings, a temporary database and a fake LLM provider.
"""

import uuid
from typing import Callable, List, Optional

import pytest
import pytest_asyncio

from threatlens.config import get_settings
from threatlens.database import UploadRepository, init_database
from threatlens.llm import LLMProvider
from threatlens.models.upload import Upload, UploadStatus
from threatlens.storage import LocalLogStorage


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every test at its own database and upload directory, with no LLM keys."""
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "threatlens.db"))
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database():
    await init_database()


@pytest.fixture
def storage(tmp_path) -> LocalLogStorage:
    return LocalLogStorage(tmp_path / "uploads")


@pytest.fixture
def make_upload(storage) -> Callable:
    """Store ``lines`` as a file and create its Upload row."""

    async def _make(
        lines: List[str],
        user_id: str = "alice",
        status: UploadStatus = UploadStatus.PENDING,
        file_name: str = "access.log",
    ) -> Upload:
        upload_id = str(uuid.uuid4())
        data = ("\n".join(lines) + "\n").encode("utf-8")
        path = await storage.save(user_id, upload_id, file_name, data)
        return await UploadRepository.create(Upload(
            id=upload_id,
            user_id=user_id,
            file_name=file_name,
            file_size=len(data),
            storage_path=path,
            status=status,
        ))

    return _make


class FakeProvider(LLMProvider):
    """
    Scripted provider.

    ``handler(call_index, user_prompt)`` returns the response text or
    raises to simulate a failing request.
    """

    name = "fake"

    def __init__(self, handler: Optional[Callable[[int, str], str]] = None):
        self.handler = handler or (lambda index, prompt: "[]")
        self.prompts: List[str] = []

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append(user_prompt)
        return self.handler(len(self.prompts) - 1, user_prompt)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


def login_failures(users: List[str], ip: str = "203.0.113.5") -> List[str]:
    return [f"login failed user={user} ip={ip}" for user in users]


def access_line(ip: str, path: str, status: int, ts: str = "10/Oct/2023:13:55:36 +0000",
                agent: str = "Mozilla/5.0") -> str:
    return f'{ip} - - [{ts}] "GET {path} HTTP/1.1" {status} 512 "-" "{agent}"'

