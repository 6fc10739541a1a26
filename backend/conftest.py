import asyncio
import datetime

import pytest
from fastapi.testclient import TestClient

from database import init_db, make_engine, make_session_factory
from dependencies import get_llm, get_resume_storage, get_session_factory
from errors import UpstreamError
from main import app
from resume_service import ResumeStorage
from stores import ProfileStore

USER = "user_alice"
OTHER_USER = "user_bob"

FIXED_NOW = datetime.datetime(2025, 3, 1, 12, 0, tzinfo=datetime.timezone.utc)


class FakeLLM:
    """Stands in for GeminiClient; replies are consumed in order."""

    def __init__(self, replies=None, error: Exception | None = None):
        self.replies = list(replies or [])
        self.error = error
        self.prompts: list[str] = []
        self.models: list[str | None] = []

    async def generate(self, prompt: str, model: str | None = None) -> str:
        self.prompts.append(prompt)
        self.models.append(model)
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return "A generated summary."


class Clock:
    def __init__(self, now: datetime.datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + datetime.timedelta(**kwargs)


def auth(user_id: str = USER) -> dict:
    return {"X-User-Id": user_id}


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'interviews.db'}")
    asyncio.run(init_db(engine))
    yield make_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def failing_llm():
    return FakeLLM(error=UpstreamError("Model call failed: quota exceeded"))


@pytest.fixture
def resume_storage(tmp_path):
    return ResumeStorage(str(tmp_path / "resumes"), "http://files.test/resumes")


@pytest.fixture
def client(session_factory, llm, resume_storage):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_llm] = lambda: llm
    app.dependency_overrides[get_resume_storage] = lambda: resume_storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def with_resume(session_factory):
    """Gives USER a profile with a resume summary on file."""
    return asyncio.run(
        ProfileStore(session_factory).upsert_resume(
            USER, "http://files.test/resumes/alice.pdf", "Backend engineer with 6 years of Python and Postgres."
        )
    )
