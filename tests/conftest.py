import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("PERSONALIZATION_SECRET", "test_secret")
os.environ.setdefault("RENDER_CACHE_DB_URL", "sqlite:///./test_pixelmerge.db")
os.environ.setdefault("RENDERER_BASE_URL", "https://renderer.test")
os.environ.setdefault("RENDERER_BEARER_TOKEN", "renderer_token")
os.environ.setdefault("MEDIA_STORAGE_BUCKET", "renders")
os.environ.setdefault("MEDIA_STORAGE_ENDPOINT", "https://s3.storage.test")
os.environ.setdefault("MEDIA_STORAGE_ACCESS_KEY", "access")
os.environ.setdefault("MEDIA_STORAGE_SECRET_KEY", "secret")
os.environ.setdefault("MEDIA_STORAGE_PREFIX", "personalized")
os.environ.setdefault("MEDIA_PUBLIC_BASE_URL", "https://cdn.storage.test")
os.environ.setdefault("RENDER_CREDITS_ENABLED", "false")

from sqlalchemy import delete  # noqa: E402

from pixelmerge.db import SessionLocal, init_db  # noqa: E402
from pixelmerge.models import CreditLedgerEntry, PersonalizationRender, UserCredits  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _clear(session) -> None:
    session.execute(delete(PersonalizationRender))
    session.execute(delete(CreditLedgerEntry))
    session.execute(delete(UserCredits))
    session.commit()


@pytest.fixture()
def db_session():
    init_db()
    session = SessionLocal()
    _clear(session)
    try:
        yield session
    finally:
        _clear(session)
        session.close()


class FakeRenderer:
    def __init__(self, *, png: bytes = PNG_BYTES, error: Exception | None = None) -> None:
        self.png = png
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def render_image_for_template(self, template_id, tokens):
        self.calls.append((template_id, {key.value: value for key, value in tokens.items()}))
        if self.error is not None:
            raise self.error
        return self.png


class FakeStorage:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.uploads: list[tuple[str, bytes]] = []

    def upload_png(self, data: bytes, storage_key: str) -> str:
        if self.error is not None:
            raise self.error
        self.uploads.append((storage_key, data))
        return f"https://cdn.storage.test/personalized/{storage_key}"


class FakeCache:
    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], str] = {}
        self.gets: list[tuple[str, str]] = []
        self.puts: list[tuple[str, str, str]] = []

    def get(self, template_id: str, cache_key: str):
        self.gets.append((template_id, cache_key))
        return self.entries.get((template_id, cache_key))

    def put(self, template_id: str, cache_key: str, storage_url: str) -> None:
        self.puts.append((template_id, cache_key, storage_url))
        self.entries[(template_id, cache_key)] = storage_url


@pytest.fixture()
def fake_renderer():
    return FakeRenderer()


@pytest.fixture()
def fake_storage():
    return FakeStorage()


@pytest.fixture()
def fake_cache():
    return FakeCache()
