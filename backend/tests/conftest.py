"""Shared fixtures: temporary database, asset cache and fake HTTP sessions."""

import io
import threading
from typing import Any, Dict, List

import pytest
from PIL import Image
from sqlalchemy.orm import sessionmaker

from radiofeed.database import init_db, make_engine
from radiofeed.services.asset_cache import AssetCache
from radiofeed.services.fetch_queue import FetchQueue

FEED_URL = "https://feed.example/api/tracks"
ASSET_BASE_URL = "https://covers.example/static/covers300/"

_NO_JSON = object()


class FakeResponse:
    """Stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, json_data: Any = _NO_JSON, content: bytes = b"") -> None:
        self.status_code = status_code
        self._json_data = json_data
        self.content = content

    def json(self) -> Any:
        if self._json_data is _NO_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._json_data


class FakeHttp:
    """Stand-in for ``requests.Session`` that answers from a URL table and records calls."""

    def __init__(self, responses: Dict[str, Any] = None, gate: threading.Event = None) -> None:
        self.responses = dict(responses or {})
        self.gate = gate
        self.calls: List[str] = []
        self.timeouts: List[float] = []
        self.started = threading.Event()

    def get(self, url: str, headers: dict = None, timeout: float = None) -> FakeResponse:
        self.calls.append(url)
        self.timeouts.append(timeout)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        result = self.responses.get(url, FakeResponse(404))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def engine(tmp_path):
    """SQLite database file in a temporary directory, with all tables created."""
    engine = make_engine(f"sqlite:///{tmp_path / 'radiofeed-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def asset_cache(tmp_path) -> AssetCache:
    return AssetCache(cache_dir=str(tmp_path / "imgs"), base_url=ASSET_BASE_URL)


@pytest.fixture
def png_bytes() -> bytes:
    """A tiny valid PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def asset_http() -> FakeHttp:
    """HTTP session used by the fetch queue; answers 404 unless a test adds a route."""
    return FakeHttp()


@pytest.fixture
def fetch_queue(asset_cache, session_factory, asset_http):
    queue = FetchQueue(asset_cache, session_factory=session_factory, http=asset_http, timeout=1, delay=0)
    yield queue
    queue.shutdown(timeout=5)


@pytest.fixture
def feed_http():
    """Factory for a fake HTTP session serving one feed payload at FEED_URL."""

    def make(payload: Any = _NO_JSON, status_code: int = 200) -> FakeHttp:
        return FakeHttp({FEED_URL: FakeResponse(status_code, json_data=payload)})

    return make
