"""
Pytest configuration and fixtures for weather station tests.
"""

import asyncio
import hashlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from wxstation.core.config import Settings  # noqa: E402
from wxstation.core.database import build_session_maker, create_tables  # noqa: E402
from wxstation.services.archive_store import PutResult, StoredContent  # noqa: E402
from wxstation.services.sample_log import SampleLog  # noqa: E402


class MemoryStore:
    """In-memory ContentStore with sha-checked writes."""

    def __init__(self):
        self.files: dict[str, StoredContent] = {}
        self.puts: list[tuple[str, str | None]] = []
        self.before_put = None  # hook to simulate a concurrent writer

    @staticmethod
    def _sha(text: str) -> str:
        return hashlib.sha1(text.encode("utf-8")).hexdigest()

    def seed(self, path: str, text: str) -> str:
        sha = self._sha(text)
        self.files[path] = StoredContent(text=text, sha=sha)
        return sha

    async def get_content(self, path: str) -> StoredContent | None:
        return self.files.get(path)

    async def put_content(self, path: str, text: str, sha: str | None = None, message: str = "") -> PutResult:
        if self.before_put:
            self.before_put(path)
        self.puts.append((path, sha))
        current = self.files.get(path)
        if current is None and sha is not None:
            return PutResult(ok=False, status=404, message="Not Found")
        if current is not None and sha is None:
            return PutResult(ok=False, status=422, message='"sha" wasn\'t supplied.')
        if current is not None and current.sha != sha:
            return PutResult(ok=False, status=409, message=f"{path} does not match {sha}")
        new_sha = self.seed(path, text)
        return PutResult(ok=True, status=201 if current is None else 200, message="committed", sha=new_sha)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'wxstation.db'}",
        tz="UTC",
        cors_origins=["https://andesaware.com", "https://www.andesaware.com"],
        ecowitt_passkey="",
        station_id="",
        station_key="",
        require_auth=False,
        github_token="",
        github_repo="",
        archive_trigger_token="",
        archive_policy="partition",
    )


@pytest.fixture
def engine(test_settings):
    # NullPool: connections are never shared between the test loop and TestClient's loop
    engine = create_async_engine(test_settings.database_url, poolclass=NullPool)
    asyncio.run(create_tables(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def sample_log(engine) -> SampleLog:
    """SampleLog for synchronous (TestClient) tests."""
    return SampleLog(build_session_maker(engine))


@pytest.fixture
async def log(test_settings):
    """SampleLog for async tests, bound to the test's event loop."""
    engine = create_async_engine(test_settings.database_url, poolclass=NullPool)
    await create_tables(engine)
    yield SampleLog(build_session_maker(engine))
    await engine.dispose()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_client(test_settings, sample_log):
    """Build a TestClient; keyword overrides are applied to the settings."""
    from wxstation.api.main import create_app

    clients = []

    def _make(store=None, **overrides) -> TestClient:
        settings = test_settings.model_copy(update=overrides)
        client = TestClient(create_app(settings, log=sample_log, store=store))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture
def ecowitt_payload() -> dict:
    """Typical Ecowitt GW1100 upload."""
    return {
        "PASSKEY": "A1B2C3",
        "stationtype": "GW1100A_V2.1.4",
        "dateutc": "2025-03-05 14:07:00",
        "tempinf": "72.3",
        "humidityin": "41",
        "baromrelin": "29.921",
        "baromabsin": "29.518",
        "tempf": "68.0",
        "humidity": "55",
        "winddir": "215",
        "windspeedmph": "4.47",
        "windgustmph": "8.05",
        "solarradiation": "512.30",
        "uv": "5",
        "rainratein": "0.000",
        "eventrainin": "0.012",
        "hourlyrainin": "0.000",
        "dailyrainin": "0.012",
        "weeklyrainin": "0.300",
        "monthlyrainin": "1.020",
        "yearlyrainin": "4.500",
        "model": "GW1100A",
    }


@pytest.fixture
def wunderground_payload() -> dict:
    """Typical Wunderground-protocol upload."""
    return {
        "ID": "IQUITO12",
        "PASSWORD": "s3cret",
        "dateutc": "now",
        "tempf": "61.2",
        "humidity": "80",
        "dewptf": "55.1",
        "windspeedmph": "2.2",
        "windgustmph": "3.4",
        "winddir": "90",
        "baromin": "30.01",
        "rainin": "0.01",
        "softwaretype": "EasyWeatherPro_V5.1.6",
        "action": "updateraw",
    }
