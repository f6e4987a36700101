import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from studysquad.domain.squads import SquadRepository, SquadSessionEngine, TimerDriver
from studysquad.infra.identity import CurrentUser, StaticIdentity
from studysquad.infra.snapshot_store import MemorySnapshotStore, SnapshotStoreError
from studysquad.infra.transform import Base64Transform
from studysquad.main import build_runtime, create_app
from studysquad.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from studysquad.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep timing and persistence knobs deterministic across tests."""
	original_interval = settings.tick_interval_seconds
	original_on_write = settings.snapshot_on_write
	original_seed = settings.seed_demo_squads
	original_trust = settings.trust_identity_headers
	original_obs = settings.obs_enabled
	settings.tick_interval_seconds = 0.01
	settings.snapshot_on_write = True
	settings.seed_demo_squads = False
	settings.trust_identity_headers = True
	settings.obs_enabled = False
	try:
		yield
	finally:
		settings.tick_interval_seconds = original_interval
		settings.snapshot_on_write = original_on_write
		settings.seed_demo_squads = original_seed
		settings.trust_identity_headers = original_trust
		settings.obs_enabled = original_obs


@pytest.fixture
def alice() -> CurrentUser:
	return CurrentUser(uid="u1", display_name="Alice", photo_url="https://example.test/alice.png")


@pytest.fixture
def bob() -> CurrentUser:
	return CurrentUser(uid="u2", display_name="Bob")


@pytest.fixture
def identity() -> StaticIdentity:
	return StaticIdentity()


@pytest.fixture
def repository() -> SquadRepository:
	return SquadRepository()


@pytest.fixture
def transform() -> Base64Transform:
	return Base64Transform()


@pytest_asyncio.fixture
async def driver():
	timer_driver = TimerDriver()
	try:
		yield timer_driver
	finally:
		await timer_driver.shutdown()


@pytest.fixture
def engine(repository, identity, transform) -> SquadSessionEngine:
	return SquadSessionEngine(repository, identity, transform)


@pytest.fixture
def snapshot_store() -> MemorySnapshotStore:
	return MemorySnapshotStore()


class FlakySnapshotStore(MemorySnapshotStore):
	"""Memory store whose next `failures` writes raise."""

	def __init__(self) -> None:
		super().__init__()
		self.failures = 0

	async def write(self, document: str) -> None:
		if self.failures:
			self.failures -= 1
			raise SnapshotStoreError("store_unavailable")
		await super().write(document)


@pytest.fixture
def flaky_store() -> FlakySnapshotStore:
	return FlakySnapshotStore()


@pytest.fixture
def api_runtime(snapshot_store):
	return build_runtime(snapshot_store)


@pytest_asyncio.fixture
async def api_client(api_runtime):
	app = create_app(api_runtime)
	transport = ASGITransport(app=app)
	async with app.router.lifespan_context(app):
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
