"""
Pytest configuration and fixtures for AgriAdvisor tests
"""

import copy
import uuid
from typing import Any, Dict, List

import pytest
from httpx import ASGITransport, AsyncClient

from agriadvisor.client.store import LocalStore, OfflineRecord
from agriadvisor.client.transport import TransportError
from agriadvisor.config.config_loader import DEFAULT_CONFIG
from agriadvisor.core.database import db_service
from agriadvisor.core.models import UserDB
from agriadvisor.core.security import TokenService
from agriadvisor.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_SECRET = "test-secret"


@pytest.fixture
async def setup_test_db():
    """Fresh in-memory database bound to the global database service"""
    db_service.initialize(TEST_DATABASE_URL)
    await db_service.create_tables()
    yield db_service
    await db_service.close()


@pytest.fixture
async def file_test_db(tmp_path):
    """File-backed database bound to the global database service"""
    db_service.initialize(f"sqlite+aiosqlite:///{tmp_path / 'agriadvisor.db'}")
    await db_service.create_tables()
    yield db_service
    await db_service.close()


@pytest.fixture
async def file_client(file_test_db, test_config):
    test_config['database']['url'] = file_test_db.database_url
    app = create_app(test_config)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def test_config() -> Dict[str, Any]:
    config = copy.deepcopy(DEFAULT_CONFIG)
    config['database']['url'] = TEST_DATABASE_URL
    config['auth']['secret'] = TEST_SECRET
    return config


@pytest.fixture
def test_app(setup_test_db, test_config):
    """FastAPI application sharing the test database"""
    return create_app(test_config)


@pytest.fixture
async def client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TEST_SECRET)


async def create_user(**overrides) -> UserDB:
    fields = {
        'name': 'Asha Patil',
        'email': f"farmer-{uuid.uuid4().hex[:8]}@example.com",
        'latitude': 18.52,
        'longitude': 73.85,
        'address': 'Pune',
        'preferences': {'language': 'mr'},
        'farm_details': {'acres': 4},
    }
    fields.update(overrides)
    user = UserDB(**fields)
    async with db_service.get_session() as session:
        session.add(user)
    return user


@pytest.fixture
def user_factory(setup_test_db):
    return create_user


@pytest.fixture
async def farmer(setup_test_db) -> UserDB:
    return await create_user()


@pytest.fixture
async def file_farmer(file_test_db) -> UserDB:
    return await create_user()


@pytest.fixture
def auth_headers(farmer, token_service) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_service.issue_token(farmer.id)}"}


@pytest.fixture
async def local_store():
    store = LocalStore(TEST_DATABASE_URL)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def file_store(tmp_path):
    store = LocalStore(f"sqlite+aiosqlite:///{tmp_path / 'offline.db'}")
    await store.initialize()
    yield store
    await store.close()


class FakeTransport:
    """Records deliveries; fails while ``fail`` is set or for listed record ids"""

    def __init__(self):
        self.sent: List[OfflineRecord] = []
        self.fail = False
        self.fail_ids = set()
        self.status = 503

    async def send(self, record: OfflineRecord) -> Dict[str, Any]:
        self.sent.append(record)
        if self.fail or record.id in self.fail_ids:
            raise TransportError(f"HTTP {self.status}", status=self.status)
        return {"message": "Data synced successfully", "result": {"action": "created"}}

    async def close(self):
        pass


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()

