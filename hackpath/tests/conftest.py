"""
Pytest configuration and fixtures.
"""
from typing import Any, AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from hackpath.db.connection import create_session_factory, init_db
from hackpath.services.progress_engine.graph_model import graph_from_dict
from hackpath.services.progress_engine.local_store import LocalProgressStore
from hackpath.services.progress_engine.server_store import ServerProgressStore
from hackpath.tests.utils import curriculum, seed_curriculum


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
	"""In-memory Redis with string responses, like the production client."""
	return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def curriculum_data() -> dict:
	return curriculum()


@pytest.fixture
def graph(curriculum_data):
	return graph_from_dict(curriculum_data)


@pytest.fixture
def local_store(redis_client) -> LocalProgressStore:
	return LocalProgressStore(redis_client, "visitor-1", namespace="test")


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, Any]:
	"""File-backed SQLite so concurrent sessions see each other's commits."""
	engine = create_async_engine(
		f"sqlite+aiosqlite:///{tmp_path / 'hackpath_test.db'}",
		connect_args={"timeout": 30},
	)
	await init_db(engine)
	yield engine
	await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
	factory = create_session_factory(db_engine)
	await seed_curriculum(factory)
	return factory


@pytest.fixture
def server_store(session_factory) -> ServerProgressStore:
	return ServerProgressStore(session_factory)
