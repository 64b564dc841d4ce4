"""Database connection and session management."""
from typing import Optional

from sqlalchemy.ext.asyncio import (
	AsyncEngine,
	AsyncSession,
	async_sessionmaker,
	create_async_engine,
)

from hackpath.config import Settings, get_settings
from hackpath.db.models import Base

# Process-wide engine and session factory for application wiring
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
	"""
	Create a new database engine.

	Args:
		settings: Settings providing ``database_url`` and ``database_echo``

	Returns:
		AsyncEngine: SQLAlchemy async engine instance
	"""
	settings = settings or get_settings()
	return create_async_engine(
		settings.database_url,
		echo=settings.database_echo,
		pool_pre_ping=True,  # Verify connections before using
	)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
	"""
	Create a session factory bound to ``engine``.

	Returns:
		async_sessionmaker: SQLAlchemy async session factory
	"""
	return async_sessionmaker(
		engine,
		class_=AsyncSession,
		expire_on_commit=False,
		autoflush=False,
	)


def get_engine() -> AsyncEngine:
	"""
	Get or create the database engine.

	Returns:
		AsyncEngine: SQLAlchemy async engine instance
	"""
	global _engine
	if _engine is None:
		_engine = create_engine_from_settings()
	return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
	"""
	Get or create the session factory.

	Returns:
		async_sessionmaker: SQLAlchemy async session factory
	"""
	global _async_session_factory
	if _async_session_factory is None:
		_async_session_factory = create_session_factory(get_engine())
	return _async_session_factory


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
	"""
	Initialize database tables.

	Creates all tables defined in models if they don't exist.
	"""
	engine = engine or get_engine()
	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
	"""Close database connections and dispose of the engine."""
	global _engine, _async_session_factory
	if _engine is not None:
		await _engine.dispose()
		_engine = None
		_async_session_factory = None
