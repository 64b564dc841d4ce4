"""Application settings using Pydantic for environment-based configuration."""

from functools import lru_cache
from typing import Optional

import redis
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
	"""Progression engine settings loaded from ``HACKPATH_*`` environment variables."""

	# Redis Configuration (anonymous progress containers)
	redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
	local_progress_namespace: str = Field(default="hackpath", description="Prefix for anonymous progress keys")
	local_progress_version: int = Field(default=1, description="Schema version of the local progress container")
	routine_storage_version: int = Field(default=1, description="Schema version of the local routine container")
	max_anonymous_routines: int = Field(default=3, description="Routines an anonymous visitor may keep in progress")

	# Database Configuration (authoritative progress)
	database_url: str = Field(default="sqlite+aiosqlite:///hackpath.db", description="SQLAlchemy async database URL")
	database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

	# Migration
	migration_concurrency: int = Field(default=10, description="Entity merges in flight during one migration run")

	log_level: str = Field(default="INFO", description="Logging level")

	model_config = SettingsConfigDict(
		env_prefix="HACKPATH_",
		env_file=".env",
		env_file_encoding="utf-8",
		extra="ignore",
	)

	@field_validator("max_anonymous_routines", "migration_concurrency", "local_progress_version", "routine_storage_version")
	@classmethod
	def validate_positive(cls, v: int) -> int:
		"""Reject zero or negative limits."""
		if v < 1:
			raise ValueError("must be at least 1")
		return v

	@field_validator("log_level")
	@classmethod
	def validate_log_level(cls, v: str) -> str:
		"""Validate log level is a standard logging level name."""
		valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
		v_upper = v.upper()
		if v_upper not in valid_levels:
			raise ValueError(f"Log level must be one of {valid_levels}")
		return v_upper


@lru_cache
def get_settings() -> Settings:
	"""Get cached settings instance."""
	return Settings()


def get_redis_connection(settings: Optional[Settings] = None) -> redis.Redis:
	"""Build a Redis client for the anonymous progress containers.

	Args:
		settings: Settings to read ``redis_url`` from (defaults to ``get_settings()``)

	Returns:
		Redis client returning ``str`` values
	"""
	settings = settings or get_settings()
	return redis.from_url(settings.redis_url, decode_responses=True)
