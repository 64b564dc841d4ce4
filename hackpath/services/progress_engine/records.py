"""Progress records shared by the local store, server store and evaluator.

Both stores hand progress to the unlock calculator as a ``ProgressSnapshot``
so evaluation never depends on where the data came from.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional


def utc_now() -> datetime:
	"""Current time as an aware UTC datetime."""
	return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
	"""Attach UTC to naive datetimes (SQLite returns them without tzinfo)."""
	if value is None:
		return None
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
	"""Parse an ISO-8601 string written by ``format_timestamp``.

	Returns None for missing or unparseable values.
	"""
	if not value or not isinstance(value, str):
		return None
	try:
		return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
	except ValueError:
		return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
	if value is None:
		return None
	return ensure_utc(value).isoformat()


def earliest(*values: Optional[datetime]) -> Optional[datetime]:
	present = [ensure_utc(v) for v in values if v is not None]
	return min(present) if present else None


def latest(*values: Optional[datetime]) -> Optional[datetime]:
	present = [ensure_utc(v) for v in values if v is not None]
	return max(present) if present else None


@dataclass(frozen=True)
class HackProgress:
	"""Progress on one hack.

	``view_count`` only grows and ``completed_at`` is set once; both merge
	safely when the same record is replayed.
	"""

	hack_id: str
	view_count: int = 0
	completed_at: Optional[datetime] = None
	last_viewed_at: Optional[datetime] = None
	level_id: Optional[str] = None

	@property
	def is_completed(self) -> bool:
		return self.completed_at is not None

	@property
	def has_progress(self) -> bool:
		return self.is_completed or self.view_count > 0


@dataclass(frozen=True)
class LevelProgress:
	"""Completed required hack count for one level."""

	level_id: str
	hacks_completed_count: int = 0
	total_required_hacks: int = 0
	completed_at: Optional[datetime] = None
	last_updated_at: Optional[datetime] = None

	@property
	def is_completed(self) -> bool:
		return self.completed_at is not None


@dataclass(frozen=True)
class HackCheckProgress:
	"""One checklist item state. Unlike hacks, checks can be un-checked."""

	check_id: str
	hack_id: Optional[str] = None
	completed_at: Optional[datetime] = None

	@property
	def is_completed(self) -> bool:
		return self.completed_at is not None


@dataclass(frozen=True)
class HackProgressPatch:
	"""Partial hack progress applied by an upsert.

	Fields left as None are not touched. Merge rules:
		- view_count: maximum of stored and patch
		- completed_at: stored value wins when present (set-once)
		- last_viewed_at: latest of stored and patch
	"""

	view_count: Optional[int] = None
	completed_at: Optional[datetime] = None
	last_viewed_at: Optional[datetime] = None

	def apply(self, hack_id: str, existing: Optional[HackProgress]) -> HackProgress:
		"""Return the record that results from applying this patch to ``existing``."""
		if existing is None:
			return HackProgress(
				hack_id=hack_id,
				view_count=max(0, self.view_count or 0),
				completed_at=ensure_utc(self.completed_at),
				last_viewed_at=ensure_utc(self.last_viewed_at),
			)

		view_count = existing.view_count
		if self.view_count is not None:
			view_count = max(view_count, self.view_count)

		return replace(
			existing,
			view_count=view_count,
			completed_at=existing.completed_at or ensure_utc(self.completed_at),
			last_viewed_at=latest(existing.last_viewed_at, self.last_viewed_at),
		)


@dataclass(frozen=True)
class ProgressSnapshot:
	"""Read-only view of one viewer's progress."""

	hacks: Dict[str, HackProgress] = field(default_factory=dict)
	levels: Dict[str, LevelProgress] = field(default_factory=dict)
	checks: Dict[str, FrozenSet[str]] = field(default_factory=dict)

	@classmethod
	def empty(cls) -> "ProgressSnapshot":
		return cls()

	def hack(self, hack_id: str) -> Optional[HackProgress]:
		return self.hacks.get(hack_id)

	def level(self, level_id: str) -> Optional[LevelProgress]:
		return self.levels.get(level_id)

	def is_hack_completed(self, hack_id: str) -> bool:
		progress = self.hacks.get(hack_id)
		return progress is not None and progress.is_completed

	def view_count(self, hack_id: str) -> int:
		progress = self.hacks.get(hack_id)
		return progress.view_count if progress else 0

	def completed_checks(self, hack_id: str) -> FrozenSet[str]:
		return self.checks.get(hack_id, frozenset())

	def hacks_completed_count(self, level_id: str) -> int:
		progress = self.levels.get(level_id)
		return progress.hacks_completed_count if progress else 0

	@property
	def has_progress(self) -> bool:
		return (
			any(h.has_progress for h in self.hacks.values())
			or any(self.checks.values())
		)
