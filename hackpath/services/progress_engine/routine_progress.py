# Copyright (c) 2026, Hackpath and contributors
# For license information, please see license.txt

"""
Local Routine Progress

Player state of routines (ordered hack playlists) for anonymous visitors.
Kept in a BoundedRecordStore under ``{namespace}:local_routines:{visitor_id}``
so a visitor holds at most ``max_anonymous_routines`` routines; starting a new
one when full drops the least recently played.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

import redis

from hackpath.config import get_settings
from hackpath.services.progress_engine.bounded_store import BoundedRecordStore
from hackpath.services.progress_engine.records import format_timestamp, parse_timestamp, utc_now
from hackpath.utils.redis_keys import get_local_routines_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutineProgress:
	"""Where a visitor is in one routine."""

	routine_id: str
	current_position: int = 0
	completed_hack_ids: List[str] = field(default_factory=list)
	progress: int = 0
	started_at: Optional[datetime] = None
	last_played_at: Optional[datetime] = None
	autoplay_enabled: bool = True

	def to_dict(self) -> Dict[str, Any]:
		data = asdict(self)
		data.pop("routine_id")
		data["completed_hack_ids"] = list(self.completed_hack_ids)
		data["started_at"] = format_timestamp(self.started_at)
		data["last_played_at"] = format_timestamp(self.last_played_at)
		return data

	@classmethod
	def from_dict(cls, routine_id: str, data: Dict[str, Any]) -> "RoutineProgress":
		completed = data.get("completed_hack_ids")
		try:
			position = max(0, int(data.get("current_position") or 0))
			progress = min(100, max(0, int(data.get("progress") or 0)))
		except (TypeError, ValueError):
			position, progress = 0, 0
		return cls(
			routine_id=routine_id,
			current_position=position,
			completed_hack_ids=[h for h in completed if isinstance(h, str)] if isinstance(completed, list) else [],
			progress=progress,
			started_at=parse_timestamp(data.get("started_at")),
			last_played_at=parse_timestamp(data.get("last_played_at")),
			autoplay_enabled=bool(data.get("autoplay_enabled", True)),
		)


class LocalRoutineProgressStore:
	"""
	Anonymous routine player progress

	Provides:
	- Position and completion tracking per routine
	- Autoplay preference per routine
	- Listing and clearing for the sign-in flow
	"""

	def __init__(
		self,
		redis_client: redis.Redis,
		visitor_id: str,
		namespace: Optional[str] = None,
		max_routines: Optional[int] = None,
		version: Optional[int] = None,
	):
		settings = get_settings()
		if namespace is None:
			namespace = settings.local_progress_namespace
		if max_routines is None:
			max_routines = settings.max_anonymous_routines
		if version is None:
			version = settings.routine_storage_version
		self.visitor_id = visitor_id
		self.records = BoundedRecordStore(
			redis_client,
			get_local_routines_key(namespace, visitor_id),
			cap=max_routines,
			version=version,
			recency_field="last_played_at",
		)

	def get_progress(self, routine_id: str) -> Optional[RoutineProgress]:
		record = self.records.get(routine_id)
		if record is None:
			return None
		return RoutineProgress.from_dict(routine_id, record)

	def save_progress(self, routine_id: str, **updates: Any) -> RoutineProgress:
		"""
		Merge updates into a routine's progress and stamp ``last_played_at``

		A routine without stored progress starts at position 0 with autoplay on.

		Args:
			routine_id: Routine being played
			**updates: RoutineProgress fields to change

		Returns:
			RoutineProgress: Stored progress
		"""
		now = utc_now()

		def mutate(existing: Optional[Dict[str, Any]]) -> Dict[str, Any]:
			if existing is None:
				current = RoutineProgress(routine_id=routine_id, started_at=now)
			else:
				current = RoutineProgress.from_dict(routine_id, existing)
			return replace(current, **updates, last_played_at=now).to_dict()

		stored = self.records.update(routine_id, mutate)
		return RoutineProgress.from_dict(routine_id, stored)

	def update_position(self, routine_id: str, position: int, total_hacks: int) -> RoutineProgress:
		"""
		Move the player to ``position`` out of ``total_hacks``

		Progress is the floored percentage of position over total, 0 for an
		empty routine.
		"""
		if total_hacks > 0:
			progress = min(100, max(0, (position * 100) // total_hacks))
		else:
			progress = 0
		return self.save_progress(routine_id, current_position=max(0, position), progress=progress)

	def mark_hack_complete(self, routine_id: str, hack_id: str) -> RoutineProgress:
		current = self.get_progress(routine_id)
		completed = list(current.completed_hack_ids) if current else []
		if current is not None and hack_id in completed:
			return current
		completed.append(hack_id)
		return self.save_progress(routine_id, completed_hack_ids=completed)

	def toggle_autoplay(self, routine_id: str, enabled: bool) -> RoutineProgress:
		return self.save_progress(routine_id, autoplay_enabled=enabled)

	def clear_progress(self, routine_id: str) -> bool:
		removed = self.records.remove(routine_id)
		if removed:
			logger.info(f"Cleared routine {routine_id} progress for visitor {self.visitor_id}")
		return removed

	def get_all_progress(self) -> Dict[str, RoutineProgress]:
		return {
			routine_id: RoutineProgress.from_dict(routine_id, record)
			for routine_id, record in self.records.get_all().items()
		}

	def clear_all(self) -> bool:
		return self.records.clear()

	def count(self) -> int:
		return self.records.count()

	def has_progress(self) -> bool:
		return self.count() > 0
