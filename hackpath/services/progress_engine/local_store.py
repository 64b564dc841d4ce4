# Copyright (c) 2026, Hackpath and contributors
# For license information, please see license.txt

"""
Local Progress Store

Progress cache for visitors without an account. Everything a visitor does is
kept in ONE versioned JSON container per visitor, stored in Redis under
``{namespace}:local_progress:{visitor_id}``:

	{
		"version": 1,
		"hacks": {hack_id: {"view_count", "completed_at", "last_viewed_at", "level_id"}},
		"levels": {level_id: {"hacks_completed", "total_required_hacks", "required_hack_ids",
			"completed_at", "last_updated_at"}},
		"hack_checks": {hack_id: [check_id, ...]}
	}

The container is disposable until the visitor signs in, so storage problems
never reach the caller: a missing, corrupted or wrong-version container reads
as empty and failed writes are logged and dropped. Concurrent writers to the
same container are last-write-wins.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, TypeVar

import redis

from hackpath.config import get_settings
from hackpath.services.progress_engine.records import (
	HackCheckProgress,
	HackProgress,
	LevelProgress,
	ProgressSnapshot,
	format_timestamp,
	parse_timestamp,
	utc_now,
)
from hackpath.utils.error_log import log_error
from hackpath.utils.redis_keys import get_local_progress_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors a container read or write may raise; all degrade to defaults.
STORAGE_ERRORS = (redis.RedisError, ValueError, TypeError)


class VersionedContainer:
	"""
	Single JSON document in Redis carrying an explicit schema version

	Provides:
	- load(): current document, or a fresh one on absence/corruption/version mismatch
	- update(): read-merge-write of the whole document
	- clear(): delete the document
	"""

	def __init__(self, redis_client: redis.Redis, key: str, version: int, factory: Callable[[], Dict[str, Any]]):
		"""
		Args:
			redis_client: Redis connection
			key: Container key
			version: Schema version written to and expected from the container
			factory: Builds an empty document (without the version field)
		"""
		if version < 1:
			raise ValueError(f"version must be at least 1, got {version}")
		self.redis = redis_client
		self.key = key
		self.version = version
		self._factory = factory

	def empty(self) -> Dict[str, Any]:
		data = self._factory()
		data["version"] = self.version
		return data

	def load(self) -> Dict[str, Any]:
		"""
		Read the container

		Returns:
			dict: Stored document, or an empty one when the container is absent,
			unreadable, not a JSON object, or written by another schema version
		"""
		return self._read()[0]

	def _read(self) -> Tuple[Dict[str, Any], bool]:
		"""Load the document and whether Redis answered the read."""
		try:
			raw = self.redis.get(self.key)
		except STORAGE_ERRORS as e:
			log_error(f"Failed to read {self.key}: {str(e)}", "Local Progress Error")
			return self.empty(), False

		if raw is None:
			return self.empty(), True

		try:
			data = json.loads(raw)
		except (ValueError, TypeError) as e:
			log_error(f"Malformed container {self.key}: {str(e)}", "Local Progress Error")
			return self.empty(), True

		if not isinstance(data, dict):
			log_error(f"Container {self.key} is not an object", "Local Progress Error")
			return self.empty(), True

		if data.get("version") != self.version:
			logger.info(
				f"Discarding {self.key}: version {data.get('version')} != {self.version}"
			)
			return self.empty(), True

		return data, True

	def save(self, data: Dict[str, Any]) -> bool:
		"""
		Write the container

		Returns:
			bool: True if written, False if the write failed (already logged)
		"""
		data["version"] = self.version
		try:
			self.redis.set(self.key, json.dumps(data))
			return True
		except STORAGE_ERRORS as e:
			log_error(f"Failed to write {self.key}: {str(e)}", "Local Progress Error")
			return False

	def update(self, mutate: Callable[[Dict[str, Any]], T]) -> T:
		"""
		Read-merge-write: load, apply ``mutate`` in place, save

		Nothing is written when the read itself failed, since the stored
		document may still hold progress the empty fallback does not.

		Args:
			mutate: Receives the document, changes it, returns the caller's result

		Returns:
			Whatever ``mutate`` returned (also when the write failed or was skipped)
		"""
		data, readable = self._read()
		result = mutate(data)
		if readable:
			self.save(data)
		else:
			log_error(f"Skipped write to {self.key} after a failed read", "Local Progress Error")
		return result

	def clear(self) -> bool:
		try:
			self.redis.delete(self.key)
			return True
		except STORAGE_ERRORS as e:
			log_error(f"Failed to clear {self.key}: {str(e)}", "Local Progress Error")
			return False


def _empty_progress() -> Dict[str, Any]:
	return {"hacks": {}, "levels": {}, "hack_checks": {}}


class LocalProgressStore:
	"""
	Anonymous visitor progress for levels, hacks and checks

	Provides:
	- Hack views and set-once hack completion
	- Level progress recount after completions
	- Toggleable check progress
	- Full export for the sign-in migration
	"""

	def __init__(
		self,
		redis_client: redis.Redis,
		visitor_id: str,
		namespace: Optional[str] = None,
		version: Optional[int] = None,
	):
		"""
		Args:
			redis_client: Redis connection
			visitor_id: Stable anonymous identifier (cookie/device id)
			namespace: Key prefix (defaults to settings.local_progress_namespace)
			version: Container schema version (defaults to settings.local_progress_version)
		"""
		settings = get_settings()
		if namespace is None:
			namespace = settings.local_progress_namespace
		if version is None:
			version = settings.local_progress_version
		self.visitor_id = visitor_id
		self.container = VersionedContainer(
			redis_client,
			get_local_progress_key(namespace, visitor_id),
			version,
			_empty_progress,
		)

	# ------------------------------------------------------------------
	# Hacks
	# ------------------------------------------------------------------

	def get_all_hack_progress(self) -> Dict[str, HackProgress]:
		return _parse_hacks(_section(self.container.load(), "hacks"))

	def get_hack_progress(self, hack_id: str) -> Optional[HackProgress]:
		return self.get_all_hack_progress().get(hack_id)

	def is_hack_completed(self, hack_id: str) -> bool:
		progress = self.get_hack_progress(hack_id)
		return progress is not None and progress.is_completed

	def mark_hack_viewed(self, hack_id: str) -> HackProgress:
		"""
		Increment the view count of a hack

		Returns:
			HackProgress: Updated record
		"""
		now = utc_now()

		def mutate(data: Dict[str, Any]) -> HackProgress:
			hacks = _section(data, "hacks")
			existing = _parse_hack(hack_id, hacks.get(hack_id)) or HackProgress(hack_id=hack_id)
			updated = replace(existing, view_count=existing.view_count + 1, last_viewed_at=now)
			hacks[hack_id] = _hack_to_json(updated)
			return updated

		updated = self.container.update(mutate)
		logger.debug(f"Visitor {self.visitor_id} viewed hack {hack_id} ({updated.view_count} views)")
		return updated

	def mark_hack_completed(
		self,
		hack_id: str,
		level_id: str,
		required_hack_ids: Optional[Iterable[str]] = None,
	) -> HackProgress:
		"""
		Mark a hack completed and recount its level

		The first completion timestamp is kept; completing again is a no-op
		for ``completed_at``. A completed hack counts as viewed at least once.

		Args:
			hack_id: Hack being completed
			level_id: Level owning the hack
			required_hack_ids: Required hacks of the level, for an exact recount (remembered for later recounts)

		Returns:
			HackProgress: Updated record
		"""
		now = utc_now()
		required = list(required_hack_ids) if required_hack_ids is not None else None

		def mutate(data: Dict[str, Any]) -> HackProgress:
			hacks = _section(data, "hacks")
			existing = _parse_hack(hack_id, hacks.get(hack_id)) or HackProgress(hack_id=hack_id)
			updated = replace(
				existing,
				completed_at=existing.completed_at or now,
				view_count=max(existing.view_count, 1),
				last_viewed_at=existing.last_viewed_at or now,
				level_id=level_id,
			)
			hacks[hack_id] = _hack_to_json(updated)
			_recount_level(data, level_id, required, now)
			return updated

		updated = self.container.update(mutate)
		logger.info(f"Visitor {self.visitor_id} completed hack {hack_id} in level {level_id}")
		return updated

	# ------------------------------------------------------------------
	# Levels
	# ------------------------------------------------------------------

	def get_all_level_progress(self) -> Dict[str, LevelProgress]:
		return _parse_levels(_section(self.container.load(), "levels"))

	def get_level_progress(self, level_id: str) -> Optional[LevelProgress]:
		return self.get_all_level_progress().get(level_id)

	def update_level_progress(self, level_id: str, required_hack_ids: Optional[Iterable[str]] = None) -> LevelProgress:
		"""
		Recount completed required hacks for a level

		Without ``required_hack_ids`` the list remembered from an earlier call
		is used; when none was ever given the stored count and total are kept,
		since a hack of unknown required status must not count.

		Returns:
			LevelProgress: Updated record
		"""
		now = utc_now()
		required = list(required_hack_ids) if required_hack_ids is not None else None
		return self.container.update(lambda data: _recount_level(data, level_id, required, now))

	# ------------------------------------------------------------------
	# Checks
	# ------------------------------------------------------------------

	def get_all_check_progress(self) -> Dict[str, FrozenSet[str]]:
		return _parse_checks(_section(self.container.load(), "hack_checks"))

	def get_check_progress(self, hack_id: str) -> FrozenSet[str]:
		"""Completed check ids of a hack (empty set when none)."""
		return self.get_all_check_progress().get(hack_id, frozenset())

	def set_check_completed(self, hack_id: str, check_id: str, completed: bool) -> HackCheckProgress:
		"""
		Check or un-check a checklist item

		Returns:
			HackCheckProgress: New state of the check
		"""
		def mutate(data: Dict[str, Any]) -> None:
			checks = _section(data, "hack_checks")
			current = checks.get(hack_id)
			completed_ids = [c for c in current if isinstance(c, str)] if isinstance(current, list) else []
			if completed and check_id not in completed_ids:
				completed_ids.append(check_id)
			elif not completed and check_id in completed_ids:
				completed_ids.remove(check_id)

			if completed_ids:
				checks[hack_id] = completed_ids
			else:
				checks.pop(hack_id, None)

		self.container.update(mutate)
		return HackCheckProgress(check_id=check_id, hack_id=hack_id, completed_at=utc_now() if completed else None)

	# ------------------------------------------------------------------
	# Export / lifecycle
	# ------------------------------------------------------------------

	def get_all_local_progress(self) -> ProgressSnapshot:
		"""
		Export everything in one read (used for evaluation and migration)

		Returns:
			ProgressSnapshot: Hacks, levels and completed checks
		"""
		data = self.container.load()
		return ProgressSnapshot(
			hacks=_parse_hacks(_section(data, "hacks")),
			levels=_parse_levels(_section(data, "levels")),
			checks=_parse_checks(_section(data, "hack_checks")),
		)

	def get_local_progress_summary(self) -> Dict[str, Any]:
		"""
		Summarize local progress for display and migration decisions

		Returns:
			dict: completed_hacks, total_hacks_viewed, completed_levels,
			total_levels_started, total_hacks_with_check_progress,
			total_checks_completed, has_progress
		"""
		snapshot = self.get_all_local_progress()
		completed_hacks = sum(1 for h in snapshot.hacks.values() if h.is_completed)
		total_checks = sum(len(ids) for ids in snapshot.checks.values())
		return {
			"completed_hacks": completed_hacks,
			"total_hacks_viewed": len(snapshot.hacks),
			"completed_levels": sum(1 for lvl in snapshot.levels.values() if lvl.is_completed),
			"total_levels_started": len(snapshot.levels),
			"total_hacks_with_check_progress": len(snapshot.checks),
			"total_checks_completed": total_checks,
			"has_progress": snapshot.has_progress,
		}

	def has_progress(self) -> bool:
		return self.get_all_local_progress().has_progress

	def clear(self) -> bool:
		"""Delete the container. Only the migration calls this, after full success."""
		cleared = self.container.clear()
		if cleared:
			logger.info(f"Cleared local progress for visitor {self.visitor_id}")
		return cleared


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
	"""Return a mutable top-level map, replacing it if it is not an object."""
	value = data.get(name)
	if not isinstance(value, dict):
		value = {}
		data[name] = value
	return value


def _recount_level(
	data: Dict[str, Any],
	level_id: str,
	required_hack_ids: Optional[List[str]],
	now,
) -> LevelProgress:
	hacks = _parse_hacks(_section(data, "hacks"))
	levels = _section(data, "levels")
	raw_level = levels.get(level_id)
	existing = _parse_level(level_id, raw_level)

	if required_hack_ids is None:
		required_hack_ids = _stored_required_ids(raw_level)

	if required_hack_ids is not None:
		total_required = len(required_hack_ids)
		completed_count = sum(1 for hack_id in required_hack_ids if hack_id in hacks and hacks[hack_id].is_completed)
	else:
		# Optional hacks never count, so without a required list nothing is recounted
		total_required = existing.total_required_hacks if existing else 0
		completed_count = existing.hacks_completed_count if existing else 0

	is_completed = total_required > 0 and completed_count >= total_required
	completed_at = existing.completed_at if existing and existing.completed_at else None
	if is_completed and completed_at is None:
		completed_at = now

	updated = LevelProgress(
		level_id=level_id,
		hacks_completed_count=completed_count,
		total_required_hacks=total_required,
		completed_at=completed_at,
		last_updated_at=now,
	)
	levels[level_id] = _level_to_json(updated, required_hack_ids)
	return updated


def _stored_required_ids(raw: Any) -> Optional[List[str]]:
	if not isinstance(raw, dict):
		return None
	ids = raw.get("required_hack_ids")
	if not isinstance(ids, list):
		return None
	return [hack_id for hack_id in ids if isinstance(hack_id, str)]


def _hack_to_json(progress: HackProgress) -> Dict[str, Any]:
	return {
		"view_count": progress.view_count,
		"completed_at": format_timestamp(progress.completed_at),
		"last_viewed_at": format_timestamp(progress.last_viewed_at),
		"level_id": progress.level_id,
	}


def _level_to_json(progress: LevelProgress, required_hack_ids: Optional[List[str]] = None) -> Dict[str, Any]:
	data = {
		"hacks_completed": progress.hacks_completed_count,
		"total_required_hacks": progress.total_required_hacks,
		"completed_at": format_timestamp(progress.completed_at),
		"last_updated_at": format_timestamp(progress.last_updated_at),
	}
	if required_hack_ids is not None:
		data["required_hack_ids"] = list(required_hack_ids)
	return data


def _parse_hack(hack_id: str, raw: Any) -> Optional[HackProgress]:
	if not isinstance(raw, dict):
		return None
	try:
		view_count = max(0, int(raw.get("view_count") or 0))
	except (TypeError, ValueError):
		return None
	level_id = raw.get("level_id")
	return HackProgress(
		hack_id=hack_id,
		view_count=view_count,
		completed_at=parse_timestamp(raw.get("completed_at")),
		last_viewed_at=parse_timestamp(raw.get("last_viewed_at")),
		level_id=level_id if isinstance(level_id, str) else None,
	)


def _parse_level(level_id: str, raw: Any) -> Optional[LevelProgress]:
	if not isinstance(raw, dict):
		return None
	try:
		hacks_completed = max(0, int(raw.get("hacks_completed") or 0))
		total_required = max(0, int(raw.get("total_required_hacks") or 0))
	except (TypeError, ValueError):
		return None
	return LevelProgress(
		level_id=level_id,
		hacks_completed_count=hacks_completed,
		total_required_hacks=total_required,
		completed_at=parse_timestamp(raw.get("completed_at")),
		last_updated_at=parse_timestamp(raw.get("last_updated_at")),
	)


def _parse_hacks(section: Dict[str, Any]) -> Dict[str, HackProgress]:
	parsed = {}
	for hack_id, raw in section.items():
		progress = _parse_hack(hack_id, raw)
		if progress is None:
			logger.warning(f"Skipping malformed local hack progress entry: {hack_id}")
			continue
		parsed[hack_id] = progress
	return parsed


def _parse_levels(section: Dict[str, Any]) -> Dict[str, LevelProgress]:
	parsed = {}
	for level_id, raw in section.items():
		progress = _parse_level(level_id, raw)
		if progress is None:
			logger.warning(f"Skipping malformed local level progress entry: {level_id}")
			continue
		parsed[level_id] = progress
	return parsed


def _parse_checks(section: Dict[str, Any]) -> Dict[str, FrozenSet[str]]:
	parsed = {}
	for hack_id, raw in section.items():
		if not isinstance(raw, list):
			logger.warning(f"Skipping malformed local check progress entry: {hack_id}")
			continue
		check_ids = frozenset(c for c in raw if isinstance(c, str))
		if check_ids:
			parsed[hack_id] = check_ids
	return parsed
