# Copyright (c) 2026, Hackpath and contributors
# For license information, please see license.txt

"""
Local-to-Server Progress Migration

Merges a visitor's local progress into their account right after sign-in:
1. Hacks with progress: view_count max, server completion wins, local fills gaps
2. Levels owning completed hacks are recomputed
3. Locally completed checks are added when the account has no row for them
4. Local levels with a positive count are recomputed

Entity merges run concurrently and fail independently. The local store is
cleared only when nothing failed, so a later run can finish the work; every
merge is idempotent, so re-applying an already merged entity changes nothing.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from hackpath.config import get_settings
from hackpath.exceptions import DoesNotExistError
from hackpath.services.progress_engine.local_store import LocalProgressStore
from hackpath.services.progress_engine.records import (
	HackProgress,
	HackProgressPatch,
	ProgressSnapshot,
	latest,
)
from hackpath.services.progress_engine.server_store import ServerProgressStore
from hackpath.utils.error_log import log_error

logger = logging.getLogger(__name__)

# Users with a run in flight, across all engine instances of the process
_running_users: Set[str] = set()


class MigrationState(str, Enum):
	IDLE = "idle"
	RUNNING = "running"
	SUCCEEDED = "succeeded"
	PARTIALLY_FAILED = "partially_failed"


@dataclass
class MigrationResult:
	"""Outcome of one migration run."""

	user_id: str
	state: MigrationState
	succeeded: bool = False
	failed_entity_ids: List[str] = field(default_factory=list)
	errors: Dict[str, str] = field(default_factory=dict)
	migrated_hacks: int = 0
	migrated_checks: int = 0
	recomputed_levels: int = 0
	discarded: List[str] = field(default_factory=list)
	skipped: bool = False
	local_cleared: bool = False

	def to_dict(self) -> Dict[str, Any]:
		data = asdict(self)
		data["state"] = self.state.value
		return data


def merge_hack_progress(local: HackProgress, server: Optional[HackProgress]) -> HackProgress:
	"""
	Merge local hack progress into the server record

	Args:
		local: Local record
		server: Existing server record, or None

	Returns:
		HackProgress: view_count is the max of both; completed_at is the
		server's when it has one, else the local one
	"""
	if server is None:
		return local
	return HackProgress(
		hack_id=server.hack_id,
		view_count=max(local.view_count, server.view_count),
		completed_at=server.completed_at or local.completed_at,
		last_viewed_at=latest(local.last_viewed_at, server.last_viewed_at),
		level_id=server.level_id or local.level_id,
	)


class _RunOutcome:
	"""Mutable tally shared by the entity tasks of one run."""

	def __init__(self):
		self.errors: Dict[str, str] = {}
		self.discarded: List[str] = []
		self.migrated_hacks = 0
		self.migrated_checks = 0
		self.recomputed_levels: Set[str] = set()


class MigrationEngine:
	"""
	Per-user migration state machine: IDLE -> RUNNING -> SUCCEEDED | PARTIALLY_FAILED

	A trigger for a user whose run is still RUNNING is ignored.
	"""

	def __init__(
		self,
		server_store: ServerProgressStore,
		local_store: Optional[LocalProgressStore] = None,
		concurrency: Optional[int] = None,
	):
		"""
		Args:
			server_store: Destination store
			local_store: Source store; cleared after a fully successful run that read it
			concurrency: Max entity merges in flight (defaults to settings.migration_concurrency)
		"""
		self.server_store = server_store
		self.local_store = local_store
		if concurrency is None:
			concurrency = get_settings().migration_concurrency
		if concurrency < 1:
			raise ValueError(f"concurrency must be at least 1, got {concurrency}")
		self.concurrency = concurrency
		self._states: Dict[str, MigrationState] = {}

	def state_for(self, user_id: str) -> MigrationState:
		if user_id in _running_users:
			return MigrationState.RUNNING
		return self._states.get(user_id, MigrationState.IDLE)

	async def migrate_local_progress_to_user(
		self,
		user_id: str,
		local_snapshot: Optional[ProgressSnapshot] = None,
	) -> MigrationResult:
		"""
		Merge local progress into ``user_id``'s account

		Args:
			user_id: Account that just signed in
			local_snapshot: Progress to merge (defaults to the local store's export).
				An explicit snapshot leaves the local store untouched.

		Returns:
			MigrationResult: succeeded, failed_entity_ids, errors and counters
		"""
		if user_id in _running_users:
			logger.warning(f"Migration already running for {user_id}, ignoring trigger")
			return MigrationResult(user_id=user_id, state=MigrationState.RUNNING, skipped=True)

		_running_users.add(user_id)
		self._states[user_id] = MigrationState.RUNNING
		final_state = MigrationState.PARTIALLY_FAILED
		try:
			# Only a store whose contents were read here may be cleared afterwards
			from_local_store = local_snapshot is None and self.local_store is not None
			if local_snapshot is None:
				local_snapshot = self.local_store.get_all_local_progress() if self.local_store else ProgressSnapshot.empty()

			logger.info(
				f"Starting migration for {user_id}: {len(local_snapshot.hacks)} hacks, "
				f"{len(local_snapshot.levels)} levels, {len(local_snapshot.checks)} hacks with checks"
			)
			outcome = await self._run(user_id, local_snapshot)
			result = self._finish(user_id, outcome, from_local_store)
			final_state = result.state
			return result
		finally:
			_running_users.discard(user_id)
			self._states[user_id] = final_state

	async def _run(self, user_id: str, snapshot: ProgressSnapshot) -> _RunOutcome:
		outcome = _RunOutcome()
		semaphore = asyncio.Semaphore(self.concurrency)

		tasks = [
			self._guarded(semaphore, outcome, hack_id, lambda p=progress: self._migrate_hack(user_id, p, outcome))
			for hack_id, progress in snapshot.hacks.items()
			if progress.has_progress
		]
		tasks += [
			self._guarded(semaphore, outcome, check_id, lambda c=check_id: self._migrate_check(user_id, c, outcome))
			for check_ids in snapshot.checks.values()
			for check_id in sorted(check_ids)
		]
		await asyncio.gather(*tasks)

		# Levels last so their counts see every merged hack
		level_tasks = [
			self._guarded(semaphore, outcome, level_id, lambda lid=level_id: self._migrate_level(user_id, lid, outcome))
			for level_id, progress in snapshot.levels.items()
			if progress.hacks_completed_count > 0 and level_id not in outcome.recomputed_levels
		]
		await asyncio.gather(*level_tasks)
		return outcome

	async def _guarded(
		self,
		semaphore: asyncio.Semaphore,
		outcome: _RunOutcome,
		entity_id: str,
		merge: Callable[[], Awaitable[None]],
	) -> None:
		async with semaphore:
			try:
				await merge()
			except DoesNotExistError as e:
				logger.warning(f"Discarding local entity {entity_id}: {str(e)}")
				outcome.discarded.append(entity_id)
			except Exception as e:
				outcome.errors[entity_id] = str(e)
				log_error(f"Failed to migrate {entity_id}: {str(e)}", "Progress Migration Error")

	async def _migrate_hack(self, user_id: str, local: HackProgress, outcome: _RunOutcome) -> None:
		level_id = await self.server_store.get_hack_level_id(local.hack_id)
		if level_id is None:
			raise DoesNotExistError(f"Hack {local.hack_id} not found")

		server = await self.server_store.get_hack_progress(user_id, local.hack_id)
		merged = merge_hack_progress(local, server)
		stored = await self.server_store.upsert_hack_progress(
			user_id,
			local.hack_id,
			HackProgressPatch(
				view_count=merged.view_count,
				completed_at=merged.completed_at,
				last_viewed_at=merged.last_viewed_at,
			),
		)

		if stored.is_completed:
			await self.server_store.recompute_level_progress(user_id, level_id)
			outcome.recomputed_levels.add(level_id)
		outcome.migrated_hacks += 1

	async def _migrate_check(self, user_id: str, check_id: str, outcome: _RunOutcome) -> None:
		if await self.server_store.get_check_hack_id(check_id) is None:
			raise DoesNotExistError(f"Hack check {check_id} not found")
		if await self.server_store.insert_check_if_missing(user_id, check_id):
			outcome.migrated_checks += 1

	async def _migrate_level(self, user_id: str, level_id: str, outcome: _RunOutcome) -> None:
		await self.server_store.recompute_level_progress(user_id, level_id)
		outcome.recomputed_levels.add(level_id)

	def _finish(self, user_id: str, outcome: _RunOutcome, clear_local: bool) -> MigrationResult:
		failed = sorted(outcome.errors)
		succeeded = not failed
		local_cleared = False

		if succeeded and clear_local:
			local_cleared = self.local_store.clear()

		result = MigrationResult(
			user_id=user_id,
			state=MigrationState.SUCCEEDED if succeeded else MigrationState.PARTIALLY_FAILED,
			succeeded=succeeded,
			failed_entity_ids=failed,
			errors=dict(outcome.errors),
			migrated_hacks=outcome.migrated_hacks,
			migrated_checks=outcome.migrated_checks,
			recomputed_levels=len(outcome.recomputed_levels),
			discarded=sorted(outcome.discarded),
			local_cleared=local_cleared,
		)

		if succeeded:
			logger.info(
				f"Migration succeeded for {user_id}: {result.migrated_hacks} hacks, "
				f"{result.migrated_checks} checks, {result.recomputed_levels} levels, "
				f"{len(result.discarded)} discarded"
			)
		else:
			logger.warning(f"Migration partially failed for {user_id}: {failed}, local progress kept")
		return result
