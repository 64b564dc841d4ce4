# Copyright (c) 2026, Hackpath and contributors
# For license information, please see license.txt

"""
Server Progress Store

Authoritative per-account progress in the relational database:
- user_hacks: view count and set-once completion per (user, hack)
- user_levels: completed required hack count per (user, level)
- user_hack_checks: checklist state per (user, check)

Every write is keyed by the natural (user, entity) pair. Each pair carries a
unique constraint, so two writers racing to insert the same pair leave one
row; the loser gets an IntegrityError and retries as an update.
"""

import asyncio
import logging
import weakref
from typing import Any, Dict, FrozenSet, Optional, Set, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hackpath.db.models import (
	CurriculumHack,
	CurriculumHackCheck,
	CurriculumLevel,
	UserHack,
	UserHackCheck,
	UserLevel,
)
from hackpath.exceptions import DoesNotExistError
from hackpath.services.progress_engine.records import (
	HackCheckProgress,
	HackProgress,
	HackProgressPatch,
	LevelProgress,
	ProgressSnapshot,
	ensure_utc,
	utc_now,
)

logger = logging.getLogger(__name__)

# One lock per (user, level) while a recomputation is in flight; shared by all
# store instances of the process.
_recompute_locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()


def _recompute_lock(user_id: str, level_id: str) -> asyncio.Lock:
	key = (user_id, level_id)
	lock = _recompute_locks.get(key)
	if lock is None:
		lock = asyncio.Lock()
		_recompute_locks[key] = lock
	return lock


class ServerProgressStore:
	"""
	Async store over the user progress tables

	Provides:
	- Lookups and a full ProgressSnapshot per user
	- Hack progress upserts with view/completion merge rules
	- Level progress recomputation, serialized per (user, level)
	- Check toggles and insert-if-missing for migration
	"""

	def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
		"""
		Args:
			session_factory: Factory for AsyncSession instances
		"""
		self.session_factory = session_factory

	# ------------------------------------------------------------------
	# Catalog lookups
	# ------------------------------------------------------------------

	async def get_hack_level_id(self, hack_id: str) -> Optional[str]:
		"""Level owning a hack, or None if the hack is not in the catalog."""
		async with self.session_factory() as session:
			result = await session.execute(
				select(CurriculumHack.level_id).where(CurriculumHack.id == hack_id)
			)
			return result.scalar_one_or_none()

	async def level_exists(self, level_id: str) -> bool:
		async with self.session_factory() as session:
			return await session.get(CurriculumLevel, level_id) is not None

	async def get_check_hack_id(self, check_id: str) -> Optional[str]:
		"""Hack owning a check, or None if the check is not in the catalog."""
		async with self.session_factory() as session:
			result = await session.execute(
				select(CurriculumHackCheck.hack_id).where(CurriculumHackCheck.id == check_id)
			)
			return result.scalar_one_or_none()

	# ------------------------------------------------------------------
	# Reads
	# ------------------------------------------------------------------

	async def get_hack_progress(self, user_id: str, hack_id: str) -> Optional[HackProgress]:
		async with self.session_factory() as session:
			row = await self._get_user_hack(session, user_id, hack_id)
			return _hack_from_row(row) if row else None

	async def get_level_progress(self, user_id: str, level_id: str) -> Optional[LevelProgress]:
		async with self.session_factory() as session:
			result = await session.execute(
				select(UserLevel).where(UserLevel.user_id == user_id, UserLevel.level_id == level_id)
			)
			row = result.scalar_one_or_none()
			return _level_from_row(row) if row else None

	async def get_check_progress(self, user_id: str, hack_id: str) -> FrozenSet[str]:
		"""Completed check ids of a hack for a user."""
		async with self.session_factory() as session:
			result = await session.execute(
				select(UserHackCheck.hack_check_id)
				.join(CurriculumHackCheck, CurriculumHackCheck.id == UserHackCheck.hack_check_id)
				.where(
					UserHackCheck.user_id == user_id,
					CurriculumHackCheck.hack_id == hack_id,
					UserHackCheck.completed_at.is_not(None),
				)
			)
			return frozenset(result.scalars().all())

	async def has_check_row(self, user_id: str, check_id: str) -> bool:
		async with self.session_factory() as session:
			return await self._get_user_check(session, user_id, check_id) is not None

	async def snapshot(self, user_id: str) -> ProgressSnapshot:
		"""
		Load all progress of a user in one session

		Returns:
			ProgressSnapshot: Hacks, levels and completed checks
		"""
		async with self.session_factory() as session:
			hack_rows = await session.execute(
				select(UserHack, CurriculumHack.level_id)
				.outerjoin(CurriculumHack, CurriculumHack.id == UserHack.hack_id)
				.where(UserHack.user_id == user_id)
			)
			hacks = {
				row.hack_id: _hack_from_row(row, level_id)
				for row, level_id in hack_rows.all()
			}

			level_rows = await session.execute(select(UserLevel).where(UserLevel.user_id == user_id))
			levels = {row.level_id: _level_from_row(row) for row in level_rows.scalars().all()}

			check_rows = await session.execute(
				select(CurriculumHackCheck.hack_id, UserHackCheck.hack_check_id)
				.join(CurriculumHackCheck, CurriculumHackCheck.id == UserHackCheck.hack_check_id)
				.where(UserHackCheck.user_id == user_id, UserHackCheck.completed_at.is_not(None))
			)
			checks: Dict[str, Set[str]] = {}
			for hack_id, check_id in check_rows.all():
				checks.setdefault(hack_id, set()).add(check_id)

		logger.debug(f"Loaded snapshot for {user_id}: {len(hacks)} hacks, {len(levels)} levels")
		return ProgressSnapshot(
			hacks=hacks,
			levels=levels,
			checks={hack_id: frozenset(ids) for hack_id, ids in checks.items()},
		)

	# ------------------------------------------------------------------
	# Hack writes
	# ------------------------------------------------------------------

	async def upsert_hack_progress(self, user_id: str, hack_id: str, patch: HackProgressPatch) -> HackProgress:
		"""
		Merge a patch into the (user, hack) row, creating it when absent

		The merge runs inside the UPDATE statement so concurrent writers
		cannot lose each other's values.

		Args:
			user_id: Account id
			hack_id: Hack id
			patch: view_count is merged by max, completed_at is set once,
				last_viewed_at keeps the latest

		Returns:
			HackProgress: Stored record
		"""
		async with self.session_factory() as session:
			row = await self._get_user_hack(session, user_id, hack_id)
			if row is not None:
				existing = _hack_from_row(row)
				if patch.apply(hack_id, existing) == existing:
					# Stored values already cover the patch
					return existing

		now = utc_now()
		update_values: Dict[str, Any] = {"updated_at": now}
		if patch.view_count is not None:
			update_values["view_count"] = case(
				(UserHack.view_count < patch.view_count, patch.view_count),
				else_=UserHack.view_count,
			)
		if patch.completed_at is not None:
			update_values["completed_at"] = func.coalesce(UserHack.completed_at, patch.completed_at)
		if patch.last_viewed_at is not None:
			update_values["viewed_at"] = case(
				(UserHack.viewed_at.is_(None), patch.last_viewed_at),
				(UserHack.viewed_at < patch.last_viewed_at, patch.last_viewed_at),
				else_=UserHack.viewed_at,
			)

		insert_values = {
			"view_count": max(0, patch.view_count or 0),
			"completed_at": patch.completed_at,
			"viewed_at": patch.last_viewed_at,
			"updated_at": now,
		}
		return await self._write_hack(user_id, hack_id, insert_values, update_values)

	async def mark_hack_viewed(self, user_id: str, hack_id: str) -> HackProgress:
		"""Increment the view count of a hack."""
		now = utc_now()
		return await self._write_hack(
			user_id,
			hack_id,
			{"view_count": 1, "viewed_at": now, "updated_at": now},
			{"view_count": UserHack.view_count + 1, "viewed_at": now, "updated_at": now},
		)

	async def mark_hack_completed(self, user_id: str, hack_id: str) -> Tuple[HackProgress, LevelProgress]:
		"""
		Complete a hack and recompute its level

		Returns:
			tuple: (hack progress, level progress)

		Raises:
			DoesNotExistError: If the hack is not in the catalog
		"""
		level_id = await self.get_hack_level_id(hack_id)
		if level_id is None:
			raise DoesNotExistError(f"Hack {hack_id} not found")

		now = utc_now()
		progress = await self.upsert_hack_progress(
			user_id, hack_id, HackProgressPatch(view_count=1, completed_at=now, last_viewed_at=now)
		)
		level_progress = await self.recompute_level_progress(user_id, level_id)
		logger.info(f"User {user_id} completed hack {hack_id}")
		return progress, level_progress

	async def _write_hack(
		self,
		user_id: str,
		hack_id: str,
		insert_values: Dict[str, Any],
		update_values: Dict[str, Any],
	) -> HackProgress:
		"""Update the (user, hack) row, inserting it when no row matched."""
		statement = (
			update(UserHack)
			.where(UserHack.user_id == user_id, UserHack.hack_id == hack_id)
			.values(**update_values)
			.execution_options(synchronize_session=False)
		)

		async with self.session_factory() as session:
			result = await session.execute(statement)
			if result.rowcount == 0:
				session.add(UserHack(user_id=user_id, hack_id=hack_id, **insert_values))
				try:
					await session.commit()
				except IntegrityError:
					# Lost an insert race; the row exists now
					logger.debug(f"Insert race on user_hacks ({user_id}, {hack_id}), retrying as update")
					await session.rollback()
					await session.execute(statement)
					await session.commit()
			else:
				await session.commit()

			row = await self._get_user_hack(session, user_id, hack_id)
			return _hack_from_row(row)

	# ------------------------------------------------------------------
	# Level writes
	# ------------------------------------------------------------------

	async def recompute_level_progress(self, user_id: str, level_id: str) -> LevelProgress:
		"""
		Recount completed required hacks of a level and rewrite the user_levels row

		``completed_at`` is set once the count reaches the level's
		required_hacks_count and kept afterwards. Concurrent recomputations of
		the same (user, level) run one at a time.

		Raises:
			DoesNotExistError: If the level is not in the catalog
		"""
		async with _recompute_lock(user_id, level_id):
			try:
				return await self._recompute_once(user_id, level_id)
			except IntegrityError:
				logger.debug(f"Insert race on user_levels ({user_id}, {level_id}), retrying as update")
				return await self._recompute_once(user_id, level_id)

	async def _recompute_once(self, user_id: str, level_id: str) -> LevelProgress:
		async with self.session_factory() as session:
			level = await session.get(CurriculumLevel, level_id)
			if level is None:
				raise DoesNotExistError(f"Level {level_id} not found")

			count_result = await session.execute(
				select(func.count(UserHack.id))
				.join(CurriculumHack, CurriculumHack.id == UserHack.hack_id)
				.where(
					UserHack.user_id == user_id,
					CurriculumHack.level_id == level_id,
					CurriculumHack.is_required.is_(True),
					UserHack.completed_at.is_not(None),
				)
			)
			completed_count = count_result.scalar_one()

			result = await session.execute(
				select(UserLevel).where(UserLevel.user_id == user_id, UserLevel.level_id == level_id)
			)
			row = result.scalar_one_or_none()
			now = utc_now()
			reached = completed_count >= level.required_hacks_count
			unchanged = (
				row is not None
				and row.hacks_completed == completed_count
				and row.total_required_hacks == level.required_hacks_count
				and (row.completed_at is not None or not reached)
			)

			if not unchanged:
				if row is None:
					row = UserLevel(user_id=user_id, level_id=level_id)
					session.add(row)
				row.hacks_completed = completed_count
				row.total_required_hacks = level.required_hacks_count
				if row.completed_at is None and reached:
					row.completed_at = now
				row.updated_at = now
				await session.commit()

			progress = _level_from_row(row)

		logger.debug(
			f"Recomputed level {level_id} for {user_id}: "
			f"{progress.hacks_completed_count}/{progress.total_required_hacks}"
		)
		return progress

	# ------------------------------------------------------------------
	# Check writes
	# ------------------------------------------------------------------

	async def set_check_completed(self, user_id: str, check_id: str, completed: bool) -> HackCheckProgress:
		"""
		Check or un-check a checklist item

		Checking an already checked item keeps its original timestamp.

		Raises:
			DoesNotExistError: If the check is not in the catalog
		"""
		hack_id = await self.get_check_hack_id(check_id)
		if hack_id is None:
			raise DoesNotExistError(f"Hack check {check_id} not found")

		try:
			completed_at = await self._write_check_once(user_id, check_id, completed)
		except IntegrityError:
			completed_at = await self._write_check_once(user_id, check_id, completed)
		return HackCheckProgress(check_id=check_id, hack_id=hack_id, completed_at=completed_at)

	async def _write_check_once(self, user_id: str, check_id: str, completed: bool):
		async with self.session_factory() as session:
			row = await self._get_user_check(session, user_id, check_id)
			if row is None:
				row = UserHackCheck(user_id=user_id, hack_check_id=check_id)
				session.add(row)
			if not completed:
				row.completed_at = None
			elif row.completed_at is None:
				row.completed_at = utc_now()
			await session.commit()
			return ensure_utc(row.completed_at)

	async def insert_check_if_missing(self, user_id: str, check_id: str, completed_at=None) -> bool:
		"""
		Insert a completed check row unless the user already has one

		An existing row is never modified, whatever its state.

		Returns:
			bool: True if a row was inserted
		"""
		async with self.session_factory() as session:
			if await self._get_user_check(session, user_id, check_id) is not None:
				return False
			session.add(UserHackCheck(
				user_id=user_id,
				hack_check_id=check_id,
				completed_at=completed_at or utc_now(),
			))
			try:
				await session.commit()
			except IntegrityError:
				# Inserted concurrently; the other row wins
				await session.rollback()
				return False
			return True

	# ------------------------------------------------------------------
	# Helpers
	# ------------------------------------------------------------------

	async def _get_user_hack(self, session: AsyncSession, user_id: str, hack_id: str) -> Optional[UserHack]:
		result = await session.execute(
			select(UserHack).where(UserHack.user_id == user_id, UserHack.hack_id == hack_id)
		)
		return result.scalar_one_or_none()

	async def _get_user_check(self, session: AsyncSession, user_id: str, check_id: str) -> Optional[UserHackCheck]:
		result = await session.execute(
			select(UserHackCheck).where(
				UserHackCheck.user_id == user_id, UserHackCheck.hack_check_id == check_id
			)
		)
		return result.scalar_one_or_none()


def _hack_from_row(row: UserHack, level_id: Optional[str] = None) -> HackProgress:
	return HackProgress(
		hack_id=row.hack_id,
		view_count=row.view_count or 0,
		completed_at=ensure_utc(row.completed_at),
		last_viewed_at=ensure_utc(row.viewed_at),
		level_id=level_id,
	)


def _level_from_row(row: UserLevel) -> LevelProgress:
	return LevelProgress(
		level_id=row.level_id,
		hacks_completed_count=row.hacks_completed or 0,
		total_required_hacks=row.total_required_hacks or 0,
		completed_at=ensure_utc(row.completed_at),
		last_updated_at=ensure_utc(row.updated_at),
	)
