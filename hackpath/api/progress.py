"""
Progress API - Level tree, hack completion and sign-in migration.

This module provides the request-level operations for:
- Retrieving the level tree with lock/completion states
- Recording hack views, hack completions and check toggles
- Merging anonymous progress into an account on sign-in

Anonymous visitors are served from their LocalProgressStore, signed-in users
from the ServerProgressStore. Callers re-fetch the tree after any mutation.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hackpath.exceptions import DoesNotExistError, ValidationError
from hackpath.services.progress_engine import graph_model
from hackpath.services.progress_engine.graph_model import GraphModel
from hackpath.services.progress_engine.local_store import LocalProgressStore
from hackpath.services.progress_engine.migration import MigrationEngine, MigrationResult, MigrationState
from hackpath.services.progress_engine.progress_computer import compute_progress
from hackpath.services.progress_engine.records import ProgressSnapshot, format_timestamp
from hackpath.services.progress_engine.server_store import ServerProgressStore
from hackpath.services.progress_engine.unlock_calculator import (
	evaluate,
	find_hack_node,
	find_level_node,
	tree_to_dict,
)

logger = logging.getLogger(__name__)


@dataclass
class ProgressContext:
	"""Stores and identity of one request. Built per request, never shared."""

	session_factory: async_sessionmaker[AsyncSession]
	local_store: Optional[LocalProgressStore] = None
	user_id: Optional[str] = None
	_graph: Optional[GraphModel] = field(default=None, init=False, repr=False)

	@property
	def is_authenticated(self) -> bool:
		return self.user_id is not None

	@property
	def server_store(self) -> ServerProgressStore:
		return ServerProgressStore(self.session_factory)

	async def graph(self) -> GraphModel:
		"""Curriculum graph, loaded once per context."""
		if self._graph is None:
			async with self.session_factory() as session:
				self._graph = await graph_model.load_graph(session)
		return self._graph

	async def snapshot(self) -> ProgressSnapshot:
		if self.is_authenticated:
			return await self.server_store.snapshot(self.user_id)
		if self.local_store is not None:
			return self.local_store.get_all_local_progress()
		return ProgressSnapshot.empty()


def _require_writable(ctx: ProgressContext) -> None:
	if not ctx.is_authenticated and ctx.local_store is None:
		raise ValidationError("No progress store available for this visitor")


async def get_level_tree(ctx: ProgressContext) -> List[Dict[str, Any]]:
	"""Get the level tree of the current viewer.

	Returns:
		List of level dicts with lock/completion state and nested hacks
	"""
	graph = await ctx.graph()
	return tree_to_dict(evaluate(graph, await ctx.snapshot()))


async def get_level(ctx: ProgressContext, slug: str) -> Dict[str, Any]:
	"""Get one level of the tree by slug.

	Raises:
		DoesNotExistError: If no level has this slug
	"""
	graph = await ctx.graph()
	level = graph_model.find_level_by_slug(graph, slug)
	if level is None:
		raise DoesNotExistError(f"Level {slug} not found")
	node = find_level_node(evaluate(graph, await ctx.snapshot()), level.id)
	return tree_to_dict([node])[0]


async def get_progress_overview(ctx: ProgressContext) -> Dict[str, Any]:
	"""Get the full progression view.

	Returns:
		Dictionary with keys:
			- tree: Serialized level tree
			- completion_percentage: Required hacks completed overall (0-100)
			- total_required_hacks / completed_required_hacks / completed_hacks
			- suggested_next_hack_id: Next hack to work on, or None
			- unlocked_level_ids / completed_level_ids
			- is_authenticated: Whether the view comes from the account
	"""
	result = compute_progress(await ctx.graph(), await ctx.snapshot())
	result["tree"] = tree_to_dict(result["tree"])
	result["is_authenticated"] = ctx.is_authenticated
	return result


async def _unlocked_hack(ctx: ProgressContext, hack_id: str):
	graph = await ctx.graph()
	hack = graph.hack(hack_id)
	node = find_hack_node(evaluate(graph, await ctx.snapshot()), hack_id)
	if node is None or not node.is_unlocked:
		raise ValidationError(f"Hack {hack_id} is locked")
	return graph, hack


async def view_hack(ctx: ProgressContext, hack_id: str) -> Dict[str, Any]:
	"""Record a view of an unlocked hack.

	Raises:
		DoesNotExistError: If the hack is not in the curriculum
		ValidationError: If the hack is locked
	"""
	_require_writable(ctx)
	await _unlocked_hack(ctx, hack_id)

	if ctx.is_authenticated:
		progress = await ctx.server_store.mark_hack_viewed(ctx.user_id, hack_id)
	else:
		progress = ctx.local_store.mark_hack_viewed(hack_id)

	return {
		"hack_id": hack_id,
		"view_count": progress.view_count,
		"last_viewed_at": format_timestamp(progress.last_viewed_at),
	}


async def complete_hack(ctx: ProgressContext, hack_id: str) -> Dict[str, Any]:
	"""Mark an unlocked hack as completed and update its level.

	Completing an already completed hack keeps the first completion time.

	Returns:
		Dictionary with keys:
			- hack_id, completed_at
			- level_id, level_completed, progress_percentage
			- suggested_next_hack_id

	Raises:
		DoesNotExistError: If the hack is not in the curriculum
		ValidationError: If the hack is locked
	"""
	_require_writable(ctx)
	graph, hack = await _unlocked_hack(ctx, hack_id)

	if ctx.is_authenticated:
		progress, _level_progress = await ctx.server_store.mark_hack_completed(ctx.user_id, hack_id)
	else:
		progress = ctx.local_store.mark_hack_completed(
			hack_id, hack.level_id, graph.required_hack_ids(hack.level_id)
		)

	view = compute_progress(graph, await ctx.snapshot())
	level_node = find_level_node(view["tree"], hack.level_id)

	logger.info(
		f"Hack {hack_id} completed by {ctx.user_id or 'anonymous visitor'}, "
		f"level {hack.level_id} at {level_node.progress_percentage}%"
	)
	return {
		"hack_id": hack_id,
		"completed_at": format_timestamp(progress.completed_at),
		"level_id": hack.level_id,
		"level_completed": level_node.is_completed,
		"progress_percentage": level_node.progress_percentage,
		"suggested_next_hack_id": view["suggested_next_hack_id"],
	}


async def set_check_completed(ctx: ProgressContext, check_id: str, completed: bool) -> Dict[str, Any]:
	"""Check or un-check a checklist item of a hack.

	Check state is independent of hack completion.

	Raises:
		DoesNotExistError: If the check is not in the curriculum
	"""
	_require_writable(ctx)
	graph = await ctx.graph()
	check = graph.checks.get(check_id)
	if check is None:
		raise DoesNotExistError(f"Hack check {check_id} not found")

	if ctx.is_authenticated:
		await ctx.server_store.set_check_completed(ctx.user_id, check_id, completed)
		completed_ids = await ctx.server_store.get_check_progress(ctx.user_id, check.hack_id)
	else:
		ctx.local_store.set_check_completed(check.hack_id, check_id, completed)
		completed_ids = ctx.local_store.get_check_progress(check.hack_id)

	required_ids = {c.id for c in graph.checks_for_hack(check.hack_id) if c.is_required}
	return {
		"check_id": check_id,
		"hack_id": check.hack_id,
		"completed": check_id in completed_ids,
		"completed_check_ids": sorted(completed_ids),
		"is_fully_checked": required_ids.issubset(completed_ids),
	}


async def sign_in(
	ctx: ProgressContext,
	user_id: str,
	engine: Optional[MigrationEngine] = None,
) -> Dict[str, Any]:
	"""Attach an account to the context and merge local progress into it.

	Called once per sign-in event, right after the session is established.

	Args:
		ctx: Request context; ``user_id`` is set on it
		user_id: Account that signed in
		engine: Migration engine to use (one is built from the context otherwise)

	Returns:
		MigrationResult as a dictionary
	"""
	if not user_id:
		raise ValidationError("User ID is required")

	ctx.user_id = user_id
	if ctx.local_store is None:
		return MigrationResult(user_id=user_id, state=MigrationState.SUCCEEDED, succeeded=True).to_dict()

	engine = engine or MigrationEngine(ctx.server_store, ctx.local_store)
	result = await engine.migrate_local_progress_to_user(user_id)
	return result.to_dict()
