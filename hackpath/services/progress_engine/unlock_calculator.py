"""Unlock calculator for progress engine.

This module computes lock/completion states for every level and hack in a
curriculum graph from a progress snapshot. It performs two passes:
1. Levels: completion from the level's completed required hack count
2. Levels and hacks: lock state from direct prerequisite completion

Evaluation only reads direct prerequisite edges. A level's completion is
already a summary of its ancestors, so no transitive walk is needed. The
result is a fresh tree of frozen nodes; inputs are never mutated.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from hackpath.services.progress_engine.graph_model import GraphModel, Hack, Level
from hackpath.services.progress_engine.records import ProgressSnapshot, format_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HackNode:
	"""Evaluated state of one hack."""

	hack: Hack
	is_unlocked: bool
	is_completed: bool
	view_count: int
	completed_at: Optional[datetime] = None
	prerequisites: Tuple[str, ...] = ()
	missing_prerequisites: Tuple[str, ...] = ()
	completed_check_ids: FrozenSet[str] = frozenset()
	is_fully_checked: bool = False


@dataclass(frozen=True)
class LevelNode:
	"""Evaluated state of one level and its hacks."""

	level: Level
	is_locked: bool
	is_completed: bool
	progress_percentage: int
	hacks: Tuple[HackNode, ...]
	hacks_completed_count: int = 0
	prerequisites: Tuple[str, ...] = ()
	children: Tuple[str, ...] = ()
	missing_prerequisites: Tuple[str, ...] = ()


def evaluate(graph: GraphModel, snapshot: ProgressSnapshot) -> List[LevelNode]:
	"""Compute lock and completion states for all levels and hacks.

	Args:
		graph: Curriculum graph
		snapshot: Progress of the viewer (local or server)

	Returns:
		Level nodes ordered by position, each carrying its hack nodes
	"""
	logger.debug(f"Evaluating {len(graph.levels)} levels against snapshot with {len(snapshot.hacks)} hacks")

	completed_levels = _phase1_compute_level_completion(graph, snapshot)

	tree = [
		_phase2_build_level_node(graph, snapshot, level, completed_levels)
		for level in graph.ordered_levels()
	]

	logger.debug("Level states computed successfully")
	return tree


def _phase1_compute_level_completion(graph: GraphModel, snapshot: ProgressSnapshot) -> Dict[str, bool]:
	"""Phase 1: completion of every level, independent of lock state."""
	return {
		level.id: is_level_completed(level, snapshot.hacks_completed_count(level.id))
		for level in graph.levels.values()
	}


def _phase2_build_level_node(
	graph: GraphModel,
	snapshot: ProgressSnapshot,
	level: Level,
	completed_levels: Dict[str, bool],
) -> LevelNode:
	"""Phase 2: lock state from direct prerequisites, then the level's hacks."""
	prerequisites = tuple(sorted(graph.level_prerequisites.get(level.id, ())))
	missing = tuple(p for p in prerequisites if not completed_levels.get(p, False))
	is_locked = len(missing) > 0

	hacks_completed_count = snapshot.hacks_completed_count(level.id)

	hack_nodes = tuple(
		_build_hack_node(graph, snapshot, hack, level_unlocked=not is_locked)
		for hack in graph.hacks_in_level(level.id)
	)

	return LevelNode(
		level=level,
		is_locked=is_locked,
		is_completed=completed_levels[level.id],
		progress_percentage=compute_progress_percentage(hacks_completed_count, level.required_hacks_count),
		hacks=hack_nodes,
		hacks_completed_count=hacks_completed_count,
		prerequisites=prerequisites,
		children=tuple(graph.dependents_of(level.id)),
		missing_prerequisites=missing,
	)


def _build_hack_node(graph: GraphModel, snapshot: ProgressSnapshot, hack: Hack, level_unlocked: bool) -> HackNode:
	prerequisites = tuple(sorted(graph.hack_prerequisites.get(hack.id, ())))
	# Cross-level prerequisites count on their own completion only.
	missing = tuple(p for p in prerequisites if not snapshot.is_hack_completed(p))
	progress = snapshot.hack(hack.id)
	completed_checks = snapshot.completed_checks(hack.id)

	return HackNode(
		hack=hack,
		is_unlocked=is_hack_unlocked(level_unlocked, prerequisites, snapshot),
		is_completed=progress is not None and progress.is_completed,
		view_count=progress.view_count if progress else 0,
		completed_at=progress.completed_at if progress else None,
		prerequisites=prerequisites,
		missing_prerequisites=missing,
		completed_check_ids=frozenset(completed_checks),
		is_fully_checked=is_hack_fully_checked(graph, hack.id, completed_checks),
	)


def is_level_completed(level: Level, hacks_completed_count: int) -> bool:
	"""A level is completed once its required hack count is reached.

	Optional hacks never gate completion.
	"""
	return hacks_completed_count >= level.required_hacks_count


def is_level_unlocked(graph: GraphModel, snapshot: ProgressSnapshot, level_id: str) -> bool:
	"""Determine if a level is unlocked.

	A level with no prerequisites (the Foundation level) is always unlocked.
	Otherwise every direct prerequisite level must be completed.
	"""
	for prerequisite_id in graph.prerequisites_of(level_id):
		prerequisite = graph.level(prerequisite_id)
		if not is_level_completed(prerequisite, snapshot.hacks_completed_count(prerequisite_id)):
			return False
	return True


def is_hack_unlocked(level_unlocked: bool, prerequisite_hack_ids, snapshot: ProgressSnapshot) -> bool:
	"""Determine if a hack is unlocked.

	Args:
		level_unlocked: Whether the owning level is unlocked
		prerequisite_hack_ids: Direct prerequisite hack ids
		snapshot: Progress snapshot

	Returns:
		True when the level is unlocked and every prerequisite is completed
	"""
	if not level_unlocked:
		return False
	return all(snapshot.is_hack_completed(p) for p in prerequisite_hack_ids)


def is_hack_fully_checked(graph: GraphModel, hack_id: str, completed_check_ids) -> bool:
	"""All required checks of the hack are done. Independent of hack completion."""
	return all(
		check.id in completed_check_ids
		for check in graph.checks_for_hack(hack_id)
		if check.is_required
	)


def compute_progress_percentage(hacks_completed_count: int, required_hacks_count: int) -> int:
	"""Floor percentage of required hacks completed, clamped to 0..100.

	Returns 0 when the level has no required hacks.
	"""
	if required_hacks_count <= 0:
		return 0
	percentage = (max(0, hacks_completed_count) * 100) // required_hacks_count
	return min(100, percentage)


def flatten_hack_nodes(tree: List[LevelNode]) -> List[HackNode]:
	"""Flatten tree to a list of hack nodes in level then hack order."""
	return [hack_node for level_node in tree for hack_node in level_node.hacks]


def find_level_node(tree: List[LevelNode], level_id: str) -> Optional[LevelNode]:
	for level_node in tree:
		if level_node.level.id == level_id:
			return level_node
	return None


def find_hack_node(tree: List[LevelNode], hack_id: str) -> Optional[HackNode]:
	for hack_node in flatten_hack_nodes(tree):
		if hack_node.hack.id == hack_id:
			return hack_node
	return None


def tree_to_dict(tree: List[LevelNode]) -> List[Dict[str, Any]]:
	"""Serialize the tree to JSON-compatible dictionaries for presentation code."""
	return [
		{
			"level": {
				"id": node.level.id,
				"name": node.level.name,
				"slug": node.level.slug,
				"position": node.level.position,
				"required_hacks_count": node.level.required_hacks_count,
				"optional_hacks_count": node.level.optional_hacks_count,
			},
			"is_locked": node.is_locked,
			"is_completed": node.is_completed,
			"progress_percentage": node.progress_percentage,
			"hacks_completed_count": node.hacks_completed_count,
			"prerequisites": list(node.prerequisites),
			"children": list(node.children),
			"missing_prerequisites": list(node.missing_prerequisites),
			"hacks": [
				{
					"hack": {
						"id": hack_node.hack.id,
						"name": hack_node.hack.name,
						"slug": hack_node.hack.slug,
						"level_id": hack_node.hack.level_id,
						"position": hack_node.hack.position,
						"is_required": hack_node.hack.is_required,
					},
					"is_unlocked": hack_node.is_unlocked,
					"is_completed": hack_node.is_completed,
					"view_count": hack_node.view_count,
					"completed_at": format_timestamp(hack_node.completed_at),
					"prerequisites": list(hack_node.prerequisites),
					"missing_prerequisites": list(hack_node.missing_prerequisites),
					"completed_check_ids": sorted(hack_node.completed_check_ids),
					"is_fully_checked": hack_node.is_fully_checked,
				}
				for hack_node in node.hacks
			],
		}
		for node in tree
	]
