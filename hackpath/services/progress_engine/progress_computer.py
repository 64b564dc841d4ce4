"""Progress computer for progress engine.

This module orchestrates computation of the progression view by combining:
1. Curriculum graph
2. Progress snapshot of the active store (local or server)
3. Unlock state calculation
4. Next hack suggestion
5. Completion percentage calculation
"""

import logging
from typing import Any, Dict, List, Optional

from hackpath.services.progress_engine.graph_model import GraphModel
from hackpath.services.progress_engine.records import ProgressSnapshot
from hackpath.services.progress_engine.unlock_calculator import (
	LevelNode,
	compute_progress_percentage,
	evaluate,
	flatten_hack_nodes,
)

logger = logging.getLogger(__name__)


def compute_progress(graph: GraphModel, snapshot: ProgressSnapshot) -> Dict[str, Any]:
	"""Compute the full progression view.

	Args:
		graph: Curriculum graph
		snapshot: Progress of the viewer

	Returns:
		Dictionary containing:
		- tree: Evaluated level nodes
		- completion_percentage: Required hacks completed across all levels (0-100)
		- total_required_hacks: Number of required hacks in the curriculum
		- completed_required_hacks: Number of those completed
		- completed_hacks: Number of completed hacks, optional ones included
		- suggested_next_hack_id: Next unlocked, incomplete required hack or None
		- unlocked_level_ids: Levels currently unlocked
		- completed_level_ids: Levels currently completed
	"""
	tree = evaluate(graph, snapshot)
	hack_nodes = flatten_hack_nodes(tree)

	required_nodes = [node for node in hack_nodes if node.hack.is_required]
	total_required = len(required_nodes)
	completed_required = sum(1 for node in required_nodes if node.is_completed)
	completion_percentage = compute_progress_percentage(completed_required, total_required)
	suggested_next_hack_id = find_next_hack(tree)

	logger.info(
		f"Progress computed: required={completed_required}/{total_required} "
		f"({completion_percentage}%), next={suggested_next_hack_id}"
	)

	return {
		"tree": tree,
		"completion_percentage": completion_percentage,
		"total_required_hacks": total_required,
		"completed_required_hacks": completed_required,
		"completed_hacks": sum(1 for node in hack_nodes if node.is_completed),
		"suggested_next_hack_id": suggested_next_hack_id,
		"unlocked_level_ids": [node.level.id for node in tree if not node.is_locked],
		"completed_level_ids": [node.level.id for node in tree if node.is_completed],
	}


def find_next_hack(tree: List[LevelNode]) -> Optional[str]:
	"""Find the next hack to work on.

	Returns the first unlocked, incomplete required hack walking levels and
	hacks in position order. Falls back to the first unlocked, incomplete
	optional hack.

	Args:
		tree: Evaluated level nodes

	Returns:
		Hack ID or None if nothing is available
	"""
	fallback = None
	for level_node in tree:
		if level_node.is_locked:
			continue
		for hack_node in level_node.hacks:
			if not hack_node.is_unlocked or hack_node.is_completed:
				continue
			if hack_node.hack.is_required:
				return hack_node.hack.id
			if fallback is None:
				fallback = hack_node.hack.id
	return fallback
