"""
Debug level and hack unlocking for a curriculum file

Usage:
	python scripts/debug_progression.py curriculum.json [completed_hack_id ...]

Prints the evaluated tree for a viewer who completed the given hacks.
"""

import sys
import traceback

from hackpath.config import get_settings
from hackpath.services.progress_engine.graph_model import load_curriculum_file
from hackpath.services.progress_engine.progress_computer import compute_progress
from hackpath.services.progress_engine.records import HackProgress, LevelProgress, ProgressSnapshot, utc_now
from hackpath.utils.error_log import configure_logging


def build_snapshot(graph, completed_hack_ids):
	"""Snapshot where the given hacks are completed and level counts follow."""
	now = utc_now()
	hacks = {}
	counts = {}
	for hack_id in completed_hack_ids:
		hack = graph.hack(hack_id)
		hacks[hack_id] = HackProgress(hack_id=hack_id, view_count=1, completed_at=now, level_id=hack.level_id)
		if hack.is_required:
			counts[hack.level_id] = counts.get(hack.level_id, 0) + 1

	levels = {
		level_id: LevelProgress(
			level_id=level_id,
			hacks_completed_count=count,
			total_required_hacks=graph.level(level_id).required_hacks_count,
		)
		for level_id, count in counts.items()
	}
	return ProgressSnapshot(hacks=hacks, levels=levels)


def debug_progression(path, completed_hack_ids):
	print("=" * 70)
	print("PROGRESSION DEBUG")
	print("=" * 70)

	print(f"\n[1] Loading curriculum from {path}")
	try:
		graph = load_curriculum_file(path)
	except Exception as e:
		print(f"  FAILED: {e}")
		traceback.print_exc()
		return 1
	print(f"  Levels: {len(graph.levels)}, hacks: {len(graph.hacks)}")

	print(f"\n[2] Completed hacks: {completed_hack_ids or 'none'}")
	try:
		snapshot = build_snapshot(graph, completed_hack_ids)
	except Exception as e:
		print(f"  FAILED: {e}")
		return 1

	print("\n[3] Evaluated tree")
	print("-" * 70)
	overview = compute_progress(graph, snapshot)
	for node in overview["tree"]:
		status = "locked" if node.is_locked else ("completed" if node.is_completed else "open")
		print(f"  {node.level.id} [{status}] {node.progress_percentage}%")
		if node.missing_prerequisites:
			print(f"    waiting on: {', '.join(node.missing_prerequisites)}")
		for hack_node in node.hacks:
			mark = "x" if hack_node.is_completed else ("-" if hack_node.is_unlocked else " ")
			optional = "" if hack_node.hack.is_required else " (optional)"
			print(f"    [{mark}] {hack_node.hack.id}{optional}")

	print("\n" + "=" * 70)
	print(f"Overall: {overview['completed_required_hacks']}/{overview['total_required_hacks']} "
		f"({overview['completion_percentage']}%)")
	print(f"Suggested next hack: {overview['suggested_next_hack_id']}")
	print("=" * 70)
	return 0


if __name__ == "__main__":
	if len(sys.argv) < 2:
		print(__doc__)
		sys.exit(2)
	configure_logging(get_settings().log_level)
	sys.exit(debug_progression(sys.argv[1], sys.argv[2:]))
