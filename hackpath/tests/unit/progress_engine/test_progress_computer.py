"""Unit tests for progress_computer.py"""

from hackpath.services.progress_engine.progress_computer import compute_progress, find_next_hack
from hackpath.services.progress_engine.records import ProgressSnapshot
from hackpath.services.progress_engine.unlock_calculator import evaluate
from hackpath.tests.utils import make_snapshot


def test_compute_progress_empty_snapshot(graph):
	result = compute_progress(graph, ProgressSnapshot.empty())

	assert result["completion_percentage"] == 0
	assert result["total_required_hacks"] == 4
	assert result["completed_required_hacks"] == 0
	assert result["completed_hacks"] == 0
	assert result["suggested_next_hack_id"] == "A"
	assert result["unlocked_level_ids"] == ["foundation"]
	assert result["completed_level_ids"] == []


def test_compute_progress_after_foundation(graph):
	snapshot = make_snapshot(completed=["A", "B", "E"], level_counts={"foundation": 2})
	result = compute_progress(graph, snapshot)

	assert result["completed_required_hacks"] == 2
	assert result["completed_hacks"] == 3
	assert result["completion_percentage"] == 50
	assert result["suggested_next_hack_id"] == "C"
	assert result["unlocked_level_ids"] == ["foundation", "intermediate"]
	assert result["completed_level_ids"] == ["foundation"]


def test_find_next_hack_skips_locked_hacks(graph):
	snapshot = make_snapshot(completed=["A"], level_counts={"foundation": 1})
	assert find_next_hack(evaluate(graph, snapshot)) == "B"


def test_find_next_hack_falls_back_to_optional(graph):
	snapshot = make_snapshot(
		completed=["A", "B", "C", "D"],
		level_counts={"foundation": 2, "intermediate": 2},
	)
	assert find_next_hack(evaluate(graph, snapshot)) == "E"


def test_find_next_hack_none_when_everything_done(graph):
	snapshot = make_snapshot(
		completed=["A", "B", "C", "D", "E"],
		level_counts={"foundation": 2, "intermediate": 2},
	)
	assert find_next_hack(evaluate(graph, snapshot)) is None
