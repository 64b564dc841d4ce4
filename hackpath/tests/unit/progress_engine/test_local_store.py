"""Unit tests for the Redis-backed local progress store."""

import json
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest
import redis

from hackpath.services.progress_engine.local_store import LocalProgressStore, VersionedContainer
from hackpath.services.progress_engine.records import LevelProgress
from hackpath.services.progress_engine.unlock_calculator import evaluate, find_level_node

KEY = "test:local_progress:visitor-1"


def test_empty_store_reads_as_empty(local_store):
	assert local_store.get_hack_progress("A") is None
	assert local_store.get_level_progress("foundation") is None
	assert local_store.get_check_progress("A") == frozenset()
	assert local_store.has_progress() is False


def test_mark_hack_viewed_increments(local_store):
	local_store.mark_hack_viewed("A")
	progress = local_store.mark_hack_viewed("A")

	assert progress.view_count == 2
	assert progress.last_viewed_at is not None
	assert local_store.get_hack_progress("A").view_count == 2
	assert local_store.is_hack_completed("A") is False


def test_mark_hack_completed_is_set_once(local_store):
	first = local_store.mark_hack_completed("A", "foundation", ["A", "B"])
	second = local_store.mark_hack_completed("A", "foundation", ["A", "B"])

	assert first.completed_at is not None
	assert second.completed_at == first.completed_at
	assert local_store.is_hack_completed("A") is True


def test_completion_counts_as_a_view(local_store):
	progress = local_store.mark_hack_completed("A", "foundation")
	assert progress.view_count == 1


def test_completion_keeps_prior_views(local_store):
	local_store.mark_hack_viewed("A")
	local_store.mark_hack_viewed("A")
	progress = local_store.mark_hack_completed("A", "foundation")
	assert progress.view_count == 2


def test_completion_recounts_level(local_store):
	local_store.mark_hack_completed("A", "foundation", ["A", "B"])
	level = local_store.get_level_progress("foundation")
	assert level.hacks_completed_count == 1
	assert level.total_required_hacks == 2
	assert level.completed_at is None

	local_store.mark_hack_completed("B", "foundation", ["A", "B"])
	level = local_store.get_level_progress("foundation")
	assert level.hacks_completed_count == 2
	assert level.completed_at is not None


def test_optional_hack_not_counted(local_store):
	local_store.mark_hack_completed("E", "intermediate", ["C", "D"])
	assert local_store.get_level_progress("intermediate").hacks_completed_count == 0


def test_update_level_progress_without_required_list(local_store):
	local_store.mark_hack_completed("A", "foundation", ["A", "B"])
	local_store.mark_hack_completed("B", "foundation")

	level = local_store.update_level_progress("foundation")
	assert level.hacks_completed_count == 2
	assert level.total_required_hacks == 2


def test_optional_hack_never_completes_level_without_required_list(local_store, graph):
	"""Completions of unknown required status are not counted."""
	local_store.mark_hack_completed("C", "intermediate")
	local_store.mark_hack_completed("E", "intermediate")

	assert local_store.get_level_progress("intermediate").hacks_completed_count == 0

	snapshot = local_store.get_all_local_progress()
	foundation_done = LevelProgress(level_id="foundation", hacks_completed_count=2)
	snapshot = replace(snapshot, levels={**snapshot.levels, "foundation": foundation_done})
	intermediate = find_level_node(evaluate(graph, snapshot), "intermediate")
	assert intermediate.is_locked is False
	assert intermediate.is_completed is False
	assert intermediate.progress_percentage == 0


def test_required_list_is_remembered_for_later_recounts(local_store):
	local_store.update_level_progress("intermediate", ["C", "D"])
	local_store.mark_hack_completed("E", "intermediate")
	local_store.mark_hack_completed("C", "intermediate")

	level = local_store.get_level_progress("intermediate")
	assert level.hacks_completed_count == 1
	assert level.total_required_hacks == 2
	assert level.completed_at is None


def test_check_toggle(local_store):
	local_store.set_check_completed("A", "A-check-1", True)
	local_store.set_check_completed("A", "A-check-2", True)
	assert local_store.get_check_progress("A") == frozenset({"A-check-1", "A-check-2"})

	state = local_store.set_check_completed("A", "A-check-1", False)
	assert state.is_completed is False
	assert local_store.get_check_progress("A") == frozenset({"A-check-2"})

	local_store.set_check_completed("A", "A-check-2", False)
	assert local_store.get_all_check_progress() == {}


def test_checks_do_not_complete_hack(local_store):
	local_store.set_check_completed("A", "A-check-1", True)
	assert local_store.is_hack_completed("A") is False
	assert local_store.has_progress() is True


def test_get_all_local_progress_exports_everything(local_store):
	local_store.mark_hack_viewed("A")
	local_store.mark_hack_completed("B", "foundation", ["A", "B"])
	local_store.set_check_completed("A", "A-check-1", True)

	snapshot = local_store.get_all_local_progress()
	assert set(snapshot.hacks) == {"A", "B"}
	assert snapshot.hacks["B"].level_id == "foundation"
	assert snapshot.levels["foundation"].hacks_completed_count == 1
	assert snapshot.checks == {"A": frozenset({"A-check-1"})}


def test_summary(local_store):
	local_store.mark_hack_viewed("A")
	local_store.mark_hack_completed("A", "foundation", ["A", "B"])
	local_store.mark_hack_completed("B", "foundation", ["A", "B"])
	local_store.set_check_completed("A", "A-check-1", True)

	summary = local_store.get_local_progress_summary()
	assert summary == {
		"completed_hacks": 2,
		"total_hacks_viewed": 2,
		"completed_levels": 1,
		"total_levels_started": 1,
		"total_hacks_with_check_progress": 1,
		"total_checks_completed": 1,
		"has_progress": True,
	}


def test_clear_removes_container(local_store, redis_client):
	local_store.mark_hack_viewed("A")
	assert redis_client.exists(KEY) == 1

	assert local_store.clear() is True
	assert redis_client.exists(KEY) == 0
	assert local_store.has_progress() is False


def test_container_is_versioned_json(local_store, redis_client):
	local_store.mark_hack_viewed("A")
	data = json.loads(redis_client.get(KEY))
	assert data["version"] == 1
	assert set(data) == {"version", "hacks", "levels", "hack_checks"}


def test_version_mismatch_reads_as_empty(redis_client):
	redis_client.set(KEY, json.dumps({
		"version": 0,
		"hacks": {"A": {"view_count": 4, "completed_at": "2026-01-01T00:00:00+00:00"}},
		"levels": {},
		"hack_checks": {},
	}))
	store = LocalProgressStore(redis_client, "visitor-1", namespace="test")

	assert store.get_hack_progress("A") is None
	# First write replaces the stale container
	store.mark_hack_viewed("A")
	assert store.get_hack_progress("A").view_count == 1
	assert json.loads(redis_client.get(KEY))["version"] == 1


@pytest.mark.parametrize("payload", ["{not json", "[1, 2, 3]", "42", "null"])
def test_malformed_container_reads_as_empty(redis_client, payload):
	redis_client.set(KEY, payload)
	store = LocalProgressStore(redis_client, "visitor-1", namespace="test")

	assert store.get_all_local_progress().has_progress is False
	assert store.mark_hack_viewed("A").view_count == 1


def test_malformed_entries_are_skipped(redis_client):
	redis_client.set(KEY, json.dumps({
		"version": 1,
		"hacks": {"A": {"view_count": "lots"}, "B": {"view_count": 2}, "C": "junk"},
		"levels": {"foundation": []},
		"hack_checks": {"A": "A-check-1", "B": ["B-check-1", 7]},
	}))
	store = LocalProgressStore(redis_client, "visitor-1", namespace="test")
	snapshot = store.get_all_local_progress()

	assert set(snapshot.hacks) == {"B"}
	assert snapshot.levels == {}
	assert snapshot.checks == {"B": frozenset({"B-check-1"})}


def test_redis_read_failure_degrades_to_empty():
	client = MagicMock()
	client.get.side_effect = redis.ConnectionError("down")
	store = LocalProgressStore(client, "visitor-1", namespace="test")

	assert store.get_hack_progress("A") is None
	assert store.has_progress() is False


def test_write_after_failed_read_keeps_stored_progress(local_store, redis_client):
	local_store.mark_hack_completed("A", "foundation", ["A", "B"])

	with patch.object(redis_client, "get", side_effect=redis.ConnectionError("blip")):
		local_store.mark_hack_viewed("B")

	assert local_store.is_hack_completed("A") is True
	assert local_store.get_hack_progress("B") is None
	assert local_store.get_level_progress("foundation").hacks_completed_count == 1


def test_explicit_zero_version_is_rejected(redis_client):
	with pytest.raises(ValueError):
		LocalProgressStore(redis_client, "visitor-1", namespace="test", version=0)


def test_redis_write_failure_is_swallowed():
	client = MagicMock()
	client.get.return_value = None
	client.set.side_effect = redis.ConnectionError("down")
	client.delete.side_effect = redis.ConnectionError("down")
	store = LocalProgressStore(client, "visitor-1", namespace="test")

	progress = store.mark_hack_viewed("A")
	assert progress.view_count == 1
	assert store.clear() is False


def test_versioned_container_update_returns_mutation_result(redis_client):
	container = VersionedContainer(redis_client, "test:container", 3, lambda: {"items": []})

	size = container.update(lambda data: data["items"].append("x") or len(data["items"]))
	assert size == 1
	assert container.load() == {"items": ["x"], "version": 3}


def test_visitors_are_isolated(redis_client):
	first = LocalProgressStore(redis_client, "visitor-1", namespace="test")
	second = LocalProgressStore(redis_client, "visitor-2", namespace="test")

	first.mark_hack_completed("A", "foundation")
	assert second.get_hack_progress("A") is None
