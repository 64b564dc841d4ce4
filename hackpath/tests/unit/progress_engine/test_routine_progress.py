"""Unit tests for anonymous routine progress."""

from unittest.mock import patch

import pytest

from hackpath.services.progress_engine.routine_progress import LocalRoutineProgressStore
from hackpath.tests.utils import ts

CLOCK = "hackpath.services.progress_engine.routine_progress.utc_now"


@pytest.fixture
def routines(redis_client):
	return LocalRoutineProgressStore(redis_client, "visitor-1", namespace="test")


def test_new_routine_defaults(routines):
	progress = routines.save_progress("morning")

	assert progress.current_position == 0
	assert progress.completed_hack_ids == []
	assert progress.progress == 0
	assert progress.autoplay_enabled is True
	assert progress.started_at is not None
	assert progress.started_at == progress.last_played_at


def test_get_progress_unknown_routine(routines):
	assert routines.get_progress("nope") is None


def test_update_position_floors_percentage(routines):
	progress = routines.update_position("morning", 1, 3)
	assert progress.current_position == 1
	assert progress.progress == 33

	assert routines.update_position("morning", 3, 3).progress == 100


def test_update_position_empty_routine(routines):
	assert routines.update_position("morning", 0, 0).progress == 0


def test_mark_hack_complete_is_idempotent(routines):
	routines.mark_hack_complete("morning", "A")
	routines.mark_hack_complete("morning", "B")
	progress = routines.mark_hack_complete("morning", "A")

	assert progress.completed_hack_ids == ["A", "B"]


def test_toggle_autoplay(routines):
	assert routines.toggle_autoplay("morning", False).autoplay_enabled is False
	assert routines.get_progress("morning").autoplay_enabled is False


def test_started_at_kept_across_saves(routines):
	with patch(CLOCK, return_value=ts(8)):
		routines.save_progress("morning")
	with patch(CLOCK, return_value=ts(9)):
		progress = routines.update_position("morning", 2, 4)

	assert progress.started_at == ts(8)
	assert progress.last_played_at == ts(9)


def test_cap_evicts_least_recently_played(routines):
	"""Default cap is three routines."""
	for hour, routine_id in [(1, "r1"), (2, "r2"), (3, "r3")]:
		with patch(CLOCK, return_value=ts(hour)):
			routines.save_progress(routine_id)

	# Replaying r1 makes r2 the least recently played
	with patch(CLOCK, return_value=ts(4)):
		routines.toggle_autoplay("r1", False)
	with patch(CLOCK, return_value=ts(5)):
		routines.save_progress("r4")

	assert set(routines.get_all_progress()) == {"r1", "r3", "r4"}
	assert routines.count() == 3


def test_custom_cap(redis_client):
	routines = LocalRoutineProgressStore(redis_client, "visitor-1", namespace="test", max_routines=1)
	with patch(CLOCK, return_value=ts(1)):
		routines.save_progress("r1")
	with patch(CLOCK, return_value=ts(2)):
		routines.save_progress("r2")

	assert set(routines.get_all_progress()) == {"r2"}


@pytest.mark.parametrize("overrides", [{"max_routines": 0}, {"version": 0}])
def test_explicit_zero_limits_are_rejected(redis_client, overrides):
	with pytest.raises(ValueError):
		LocalRoutineProgressStore(redis_client, "visitor-1", namespace="test", **overrides)


def test_clear_progress_and_clear_all(routines):
	routines.save_progress("r1")
	routines.save_progress("r2")

	assert routines.clear_progress("r1") is True
	assert routines.clear_progress("r1") is False
	assert routines.has_progress() is True

	assert routines.clear_all() is True
	assert routines.count() == 0
	assert routines.has_progress() is False
