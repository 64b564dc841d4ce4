"""
Routines API - Anonymous routine player progress.

Thin wrappers over LocalRoutineProgressStore returning JSON-ready dicts for
the routine player of visitors without an account.
"""

from typing import Any, Dict, Optional

from hackpath.exceptions import ValidationError
from hackpath.services.progress_engine.routine_progress import LocalRoutineProgressStore, RoutineProgress


def _to_response(progress: Optional[RoutineProgress]) -> Optional[Dict[str, Any]]:
	if progress is None:
		return None
	data = progress.to_dict()
	data["routine_id"] = progress.routine_id
	return data


def _require_routine_id(routine_id: str) -> None:
	if not routine_id or not isinstance(routine_id, str):
		raise ValidationError("Routine ID is required")


def get_routine_progress(store: LocalRoutineProgressStore, routine_id: str) -> Optional[Dict[str, Any]]:
	_require_routine_id(routine_id)
	return _to_response(store.get_progress(routine_id))


def update_position(store: LocalRoutineProgressStore, routine_id: str, position: int, total_hacks: int) -> Dict[str, Any]:
	"""Move the player within a routine.

	Raises:
		ValidationError: If position or total_hacks are negative
	"""
	_require_routine_id(routine_id)
	if position < 0 or total_hacks < 0:
		raise ValidationError("Position and total hacks must be non-negative")
	return _to_response(store.update_position(routine_id, position, total_hacks))


def mark_hack_complete(store: LocalRoutineProgressStore, routine_id: str, hack_id: str) -> Dict[str, Any]:
	_require_routine_id(routine_id)
	if not hack_id:
		raise ValidationError("Hack ID is required")
	return _to_response(store.mark_hack_complete(routine_id, hack_id))


def toggle_autoplay(store: LocalRoutineProgressStore, routine_id: str, enabled: bool) -> Dict[str, Any]:
	_require_routine_id(routine_id)
	return _to_response(store.toggle_autoplay(routine_id, bool(enabled)))


def clear_routine_progress(store: LocalRoutineProgressStore, routine_id: str) -> Dict[str, Any]:
	_require_routine_id(routine_id)
	return {"routine_id": routine_id, "cleared": store.clear_progress(routine_id)}


def list_routine_progress(store: LocalRoutineProgressStore) -> Dict[str, Any]:
	"""List every routine the visitor has started.

	Returns:
		Dictionary with keys:
			- routines: Routine progress dicts, most recently played first
			- count: Number of routines stored
			- max_routines: Cap before the least recently played is dropped
	"""
	routines = sorted(
		store.get_all_progress().values(),
		key=lambda p: p.last_played_at.timestamp() if p.last_played_at else 0.0,
		reverse=True,
	)
	return {
		"routines": [_to_response(p) for p in routines],
		"count": len(routines),
		"max_routines": store.records.cap,
	}


def clear_all_routine_progress(store: LocalRoutineProgressStore) -> Dict[str, Any]:
	return {"cleared": store.clear_all()}
