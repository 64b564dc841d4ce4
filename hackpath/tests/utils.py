"""Shared test data and factories."""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from hackpath.db.models import (
	CurriculumHack,
	CurriculumHackCheck,
	CurriculumLevel,
	HackPrerequisite,
	LevelPrerequisite,
)
from hackpath.services.progress_engine.records import (
	HackProgress,
	LevelProgress,
	ProgressSnapshot,
)

# Foundation (A, B -> A) unlocks Intermediate (C, D -> C, optional E).
CURRICULUM = {
	"levels": [
		{"id": "foundation", "name": "Foundation", "slug": "foundation", "position": 0},
		{
			"id": "intermediate",
			"name": "Intermediate",
			"slug": "intermediate",
			"position": 1,
			"prerequisites": ["foundation"],
		},
	],
	"hacks": [
		{
			"id": "A",
			"name": "Hack A",
			"slug": "hack-a",
			"level_id": "foundation",
			"position": 0,
			"checks": [
				{"id": "A-check-1", "title": "Read the intro", "is_required": True},
				{"id": "A-check-2", "title": "Try the bonus", "is_required": False},
			],
		},
		{
			"id": "B",
			"name": "Hack B",
			"slug": "hack-b",
			"level_id": "foundation",
			"position": 1,
			"prerequisites": ["A"],
		},
		{"id": "C", "name": "Hack C", "slug": "hack-c", "level_id": "intermediate", "position": 0},
		{
			"id": "D",
			"name": "Hack D",
			"slug": "hack-d",
			"level_id": "intermediate",
			"position": 1,
			"prerequisites": ["C"],
		},
		{
			"id": "E",
			"name": "Hack E",
			"slug": "hack-e",
			"level_id": "intermediate",
			"position": 2,
			"is_required": False,
		},
	],
}


def curriculum() -> Dict[str, Any]:
	return copy.deepcopy(CURRICULUM)


def ts(hour: int, minute: int = 0) -> datetime:
	"""Fixed UTC timestamp on a reference day."""
	return datetime(2026, 1, 15, hour, minute, tzinfo=timezone.utc)


def make_snapshot(
	completed: Iterable[str] = (),
	views: Optional[Dict[str, int]] = None,
	level_counts: Optional[Dict[str, int]] = None,
	checks: Optional[Dict[str, Iterable[str]]] = None,
) -> ProgressSnapshot:
	"""Build a snapshot from hack ids, view counts and level counts."""
	views = views or {}
	completed = set(completed)
	hacks = {
		hack_id: HackProgress(
			hack_id=hack_id,
			view_count=views.get(hack_id, 1 if hack_id in completed else 0),
			completed_at=ts(10) if hack_id in completed else None,
		)
		for hack_id in completed | set(views)
	}
	levels = {
		level_id: LevelProgress(level_id=level_id, hacks_completed_count=count)
		for level_id, count in (level_counts or {}).items()
	}
	return ProgressSnapshot(
		hacks=hacks,
		levels=levels,
		checks={hack_id: frozenset(ids) for hack_id, ids in (checks or {}).items()},
	)


async def seed_curriculum(session_factory, data: Optional[Dict[str, Any]] = None) -> None:
	"""Insert a curriculum document into the catalog tables."""
	data = data or CURRICULUM
	required_counts: Dict[str, int] = {}
	optional_counts: Dict[str, int] = {}
	for hack in data["hacks"]:
		counts = required_counts if hack.get("is_required", True) else optional_counts
		counts[hack["level_id"]] = counts.get(hack["level_id"], 0) + 1

	async with session_factory() as session:
		for level in data["levels"]:
			session.add(CurriculumLevel(
				id=level["id"],
				name=level["name"],
				slug=level["slug"],
				position=level.get("position", 0),
				required_hacks_count=level.get("required_hacks_count", required_counts.get(level["id"], 0)),
				optional_hacks_count=level.get("optional_hacks_count", optional_counts.get(level["id"], 0)),
			))
		await session.flush()

		for hack in data["hacks"]:
			session.add(CurriculumHack(
				id=hack["id"],
				name=hack["name"],
				slug=hack["slug"],
				level_id=hack["level_id"],
				position=hack.get("position", 0),
				is_required=hack.get("is_required", True),
			))
		await session.flush()

		for level in data["levels"]:
			for prerequisite_id in level.get("prerequisites", []):
				session.add(LevelPrerequisite(level_id=level["id"], prerequisite_level_id=prerequisite_id))
		for hack in data["hacks"]:
			for prerequisite_id in hack.get("prerequisites", []):
				session.add(HackPrerequisite(hack_id=hack["id"], prerequisite_hack_id=prerequisite_id))
			for index, check in enumerate(hack.get("checks", [])):
				session.add(CurriculumHackCheck(
					id=check["id"],
					hack_id=hack["id"],
					title=check.get("title", ""),
					position=index,
					is_required=check.get("is_required", True),
				))
		await session.commit()
