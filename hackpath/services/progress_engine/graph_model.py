"""Graph model for progress engine.

This module builds the immutable curriculum snapshot (levels, hacks, checks
and their prerequisite edges) used by the unlock calculator. A snapshot is
built for every evaluation pass; nothing here is cached between requests.

Structural defects (dangling edges, cycles, duplicate ids) are data-authoring
errors and raise ``GraphConfigurationError`` when the graph is built.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hackpath.db.models import (
	CurriculumHack,
	CurriculumHackCheck,
	CurriculumLevel,
	HackPrerequisite,
	LevelPrerequisite,
)
from hackpath.exceptions import DoesNotExistError, GraphConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Level:
	"""Coarse curriculum tier gating a group of hacks."""

	id: str
	name: str
	slug: str
	position: int = 0
	required_hacks_count: int = 0
	optional_hacks_count: int = 0


@dataclass(frozen=True)
class Hack:
	"""Single lesson inside a level."""

	id: str
	name: str
	slug: str
	level_id: str
	position: int = 0
	is_required: bool = True


@dataclass(frozen=True)
class HackCheck:
	"""Checklist item inside a hack."""

	id: str
	hack_id: str
	is_required: bool = True
	title: str = ""
	position: int = 0


@dataclass(frozen=True)
class GraphModel:
	"""Read-only levels/hacks snapshot with direct prerequisite edges."""

	levels: Dict[str, Level]
	hacks: Dict[str, Hack]
	checks: Dict[str, HackCheck]
	level_prerequisites: Dict[str, FrozenSet[str]]
	hack_prerequisites: Dict[str, FrozenSet[str]]

	def prerequisites_of(self, node_id: str) -> FrozenSet[str]:
		"""Return the direct prerequisite ids of a level or hack.

		Raises:
			DoesNotExistError: If ``node_id`` is neither a level nor a hack
		"""
		if node_id in self.levels:
			return self.level_prerequisites.get(node_id, frozenset())
		if node_id in self.hacks:
			return self.hack_prerequisites.get(node_id, frozenset())
		raise DoesNotExistError(f"Node {node_id} not found in curriculum graph")

	def level(self, level_id: str) -> Level:
		try:
			return self.levels[level_id]
		except KeyError:
			raise DoesNotExistError(f"Level {level_id} not found") from None

	def hack(self, hack_id: str) -> Hack:
		try:
			return self.hacks[hack_id]
		except KeyError:
			raise DoesNotExistError(f"Hack {hack_id} not found") from None

	def ordered_levels(self) -> List[Level]:
		return sorted(self.levels.values(), key=lambda level: (level.position, level.name, level.id))

	def hacks_in_level(self, level_id: str) -> List[Hack]:
		"""Hacks owned by a level ordered by position."""
		hacks = [hack for hack in self.hacks.values() if hack.level_id == level_id]
		return sorted(hacks, key=lambda hack: (hack.position, hack.name, hack.id))

	def required_hack_ids(self, level_id: str) -> List[str]:
		return [hack.id for hack in self.hacks_in_level(level_id) if hack.is_required]

	def checks_for_hack(self, hack_id: str) -> List[HackCheck]:
		checks = [check for check in self.checks.values() if check.hack_id == hack_id]
		return sorted(checks, key=lambda check: (check.position, check.id))

	def dependents_of(self, level_id: str) -> List[str]:
		"""Levels that list ``level_id`` as a direct prerequisite."""
		return sorted(
			dependent
			for dependent, prerequisites in self.level_prerequisites.items()
			if level_id in prerequisites
		)


def build_graph(
	levels: Iterable[Level],
	hacks: Iterable[Hack],
	level_prerequisites: Iterable[Tuple[str, str]],
	hack_prerequisites: Iterable[Tuple[str, str]],
	checks: Iterable[HackCheck] = (),
) -> GraphModel:
	"""Build and validate a curriculum graph.

	Args:
		levels: Level definitions
		hacks: Hack definitions
		level_prerequisites: ``(level_id, prerequisite_level_id)`` edges
		hack_prerequisites: ``(hack_id, prerequisite_hack_id)`` edges
		checks: Hack check definitions

	Returns:
		Validated GraphModel

	Raises:
		GraphConfigurationError: If the graph is malformed
	"""
	level_map = _index("level", levels)
	hack_map = _index("hack", hacks)
	check_map = _index("check", checks)

	shared = set(level_map) & set(hack_map)
	if shared:
		raise GraphConfigurationError(f"Ids used by both a level and a hack: {sorted(shared)}")

	for hack in hack_map.values():
		if hack.level_id not in level_map:
			raise GraphConfigurationError(f"Hack {hack.id} belongs to unknown level {hack.level_id}")

	for check in check_map.values():
		if check.hack_id not in hack_map:
			raise GraphConfigurationError(f"Check {check.id} belongs to unknown hack {check.hack_id}")

	level_edges = _collect_edges("level", level_prerequisites, level_map)
	hack_edges = _collect_edges("hack", hack_prerequisites, hack_map)

	_ensure_acyclic("level", level_edges)
	_ensure_acyclic("hack", hack_edges)

	logger.debug(
		f"Built curriculum graph: {len(level_map)} levels, {len(hack_map)} hacks, "
		f"{len(check_map)} checks"
	)

	return GraphModel(
		levels=level_map,
		hacks=hack_map,
		checks=check_map,
		level_prerequisites={node: frozenset(edges) for node, edges in level_edges.items()},
		hack_prerequisites={node: frozenset(edges) for node, edges in hack_edges.items()},
	)


def _index(kind: str, items: Iterable[Any]) -> Dict[str, Any]:
	indexed: Dict[str, Any] = {}
	for item in items:
		if item.id in indexed:
			raise GraphConfigurationError(f"Duplicate {kind} id: {item.id}")
		indexed[item.id] = item
	return indexed


def _collect_edges(kind: str, edges: Iterable[Tuple[str, str]], nodes: Dict[str, Any]) -> Dict[str, set]:
	collected: Dict[str, set] = {}
	for node_id, prerequisite_id in edges:
		if node_id not in nodes:
			raise GraphConfigurationError(f"Dangling {kind} prerequisite edge: unknown {kind} {node_id}")
		if prerequisite_id not in nodes:
			raise GraphConfigurationError(
				f"Dangling {kind} prerequisite edge: {node_id} requires unknown {kind} {prerequisite_id}"
			)
		if node_id == prerequisite_id:
			raise GraphConfigurationError(f"{kind.capitalize()} {node_id} lists itself as a prerequisite")
		collected.setdefault(node_id, set()).add(prerequisite_id)
	return collected


def _ensure_acyclic(kind: str, edges: Dict[str, set]) -> None:
	"""Depth-first search for a back edge.

	Raises:
		GraphConfigurationError: Naming the nodes on the first cycle found
	"""
	visiting, done = 1, 2
	state: Dict[str, int] = {}

	def visit(node_id: str, path: List[str]) -> None:
		state[node_id] = visiting
		path.append(node_id)
		for prerequisite_id in sorted(edges.get(node_id, ())):
			marker = state.get(prerequisite_id)
			if marker == visiting:
				cycle = path[path.index(prerequisite_id):] + [prerequisite_id]
				raise GraphConfigurationError(f"{kind.capitalize()} prerequisite cycle: {' -> '.join(cycle)}")
			if marker is None:
				visit(prerequisite_id, path)
		path.pop()
		state[node_id] = done

	for node_id in sorted(edges):
		if node_id not in state:
			visit(node_id, [])


def graph_from_dict(data: Dict[str, Any]) -> GraphModel:
	"""Build a graph from a curriculum document.

	Expected shape::

		{
			"levels": [{"id", "name", "slug", "position", "prerequisites": [...]}],
			"hacks": [{"id", "name", "slug", "level_id", "position", "is_required",
			           "prerequisites": [...], "checks": [{"id", "is_required", "title"}]}]
		}

	``required_hacks_count``/``optional_hacks_count`` default to the number of
	required/optional hacks assigned to the level.

	Raises:
		GraphConfigurationError: If required fields are missing or the graph is malformed
	"""
	for field_name in ("levels", "hacks"):
		if not isinstance(data.get(field_name), list):
			logger.error(f"Curriculum document missing list field: {field_name}")
			raise GraphConfigurationError(f"Curriculum document missing list field: {field_name}")

	raw_hacks = data["hacks"]
	required_counts: Dict[str, int] = {}
	optional_counts: Dict[str, int] = {}
	for raw in raw_hacks:
		counts = required_counts if raw.get("is_required", True) else optional_counts
		counts[raw.get("level_id")] = counts.get(raw.get("level_id"), 0) + 1

	try:
		levels = [
			Level(
				id=raw["id"],
				name=raw.get("name", raw["id"]),
				slug=raw.get("slug", raw["id"]),
				position=int(raw.get("position") or 0),
				required_hacks_count=int(raw.get("required_hacks_count", required_counts.get(raw["id"], 0))),
				optional_hacks_count=int(raw.get("optional_hacks_count", optional_counts.get(raw["id"], 0))),
			)
			for raw in data["levels"]
		]
		hacks = [
			Hack(
				id=raw["id"],
				name=raw.get("name", raw["id"]),
				slug=raw.get("slug", raw["id"]),
				level_id=raw["level_id"],
				position=int(raw.get("position") or 0),
				is_required=bool(raw.get("is_required", True)),
			)
			for raw in raw_hacks
		]
		checks = [
			HackCheck(
				id=check["id"],
				hack_id=raw["id"],
				is_required=bool(check.get("is_required", True)),
				title=check.get("title", ""),
				position=int(check.get("position") or index),
			)
			for raw in raw_hacks
			for index, check in enumerate(raw.get("checks", []))
		]
	except KeyError as e:
		raise GraphConfigurationError(f"Curriculum entry missing field: {e.args[0]}") from e

	level_edges = [
		(raw["id"], prerequisite_id)
		for raw in data["levels"]
		for prerequisite_id in raw.get("prerequisites", [])
	]
	hack_edges = [
		(raw["id"], prerequisite_id)
		for raw in raw_hacks
		for prerequisite_id in raw.get("prerequisites", [])
	]

	return build_graph(levels, hacks, level_edges, hack_edges, checks)


def load_curriculum_file(path: str) -> GraphModel:
	"""Load a curriculum JSON document from disk and build its graph.

	Raises:
		FileNotFoundError: If the file doesn't exist
		json.JSONDecodeError: If the file is malformed
		GraphConfigurationError: If the graph is malformed
	"""
	logger.debug(f"Loading curriculum from {path}")
	with open(path, "r", encoding="utf-8") as f:
		data = json.load(f)
	return graph_from_dict(data)


async def load_graph(session: AsyncSession) -> GraphModel:
	"""Load the curriculum catalog tables into a fresh graph.

	Args:
		session: Open database session

	Returns:
		Validated GraphModel

	Raises:
		GraphConfigurationError: If the stored curriculum is malformed
	"""
	level_rows = (await session.execute(select(CurriculumLevel))).scalars().all()
	hack_rows = (await session.execute(select(CurriculumHack))).scalars().all()
	check_rows = (await session.execute(select(CurriculumHackCheck))).scalars().all()
	level_edges = (await session.execute(
		select(LevelPrerequisite.level_id, LevelPrerequisite.prerequisite_level_id)
	)).all()
	hack_edges = (await session.execute(
		select(HackPrerequisite.hack_id, HackPrerequisite.prerequisite_hack_id)
	)).all()

	levels = [
		Level(
			id=row.id,
			name=row.name,
			slug=row.slug,
			position=row.position or 0,
			required_hacks_count=row.required_hacks_count,
			optional_hacks_count=row.optional_hacks_count,
		)
		for row in level_rows
	]
	hacks = [
		Hack(
			id=row.id,
			name=row.name,
			slug=row.slug,
			level_id=row.level_id,
			position=row.position or 0,
			is_required=bool(row.is_required),
		)
		for row in hack_rows
	]
	checks = [
		HackCheck(
			id=row.id,
			hack_id=row.hack_id,
			is_required=bool(row.is_required),
			title=row.title,
			position=row.position or 0,
		)
		for row in check_rows
	]

	return build_graph(
		levels,
		hacks,
		[(row[0], row[1]) for row in level_edges],
		[(row[0], row[1]) for row in hack_edges],
		checks,
	)


def find_level_by_slug(graph: GraphModel, slug: str) -> Optional[Level]:
	for level in graph.levels.values():
		if level.slug == slug:
			return level
	return None
