"""Unit tests for graph_model.py"""

import json

import pytest

from hackpath.exceptions import DoesNotExistError, GraphConfigurationError
from hackpath.services.progress_engine.graph_model import (
	Hack,
	HackCheck,
	Level,
	build_graph,
	find_level_by_slug,
	graph_from_dict,
	load_curriculum_file,
)


def _level(level_id, position=0, required=1):
	return Level(id=level_id, name=level_id.title(), slug=level_id, position=position, required_hacks_count=required)


def _hack(hack_id, level_id, position=0):
	return Hack(id=hack_id, name=hack_id, slug=hack_id.lower(), level_id=level_id, position=position)


def test_graph_from_dict_counts_required_and_optional_hacks(graph):
	"""Level hack counts default to the hacks assigned to the level."""
	assert graph.level("foundation").required_hacks_count == 2
	assert graph.level("foundation").optional_hacks_count == 0
	assert graph.level("intermediate").required_hacks_count == 2
	assert graph.level("intermediate").optional_hacks_count == 1


def test_graph_from_dict_explicit_counts_win(curriculum_data):
	curriculum_data["levels"][0]["required_hacks_count"] = 1
	graph = graph_from_dict(curriculum_data)
	assert graph.level("foundation").required_hacks_count == 1


def test_prerequisites_of_levels_and_hacks(graph):
	assert graph.prerequisites_of("foundation") == frozenset()
	assert graph.prerequisites_of("intermediate") == frozenset({"foundation"})
	assert graph.prerequisites_of("B") == frozenset({"A"})
	assert graph.prerequisites_of("A") == frozenset()


def test_prerequisites_of_unknown_node_raises(graph):
	with pytest.raises(DoesNotExistError):
		graph.prerequisites_of("nope")


def test_hacks_in_level_ordered_by_position(graph):
	assert [h.id for h in graph.hacks_in_level("intermediate")] == ["C", "D", "E"]
	assert graph.required_hack_ids("intermediate") == ["C", "D"]


def test_checks_for_hack(graph):
	checks = graph.checks_for_hack("A")
	assert [c.id for c in checks] == ["A-check-1", "A-check-2"]
	assert [c.is_required for c in checks] == [True, False]
	assert graph.checks_for_hack("B") == []


def test_dependents_of(graph):
	assert graph.dependents_of("foundation") == ["intermediate"]
	assert graph.dependents_of("intermediate") == []


def test_ordered_levels(graph):
	assert [level.id for level in graph.ordered_levels()] == ["foundation", "intermediate"]


def test_find_level_by_slug(graph):
	assert find_level_by_slug(graph, "intermediate").id == "intermediate"
	assert find_level_by_slug(graph, "missing") is None


def test_dangling_level_edge_raises():
	with pytest.raises(GraphConfigurationError, match="Dangling level"):
		build_graph([_level("a")], [], [("a", "ghost")], [])


def test_dangling_hack_edge_raises():
	with pytest.raises(GraphConfigurationError, match="Dangling hack"):
		build_graph([_level("a")], [_hack("H1", "a")], [], [("H1", "H9")])


def test_level_cycle_raises_with_path():
	levels = [_level("a"), _level("b"), _level("c")]
	edges = [("a", "b"), ("b", "c"), ("c", "a")]
	with pytest.raises(GraphConfigurationError, match="Level prerequisite cycle: a -> b -> c -> a"):
		build_graph(levels, [], edges, [])


def test_hack_cycle_raises():
	hacks = [_hack("H1", "a"), _hack("H2", "a")]
	with pytest.raises(GraphConfigurationError, match="Hack prerequisite cycle"):
		build_graph([_level("a")], hacks, [], [("H1", "H2"), ("H2", "H1")])


def test_self_prerequisite_raises():
	with pytest.raises(GraphConfigurationError, match="itself"):
		build_graph([_level("a")], [], [("a", "a")], [])


def test_duplicate_ids_raise():
	with pytest.raises(GraphConfigurationError, match="Duplicate level id"):
		build_graph([_level("a"), _level("a")], [], [], [])


def test_id_shared_by_level_and_hack_raises():
	with pytest.raises(GraphConfigurationError, match="both a level and a hack"):
		build_graph([_level("a")], [_hack("a", "a")], [], [])


def test_hack_in_unknown_level_raises():
	with pytest.raises(GraphConfigurationError, match="unknown level"):
		build_graph([_level("a")], [_hack("H1", "b")], [], [])


def test_check_on_unknown_hack_raises():
	with pytest.raises(GraphConfigurationError, match="unknown hack"):
		build_graph([_level("a")], [], [], [], [HackCheck(id="c1", hack_id="H1")])


def test_cross_level_hack_prerequisite_is_allowed():
	"""Hack prerequisites may point into another level."""
	graph = build_graph(
		[_level("a"), _level("b", position=1)],
		[_hack("H1", "a"), _hack("H2", "b")],
		[],
		[("H2", "H1")],
	)
	assert graph.prerequisites_of("H2") == frozenset({"H1"})


def test_missing_list_field_raises():
	with pytest.raises(GraphConfigurationError, match="levels"):
		graph_from_dict({"hacks": []})


def test_missing_entry_field_raises():
	with pytest.raises(GraphConfigurationError, match="level_id"):
		graph_from_dict({"levels": [{"id": "a"}], "hacks": [{"id": "H1"}]})


def test_load_curriculum_file(tmp_path, curriculum_data):
	path = tmp_path / "curriculum.json"
	path.write_text(json.dumps(curriculum_data), encoding="utf-8")

	graph = load_curriculum_file(str(path))
	assert set(graph.hacks) == {"A", "B", "C", "D", "E"}
