"""Tests for plan graph checks and topological ordering."""

from __future__ import annotations

import pytest
from conftest import make_step

from phase_engine.dag import (
	CyclicDependencyError,
	DuplicateStepError,
	PlanGraphError,
	UnknownDependencyError,
	check_plan_graph,
	find_cycle,
	topological_layers,
	topological_order,
)
from phase_engine.models import Priority


def _ids(steps: list) -> list[str]:
	return [s.id for s in steps]


class TestCheckPlanGraph:
	def test_valid_graph_passes(self) -> None:
		steps = [make_step(id="a"), make_step(id="b", dependencies=("a",))]
		check_plan_graph(steps)

	def test_duplicate_id(self) -> None:
		with pytest.raises(DuplicateStepError) as exc_info:
			check_plan_graph([make_step(id="a"), make_step(id="a")])
		assert exc_info.value.step_id == "a"

	def test_unknown_dependency(self) -> None:
		with pytest.raises(UnknownDependencyError) as exc_info:
			check_plan_graph([make_step(id="a", dependencies=("ghost",))])
		assert exc_info.value.dependency == "ghost"
		assert exc_info.value.step_id == "a"

	def test_cycle(self) -> None:
		steps = [
			make_step(id="a", dependencies=("c",)),
			make_step(id="b", dependencies=("a",)),
			make_step(id="c", dependencies=("b",)),
		]
		with pytest.raises(CyclicDependencyError) as exc_info:
			check_plan_graph(steps)
		cycle = exc_info.value.cycle
		assert cycle[0] == cycle[-1]
		assert set(cycle) == {"a", "b", "c"}

	def test_errors_are_value_errors(self) -> None:
		assert issubclass(PlanGraphError, ValueError)
		assert issubclass(CyclicDependencyError, PlanGraphError)

	def test_self_dependency_rejected_at_construction(self) -> None:
		with pytest.raises(ValueError, match="depends on itself"):
			make_step(id="a", dependencies=("a",))

	def test_nonpositive_time_rejected_at_construction(self) -> None:
		with pytest.raises(ValueError, match="estimated_time"):
			make_step(id="a", estimated_time=0)


class TestFindCycle:
	def test_acyclic_returns_none(self) -> None:
		steps = [make_step(id="a"), make_step(id="b", dependencies=("a",))]
		assert find_cycle(steps) is None

	def test_two_node_cycle(self) -> None:
		steps = [make_step(id="a", dependencies=("b",)), make_step(id="b", dependencies=("a",))]
		assert find_cycle(steps) == ["a", "b", "a"]

	def test_unknown_dependencies_ignored(self) -> None:
		assert find_cycle([make_step(id="a", dependencies=("zzz",))]) is None


class TestTopologicalOrder:
	def test_dependencies_precede_dependents(self) -> None:
		steps = [
			make_step(id="tests", dependencies=("core",)),
			make_step(id="core", dependencies=("setup",)),
			make_step(id="setup"),
		]
		ordered = _ids(topological_order(steps))
		assert ordered == ["setup", "core", "tests"]

	def test_priority_breaks_ties(self) -> None:
		steps = [
			make_step(id="low", priority=Priority.LOW),
			make_step(id="crit", priority=Priority.CRITICAL),
			make_step(id="high", priority=Priority.HIGH),
		]
		assert _ids(topological_order(steps)) == ["crit", "high", "low"]

	def test_position_breaks_equal_priority(self) -> None:
		steps = [make_step(id="x"), make_step(id="y"), make_step(id="z")]
		assert _ids(topological_order(steps)) == ["x", "y", "z"]

	def test_priority_never_overrides_dependency(self) -> None:
		steps = [
			make_step(id="base", priority=Priority.LOW),
			make_step(id="top", priority=Priority.CRITICAL, dependencies=("base",)),
		]
		assert _ids(topological_order(steps)) == ["base", "top"]

	def test_cycle_raises(self) -> None:
		steps = [make_step(id="a", dependencies=("b",)), make_step(id="b", dependencies=("a",))]
		with pytest.raises(CyclicDependencyError):
			topological_order(steps)

	def test_empty(self) -> None:
		assert topological_order([]) == []

	def test_duplicate_dependency_entries(self) -> None:
		steps = [make_step(id="a"), make_step(id="b", dependencies=("a", "a"))]
		assert _ids(topological_order(steps)) == ["a", "b"]


class TestTopologicalLayers:
	def test_diamond(self) -> None:
		steps = [
			make_step(id="root"),
			make_step(id="left", dependencies=("root",)),
			make_step(id="right", dependencies=("root",)),
			make_step(id="join", dependencies=("left", "right")),
		]
		layers = [_ids(layer) for layer in topological_layers(steps)]
		assert layers == [["root"], ["left", "right"], ["join"]]

	def test_empty(self) -> None:
		assert topological_layers([]) == []

	def test_unknown_dependency_raises(self) -> None:
		with pytest.raises(UnknownDependencyError):
			topological_layers([make_step(id="a", dependencies=("b",))])
