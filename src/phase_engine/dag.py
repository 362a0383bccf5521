"""Dependency graph checks and ordering for implementation steps.

Shared by the planning and completion engines so a plan is validated and
ordered the same way on both sides.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Sequence

from phase_engine.models import ImplementationStep

logger = logging.getLogger(__name__)


class PlanGraphError(ValueError):
	"""Base class for structural problems in an implementation plan."""


class DuplicateStepError(PlanGraphError):
	def __init__(self, step_id: str) -> None:
		super().__init__(f"Duplicate step id: {step_id}")
		self.step_id = step_id


class UnknownDependencyError(PlanGraphError):
	def __init__(self, step_id: str, dependency: str) -> None:
		super().__init__(f"Step {step_id} depends on unknown step {dependency}")
		self.step_id = step_id
		self.dependency = dependency


class CyclicDependencyError(PlanGraphError):
	def __init__(self, cycle: list[str]) -> None:
		super().__init__("Dependency cycle: " + " -> ".join(cycle))
		self.cycle = cycle


def _adjacency(steps: Sequence[ImplementationStep]) -> tuple[dict[str, int], dict[str, list[str]]]:
	"""Build in-degree and dependency -> dependents maps, ignoring unknown ids."""
	ids = {s.id for s in steps}
	in_degree: dict[str, int] = {s.id: 0 for s in steps}
	dependents: dict[str, list[str]] = {s.id: [] for s in steps}
	for step in steps:
		for dep in dict.fromkeys(step.dependencies):
			if dep in ids:
				dependents[dep].append(step.id)
				in_degree[step.id] += 1
	return in_degree, dependents


def find_cycle(steps: Sequence[ImplementationStep]) -> list[str] | None:
	"""Return one dependency cycle as a closed id path, or None.

	The returned list starts and ends with the same id, e.g. ["a", "b", "a"].
	"""
	deps = {s.id: [d for d in s.dependencies] for s in steps}
	white, grey, black = 0, 1, 2
	color = {sid: white for sid in deps}
	stack_path: list[str] = []

	def visit(node: str) -> list[str] | None:
		color[node] = grey
		stack_path.append(node)
		for dep in deps[node]:
			if dep not in color:
				continue
			if color[dep] == grey:
				start = stack_path.index(dep)
				return stack_path[start:] + [dep]
			if color[dep] == white:
				found = visit(dep)
				if found:
					return found
		stack_path.pop()
		color[node] = black
		return None

	for sid in deps:
		if color[sid] == white:
			cycle = visit(sid)
			if cycle:
				return cycle
	return None


def check_plan_graph(steps: Sequence[ImplementationStep]) -> None:
	"""Raise a PlanGraphError unless ids are unique, dependencies resolve and the graph is acyclic."""
	seen: set[str] = set()
	for step in steps:
		if step.id in seen:
			raise DuplicateStepError(step.id)
		seen.add(step.id)
	for step in steps:
		for dep in step.dependencies:
			if dep not in seen:
				raise UnknownDependencyError(step.id, dep)
	cycle = find_cycle(steps)
	if cycle:
		raise CyclicDependencyError(cycle)


def topological_order(steps: Sequence[ImplementationStep]) -> list[ImplementationStep]:
	"""Order steps so every dependency precedes its dependents.

	Kahn's algorithm. Among the steps that are ready at the same time the
	highest priority goes first, ties broken by original position. Raises
	PlanGraphError on a malformed graph.
	"""
	check_plan_graph(steps)
	position = {s.id: i for i, s in enumerate(steps)}
	by_id = {s.id: s for s in steps}
	in_degree, dependents = _adjacency(steps)

	ready: list[tuple[int, int, str]] = []
	for sid, deg in in_degree.items():
		if deg == 0:
			heapq.heappush(ready, (by_id[sid].priority.rank, position[sid], sid))

	ordered: list[ImplementationStep] = []
	while ready:
		_, _, sid = heapq.heappop(ready)
		ordered.append(by_id[sid])
		for child in dependents[sid]:
			in_degree[child] -= 1
			if in_degree[child] == 0:
				heapq.heappush(ready, (by_id[child].priority.rank, position[child], child))

	if len(ordered) != len(steps):
		# check_plan_graph already rejects cycles; this guards against drift
		raise CyclicDependencyError(find_cycle(steps) or [s.id for s in steps if s not in ordered])
	logger.debug("Topological order: %s", [s.id for s in ordered])
	return ordered


def topological_layers(steps: Sequence[ImplementationStep]) -> list[list[ImplementationStep]]:
	"""Group steps into layers whose members could run concurrently.

	Reporting only; execution stays sequential. Raises PlanGraphError on a
	malformed graph.
	"""
	if not steps:
		return []
	check_plan_graph(steps)
	by_id = {s.id: s for s in steps}
	in_degree, dependents = _adjacency(steps)
	remaining = dict(in_degree)

	layers: list[list[ImplementationStep]] = []
	while remaining:
		layer_ids = [sid for sid, deg in remaining.items() if deg == 0]
		layers.append([by_id[sid] for sid in layer_ids])
		for sid in layer_ids:
			del remaining[sid]
			for child in dependents[sid]:
				if child in remaining:
					remaining[child] -= 1
	return layers
