"""Tests for the PLAN phase."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import make_exploration

from phase_engine.dag import check_plan_graph, topological_order
from phase_engine.models import Complexity, DependencyInfo, Phase, StepPhase, TechStackDecision
from phase_engine.planning import (
	PlanningEngine,
	PlanOptions,
	assess_complexity,
	assess_risks,
	build_plan,
	choose_stack,
	estimate_effort,
	extract_features,
	map_dependencies,
	non_functional_requirements,
	plan_confidence,
	plan_file_structure,
	validation_rules,
)


def _chosen(decisions: list) -> dict[str, str]:
	return {d.category: d.chosen for d in decisions}


class TestRequirementAnalysis:
	def test_extract_features(self) -> None:
		features = extract_features("Build a todo app with reminders. Add dark mode.")
		assert features == ["Create a todo app", "Add dark mode"]

	def test_default_features(self) -> None:
		assert extract_features("hmm") == [
			"Implement core functionality",
			"Add error handling",
			"Create documentation",
		]

	def test_non_functional(self) -> None:
		nfrs = non_functional_requirements("A fast and secure shop", ["No external CDNs"])
		assert nfrs[:2] == ["Optimize for performance", "Implement security measures"]
		assert "Write maintainable, well-documented code" in nfrs
		assert nfrs[-1] == "Respect constraint: No external CDNs"

	def test_complexity_simple(self) -> None:
		assert assess_complexity("a small page", make_exploration()) == Complexity.SIMPLE

	def test_complexity_keywords(self) -> None:
		vision = "a distributed realtime dashboard"
		assert assess_complexity(vision, make_exploration()) == Complexity.MODERATE
		vision = "distributed microservice platform"
		assert assess_complexity(vision, make_exploration()) == Complexity.COMPLEX

	def test_complexity_from_exploration_size(self) -> None:
		exploration = make_exploration(
			technologies=tuple(f"t{i}" for i in range(6)),
			key_files=tuple(f"f{i}" for i in range(21)),
		)
		assert assess_complexity("small", exploration) == Complexity.MODERATE


class TestStackSelection:
	def test_always_build_and_test(self) -> None:
		decisions = choose_stack("enhance", [], Complexity.SIMPLE)
		assert _chosen(decisions) == {"build": "Vite", "test": "Vitest"}

	def test_existing_technologies_win(self) -> None:
		decisions = choose_stack("enhance", ["react", "typescript"], Complexity.SIMPLE)
		by_category = {d.category: d for d in decisions}
		assert by_category["frontend"].chosen == "React"
		assert by_category["build"].chosen == "TypeScript + Vite"
		for category in ("frontend", "build"):
			assert by_category[category].confidence > 0.8
			assert "already" in by_category[category].reasoning

	def test_explicit_database(self) -> None:
		decisions = choose_stack("store orders in mongodb", [], Complexity.SIMPLE)
		db = next(d for d in decisions if d.category == "database")
		assert db.chosen == "MongoDB"
		assert db.confidence == pytest.approx(0.95)

	def test_simple_database_defaults_to_sqlite(self) -> None:
		assert _chosen(choose_stack("persist notes", [], Complexity.SIMPLE))["database"] == "SQLite"
		assert _chosen(choose_stack("persist notes", [], Complexity.MODERATE))["database"] == "PostgreSQL"

	def test_keyword_matching_is_word_based(self) -> None:
		decisions = choose_stack("collect feedback quickly", [], Complexity.SIMPLE)
		assert "database" not in _chosen(decisions)
		assert "backend" not in _chosen(decisions)

	def test_api_triggers_backend(self) -> None:
		assert _chosen(choose_stack("a REST api", [], Complexity.SIMPLE))["backend"] == "Express.js"


class TestLayoutAndDependencies:
	def test_typed_layout(self) -> None:
		stack = choose_stack("a web app ui", ["typescript"], Complexity.SIMPLE)
		layout = plan_file_structure(stack)
		paths = [f.path for f in layout.files]
		assert "src/index.ts" in paths
		assert "src/App.tsx" in paths
		assert any(d.path == "src/components" for d in layout.directories)

	def test_untyped_layout_without_frontend(self) -> None:
		layout = plan_file_structure(choose_stack("a cli", [], Complexity.SIMPLE))
		paths = [f.path for f in layout.files]
		assert "src/index.js" in paths
		assert not any(p.startswith("src/App") for p in paths)
		assert not any(d.path == "src/components" for d in layout.directories)

	def test_dependency_map(self) -> None:
		stack = choose_stack("react ui", ["react"], Complexity.SIMPLE)
		deps = map_dependencies(stack)
		assert [d.name for d in deps.production] == ["react", "react-dom"]
		assert "vite" in [d.name for d in deps.development]
		assert deps.conflicts == ()

	def test_shared_dependency_listed_once(self) -> None:
		stack = [
			TechStackDecision(category="build", chosen="TypeScript + Vite"),
			TechStackDecision(category="build", chosen="Vite"),
		]
		deps = map_dependencies(stack)
		assert [d.name for d in deps.development] == ["typescript", "vite"]
		assert deps.conflicts == ()

	def test_dependency_conflicts(self) -> None:
		legacy = {"development": (DependencyInfo("vite", "^2.0.0", "Old build tool"),)}
		stack = [
			TechStackDecision(category="build", chosen="Vite"),
			TechStackDecision(category="build", chosen="Legacy Vite"),
		]
		with patch.dict("phase_engine.planning.DEPENDENCY_TABLE", {"Legacy Vite": legacy}):
			deps = map_dependencies(stack)
		assert deps.conflicts == ("vite: ^2.0.0 vs ^4.4.0",)


class TestBuildPlan:
	def test_base_plan(self) -> None:
		steps = build_plan([], choose_stack("enhance", [], Complexity.SIMPLE), Complexity.SIMPLE)
		assert [s.id for s in steps] == ["setup-project", "implement-core", "add-tests", "add-documentation"]
		assert estimate_effort(steps) == "4 hours"

	def test_setup_deliverables(self) -> None:
		steps = build_plan([], choose_stack("enhance", ["typescript"], Complexity.SIMPLE), Complexity.SIMPLE)
		setup = steps[0]
		assert setup.phase == StepPhase.SETUP
		assert "README.md" in setup.deliverables
		assert "package.json" in setup.deliverables
		assert "tsconfig.json" in setup.deliverables

	def test_infrastructure_and_integrations(self) -> None:
		stack = choose_stack("an api with a database", [], Complexity.SIMPLE)
		steps = build_plan(["Database integration", "External API integration"], stack, Complexity.SIMPLE)
		ids = [s.id for s in steps]
		assert ids.index("setup-infrastructure") < ids.index("implement-core")
		assert ids.index("integrate-database-integration") < ids.index("add-tests")
		tests = next(s for s in steps if s.id == "add-tests")
		assert "integrate-external-api-integration" in tests.dependencies

	def test_plan_graph_is_valid(self) -> None:
		stack = choose_stack("an api with auth and a database", ["react"], Complexity.COMPLEX)
		steps = build_plan(["Authentication system"], stack, Complexity.COMPLEX)
		check_plan_graph(steps)
		assert topological_order(steps) == steps
		assert len({s.id for s in steps}) == len(steps)

	def test_complex_core(self) -> None:
		steps = build_plan([], choose_stack("x", [], Complexity.COMPLEX), Complexity.COMPLEX)
		core = next(s for s in steps if s.id == "implement-core")
		assert core.complexity == Complexity.COMPLEX

	def test_effort_buckets(self) -> None:
		steps = build_plan([], choose_stack("x", [], Complexity.SIMPLE), Complexity.SIMPLE)
		assert estimate_effort(steps[:1]) == "1-2 hours"
		assert estimate_effort(steps * 3) == "1 day"
		assert estimate_effort(steps * 10) == "6 days"


class TestRulesRisksConfidence:
	def test_validation_rules(self) -> None:
		typed = validation_rules(choose_stack("x", ["typescript"], Complexity.SIMPLE))
		assert [r.type for r in typed] == ["typescript", "eslint", "test", "build"]
		plain = validation_rules(choose_stack("x", [], Complexity.SIMPLE))
		assert [r.type for r in plain] == ["eslint", "test", "build"]

	def test_risks(self) -> None:
		stack = choose_stack("x", [], Complexity.COMPLEX)
		steps = build_plan(["Authentication system"], stack, Complexity.COMPLEX)
		risks = assess_risks(stack, steps, ["Authentication system"])
		ids = [r.id for r in risks]
		assert ids == ["implementation-complexity", "integration-risk"]
		assert risks[0].impact == "high"

	def test_confidence(self) -> None:
		stack = choose_stack("x", [], Complexity.SIMPLE)
		low = plan_confidence(make_exploration(confidence=0.5), stack, [])
		high = plan_confidence(make_exploration(confidence=0.8), stack, [])
		assert low == pytest.approx(0.59)
		assert high == pytest.approx(0.79)


class TestPlanningEngine:
	@pytest.mark.asyncio
	async def test_execute(self) -> None:
		exploration = make_exploration(technologies=("react", "typescript"))
		report = await PlanningEngine().execute("/work/shop", "enhance", exploration)

		assert report.success
		assert report.next_phase == Phase.COMPLETE
		assert report.confidence >= 0.4
		assert report.features == (
			"Implement core functionality", "Add error handling", "Create documentation",
		)
		assert report.tech_stack[0].category == "frontend"
		assert report.validation_criteria[0].type == "typescript"
		check_plan_graph(report.implementation_plan)

	@pytest.mark.asyncio
	async def test_readme_and_manifest_vision(self) -> None:
		exploration = make_exploration(
			key_files=(), technologies=(), confidence=0.4, files_read=0, project_structure="proj/",
		)
		report = await PlanningEngine().execute("/work/proj", "Add a README and package.json", exploration)
		setup = report.implementation_plan[0]
		assert {"README.md", "package.json"} <= set(setup.deliverables)

	@pytest.mark.asyncio
	async def test_constraints_and_forced_complexity(self) -> None:
		report = await PlanningEngine().execute(
			"/w", "a small page", make_exploration(),
			PlanOptions(constraints=("offline only",), complexity=Complexity.COMPLEX),
		)
		assert report.complexity == Complexity.COMPLEX
		assert "Respect constraint: offline only" in report.non_functional

	@pytest.mark.asyncio
	async def test_integrations_detected(self) -> None:
		report = await PlanningEngine().execute("/w", "users login to manage data in a db", make_exploration())
		assert report.integrations == ("Database integration", "Authentication system")
		assert any(s.id == "integrate-authentication-system" for s in report.implementation_plan)

	@pytest.mark.asyncio
	async def test_failure(self) -> None:
		with patch("phase_engine.planning.choose_stack", side_effect=RuntimeError("no stack")):
			report = await PlanningEngine().execute("/w", "anything", make_exploration())
		assert not report.success
		assert report.next_phase == Phase.EXPLORE
		assert report.confidence == pytest.approx(0.1)
		assert report.risks[0].id == "planning_failure"
		assert "no stack" in report.risks[0].description
