"""Tests for the COMPLETE phase."""

from __future__ import annotations

from typing import Any
from unittest.mock import patch

import pytest
from conftest import FakeToolInvoker, fail, make_exploration, make_step, ok, validation_text

from phase_engine.completion import (
	CompleteOptions,
	CompletionEngine,
	completion_confidence,
	fallback_plan,
	parse_commit_hash,
	select_validation_types,
)
from phase_engine.models import (
	HealingAction,
	HealingType,
	PlanningReport,
	StepPhase,
	TechStackDecision,
	ValidationOutcome,
	ValidationRule,
)
from phase_engine.tools.base import ToolResult


def _plan() -> PlanningReport:
	return PlanningReport(success=True, implementation_plan=(
		make_step(id="write-readme", phase=StepPhase.DOCUMENTATION, deliverables=("README.md",)),
		make_step(
			id="write-manifest", phase=StepPhase.SETUP, deliverables=("package.json",),
			dependencies=("write-readme",),
		),
	))


def _created(payload: dict[str, Any]) -> ToolResult:
	return ok({"created": [f["path"] for f in payload["files"]], "modified": []})


def _passing(payload: dict[str, Any]) -> ToolResult:
	return ok(validation_text(payload["type"], True))


def _options(**overrides: Any) -> CompleteOptions:
	defaults: dict[str, Any] = {
		"directory": "/work/shop",
		"vision": "Add a README and package.json",
		"planning": _plan(),
	}
	defaults.update(overrides)
	return CompleteOptions(**defaults)


class _BuildSequence:
	"""validate_project handler: `build` answers from a queue, other types pass."""

	def __init__(self, *build_reports: str) -> None:
		self.build_reports = list(build_reports)

	def __call__(self, payload: dict[str, Any]) -> ToolResult:
		if payload["type"] != "build":
			return _passing(payload)
		report = self.build_reports.pop(0) if len(self.build_reports) > 1 else self.build_reports[0]
		return ok(report)


class TestHelpers:
	def test_fallback_plan_from_keywords(self) -> None:
		steps = fallback_plan("Add a README and package.json")
		assert [s.id for s in steps] == ["create-readme", "create-manifest"]

	def test_fallback_plan_default(self) -> None:
		assert [s.id for s in fallback_plan("hello")] == ["create-readme"]
		assert [s.id for s in fallback_plan("rapid prototyping")] == ["create-readme"]

	def test_select_validation_types(self) -> None:
		assert select_validation_types(None, None) == ["custom", "eslint", "build"]
		exploration = make_exploration(technologies=("react", "typescript"))
		planning = PlanningReport(tech_stack=(TechStackDecision(category="test", chosen="Vitest"),))
		assert select_validation_types(exploration, planning) == [
			"custom", "eslint", "build", "typescript", "test",
		]

	def test_parse_commit_hash(self) -> None:
		assert parse_commit_hash("[main abc1234] Implement: x") == "abc1234"
		assert parse_commit_hash("[main (root-commit) 1a2b3c4] first") == "1a2b3c4"
		assert parse_commit_hash({"hash": "deadbeef"}) == "deadbeef"
		assert parse_commit_hash("nothing to commit") is None
		assert parse_commit_hash(None) is None

	def test_completion_confidence(self) -> None:
		assert completion_confidence(0, [], 0, []) == pytest.approx(0.5)
		assert completion_confidence(50, [], 0, []) == pytest.approx(0.7)
		assert completion_confidence(0, [], 10, []) == pytest.approx(0.1)
		outcomes = [ValidationOutcome(type="build", passed=True), ValidationOutcome(type="eslint", passed=False)]
		assert completion_confidence(0, outcomes, 0, []) == pytest.approx(0.65)

	def test_healing_ratio_ignores_suggestions(self) -> None:
		healing = [
			HealingAction(type=HealingType.FIX, description="a", target="x", executed=True),
			HealingAction(type=HealingType.UPDATE, description="b", target="y", executed=False),
			HealingAction(type=HealingType.FIX, description="c", target="z", automated=False),
		]
		assert completion_confidence(0, [], 0, healing) == pytest.approx(0.6)


class TestDryRun:
	@pytest.mark.asyncio
	async def test_no_side_effects(self) -> None:
		invoker = FakeToolInvoker()
		report = await CompletionEngine(invoker).execute(_options(dry_run=True, auto_commit=True))

		assert report.success
		assert report.files_created == ()
		assert report.planned_steps == 2
		assert report.summary == "Dry run: 2 steps planned, no changes made"
		assert invoker.calls == []

	@pytest.mark.asyncio
	async def test_fallback_plan_counted(self) -> None:
		report = await CompletionEngine(FakeToolInvoker()).execute(
			_options(planning=None, vision="hello", dry_run=True),
		)
		assert report.summary == "Dry run: 1 steps planned, no changes made"


class TestExecute:
	@pytest.mark.asyncio
	async def test_happy_path(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", _created)
		invoker.script("validate_project", _passing)

		report = await CompletionEngine(invoker).execute(_options())

		assert report.success
		assert report.files_created == ("README.md", "package.json")
		assert [v.type for v in report.validation_results] == ["custom", "eslint", "build"]
		assert all(v.passed for v in report.validation_results)
		assert report.healing_actions == ()
		assert report.confidence == pytest.approx(0.84)
		assert report.summary == "Completed 2/2 steps; created 2 files, modified 0; validation 3/3 passed"
		assert "Review and commit the changes" in report.next_steps
		assert invoker.calls_to("git_operation") == []

	@pytest.mark.asyncio
	async def test_modified_files_reported(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", ok({"created": [], "modified": ["README.md"]}), _created)
		report = await CompletionEngine(invoker).execute(_options(validate_changes=False))
		assert report.files_modified == ("README.md",)
		assert report.files_created == ("package.json",)

	@pytest.mark.asyncio
	async def test_validation_command_from_plan(self) -> None:
		planning = PlanningReport(
			implementation_plan=_plan().implementation_plan,
			validation_criteria=(ValidationRule(type="build", description="Build", command="npm run build"),),
		)
		invoker = FakeToolInvoker().script("validate_project", _passing)
		await CompletionEngine(invoker).execute(_options(planning=planning))
		assert {"type": "build", "command": "npm run build"} in invoker.calls_to("validate_project")

	@pytest.mark.asyncio
	async def test_validation_call_failure_becomes_outcome(self) -> None:
		invoker = FakeToolInvoker().script("validate_project", fail("no shell"))
		report = await CompletionEngine(invoker).execute(_options(enable_healing=False))
		assert not any(v.passed for v in report.validation_results)
		assert report.validation_results[0].errors[0].message == "no shell"


class TestHealingDuringCompletion:
	@pytest.mark.asyncio
	async def test_heal_then_revalidate_once(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", _created)
		invoker.script("validate_project", _BuildSequence(
			validation_text("build", False, ["Cannot find module 'vite'"]),
			validation_text("build", True),
		))

		report = await CompletionEngine(invoker).execute(_options())

		assert [a.type for a in report.healing_actions] == [HealingType.UPDATE]
		assert invoker.calls_to("run_command") == [{"command": "npm install"}]
		builds = [p for p in invoker.calls_to("validate_project") if p["type"] == "build"]
		assert len(builds) == 2
		assert all(v.passed for v in report.validation_results)
		assert report.success
		assert report.confidence == pytest.approx(1.0)

	@pytest.mark.asyncio
	async def test_worse_revalidation_keeps_pre_heal_result(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", _created)
		invoker.script("validate_project", _BuildSequence(
			validation_text("build", False, ["Cannot find module 'a'"]),
			validation_text("build", False, ["Cannot find module 'a'", "Cannot find module 'b'"]),
		))

		report = await CompletionEngine(invoker).execute(_options())

		build = next(v for v in report.validation_results if v.type == "build")
		assert build.error_count == 1
		assert "Fix remaining validation failures: build" in report.next_steps

	@pytest.mark.asyncio
	async def test_healing_disabled(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", _created)
		invoker.script("validate_project", _BuildSequence(validation_text("build", False, ["boom"])))
		report = await CompletionEngine(invoker).execute(_options(enable_healing=False))
		assert report.healing_actions == ()
		assert invoker.calls_to("run_command") == []

	@pytest.mark.asyncio
	async def test_placeholders_for_failed_steps(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", fail("disk full"), _created)
		invoker.script("validate_project", _BuildSequence(
			validation_text("build", False, ["build broke"]),
			validation_text("build", True),
		))

		report = await CompletionEngine(invoker).execute(_options())

		assert [a.type for a in report.healing_actions] == [HealingType.UPDATE, HealingType.CREATE]
		assert report.files_created == ("README.md", "package.json")
		assert not report.success
		assert report.errors == (
			"Step write-readme failed: disk full",
			"Step write-manifest skipped: dependency write-readme failed",
		)


class TestStepFailures:
	@pytest.mark.asyncio
	async def test_dependents_skipped(self) -> None:
		invoker = FakeToolInvoker().script("write_files", fail("disk full"))
		report = await CompletionEngine(invoker).execute(_options(validate_changes=False))

		assert not report.success
		assert len(invoker.calls_to("write_files")) == 1
		assert report.errors[1] == "Step write-manifest skipped: dependency write-readme failed"
		assert report.confidence == pytest.approx(0.3)

	@pytest.mark.asyncio
	async def test_malformed_plan_rejected(self) -> None:
		planning = PlanningReport(implementation_plan=(make_step(id="a", dependencies=("ghost",)),))
		invoker = FakeToolInvoker()
		report = await CompletionEngine(invoker).execute(_options(planning=planning))

		assert not report.success
		assert report.summary.startswith("Plan rejected")
		assert report.confidence == pytest.approx(0.1)
		assert invoker.calls == []

	@pytest.mark.asyncio
	async def test_unexpected_exception_suggests_rollback(self) -> None:
		with patch("phase_engine.completion.files_for_step", side_effect=RuntimeError("kaboom")):
			report = await CompletionEngine(FakeToolInvoker()).execute(_options())

		assert not report.success
		assert report.errors == ("kaboom",)
		assert report.confidence == pytest.approx(0.1)
		action = report.healing_actions[0]
		assert action.type == HealingType.ROLLBACK
		assert not action.executed


class TestTestsCommitDeploy:
	@pytest.mark.asyncio
	async def test_probes(self) -> None:
		def probe(payload: dict[str, Any]) -> ToolResult:
			return fail("no pwd") if payload["command"] == "pwd" else ok("")

		invoker = FakeToolInvoker()
		invoker.script("write_files", _created)
		invoker.script("run_command", probe)
		report = await CompletionEngine(invoker).execute(_options(validate_changes=False, run_tests=True))
		assert report.tests_run == ("ls -la", "pwd (failed)", "npm ls --depth=0")

	@pytest.mark.asyncio
	async def test_commit(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", _created)
		invoker.script("git_operation", ok(""), ok("[main abc1234] Implement: Add a README and package.json"))

		report = await CompletionEngine(invoker).execute(_options(validate_changes=False, auto_commit=True))

		calls = invoker.calls_to("git_operation")
		assert calls[0] == {"operation": "add", "files": ["README.md", "package.json"]}
		assert calls[1]["operation"] == "commit"
		assert calls[1]["message"].startswith("Implement: Add a README and package.json\n\n2 steps, 2 files")
		assert report.commit_hash == "abc1234"
		assert report.confidence == pytest.approx(0.64)
		assert "Review and commit the changes" not in report.next_steps

	@pytest.mark.asyncio
	async def test_commit_skipped_on_validation_errors(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", _created)
		invoker.script("validate_project", _BuildSequence(validation_text("build", False, ["boom"])))
		report = await CompletionEngine(invoker).execute(_options(enable_healing=False, auto_commit=True))
		assert report.commit_hash is None
		assert invoker.calls_to("git_operation") == []

	@pytest.mark.asyncio
	async def test_failed_git_add(self) -> None:
		invoker = FakeToolInvoker()
		invoker.script("write_files", _created)
		invoker.script("git_operation", fail("not a repository"))
		report = await CompletionEngine(invoker).execute(_options(validate_changes=False, auto_commit=True))
		assert report.commit_hash is None
		assert len(invoker.calls_to("git_operation")) == 1

	@pytest.mark.asyncio
	async def test_deploy_recorded(self) -> None:
		invoker = FakeToolInvoker().script("write_files", _created)
		report = await CompletionEngine(invoker).execute(_options(validate_changes=False, deploy_target="staging"))
		assert report.deployment is not None
		assert report.deployment.status == "recorded"
		assert report.confidence == pytest.approx(0.64)
		assert "Run the real deployment to staging" in report.next_steps

	@pytest.mark.asyncio
	async def test_blank_deploy_target(self) -> None:
		invoker = FakeToolInvoker().script("write_files", _created)
		report = await CompletionEngine(invoker).execute(_options(validate_changes=False, deploy_target="  "))
		assert report.deployment is not None
		assert report.deployment.status == "failed"
		assert report.confidence == pytest.approx(0.54)
