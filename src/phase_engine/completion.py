"""COMPLETE phase: execute the plan, validate, heal once, commit, deploy."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from phase_engine.constants import (
	COMPLETE_BASE_CONFIDENCE,
	COMPLETE_COMMIT_BONUS,
	COMPLETE_DEPLOY_BONUS,
	COMPLETE_ERROR_PENALTY_CAP,
	COMPLETE_ERROR_PENALTY_PER_ERROR,
	COMPLETE_FAILURE_CONFIDENCE,
	COMPLETE_FILE_BONUS_CAP,
	COMPLETE_FILE_BONUS_PER_FILE,
	COMPLETE_HEALING_CAP,
	COMPLETE_SUCCESS_CONFIDENCE,
	COMPLETE_VALIDATION_WEIGHT,
	DEFAULT_LIMITS,
	MIN_CONFIDENCE,
	clamp,
)
from phase_engine.dag import PlanGraphError, topological_order
from phase_engine.deliverables import DeliverableContext, files_for_step, is_path_like, project_name_for
from phase_engine.healing import CompletionHealer
from phase_engine.models import (
	CompletionReport,
	DeploymentRecord,
	ExplorationReport,
	HealingAction,
	HealingType,
	ImplementationStep,
	PlanningReport,
	ValidationOutcome,
)
from phase_engine.tables import (
	BASE_VALIDATION_TYPES,
	FALLBACK_STEPS,
	MANIFEST_TEST_PROBE,
	STACK_VALIDATION_TYPES,
	TEST_PROBES,
)
from phase_engine.text_analysis import mentions
from phase_engine.tools.base import (
	GIT_OPERATION,
	RUN_COMMAND,
	VALIDATE_PROJECT,
	WRITE_FILES,
	ToolInvoker,
	ToolResult,
	invoke_tool,
)
from phase_engine.validation_output import failed_outcome, parse_validation_output

logger = logging.getLogger(__name__)

_COMMIT_HASH_RE = re.compile(r"\[[\w./-]+(?:\s+\(root-commit\))?\s+([a-f0-9]{7,40})\]")


@dataclass
class CompleteOptions:
	directory: str
	vision: str
	exploration: ExplorationReport | None = None
	planning: PlanningReport | None = None
	dry_run: bool = False
	validate_changes: bool = True
	run_tests: bool = False
	enable_healing: bool = True
	auto_commit: bool = False
	deploy_target: str | None = None


@dataclass
class _Progress:
	"""Mutable working state; frozen into a CompletionReport at the end."""

	created: list[str] = field(default_factory=list)
	modified: list[str] = field(default_factory=list)
	errors: list[str] = field(default_factory=list)
	completed_steps: list[str] = field(default_factory=list)
	missing_deliverables: list[str] = field(default_factory=list)

	def touched(self) -> list[str]:
		return list(dict.fromkeys(self.created + self.modified))

	def add_written(self, created: Sequence[str], modified: Sequence[str]) -> None:
		for path in created:
			if path not in self.created and path not in self.modified:
				self.created.append(path)
		for path in modified:
			if path not in self.created and path not in self.modified:
				self.modified.append(path)


def fallback_plan(vision: str) -> list[ImplementationStep]:
	"""Minimal plan synthesized from vision keywords when no planning report exists."""
	steps = [
		ImplementationStep(
			id=step_id,
			phase=phase,
			title=title,
			description=f"{title} (derived from the vision)",
			estimated_time=15,
			priority=priority,
			deliverables=deliverables,
		)
		for keywords, step_id, phase, title, deliverables, priority in FALLBACK_STEPS
		if mentions(vision, keywords)
	]
	if steps:
		return steps
	readme = FALLBACK_STEPS[0]
	return [ImplementationStep(
		id=readme[1], phase=readme[2], title=readme[3], estimated_time=15,
		priority=readme[5], deliverables=readme[4],
	)]


def select_validation_types(
	exploration: ExplorationReport | None,
	planning: PlanningReport | None,
) -> list[str]:
	markers: list[str] = []
	if exploration is not None:
		markers.extend(t.lower() for t in exploration.technologies)
	if planning is not None:
		markers.extend(d.chosen.lower() for d in planning.tech_stack)
	types = list(BASE_VALIDATION_TYPES)
	for marker, extra in STACK_VALIDATION_TYPES.items():
		if any(marker in m for m in markers):
			types.extend(t for t in extra if t not in types)
	return types


def parse_commit_hash(result: Any) -> str | None:
	if isinstance(result, dict):
		value = result.get("hash") or result.get("commit")
		return str(value) if value else None
	match = _COMMIT_HASH_RE.search(str(result or ""))
	return match.group(1) if match else None


def completion_confidence(
	files_touched: int,
	outcomes: Sequence[ValidationOutcome],
	error_count: int,
	healing: Sequence[HealingAction],
) -> float:
	score = COMPLETE_BASE_CONFIDENCE
	score += min(COMPLETE_FILE_BONUS_CAP, COMPLETE_FILE_BONUS_PER_FILE * files_touched)
	if outcomes:
		score += COMPLETE_VALIDATION_WEIGHT * (sum(1 for o in outcomes if o.passed) / len(outcomes))
	score -= min(COMPLETE_ERROR_PENALTY_CAP, COMPLETE_ERROR_PENALTY_PER_ERROR * error_count)
	automated = [a for a in healing if a.automated]
	if automated:
		score += COMPLETE_HEALING_CAP * (sum(1 for a in automated if a.executed) / len(automated))
	return clamp(score, MIN_CONFIDENCE, 1.0)


class CompletionEngine:
	"""Apply a plan through the tool invoker and report the outcome."""

	def __init__(self, invoker: ToolInvoker, tool_timeout: float = DEFAULT_LIMITS["tool_timeout"]) -> None:
		self.invoker = invoker
		self.tool_timeout = tool_timeout

	async def _tool(self, name: str, payload: dict[str, Any]) -> ToolResult:
		return await invoke_tool(self.invoker, name, payload, timeout=self.tool_timeout)

	async def execute(self, options: CompleteOptions) -> CompletionReport:
		logger.info("Completing %s (dry_run=%s)", options.directory, options.dry_run)
		try:
			report = await self._complete(options)
		except Exception as exc:
			logger.error("Completion failed: %s", exc, exc_info=True)
			return CompletionReport(
				success=False,
				healing_actions=(HealingAction(
					type=HealingType.ROLLBACK,
					description="Roll back partial changes after a failed completion",
					target=options.directory,
					executed=False,
					automated=False,
				),),
				confidence=COMPLETE_FAILURE_CONFIDENCE,
				summary=f"Completion failed: {exc}",
				next_steps=("Inspect the working directory and roll back partial changes",),
				errors=(str(exc),),
			)
		logger.info(
			"Completion done: success=%s files=%d confidence %.2f",
			report.success, len(report.files_created) + len(report.files_modified), report.confidence,
		)
		return report

	async def _complete(self, options: CompleteOptions) -> CompletionReport:
		planning = options.planning
		if planning is not None and planning.implementation_plan:
			steps = list(planning.implementation_plan)
		else:
			steps = fallback_plan(options.vision)
			logger.info("No implementation plan given; using %d fallback steps", len(steps))

		if options.dry_run:
			return CompletionReport(
				success=True,
				planned_steps=len(steps),
				confidence=COMPLETE_BASE_CONFIDENCE,
				summary=f"Dry run: {len(steps)} steps planned, no changes made",
				next_steps=("Run again without dry run to apply the plan",),
			)

		try:
			ordered = topological_order(steps)
		except PlanGraphError as exc:
			logger.warning("Plan rejected: %s", exc)
			return CompletionReport(
				success=False,
				planned_steps=len(steps),
				confidence=COMPLETE_FAILURE_CONFIDENCE,
				summary=f"Plan rejected: {exc}",
				next_steps=("Re-run planning",),
				errors=(str(exc),),
			)

		ctx = DeliverableContext(
			project_name=project_name_for(options.directory),
			vision=options.vision,
			planning=planning,
		)
		progress = _Progress()
		await self._execute_steps(ordered, ctx, progress)

		outcomes: list[ValidationOutcome] = []
		healing: list[HealingAction] = []
		if options.validate_changes:
			types = select_validation_types(options.exploration, planning)
			outcomes = [await self._validate(t, planning) for t in types]
			if options.enable_healing and any(o.errors for o in outcomes):
				healing, outcomes = await self._heal(outcomes, ctx, progress, planning)

		tests_run = await self._run_tests(progress) if options.run_tests else []

		validation_errors = sum(o.error_count for o in outcomes)
		touched = progress.touched()
		confidence = completion_confidence(
			len(touched), outcomes, validation_errors + len(progress.errors), healing,
		)
		success = (
			not progress.errors
			and len(touched) >= 1
			and (validation_errors == 0 or confidence > COMPLETE_SUCCESS_CONFIDENCE)
		)

		commit_hash = None
		if options.auto_commit and success and not progress.errors and validation_errors == 0:
			commit_hash = await self._commit(touched, len(ordered), options.vision)
			if commit_hash:
				confidence = clamp(confidence + COMPLETE_COMMIT_BONUS, MIN_CONFIDENCE, 1.0)

		deployment = None
		if options.deploy_target and success:
			deployment = self._deploy(options.deploy_target)
			if deployment.status == "recorded":
				confidence = clamp(confidence + COMPLETE_DEPLOY_BONUS, MIN_CONFIDENCE, 1.0)

		return CompletionReport(
			success=success,
			planned_steps=len(steps),
			files_created=tuple(progress.created),
			files_modified=tuple(progress.modified),
			tests_run=tuple(tests_run),
			validation_results=tuple(outcomes),
			healing_actions=tuple(healing),
			commit_hash=commit_hash,
			deployment=deployment,
			confidence=confidence,
			summary=self._summary(progress, len(ordered), outcomes, healing),
			next_steps=tuple(self._next_steps(success, outcomes, healing, commit_hash, deployment)),
			errors=tuple(progress.errors),
		)

	async def _execute_steps(
		self,
		ordered: Sequence[ImplementationStep],
		ctx: DeliverableContext,
		progress: _Progress,
	) -> None:
		failed: set[str] = set()
		for step in ordered:
			blocked = [d for d in step.dependencies if d in failed]
			if blocked:
				progress.errors.append(f"Step {step.id} skipped: dependency {blocked[0]} failed")
				progress.missing_deliverables.extend(d for d in step.deliverables if is_path_like(d))
				failed.add(step.id)
				continue
			files = files_for_step(step, ctx)
			if not files:
				logger.debug("Step %s produces no files", step.id)
				progress.completed_steps.append(step.id)
				continue
			result = await self._tool(WRITE_FILES, {"files": [f.as_payload() for f in files]})
			if not result.success:
				logger.warning("Step %s failed: %s", step.id, result.error)
				progress.errors.append(f"Step {step.id} failed: {result.error}")
				progress.missing_deliverables.extend(f.path for f in files)
				failed.add(step.id)
				continue
			written = result.result if isinstance(result.result, dict) else {}
			created = written.get("created", [f.path for f in files])
			modified = written.get("modified", [])
			progress.add_written(created, modified)
			progress.completed_steps.append(step.id)
			logger.debug("Step %s wrote %d files", step.id, len(files))

	async def _validate(self, vtype: str, planning: PlanningReport | None) -> ValidationOutcome:
		payload: dict[str, Any] = {"type": vtype}
		if planning is not None:
			for rule in planning.validation_criteria:
				if rule.type == vtype and rule.command:
					payload["command"] = rule.command
					break
		result = await self._tool(VALIDATE_PROJECT, payload)
		if not result.success:
			return failed_outcome(vtype, result.error or f"{vtype} validation could not run")
		outcome = parse_validation_output(vtype, result.result)
		logger.debug("Validation %s: passed=%s errors=%d", vtype, outcome.passed, outcome.error_count)
		return outcome

	async def _heal(
		self,
		outcomes: list[ValidationOutcome],
		ctx: DeliverableContext,
		progress: _Progress,
		planning: PlanningReport | None,
	) -> tuple[list[HealingAction], list[ValidationOutcome]]:
		healer = CompletionHealer(self._tool, ctx)
		missing = list(dict.fromkeys(progress.missing_deliverables))
		actions, affected = await healer.heal(outcomes, missing)
		for action in actions:
			if action.executed and action.type == HealingType.CREATE:
				progress.add_written([p.strip() for p in action.target.split(",") if p.strip()], [])

		# Exactly one revalidation of each affected type
		revised: list[ValidationOutcome] = []
		for outcome in outcomes:
			if outcome.type not in affected:
				revised.append(outcome)
				continue
			after = await self._validate(outcome.type, planning)
			if after.error_count > outcome.error_count:
				logger.warning(
					"Revalidation of %s got worse (%d -> %d errors); keeping pre-heal result",
					outcome.type, outcome.error_count, after.error_count,
				)
				revised.append(outcome)
			else:
				revised.append(after)
		return actions, revised

	async def _run_tests(self, progress: _Progress) -> list[str]:
		probes = list(TEST_PROBES)
		if "package.json" in progress.touched():
			probes.append(MANIFEST_TEST_PROBE)
		ran: list[str] = []
		for command in probes:
			result = await self._tool(RUN_COMMAND, {"command": command})
			if result.success:
				ran.append(command)
			else:
				logger.warning("Test probe %r failed: %s", command, result.error)
				ran.append(f"{command} (failed)")
		return ran

	async def _commit(self, touched: Sequence[str], step_count: int, vision: str) -> str | None:
		added = await self._tool(GIT_OPERATION, {"operation": "add", "files": list(touched)})
		if not added.success:
			logger.warning("git add failed: %s", added.error)
			return None
		headline = vision.strip().splitlines()[0][:60] if vision.strip() else "planned changes"
		message = f"Implement: {headline}\n\n{step_count} steps, {len(touched)} files"
		committed = await self._tool(GIT_OPERATION, {"operation": "commit", "message": message})
		if not committed.success:
			logger.warning("git commit failed: %s", committed.error)
			return None
		commit_hash = parse_commit_hash(committed.result)
		if commit_hash is None:
			logger.warning("Commit succeeded but no hash found in: %s", committed.text[:200])
		return commit_hash

	def _deploy(self, target: str) -> DeploymentRecord:
		"""Stub: record the intent, deploy nothing."""
		if not target.strip():
			logger.warning("Empty deployment target; nothing recorded")
			return DeploymentRecord(target=target, status="failed", message="Empty deployment target")
		logger.info("Deployment to %s recorded", target)
		return DeploymentRecord(
			target=target,
			status="recorded",
			message=f"Deployment to {target} recorded; no deployment was performed",
		)

	@staticmethod
	def _summary(
		progress: _Progress,
		step_count: int,
		outcomes: Sequence[ValidationOutcome],
		healing: Sequence[HealingAction],
	) -> str:
		parts = [
			f"Completed {len(progress.completed_steps)}/{step_count} steps",
			f"created {len(progress.created)} files, modified {len(progress.modified)}",
		]
		if outcomes:
			parts.append(f"validation {sum(1 for o in outcomes if o.passed)}/{len(outcomes)} passed")
		if healing:
			parts.append(f"{sum(1 for a in healing if a.executed)}/{len(healing)} healing actions executed")
		if progress.errors:
			parts.append(f"{len(progress.errors)} errors")
		return "; ".join(parts)

	@staticmethod
	def _next_steps(
		success: bool,
		outcomes: Sequence[ValidationOutcome],
		healing: Sequence[HealingAction],
		commit_hash: str | None,
		deployment: DeploymentRecord | None,
	) -> list[str]:
		steps: list[str] = []
		failing = [o.type for o in outcomes if not o.passed]
		if failing:
			steps.append("Fix remaining validation failures: " + ", ".join(failing))
		steps.extend(a.description for a in healing if not a.automated)
		if success and commit_hash is None:
			steps.append("Review and commit the changes")
		if deployment is not None:
			steps.append(f"Run the real deployment to {deployment.target}")
		if not steps:
			steps.append("Run the application and verify the behaviour end to end")
		return steps
