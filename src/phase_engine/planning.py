"""PLAN phase: turn a vision plus exploration findings into a PlanningReport."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from phase_engine.constants import (
	DEFAULT_LIMITS,
	DEFAULT_TECH_CONFIDENCE,
	EXISTING_TECH_CONFIDENCE,
	EXPLICIT_TECH_CONFIDENCE,
	LOW_TECH_CONFIDENCE,
	MIN_CONFIDENCE,
	PLAN_COMPLETE_THRESHOLD,
	PLAN_FAILURE_CONFIDENCE,
	PLAN_WEIGHTS,
	clamp,
)
from phase_engine.dag import check_plan_graph, topological_order
from phase_engine.models import (
	Complexity,
	DependencyInfo,
	DependencyMap,
	DirectoryPlan,
	ExplorationReport,
	FilePlan,
	FileStructurePlan,
	ImplementationStep,
	Phase,
	PlanningReport,
	Priority,
	Risk,
	StepPhase,
	TechStackDecision,
	ValidationRule,
)
from phase_engine.tables import (
	ALWAYS_CATEGORIES,
	ALWAYS_NON_FUNCTIONAL,
	ASSUMPTIONS,
	CATEGORY_TRIGGERS,
	COMPLEXITY_KEYWORDS,
	COMPLEXITY_THRESHOLDS,
	CONVENTIONS,
	DEFAULT_FEATURES,
	DEPENDENCY_TABLE,
	DIRECTORY_SKELETON,
	FILE_SKELETON,
	INTEGRATION_KEYWORDS,
	NON_FUNCTIONAL_RULES,
	SIMPLE_DATABASE_DEFAULT,
	STACK_DEFAULTS,
	STACK_EXISTING,
	STACK_EXPLICIT,
	TYPED_LANGUAGE_MARKERS,
	VALIDATION_RULE_TEMPLATES,
	StackChoice,
)
from phase_engine.text_analysis import FEATURE_PATTERNS, extract_phrases, mentions, word_count, word_hits

logger = logging.getLogger(__name__)


@dataclass
class PlanOptions:
	constraints: tuple[str, ...] = ()
	complexity: Complexity | None = None


# -- requirement analysis --


def extract_features(vision: str, limit: int | None = None) -> list[str]:
	limit = limit or DEFAULT_LIMITS["max_features"]
	features = [p.render() for p in extract_phrases(vision, FEATURE_PATTERNS, min_len=3, limit=limit)]
	return features or list(DEFAULT_FEATURES)


def non_functional_requirements(vision: str, constraints: Sequence[str] = ()) -> list[str]:
	found = [sentence for keywords, sentence in NON_FUNCTIONAL_RULES if mentions(vision, keywords)]
	found.extend(ALWAYS_NON_FUNCTIONAL)
	found.extend(f"Respect constraint: {c}" for c in constraints)
	return found


def assess_complexity(vision: str, exploration: ExplorationReport) -> Complexity:
	score = 0
	words = word_count(vision)
	if words > 50:
		score += 1
	if words > 100:
		score += 1
	lowered = vision.lower()
	score += sum(weight for keyword, weight in COMPLEXITY_KEYWORDS.items() if keyword in lowered)
	if len(exploration.technologies) > 5:
		score += 1
	if len(exploration.key_files) > 20:
		score += 1
	for threshold, level in COMPLEXITY_THRESHOLDS:
		if score >= threshold:
			return level
	return Complexity.SIMPLE


# -- technology stack --


def _decision(category: str, choice: StackChoice, confidence: float) -> TechStackDecision:
	return TechStackDecision(
		category=category,
		chosen=choice.chosen,
		alternatives=choice.alternatives,
		reasoning=choice.reasoning,
		tradeoffs=choice.tradeoffs,
		confidence=confidence,
	)


def choose_stack(vision: str, technologies: Sequence[str], complexity: Complexity) -> list[TechStackDecision]:
	"""One decision per relevant category: explicit mention > existing technology > default."""
	existing = {t.lower() for t in technologies}
	decisions: list[TechStackDecision] = []
	for category, (keywords, existing_triggers) in CATEGORY_TRIGGERS.items():
		needed = (
			category in ALWAYS_CATEGORIES
			or mentions(vision, keywords)
			or any(t in existing for t in existing_triggers)
		)
		if not needed:
			continue
		decision = None
		for explicit_keywords, choice in STACK_EXPLICIT.get(category, ()):
			if mentions(vision, explicit_keywords):
				decision = _decision(category, choice, EXPLICIT_TECH_CONFIDENCE)
				break
		if decision is None:
			for tech, choice in STACK_EXISTING.get(category, ()):
				if tech in existing:
					decision = _decision(category, choice, EXISTING_TECH_CONFIDENCE)
					break
		if decision is None:
			if category == "database" and complexity == Complexity.SIMPLE:
				decision = _decision(category, SIMPLE_DATABASE_DEFAULT, DEFAULT_TECH_CONFIDENCE)
			else:
				decision = _decision(category, STACK_DEFAULTS[category], DEFAULT_TECH_CONFIDENCE)
		decisions.append(decision)
	return decisions


def is_typed(stack: Sequence[TechStackDecision]) -> bool:
	return any(marker in d.chosen for d in stack for marker in TYPED_LANGUAGE_MARKERS)


def _has(stack: Sequence[TechStackDecision], category: str) -> bool:
	return any(d.category == category for d in stack)


# -- layout and dependencies --


def plan_file_structure(stack: Sequence[TechStackDecision]) -> FileStructurePlan:
	ext = "ts" if is_typed(stack) else "js"
	frontend = _has(stack, "frontend")
	directories = tuple(
		DirectoryPlan(path=path, purpose=purpose, contents=tuple(c.format(ext=ext) for c in contents))
		for path, purpose, contents, needs_frontend in DIRECTORY_SKELETON
		if frontend or not needs_frontend
	)
	files = tuple(
		FilePlan(
			path=path.format(ext=ext),
			purpose=purpose,
			dependencies=deps,
			exports=exports,
			size=size,  # type: ignore[arg-type]
			complexity=complexity,
		)
		for path, purpose, deps, exports, size, complexity, needs_frontend in FILE_SKELETON
		if frontend or not needs_frontend
	)
	return FileStructurePlan(directories=directories, files=files, conventions=CONVENTIONS)


def map_dependencies(stack: Sequence[TechStackDecision]) -> DependencyMap:
	buckets: dict[str, list[DependencyInfo]] = {"production": [], "development": [], "peer": []}
	versions: dict[str, set[str]] = {}
	for decision in stack:
		for bucket, deps in DEPENDENCY_TABLE.get(decision.chosen, {}).items():
			for dep in deps:
				versions.setdefault(dep.name, set()).add(dep.version)
				if all(d.name != dep.name for d in buckets[bucket]):
					buckets[bucket].append(dep)
	conflicts = tuple(
		f"{name}: {' vs '.join(sorted(v))}" for name, v in sorted(versions.items()) if len(v) > 1
	)
	return DependencyMap(
		production=tuple(buckets["production"]),
		development=tuple(buckets["development"]),
		peer=tuple(buckets["peer"]),
		conflicts=conflicts,
	)


# -- implementation plan --


def _slug(text: str) -> str:
	return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def build_plan(
	integrations: Sequence[str],
	stack: Sequence[TechStackDecision],
	complexity: Complexity,
) -> list[ImplementationStep]:
	"""Assemble setup -> [infrastructure] -> core -> [features] -> testing / documentation."""
	typed = is_typed(stack)
	backend = _has(stack, "backend")
	database = _has(stack, "database")

	setup_deliverables = ["package.json", "README.md", "Directory structure", "Configuration files"]
	if typed:
		setup_deliverables.append("tsconfig.json")
	steps = [
		ImplementationStep(
			id="setup-project",
			phase=StepPhase.SETUP,
			title="Project Setup",
			description="Initialize project structure and configuration",
			estimated_time=30,
			priority=Priority.CRITICAL,
			complexity=Complexity.SIMPLE,
			validation_criteria=("Dependencies install cleanly", "Project structure matches plan"),
			deliverables=tuple(setup_deliverables),
			risks=("Dependency conflicts",),
		),
	]
	core_deps = ["setup-project"]
	if backend or database:
		infra = []
		if backend:
			infra.append("Server configuration")
		if database:
			infra.append("Database configuration")
		steps.append(ImplementationStep(
			id="setup-infrastructure",
			phase=StepPhase.INFRASTRUCTURE,
			title="Infrastructure Setup",
			description="Configure server and data storage",
			dependencies=("setup-project",),
			estimated_time=60,
			priority=Priority.HIGH,
			complexity=Complexity.MODERATE,
			validation_criteria=("Services start without errors",),
			deliverables=tuple(infra),
			risks=("Environment configuration drift",),
		))
		core_deps.append("setup-infrastructure")

	core_deliverables = ["Main components", "Business logic"]
	if backend:
		core_deliverables.append("API endpoints")
	steps.append(ImplementationStep(
		id="implement-core",
		phase=StepPhase.CORE,
		title="Core Implementation",
		description="Implement main functionality",
		dependencies=tuple(core_deps),
		estimated_time=120,
		priority=Priority.CRITICAL,
		complexity=Complexity.COMPLEX if complexity == Complexity.COMPLEX else Complexity.MODERATE,
		validation_criteria=("Core features work as expected", "Code passes type checking" if typed else "Code passes linting"),
		deliverables=tuple(core_deliverables),
		risks=("Scope creep", "Technical complexity"),
	))

	feature_ids: list[str] = []
	for integration in integrations:
		step_id = f"integrate-{_slug(integration)}"
		feature_ids.append(step_id)
		steps.append(ImplementationStep(
			id=step_id,
			phase=StepPhase.FEATURES,
			title=integration,
			description=f"Implement {integration.lower()}",
			dependencies=("implement-core",),
			estimated_time=60,
			priority=Priority.HIGH,
			complexity=Complexity.MODERATE,
			validation_criteria=(f"{integration} works end to end",),
			deliverables=(f"{integration} feature",),
			risks=("Third-party API changes",),
		))

	steps.append(ImplementationStep(
		id="add-tests",
		phase=StepPhase.TESTING,
		title="Testing Implementation",
		description="Add comprehensive tests",
		dependencies=("implement-core", *feature_ids),
		estimated_time=60,
		priority=Priority.HIGH,
		complexity=Complexity.MODERATE,
		validation_criteria=("All tests pass", "Critical paths covered"),
		deliverables=("Unit tests", "Integration tests", "Test utilities"),
		risks=("Flaky tests",),
	))
	steps.append(ImplementationStep(
		id="add-documentation",
		phase=StepPhase.DOCUMENTATION,
		title="Documentation",
		description="Create comprehensive documentation",
		dependencies=("implement-core",),
		estimated_time=45,
		priority=Priority.MEDIUM,
		complexity=Complexity.SIMPLE,
		validation_criteria=("Documentation is complete and accurate",),
		deliverables=("API documentation", "Code comments", "Usage examples"),
	))
	check_plan_graph(steps)
	return topological_order(steps)


def validation_rules(stack: Sequence[TechStackDecision]) -> list[ValidationRule]:
	rules = []
	if is_typed(stack):
		rules.append(VALIDATION_RULE_TEMPLATES["typescript"])
	rules.extend(VALIDATION_RULE_TEMPLATES[k] for k in ("eslint", "test", "build"))
	return rules


def assess_risks(
	stack: Sequence[TechStackDecision],
	steps: Sequence[ImplementationStep],
	integrations: Sequence[str],
) -> list[Risk]:
	risks: list[Risk] = []
	uncertain = [d for d in stack if d.confidence < LOW_TECH_CONFIDENCE]
	if uncertain:
		risks.append(Risk(
			id="tech-stack-uncertainty",
			category="technical",
			description="Low confidence in: " + ", ".join(d.chosen for d in uncertain),
			probability="medium",
			impact="medium",
			mitigation=("Prototype the uncertain choices first", "Keep alternatives documented"),
			owner="agent",
		))
	complex_steps = [s for s in steps if s.complexity == Complexity.COMPLEX]
	if complex_steps:
		risks.append(Risk(
			id="implementation-complexity",
			category="complexity",
			description="Complex steps: " + ", ".join(s.id for s in complex_steps),
			probability="medium",
			impact="high",
			mitigation=("Break complex steps into smaller tasks", "Review intermediate results"),
			owner="agent",
		))
	if integrations:
		risks.append(Risk(
			id="integration-risk",
			category="integration",
			description="External integrations: " + ", ".join(integrations),
			probability="medium",
			impact="medium",
			mitigation=("Mock integrations in tests", "Add retries and error handling"),
			owner="team",
		))
	return risks


def plan_confidence(
	exploration: ExplorationReport,
	stack: Sequence[TechStackDecision],
	risks: Sequence[Risk],
) -> float:
	base, exploration_bonus, tech_weight, risk_penalty = PLAN_WEIGHTS
	score = base
	if exploration.confidence > 0.7:
		score += exploration_bonus
	if stack:
		avg = sum(d.confidence for d in stack) / len(stack)
		score += tech_weight * (avg - 0.5)
	score -= risk_penalty * sum(1 for r in risks if r.impact == "high")
	return clamp(score, MIN_CONFIDENCE, 1.0)


def estimate_effort(steps: Sequence[ImplementationStep]) -> str:
	hours = sum(s.estimated_time for s in steps) / 60
	if hours < 2:
		return "1-2 hours"
	if hours < 8:
		return f"{round(hours)} hours"
	if hours < 24:
		return "1 day"
	return f"{math.ceil(hours / 8)} days"


class PlanningEngine:
	"""Derive a PlanningReport. Pure computation; no tool calls."""

	async def execute(
		self,
		directory: str,
		vision: str,
		exploration: ExplorationReport,
		options: PlanOptions | None = None,
	) -> PlanningReport:
		options = options or PlanOptions()
		logger.info("Planning for %s", directory)
		try:
			report = self._plan(vision, exploration, options)
		except Exception as exc:
			logger.error("Planning failed: %s", exc, exc_info=True)
			return PlanningReport(
				success=False,
				risks=(Risk(
					id="planning_failure",
					category="technical",
					description=f"Planning failed: {exc}",
					probability="high",
					impact="high",
					mitigation=("Re-run exploration", "Clarify the vision"),
					owner="human",
				),),
				confidence=PLAN_FAILURE_CONFIDENCE,
				next_phase=Phase.EXPLORE,
			)
		logger.info(
			"Plan ready: %d steps, complexity %s, confidence %.2f -> %s",
			len(report.implementation_plan), report.complexity.value, report.confidence, report.next_phase.value,
		)
		return report

	def _plan(self, vision: str, exploration: ExplorationReport, options: PlanOptions) -> PlanningReport:
		features = extract_features(vision)
		nfrs = non_functional_requirements(vision, options.constraints)
		integrations = word_hits(vision, INTEGRATION_KEYWORDS)
		complexity = options.complexity or assess_complexity(vision, exploration)
		logger.debug("Features=%s integrations=%s complexity=%s", features, integrations, complexity.value)

		stack = choose_stack(vision, exploration.technologies, complexity)
		steps = build_plan(integrations, stack, complexity)
		risks = assess_risks(stack, steps, integrations)
		confidence = plan_confidence(exploration, stack, risks)
		return PlanningReport(
			success=True,
			features=tuple(features),
			non_functional=tuple(nfrs),
			integrations=tuple(integrations),
			complexity=complexity,
			tech_stack=tuple(stack),
			implementation_plan=tuple(steps),
			file_structure=plan_file_structure(stack),
			dependencies=map_dependencies(stack),
			validation_criteria=tuple(validation_rules(stack)),
			risks=tuple(risks),
			assumptions=ASSUMPTIONS,
			estimated_effort=estimate_effort(steps),
			confidence=confidence,
			next_phase=Phase.COMPLETE if confidence >= PLAN_COMPLETE_THRESHOLD else Phase.EXPLORE,
		)
