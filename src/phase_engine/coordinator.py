"""Coordinator -- drives explore -> plan -> complete with bounded back-edges."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from phase_engine.completion import CompleteOptions, CompletionEngine
from phase_engine.config import EngineConfig
from phase_engine.exploration import ExplorationEngine, ExploreOptions
from phase_engine.ledger import PhaseLedger
from phase_engine.metrics import PhaseMetrics, RunMetrics, Timer
from phase_engine.models import Complexity, CompletionReport, ExplorationReport, Phase, PlanningReport
from phase_engine.planning import PlanningEngine, PlanOptions
from phase_engine.tools.base import ToolInvoker
from phase_engine.tracing import PhaseTracer, record_report

logger = logging.getLogger(__name__)

STOP_COMPLETED = "completed"
STOP_RETRY_BUDGET = "retry_budget_exhausted"


@dataclass
class CoordinatorReport:
	"""Summary of one coordinated run."""

	exploration: ExplorationReport | None = None
	planning: PlanningReport | None = None
	completion: CompletionReport | None = None
	retries: int = 0
	stopped_reason: str = ""
	metrics: RunMetrics = field(default_factory=RunMetrics)

	@property
	def success(self) -> bool:
		return self.completion is not None and self.completion.success

	def to_dict(self) -> dict[str, Any]:
		return {
			"success": self.success,
			"retries": self.retries,
			"stopped_reason": self.stopped_reason,
			"exploration": self.exploration.to_dict() if self.exploration else None,
			"planning": self.planning.to_dict() if self.planning else None,
			"completion": self.completion.to_dict() if self.completion else None,
			"metrics": self.metrics.to_dict(),
		}


class PhaseCoordinator:
	"""Run the three phases in order, honoring next_phase back-edges.

	Flow:
	1. Explore; while the report asks for more exploration and retries remain, explore again
	2. Plan from the best exploration so far; a plan asking for EXPLORE loops back to 1
	3. When retries run out: continue if planning succeeded, otherwise stop
	4. Complete
	Every report is recorded in the caller's ledger.
	"""

	def __init__(
		self,
		invoker: ToolInvoker,
		config: EngineConfig | None = None,
		ledger: PhaseLedger | None = None,
		tracer: PhaseTracer | None = None,
	) -> None:
		self.config = config or EngineConfig()
		self.ledger = ledger if ledger is not None else PhaseLedger()
		self.tracer = tracer or PhaseTracer(self.config.tracing)
		timeout = self.config.tools.timeout
		self.explorer = ExplorationEngine(invoker, tool_timeout=timeout)
		self.planner = PlanningEngine()
		self.completer = CompletionEngine(invoker, tool_timeout=timeout)

	@property
	def max_phase_retries(self) -> int:
		return max(0, self.config.coordinator.max_phase_retries)

	def explore_options(self) -> ExploreOptions:
		ec = self.config.exploration
		return ExploreOptions(
			max_files_to_read=ec.max_files_to_read,
			enable_validation=ec.enable_validation,
			enable_healing=ec.enable_healing,
		)

	def plan_options(self) -> PlanOptions:
		pc = self.config.planning
		return PlanOptions(
			constraints=tuple(pc.constraints),
			complexity=Complexity(pc.complexity) if pc.complexity else None,
		)

	def complete_options(
		self,
		directory: str,
		vision: str,
		exploration: ExplorationReport | None,
		planning: PlanningReport | None,
	) -> CompleteOptions:
		cc = self.config.completion
		return CompleteOptions(
			directory=directory,
			vision=vision,
			exploration=exploration,
			planning=planning,
			dry_run=cc.dry_run,
			validate_changes=cc.validate_changes,
			run_tests=cc.run_tests,
			enable_healing=cc.enable_healing,
			auto_commit=cc.auto_commit,
			deploy_target=cc.deploy_target or None,
		)

	async def explore(self, directory: str, vision: str, metrics: RunMetrics, attempt: int = 1) -> ExplorationReport:
		with self.tracer.phase_span(Phase.EXPLORE.value, directory, attempt) as span, Timer() as timer:
			report = await self.explorer.execute(directory, vision, self.explore_options())
			record_report(span, report.confidence, report.next_phase.value)
		self.ledger.record(report)
		metrics.add_phase(PhaseMetrics(
			phase=Phase.EXPLORE.value, attempt=attempt, duration_s=timer.elapsed,
			confidence=report.confidence, next_phase=report.next_phase.value,
		))
		return report

	async def plan(
		self, directory: str, vision: str, exploration: ExplorationReport, metrics: RunMetrics, attempt: int = 1,
	) -> PlanningReport:
		with self.tracer.phase_span(Phase.PLAN.value, directory, attempt) as span, Timer() as timer:
			report = await self.planner.execute(directory, vision, exploration, self.plan_options())
			record_report(span, report.confidence, report.next_phase.value, report.success)
		self.ledger.record(report)
		metrics.add_phase(PhaseMetrics(
			phase=Phase.PLAN.value, attempt=attempt, duration_s=timer.elapsed,
			confidence=report.confidence, next_phase=report.next_phase.value, success=report.success,
		))
		return report

	async def complete(self, options: CompleteOptions, metrics: RunMetrics) -> CompletionReport:
		with self.tracer.phase_span(Phase.COMPLETE.value, options.directory) as span, Timer() as timer:
			report = await self.completer.execute(options)
			record_report(span, report.confidence, success=report.success)
		self.ledger.record(report)
		metrics.add_phase(PhaseMetrics(
			phase=Phase.COMPLETE.value, duration_s=timer.elapsed,
			confidence=report.confidence, success=report.success,
		))
		return report

	async def run(self, directory: str, vision: str) -> CoordinatorReport:
		"""Execute the full workflow for one directory and vision."""
		report = CoordinatorReport()
		metrics = report.metrics
		logger.info("Phase run starting for %s (max %d retries)", directory, self.max_phase_retries)

		with Timer() as total:
			best: ExplorationReport | None = None
			planning: PlanningReport | None = None
			explore_attempt = 0
			plan_attempt = 0
			while True:
				explore_attempt += 1
				exploration = await self.explore(directory, vision, metrics, explore_attempt)
				if best is None or exploration.confidence >= best.confidence:
					best = exploration
				if exploration.next_phase == Phase.EXPLORE and report.retries < self.max_phase_retries:
					report.retries += 1
					logger.info("Exploration asked to re-explore (retry %d)", report.retries)
					continue

				plan_attempt += 1
				planning = await self.plan(directory, vision, best, metrics, plan_attempt)
				if planning.next_phase != Phase.EXPLORE:
					break
				if report.retries < self.max_phase_retries:
					report.retries += 1
					logger.info("Planning asked to re-explore (retry %d)", report.retries)
					continue
				break

			report.exploration = best
			report.planning = planning
			if planning is None or not planning.success:
				logger.warning("Retry budget exhausted without a successful plan; stopping")
				report.stopped_reason = STOP_RETRY_BUDGET
			else:
				if planning.next_phase == Phase.EXPLORE:
					logger.info("Retry budget exhausted; proceeding with best available plan")
				report.completion = await self.complete(
					self.complete_options(directory, vision, best, planning), metrics,
				)
				report.stopped_reason = STOP_COMPLETED

		metrics.total_duration_s = total.elapsed
		metrics.retries = report.retries
		metrics.stopped_reason = report.stopped_reason
		logger.info(
			"Phase run finished: %s after %d retries (success=%s)",
			report.stopped_reason, report.retries, report.success,
		)
		return report
