"""CLI interface for phase-engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from phase_engine.config import CONFIG_FILENAME, EngineConfig, load_config, validate_config
from phase_engine.coordinator import PhaseCoordinator
from phase_engine.dag import topological_layers
from phase_engine.ledger import PhaseLedger
from phase_engine.metrics import setup_logging
from phase_engine.models import ExplorationReport, PlanningReport
from phase_engine.tools.local import LocalToolInvoker


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="phase-engine",
		description="Phase engine - explore, plan and complete a vision in a working directory",
	)
	sub = parser.add_subparsers(dest="command")

	def common(p: argparse.ArgumentParser) -> None:
		p.add_argument("--config", default=None, help=f"Config file path (default: ./{CONFIG_FILENAME} if present)")
		p.add_argument("--dir", default=None, help="Working directory (overrides target.path)")
		p.add_argument("--vision", default=None, help="What to build (overrides target.vision)")
		p.add_argument("--json", action="store_true", help="Print the report as JSON")

	# phase-engine run
	run = sub.add_parser("run", help="Run explore -> plan -> complete")
	common(run)
	run.add_argument("--dry-run", action="store_true", help="Plan and report without writing anything")
	run.add_argument("--no-validate", action="store_true", help="Skip validation after completion")
	run.add_argument("--no-heal", action="store_true", help="Skip healing after failed validation")
	run.add_argument("--run-tests", action="store_true", help="Run the test probe battery")
	run.add_argument("--commit", action="store_true", help="Commit changes when the run succeeds")
	run.add_argument("--deploy", default=None, metavar="TARGET", help="Record a deployment to TARGET")
	run.add_argument("--max-retries", type=int, default=None, help="Phase retry budget")

	# phase-engine explore
	explore = sub.add_parser("explore", help="Run the exploration phase only")
	common(explore)
	explore.add_argument("--max-files", type=int, default=None, help="Key files to read")
	explore.add_argument("--validate", action="store_true", help="Run the exploration validation battery")
	explore.add_argument("--heal", action="store_true", help="Heal failed exploration checks")

	# phase-engine plan
	plan = sub.add_parser("plan", help="Explore, then print the implementation plan")
	common(plan)
	plan.add_argument("--complexity", choices=["simple", "moderate", "complex"], default=None)

	# phase-engine validate-config
	vc = sub.add_parser("validate-config", help="Validate a config file")
	vc.add_argument("--config", default=CONFIG_FILENAME)

	return parser


def _load(args: argparse.Namespace) -> EngineConfig:
	"""Load the config file when there is one, then apply command-line overrides."""
	path = args.config
	if path is None and Path(CONFIG_FILENAME).exists():
		path = CONFIG_FILENAME
	config = load_config(path) if path else EngineConfig()
	if args.dir:
		config.target.path = args.dir
	if args.vision:
		config.target.vision = args.vision
	_configure_logging(config)
	return config


def _configure_logging(config: EngineConfig) -> None:
	if config.logging.json_format:
		setup_logging(config.logging.level, json_format=True)
	else:
		logging.getLogger("phase_engine").setLevel(getattr(logging, config.logging.level.upper(), logging.INFO))


def _invoker(config: EngineConfig) -> LocalToolInvoker:
	tc = config.tools
	return LocalToolInvoker(
		config.target.resolved_path,
		command_timeout=tc.command_timeout,
		tree_max_depth=tc.tree_max_depth,
		tree_char_budget=tc.tree_char_budget,
		search_endpoint=tc.search_endpoint,
		validation_commands=tc.validation_commands,
	)


def _print_exploration(report: ExplorationReport) -> None:
	print(f"Confidence: {report.confidence:.2f} -> {report.next_phase.value}")
	print(f"Key files ({len(report.key_files)}): {', '.join(report.key_files) or '-'}")
	print(f"Technologies: {', '.join(report.technologies) or '-'}")
	for req in report.requirements:
		print(f"  requirement: {req}")
	for rec in report.recommendations:
		print(f"  recommendation: {rec}")
	if report.validation is not None:
		print(f"Validation: {'passed' if report.validation.passed else 'failed'}")
		for msg in report.validation.errors + report.validation.warnings:
			print(f"  - {msg}")


def _print_plan(report: PlanningReport) -> None:
	if not report.success:
		print("Planning failed")
		for risk in report.risks:
			print(f"  {risk.description}")
		return
	print(f"Complexity: {report.complexity.value}  Effort: {report.estimated_effort}")
	print(f"Confidence: {report.confidence:.2f} -> {report.next_phase.value}")
	for decision in report.tech_stack:
		print(f"  {decision.category}: {decision.chosen} ({decision.confidence:.2f}) - {decision.reasoning}")
	print("Steps:")
	for i, step in enumerate(report.implementation_plan, 1):
		deps = f" <- {', '.join(step.dependencies)}" if step.dependencies else ""
		print(f"  {i}. [{step.priority.value}] {step.id}: {step.title} ({step.estimated_time}m){deps}")
	layers = topological_layers(report.implementation_plan)
	print("Layers: " + " | ".join(", ".join(step.id for step in layer) for layer in layers))


def cmd_run(args: argparse.Namespace) -> int:
	"""Run the full coordinated workflow."""
	config = _load(args)
	if not config.target.vision:
		print("Error: a vision is required (--vision or target.vision)")
		return 1
	cc = config.completion
	cc.dry_run = cc.dry_run or args.dry_run
	cc.validate_changes = cc.validate_changes and not args.no_validate
	cc.enable_healing = cc.enable_healing and not args.no_heal
	cc.run_tests = cc.run_tests or args.run_tests
	cc.auto_commit = cc.auto_commit or args.commit
	if args.deploy:
		cc.deploy_target = args.deploy
	if args.max_retries is not None:
		config.coordinator.max_phase_retries = args.max_retries

	coordinator = PhaseCoordinator(_invoker(config), config, PhaseLedger())
	try:
		report = asyncio.run(coordinator.run(str(config.target.resolved_path), config.target.vision))
	finally:
		coordinator.tracer.shutdown()

	if args.json:
		print(json.dumps(report.to_dict(), indent=2))
		return 0 if report.success else 1

	if report.exploration is not None:
		print("== Explore ==")
		_print_exploration(report.exploration)
	if report.planning is not None:
		print("== Plan ==")
		_print_plan(report.planning)
	if report.completion is not None:
		c = report.completion
		print("== Complete ==")
		print(c.summary)
		print(f"Success: {c.success}  Confidence: {c.confidence:.2f}  Validation errors: {c.validation_error_count}")
		if c.commit_hash:
			print(f"Commit: {c.commit_hash}")
		for err in c.errors:
			print(f"  error: {err}")
		for step in c.next_steps:
			print(f"  next: {step}")
	phases = [
		f"{phase} x{report.metrics.attempts_of(phase)} {report.metrics.duration_of(phase):.2f}s"
		for phase in ("EXPLORE", "PLAN", "COMPLETE")
		if report.metrics.attempts_of(phase)
	]
	print(f"\nPhases: {', '.join(phases)}")
	print(f"Stopped: {report.stopped_reason} after {report.retries} retries")
	return 0 if report.success else 1


def cmd_explore(args: argparse.Namespace) -> int:
	"""Run exploration only."""
	config = _load(args)
	ec = config.exploration
	if args.max_files is not None:
		ec.max_files_to_read = args.max_files
	ec.enable_validation = ec.enable_validation or args.validate
	ec.enable_healing = ec.enable_healing or args.heal

	coordinator = PhaseCoordinator(_invoker(config), config)
	report = asyncio.run(coordinator.explorer.execute(
		str(config.target.resolved_path), config.target.vision, coordinator.explore_options(),
	))
	if args.json:
		print(json.dumps(report.to_dict(), indent=2))
	else:
		_print_exploration(report)
	return 0


def cmd_plan(args: argparse.Namespace) -> int:
	"""Explore, then plan; print the plan without completing it."""
	config = _load(args)
	if not config.target.vision:
		print("Error: a vision is required (--vision or target.vision)")
		return 1
	if args.complexity:
		config.planning.complexity = args.complexity

	coordinator = PhaseCoordinator(_invoker(config), config)
	directory = str(config.target.resolved_path)

	async def _run() -> PlanningReport:
		exploration = await coordinator.explorer.execute(
			directory, config.target.vision, coordinator.explore_options(),
		)
		return await coordinator.planner.execute(directory, config.target.vision, exploration, coordinator.plan_options())

	report = asyncio.run(_run())
	if args.json:
		print(json.dumps(report.to_dict(), indent=2))
	else:
		_print_plan(report)
	return 0 if report.success else 1


def cmd_validate_config(args: argparse.Namespace) -> int:
	"""Validate config file semantically."""
	config = load_config(args.config)
	issues = validate_config(config)

	errors = [(lvl, msg) for lvl, msg in issues if lvl == "error"]
	warnings = [(lvl, msg) for lvl, msg in issues if lvl == "warning"]

	for level, msg in issues:
		print(f"[{level.upper()}] {msg}")

	if not issues:
		print("Config OK")

	print(f"\n{len(errors)} error(s), {len(warnings)} warning(s)")
	return 1 if errors else 0


COMMANDS = {
	"run": cmd_run,
	"explore": cmd_explore,
	"plan": cmd_plan,
	"validate-config": cmd_validate_config,
}


def main(argv: list[str] | None = None) -> int:
	logging.basicConfig(
		level=logging.INFO,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		force=True,
	)
	parser = build_parser()
	args = parser.parse_args(argv)

	if args.command is None:
		parser.print_help()
		return 0

	handler = COMMANDS.get(args.command)
	if handler is None:
		print(f"Unknown command: {args.command}")
		return 1

	try:
		return handler(args)
	except FileNotFoundError as e:
		print(f"Error: {e}")
		return 1


if __name__ == "__main__":
	sys.exit(main())
