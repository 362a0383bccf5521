"""TOML configuration loader for phase-engine."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from phase_engine.constants import DEFAULT_LIMITS

CONFIG_FILENAME = "phase-engine.toml"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_COMPLEXITIES = ("", "simple", "moderate", "complex")
_EXPORTERS = ("console", "otlp", "none")


@dataclass
class TargetConfig:
	"""Working directory and the vision to realize there."""

	name: str = ""
	path: str = "."
	vision: str = ""

	@property
	def resolved_path(self) -> Path:
		return Path(os.path.expanduser(self.path))


@dataclass
class ExplorationConfig:
	max_files_to_read: int = DEFAULT_LIMITS["max_files_to_read"]
	enable_validation: bool = False
	enable_healing: bool = False


@dataclass
class PlanningConfig:
	constraints: list[str] = field(default_factory=list)
	complexity: str = ""  # empty = assess from the vision


@dataclass
class CompletionConfig:
	dry_run: bool = False
	validate_changes: bool = True
	run_tests: bool = False
	enable_healing: bool = True
	auto_commit: bool = False
	deploy_target: str = ""


@dataclass
class CoordinatorConfig:
	max_phase_retries: int = DEFAULT_LIMITS["max_phase_retries"]


@dataclass
class ToolsConfig:
	"""Tool invoker settings."""

	timeout: int = DEFAULT_LIMITS["tool_timeout"]  # per tool call, seconds
	command_timeout: int = 25  # per subprocess, seconds; below timeout
	tree_max_depth: int = 4
	tree_char_budget: int = 20_000
	search_endpoint: str = ""  # web_search disabled when empty
	validation_commands: dict[str, str] = field(default_factory=dict)


@dataclass
class TracingConfig:
	"""OpenTelemetry tracing settings."""

	enabled: bool = False
	service_name: str = "phase-engine"
	exporter: str = "console"  # console | otlp | none
	otlp_endpoint: str = "http://localhost:4317"


@dataclass
class LoggingConfig:
	level: str = "INFO"
	json_format: bool = False


@dataclass
class EngineConfig:
	"""Top-level phase-engine configuration."""

	target: TargetConfig = field(default_factory=TargetConfig)
	exploration: ExplorationConfig = field(default_factory=ExplorationConfig)
	planning: PlanningConfig = field(default_factory=PlanningConfig)
	completion: CompletionConfig = field(default_factory=CompletionConfig)
	coordinator: CoordinatorConfig = field(default_factory=CoordinatorConfig)
	tools: ToolsConfig = field(default_factory=ToolsConfig)
	tracing: TracingConfig = field(default_factory=TracingConfig)
	logging: LoggingConfig = field(default_factory=LoggingConfig)


def _build_target(data: dict[str, Any]) -> TargetConfig:
	tc = TargetConfig()
	for key in ("name", "path", "vision"):
		if key in data:
			setattr(tc, key, str(data[key]))
	return tc


def _build_exploration(data: dict[str, Any]) -> ExplorationConfig:
	ec = ExplorationConfig()
	if "max_files_to_read" in data:
		ec.max_files_to_read = int(data["max_files_to_read"])
	for key in ("enable_validation", "enable_healing"):
		if key in data:
			setattr(ec, key, bool(data[key]))
	return ec


def _build_planning(data: dict[str, Any]) -> PlanningConfig:
	pc = PlanningConfig()
	if "constraints" in data:
		pc.constraints = [str(c) for c in data["constraints"]]
	if "complexity" in data:
		pc.complexity = str(data["complexity"]).lower()
	return pc


def _build_completion(data: dict[str, Any]) -> CompletionConfig:
	cc = CompletionConfig()
	for key in ("dry_run", "validate_changes", "run_tests", "enable_healing", "auto_commit"):
		if key in data:
			setattr(cc, key, bool(data[key]))
	if "deploy_target" in data:
		cc.deploy_target = str(data["deploy_target"])
	return cc


def _build_coordinator(data: dict[str, Any]) -> CoordinatorConfig:
	cc = CoordinatorConfig()
	if "max_phase_retries" in data:
		cc.max_phase_retries = int(data["max_phase_retries"])
	return cc


def _build_tools(data: dict[str, Any]) -> ToolsConfig:
	tc = ToolsConfig()
	for key in ("timeout", "command_timeout", "tree_max_depth", "tree_char_budget"):
		if key in data:
			setattr(tc, key, int(data[key]))
	if "search_endpoint" in data:
		tc.search_endpoint = str(data["search_endpoint"])
	if "validation_commands" in data:
		tc.validation_commands = {str(k): str(v) for k, v in data["validation_commands"].items()}
	return tc


def _build_tracing(data: dict[str, Any]) -> TracingConfig:
	tc = TracingConfig()
	if "enabled" in data:
		tc.enabled = bool(data["enabled"])
	if "service_name" in data:
		tc.service_name = str(data["service_name"])
	if "exporter" in data:
		tc.exporter = str(data["exporter"])
	if "otlp_endpoint" in data:
		tc.otlp_endpoint = str(data["otlp_endpoint"])
	return tc


def _build_logging(data: dict[str, Any]) -> LoggingConfig:
	lc = LoggingConfig()
	if "level" in data:
		lc.level = str(data["level"]).upper()
	if "json_format" in data:
		lc.json_format = bool(data["json_format"])
	return lc


_SECTION_BUILDERS = {
	"target": _build_target,
	"exploration": _build_exploration,
	"planning": _build_planning,
	"completion": _build_completion,
	"coordinator": _build_coordinator,
	"tools": _build_tools,
	"tracing": _build_tracing,
	"logging": _build_logging,
}


def load_config(path: str | Path) -> EngineConfig:
	"""Load a phase-engine.toml config file.

	Args:
		path: Path to the TOML config file.

	Returns:
		Parsed EngineConfig. Missing sections keep their defaults.

	Raises:
		FileNotFoundError: If config file doesn't exist.
		tomllib.TOMLDecodeError: If config is invalid TOML.
	"""
	config_path = Path(path)
	if not config_path.exists():
		raise FileNotFoundError(f"Config file not found: {config_path}")

	with open(config_path, "rb") as f:
		data = tomllib.load(f)

	ec = EngineConfig()
	for section, builder in _SECTION_BUILDERS.items():
		if section in data:
			setattr(ec, section, builder(data[section]))
	return ec


def validate_config(config: EngineConfig) -> list[tuple[str, str]]:
	"""Perform semantic validation of a loaded EngineConfig.

	Returns a list of (level, message) tuples where level is 'error' or 'warning'.
	"""
	issues: list[tuple[str, str]] = []

	# 1. target.path exists and is a directory
	target_path = config.target.resolved_path
	if not target_path.exists():
		issues.append(("error", f"target.path does not exist: {target_path}"))
	elif not target_path.is_dir():
		issues.append(("error", f"target.path is not a directory: {target_path}"))
	if not config.target.vision.strip():
		issues.append(("warning", "target.vision is empty"))

	# 2. Exploration and planning bounds
	if config.exploration.max_files_to_read < 0:
		issues.append(("error", f"max_files_to_read is negative: {config.exploration.max_files_to_read}"))
	elif config.exploration.max_files_to_read > DEFAULT_LIMITS["max_key_files"]:
		issues.append(("warning", f"max_files_to_read exceeds the key file cap: {config.exploration.max_files_to_read}"))
	if config.planning.complexity not in _COMPLEXITIES:
		issues.append(("error", f"planning.complexity must be one of simple/moderate/complex: {config.planning.complexity}"))
	if config.exploration.enable_healing and not config.exploration.enable_validation:
		issues.append(("warning", "exploration healing has no effect without validation"))

	# 3. Coordinator retry budget
	if config.coordinator.max_phase_retries < 0:
		issues.append(("error", f"max_phase_retries is negative: {config.coordinator.max_phase_retries}"))
	elif config.coordinator.max_phase_retries > 5:
		issues.append(("warning", f"max_phase_retries is high: {config.coordinator.max_phase_retries}"))

	# 4. Tool timeouts and endpoints
	if config.tools.timeout <= 0:
		issues.append(("error", f"tools.timeout must be positive: {config.tools.timeout}"))
	if config.tools.command_timeout <= 0:
		issues.append(("error", f"tools.command_timeout must be positive: {config.tools.command_timeout}"))
	elif 0 < config.tools.timeout <= config.tools.command_timeout:
		issues.append((
			"error",
			f"tools.command_timeout ({config.tools.command_timeout}s) must be below tools.timeout ({config.tools.timeout}s)",
		))
	endpoint = config.tools.search_endpoint
	if endpoint and not endpoint.startswith(("http://", "https://")):
		issues.append(("error", f"tools.search_endpoint must be an http(s) URL: {endpoint}"))

	# 5. Tracing and logging
	if config.tracing.exporter not in _EXPORTERS:
		issues.append(("error", f"tracing.exporter must be console, otlp or none: {config.tracing.exporter}"))
	if config.logging.level.upper() not in _LOG_LEVELS:
		issues.append(("error", f"logging.level is not a valid level: {config.logging.level}"))

	return issues
