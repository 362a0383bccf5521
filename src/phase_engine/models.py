"""Data models for phase reports, plan steps, validation and healing."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Literal

Level = Literal["low", "medium", "high"]


class Phase(str, Enum):
	"""Phase of the explore -> plan -> complete pipeline."""

	EXPLORE = "EXPLORE"
	PLAN = "PLAN"
	COMPLETE = "COMPLETE"


class StepPhase(str, Enum):
	"""Tag grouping implementation steps."""

	SETUP = "setup"
	INFRASTRUCTURE = "infrastructure"
	CORE = "core"
	FEATURES = "features"
	TESTING = "testing"
	DOCUMENTATION = "documentation"


class Priority(str, Enum):
	CRITICAL = "critical"
	HIGH = "high"
	MEDIUM = "medium"
	LOW = "low"

	@property
	def rank(self) -> int:
		"""0 for critical up to 3 for low."""
		return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
	Priority.CRITICAL: 0,
	Priority.HIGH: 1,
	Priority.MEDIUM: 2,
	Priority.LOW: 3,
}


class Complexity(str, Enum):
	SIMPLE = "simple"
	MODERATE = "moderate"
	COMPLEX = "complex"


class FailureAction(str, Enum):
	BLOCK = "block"
	WARN = "warn"
	FIX = "fix"


class HealingType(str, Enum):
	FIX = "fix"
	CREATE = "create"
	UPDATE = "update"
	DELETE = "delete"
	ROLLBACK = "rollback"


class Severity(str, Enum):
	ERROR = "error"
	WARNING = "warning"
	INFO = "info"


def _plain(value: Any) -> Any:
	"""Convert enums and tuples into JSON-friendly values."""
	if isinstance(value, Enum):
		return value.value
	if isinstance(value, dict):
		return {k: _plain(v) for k, v in value.items()}
	if isinstance(value, (list, tuple)):
		return [_plain(v) for v in value]
	return value


class _Serializable:
	def to_dict(self) -> dict[str, Any]:
		return _plain(asdict(self))  # type: ignore[call-overload]


# -- Healing --


@dataclass(frozen=True)
class HealingAction(_Serializable):
	"""A remediation attempted in response to one specific failure."""

	type: HealingType
	description: str
	target: str
	executed: bool = False
	automated: bool = True
	result: str | None = None
	error: str | None = None


# -- Exploration --


@dataclass(frozen=True)
class ValidationCheck(_Serializable):
	"""One check of the exploration validation battery."""

	name: str
	passed: bool
	message: str
	severity: Severity = Severity.INFO
	auto_fixable: bool = False


@dataclass(frozen=True)
class ValidationSummary(_Serializable):
	"""Aggregate outcome of the exploration validation battery."""

	passed: bool
	checks: tuple[ValidationCheck, ...] = ()
	errors: tuple[str, ...] = ()
	warnings: tuple[str, ...] = ()

	def failed_checks(self) -> list[ValidationCheck]:
		return [c for c in self.checks if not c.passed]


@dataclass(frozen=True)
class ExplorationReport(_Serializable):
	"""Findings of the EXPLORE phase."""

	project_structure: str = ""
	key_files: tuple[str, ...] = ()
	technologies: tuple[str, ...] = ()
	requirements: tuple[str, ...] = ()
	recommendations: tuple[str, ...] = ()
	confidence: float = 0.0
	next_phase: Phase = Phase.EXPLORE
	files_read: int = 0
	validation: ValidationSummary | None = None
	healing_actions: tuple[HealingAction, ...] = ()


# -- Planning --


@dataclass(frozen=True)
class ImplementationStep(_Serializable):
	"""A unit of planned work with declared dependencies."""

	id: str
	phase: StepPhase
	title: str
	description: str = ""
	dependencies: tuple[str, ...] = ()
	estimated_time: int = 30  # minutes
	priority: Priority = Priority.MEDIUM
	complexity: Complexity = Complexity.SIMPLE
	validation_criteria: tuple[str, ...] = ()
	deliverables: tuple[str, ...] = ()
	risks: tuple[str, ...] = ()

	def __post_init__(self) -> None:
		if self.estimated_time <= 0:
			raise ValueError(f"Step {self.id}: estimated_time must be positive")
		if self.id in self.dependencies:
			raise ValueError(f"Step {self.id} depends on itself")


@dataclass(frozen=True)
class TechStackDecision(_Serializable):
	category: str  # frontend/backend/database/build/test
	chosen: str
	alternatives: tuple[str, ...] = ()
	reasoning: str = ""
	tradeoffs: tuple[str, ...] = ()
	confidence: float = 0.8


@dataclass(frozen=True)
class DirectoryPlan(_Serializable):
	path: str
	purpose: str
	contents: tuple[str, ...] = ()


@dataclass(frozen=True)
class FilePlan(_Serializable):
	path: str
	purpose: str
	dependencies: tuple[str, ...] = ()
	exports: tuple[str, ...] = ()
	size: Level = "small"
	complexity: Complexity = Complexity.SIMPLE


@dataclass(frozen=True)
class FileStructurePlan(_Serializable):
	directories: tuple[DirectoryPlan, ...] = ()
	files: tuple[FilePlan, ...] = ()
	conventions: tuple[str, ...] = ()


@dataclass(frozen=True)
class DependencyInfo(_Serializable):
	name: str
	version: str
	purpose: str
	size_kb: int = 0


@dataclass(frozen=True)
class DependencyMap(_Serializable):
	production: tuple[DependencyInfo, ...] = ()
	development: tuple[DependencyInfo, ...] = ()
	peer: tuple[DependencyInfo, ...] = ()
	conflicts: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationRule(_Serializable):
	type: str  # typescript/eslint/test/build/format/custom
	description: str
	command: str
	failure_action: FailureAction = FailureAction.WARN
	auto_fix: bool = False
	priority: Priority = Priority.MEDIUM


@dataclass(frozen=True)
class Risk(_Serializable):
	id: str
	category: str  # technical/timeline/complexity/dependency/integration
	description: str
	probability: Level = "medium"
	impact: Level = "medium"
	mitigation: tuple[str, ...] = ()
	owner: Literal["agent", "human", "team"] = "agent"


@dataclass(frozen=True)
class PlanningReport(_Serializable):
	"""Output of the PLAN phase."""

	success: bool = False
	features: tuple[str, ...] = ()
	non_functional: tuple[str, ...] = ()
	integrations: tuple[str, ...] = ()
	complexity: Complexity = Complexity.SIMPLE
	tech_stack: tuple[TechStackDecision, ...] = ()
	implementation_plan: tuple[ImplementationStep, ...] = ()
	file_structure: FileStructurePlan = field(default_factory=FileStructurePlan)
	dependencies: DependencyMap = field(default_factory=DependencyMap)
	validation_criteria: tuple[ValidationRule, ...] = ()
	risks: tuple[Risk, ...] = ()
	assumptions: tuple[str, ...] = ()
	estimated_effort: str = "Unknown"
	confidence: float = 0.0
	next_phase: Phase = Phase.EXPLORE


# -- Completion --


@dataclass(frozen=True)
class ValidationIssue(_Serializable):
	"""A single error or warning reported by validate_project."""

	message: str
	type: str = "custom"
	file: str | None = None
	line: int | None = None
	fixable: bool = False


@dataclass(frozen=True)
class ValidationOutcome(_Serializable):
	"""Typed result of one validate_project run."""

	type: str
	passed: bool
	execution_time_ms: int = 0
	errors: tuple[ValidationIssue, ...] = ()
	warnings: tuple[ValidationIssue, ...] = ()
	command: str = ""

	@property
	def error_count(self) -> int:
		return len(self.errors)


@dataclass(frozen=True)
class DeploymentRecord(_Serializable):
	target: str
	status: str  # recorded/failed
	message: str = ""


@dataclass(frozen=True)
class CompletionReport(_Serializable):
	"""Output of the COMPLETE phase."""

	success: bool = False
	planned_steps: int = 0
	files_created: tuple[str, ...] = ()
	files_modified: tuple[str, ...] = ()
	tests_run: tuple[str, ...] = ()
	validation_results: tuple[ValidationOutcome, ...] = ()
	healing_actions: tuple[HealingAction, ...] = ()
	commit_hash: str | None = None
	deployment: DeploymentRecord | None = None
	confidence: float = 0.0
	summary: str = ""
	next_steps: tuple[str, ...] = ()
	errors: tuple[str, ...] = ()

	@property
	def validation_error_count(self) -> int:
		return sum(v.error_count for v in self.validation_results)
