"""EXPLORE phase: survey a working directory and derive an ExplorationReport."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from phase_engine.constants import (
	DEFAULT_LIMITS,
	EXPLORE_BASE_CONFIDENCE,
	EXPLORE_BONUSES,
	EXPLORE_FAILURE_CONFIDENCE,
	EXPLORE_PLAN_THRESHOLD,
	EXPLORE_UNREAD_CAP,
	MIN_CONFIDENCE,
	VALIDATION_FAIL_PENALTY,
	VALIDATION_PASS_BONUS,
	clamp,
)
from phase_engine.models import (
	ExplorationReport,
	HealingAction,
	HealingType,
	Phase,
	Severity,
	ValidationCheck,
	ValidationSummary,
)
from phase_engine.tables import (
	EXTENSION_TECHNOLOGIES,
	INFERRED_REQUIREMENTS,
	KEY_FILE_LADDER,
	NODE_TECHNOLOGIES,
	RECOMMENDATION_RULES,
	TECHNOLOGY_TABLES,
)
from phase_engine.text_analysis import (
	REQUIREMENT_PATTERNS,
	extract_phrases,
	keyword_hits,
	shares_token,
	vision_tokens,
)
from phase_engine.tools.base import (
	GET_PROJECT_TREE,
	READ_FILES,
	RUN_COMMAND,
	VALIDATE_PROJECT,
	ToolInvoker,
	ToolResult,
	invoke_tool,
)

logger = logging.getLogger(__name__)

_TREE_LINE_RE = re.compile(r"^(?P<prefix>(?:[│ ]   )*)(?:├── |└── )(?P<name>.+)$")
_HISTOGRAM_RE = re.compile(r"^\s*(\d+)\s+(\S+)\s*$")

STRUCTURE_PROBE = "find . -maxdepth 3 -not -path '*/node_modules/*' -not -path '*/.git/*'"
BROAD_FILE_SEARCH = (
	"find . -maxdepth 4 -type f "
	"\\( -name '*.json' -o -name '*.md' -o -name '*.js' -o -name '*.ts' -o -name '*.py' -o -name '*.toml' \\) "
	"-not -path '*/node_modules/*' -not -path '*/.git/*' | head -50"
)
EXTENSION_HISTOGRAM = (
	"find . -type f -name '*.*' -not -path '*/node_modules/*' -not -path '*/.git/*' "
	"| sed 's/.*\\.//' | sort | uniq -c | sort -rn | head -10"
)
SIGNAL_PROBES: tuple[tuple[str, dict[str, object]], ...] = (
	(RUN_COMMAND, {"command": "ls -la"}),
	(READ_FILES, {"paths": ["README.md"]}),
	(READ_FILES, {"paths": ["package.json"]}),
)
SIGNAL_BONUS = 0.1
LOW_CONFIDENCE = 0.3
HIGH_CONFIDENCE = 0.95


@dataclass
class ExploreOptions:
	max_files_to_read: int = DEFAULT_LIMITS["max_files_to_read"]
	enable_validation: bool = False
	enable_healing: bool = False


# -- pure derivations --


def tree_paths(structure: str) -> list[str]:
	"""Recover relative paths from a tree dump or a flat path listing.

	Directory entries keep a trailing slash. Lines that are not entries
	(headers, messages with spaces) are ignored.
	"""
	paths: list[str] = []
	stack: list[str] = []
	for raw in structure.splitlines():
		line = raw.rstrip()
		match = _TREE_LINE_RE.match(line)
		if match:
			depth = len(match.group("prefix")) // 4
			name = match.group("name").strip()
			parent = stack[:depth]
			paths.append("/".join(parent + [name]))
			if name.endswith("/"):
				stack = parent + [name.rstrip("/")]
			continue
		stripped = line.strip().lstrip("│├└─ ").strip()
		if not stripped or " " in stripped or stripped.endswith("/"):
			continue
		if "├" in line or "└" in line:
			# connector with unexpected spacing; keep the bare name
			paths.append(stripped)
			continue
		if stripped.startswith("./"):
			stripped = stripped[2:]
		if "/" in stripped.rstrip("/") or "." in stripped:
			paths.append(stripped)
	return paths


def _matches(pattern: str, path: str) -> bool:
	lowered = pattern.lower()
	name = path.rstrip("/").rsplit("/", 1)[-1].lower()
	if "/" in lowered:
		return lowered in "/" + path.lower() + ("" if path.endswith("/") else "/")
	if lowered.endswith(".") and not lowered.startswith("."):
		return name.startswith(lowered)
	return lowered in name


def identify_key_files(structure: str, soft_limit: int | None = None, hard_cap: int | None = None) -> list[str]:
	"""Rank key files manifest > config > entry point > docs > tests."""
	soft_limit = soft_limit or DEFAULT_LIMITS["key_file_soft_limit"]
	hard_cap = hard_cap or DEFAULT_LIMITS["max_key_files"]
	paths = [p for p in tree_paths(structure) if "directory" not in p.lower()]
	found: list[str] = []
	for _, patterns in KEY_FILE_LADDER:
		for path in paths:
			if path in found:
				continue
			if any(_matches(p, path) for p in patterns):
				found.append(path)
				if len(found) >= soft_limit:
					return found[:hard_cap]
	return found[:hard_cap]


def detect_technologies(text: str) -> list[str]:
	"""Ordered, de-duplicated technologies found by the indicator tables."""
	found: list[str] = []
	for table in TECHNOLOGY_TABLES:
		for tech in keyword_hits(text, table):
			if tech not in found:
				found.append(tech)
	return found


def technologies_from_histogram(output: str) -> list[str]:
	"""Map `uniq -c` extension counts to technologies, most frequent first."""
	found: list[str] = []
	for line in output.splitlines():
		match = _HISTOGRAM_RE.match(line)
		if not match:
			continue
		tech = EXTENSION_TECHNOLOGIES.get(match.group(2).lower())
		if tech and tech not in found:
			found.append(tech)
	return found


def extract_requirements(vision: str, contents: str, limit: int | None = None) -> list[str]:
	limit = limit or DEFAULT_LIMITS["max_requirements"]
	requirements = [p.render() for p in extract_phrases(vision, REQUIREMENT_PATTERNS)]
	lowered = contents.lower()
	for indicators, requirement in INFERRED_REQUIREMENTS:
		if any(i in lowered for i in indicators) and requirement not in requirements:
			requirements.append(requirement)
	return requirements[:limit]


def generate_recommendations(structure: str, contents: str, technologies: Sequence[str]) -> list[str]:
	techs = set(technologies)
	return [r.message for r in RECOMMENDATION_RULES if r.matches(structure, contents, techs)]


def score_confidence(
	structure: str,
	key_files: Sequence[str],
	technologies: Sequence[str],
	requirements: Sequence[str],
) -> float:
	structure_bonus, files_bonus, tech_bonus, req_bonus = EXPLORE_BONUSES
	score = EXPLORE_BASE_CONFIDENCE
	if len(structure) > 100:
		score += structure_bonus
	if len(key_files) >= 3:
		score += files_bonus
	if len(technologies) >= 2:
		score += tech_bonus
	if requirements:
		score += req_bonus
	return clamp(score)


def next_phase_for(confidence: float) -> Phase:
	return Phase.PLAN if confidence >= EXPLORE_PLAN_THRESHOLD else Phase.EXPLORE


# -- engine --


@dataclass
class _Findings:
	"""Mutable working state; frozen into an ExplorationReport at the end."""

	structure: str
	tree_ok: bool
	key_files: list[str]
	contents: str
	files_read: int
	technologies: list[str]
	requirements: list[str]
	signal_bonus: float = 0.0


class ExplorationEngine:
	"""Derive an ExplorationReport from tool output and a vision statement."""

	def __init__(self, invoker: ToolInvoker, tool_timeout: float = DEFAULT_LIMITS["tool_timeout"]) -> None:
		self.invoker = invoker
		self.tool_timeout = tool_timeout

	async def _tool(self, name: str, payload: dict[str, object]) -> ToolResult:
		return await invoke_tool(self.invoker, name, payload, timeout=self.tool_timeout)

	async def execute(self, directory: str, vision: str, options: ExploreOptions | None = None) -> ExplorationReport:
		options = options or ExploreOptions()
		logger.info("Exploring %s", directory)
		try:
			report = await self._explore(directory, vision, options)
		except Exception as exc:
			logger.error("Exploration of %s failed: %s", directory, exc, exc_info=True)
			return ExplorationReport(
				project_structure=f"Exploration failed: {exc}",
				recommendations=(f"Exploration failed ({exc}); retry after checking tool access",),
				confidence=EXPLORE_FAILURE_CONFIDENCE,
				next_phase=next_phase_for(EXPLORE_FAILURE_CONFIDENCE),
			)
		logger.info(
			"Exploration done: %d key files, %d technologies, confidence %.2f -> %s",
			len(report.key_files), len(report.technologies), report.confidence, report.next_phase.value,
		)
		return report

	async def _explore(self, directory: str, vision: str, options: ExploreOptions) -> ExplorationReport:
		tree = await self._tool(GET_PROJECT_TREE, {"path": directory})
		if tree.success:
			structure = tree.text
		else:
			logger.warning("Project tree unavailable: %s", tree.error)
			structure = f"Failed to analyze project structure: {tree.error}"
		key_files = identify_key_files(structure) if tree.success else []

		contents, files_read = await self._read_key_files(key_files, options.max_files_to_read)
		findings = _Findings(
			structure=structure,
			tree_ok=tree.success,
			key_files=key_files,
			contents=contents,
			files_read=files_read,
			technologies=detect_technologies(structure + "\n" + contents),
			requirements=extract_requirements(vision, contents),
		)
		logger.debug("Key files: %s", findings.key_files)
		logger.debug("Technologies: %s", findings.technologies)

		confidence = score_confidence(
			findings.structure, findings.key_files, findings.technologies, findings.requirements,
		)
		validation: ValidationSummary | None = None
		healing: list[HealingAction] = []
		if options.enable_validation:
			validation = await self.validate(findings, vision, confidence)
			if not validation.passed and options.enable_healing:
				healing = await self.heal(findings, validation, confidence)
				if any(a.executed for a in healing):
					confidence = clamp(score_confidence(
						findings.structure, findings.key_files, findings.technologies, findings.requirements,
					) + findings.signal_bonus)
					validation = await self.validate(findings, vision, confidence)
			if validation.passed:
				confidence = clamp(confidence + VALIDATION_PASS_BONUS)
			else:
				confidence = clamp(max(MIN_CONFIDENCE, confidence - VALIDATION_FAIL_PENALTY))

		if findings.files_read == 0:
			confidence = min(confidence, EXPLORE_UNREAD_CAP)

		return ExplorationReport(
			project_structure=findings.structure,
			key_files=tuple(findings.key_files),
			technologies=tuple(findings.technologies),
			requirements=tuple(findings.requirements),
			recommendations=tuple(generate_recommendations(findings.structure, findings.contents, findings.technologies)),
			confidence=confidence,
			next_phase=next_phase_for(confidence),
			files_read=findings.files_read,
			validation=validation,
			healing_actions=tuple(healing),
		)

	async def _read_key_files(self, key_files: Sequence[str], max_files: int) -> tuple[str, int]:
		to_read = [k for k in key_files if not k.endswith("/")][:max(0, max_files)]
		if not to_read:
			return "", 0
		result = await self._tool(READ_FILES, {"paths": to_read})
		if not result.success:
			logger.warning("Reading key files failed: %s", result.error)
			return f"Partial file reading completed. Error: {result.error}", 0
		return result.text, len(to_read)

	async def validate(self, findings: _Findings, vision: str, confidence: float) -> ValidationSummary:
		"""Run the exploration validation battery. Passes when no check reports an error."""
		checks: list[ValidationCheck] = []

		if len(findings.structure) < 10 or not findings.tree_ok:
			checks.append(ValidationCheck("structure", False, "Project structure analysis incomplete", Severity.ERROR, True))
		elif "├" not in findings.structure and "└" not in findings.structure:
			checks.append(ValidationCheck("structure", False, "Project structure is not a tree listing", Severity.WARNING, True))
		else:
			checks.append(ValidationCheck("structure", True, "Project structure captured"))

		count = len(findings.key_files)
		if count == 0:
			checks.append(ValidationCheck("key_files", False, "No key files identified", Severity.ERROR, True))
		elif count > 50:
			checks.append(ValidationCheck("key_files", False, f"Too many key files ({count})", Severity.WARNING))
		else:
			checks.append(ValidationCheck("key_files", True, f"{count} key files identified"))

		techs = len(findings.technologies)
		if techs == 0:
			checks.append(ValidationCheck("technologies", False, "No technologies detected", Severity.WARNING, True))
		elif techs > 20:
			checks.append(ValidationCheck("technologies", False, f"Implausible technology count ({techs})", Severity.WARNING))
		else:
			checks.append(ValidationCheck("technologies", True, f"{techs} technologies detected"))

		tokens = vision_tokens(vision)
		if not findings.requirements:
			checks.append(ValidationCheck("requirements", False, "No requirements extracted", Severity.WARNING))
		elif not any(shares_token(r, tokens) for r in findings.requirements):
			checks.append(ValidationCheck("requirements", False, "Requirements may not align with the vision", Severity.WARNING))
		else:
			checks.append(ValidationCheck("requirements", True, "Requirements align with the vision"))

		if confidence < LOW_CONFIDENCE:
			checks.append(ValidationCheck("confidence", False, f"Confidence too low ({confidence:.2f})", Severity.WARNING, True))
		elif confidence > HIGH_CONFIDENCE:
			checks.append(ValidationCheck("confidence", False, f"Confidence suspiciously high ({confidence:.2f})", Severity.WARNING))
		else:
			checks.append(ValidationCheck("confidence", True, f"Confidence {confidence:.2f} within bounds"))

		probe = await self._tool(VALIDATE_PROJECT, {"type": "custom", "command": "ls"})
		if probe.success:
			checks.append(ValidationCheck("tool_access", True, "Tools are accessible"))
		else:
			checks.append(ValidationCheck("tool_access", False, f"Tool access failed: {probe.error}", Severity.ERROR))

		has_node = any(t in NODE_TECHNOLOGIES for t in findings.technologies)
		has_manifest = any(k.rsplit("/", 1)[-1] == "package.json" for k in findings.key_files)
		if has_node and not has_manifest:
			checks.append(ValidationCheck("node_manifest", False, "Node project without package.json", Severity.WARNING, True))
		else:
			checks.append(ValidationCheck("node_manifest", True, "Manifest consistent with stack"))

		errors = tuple(c.message for c in checks if not c.passed and c.severity == Severity.ERROR)
		warnings = tuple(c.message for c in checks if not c.passed and c.severity == Severity.WARNING)
		summary = ValidationSummary(passed=not errors, checks=tuple(checks), errors=errors, warnings=warnings)
		logger.debug("Exploration validation: passed=%s errors=%s", summary.passed, errors)
		return summary

	async def heal(self, findings: _Findings, validation: ValidationSummary, confidence: float) -> list[HealingAction]:
		"""At most one remediation per failing category. Mutates findings in place."""
		failed = {c.name: c for c in validation.failed_checks()}
		actions: list[HealingAction] = []

		structure_check = failed.get("structure")
		if structure_check and structure_check.severity == Severity.ERROR:
			result = await self._tool(RUN_COMMAND, {"command": STRUCTURE_PROBE})
			if result.success and result.text.strip():
				findings.structure = result.text
				findings.tree_ok = True
				findings.key_files = identify_key_files(result.text)
			actions.append(_action(HealingType.FIX, "Alternate structure probe", "project_structure", result))

		if "key_files" in failed and not findings.key_files:
			result = await self._tool(RUN_COMMAND, {"command": BROAD_FILE_SEARCH})
			if result.success:
				listed = tree_paths(result.text)
				findings.key_files = identify_key_files(result.text) or listed[:DEFAULT_LIMITS["max_files_to_read"]]
			actions.append(_action(HealingType.FIX, "Broadened key file search", "key_files", result))

		if "technologies" in failed and not findings.technologies:
			result = await self._tool(RUN_COMMAND, {"command": EXTENSION_HISTOGRAM})
			if result.success:
				findings.technologies = technologies_from_histogram(result.text)
			actions.append(_action(HealingType.UPDATE, "Extension histogram technology inference", "technologies", result))

		if "confidence" in failed and confidence < LOW_CONFIDENCE:
			gathered = 0
			errors: list[str] = []
			for tool, payload in SIGNAL_PROBES:
				result = await self._tool(tool, payload)
				if result.success:
					gathered += 1
					if tool == READ_FILES:
						findings.technologies.extend(
							t for t in detect_technologies(result.text) if t not in findings.technologies
						)
				else:
					errors.append(result.error or tool)
			findings.signal_bonus = SIGNAL_BONUS * gathered
			actions.append(HealingAction(
				type=HealingType.UPDATE,
				description="Supplementary signal gathering",
				target="confidence",
				executed=gathered > 0,
				result=f"{gathered} additional sources" if gathered else None,
				error="; ".join(errors) or None,
			))

		logger.info("Exploration healing: %d actions, %d executed", len(actions), sum(a.executed for a in actions))
		return actions


def _action(kind: HealingType, description: str, target: str, result: ToolResult) -> HealingAction:
	return HealingAction(
		type=kind,
		description=description,
		target=target,
		executed=result.success,
		result=f"{len(result.text.splitlines())} lines" if result.success else None,
		error=None if result.success else result.error,
	)
