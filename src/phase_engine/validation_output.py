"""Turn validate_project output into a typed ValidationOutcome.

The structured form is a mapping checked against ValidationResultSchema.
Plain text reports are parsed through their fixed markers:

	VALIDATION: TYPESCRIPT
	Status: ❌ FAILED
	Execution time: 812ms
	🚨 Errors:
	  src/app.ts:3:5 - Property 'x' does not exist (TS2339)
	⚠️  Warnings:
	  src/app.ts:9:1 - Unexpected console statement (no-console) [fixable]
	Command: npx tsc --noEmit
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from phase_engine.models import ValidationIssue, ValidationOutcome

logger = logging.getLogger(__name__)


class ValidationIssueSchema(BaseModel, extra="ignore"):
	message: str
	type: str | None = None
	file: str | None = None
	line: int | None = None
	fixable: bool = False


class ValidationResultSchema(BaseModel, extra="ignore"):
	"""Pydantic schema for structured validate_project results."""

	passed: bool
	execution_time_ms: int = 0
	errors: list[ValidationIssueSchema | str] = []
	warnings: list[ValidationIssueSchema | str] = []
	command: str = ""


_STATUS_RE = re.compile(r"^\s*Status:\s*(.*)$", re.MULTILINE)
_TIME_RE = re.compile(r"Execution time:\s*(\d+)\s*ms")
_COMMAND_RE = re.compile(r"^\s*Command:\s*(.+)$", re.MULTILINE)
_ISSUE_RE = re.compile(
	r"^(?:(?P<file>[^\s:]+):(?P<line>\d+)(?::\d+)?\s+-\s+)?"
	r"(?P<message>.*?)"
	r"(?P<fixable>\s*\[fixable\])?$"
)
_TS_CODE_RE = re.compile(r"\bTS\d{4,5}\b|error TS", re.IGNORECASE)

_DEPENDENCY_MARKERS = (
	"cannot find module",
	"module not found",
	"could not resolve",
	"npm err",
	"missing dependency",
	"peer dep",
)
_MISSING_FILE_MARKERS = ("no such file", "enoent", "file not found", "missing file")
_TYPE_BY_VALIDATION = {
	"typescript": "typescript",
	"eslint": "eslint",
	"test": "test",
	"build": "build",
}


def classify_issue(validation_type: str, message: str) -> str:
	"""Classify an issue message into typescript/eslint/test/build/dependency/missing_file/custom."""
	lowered = message.lower()
	if any(m in lowered for m in _DEPENDENCY_MARKERS):
		return "dependency"
	if any(m in lowered for m in _MISSING_FILE_MARKERS):
		return "missing_file"
	if _TS_CODE_RE.search(message):
		return "typescript"
	return _TYPE_BY_VALIDATION.get(validation_type, "custom")


def _issue_from_line(validation_type: str, raw: str) -> ValidationIssue | None:
	line = raw.strip().lstrip("-•*").strip()
	if not line or line.lower() in ("none", "no errors", "no warnings"):
		return None
	match = _ISSUE_RE.match(line)
	if match is None:
		return ValidationIssue(message=line, type=classify_issue(validation_type, line))
	message = match.group("message").strip() or line
	return ValidationIssue(
		message=message,
		type=classify_issue(validation_type, message),
		file=match.group("file"),
		line=int(match.group("line")) if match.group("line") else None,
		fixable=bool(match.group("fixable")),
	)


def _parse_text(validation_type: str, output: str) -> ValidationOutcome:
	errors: list[ValidationIssue] = []
	warnings: list[ValidationIssue] = []
	section: list[ValidationIssue] | None = None
	for raw in output.splitlines():
		stripped = raw.strip()
		if stripped.endswith("Errors:"):
			section = errors
			continue
		if stripped.endswith("Warnings:"):
			section = warnings
			continue
		if not stripped or stripped.startswith(("VALIDATION:", "Status:", "Execution time:", "Command:")):
			section = None if not stripped else section
			continue
		if section is not None:
			issue = _issue_from_line(validation_type, raw)
			if issue is not None:
				section.append(issue)

	status = _STATUS_RE.search(output)
	if status:
		passed = "PASSED" in status.group(1).upper() or "✅" in status.group(1)
	else:
		passed = not errors and "FAILED" not in output.upper()

	if not passed and not errors:
		errors.append(ValidationIssue(
			message=f"{validation_type} validation failed",
			type=classify_issue(validation_type, ""),
		))

	time_match = _TIME_RE.search(output)
	command = _COMMAND_RE.search(output)
	return ValidationOutcome(
		type=validation_type,
		passed=passed,
		execution_time_ms=int(time_match.group(1)) if time_match else 0,
		errors=tuple(errors),
		warnings=tuple(warnings),
		command=command.group(1).strip() if command else "",
	)


def _to_issue(validation_type: str, item: ValidationIssueSchema | str) -> ValidationIssue:
	if isinstance(item, str):
		return _issue_from_line(validation_type, item) or ValidationIssue(
			message=item, type=classify_issue(validation_type, item),
		)
	return ValidationIssue(
		message=item.message,
		type=item.type or classify_issue(validation_type, item.message),
		file=item.file,
		line=item.line,
		fixable=item.fixable,
	)


def _parse_mapping(validation_type: str, raw: Mapping[str, Any]) -> ValidationOutcome:
	try:
		validated = ValidationResultSchema.model_validate(dict(raw))
	except ValidationError as exc:
		logger.warning("Validation result for %s failed schema check: %s", validation_type, exc)
		return ValidationOutcome(
			type=validation_type,
			passed=False,
			errors=(ValidationIssue(message="Malformed validation result", type="custom"),),
		)
	errors = [_to_issue(validation_type, e) for e in validated.errors]
	if not validated.passed and not errors:
		errors.append(ValidationIssue(
			message=f"{validation_type} validation failed",
			type=classify_issue(validation_type, ""),
		))
	return ValidationOutcome(
		type=validation_type,
		passed=validated.passed,
		execution_time_ms=validated.execution_time_ms,
		errors=tuple(errors),
		warnings=tuple(_to_issue(validation_type, w) for w in validated.warnings),
		command=validated.command,
	)


def parse_validation_output(validation_type: str, output: Any) -> ValidationOutcome:
	"""Parse a validate_project result, structured mapping first, text markers second."""
	if isinstance(output, Mapping):
		return _parse_mapping(validation_type, output)
	text = "" if output is None else str(output)
	if text.lstrip().startswith("{"):
		try:
			decoded = json.loads(text)
		except json.JSONDecodeError:
			decoded = None
		if isinstance(decoded, dict):
			return _parse_mapping(validation_type, decoded)
	return _parse_text(validation_type, text)


def failed_outcome(validation_type: str, error: str) -> ValidationOutcome:
	"""Outcome for a validate_project call that did not run at all."""
	return ValidationOutcome(
		type=validation_type,
		passed=False,
		errors=(ValidationIssue(message=error, type=classify_issue(validation_type, error)),),
	)
