"""Remediation routines for validation issues found after completion.

Issues are grouped by routine and each routine runs at most once per
healing pass. Revalidation is the caller's job.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from phase_engine.deliverables import DeliverableContext, placeholder_for
from phase_engine.models import HealingAction, HealingType, ValidationIssue, ValidationOutcome
from phase_engine.tools.base import READ_FILES, RUN_COMMAND, VALIDATE_PROJECT, WRITE_FILES, ToolResult

logger = logging.getLogger(__name__)

ToolCall = Callable[[str, dict[str, Any]], Awaitable[ToolResult]]

# issue type -> routine name
ROUTINE_FOR_ISSUE: dict[str, str] = {
	"typescript": "typescript",
	"eslint": "eslint",
	"test": "test",
	"build": "dependencies",
	"dependency": "dependencies",
	"missing_file": "missing_file",
}

REINSTALL_COMMAND = "npm install"
TS_SUPPRESSION = "// @ts-expect-error auto-healed: {message}"
_SECTION_RE = re.compile(r"^=== (.+) ===$", re.MULTILINE)


def group_issues(outcomes: Sequence[ValidationOutcome]) -> dict[str, list[tuple[str, ValidationIssue]]]:
	"""Group error issues by routine, keeping the validation type each came from."""
	groups: dict[str, list[tuple[str, ValidationIssue]]] = {}
	for outcome in outcomes:
		for issue in outcome.errors:
			routine = ROUTINE_FOR_ISSUE.get(issue.type)
			if routine is not None:
				groups.setdefault(routine, []).append((outcome.type, issue))
	return groups


def split_sections(text: str) -> dict[str, str]:
	"""Split read_files output (=== path === headers) into path -> content."""
	sections: dict[str, str] = {}
	matches = list(_SECTION_RE.finditer(text))
	for i, match in enumerate(matches):
		end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
		sections[match.group(1)] = text[match.end() + 1:end].rstrip("\n") + "\n"
	return sections


def suppress_lines(content: str, issues: Sequence[ValidationIssue]) -> str:
	"""Insert a @ts-expect-error comment above each reported line, bottom up."""
	lines = content.splitlines()
	by_line: dict[int, str] = {}
	for issue in issues:
		if issue.line is not None and 1 <= issue.line <= len(lines) + 1:
			by_line.setdefault(issue.line, issue.message)
	for line_no in sorted(by_line, reverse=True):
		indent = re.match(r"\s*", lines[line_no - 1]).group(0) if line_no <= len(lines) else ""
		message = by_line[line_no].replace("\n", " ")[:80]
		lines.insert(line_no - 1, indent + TS_SUPPRESSION.format(message=message))
	return "\n".join(lines) + "\n"


class CompletionHealer:
	"""Run one remediation routine per issue group."""

	def __init__(self, call: ToolCall, ctx: DeliverableContext) -> None:
		self._call = call
		self._ctx = ctx

	async def heal(
		self,
		outcomes: Sequence[ValidationOutcome],
		missing_deliverables: Sequence[str] = (),
	) -> tuple[list[HealingAction], set[str]]:
		"""Returns (actions, validation types worth revalidating)."""
		groups = group_issues(outcomes)
		if missing_deliverables and "missing_file" not in groups:
			groups["missing_file"] = []
		actions: list[HealingAction] = []
		affected: set[str] = set()
		routines = {
			"typescript": self._fix_typescript,
			"eslint": self._eslint_autofix,
			"test": self._suggest_test_fixes,
			"dependencies": self._reinstall_dependencies,
			"missing_file": lambda issues: self._create_placeholders(issues, missing_deliverables),
		}
		for name, issues in groups.items():
			action = await routines[name](issues)
			actions.append(action)
			if action.executed:
				affected.update(vtype for vtype, _ in issues)
			logger.info("Healing %s: executed=%s %s", name, action.executed, action.error or action.result or "")
		return actions, affected

	async def _fix_typescript(self, issues: list[tuple[str, ValidationIssue]]) -> HealingAction:
		by_file: dict[str, list[ValidationIssue]] = {}
		for _, issue in issues:
			if issue.file:
				by_file.setdefault(issue.file, []).append(issue)
		description = "Apply TypeScript error pattern fixes"
		if not by_file:
			return HealingAction(
				type=HealingType.FIX, description=description, target="typescript",
				error="No file locations reported",
			)
		read = await self._call(READ_FILES, {"paths": sorted(by_file)})
		if not read.success:
			return HealingAction(
				type=HealingType.FIX, description=description, target=", ".join(sorted(by_file)),
				error=read.error,
			)
		contents = split_sections(read.text)
		files = [
			{"path": path, "content": suppress_lines(contents[path], file_issues)}
			for path, file_issues in sorted(by_file.items())
			if path in contents
		]
		if not files:
			return HealingAction(
				type=HealingType.FIX, description=description, target=", ".join(sorted(by_file)),
				error="Reported files could not be read",
			)
		written = await self._call(WRITE_FILES, {"files": files})
		return HealingAction(
			type=HealingType.FIX,
			description=description,
			target=", ".join(f["path"] for f in files),
			executed=written.success,
			result=f"Suppressed {sum(len(v) for v in by_file.values())} errors" if written.success else None,
			error=None if written.success else written.error,
		)

	async def _eslint_autofix(self, issues: list[tuple[str, ValidationIssue]]) -> HealingAction:
		result = await self._call(VALIDATE_PROJECT, {"type": "eslint", "fix": True})
		return HealingAction(
			type=HealingType.FIX,
			description="Delegate to ESLint autofix",
			target="eslint",
			executed=result.success,
			result="ESLint --fix completed" if result.success else None,
			error=None if result.success else result.error,
		)

	async def _suggest_test_fixes(self, issues: list[tuple[str, ValidationIssue]]) -> HealingAction:
		failing = sorted({i.file or i.message[:60] for _, i in issues})
		return HealingAction(
			type=HealingType.FIX,
			description="Review failing tests",
			target=", ".join(failing),
			executed=False,
			automated=False,
			result="Suggested: check assertions against current behaviour, update fixtures, rerun `npm test`",
		)

	async def _reinstall_dependencies(self, issues: list[tuple[str, ValidationIssue]]) -> HealingAction:
		result = await self._call(RUN_COMMAND, {"command": REINSTALL_COMMAND})
		return HealingAction(
			type=HealingType.UPDATE,
			description="Reinstall dependencies",
			target="node_modules",
			executed=result.success,
			result="Dependencies reinstalled" if result.success else None,
			error=None if result.success else result.error,
		)

	async def _create_placeholders(
		self,
		issues: list[tuple[str, ValidationIssue]],
		missing_deliverables: Sequence[str],
	) -> HealingAction:
		paths = list(dict.fromkeys([*missing_deliverables, *(i.file for _, i in issues if i.file)]))
		if not paths:
			return HealingAction(
				type=HealingType.CREATE, description="Create placeholders for missing files", target="",
				error="No missing file paths reported",
			)
		files = [placeholder_for(p, self._ctx).as_payload() for p in paths]
		result = await self._call(WRITE_FILES, {"files": files})
		return HealingAction(
			type=HealingType.CREATE,
			description="Create placeholders for missing files",
			target=", ".join(paths),
			executed=result.success,
			result=f"Created {len(paths)} placeholders" if result.success else None,
			error=None if result.success else result.error,
		)
