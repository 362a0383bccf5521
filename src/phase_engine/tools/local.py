"""Local tool invoker -- runs tools against a working directory on this machine."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
import time
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

import httpx

from phase_engine.path_security import resolve_within
from phase_engine.tables import DEFAULT_VALIDATION_COMMANDS, FIX_VALIDATION_COMMANDS
from phase_engine.tools.base import (
	GET_PROJECT_TREE,
	GIT_OPERATION,
	READ_FILES,
	RUN_COMMAND,
	VALIDATE_PROJECT,
	WEB_SEARCH,
	WRITE_FILES,
	ToolInvocationError,
	ToolInvoker,
	ToolResult,
)

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", ".mypy_cache"})
GIT_OPERATIONS = ("init", "status", "add", "commit", "log", "diff")
_MAX_ISSUE_LINES = 50
# tsc --pretty false: "src/app.ts(3,5): error TS2339: Property 'x' does not exist."
_TSC_LINE_RE = re.compile(
	r"^(?P<file>.+?)\((?P<line>\d+),(?P<col>\d+)\):\s+"
	r"(?P<level>error|warning)\s+(?P<code>TS\d+):\s+(?P<message>.+)$"
)

Handler = Callable[[dict[str, Any]], Coroutine[Any, Any, ToolResult]]


class LocalToolInvoker(ToolInvoker):
	"""Execute tools as filesystem operations and subprocesses rooted at one directory."""

	def __init__(
		self,
		root: str | Path,
		command_timeout: float = 25,
		tree_max_depth: int = 4,
		tree_char_budget: int = 20_000,
		search_endpoint: str = "",
		validation_commands: dict[str, str] | None = None,
	) -> None:
		self.root = Path(root).resolve()
		self.command_timeout = command_timeout
		self.tree_max_depth = tree_max_depth
		self.tree_char_budget = tree_char_budget
		self.search_endpoint = search_endpoint
		self.validation_commands = {**DEFAULT_VALIDATION_COMMANDS, **(validation_commands or {})}
		self._handlers: dict[str, Handler] = {
			GET_PROJECT_TREE: self._project_tree,
			READ_FILES: self._read_files,
			WRITE_FILES: self._write_files,
			RUN_COMMAND: self._run_command,
			GIT_OPERATION: self._git_operation,
			VALIDATE_PROJECT: self._validate_project,
			WEB_SEARCH: self._web_search,
		}

	async def invoke(self, tool_name: str, payload: dict[str, Any]) -> ToolResult:
		handler = self._handlers.get(tool_name)
		if handler is None:
			return ToolResult(success=False, error=f"Unknown tool: {tool_name}")
		try:
			return await handler(payload)
		except (ToolInvocationError, ValueError, OSError) as exc:
			logger.warning("%s failed: %s", tool_name, exc)
			return ToolResult(success=False, error=str(exc))

	# -- filesystem --

	async def _project_tree(self, payload: dict[str, Any]) -> ToolResult:
		start = resolve_within(self.root, payload.get("path") or ".")
		if not start.is_dir():
			raise ToolInvocationError(f"Not a directory: {start}")
		max_depth = int(payload.get("max_depth", self.tree_max_depth))
		lines = [f"{start.name or str(start)}/"]
		self._walk_tree(start, "", 1, max_depth, lines)
		text = "\n".join(lines)
		if len(text) > self.tree_char_budget:
			text = text[:self.tree_char_budget] + "\n... (truncated)"
		return ToolResult(success=True, result=text)

	def _walk_tree(self, directory: Path, prefix: str, depth: int, max_depth: int, lines: list[str]) -> None:
		if depth > max_depth:
			return
		entries = sorted(
			(p for p in directory.iterdir() if p.name not in SKIP_DIRS),
			key=lambda p: (not p.is_dir(), p.name.lower()),
		)
		for i, entry in enumerate(entries):
			last = i == len(entries) - 1
			connector = "└── " if last else "├── "
			lines.append(f"{prefix}{connector}{entry.name}{'/' if entry.is_dir() else ''}")
			if entry.is_dir() and not entry.is_symlink():
				self._walk_tree(entry, prefix + ("    " if last else "│   "), depth + 1, max_depth, lines)

	async def _read_files(self, payload: dict[str, Any]) -> ToolResult:
		paths = list(payload.get("paths") or [])
		if not paths:
			raise ToolInvocationError("No paths given")
		sections: list[str] = []
		missing: list[str] = []
		for rel in paths:
			try:
				target = resolve_within(self.root, rel)
				content = target.read_text(errors="replace")
			except (ValueError, OSError) as exc:
				logger.debug("Could not read %s: %s", rel, exc)
				missing.append(rel)
				continue
			sections.append(f"=== {rel} ===\n{content}")
		if not sections:
			raise ToolInvocationError(f"Could not read any of: {', '.join(missing)}")
		if missing:
			sections.append("=== unreadable ===\n" + "\n".join(missing))
		return ToolResult(success=True, result="\n\n".join(sections))

	async def _write_files(self, payload: dict[str, Any]) -> ToolResult:
		files = payload.get("files") or []
		created: list[str] = []
		modified: list[str] = []
		for entry in files:
			rel = entry.get("path", "")
			target = resolve_within(self.root, rel)
			existed = target.exists()
			target.parent.mkdir(parents=True, exist_ok=True)
			target.write_text(entry.get("content", ""))
			(modified if existed else created).append(rel)
		return ToolResult(success=True, result={"created": created, "modified": modified})

	# -- subprocesses --

	async def _shell(self, command: str, timeout: float) -> tuple[int | None, str]:
		"""Run a shell command in root. Returns (returncode, output); returncode None on timeout."""
		proc = await asyncio.create_subprocess_shell(
			command,
			cwd=str(self.root),
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.STDOUT,
			start_new_session=True,
		)
		stdout = await _communicate(proc, timeout)
		if stdout is None:
			logger.warning("Command timed out after %ss: %s", timeout, command)
			return None, f"Command timed out after {timeout}s"
		return proc.returncode, stdout.decode(errors="replace")

	async def _run_command(self, payload: dict[str, Any]) -> ToolResult:
		command = payload.get("command", "")
		if not command:
			raise ToolInvocationError("No command given")
		timeout = float(payload.get("timeout", self.command_timeout))
		code, output = await self._shell(command, timeout)
		if code == 0:
			return ToolResult(success=True, result=output)
		return ToolResult(success=False, result=output, error=f"Command exited with {code}: {output[-300:]}")

	async def _git_operation(self, payload: dict[str, Any]) -> ToolResult:
		operation = payload.get("operation", "")
		if operation not in GIT_OPERATIONS:
			raise ToolInvocationError(f"Unsupported git operation: {operation}")
		args = ["git", operation]
		if operation == "add":
			files = payload.get("files")
			args.extend(["--", *files] if files else ["-A"])
		elif operation == "commit":
			message = payload.get("message") or "Automated commit"
			args.extend(["-m", message])
		elif operation == "log":
			args.extend(["--oneline", f"-{int(payload.get('limit', 10))}"])
		proc = await asyncio.create_subprocess_exec(
			*args,
			cwd=str(self.root),
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.STDOUT,
			start_new_session=True,
		)
		stdout = await _communicate(proc, self.command_timeout)
		if stdout is None:
			raise ToolInvocationError(f"git {operation} timed out")
		output = stdout.decode(errors="replace")
		if proc.returncode != 0:
			return ToolResult(success=False, result=output, error=f"git {operation} failed: {output.strip()[:300]}")
		return ToolResult(success=True, result=output)

	async def _validate_project(self, payload: dict[str, Any]) -> ToolResult:
		vtype = payload.get("type", "custom")
		if payload.get("fix") and vtype in FIX_VALIDATION_COMMANDS:
			command = FIX_VALIDATION_COMMANDS[vtype]
		else:
			command = payload.get("command") or self.validation_commands.get(vtype, "")
		if not command:
			raise ToolInvocationError(f"No command configured for validation type {vtype}")
		started = time.monotonic()
		code, output = await self._shell(command, float(payload.get("timeout", self.command_timeout)))
		elapsed_ms = int((time.monotonic() - started) * 1000)
		return ToolResult(success=True, result=format_validation_report(vtype, code == 0, elapsed_ms, output, command))

	# -- network --

	async def _web_search(self, payload: dict[str, Any]) -> ToolResult:
		if not self.search_endpoint:
			return ToolResult(success=False, error="web_search is disabled: no search endpoint configured")
		query = payload.get("query", "")
		if not query:
			raise ToolInvocationError("No query given")
		params = {"q": query, "limit": int(payload.get("limit", 5))}
		try:
			async with httpx.AsyncClient(timeout=10.0) as client:
				response = await client.get(self.search_endpoint, params=params)
				response.raise_for_status()
		except httpx.HTTPError as exc:
			return ToolResult(success=False, error=f"web_search failed: {exc}")
		try:
			return ToolResult(success=True, result=response.json())
		except ValueError:
			return ToolResult(success=True, result=response.text)


async def _communicate(proc: asyncio.subprocess.Process, timeout: float) -> bytes | None:
	"""Wait for a child's combined output; None if it timed out.

	Whenever the wait ends early, including cancellation by an outer
	per-call deadline, the child's process group is killed and reaped
	before control returns, so nothing keeps writing to the tree.
	"""
	try:
		stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
	except asyncio.TimeoutError:
		return None
	finally:
		if proc.returncode is None:
			_kill_group(proc)
			await proc.wait()
	return stdout or b""


def _kill_group(proc: asyncio.subprocess.Process) -> None:
	try:
		os.killpg(proc.pid, signal.SIGKILL)
	except ProcessLookupError:
		pass


def _normalize_tsc_line(line: str) -> tuple[str, str] | None:
	"""Rewrite a tsc diagnostic as ("error"|"warning", "file:line:col - message (TSnnnn)")."""
	match = _TSC_LINE_RE.match(line)
	if match is None:
		return None
	entry = f"{match['file']}:{match['line']}:{match['col']} - {match['message']} ({match['code']})"
	return match["level"], entry


def format_validation_report(vtype: str, passed: bool, elapsed_ms: int, output: str, command: str) -> str:
	"""Render a validation run in the fixed marker format read by parse_validation_output."""
	errors: list[str] = []
	warnings: list[str] = []
	for line in output.splitlines():
		stripped = line.strip()
		if not stripped:
			continue
		tsc = _normalize_tsc_line(stripped)
		if tsc is not None:
			level, entry = tsc
			(warnings if level == "warning" else errors).append(entry)
			continue
		lowered = stripped.lower()
		if "warning" in lowered:
			warnings.append(stripped)
		elif "error" in lowered or "fail" in lowered:
			errors.append(stripped)
	if not passed and not errors:
		errors = [line.strip() for line in output.splitlines() if line.strip()][-5:]

	parts = [
		f"VALIDATION: {vtype.upper()}",
		f"Status: {'✅ PASSED' if passed else '❌ FAILED'}",
		f"Execution time: {elapsed_ms}ms",
	]
	if errors and not passed:
		parts.append("🚨 Errors:")
		parts.extend(f"  {e}" for e in errors[:_MAX_ISSUE_LINES])
	if warnings:
		parts.append("⚠️  Warnings:")
		parts.extend(f"  {w}" for w in warnings[:_MAX_ISSUE_LINES])
	parts.append(f"Command: {command}")
	return "\n".join(parts)
