"""Abstract tool invoker and the timeout/error boundary around it."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

GET_PROJECT_TREE = "get_project_tree"
READ_FILES = "read_files"
WRITE_FILES = "write_files"
RUN_COMMAND = "run_command"
GIT_OPERATION = "git_operation"
VALIDATE_PROJECT = "validate_project"
WEB_SEARCH = "web_search"


class ToolInvocationError(RuntimeError):
	"""Raised inside an invoker; converted to a failed ToolResult at the boundary."""


@dataclass(frozen=True)
class ToolResult:
	success: bool
	result: Any = None
	error: str | None = None

	@property
	def text(self) -> str:
		"""Result rendered as text, empty when there is none."""
		if self.result is None:
			return ""
		return self.result if isinstance(self.result, str) else str(self.result)


class ToolInvoker(ABC):
	"""Abstract base for tool invokers."""

	@abstractmethod
	async def invoke(self, tool_name: str, payload: dict[str, Any]) -> ToolResult:
		"""Run one tool call. May raise; callers go through invoke_tool."""


async def invoke_tool(
	invoker: ToolInvoker,
	tool_name: str,
	payload: dict[str, Any],
	timeout: float = 30,
) -> ToolResult:
	"""Invoke a tool with a per-call timeout. Never raises.

	A timeout or any exception from the invoker becomes ToolResult(success=False).
	"""
	try:
		result = await asyncio.wait_for(invoker.invoke(tool_name, payload), timeout=timeout)
	except asyncio.TimeoutError:
		logger.warning("Tool %s timed out after %ss", tool_name, timeout)
		return ToolResult(success=False, error=f"{tool_name} timed out after {timeout}s")
	except Exception as exc:
		logger.warning("Tool %s raised %s: %s", tool_name, type(exc).__name__, exc)
		return ToolResult(success=False, error=f"{tool_name} failed: {exc}")
	logger.debug("Tool %s -> success=%s", tool_name, result.success)
	return result
