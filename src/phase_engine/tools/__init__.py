"""Tool invokers: the single boundary for phase engine side effects."""

from __future__ import annotations

from phase_engine.tools.base import ToolInvocationError, ToolInvoker, ToolResult, invoke_tool
from phase_engine.tools.local import LocalToolInvoker

__all__ = [
	"LocalToolInvoker",
	"ToolInvocationError",
	"ToolInvoker",
	"ToolResult",
	"invoke_tool",
]
