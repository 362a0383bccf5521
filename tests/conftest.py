"""Shared pytest fixtures and factory functions for phase-engine tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from phase_engine.models import ExplorationReport, ImplementationStep, Phase, StepPhase
from phase_engine.tools.base import ToolInvoker, ToolResult

Response = ToolResult | Callable[[dict[str, Any]], ToolResult] | Exception


class FakeToolInvoker(ToolInvoker):
	"""Scripted invoker: per-tool response queues, every call recorded.

	A queue's last response repeats once the queue is drained. Tools without
	a script fall back to `default`.
	"""

	def __init__(self, default: ToolResult | None = None) -> None:
		self.scripts: dict[str, list[Response]] = {}
		self.calls: list[tuple[str, dict[str, Any]]] = []
		self.default = default or ToolResult(success=True, result="")

	def script(self, tool_name: str, *responses: Response) -> FakeToolInvoker:
		self.scripts.setdefault(tool_name, []).extend(responses)
		return self

	def calls_to(self, tool_name: str) -> list[dict[str, Any]]:
		return [payload for name, payload in self.calls if name == tool_name]

	async def invoke(self, tool_name: str, payload: dict[str, Any]) -> ToolResult:
		self.calls.append((tool_name, payload))
		queue = self.scripts.get(tool_name)
		if not queue:
			return self.default
		response = queue.pop(0) if len(queue) > 1 else queue[0]
		if isinstance(response, Exception):
			raise response
		if callable(response):
			return response(payload)
		return response


def ok(result: Any = "") -> ToolResult:
	return ToolResult(success=True, result=result)


def fail(error: str = "boom") -> ToolResult:
	return ToolResult(success=False, error=error)


def validation_text(vtype: str, passed: bool, errors: list[str] | None = None, command: str = "") -> str:
	"""A validate_project report in the marker format."""
	lines = [
		f"VALIDATION: {vtype.upper()}",
		f"Status: {'✅ PASSED' if passed else '❌ FAILED'}",
		"Execution time: 12ms",
	]
	if errors:
		lines.append("🚨 Errors:")
		lines.extend(f"  {e}" for e in errors)
	lines.append(f"Command: {command or vtype}")
	return "\n".join(lines)


NODE_TREE = """\
shop/
├── src/
│   ├── components/
│   │   └── Button.jsx
│   ├── App.jsx
│   └── index.js
├── tests/
│   └── app.test.js
├── README.md
└── package.json"""


@pytest.fixture()
def invoker() -> FakeToolInvoker:
	return FakeToolInvoker()


def make_step(**overrides: Any) -> ImplementationStep:
	"""Create an ImplementationStep with sensible defaults, overridable via kwargs."""
	defaults: dict[str, Any] = {
		"id": "s1",
		"phase": StepPhase.CORE,
		"title": "Test step",
	}
	defaults.update(overrides)
	return ImplementationStep(**defaults)


def make_exploration(**overrides: Any) -> ExplorationReport:
	"""Create an ExplorationReport with sensible defaults, overridable via kwargs."""
	defaults: dict[str, Any] = {
		"project_structure": NODE_TREE,
		"key_files": ("package.json", "src/index.js", "README.md"),
		"technologies": ("react", "javascript"),
		"requirements": ("add a login page",),
		"confidence": 0.8,
		"next_phase": Phase.PLAN,
		"files_read": 3,
	}
	defaults.update(overrides)
	return ExplorationReport(**defaults)
