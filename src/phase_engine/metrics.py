"""Metrics collection for phase runs."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field

log = logging.getLogger(__name__)


@dataclass
class PhaseMetrics:
	"""Metrics collected for one phase execution."""

	phase: str = ""
	attempt: int = 1
	duration_s: float = 0.0
	confidence: float = 0.0
	next_phase: str = ""
	success: bool = True

	def to_dict(self) -> dict[str, object]:
		return {
			"phase": self.phase,
			"attempt": self.attempt,
			"duration_s": round(self.duration_s, 3),
			"confidence": round(self.confidence, 3),
			"next_phase": self.next_phase,
			"success": self.success,
		}


@dataclass
class RunMetrics:
	"""Aggregate metrics for a full explore -> plan -> complete run."""

	total_duration_s: float = 0.0
	retries: int = 0
	stopped_reason: str = ""
	phases: list[PhaseMetrics] = field(default_factory=list)

	def add_phase(self, metrics: PhaseMetrics) -> None:
		self.phases.append(metrics)

	def duration_of(self, phase: str) -> float:
		"""Total time spent in one phase across all attempts."""
		return sum(p.duration_s for p in self.phases if p.phase == phase)

	def attempts_of(self, phase: str) -> int:
		return sum(1 for p in self.phases if p.phase == phase)

	def to_dict(self) -> dict[str, object]:
		return {
			"total_duration_s": round(self.total_duration_s, 3),
			"retries": self.retries,
			"stopped_reason": self.stopped_reason,
			"phases": [p.to_dict() for p in self.phases],
		}

	def to_json(self) -> str:
		return json.dumps(self.to_dict(), indent=2)


class Timer:
	"""Context manager for timing operations."""

	def __init__(self) -> None:
		self._start: float = 0.0
		self.elapsed: float = 0.0

	def __enter__(self) -> "Timer":
		self._start = time.monotonic()
		return self

	def __exit__(self, *args: object) -> None:
		self.elapsed = time.monotonic() - self._start


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
	"""Configure the phase_engine logger with optional JSON output.

	Args:
		level: Log level (DEBUG, INFO, WARNING, ERROR).
		json_format: If True, emit structured JSON log lines.
	"""
	root = logging.getLogger("phase_engine")
	root.setLevel(getattr(logging, level.upper(), logging.INFO))

	if root.handlers:
		return

	handler = logging.StreamHandler()

	if json_format:
		handler.setFormatter(_JsonFormatter())
	else:
		handler.setFormatter(logging.Formatter(
			"%(asctime)s [%(levelname)s] %(name)s: %(message)s",
			datefmt="%Y-%m-%d %H:%M:%S",
		))

	root.addHandler(handler)
	root.propagate = False


class _JsonFormatter(logging.Formatter):
	"""Emit log records as JSON lines."""

	def format(self, record: logging.LogRecord) -> str:
		data = {
			"ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
			"level": record.levelname,
			"logger": record.name,
			"msg": record.getMessage(),
		}
		if record.exc_info and record.exc_info[1]:
			data["exception"] = str(record.exc_info[1])
		return json.dumps(data)
