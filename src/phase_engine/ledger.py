"""Caller-owned history of phase reports."""

from __future__ import annotations

import logging
from typing import Union

from phase_engine.models import CompletionReport, ExplorationReport, Phase, PlanningReport

logger = logging.getLogger(__name__)

PhaseReport = Union[ExplorationReport, PlanningReport, CompletionReport]

_PHASE_OF: dict[type, Phase] = {
	ExplorationReport: Phase.EXPLORE,
	PlanningReport: Phase.PLAN,
	CompletionReport: Phase.COMPLETE,
}


class PhaseLedger:
	"""Append-only per-phase report history.

	One ledger belongs to one caller (typically a PhaseCoordinator run) and
	is passed around explicitly. Reports are frozen, so the history can be
	handed out as tuples without copying.
	"""

	def __init__(self) -> None:
		self._entries: dict[Phase, list[PhaseReport]] = {p: [] for p in Phase}

	def record(self, report: PhaseReport) -> Phase:
		phase = _PHASE_OF.get(type(report))
		if phase is None:
			raise TypeError(f"Not a phase report: {type(report).__name__}")
		self._entries[phase].append(report)
		logger.debug("Recorded %s report #%d", phase.value, len(self._entries[phase]))
		return phase

	def history(self, phase: Phase) -> tuple[PhaseReport, ...]:
		return tuple(self._entries[phase])

	def last(self, phase: Phase) -> PhaseReport | None:
		entries = self._entries[phase]
		return entries[-1] if entries else None

	def clear(self, phase: Phase | None = None) -> None:
		"""Drop the history of one phase, or of every phase when phase is None."""
		if phase is None:
			for entries in self._entries.values():
				entries.clear()
		else:
			self._entries[phase].clear()

	def __len__(self) -> int:
		return sum(len(v) for v in self._entries.values())
