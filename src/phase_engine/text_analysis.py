"""Pure text heuristics: turn free text into tagged phrases.

Everything here is side-effect free and table driven so the matching
tables can be swapped without touching the phase engines.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

Pattern = tuple[str, re.Pattern[str]]

_END = r"(?:\s+for\b|\s+with\b|\s+that\b|\.|$)"

REQUIREMENT_PATTERNS: tuple[Pattern, ...] = (
	("need", re.compile(r"\bneeds?\s+to\s+([^.]+)")),
	("must", re.compile(r"\bmust\s+([^.]+)")),
	("should", re.compile(r"\bshould\s+([^.]+)")),
	("require", re.compile(r"\brequires?\s+([^.]+)")),
	("implement", re.compile(r"\bimplement\s+([^.]+)")),
	("add", re.compile(r"\badd\s+([^.]+)")),
	("create", re.compile(r"\bcreate\s+([^.]+)")),
)

FEATURE_PATTERNS: tuple[Pattern, ...] = (
	("Create", re.compile(r"\b(?:create|build|make)\s+(.+?)" + _END)),
	("Add", re.compile(r"\b(?:add|implement|include)\s+(.+?)" + _END)),
	("Support", re.compile(r"\b(?:support|enable)\s+(.+?)" + _END)),
	("Implement", re.compile(r"\bneed\s+(?:to\s+)?(.+?)" + _END)),
)


@dataclass(frozen=True)
class TaggedPhrase:
	"""A phrase captured from text, labelled by the trigger that found it."""

	tag: str
	text: str

	def render(self) -> str:
		return f"{self.tag} {self.text}"


def extract_phrases(
	text: str,
	patterns: Sequence[Pattern],
	min_len: int = 5,
	max_len: int = 100,
	limit: int | None = None,
) -> list[TaggedPhrase]:
	"""Capture phrases following trigger words.

	The text is lower-cased first. A capture is kept when its stripped length
	is strictly between min_len and max_len. Results are ordered by pattern,
	then by position, and de-duplicated on the captured text.
	"""
	lowered = text.lower()
	seen: set[str] = set()
	phrases: list[TaggedPhrase] = []
	for tag, regex in patterns:
		for match in regex.finditer(lowered):
			captured = match.group(1).strip()
			if not (min_len < len(captured) < max_len):
				continue
			if captured in seen:
				continue
			seen.add(captured)
			phrases.append(TaggedPhrase(tag=tag, text=captured))
	if limit is not None:
		return phrases[:limit]
	return phrases


def keyword_hits(text: str, table: Mapping[str, Iterable[str]]) -> list[str]:
	"""Return table keys whose indicators occur in text (case-insensitive).

	Keys come back in table order.
	"""
	lowered = text.lower()
	return [key for key, indicators in table.items() if any(i.lower() in lowered for i in indicators)]


def mentions(text: str, keywords: Iterable[str]) -> bool:
	"""Word-prefix match: 'api' matches 'apis' but not 'rapid'."""
	lowered = text.lower()
	return any(re.search(r"\b" + re.escape(k.lower()), lowered) for k in keywords)


def word_hits(text: str, table: Mapping[str, Iterable[str]]) -> list[str]:
	"""Like keyword_hits but with word-prefix matching, for prose input."""
	return [key for key, keywords in table.items() if mentions(text, keywords)]


def vision_tokens(text: str) -> set[str]:
	return {w for w in text.lower().split() if w}


def word_count(text: str) -> int:
	return len(text.split())


def shares_token(phrase: str, tokens: set[str]) -> bool:
	"""True when any whitespace token of phrase occurs in tokens."""
	return any(word in tokens for word in phrase.lower().split())
