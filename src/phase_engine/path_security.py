"""Path traversal protection utilities."""

from __future__ import annotations

from pathlib import Path


def resolve_within(root: str | Path, path: str) -> Path:
	"""Resolve path relative to root and check it stays inside root.

	Resolves symlinks and '..' components, then checks containment.
	Absolute paths are accepted only when they already point inside root.

	Args:
		root: The working directory that bounds every file operation.
		path: The path string to validate, usually relative to root.

	Returns:
		The resolved Path if valid.

	Raises:
		ValueError: If the path is empty, contains null bytes, or resolves
			outside root.
	"""
	if not path or not path.strip():
		raise ValueError("Path validation failed: empty path")

	if "\x00" in path:
		raise ValueError("Path validation failed: invalid path")

	base = Path(root).resolve()
	candidate = Path(path)
	if not candidate.is_absolute():
		candidate = base / candidate
	resolved = candidate.resolve()

	if resolved == base or resolved.is_relative_to(base):
		return resolved

	raise ValueError(f"Path validation failed: {path} is outside the working directory")
