"""Tests for working directory containment checks."""

from __future__ import annotations

from pathlib import Path

import pytest

from phase_engine.path_security import resolve_within


class TestResolveWithin:
	def test_relative_path(self, tmp_path: Path) -> None:
		assert resolve_within(tmp_path, "src/app.js") == (tmp_path / "src" / "app.js").resolve()

	def test_root_itself(self, tmp_path: Path) -> None:
		assert resolve_within(tmp_path, ".") == tmp_path.resolve()

	def test_absolute_inside_root(self, tmp_path: Path) -> None:
		target = tmp_path / "a.txt"
		assert resolve_within(tmp_path, str(target)) == target.resolve()

	def test_dotdot_within_root_still_valid(self, tmp_path: Path) -> None:
		assert resolve_within(tmp_path, "a/../b.txt") == (tmp_path / "b.txt").resolve()

	def test_dotdot_traversal_rejected(self, tmp_path: Path) -> None:
		with pytest.raises(ValueError, match="outside the working directory"):
			resolve_within(tmp_path, "../../etc/passwd")

	def test_absolute_outside_rejected(self, tmp_path: Path) -> None:
		with pytest.raises(ValueError, match="outside the working directory"):
			resolve_within(tmp_path / "inner", str(tmp_path / "other.txt"))

	def test_symlink_escape_rejected(self, tmp_path: Path) -> None:
		root = tmp_path / "root"
		root.mkdir()
		outside = tmp_path / "outside"
		outside.mkdir()
		(root / "sneaky").symlink_to(outside)
		with pytest.raises(ValueError):
			resolve_within(root, "sneaky/secret.txt")

	def test_empty_path(self, tmp_path: Path) -> None:
		with pytest.raises(ValueError, match="empty path"):
			resolve_within(tmp_path, "  ")

	def test_null_byte(self, tmp_path: Path) -> None:
		with pytest.raises(ValueError, match="invalid path"):
			resolve_within(tmp_path, "a\x00b")
