"""Phase engine: explore a working directory, plan a vision, complete it."""

from __future__ import annotations

__version__ = "0.1.0"
