"""Centralized confidence weights, caps and thresholds."""

from __future__ import annotations

# Exploration confidence: base + (structure, key_files, technologies, requirements) bonuses
EXPLORE_BASE_CONFIDENCE = 0.3
EXPLORE_BONUSES: tuple[float, float, float, float] = (0.2, 0.2, 0.2, 0.1)
EXPLORE_UNREAD_CAP = 0.5  # ceiling when no key file content was read
EXPLORE_FAILURE_CONFIDENCE = 0.2
EXPLORE_PLAN_THRESHOLD = 0.4
VALIDATION_PASS_BONUS = 0.1
VALIDATION_FAIL_PENALTY = 0.2

# Planning confidence: base, exploration bonus, tech weight, per-high-risk penalty
PLAN_WEIGHTS: tuple[float, float, float, float] = (0.5, 0.2, 0.3, 0.1)
PLAN_COMPLETE_THRESHOLD = 0.4
PLAN_FAILURE_CONFIDENCE = 0.1
EXISTING_TECH_CONFIDENCE = 0.9
DEFAULT_TECH_CONFIDENCE = 0.8
EXPLICIT_TECH_CONFIDENCE = 0.95
LOW_TECH_CONFIDENCE = 0.7

# Completion confidence: base, file volume cap, validation weight, error cap,
# healing cap, commit bonus, deploy bonus
COMPLETE_BASE_CONFIDENCE = 0.5
COMPLETE_FILE_BONUS_PER_FILE = 0.02
COMPLETE_FILE_BONUS_CAP = 0.2
COMPLETE_VALIDATION_WEIGHT = 0.3
COMPLETE_ERROR_PENALTY_PER_ERROR = 0.1
COMPLETE_ERROR_PENALTY_CAP = 0.4
COMPLETE_HEALING_CAP = 0.2
COMPLETE_COMMIT_BONUS = 0.1
COMPLETE_DEPLOY_BONUS = 0.1
COMPLETE_SUCCESS_CONFIDENCE = 0.7
COMPLETE_FAILURE_CONFIDENCE = 0.1
MIN_CONFIDENCE = 0.1

# Common default limits used across the engines
DEFAULT_LIMITS: dict[str, int] = {
	"max_key_files": 20,
	"key_file_soft_limit": 15,
	"max_files_to_read": 10,
	"max_requirements": 10,
	"max_features": 20,
	"max_core_files": 5,
	"tool_timeout": 30,
	"max_phase_retries": 2,
}


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
	return max(low, min(high, value))
