"""
Configuration constants and Pydantic models for model-salvage.

The core never reads the environment itself. The get_*() helpers below are
meant for the edges (CLI, host application), which pass the values into
RecoveryConfig / Interpreter explicitly.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_MAX_CORRECTION_ATTEMPTS: int = 2
DEFAULT_CORRECTION_TIMEOUT_SECONDS: float = 15.0
DEFAULT_MAX_RECOMMENDATIONS: int = 5
DEFAULT_ANALYSIS_EXCERPT_CHARS: int = 2000

# Arguments encoding used when a tool call carries no arguments
EMPTY_ARGUMENTS: str = "{}"


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def get_correction_attempts() -> int:
    """
    Get max assisted-correction attempts from environment or default.

    Set SALVAGE_CORRECTION_ATTEMPTS in .env (default: 2).
    """
    try:
        return int(os.environ.get("SALVAGE_CORRECTION_ATTEMPTS", str(DEFAULT_MAX_CORRECTION_ATTEMPTS)))
    except ValueError:
        return DEFAULT_MAX_CORRECTION_ATTEMPTS


def get_correction_timeout() -> float:
    """
    Get per-attempt correction timeout in seconds.

    Set SALVAGE_CORRECTION_TIMEOUT in .env (default: 15).
    """
    try:
        return float(os.environ.get("SALVAGE_CORRECTION_TIMEOUT", str(DEFAULT_CORRECTION_TIMEOUT_SECONDS)))
    except ValueError:
        return DEFAULT_CORRECTION_TIMEOUT_SECONDS


def get_max_recommendations() -> int:
    """
    Get cap on heuristically extracted recommendations.

    Set SALVAGE_MAX_RECOMMENDATIONS in .env (default: 5).
    """
    try:
        return int(os.environ.get("SALVAGE_MAX_RECOMMENDATIONS", str(DEFAULT_MAX_RECOMMENDATIONS)))
    except ValueError:
        return DEFAULT_MAX_RECOMMENDATIONS


def get_active_model() -> Optional[str]:
    """Get the active model label from SALVAGE_ACTIVE_MODEL, if set."""
    value = os.environ.get("SALVAGE_ACTIVE_MODEL", "").strip()
    return value or None


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class RecoveryConfig(BaseModel):
    """Tunables for the response recovery engine."""
    max_attempts: int = Field(default=DEFAULT_MAX_CORRECTION_ATTEMPTS, ge=0)
    attempt_timeout_seconds: float = Field(default=DEFAULT_CORRECTION_TIMEOUT_SECONDS, gt=0)
    max_recommendations: int = Field(default=DEFAULT_MAX_RECOMMENDATIONS, ge=0)
    analysis_excerpt_chars: int = Field(default=DEFAULT_ANALYSIS_EXCERPT_CHARS, gt=0)

    @classmethod
    def from_env(cls) -> "RecoveryConfig":
        """Build a config from SALVAGE_* environment variables."""
        return cls(
            max_attempts=get_correction_attempts(),
            attempt_timeout_seconds=get_correction_timeout(),
            max_recommendations=get_max_recommendations(),
        )
