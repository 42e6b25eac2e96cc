"""Tests for environment-backed configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from model_salvage.config import (
    DEFAULT_CORRECTION_TIMEOUT_SECONDS,
    DEFAULT_MAX_CORRECTION_ATTEMPTS,
    RecoveryConfig,
    get_active_model,
    get_correction_attempts,
    get_correction_timeout,
    get_max_recommendations,
)


class TestEnvGetters:

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_correction_attempts() == DEFAULT_MAX_CORRECTION_ATTEMPTS
            assert get_correction_timeout() == DEFAULT_CORRECTION_TIMEOUT_SECONDS
            assert get_max_recommendations() == 5
            assert get_active_model() is None

    def test_reads_environment(self):
        env = {
            "SALVAGE_CORRECTION_ATTEMPTS": "4",
            "SALVAGE_CORRECTION_TIMEOUT": "2.5",
            "SALVAGE_MAX_RECOMMENDATIONS": "8",
            "SALVAGE_ACTIVE_MODEL": " qwen2.5-coder ",
        }
        with patch.dict(os.environ, env, clear=True):
            assert get_correction_attempts() == 4
            assert get_correction_timeout() == 2.5
            assert get_max_recommendations() == 8
            assert get_active_model() == "qwen2.5-coder"

    def test_invalid_values_fall_back(self):
        env = {"SALVAGE_CORRECTION_ATTEMPTS": "lots", "SALVAGE_CORRECTION_TIMEOUT": "soon"}
        with patch.dict(os.environ, env, clear=True):
            assert get_correction_attempts() == DEFAULT_MAX_CORRECTION_ATTEMPTS
            assert get_correction_timeout() == DEFAULT_CORRECTION_TIMEOUT_SECONDS


class TestRecoveryConfig:

    def test_from_env(self):
        env = {"SALVAGE_CORRECTION_ATTEMPTS": "0", "SALVAGE_CORRECTION_TIMEOUT": "3"}
        with patch.dict(os.environ, env, clear=True):
            config = RecoveryConfig.from_env()
        assert config.max_attempts == 0
        assert config.attempt_timeout_seconds == 3.0

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": -1},
        {"attempt_timeout_seconds": 0},
        {"max_recommendations": -2},
    ])
    def test_rejects_out_of_range(self, kwargs):
        with pytest.raises(ValidationError):
            RecoveryConfig(**kwargs)
