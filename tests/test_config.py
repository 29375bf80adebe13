"""Tests for engine settings."""

from __future__ import annotations

import pytest


@pytest.mark.unit
class TestEngineSettings:
    """Tests for EngineSettings."""

    def test_defaults(self) -> None:
        """Test default tunables."""
        from litestar_crews.config import EngineSettings

        settings = EngineSettings()

        assert settings.step_timeout == 30.0
        assert settings.snapshot_limit == 50
        assert settings.max_retries == 3
        assert settings.retry_delay == 1.0
        assert settings.approval_timeout is None
        assert settings.max_concurrency is None
        assert settings.resolved_gate_limit == 1000

    def test_from_env(self) -> None:
        """Test overrides are read and converted."""
        from litestar_crews.config import EngineSettings

        settings = EngineSettings.from_env(
            environ={
                "CREWS_STEP_TIMEOUT": "2.5",
                "CREWS_SNAPSHOT_LIMIT": "10",
                "CREWS_APPROVAL_TIMEOUT": "60",
                "CREWS_MAX_CONCURRENCY": "4",
                "CREWS_RESOLVED_GATE_LIMIT": "20",
                "UNRELATED": "x",
            }
        )

        assert settings.step_timeout == 2.5
        assert settings.snapshot_limit == 10
        assert settings.approval_timeout == 60.0
        assert settings.max_concurrency == 4
        assert settings.resolved_gate_limit == 20
        assert settings.max_retries == 3

    def test_from_env_empty_clears_optional(self) -> None:
        """Test an empty value resets optional fields to None."""
        from litestar_crews.config import EngineSettings

        settings = EngineSettings.from_env(prefix="APP_", environ={"APP_APPROVAL_TIMEOUT": "", "APP_STEP_TIMEOUT": ""})

        assert settings.approval_timeout is None
        assert settings.step_timeout == 30.0

    def test_from_env_invalid(self) -> None:
        """Test unconvertible values raise ValueError."""
        from litestar_crews.config import EngineSettings

        with pytest.raises(ValueError):
            EngineSettings.from_env(environ={"CREWS_MAX_RETRIES": "many"})
