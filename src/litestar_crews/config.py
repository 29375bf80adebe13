"""Engine configuration for litestar-crews."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any

__all__ = ["EngineSettings"]


@dataclass(frozen=True)
class EngineSettings:
    """Tunables shared by the executor and the managers.

    Attributes:
        step_timeout: Seconds each worker invocation may take. Defaults to 30.
        snapshot_limit: Snapshots kept per run; older ones are evicted. Defaults to 50.
        max_retries: Default retry budget per step for the retry strategy.
        retry_delay: Default seconds between retry attempts.
        approval_timeout: Default seconds to wait for an approval decision.
            None waits indefinitely.
        max_concurrency: Cap on concurrent worker invocations in a parallel
            batch. None leaves the batch uncapped.
        resolved_gate_limit: Decided approval gates kept in memory. The oldest
            decisions are forgotten first. Defaults to 1000.
    """

    step_timeout: float = 30.0
    snapshot_limit: int = 50
    max_retries: int = 3
    retry_delay: float = 1.0
    approval_timeout: float | None = None
    max_concurrency: int | None = None
    resolved_gate_limit: int = 1000

    @classmethod
    def from_env(cls, prefix: str = "CREWS_", environ: dict[str, str] | None = None) -> EngineSettings:
        """Build settings from environment variables.

        Each field is read from ``{prefix}{FIELD_NAME}`` (for example
        ``CREWS_STEP_TIMEOUT``). Unset variables keep their defaults; an empty
        value sets optional fields to None.

        Args:
            prefix: Environment variable prefix.
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            The resulting settings.

        Raises:
            ValueError: If a variable cannot be converted to the field's type.
        """
        environ = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for settings_field in fields(cls):
            raw = environ.get(f"{prefix}{settings_field.name.upper()}")
            if raw is None:
                continue
            default = settings_field.default
            if raw == "":
                if settings_field.name in {"approval_timeout", "max_concurrency"}:
                    overrides[settings_field.name] = None
                continue
            if settings_field.name in {"snapshot_limit", "max_retries", "max_concurrency", "resolved_gate_limit"}:
                overrides[settings_field.name] = int(raw)
            elif isinstance(default, float) or settings_field.name == "approval_timeout":
                overrides[settings_field.name] = float(raw)
        return cls(**overrides)
