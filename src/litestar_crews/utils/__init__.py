"""Shared utilities for litestar-crews."""

from __future__ import annotations

from litestar_crews.utils.logging import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
