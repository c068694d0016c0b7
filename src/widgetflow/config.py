"""Runtime options.

Defaults suit the in-browser preview; ``RuntimeOptions.from_env`` lets a
host override them with ``WIDGETFLOW_*`` environment variables.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field


def _parse_csv_env(name: str) -> list[str]:
    val = os.getenv(name)
    if not val:
        return []
    return [s.strip() for s in val.split(",") if s.strip()]


def _parse_bool(val: str) -> bool:
    return val.strip().lower() in ("1", "true", "yes", "on")


class RuntimeOptions(BaseModel):
    """Options shared by the evaluator, action engine and event dispatcher."""

    max_event_depth: int = Field(default=10, ge=1)
    enable_logging: bool = True
    api_base_url: str | None = None
    allowed_domains: list[str] = ["localhost", "127.0.0.1"]
    request_timeout: float = Field(default=10.0, gt=0)
    serialize_dispatches: bool = False
    event_log_limit: int = Field(default=100, ge=0)

    @classmethod
    def from_env(cls, **overrides: Any) -> RuntimeOptions:
        """Build options from ``WIDGETFLOW_*`` variables, then *overrides*."""
        data: dict[str, Any] = {}
        if v := os.getenv("WIDGETFLOW_MAX_EVENT_DEPTH"):
            data["max_event_depth"] = int(v)
        if v := os.getenv("WIDGETFLOW_ENABLE_LOGGING"):
            data["enable_logging"] = _parse_bool(v)
        if v := os.getenv("WIDGETFLOW_API_BASE_URL"):
            data["api_base_url"] = v
        if domains := _parse_csv_env("WIDGETFLOW_ALLOWED_DOMAINS"):
            data["allowed_domains"] = domains
        if v := os.getenv("WIDGETFLOW_REQUEST_TIMEOUT"):
            data["request_timeout"] = float(v)
        data.update(overrides)
        return cls.model_validate(data)
