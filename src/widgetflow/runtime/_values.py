"""Result and error types shared by the evaluator, engine and dispatcher.

Nothing in the runtime raises to its callers: failures travel as
``RuntimeResult(success=False, ...)`` values.  ``ActionError`` is only
used internally between a handler and the engine's public entry point.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ErrorCode(str, Enum):
    INVALID_SCOPE = "InvalidScope"
    UNSUPPORTED_OPERATION = "UnsupportedOperation"
    UNSUPPORTED_ACTION_TYPE = "UnsupportedActionType"
    INVALID_ACTION = "InvalidAction"
    DOMAIN_NOT_ALLOWED = "DomainNotAllowed"
    MAX_EVENT_DEPTH_EXCEEDED = "MaxEventDepthExceeded"
    HTTP_ERROR = "HttpError"
    API_CALL_FAILED = "ApiCallFailed"
    EXECUTION_FAILED = "ExecutionFailed"


class ActionError(Exception):
    """Raised by an action handler; converted to a failed result."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ExpressionEvaluationError(Exception):
    """Internal to the evaluator; logged and swallowed."""


class Signal(BaseModel):
    """A side effect the UI shell is asked to perform.

    ``kind`` is the action type that produced it (``navigation``,
    ``toast``, ``emit_event``, ``open_widget``, ``close_widget``,
    ``stop_propagation``).
    """

    kind: str
    data: dict[str, Any] = {}


class RuntimeResult(BaseModel):
    success: bool
    error: str | None = None
    code: ErrorCode | None = None
    state_changes: dict[str, Any] = {}
    signals: list[Signal] = []
    logs: list[str] = []

    @classmethod
    def ok(cls, **kwargs: Any) -> RuntimeResult:
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, code: ErrorCode, error: str) -> RuntimeResult:
        return cls(success=False, code=code, error=error)

    def absorb(self, other: RuntimeResult) -> None:
        """Fold a nested result's state changes and signals into this one."""
        self.state_changes.update(other.state_changes)
        self.signals.extend(other.signals)
