"""widgetflow runtime: bindings, actions and events for a running screen.

Entry point::

    from widgetflow.runtime import create_runtime, create_context

    runtime = create_runtime(max_event_depth=5)
    ctx = create_context(state)
    runtime.evaluate("{screen.cart.total}", ctx)
    result = await runtime.execute_event(event, ctx, state)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from widgetflow.config import RuntimeOptions
from widgetflow.model.actions import Action
from widgetflow.model.events import EventDefinition, EventLogEntry, EventTrigger
from widgetflow.model.state import RuntimeState

from ._actions import ActionEngine
from ._context import ExpressionContext, create_context, merge_state
from ._events import EventDispatcher
from ._expressions import ExpressionEvaluator, is_truthy
from ._log import RuntimeLog
from ._paths import PathError, get_path, set_path
from ._values import ErrorCode, RuntimeResult, Signal


class Runtime:
    """One evaluator, engine and dispatcher sharing options and a log.

    Parameters
    ----------
    options : RuntimeOptions
        Depth limit, logging switch and ``api_call`` policy.
    http_client : httpx.AsyncClient, optional
        Client used by ``api_call`` actions.
    """

    def __init__(
        self,
        options: RuntimeOptions | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.options = options or RuntimeOptions()
        self.log = RuntimeLog(self.options.enable_logging)
        self.evaluator = ExpressionEvaluator(self.log)
        self.engine = ActionEngine(self.evaluator, self.options, self.log, http_client)
        self.dispatcher = EventDispatcher(self.engine, self.options, self.evaluator, self.log)

    def evaluate(self, expression: str, context: ExpressionContext | Mapping[str, Any]) -> Any:
        return self.evaluator.evaluate(expression, context)

    async def execute_action(
        self, action: Action | Mapping[str, Any], context: ExpressionContext, state: RuntimeState,
    ) -> RuntimeResult:
        """Execute a single action outside any event (``emit_event`` only records intent)."""
        return await self.engine.execute_action(action, context, state)

    async def execute_event(
        self, event: EventDefinition, context: ExpressionContext, state: RuntimeState,
    ) -> RuntimeResult:
        return await self.dispatcher.execute_event(event, context, state)

    async def dispatch(
        self,
        trigger: EventTrigger | str,
        context: ExpressionContext,
        state: RuntimeState,
        name: str | None = None,
        element_id: str | None = None,
    ) -> list[RuntimeResult]:
        return await self.dispatcher.dispatch(trigger, context, state, name=name, element_id=element_id)

    def register_event(self, event: EventDefinition) -> None:
        self.dispatcher.register(event)

    @property
    def event_log(self) -> list[EventLogEntry]:
        return self.dispatcher.event_log

    def get_logs(self) -> list[str]:
        return self.log.entries()

    def clear_logs(self) -> None:
        self.log.clear()


def create_runtime(
    options: RuntimeOptions | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    **overrides: Any,
) -> Runtime:
    """Create a runtime; keyword *overrides* are ``RuntimeOptions`` fields."""
    if overrides:
        base = options.model_dump() if options is not None else {}
        options = RuntimeOptions.model_validate({**base, **overrides})
    return Runtime(options, http_client=http_client)


__all__ = [
    "ActionEngine",
    "ErrorCode",
    "EventDispatcher",
    "ExpressionContext",
    "ExpressionEvaluator",
    "Runtime",
    "RuntimeLog",
    "RuntimeResult",
    "Signal",
    "create_context",
    "create_runtime",
    "get_path",
    "is_truthy",
    "PathError",
    "merge_state",
    "set_path",
]
