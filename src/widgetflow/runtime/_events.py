"""Event dispatcher: guard conditions, ordered actions, depth-limited emits.

The recursion budget is an explicit ``depth`` threaded through each
call chain.  A top-level ``execute_event`` starts at depth 0 and every
event cross-fired by ``emit_event`` runs one level deeper, so two
independent dispatches never share a budget.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from collections import deque
from functools import partial
from typing import Any

from widgetflow.config import RuntimeOptions
from widgetflow.model.events import EventDefinition, EventLogEntry, EventTrigger
from widgetflow.model.state import RuntimeState

from ._actions import ActionEngine
from ._context import ExpressionContext
from ._expressions import ExpressionEvaluator, is_truthy
from ._log import RuntimeLog
from ._values import ErrorCode, RuntimeResult


class EventDispatcher:
    """Runs ``EventDefinition``s through an ``ActionEngine``.

    Also keeps a registry of known events, used to resolve ``emit_event``
    names and by ``dispatch``, and a bounded log of top-level executions.
    """

    def __init__(
        self,
        engine: ActionEngine | None = None,
        options: RuntimeOptions | None = None,
        evaluator: ExpressionEvaluator | None = None,
        log: RuntimeLog | None = None,
    ) -> None:
        self.options = options or (engine.options if engine else RuntimeOptions())
        if engine is None:
            evaluator = evaluator or ExpressionEvaluator(log or RuntimeLog(self.options.enable_logging))
            engine = ActionEngine(evaluator, self.options, log)
        self.engine = engine
        self.evaluator = evaluator or engine.evaluator
        self.log = log or engine.log
        self._events: dict[str, EventDefinition] = {}
        self._event_log: deque[EventLogEntry] = deque(maxlen=self.options.event_log_limit)
        self._lock = asyncio.Lock() if self.options.serialize_dispatches else None

    # -----------------------------------------------------------------------
    # Registry
    # -----------------------------------------------------------------------

    def register(self, event: EventDefinition) -> None:
        self._events[event.id] = event

    def unregister(self, event_id: str) -> None:
        self._events.pop(event_id, None)

    @property
    def events(self) -> list[EventDefinition]:
        return list(self._events.values())

    def events_for(
        self,
        trigger: EventTrigger | str,
        name: str | None = None,
        element_id: str | None = None,
    ) -> list[EventDefinition]:
        """Enabled events whose trigger matches, in registration order.

        An event without ``elementId`` matches every element.
        """
        trigger = EventTrigger(trigger)
        matched = []
        for event in self._events.values():
            if event.enabled is False or event.trigger.on != trigger:
                continue
            if name is not None and event.trigger.name != name:
                continue
            if element_id is not None and event.trigger.element_id not in (None, element_id):
                continue
            matched.append(event)
        return matched

    # -----------------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------------

    async def execute_event(
        self, event: EventDefinition, context: ExpressionContext, state: RuntimeState,
    ) -> RuntimeResult:
        """Execute *event* as a top-level dispatch and record it in the event log."""
        guard = self._lock if self._lock is not None else contextlib.nullcontext()
        async with guard:
            result, executed = await self._run(event, context, state, depth=0)
        self._record(event, result, executed)
        return result

    async def dispatch(
        self,
        trigger: EventTrigger | str,
        context: ExpressionContext,
        state: RuntimeState,
        name: str | None = None,
        element_id: str | None = None,
    ) -> list[RuntimeResult]:
        """Execute every registered event matching the trigger."""
        results = []
        for event in self.events_for(trigger, name=name, element_id=element_id):
            results.append(await self.execute_event(event, context, state))
        return results

    async def _run(
        self, event: EventDefinition, context: ExpressionContext, state: RuntimeState, depth: int,
    ) -> tuple[RuntimeResult, bool]:
        """Returns the result and whether the actions ran (guards passed)."""
        if depth >= self.options.max_event_depth:
            self.log.log(f"Event {event.id} refused at depth {depth}")
            return (
                RuntimeResult.fail(ErrorCode.MAX_EVENT_DEPTH_EXCEEDED, "Maximum event depth exceeded"),
                False,
            )

        self.log.log(f"Executing event: {event.id}")

        for condition in event.conditions or []:
            if not is_truthy(self.evaluator.evaluate(condition, context)):
                self.log.log(f"Event {event.id} condition failed: {condition}")
                return RuntimeResult.ok(logs=self.log.entries()), False

        emit = partial(self._emit, depth=depth + 1)
        combined = RuntimeResult.ok()
        for action in event.actions:
            result = await self.engine.execute_action(action, context, state, emit)
            combined.absorb(result)
            if not result.success:
                self.log.log(f"Action failed: {result.error}")
                combined.success = False
                combined.code = result.code
                combined.error = result.error
                break

        combined.logs = self.log.entries()
        return combined, True

    async def _emit(
        self, name: str, payload: Any, context: ExpressionContext, state: RuntimeState, *, depth: int,
    ) -> RuntimeResult:
        targets = [
            event for event in self._events.values()
            if event.enabled is not False
            and (
                event.id == name
                or (event.trigger.on == EventTrigger.CUSTOM_EVENT and event.trigger.name == name)
            )
        ]
        if not targets:
            self.log.log(f"No handlers registered for emitted event {name!r}")
            return RuntimeResult.ok()

        if payload is not None:
            context = context.with_extras(payload=payload)

        combined = RuntimeResult.ok()
        for event in targets:
            result, _ = await self._run(event, context, state, depth)
            combined.absorb(result)
            if not result.success:
                combined.success = False
                combined.code = result.code
                combined.error = result.error
                break
        return combined

    # -----------------------------------------------------------------------
    # Event log
    # -----------------------------------------------------------------------

    def _record(self, event: EventDefinition, result: RuntimeResult, executed: bool) -> None:
        if not result.success:
            outcome = "error"
        elif executed:
            outcome = "success"
        else:
            outcome = "cancelled"
        self._event_log.append(
            EventLogEntry(
                id=f"log_{uuid.uuid4().hex[:12]}",
                event_id=event.id,
                trigger=event.trigger.on.value,
                timestamp=time.time(),
                result=outcome,
                error=result.error,
            )
        )

    @property
    def event_log(self) -> list[EventLogEntry]:
        return list(self._event_log)

    def clear_event_log(self) -> None:
        self._event_log.clear()
