"""Action engine: executes one action against a mutable ``RuntimeState``.

``ActionEngine.execute_action`` never raises.  Handlers raise
``ActionError`` for expected failures; the entry point converts those
(and anything unexpected) into a failed ``RuntimeResult``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any
from urllib.parse import urljoin

import httpx
from pydantic import ValidationError

from widgetflow.config import RuntimeOptions
from widgetflow.model.actions import (
    ACTION_TYPES,
    Action,
    ApiCallAction,
    BatchAction,
    CloseWidgetAction,
    ConditionAction,
    EmitEventAction,
    NavigationAction,
    OpenWidgetAction,
    RecalculateAction,
    StateOperation,
    StateUpdateAction,
    StopPropagationAction,
    ToastAction,
    ToastKind,
    parse_action,
)
from widgetflow.model.state import RuntimeState

from ._context import ExpressionContext
from ._expressions import ExpressionEvaluator, is_truthy
from ._log import RuntimeLog
from ._paths import PathError, get_path, set_path
from ._values import ActionError, ErrorCode, RuntimeResult, Signal

logger = logging.getLogger(__name__)

Emitter = Callable[[str, Any, ExpressionContext, RuntimeState], Awaitable[RuntimeResult]]
"""Callback that cross-fires an emitted event: (name, payload, context, state)."""

_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")


class ActionEngine:
    """Dispatches actions by ``type`` to their handlers.

    Parameters
    ----------
    evaluator : ExpressionEvaluator
        Used for every embedded expression (``expression``, ``formula``,
        ``condition``, ``message``, ``mapResponse``).
    options : RuntimeOptions
        Allow-list, base URL and timeout for ``api_call``.
    log : RuntimeLog
        Shared runtime log; defaults to the evaluator's.
    http_client : httpx.AsyncClient, optional
        Client for ``api_call``.  When omitted, a short-lived client is
        opened per call.
    """

    def __init__(
        self,
        evaluator: ExpressionEvaluator | None = None,
        options: RuntimeOptions | None = None,
        log: RuntimeLog | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.options = options or RuntimeOptions()
        self.evaluator = evaluator or ExpressionEvaluator(
            log or RuntimeLog(self.options.enable_logging)
        )
        self.log = log or self.evaluator.log
        self.http_client = http_client

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def execute_action(
        self,
        action: Action | Mapping[str, Any],
        context: ExpressionContext,
        state: RuntimeState,
        emit: Emitter | None = None,
    ) -> RuntimeResult:
        """Execute *action* and report what changed.

        *action* may be a raw JSON-shaped mapping; unknown types fail with
        ``UnsupportedActionType`` and malformed params with ``InvalidAction``.
        *emit*, when given, is called for ``emit_event`` actions (the event
        dispatcher passes one); without it emitting only records intent.
        """
        if isinstance(action, Mapping):
            kind = action.get("type")
            if kind not in ACTION_TYPES:
                return RuntimeResult.fail(
                    ErrorCode.UNSUPPORTED_ACTION_TYPE, f"Unsupported action type: {kind}"
                )
            try:
                action = parse_action(action)
            except ValidationError as exc:
                return RuntimeResult.fail(ErrorCode.INVALID_ACTION, f"Invalid {kind} action: {exc}")

        handler = self._ACTION_DISPATCH.get(action.type)
        if handler is None:
            return RuntimeResult.fail(
                ErrorCode.UNSUPPORTED_ACTION_TYPE, f"Unsupported action type: {action.type}"
            )

        self.log.log(f"Executing action: {action.type}")
        try:
            return await handler(self, action, context, state, emit)
        except ActionError as exc:
            self.log.log(f"Action {action.id} failed: {exc.message}")
            return RuntimeResult.fail(exc.code, exc.message)
        except Exception as exc:
            logger.exception("Action %s (%s) raised", action.id, action.type)
            return RuntimeResult.fail(ErrorCode.EXECUTION_FAILED, f"Action execution failed: {exc}")

    # -----------------------------------------------------------------------
    # State mutation
    # -----------------------------------------------------------------------

    async def _exec_state_update(
        self, action: StateUpdateAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        params = action.params
        root, path = self._resolve_target(params.target, context, state)
        op = params.operation

        if op == StateOperation.SET:
            if params.expression:
                new_value = self.evaluator.evaluate(params.expression, context)
            else:
                new_value = params.value

        elif op in (StateOperation.INCREMENT, StateOperation.DECREMENT):
            current = get_path(root, path) or 0
            by = params.by or 1
            if not _is_number(current):
                raise ActionError(
                    ErrorCode.UNSUPPORTED_OPERATION,
                    f"Cannot {op.value} non-numeric value at {params.target}",
                )
            new_value = current + by if op == StateOperation.INCREMENT else current - by

        elif op == StateOperation.PUSH:
            current = get_path(root, path)
            new_value = [*(current if isinstance(current, list) else []), params.value]

        elif op == StateOperation.REMOVE_BY_INDEX:
            current = get_path(root, path)
            if not isinstance(current, list):
                new_value = current
            else:
                index = _parse_index(params.value)
                new_value = [item for i, item in enumerate(current) if i != index]

        else:
            raise ActionError(ErrorCode.UNSUPPORTED_OPERATION, f"Unsupported operation: {op.value}")

        self._write(root, path, new_value)
        return RuntimeResult.ok(state_changes={params.target: new_value})

    async def _exec_recalculate(
        self, action: RecalculateAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        params = action.params
        result = self.evaluator.evaluate(params.formula, context)
        root, path = self._resolve_target(params.target, context, state)
        self._write(root, path, result)
        return RuntimeResult.ok(state_changes={params.target: result})

    def _resolve_target(
        self, target: str, context: ExpressionContext, state: RuntimeState,
    ) -> tuple[dict[str, Any], str]:
        """Split ``scope.path`` and return the scope's map and the remaining path."""
        scope, _, path = target.partition(".")
        if scope == "app":
            root = state.app
        elif scope == "screen":
            root = state.screen
        elif scope == "local":
            if context.local is not None:
                root = context.local
            elif context.instance_id is not None:
                root = state.widget_local(context.instance_id)
            else:
                raise ActionError(ErrorCode.INVALID_SCOPE, "No widget instance bound for local scope")
        else:
            raise ActionError(ErrorCode.INVALID_SCOPE, f"Invalid state scope: {scope}")

        if not path:
            raise ActionError(ErrorCode.INVALID_SCOPE, f"State target needs a path: {target!r}")
        return root, path

    @staticmethod
    def _write(root: dict[str, Any], path: str, value: Any) -> None:
        try:
            set_path(root, path, value)
        except PathError as exc:
            raise ActionError(ErrorCode.UNSUPPORTED_OPERATION, f"Cannot write {path}: {exc}") from exc

    # -----------------------------------------------------------------------
    # UI signals
    # -----------------------------------------------------------------------

    async def _exec_navigation(
        self, action: NavigationAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        params = action.params
        self.log.log(f"Navigation: {params.action.value} {params.target or params.modal_id or ''}".rstrip())
        data = {"action": params.action.value, "target": params.target, "modalId": params.modal_id}
        return RuntimeResult.ok(signals=[Signal(kind="navigation", data=data)])

    async def _exec_toast(
        self, action: ToastAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        params = action.params
        message = self.evaluator.interpolate(params.message, context)
        kind = (params.type or ToastKind.INFO).value
        self.log.log(f"Toast: {message} ({kind})")
        data = {"message": message, "type": kind, "duration": params.duration}
        return RuntimeResult.ok(signals=[Signal(kind="toast", data=data)])

    async def _exec_widget_control(
        self, action: OpenWidgetAction | CloseWidgetAction, context: ExpressionContext, state: RuntimeState,
        emit: Emitter | None,
    ) -> RuntimeResult:
        instance_id = action.params.widget_instance_id
        self.log.log(f"{action.type}: {instance_id}")
        return RuntimeResult.ok(signals=[Signal(kind=action.type, data={"widgetInstanceId": instance_id})])

    async def _exec_stop_propagation(
        self, action: StopPropagationAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        return RuntimeResult.ok(signals=[Signal(kind="stop_propagation")])

    async def _exec_emit_event(
        self, action: EmitEventAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        params = action.params
        self.log.log(f"Emit event: {params.name}")
        result = RuntimeResult.ok(
            signals=[Signal(kind="emit_event", data={"name": params.name, "payload": params.payload})]
        )
        if emit is None:
            return result

        fired = await emit(params.name, params.payload, context, state)
        result.absorb(fired)
        if not fired.success:
            result.success = False
            result.code = fired.code
            result.error = fired.error
        return result

    # -----------------------------------------------------------------------
    # Control flow
    # -----------------------------------------------------------------------

    async def _exec_condition(
        self, action: ConditionAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        params = action.params
        outcome = self.evaluator.evaluate(params.condition, context)
        branch = params.if_true if is_truthy(outcome) else (params.if_false or [])
        return await self._run_all(branch, context, state, emit)

    async def _exec_batch(
        self, action: BatchAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        if action.params.atomic:
            # TODO: snapshot state before an atomic batch and restore it when a step fails.
            self.log.log(f"Batch {action.id} requested atomic execution; running without rollback")
        return await self._run_all(action.params.actions, context, state, emit)

    async def _run_all(
        self, actions: list[Action], context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        """Run every action in order regardless of earlier failures."""
        combined = RuntimeResult.ok()
        for sub in actions:
            result = await self.execute_action(sub, context, state, emit)
            if not result.success:
                self.log.log(f"Action {sub.id} failed, continuing: {result.error}")
            combined.absorb(result)
        return combined

    # -----------------------------------------------------------------------
    # HTTP
    # -----------------------------------------------------------------------

    async def _exec_api_call(
        self, action: ApiCallAction, context: ExpressionContext, state: RuntimeState, emit: Emitter | None,
    ) -> RuntimeResult:
        params = action.params
        url = self._resolve_url(params.url)
        headers = {"Content-Type": "application/json", **(params.headers or {})}
        try:
            host = httpx.URL(url).host
            if not self._domain_allowed(host):
                raise ActionError(ErrorCode.DOMAIN_NOT_ALLOWED, f"Domain not allowed: {host or url}")
            response = await self._send(params.method.value, url, headers, params.body)
            if not response.is_success:
                raise ActionError(
                    ErrorCode.HTTP_ERROR, f"HTTP {response.status_code}: {response.reason_phrase}"
                )
            data = response.json()
        except ActionError as exc:
            failure = exc
        except httpx.InvalidURL as exc:
            failure = ActionError(ErrorCode.API_CALL_FAILED, f"Invalid URL {url!r}: {exc}")
        except (httpx.HTTPError, ValueError) as exc:
            failure = ActionError(ErrorCode.API_CALL_FAILED, str(exc) or type(exc).__name__)
        else:
            self.log.log(f"API call {params.method.value} {url} succeeded")
            success_ctx = context.with_extras(response=data)
            combined = await self._run_all(params.on_success or [], success_ctx, state, emit)
            if params.map_response:
                mapped = self.evaluator.evaluate(params.map_response, success_ctx)
                # The mapped value is computed for the log only; it is not written to state.
                self.log.log(f"API call mapResponse evaluated to {mapped!r} (not applied)")
            return combined

        self.log.log(f"API call {params.method.value} {url} failed: {failure.message}")
        error_ctx = context.with_extras(error=failure.message)
        combined = await self._run_all(params.on_error or [], error_ctx, state, emit)
        combined.success = False
        combined.code = failure.code
        combined.error = f"API call failed: {failure.message}"
        return combined

    async def _send(self, method: str, url: str, headers: dict[str, str], body: Any) -> httpx.Response:
        if self.http_client is not None:
            return await self.http_client.request(method, url, headers=headers, json=body)
        async with httpx.AsyncClient(timeout=self.options.request_timeout) as client:
            return await client.request(method, url, headers=headers, json=body)

    def _resolve_url(self, url: str) -> str:
        base = self.options.api_base_url
        if base and "://" not in url:
            return urljoin(base.rstrip("/") + "/", url.lstrip("/"))
        return url

    def _domain_allowed(self, host: str) -> bool:
        if not host:
            return False
        host = host.lower()
        for domain in self.options.allowed_domains:
            domain = domain.lower()
            if host == domain or host.endswith("." + domain):
                return True
        return False

    # Action dispatch table
    _ACTION_DISPATCH: dict[str, Callable[..., Awaitable[RuntimeResult]]] = {
        "state_update": _exec_state_update,
        "recalculate": _exec_recalculate,
        "navigation": _exec_navigation,
        "toast": _exec_toast,
        "emit_event": _exec_emit_event,
        "condition": _exec_condition,
        "batch": _exec_batch,
        "api_call": _exec_api_call,
        "open_widget": _exec_widget_control,
        "close_widget": _exec_widget_control,
        "stop_propagation": _exec_stop_propagation,
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_index(value: Any) -> int | None:
    """Integer index from a number or a numeric-prefixed string."""
    if _is_number(value):
        return int(value)
    if isinstance(value, str):
        match = _INT_PREFIX_RE.match(value)
        if match:
            return int(match.group(1))
    return None
