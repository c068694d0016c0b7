"""Tests for the action engine."""

import json

import httpx
import pytest

from conftest import make_ctx, make_engine, make_state, mock_client, set_action, update_action

from widgetflow.model.actions import (
    ApiCallAction,
    ApiCallParams,
    BatchAction,
    BatchParams,
    CloseWidgetAction,
    ConditionAction,
    ConditionParams,
    EmitEventAction,
    EmitEventParams,
    NavigationAction,
    NavigationParams,
    OpenWidgetAction,
    RecalculateAction,
    RecalculateParams,
    ToastAction,
    ToastParams,
    WidgetControlParams,
)
from widgetflow.runtime import ErrorCode, RuntimeResult


@pytest.fixture
def engine():
    return make_engine()


@pytest.fixture
def state():
    return make_state(
        app={"user": {"name": "Ada"}},
        screen={"count": 2, "price": 10, "qty": 4, "items": ["a", "b", "c"], "label": "x"},
    )


@pytest.fixture
def ctx(state):
    return make_ctx(state)


# ---------------------------------------------------------------------------
# state_update
# ---------------------------------------------------------------------------

class TestStateUpdateSet:
    async def test_set_value(self, engine, state, ctx):
        result = await engine.execute_action(set_action("screen.label", value="y"), ctx, state)
        assert result.success
        assert state.screen["label"] == "y"
        assert result.state_changes == {"screen.label": "y"}

    async def test_set_nested_creates_path(self, engine, state, ctx):
        await engine.execute_action(set_action("app.user.prefs.theme", value="dark"), ctx, state)
        assert state.app["user"] == {"name": "Ada", "prefs": {"theme": "dark"}}

    async def test_set_expression_wins_over_value(self, engine, state, ctx):
        action = set_action("screen.total", value=1, expression="screen.price * screen.qty")
        await engine.execute_action(action, ctx, state)
        assert state.screen["total"] == 40

    async def test_set_without_value_stores_none(self, engine, state, ctx):
        await engine.execute_action(set_action("screen.label"), ctx, state)
        assert state.screen["label"] is None

    async def test_write_visible_to_later_reads(self, engine, state, ctx):
        await engine.execute_action(set_action("screen.count", value=9), ctx, state)
        await engine.execute_action(set_action("screen.double", expression="screen.count * 2"), ctx, state)
        assert state.screen["double"] == 18


class TestStateUpdateOperations:
    async def test_increment_default(self, engine, state, ctx):
        result = await engine.execute_action(update_action("screen.count", "increment"), ctx, state)
        assert state.screen["count"] == 3
        assert result.state_changes == {"screen.count": 3}

    async def test_increment_by(self, engine, state, ctx):
        await engine.execute_action(update_action("screen.count", "increment", by=5), ctx, state)
        assert state.screen["count"] == 7

    async def test_increment_missing_starts_at_zero(self, engine, state, ctx):
        await engine.execute_action(update_action("screen.clicks", "increment"), ctx, state)
        assert state.screen["clicks"] == 1

    async def test_increment_by_ten(self, engine, ctx):
        state = make_state(screen={"cart": {"total": 40}})
        ctx = make_ctx(state)
        result = await engine.execute_action(update_action("screen.cart.total", "increment", by=10), ctx, state)
        assert state.screen["cart"]["total"] == 50
        assert result.state_changes == {"screen.cart.total": 50}

    async def test_decrement(self, engine, state, ctx):
        await engine.execute_action(update_action("screen.count", "decrement", by=3), ctx, state)
        assert state.screen["count"] == -1

    async def test_increment_non_numeric_fails(self, engine, state, ctx):
        result = await engine.execute_action(update_action("screen.label", "increment"), ctx, state)
        assert not result.success
        assert result.code == ErrorCode.UNSUPPORTED_OPERATION
        assert state.screen["label"] == "x"

    async def test_push_existing(self, engine, state, ctx):
        await engine.execute_action(update_action("screen.items", "push", value="d"), ctx, state)
        assert state.screen["items"] == ["a", "b", "c", "d"]

    async def test_push_missing(self, engine, state, ctx):
        await engine.execute_action(update_action("screen.log", "push", value={"n": 1}), ctx, state)
        assert state.screen["log"] == [{"n": 1}]

    async def test_push_replaces_list(self, engine, state, ctx):
        before = state.screen["items"]
        await engine.execute_action(update_action("screen.items", "push", value="d"), ctx, state)
        assert before == ["a", "b", "c"]

    async def test_remove_by_index(self, engine, state, ctx):
        await engine.execute_action(update_action("screen.items", "remove_by_index", value=1), ctx, state)
        assert state.screen["items"] == ["a", "c"]

    async def test_remove_by_index_string(self, engine, state, ctx):
        await engine.execute_action(update_action("screen.items", "remove_by_index", value="0"), ctx, state)
        assert state.screen["items"] == ["b", "c"]

    async def test_remove_by_index_out_of_range(self, engine, state, ctx):
        await engine.execute_action(update_action("screen.items", "remove_by_index", value=9), ctx, state)
        assert state.screen["items"] == ["a", "b", "c"]

    async def test_remove_by_index_non_list_is_noop(self, engine, state, ctx):
        result = await engine.execute_action(
            update_action("screen.label", "remove_by_index", value=0), ctx, state,
        )
        assert result.success
        assert state.screen["label"] == "x"

    async def test_update_by_path_unsupported(self, engine, state, ctx):
        result = await engine.execute_action(
            update_action("screen.label", "update_by_path", value="z"), ctx, state,
        )
        assert not result.success
        assert result.code == ErrorCode.UNSUPPORTED_OPERATION
        assert result.error == "Unsupported operation: update_by_path"


class TestStateUpdateScopes:
    async def test_invalid_scope(self, engine, state, ctx):
        result = await engine.execute_action(set_action("session.token", value="t"), ctx, state)
        assert not result.success
        assert result.code == ErrorCode.INVALID_SCOPE
        assert result.error == "Invalid state scope: session"

    async def test_params_scope_is_read_only(self, engine, state):
        ctx = make_ctx(state, params={"id": 1})
        result = await engine.execute_action(set_action("params.id", value=2), ctx, state)
        assert result.code == ErrorCode.INVALID_SCOPE

    async def test_missing_path(self, engine, state, ctx):
        result = await engine.execute_action(set_action("screen", value=1), ctx, state)
        assert result.code == ErrorCode.INVALID_SCOPE

    async def test_local_with_instance(self, engine, state):
        ctx = make_ctx(state, instance_id="w1")
        await engine.execute_action(set_action("local.open", value=True), ctx, state)
        assert state.widgets["w1"] == {"open": True}

    async def test_local_with_explicit_map(self, engine, state):
        local = {}
        ctx = make_ctx(state, local=local)
        await engine.execute_action(update_action("local.n", "increment"), ctx, state)
        assert local == {"n": 1}

    async def test_local_without_binding(self, engine, state, ctx):
        result = await engine.execute_action(set_action("local.open", value=True), ctx, state)
        assert result.code == ErrorCode.INVALID_SCOPE

    async def test_set_past_list_end_pads(self, engine, state, ctx):
        result = await engine.execute_action(set_action("screen.items.5", value="f"), ctx, state)
        assert result.success
        assert state.screen["items"] == ["a", "b", "c", None, None, "f"]

    async def test_named_segment_on_list_fails(self, engine, state, ctx):
        result = await engine.execute_action(set_action("screen.items.first", value="z"), ctx, state)
        assert not result.success
        assert result.code == ErrorCode.UNSUPPORTED_OPERATION
        assert state.screen["items"] == ["a", "b", "c"]


# ---------------------------------------------------------------------------
# recalculate
# ---------------------------------------------------------------------------

class TestRecalculate:
    async def test_formula(self, engine, state, ctx):
        action = RecalculateAction(
            id="r", params=RecalculateParams(target="screen.total", formula="screen.price * screen.qty"),
        )
        result = await engine.execute_action(action, ctx, state)
        assert state.screen["total"] == 40
        assert result.state_changes == {"screen.total": 40}

    async def test_reduce_formula(self, engine, ctx):
        state = make_state(screen={"cart": {"items": [{"price": 10, "count": 2}, {"price": 20, "count": 1}]}})
        ctx = make_ctx(state)
        action = RecalculateAction(
            id="r",
            params=RecalculateParams(
                target="screen.cart.total",
                formula="screen.cart.items.reduce((sum, item) => sum + item.price * item.count, 0)",
            ),
        )
        await engine.execute_action(action, ctx, state)
        assert state.screen["cart"]["total"] == 40

    async def test_invalid_target(self, engine, state, ctx):
        action = RecalculateAction(id="r", params=RecalculateParams(target="nowhere.x", formula="1 + 1"))
        result = await engine.execute_action(action, ctx, state)
        assert result.code == ErrorCode.INVALID_SCOPE


# ---------------------------------------------------------------------------
# UI signals
# ---------------------------------------------------------------------------

class TestSignals:
    async def test_navigation(self, engine, state, ctx):
        action = NavigationAction(id="n", params=NavigationParams(action="navigate_to", target="checkout"))
        result = await engine.execute_action(action, ctx, state)
        assert result.success
        assert result.signals[0].kind == "navigation"
        assert result.signals[0].data["target"] == "checkout"

    async def test_toast_interpolates(self, engine, state, ctx):
        action = ToastAction(id="t", params=ToastParams(message="Hello {app.user.name}", type="success"))
        result = await engine.execute_action(action, ctx, state)
        assert result.signals[0].data == {"message": "Hello Ada", "type": "success", "duration": None}

    async def test_toast_default_type(self, engine, state, ctx):
        action = ToastAction(id="t", params=ToastParams(message="Saved"))
        result = await engine.execute_action(action, ctx, state)
        assert result.signals[0].data["type"] == "info"

    async def test_open_and_close_widget(self, engine, state, ctx):
        opened = await engine.execute_action(
            OpenWidgetAction(id="o", params=WidgetControlParams(widget_instance_id="dlg")), ctx, state,
        )
        closed = await engine.execute_action(
            CloseWidgetAction(id="c", params=WidgetControlParams(widget_instance_id="dlg")), ctx, state,
        )
        assert opened.signals[0].kind == "open_widget"
        assert closed.signals[0].kind == "close_widget"
        assert closed.signals[0].data == {"widgetInstanceId": "dlg"}

    async def test_stop_propagation_from_mapping(self, engine, state, ctx):
        result = await engine.execute_action({"id": "s", "type": "stop_propagation"}, ctx, state)
        assert result.success
        assert [s.kind for s in result.signals] == ["stop_propagation"]

    async def test_emit_without_dispatcher_records_intent(self, engine, state, ctx):
        action = EmitEventAction(id="e", params=EmitEventParams(name="cart_updated", payload={"n": 1}))
        result = await engine.execute_action(action, ctx, state)
        assert result.success
        assert result.signals[0].data == {"name": "cart_updated", "payload": {"n": 1}}

    async def test_emit_calls_emitter(self, engine, state, ctx):
        calls = []

        async def emit(name, payload, context, st):
            calls.append((name, payload))
            return RuntimeResult.ok(state_changes={"screen.x": 1})

        action = EmitEventAction(id="e", params=EmitEventParams(name="ping"))
        result = await engine.execute_action(action, ctx, state, emit)
        assert calls == [("ping", None)]
        assert result.state_changes == {"screen.x": 1}


# ---------------------------------------------------------------------------
# Control flow
# ---------------------------------------------------------------------------

class TestCondition:
    async def test_true_branch(self, engine, state, ctx):
        action = ConditionAction(
            id="c",
            params=ConditionParams(
                condition="{screen.count} > 1",
                if_true=[set_action("screen.branch", value="yes")],
                if_false=[set_action("screen.branch", value="no")],
            ),
        )
        await engine.execute_action(action, ctx, state)
        assert state.screen["branch"] == "yes"

    async def test_false_branch(self, engine, state, ctx):
        action = ConditionAction(
            id="c",
            params=ConditionParams(
                condition="{screen.count} > 5",
                if_true=[set_action("screen.branch", value="yes")],
                if_false=[set_action("screen.branch", value="no")],
            ),
        )
        await engine.execute_action(action, ctx, state)
        assert state.screen["branch"] == "no"

    async def test_false_without_else(self, engine, state, ctx):
        action = ConditionAction(
            id="c",
            params=ConditionParams(condition="false", if_true=[set_action("screen.branch", value="yes")]),
        )
        result = await engine.execute_action(action, ctx, state)
        assert result.success
        assert "branch" not in state.screen

    async def test_empty_list_is_truthy(self, engine, ctx):
        state = make_state(screen={"list": []})
        ctx = make_ctx(state)
        action = ConditionAction(
            id="c",
            params=ConditionParams(condition="{screen.list}", if_true=[set_action("screen.hit", value=True)]),
        )
        await engine.execute_action(action, ctx, state)
        assert state.screen["hit"] is True

    async def test_branch_continues_after_failure(self, engine, state, ctx):
        action = ConditionAction(
            id="c",
            params=ConditionParams(
                condition="true",
                if_true=[
                    set_action("bogus.x", value=1, id="bad"),
                    set_action("screen.after", value=1, id="good"),
                ],
            ),
        )
        result = await engine.execute_action(action, ctx, state)
        assert result.success
        assert state.screen["after"] == 1

    async def test_from_camel_case_mapping(self, engine, state, ctx):
        raw = {
            "id": "c",
            "type": "condition",
            "params": {
                "condition": "true",
                "ifTrue": [{
                    "id": "s",
                    "type": "state_update",
                    "params": {"target": "screen.ok", "operation": "set", "value": 1},
                }],
            },
        }
        result = await engine.execute_action(raw, ctx, state)
        assert result.success
        assert state.screen["ok"] == 1


class TestBatch:
    async def test_runs_all(self, engine, state, ctx):
        action = BatchAction(
            id="b",
            params=BatchParams(actions=[
                update_action("screen.count", "increment", id="i1"),
                update_action("screen.count", "increment", id="i2"),
                set_action("screen.done", value=True),
            ]),
        )
        result = await engine.execute_action(action, ctx, state)
        assert state.screen["count"] == 4
        assert result.state_changes == {"screen.count": 4, "screen.done": True}

    async def test_continues_after_failure(self, engine, state, ctx):
        action = BatchAction(
            id="b",
            params=BatchParams(actions=[
                update_action("screen.label", "increment", id="bad"),
                set_action("screen.done", value=True),
            ]),
        )
        result = await engine.execute_action(action, ctx, state)
        assert result.success
        assert state.screen["done"] is True

    async def test_atomic_is_logged(self, engine, state, ctx):
        action = BatchAction(id="b", params=BatchParams(actions=[], atomic=True))
        await engine.execute_action(action, ctx, state)
        assert any("atomic" in line for line in engine.log.entries())


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------

class TestMalformed:
    async def test_unknown_type(self, engine, state, ctx):
        result = await engine.execute_action({"id": "x", "type": "teleport", "params": {}}, ctx, state)
        assert not result.success
        assert result.code == ErrorCode.UNSUPPORTED_ACTION_TYPE
        assert result.error == "Unsupported action type: teleport"

    async def test_missing_params(self, engine, state, ctx):
        result = await engine.execute_action({"id": "x", "type": "toast"}, ctx, state)
        assert result.code == ErrorCode.INVALID_ACTION

    async def test_bad_operation(self, engine, state, ctx):
        raw = {"id": "x", "type": "state_update", "params": {"target": "screen.a", "operation": "merge"}}
        result = await engine.execute_action(raw, ctx, state)
        assert result.code == ErrorCode.INVALID_ACTION


# ---------------------------------------------------------------------------
# api_call
# ---------------------------------------------------------------------------

def _api_call(url, method="GET", **params):
    return ApiCallAction(id="api", params=ApiCallParams(method=method, url=url, **params))


class TestApiCall:
    async def test_success_runs_on_success_with_response(self, state, ctx):
        client = mock_client(lambda request: httpx.Response(200, json={"total": 99}))
        engine = make_engine(http_client=client)
        action = _api_call(
            "http://localhost/api/cart",
            on_success=[set_action("screen.total", expression="{response.total}")],
        )
        result = await engine.execute_action(action, ctx, state)
        assert result.success
        assert state.screen["total"] == 99

    async def test_request_shape(self, state, ctx):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={})

        engine = make_engine(http_client=mock_client(handler))
        action = _api_call(
            "http://localhost/api/orders", method="POST",
            headers={"X-Token": "abc"}, body={"sku": "A1"},
        )
        await engine.execute_action(action, ctx, state)
        request = seen[0]
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/json"
        assert request.headers["x-token"] == "abc"
        assert json.loads(request.content) == {"sku": "A1"}

    async def test_relative_url_uses_base(self, state, ctx):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={})

        engine = make_engine(http_client=mock_client(handler), api_base_url="http://localhost:8000/api")
        await engine.execute_action(_api_call("/items"), ctx, state)
        assert seen == ["http://localhost:8000/api/items"]

    async def test_domain_not_allowed(self, state, ctx):
        handler_calls = []
        client = mock_client(lambda r: handler_calls.append(r) or httpx.Response(200, json={}))
        engine = make_engine(http_client=client)
        action = _api_call(
            "https://evil.example.com/steal",
            on_error=[set_action("screen.err", value="ran")],
        )
        result = await engine.execute_action(action, ctx, state)
        assert not result.success
        assert result.code == ErrorCode.DOMAIN_NOT_ALLOWED
        assert result.error == "API call failed: Domain not allowed: evil.example.com"
        assert handler_calls == []
        assert state.screen["err"] == "ran"

    async def test_domain_rejection_passes_error_to_on_error(self, state, ctx):
        client = mock_client(lambda r: httpx.Response(200, json={}))
        engine = make_engine(http_client=client)
        action = _api_call(
            "https://evil.example.com/steal",
            on_error=[set_action("screen.err", expression="{error}")],
        )
        await engine.execute_action(action, ctx, state)
        assert state.screen["err"] == "Domain not allowed: evil.example.com"

    async def test_subdomain_allowed(self, state, ctx):
        client = mock_client(lambda r: httpx.Response(200, json={}))
        engine = make_engine(http_client=client, allowed_domains=["example.com"])
        result = await engine.execute_action(_api_call("https://api.example.com/items"), ctx, state)
        assert result.success

    async def test_lookalike_domain_rejected(self, state, ctx):
        client = mock_client(lambda r: httpx.Response(200, json={}))
        engine = make_engine(http_client=client, allowed_domains=["example.com"])
        result = await engine.execute_action(_api_call("https://notexample.com/items"), ctx, state)
        assert result.code == ErrorCode.DOMAIN_NOT_ALLOWED

    async def test_http_error_runs_on_error(self, state, ctx):
        client = mock_client(lambda r: httpx.Response(500, json={"detail": "down"}))
        engine = make_engine(http_client=client)
        action = _api_call(
            "http://localhost/api/cart",
            on_success=[set_action("screen.ok", value=True)],
            on_error=[set_action("screen.err", expression="{error}")],
        )
        result = await engine.execute_action(action, ctx, state)
        assert not result.success
        assert result.code == ErrorCode.HTTP_ERROR
        assert result.error == "API call failed: HTTP 500: Internal Server Error"
        assert state.screen["err"] == "HTTP 500: Internal Server Error"
        assert "ok" not in state.screen

    async def test_transport_error(self, state, ctx):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        engine = make_engine(http_client=mock_client(handler))
        action = _api_call("http://localhost/api/cart", on_error=[set_action("screen.failed", value=True)])
        result = await engine.execute_action(action, ctx, state)
        assert result.code == ErrorCode.API_CALL_FAILED
        assert state.screen["failed"] is True

    async def test_invalid_json(self, state, ctx):
        client = mock_client(lambda r: httpx.Response(200, text="not json"))
        engine = make_engine(http_client=client)
        result = await engine.execute_action(_api_call("http://localhost/api/cart"), ctx, state)
        assert result.code == ErrorCode.API_CALL_FAILED

    async def test_map_response_not_applied(self, state, ctx):
        client = mock_client(lambda r: httpx.Response(200, json={"total": 5}))
        engine = make_engine(http_client=client)
        before = dict(state.screen)
        action = _api_call("http://localhost/api/cart", map_response="{response.total}")
        result = await engine.execute_action(action, ctx, state)
        assert result.success
        assert state.screen == before
        assert any("mapResponse" in line for line in engine.log.entries())
