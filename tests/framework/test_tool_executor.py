import asyncio
import time

import pytest

from libs.core.config import EngineConfig
from libs.core.errors import ToolExecutionError, ToolValidationError
from libs.core.models import ExecutionResult, ExecutionState, ToolSpec
from libs.core.store import SqlStore
from libs.framework.tool_runtime import (
    ExecutionContext,
    ExecutionOptions,
    Tool,
    ToolExecutor,
    classify_exception,
)

ECHO_SCHEMA = {
    "type": "object",
    "properties": {"message": {"type": "string", "minLength": 1}},
    "required": ["message"],
}


class CountingHandler:
    def __init__(self, result=None):
        self.calls = []
        self.result = result

    def __call__(self, payload, context):
        self.calls.append(payload)
        if self.result is not None:
            return self.result
        return {"echo": payload.get("message")}


def _executor(store=None, **config):
    return ToolExecutor(store=store, config=EngineConfig(**config))


def _register(executor, name, handler, schema=ECHO_SCHEMA, **spec):
    executor.register_tool(
        Tool(spec=ToolSpec(name=name, parameter_schema=schema, **spec), handler=handler)
    )


def test_echo_tool_runs_once_and_reports_metadata():
    executor = _executor()
    handler = CountingHandler()
    _register(executor, "echo", handler)

    result = asyncio.run(executor.execute_tool("echo", {"message": "hi"}))

    assert result.success
    assert result.data == {"echo": "hi"}
    assert handler.calls == [{"message": "hi"}]
    assert result.metadata.tool_name == "echo"
    assert result.metadata.state == ExecutionState.completed
    assert result.metadata.execution_time_ms >= 0
    assert result.metadata.transactional is None


def test_unknown_tool_is_a_failure_result():
    result = asyncio.run(_executor().execute_tool("publish", {}))
    assert not result.success
    assert result.error == "Tool publish not found"
    assert result.error_code == "contract.tool_not_found"


def test_invalid_params_raise_without_invoking_body():
    executor = _executor()
    handler = CountingHandler()
    _register(executor, "echo", handler)

    with pytest.raises(ToolValidationError) as excinfo:
        asyncio.run(executor.execute_tool("echo", {"message": ""}))

    assert handler.calls == []
    assert excinfo.value.errors[0].path == "message"
    assert classify_exception(excinfo.value) == "contract.input_invalid"


def test_validate_only_skips_body():
    executor = _executor()
    handler = CountingHandler()
    _register(executor, "echo", handler)

    result = asyncio.run(
        executor.execute_tool("echo", {"message": "hi"}, ExecutionOptions(validate_only=True))
    )

    assert result.success
    assert result.data is None
    assert result.metadata.validated is True
    assert result.metadata.state == ExecutionState.validated
    assert handler.calls == []


def test_timeout_discards_late_outcome():
    executor = _executor()
    finished = []

    async def slow(payload, context):
        await asyncio.sleep(0.5)
        finished.append(True)
        return "late"

    _register(executor, "slow", slow, schema=None)
    result = asyncio.run(executor.execute_tool("slow", {}, ExecutionOptions(timeout_ms=20)))

    assert not result.success
    assert result.error == "Tool execution timeout"
    assert result.error_code == "runtime.timeout"
    assert result.metadata.state == ExecutionState.timed_out
    assert finished == []


def test_tool_timeout_applies_when_options_are_silent():
    executor = _executor(default_timeout_ms=5000)

    async def slow(payload, context):
        await asyncio.sleep(0.5)

    _register(executor, "slow", slow, schema=None, timeout_ms=10)
    result = asyncio.run(executor.execute_tool("slow", {}))
    assert result.error_code == "runtime.timeout"


def test_body_exception_is_wrapped():
    executor = _executor()

    def explode(payload, context):
        raise KeyError("boom")

    _register(executor, "explode", explode, schema=None)
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(executor.execute_tool("explode", {}))
    assert isinstance(excinfo.value.__cause__, KeyError)
    assert excinfo.value.details == {"type": "KeyError"}
    assert classify_exception(excinfo.value) == "runtime.unhandled"


def test_tool_execution_errors_pass_through():
    executor = _executor()

    async def refuse(payload, context):
        raise ToolExecutionError("contract.policy_denied: not allowed", code="DENIED")

    _register(executor, "refuse", refuse, schema=None)
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(executor.execute_tool("refuse", {}))
    assert excinfo.value.code == "DENIED"
    assert classify_exception(excinfo.value) == "contract.policy_denied"


def test_failure_results_are_honoured():
    executor = _executor()
    _register(
        executor,
        "check",
        CountingHandler(ExecutionResult.fail("Website with ID 'x' not found", "contract.not_found")),
        schema=None,
    )
    result = asyncio.run(executor.execute_tool("check", {}))
    assert not result.success
    assert result.error_code == "contract.not_found"
    assert result.metadata.tool_name == "check"


def _website_tool(fail=False, raise_error=False):
    def create(payload, context):
        row = context.transaction.create("website", name=payload["name"])
        if raise_error:
            raise RuntimeError("write failed")
        if fail:
            return ExecutionResult.fail("refused", "contract.refused", data=row)
        return row

    return create


NAME_SCHEMA = {"type": "object", "properties": {"name": {"type": "string"}}, "required": ["name"]}


def _count_websites(store):
    return asyncio.run(store.read(lambda handle: handle.count("website")))


def test_transactional_tool_commits():
    store = SqlStore()
    executor = _executor(store)
    _register(executor, "create", _website_tool(), schema=NAME_SCHEMA, requires_transaction=True)

    result = asyncio.run(executor.execute_tool("create", {"name": "Acme"}))

    assert result.success
    assert result.metadata.transactional is True
    assert _count_websites(store) == 1


def test_failure_result_rolls_back_new_transaction():
    store = SqlStore()
    executor = _executor(store)
    _register(executor, "create", _website_tool(fail=True), schema=NAME_SCHEMA, requires_transaction=True)

    result = asyncio.run(executor.execute_tool("create", {"name": "Acme"}))

    assert not result.success
    assert result.metadata.transactional is None
    assert _count_websites(store) == 0


def test_raising_body_rolls_back():
    store = SqlStore()
    executor = _executor(store)
    _register(executor, "create", _website_tool(raise_error=True), schema=NAME_SCHEMA, requires_transaction=True)

    with pytest.raises(ToolExecutionError):
        asyncio.run(executor.execute_tool("create", {"name": "Acme"}))
    assert _count_websites(store) == 0


def test_timed_out_transaction_rolls_back():
    store = SqlStore()
    executor = _executor(store)

    async def slow_create(payload, context):
        context.transaction.create("website", name=payload["name"])
        await asyncio.sleep(0.5)

    _register(executor, "create", slow_create, schema=NAME_SCHEMA, requires_transaction=True)
    result = asyncio.run(
        executor.execute_tool("create", {"name": "Acme"}, ExecutionOptions(timeout_ms=20))
    )
    assert result.error_code == "runtime.timeout"
    assert _count_websites(store) == 0


def test_transactional_tool_without_store_raises():
    executor = _executor()
    _register(executor, "create", _website_tool(), schema=NAME_SCHEMA, requires_transaction=True)
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(executor.execute_tool("create", {"name": "Acme"}))
    assert excinfo.value.code == "NO_STORE"


def test_caller_transaction_is_reused_and_left_to_caller():
    store = SqlStore()
    executor = _executor(store)
    _register(executor, "create", _website_tool(), schema=NAME_SCHEMA, requires_transaction=True)
    _register(executor, "refuse", _website_tool(fail=True), schema=NAME_SCHEMA, requires_transaction=True)

    async def batch(handle):
        options = ExecutionOptions(context=ExecutionContext(transaction=handle))
        results = await executor.execute_multiple_tools(
            [
                {"name": "create", "params": {"name": "One"}},
                {"name": "create", "params": {"name": "Two"}},
                {"name": "refuse", "params": {"name": "Three"}},
            ],
            options,
        )
        assert not handle.rollback_only
        return results

    results = asyncio.run(store.with_transaction(batch))

    assert [result.success for result in results] == [True, True, False]
    assert _count_websites(store) == 3


def test_caller_can_discard_shared_transaction():
    store = SqlStore()
    executor = _executor(store)
    _register(executor, "create", _website_tool(), schema=NAME_SCHEMA, requires_transaction=True)

    async def batch(handle):
        options = ExecutionOptions(context=ExecutionContext(transaction=handle))
        await executor.execute_tool("create", {"name": "One"}, options)
        raise RuntimeError("abort batch")

    with pytest.raises(RuntimeError):
        asyncio.run(store.with_transaction(batch))
    assert _count_websites(store) == 0


def test_batch_stops_at_first_failure():
    executor = _executor()
    first, second, third = CountingHandler(), CountingHandler(), CountingHandler()
    _register(executor, "first", first)
    _register(executor, "second", second)
    _register(executor, "third", third)

    results = asyncio.run(
        executor.execute_multiple_tools(
            [
                {"name": "first", "params": {"message": "a"}},
                {"name": "second", "params": {}},
                {"name": "third", "params": {"message": "c"}},
            ]
        )
    )

    assert len(results) == 2
    assert results[0].success
    assert results[1].error_code == "contract.input_invalid"
    assert results[1].metadata.state == ExecutionState.validation_failed
    assert results[1].data["errors"][0]["path"] == "message"
    assert (len(first.calls), len(second.calls), len(third.calls)) == (1, 0, 0)


def test_batch_reports_body_exceptions_as_failures():
    executor = _executor()

    def explode(payload, context):
        raise ValueError("bad value")

    after = CountingHandler()
    _register(executor, "explode", explode, schema=None)
    _register(executor, "after", after, schema=None)

    results = asyncio.run(
        executor.execute_multiple_tools([{"name": "explode"}, {"name": "after"}])
    )
    assert len(results) == 1
    assert results[0].error_code == "runtime.unhandled"
    assert results[0].metadata.state == ExecutionState.threw
    assert after.calls == []


def test_batch_of_unknown_tool_halts():
    executor = _executor()
    handler = CountingHandler()
    _register(executor, "echo", handler)
    results = asyncio.run(
        executor.execute_multiple_tools(
            [{"name": "missing", "params": {}}, {"name": "echo", "params": {"message": "x"}}]
        )
    )
    assert [result.error_code for result in results] == ["contract.tool_not_found"]
    assert handler.calls == []


def test_registration_helpers():
    executor = _executor()
    executor.register_tools(
        [
            Tool(spec=ToolSpec(name="a"), handler=CountingHandler()),
            Tool(spec=ToolSpec(name="b"), handler=CountingHandler()),
        ]
    )
    assert executor.get_tool_names() == ["a", "b"]
    assert executor.get_tool("a").name == "a"
    assert executor.get_tool("zzz") is None
    assert [tool.name for tool in executor.get_all_tools()] == ["a", "b"]


def test_slow_sync_body_times_out_and_rolls_back():
    store = SqlStore()
    executor = _executor(store)

    def slow_create(payload, context):
        context.transaction.create("website", name=payload["name"])
        time.sleep(0.2)
        return {"done": True}

    _register(executor, "create", slow_create, schema=NAME_SCHEMA, requires_transaction=True)
    result = asyncio.run(
        executor.execute_tool("create", {"name": "Acme"}, ExecutionOptions(timeout_ms=20))
    )

    assert not result.success
    assert result.data is None
    assert result.error_code == "runtime.timeout"
    assert result.metadata.state == ExecutionState.timed_out
    assert _count_websites(store) == 0


def test_non_mapping_params_raise_validation_error():
    executor = _executor()
    handler = CountingHandler()
    _register(executor, "echo", handler)

    with pytest.raises(ToolValidationError) as excinfo:
        asyncio.run(executor.execute_tool("echo", "hi"))

    assert excinfo.value.errors[0].path == "<root>"
    assert handler.calls == []


def test_batch_reports_malformed_call_and_keeps_earlier_results():
    executor = _executor()
    handler = CountingHandler()
    _register(executor, "echo", handler)

    results = asyncio.run(
        executor.execute_multiple_tools(
            [
                {"name": "echo", "params": {"message": "a"}},
                {"name": "echo", "params": ["x"]},
                {"name": "echo", "params": {"message": "c"}},
            ]
        )
    )

    assert len(results) == 2
    assert results[0].data == {"echo": "a"}
    assert results[1].error_code == "contract.input_invalid"
    assert results[1].metadata.state == ExecutionState.validation_failed
    assert results[1].metadata.tool_name == "echo"
    assert results[1].data["errors"][0]["path"] == "params"
    assert handler.calls == [{"message": "a"}]


def test_batch_entries_get_their_own_transactions():
    store = SqlStore()
    executor = _executor(store)
    handles = []

    def create(payload, context):
        handles.append(context.transaction)
        context.transaction.create("website", name=payload["name"])
        if payload["name"] == "Broken":
            return ExecutionResult.fail("refused", "contract.refused")
        return {"name": payload["name"]}

    _register(executor, "create", create, schema=NAME_SCHEMA, requires_transaction=True)
    results = asyncio.run(
        executor.execute_multiple_tools(
            [
                {"name": "create", "params": {"name": "Acme"}},
                {"name": "create", "params": {"name": "Globex"}},
                {"name": "create", "params": {"name": "Broken"}},
            ]
        )
    )

    assert [result.success for result in results] == [True, True, False]
    assert len({id(handle) for handle in handles}) == 3
    assert not any(handle.active for handle in handles)
    names = asyncio.run(
        store.read(lambda handle: [row["name"] for row in handle.find("website", order_by="name")])
    )
    assert names == ["Acme", "Globex"]
