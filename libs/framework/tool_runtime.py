from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from libs.core.config import EngineConfig
from libs.core.errors import (
    DuplicateToolError,
    FieldError,
    SchemaValidationFailure,
    ToolExecutionError,
    ToolingError,
    ToolRegistryError,
    ToolTimeoutError,
    ToolValidationError,
)
from libs.core.events import (
    TOOL_BATCH_HALTED,
    TOOL_COMPLETED,
    TOOL_FAILED,
    TOOL_NOT_FOUND,
    TOOL_RECEIVED,
    TOOL_TIMED_OUT,
    TOOL_VALIDATED,
    TOOL_VALIDATION_FAILED,
)
from libs.core.logging import get_logger, log_event
from libs.core.models import ExecutionResult, ExecutionState, ToolCallRequest, ToolSpec
from libs.core.state_machine import ExecutionTrace
from libs.core.store import SqlStore, TransactionHandle
from libs.core.tracing import start_span

from .schema_validation import SchemaValidator, summarize_errors

tool_input_type = Dict[str, Any]


@dataclass
class ExecutionContext:
    transaction: Optional[TransactionHandle] = None
    website_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionOptions:
    context: Optional[ExecutionContext] = None
    validate_only: bool = False
    timeout_ms: Optional[float] = None


ToolHandler = Callable[[tool_input_type, ExecutionContext], Any]


@dataclass
class Tool:
    spec: ToolSpec
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def requires_transaction(self) -> bool:
        return self.spec.requires_transaction


class ToolRegistry:
    """Name to tool mapping. Names are write-once; iteration follows
    registration order."""

    def __init__(self, validator: SchemaValidator | None = None) -> None:
        self._tools: Dict[str, Tool] = {}
        self._validator = validator or SchemaValidator()

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        try:
            self._validator.check_schema(tool.spec.parameter_schema)
        except ToolExecutionError as exc:
            raise ToolRegistryError(f"Tool {tool.name} has an invalid parameter schema: {exc}") from exc
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def list_names(self) -> List[str]:
        return list(self._tools)

    def list_all(self) -> List[Tool]:
        return list(self._tools.values())

    def list_specs(self) -> List[ToolSpec]:
        return [tool.spec for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def classify_tool_error(error_text: str) -> str:
    normalized = (error_text or "").strip()
    lowered = normalized.lower()
    if lowered.startswith("contract."):
        return lowered.split(":", 1)[0]
    if normalized.startswith("input schema validation failed") or lowered.startswith(
        "invalid parameters"
    ):
        return "contract.input_invalid"
    if lowered.startswith("invalid parameter schema"):
        return "contract.schema_invalid"
    if lowered.startswith("tool ") and lowered.endswith(" not found"):
        return "contract.tool_not_found"
    if "timed out" in lowered or "timeout" in lowered:
        return "runtime.timeout"
    return "runtime.tool_error"


def classify_exception(exc: BaseException) -> str:
    if isinstance(exc, (ToolValidationError, SchemaValidationFailure)):
        return "contract.input_invalid"
    if isinstance(exc, ToolTimeoutError):
        return "runtime.timeout"
    if isinstance(exc, ToolExecutionError):
        if exc.code == "INVALID_SCHEMA":
            return "contract.schema_invalid"
        cause = exc.__cause__
        if cause is not None and not isinstance(cause, ToolingError):
            return "runtime.unhandled"
        return classify_tool_error(str(exc))
    return "runtime.unhandled"


class ToolExecutor:
    """Validates, runs and reports tool calls.

    ``execute_tool`` reports unknown tools and timeouts as failure results,
    raises ``ToolValidationError`` for bad parameters and
    ``ToolExecutionError`` when the tool body raises. Transactional tools run
    inside ``store.with_transaction`` unless the caller's context already
    carries a transaction.
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        *,
        store: SqlStore | None = None,
        validator: SchemaValidator | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.validator = validator or SchemaValidator()
        self.registry = registry or ToolRegistry(self.validator)
        self.store = store
        self.config = config or EngineConfig()
        self._logger = get_logger("tool_executor")

    def register_tool(self, tool: Tool) -> None:
        self.registry.register(tool)

    def register_tools(self, tools: Iterable[Tool]) -> None:
        for tool in tools:
            self.registry.register(tool)

    def get_tool(self, name: str) -> Optional[Tool]:
        return self.registry.get(name)

    def get_tool_names(self) -> List[str]:
        return self.registry.list_names()

    def get_all_tools(self) -> List[Tool]:
        return self.registry.list_all()

    async def execute_tool(
        self,
        name: str,
        params: Mapping[str, Any] | None = None,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        options = options or ExecutionOptions()
        started = time.monotonic()
        trace = ExecutionTrace()
        log_event(self._logger, TOOL_RECEIVED, {"tool_name": name})

        tool = self.registry.get(name)
        if tool is None:
            log_event(self._logger, TOOL_NOT_FOUND, {"tool_name": name})
            return ExecutionResult.fail(
                f"Tool {name} not found",
                "contract.tool_not_found",
                execution_time_ms=_elapsed_ms(started),
                tool_name=name,
                state=trace.current,
            )

        trace.advance(ExecutionState.validating)
        try:
            if params is not None and not isinstance(params, Mapping):
                raise SchemaValidationFailure(
                    [FieldError("<root>", f"parameters must be an object, got {type(params).__name__}")]
                )
            parsed = self.validator.validate(tool.spec.parameter_schema, dict(params or {}))
        except SchemaValidationFailure as exc:
            trace.advance(ExecutionState.validation_failed)
            log_event(
                self._logger,
                TOOL_VALIDATION_FAILED,
                {"tool_name": name, "errors": [error.as_dict() for error in exc.errors]},
            )
            raise ToolValidationError(
                f"Invalid parameters for tool {name}: {summarize_errors(exc.errors)}", exc.errors
            ) from exc
        trace.advance(ExecutionState.validated)
        log_event(self._logger, TOOL_VALIDATED, {"tool_name": name})

        if options.validate_only:
            return ExecutionResult.ok(
                None,
                execution_time_ms=_elapsed_ms(started),
                tool_name=name,
                validated=True,
                state=trace.current,
            )

        trace.advance(ExecutionState.executing)
        context = options.context or ExecutionContext()
        timeout_ms = self._timeout_for(tool, options)
        attributes = {
            "tool.name": name,
            "tool.requires_transaction": tool.requires_transaction,
            "tool.timeout_ms": timeout_ms,
        }
        with start_span("tool.execute", attributes=attributes) as span:
            try:
                if tool.requires_transaction and context.transaction is None:
                    outcome = await self._run_in_new_transaction(tool, parsed, context, timeout_ms)
                else:
                    outcome = await self._invoke(tool, parsed, context, timeout_ms)
            except ToolTimeoutError as exc:
                trace.advance(ExecutionState.timed_out)
                elapsed = _elapsed_ms(started)
                log_event(
                    self._logger,
                    TOOL_TIMED_OUT,
                    {"tool_name": name, "timeout_ms": timeout_ms, "execution_time_ms": elapsed},
                )
                span.set_attribute("tool.state", trace.current.value)
                return ExecutionResult.fail(
                    str(exc),
                    "runtime.timeout",
                    execution_time_ms=elapsed,
                    tool_name=name,
                    state=trace.current,
                )
            except ToolExecutionError as exc:
                trace.advance(ExecutionState.threw)
                self._log_failure(name, started, str(exc), classify_exception(exc))
                raise
            except Exception as exc:
                trace.advance(ExecutionState.threw)
                wrapped = ToolExecutionError(
                    f"Tool {name} failed: {exc}",
                    details={"type": type(exc).__name__},
                )
                self._log_failure(name, started, str(wrapped), "runtime.unhandled")
                raise wrapped from exc

            trace.advance(ExecutionState.completed)
            result = self._finalize(tool, outcome, started, trace)
            span.set_attribute("tool.state", trace.current.value)
            span.set_attribute("tool.success", result.success)

        if result.success:
            log_event(
                self._logger,
                TOOL_COMPLETED,
                {"tool_name": name, "execution_time_ms": result.metadata.execution_time_ms},
            )
        else:
            self._log_failure(name, started, result.error or "", result.error_code or "")
        return result

    async def execute_multiple_tools(
        self,
        calls: Sequence[Union[ToolCallRequest, Mapping[str, Any]]],
        options: ExecutionOptions | None = None,
    ) -> List[ExecutionResult]:
        results: List[ExecutionResult] = []
        for index, call in enumerate(calls):
            started = time.monotonic()
            name = str(call.get("name", "")) if isinstance(call, Mapping) else ""
            try:
                request = (
                    call if isinstance(call, ToolCallRequest) else ToolCallRequest.model_validate(call)
                )
                name = request.name
                result = await self.execute_tool(request.name, request.params, options)
            except PydanticValidationError as exc:
                errors = [
                    FieldError("/".join(str(part) for part in error["loc"]) or "<root>", error["msg"])
                    for error in exc.errors()
                ]
                result = ExecutionResult.fail(
                    f"Invalid tool call at index {index}: {summarize_errors(errors)}",
                    "contract.input_invalid",
                    data={"errors": [error.as_dict() for error in errors]},
                    execution_time_ms=_elapsed_ms(started),
                    tool_name=name,
                    state=ExecutionState.validation_failed,
                )
            except ToolValidationError as exc:
                result = ExecutionResult.fail(
                    str(exc),
                    classify_exception(exc),
                    data={"errors": [error.as_dict() for error in exc.errors]},
                    execution_time_ms=_elapsed_ms(started),
                    tool_name=name,
                    state=ExecutionState.validation_failed,
                )
            except ToolExecutionError as exc:
                result = ExecutionResult.fail(
                    str(exc),
                    classify_exception(exc),
                    data=exc.details,
                    execution_time_ms=_elapsed_ms(started),
                    tool_name=name,
                    state=ExecutionState.threw,
                )
            results.append(result)
            if not result.success:
                log_event(
                    self._logger,
                    TOOL_BATCH_HALTED,
                    {
                        "tool_name": name,
                        "index": index,
                        "skipped": len(calls) - index - 1,
                        "error_code": result.error_code,
                    },
                )
                break
        return results

    def _timeout_for(self, tool: Tool, options: ExecutionOptions) -> float:
        if options.timeout_ms is not None:
            return options.timeout_ms
        if tool.spec.timeout_ms is not None:
            return tool.spec.timeout_ms
        return self.config.default_timeout_ms

    async def _run_in_new_transaction(
        self,
        tool: Tool,
        params: tool_input_type,
        context: ExecutionContext,
        timeout_ms: float,
    ) -> Any:
        if self.store is None:
            raise ToolExecutionError(
                f"Tool {tool.name} requires a transaction but no store is configured",
                code="NO_STORE",
            )

        async def run(handle: TransactionHandle) -> Any:
            outcome = await self._invoke(tool, params, replace(context, transaction=handle), timeout_ms)
            if isinstance(outcome, ExecutionResult) and not outcome.success:
                handle.mark_rollback_only()
            return outcome

        return await self.store.with_transaction(run)

    async def _invoke(
        self,
        tool: Tool,
        params: tool_input_type,
        context: ExecutionContext,
        timeout_ms: float,
    ) -> Any:
        started = time.monotonic()
        outcome = tool.handler(params, context)
        if inspect.isawaitable(outcome):
            return await _await_with_timeout(outcome, timeout_ms)
        if (time.monotonic() - started) * 1000 > timeout_ms:
            # Synchronous bodies cannot be interrupted; their late outcome is dropped.
            raise ToolTimeoutError(timeout_ms)
        return outcome

    def _finalize(
        self, tool: Tool, outcome: Any, started: float, trace: ExecutionTrace
    ) -> ExecutionResult:
        metadata = {
            "execution_time_ms": _elapsed_ms(started),
            "tool_name": tool.name,
            "state": trace.current,
        }
        if isinstance(outcome, ExecutionResult):
            if outcome.success:
                if tool.requires_transaction:
                    metadata["transactional"] = True
                update: Dict[str, Any] = {}
            else:
                update = {"error_code": outcome.error_code or classify_tool_error(outcome.error or "")}
            update["metadata"] = outcome.metadata.model_copy(update=metadata)
            return outcome.model_copy(update=update)
        if tool.requires_transaction:
            metadata["transactional"] = True
        return ExecutionResult.ok(outcome, **metadata)

    def _log_failure(self, name: str, started: float, error: str, error_code: str) -> None:
        log_event(
            self._logger,
            TOOL_FAILED,
            {
                "tool_name": name,
                "error": error,
                "error_code": error_code,
                "execution_time_ms": _elapsed_ms(started),
            },
        )


async def _await_with_timeout(awaitable: Any, timeout_ms: float) -> Any:
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task in done:
        return task.result()
    task.cancel()
    # Retrieve and drop the late outcome so it is never reported.
    await asyncio.gather(task, return_exceptions=True)
    raise ToolTimeoutError(timeout_ms)


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 3)
