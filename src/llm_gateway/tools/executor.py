"""
Concurrent tool execution.

Runs tool calls against registered handlers with argument validation,
a per-call timeout and bounded batch concurrency. Failures of any kind are
returned as failed ToolResults; one result is produced per call.
"""

import asyncio
import inspect
import itertools
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from ..core.errors import ConfigurationError
from ..models.message import ToolCall
from ..models.tools import ToolDefinition, ToolResult
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_CONCURRENT = 5


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": _is_number,
    "integer": _is_integer,
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
    "null": lambda v: v is None,
}


@dataclass
class _Execution:
    id: int
    tool_name: str
    task: "asyncio.Future"
    loop: asyncio.AbstractEventLoop
    started_at: float = field(default_factory=time.time)
    cancelled: bool = False


class ToolExecutor:
    """
    Executes tool calls resolved through a ToolRegistry.

    In-flight executions are tracked by a monotonically increasing id so
    they can be cancelled individually or all at once. The execution table
    is guarded by a lock and may be touched from other threads.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        default_timeout: float = DEFAULT_TIMEOUT,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    ):
        """
        Initialize the executor.

        Args:
            registry: Registry used to resolve tools and handlers
            default_timeout: Per-call timeout in seconds
            max_concurrent: Default batch size for execute_tools
        """
        self._registry = registry
        self._default_timeout = default_timeout
        self._max_concurrent = max_concurrent
        self._ids = itertools.count(1)
        self._executions: Dict[int, _Execution] = {}
        self._lock = threading.Lock()
        self._stats = {
            "total": 0,
            "succeeded": 0,
            "failed": 0,
            "timed_out": 0,
            "cancelled": 0,
        }

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def running_count(self) -> int:
        with self._lock:
            return len(self._executions)

    def validate_arguments(self, tool: ToolDefinition, arguments: Dict[str, Any]) -> None:
        """
        Validate call arguments against the tool's parameter schema.

        Every required key must be present, and each present key with a
        declared type must match it.

        Raises:
            ConfigurationError: On the first violation found
        """
        if not isinstance(arguments, dict):
            raise ConfigurationError(f"Arguments for tool '{tool.name}' must be an object", field="arguments")

        for param in tool.required:
            if param not in arguments:
                raise ConfigurationError(
                    f"Missing required parameter '{param}' for tool '{tool.name}'",
                    field=param,
                )

        for param, spec in tool.properties.items():
            if param not in arguments or "type" not in spec:
                continue
            expected = spec["type"]
            allowed = expected if isinstance(expected, list) else [expected]
            checks = [_TYPE_CHECKS[t] for t in allowed if t in _TYPE_CHECKS]
            if checks and not any(check(arguments[param]) for check in checks):
                raise ConfigurationError(
                    f"Parameter '{param}' for tool '{tool.name}' should be of type '{expected}'",
                    field=param,
                )

    def _resolve(self, call: ToolCall) -> ToolDefinition:
        tool = self._registry.get_tool(call.name)
        if tool is None:
            raise ConfigurationError(f"Tool not found: {call.name}", field="name")
        if tool.handler is None:
            raise ConfigurationError(f"No handler registered for tool: {call.name}", field="handler")
        return tool

    async def execute_tool(
        self,
        call: ToolCall,
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ToolResult:
        """
        Execute a single tool call.

        Args:
            call: Tool call to execute
            context: Passed to the handler as its second argument
            timeout: Seconds before the call is reported as timed out

        Returns:
            ToolResult; never raises for tool-level failures
        """
        timeout = self._default_timeout if timeout is None else timeout
        execution_id = next(self._ids)
        started = time.perf_counter()
        metadata = {"execution_id": execution_id}

        def elapsed() -> float:
            return (time.perf_counter() - started) * 1000.0

        try:
            tool = self._resolve(call)
            self.validate_arguments(tool, call.arguments)
            outcome = await self._run(execution_id, tool, call, context or {}, timeout)
        except _Timeout:
            self._count("timed_out")
            logger.error(f"Tool {call.name} timed out after {timeout}s")
            return ToolResult.failure(
                call.id, call.name,
                f"Tool execution timeout after {int(timeout * 1000)}ms",
                error_type="TimeoutError",
                execution_time_ms=elapsed(), metadata=metadata,
            )
        except asyncio.CancelledError:
            if not self._was_cancelled(execution_id):
                raise
            self._count("cancelled")
            return ToolResult.failure(
                call.id, call.name,
                "Tool execution cancelled",
                error_type="CancelledError",
                execution_time_ms=elapsed(), metadata=metadata,
            )
        except Exception as e:
            self._count("failed")
            logger.error(f"Tool {call.name} failed: {e}")
            return ToolResult.failure(
                call.id, call.name, str(e) or type(e).__name__,
                error_type=type(e).__name__,
                execution_time_ms=elapsed(), metadata=metadata,
            )
        finally:
            with self._lock:
                self._executions.pop(execution_id, None)

        self._count("succeeded")
        return ToolResult.success(
            call.id, call.name, outcome,
            execution_time_ms=elapsed(), metadata=metadata,
        )

    async def _run(
        self,
        execution_id: int,
        tool: ToolDefinition,
        call: ToolCall,
        context: Dict[str, Any],
        timeout: float,
    ) -> Any:
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(_invoke(tool.handler, dict(call.arguments), context))
        with self._lock:
            self._executions[execution_id] = _Execution(
                id=execution_id, tool_name=tool.name, task=task, loop=loop,
            )

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            # Late results are discarded with the cancelled task
            task.cancel()
            raise _Timeout()
        return task.result()

    def _was_cancelled(self, execution_id: int) -> bool:
        with self._lock:
            execution = self._executions.get(execution_id)
            return execution is not None and execution.cancelled

    async def execute_tools(
        self,
        calls: Iterable[ToolCall],
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        max_concurrent: Optional[int] = None,
        fail_fast: bool = False,
    ) -> List[ToolResult]:
        """
        Execute tool calls in concurrency-bounded batches.

        Args:
            calls: Tool calls to execute
            context: Passed to every handler
            timeout: Per-call timeout in seconds
            max_concurrent: Batch size; at most this many handlers run at once
            fail_fast: Stop on the first failed result. In-flight calls of the
                batch are cancelled and later calls are not started; both are
                reported as aborted results.

        Returns:
            One ToolResult per call, in input order
        """
        calls = list(calls)
        limit = self._max_concurrent if max_concurrent is None else max_concurrent
        if limit < 1:
            raise ConfigurationError("max_concurrent must be at least 1", field="max_concurrent")

        results: List[Optional[ToolResult]] = [None] * len(calls)
        indexed = list(enumerate(calls))
        failure: Optional[ToolResult] = None

        for start in range(0, len(indexed), limit):
            batch = indexed[start:start + limit]

            if failure is not None:
                for index, call in batch:
                    results[index] = _aborted(call, failure)
                continue

            if fail_fast:
                failure = await self._run_batch_fail_fast(batch, results, context, timeout)
            else:
                outcomes = await asyncio.gather(
                    *(self.execute_tool(call, context, timeout) for _, call in batch),
                    return_exceptions=True,
                )
                for (index, call), outcome in zip(batch, outcomes):
                    results[index] = _settle(call, outcome)

        return results

    async def _run_batch_fail_fast(self, batch, results, context, timeout) -> Optional[ToolResult]:
        tasks = {
            asyncio.ensure_future(self.execute_tool(call, context, timeout)): (index, call)
            for index, call in batch
        }
        pending = set(tasks)
        failure = None

        try:
            while pending and failure is None:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    index, call = tasks[task]
                    results[index] = _settle(call, _task_outcome(task))
                    if results[index].is_error and failure is None:
                        failure = results[index]
        except asyncio.CancelledError:
            for task in pending:
                task.cancel()
            raise

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in pending:
                index, call = tasks[task]
                results[index] = _aborted(call, failure)

        return failure

    def cancel_execution(self, execution_id: int) -> bool:
        """
        Cancel one in-flight execution.

        Its handler task and timeout are cancelled; the call completes with a
        CancelledError result.

        Returns:
            True if the execution was running
        """
        with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None or execution.cancelled:
                return False
            execution.cancelled = True
        execution.loop.call_soon_threadsafe(execution.task.cancel)
        logger.info(f"Cancelled tool execution {execution_id} ({execution.tool_name})")
        return True

    def cancel_all_executions(self) -> int:
        """Cancel every in-flight execution. Returns how many were cancelled."""
        with self._lock:
            ids = list(self._executions)
        return sum(1 for execution_id in ids if self.cancel_execution(execution_id))

    def list_running(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {"id": e.id, "tool": e.tool_name, "started_at": e.started_at}
                for e in self._executions.values()
            ]

    def _count(self, key: str) -> None:
        with self._lock:
            self._stats["total"] += 1
            self._stats[key] += 1

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
            stats["running"] = len(self._executions)
        return stats


class _Timeout(Exception):
    pass


async def _invoke(handler, arguments: Dict[str, Any], context: Dict[str, Any]) -> Any:
    if inspect.iscoroutinefunction(handler):
        return await handler(arguments, context)
    result = await asyncio.to_thread(handler, arguments, context)
    if inspect.isawaitable(result):
        result = await result
    return result


def _task_outcome(task: "asyncio.Future") -> Union[Any, BaseException]:
    if task.cancelled():
        return asyncio.CancelledError()
    return task.exception() or task.result()


def _settle(call: ToolCall, outcome: Any) -> ToolResult:
    if isinstance(outcome, ToolResult):
        return outcome
    if isinstance(outcome, BaseException):
        logger.error(f"Unexpected failure executing tool {call.name}: {outcome!r}")
        return ToolResult.failure(
            call.id, call.name, str(outcome) or type(outcome).__name__,
            error_type=type(outcome).__name__,
        )
    return ToolResult.success(call.id, call.name, outcome)


def _aborted(call: ToolCall, failure: ToolResult) -> ToolResult:
    return ToolResult.failure(
        call.id, call.name,
        f"Aborted after tool '{failure.name}' failed: {failure.error.message}",
        error_type="ToolExecutionAborted",
    )
