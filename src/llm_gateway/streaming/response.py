"""
Canonical streaming response.

Wraps a provider's raw event stream, normalizes each event into a
StreamChunk and exposes hooks, combinators, collection and cancellation.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, AsyncIterator, Callable, List, Optional

from ..core.errors import GatewayError, StreamingError
from ..core.interface import AbstractProvider
from ..models.response import ChatResponse, FinishReason, StreamChunk, Usage
from .accumulator import ToolCallAccumulator

logger = logging.getLogger(__name__)

ChunkSource = Callable[[], AsyncIterator[Any]]


class StreamState(str, Enum):
    """Lifecycle of a stream."""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERRORED = "errored"
    CANCELLED = "cancelled"


class StreamController:
    """Cancellation signal shared by a stream and the streams derived from it."""

    def __init__(self):
        self.cancelled = False
        self._event: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until the stream is cancelled."""
        # Created lazily so the event binds to the running loop
        if self._event is None:
            self._event = asyncio.Event()
            if self.cancelled:
                self._event.set()
        await self._event.wait()


_EXHAUSTED = object()


async def _next(iterator: Any) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _EXHAUSTED


async def _discard(task: "asyncio.Future") -> None:
    if not task.done():
        task.cancel()
    await asyncio.wait([task])
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Discarded stream read failed: {task.exception()}")


async def _aclose(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


def _merge_usage(current: Optional[Usage], update: Usage) -> Usage:
    # Vendors report usage cumulatively or split across events
    if current is None:
        return update
    return Usage.of(
        max(current.prompt_tokens, update.prompt_tokens),
        max(current.completion_tokens, update.completion_tokens),
    )


class StreamingResponse:
    """
    A single-use stream of canonical chunks.

    Iterate with ``async for``. Hooks registered with ``on`` fire as chunks
    arrive; ``on_complete`` fires exactly once when the stream ends normally
    or is cancelled, with the delivered chunks and a cancelled flag.
    """

    def __init__(
        self,
        source: ChunkSource,
        provider: Optional[str] = None,
        controller: Optional[StreamController] = None,
    ):
        """
        Initialize the stream.

        Args:
            source: Factory returning the async iterator of chunks; called
                once, when iteration starts
            provider: Name of the provider producing the stream
            controller: Cancellation controller shared with a parent stream
        """
        self._source = source
        self._provider = provider
        self._controller = controller or StreamController()
        self._state = StreamState.IDLE
        self._chunks: List[Any] = []
        self._completed = False
        self._on_chunk: Optional[Callable] = None
        self._on_complete: Optional[Callable] = None
        self._on_error: Optional[Callable] = None

    @classmethod
    def from_events(cls, events: ChunkSource, provider: AbstractProvider) -> "StreamingResponse":
        """
        Build a stream that normalizes raw vendor events.

        Args:
            events: Factory returning the raw event iterator (SSE lines)
            provider: Provider whose parse_stream_chunk decodes the events

        Returns:
            Stream of canonical chunks with assembled tool calls
        """
        async def normalized() -> AsyncIterator[StreamChunk]:
            accumulator = ToolCallAccumulator()
            raw_events = events()
            try:
                async for raw in raw_events:
                    chunk = provider.parse_stream_chunk(raw)
                    if chunk is None:
                        continue
                    chunk = accumulator.absorb(chunk)
                    yield chunk
                    if chunk.complete:
                        return

                leftovers = accumulator.finalize()
                if leftovers:
                    yield StreamChunk(complete=True, completed_tool_calls=leftovers)
            finally:
                await _aclose(raw_events)

        return cls(normalized, provider=provider.name)

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def chunks(self) -> List[Any]:
        return list(self._chunks)

    @property
    def cancelled(self) -> bool:
        return self._controller.cancelled

    @property
    def provider(self) -> Optional[str]:
        return self._provider

    def on(
        self,
        on_chunk: Optional[Callable] = None,
        on_complete: Optional[Callable] = None,
        on_error: Optional[Callable] = None,
    ) -> "StreamingResponse":
        """
        Register event hooks. Hooks may be plain or coroutine functions.

        Args:
            on_chunk: Called with each delivered chunk
            on_complete: Called once with (chunks, cancelled)
            on_error: Called with a GatewayError for error chunks and failures

        Returns:
            self, for chaining
        """
        if on_chunk is not None:
            self._on_chunk = on_chunk
        if on_complete is not None:
            self._on_complete = on_complete
        if on_error is not None:
            self._on_error = on_error
        return self

    def cancel(self) -> None:
        """
        Stop delivering chunks and release the transport.

        Safe to call from another task. A consumer waiting on the transport
        is woken immediately; the pending read is abandoned, the underlying
        request is closed and on_complete fires with cancelled set.
        """
        if not self._controller.cancelled:
            self._controller.cancel()
            logger.info(f"Stream from {self._provider} cancelled")

    async def aclose(self) -> None:
        """Cancel the stream and fire on_complete if it never started."""
        self.cancel()
        if self._state is StreamState.IDLE:
            self._state = StreamState.CANCELLED
            await self._complete()

    async def __aiter__(self) -> AsyncIterator[Any]:
        if self._state is not StreamState.IDLE:
            raise StreamingError("Stream has already been consumed", provider=self._provider)

        if self._controller.cancelled:
            self._state = StreamState.CANCELLED
            await self._complete()
            return

        self._state = StreamState.STREAMING
        upstream = self._source()
        iterator = upstream.__aiter__()
        cancelled = asyncio.ensure_future(self._controller.wait())
        pending = None
        try:
            while not self._controller.cancelled:
                pending = asyncio.ensure_future(_next(iterator))
                await asyncio.wait([pending, cancelled], return_when=asyncio.FIRST_COMPLETED)
                if self._controller.cancelled:
                    break
                chunk = pending.result()
                pending = None
                if chunk is _EXHAUSTED:
                    break

                self._chunks.append(chunk)
                await self._call_hook("chunk", self._on_chunk, chunk)
                if isinstance(chunk, StreamChunk) and chunk.error:
                    await self._call_hook(
                        "error", self._on_error, StreamingError(chunk.error, provider=self._provider)
                    )
                yield chunk
        except (GeneratorExit, asyncio.CancelledError):
            self._state = StreamState.CANCELLED
            raise
        except Exception as e:
            self._state = StreamState.ERRORED
            await self._call_hook("error", self._on_error, e)
            raise
        finally:
            cancelled.cancel()
            if pending is not None:
                await _discard(pending)
            await _aclose(upstream)
            if self._state is StreamState.STREAMING:
                self._state = StreamState.CANCELLED if self._controller.cancelled else StreamState.COMPLETE
            if self._state is not StreamState.ERRORED:
                await self._complete()

    async def _complete(self) -> None:
        if self._completed:
            return
        self._completed = True
        await self._call_hook(
            "complete", self._on_complete, list(self._chunks), self._state is StreamState.CANCELLED
        )

    async def _call_hook(self, kind: str, hook: Optional[Callable], *args: Any) -> None:
        if hook is None:
            return
        try:
            result = hook(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in stream {kind} handler: {e}")

    # Combinators

    def _derive(self, operation: Callable[[AsyncIterator[Any]], AsyncIterator[Any]]) -> "StreamingResponse":
        parent = self

        async def source() -> AsyncIterator[Any]:
            upstream = parent.__aiter__()
            try:
                async for item in operation(upstream):
                    yield item
            finally:
                await upstream.aclose()

        return StreamingResponse(source, provider=self._provider, controller=self._controller)

    def filter(self, predicate: Callable[[Any], bool]) -> "StreamingResponse":
        async def operation(upstream):
            async for chunk in upstream:
                if predicate(chunk):
                    yield chunk
        return self._derive(operation)

    def map(self, transform: Callable[[Any], Any]) -> "StreamingResponse":
        async def operation(upstream):
            async for chunk in upstream:
                yield transform(chunk)
        return self._derive(operation)

    def take(self, count: int) -> "StreamingResponse":
        """Deliver at most ``count`` chunks, then close the upstream."""
        async def operation(upstream):
            if count <= 0:
                return
            taken = 0
            async for chunk in upstream:
                yield chunk
                taken += 1
                if taken >= count:
                    return
        return self._derive(operation)

    def skip(self, count: int) -> "StreamingResponse":
        async def operation(upstream):
            skipped = 0
            async for chunk in upstream:
                if skipped < count:
                    skipped += 1
                    continue
                yield chunk
        return self._derive(operation)

    async def collect(self) -> ChatResponse:
        """
        Drain the stream into one aggregated response.

        Raises:
            StreamingError: If the stream fails for a reason other than a
                gateway error, which is re-raised as is
        """
        content: List[str] = []
        tool_calls = []
        finish_reason = None
        usage = None
        response_id = ""

        try:
            async for chunk in self:
                if not isinstance(chunk, StreamChunk):
                    continue
                if chunk.content:
                    content.append(chunk.content)
                tool_calls.extend(chunk.completed_tool_calls)
                finish_reason = chunk.finish_reason or finish_reason
                if chunk.usage:
                    usage = _merge_usage(usage, chunk.usage)
                response_id = chunk.id or response_id
        except GatewayError:
            raise
        except Exception as e:
            raise StreamingError(f"Failed to collect stream: {e}", provider=self._provider) from e

        if finish_reason is None:
            finish_reason = FinishReason.TOOL_CALLS.value if tool_calls else FinishReason.STOP.value

        return ChatResponse(
            id=response_id,
            provider=self._provider or "",
            content="".join(content),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=usage,
            metadata={
                "streaming": True,
                "chunk_count": len(self._chunks),
                "cancelled": self.cancelled,
            },
        )
