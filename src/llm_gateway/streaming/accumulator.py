"""
Assembly of streamed tool-call fragments.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..models.message import ToolCall
from ..models.response import FinishReason, StreamChunk, ToolCallDelta
from ..tools.converters import parse_arguments, synthesize_call_id


@dataclass
class _ToolCallBuilder:
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    fragments: List[str] = field(default_factory=list)

    def build(self) -> ToolCall:
        name = self.name or ""
        return ToolCall(
            id=self.id or synthesize_call_id(name or "tool", self.index),
            name=name,
            arguments=parse_arguments("".join(self.fragments)),
        )


class ToolCallAccumulator:
    """
    Index-keyed accumulator for tool-call fragments of one stream.

    Argument fragments for an index are concatenated in arrival order. A
    fragment carrying a different id at an occupied index starts a new
    call, which happens with vendors that send whole calls one per chunk.
    Entries are finalized and evicted when a finish reason arrives.

    Calls a vendor delivers whole (``completed_tool_calls`` on the incoming
    chunk) bypass assembly. Every call leaving the accumulator gets an id
    unique within the stream.
    """

    def __init__(self):
        self._builders: Dict[int, _ToolCallBuilder] = {}
        self._finished: List[ToolCall] = []
        self._issued_ids: Set[str] = set()

    @property
    def pending(self) -> int:
        return len(self._builders) + len(self._finished)

    @property
    def emitted(self) -> int:
        """Number of completed calls delivered so far."""
        return len(self._issued_ids)

    def add(self, delta: ToolCallDelta) -> None:
        builder = self._builders.get(delta.index)
        if builder is not None and delta.id and builder.id and delta.id != builder.id:
            self._finished.append(builder.build())
            builder = None

        if builder is None:
            builder = _ToolCallBuilder(index=delta.index)
            self._builders[delta.index] = builder

        if delta.id and not builder.id:
            builder.id = delta.id
        if delta.name and not builder.name:
            builder.name = delta.name
        if delta.arguments:
            builder.fragments.append(delta.arguments)

    def finalize(self) -> List[ToolCall]:
        """Build every pending call and clear the accumulator."""
        calls = self._finished + [self._builders[i].build() for i in sorted(self._builders)]
        self._builders.clear()
        self._finished = []
        return self._unique(calls)

    def _unique(self, calls: List[ToolCall]) -> List[ToolCall]:
        unique = []
        for call in calls:
            call_id = call.id
            suffix = 1
            while call_id in self._issued_ids:
                call_id = f"{call.id}_{suffix}"
                suffix += 1
            self._issued_ids.add(call_id)
            unique.append(call if call_id == call.id else call.model_copy(update={"id": call_id}))
        return unique

    def absorb(self, chunk: StreamChunk) -> StreamChunk:
        """
        Feed a chunk's fragments and attach completed calls to it.

        Returns:
            The chunk, with ``completed_tool_calls`` set when its finish
            reason or completion flag closed pending calls, and a ``stop``
            finish reason reported as ``tool_calls`` once the stream has
            produced calls
        """
        for delta in chunk.tool_calls:
            self.add(delta)

        update = {}
        completed = list(chunk.completed_tool_calls)
        if (chunk.finish_reason or chunk.complete) and self.pending:
            completed = self.finalize() + self._unique(completed)
            update["completed_tool_calls"] = completed
        elif completed:
            update["completed_tool_calls"] = self._unique(completed)

        if chunk.finish_reason == FinishReason.STOP.value and self.emitted:
            update["finish_reason"] = FinishReason.TOOL_CALLS.value

        return chunk.model_copy(update=update) if update else chunk
