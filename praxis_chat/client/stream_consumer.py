"""
Client-side consumer of the chat event stream
"""
import codecs
import enum
from typing import AsyncIterable, AsyncIterator, List, Optional

import structlog

from praxis_chat.cancellation import CancellationToken
from praxis_chat.errors import StreamEventError, StreamParseError
from praxis_chat.models.chat import (
    ConversationMessage,
    DoneEvent,
    ErrorEvent,
    SourcesEvent,
    StreamEvent,
    TokenEvent,
)
from praxis_chat.protocol import decode_event, is_event_line

logger = structlog.get_logger()

_EOF = object()


class TurnOutcome(str, enum.Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class LineBuffer:
    """
    Splits incoming bytes into complete lines.

    The trailing fragment after the last newline is held back and prefixed
    to the next chunk, and UTF-8 sequences cut by a chunk boundary are
    decoded once the rest arrives.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, data: bytes) -> List[str]:
        self._pending += self._decoder.decode(data)
        lines = self._pending.split("\n")
        self._pending = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        self._pending += self._decoder.decode(b"", final=True)
        rest, self._pending = self._pending, ""
        rest = rest.rstrip("\r")
        return [rest] if rest else []


def apply_event(message: ConversationMessage, event: StreamEvent) -> None:
    """Apply one non-terminal event to the assistant placeholder"""
    if isinstance(event, SourcesEvent):
        message.sources = list(event.sources)
    elif isinstance(event, TokenEvent):
        message.content += event.token


class StreamConsumer:
    """Reads one turn's response body and applies its events to a message"""

    async def consume(
        self,
        chunks: AsyncIterable[bytes],
        message: ConversationMessage,
        cancel: Optional[CancellationToken] = None
    ) -> TurnOutcome:
        """
        Apply events until ``done``, the end of the body, or cancellation.

        Raises StreamEventError for a server ``error`` event and
        CancellationSignal when ``cancel`` fires while waiting for data.
        """
        cancel = cancel or CancellationToken()
        buffer = LineBuffer()
        iterator = chunks.__aiter__()

        while True:
            data = await cancel.race(_next_chunk(iterator))
            if data is _EOF:
                break
            for line in buffer.feed(data):
                if self._handle_line(line, message):
                    return TurnOutcome.COMPLETED

        for line in buffer.flush():
            if self._handle_line(line, message):
                return TurnOutcome.COMPLETED

        logger.warning("Stream ended without a terminal event", message_id=message.local_id)
        return TurnOutcome.COMPLETED

    def _handle_line(self, line: str, message: ConversationMessage) -> bool:
        """Returns True once the turn has reached ``done``"""
        if not is_event_line(line):
            return False

        try:
            event = decode_event(line)
        except StreamParseError as e:
            logger.warning("Failed to parse stream event", error=str(e), line=line[:120])
            return False

        if isinstance(event, DoneEvent):
            logger.debug("Streaming complete", message_id=message.local_id)
            return True
        if isinstance(event, ErrorEvent):
            raise StreamEventError(event.error)

        apply_event(message, event)
        return False


async def _next_chunk(iterator: AsyncIterator[bytes]):
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _EOF
