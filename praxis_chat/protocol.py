"""
Wire codec for the chat event stream.

Every event travels as one ``data: <json>`` line followed by a blank line::

    data: {"sources": ["Rezeptbestellung"]}

    data: {"token": "Hallo"}

    data: {"done": true}
"""
import json
from typing import Any, Dict

from praxis_chat.errors import StreamParseError
from praxis_chat.models.chat import (
    DoneEvent,
    ErrorEvent,
    SourcesEvent,
    StreamEvent,
    TokenEvent,
)

DATA_PREFIX = "data: "


def event_payload(event: StreamEvent) -> str:
    """JSON body of an event, without SSE framing"""
    return json.dumps(event.model_dump(), ensure_ascii=False)


def frame_event(event: StreamEvent) -> str:
    """Full SSE frame for an event"""
    return f"{DATA_PREFIX}{event_payload(event)}\n\n"


def is_event_line(line: str) -> bool:
    return line.startswith(DATA_PREFIX)


def decode_event(line: str) -> StreamEvent:
    """
    Parse one ``data:`` line into an event.

    Raises StreamParseError for anything that is not a well-formed event.
    """
    if not is_event_line(line):
        raise StreamParseError(f"Not an event line: {line[:80]!r}")

    try:
        data = json.loads(line[len(DATA_PREFIX):])
    except json.JSONDecodeError as e:
        raise StreamParseError(f"Invalid event JSON: {e}") from e

    if not isinstance(data, dict):
        raise StreamParseError("Event payload is not an object")

    return _event_from_payload(data)


def _event_from_payload(data: Dict[str, Any]) -> StreamEvent:
    if "sources" in data:
        sources = data["sources"]
        if not isinstance(sources, list) or not all(isinstance(s, str) for s in sources):
            raise StreamParseError("sources must be a list of strings")
        return SourcesEvent(sources=sources)

    if "token" in data:
        if not isinstance(data["token"], str):
            raise StreamParseError("token must be a string")
        return TokenEvent(token=data["token"])

    if "done" in data:
        if data["done"] is not True:
            raise StreamParseError("done must be true")
        return DoneEvent()

    if "error" in data:
        return ErrorEvent(error=str(data["error"]))

    raise StreamParseError(f"Unknown event keys: {sorted(data)}")
