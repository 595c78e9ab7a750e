"""
Chat endpoint for Q&A with SSE streaming
"""
import asyncio
import time
from contextlib import aclosing
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse
import structlog

from praxis_chat.cancellation import CancellationToken
from praxis_chat.errors import ConfigurationError
from praxis_chat.models.chat import ChatRequestBody, PreparedAnswer
from praxis_chat.protocol import event_payload
from praxis_chat.services.answer_stream import AnswerStreamer

logger = structlog.get_logger()

router = APIRouter(tags=["chat"])

DISCONNECT_POLL_INTERVAL = 0.5  # seconds


def get_answer_streamer(req: Request) -> AnswerStreamer:
    """Pipeline built at startup, or a configuration fault if it could not be"""
    streamer = getattr(req.app.state, "answer_streamer", None)
    if streamer is None:
        missing = req.app.state.settings.missing_credentials()
        raise ConfigurationError(
            f"Chat pipeline not configured: missing {', '.join(missing) or 'services'}"
        )
    return streamer


@router.get("/chat")
async def chat_status():
    """Readiness probe for the chat route"""
    return {"status": "ready"}


@router.post("/chat")
async def chat_endpoint(request: ChatRequestBody, req: Request) -> EventSourceResponse:
    """
    Handle chat requests with SSE streaming.

    Validation, embedding and retrieval happen before the response commits to
    streaming, so their failures come back as plain JSON errors. Anything that
    fails afterwards is reported inside the stream.
    """
    start_time = time.time()
    # Same id the tracking middleware bound for this request
    request_id = structlog.contextvars.get_contextvars().get("request_id") or str(uuid4())
    settings = req.app.state.settings

    query = request.to_query(settings.DEFAULT_TOP_K)
    streamer = get_answer_streamer(req)

    logger.info(
        "Chat request received",
        request_id=request_id,
        question_length=len(query.text),
        k=query.top_k
    )

    prepared = await streamer.prepare(query)

    return EventSourceResponse(
        generate_response(streamer, prepared, req, request_id, start_time),
        sep="\n",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
            "X-Request-ID": request_id
        }
    )


async def watch_disconnect(req: Request, cancel: CancellationToken) -> None:
    """Fire the token as soon as the client goes away"""
    while not cancel.cancelled:
        if await req.is_disconnected():
            cancel.cancel()
            return
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def generate_response(
    streamer: AnswerStreamer,
    prepared: PreparedAnswer,
    req: Request,
    request_id: str,
    start_time: float
) -> AsyncGenerator[str, None]:
    """Serialize streamer events; EventSourceResponse adds the data: prefix"""
    cancel = CancellationToken()
    watcher = asyncio.create_task(watch_disconnect(req, cancel))
    try:
        async with aclosing(streamer.stream(prepared, cancel)) as events:
            async for event in events:
                yield event_payload(event)

        if cancel.cancelled:
            logger.warning("Chat stream cancelled by client", request_id=request_id)
        else:
            logger.info(
                "Chat request completed",
                request_id=request_id,
                total_time=time.time() - start_time
            )

    except asyncio.CancelledError:
        logger.warning("Chat stream cancelled by server", request_id=request_id)
        raise

    finally:
        watcher.cancel()
