"""
Answer streamer: embed, retrieve, assemble, then stream the grounded answer
as typed events
"""
import time
from contextlib import aclosing
from typing import AsyncIterator, Optional

import structlog

from praxis_chat.cancellation import CancellationToken
from praxis_chat.errors import CancellationSignal
from praxis_chat.models.chat import (
    DoneEvent,
    ErrorEvent,
    PreparedAnswer,
    Query,
    SourcesEvent,
    StreamEvent,
    TokenEvent,
)
from praxis_chat.services.config import Settings
from praxis_chat.services.context import assemble, build_user_prompt
from praxis_chat.services.embeddings import EmbeddingClient
from praxis_chat.services.llm import LLMService
from praxis_chat.services.retrieval import VectorRetriever
from praxis_chat.utils.metrics import (
    chunk_retrieval_count,
    first_token_latency,
    retrieval_duration,
    track_stream_outcome,
    track_token_usage,
)

logger = structlog.get_logger()

_END = object()


class AnswerStreamer:
    """
    Producer side of the chat event stream.

    A turn moves Idle -> SourcesEmitted -> Streaming -> Completed | Failed.
    Events come out of an async generator, so the producer only advances when
    the single reader pulls the next event; nothing is buffered or reordered.
    """

    def __init__(
        self,
        settings: Settings,
        embeddings: EmbeddingClient,
        retriever: VectorRetriever,
        llm: LLMService
    ):
        self.settings = settings
        self.embeddings = embeddings
        self.retriever = retriever
        self.llm = llm

    async def prepare(self, query: Query) -> PreparedAnswer:
        """Embed, retrieve and assemble. Errors propagate to the caller."""
        retrieval_start = time.time()

        vector = await self.embeddings.embed(query.text)
        chunks = await self.retriever.search(vector, query.top_k)
        context, sources = assemble(chunks, self.settings.SOURCES_LIMIT)

        elapsed = time.time() - retrieval_start
        retrieval_duration.observe(elapsed)
        chunk_retrieval_count.observe(len(chunks))
        logger.info(
            "Retrieval completed",
            chunks_retrieved=len(chunks),
            retrieval_time=elapsed,
            sources=sources
        )

        return PreparedAnswer(query=query, chunks=chunks, context=context, sources=sources)

    async def stream(
        self,
        prepared: PreparedAnswer,
        cancel: Optional[CancellationToken] = None
    ) -> AsyncIterator[StreamEvent]:
        """Emit sources, then one token per model fragment, then done or error"""
        cancel = cancel or CancellationToken()

        yield SourcesEvent(sources=prepared.sources)

        user_prompt = build_user_prompt(prepared.query.text, prepared.context)
        stream_start = time.time()
        token_count = 0

        try:
            cancel.raise_if_cancelled()
            async with aclosing(
                self.llm.generate_stream(self.settings.SYSTEM_PROMPT, user_prompt)
            ) as fragments:
                while True:
                    # A stalled upstream read must still give way to the token
                    fragment = await cancel.race(_next_fragment(fragments))
                    if fragment is _END:
                        break

                    if token_count == 0:
                        first_token_latency.observe(time.time() - stream_start)
                    token_count += 1
                    yield TokenEvent(token=fragment)
                    cancel.raise_if_cancelled()

        except CancellationSignal:
            logger.warning("Answer stream cancelled", token_count=token_count)
            track_stream_outcome("cancelled")
            return

        except Exception as e:
            logger.error("Answer stream failed", error=str(e), exc_info=True)
            track_stream_outcome("error")
            yield ErrorEvent(error=self.settings.STREAM_ERROR_MESSAGE)
            return

        track_token_usage(token_count, self.settings.CHAT_MODEL)
        track_stream_outcome("done")
        logger.info(
            "Answer stream completed",
            token_count=token_count,
            generation_time=time.time() - stream_start
        )
        yield DoneEvent()

    async def answer(
        self,
        query: Query,
        cancel: Optional[CancellationToken] = None
    ) -> AsyncIterator[StreamEvent]:
        """
        Run the whole turn as one event sequence.

        Failures while embedding or retrieving become a single error event,
        since no sources can be announced without retrieval. The event
        carries the generic stream error text; details stay in the log.
        """
        try:
            prepared = await self.prepare(query)
        except Exception as e:
            logger.error("Answer preparation failed", error=str(e), exc_info=True)
            track_stream_outcome("error")
            yield ErrorEvent(error=self.settings.STREAM_ERROR_MESSAGE)
            return

        async with aclosing(self.stream(prepared, cancel)) as events:
            async for event in events:
                yield event


async def _next_fragment(fragments: AsyncIterator[str]):
    try:
        return await fragments.__anext__()
    except StopAsyncIteration:
        return _END
