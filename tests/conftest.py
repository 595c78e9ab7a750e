"""Pytest fixtures for praxis-chat tests."""

import os
from typing import List, Optional

import httpx
import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["OTEL_ENABLED"] = "false"

from praxis_chat.models.chat import Chunk
from praxis_chat.protocol import frame_event
from praxis_chat.services.answer_stream import AnswerStreamer
from praxis_chat.services.config import Settings


class FakeEmbeddings:
    """Stand-in for EmbeddingClient."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return [0.1] * 1536


class FakeRetriever:
    """Stand-in for VectorRetriever."""

    def __init__(self, chunks: Optional[List[Chunk]] = None, error: Optional[Exception] = None):
        self.chunks = chunks or []
        self.error = error
        self.calls = []

    async def search(self, vector, k):
        self.calls.append((list(vector), k))
        if self.error:
            raise self.error
        return list(self.chunks)


class FakeLLM:
    """Stand-in for LLMService yielding fixed fragments."""

    def __init__(self, fragments: Optional[List[str]] = None, error_after: Optional[int] = None, gate=None):
        self.fragments = fragments if fragments is not None else ["Hallo", " Welt"]
        self.error_after = error_after
        self.gate = gate
        self.prompts = []
        self.closed = False

    async def generate_stream(self, system_prompt, user_prompt, temperature=None):
        self.prompts.append((system_prompt, user_prompt))
        try:
            for i, fragment in enumerate(self.fragments):
                if self.error_after is not None and i == self.error_after:
                    raise RuntimeError("upstream broke")
                yield fragment
            if self.gate is not None:
                # Upstream goes quiet until the gate opens
                await self.gate.wait()
        finally:
            self.closed = True


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered in fixed transport chunks."""

    def __init__(self, chunks: List[bytes], gate=None):
        self.chunks = chunks
        self.gate = gate

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.gate is not None:
            await self.gate.wait()


def sse_body(*events) -> bytes:
    return "".join(frame_event(event) for event in events).encode("utf-8")


@pytest.fixture
def settings():
    """Settings with every credential present."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        OPENAI_API_KEY="sk-test",
        OPENAI_BASE_URL="https://llm.example.test/v1",
        SUPABASE_URL="https://db.example.test",
        SUPABASE_SERVICE_ROLE_KEY="service-role-key",
    )


@pytest.fixture
def sample_chunks():
    """Retrieved chunks for a prescription question."""
    return [
        Chunk(content="Rezepte können telefonisch bestellt werden.", title="Rezeptbestellung", distance=0.12),
        Chunk(content="Bestellungen sind nach 24 Stunden abholbereit.", title="Rezeptbestellung", distance=0.18),
        Chunk(content="Die Praxis ist montags geschlossen.", title="Öffnungszeiten", distance=0.31),
        Chunk(content="Notfälle bitte direkt melden.", title="Notfall", distance=0.44),
    ]


@pytest.fixture
def make_streamer(settings):
    """Build an AnswerStreamer around fake collaborators."""
    def _make(chunks=None, fragments=None, embeddings=None, retriever=None, llm=None):
        embeddings = embeddings or FakeEmbeddings()
        retriever = retriever or FakeRetriever(chunks)
        llm = llm or FakeLLM(fragments)
        streamer = AnswerStreamer(settings, embeddings=embeddings, retriever=retriever, llm=llm)
        return streamer, embeddings, retriever, llm
    return _make


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first loop."""
    from sse_starlette import sse

    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None:
        app_status.should_exit_event = None
    yield
    if app_status is not None:
        app_status.should_exit_event = None
