"""Tests for the FastAPI application."""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from praxis_chat.errors import FeedbackError, ProviderError, RetrievalError
from praxis_chat.main import app
from praxis_chat.models.chat import DoneEvent, Query, SourcesEvent, TokenEvent
from praxis_chat.protocol import decode_event
from praxis_chat.routers import chat as chat_router
from tests.conftest import FakeEmbeddings, FakeLLM, FakeRetriever


class RecordingFeedbackSink:
    def __init__(self, error=None):
        self.error = error
        self.records = []

    async def record(self, message_id, helpful, note=None):
        if self.error:
            raise self.error
        self.records.append((message_id, helpful, note))


@pytest.fixture
def test_client():
    """Test client with the pipeline left unconfigured."""
    with TestClient(app) as client:
        yield client
    app.state.answer_streamer = None
    app.state.feedback_sink = None


def parse_events(text):
    return [decode_event(line) for line in text.splitlines() if line.startswith("data: ")]


def test_health_endpoint(test_client):
    response = test_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness_reports_unconfigured_pipeline(test_client):
    response = test_client.get("/health/ready")
    assert response.status_code == 503
    assert response.json()["checks"]["pipeline"] == "unconfigured"


def test_metrics_endpoint(test_client):
    test_client.get("/health")
    response = test_client.get("/metrics")
    assert response.status_code == 200
    assert "praxis_chat_requests_total" in response.text


def test_chat_get_reports_ready(test_client):
    response = test_client.get("/api/chat")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


def test_chat_rejects_other_methods(test_client):
    assert test_client.put("/api/chat", json={}).status_code == 405


def test_chat_streams_events(test_client, make_streamer, sample_chunks):
    """Test the wire format of a streamed answer."""
    streamer, _, retriever, _ = make_streamer(chunks=sample_chunks, fragments=["Rezepte ", "telefonisch."])
    app.state.answer_streamer = streamer

    response = test_client.post("/api/chat", json={"question": "Wie bestelle ich ein Rezept?"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert 'data: {"sources": ["Rezeptbestellung", "Rezeptbestellung", "Öffnungszeiten"]}\n\n' in response.text

    events = parse_events(response.text)
    assert events == [
        SourcesEvent(sources=["Rezeptbestellung", "Rezeptbestellung", "Öffnungszeiten"]),
        TokenEvent(token="Rezepte "),
        TokenEvent(token="telefonisch."),
        DoneEvent(),
    ]
    # k defaults to 12 when omitted
    assert retriever.calls[0][1] == 12


def test_chat_passes_explicit_k(test_client, make_streamer):
    streamer, _, retriever, _ = make_streamer()
    app.state.answer_streamer = streamer

    test_client.post("/api/chat", json={"question": "Frage", "k": 5})
    assert retriever.calls[0][1] == 5


@pytest.mark.parametrize("body", [{}, {"question": ""}, {"question": "   "}, {"question": "Frage", "k": 0}])
def test_chat_rejects_invalid_question_before_upstream(test_client, make_streamer, body):
    streamer, embeddings, _, _ = make_streamer()
    app.state.answer_streamer = streamer

    response = test_client.post("/api/chat", json=body)

    assert response.status_code == 400
    assert embeddings.calls == []


def test_chat_without_credentials_is_server_fault(test_client):
    response = test_client.post("/api/chat", json={"question": "Frage"})

    assert response.status_code == 500
    assert "not configured" in response.json()["error"]


def test_chat_embedding_failure_is_not_streamed(test_client, make_streamer):
    streamer, _, _, llm = make_streamer(embeddings=FakeEmbeddings(error=ProviderError("Embedding provider returned 500")))
    app.state.answer_streamer = streamer

    response = test_client.post("/api/chat", json={"question": "Frage"})

    assert response.status_code == 502
    assert response.headers["content-type"].startswith("application/json")
    assert llm.prompts == []


def test_chat_retrieval_failure_is_not_streamed(test_client, make_streamer):
    streamer, _, _, _ = make_streamer(retriever=FakeRetriever(error=RetrievalError("rpc failed")))
    app.state.answer_streamer = streamer

    response = test_client.post("/api/chat", json={"question": "Frage"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to retrieve relevant chunks"


def test_chat_model_failure_is_streamed_as_error_event(test_client, make_streamer, sample_chunks):
    streamer, _, _, _ = make_streamer(chunks=sample_chunks, llm=FakeLLM(["eins", "zwei"], error_after=1))
    app.state.answer_streamer = streamer

    response = test_client.post("/api/chat", json={"question": "Frage"})

    assert response.status_code == 200
    events = parse_events(response.text)
    assert isinstance(events[0], SourcesEvent)
    assert events[1] == TokenEvent(token="eins")
    assert events[-1].model_dump() == {"error": "Streaming failed"}
    assert len(events) == 3


def test_chat_reuses_request_id(test_client, make_streamer, sample_chunks):
    streamer, _, _, _ = make_streamer(chunks=sample_chunks)
    app.state.answer_streamer = streamer

    response = test_client.post(
        "/api/chat",
        json={"question": "Frage"},
        headers={"X-Request-ID": "req-4711"}
    )

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-4711"


class DisconnectingRequest:
    """Request stand-in whose client can drop mid-stream."""

    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self):
        return self.disconnected


async def test_client_disconnect_stops_stalled_stream(make_streamer, sample_chunks, monkeypatch):
    """Test that a disconnect unblocks a stream waiting on the model."""
    monkeypatch.setattr(chat_router, "DISCONNECT_POLL_INTERVAL", 0.01)
    gate = asyncio.Event()
    llm = FakeLLM(["Hallo"], gate=gate)
    streamer, _, _, _ = make_streamer(chunks=sample_chunks, llm=llm)
    prepared = await streamer.prepare(Query(text="Frage", top_k=4))
    req = DisconnectingRequest()

    payloads = chat_router.generate_response(streamer, prepared, req, "req-1", time.time())
    assert decode_event("data: " + await payloads.__anext__()) == SourcesEvent(sources=prepared.sources)
    assert decode_event("data: " + await payloads.__anext__()) == TokenEvent(token="Hallo")

    pending = asyncio.ensure_future(payloads.__anext__())
    await asyncio.sleep(0.05)
    assert not pending.done()

    req.disconnected = True
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, timeout=1)

    assert llm.closed


def test_feedback_recorded(test_client):
    sink = RecordingFeedbackSink()
    app.state.feedback_sink = sink

    response = test_client.post(
        "/api/feedback",
        json={"message_id": "msg-1", "helpful": True, "note": "klar"}
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert sink.records == [("msg-1", True, "klar")]


@pytest.mark.parametrize("body", [
    {},
    {"message_id": "msg-1"},
    {"helpful": True},
    {"message_id": "msg-1", "helpful": "ja"},
])
def test_feedback_invalid_body(test_client, body):
    app.state.feedback_sink = RecordingFeedbackSink()

    response = test_client.post("/api/feedback", json=body)
    assert response.status_code == 400


def test_feedback_store_failure(test_client):
    app.state.feedback_sink = RecordingFeedbackSink(error=FeedbackError("insert failed"))

    response = test_client.post("/api/feedback", json={"message_id": "msg-1", "helpful": False})
    assert response.status_code == 500
