"""
Conversation session: owns the message list and drives one turn at a time
"""
from typing import MutableMapping, Optional

import httpx
import structlog

from praxis_chat.cancellation import CancellationToken
from praxis_chat.client.stream_consumer import StreamConsumer, TurnOutcome
from praxis_chat.errors import CancellationSignal, StreamEventError
from praxis_chat.models.chat import ConversationMessage, ConversationState

logger = structlog.get_logger()

CANCELLED_MESSAGE = "Anfrage abgebrochen."
FAILURE_MESSAGE = "Ups — Anfrage fehlgeschlagen. Bitte erneut senden."

CONVERSATION_ID_KEY = "conversationId"
FIRST_MESSAGE_KEY = "firstMessage"


class ChatTransportError(Exception):
    """Non-success HTTP status or missing body from the chat endpoint"""


class ChatSession:
    """
    Client-side conversation state for a single tab or session.

    Only one turn can be in flight; ``send`` while busy is ignored, not
    queued. ``storage`` stands in for short-lived session storage and only
    ever holds the cached conversation id.
    """

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        storage: Optional[MutableMapping[str, str]] = None,
        top_k: int = 12,
        consumer: Optional[StreamConsumer] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=None)
        self.storage = storage if storage is not None else {}
        self.top_k = top_k
        self.consumer = consumer or StreamConsumer()
        self.state = ConversationState(
            conversation_id=self.storage.get(CONVERSATION_ID_KEY)
        )
        self._cancel_token: Optional[CancellationToken] = None

    @property
    def messages(self):
        return self.state.messages

    @property
    def busy(self) -> bool:
        return self.state.busy

    @property
    def error(self) -> Optional[str]:
        return self.state.error

    async def send(self, text: str) -> Optional[TurnOutcome]:
        """Run one turn; returns None when the send was rejected"""
        if self.state.busy or not text.strip():
            return None

        # Both messages exist before any network activity
        self.state.messages.append(ConversationMessage(role="user", content=text))
        assistant = ConversationMessage(role="assistant", content="", sources=[])
        self.state.messages.append(assistant)

        self.state.busy = True
        self.state.error = None
        token = CancellationToken()
        self._cancel_token = token

        try:
            outcome = await self._run_turn(text, assistant, token)
        except CancellationSignal:
            logger.info("Chat turn cancelled", message_id=assistant.local_id)
            assistant.content = CANCELLED_MESSAGE
            outcome = TurnOutcome.ABORTED
        except StreamEventError as e:
            logger.error("Server reported stream error", error=str(e))
            self.state.error = str(e)
            assistant.content = str(e)
            outcome = TurnOutcome.FAILED
        except (httpx.HTTPError, ChatTransportError) as e:
            logger.error("Chat API error", error=str(e))
            self.state.error = FAILURE_MESSAGE
            assistant.content = FAILURE_MESSAGE
            outcome = TurnOutcome.FAILED
        finally:
            # A reset may already have handed the session to a new turn
            if self._cancel_token is token:
                self._cancel_token = None
                self.state.busy = False

        return outcome

    async def _run_turn(
        self,
        text: str,
        assistant: ConversationMessage,
        token: CancellationToken
    ) -> TurnOutcome:
        request = self.http_client.build_request(
            "POST",
            f"{self.base_url}/api/chat",
            json={"question": text, "k": self.top_k},
            headers={"Accept": "text/event-stream"}
        )
        response = await token.race(self.http_client.send(request, stream=True))
        try:
            if response.status_code >= 400:
                raise ChatTransportError(f"HTTP error! status: {response.status_code}")
            return await self.consumer.consume(response.aiter_bytes(), assistant, token)
        finally:
            await response.aclose()

    def cancel(self) -> None:
        """Abort the in-flight turn, if any"""
        if self._cancel_token is not None:
            self._cancel_token.cancel()

    def clear_error(self) -> None:
        self.state.error = None

    def reset(self) -> None:
        """Abort any turn and drop all conversation state"""
        self.cancel()
        self._cancel_token = None
        self.state.conversation_id = None
        self.state.messages = []
        self.state.busy = False
        self.state.error = None
        self.storage.pop(CONVERSATION_ID_KEY, None)
        self.storage.pop(FIRST_MESSAGE_KEY, None)

    async def send_feedback(self, message_id: str, helpful: bool, note: Optional[str] = None) -> None:
        """Fire-and-forget feedback; failures never affect the conversation"""
        body = {"message_id": message_id, "helpful": helpful}
        if note is not None:
            body["note"] = note
        try:
            response = await self.http_client.post(f"{self.base_url}/api/feedback", json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Feedback API error", error=str(e))

    async def aclose(self) -> None:
        await self.http_client.aclose()
