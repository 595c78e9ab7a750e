"""
Feedback sink backed by the Supabase feedback table
"""
from typing import Optional
import httpx
import structlog

from praxis_chat.errors import FeedbackError
from praxis_chat.services.config import Settings
from praxis_chat.services.vector_store import SupabaseStore
from praxis_chat.utils.metrics import feedback_counter

logger = structlog.get_logger()


class FeedbackSink:
    """Stores thumbs-up/down feedback for assistant messages"""

    def __init__(self, settings: Settings, store: SupabaseStore):
        self.settings = settings
        self.store = store

    async def record(self, message_id: str, helpful: bool, note: Optional[str] = None) -> None:
        row = {"message_id": message_id, "helpful": helpful, "note": note}
        try:
            await self.store.insert(
                self.settings.FEEDBACK_TABLE,
                [row],
                schema=self.settings.FEEDBACK_SCHEMA
            )
        except httpx.HTTPError as e:
            logger.error("Feedback insert failed", message_id=message_id, error=str(e))
            raise FeedbackError(f"Failed to store feedback: {e}") from e

        feedback_counter.labels(helpful=str(helpful).lower()).inc()
        logger.info("Feedback stored", message_id=message_id, helpful=helpful)
