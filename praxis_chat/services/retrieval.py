"""
Vector retrieval against the match_chunks RPC
"""
from typing import Any, List, Sequence
import httpx
import structlog

from praxis_chat.errors import RetrievalError, ValidationError
from praxis_chat.models.chat import Chunk
from praxis_chat.services.vector_store import SupabaseStore

logger = structlog.get_logger()

UNKNOWN_TITLE = "Unknown"


class VectorRetriever:
    """Nearest-neighbour search over stored document chunks"""

    def __init__(self, store: SupabaseStore, match_function: str = "match_chunks"):
        self.store = store
        self.match_function = match_function

    async def search(self, vector: Sequence[float], k: int) -> List[Chunk]:
        """
        Return up to ``k`` chunks ordered by ascending distance.

        An empty result is not an error. Store failures are raised as
        RetrievalError and never retried.
        """
        if isinstance(k, bool) or not isinstance(k, int) or k < 1:
            raise ValidationError("k must be a positive integer")

        try:
            rows = await self.store.rpc(
                self.match_function,
                {"query_vec": list(vector), "match_count": k}
            )
        except httpx.HTTPError as e:
            logger.error("Vector store RPC failed", function=self.match_function, error=str(e))
            raise RetrievalError("Failed to retrieve relevant chunks") from e
        except ValueError as e:
            raise RetrievalError("Vector store returned invalid JSON") from e

        chunks = self._to_chunks(rows)
        # Stable sort keeps the store's order for equal distances
        chunks.sort(key=lambda chunk: chunk.distance)

        logger.info(
            "Retrieved chunks",
            count=len(chunks),
            first_distances=[chunk.distance for chunk in chunks[:2]]
        )
        return chunks

    def _to_chunks(self, rows: Any) -> List[Chunk]:
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise RetrievalError("Vector store returned a non-list result")

        chunks = []
        for row in rows:
            try:
                chunks.append(Chunk(
                    content=row["content"],
                    title=row.get("title") or UNKNOWN_TITLE,
                    distance=float(row["distance"])
                ))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise RetrievalError(f"Malformed vector store row: {e}") from e
        return chunks
