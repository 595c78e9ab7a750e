"""
Embedding client for the OpenAI-compatible /embeddings endpoint
"""
from typing import List
import httpx
import structlog

from praxis_chat.errors import ProviderError, ValidationError
from praxis_chat.services.config import Settings

logger = structlog.get_logger()


class EmbeddingClient:
    """Turns query text into a fixed-dimension vector. No retry, no cache."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http_client = http_client
        self.embeddings_url = f"{settings.OPENAI_BASE_URL.rstrip('/')}/embeddings"
        self.dimensions = settings.EMBEDDING_DIMENSIONS

    async def embed(self, text: str) -> List[float]:
        """Generate embedding for the query"""
        if not text or not text.strip():
            raise ValidationError("Cannot embed empty text")

        payload = {
            "model": self.settings.EMBEDDING_MODEL,
            "input": text,
            "dimensions": self.dimensions
        }

        try:
            response = await self.http_client.post(
                self.embeddings_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.OPENAI_API_KEY}"},
                timeout=self.settings.REQUEST_TIMEOUT
            )
        except httpx.HTTPError as e:
            logger.error("Embedding request failed", error=str(e))
            raise ProviderError(f"Embedding request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                "Embedding provider returned error",
                status=response.status_code,
                body=response.text[:200]
            )
            raise ProviderError(f"Embedding provider returned {response.status_code}")

        return self._parse_vector(response)

    def _parse_vector(self, response: httpx.Response) -> List[float]:
        try:
            vector = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError("Malformed embedding response") from e

        if not isinstance(vector, list) or len(vector) != self.dimensions:
            raise ProviderError(
                f"Expected embedding of dimension {self.dimensions}"
            )
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in vector):
            raise ProviderError("Embedding contains non-numeric values")

        return [float(v) for v in vector]
