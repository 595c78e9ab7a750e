"""
LLM service for streaming chat completions from an OpenAI-compatible API
"""
import json
from typing import AsyncGenerator, Optional
import httpx
import structlog

from praxis_chat.errors import ProviderError
from praxis_chat.services.config import Settings

logger = structlog.get_logger()

DONE_SENTINEL = "[DONE]"


class LLMService:
    """Service for streaming chat completions"""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http_client = http_client
        self.completions_url = f"{settings.OPENAI_BASE_URL.rstrip('/')}/chat/completions"

    async def generate_stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None
    ) -> AsyncGenerator[str, None]:
        """
        Yield text fragments as the model produces them.

        Raises ProviderError if the call fails or the upstream reports an
        error mid-stream. Closing the generator closes the upstream response.
        """
        payload = {
            "model": self.settings.CHAT_MODEL,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            "temperature": self.settings.TEMPERATURE if temperature is None else temperature,
            "stream": True
        }

        try:
            async with self.http_client.stream(
                "POST",
                self.completions_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.OPENAI_API_KEY}"},
                timeout=self.settings.STREAM_TIMEOUT
            ) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    logger.error(
                        "LLM request failed",
                        status=response.status_code,
                        body=body[:200].decode("utf-8", "replace")
                    )
                    raise ProviderError(f"Chat completion returned {response.status_code}")

                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[6:].strip()
                    if data == DONE_SENTINEL:
                        break

                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("Skipping malformed completion chunk", data=data[:80])
                        continue
                    if not isinstance(chunk, dict):
                        continue

                    if chunk.get("error"):
                        raise ProviderError(f"Chat completion failed: {chunk['error']}")

                    choices = chunk.get("choices") or []
                    if choices:
                        delta = choices[0].get("delta") or {}
                        text = delta.get("content")
                        if text:
                            yield text

        except httpx.HTTPError as e:
            logger.error("LLM stream failed", error=str(e))
            raise ProviderError(f"Chat completion stream failed: {e}") from e
