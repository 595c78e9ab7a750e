"""
Shared connection to the Supabase (PostgREST) data store
"""
from typing import Any, Dict, List, Optional
import httpx
import structlog

from praxis_chat.services.config import Settings

logger = structlog.get_logger()


class SupabaseStore:
    """
    Process-wide store handle.

    Built once at startup and passed by reference to the retriever and the
    feedback sink; it holds no per-request state and is never mutated after
    construction. Errors surface as ``httpx.HTTPError`` for the caller to map.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http_client = http_client
        self.headers = {
            "apikey": settings.SUPABASE_SERVICE_ROLE_KEY,
            "Authorization": f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}",
            "Content-Type": "application/json",
        }

    async def rpc(self, function: str, params: Dict[str, Any]) -> Any:
        """Call a Postgres function and return its decoded JSON result"""
        response = await self.http_client.post(
            self.settings.get_rpc_url(function),
            json=params,
            headers=self.headers,
            timeout=self.settings.REQUEST_TIMEOUT
        )
        response.raise_for_status()
        return response.json()

    async def insert(
        self,
        table: str,
        rows: List[Dict[str, Any]],
        schema: Optional[str] = None
    ) -> None:
        """Insert rows without asking for them back"""
        headers = dict(self.headers)
        headers["Prefer"] = "return=minimal"
        if schema:
            headers["Content-Profile"] = schema

        response = await self.http_client.post(
            self.settings.get_table_url(table),
            json=rows,
            headers=headers,
            timeout=self.settings.REQUEST_TIMEOUT
        )
        response.raise_for_status()
