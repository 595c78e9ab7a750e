"""
Configuration settings for the Praxis chat API
"""
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
import json


DEFAULT_SYSTEM_PROMPT = """You answer strictly from the provided context.
Output must be visually structured and readable.

If information is missing, say politely: "Ich finde dazu keine Angabe in den Praxisunterlagen."
If a question has small spelling or phrasing errors, infer intent before deciding that information is missing.

Formatting rules (important):

Output clean, semantic Markdown only, no raw HTML.

Start every response with a clear title line including a relevant emoji (e.g. 📋, 🩺, ⚠️).

Use ## for section headings, with a blank line before and after each.

Emojis only in titles/subtitles (📋/🩺/⚠️/💡). Never place emojis before numbered lists or steps.

When explaining a procedure, render it as an ordered list with short, bolded step titles:

1. **Vorbereitung:** short description
2. **Durchführung:** short description

Do not use any emojis, symbols, or special characters in numbered lists or step sequences.

Listenregeln:
- Verwende geordnete Listen nur für Hauptschritte (1., 2., 3.).
- Unterpunkte innerhalb eines Schritts sind Aufzählungen mit "-" (keine 1.1, 1.2).
- NIEMALS Zahlen innerhalb von Hauptschritten verwenden (z.B. "1. 1. Text" ist verboten).
- Keine Emojis in Listen; Emojis nur in Titeln/Untertiteln.
- Zwischen Überschriften, Absätzen und Listen jeweils eine Leerzeile.

Separate paragraphs with a blank line; never mix headings inline with text.

Use short, scannable sentences, maximum 2-4 lines per paragraph.

Avoid long quotes; use short paragraphs.

Convert raw tables into short key:value lists when clearer.

Summarize long source passages; don't dump full paragraphs unless necessary.

Never concatenate multiple headings inline; preserve correct line breaks and spacing.

Cite short section titles when helpful.

Maintain a calm, professional tone suited to a Swiss medical assistant interface. Be concise but clear.

Do not add any frontend post-processing of text (no regex cleanups). The UI should simply render the model output as Markdown."""


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API Configuration
    API_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # CORS Settings
    CORS_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:8080",
        ]
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from JSON string if needed"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not JSON, treat as comma-separated list
                return [origin.strip() for origin in v.split(",")]
        return v

    # Model provider (OpenAI-compatible HTTP API)
    OPENAI_API_KEY: str = Field(default="")
    OPENAI_BASE_URL: str = Field(default="https://api.openai.com/v1")
    EMBEDDING_MODEL: str = Field(default="text-embedding-3-small")
    EMBEDDING_DIMENSIONS: int = Field(default=1536)
    CHAT_MODEL: str = Field(default="gpt-4o-mini")
    TEMPERATURE: float = Field(default=0.7)

    # Supabase vector store and feedback table
    SUPABASE_URL: str = Field(default="")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(default="")
    MATCH_FUNCTION: str = Field(default="match_chunks")
    FEEDBACK_TABLE: str = Field(default="feedback")
    FEEDBACK_SCHEMA: str = Field(default="clinic_demo")

    # Retrieval Configuration
    DEFAULT_TOP_K: int = Field(default=12)
    SOURCES_LIMIT: int = Field(default=3)

    # Timeouts
    REQUEST_TIMEOUT: int = Field(default=20)
    STREAM_TIMEOUT: int = Field(default=60)

    # OpenTelemetry Configuration
    OTEL_ENABLED: bool = Field(default=False)
    OTEL_ENDPOINT: str = Field(default="http://localhost:4317")
    OTEL_SERVICE_NAME: str = Field(default="praxis-chat-api")

    # System Prompts and Messages
    SYSTEM_PROMPT: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    STREAM_ERROR_MESSAGE: str = Field(default="Streaming failed")

    def missing_credentials(self) -> List[str]:
        """Names of required upstream settings that are unset"""
        required = {
            "SUPABASE_URL": self.SUPABASE_URL,
            "SUPABASE_SERVICE_ROLE_KEY": self.SUPABASE_SERVICE_ROLE_KEY,
            "OPENAI_API_KEY": self.OPENAI_API_KEY,
        }
        return [name for name, value in required.items() if not value]

    def get_rpc_url(self, function: str) -> str:
        """PostgREST endpoint of a Postgres function"""
        return f"{self.SUPABASE_URL.rstrip('/')}/rest/v1/rpc/{function}"

    def get_table_url(self, table: str) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/rest/v1/{table}"
