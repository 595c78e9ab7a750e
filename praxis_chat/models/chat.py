"""
Data models for chat functionality
"""
from typing import List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from praxis_chat.errors import ValidationError


class Query(BaseModel):
    """One user turn, never persisted"""
    text: str
    top_k: int


class ChatRequestBody(BaseModel):
    """Chat request model"""
    question: Optional[str] = Field(default=None, description="User's question")
    k: Optional[int] = Field(default=None, description="Number of chunks to retrieve")

    def to_query(self, default_k: int) -> Query:
        if not self.question or not self.question.strip():
            raise ValidationError("Question is required")
        top_k = default_k if self.k is None else self.k
        if top_k < 1:
            raise ValidationError("k must be a positive integer")
        return Query(text=self.question, top_k=top_k)


class FeedbackRequestBody(BaseModel):
    """Feedback on a single assistant message"""
    message_id: Optional[str] = None
    helpful: Optional[StrictBool] = None
    note: Optional[str] = None


class Chunk(BaseModel):
    """Retrieved document chunk"""
    content: str
    title: str
    distance: float


class PreparedAnswer(BaseModel):
    """Everything the streamer needs once retrieval is done"""
    query: Query
    chunks: List[Chunk] = Field(default_factory=list)
    context: str = ""
    sources: List[str] = Field(default_factory=list)


# Stream events. Each model dumps to exactly one wire shape.

class SourcesEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")
    sources: List[str]


class TokenEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")
    token: str


class DoneEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")
    done: Literal[True] = True


class ErrorEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")
    error: str


StreamEvent = Union[SourcesEvent, TokenEvent, DoneEvent, ErrorEvent]


class ConversationMessage(BaseModel):
    """A message as held by the client session"""
    local_id: str = Field(default_factory=lambda: str(uuid4()))
    server_id: Optional[str] = None
    role: Literal["user", "assistant"]
    content: str = ""
    sources: Optional[List[str]] = None


class ConversationState(BaseModel):
    """Per-session conversation state"""
    conversation_id: Optional[str] = None
    messages: List[ConversationMessage] = Field(default_factory=list)
    busy: bool = False
    error: Optional[str] = None
