"""
Context assembly from retrieved chunks
"""
from typing import List, Sequence, Tuple

from praxis_chat.models.chat import Chunk

CHUNK_BULLET = "• "
SOURCES_LIMIT = 3


def assemble(chunks: Sequence[Chunk], sources_limit: int = SOURCES_LIMIT) -> Tuple[str, List[str]]:
    """
    Build the prompt context and the source list.

    Chunks keep retrieval order and are neither deduplicated nor truncated.
    Sources are the first ``sources_limit`` titles, repeats included.
    """
    context = "\n".join(f"{CHUNK_BULLET}{chunk.content}" for chunk in chunks)
    sources = [chunk.title for chunk in chunks[:sources_limit]]
    return context, sources


def build_user_prompt(question: str, context: str) -> str:
    return f"Question: {question}\n\nContext:\n{context}"
