"""
Feedback endpoint
"""
from fastapi import APIRouter, Request

from praxis_chat.errors import ConfigurationError, ValidationError
from praxis_chat.models.chat import FeedbackRequestBody
from praxis_chat.services.feedback import FeedbackSink


router = APIRouter(tags=["feedback"])


def get_feedback_sink(req: Request) -> FeedbackSink:
    sink = getattr(req.app.state, "feedback_sink", None)
    if sink is None:
        raise ConfigurationError("Supabase server configuration missing")
    return sink


@router.post("/feedback")
async def feedback_endpoint(request: FeedbackRequestBody, req: Request):
    """Record whether an answer was helpful"""
    if not request.message_id or request.helpful is None:
        raise ValidationError("Invalid body")

    sink = get_feedback_sink(req)
    await sink.record(request.message_id, request.helpful, request.note)
    return {"ok": True}
