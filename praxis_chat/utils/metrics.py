"""
Metrics tracking utilities
"""
from prometheus_client import Counter, Histogram
import structlog

logger = structlog.get_logger()

# Define metrics
token_counter = Counter(
    'praxis_chat_tokens_streamed_total',
    'Total number of token events streamed',
    ['model']
)

first_token_latency = Histogram(
    'praxis_chat_first_token_latency_seconds',
    'Time from stream start to first token',
    buckets=[0.1, 0.5, 1.0, 1.5, 2.0, 3.0, 5.0, 10.0]
)

chunk_retrieval_count = Histogram(
    'praxis_chat_chunks_retrieved',
    'Number of chunks retrieved per query',
    buckets=[0, 1, 3, 5, 8, 12, 20, 50]
)

retrieval_duration = Histogram(
    'praxis_chat_retrieval_duration_seconds',
    'Time spent embedding and retrieving',
    buckets=[0.1, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0]
)

stream_outcomes = Counter(
    'praxis_chat_stream_outcomes_total',
    'Answer streams by terminal outcome',
    ['outcome']
)

feedback_counter = Counter(
    'praxis_chat_feedback_total',
    'Feedback submissions',
    ['helpful']
)


def track_token_usage(tokens: int, model: str):
    """Track streamed tokens for a finished answer"""
    token_counter.labels(model=model).inc(tokens)
    logger.info(
        "Tokens streamed",
        tokens=tokens,
        model=model
    )


def track_stream_outcome(outcome: str):
    stream_outcomes.labels(outcome=outcome).inc()
