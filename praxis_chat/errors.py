"""
Error taxonomy for the chat pipeline and its client
"""


class PraxisChatError(Exception):
    """Base class for all pipeline errors"""


class ValidationError(PraxisChatError):
    """Bad or empty input, rejected before any side effect"""


class ConfigurationError(PraxisChatError):
    """Required upstream credentials or endpoints are absent"""


class ProviderError(PraxisChatError):
    """Embedding or chat-completion call failed"""


class RetrievalError(PraxisChatError):
    """Vector store call failed"""


class FeedbackError(PraxisChatError):
    """Feedback insert failed"""


class StreamParseError(PraxisChatError):
    """Malformed event line, recovered locally by the consumer"""


class StreamEventError(PraxisChatError):
    """Server reported a terminal error event for the turn"""


class CancellationSignal(PraxisChatError):
    """User-initiated cancellation of an in-flight turn"""
