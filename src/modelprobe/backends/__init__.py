from .keychecks import KeyCheckClient, KeyCheckType
from .openai import DEFAULT_API_PATHS, OpenAIHTTPTransport, QuotaInfo
from .transport import ChatResponse, ChatStreamResponse, ChatTransport

__all__ = [
    "DEFAULT_API_PATHS",
    "ChatResponse",
    "ChatStreamResponse",
    "ChatTransport",
    "KeyCheckClient",
    "KeyCheckType",
    "OpenAIHTTPTransport",
    "QuotaInfo",
]
