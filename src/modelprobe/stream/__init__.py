from .decoder import DONE_SENTINEL, StreamDecoder, extract_content
from .tokens import CharacterTokenCounter, TokenCounter

__all__ = [
    "DONE_SENTINEL",
    "CharacterTokenCounter",
    "StreamDecoder",
    "TokenCounter",
    "extract_content",
]
