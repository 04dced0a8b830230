"""
Token counting strategies.

modelprobe does not ship a tokenizer. Non-streamed replies are measured with
an explicit approximation, one token per character, behind the TokenCounter
protocol so a real tokenizer can be swapped in without touching the
orchestrator.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

__all__ = ["CharacterTokenCounter", "TokenCounter"]


@runtime_checkable
class TokenCounter(Protocol):
    def __call__(self, text: str) -> int:
        """
        :param text: Generated text
        :return: Number of tokens the text is counted as
        """
        ...


class CharacterTokenCounter:
    """Approximates the token count as the number of characters."""

    approximate = True

    def __call__(self, text: str) -> int:
        return len(text or "")
