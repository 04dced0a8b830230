"""
Probe request model and chat-completion body construction.

A ProbeRequest is built once per probe attempt and never changes afterwards;
transports turn it into the JSON body for ``POST /v1/chat/completions``.
"""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import Field

from modelprobe.schemas.base import FrozenBaseModel

__all__ = [
    "DETERMINISTIC_SEED",
    "SEEDED_MODEL_PATTERN",
    "ProbeMode",
    "ProbeRequest",
]

ProbeMode = Literal["streaming", "non-streaming"]

DETERMINISTIC_SEED = 331
# Target APIs expect a fixed seed for these families so repeated probes of
# the same model are reproducible.
SEEDED_MODEL_PATTERN = re.compile(r"^(gpt-|chatgpt-)")


class ProbeRequest(FrozenBaseModel):
    """
    A single probe of one model with one prompt.

    Example:
    ::
        request = ProbeRequest(model="gpt-4", prompt="hi", timeout_ms=30000)
        request.chat_body()
        # {"model": "gpt-4", "messages": [...], "seed": 331}
    """

    model: str = Field(min_length=1, description="Model identifier to probe.")
    prompt: str = Field(description="User prompt sent as the only message.")
    stream: bool = Field(
        default=False, description="Whether to request an SSE streaming response."
    )
    timeout_ms: int = Field(
        gt=0, description="Effective timeout for this probe in milliseconds."
    )

    @property
    def mode(self) -> ProbeMode:
        return "streaming" if self.stream else "non-streaming"

    @property
    def seeded(self) -> bool:
        return SEEDED_MODEL_PATTERN.match(self.model) is not None

    def chat_body(self) -> dict[str, Any]:
        """
        Build the chat-completions JSON body for this probe.

        :return: Body with model and a single user message, plus ``stream``
            when streaming and ``seed`` for gpt-/chatgpt- models
        """
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": self.prompt}],
        }
        if self.stream:
            body["stream"] = True
        if self.seeded:
            body["seed"] = DETERMINISTIC_SEED

        return body
