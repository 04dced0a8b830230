"""
Per-model timeout policy.

Reasoning-heavy model families need far longer than the caller's base
timeout. The adjustments live in an ordered rule table, first match wins, so
they can be audited and tested on their own:

| model name                                  | effective timeout            |
|---------------------------------------------|------------------------------|
| starts with ``o1-``                         | base x 6                     |
| contains ``deepseek-r1`` or ``deepseek_r1`` | max(base x 5, 60000 ms)      |
| contains ``claude``                         | max(base x 3, 30000 ms)      |
| anything else                               | base                         |

The last two matches are case-insensitive.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

__all__ = ["DEFAULT_TIMEOUT_RULES", "TimeoutPolicy", "TimeoutRule"]


@dataclass(frozen=True)
class TimeoutRule:
    """
    :param name: Identifier of the rule, for logs and tests
    :param matches: Predicate over the model name
    :param multiplier: Factor applied to the base timeout
    :param floor_ms: Minimum effective timeout in milliseconds
    """

    name: str
    matches: Callable[[str], Any]
    multiplier: float = 1.0
    floor_ms: int = 0

    def apply(self, base_timeout_ms: int) -> int:
        return max(int(base_timeout_ms * self.multiplier), self.floor_ms)


DEFAULT_TIMEOUT_RULES: tuple[TimeoutRule, ...] = (
    TimeoutRule("o1", lambda model: model.startswith("o1-"), multiplier=6),
    TimeoutRule(
        "deepseek-r1",
        re.compile(r"deepseek[-_]r1", re.IGNORECASE).search,
        multiplier=5,
        floor_ms=60_000,
    ),
    TimeoutRule(
        "claude",
        re.compile(r"claude", re.IGNORECASE).search,
        multiplier=3,
        floor_ms=30_000,
    ),
)


class TimeoutPolicy:
    """
    Resolves the effective timeout of a probe from its model name.

    Example:
    ::
        policy = TimeoutPolicy()
        assert policy.effective_timeout_ms("o1-preview", 10_000) == 60_000
        assert policy.effective_timeout_ms("gpt-4", 20_000) == 20_000
    """

    def __init__(self, rules: Sequence[TimeoutRule] = DEFAULT_TIMEOUT_RULES):
        self.rules = tuple(rules)

    def match(self, model: str) -> TimeoutRule | None:
        return next((rule for rule in self.rules if rule.matches(model)), None)

    def effective_timeout_ms(self, model: str, base_timeout_ms: int) -> int:
        """
        :param model: Model identifier
        :param base_timeout_ms: Caller supplied timeout in milliseconds
        :return: Timeout to apply to this model's probe in milliseconds
        :raises ValueError: If the base timeout is not positive
        """
        if base_timeout_ms <= 0:
            raise ValueError(f"base_timeout_ms must be positive, got {base_timeout_ms}")

        rule = self.match(model)
        return rule.apply(base_timeout_ms) if rule else base_timeout_ms
