"""Ordered authority strategies with typed fallback.

A flow lists the authorities it trusts in order. Each strategy either
returns a value or raises an AuthError; only the error classes it names
in fallback_on hand control to the next strategy. Anything else, or a
failure of the last strategy, propagates.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, Sequence, TypeVar

from auth.exceptions import AuthError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Strategy(Generic[T]):
    """One authority to try."""

    name: str
    attempt: Callable[[], T]
    fallback_on: tuple[type[AuthError], ...] = field(default_factory=tuple)


@dataclass
class StrategyOutcome(Generic[T]):
    """Value produced by the first strategy that succeeded."""

    strategy: str
    value: T


def run_in_order(strategies: Sequence[Strategy[T]]) -> StrategyOutcome[T]:
    """Try strategies in sequence.

    Raises:
        ValueError: If strategies is empty.
        AuthError: From the strategy that ended the chain.
    """
    if not strategies:
        raise ValueError("At least one strategy is required")

    last = len(strategies) - 1
    for index, strategy in enumerate(strategies):
        try:
            return StrategyOutcome(strategy=strategy.name, value=strategy.attempt())
        except AuthError as e:
            if index == last or not isinstance(e, strategy.fallback_on):
                raise
            logger.info(
                "Strategy %s failed with %s, falling back to %s",
                strategy.name,
                e.code,
                strategies[index + 1].name,
            )

    raise AssertionError("unreachable")
