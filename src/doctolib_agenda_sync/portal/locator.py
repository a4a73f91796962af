from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from playwright.sync_api import Error as PlaywrightError


logger = logging.getLogger(__name__)


class StrategyExhaustedError(LookupError):
    """
    Raised when no candidate of a strategy became visible in time.

    Callers decide whether that is fatal (a required login field) or just informational
    (an optional overlay that simply wasn't shown).
    """

    def __init__(self, strategy: "Strategy") -> None:
        self.strategy_name = strategy.name
        self.tried = tuple(c.selector for c in strategy.candidates)
        super().__init__(f"No visible element for strategy {strategy.name!r} (tried: {list(self.tried)})")


@dataclass(frozen=True)
class CandidateDescriptor:
    selector: str
    timeout_ms: Optional[int] = None


@dataclass(frozen=True)
class Strategy:
    """Ordered alternative ways of locating one logical UI element."""

    name: str
    candidates: tuple[CandidateDescriptor, ...]
    default_timeout_ms: int = 3_000

    @classmethod
    def of(cls, name: str, *selectors: str, timeout_ms: int = 3_000) -> "Strategy":
        return cls(
            name=name,
            candidates=tuple(CandidateDescriptor(s) for s in selectors),
            default_timeout_ms=timeout_ms,
        )

    def timeout_for(self, candidate: CandidateDescriptor, override_ms: Optional[int] = None) -> int:
        if candidate.timeout_ms is not None:
            return candidate.timeout_ms
        if override_ms is not None:
            return override_ms
        return self.default_timeout_ms

    @property
    def budget_ms(self) -> int:
        return sum(self.timeout_for(c) for c in self.candidates)


@dataclass(frozen=True)
class Resolution:
    locator: Any = field(repr=False)
    candidate: CandidateDescriptor
    index: int


def _probe(scope: Any, strategy: Strategy, candidate: CandidateDescriptor, timeout_ms: Optional[int]) -> Any:
    loc = scope.locator(candidate.selector).first
    loc.wait_for(state="visible", timeout=strategy.timeout_for(candidate, timeout_ms))
    return loc


def resolve(scope: Any, strategy: Strategy, *, timeout_ms: Optional[int] = None) -> Resolution:
    """
    Return the first candidate of `strategy` that becomes visible inside `scope`.

    `scope` is a Page, Frame or Locator. Candidates are probed one after another; a candidate is
    only probed once the previous one timed out, so overlapping markup can't produce two matches.
    """
    for idx, candidate in enumerate(strategy.candidates):
        try:
            loc = _probe(scope, strategy, candidate, timeout_ms)
        except PlaywrightError:
            logger.debug("%s: candidate %r not visible", strategy.name, candidate.selector)
            continue
        logger.debug("%s: matched %r", strategy.name, candidate.selector)
        return Resolution(locator=loc, candidate=candidate, index=idx)
    raise StrategyExhaustedError(strategy)


def try_resolve(scope: Any, strategy: Strategy, *, timeout_ms: Optional[int] = None) -> Optional[Resolution]:
    try:
        return resolve(scope, strategy, timeout_ms=timeout_ms)
    except StrategyExhaustedError:
        return None


def first_value(
    scope: Any,
    strategy: Strategy,
    read: Callable[[Any, CandidateDescriptor], Optional[str]],
    *,
    timeout_ms: Optional[int] = None,
) -> Optional[tuple[CandidateDescriptor, str]]:
    """
    Like `resolve`, but a visible candidate only wins if `read(locator, candidate)` yields a
    non-empty string. Returns None when every candidate is missing or empty.
    """
    for candidate in strategy.candidates:
        try:
            loc = _probe(scope, strategy, candidate, timeout_ms)
            value = read(loc, candidate)
        except PlaywrightError:
            logger.debug("%s: candidate %r not usable", strategy.name, candidate.selector)
            continue
        if value:
            return candidate, value
    return None
