"""
Ordered fallback strategies

Different Moodle installations expose different web-service functions, so one
logical operation is often attempted several ways. A FallbackChain runs named
strategies in order, stops at the first usable result and reports every
failure when nothing worked.
"""

import logging
from typing import Any, Callable, Iterable, List, Optional, Tuple

log = logging.getLogger(__name__)


class FallbackExhaustedError(Exception):
    """Every strategy in a chain failed"""

    def __init__(self, failures: List[Tuple[str, Exception]]):
        self.failures = failures
        super().__init__(self.summary())

    def summary(self, separator: str = ' | ') -> str:
        """Join 'name: message' for every failed attempt"""
        return separator.join(f"{name}: {str(exc)}" for name, exc in self.failures)


class Strategy:
    """A named, zero-argument way of performing an operation"""

    def __init__(self, name: str, func: Callable[[], Any]):
        self.name = name
        self.func = func

    def __call__(self) -> Any:
        return self.func()

    def __repr__(self):
        return f"<Strategy {self.name}>"


def _is_usable(result: Any) -> bool:
    return result is not None


class FallbackChain:
    """
    Evaluate strategies in order until one yields an accepted result

    Args:
        strategies: Strategies to try, in order. Each runs at most once.
        accept: Predicate deciding whether a result ends the chain. A rejected
            result is not a failure; the chain just moves on.
        propagate: Exception types re-raised immediately instead of being
            recorded as a failed attempt.
    """

    def __init__(self, strategies: Iterable[Strategy],
                 accept: Callable[[Any], bool] = _is_usable,
                 propagate: Tuple[type, ...] = ()):
        self.strategies = list(strategies)
        self.accept = accept
        self.propagate = propagate

    def run(self) -> Optional[Any]:
        """
        Returns:
            The first accepted result, or None when no strategy produced one
            and none of them failed.

        Raises:
            FallbackExhaustedError: No accepted result and at least one failure
        """
        failures = []

        for strategy in self.strategies:
            try:
                result = strategy()
            except self.propagate:
                raise
            except Exception as e:
                log.warning(f"Strategy {strategy.name} failed: {str(e)}")
                failures.append((strategy.name, e))
                continue

            if self.accept(result):
                if failures:
                    log.info(f"Strategy {strategy.name} succeeded after {len(failures)} failed attempts")
                return result

            log.debug(f"Strategy {strategy.name} returned no usable result")

        if failures:
            raise FallbackExhaustedError(failures)
        return None
