"""Explicit strategy registration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, TypeVar

if TYPE_CHECKING:
    from tradeflux.config.settings import Settings
    from tradeflux.strategy.base import BaseStrategy

logger = logging.getLogger(__name__)

S = TypeVar("S")


class StrategyRegistry:
    """Named strategy factories; the coordinator requires exactly one."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[["Settings"], "BaseStrategy"]] = {}

    def register(self, name: str, factory: Callable[["Settings"], "BaseStrategy"]) -> None:
        if name in self._factories:
            raise ValueError(f"Strategy {name!r} is already registered")
        self._factories[name] = factory
        logger.debug("Strategy %r registered", name)

    def unregister(self, name: str) -> None:
        self._factories.pop(name, None)

    def clear(self) -> None:
        self._factories.clear()

    @property
    def names(self) -> list[str]:
        return list(self._factories)

    def create_all(self, settings: "Settings") -> list["BaseStrategy"]:
        """Instantiate every registered strategy."""
        strategies = []
        for name, factory in self._factories.items():
            strategy = factory(settings)
            strategy.name = name
            strategies.append(strategy)
        return strategies


default_registry = StrategyRegistry()


def register_strategy(
    name: str, registry: StrategyRegistry | None = None
) -> Callable[[S], S]:
    """Class decorator registering a strategy under *name*.

    The class is built with ``cls.from_settings(settings)``.
    """

    def decorator(cls: S) -> S:
        target = registry if registry is not None else default_registry
        target.register(name, cls.from_settings)
        return cls

    return decorator
