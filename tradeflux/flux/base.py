"""Generic update flux — polls a snapshot source and publishes only new or changed items."""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Generic, Hashable, Iterable, TypeVar

from tradeflux.config.constants import FluxKind
from tradeflux.core.errors import PollFetchError
from tradeflux.data.models import CurrencyPair

logger = logging.getLogger(__name__)

T = TypeVar("T")

Subscriber = Callable[[Any], "Awaitable[None] | None"]

_MISSING = object()


class BaseFlux(ABC, Generic[T]):
    """Deduplicating broadcast publisher for one entity kind.

    Each tick fetches the complete current set of items, compares it with the
    last-known set and delivers the new or changed items, whole, to every
    subscriber in subscription order. A subscriber finishes with an item before
    the next subscriber (and the next item) is served.

    Parameters
    ----------
    fetch_timeout:
        Seconds allowed for one snapshot fetch before the tick is abandoned.
    """

    kind: FluxKind
    #: Keep items absent from the latest snapshot in the known set.
    retain_missing: bool = False

    def __init__(self, fetch_timeout: float = 30.0) -> None:
        self._fetch_timeout = fetch_timeout
        self._subscribers: list[Subscriber] = []
        self._known: dict[Hashable, Any] = {}
        self._poll_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._wakeup: asyncio.Event | None = None

    # -- Hooks ----------------------------------------------------------------

    @abstractmethod
    async def fetch(self) -> Iterable[T]:
        """Return the complete current set of items (a snapshot, not a delta)."""

    @abstractmethod
    def key(self, item: T) -> Hashable:
        """Identity of an item across snapshots."""

    def fingerprint(self, item: T) -> Any:
        """Value compared between snapshots; defaults to every observable field."""
        return item

    def order(self, items: list[T]) -> list[T]:
        """Emission order of a snapshot."""
        return items

    # -- Subscription ---------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> None:
        """Register a consumer; it receives every item emitted from now on."""
        self._subscribers.append(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def restore(self, items: Iterable[T]) -> None:
        """Seed the known set so restored items are not reported as new."""
        count = 0
        for item in items:
            self._known[self.key(item)] = self.fingerprint(item)
            count += 1
        logger.debug("%s flux seeded with %d item(s)", self.kind.value, count)

    def is_known(self, item: T) -> bool:
        return self._known.get(self.key(item), _MISSING) == self.fingerprint(item)

    # -- Polling --------------------------------------------------------------

    async def poll(self) -> list[T]:
        """Run one tick. Returns the items that were emitted."""
        async with self._poll_lock:
            try:
                items = await self._fetch_snapshot()
            except PollFetchError:
                logger.exception("%s flux: fetch failed, will retry", self.kind.value)
                return []

            latest: dict[Hashable, T] = {}
            for item in self.order(items):
                latest[self.key(item)] = item

            snapshot: dict[Hashable, Any] = {}
            changed: list[T] = []
            for key, item in latest.items():
                fingerprint = self.fingerprint(item)
                snapshot[key] = fingerprint
                if self._known.get(key, _MISSING) != fingerprint:
                    changed.append(item)

            if self.retain_missing:
                self._known.update(snapshot)
            else:
                self._known = snapshot

            for item in changed:
                await self._publish(item)

            if changed:
                logger.debug("%s flux: %d update(s) emitted", self.kind.value, len(changed))
            return changed

    async def _fetch_snapshot(self) -> list[T]:
        try:
            return list(await asyncio.wait_for(self.fetch(), timeout=self._fetch_timeout))
        except asyncio.TimeoutError as e:
            raise PollFetchError(
                f"{self.kind.value} fetch timed out after {self._fetch_timeout}s"
            ) from e
        except PollFetchError:
            raise
        except Exception as e:
            raise PollFetchError(f"{self.kind.value} fetch failed: {e}") from e

    async def _publish(self, item: T) -> None:
        for subscriber in self._subscribers:
            try:
                result = subscriber(item)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "%s flux: subscriber %r failed on %r",
                    self.kind.value,
                    subscriber,
                    item,
                )

    # -- Lifecycle ------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def start(self, interval: float) -> None:
        """Start polling every *interval* seconds in a background task."""
        if self._running:
            return
        self._running = True
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._run(interval))
        logger.info("%s flux started (every %.1fs)", self.kind.value, interval)

    async def stop(self) -> None:
        """Stop polling; the tick in progress is allowed to finish delivering."""
        self._running = False
        if self._wakeup is not None:
            self._wakeup.set()
        if self._task is not None:
            await self._task
            self._task = None
            logger.info("%s flux stopped", self.kind.value)

    async def _run(self, interval: float) -> None:
        while self._running:
            try:
                await self.poll()
            except Exception:
                logger.exception("%s flux: unexpected error in tick", self.kind.value)
            if not self._running:
                break
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass


class CurrencyPairFlux(BaseFlux[T]):
    """A flux whose source is queried per requested currency pair."""

    def __init__(self, fetch_timeout: float = 30.0) -> None:
        super().__init__(fetch_timeout)
        self._currency_pairs: list[CurrencyPair] = []

    @property
    def currency_pairs(self) -> list[CurrencyPair]:
        return list(self._currency_pairs)

    def update_requested_currency_pairs(self, pairs: Iterable[CurrencyPair]) -> None:
        """Replace the pairs queried on the next tick (sorted for a stable order)."""
        self._currency_pairs = sorted(set(pairs), key=str)
        logger.info(
            "%s flux: currency pairs set to %s",
            self.kind.value,
            ", ".join(str(p) for p in self._currency_pairs) or "none",
        )
