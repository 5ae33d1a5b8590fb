"""Ticker flux — publishes a ticker when the market of a requested pair moved."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tradeflux.config.constants import FluxKind
from tradeflux.data.models import CurrencyPair, Ticker
from tradeflux.flux.base import CurrencyPairFlux

if TYPE_CHECKING:
    from tradeflux.exchange.connector import ExchangeConnector
    from tradeflux.exchange.simulator import DryExchange


class TickerFlux(CurrencyPairFlux[Ticker]):
    kind = FluxKind.TICKER

    def __init__(
        self,
        connector: "ExchangeConnector | DryExchange",
        fetch_timeout: float = 30.0,
    ) -> None:
        super().__init__(fetch_timeout)
        self._connector = connector

    async def fetch(self) -> list[Ticker]:
        if not self._currency_pairs:
            return []
        return await self._connector.fetch_tickers(self._currency_pairs)

    def key(self, item: Ticker) -> CurrencyPair:
        return item.currency_pair
