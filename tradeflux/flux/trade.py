"""Trade flux — publishes each trade exactly once."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tradeflux.config.constants import FluxKind
from tradeflux.data.models import Trade
from tradeflux.flux.base import CurrencyPairFlux

if TYPE_CHECKING:
    from tradeflux.exchange.connector import ExchangeConnector
    from tradeflux.exchange.simulator import DryExchange


class TradeFlux(CurrencyPairFlux[Trade]):
    """Trades are immutable history: one dropping out of the exchange's
    history window and coming back is still known."""

    kind = FluxKind.TRADE
    retain_missing = True

    def __init__(
        self,
        connector: "ExchangeConnector | DryExchange",
        fetch_timeout: float = 30.0,
    ) -> None:
        super().__init__(fetch_timeout)
        self._connector = connector

    async def fetch(self) -> list[Trade]:
        if not self._currency_pairs:
            return []
        return await self._connector.fetch_trades(self._currency_pairs)

    def key(self, item: Trade) -> str:
        return item.trade_id

    def order(self, items: list[Trade]) -> list[Trade]:
        return sorted(items, key=lambda t: (t.timestamp, t.trade_id))

    def restore_trade(self, trade: Trade) -> None:
        self.restore([trade])
