"""Order flux — publishes new orders and orders whose status or fill changed."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tradeflux.config.constants import FluxKind
from tradeflux.data.models import Order
from tradeflux.flux.base import CurrencyPairFlux

if TYPE_CHECKING:
    from tradeflux.exchange.connector import ExchangeConnector
    from tradeflux.exchange.simulator import DryExchange


class OrderFlux(CurrencyPairFlux[Order]):
    kind = FluxKind.ORDER

    def __init__(
        self,
        connector: "ExchangeConnector | DryExchange",
        fetch_timeout: float = 30.0,
    ) -> None:
        super().__init__(fetch_timeout)
        self._connector = connector

    async def fetch(self) -> list[Order]:
        if not self._currency_pairs:
            return []
        return await self._connector.fetch_orders(self._currency_pairs)

    def key(self, item: Order) -> str:
        return item.order_id

    def order(self, items: list[Order]) -> list[Order]:
        return sorted(items, key=lambda o: (o.timestamp, o.order_id))
