"""Order placement and trade bookkeeping."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from tradeflux.config.constants import OrderSide
from tradeflux.data.models import CurrencyPair, OperationResult, Order, Trade

if TYPE_CHECKING:
    from tradeflux.data.repository import Repository
    from tradeflux.exchange.connector import ExchangeConnector
    from tradeflux.exchange.simulator import DryExchange

logger = logging.getLogger(__name__)


class TradeService:
    """Places market orders and keeps the orders and trades seen so far.

    Parameters
    ----------
    connector:
        Live connector or dry-mode simulator.
    repository:
        Trade backup target; ``None`` disables persistence.
    """

    def __init__(
        self,
        connector: "ExchangeConnector | DryExchange",
        repository: "Repository | None" = None,
    ) -> None:
        self._connector = connector
        self._repo = repository
        self._orders: dict[str, Order] = {}
        self._trades: dict[str, Trade] = {}

    async def create_buy_market_order(
        self, pair: CurrencyPair, amount: Decimal
    ) -> OperationResult:
        """Buy *amount* of the base currency at market price."""
        return await self._create_market_order(OrderSide.BID, pair, amount)

    async def create_sell_market_order(
        self, pair: CurrencyPair, amount: Decimal
    ) -> OperationResult:
        """Sell *amount* of the base currency at market price."""
        return await self._create_market_order(OrderSide.ASK, pair, amount)

    async def _create_market_order(
        self, side: OrderSide, pair: CurrencyPair, amount: Decimal
    ) -> OperationResult:
        try:
            order_id = await self._connector.create_market_order(side, pair, amount)
        except Exception as e:
            logger.exception("Failed to create %s market order on %s", side.value, pair)
            return OperationResult.failure(f"Error calling create_market_order: {e}")
        logger.info("%s market order %s created: %s %s", side.value, order_id, amount, pair)
        return OperationResult(successful=True, order_id=order_id)

    async def cancel_order(self, order_id: str, pair: CurrencyPair) -> bool:
        return await self._connector.cancel_order(order_id, pair)

    # -- Flux consumers -------------------------------------------------------

    def order_update(self, order: Order) -> None:
        self._orders[order.order_id] = order

    def restore_trade(self, trade: Trade) -> None:
        self._trades[trade.trade_id] = trade

    async def backup_trade(self, trade: Trade) -> None:
        """Record *trade* and write it through to the repository."""
        self._trades[trade.trade_id] = trade
        if self._repo is None:
            return
        try:
            await self._repo.save_trade(trade)
        except Exception:
            logger.exception("Failed to back up trade %s", trade.trade_id)

    # -- Queries --------------------------------------------------------------

    def get_orders(self) -> dict[str, Order]:
        return dict(self._orders)

    def get_trades(self) -> dict[str, Trade]:
        return dict(self._trades)

    def trades_for_order(self, order_id: str) -> list[Trade]:
        """Known trades of *order_id*, in arrival order."""
        return [t for t in self._trades.values() if t.order_id == order_id]
