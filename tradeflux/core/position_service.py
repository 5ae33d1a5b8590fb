"""Position tracking — creation, closing and routing of trades and tickers."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from tradeflux.config.constants import ONE_HUNDRED, PositionStatus
from tradeflux.core.errors import PositionStateError
from tradeflux.core.position import Position
from tradeflux.data.models import (
    Amount,
    CurrencyPair,
    Gain,
    OperationResult,
    PositionRules,
    Ticker,
    Trade,
)

if TYPE_CHECKING:
    from tradeflux.core.trade_service import TradeService
    from tradeflux.data.repository import Repository

logger = logging.getLogger(__name__)


class PositionService:
    """Owns every position and is the only path that mutates them.

    Trade and ticker deliveries come from different flux tasks; each position
    has its own lock, held from rule evaluation to the close request so that
    the two paths never interleave on the same position.

    Parameters
    ----------
    trade_service:
        Used to place the open and close market orders.
    repository:
        Position backup target; ``None`` disables persistence.
    """

    def __init__(
        self,
        trade_service: "TradeService",
        repository: "Repository | None" = None,
    ) -> None:
        self._trade_service = trade_service
        self._repo = repository
        self._positions: dict[int, Position] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._next_id = 1

    def _lock_for(self, position_id: int) -> asyncio.Lock:
        return self._locks.setdefault(position_id, asyncio.Lock())

    def _register(self, position: Position) -> None:
        self._positions[position.position_id] = position
        self._next_id = max(self._next_id, position.position_id + 1)

    # -- Commands -------------------------------------------------------------

    async def create_position(
        self,
        pair: CurrencyPair,
        amount: Decimal,
        rules: PositionRules | None = None,
    ) -> OperationResult:
        """Buy *amount* of *pair* and track it as a new OPENING position."""
        result = await self._trade_service.create_buy_market_order(pair, amount)
        if not result.successful:
            return OperationResult.failure(f"Position creation failure: {result.error_message}")

        position = Position(self._next_id, pair, amount, result.order_id, rules)
        self._register(position)
        async with self._lock_for(position.position_id):
            # The trade may have been published while the order call was in flight.
            self._replay_known_trades(position, result.order_id)
        logger.info("Position %d created: %s", position.position_id, position)
        return OperationResult(
            successful=True, order_id=result.order_id, position_id=position.position_id
        )

    async def close_position(self, position_id: int) -> OperationResult:
        """Sell the position amount; fails without side effect unless OPENED."""
        position = self._positions.get(position_id)
        if position is None:
            return OperationResult.failure(f"Position {position_id} not found")
        async with self._lock_for(position_id):
            return await self._close(position)

    async def _close(self, position: Position) -> OperationResult:
        try:
            position.ensure_closable()
        except PositionStateError as e:
            logger.warning("%s", e)
            return OperationResult.failure(str(e))

        result = await self._trade_service.create_sell_market_order(
            position.currency_pair, position.amount
        )
        if not result.successful:
            return OperationResult.failure(f"Position closing failure: {result.error_message}")

        position.request_close(result.order_id)
        self._replay_known_trades(position, result.order_id)
        logger.info("Position %d closing with order %s", position.position_id, result.order_id)
        return OperationResult(
            successful=True, order_id=result.order_id, position_id=position.position_id
        )

    def _replay_known_trades(self, position: Position, order_id: str) -> None:
        for trade in self._trade_service.trades_for_order(order_id):
            position.trade_update(trade)

    # -- Flux consumers -------------------------------------------------------

    async def trade_update(self, trade: Trade) -> None:
        """Offer *trade* to every position; only the matching one accepts it."""
        for position in list(self._positions.values()):
            async with self._lock_for(position.position_id):
                if position.trade_update(trade):
                    logger.debug(
                        "Trade %s attributed to position %d", trade.trade_id, position.position_id
                    )

    async def ticker_update(self, ticker: Ticker) -> None:
        """Evaluate stop rules of the positions on the ticker's pair."""
        for position in list(self._positions.values()):
            if position.currency_pair != ticker.currency_pair:
                continue
            async with self._lock_for(position.position_id):
                if position.should_close(ticker):
                    logger.info(
                        "Position %d rules triggered at %s (gain %.2f %%)",
                        position.position_id,
                        ticker.last,
                        position.last_calculated_gain.percentage,
                    )
                    await self._close(position)

    async def backup_position(self, position: Position) -> None:
        if self._repo is None:
            return
        try:
            await self._repo.save_position(position)
        except Exception:
            logger.exception("Failed to back up position %d", position.position_id)

    def restore_position(self, position: Position) -> None:
        self._register(position)

    # -- Queries --------------------------------------------------------------

    def get_positions(self) -> list[Position]:
        return list(self._positions.values())

    def get_position(self, position_id: int) -> Position | None:
        return self._positions.get(position_id)

    def get_gains(self) -> dict[str, Gain]:
        """Realized gain of all CLOSED positions, per quote currency."""
        bought: dict[str, Decimal] = {}
        sold: dict[str, Decimal] = {}
        fees: dict[str, Amount] = {}
        for position in self._positions.values():
            if position.status != PositionStatus.CLOSED:
                continue
            quote = position.currency_pair.quote
            bought[quote] = bought.get(quote, Decimal(0)) + sum(
                (t.total for t in position.open_trades), Decimal(0)
            )
            sold[quote] = sold.get(quote, Decimal(0)) + sum(
                (t.total for t in position.close_trades), Decimal(0)
            )
            fees[quote] = fees.get(quote, Amount.zero(quote)) + position.total_fees

        gains = {}
        for quote, spent in bought.items():
            earned = sold[quote]
            percentage = float((earned - spent) / spent * ONE_HUNDRED) if spent else 0.0
            gains[quote] = Gain(percentage, Amount(earned - spent, quote), fees[quote])
        return gains
