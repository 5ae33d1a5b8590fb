"""Strategy interface and a generic base that keeps the bot's state for strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from tradeflux.config.constants import PositionStatus
from tradeflux.data.models import (
    Account,
    CurrencyPair,
    OperationResult,
    Order,
    PositionRules,
    Ticker,
    Trade,
)

if TYPE_CHECKING:
    from tradeflux.config.settings import Settings
    from tradeflux.core.position import Position
    from tradeflux.core.position_service import PositionService
    from tradeflux.core.trade_service import TradeService

logger = logging.getLogger(__name__)


class BaseStrategy(ABC):
    """Interface through which the coordinator drives a strategy.

    The ``*_update`` callbacks are awaited during flux delivery, one item at a
    time; they must not block for long or they hold up their flux.
    """

    name: str = "strategy"

    def set_trade_service(self, trade_service: "TradeService") -> None:
        self.trade_service = trade_service

    def set_position_service(self, position_service: "PositionService") -> None:
        self.position_service = position_service

    @abstractmethod
    def get_requested_currency_pairs(self) -> set[CurrencyPair]:
        """Pairs whose tickers, orders and trades the strategy needs."""

    @abstractmethod
    def get_trade_account(self, accounts: Iterable[Account]) -> Account | None:
        """Pick the account used for trading among the user's accounts."""

    @abstractmethod
    async def account_update(self, account: Account) -> None: ...

    @abstractmethod
    async def ticker_update(self, ticker: Ticker) -> None: ...

    @abstractmethod
    async def order_update(self, order: Order) -> None: ...

    @abstractmethod
    async def trade_update(self, trade: Trade) -> None: ...

    @abstractmethod
    async def position_update(self, position: "Position") -> None: ...

    @abstractmethod
    def restore_trade(self, trade: Trade) -> None: ...

    @abstractmethod
    def restore_position(self, position: "Position") -> None: ...


class GenericStrategy(BaseStrategy):
    """Keeps the latest accounts, tickers, orders, trades and positions.

    Subclasses implement :meth:`get_requested_currency_pairs`,
    :meth:`get_trade_account` and whichever ``on_*`` hooks they need.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.last_tickers: dict[CurrencyPair, Ticker] = {}
        self.orders: dict[str, Order] = {}
        self.trades: dict[str, Trade] = {}
        self.positions: dict[int, "Position"] = {}

    @classmethod
    def from_settings(cls, settings: "Settings") -> "GenericStrategy":
        return cls()

    # -- Flux callbacks -------------------------------------------------------

    async def account_update(self, account: Account) -> None:
        self.accounts[account.account_id] = account
        await self.on_account_update(account)

    async def ticker_update(self, ticker: Ticker) -> None:
        self.last_tickers[ticker.currency_pair] = ticker
        await self.on_ticker_update(ticker)

    async def order_update(self, order: Order) -> None:
        self.orders[order.order_id] = order
        await self.on_order_update(order)

    async def trade_update(self, trade: Trade) -> None:
        self.trades[trade.trade_id] = trade
        await self.on_trade_update(trade)

    async def position_update(self, position: "Position") -> None:
        self.positions[position.position_id] = position
        await self.on_position_update(position)

    def restore_trade(self, trade: Trade) -> None:
        self.trades[trade.trade_id] = trade

    def restore_position(self, position: "Position") -> None:
        self.positions[position.position_id] = position

    # -- Hooks ----------------------------------------------------------------

    async def on_account_update(self, account: Account) -> None:
        pass

    async def on_ticker_update(self, ticker: Ticker) -> None:
        pass

    async def on_order_update(self, order: Order) -> None:
        pass

    async def on_trade_update(self, trade: Trade) -> None:
        pass

    async def on_position_update(self, position: "Position") -> None:
        pass

    # -- Helpers --------------------------------------------------------------

    @property
    def trade_account(self) -> Account | None:
        return self.get_trade_account(self.accounts.values())

    def available(self, currency: str) -> Decimal:
        """Available balance of *currency* on the trade account."""
        account = self.trade_account
        if account is None:
            return Decimal(0)
        balance = account.balance(currency)
        return balance.available if balance else Decimal(0)

    def can_buy(self, pair: CurrencyPair, amount: Decimal) -> bool:
        """Whether the trade account can pay *amount* at the last known price."""
        ticker = self.last_tickers.get(pair)
        if ticker is None:
            return False
        return self.available(pair.quote) >= amount * ticker.last

    def active_positions(self, pair: CurrencyPair | None = None) -> list["Position"]:
        return [
            p
            for p in self.positions.values()
            if p.status != PositionStatus.CLOSED and (pair is None or p.currency_pair == pair)
        ]

    async def create_position(
        self,
        pair: CurrencyPair,
        amount: Decimal,
        rules: PositionRules | None = None,
    ) -> OperationResult:
        result = await self.position_service.create_position(pair, amount, rules)
        if result.successful:
            # Tracked now rather than on the next position flux tick.
            position = self.position_service.get_position(result.position_id)
            if position is not None:
                self.positions[position.position_id] = position
        return result

    async def close_position(self, position_id: int) -> OperationResult:
        return await self.position_service.close_position(position_id)
