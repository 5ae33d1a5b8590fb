"""Simulated order execution for dry mode."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from tradeflux.config.constants import OrderSide, OrderStatus
from tradeflux.data.models import (
    Account,
    Amount,
    Balance,
    CurrencyPair,
    Order,
    Ticker,
    Trade,
    to_decimal,
)

if TYPE_CHECKING:
    from tradeflux.config.settings import DrySettings
    from tradeflux.core.position import Position
    from tradeflux.exchange.connector import ExchangeConnector

logger = logging.getLogger(__name__)

ORDER_ID_PREFIX = "DRY_ORDER_"
TRADE_ID_PREFIX = "DRY_TRADE_"


def _sequence_number(identifier: str | None, prefix: str) -> int:
    """Number behind a simulated id, 0 for ids the simulator did not issue."""
    if not identifier or not identifier.startswith(prefix):
        return 0
    suffix = identifier[len(prefix):]
    return int(suffix) if suffix.isdigit() else 0


class DryExchange:
    """Fills market orders instantly at the last ticker price.

    Exposes the same snapshot interface as :class:`ExchangeConnector`. Market
    data comes from *market* when given (public endpoints need no API key);
    orders, trades and balances never leave this process.

    Parameters
    ----------
    settings:
        Dry-mode configuration (account name, initial balances, fee rate).
    market:
        Optional live connector used for tickers and the market list.
    """

    def __init__(
        self,
        settings: "DrySettings",
        market: "ExchangeConnector | None" = None,
    ) -> None:
        self._account_name = settings.account_name
        self._fee_rate = to_decimal(settings.fee_rate)
        self._market = market
        self._balances: dict[str, Decimal] = {
            currency: to_decimal(value) for currency, value in settings.initial_balances.items()
        }
        self._last_prices: dict[CurrencyPair, Decimal] = {}
        self._tickers: dict[CurrencyPair, Ticker] = {}
        self._orders: dict[str, Order] = {}
        self._trades: dict[str, Trade] = {}
        self._last_order_number = 0
        self._last_trade_number = 0

    def ticker_update(self, ticker: Ticker) -> None:
        """Remember the last price; subscribed to the ticker flux."""
        self._last_prices[ticker.currency_pair] = ticker.last
        self._tickers[ticker.currency_pair] = ticker

    def restore_trade(self, trade: Trade) -> None:
        """Account for a trade filled by a previous run.

        Later ids are numbered after it and its fill is applied to the
        balances, so a restart resumes from the persisted state.
        """
        self._skip_ids(trade.order_id, trade.trade_id)
        self._settle(trade.side, trade.currency_pair, trade.amount, trade.total, trade.fee)

    def restore_position(self, position: "Position") -> None:
        """Never reissue the order ids of a restored position."""
        self._skip_ids(position.open_order_id)
        self._skip_ids(position.close_order_id)

    def _skip_ids(self, order_id: str | None, trade_id: str | None = None) -> None:
        self._last_order_number = max(
            self._last_order_number, _sequence_number(order_id, ORDER_ID_PREFIX)
        )
        self._last_trade_number = max(
            self._last_trade_number, _sequence_number(trade_id, TRADE_ID_PREFIX)
        )

    def _settle(
        self, side: OrderSide, pair: CurrencyPair, amount: Decimal, cost: Decimal, fee: Amount
    ) -> None:
        if side == OrderSide.BID:
            self._balances[pair.base] = self.balance(pair.base) + amount
            self._balances[pair.quote] = self.balance(pair.quote) - cost
        else:
            self._balances[pair.base] = self.balance(pair.base) - amount
            self._balances[pair.quote] = self.balance(pair.quote) + cost
        self._balances[fee.currency] = self.balance(fee.currency) - fee.value

    def balance(self, currency: str) -> Decimal:
        return self._balances.get(currency, Decimal(0))

    def available_currency_pairs(self) -> set[CurrencyPair]:
        if self._market is not None:
            return self._market.available_currency_pairs()
        return set(self._last_prices)

    async def fetch_accounts(self) -> list[Account]:
        balances = tuple(
            Balance(currency=c, total=v, available=v) for c, v in sorted(self._balances.items())
        )
        return [Account(account_id=self._account_name, name=self._account_name, balances=balances)]

    async def fetch_tickers(self, pairs: Iterable[CurrencyPair]) -> list[Ticker]:
        pairs = list(pairs)
        if self._market is None:
            return [self._tickers[p] for p in pairs if p in self._tickers]
        tickers = await self._market.fetch_tickers(pairs)
        # Prices are known before the flux hands the tickers to the strategy.
        for ticker in tickers:
            self.ticker_update(ticker)
        return tickers

    async def fetch_orders(self, pairs: Iterable[CurrencyPair]) -> list[Order]:
        wanted = set(pairs)
        return [o for o in self._orders.values() if o.currency_pair in wanted]

    async def fetch_trades(self, pairs: Iterable[CurrencyPair]) -> list[Trade]:
        wanted = set(pairs)
        return [t for t in self._trades.values() if t.currency_pair in wanted]

    async def create_market_order(
        self, side: OrderSide, pair: CurrencyPair, amount: Decimal
    ) -> str:
        """Fill the whole order at the last known price and return its id."""
        price = self._last_prices.get(pair)
        if price is None:
            raise ValueError(f"No ticker received yet for {pair}, cannot fill market order")

        cost = amount * price
        fee = cost * self._fee_rate
        if side == OrderSide.BID:
            if self.balance(pair.quote) < cost + fee:
                raise ValueError(f"Not enough {pair.quote} to buy {amount} {pair.base}")
        elif self.balance(pair.base) < amount:
            raise ValueError(f"Not enough {pair.base} to sell {amount}")
        self._settle(side, pair, amount, cost, Amount(fee, pair.quote))

        now = datetime.now(timezone.utc)
        self._last_order_number += 1
        self._last_trade_number += 1
        order_id = f"{ORDER_ID_PREFIX}{self._last_order_number:010d}"
        trade_id = f"{TRADE_ID_PREFIX}{self._last_trade_number:010d}"
        self._orders[order_id] = Order(
            order_id=order_id,
            side=side,
            currency_pair=pair,
            amount=amount,
            status=OrderStatus.FILLED,
            timestamp=now,
            filled_amount=amount,
            average_price=price,
        )
        self._trades[trade_id] = Trade(
            trade_id=trade_id,
            order_id=order_id,
            side=side,
            currency_pair=pair,
            amount=amount,
            price=price,
            fee=Amount(fee, pair.quote),
            timestamp=now,
        )
        logger.debug(
            "Simulated fill: %s %s %s @ %s (fee=%s)", side.value, amount, pair, price, fee
        )
        return order_id

    async def cancel_order(self, order_id: str, pair: CurrencyPair) -> bool:
        # Simulated market orders are filled on creation.
        logger.info("Dry order %s on %s is already filled, nothing to cancel", order_id, pair)
        return False
