"""Exchange connector — turns ccxt responses into domain snapshots and places orders."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable

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
    from tradeflux.exchange.client import ExchangeClient

logger = logging.getLogger(__name__)


def _map_ccxt_status(status: str | None, filled: Decimal) -> OrderStatus:
    """Map a ccxt order status string to our OrderStatus enum."""
    if status == "open":
        return OrderStatus.PARTIALLY_FILLED if filled > 0 else OrderStatus.NEW
    mapping = {
        "closed": OrderStatus.FILLED,
        "canceled": OrderStatus.CANCELED,
        "cancelled": OrderStatus.CANCELED,
        "expired": OrderStatus.EXPIRED,
        "rejected": OrderStatus.REJECTED,
    }
    return mapping.get(status or "", OrderStatus.UNKNOWN)


def _to_side(side: str | None) -> OrderSide:
    return OrderSide.BID if side == "buy" else OrderSide.ASK


def _from_side(side: OrderSide) -> str:
    return "buy" if side == OrderSide.BID else "sell"


def _to_datetime(timestamp_ms: int | None) -> datetime:
    if timestamp_ms is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def ticker_from_ccxt(raw: dict[str, Any], pair: CurrencyPair) -> Ticker:
    """Convert a ccxt ticker dict to a Ticker."""
    return Ticker(
        currency_pair=pair,
        last=to_decimal(raw.get("last") or raw.get("close") or 0),
        timestamp=_to_datetime(raw.get("timestamp")),
        bid=to_decimal(raw.get("bid")),
        ask=to_decimal(raw.get("ask")),
        volume=to_decimal(raw.get("baseVolume")),
    )


def order_from_ccxt(raw: dict[str, Any]) -> Order:
    """Convert a ccxt order dict to an Order."""
    filled = to_decimal(raw.get("filled") or 0)
    return Order(
        order_id=str(raw["id"]),
        side=_to_side(raw.get("side")),
        currency_pair=CurrencyPair.from_symbol(raw["symbol"]),
        amount=to_decimal(raw.get("amount") or 0),
        status=_map_ccxt_status(raw.get("status"), filled),
        timestamp=_to_datetime(raw.get("timestamp")),
        filled_amount=filled,
        average_price=to_decimal(raw.get("average")),
    )


def trade_from_ccxt(raw: dict[str, Any]) -> Trade | None:
    """Convert a ccxt trade dict to a Trade, or ``None`` when it carries no price."""
    if not raw.get("price"):
        logger.warning("Trade %s on %s has no price, ignored", raw.get("id"), raw.get("symbol"))
        return None
    pair = CurrencyPair.from_symbol(raw["symbol"])
    fee = raw.get("fee") or {}
    return Trade(
        trade_id=str(raw["id"]),
        order_id=str(raw.get("order") or ""),
        side=_to_side(raw.get("side")),
        currency_pair=pair,
        amount=to_decimal(raw.get("amount") or 0),
        price=to_decimal(raw["price"]),
        fee=Amount(to_decimal(fee.get("cost") or 0), fee.get("currency") or pair.quote),
        timestamp=_to_datetime(raw.get("timestamp")),
    )


def account_from_ccxt(raw: dict[str, Any], account_type: str) -> Account:
    """Convert a ccxt balance response to an Account named after its type."""
    totals = raw.get("total") or {}
    free = raw.get("free") or {}
    balances = tuple(
        Balance(
            currency=currency,
            total=to_decimal(total),
            available=to_decimal(free.get(currency) or 0),
        )
        for currency, total in sorted(totals.items())
        if total is not None
    )
    return Account(account_id=account_type, name=account_type, balances=balances)


class ExchangeConnector:
    """Live connector: every ``fetch_*`` returns a complete snapshot.

    Parameters
    ----------
    client:
        Connected ccxt client.
    account_types:
        ccxt balance types exposed as accounts (e.g. ``["spot"]``).
    trade_history_limit:
        Number of recent orders / trades requested per pair.
    """

    def __init__(
        self,
        client: "ExchangeClient",
        account_types: Iterable[str] = ("spot",),
        trade_history_limit: int = 100,
    ) -> None:
        self._client = client
        self._account_types = list(account_types)
        self._limit = trade_history_limit

    def available_currency_pairs(self) -> set[CurrencyPair]:
        pairs = set()
        for symbol in self._client.market_symbols():
            try:
                pairs.add(CurrencyPair.from_symbol(symbol))
            except ValueError:
                logger.debug("Skipping market %s", symbol)
        return pairs

    async def fetch_accounts(self) -> list[Account]:
        accounts = []
        for account_type in self._account_types:
            raw = await self._client.fetch_balance(account_type)
            accounts.append(account_from_ccxt(raw, account_type))
        return accounts

    async def fetch_tickers(self, pairs: Iterable[CurrencyPair]) -> list[Ticker]:
        tickers = []
        for pair in pairs:
            raw = await self._client.fetch_ticker(pair.symbol)
            tickers.append(ticker_from_ccxt(raw, pair))
        return tickers

    async def fetch_orders(self, pairs: Iterable[CurrencyPair]) -> list[Order]:
        use_history = self._client.supports("fetchOrders")
        orders = []
        for pair in pairs:
            if use_history:
                raw_orders = await self._client.fetch_orders(pair.symbol, limit=self._limit)
            else:
                raw_orders = await self._client.fetch_open_orders(pair.symbol)
            orders.extend(order_from_ccxt(o) for o in raw_orders)
        return orders

    async def fetch_trades(self, pairs: Iterable[CurrencyPair]) -> list[Trade]:
        trades = []
        for pair in pairs:
            raw_trades = await self._client.fetch_my_trades(pair.symbol, limit=self._limit)
            for raw in raw_trades:
                trade = trade_from_ccxt(raw)
                if trade is not None:
                    trades.append(trade)
        return trades

    async def create_market_order(
        self, side: OrderSide, pair: CurrencyPair, amount: Decimal
    ) -> str:
        """Place a market order and return its exchange identifier."""
        raw = await self._client.create_order(
            symbol=pair.symbol,
            side=_from_side(side),
            order_type="market",
            amount=float(amount),
        )
        return str(raw["id"])

    async def cancel_order(self, order_id: str, pair: CurrencyPair) -> bool:
        try:
            await self._client.cancel_order(order_id, pair.symbol)
            return True
        except Exception:
            logger.exception("Failed to cancel order %s on %s", order_id, pair)
            return False
