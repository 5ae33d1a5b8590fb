"""Dataclass models representing the domain objects published by the fluxes."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from tradeflux.config.constants import TERMINAL_ORDER_STATUSES, OrderSide, OrderStatus
from tradeflux.core.errors import CurrencyMismatchError


def to_decimal(value: Any) -> Decimal | None:
    """Convert an exchange number (float, int, str) to ``Decimal`` without float noise."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class CurrencyPair:
    """Ordered (base, quote) pair, e.g. ETH/BTC."""

    base: str
    quote: str

    @classmethod
    def from_symbol(cls, symbol: str) -> "CurrencyPair":
        """Parse a ccxt symbol such as ``"ETH/BTC"`` or ``"BTC/USDT:USDT"``."""
        pair = symbol.split(":", 1)[0]
        base, sep, quote = pair.partition("/")
        if not sep or not base or not quote:
            raise ValueError(f"Invalid currency pair symbol: {symbol!r}")
        return cls(base.upper(), quote.upper())

    @property
    def symbol(self) -> str:
        return f"{self.base}/{self.quote}"

    def __str__(self) -> str:
        return self.symbol


@functools.total_ordering
@dataclass(frozen=True)
class Amount:
    """A decimal value tagged with its currency."""

    value: Decimal
    currency: str

    @classmethod
    def zero(cls, currency: str) -> "Amount":
        return cls(Decimal(0), currency)

    def _check(self, other: "Amount") -> None:
        if not isinstance(other, Amount):
            raise TypeError(f"Expected Amount, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatchError(
                f"Cannot combine {self.currency} and {other.currency} amounts"
            )

    def __add__(self, other: "Amount") -> "Amount":
        self._check(other)
        return Amount(self.value + other.value, self.currency)

    def __sub__(self, other: "Amount") -> "Amount":
        self._check(other)
        return Amount(self.value - other.value, self.currency)

    def __mul__(self, factor: Decimal | int) -> "Amount":
        if isinstance(factor, Amount):
            raise TypeError("Cannot multiply two amounts")
        return Amount(self.value * factor, self.currency)

    __rmul__ = __mul__

    def __neg__(self) -> "Amount":
        return Amount(-self.value, self.currency)

    def __lt__(self, other: "Amount") -> bool:
        self._check(other)
        return self.value < other.value

    def __str__(self) -> str:
        return f"{self.value} {self.currency}"


@dataclass(frozen=True)
class Balance:
    """Holdings of one currency in an account."""

    currency: str
    total: Decimal
    available: Decimal


@dataclass(frozen=True)
class Account:
    """An exchange account and its balances."""

    account_id: str
    name: str
    balances: tuple[Balance, ...] = ()

    def balance(self, currency: str) -> Balance | None:
        for b in self.balances:
            if b.currency == currency:
                return b
        return None


@dataclass(frozen=True)
class User:
    """The exchange user and the accounts it owns."""

    user_id: str
    accounts: dict[str, Account] = field(default_factory=dict)


@dataclass(frozen=True)
class Ticker:
    """Market snapshot for one currency pair."""

    currency_pair: CurrencyPair
    last: Decimal
    timestamp: datetime
    bid: Decimal | None = None
    ask: Decimal | None = None
    volume: Decimal | None = None


@dataclass(frozen=True)
class Order:
    """An order placed on the exchange."""

    order_id: str
    side: OrderSide
    currency_pair: CurrencyPair
    amount: Decimal
    status: OrderStatus
    timestamp: datetime
    filled_amount: Decimal = Decimal(0)
    average_price: Decimal | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES


@dataclass(frozen=True)
class Trade:
    """A fill of (part of) one order."""

    trade_id: str
    order_id: str
    side: OrderSide
    currency_pair: CurrencyPair
    amount: Decimal
    price: Decimal
    fee: Amount
    timestamp: datetime

    @property
    def total(self) -> Decimal:
        """Filled amount times price, in the quote currency."""
        return self.amount * self.price


@dataclass(frozen=True)
class PositionRules:
    """Optional stop-gain / stop-loss percentages of a position."""

    stop_gain_percentage: float | None = None
    stop_loss_percentage: float | None = None

    @property
    def is_stop_gain_set(self) -> bool:
        return self.stop_gain_percentage is not None

    @property
    def is_stop_loss_set(self) -> bool:
        return self.stop_loss_percentage is not None

    def describe(self) -> str:
        parts = []
        if self.is_stop_gain_set:
            parts.append(f"{self.stop_gain_percentage} % gain rule")
        if self.is_stop_loss_set:
            parts.append(f"{self.stop_loss_percentage} % loss rule")
        return " / ".join(parts) if parts else "no rules"


@dataclass(frozen=True)
class Gain:
    """Derived gain of a position; recomputed, never stored as truth."""

    percentage: float
    amount: Amount
    fees: Amount

    @classmethod
    def zero(cls, currency: str) -> "Gain":
        return cls(0.0, Amount.zero(currency), Amount.zero(currency))

    @property
    def is_zero(self) -> bool:
        return self.percentage == 0.0 and self.amount.value == 0 and self.fees.value == 0


@dataclass(frozen=True)
class OperationResult:
    """Outcome of an order placement or position request."""

    successful: bool
    order_id: str | None = None
    position_id: int | None = None
    error_message: str = ""

    @classmethod
    def failure(cls, message: str) -> "OperationResult":
        return cls(successful=False, error_message=message)
