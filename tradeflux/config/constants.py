"""Enums and constants used throughout the trading bot."""

from decimal import Decimal
from enum import Enum


class OrderSide(str, Enum):
    """Order direction (BID buys the base currency, ASK sells it)."""

    BID = "BID"
    ASK = "ASK"


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    PENDING_NEW = "PENDING_NEW"
    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    UNKNOWN = "UNKNOWN"


TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.FILLED, OrderStatus.CANCELED, OrderStatus.REJECTED, OrderStatus.EXPIRED}
)


class PositionStatus(str, Enum):
    """Lifecycle state of a position.

    OPENING → OPENED → CLOSING → CLOSED, no skipping and no way out of CLOSED.
    """

    OPENING = "OPENING"
    OPENED = "OPENED"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


class FluxKind(str, Enum):
    """Entity kinds published by a flux, in wiring order."""

    ACCOUNT = "account"
    POSITION = "position"
    ORDER = "order"
    TRADE = "trade"
    TICKER = "ticker"


# Gain percentages are floored at this many decimal digits
GAIN_SCALE = Decimal("0.0001")
ONE_HUNDRED = Decimal(100)
