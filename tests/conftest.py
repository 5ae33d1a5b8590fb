"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from tradeflux.config.constants import OrderSide
from tradeflux.config.settings import Settings, load_settings
from tradeflux.data.models import Amount, CurrencyPair, Ticker, Trade

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

ETH_BTC = CurrencyPair("ETH", "BTC")


def make_trade(
    trade_id: str,
    order_id: str,
    amount: str | Decimal = "10",
    price: str | Decimal = "5",
    side: OrderSide = OrderSide.BID,
    pair: CurrencyPair = ETH_BTC,
    fee: Amount | None = None,
    minute: int = 0,
) -> Trade:
    return Trade(
        trade_id=trade_id,
        order_id=order_id,
        side=side,
        currency_pair=pair,
        amount=Decimal(amount),
        price=Decimal(price),
        fee=fee if fee is not None else Amount(Decimal("0.01"), pair.quote),
        timestamp=T0 + timedelta(minutes=minute),
    )


def make_ticker(
    last: str | Decimal,
    pair: CurrencyPair = ETH_BTC,
    minute: int = 0,
) -> Ticker:
    return Ticker(currency_pair=pair, last=Decimal(last), timestamp=T0 + timedelta(minutes=minute))


@pytest.fixture
def settings() -> Settings:
    """Load default settings for testing."""
    return load_settings("default")


@pytest.fixture
def pair() -> CurrencyPair:
    return ETH_BTC


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Temporary database path for test isolation."""
    return str(tmp_path / "test_tradeflux.db")
