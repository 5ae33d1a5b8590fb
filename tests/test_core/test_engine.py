"""Tests for the trading engine."""

from __future__ import annotations

from typing import Iterable
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tradeflux.config.settings import Settings
from tradeflux.core.engine import TradingEngine
from tradeflux.core.errors import ConfigurationError
from tradeflux.data.models import Account, CurrencyPair
from tradeflux.exchange.simulator import DryExchange
from tradeflux.strategy.base import GenericStrategy
from tradeflux.strategy.registry import StrategyRegistry
from tests.conftest import ETH_BTC


class IdleStrategy(GenericStrategy):
    def get_requested_currency_pairs(self) -> set[CurrencyPair]:
        return {ETH_BTC}

    def get_trade_account(self, accounts: Iterable[Account]) -> Account | None:
        return next(iter(accounts), None)


def _make_settings(db_path: str, dry: bool = True) -> Settings:
    """Create minimal settings for engine tests."""
    settings = Settings()
    settings.database.path = db_path
    settings.exchange.dry = dry
    for name in ("account", "position", "order", "trade", "ticker"):
        setattr(settings.flux, f"{name}_interval", 60.0)
    return settings


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.connect = AsyncMock()
    client.disconnect = AsyncMock()
    client.market_symbols.return_value = ["ETH/BTC"]
    client.supports.return_value = True
    client.fetch_balance = AsyncMock(return_value={"total": {"BTC": 1.0}, "free": {"BTC": 1.0}})
    client.fetch_ticker = AsyncMock(return_value={"last": 0.05, "timestamp": 1704067200000})
    client.fetch_orders = AsyncMock(return_value=[])
    client.fetch_my_trades = AsyncMock(return_value=[])
    return client


class TestTradingEngineInit:
    def test_creates_with_settings(self, db_path):
        engine = TradingEngine(_make_settings(db_path))
        assert engine.running is False
        assert engine.coordinator is None

    def test_components_initially_none(self, db_path):
        engine = TradingEngine(_make_settings(db_path))
        assert engine._db is None
        assert engine._client is None
        assert engine._simulator is None


class TestTradingEngineStartStop:
    @pytest.mark.asyncio
    async def test_dry_start_and_stop(self, db_path, mock_client):
        with patch("tradeflux.core.engine.ExchangeClient", return_value=mock_client):
            engine = TradingEngine(_make_settings(db_path), strategies=[IdleStrategy()])
            await engine.start()
            try:
                assert engine.running
                assert isinstance(engine._simulator, DryExchange)
                assert engine.coordinator.strategy.trade_service is engine._trade_service
                assert all(f.running for f in engine.coordinator.fluxes)
                # strategy, position engine, dry simulator
                assert engine.coordinator.fluxes[-1].subscriber_count == 3
            finally:
                await engine.stop()

        assert not engine.running
        assert not any(f.running for f in engine.coordinator.fluxes)
        mock_client.disconnect.assert_awaited_once()
        assert engine._db is None

    @pytest.mark.asyncio
    async def test_live_mode_has_no_simulator(self, db_path, mock_client):
        with patch("tradeflux.core.engine.ExchangeClient", return_value=mock_client):
            engine = TradingEngine(
                _make_settings(db_path, dry=False), strategies=[IdleStrategy()]
            )
            await engine.start()
            try:
                assert engine._simulator is None
                assert engine.coordinator.fluxes[-1].subscriber_count == 2
            finally:
                await engine.stop()

    @pytest.mark.asyncio
    async def test_configuration_error_aborts_startup(self, db_path, mock_client):
        with patch("tradeflux.core.engine.ExchangeClient", return_value=mock_client):
            engine = TradingEngine(_make_settings(db_path), strategies=[])
            with pytest.raises(ConfigurationError):
                await engine.start()

        assert not engine.running
        assert not any(f.running for f in engine.coordinator.fluxes)
        mock_client.disconnect.assert_awaited_once()
        assert engine._db is None

    @pytest.mark.asyncio
    async def test_strategies_come_from_registry(self, db_path, mock_client):
        registry = StrategyRegistry()
        registry.register("idle", lambda settings: IdleStrategy())
        with patch("tradeflux.core.engine.ExchangeClient", return_value=mock_client):
            engine = TradingEngine(_make_settings(db_path), registry=registry)
            await engine.start()
            try:
                assert engine.coordinator.strategy.name == "idle"
            finally:
                await engine.stop()
