"""Integration tests for the CLI commands."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from rich.console import Console
from typer.testing import CliRunner

from tradeflux.config.constants import OrderSide
from tradeflux.core.errors import ConfigurationError
from tradeflux.core.position import Position
from tradeflux.data.database import Database
from tradeflux.data.migrations import run_migrations
from tradeflux.data.repository import Repository
from tradeflux.main import app
from tests.conftest import ETH_BTC, make_trade

runner = CliRunner()


def _settings(db_path: str = "unused.db") -> MagicMock:
    mock_settings = MagicMock()
    mock_settings.database.path = db_path
    mock_settings.exchange.name = "binance"
    mock_settings.exchange.dry = True
    mock_settings.strategy.currency_pairs = ["ETH/BTC"]
    mock_settings.logging.level = "INFO"
    mock_settings.logging.format = None
    return mock_settings


async def _seed(db_path: str) -> None:
    await run_migrations(db_path)
    async with Database(db_path) as db:
        repo = Repository(db)
        buy = make_trade("T1", "OPEN_1", amount="10", price="5")
        sell = make_trade("T2", "CLOSE_1", amount="10", price="6", side=OrderSide.ASK, minute=1)
        position = Position(1, ETH_BTC, Decimal("10"), "OPEN_1")
        position.trade_update(buy)
        position.request_close("CLOSE_1")
        position.trade_update(sell)
        await repo.save_trade(buy)
        await repo.save_trade(sell)
        await repo.save_position(position)


class TestMigrateCommand:
    def test_migrate_runs(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        with patch("tradeflux.config.settings.load_settings") as mock_load:
            mock_load.return_value = _settings(db_path)

            with patch(
                "tradeflux.data.migrations.run_migrations", new_callable=AsyncMock
            ) as mock_mig:
                result = runner.invoke(app, ["migrate", "--profile", "default"])
                assert result.exit_code == 0
                assert "Migrations complete" in result.output
                mock_mig.assert_called_once_with(db_path)


class TestRunCommand:
    def test_run_starts_engine(self):
        with patch("tradeflux.config.settings.load_settings") as mock_load:
            mock_load.return_value = _settings()

            with patch("asyncio.run") as mock_run:
                result = runner.invoke(app, ["run", "--profile", "dry"])
                assert result.exit_code == 0
                assert "Starting trading bot" in result.output
                assert "Mode: dry" in result.output
                mock_run.assert_called_once()

    def test_live_flag_overrides_profile(self):
        with patch("tradeflux.config.settings.load_settings") as mock_load:
            mock_settings = _settings()
            mock_load.return_value = mock_settings

            with patch("asyncio.run"):
                result = runner.invoke(app, ["run", "--live"])
                assert result.exit_code == 0
                assert mock_settings.exchange.dry is False
                assert "Mode: live" in result.output

    def test_configuration_error_exits_with_message(self):
        with patch("tradeflux.config.settings.load_settings") as mock_load:
            mock_load.return_value = _settings()

            error = ConfigurationError("No strategy found", "You must register one strategy")
            with patch("asyncio.run", side_effect=error):
                result = runner.invoke(app, ["run"])
                assert result.exit_code == 1
                assert "No strategy found" in result.output
                assert "You must register one strategy" in result.output


class TestListingCommands:
    def test_positions_table(self, tmp_path):
        db_path = str(tmp_path / "listing.db")
        asyncio.run(_seed(db_path))
        with patch("tradeflux.config.settings.load_settings") as mock_load, patch(
            "tradeflux.main.console", Console(width=200)
        ):
            mock_load.return_value = _settings(db_path)
            result = runner.invoke(app, ["positions"])
        assert result.exit_code == 0
        assert "ETH/BTC" in result.output
        assert "CLOSED" in result.output
        assert "20.00 % (10 BTC)" in result.output

    def test_trades_table(self, tmp_path):
        db_path = str(tmp_path / "listing.db")
        asyncio.run(_seed(db_path))
        with patch("tradeflux.config.settings.load_settings") as mock_load, patch(
            "tradeflux.main.console", Console(width=200)
        ):
            mock_load.return_value = _settings(db_path)
            result = runner.invoke(app, ["trades"])
        assert result.exit_code == 0
        assert "T1" in result.output
        assert "T2" in result.output

    def test_empty_database(self, tmp_path):
        with patch("tradeflux.config.settings.load_settings") as mock_load:
            mock_load.return_value = _settings(str(tmp_path / "empty.db"))
            result = runner.invoke(app, ["positions"])
        assert result.exit_code == 0
        assert "No position saved yet" in result.output
