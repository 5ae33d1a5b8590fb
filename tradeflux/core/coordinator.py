"""Strategy coordinator — validates the strategy, restores state and wires the fluxes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from tradeflux.core.errors import ConfigurationError

if TYPE_CHECKING:
    from tradeflux.config.settings import FluxSettings
    from tradeflux.core.position_service import PositionService
    from tradeflux.core.trade_service import TradeService
    from tradeflux.core.user_service import UserService
    from tradeflux.data.repository import Repository
    from tradeflux.exchange.simulator import DryExchange
    from tradeflux.flux.account import AccountFlux
    from tradeflux.flux.order import OrderFlux
    from tradeflux.flux.position import PositionFlux
    from tradeflux.flux.ticker import TickerFlux
    from tradeflux.flux.trade import TradeFlux
    from tradeflux.strategy.base import BaseStrategy

logger = logging.getLogger(__name__)


class StrategyCoordinator:
    """Connects one strategy to the fluxes and services.

    Subscriptions are wired, and pollers started, in dependency order:
    account → position → order → trade → ticker. Within a flux the strategy is
    always served first, then the position engine, then the backups.

    Parameters
    ----------
    strategies:
        Registered strategies; exactly one is required.
    simulator:
        Dry-mode execution collaborator fed with tickers, or ``None`` when live.
    """

    def __init__(
        self,
        strategies: Sequence["BaseStrategy"],
        user_service: "UserService",
        trade_service: "TradeService",
        position_service: "PositionService",
        account_flux: "AccountFlux",
        position_flux: "PositionFlux",
        order_flux: "OrderFlux",
        trade_flux: "TradeFlux",
        ticker_flux: "TickerFlux",
        repository: "Repository | None" = None,
        simulator: "DryExchange | None" = None,
    ) -> None:
        self._strategies = list(strategies)
        self._user_service = user_service
        self._trade_service = trade_service
        self._position_service = position_service
        self._account_flux = account_flux
        self._position_flux = position_flux
        self._order_flux = order_flux
        self._trade_flux = trade_flux
        self._ticker_flux = ticker_flux
        self._repo = repository
        self._simulator = simulator
        self._strategy: BaseStrategy | None = None

    @property
    def strategy(self) -> "BaseStrategy":
        if self._strategy is None:
            raise RuntimeError("Coordinator not configured. Call configure() first.")
        return self._strategy

    @property
    def fluxes(self) -> list:
        """Fluxes in wiring order."""
        return [
            self._account_flux,
            self._position_flux,
            self._order_flux,
            self._trade_flux,
            self._ticker_flux,
        ]

    async def configure(self) -> "BaseStrategy":
        """Validate, restore persisted state and wire every subscription."""
        strategy = self._single_strategy()
        await self._check_trade_account(strategy)

        logger.info("Running strategy '%s'", strategy.name)
        pairs = strategy.get_requested_currency_pairs()
        logger.info(
            "The strategy requires the following currency pair(s): %s",
            ", ".join(sorted(str(p) for p in pairs)),
        )

        strategy.set_trade_service(self._trade_service)
        strategy.set_position_service(self._position_service)
        await self._restore(strategy)
        self._wire(strategy)
        self._strategy = strategy
        return strategy

    def _single_strategy(self) -> "BaseStrategy":
        if not self._strategies:
            logger.error("No strategy found")
            raise ConfigurationError(
                "No strategy found", "You must register one strategy"
            )
        if len(self._strategies) > 1:
            logger.error("Several strategies found")
            for s in self._strategies:
                logger.error(" - %s", s.name)
            raise ConfigurationError(
                "Several strategies found", "Only one strategy can run at a time"
            )
        return self._strategies[0]

    async def _check_trade_account(self, strategy: "BaseStrategy") -> None:
        user = await self._user_service.get_user()
        if user is None:
            raise ConfigurationError(
                "Impossible to retrieve your user information",
                "Check the exchange credentials and the logs",
            )
        accounts = list(user.accounts.values())
        if strategy.get_trade_account(accounts) is None:
            names = ", ".join(a.name for a in accounts)
            raise ConfigurationError(
                "Your strategy specifies a trading account that doesn't exist",
                f"get_trade_account() returned nothing - Account list: {names}",
            )

    async def _restore(self, strategy: "BaseStrategy") -> None:
        """Replay trades, then positions; positions reference trades by id."""
        if self._repo is None:
            return

        logger.info("Restoring trades from database")
        trades_by_id = {}
        for trade in await self._repo.find_all_trades_ordered_by_timestamp_ascending():
            trades_by_id[trade.trade_id] = trade
            strategy.restore_trade(trade)
            self._trade_service.restore_trade(trade)
            self._trade_flux.restore_trade(trade)
            if self._simulator is not None:
                self._simulator.restore_trade(trade)
            logger.debug("Trade %s restored", trade.trade_id)
        logger.info("%d trade(s) restored", len(trades_by_id))

        logger.info("Restoring positions from database")
        count = 0
        for record in await self._repo.find_all_positions_ordered_for_restore():
            missing = [t for t in record.trade_ids if t not in trades_by_id]
            if missing:
                logger.warning(
                    "Position %d references unknown trade(s): %s", record.id, ", ".join(missing)
                )
            position = record.to_position(trades_by_id)
            self._position_service.restore_position(position)
            strategy.restore_position(position)
            self._position_flux.restore_position(position)
            if self._simulator is not None:
                self._simulator.restore_position(position)
            count += 1
            logger.info("Position %d restored: %s", position.position_id, position)
        logger.info("%d position(s) restored", count)

    def _wire(self, strategy: "BaseStrategy") -> None:
        self._account_flux.subscribe(strategy.account_update)

        self._position_flux.subscribe(strategy.position_update)
        self._position_flux.subscribe(self._position_service.backup_position)

        self._order_flux.subscribe(strategy.order_update)
        self._order_flux.subscribe(self._trade_service.order_update)

        self._trade_flux.subscribe(strategy.trade_update)
        self._trade_flux.subscribe(self._position_service.trade_update)
        self._trade_flux.subscribe(self._trade_service.backup_trade)

        pairs = strategy.get_requested_currency_pairs()
        for flux in (self._order_flux, self._trade_flux, self._ticker_flux):
            flux.update_requested_currency_pairs(pairs)
        self._ticker_flux.subscribe(strategy.ticker_update)
        self._ticker_flux.subscribe(self._position_service.ticker_update)
        if self._simulator is not None:
            self._ticker_flux.subscribe(self._simulator.ticker_update)

    def start(self, settings: "FluxSettings") -> None:
        """Start the pollers in wiring order."""
        intervals = [
            settings.account_interval,
            settings.position_interval,
            settings.order_interval,
            settings.trade_interval,
            settings.ticker_interval,
        ]
        for flux, interval in zip(self.fluxes, intervals):
            flux.start(interval)

    async def stop(self) -> None:
        """Stop the pollers in reverse order, letting in-flight deliveries finish."""
        for flux in reversed(self.fluxes):
            await flux.stop()
