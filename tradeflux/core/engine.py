"""Trading engine — builds every component from settings and runs the fluxes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from tradeflux.core.coordinator import StrategyCoordinator
from tradeflux.core.position_service import PositionService
from tradeflux.core.trade_service import TradeService
from tradeflux.core.user_service import UserService
from tradeflux.data.database import Database
from tradeflux.data.migrations import run_migrations
from tradeflux.data.repository import Repository
from tradeflux.exchange.client import ExchangeClient
from tradeflux.exchange.connector import ExchangeConnector
from tradeflux.exchange.simulator import DryExchange
from tradeflux.flux.account import AccountFlux
from tradeflux.flux.order import OrderFlux
from tradeflux.flux.position import PositionFlux
from tradeflux.flux.ticker import TickerFlux
from tradeflux.flux.trade import TradeFlux
from tradeflux.strategy.registry import StrategyRegistry, default_registry

if TYPE_CHECKING:
    from tradeflux.config.settings import Settings
    from tradeflux.strategy.base import BaseStrategy

logger = logging.getLogger(__name__)


class TradingEngine:
    """Owns the component graph.

    Data flow::

        exchange → connector (or dry simulator) → account/order/trade/ticker flux
        → strategy, position service, backups
        position service → position flux → strategy, position backup

    Parameters
    ----------
    settings:
        Full application settings.
    strategies:
        Strategies to run; defaults to instantiating every registered one.
    registry:
        Registry used when *strategies* is not given.
    """

    def __init__(
        self,
        settings: "Settings",
        strategies: Sequence["BaseStrategy"] | None = None,
        registry: StrategyRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._strategies = strategies
        self._registry = registry if registry is not None else default_registry
        self._running = False

        # Components — initialized in _initialize_components
        self._db: Database | None = None
        self._repo: Repository | None = None
        self._client: ExchangeClient | None = None
        self._connector: ExchangeConnector | DryExchange | None = None
        self._simulator: DryExchange | None = None
        self._trade_service: TradeService | None = None
        self._position_service: PositionService | None = None
        self._coordinator: StrategyCoordinator | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def coordinator(self) -> StrategyCoordinator | None:
        return self._coordinator

    async def start(self) -> None:
        """Initialize all components, restore state and start the pollers.

        A ``ConfigurationError`` aborts startup before any flux polls.
        """
        logger.info("Starting trading engine...")
        try:
            await self._initialize_components()
            await self._coordinator.configure()
        except Exception:
            await self._shutdown_components()
            raise
        self._coordinator.start(self._settings.flux)
        self._running = True
        logger.info("Trading engine started")

    async def stop(self) -> None:
        """Stop the pollers, then release the exchange and the database."""
        logger.info("Stopping trading engine...")
        self._running = False
        if self._coordinator is not None:
            await self._coordinator.stop()
        await self._shutdown_components()
        logger.info("Trading engine stopped")

    async def _initialize_components(self) -> None:
        """Set up database, exchange connector, services and fluxes."""
        # Database
        db_path = self._settings.database.path
        await run_migrations(db_path)
        self._db = Database(db_path)
        await self._db.connect()
        self._repo = Repository(self._db)

        # Exchange
        exchange = self._settings.exchange
        self._client = ExchangeClient(exchange)
        await self._client.connect()
        live = ExchangeConnector(
            self._client,
            account_types=exchange.account_types,
            trade_history_limit=self._settings.flux.trade_history_limit,
        )
        if exchange.dry:
            self._simulator = DryExchange(self._settings.dry, market=live)
            self._connector = self._simulator
            logger.info("Dry mode: orders are simulated")
        else:
            self._connector = live

        # Services
        user_service = UserService(self._connector)
        self._trade_service = TradeService(self._connector, self._repo)
        self._position_service = PositionService(self._trade_service, self._repo)

        # Fluxes
        timeout = self._settings.flux.fetch_timeout
        strategies = (
            list(self._strategies)
            if self._strategies is not None
            else self._registry.create_all(self._settings)
        )
        self._coordinator = StrategyCoordinator(
            strategies=strategies,
            user_service=user_service,
            trade_service=self._trade_service,
            position_service=self._position_service,
            account_flux=AccountFlux(user_service, timeout),
            position_flux=PositionFlux(self._position_service, timeout),
            order_flux=OrderFlux(self._connector, timeout),
            trade_flux=TradeFlux(self._connector, timeout),
            ticker_flux=TickerFlux(self._connector, timeout),
            repository=self._repo,
            simulator=self._simulator,
        )
        logger.info("All components initialized")

    async def _shutdown_components(self) -> None:
        """Clean up all resources."""
        if self._client is not None:
            await self._client.disconnect()
            self._client = None

        if self._db is not None:
            await self._db.disconnect()
            self._db = None

        logger.info("All components shut down")
