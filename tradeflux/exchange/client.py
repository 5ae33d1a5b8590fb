"""Async ccxt wrapper for exchange connectivity."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import ccxt.async_support as ccxt_async

if TYPE_CHECKING:
    from tradeflux.config.settings import ExchangeSettings

logger = logging.getLogger(__name__)


class ExchangeClient:
    """Async wrapper around any ccxt exchange.

    Parameters
    ----------
    settings:
        Exchange configuration (name, API keys, sandbox flag, rate limit).
    """

    def __init__(self, settings: "ExchangeSettings") -> None:
        self._settings = settings
        self._exchange: ccxt_async.Exchange | None = None

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Return the underlying ccxt exchange instance."""
        if self._exchange is None:
            raise RuntimeError("Client not connected. Call connect() first.")
        return self._exchange

    @property
    def connected(self) -> bool:
        return self._exchange is not None

    async def connect(self) -> None:
        """Initialize the ccxt async exchange instance and load its markets."""
        import aiohttp

        try:
            exchange_class = getattr(ccxt_async, self._settings.name)
        except AttributeError as e:
            raise ValueError(f"Unknown ccxt exchange: {self._settings.name}") from e

        # Use threaded resolver — aiohttp's AsyncResolver (c-ares) can fail
        # on some configurations even when system DNS works fine.
        session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(resolver=aiohttp.ThreadedResolver())
        )
        self._exchange = exchange_class(
            {
                "apiKey": self._settings.api_key,
                "secret": self._settings.api_secret,
                "enableRateLimit": True,
                "rateLimit": self._settings.rate_limit,
                "session": session,
            }
        )
        if self._settings.sandbox:
            self._exchange.set_sandbox_mode(True)
        await self._exchange.load_markets()
        logger.info(
            "Connected to %s %s (%d markets loaded)",
            self._settings.name,
            "sandbox" if self._settings.sandbox else "production",
            len(self._exchange.markets),
        )

    async def disconnect(self) -> None:
        """Close the ccxt connection."""
        if self._exchange is not None:
            await self._exchange.close()
            self._exchange = None
            logger.info("Disconnected from %s", self._settings.name)

    def market_symbols(self) -> list[str]:
        """Symbols of every market loaded at connection time."""
        return list(self.exchange.markets)

    def supports(self, capability: str) -> bool:
        return bool(self.exchange.has.get(capability))

    async def fetch_balance(self, account_type: str | None = None) -> dict[str, Any]:
        """Fetch balances, optionally for one account type (spot, margin, ...)."""
        params = {"type": account_type} if account_type else {}
        return await self.exchange.fetch_balance(params)

    async def fetch_ticker(self, symbol: str) -> dict[str, Any]:
        """Fetch current ticker for a symbol."""
        return await self.exchange.fetch_ticker(symbol)

    async def fetch_open_orders(self, symbol: str) -> list[dict[str, Any]]:
        """Fetch orders still open for a symbol."""
        return await self.exchange.fetch_open_orders(symbol)

    async def fetch_orders(self, symbol: str, limit: int = 100) -> list[dict[str, Any]]:
        """Fetch recent orders (open and closed) for a symbol."""
        return await self.exchange.fetch_orders(symbol, limit=limit)

    async def fetch_my_trades(self, symbol: str, limit: int = 100) -> list[dict[str, Any]]:
        """Fetch the user's recent trades for a symbol."""
        return await self.exchange.fetch_my_trades(symbol, limit=limit)

    async def create_order(
        self,
        symbol: str,
        side: str,
        order_type: str,
        amount: float,
        price: float | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Place an order."""
        result = await self.exchange.create_order(
            symbol, order_type, side, amount, price, params or {}
        )
        logger.info(
            "Order placed: %s %s %s %s @ %s → id=%s",
            symbol,
            side,
            order_type,
            amount,
            price or "market",
            result.get("id"),
        )
        return result

    async def cancel_order(self, order_id: str, symbol: str) -> dict[str, Any]:
        """Cancel an open order."""
        result = await self.exchange.cancel_order(order_id, symbol)
        logger.info("Order cancelled: %s on %s", order_id, symbol)
        return result

    async def __aenter__(self) -> "ExchangeClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.disconnect()
