"""User and account lookup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tradeflux.data.models import User

if TYPE_CHECKING:
    from tradeflux.exchange.connector import ExchangeConnector
    from tradeflux.exchange.simulator import DryExchange

logger = logging.getLogger(__name__)


class UserService:
    """Builds the :class:`User` and its accounts from the connector balances."""

    def __init__(
        self,
        connector: "ExchangeConnector | DryExchange",
        user_id: str = "default",
    ) -> None:
        self._connector = connector
        self._user_id = user_id

    async def get_user(self) -> User | None:
        """Return the user, or ``None`` when the exchange cannot be reached."""
        try:
            accounts = await self._connector.fetch_accounts()
        except Exception:
            logger.exception("Failed to retrieve user accounts")
            return None
        return User(
            user_id=self._user_id,
            accounts={account.account_id: account for account in accounts},
        )
