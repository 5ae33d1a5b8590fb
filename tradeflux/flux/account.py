"""Account flux — publishes accounts whose balances changed."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tradeflux.config.constants import FluxKind
from tradeflux.core.errors import PollFetchError
from tradeflux.data.models import Account
from tradeflux.flux.base import BaseFlux

if TYPE_CHECKING:
    from tradeflux.core.user_service import UserService


class AccountFlux(BaseFlux[Account]):
    kind = FluxKind.ACCOUNT

    def __init__(self, user_service: "UserService", fetch_timeout: float = 30.0) -> None:
        super().__init__(fetch_timeout)
        self._user_service = user_service

    async def fetch(self) -> list[Account]:
        user = await self._user_service.get_user()
        if user is None:
            raise PollFetchError("User information unavailable")
        return list(user.accounts.values())

    def key(self, item: Account) -> str:
        return item.account_id

    def order(self, items: list[Account]) -> list[Account]:
        return sorted(items, key=lambda a: a.account_id)
