"""Sample strategy: keeps one rule-protected position open per requested pair."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from tradeflux.data.models import Account, CurrencyPair, PositionRules, Ticker, to_decimal
from tradeflux.strategy.base import GenericStrategy
from tradeflux.strategy.registry import register_strategy

if TYPE_CHECKING:
    from tradeflux.config.settings import Settings
    from tradeflux.core.position import Position

logger = logging.getLogger(__name__)


@register_strategy("simple")
class SimpleStrategy(GenericStrategy):
    """Opens a position as soon as none is active on a pair; the stop-gain and
    stop-loss rules close it.

    Parameters
    ----------
    currency_pairs:
        Pairs to trade.
    account_name:
        Name of the trade account.
    amount:
        Base-currency amount of each position.
    rules:
        Rules attached to every position.
    """

    def __init__(
        self,
        currency_pairs: Iterable[CurrencyPair],
        account_name: str,
        amount: Decimal,
        rules: PositionRules | None = None,
    ) -> None:
        super().__init__()
        self._currency_pairs = set(currency_pairs)
        self._account_name = account_name
        self._amount = amount
        self._rules = rules or PositionRules()

    @classmethod
    def from_settings(cls, settings: "Settings") -> "SimpleStrategy":
        s = settings.strategy
        return cls(
            currency_pairs=[CurrencyPair.from_symbol(p) for p in s.currency_pairs],
            account_name=s.account_name,
            amount=to_decimal(s.amount),
            rules=PositionRules(
                stop_gain_percentage=s.stop_gain_percentage,
                stop_loss_percentage=s.stop_loss_percentage,
            ),
        )

    def get_requested_currency_pairs(self) -> set[CurrencyPair]:
        return set(self._currency_pairs)

    def get_trade_account(self, accounts: Iterable[Account]) -> Account | None:
        for account in accounts:
            if account.name == self._account_name:
                return account
        return None

    async def on_ticker_update(self, ticker: Ticker) -> None:
        pair = ticker.currency_pair
        if pair not in self._currency_pairs or self.active_positions(pair):
            return
        if not self.can_buy(pair, self._amount):
            logger.debug("Not enough %s to open a position on %s", pair.quote, pair)
            return

        result = await self.create_position(pair, self._amount, self._rules)
        if result.successful:
            logger.info("Opened position %d on %s", result.position_id, pair)
        else:
            logger.warning("Could not open position on %s: %s", pair, result.error_message)

    async def on_position_update(self, position: "Position") -> None:
        logger.info("%s", position)
