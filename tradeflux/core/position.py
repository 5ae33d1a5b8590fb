"""Position aggregate — the lifecycle state machine driven by trades and tickers."""

from __future__ import annotations

import logging
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable

from tradeflux.config.constants import GAIN_SCALE, ONE_HUNDRED, PositionStatus
from tradeflux.core.errors import PositionStateError
from tradeflux.data.models import (
    Amount,
    CurrencyPair,
    Gain,
    PositionRules,
    Ticker,
    Trade,
)

logger = logging.getLogger(__name__)


def _format(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


class Position:
    """An intended buy-then-sell cycle on one currency pair.

    Trades are attributed only through the open and close order ids. The
    version counter moves on every accepted trade, every status change and
    every watermark update; it is what the position flux and the database
    backup compare.

    Parameters
    ----------
    position_id:
        Monotonic identifier assigned by the position service.
    currency_pair:
        Pair traded by the position.
    amount:
        Ordered amount of the base currency (for both the open and close order).
    open_order_id:
        Identifier of the BID order that opens the position.
    rules:
        Stop-gain / stop-loss configuration.
    """

    def __init__(
        self,
        position_id: int,
        currency_pair: CurrencyPair,
        amount: Decimal,
        open_order_id: str,
        rules: PositionRules | None = None,
    ) -> None:
        self.position_id = position_id
        self.currency_pair = currency_pair
        self.amount = amount
        self.open_order_id = open_order_id
        self.rules = rules or PositionRules()
        self.status = PositionStatus.OPENING
        self.close_order_id: str | None = None
        self.trades: dict[str, Trade] = {}
        self.lowest_price: Decimal | None = None
        self.highest_price: Decimal | None = None
        self.last_calculated_gain: Gain | None = None
        self.version = 1

    @classmethod
    def restore(
        cls,
        position_id: int,
        status: PositionStatus,
        currency_pair: CurrencyPair,
        amount: Decimal,
        rules: PositionRules | None,
        open_order_id: str,
        close_order_id: str | None,
        trades: Iterable[Trade] = (),
        lowest_price: Decimal | None = None,
        highest_price: Decimal | None = None,
        version: int = 0,
    ) -> "Position":
        """Rebuild a position from persisted fields, trusting every one of them."""
        position = cls(position_id, currency_pair, amount, open_order_id, rules)
        position.status = status
        position.close_order_id = close_order_id
        for trade in trades:
            position.trades[trade.trade_id] = trade
        position.lowest_price = lowest_price
        position.highest_price = highest_price
        position.version = version
        return position

    # -- Trades ---------------------------------------------------------------

    @property
    def open_trades(self) -> list[Trade]:
        return [t for t in self.trades.values() if t.order_id == self.open_order_id]

    @property
    def close_trades(self) -> list[Trade]:
        if self.close_order_id is None:
            return []
        return [t for t in self.trades.values() if t.order_id == self.close_order_id]

    def get_trade(self, trade_id: str | None) -> Trade | None:
        if trade_id is None:
            return None
        return self.trades.get(trade_id)

    def trade_update(self, trade: Trade) -> bool:
        """Attribute *trade* to this position if it fills the open or close order.

        Returns ``True`` when the trade was accepted (and the version bumped).
        """
        if self.status == PositionStatus.OPENING and trade.order_id == self.open_order_id:
            self.trades[trade.trade_id] = trade
            if self._filled(self.open_trades) == self.amount:
                self.status = PositionStatus.OPENED
                logger.info("Position %d opened", self.position_id)
            self.version += 1
            return True

        if (
            self.status == PositionStatus.CLOSING
            and self.close_order_id is not None
            and trade.order_id == self.close_order_id
        ):
            self.trades[trade.trade_id] = trade
            if self._filled(self.close_trades) == self.amount:
                self.status = PositionStatus.CLOSED
                logger.info("Position %d closed", self.position_id)
            self.version += 1
            return True

        return False

    @staticmethod
    def _filled(trades: list[Trade]) -> Decimal:
        return sum((t.amount for t in trades), Decimal(0))

    def ensure_closable(self) -> None:
        """Raise ``PositionStateError`` unless a close can be requested now."""
        if self.status != PositionStatus.OPENED:
            raise PositionStateError(
                f"Impossible to set close order id for position {self.position_id} "
                f"(status {self.status.value})"
            )

    def request_close(self, close_order_id: str) -> None:
        """Record the close order; only allowed once the position is OPENED."""
        self.ensure_closable()
        self.status = PositionStatus.CLOSING
        self.close_order_id = close_order_id
        self.version += 1

    # -- Rules ----------------------------------------------------------------

    def should_close(self, ticker: Ticker) -> bool:
        """Evaluate the stop rules against *ticker* and track price extremes.

        Returns ``True`` when a rule is triggered; the caller places the close order.
        """
        if self.close_order_id is not None or ticker.currency_pair != self.currency_pair:
            return False

        gain = self.calculate_gain_from_price(ticker.last)
        if gain is None:
            return False
        self.last_calculated_gain = gain

        if (
            self.rules.is_stop_gain_set
            and gain.percentage >= self.rules.stop_gain_percentage
        ) or (
            self.rules.is_stop_loss_set
            and gain.percentage <= -self.rules.stop_loss_percentage
        ):
            self.version += 1
            return True

        # Ties count as a new extreme; the version only moves when the price does.
        highest_gain = self.calculate_gain_from_price(self.highest_price)
        if highest_gain is None or highest_gain.percentage <= gain.percentage:
            self._set_highest(ticker.last)

        lowest_gain = self.calculate_gain_from_price(self.lowest_price)
        if lowest_gain is None or lowest_gain.percentage >= gain.percentage:
            self._set_lowest(ticker.last)

        return False

    def _set_highest(self, price: Decimal) -> None:
        if self.highest_price != price:
            self.highest_price = price
            self.version += 1

    def _set_lowest(self, price: Decimal) -> None:
        if self.lowest_price != price:
            self.lowest_price = price
            self.version += 1

    # -- Gains ----------------------------------------------------------------

    def calculate_gain_from_price(self, price: Decimal | None) -> Gain | None:
        """Instantaneous gain if the position were sold at *price*.

        The entry price is the price of the first open trade. The percentage is
        floored at four decimal digits of the ratio before scaling to percent.
        """
        if price is None or self.status not in (PositionStatus.OPENED, PositionStatus.CLOSED):
            return None
        open_trades = self.open_trades
        if not open_trades:
            return None

        # Bought 10 ETH at 5, price now 6: (6 - 5) / 5 = 20 %.
        open_trade = open_trades[0]
        entry = open_trade.price
        if not entry:
            return None
        ratio = ((price - entry) / entry).quantize(GAIN_SCALE, rounding=ROUND_FLOOR)
        quote = self.currency_pair.quote
        return Gain(
            percentage=float(ratio * ONE_HUNDRED),
            amount=Amount(open_trade.amount * price - open_trade.amount * entry, quote),
            fees=Amount.zero(quote),
        )

    @property
    def gain(self) -> Gain:
        """Realized gain; the zero gain until the position is CLOSED."""
        quote = self.currency_pair.quote
        if self.status != PositionStatus.CLOSED:
            return Gain.zero(quote)

        bought = sum((t.total for t in self.open_trades), Decimal(0))
        sold = sum((t.total for t in self.close_trades), Decimal(0))
        percentage = float((sold - bought) / bought * ONE_HUNDRED) if bought else 0.0
        return Gain(
            percentage=percentage,
            amount=Amount(sold - bought, quote),
            fees=self.total_fees,
        )

    @property
    def total_fees(self) -> Amount:
        """Fees of every attributed trade, in the quote currency.

        Fees charged in the base currency are valued at the price of their
        trade. A fee in any other currency cannot be priced and is left out.
        """
        quote = self.currency_pair.quote
        total = Amount.zero(quote)
        for trade in self.trades.values():
            if trade.fee.currency == quote:
                total = total + trade.fee
            elif trade.fee.currency == self.currency_pair.base:
                total = total + Amount(trade.fee.value * trade.price, quote)
            elif trade.fee.value:
                logger.warning(
                    "Fee of trade %s paid in %s is not counted in position %d",
                    trade.trade_id,
                    trade.fee.currency,
                    self.position_id,
                )
        return total

    @property
    def highest_calculated_gain(self) -> Gain | None:
        return self.calculate_gain_from_price(self.highest_price)

    @property
    def lowest_calculated_gain(self) -> Gain | None:
        return self.calculate_gain_from_price(self.lowest_price)

    # -- Dunder ---------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Position):
            return NotImplemented
        return self.position_id == other.position_id and self.status == other.status

    def __hash__(self) -> int:
        return hash(self.position_id)

    def __repr__(self) -> str:
        return (
            f"Position(id={self.position_id}, pair={self.currency_pair}, "
            f"status={self.status.value}, version={self.version})"
        )

    def __str__(self) -> str:
        head = f"Position n°{self.position_id} ({self.rules.describe()})"
        if self.status == PositionStatus.OPENING:
            return f"{head} - Opening - Waiting for the trade of order {self.open_order_id}"
        if self.status == PositionStatus.OPENED:
            text = f"{head} on {self.currency_pair} - Opened"
            if self.last_calculated_gain is not None:
                text += (
                    " - Last gain calculated "
                    f"{_format(self.last_calculated_gain.percentage)} %"
                )
            return text
        if self.status == PositionStatus.CLOSING:
            return (
                f"{head} on {self.currency_pair} - Closing - "
                f"Waiting for the trade of order {self.close_order_id}"
            )
        return f"{head} on {self.currency_pair} - Closed - Gain : {_format(self.gain.percentage)} %"
