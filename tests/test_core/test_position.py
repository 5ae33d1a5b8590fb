"""Tests for the position state machine, stop rules and gains."""

from __future__ import annotations

from decimal import Decimal

import pytest

from tradeflux.config.constants import OrderSide, PositionStatus
from tradeflux.core.errors import PositionStateError
from tradeflux.core.position import Position
from tradeflux.data.models import Amount, CurrencyPair, PositionRules
from tests.conftest import ETH_BTC, make_ticker, make_trade


def _position(rules: PositionRules | None = None, amount: str = "10") -> Position:
    return Position(1, ETH_BTC, Decimal(amount), "OPEN_1", rules)


def _opened(rules: PositionRules | None = None) -> Position:
    position = _position(rules)
    position.trade_update(make_trade("T_OPEN", "OPEN_1", amount="10", price="5"))
    assert position.status == PositionStatus.OPENED
    return position


def _sell(trade_id: str, amount: str, price: str, minute: int = 10):
    return make_trade(
        trade_id, "CLOSE_1", amount=amount, price=price, side=OrderSide.ASK, minute=minute
    )


class TestLifecycle:
    def test_new_position_is_opening(self):
        position = _position()
        assert position.status == PositionStatus.OPENING
        assert position.version == 1
        assert position.close_order_id is None

    def test_single_full_fill_opens(self):
        position = _position()
        assert position.trade_update(make_trade("T1", "OPEN_1", amount="10"))
        assert position.status == PositionStatus.OPENED
        assert position.version == 2

    def test_partial_fills_open_only_when_complete(self):
        position = _position()
        assert position.trade_update(make_trade("T1", "OPEN_1", amount="6"))
        assert position.status == PositionStatus.OPENING
        assert position.version == 2

        assert position.trade_update(make_trade("T2", "OPEN_1", amount="4", minute=1))
        assert position.status == PositionStatus.OPENED
        assert position.version == 3
        assert [t.trade_id for t in position.open_trades] == ["T1", "T2"]

    def test_fill_must_match_exactly(self):
        position = _position()
        position.trade_update(make_trade("T1", "OPEN_1", amount="9.999"))
        assert position.status == PositionStatus.OPENING

    def test_unrelated_trade_is_ignored(self):
        position = _position()
        assert not position.trade_update(make_trade("T1", "OTHER", amount="10"))
        assert position.version == 1
        assert position.trades == {}

    def test_request_close_moves_to_closing(self):
        position = _opened()
        before = position.version
        position.request_close("CLOSE_1")
        assert position.status == PositionStatus.CLOSING
        assert position.close_order_id == "CLOSE_1"
        assert position.version == before + 1

    @pytest.mark.parametrize("status", [PositionStatus.OPENING, PositionStatus.CLOSING])
    def test_request_close_outside_opened_fails_without_mutation(self, status):
        position = _opened() if status == PositionStatus.CLOSING else _position()
        if status == PositionStatus.CLOSING:
            position.request_close("CLOSE_1")
        version, close_id = position.version, position.close_order_id

        with pytest.raises(PositionStateError):
            position.request_close("CLOSE_2")
        assert position.status == status
        assert position.version == version
        assert position.close_order_id == close_id

    def test_two_close_trades_close_after_the_second(self):
        position = _opened()
        position.request_close("CLOSE_1")

        position.trade_update(_sell("T_C1", "7", "6"))
        assert position.status == PositionStatus.CLOSING
        position.trade_update(_sell("T_C2", "3", "6", minute=11))
        assert position.status == PositionStatus.CLOSED

        # bought 10 * 5 = 50, sold 7 * 6 + 3 * 6 = 60
        gain = position.gain
        assert gain.amount == Amount(Decimal("10"), "BTC")
        assert gain.percentage == pytest.approx(20.0)

    def test_close_trade_before_request_is_ignored(self):
        position = _opened()
        assert not position.trade_update(_sell("T_C1", "10", "6"))
        assert position.status == PositionStatus.OPENED

    def test_no_transition_out_of_closed(self):
        position = _opened()
        position.request_close("CLOSE_1")
        position.trade_update(_sell("T_C1", "10", "6"))
        version = position.version

        assert not position.trade_update(make_trade("T_LATE", "OPEN_1", amount="10"))
        with pytest.raises(PositionStateError):
            position.request_close("CLOSE_2")
        assert position.status == PositionStatus.CLOSED
        assert position.version == version

    def test_version_strictly_increases(self):
        position = _position(PositionRules())
        versions = [position.version]
        position.trade_update(make_trade("T1", "OPEN_1", amount="4"))
        versions.append(position.version)
        position.trade_update(make_trade("T2", "OPEN_1", amount="6"))
        versions.append(position.version)
        position.should_close(make_ticker("6"))
        versions.append(position.version)
        position.should_close(make_ticker("4"))
        versions.append(position.version)
        position.request_close("CLOSE_1")
        versions.append(position.version)
        position.trade_update(_sell("T3", "10", "5"))
        versions.append(position.version)
        assert versions == sorted(set(versions))


class TestShouldClose:
    def test_first_ticker_sets_both_watermarks(self):
        position = _opened()
        assert position.should_close(make_ticker("6")) is False
        assert position.highest_price == Decimal("6")
        assert position.lowest_price == Decimal("6")
        assert position.last_calculated_gain.percentage == pytest.approx(20.0)
        assert position.last_calculated_gain.amount == Amount(Decimal("10"), "BTC")
        assert position.last_calculated_gain.fees == Amount(Decimal(0), "BTC")

    def test_stop_gain_triggers_without_watermark_update(self):
        position = _opened(PositionRules(stop_gain_percentage=15))
        version = position.version
        assert position.should_close(make_ticker("6")) is True
        assert position.version == version + 1
        assert position.highest_price is None
        assert position.lowest_price is None
        assert position.last_calculated_gain.percentage == pytest.approx(20.0)

    def test_stop_loss_triggers(self):
        position = _opened(PositionRules(stop_loss_percentage=10))
        assert position.should_close(make_ticker("4.6")) is False
        assert position.should_close(make_ticker("4.5")) is True

    def test_stop_gain_threshold_is_inclusive(self):
        position = _opened(PositionRules(stop_gain_percentage=20))
        assert position.should_close(make_ticker("6")) is True

    def test_repeated_ticker_does_not_change_version(self):
        position = _opened()
        ticker = make_ticker("6")
        position.should_close(ticker)
        version = position.version
        position.should_close(ticker)
        assert position.version == version

    def test_watermarks_track_extremes(self):
        position = _opened()
        for price in ("6", "7", "4", "5"):
            position.should_close(make_ticker(price))
        assert position.highest_price == Decimal("7")
        assert position.lowest_price == Decimal("4")
        assert position.highest_calculated_gain.percentage == pytest.approx(40.0)
        assert position.lowest_calculated_gain.percentage == pytest.approx(-20.0)

    def test_tie_keeps_last_observed_price(self):
        position = _opened()
        position.should_close(make_ticker("6"))
        # Same floored gain, different price: the later one wins.
        position.should_close(make_ticker("6.000001"))
        assert position.highest_price == Decimal("6.000001")

    def test_other_pair_is_ignored(self):
        position = _opened()
        version = position.version
        other = make_ticker("100", pair=CurrencyPair("BTC", "USDT"))
        assert position.should_close(other) is False
        assert position.version == version
        assert position.last_calculated_gain is None

    def test_opening_position_has_no_gain(self):
        position = _position(PositionRules(stop_loss_percentage=1))
        assert position.should_close(make_ticker("1")) is False
        assert position.version == 1

    def test_no_op_once_close_requested(self):
        position = _opened(PositionRules(stop_gain_percentage=1))
        position.request_close("CLOSE_1")
        version = position.version
        assert position.should_close(make_ticker("100")) is False
        assert position.version == version


class TestGains:
    def test_percentage_is_floored(self):
        position = _opened()
        # (5.00009 - 5) / 5 = 0.000018 → floored to 0.0000
        gain = position.calculate_gain_from_price(Decimal("5.00009"))
        assert gain.percentage == 0.0
        # (4.99999 - 5) / 5 = -0.000002 → floored to -0.0001
        gain = position.calculate_gain_from_price(Decimal("4.99999"))
        assert gain.percentage == pytest.approx(-0.01)

    def test_gain_from_first_open_trade(self):
        position = _position()
        position.trade_update(make_trade("T1", "OPEN_1", amount="4", price="5"))
        position.trade_update(make_trade("T2", "OPEN_1", amount="6", price="10", minute=1))
        gain = position.calculate_gain_from_price(Decimal("6"))
        assert gain.percentage == pytest.approx(20.0)
        assert gain.amount == Amount(Decimal("4"), "BTC")

    def test_no_price_no_gain(self):
        assert _opened().calculate_gain_from_price(None) is None

    def test_zero_entry_price_has_no_gain(self):
        position = _position(PositionRules(stop_loss_percentage=5))
        position.trade_update(make_trade("T_OPEN", "OPEN_1", amount="10", price="0"))
        assert position.calculate_gain_from_price(Decimal("6")) is None
        assert position.should_close(make_ticker("6")) is False

    def test_realized_gain_is_zero_until_closed(self):
        position = _opened()
        assert position.gain.is_zero
        position.request_close("CLOSE_1")
        position.trade_update(_sell("T_C1", "5", "6"))
        assert position.gain.is_zero

    def test_fees_sum_quote_currency_trades(self):
        position = _position()
        position.trade_update(
            make_trade("T1", "OPEN_1", amount="10", fee=Amount(Decimal("0.02"), "BTC"))
        )
        position.request_close("CLOSE_1")
        position.trade_update(
            make_trade(
                "T2",
                "CLOSE_1",
                amount="10",
                price="6",
                side=OrderSide.ASK,
                fee=Amount(Decimal("0.03"), "BTC"),
            )
        )
        assert position.gain.fees == Amount(Decimal("0.05"), "BTC")

    def test_base_currency_fees_are_valued_at_trade_price(self):
        position = _position()
        position.trade_update(
            make_trade("T1", "OPEN_1", amount="10", price="5", fee=Amount(Decimal("0.01"), "ETH"))
        )
        position.request_close("CLOSE_1")
        position.trade_update(
            make_trade(
                "T2",
                "CLOSE_1",
                amount="10",
                price="6",
                side=OrderSide.ASK,
                fee=Amount(Decimal("0.03"), "BTC"),
            )
        )
        # 0.01 ETH at 5 BTC plus 0.03 BTC
        assert position.total_fees == Amount(Decimal("0.08"), "BTC")
        assert position.gain.fees == Amount(Decimal("0.08"), "BTC")

    def test_fees_in_unrelated_currency_are_reported(self, caplog):
        position = _position()
        position.trade_update(
            make_trade("T1", "OPEN_1", amount="10", fee=Amount(Decimal("0.2"), "BNB"))
        )
        assert position.total_fees == Amount(Decimal(0), "BTC")
        assert "paid in BNB" in caplog.text


class TestRestore:
    def test_restored_closed_position_has_same_gain(self):
        trades = [
            make_trade("T1", "OPEN_1", amount="6", price="5"),
            make_trade("T2", "OPEN_1", amount="4", price="5.5", minute=1),
            _sell("T3", "7", "6"),
            _sell("T4", "3", "6.5", minute=11),
        ]
        live = _position()
        live.trade_update(trades[0])
        live.trade_update(trades[1])
        live.request_close("CLOSE_1")
        live.trade_update(trades[2])
        live.trade_update(trades[3])
        assert live.status == PositionStatus.CLOSED

        restored = Position.restore(
            position_id=1,
            status=PositionStatus.CLOSED,
            currency_pair=ETH_BTC,
            amount=Decimal("10"),
            rules=None,
            open_order_id="OPEN_1",
            close_order_id="CLOSE_1",
            trades=trades,
            version=live.version,
        )
        assert restored.gain == live.gain
        assert restored == live
        assert restored.version == live.version

    def test_restore_trusts_fields(self):
        position = Position.restore(
            position_id=7,
            status=PositionStatus.OPENED,
            currency_pair=ETH_BTC,
            amount=Decimal("10"),
            rules=PositionRules(stop_gain_percentage=10),
            open_order_id="OPEN_7",
            close_order_id=None,
            trades=[],
            lowest_price=Decimal("4"),
            highest_price=Decimal("6"),
            version=12,
        )
        assert position.status == PositionStatus.OPENED
        assert position.version == 12
        assert position.highest_price == Decimal("6")
        # No open trade recorded: gain is unavailable.
        assert position.should_close(make_ticker("100")) is False


class TestFormatting:
    def test_opening(self):
        assert str(_position()) == (
            "Position n°1 (no rules) - Opening - Waiting for the trade of order OPEN_1"
        )

    def test_opened_with_gain(self):
        position = _opened(PositionRules(stop_gain_percentage=50))
        position.should_close(make_ticker("6"))
        assert str(position) == (
            "Position n°1 (50 % gain rule) on ETH/BTC - Opened - Last gain calculated 20 %"
        )

    def test_opened_without_gain(self):
        assert str(_opened()) == "Position n°1 (no rules) on ETH/BTC - Opened"

    def test_closing(self):
        position = _opened()
        position.request_close("CLOSE_1")
        assert str(position) == (
            "Position n°1 (no rules) on ETH/BTC - Closing - Waiting for the trade of order CLOSE_1"
        )

    def test_closed(self):
        position = _opened()
        position.request_close("CLOSE_1")
        position.trade_update(_sell("T_C1", "10", "5.5"))
        assert str(position) == "Position n°1 (no rules) on ETH/BTC - Closed - Gain : 10 %"

    def test_equality_and_hash(self):
        a, b = _position(), _position()
        assert a == b
        assert hash(a) == hash(b)
        assert "version=1" in repr(a)
