"""Persistence of trades and positions (the on-disk projection used for restore)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from tradeflux.config.constants import OrderSide, PositionStatus
from tradeflux.core.position import Position
from tradeflux.data.models import Amount, CurrencyPair, PositionRules, Trade

if TYPE_CHECKING:
    from tradeflux.data.database import Database

logger = logging.getLogger(__name__)


def _dt_to_str(dt: datetime | None) -> str | None:
    """Convert datetime to ISO string for storage."""
    return dt.isoformat() if dt else None


def _str_to_dt(s: str | None) -> datetime | None:
    """Parse ISO string back to datetime."""
    return datetime.fromisoformat(s) if s else None


def _dec_to_str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _str_to_dec(s: str | None) -> Decimal | None:
    return Decimal(s) if s is not None else None


@dataclass
class PositionRecord:
    """A position row as stored; trades are referenced by id only."""

    id: int
    status: PositionStatus
    currency_pair: CurrencyPair
    amount: Decimal
    rules: PositionRules
    open_order_id: str
    close_order_id: str | None
    trade_ids: list[str] = field(default_factory=list)
    lowest_price: Decimal | None = None
    highest_price: Decimal | None = None
    version: int = 0

    def to_position(self, trades_by_id: dict[str, Trade]) -> Position:
        """Rebuild the position; trade ids absent from *trades_by_id* are skipped."""
        return Position.restore(
            position_id=self.id,
            status=self.status,
            currency_pair=self.currency_pair,
            amount=self.amount,
            rules=self.rules,
            open_order_id=self.open_order_id,
            close_order_id=self.close_order_id,
            trades=[trades_by_id[t] for t in self.trade_ids if t in trades_by_id],
            lowest_price=self.lowest_price,
            highest_price=self.highest_price,
            version=self.version,
        )


class Repository:
    """Data-access layer for the SQLite database."""

    def __init__(self, db: "Database") -> None:
        self._db = db

    @property
    def _conn(self):
        return self._db.connection

    # -- Trades ---------------------------------------------------------------

    async def save_trade(self, trade: Trade) -> None:
        """Insert a trade; trades are immutable so a known id is left as is."""
        async with self._db.write() as conn:
            await conn.execute(
                """
                INSERT INTO trades
                    (trade_id, order_id, side, currency_pair, amount, price,
                     fee_amount, fee_currency, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(trade_id) DO NOTHING
                """,
                (
                    trade.trade_id,
                    trade.order_id,
                    trade.side.value,
                    trade.currency_pair.symbol,
                    _dec_to_str(trade.amount),
                    _dec_to_str(trade.price),
                    _dec_to_str(trade.fee.value),
                    trade.fee.currency,
                    _dt_to_str(trade.timestamp),
                ),
            )
        logger.debug("Trade %s saved", trade.trade_id)

    async def find_all_trades_ordered_by_timestamp_ascending(self) -> list[Trade]:
        cursor = await self._conn.execute(
            """
            SELECT trade_id, order_id, side, currency_pair, amount, price,
                   fee_amount, fee_currency, timestamp
            FROM trades
            ORDER BY timestamp ASC, trade_id ASC
            """
        )
        rows = await cursor.fetchall()
        return [self._row_to_trade(row) for row in rows]

    def _row_to_trade(self, row) -> Trade:
        return Trade(
            trade_id=row[0],
            order_id=row[1],
            side=OrderSide(row[2]),
            currency_pair=CurrencyPair.from_symbol(row[3]),
            amount=Decimal(row[4]),
            price=Decimal(row[5]),
            fee=Amount(Decimal(row[6]), row[7]),
            timestamp=_str_to_dt(row[8]),
        )

    # -- Positions ------------------------------------------------------------

    async def save_position(self, position: "Position") -> None:
        """Upsert a position; an older version never overwrites a newer one."""
        async with self._db.write() as conn:
            await conn.execute(
                """
                INSERT INTO positions
                    (id, status, currency_pair, amount, stop_gain_percentage,
                     stop_loss_percentage, open_order_id, close_order_id,
                     trade_ids, lowest_price, highest_price, version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    status = excluded.status,
                    close_order_id = excluded.close_order_id,
                    trade_ids = excluded.trade_ids,
                    lowest_price = excluded.lowest_price,
                    highest_price = excluded.highest_price,
                    version = excluded.version
                WHERE excluded.version >= positions.version
                """,
                (
                    position.position_id,
                    position.status.value,
                    position.currency_pair.symbol,
                    _dec_to_str(position.amount),
                    position.rules.stop_gain_percentage,
                    position.rules.stop_loss_percentage,
                    position.open_order_id,
                    position.close_order_id,
                    json.dumps(list(position.trades)),
                    _dec_to_str(position.lowest_price),
                    _dec_to_str(position.highest_price),
                    position.version,
                ),
            )
        logger.debug("Position %d saved (version %d)", position.position_id, position.version)

    async def find_all_positions_ordered_for_restore(self) -> list[PositionRecord]:
        cursor = await self._conn.execute(
            """
            SELECT id, status, currency_pair, amount, stop_gain_percentage,
                   stop_loss_percentage, open_order_id, close_order_id,
                   trade_ids, lowest_price, highest_price, version
            FROM positions
            ORDER BY id ASC
            """
        )
        rows = await cursor.fetchall()
        return [self._row_to_position(row) for row in rows]

    def _row_to_position(self, row) -> PositionRecord:
        return PositionRecord(
            id=row[0],
            status=PositionStatus(row[1]),
            currency_pair=CurrencyPair.from_symbol(row[2]),
            amount=Decimal(row[3]),
            rules=PositionRules(
                stop_gain_percentage=row[4],
                stop_loss_percentage=row[5],
            ),
            open_order_id=row[6],
            close_order_id=row[7],
            trade_ids=json.loads(row[8]) if row[8] else [],
            lowest_price=_str_to_dec(row[9]),
            highest_price=_str_to_dec(row[10]),
            version=row[11],
        )
