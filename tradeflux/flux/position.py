"""Position flux — republishes positions whose version moved."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tradeflux.config.constants import FluxKind
from tradeflux.core.position import Position
from tradeflux.flux.base import BaseFlux

if TYPE_CHECKING:
    from tradeflux.core.position_service import PositionService


class PositionFlux(BaseFlux[Position]):
    """Positions are mutable; the (id, version) pair stands for their state."""

    kind = FluxKind.POSITION

    def __init__(
        self,
        position_service: "PositionService",
        fetch_timeout: float = 30.0,
    ) -> None:
        super().__init__(fetch_timeout)
        self._position_service = position_service

    async def fetch(self) -> list[Position]:
        return self._position_service.get_positions()

    def key(self, item: Position) -> int:
        return item.position_id

    def fingerprint(self, item: Position) -> tuple[int, int]:
        return (item.position_id, item.version)

    def order(self, items: list[Position]) -> list[Position]:
        return sorted(items, key=lambda p: p.position_id)

    def restore_position(self, position: Position) -> None:
        self.restore([position])
