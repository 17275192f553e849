"""RenderSurface Port Interface.

Contract: the chart widget the live view draws on. Series are addressed by id
("candles", "sma_20", "volume", ...). `set_series` replaces a whole series,
`apply_update` upserts the given points at the tail (same time replaces, newer
appends), `set_visible_range` moves the visible logical range.

A surface may report user-driven range changes back by calling
`Viewport.on_user_range`; it may do so synchronously from inside
`set_visible_range`.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from tvlite.types.types import ViewportRange


class RenderSurface(Protocol):
    def set_series(self, series_id: str, points: Sequence[Any]) -> None: ...

    def apply_update(self, series_id: str, points: Sequence[Any]) -> None: ...

    def set_visible_range(self, rng: ViewportRange) -> None: ...
