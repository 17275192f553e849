"""
Viewport Clamp.

Keeps the visible logical range from scrolling more than `right_pad` bars past
the newest bar. Clamping shifts the range left and preserves its width; ranges
already within bounds are left alone, so clamp(clamp(r)) == clamp(r).
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from tvlite.config.configs import RIGHT_PAD_MAX
from tvlite.ports.render_surface import RenderSurface
from tvlite.types.types import ViewportRange

logger = logging.getLogger(__name__)

# Bars shown on first load, by interval.
DEFAULT_WINDOWS: dict[str, int] = {
    "1m": 300,
    "5m": 300,
    "15m": 300,
    "1h": 400,
    "4h": 400,
    "1d": 220,
}
FALLBACK_WINDOW = 300


def default_window(interval: str) -> int:
    return DEFAULT_WINDOWS.get(interval, FALLBACK_WINDOW)


def clamp(rng: ViewportRange, last_bar_index: int, right_pad: int) -> ViewportRange:
    """Return `rng` shifted left so that `to <= last_bar_index + right_pad`."""
    if last_bar_index < 0:
        return rng
    max_to = last_bar_index + right_pad
    if rng.to <= max_to:
        return rng
    shift = rng.to - max_to
    return ViewportRange(from_=rng.from_ - shift, to=max_to)


def initial_range(last_bar_index: int, interval: str, right_pad: int) -> ViewportRange:
    return ViewportRange(
        from_=max(0, last_bar_index - default_window(interval)),
        to=last_bar_index + right_pad,
    )


def validate_right_pad(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"right_pad must be an int, got {value!r}")
    if not 0 <= value <= RIGHT_PAD_MAX:
        raise ValueError(f"right_pad must be within [0, {RIGHT_PAD_MAX}], got {value}")
    return value


class Viewport:
    """
    Owns the visible range of one chart and pushes clamped ranges to the surface.

    The surface may echo our own `set_visible_range` back as a user range change;
    `_clamp_lock` drops those echoes so a clamp never re-triggers itself.
    """

    def __init__(
        self,
        surface: RenderSurface,
        last_index: Callable[[], int],
        right_pad: int = 2,
    ) -> None:
        self._surface = surface
        self._last_index = last_index
        self._right_pad = validate_right_pad(right_pad)
        self._range: Optional[ViewportRange] = None
        self._clamp_lock = False

    @property
    def range(self) -> Optional[ViewportRange]:
        return self._range

    @property
    def right_pad(self) -> int:
        return self._right_pad

    def set_right_pad(self, value: int) -> None:
        self._right_pad = validate_right_pad(value)
        self.reclamp()

    def on_user_range(self, rng: ViewportRange) -> None:
        if self._clamp_lock:
            return
        self._range = rng
        self.reclamp()

    def apply_initial(self, interval: str) -> None:
        """After a (re)load: keep the user's range if there is one, else the default window."""
        last = self._last_index()
        if last < 0:
            return
        if self._range is None:
            self._push(initial_range(last, interval, self._right_pad))
        else:
            self.reclamp()

    def after_merge(self) -> None:
        self.reclamp()

    def reclamp(self) -> None:
        if self._range is None:
            return
        clamped = clamp(self._range, self._last_index(), self._right_pad)
        if clamped != self._range:
            logger.debug(f"[viewport] clamp {self._range} -> {clamped}")
            self._push(clamped)

    def _push(self, rng: ViewportRange) -> None:
        self._range = rng
        self._clamp_lock = True
        try:
            self._surface.set_visible_range(rng)
        finally:
            self._clamp_lock = False
