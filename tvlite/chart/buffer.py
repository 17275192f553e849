"""
Bar buffer and stream merge.

BarBuffer is the single owned, growable history behind the live view. The
merge rule keeps it strictly increasing in time without ever re-sorting:
    incoming.time == last.time  -> replace the tail (interval still forming)
    incoming.time >  last.time  -> append
    otherwise                   -> ignore (stale / out-of-order)
The feed is assumed to carry one increasing-time series per buffer.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional, overload

from tvlite.types.types import Bar, BarSequence, MergeOutcome

logger = logging.getLogger(__name__)


class BarBuffer:
    __slots__ = ("_bars", "_ignored")

    def __init__(self, bars: Iterable[Bar] = ()) -> None:
        self._bars: list[Bar] = []
        self._ignored = 0
        self.reset(bars)

    def reset(self, bars: Iterable[Bar]) -> None:
        """Replace the whole history (initial load / reload)."""
        items = list(bars)
        for prev, cur in zip(items, items[1:]):
            if cur.time <= prev.time:
                raise ValueError(
                    f"BarBuffer.reset(): times must strictly increase ({prev.time} -> {cur.time})"
                )
        self._bars = items
        self._ignored = 0

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    @overload
    def __getitem__(self, idx: int) -> Bar: ...

    @overload
    def __getitem__(self, idx: slice) -> list[Bar]: ...

    def __getitem__(self, idx: int | slice) -> Bar | list[Bar]:
        return self._bars[idx]

    @property
    def last(self) -> Optional[Bar]:
        return self._bars[-1] if self._bars else None

    @property
    def last_index(self) -> int:
        """Index of the most recent bar (-1 when empty)."""
        return len(self._bars) - 1

    @property
    def ignored_count(self) -> int:
        return self._ignored

    def closes(self, tail: Optional[int] = None) -> list[float]:
        bars = self._bars if tail is None else self._bars[-tail:]
        return [b.close for b in bars]

    def times(self) -> list[int]:
        return [b.time for b in self._bars]

    def snapshot(self) -> BarSequence:
        return tuple(self._bars)

    def merge(self, incoming: Bar) -> MergeOutcome:
        return merge(self, incoming)

    # Mutators used by merge(); keep the invariant local to this module.
    def _replace_tail(self, bar: Bar) -> None:
        self._bars[-1] = bar

    def _append(self, bar: Bar) -> None:
        self._bars.append(bar)


def merge(buffer: BarBuffer, incoming: Bar) -> MergeOutcome:
    """Fold one live bar into `buffer` in place."""
    last = buffer.last
    if last is not None and incoming.time == last.time:
        buffer._replace_tail(incoming)
        return MergeOutcome.UPDATED_TAIL
    if last is None or incoming.time > last.time:
        buffer._append(incoming)
        return MergeOutcome.APPENDED
    buffer._ignored += 1
    logger.debug(f"[buffer] ignored out-of-order bar t={incoming.time} (last={last.time})")
    return MergeOutcome.IGNORED
