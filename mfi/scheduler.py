"""Pending note stops ordered by absolute expiry tick."""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class PendingNoteOff:
    channel: int  # output channel, offset already applied
    key: int  # output key number
    expiry: int  # absolute tick at which the note stops


class NoteOffScheduler:
    """Min-heap of `PendingNoteOff` keyed by expiry.

    Stops with the same expiry come out in scheduling order.
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[int, int, PendingNoteOff]] = []
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def schedule(self, channel: int, key: int, expiry: int) -> PendingNoteOff:
        pending = PendingNoteOff(channel=channel, key=key, expiry=expiry)
        heapq.heappush(self._heap, (expiry, next(self._seq), pending))
        return pending

    def next_expiry(self) -> int | None:
        return self._heap[0][0] if self._heap else None

    def drain_due(self, now: int) -> List[PendingNoteOff]:
        """Remove and return every stop with expiry <= `now`, earliest first."""
        due: List[PendingNoteOff] = []
        while self._heap and self._heap[0][0] <= now:
            due.append(heapq.heappop(self._heap)[2])
        return due

    def drain_all(self) -> List[PendingNoteOff]:
        """Remove and return every remaining stop, earliest first."""
        due = [heapq.heappop(self._heap)[2] for _ in range(len(self._heap))]
        return due
