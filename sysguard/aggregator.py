from __future__ import annotations
from collections import Counter, deque
from types import MappingProxyType
from typing import Deque, List, Mapping, Set, Tuple

from .models import LiveEvent

RECENT_EVENTS_MAX = 100


class LiveAggregator:
    """
    Running view of the live stream:
    - syscall counts since stream start (or last reset)
    - the newest RECENT_EVENTS_MAX events, newest first
    - every pid seen

    All operations are O(1) per event and never block, so ingest() can be
    called straight from the socket's message handler.
    """
    def __init__(self, capacity: int = RECENT_EVENTS_MAX):
        self._counts: Counter = Counter()
        self._recent: Deque[LiveEvent] = deque(maxlen=capacity)
        self._pids: Set[int] = set()

    def ingest(self, event: LiveEvent) -> None:
        self._counts[event.syscall.lower()] += 1
        self._recent.appendleft(event)
        self._pids.add(event.pid)

    def reset(self) -> None:
        self._counts.clear()
        self._recent.clear()
        self._pids.clear()

    def snapshot(self) -> Mapping[str, int]:
        """Frozen copy of the running counts, usable as analyzer input."""
        return MappingProxyType(dict(self._counts))

    # ── read-only views ───────────────────────
    def recent(self) -> List[LiveEvent]:
        return list(self._recent)

    def ranked(self) -> List[Tuple[str, int]]:
        """Counts ordered by volume, highest first."""
        return sorted(self._counts.items(), key=lambda kv: (-kv[1], kv[0]))

    @property
    def total_invocations(self) -> int:
        return sum(self._counts.values())

    @property
    def endpoint_count(self) -> int:
        return len(self._pids)

    @property
    def observed_pids(self) -> frozenset:
        return frozenset(self._pids)

    def is_empty(self) -> bool:
        return not self._counts
