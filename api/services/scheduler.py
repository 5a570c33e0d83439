import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(order=True)
class Deadline:
    when: float
    seq: int
    key: str = field(compare=False)
    cancelled: bool = field(default=False, compare=False)


class DeadlineScheduler:
    """Min-heap of per-key deadlines with at most one live deadline per key."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._heap: List[Deadline] = []
        self._live: Dict[str, Deadline] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._live)

    def schedule(self, key: str, delay: float) -> Deadline:
        """Schedule key to fire after delay seconds, replacing any pending deadline."""
        self.cancel(key)
        deadline = Deadline(when=self.clock() + delay, seq=next(self._seq), key=key)
        heapq.heappush(self._heap, deadline)
        self._live[key] = deadline
        self._prune()
        return deadline

    def cancel(self, key: str) -> bool:
        deadline = self._live.pop(key, None)
        if deadline is None:
            return False
        deadline.cancelled = True
        return True

    def pending(self, key: str) -> Optional[Deadline]:
        return self._live.get(key)

    def next_deadline(self) -> Optional[float]:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0].when if self._heap else None

    def pop_due(self, now: Optional[float] = None) -> List[Deadline]:
        """Remove and return the deadlines that have passed, earliest first."""
        now = self.clock() if now is None else now
        due = []
        while self._heap and self._heap[0].when <= now:
            deadline = heapq.heappop(self._heap)
            if deadline.cancelled:
                continue
            del self._live[deadline.key]
            due.append(deadline)
        return due

    def _prune(self) -> None:
        # Rebuild once cancelled entries outnumber live ones
        if len(self._heap) > 2 * len(self._live) + 16:
            self._heap = [d for d in self._heap if not d.cancelled]
            heapq.heapify(self._heap)
