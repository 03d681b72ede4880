"""
Heap Queue - Array-backed priority queue of decrypted bids.

A binary heap over (priority, bid_id) tuples. Insertion and removal of the
highest-priority entry are O(log n). Hints are not used.
"""

import heapq
from typing import Dict, Iterable, List, Optional, Tuple

from empa.core.queue.base import QueueBid, check_entry
from empa.utils.logger import get_logger

logger = get_logger("queue.heap")


class HeapQueue:
    """
    Priority queue of decrypted bids backed by `heapq`.

    With descending=True (the default) the highest value is extracted first;
    with descending=False the lowest. Lower bid ids win ties either way.
    """

    def __init__(self, descending: bool = True):
        self.descending = descending
        self._heap: List[Tuple[int, int]] = []
        self._amounts: Dict[int, int] = {}
        self._values: Dict[int, int] = {}

    def _priority(self, value: int) -> int:
        # heapq is a min-heap, so a max queue stores negated values
        return -value if self.descending else value

    def insert(self, bid_id: int, amount: int, value: int) -> None:
        """
        Insert a decrypted bid.

        Raises:
            ValueError: for an invalid entry or a bid id already queued
        """
        check_entry(bid_id, value)
        if bid_id in self._values:
            raise ValueError(f"Bid {bid_id} already in queue")

        heapq.heappush(self._heap, (self._priority(value), bid_id))
        self._amounts[bid_id] = amount
        self._values[bid_id] = value

    def peek(self) -> Optional[QueueBid]:
        """Highest-priority entry without removing it, or None when empty."""
        if not self._heap:
            return None
        _, bid_id = self._heap[0]
        return QueueBid(bid_id, self._values[bid_id], self._amounts[bid_id])

    def pop(self) -> QueueBid:
        """
        Remove and return the highest-priority entry.

        Raises:
            IndexError: if the queue is empty
        """
        if not self._heap:
            raise IndexError("pop from empty queue")
        _, bid_id = heapq.heappop(self._heap)
        value = self._values.pop(bid_id)
        amount = self._amounts.pop(bid_id)
        return QueueBid(bid_id, value, amount)

    def is_empty(self) -> bool:
        return not self._heap

    def __len__(self) -> int:
        return len(self._heap)

    def __contains__(self, bid_id: int) -> bool:
        return bid_id in self._values

    def to_list(self) -> List[QueueBid]:
        """All entries in priority order (non-destructive)."""
        ordered = sorted(self._heap)
        return [QueueBid(bid_id, self._values[bid_id], self._amounts[bid_id]) for _, bid_id in ordered]

    @classmethod
    def from_list(cls, entries: Iterable[QueueBid], descending: bool = True) -> "HeapQueue":
        queue = cls(descending=descending)
        for entry in entries:
            queue.insert(entry.bid_id, entry.amount, entry.value)
        return queue
