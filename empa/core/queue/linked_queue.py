"""
Linked Queue - Hinted sorted linked list of decrypted bids.

Entries are linked in strict priority order through a single `next`
mapping keyed by QueueKey(bid_id, value). Two sentinel keys mark the logical
start and end of the list, so insertion never special-cases an empty list.

Insertion walks forward from a caller-supplied predecessor hint only as far
as needed. An off-chain decryptor that computes accurate hints gets O(1)
insertion; a poor hint degrades to O(n) but never breaks ordering, since the
walk re-checks every link.

Sentinels per polarity:

    descending: START = (0, VALUE_LIMIT)   END = (MAX_BID_ID, -1)
    ascending:  START = (0, -1)            END = (MAX_BID_ID, VALUE_LIMIT)

Both sort naturally under the queue comparator, so no special cases are
needed in the walk.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from empa.core.queue.base import MAX_BID_ID, VALUE_LIMIT, QueueBid, check_entry, ranks_ahead
from empa.utils.logger import get_logger

logger = get_logger("queue.linked")


@dataclass(frozen=True)
class QueueKey:
    """Node key of the linked queue."""
    bid_id: int
    value: int


class LinkedQueue:
    """
    Sorted linked list of decrypted bids with insertion hints.

    With descending=True the head is the highest value (a max queue).
    """

    def __init__(self, descending: bool = True):
        self.descending = descending
        if descending:
            self.start = QueueKey(0, VALUE_LIMIT)
            self.end = QueueKey(MAX_BID_ID, -1)
        else:
            self.start = QueueKey(0, -1)
            self.end = QueueKey(MAX_BID_ID, VALUE_LIMIT)

        self._next: Dict[QueueKey, QueueKey] = {self.start: self.end}
        self._keys_by_bid: Dict[int, QueueKey] = {}
        self._amounts: Dict[int, int] = {}

    # =========================================================================
    # Ordering
    # =========================================================================

    def _ahead(self, a: QueueKey, b: QueueKey) -> bool:
        return ranks_ahead(a.value, a.bid_id, b.value, b.bid_id, self.descending)

    def is_valid_hint(self, prev: QueueKey, bid_id: int, value: int) -> bool:
        """
        Whether `prev` can serve as the insertion hint for a new entry.

        The hint must already be in the list (the start sentinel counts) and
        must rank ahead of the new entry.
        """
        if prev not in self._next:
            return False
        return self._ahead(prev, QueueKey(bid_id, value))

    def find_hint(self, bid_id: int, value: int) -> QueueKey:
        """
        Exact predecessor a new entry would be linked after.

        Read-only helper for off-chain callers computing hints.
        """
        key = QueueKey(bid_id, value)
        prev = self.start
        while self._ahead(self._next[prev], key):
            prev = self._next[prev]
        return prev

    # =========================================================================
    # Mutation
    # =========================================================================

    def insert(self, prev: QueueKey, bid_id: int, value: int, amount: int = 0) -> QueueKey:
        """
        Insert an entry, walking forward from the predecessor hint.

        Args:
            prev: key already in the list that ranks ahead of the new entry
            bid_id: bid identifier (tie-break, lower wins)
            value: priority value
            amount: tendered amount carried with the entry

        Returns:
            The inserted key

        Raises:
            ValueError: duplicate key or bid id, or an invalid hint
        """
        check_entry(bid_id, value)
        key = QueueKey(bid_id, value)

        if key in self._next or bid_id in self._keys_by_bid:
            raise ValueError(f"Bid {bid_id} already in queue")
        if prev not in self._next:
            raise ValueError("Hint is not in the queue")
        if not self._ahead(prev, key):
            raise ValueError("Hint does not rank ahead of the new entry")

        steps = 0
        while self._ahead(self._next[prev], key):
            prev = self._next[prev]
            steps += 1

        self._next[key] = self._next[prev]
        self._next[prev] = key
        self._keys_by_bid[bid_id] = key
        self._amounts[bid_id] = amount

        if steps:
            logger.debug(f"Inserted bid {bid_id} after walking {steps} nodes from hint")
        return key

    def insert_from_start(self, bid_id: int, value: int, amount: int = 0) -> QueueKey:
        """Insert without a hint."""
        return self.insert(self.start, bid_id, value, amount)

    def pop(self) -> QueueBid:
        """
        Unlink and return the head entry.

        Raises:
            IndexError: if the queue is empty
        """
        head = self._next[self.start]
        if head == self.end:
            raise IndexError("pop from empty queue")

        self._next[self.start] = self._next.pop(head)
        del self._keys_by_bid[head.bid_id]
        amount = self._amounts.pop(head.bid_id)
        return QueueBid(head.bid_id, head.value, amount)

    # =========================================================================
    # Queries
    # =========================================================================

    def peek(self) -> Optional[QueueBid]:
        """Head entry without removing it, or None when empty."""
        head = self._next[self.start]
        if head == self.end:
            return None
        return QueueBid(head.bid_id, head.value, self._amounts[head.bid_id])

    def is_empty(self) -> bool:
        return self._next[self.start] == self.end

    def __len__(self) -> int:
        return len(self._keys_by_bid)

    def __contains__(self, bid_id: int) -> bool:
        return bid_id in self._keys_by_bid

    def __iter__(self) -> Iterator[QueueBid]:
        node = self._next[self.start]
        while node != self.end:
            yield QueueBid(node.bid_id, node.value, self._amounts[node.bid_id])
            node = self._next[node]

    def key_for(self, bid_id: int) -> Optional[QueueKey]:
        return self._keys_by_bid.get(bid_id)

    def to_list(self) -> List[QueueBid]:
        """All entries in priority order (non-destructive)."""
        return list(self)

    @classmethod
    def from_list(cls, entries: Iterable[QueueBid], descending: bool = True) -> "LinkedQueue":
        """Rebuild a queue from entries already in priority order."""
        queue = cls(descending=descending)
        tail = queue.start
        for entry in entries:
            tail = queue.insert(tail, entry.bid_id, entry.value, entry.amount)
        return queue
