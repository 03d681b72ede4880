"""
EMPA Queue Module.

Priority queues holding decrypted bids in strict price order:
- HeapQueue: array-backed binary heap
- LinkedQueue: sorted linked list with insertion hints
"""

from empa.core.queue.base import (
    QueueBid,
    ranks_ahead,
    MAX_BID_ID,
    VALUE_LIMIT,
)

from empa.core.queue.heap_queue import HeapQueue

from empa.core.queue.linked_queue import (
    LinkedQueue,
    QueueKey,
)

__all__ = [
    "QueueBid",
    "ranks_ahead",
    "MAX_BID_ID",
    "VALUE_LIMIT",
    "HeapQueue",
    "LinkedQueue",
    "QueueKey",
]
