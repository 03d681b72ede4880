"""
Shared definitions for the decrypted-bid priority queues.

Entries are ordered by value first (descending for a max queue, ascending
for a min queue) and by bid id second, where the lower id always ranks
ahead. No two entries ever compare equal because bid ids are unique.
"""

from dataclasses import dataclass

# Bid ids are positive and below this bound
MAX_BID_ID = 2**64 - 1

# Queue values live in [0, VALUE_LIMIT)
VALUE_LIMIT = 2**256


@dataclass(frozen=True)
class QueueBid:
    """A decrypted bid held in a priority queue."""
    bid_id: int
    value: int
    amount: int = 0


def ranks_ahead(
    value_a: int,
    bid_id_a: int,
    value_b: int,
    bid_id_b: int,
    descending: bool = True,
) -> bool:
    """
    Whether entry a has strictly higher priority than entry b.

    Ties on value go to the lower bid id.
    """
    if value_a != value_b:
        return value_a > value_b if descending else value_a < value_b
    return bid_id_a < bid_id_b


def check_entry(bid_id: int, value: int) -> None:
    """Raise ValueError for an id or value the queues cannot order."""
    if not isinstance(bid_id, int) or bid_id <= 0 or bid_id >= MAX_BID_ID:
        raise ValueError(f"Invalid bid id: {bid_id}")
    if not isinstance(value, int) or value < 0 or value >= VALUE_LIMIT:
        raise ValueError(f"Invalid queue value: {value}")
