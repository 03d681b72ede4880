"""
Off-chain decryptor - prepares decrypt batches for a lot.

Anyone holding the revealed private key can act as decryptor. It reads the
next encrypted bids, decrypts them locally, and computes the queue
predecessor each bid will be linked after so that insertion on submission
is O(1). The decryptor is untrusted: wrong values are impossible (the
auction decrypts again itself) and wrong hints only cost extra walking.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from empa.core.auction.lot import mul_div_up
from empa.core.queue import LinkedQueue, QueueKey
from empa.crypto import bid_encryption_salt, decrypt_bid
from empa.utils.logger import get_lot_logger


@dataclass
class DecryptedBid:
    """A bid decrypted locally by the off-chain decryptor."""
    bid_id: int
    amount_out: int
    price: int
    queued: bool


class OffchainDecryptor:
    """
    Computes decrypted values and insertion hints for a lot.

    Args:
        auction: EncryptedMarginalPriceAuction holding the lot
        lot_id: Lot to decrypt
        private_key: The lot's revealed private key
    """

    def __init__(self, auction, lot_id: int, private_key: int):
        self.auction = auction
        self.lot_id = lot_id
        self.private_key = private_key
        self.logger = get_lot_logger("decrypt", lot_id)

    def prepare(self, num: int) -> Tuple[List[DecryptedBid], List[Optional[QueueKey]]]:
        """
        Decrypt the next `num` bids and compute their hints.

        Hints are computed against a copy of the current queue with each
        earlier bid of the batch already inserted, matching the order the
        auction will insert them in.

        Returns:
            (decrypted_bids, hints); hints are None for bids that will not
            be queued, or for lots using the heap queue
        """
        lot = self.auction.get_lot(self.lot_id)
        auction_data = self.auction.get_auction_data(self.lot_id)
        queue = self.auction.get_queue(self.lot_id)
        if lot is None:
            return [], []

        simulated = None
        if isinstance(queue, LinkedQueue):
            simulated = LinkedQueue.from_list(queue.to_list(), descending=queue.descending)

        decrypted: List[DecryptedBid] = []
        hints: List[Optional[QueueKey]] = []
        for bid_id, encrypted in self.auction.get_next_bids_to_decrypt(self.lot_id, num):
            bid = self.auction.get_bid(self.lot_id, bid_id)
            salt = bid_encryption_salt(self.lot_id, bid.bidder, bid.amount)
            amount_out = decrypt_bid(encrypted.ciphertext, encrypted.bid_public_key, self.private_key, salt)

            queued = amount_out > 0 and amount_out >= auction_data.min_bid_size
            price = mul_div_up(bid.amount, lot.base_scale, amount_out) if queued else 0
            decrypted.append(DecryptedBid(bid_id, amount_out, price, queued))

            hint = None
            if queued and simulated is not None:
                hint = simulated.find_hint(bid_id, price)
                simulated.insert(hint, bid_id, price, bid.amount)
            hints.append(hint)

        self.logger.debug(f"Prepared {len(decrypted)} bids, {sum(d.queued for d in decrypted)} to queue")
        return decrypted, hints

    def run(self, num: int, current_time: int) -> Tuple[Optional[int], str]:
        """Prepare and submit one decrypt batch."""
        _, hints = self.prepare(num)
        decrypted, err = self.auction.decrypt_batch(self.lot_id, self.private_key, num, hints, current_time)
        if err:
            self.logger.warning(f"Decrypt batch rejected: {err}")
        return decrypted, err
