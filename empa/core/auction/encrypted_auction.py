"""
Encrypted Marginal Price Auction - Sealed-bid batch auction for lots.

Lifecycle of a lot:
1. Created: bidders submit a plaintext quote amount plus an encrypted
   minimum amount out. Bids may be withdrawn until the auction concludes.
2. After conclusion the seller reveals the private key. Anyone may then
   decrypt bids in bounded batches; each valid bid enters a priority queue
   ordered by price.
3. Once every bid is decrypted, anyone may settle in bounded batches until
   the marginal clearing price is found.
4. Bidders claim: winners pay their amount and receive base tokens at the
   marginal price, everyone else is refunded.

Every operation returns (result, error_message). error_message is "" on
success; on failure no state has changed. Persisted cursors
(next_decrypt_index and the settlement progress) make repeated or racing
calls safe: a caller that finds no work left changes nothing.

This module only computes who owes and receives what. Moving assets is the
custody layer's job.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from empa.core.auction.lot import (
    MAX_UINT256,
    ONE_HUNDRED_PERCENT,
    AuctionData,
    AuctionParams,
    Bid,
    BidClaim,
    BidStatus,
    EncryptedBid,
    Lot,
    LotStatus,
    MarginalPriceResult,
    PartialFill,
    Settlement,
    mul_div_down,
    mul_div_up,
)
from empa.core.auction.settlement import MarginalPriceCalculator, build_settlement
from empa.core.config import QUEUE_HEAP, QUEUE_LINKED, EngineConfig
from empa.core.queue import HeapQueue, LinkedQueue, QueueBid, QueueKey, ranks_ahead
from empa.crypto import Point, bid_encryption_salt, decrypt_bid, derive_public_key
from empa.utils.logger import get_logger
from empa.utils.validation import (
    MAX_LOT_ID,
    validate_address,
    validate_amount,
    validate_auction_params,
    validate_integer,
    validate_lot_params,
    validate_point,
)

logger = get_logger("auction")

ZERO_ADDRESS = "0x" + "00" * 20

BidQueue = Union[HeapQueue, LinkedQueue]


# =============================================================================
# Per-Lot State
# =============================================================================


def _new_queue(kind: str) -> BidQueue:
    if kind == QUEUE_HEAP:
        return HeapQueue(descending=True)
    return LinkedQueue(descending=True)


@dataclass
class LotState:
    """Everything stored for one lot. No state is shared across lots."""
    lot: Lot
    auction: AuctionData
    queue_kind: str = QUEUE_LINKED
    bids: Dict[int, Bid] = field(default_factory=dict)
    encrypted_bids: Dict[int, EncryptedBid] = field(default_factory=dict)
    queue: Optional[BidQueue] = None
    settlement: Optional[Settlement] = None

    def __post_init__(self):
        if self.queue is None:
            self.queue = _new_queue(self.queue_kind)

    def to_dict(self) -> dict:
        return {
            "lot": self.lot.to_dict(),
            "auction": self.auction.to_dict(),
            "queue_kind": self.queue_kind,
            "bids": [bid.to_dict() for bid in self.bids.values()],
            "encrypted_bids": {str(k): v.to_dict() for k, v in self.encrypted_bids.items()},
            "queue": [[e.bid_id, hex(e.value), e.amount] for e in self.queue.to_list()],
            "settlement": _settlement_to_dict(self.settlement),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LotState":
        kind = data["queue_kind"]
        entries = [QueueBid(bid_id, int(value, 16), amount) for bid_id, value, amount in data["queue"]]
        queue_cls = HeapQueue if kind == QUEUE_HEAP else LinkedQueue
        bids = [Bid.from_dict(b) for b in data["bids"]]
        return cls(
            lot=Lot.from_dict(data["lot"]),
            auction=AuctionData.from_dict(data["auction"]),
            queue_kind=kind,
            bids={bid.bid_id: bid for bid in bids},
            encrypted_bids={int(k): EncryptedBid.from_dict(v) for k, v in data["encrypted_bids"].items()},
            queue=queue_cls.from_list(entries, descending=True),
            settlement=_settlement_from_dict(data.get("settlement")),
        )


def _settlement_to_dict(settlement: Optional[Settlement]) -> Optional[dict]:
    if settlement is None:
        return None
    data = dict(vars(settlement))
    data["marginal_price"] = hex(settlement.marginal_price)
    if settlement.partial_fill is not None:
        data["partial_fill"] = dict(vars(settlement.partial_fill))
    return data


def _settlement_from_dict(data: Optional[dict]) -> Optional[Settlement]:
    if data is None:
        return None
    data = dict(data)
    data["marginal_price"] = int(data["marginal_price"], 16)
    if data.get("partial_fill") is not None:
        data["partial_fill"] = PartialFill(**data["partial_fill"])
    return Settlement(**data)


# =============================================================================
# Auction Module
# =============================================================================


class EncryptedMarginalPriceAuction:
    """
    Arena of sealed-bid lots settled at a single marginal price.

    Timestamps are passed in explicitly by the caller (`current_time`), so
    the module itself never reads a clock.
    """

    def __init__(self, config: Optional[EngineConfig] = None, storage_manager=None):
        """
        Initialize the auction module.

        Args:
            config: Engine configuration. None = defaults.
            storage_manager: Persistence manager. None = in-memory only.
        """
        self.config = config or EngineConfig()
        self.storage_manager = storage_manager
        self.lots: Dict[int, LotState] = {}
        self.next_lot_id = 1

        if storage_manager:
            self._load_from_storage()

    # =========================================================================
    # Lot Creation
    # =========================================================================

    def create_lot(
        self,
        seller: str,
        start: int,
        conclusion: int,
        capacity: int,
        base_decimals: int,
        quote_decimals: int,
        params: AuctionParams,
        lot_id: Optional[int] = None,
    ) -> Tuple[Optional[int], str]:
        """
        Create a lot.

        Args:
            seller: Seller address
            start: Timestamp bidding opens
            conclusion: Timestamp bidding closes
            capacity: Base units offered
            base_decimals: Decimals of the offered token
            quote_decimals: Decimals of the bid token
            params: Minimum price, minimum fill, minimum bid size, public key
            lot_id: Id assigned by a routing layer, or None to allocate one

        Returns:
            (lot_id, error_message)
        """
        valid, err = validate_lot_params(seller, start, conclusion, capacity, base_decimals, quote_decimals)
        if not valid:
            return None, err

        valid, err = validate_auction_params(params)
        if not valid:
            return None, err

        if lot_id is None:
            lot_id = self.next_lot_id
            if lot_id > MAX_LOT_ID:
                return None, "No lot ids left"
        else:
            valid, err = validate_integer(lot_id, "lot_id", 1, MAX_LOT_ID)
            if not valid:
                return None, err
        if lot_id in self.lots:
            return None, "Lot already exists"

        lot = Lot(
            lot_id=lot_id,
            seller=seller,
            start=start,
            conclusion=conclusion,
            base_decimals=base_decimals,
            quote_decimals=quote_decimals,
            capacity=capacity,
        )
        auction = AuctionData(
            min_price=params.min_price,
            min_filled=mul_div_down(capacity, params.min_fill_percent, ONE_HUNDRED_PERCENT),
            min_bid_size=params.min_bid_size,
            public_key=params.public_key,
        )
        state = LotState(lot=lot, auction=auction, queue_kind=self.config.queue_kind)
        if self.storage_manager:
            self.storage_manager.save_lot(lot_id, state.to_dict())
        self.lots[lot_id] = state
        self.next_lot_id = max(self.next_lot_id, lot_id + 1)

        logger.info(
            f"Lot {lot_id} created: capacity={capacity}, min_price={params.min_price}, "
            f"bidding {start} -> {conclusion}"
        )
        return lot_id, ""

    def cancel_lot(self, lot_id: int, caller: str, current_time: int) -> Tuple[Optional[int], str]:
        """
        Cancel a lot before bidding opens.

        The lot moves straight to SETTLED with the failure sentinel price, so
        nothing can ever be bought from it.

        Returns:
            (capacity_refund, error_message)
        """
        state = self.lots.get(lot_id)
        if state is None:
            return None, "Lot not found"
        if caller != state.lot.seller:
            return None, "Only the seller can cancel"
        if state.auction.status != LotStatus.CREATED:
            return None, f"Cannot cancel in state {state.auction.status.name}"
        if state.lot.has_started(current_time):
            return None, "Lot has already started"

        refund = state.lot.capacity
        state.lot.capacity = 0
        state.auction.status = LotStatus.SETTLED
        state.auction.marginal_price = MAX_UINT256
        self._persist(lot_id)

        logger.info(f"Lot {lot_id} cancelled, {refund} returned to seller")
        return refund, ""

    # =========================================================================
    # Bidding
    # =========================================================================

    def submit_bid(
        self,
        lot_id: int,
        bidder: str,
        amount: int,
        encrypted_amount_out: int,
        bid_public_key: Point,
        current_time: int,
        recipient: Optional[str] = None,
        referrer: str = ZERO_ADDRESS,
    ) -> Tuple[Optional[int], str]:
        """
        Submit a sealed bid.

        The secret value cannot be checked here; only the public fields and
        the curve membership of the bid public key are validated.

        Args:
            lot_id: Lot to bid on
            bidder: Bidder address
            amount: Quote tokens tendered (plaintext)
            encrypted_amount_out: Ciphertext of the packed minimum amount out
            bid_public_key: Bidder's ephemeral public key
            current_time: Current timestamp
            recipient: Receiver of payout/refund, defaults to the bidder
            referrer: Referrer address

        Returns:
            (bid_id, error_message)
        """
        state = self.lots.get(lot_id)
        if state is None:
            return None, "Lot not found"

        if recipient is None:
            recipient = bidder
        for address, name in ((bidder, "bidder"), (recipient, "recipient"), (referrer, "referrer")):
            valid, err = validate_address(address, name)
            if not valid:
                return None, err

        valid, err = validate_amount(amount)
        if not valid:
            return None, err

        valid, err = validate_integer(encrypted_amount_out, "encrypted_amount_out", 0, MAX_UINT256)
        if not valid:
            return None, err

        valid, err = validate_point(bid_public_key, "bid_public_key")
        if not valid:
            return None, err

        if state.auction.status != LotStatus.CREATED or not state.lot.is_live(current_time):
            return None, "Lot is not accepting bids"

        bid_id = state.auction.next_bid_id
        state.auction.next_bid_id += 1
        state.bids[bid_id] = Bid(
            bid_id=bid_id,
            bidder=bidder,
            recipient=recipient,
            referrer=referrer,
            amount=amount,
        )
        state.encrypted_bids[bid_id] = EncryptedBid(encrypted_amount_out, bid_public_key)
        state.auction.bid_ids.append(bid_id)
        self._persist(lot_id)

        logger.debug(f"Bid {bid_id} submitted on lot {lot_id}: amount={amount}")
        return bid_id, ""

    def refund_bid(self, lot_id: int, bid_id: int, caller: str, current_time: int) -> Tuple[Optional[int], str]:
        """
        Withdraw a bid before the auction concludes.

        Removal from the live-bid index swaps in the last id, since index
        order carries no meaning before decryption.

        Returns:
            (refund_amount, error_message)
        """
        state = self.lots.get(lot_id)
        if state is None:
            return None, "Lot not found"

        bid = state.bids.get(bid_id)
        if bid is None:
            return None, "Bid not found"
        if caller != bid.bidder:
            return None, "Only the bidder can withdraw"
        if bid.status != BidStatus.SUBMITTED:
            return None, f"Cannot withdraw bid in state {bid.status.name}"
        if state.auction.status != LotStatus.CREATED or state.auction.private_key_submitted:
            return None, "Decryption has started"
        if state.lot.has_concluded(current_time):
            return None, "Lot has concluded"

        bid_ids = state.auction.bid_ids
        index = bid_ids.index(bid_id)
        bid_ids[index] = bid_ids[-1]
        bid_ids.pop()

        bid.status = BidStatus.REFUNDED
        self._persist(lot_id)

        logger.debug(f"Bid {bid_id} withdrawn from lot {lot_id}")
        return bid.amount, ""

    # =========================================================================
    # Decryption
    # =========================================================================

    def submit_private_key(self, lot_id: int, private_key: int, current_time: int) -> Tuple[bool, str]:
        """
        Reveal the lot's private key.

        The key is checked against the recorded public key once; later
        decrypt calls reuse the stored key.

        Returns:
            (success, error_message)
        """
        state = self.lots.get(lot_id)
        if state is None:
            return False, "Lot not found"

        auction = state.auction
        if auction.status != LotStatus.CREATED:
            return False, f"Cannot submit key in state {auction.status.name}"
        if not state.lot.has_concluded(current_time):
            return False, "Lot has not concluded"
        if auction.private_key_submitted:
            return False, "Private key already submitted"

        try:
            derived = derive_public_key(private_key)
        except ValueError:
            return False, "Invalid private key"

        if derived != auction.public_key:
            logger.warning(f"Rejected private key for lot {lot_id}: public key mismatch")
            return False, "Private key does not match public key"

        auction.private_key = private_key
        self._persist(lot_id)

        logger.info(f"Private key submitted for lot {lot_id}, {len(auction.bid_ids)} bids to decrypt")
        return True, ""

    def decrypt_and_sort_bids(
        self,
        lot_id: int,
        num: int,
        hints: Optional[Sequence[Optional[QueueKey]]] = None,
    ) -> Tuple[Optional[int], str]:
        """
        Decrypt the next `num` bids and insert valid ones into the queue.

        `num` is clamped to the bids remaining and to the configured batch
        bound. Bids decrypting to zero or to less than the minimum bid size
        are marked DECRYPTED but not queued; they refund at claim time.

        Args:
            lot_id: Lot to decrypt
            num: Number of bids to process
            hints: Optional insertion hint per bid (linked queue only). An
                invalid hint falls back to the queue start.

        Returns:
            (number_processed, error_message)
        """
        state = self.lots.get(lot_id)
        if state is None:
            return None, "Lot not found"

        auction = state.auction
        if auction.status != LotStatus.CREATED:
            return None, f"Cannot decrypt in state {auction.status.name}"
        if not auction.private_key_submitted:
            return None, "Private key not submitted"
        if not isinstance(num, int) or num < 0:
            return None, "Invalid decrypt count"

        remaining = len(auction.bid_ids) - auction.next_decrypt_index
        num = min(num, remaining, self.config.max_decrypt_batch)
        hints = list(hints or [])

        for i in range(num):
            bid_id = auction.bid_ids[auction.next_decrypt_index + i]
            self._decrypt_bid(state, bid_id, hints[i] if i < len(hints) else None)

        auction.next_decrypt_index += num
        if auction.next_decrypt_index == len(auction.bid_ids):
            auction.status = LotStatus.DECRYPTED
            logger.info(f"Lot {lot_id} decrypted: {len(state.queue)} of {len(auction.bid_ids)} bids queued")

        if num > 0 or auction.status == LotStatus.DECRYPTED:
            self._persist(lot_id)
        return num, ""

    def decrypt_batch(
        self,
        lot_id: int,
        private_key: int,
        num: int,
        hints: Optional[Sequence[Optional[QueueKey]]],
        current_time: int,
    ) -> Tuple[Optional[int], str]:
        """
        Submit the private key if needed, then decrypt a batch.

        The key argument is only verified on the first call; afterwards the
        stored key is used.
        """
        state = self.lots.get(lot_id)
        if state is None:
            return None, "Lot not found"

        if not state.auction.private_key_submitted:
            success, err = self.submit_private_key(lot_id, private_key, current_time)
            if not success:
                return None, err

        return self.decrypt_and_sort_bids(lot_id, num, hints)

    def _decrypt_bid(self, state: LotState, bid_id: int, hint: Optional[QueueKey]) -> None:
        bid = state.bids[bid_id]
        encrypted = state.encrypted_bids[bid_id]
        auction = state.auction

        salt = bid_encryption_salt(state.lot.lot_id, bid.bidder, bid.amount)
        amount_out = decrypt_bid(encrypted.ciphertext, encrypted.bid_public_key, auction.private_key, salt)
        bid.status = BidStatus.DECRYPTED

        if amount_out == 0 or amount_out < auction.min_bid_size:
            logger.debug(f"Bid {bid_id} below minimum bid size, not queued")
            return

        price = mul_div_up(bid.amount, state.lot.base_scale, amount_out)
        bid.min_amount_out = amount_out

        if isinstance(state.queue, LinkedQueue):
            prev = state.queue.start
            if hint is not None:
                if state.queue.is_valid_hint(hint, bid_id, price):
                    prev = hint
                else:
                    logger.debug(f"Invalid hint for bid {bid_id}, inserting from queue start")
            state.queue.insert(prev, bid_id, price, bid.amount)
        else:
            state.queue.insert(bid_id, bid.amount, price)

        logger.debug(f"Bid {bid_id} decrypted: amount_out={amount_out}, price={price}")

    # =========================================================================
    # Settlement
    # =========================================================================

    def settle(self, lot_id: int, num: Optional[int] = None) -> Tuple[Optional[Settlement], str]:
        """
        Advance the marginal price computation by at most `num` queue entries.

        Returns (None, "") while work remains (or for num == 0), and the
        Settlement once the marginal price is found. A shortfall against the
        minimum price or fill is a normal, failed Settlement, never an error.
        """
        state = self.lots.get(lot_id)
        if state is None:
            return None, "Lot not found"

        auction = state.auction
        if auction.status == LotStatus.SETTLED:
            return None, "Lot already settled"
        if auction.status != LotStatus.DECRYPTED:
            return None, "Lot not decrypted"

        if num is None:
            num = self.config.max_settle_batch
        if not isinstance(num, int) or num < 0:
            return None, "Invalid settle count"
        num = min(num, self.config.max_settle_batch)
        if num == 0:
            return None, ""

        calculator = MarginalPriceCalculator(
            capacity=state.lot.capacity,
            base_scale=state.lot.base_scale,
            min_price=auction.min_price,
            result=auction.progress,
        )
        result = calculator.process(state.queue, num)

        if not result.finished:
            self._persist(lot_id)
            logger.debug(f"Lot {lot_id} settlement in progress: {result.processed} bids processed")
            return None, ""

        return self._finalize(state, result), ""

    def _finalize(self, state: LotState, result: MarginalPriceResult) -> Settlement:
        lot = state.lot
        auction = state.auction

        partial_fill_bid = state.bids.get(result.partial_fill_bid_id) if result.partial_fill_bid_id else None
        settlement = build_settlement(lot, auction, result, partial_fill_bid)

        auction.status = LotStatus.SETTLED
        auction.marginal_price = settlement.marginal_price
        auction.marginal_bid_id = settlement.marginal_bid_id
        lot.purchased = settlement.total_in
        lot.sold = settlement.total_out
        lot.capacity = 0

        if settlement.partial_fill is not None:
            lot.partial_payout = settlement.partial_fill.payout
            state.bids[settlement.partial_fill.bid_id].status = BidStatus.CLAIMED

        state.settlement = settlement
        self._persist(lot.lot_id)

        if settlement.succeeded:
            logger.info(
                f"Lot {lot.lot_id} settled: marginal_price={settlement.marginal_price}, "
                f"total_in={settlement.total_in}, total_out={settlement.total_out}"
            )
        return settlement

    # =========================================================================
    # Claims
    # =========================================================================

    def claim_bids(self, lot_id: int, bid_ids: Sequence[int]) -> Tuple[List[BidClaim], str]:
        """
        Compute payouts and refunds for settled bids.

        Winners (bids at or ahead of the marginal bid in queue order) pay
        their full amount and receive amount * scale // marginal_price base
        units. Every other bid is refunded in full. All ids are checked
        before any bid is marked.

        Returns:
            (claims, error_message)
        """
        state = self.lots.get(lot_id)
        if state is None:
            return [], "Lot not found"
        if state.auction.status != LotStatus.SETTLED:
            return [], "Lot not settled"

        if len(set(bid_ids)) != len(bid_ids):
            return [], "Duplicate bid ids"
        for bid_id in bid_ids:
            bid = state.bids.get(bid_id)
            if bid is None:
                return [], f"Bid {bid_id} not found"
            if bid.status in (BidStatus.CLAIMED, BidStatus.REFUNDED):
                return [], f"Bid {bid_id} already claimed"

        claims = [self._claim_bid(state, state.bids[bid_id]) for bid_id in bid_ids]
        if claims:
            self._persist(lot_id)
        return claims, ""

    def _claim_bid(self, state: LotState, bid: Bid) -> BidClaim:
        auction = state.auction
        if self._is_winner(state, bid):
            bid.status = BidStatus.CLAIMED
            payout = mul_div_down(bid.amount, state.lot.base_scale, auction.marginal_price)
            logger.debug(f"Bid {bid.bid_id} won: payout={payout}")
            return BidClaim(bid.bid_id, bid.bidder, bid.recipient, bid.referrer, bid.amount, payout, 0)

        bid.status = BidStatus.REFUNDED
        logger.debug(f"Bid {bid.bid_id} refunded: {bid.amount}")
        return BidClaim(bid.bid_id, bid.bidder, bid.recipient, bid.referrer, 0, 0, bid.amount)

    def _is_winner(self, state: LotState, bid: Bid) -> bool:
        auction = state.auction
        if auction.failed or auction.marginal_bid_id == 0 or bid.min_amount_out == 0:
            return False
        if bid.bid_id == auction.marginal_bid_id:
            return True

        scale = state.lot.base_scale
        marginal_bid = state.bids[auction.marginal_bid_id]
        return ranks_ahead(bid.price(scale), bid.bid_id, marginal_bid.price(scale), marginal_bid.bid_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_lot(self, lot_id: int) -> Optional[Lot]:
        state = self.lots.get(lot_id)
        return state.lot if state else None

    def get_auction_data(self, lot_id: int) -> Optional[AuctionData]:
        state = self.lots.get(lot_id)
        return state.auction if state else None

    def get_bid(self, lot_id: int, bid_id: int) -> Optional[Bid]:
        state = self.lots.get(lot_id)
        return state.bids.get(bid_id) if state else None

    def get_encrypted_bid(self, lot_id: int, bid_id: int) -> Optional[EncryptedBid]:
        state = self.lots.get(lot_id)
        return state.encrypted_bids.get(bid_id) if state else None

    def get_bid_ids(self, lot_id: int) -> List[int]:
        """Live-bid index of a lot."""
        state = self.lots.get(lot_id)
        return list(state.auction.bid_ids) if state else []

    def get_num_bids(self, lot_id: int) -> int:
        state = self.lots.get(lot_id)
        return len(state.auction.bid_ids) if state else 0

    def get_num_queued_bids(self, lot_id: int) -> int:
        state = self.lots.get(lot_id)
        return len(state.queue) if state else 0

    def get_queue(self, lot_id: int) -> Optional[BidQueue]:
        state = self.lots.get(lot_id)
        return state.queue if state else None

    def get_settlement(self, lot_id: int) -> Optional[Settlement]:
        state = self.lots.get(lot_id)
        return state.settlement if state else None

    def get_settlement_progress(self, lot_id: int) -> Optional[MarginalPriceResult]:
        state = self.lots.get(lot_id)
        return state.auction.progress if state else None

    def get_next_bids_to_decrypt(self, lot_id: int, num: int) -> List[Tuple[int, EncryptedBid]]:
        """
        The next `num` still-encrypted bids, in decryption order.

        Read-only; lets an off-chain decryptor prepare values and hints.
        """
        state = self.lots.get(lot_id)
        if state is None or num <= 0:
            return []
        auction = state.auction
        start = auction.next_decrypt_index
        bid_ids = auction.bid_ids[start:start + num]
        return [(bid_id, state.encrypted_bids[bid_id]) for bid_id in bid_ids]

    # =========================================================================
    # Persistence
    # =========================================================================

    def _persist(self, lot_id: int) -> None:
        if self.storage_manager:
            self.storage_manager.save_lot(lot_id, self.lots[lot_id].to_dict())

    def _load_from_storage(self) -> None:
        """Load all lots from the storage manager."""
        for lot_id in self.storage_manager.load_lot_ids():
            data = self.storage_manager.load_lot(lot_id)
            if data is None:
                continue
            self.lots[lot_id] = LotState.from_dict(data)
            self.next_lot_id = max(self.next_lot_id, lot_id + 1)

        logger.info(f"Loaded {len(self.lots)} lots from storage")

    def close(self) -> None:
        """Close storage."""
        if self.storage_manager:
            self.storage_manager.close()

    def __repr__(self) -> str:
        return f"EncryptedMarginalPriceAuction(lots={len(self.lots)})"


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "EncryptedMarginalPriceAuction",
    "LotState",
    "ZERO_ADDRESS",
]
