"""
Lot and Bid data model for the encrypted marginal price auction.

A lot offers `capacity` base-token units. Bidders tender a plaintext amount
of quote tokens together with an encrypted minimum amount out (base units).
Once decrypted, a bid's price is

    price = ceil(amount * 10^base_decimals / min_amount_out)

in quote units per whole base token.

State machines:

    Lot:  CREATED -> DECRYPTED -> SETTLED
    Bid:  SUBMITTED -> DECRYPTED -> CLAIMED | REFUNDED
          SUBMITTED -> REFUNDED            (withdrawal before decryption)

All records serialize to plain dicts (to_dict/from_dict) for persistence.
"""

from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import List, Optional

from empa.crypto import Point

# =============================================================================
# Constants
# =============================================================================

# Marginal price stored for a lot that failed to settle; every bid refunds
MAX_UINT256 = 2**256 - 1

ONE_HUNDRED_PERCENT = 100_00


# =============================================================================
# Enums
# =============================================================================


class LotStatus(IntEnum):
    """State of a lot."""
    CREATED = 0     # Accepting bids, or waiting for the private key
    DECRYPTED = 1   # All bids decrypted and sorted
    SETTLED = 2     # Marginal price fixed (or lot cancelled/failed)


class BidStatus(IntEnum):
    """State of a bid."""
    SUBMITTED = 0   # Encrypted, waiting for decryption
    DECRYPTED = 1   # Decrypted, waiting for settlement and claim
    CLAIMED = 2     # Won: payout claimed (or paid as a partial fill)
    REFUNDED = 3    # Withdrawn, outbid, or lot failed


# =============================================================================
# Arithmetic
# =============================================================================


def mul_div_down(x: int, y: int, denominator: int) -> int:
    return x * y // denominator


def mul_div_up(x: int, y: int, denominator: int) -> int:
    return -(-(x * y) // denominator)


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class AuctionParams:
    """
    Seller-chosen settlement constraints.

    Attributes:
        min_price: Lowest clearing price, quote units per whole base token
        min_fill_percent: Share of capacity that must sell, in basis points
        min_bid_size: Smallest decrypted amount out a bid may ask for, in
            base-token units. It is compared with the sealed amount out,
            not with the tendered quote amount, so a value meant in quote
            units has to be converted at the expected price first.
        public_key: The lot's encryption key
    """
    min_price: int
    min_fill_percent: int
    min_bid_size: int
    public_key: Point


@dataclass
class Lot:
    """Generic lot information."""
    lot_id: int
    seller: str
    start: int
    conclusion: int
    base_decimals: int
    quote_decimals: int
    capacity: int
    sold: int = 0
    purchased: int = 0
    partial_payout: int = 0

    @property
    def base_scale(self) -> int:
        return 10**self.base_decimals

    def is_live(self, current_time: int) -> bool:
        """Whether bids may be submitted at `current_time`."""
        return self.capacity > 0 and self.start <= current_time < self.conclusion

    def has_started(self, current_time: int) -> bool:
        return current_time >= self.start

    def has_concluded(self, current_time: int) -> bool:
        return current_time >= self.conclusion

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Lot":
        return cls(**data)


@dataclass
class Bid:
    """
    Public part of a sealed bid.

    `amount` is plaintext and immutable. `min_amount_out` stays 0 until the
    bid is decrypted and accepted into the queue.
    """
    bid_id: int
    bidder: str
    recipient: str
    referrer: str
    amount: int
    status: BidStatus = BidStatus.SUBMITTED
    min_amount_out: int = 0

    def price(self, base_scale: int) -> int:
        """Bid price in quote units per whole base token (0 if not queued)."""
        if self.min_amount_out == 0:
            return 0
        return mul_div_up(self.amount, base_scale, self.min_amount_out)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = int(self.status)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Bid":
        data = dict(data)
        data["status"] = BidStatus(data["status"])
        return cls(**data)


@dataclass
class EncryptedBid:
    """Private part of a sealed bid."""
    ciphertext: int
    bid_public_key: Point

    def to_dict(self) -> dict:
        return {"ciphertext": hex(self.ciphertext), "bid_public_key": self.bid_public_key.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedBid":
        return cls(int(data["ciphertext"], 16), Point.from_dict(data["bid_public_key"]))


@dataclass
class MarginalPriceResult:
    """
    Progress of the marginal price computation.

    Persisted between settle calls so that a large queue can be consumed in
    bounded batches.
    """
    marginal_price: int = 0
    marginal_bid_id: int = 0
    partial_fill_bid_id: int = 0
    total_amount_in: int = 0
    capacity_expended: int = 0
    last_price: int = 0
    last_bid_id: int = 0
    processed: int = 0
    finished: bool = False

    def to_dict(self) -> dict:
        return {k: (hex(v) if isinstance(v, int) and not isinstance(v, bool) else v)
                for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict) -> "MarginalPriceResult":
        return cls(**{k: (int(v, 16) if isinstance(v, str) else v) for k, v in data.items()})


@dataclass
class PartialFill:
    """The single bid that only partially clears."""
    bid_id: int
    bidder: str
    recipient: str
    referrer: str
    payout: int
    refund: int


@dataclass
class BidClaim:
    """
    What a bid owes and receives after settlement.

    Handed to the custody layer, which moves the actual assets.
    """
    bid_id: int
    bidder: str
    recipient: str
    referrer: str
    paid: int
    payout: int
    refund: int

    @property
    def won(self) -> bool:
        return self.payout > 0


@dataclass
class Settlement:
    """Outcome of a finished settlement."""
    lot_id: int
    succeeded: bool
    marginal_price: int
    marginal_bid_id: int
    total_in: int
    total_out: int
    capacity_refund: int
    partial_fill: Optional[PartialFill] = None


@dataclass
class AuctionData:
    """Auction-specific state of a lot."""
    min_price: int
    min_filled: int
    min_bid_size: int
    public_key: Point
    status: LotStatus = LotStatus.CREATED
    next_bid_id: int = 1
    next_decrypt_index: int = 0
    private_key: int = 0
    marginal_price: int = 0
    marginal_bid_id: int = 0
    bid_ids: List[int] = field(default_factory=list)
    progress: MarginalPriceResult = field(default_factory=MarginalPriceResult)

    @property
    def private_key_submitted(self) -> bool:
        return self.private_key != 0

    @property
    def failed(self) -> bool:
        return self.marginal_price == MAX_UINT256

    def to_dict(self) -> dict:
        return {
            "min_price": hex(self.min_price),
            "min_filled": hex(self.min_filled),
            "min_bid_size": hex(self.min_bid_size),
            "public_key": self.public_key.to_dict(),
            "status": int(self.status),
            "next_bid_id": self.next_bid_id,
            "next_decrypt_index": self.next_decrypt_index,
            "private_key": hex(self.private_key),
            "marginal_price": hex(self.marginal_price),
            "marginal_bid_id": self.marginal_bid_id,
            "bid_ids": list(self.bid_ids),
            "progress": self.progress.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuctionData":
        return cls(
            min_price=int(data["min_price"], 16),
            min_filled=int(data["min_filled"], 16),
            min_bid_size=int(data["min_bid_size"], 16),
            public_key=Point.from_dict(data["public_key"]),
            status=LotStatus(data["status"]),
            next_bid_id=data["next_bid_id"],
            next_decrypt_index=data["next_decrypt_index"],
            private_key=int(data["private_key"], 16),
            marginal_price=int(data["marginal_price"], 16),
            marginal_bid_id=data["marginal_bid_id"],
            bid_ids=list(data["bid_ids"]),
            progress=MarginalPriceResult.from_dict(data["progress"]),
        )
