"""
Scenario file schemas for `empa simulate`.

Large integers may be given as JSON numbers or decimal strings.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from empa.crypto import is_valid_address


def _check_address(value: str) -> str:
    if not is_valid_address(value):
        raise ValueError(f"invalid address: {value}")
    return value


class LotEntry(BaseModel):
    """Lot parameters of a scenario."""
    seller: str = "0x" + "11" * 20
    start: int = Field(default=0, ge=0)
    conclusion: int = Field(default=100, gt=0)
    capacity: int = Field(gt=0)
    base_decimals: int = Field(default=18, ge=6, le=18)
    quote_decimals: int = Field(default=18, ge=6, le=18)
    min_price: int = Field(gt=0)
    min_fill_percent: int = Field(default=0, ge=0, le=100_00)
    min_bid_size: int = Field(default=0, ge=0)

    @field_validator("seller")
    @classmethod
    def check_seller(cls, value: str) -> str:
        return _check_address(value)


class BidEntry(BaseModel):
    """A bid of a scenario, given in the clear."""
    bidder: str
    amount: int = Field(gt=0)
    amount_out: int = Field(ge=0)
    recipient: Optional[str] = None

    @field_validator("bidder", "recipient")
    @classmethod
    def check_addresses(cls, value: Optional[str]) -> Optional[str]:
        return value if value is None else _check_address(value)


class Scenario(BaseModel):
    """A full auction run: one lot, its bids and the batch sizes."""
    lot: LotEntry
    bids: List[BidEntry] = Field(default_factory=list)
    decrypt_batch: int = Field(default=100, gt=0)
    settle_batch: int = Field(default=100, gt=0)
    queue_kind: Optional[str] = None  # None = engine configuration
