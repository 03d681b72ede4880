"""
EMPA Auction Module.

This module provides the sealed-bid batch auction:
- Lot and bid data model
- Bid submission and withdrawal
- Resumable decryption into a price-ordered queue
- Marginal price settlement and claims
"""

from empa.core.auction.lot import (
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
    MAX_UINT256,
    ONE_HUNDRED_PERCENT,
)

from empa.core.auction.settlement import (
    MarginalPriceCalculator,
    build_settlement,
    compute_partial_fill,
)

from empa.core.auction.encrypted_auction import (
    EncryptedMarginalPriceAuction,
    LotState,
    ZERO_ADDRESS,
)

from empa.core.auction.decryptor import (
    DecryptedBid,
    OffchainDecryptor,
)

__all__ = [
    # Data model
    "AuctionData",
    "AuctionParams",
    "Bid",
    "BidClaim",
    "BidStatus",
    "EncryptedBid",
    "Lot",
    "LotStatus",
    "MarginalPriceResult",
    "PartialFill",
    "Settlement",
    "MAX_UINT256",
    "ONE_HUNDRED_PERCENT",
    # Settlement
    "MarginalPriceCalculator",
    "build_settlement",
    "compute_partial_fill",
    # Auction
    "EncryptedMarginalPriceAuction",
    "LotState",
    "ZERO_ADDRESS",
    # Decryption
    "DecryptedBid",
    "OffchainDecryptor",
]
