"""
Settlement - Marginal clearing price computation.

Consumes the decrypted-bid queue highest price first and finds the single
price at which the lot clears:

1. Bids priced below the minimum price are never counted. Reaching one ends
   the scan.
2. Before counting a bid, check whether the amount already counted exhausts
   capacity at the bid's price. If so, some price between the previous bid
   and this one exactly clears the lot: that intermediate price is the
   marginal price and no bid at the current price wins.
3. Otherwise count the bid. If capacity is now met at its price, it is the
   marginal bid; if capacity is exceeded it is partially filled.
4. If the scan ends without meeting capacity, the marginal price is the
   intermediate price when capacity is met at the minimum price, otherwise
   the lowest counted price (the minimum price if nothing was counted).

The scan can be split across calls: MarginalPriceResult carries every
running total, and `finished` tells "more work remains" apart from "price
found".

All arithmetic is integer: amounts in token units, prices in quote units per
whole base token, base_scale = 10^base_decimals.
"""

from typing import Optional, Union

from empa.core.auction.lot import (
    MAX_UINT256,
    AuctionData,
    Bid,
    Lot,
    MarginalPriceResult,
    PartialFill,
    Settlement,
    mul_div_down,
    mul_div_up,
)
from empa.core.queue import HeapQueue, LinkedQueue
from empa.utils.logger import get_logger

logger = get_logger("settlement")

BidQueue = Union[HeapQueue, LinkedQueue]


# =============================================================================
# Marginal Price
# =============================================================================


class MarginalPriceCalculator:
    """
    Resumable marginal price scan over a descending-price queue.

    The calculator mutates the MarginalPriceResult it is given, so the
    caller can persist it between calls.
    """

    def __init__(
        self,
        capacity: int,
        base_scale: int,
        min_price: int,
        result: Optional[MarginalPriceResult] = None,
    ):
        if capacity <= 0 or min_price <= 0:
            raise ValueError("Capacity and minimum price must be positive")
        self.capacity = capacity
        self.base_scale = base_scale
        self.min_price = min_price
        self.result = result if result is not None else MarginalPriceResult()

    def process(self, queue: BidQueue, num: int) -> MarginalPriceResult:
        """
        Consume at most `num` queue entries.

        A call with num == 0, or after the result is finished, changes
        nothing.
        """
        result = self.result
        if result.finished or num <= 0:
            return result

        for _ in range(num):
            if queue.is_empty():
                self._finish_without_marginal_bid()
                return result

            bid = queue.pop()
            result.processed += 1
            price = bid.value

            if price < self.min_price:
                logger.debug(f"Bid {bid.bid_id} below minimum price, ending scan")
                self._finish_without_marginal_bid()
                return result

            if result.total_amount_in > 0 and self._capacity_at(price) >= self.capacity:
                logger.debug(f"Capacity exhausted before bid {bid.bid_id}, clearing between prices")
                self._finish_at_intermediate_price()
                return result

            result.total_amount_in += bid.amount
            result.capacity_expended = self._capacity_at(price)
            result.last_price = price
            result.last_bid_id = bid.bid_id

            if result.capacity_expended >= self.capacity:
                result.marginal_price = price
                result.marginal_bid_id = bid.bid_id
                if result.capacity_expended > self.capacity:
                    result.partial_fill_bid_id = bid.bid_id
                result.finished = True
                return result

        if queue.is_empty():
            self._finish_without_marginal_bid()

        return result

    def _capacity_at(self, price: int) -> int:
        return mul_div_down(self.result.total_amount_in, self.base_scale, price)

    def _finish_at_intermediate_price(self) -> None:
        result = self.result
        result.marginal_price = mul_div_up(result.total_amount_in, self.base_scale, self.capacity)
        result.capacity_expended = self._capacity_at(result.marginal_price)
        result.marginal_bid_id = result.last_bid_id
        result.finished = True

    def _finish_without_marginal_bid(self) -> None:
        result = self.result
        if result.total_amount_in > 0 and self._capacity_at(self.min_price) >= self.capacity:
            self._finish_at_intermediate_price()
            return

        result.marginal_price = result.last_price if result.last_bid_id else self.min_price
        result.capacity_expended = self._capacity_at(result.marginal_price)
        result.marginal_bid_id = result.last_bid_id
        result.finished = True


# =============================================================================
# Finalization
# =============================================================================


def compute_partial_fill(bid: Bid, marginal_price: int, base_scale: int, excess: int) -> PartialFill:
    """
    Split a marginal bid that overshoots capacity.

    full_fill = amount * scale // price    (base units the bid would get)
    payout    = full_fill - excess
    refund    = amount * excess // full_fill
    """
    full_fill = mul_div_down(bid.amount, base_scale, marginal_price)
    return PartialFill(
        bid_id=bid.bid_id,
        bidder=bid.bidder,
        recipient=bid.recipient,
        referrer=bid.referrer,
        payout=full_fill - excess,
        refund=mul_div_down(bid.amount, excess, full_fill),
    )


def build_settlement(
    lot: Lot,
    auction: AuctionData,
    result: MarginalPriceResult,
    partial_fill_bid: Optional[Bid],
) -> Settlement:
    """
    Turn a finished marginal price result into a settlement.

    Never raises on a shortfall: a lot that misses its minimum fill or
    minimum price settles with the MAX_UINT256 sentinel as marginal price,
    which routes every bid to a full refund and returns the whole capacity
    to the seller.
    """
    capacity = lot.capacity
    if result.capacity_expended < auction.min_filled or result.marginal_price < auction.min_price:
        logger.warning(
            f"Lot {lot.lot_id} failed to settle: expended={result.capacity_expended} "
            f"(min {auction.min_filled}), price={result.marginal_price} (min {auction.min_price})"
        )
        return Settlement(
            lot_id=lot.lot_id,
            succeeded=False,
            marginal_price=MAX_UINT256,
            marginal_bid_id=0,
            total_in=0,
            total_out=0,
            capacity_refund=capacity,
        )

    total_in = result.total_amount_in
    partial_fill = None
    if result.partial_fill_bid_id and partial_fill_bid is not None:
        partial_fill = compute_partial_fill(
            partial_fill_bid,
            result.marginal_price,
            lot.base_scale,
            result.capacity_expended - capacity,
        )
        total_in -= partial_fill.refund

    total_out = min(result.capacity_expended, capacity)
    return Settlement(
        lot_id=lot.lot_id,
        succeeded=True,
        marginal_price=result.marginal_price,
        marginal_bid_id=result.marginal_bid_id,
        total_in=total_in,
        total_out=total_out,
        capacity_refund=capacity - total_out,
        partial_fill=partial_fill,
    )
