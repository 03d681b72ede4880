"""
End-to-end auction flows.

Runs whole lots through bidding, withdrawal, off-chain decryption with
hints, batched settlement and claims, and checks the accounting holds.
"""

import random

import pytest

from empa.core.auction import (
    AuctionParams,
    BidStatus,
    EncryptedMarginalPriceAuction,
    LotStatus,
    OffchainDecryptor,
)
from empa.core.config import EngineConfig
from empa.core.queue import LinkedQueue
from empa.crypto import bid_encryption_salt, encrypt_bid, generate_keypair

E18 = 10**18
SELLER = "0x" + "11" * 20
CAPACITY = 500 * E18
START, CONCLUSION = 10, 20


@pytest.fixture(scope="module")
def keypair():
    return generate_keypair()


def random_bids(seed, count=12):
    """(bidder, amount, amount_out) with prices between 1.5 and 6.0."""
    rng = random.Random(seed)
    bids = []
    for i in range(count):
        bidder = "0x" + f"{0x20 + i:02x}" * 20
        amount = rng.randint(20, 150) * E18
        price_tenths = rng.randint(15, 60)
        bids.append((bidder, amount, amount * 10 // price_tenths))
    return bids


def run_lot(keypair, bids, queue_kind="linked", decrypt_batch=5, settle_batch=3, withdraw=()):
    auction = EncryptedMarginalPriceAuction(config=EngineConfig(queue_kind=queue_kind))
    params = AuctionParams(2 * E18, 20_00, 0, keypair.public_key)
    lot_id, err = auction.create_lot(SELLER, START, CONCLUSION, CAPACITY, 18, 18, params)
    assert err == ""

    for bidder, amount, amount_out in bids:
        salt = bid_encryption_salt(lot_id, bidder, amount)
        ciphertext, bid_public_key = encrypt_bid(amount_out, keypair.public_key, salt)
        _, err = auction.submit_bid(lot_id, bidder, amount, ciphertext, bid_public_key, current_time=START)
        assert err == ""

    for bid_id in withdraw:
        bidder = auction.get_bid(lot_id, bid_id).bidder
        _, err = auction.refund_bid(lot_id, bid_id, bidder, current_time=START + 1)
        assert err == ""

    decryptor = OffchainDecryptor(auction, lot_id, keypair.private_key)
    while auction.get_auction_data(lot_id).status == LotStatus.CREATED:
        _, err = decryptor.run(decrypt_batch, current_time=CONCLUSION)
        assert err == ""

    settlement = None
    while settlement is None:
        settlement, err = auction.settle(lot_id, settle_batch)
        assert err == ""

    live = [b for b in auction.get_bid_ids(lot_id) if auction.get_bid(lot_id, b).status == BidStatus.DECRYPTED]
    claims, err = auction.claim_bids(lot_id, live)
    assert err == ""
    return auction, lot_id, settlement, claims


class TestAuctionFlow:
    """Whole-lot runs with generated bids."""

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_accounting(self, keypair, seed):
        bids = random_bids(seed)
        auction, lot_id, settlement, claims = run_lot(keypair, bids)
        pf = settlement.partial_fill

        paid_out = sum(c.payout for c in claims) + (pf.payout if pf else 0)
        assert paid_out <= settlement.total_out <= CAPACITY
        assert paid_out >= settlement.total_out - len(claims) - 1
        assert settlement.total_out + settlement.capacity_refund == CAPACITY

        pf_paid = auction.get_bid(lot_id, pf.bid_id).amount - pf.refund if pf else 0
        if settlement.succeeded:
            assert sum(c.paid for c in claims) + pf_paid == settlement.total_in
        else:
            assert all(not c.won for c in claims)

        # every tendered amount is either paid or refunded, exactly once
        tendered = sum(amount for _, amount, _ in bids)
        refunded = sum(c.refund for c in claims) + (pf.refund if pf else 0)
        assert sum(c.paid for c in claims) + pf_paid + refunded == tendered

        for bid_id in auction.get_bid_ids(lot_id):
            assert auction.get_bid(lot_id, bid_id).status in (BidStatus.CLAIMED, BidStatus.REFUNDED)

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_winners_priced_at_or_above_marginal_price(self, keypair, seed):
        auction, lot_id, settlement, claims = run_lot(keypair, random_bids(seed))
        if not settlement.succeeded:
            pytest.skip("lot failed to settle")

        scale = auction.get_lot(lot_id).base_scale
        for claim in claims:
            price = auction.get_bid(lot_id, claim.bid_id).price(scale)
            if claim.won:
                assert price >= settlement.marginal_price
            else:
                assert price <= settlement.marginal_price

    def test_queue_designs_agree(self, keypair):
        bids = random_bids(4)
        linked = run_lot(keypair, bids, queue_kind="linked")
        heap = run_lot(keypair, bids, queue_kind="heap", decrypt_batch=100, settle_batch=100)

        assert linked[2] == heap[2]
        assert [(c.bid_id, c.payout, c.refund) for c in linked[3]] == [(c.bid_id, c.payout, c.refund) for c in heap[3]]

    def test_withdrawn_bids_take_no_part(self, keypair):
        bids = random_bids(5, count=6)
        auction, lot_id, settlement, claims = run_lot(keypair, bids, withdraw=(2, 5))

        assert sorted(auction.get_bid_ids(lot_id)) == [1, 3, 4, 6]
        assert {c.bid_id for c in claims} | (
            {settlement.partial_fill.bid_id} if settlement.partial_fill else set()
        ) == {1, 3, 4, 6}
        assert auction.get_bid(lot_id, 2).status == BidStatus.REFUNDED


class TestOffchainDecryptor:
    """Tests for hint preparation."""

    def setup_lot(self, keypair, bids):
        auction = EncryptedMarginalPriceAuction()
        params = AuctionParams(E18, 0, 0, keypair.public_key)
        lot_id, _ = auction.create_lot(SELLER, START, CONCLUSION, CAPACITY, 18, 18, params)
        for bidder, amount, amount_out in bids:
            salt = bid_encryption_salt(lot_id, bidder, amount)
            ciphertext, bid_public_key = encrypt_bid(amount_out, keypair.public_key, salt)
            auction.submit_bid(lot_id, bidder, amount, ciphertext, bid_public_key, current_time=START)
        auction.submit_private_key(lot_id, keypair.private_key, current_time=CONCLUSION)
        return auction, lot_id

    def test_prepare_decrypts_values(self, keypair):
        bids = random_bids(6, count=4)
        auction, lot_id = self.setup_lot(keypair, bids)

        decrypted, hints = OffchainDecryptor(auction, lot_id, keypair.private_key).prepare(10)

        assert [d.amount_out for d in decrypted] == [amount_out for _, _, amount_out in bids]
        assert all(d.queued for d in decrypted)
        assert len(hints) == 4
        # preparing is read-only
        assert auction.get_auction_data(lot_id).next_decrypt_index == 0

    def test_hints_are_exact_predecessors(self, keypair):
        bids = random_bids(7, count=5)
        auction, lot_id = self.setup_lot(keypair, bids)
        decryptor = OffchainDecryptor(auction, lot_id, keypair.private_key)

        decryptor.run(2, current_time=CONCLUSION)
        decrypted, hints = decryptor.prepare(10)

        simulated = LinkedQueue.from_list(auction.get_queue(lot_id).to_list())
        for d, hint in zip(decrypted, hints):
            assert hint == simulated.find_hint(d.bid_id, d.price)
            simulated.insert(hint, d.bid_id, d.price)

        assert auction.decrypt_and_sort_bids(lot_id, 10, hints) == (3, "")
        assert [e.bid_id for e in auction.get_queue(lot_id).to_list()] == [e.bid_id for e in simulated.to_list()]

    def test_unqueued_bids_get_no_hint(self, keypair):
        bids = [("0x" + "a1" * 20, 10 * E18, 0), ("0x" + "b2" * 20, 10 * E18, 5 * E18)]
        auction, lot_id = self.setup_lot(keypair, bids)

        decrypted, hints = OffchainDecryptor(auction, lot_id, keypair.private_key).prepare(10)

        assert [d.queued for d in decrypted] == [False, True]
        assert hints[0] is None
        assert hints[1] is not None
