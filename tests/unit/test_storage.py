"""
Unit tests for lot persistence.

Tests cover:
1. SQLite adapter and storage manager round trips
2. Reloading an auction mid-decryption and mid-settlement
"""

import pytest

from empa.core.auction import (
    AuctionParams,
    BidStatus,
    EncryptedMarginalPriceAuction,
    LotState,
    LotStatus,
)
from empa.core.config import EngineConfig
from empa.core.storage import SQLiteAdapter, StorageManager
from empa.crypto import bid_encryption_salt, encrypt_bid, generate_keypair
from empa.utils.validation import MAX_LOT_ID

E18 = 10**18
SELLER = "0x" + "11" * 20
BIDDERS = ["0x" + f"{i:02x}" * 20 for i in range(0xa1, 0xa5)]


@pytest.fixture(scope="module")
def keypair():
    return generate_keypair()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "auction_data"


def open_auction(data_dir, **config):
    return EncryptedMarginalPriceAuction(config=EngineConfig(**config), storage_manager=StorageManager(data_dir))


def build_lot(auction, keypair):
    """One lot with four bids at 5.0, 4.0, 3.0 and 2.5."""
    params = AuctionParams(2 * E18, 10_00, 0, keypair.public_key)
    lot_id, err = auction.create_lot(SELLER, 0, 100, 100 * E18, 18, 18, params)
    assert err == ""
    for bidder, (amount, amount_out) in zip(BIDDERS, [(100, 20), (100, 25), (90, 30), (50, 20)]):
        salt = bid_encryption_salt(lot_id, bidder, amount * E18)
        ciphertext, bid_public_key = encrypt_bid(amount_out * E18, keypair.public_key, salt)
        _, err = auction.submit_bid(lot_id, bidder, amount * E18, ciphertext, bid_public_key, current_time=0)
        assert err == ""
    return lot_id


class TestSQLiteAdapter:
    """Tests for the SQLite backend."""

    def test_save_and_get_lot(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "nested" / "test.db")
        adapter.save_lot(1, 0, {"big": 2**200})

        assert adapter.get_lot(1) == {"big": 2**200}
        assert adapter.get_lot(2) is None
        adapter.close()

    def test_replace_and_filter_by_status(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "test.db")
        adapter.save_lot(1, 0, {})
        adapter.save_lot(2, 0, {})
        adapter.save_lot(1, 2, {"v": 2})

        assert adapter.get_lot_ids() == [1, 2]
        assert adapter.get_lot_ids(status=2) == [1]
        assert adapter.get_lot(1) == {"v": 2}
        adapter.close()

    def test_largest_lot_key(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "test.db")
        adapter.save_lot(MAX_LOT_ID, 0, {})

        assert adapter.get_lot_ids() == [MAX_LOT_ID]
        adapter.close()


class TestStorageManager:
    """Tests for lot snapshots through the storage manager."""

    def test_snapshot_round_trip(self, data_dir, keypair):
        auction = EncryptedMarginalPriceAuction()
        lot_id = build_lot(auction, keypair)
        state = auction.lots[lot_id]

        storage = StorageManager(data_dir)
        storage.save_lot(lot_id, state.to_dict())
        restored = LotState.from_dict(storage.load_lot(lot_id))

        assert restored.lot == state.lot
        assert restored.auction == state.auction
        assert restored.bids == state.bids
        assert restored.encrypted_bids == state.encrypted_bids
        assert storage.load_lot_ids(status=int(LotStatus.CREATED)) == [lot_id]
        storage.close()

    def test_missing_lot(self, data_dir):
        storage = StorageManager(data_dir)
        assert storage.load_lot(5) is None
        storage.close()


class TestAuctionPersistence:
    """Tests for resuming an auction from storage."""

    def test_reload_created_lot(self, data_dir, keypair):
        auction = open_auction(data_dir)
        lot_id = build_lot(auction, keypair)
        auction.close()

        reloaded = open_auction(data_dir)
        assert reloaded.get_num_bids(lot_id) == 4
        assert reloaded.get_bid(lot_id, 2).amount == 100 * E18
        assert reloaded.next_lot_id == lot_id + 1
        reloaded.close()

    def test_lot_id_beyond_storage_range(self, data_dir, keypair):
        auction = open_auction(data_dir)
        params = AuctionParams(E18, 0, 0, keypair.public_key)

        lot_id, err = auction.create_lot(SELLER, 0, 100, 100 * E18, 18, 18, params, lot_id=2**70)

        assert lot_id is None
        assert "lot_id" in err
        assert auction.lots == {}
        assert auction.next_lot_id == 1
        assert auction.storage_manager.load_lot_ids() == []
        auction.close()

    def test_largest_lot_id(self, data_dir, keypair):
        auction = open_auction(data_dir)
        params = AuctionParams(E18, 0, 0, keypair.public_key)

        assert auction.create_lot(SELLER, 0, 100, 100 * E18, 18, 18, params, lot_id=MAX_LOT_ID) == (MAX_LOT_ID, "")
        assert auction.create_lot(SELLER, 0, 100, 100 * E18, 18, 18, params) == (None, "No lot ids left")
        auction.close()

        reloaded = open_auction(data_dir)
        assert list(reloaded.lots) == [MAX_LOT_ID]
        assert reloaded.get_lot(MAX_LOT_ID).capacity == 100 * E18
        reloaded.close()

    def test_resume_decryption(self, data_dir, keypair):
        auction = open_auction(data_dir)
        lot_id = build_lot(auction, keypair)
        auction.submit_private_key(lot_id, keypair.private_key, current_time=100)
        auction.decrypt_and_sort_bids(lot_id, 2)
        auction.close()

        reloaded = open_auction(data_dir)
        data = reloaded.get_auction_data(lot_id)
        assert data.next_decrypt_index == 2
        assert data.private_key == keypair.private_key
        assert reloaded.get_num_queued_bids(lot_id) == 2

        assert reloaded.decrypt_and_sort_bids(lot_id, 10) == (2, "")
        assert data.status == LotStatus.DECRYPTED
        assert [e.bid_id for e in reloaded.get_queue(lot_id).to_list()] == [1, 2, 3, 4]
        reloaded.close()

    @pytest.mark.parametrize("queue_kind", ["linked", "heap"])
    def test_resume_settlement(self, data_dir, keypair, queue_kind):
        auction = open_auction(data_dir, queue_kind=queue_kind)
        lot_id = build_lot(auction, keypair)
        auction.decrypt_batch(lot_id, keypair.private_key, 10, None, current_time=100)
        assert auction.settle(lot_id, 1) == (None, "")
        auction.close()

        reloaded = open_auction(data_dir, queue_kind=queue_kind)
        assert reloaded.get_settlement_progress(lot_id).processed == 1
        assert reloaded.get_num_queued_bids(lot_id) == 3

        settlement = None
        while settlement is None:
            settlement, err = reloaded.settle(lot_id, 1)
            assert err == ""

        # 290 counted up to 3.0 fills 96.6; at 2.5 it would fill 116, so the lot clears at 2.9
        assert settlement.marginal_price == 29 * E18 // 10
        assert settlement.marginal_bid_id == 3
        assert settlement.partial_fill is None
        reloaded.close()

    def test_reload_settled_lot(self, data_dir, keypair):
        auction = open_auction(data_dir)
        lot_id = build_lot(auction, keypair)
        auction.decrypt_batch(lot_id, keypair.private_key, 10, None, current_time=100)
        settlement, _ = auction.settle(lot_id)
        auction.close()

        reloaded = open_auction(data_dir)
        assert reloaded.get_settlement(lot_id) == settlement
        assert reloaded.get_auction_data(lot_id).status == LotStatus.SETTLED
        assert reloaded.get_bid(lot_id, 4).status == BidStatus.DECRYPTED

        claims, err = reloaded.claim_bids(lot_id, [1, 2, 3, 4])
        assert err == ""
        assert [claim.won for claim in claims] == [True, True, True, False]
        reloaded.close()
