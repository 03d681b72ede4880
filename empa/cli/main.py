"""
EMPA CLI - Command Line Interface for the encrypted marginal price auction

Main entry point for all CLI commands.
"""

import json
from dataclasses import replace
from pathlib import Path

import click
from pydantic import ValidationError

from empa.utils.logger import configure_logging


def _parse_int(value: str) -> int:
    """Parse a decimal or 0x-prefixed integer."""
    return int(value, 16) if value.lower().startswith("0x") else int(value)


class IntParam(click.ParamType):
    """Integer given in decimal or hex."""
    name = "integer"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            return _parse_int(value)
        except ValueError:
            self.fail(f"{value!r} is not a valid integer", param, ctx)


INT = IntParam()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Load EMPA_* settings from a .env file",
)
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, env_file):
    """Encrypted Marginal Price Auction - sealed-bid batch auction engine"""
    from empa.core.config import load_config

    try:
        config = load_config(env_file)
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    configure_logging(config, debug=debug)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Key and Encryption Commands
# =============================================================================


@cli.command("keygen")
def keygen():
    """Generate an auction key pair"""
    from empa.crypto import generate_keypair

    kp = generate_keypair()
    click.echo(f"private_key: {kp.private_key_hex}")
    click.echo(f"public_key_x: {hex(kp.public_key.x)}")
    click.echo(f"public_key_y: {hex(kp.public_key.y)}")


@cli.command("encrypt")
@click.argument("value", type=INT)
@click.argument("public_key_x", type=INT)
@click.argument("public_key_y", type=INT)
@click.argument("salt", type=INT)
def encrypt_cmd(value, public_key_x, public_key_y, salt):
    """Encrypt a bid value to an auction public key"""
    from empa.crypto import Point, encrypt_bid, is_valid_point

    public_key = Point(public_key_x, public_key_y)
    if not is_valid_point(public_key):
        raise click.BadParameter("public key is not on the curve")

    try:
        ciphertext, bid_public_key = encrypt_bid(value, public_key, salt)
    except ValueError as e:
        raise click.BadParameter(str(e))

    click.echo(f"ciphertext: {hex(ciphertext)}")
    click.echo(f"bid_public_key_x: {hex(bid_public_key.x)}")
    click.echo(f"bid_public_key_y: {hex(bid_public_key.y)}")


@cli.command("decrypt")
@click.argument("ciphertext", type=INT)
@click.argument("bid_public_key_x", type=INT)
@click.argument("bid_public_key_y", type=INT)
@click.argument("private_key", type=INT)
@click.argument("salt", type=INT)
def decrypt_cmd(ciphertext, bid_public_key_x, bid_public_key_y, private_key, salt):
    """Decrypt a bid value with the auction private key"""
    from empa.crypto import Point, decrypt_bid

    try:
        value = decrypt_bid(ciphertext, Point(bid_public_key_x, bid_public_key_y), private_key, salt)
    except ValueError as e:
        raise click.BadParameter(str(e))

    click.echo(f"value: {value}")


# =============================================================================
# Simulation Command
# =============================================================================


@cli.command("simulate")
@click.argument("scenario_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--db", "data_dir", default=None, type=click.Path(file_okay=False), help="Persist lots to this directory")
@click.option("--json", "as_json", is_flag=True, help="Print the settlement as JSON")
@click.pass_context
def simulate(ctx, scenario_file, data_dir, as_json):
    """Run a whole auction from a scenario file"""
    from empa.core.auction import AuctionParams, BidStatus, EncryptedMarginalPriceAuction, LotStatus
    from empa.core.auction.decryptor import OffchainDecryptor
    from empa.core.storage import StorageManager
    from empa.cli.schemas import Scenario
    from empa.crypto import bid_encryption_salt, encrypt_bid, generate_keypair

    try:
        scenario = Scenario.model_validate(json.loads(Path(scenario_file).read_text()))
    except (ValidationError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Invalid scenario: {e}")

    config = ctx.obj["config"]
    if scenario.queue_kind is not None:
        try:
            config = replace(config, queue_kind=scenario.queue_kind)
        except ValueError as e:
            raise click.ClickException(str(e))

    storage = StorageManager(Path(data_dir)) if data_dir else None
    auction = EncryptedMarginalPriceAuction(config=config, storage_manager=storage)

    lot = scenario.lot
    kp = generate_keypair()
    params = AuctionParams(
        min_price=lot.min_price,
        min_fill_percent=lot.min_fill_percent,
        min_bid_size=lot.min_bid_size,
        public_key=kp.public_key,
    )
    lot_id, err = auction.create_lot(
        seller=lot.seller,
        start=lot.start,
        conclusion=lot.conclusion,
        capacity=lot.capacity,
        base_decimals=lot.base_decimals,
        quote_decimals=lot.quote_decimals,
        params=params,
    )
    if err:
        raise click.ClickException(f"Lot creation failed: {err}")

    for bid in scenario.bids:
        salt = bid_encryption_salt(lot_id, bid.bidder, bid.amount)
        ciphertext, bid_public_key = encrypt_bid(bid.amount_out, kp.public_key, salt)
        _, err = auction.submit_bid(
            lot_id, bid.bidder, bid.amount, ciphertext, bid_public_key,
            current_time=lot.start, recipient=bid.recipient,
        )
        if err:
            raise click.ClickException(f"Bid rejected: {err}")

    ok, err = auction.submit_private_key(lot_id, kp.private_key, current_time=lot.conclusion)
    if not ok:
        raise click.ClickException(err)

    decryptor = OffchainDecryptor(auction, lot_id, kp.private_key)
    while auction.get_auction_data(lot_id).status == LotStatus.CREATED:
        _, err = decryptor.run(scenario.decrypt_batch, current_time=lot.conclusion)
        if err:
            raise click.ClickException(err)

    settlement = None
    while settlement is None:
        settlement, err = auction.settle(lot_id, scenario.settle_batch)
        if err:
            raise click.ClickException(err)

    claims, err = auction.claim_bids(
        lot_id,
        [bid_id for bid_id in auction.get_bid_ids(lot_id)
         if auction.get_bid(lot_id, bid_id).status == BidStatus.DECRYPTED],
    )
    if err:
        raise click.ClickException(err)
    auction.close()

    if as_json:
        out = {
            "lot_id": lot_id,
            "succeeded": settlement.succeeded,
            "marginal_price": str(settlement.marginal_price),
            "marginal_bid_id": settlement.marginal_bid_id,
            "total_in": str(settlement.total_in),
            "total_out": str(settlement.total_out),
            "capacity_refund": str(settlement.capacity_refund),
            "partial_fill": None if settlement.partial_fill is None else {
                "bid_id": settlement.partial_fill.bid_id,
                "payout": str(settlement.partial_fill.payout),
                "refund": str(settlement.partial_fill.refund),
            },
            "claims": [
                {"bid_id": c.bid_id, "paid": str(c.paid), "payout": str(c.payout), "refund": str(c.refund)}
                for c in claims
            ],
        }
        click.echo(json.dumps(out, indent=2))
        return

    click.echo(f"Lot {lot_id}: {'settled' if settlement.succeeded else 'failed, all bids refunded'}")
    if settlement.succeeded:
        click.echo(f"  Marginal price: {settlement.marginal_price}")
        click.echo(f"  Marginal bid: {settlement.marginal_bid_id}")
    click.echo(f"  Total in: {settlement.total_in}")
    click.echo(f"  Total out: {settlement.total_out}")
    click.echo(f"  Returned to seller: {settlement.capacity_refund}")
    if settlement.partial_fill:
        pf = settlement.partial_fill
        click.echo(f"  Partial fill: bid {pf.bid_id}, payout={pf.payout}, refund={pf.refund}")
    for c in claims:
        outcome = f"payout={c.payout}" if c.won else f"refund={c.refund}"
        click.echo(f"  Bid {c.bid_id}: {outcome}")


if __name__ == "__main__":
    cli()
