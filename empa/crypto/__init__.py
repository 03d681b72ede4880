"""
Cryptographic primitives for EMPA.

This module provides:
- Keccak-256 hashing (EVM-compatible)
- Key generation on the alt_bn128 (BN254) G1 group
- ECIES-style encryption of sealed bid values
- Curve membership checks for submitted public keys

Design Notes:
-------------
We use alt_bn128 because its G1 operations are cheap to verify in an EVM-like
environment (ecAdd/ecMul precompiles), so a submitted private key can be
checked against the recorded public key and bid public keys can be checked
for curve membership without heavy computation.

Bid values are never encrypted directly. A bidder packs a random 128-bit seed
together with `seed - value (mod 2^128)` into one 256-bit word before
encryption. Recovering the value requires both halves, which defeats
leading-zero analysis of the ciphertext.

Encryption:
    shared    = bid_private_key * auction_public_key
    key       = keccak256(x(shared) || salt)
    ciphertext = message XOR key

Decryption is symmetric, using auction_private_key * bid_public_key.
"""

import secrets
from dataclasses import dataclass
from typing import Optional, Tuple

from Crypto.Hash import keccak
from py_ecc.bn128 import FQ, G1, b, curve_order, field_modulus, is_on_curve, multiply


# =============================================================================
# Constants
# =============================================================================

# Base field modulus and group order of alt_bn128
FIELD_MODULUS = field_modulus
CURVE_ORDER = curve_order

# Width of each half of the packed bid message
HALF_WORD_BITS = 128
HALF_WORD_MASK = (1 << HALF_WORD_BITS) - 1
WORD_MASK = (1 << 256) - 1


# =============================================================================
# Hashing
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: symmetric key derivation, per-bid encryption salts.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Points and Keys
# =============================================================================


@dataclass(frozen=True)
class Point:
    """
    An affine point on alt_bn128 G1.

    (0, 0) is used as the encoding of the point at infinity, which is never
    a valid public key.
    """
    x: int
    y: int

    def to_bytes(self) -> bytes:
        """64-byte encoding (x || y)."""
        return self.x.to_bytes(32, "big") + self.y.to_bytes(32, "big")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Point":
        if len(data) != 64:
            raise ValueError("Point encoding must be 64 bytes")
        return cls(int.from_bytes(data[:32], "big"), int.from_bytes(data[32:], "big"))

    def to_dict(self) -> dict:
        return {"x": hex(self.x), "y": hex(self.y)}

    @classmethod
    def from_dict(cls, data: dict) -> "Point":
        return cls(int(data["x"], 16), int(data["y"], 16))


GENERATOR = Point(1, 2)
INFINITY = Point(0, 0)


@dataclass
class KeyPair:
    """
    A key pair on alt_bn128.

    Attributes:
        private_key: scalar in [1, CURVE_ORDER - 1]
        public_key: private_key * G
    """
    private_key: int
    public_key: Point

    @property
    def private_key_hex(self) -> str:
        """Return private key as 0x-prefixed hex string."""
        return bytes_to_hex(self.private_key.to_bytes(32, "big"))


def _to_curve(point: Point):
    return (FQ(point.x), FQ(point.y))


def _from_curve(pt) -> Point:
    if pt is None:
        return INFINITY
    return Point(pt[0].n, pt[1].n)


def is_valid_point(point: Point) -> bool:
    """
    Check that a point is a usable public key.

    Rejects the point at infinity, coordinates outside the base field and any
    point that does not satisfy y^2 = x^3 + 3.
    """
    if not isinstance(point, Point):
        return False
    if point.x <= 0 or point.y <= 0:
        return False
    if point.x >= FIELD_MODULUS or point.y >= FIELD_MODULUS:
        return False
    return is_on_curve(_to_curve(point), b)


def _check_scalar(scalar: int) -> None:
    if not isinstance(scalar, int) or scalar <= 0 or scalar >= CURVE_ORDER:
        raise ValueError("Private key must be in [1, curve_order)")


def derive_public_key(private_key: int, base: Point = GENERATOR) -> Point:
    """
    Derive a public key by scalar multiplication.

    Args:
        private_key: scalar in [1, CURVE_ORDER - 1]
        base: base point, the generator unless deriving a shared secret

    Returns:
        private_key * base
    """
    _check_scalar(private_key)
    if not is_valid_point(base):
        raise ValueError("Base point is not on the curve")
    return _from_curve(multiply(_to_curve(base), private_key))


def generate_keypair() -> KeyPair:
    """
    Generate a new random key pair.

    Uses cryptographically secure random number generator.
    """
    private_key = secrets.randbelow(CURVE_ORDER - 1) + 1
    return KeyPair(private_key=private_key, public_key=derive_public_key(private_key))


# =============================================================================
# ECIES
# =============================================================================


def derive_symmetric_key(public_key: Point, private_key: int, salt: int) -> int:
    """
    Derive the symmetric key shared between the two key holders.

    key = keccak256(x(private_key * public_key) || salt)
    """
    shared = derive_public_key(private_key, base=public_key)
    data = shared.x.to_bytes(32, "big") + (salt & WORD_MASK).to_bytes(32, "big")
    return int.from_bytes(keccak256(data), "big")


def encrypt(
    message: int,
    recipient_public_key: Point,
    private_key: int,
    salt: int,
) -> Tuple[int, Point]:
    """
    Encrypt a 256-bit message to a recipient public key.

    Args:
        message: 256-bit integer to encrypt
        recipient_public_key: public key of the party able to decrypt
        private_key: sender's ephemeral private key
        salt: per-message context mixed into the symmetric key

    Returns:
        (ciphertext, message_public_key)
    """
    if message < 0 or message > WORD_MASK:
        raise ValueError("Message must fit in 256 bits")
    if not is_valid_point(recipient_public_key):
        raise ValueError("Recipient public key is not on the curve")

    message_public_key = derive_public_key(private_key)
    symmetric_key = derive_symmetric_key(recipient_public_key, private_key, salt)
    return message ^ symmetric_key, message_public_key


def decrypt(ciphertext: int, message_public_key: Point, private_key: int, salt: int) -> int:
    """
    Decrypt a ciphertext produced by `encrypt`.

    Args:
        ciphertext: encrypted 256-bit word
        message_public_key: sender's ephemeral public key
        private_key: recipient private key
        salt: per-message context used at encryption time

    Returns:
        The 256-bit plaintext message
    """
    if not is_valid_point(message_public_key):
        raise ValueError("Message public key is not on the curve")
    symmetric_key = derive_symmetric_key(message_public_key, private_key, salt)
    return (ciphertext & WORD_MASK) ^ symmetric_key


# =============================================================================
# Bid Value Packing
# =============================================================================


def pack_bid_value(value: int, seed: int) -> int:
    """
    Pack a bid value with a random seed.

    The upper half holds the seed, the lower half holds seed - value,
    wrapping modulo 2^128.
    """
    if value < 0 or value > HALF_WORD_MASK:
        raise ValueError("Bid value must fit in 128 bits")
    seed &= HALF_WORD_MASK
    masked = (seed - value) & HALF_WORD_MASK
    return (seed << HALF_WORD_BITS) | masked


def unpack_bid_value(message: int) -> int:
    """Recover the bid value from a packed message (wrapping subtraction)."""
    seed = (message >> HALF_WORD_BITS) & HALF_WORD_MASK
    masked = message & HALF_WORD_MASK
    return (seed - masked) & HALF_WORD_MASK


def encrypt_bid(
    value: int,
    auction_public_key: Point,
    salt: int,
    seed: Optional[int] = None,
    bid_private_key: Optional[int] = None,
) -> Tuple[int, Point]:
    """
    Encrypt a bid value for an auction.

    Args:
        value: secret bid value (128 bits)
        auction_public_key: the lot's public key
        salt: per-bid context, see `bid_encryption_salt`
        seed: masking seed, random if not given
        bid_private_key: ephemeral key, random if not given

    Returns:
        (ciphertext, bid_public_key)
    """
    if seed is None:
        seed = secrets.randbits(HALF_WORD_BITS)
    if bid_private_key is None:
        bid_private_key = secrets.randbelow(CURVE_ORDER - 1) + 1
    return encrypt(pack_bid_value(value, seed), auction_public_key, bid_private_key, salt)


def decrypt_bid(ciphertext: int, bid_public_key: Point, private_key: int, salt: int) -> int:
    """Decrypt and unmask a bid value."""
    return unpack_bid_value(decrypt(ciphertext, bid_public_key, private_key, salt))


def bid_encryption_salt(lot_id: int, bidder: str, amount: int) -> int:
    """
    Per-bid encryption context.

    keccak256(lot_id (uint96) || bidder (20 bytes) || amount (uint96))

    Binding the ciphertext to the lot, bidder and tendered amount stops a
    ciphertext from being copied into another bid.
    """
    data = (
        lot_id.to_bytes(12, "big")
        + hex_to_bytes(bidder).rjust(20, b"\x00")
        + amount.to_bytes(12, "big")
    )
    return int.from_bytes(keccak256(data), "big")


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not isinstance(address, str) or not address.startswith("0x"):
        return False
    if len(address) != 42:  # 0x + 40 hex chars
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False
