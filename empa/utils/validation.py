"""
Input Validation - Sanitization of lot and bid parameters.

Every validator returns (is_valid, error_message) so that callers can
reject a request before touching any state.
"""

from typing import Any, Tuple

from empa.crypto import Point, is_valid_address, is_valid_point

# =============================================================================
# Constants
# =============================================================================

# Amounts are packed as uint96 into the per-bid encryption salt
MIN_AMOUNT = 0
MAX_AMOUNT = 2**96 - 1

# Lot ids are packed as uint96 too, but also key SQLite INTEGER rows (int64)
MAX_LOT_ID = 2**63 - 1

# Supported token decimals
MIN_DECIMALS = 6
MAX_DECIMALS = 18

# Percentages are expressed in basis points
ONE_HUNDRED_PERCENT = 100_00

MAX_TIMESTAMP = 2**48 - 1


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a non-zero token amount."""
    return validate_integer(amount, name, 1, MAX_AMOUNT)


def validate_decimals(decimals: Any, name: str = "decimals") -> Tuple[bool, str]:
    """Validate token decimals."""
    return validate_integer(decimals, name, MIN_DECIMALS, MAX_DECIMALS)


def validate_percent(value: Any, name: str) -> Tuple[bool, str]:
    """Validate a basis-point percentage."""
    return validate_integer(value, name, 0, ONE_HUNDRED_PERCENT)


def validate_timestamp(value: Any, name: str) -> Tuple[bool, str]:
    """Validate a unix timestamp."""
    return validate_integer(value, name, 0, MAX_TIMESTAMP)


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 0x-prefixed 20-byte address."""
    if not isinstance(address, str):
        return False, f"{name} must be str, got {type(address).__name__}"
    if not is_valid_address(address):
        return False, f"{name} is not a valid address"
    return True, ""


def validate_point(point: Any, name: str = "public_key") -> Tuple[bool, str]:
    """Validate that a point is on alt_bn128 and not the point at infinity."""
    if not isinstance(point, Point):
        return False, f"{name} must be Point, got {type(point).__name__}"
    if not is_valid_point(point):
        return False, f"{name} is not a valid curve point"
    return True, ""


# =============================================================================
# Composite Validators
# =============================================================================


def validate_lot_params(
    seller: Any,
    start: Any,
    conclusion: Any,
    capacity: Any,
    base_decimals: Any,
    quote_decimals: Any,
) -> Tuple[bool, str]:
    """Validate the generic lot parameters."""
    checks = [
        validate_address(seller, "seller"),
        validate_timestamp(start, "start"),
        validate_timestamp(conclusion, "conclusion"),
        validate_amount(capacity, "capacity"),
        validate_decimals(base_decimals, "base_decimals"),
        validate_decimals(quote_decimals, "quote_decimals"),
    ]
    for valid, err in checks:
        if not valid:
            return False, err

    if conclusion <= start:
        return False, "conclusion must be after start"

    return True, ""


def validate_auction_params(params: Any) -> Tuple[bool, str]:
    """Validate the auction-specific parameters of a lot."""
    for field_name in ("min_price", "min_fill_percent", "min_bid_size", "public_key"):
        if not hasattr(params, field_name):
            return False, f"Missing required field: {field_name}"

    valid, err = validate_integer(params.min_price, "min_price", 1, 2**256 - 2)
    if not valid:
        return False, err

    valid, err = validate_percent(params.min_fill_percent, "min_fill_percent")
    if not valid:
        return False, err

    valid, err = validate_integer(params.min_bid_size, "min_bid_size", 0, 2**128 - 1)
    if not valid:
        return False, err

    return validate_point(params.public_key, "public_key")


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_integer",
    "validate_amount",
    "validate_decimals",
    "validate_percent",
    "validate_timestamp",
    "validate_address",
    "validate_point",
    "validate_lot_params",
    "validate_auction_params",
    "MAX_AMOUNT",
    "MAX_LOT_ID",
    "ONE_HUNDRED_PERCENT",
]
