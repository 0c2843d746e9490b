"""Shared type definitions for intent models.

Addresses travel as 20-byte hex strings inside the solver, but ERC-7683
events carry them left-padded to 32 bytes. Helpers here convert between
the two representations.
"""

from typing import Annotated, Any

from pydantic import BeforeValidator, Field

# Maximum uint256 value
UINT256_MAX = 2**256 - 1

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = "0x" + "00" * 32


def validate_uint256(value: Any) -> int:
    """Validate that a value fits in a uint256.

    Args:
        value: int or decimal/hex string

    Returns:
        The value as a Python int

    Raises:
        ValueError: If value is negative, too large, or not an integer
    """
    if isinstance(value, bool):
        raise ValueError("Uint256 cannot be a boolean")

    if isinstance(value, str):
        try:
            value = int(value, 16) if value.startswith("0x") else int(value)
        except ValueError as err:
            raise ValueError(f"Uint256 must be an integer string: '{value}'") from err

    if not isinstance(value, int):
        raise ValueError(f"Uint256 must be string or int, got {type(value).__name__}")

    if value < 0:
        raise ValueError(f"Uint256 cannot be negative: {value}")
    if value > UINT256_MAX:
        raise ValueError(f"Uint256 overflow: {value} > 2^256-1")

    return value


def validate_hex_bytes(value: Any) -> str:
    """Accept raw bytes or a 0x-prefixed hex string, return lowercase hex."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    raise ValueError(f"Expected bytes or hex string, got {type(value).__name__}")


def validate_address(value: Any) -> str:
    """Normalize an address given as 20 bytes, 32 bytes, or hex string."""
    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex()
    if not isinstance(value, str):
        raise ValueError(f"Address must be a string, got {type(value).__name__}")
    if len(value) == 66:
        value = bytes32_to_address(value)
    return normalize_address(value, validate=True)


# Ethereum address, lowercased
Address = Annotated[str, BeforeValidator(validate_address)]

# 256-bit unsigned integer
Uint256 = Annotated[
    int,
    BeforeValidator(validate_uint256),
    Field(description="256-bit unsigned integer"),
]

# Arbitrary hex bytes
Bytes = Annotated[str, BeforeValidator(validate_hex_bytes), Field(pattern=r"^0x[a-f0-9]*$")]

# 32-byte identifier (order ids)
Bytes32 = Annotated[
    str, BeforeValidator(validate_hex_bytes), Field(pattern=r"^0x[a-f0-9]{64}$")
]


def normalize_address(address: str, *, validate: bool = False) -> str:
    """Normalize an Ethereum address to lowercase.

    Args:
        address: An Ethereum address (with or without 0x prefix)
        validate: If True, raises ValueError for invalid addresses.

    Returns:
        Lowercase address with 0x prefix

    Raises:
        ValueError: If validate=True and address is not a valid Ethereum address
    """
    addr = address.lower()
    if not addr.startswith("0x"):
        addr = "0x" + addr

    if validate and not is_valid_address(addr):
        raise ValueError(f"Invalid address: {address}")

    return addr


def is_valid_address(address: str) -> bool:
    """Check if a string is a valid Ethereum address."""
    if not isinstance(address, str):
        return False
    if not address.startswith("0x"):
        return False
    if len(address) != 42:
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False


def addresses_equal(a: str, b: str) -> bool:
    """Compare two addresses ignoring checksum casing."""
    return normalize_address(a) == normalize_address(b)


def is_native(token: str) -> bool:
    """The zero address stands for the chain's native asset."""
    return addresses_equal(token, ZERO_ADDRESS)


def bytes32_to_address(value: str | bytes) -> str:
    """Take the low 20 bytes of a left-padded bytes32 value."""
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).hex()
    hex_value = value[2:] if value.startswith("0x") else value
    if len(hex_value) != 64:
        raise ValueError(f"Expected 32 bytes, got {len(hex_value) // 2}")
    return "0x" + hex_value[-40:].lower()


def address_to_bytes32(address: str) -> bytes:
    """Left-pad a 20-byte address to 32 bytes."""
    addr = normalize_address(address, validate=True)
    return bytes.fromhex(addr[2:]).rjust(32, b"\x00")


def order_id_to_bytes(order_id: str) -> bytes:
    """Convert a 0x-prefixed order id into raw bytes32."""
    raw = bytes.fromhex(order_id[2:] if order_id.startswith("0x") else order_id)
    if len(raw) != 32:
        raise ValueError(f"Order id must be 32 bytes, got {len(raw)}")
    return raw
