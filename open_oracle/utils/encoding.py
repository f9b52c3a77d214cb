"""
Integer encodings for msgpack payloads.

msgpack only carries 64-bit integers, while asset amounts and scaled prices
routinely exceed that range.
"""

UINT256_MAX = (1 << 256) - 1


def to_uint256(value: int) -> bytes:
    """Encode a non-negative integer as a 32-byte big-endian word."""
    if not 0 <= value <= UINT256_MAX:
        raise ValueError(f"Value out of uint256 range: {value}")
    return value.to_bytes(32, "big")


def from_uint256(word: bytes) -> int:
    """Decode a 32-byte big-endian word."""
    if len(word) != 32:
        raise ValueError("uint256 words must be 32 bytes")
    return int.from_bytes(word, "big")


def stringify_ints(obj):
    """Recursively replace integers with their decimal strings.

    Booleans are left alone. Dict keys are not touched.
    """
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, dict):
        return {k: stringify_ints(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [stringify_ints(v) for v in obj]
    return obj
