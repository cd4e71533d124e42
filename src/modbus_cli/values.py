"""Parse command-line value tokens into coil and register values; bit/word packing."""

import re
from collections.abc import Iterable, Sequence

from .errors import ValidationError

_TRUE_TOKENS = frozenset({"true", "1", "on"})
_FALSE_TOKENS = frozenset({"false", "0", "off"})

# Explicit ASCII grammars; int() alone would also accept "1_000", "٣" and inner spaces.
_DECIMAL_PATTERN = re.compile(r"^[+-]?[0-9]+$")
_HEX_DIGITS_PATTERN = re.compile(r"^[0-9A-Fa-f]+$")

_WORD_MIN = -32768
_WORD_MAX = 0xFFFF


def _strip_hex_prefix(token: str) -> tuple[str, bool]:
    if token[:2].lower() == "0x":
        return token[2:], True
    return token, False


def parse_coil(value: str) -> bool:
    """Parse a coil value: true/false, 1/0 or on/off, case-insensitive."""
    normalized = value.strip().lower()
    if normalized in _TRUE_TOKENS:
        return True
    if normalized in _FALSE_TOKENS:
        return False
    raise ValidationError(
        f"Invalid coil value: {value!r}. Use true/false, 1/0, or on/off",
        value=value,
    )


def parse_register(value: str) -> int:
    """
    Parse a register value in decimal (sign allowed) or hex with a 0x prefix.

    The result is not range-checked; see to_word() for the 16-bit wire form.
    """
    normalized = value.strip()
    digits, is_hex = _strip_hex_prefix(normalized)
    if is_hex:
        if _HEX_DIGITS_PATTERN.match(digits):
            return int(digits, 16)
    elif _DECIMAL_PATTERN.match(normalized):
        return int(normalized, 10)
    raise ValidationError(
        f"Invalid value: {value!r}. Use decimal (e.g., 1234) or hex (e.g., 0x04D2)",
        value=value,
    )


def parse_hex(value: str) -> int:
    """Parse a hex value with or without a 0x prefix (e.g. 0xFFFF or FFFF)."""
    digits, _ = _strip_hex_prefix(value.strip())
    if not _HEX_DIGITS_PATTERN.match(digits):
        raise ValidationError(
            f"Invalid hex value: {value!r}. Use format: 0xFFFF or FFFF",
            value=value,
        )
    return int(digits, 16)


def to_word(value: int) -> int:
    """Map a parsed register value onto an unsigned 16-bit word (negatives as two's complement)."""
    if not _WORD_MIN <= value <= _WORD_MAX:
        raise ValidationError(
            f"Register value out of 16-bit range ({_WORD_MIN} to {_WORD_MAX}): {value}",
            value=str(value),
        )
    return value & 0xFFFF


def _split_values(text: str, quantity: int, what: str = "values") -> list[str]:
    tokens = [t.strip() for t in text.split(",")]
    if len(tokens) != quantity:
        raise ValidationError(
            f"number of {what} ({len(tokens)}) does not match quantity ({quantity})",
            value=text,
        )
    return tokens


def parse_coil_list(text: str, quantity: int) -> list[bool]:
    """Parse comma-separated coil values; the count must equal quantity."""
    return [parse_coil(t) for t in _split_values(text, quantity)]


def parse_register_list(text: str, quantity: int, what: str = "values") -> list[int]:
    """Parse comma-separated register values into 16-bit words; the count must equal quantity."""
    return [to_word(parse_register(t)) for t in _split_values(text, quantity, what)]


def pack_bits(bits: Sequence[bool]) -> bytes:
    """Pack bits LSB-first: bit i lands in byte i // 8 at position i % 8."""
    packed = bytearray((len(bits) + 7) // 8)
    for i, bit in enumerate(bits):
        if bit:
            packed[i // 8] |= 1 << (i % 8)
    return bytes(packed)


def unpack_bits(data: bytes, quantity: int) -> list[bool]:
    """Unpack the first quantity bits of LSB-first packed data."""
    if quantity > len(data) * 8:
        raise ValueError(f"quantity {quantity} exceeds the {len(data) * 8} bits available")
    return [bool((data[i // 8] >> (i % 8)) & 1) for i in range(quantity)]


def registers_to_bytes(registers: Iterable[int]) -> bytes:
    """Serialize 16-bit register values big-endian, 2 bytes each."""
    return b"".join((r & 0xFFFF).to_bytes(2, "big") for r in registers)
