"""Conversion of raw nvidia-smi cell values into floats."""

import re


NUMERIC_PATTERN = re.compile(r'[+-]?(\d*[.])?\d+')

HEX_PREFIX = "0x"

# Optional 0x/0X prefix followed by plain hex digits only
HEX_PATTERN = re.compile(r'(?:0[xX])?([0-9a-fA-F]+)')

# Checked in order after lower-casing
ENUM_VALUES = (
    (("enabled", "yes", "active"), 1.0),
    (("disabled", "no", "not active"), 0.0),
    (("default",), 0.0),
    (("exclusive_thread",), 1.0),
    (("prohibited",), 2.0),
    (("exclusive_process",), 3.0),
)


class ValueParseError(ValueError):
    """Raised when a raw cell value cannot be turned into a number."""

    def __init__(self, raw_value: str, reason: str = "could not parse number from value"):
        self.raw_value = raw_value
        super().__init__(f"{reason}: {raw_value!r}")


def hex_to_decimal(value: str) -> float:
    """
    Convert a hex string such as '0x1E240' into its decimal value.

    Args:
        value: Hex string, with or without a 0x prefix

    Returns:
        float: Decimal value

    Raises:
        ValueParseError: If the digits are not valid hex
    """
    match = HEX_PATTERN.fullmatch(value)
    if match is None:
        raise ValueParseError(value, reason="failed to parse hex value")

    parsed = int(match.group(1), 16)

    if parsed >= 2 ** 64:
        raise ValueParseError(value, reason="hex value out of range")

    return float(parsed)


def transform_raw_value(raw_value: str, multiplier: float = 1.0) -> float:
    """
    Transform a raw cell value into a float.

    Hex values are returned as-is (the multiplier is not applied, they are
    bitmasks rather than physical quantities). Known textual states map to
    fixed codes. Anything else must contain exactly one number, which is
    scaled by the multiplier.

    Args:
        raw_value: Cell value as printed by nvidia-smi
        multiplier: Unit multiplier for the field

    Returns:
        float: Numeric value

    Raises:
        ValueParseError: If no single number can be extracted
    """
    trimmed = raw_value.strip()
    if trimmed.startswith(HEX_PREFIX):
        return hex_to_decimal(trimmed)

    lowered = trimmed.lower()
    for names, value in ENUM_VALUES:
        if lowered in names:
            return value

    return _parse_with_best_effort(lowered, multiplier)


def _parse_with_best_effort(value: str, multiplier: float) -> float:
    """Extract exactly one number from value and scale it."""
    matches = [m.group(0) for m in NUMERIC_PATTERN.finditer(value)][:2]
    if len(matches) != 1:
        raise ValueParseError(value)

    return float(matches[0]) * multiplier
