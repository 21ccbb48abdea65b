"""Human-readable byte size parsing and formatting.

Sizes use binary multiples and are case insensitive::

    parse_bytes("512k")  -> 524288
    parse_bytes("16MB")  -> 16777216
    parse_bytes("4096")  -> 4096
    format_bytes(524288) -> "512k"
"""

import argparse

from bulkupload.errors import ConfigurationError

KIB = 1024
MIB = 1024 * KIB

# Longest suffixes first so "mb" is not mistaken for "b".
_UNITS: list[tuple[str, int]] = [
    ("mb", MIB),
    ("kb", KIB),
    ("m", MIB),
    ("k", KIB),
    ("b", 1),
    ("", 1),
]

# Units tried when rendering a size, largest first.
_FORMAT_UNITS: list[tuple[str, int]] = [("m", MIB), ("k", KIB), ("", 1)]


def parse_bytes(text: str | int) -> int:
    """Parse a byte size such as ``"512k"`` or ``"16mb"``.

    Args:
        text: The size string, or an already-parsed integer.

    Returns:
        The size in bytes.

    Raises:
        ConfigurationError: If the value is not a non-negative size.
    """
    if isinstance(text, bool):
        raise ConfigurationError(f"parse({text!r}): not a size")
    if isinstance(text, int):
        if text < 0:
            raise ConfigurationError(f"parse({text}): size must be non-negative")
        return text

    value = text.strip().lower()
    for suffix, multiplier in _UNITS:
        if not value.endswith(suffix):
            continue
        number = value[: len(value) - len(suffix)].strip() if suffix else value
        if not number.isdecimal():
            raise ConfigurationError(f"parse({text}): invalid size")
        return int(number) * multiplier
    raise ConfigurationError(f"parse({text}): invalid size")


def format_bytes(size: int) -> str:
    """Render a byte count in the largest unit that divides it exactly."""
    if size <= 0:
        return "0"
    for suffix, multiplier in _FORMAT_UNITS:
        if size % multiplier == 0:
            break
    return f"{size // multiplier}{suffix}"


def size_arg(text: str) -> int:
    """argparse ``type=`` adapter for byte size flags."""
    try:
        return parse_bytes(text)
    except ConfigurationError as exc:
        raise argparse.ArgumentTypeError(exc.message) from exc
