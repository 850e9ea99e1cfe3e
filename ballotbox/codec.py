# codec.py
#
# Big numbers (ciphertexts, n, g, λ, μ) routinely exceed 2048 bits, so at
# every serialization boundary they travel as decimal or 0x-hex strings,
# never as fixed-width integers.
#
# Python 3.11+ caps int <-> decimal str conversion (4300 digits by default).
# Numbers past that cap are written as hex, which has no cap and which
# decode_int accepts everywhere.

import hashlib
import math
import sys

LOG10_2 = math.log10(2)


def _decimal_limit():
    """Interpreter's int/str digit cap; 0 means unlimited."""
    get_limit = getattr(sys, "get_int_max_str_digits", None)
    return get_limit() if get_limit is not None else 0


def fits_decimal(value):
    """True if `value` can go through str()/int() in base 10 on this interpreter."""
    limit = _decimal_limit()
    return limit == 0 or math.floor(value.bit_length() * LOG10_2) + 1 <= limit


def encode_int(value, fmt="dec"):
    """
    Encode a non-negative integer as text.
    - fmt: "dec" for decimal, "hex" for 0x-prefixed lowercase hex
    Decimal output falls back to hex for numbers beyond the interpreter's
    decimal conversion cap.
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError("Only non-negative integers can be encoded")
    if fmt == "dec":
        return str(value) if fits_decimal(value) else hex(value)
    if fmt == "hex":
        return hex(value)
    raise ValueError(f"Unknown number encoding {fmt!r}")


def decode_int(text):
    """
    Decode a non-negative integer from an int, a decimal string or a
    0x-prefixed hex string. Anything else raises ValueError.
    """
    if isinstance(text, bool):
        raise ValueError("Booleans are not numbers here")
    if isinstance(text, int):
        value = text
    elif isinstance(text, str):
        s = text.strip()
        try:
            if s[:2].lower() == "0x":
                value = int(s[2:], 16)
            elif s.isdigit() and s.isascii():
                value = int(s, 10)
            else:
                raise ValueError
        except ValueError:
            raise ValueError(f"Not a decimal or hex number: {text[:20]!r}") from None
    else:
        raise ValueError(f"Cannot decode a number from {type(text).__name__}")
    if value < 0:
        raise ValueError("Negative numbers are not valid here")
    return value


def preview(value, width=50):
    """Short display form of a big number, e.g. for snapshots and logs."""
    if isinstance(value, int) and not isinstance(value, bool):
        s = encode_int(value) if value >= 0 else "-" + encode_int(-value)
    else:
        s = str(value)
    return s if len(s) <= width else s[:width] + "..."


def digest(value):
    """SHA-256 hex digest of a number's big-endian bytes (ballot receipt / audit)."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError("Only non-negative integers can be digested")
    return hashlib.sha256(value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")).hexdigest()
