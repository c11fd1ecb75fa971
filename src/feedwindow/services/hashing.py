"""Hashing utilities."""

from __future__ import annotations

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_DIGITS[remainder])
    return "".join(reversed(digits))


def hash_url(url: str) -> str:
    """Return a short base-36 article ID derived from ``url``.

    Uses the 31-multiplier string hash over UTF-16 code units, wrapped to a
    signed 32-bit integer. Distinct URLs can collide.
    """

    encoded = url.encode("utf-16-le", "surrogatepass")
    value = 0
    for index in range(0, len(encoded), 2):
        code_unit = encoded[index] | (encoded[index + 1] << 8)
        value = (value * 31 + code_unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))
