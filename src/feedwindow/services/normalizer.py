"""Clean-up of text fields extracted from feed documents."""

from __future__ import annotations

import re

__all__ = ["decode_entities", "normalize", "strip_cdata"]

_CDATA_BLOCK = re.compile(r"<!?\[CDATA\[(.*?)\]\]>", re.DOTALL)
_CDATA_OPEN = re.compile(r"(?:<!?)?\[CDATA\[")
_CDATA_CLOSE = re.compile(r"\]\]>?")

NAMED_ENTITIES = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
    "nbsp": "\u00a0",
    "ndash": "–",
    "mdash": "—",
    "lsquo": "‘",
    "rsquo": "’",
    "sbquo": "‚",
    "ldquo": "“",
    "rdquo": "”",
    "bdquo": "„",
}

_NAMED_ENTITY = re.compile(r"&(" + "|".join(NAMED_ENTITIES) + r");")
_DECIMAL_ENTITY = re.compile(r"&#(\d+);")
_HEX_ENTITY = re.compile(r"&#[xX]([0-9a-fA-F]+);")


def strip_cdata(text: str) -> str:
    """Replace ``<![CDATA[...]]>`` blocks with their content and drop stray markers."""

    text = _CDATA_BLOCK.sub(r"\1", text)
    text = _CDATA_OPEN.sub("", text)
    return _CDATA_CLOSE.sub("", text)


def _code_point(match: re.Match[str], base: int) -> str:
    try:
        value = int(match.group(1), base)
    except ValueError:
        return match.group(0)
    # NUL, lone surrogates and out-of-range values are left as written.
    if value == 0 or 0xD800 <= value <= 0xDFFF or value > 0x10FFFF:
        return match.group(0)
    return chr(value)


def decode_entities(text: str) -> str:
    """Decode the supported named entities, then decimal and hex references."""

    text = _NAMED_ENTITY.sub(lambda match: NAMED_ENTITIES[match.group(1)], text)
    text = _DECIMAL_ENTITY.sub(lambda match: _code_point(match, 10), text)
    return _HEX_ENTITY.sub(lambda match: _code_point(match, 16), text)


def normalize(raw: str | None) -> str:
    """Return ``raw`` without CDATA wrappers and with HTML entities decoded.

    Best effort only: malformed input is cleaned as far as possible and never
    raises.
    """

    if not raw:
        return ""
    return decode_entities(strip_cdata(raw)).strip()
