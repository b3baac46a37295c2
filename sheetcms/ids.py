"""Sortable, collision-resistant row ids."""

from __future__ import annotations

import secrets
import time

ENTITY_PREFIXES = {
    "user": "usr",
    "post": "pst",
    "product": "prd",
    "category": "cat",
    "content": "cnt",
    "menu": "mnu",
    "setting": "set",
    "testimonial": "tst",
    "faq": "faq",
    "image": "img",
    "contact": "con",
    "fund": "fund",
}

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = _DIGITS[rem] + out
    return out


def generate_id(prefix: str = "") -> str:
    """Millisecond timestamp in base 36 followed by 8 random hex chars."""

    body = f"{_base36(int(time.time() * 1000))}{secrets.token_hex(4)}"
    return f"{prefix}_{body}" if prefix else body


def generate_entity_id(kind: str) -> str:
    """Id with the prefix registered for ``kind``; unknown kinds get ``itm``."""

    return generate_id(ENTITY_PREFIXES.get(kind, "itm"))
