from __future__ import annotations

import re
import time
import unicodedata
from typing import Awaitable, Callable

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def slugify(
    text,
    separator: str = "-",
    lowercase: bool = True,
    max_length: int = 100,
    remove_numbers: bool = False,
) -> str:
    if not text or not isinstance(text, str):
        return ""

    sep = re.escape(separator)
    slug = unicodedata.normalize("NFD", text.strip())
    slug = "".join(ch for ch in slug if not unicodedata.combining(ch))
    slug = re.sub(r"[\s_]+", separator, slug)
    slug = re.sub(rf"[^a-zA-Z0-9{sep}]", "", slug)
    slug = re.sub(rf"(?:{sep})+", separator, slug)
    slug = re.sub(rf"^{sep}|{sep}$", "", slug)

    if lowercase:
        slug = slug.lower()
    if remove_numbers:
        slug = re.sub(r"[0-9]", "", slug)
    if len(slug) > max_length:
        slug = re.sub(rf"{sep}$", "", slug[:max_length])
    return slug


async def unique_slug(
    text: str,
    exists: Callable[[str], Awaitable[bool]],
    max_attempts: int = 100,
) -> str:
    """Slugify ``text`` and suffix -1, -2, ... until ``exists`` says no.

    After ``max_attempts`` collisions the millisecond timestamp is used as
    the suffix instead.
    """

    base = slugify(text)
    candidate = base
    counter = 1
    while await exists(candidate):
        if counter > max_attempts:
            return f"{base}-{int(time.time() * 1000)}"
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def unslugify(slug) -> str:
    if not slug or not isinstance(slug, str):
        return ""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), slug.replace("-", " "))


def is_valid_slug(slug) -> bool:
    if not slug or not isinstance(slug, str):
        return False
    return bool(_SLUG_RE.match(slug))
