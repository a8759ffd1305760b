"""
Text normalization for accent-insensitive search.

The composite search text of a task and every incoming search string go
through the same function, so containment on the normalized forms is
case- and diacritic-insensitive. Stored values and queries must agree
bit-for-bit: NFD, strip U+0300..U+036F, đ -> d. Control characters count
as whitespace, so neither side ever carries a NUL.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_WHITESPACE = re.compile(r"\s+")
_CONTROL = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def remove_accents(text: str) -> str:
    """Strip Vietnamese (and other Latin) diacritics, keeping case.

    >>> remove_accents("Nguyễn Văn A")
    'Nguyen Van A'
    >>> remove_accents("Điện thoại")
    'Dien thoai'
    """
    decomposed = unicodedata.normalize("NFD", text)
    return _COMBINING_MARKS.sub("", decomposed).replace("đ", "d").replace("Đ", "D")


def normalize_for_search(*fields: Optional[str]) -> str:
    """Join the non-empty fields into one lower-case, accent-free, single-spaced string.

    Idempotent: ``normalize_for_search(normalize_for_search(x)) == normalize_for_search(x)``.
    """
    parts = [f for f in fields if f]
    if not parts:
        return ""
    # lower() first: it can introduce combining marks (e.g. "İ" -> "i̇")
    text = remove_accents(_CONTROL.sub(" ", " ".join(parts)).lower())
    return _WHITESPACE.sub(" ", text).strip()
