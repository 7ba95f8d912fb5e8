"""
Free-text sanitising for values that end up rendered in back-office pages.
"""
from __future__ import annotations

import html
import re
from typing import Optional

from domain.common.exceptions import DomainValidationException

_TAGS = re.compile(r"<[^>]*>")
_DANGEROUS = [
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
    re.compile(r"behavior\s*:", re.IGNORECASE),
]


def sanitize_text(value: Optional[str], *, max_length: Optional[int] = None, field: Optional[str] = None) -> str:
    """
    Strip markup and script vectors, then HTML-escape what is left.

    Escaping lengthens text (``&`` becomes ``&amp;``), so `max_length` is
    checked on the stored form and raises DomainValidationException when the
    escaped value no longer fits its column.
    """
    if not value or not isinstance(value, str):
        return ""
    text = _TAGS.sub("", value)
    for pattern in _DANGEROUS:
        text = pattern.sub("", text)
    text = html.escape(text, quote=True).strip()
    if max_length is not None and len(text) > max_length:
        raise DomainValidationException(
            f"{field or 'value'} is too long once special characters are escaped (max {max_length})",
            field=field,
            details={"max_length": max_length, "length": len(text)},
        )
    return text
