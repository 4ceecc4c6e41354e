from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from fastapi import HTTPException

from app.core.settings import S

KEY_SEPARATOR = "|"

_WS_RE = re.compile(r"\s+")
_APOSTROPHES_RE = re.compile("[’‘ʼ´`]")


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    s = _WS_RE.sub(" ", str(value).strip().lower())
    return _APOSTROPHES_RE.sub("'", s)


def identity_key(record: Optional[Mapping[str, Any]], *, with_business: bool = False) -> str:
    """Comparison key for "the same place".

    Business is left out unless asked for: the same street address saved
    under two spellings of a company name must still collide.
    """
    record = record or {}
    parts = [
        normalize_text(record.get("Address1")),
        normalize_text(record.get("Postal")),
        normalize_text(record.get("City")),
        normalize_text(record.get("Country")),
    ]
    if with_business:
        parts.insert(0, normalize_text(record.get("Business")))
    return KEY_SEPARATOR.join(parts)


def normalize_email(s: Optional[str]) -> str:
    s = (s or "").strip().lower()
    if not s:
        raise HTTPException(400, "userEmail is required")
    if "@" not in s or len(s) > 254:
        raise HTTPException(400, "Invalid email")
    return s


def normalize_site_domain(s: Any, *, suffix: Optional[str] = None) -> str:
    suffix = (suffix if suffix is not None else S.site_domain_suffix).lower()
    if not s or not isinstance(s, str):
        raise HTTPException(400, "siteDomain is required")
    s = s.strip().lower()
    if not s.endswith(suffix) or s == suffix:
        raise HTTPException(400, "Invalid siteDomain")
    if re.search(r"[/\s]", s):
        raise HTTPException(400, "Invalid siteDomain")
    return s
