from __future__ import annotations

import re
from collections.abc import Iterable

# Court file numbers ("1234/3/2025"), optionally prefixed by "Dosar nr." / "Nr.",
# plus the firm's own contract and reference codes.
_REFERENCE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"dosar(?:\s+nr\.?)?\s*[:\s]*(\d{1,6}/\d{1,4}/\d{4})", re.IGNORECASE),
    re.compile(r"\bnr\.?\s*(\d{1,6}/\d{1,4}/\d{4})", re.IGNORECASE),
    re.compile(r"\b(\d{1,6}/\d{1,4}/\d{4})\b"),
    re.compile(r"\b(CTR-\d{4}-\d{3,6})\b", re.IGNORECASE),
    re.compile(r"\b(REF-\d{4,10})\b", re.IGNORECASE),
)
_NORMALIZE_RE = re.compile(r"[^0-9a-z/-]")

FREE_MAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "yahoo.com",
        "yahoo.ro",
        "outlook.com",
        "hotmail.com",
        "live.com",
        "icloud.com",
        "aol.com",
        "proton.me",
        "protonmail.com",
    }
)


def normalize_reference(value: str) -> str:
    return _NORMALIZE_RE.sub("", value.strip().lower())


def extract_reference_numbers(text: str) -> list[str]:
    """Normalized reference numbers found in ``text``, explicit "Dosar"/"Nr." markers first."""
    found: list[str] = []
    seen: set[str] = set()
    for pattern in _REFERENCE_PATTERNS:
        for match in pattern.finditer(text or ""):
            ref = normalize_reference(match.group(1))
            if ref and ref not in seen:
                seen.add(ref)
                found.append(ref)
    return found


def normalize_address(value: str | None) -> str:
    return (value or "").strip().lower()


def address_domain(address: str) -> str | None:
    addr = normalize_address(address)
    if "@" not in addr:
        return None
    domain = addr.rsplit("@", 1)[1]
    return domain or None


def normalize_domain(value: str) -> str:
    return value.strip().lower().lstrip("@")


def normalize_address_list(values: Iterable[str]) -> list[str]:
    out: list[str] = []
    for v in values:
        addr = normalize_address(v)
        if addr and addr not in out:
            out.append(addr)
    return out


def normalize_domain_list(values: Iterable[str]) -> list[str]:
    out: list[str] = []
    for v in values:
        domain = normalize_domain(v)
        if domain and domain not in out:
            out.append(domain)
    return out
