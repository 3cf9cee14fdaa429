"""Pure helpers for short-code generation and client metadata.

Nothing here touches the database; the service layer composes these
functions with persistence in ``app/url_service.py``.

Flow Diagram — Code Generation
==============================
::
    ┌─────────────┐
    │ length (6)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ nanoid over │
    │ 62 symbols  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ candidate   │
    │ short code  │
    └─────────────┘

How to Use
===========
**Step 1 — Generate a candidate**::
    code = generate_short_code()      # e.g. "aZ3k9Q"

**Step 2 — Reduce a forwarded-for chain**::
    extract_client_ip("203.0.113.7, 10.0.0.1")   # "203.0.113.7"
    extract_client_ip(None)                       # "unknown"

Key Behaviours
===============
- Every character is drawn uniformly from ``0-9a-zA-Z``.
- Codes are collision-avoidance keys, not secrets.
- Uniqueness is not checked here; the service layer owns that.

Functions:
    generate_short_code():  Creates random alphanumeric strings.
    extract_client_ip():  Best-effort client address from X-Forwarded-For.
    is_reserved_code():  True for codes that collide with built-in routes.
"""

from nanoid import generate

from app.config import get_settings

__all__ = [
    "ALPHABET",
    "RESERVED_CODES",
    "UNKNOWN_CLIENT_IP",
    "extract_client_ip",
    "generate_short_code",
    "is_reserved_code",
]

settings = get_settings()

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
UNKNOWN_CLIENT_IP = "unknown"

# first path segments served by the app itself, never by a redirect
RESERVED_CODES = frozenset({"api", "docs", "health", "metrics", "redoc"})


def generate_short_code(length: int = settings.SHORT_CODE_LENGTH) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)


def extract_client_ip(forwarded_for: str | None) -> str:
    if not forwarded_for:
        return UNKNOWN_CLIENT_IP
    first = forwarded_for.split(",", 1)[0].strip()
    return first or UNKNOWN_CLIENT_IP


def is_reserved_code(code: str) -> bool:
    return code in RESERVED_CODES
