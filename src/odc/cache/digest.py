"""
Cache key fingerprinting.

Reduces an ordered tuple of lookup values to a fixed-length, URL-safe key.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Any

import orjson

# Separates fingerprints made here from any other use of the same hash inputs
DIGEST_PREFIX = "@mild@"

# ASCII unit separator between parts
SEPARATOR = "\x1f"

ESCAPE = "\\"

# Escaped parts never contain a bare separator, so the joined text maps back
# to exactly one sequence of parts
_ESCAPES = str.maketrans({ESCAPE: ESCAPE * 2, SEPARATOR: ESCAPE + "s"})


def canonical_part(part: Any) -> str:
    """Canonical text form of a single key part."""
    if part is None:
        return "undefined"
    if isinstance(part, bool):
        return "true" if part else "false"
    if isinstance(part, (dict, list, tuple)):
        return orjson.dumps(
            part,
            default=str,
            option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
        ).decode("utf-8")
    return str(part)


def fingerprint(*parts: Any) -> str:
    """Fingerprint an ordered sequence of key parts.

    Equal parts in equal order always give the same result. The output is the
    URL-safe base64 encoding of a SHA-1 digest, 28 characters long.
    """
    text = SEPARATOR.join(
        canonical_part(p).translate(_ESCAPES) for p in (*parts, DIGEST_PREFIX)
    )
    digest = hashlib.sha1(text.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")
