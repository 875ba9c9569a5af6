"""Derived store keys.

Keys double as the storage namespace, so they are built from a cryptographic
hash: a collision would let one identity drive another's throttle state.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Iterable


def _digest(value: str) -> str:
    return base64.b64encode(hashlib.sha256(value.encode("utf-8")).digest()).decode("ascii")


def derive_key(parts: Iterable[str | None]) -> str:
    """Hash an ordered list of key fragments into one opaque key.

    Empty or missing fragments are skipped, so ``[None, name, key]`` and
    ``[name, key]`` derive the same key.

    Args:
        parts: Ordered fragments, e.g. ``[identity, guard_name, sub_key]``.

    Returns:
        Base64-encoded SHA-256 digest of the concatenated fragment digests.
    """

    combined = "".join(_digest(part) for part in parts if part)
    return _digest(combined)
