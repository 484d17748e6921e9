# src/shikigami/tasks/ids.py

from __future__ import annotations

import base64
import re
import secrets
from collections.abc import Container

ID_PREFIX = "sk-"
LEDGER_ID_PREFIX = "lg-"
MIN_LENGTH = 4
MAX_LENGTH = 6
ATTEMPTS_PER_LENGTH = 10

_STRIP = re.compile(r"[+/=]")


def _random_base(length: int) -> str:
    out = ""
    while len(out) < length:
        raw = base64.b64encode(secrets.token_bytes(8)).decode("ascii")
        out += _STRIP.sub("", raw).lower()
    return out[:length]


def generate_id(existing: Container[str] | None = None, *, prefix: str = ID_PREFIX) -> str:
    """
    Short id like "sk-a3f9" (or "lg-a3f9" for ledger entries).

    Starts at MIN_LENGTH random chars; after ATTEMPTS_PER_LENGTH collisions at
    one length the id grows by one char, up to MAX_LENGTH.
    """
    for length in range(MIN_LENGTH, MAX_LENGTH + 1):
        for _ in range(ATTEMPTS_PER_LENGTH + 1):
            candidate = f"{prefix}{_random_base(length)}"
            if existing is None or candidate not in existing:
                return candidate

    # Every short form collided; fall back to more entropy and keep trying.
    while True:
        candidate = f"{prefix}{_random_base(MAX_LENGTH * 2)}"
        if existing is None or candidate not in existing:
            return candidate
