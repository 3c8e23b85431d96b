# ticketmint/core/keys.py
# SPDX-License-Identifier: Apache-2.0
"""Keypair file loading and public-key parsing.

Keypair files use the Solana CLI format: a JSON array of 64 integers
(secret key followed by public key).

Security
--------
Key material is never logged or echoed in error messages; only the file path
is reported.
"""

from __future__ import annotations

import json
from pathlib import Path

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .errors import InvalidIdentity


def parse_pubkey(value: str | Pubkey | None) -> Pubkey:
    """Return `value` as a `Pubkey`; raise `InvalidIdentity` if it is malformed."""
    if isinstance(value, Pubkey):
        return value
    if not value or not isinstance(value, str):
        raise InvalidIdentity(value, "empty or not a string")
    try:
        return Pubkey.from_string(value.strip())
    except ValueError as e:
        raise InvalidIdentity(value) from e


def load_keypair(path: str | Path) -> Keypair:
    """
    Read a Solana CLI keypair file.

    Raises:
        InvalidIdentity: if the file is missing or does not hold 64 key bytes.
    """
    p = Path(path).expanduser()
    if not p.is_file():
        raise InvalidIdentity(str(p), "keypair file not found")
    try:
        secret = json.loads(p.read_text(encoding="utf-8"))
        return Keypair.from_bytes(bytes(secret))
    except (OSError, TypeError, ValueError) as e:
        raise InvalidIdentity(str(p), f"failed to read keypair: {type(e).__name__}") from e
