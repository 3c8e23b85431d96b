# ticketmint/core/state.py
# SPDX-License-Identifier: Apache-2.0
"""
"Last issued asset" pointer file.

After a successful mint the orchestrator records the new mint address in a
small JSON file (``{"mint": "<address>"}``) so read-only commands can default
their `--mint` argument. The file is overwritten, never appended, and is
advisory only: it is a convenience for follow-up manual queries, never the
source of truth.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from solders.pubkey import Pubkey

from .errors import InvalidIdentity
from .keys import parse_pubkey

log = logging.getLogger(__name__)

__all__ = ["LastMintPointer"]


class LastMintPointer:
    """Read/overwrite the single-record pointer at `path`."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def write(self, mint: Pubkey) -> None:
        """Overwrite the pointer; failures are logged and ignored."""
        try:
            self.path.write_text(json.dumps({"mint": str(mint)}), encoding="utf-8")
        except OSError as e:
            log.warning("Failed to write %s: %s", self.path, e)
            return
        log.info("Wrote %s with mint %s", self.path, mint)

    def read(self) -> Pubkey | None:
        """
        Return the recorded mint, or None when no pointer exists.

        Raises:
            InvalidIdentity: if the file exists but holds no valid `mint`.
        """
        if not self.path.is_file():
            return None
        try:
            parsed = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise InvalidIdentity(str(self.path), f"unreadable pointer file: {e}") from e
        if not isinstance(parsed, dict) or not parsed.get("mint"):
            raise InvalidIdentity(str(self.path), "pointer file missing `mint` field")
        return parse_pubkey(parsed["mint"])
