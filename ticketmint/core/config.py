# ticketmint/core/config.py
# SPDX-License-Identifier: Apache-2.0
"""
Environment-driven settings for the ticket CLI.

Every knob the operator can turn sits on one frozen `Settings` instance,
read once at import after `load_dotenv()`. Only `cli.py` reads `settings`;
services take explicit arguments, so tests never touch the environment.

Groups
------
- **RPC**: a primary URL plus comma-separated fallbacks, walked in order by
  `connect_with_failover` with `RPC_MAX_RETRIES` attempts each; the wait grows
  by `RPC_RETRY_DELAY` seconds per failed attempt.
- **Program & signer**: the `ticket_market` program id and the organizer's
  Solana CLI keypair file (`~` is expanded).
- **Storage**: Pinata JWT, upload endpoint and gateway host. Uploads are tried
  `UPLOAD_MAX_RETRIES` times, `UPLOAD_RETRY_DELAY` seconds apart.
- **Issuance**: the payer's minimum balance and the devnet airdrop, both in
  SOL and converted to lamports by the CLI, plus the last-mint pointer path
  and the metadata `external_url`.

Defaults point at Solana devnet. `PINATA_JWT` is empty unless set, and `issue`
refuses to start without it. The JWT can write to the pinning account and the
keypair file signs transactions; neither belongs in version control.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal

from dotenv import load_dotenv

# Variables already exported in the shell win over `.env`.
load_dotenv()


def _csv(name: str, default: str) -> tuple[str, ...]:
    """Split a comma-separated env var into a tuple of non-empty items."""
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    """Operator settings; `.env.example` lists every variable with its default."""

    # --- Solana RPC -----------------------------------------------------------
    # Primary endpoint; always tried first.
    RPC_URL: str = os.getenv("RPC_URL", "https://api.devnet.solana.com")
    # Ordered fallbacks tried after RPC_URL when it cannot be reached.
    RPC_FALLBACK_URLS: tuple[str, ...] = field(
        default_factory=lambda: _csv("RPC_FALLBACK_URLS", "https://api.devnet.solana.com")
    )
    # Liveness checks per endpoint, and the linear backoff base (seconds).
    RPC_MAX_RETRIES: int = int(os.getenv("RPC_MAX_RETRIES", "3"))
    RPC_RETRY_DELAY: float = float(os.getenv("RPC_RETRY_DELAY", "2.0"))
    RPC_TIMEOUT: float = float(os.getenv("RPC_TIMEOUT", "60"))

    # --- Ledger program & signer ----------------------------------------------
    PROGRAM_ID: str = os.getenv(
        "PROGRAM_ID", "GRb8e96kJJvofUenMx6QM7mRu9mwKCdzY6KC4PGTD3KL"
    )
    KEYPAIR_PATH: str = os.path.expanduser(
        os.getenv("KEYPAIR_PATH", "~/.config/solana/id.json")
    )

    # --- Content storage (Pinata / IPFS) --------------------------------------
    PINATA_JWT: str = os.getenv("PINATA_JWT", "")
    PINATA_GATEWAY: str = os.getenv("PINATA_GATEWAY", "gateway.pinata.cloud")
    PINATA_UPLOAD_URL: str = os.getenv(
        "PINATA_UPLOAD_URL", "https://uploads.pinata.cloud/v3/files"
    )
    UPLOAD_MAX_RETRIES: int = int(os.getenv("UPLOAD_MAX_RETRIES", "3"))
    UPLOAD_RETRY_DELAY: float = float(os.getenv("UPLOAD_RETRY_DELAY", "3.0"))

    # --- Issuance ---------------------------------------------------------------
    # Amounts in SOL; converted to lamports at the CLI boundary.
    MIN_BALANCE_SOL: Decimal = Decimal(os.getenv("MIN_BALANCE_SOL", "0.05"))
    AIRDROP_SOL: Decimal = Decimal(os.getenv("AIRDROP_SOL", "2"))
    LAST_MINT_PATH: str = os.getenv("LAST_MINT_PATH", "last_mint.json")
    EVENT_EXTERNAL_URL: str = os.getenv("EVENT_EXTERNAL_URL", "")

    @property
    def rpc_endpoints(self) -> list[str]:
        """RPC_URL followed by the fallbacks, order kept, duplicates dropped."""
        ordered: list[str] = []
        for url in (self.RPC_URL, *self.RPC_FALLBACK_URLS):
            if url and url not in ordered:
                ordered.append(url)
        return ordered


# Singleton settings object imported by the CLI.
settings = Settings()
