# ticketmint/core/constants.py
# SPDX-License-Identifier: Apache-2.0
"""
Solana program identities, seed labels and amount helpers.

This module centralizes:
  1) **Program identities** the CLI talks to (the ticket market program and
     the SPL / Metaplex programs used by the minting adapter).
  2) **Seed labels** that must match the on-chain program byte-for-byte.
  3) **Amount helpers** converting between SOL strings and integer lamports.

Design notes
------------
- Constants are typed `Final` to communicate immutability.
- Amount conversion uses `Decimal`; floats never touch a price. The on-chain
  program compares integer lamports, so the CLI must too.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Final

from solders.pubkey import Pubkey

# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------

#: Deployed `ticket_market` program (devnet).
DEFAULT_PROGRAM_ID: Final[str] = "GRb8e96kJJvofUenMx6QM7mRu9mwKCdzY6KC4PGTD3KL"

SYSTEM_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_METADATA_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string(
    "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
)

# ---------------------------------------------------------------------------
# Seeds
# ---------------------------------------------------------------------------

#: Market record PDA seed label: ["ticket", organizer, mint].
TICKET_SEED: Final[bytes] = b"ticket"
#: Metaplex metadata / edition PDA seed labels.
METADATA_SEED: Final[bytes] = b"metadata"
EDITION_SEED: Final[bytes] = b"edition"

# ---------------------------------------------------------------------------
# Program errors (Anchor custom error codes declared by ticket_market)
# ---------------------------------------------------------------------------

PROGRAM_ERRORS: Final[dict[int, tuple[str, str]]] = {
    6000: ("ResaleNotAllowed", "Ticket resale is not allowed."),
    6001: ("NotTicketOwner", "You are not the ticket owner."),
    6002: ("ExceedsMaxMarkup", "Price exceeds allowed markup."),
    6003: ("TicketNotListed", "Ticket is not listed for sale."),
}

# ---------------------------------------------------------------------------
# Ticket defaults
# ---------------------------------------------------------------------------

NFT_SYMBOL: Final[str] = "TICKET"
DEFAULT_MAX_MARKUP_PCT: Final[int] = 20
#: `max_markup` is stored on-chain as a u8.
MAX_MARKUP_LIMIT: Final[int] = 255
#: Prices are stored on-chain as u64 lamports.
MAX_PRICE_LAMPORTS: Final[int] = 2**64 - 1
#: Token Metadata `seller_fee_basis_points` ceiling (100%).
MAX_ROYALTY_BPS: Final[int] = 10_000

#: Hosts/URL fragments that identify a network where airdrops are available.
TEST_NETWORK_MARKERS: Final[tuple[str, ...]] = (
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "devnet",
    "testnet",
)

# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

LAMPORTS_PER_SOL: Final[int] = 1_000_000_000


def sol_to_lamports(amount: str | int | Decimal) -> int:
    """Convert a SOL amount to integer lamports.

    Raises:
        ValueError: on non-numeric input, negative amounts or sub-lamport
            precision (e.g. ``"0.0000000001"``).
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"Not a SOL amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise ValueError(f"SOL amount must be a finite, non-negative number: {amount!r}")
    lamports = value * LAMPORTS_PER_SOL
    if lamports != lamports.to_integral_value():
        raise ValueError(f"SOL amount has sub-lamport precision: {amount!r}")
    return int(lamports)


def fmt_sol(lamports: int) -> str:
    """Format lamports into a human string."""
    return f"{Decimal(lamports) / LAMPORTS_PER_SOL:.4f} SOL"
