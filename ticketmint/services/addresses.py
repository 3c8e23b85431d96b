# ticketmint/services/addresses.py
# SPDX-License-Identifier: Apache-2.0
"""
Deterministic program-derived addresses.

`derive_record_address` must use exactly the seeds the `ticket_market`
program uses (`[b"ticket", organizer, mint]`); any other scheme yields an
address the program does not recognize and every lookup silently misses.
"""

from __future__ import annotations

from solders.pubkey import Pubkey

from ticketmint.core.constants import (
    EDITION_SEED,
    METADATA_SEED,
    TICKET_SEED,
    TOKEN_METADATA_PROGRAM_ID,
)
from ticketmint.core.keys import parse_pubkey


def derive_record_address(
    program_id: str | Pubkey,
    organizer: str | Pubkey,
    mint: str | Pubkey,
) -> Pubkey:
    """Market record address for (program, organizer, mint). Pure; no I/O.

    Raises:
        InvalidIdentity: if any of the three identities is malformed.
    """
    program = parse_pubkey(program_id)
    seeds = [TICKET_SEED, bytes(parse_pubkey(organizer)), bytes(parse_pubkey(mint))]
    address, _bump = Pubkey.find_program_address(seeds, program)
    return address


def derive_metadata_address(mint: Pubkey) -> Pubkey:
    """Metaplex metadata account for `mint`."""
    seeds = [METADATA_SEED, bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)]
    return Pubkey.find_program_address(seeds, TOKEN_METADATA_PROGRAM_ID)[0]


def derive_edition_address(mint: Pubkey) -> Pubkey:
    """Metaplex master edition account for `mint`."""
    seeds = [METADATA_SEED, bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), EDITION_SEED]
    return Pubkey.find_program_address(seeds, TOKEN_METADATA_PROGRAM_ID)[0]
