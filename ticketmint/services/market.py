# ticketmint/services/market.py
# SPDX-License-Identifier: Apache-2.0
"""
Market record operations: fetch, resale listing, summary.

Listing runs the same checks the program runs, in the same order and with the
same integer arithmetic, before anything is submitted:

  1) resale must be allowed            → `ResaleNotAllowed`
  2) new_price <= original * (100 + max_markup) // 100   → `MarkupExceeded`

The program stays the authority; these checks only save a round trip and a
fee for listings it would reject. After a successful listing the record is
re-read from the ledger instead of being patched locally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ticketmint.core.clients import RpcConnection
from ticketmint.core.constants import LAMPORTS_PER_SOL
from ticketmint.core.errors import (
    ListingFailed,
    MarkupExceeded,
    MissingParameter,
    RecordNotFound,
    ResaleNotAllowed,
    TransactionRejected,
)
from ticketmint.core.keys import parse_pubkey

from .addresses import derive_record_address
from .program import (
    TicketRecord,
    build_list_ticket_ix,
    fetch_ticket,
    max_resale_price,
    send_instructions,
)

log = logging.getLogger(__name__)


def check_resale_price(record: TicketRecord, new_price: int) -> int:
    """
    Validate a listing price against `record`; return the maximum allowed price.

    Raises:
        ResaleNotAllowed: if the record forbids resale (regardless of price).
        MarkupExceeded: if `new_price` is above the inclusive markup cap.
    """
    if not record.resale_allowed:
        raise ResaleNotAllowed(record.address)
    max_allowed = max_resale_price(record.original_price, record.max_markup_pct)
    if new_price > max_allowed:
        raise MarkupExceeded(new_price, max_allowed, record.max_markup_pct)
    return max_allowed


@dataclass(frozen=True)
class ListingResult:
    signature: str
    record: TicketRecord | None


@dataclass(frozen=True)
class MarketSummary:
    record: TicketRecord
    markup_pct: float
    max_allowed_price: int
    remaining_markup_pct: float
    headroom: int

    def as_dict(self) -> dict[str, Any]:
        return {
            **self.record.as_dict(),
            "markup_pct": round(self.markup_pct, 2),
            "max_allowed_price": self.max_allowed_price / LAMPORTS_PER_SOL,
            "max_allowed_price_lamports": self.max_allowed_price,
            "remaining_markup_pct": round(self.remaining_markup_pct, 2),
            "headroom": self.headroom / LAMPORTS_PER_SOL,
            "headroom_lamports": self.headroom,
        }


def summarize(record: TicketRecord) -> MarketSummary:
    """Current markup and remaining room under the cap."""
    if record.original_price:
        markup = (record.price / record.original_price - 1) * 100
    else:
        markup = 0.0
    max_allowed = record.max_allowed_price
    return MarketSummary(
        record=record,
        markup_pct=markup,
        max_allowed_price=max_allowed,
        remaining_markup_pct=record.max_markup_pct - markup,
        headroom=max_allowed - record.price,
    )


class MarketOperations:
    """Reads and mutates market records. `owner` is only needed to list."""

    def __init__(
        self,
        connection: RpcConnection,
        *,
        program_id: str | Pubkey,
        owner: Keypair | None = None,
    ) -> None:
        self.connection = connection
        self.program_id = parse_pubkey(program_id)
        self.owner = owner

    def _require_owner(self) -> Keypair:
        if self.owner is None:
            raise MissingParameter("owner")
        return self.owner

    async def fetch(self, organizer: str | Pubkey, mint: str | Pubkey) -> TicketRecord:
        """
        Derive the record address and read it.

        Raises:
            RecordNotFound: if no account lives at the derived address.
        """
        address = derive_record_address(self.program_id, organizer, mint)
        log.info("Looking up PDA: %s", address)
        record = await fetch_ticket(self.connection.client, address)
        if record is None:
            raise RecordNotFound(address)
        return record

    async def list_for_resale(
        self,
        mint: str | Pubkey,
        new_price: int,
        *,
        organizer: str | Pubkey | None = None,
    ) -> ListingResult:
        """
        List the ticket for `mint` at `new_price` lamports.

        `organizer` defaults to the owner keypair, which is the organizer for
        tickets this CLI issued.

        Raises:
            RecordNotFound, ResaleNotAllowed, MarkupExceeded: before submission.
            ListingFailed: if the program rejects the instruction.
        """
        owner = self._require_owner()
        record = await self.fetch(organizer or owner.pubkey(), mint)
        log.info(
            "Current ticket: owner=%s price=%d original=%d resale=%s markup=%d%% listed=%s",
            record.owner,
            record.price,
            record.original_price,
            record.resale_allowed,
            record.max_markup_pct,
            record.is_listed,
        )
        max_allowed = check_resale_price(record, new_price)
        log.info("Listing at %d lamports (max %d)", new_price, max_allowed)

        ix = build_list_ticket_ix(
            self.program_id, record.address, owner.pubkey(), new_price=new_price
        )
        try:
            signature = await send_instructions(self.connection.client, [ix], [owner])
        except TransactionRejected as e:
            raise ListingFailed(e.message, e.logs) from e
        log.info("Ticket listed for resale: %s", signature)

        refreshed = await fetch_ticket(self.connection.client, record.address)
        return ListingResult(signature=signature, record=refreshed)

    async def summary(self, organizer: str | Pubkey, mint: str | Pubkey) -> MarketSummary:
        return summarize(await self.fetch(organizer, mint))
