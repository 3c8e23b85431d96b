# ticketmint/services/issuance.py
# SPDX-License-Identifier: Apache-2.0
"""
Two-phase ticket issuance: mint the NFT, then register its market record.

State machine
-------------
    VALIDATING → FUNDING_CHECK → UPLOADING → MINTING → REGISTERING → DONE
                         (any state) → FAILED

Stages run strictly in order; each consumes the previous stage's output
(image URI before metadata URI, mint address before record address).

Partial failure
---------------
Minting is not retried. If minting succeeds and registration fails, the NFT
exists without a market record; it cannot be destroyed, so nothing is rolled
back. The mint address is written to the pointer file right after minting and
is carried on `RegistrationFailed.mint`; re-run `register()` with it.

Registration reads before it writes: if a record already lives at the derived
address it is returned with `already_exists=True` and no transaction is sent,
so re-running registration for the same mint is safe.
"""

from __future__ import annotations

import enum
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ticketmint.core.clients import RpcConnection
from ticketmint.core.constants import DEFAULT_MAX_MARKUP_PCT, MAX_ROYALTY_BPS
from ticketmint.core.errors import (
    InvalidParameter,
    MissingParameter,
    RegistrationFailed,
    TransactionRejected,
)
from ticketmint.core.keys import parse_pubkey
from ticketmint.core.state import LastMintPointer

from .addresses import derive_record_address
from .funding import DEFAULT_AIRDROP_LAMPORTS, ensure_balance
from .minting import AssetMinter, Creator
from .program import (
    TicketRecord,
    build_create_ticket_ix,
    check_ticket_terms,
    fetch_ticket,
    send_instructions,
)
from .storage import ContentUploader, build_ticket_metadata

log = logging.getLogger(__name__)


class IssuanceState(str, enum.Enum):
    VALIDATING = "validating"
    FUNDING_CHECK = "funding_check"
    UPLOADING = "uploading"
    MINTING = "minting"
    REGISTERING = "registering"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class TicketRequest:
    """Operator input for one ticket. `price` is in lamports."""

    image_path: str | None
    name: str | None
    description: str | None
    price: int | None
    event_date: str = ""
    seat: str = ""
    resale_allowed: bool = True
    max_markup_pct: int = DEFAULT_MAX_MARKUP_PCT
    royalty_bps: int = 0


@dataclass(frozen=True)
class RegistrationResult:
    address: Pubkey
    signature: str | None
    already_exists: bool
    record: TicketRecord | None


@dataclass(frozen=True)
class IssuanceSession:
    """Everything one successful issuance produced."""

    mint: Pubkey
    image_uri: str
    metadata_uri: str
    record_address: Pubkey
    mint_signature: str
    registration_signature: str | None
    already_exists: bool
    record: TicketRecord | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "mint": str(self.mint),
            "ticket_pda": str(self.record_address),
            "nft_signature": self.mint_signature,
            "registration_signature": self.registration_signature,
            "already_exists": self.already_exists,
            "image_uri": self.image_uri,
            "metadata_uri": self.metadata_uri,
            "record": self.record.as_dict() if self.record else None,
        }


class IssuanceOrchestrator:
    """Drives one issuance for the organizer `payer` over an active RPC connection."""

    def __init__(
        self,
        connection: RpcConnection,
        payer: Keypair,
        uploader: ContentUploader,
        minter: AssetMinter,
        *,
        program_id: str | Pubkey,
        min_balance: int,
        airdrop_lamports: int = DEFAULT_AIRDROP_LAMPORTS,
        pointer: LastMintPointer | None = None,
        external_url: str = "",
    ) -> None:
        self.connection = connection
        self.payer = payer
        self.uploader = uploader
        self.minter = minter
        self.program_id = parse_pubkey(program_id)
        self.min_balance = min_balance
        self.airdrop_lamports = airdrop_lamports
        self.pointer = pointer
        self.external_url = external_url
        self.state = IssuanceState.VALIDATING
        self.failure: BaseException | None = None

    def _enter(self, state: IssuanceState) -> None:
        log.info("Issuance: %s → %s", self.state.value, state.value)
        self.state = state

    @staticmethod
    def validate(request: TicketRequest) -> None:
        missing = [
            field
            for field in ("image_path", "name", "description", "price")
            if not getattr(request, field)
        ]
        if missing:
            raise MissingParameter(*missing)
        check_ticket_terms(request.price, request.max_markup_pct)
        if not 0 <= request.royalty_bps <= MAX_ROYALTY_BPS:
            raise InvalidParameter(
                "royalty_bps", request.royalty_bps, f"must be in [0..{MAX_ROYALTY_BPS}]"
            )

    async def issue(self, request: TicketRequest) -> IssuanceSession:
        """Run the full workflow. On any error the state becomes FAILED and the error propagates."""
        self.state = IssuanceState.VALIDATING
        self.failure = None
        try:
            return await self._issue(request)
        except Exception as e:
            self.failure = e
            log.error("Issuance failed in %s: %s", self.state.value, e)
            self._enter(IssuanceState.FAILED)
            raise

    async def _issue(self, request: TicketRequest) -> IssuanceSession:
        self.validate(request)

        self._enter(IssuanceState.FUNDING_CHECK)
        await ensure_balance(
            self.connection,
            self.payer.pubkey(),
            self.min_balance,
            airdrop_lamports=self.airdrop_lamports,
        )

        self._enter(IssuanceState.UPLOADING)
        image_uri = await self.uploader.upload_image(request.image_path)
        document = build_ticket_metadata(
            name=request.name,
            description=request.description or "",
            image_uri=image_uri,
            creator=self.payer.pubkey(),
            price_lamports=request.price,
            event_date=request.event_date,
            seat=request.seat,
            resale_allowed=request.resale_allowed,
            max_markup_pct=request.max_markup_pct,
            external_url=self.external_url,
            image_type=mimetypes.guess_type(Path(request.image_path).name)[0] or "image/png",
        )
        metadata_uri = await self.uploader.upload_metadata(document)

        self._enter(IssuanceState.MINTING)
        receipt = await self.minter.mint(
            metadata_uri=metadata_uri,
            name=request.name,
            royalty_bps=request.royalty_bps,
            creators=[Creator(address=self.payer.pubkey(), share=100)],
        )
        if self.pointer is not None:
            self.pointer.write(receipt.mint)

        self._enter(IssuanceState.REGISTERING)
        registration = await self.register(
            receipt.mint,
            price=request.price,
            resale_allowed=request.resale_allowed,
            max_markup_pct=request.max_markup_pct,
        )

        self._enter(IssuanceState.DONE)
        return IssuanceSession(
            mint=receipt.mint,
            image_uri=image_uri,
            metadata_uri=metadata_uri,
            record_address=registration.address,
            mint_signature=receipt.signature,
            registration_signature=registration.signature,
            already_exists=registration.already_exists,
            record=registration.record,
        )

    async def register(
        self,
        mint: str | Pubkey,
        *,
        price: int,
        resale_allowed: bool = True,
        max_markup_pct: int = DEFAULT_MAX_MARKUP_PCT,
    ) -> RegistrationResult:
        return await register_ticket(
            self.connection.client,
            self.payer,
            self.program_id,
            mint,
            price=price,
            resale_allowed=resale_allowed,
            max_markup_pct=max_markup_pct,
        )


async def register_ticket(
    client: AsyncClient,
    payer: Keypair,
    program_id: str | Pubkey,
    mint: str | Pubkey,
    *,
    price: int,
    resale_allowed: bool = True,
    max_markup_pct: int = DEFAULT_MAX_MARKUP_PCT,
) -> RegistrationResult:
    """
    Create the market record for an already-minted asset, or return the
    existing one. `payer` is the organizer.

    Raises:
        InvalidParameter: if price or markup cannot be stored; nothing is sent.
        RegistrationFailed: on any ledger failure (read, submit, re-read),
            carrying the mint for a later retry.
    """
    check_ticket_terms(price, max_markup_pct)
    program = parse_pubkey(program_id)
    mint_key = parse_pubkey(mint)
    organizer = payer.pubkey()
    address = derive_record_address(program, organizer, mint_key)
    log.info("Ticket PDA: %s (mint %s)", address, mint_key)

    try:
        existing = await fetch_ticket(client, address)
    except Exception as e:  # noqa: BLE001
        raise RegistrationFailed(f"could not read {address}: {e}", mint=mint_key) from e
    if existing is not None:
        log.warning("Ticket PDA already exists; returning existing record")
        return RegistrationResult(address, None, True, existing)

    ix = build_create_ticket_ix(
        program,
        address,
        organizer,
        price=price,
        resale_allowed=resale_allowed,
        max_markup_pct=max_markup_pct,
        mint=mint_key,
    )
    try:
        signature = await send_instructions(client, [ix], [payer])
    except TransactionRejected as e:
        raise RegistrationFailed(e.message, e.logs, mint=mint_key) from e
    log.info("Smart contract ticket created: %s", signature)

    try:
        record = await fetch_ticket(client, address)
    except Exception as e:  # noqa: BLE001
        raise RegistrationFailed(
            f"created by {signature} but could not re-read {address}: {e}", mint=mint_key
        ) from e
    return RegistrationResult(address, signature, False, record)
