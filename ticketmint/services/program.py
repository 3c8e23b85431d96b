# ticketmint/services/program.py
# SPDX-License-Identifier: Apache-2.0
"""
Client-side model of the `ticket_market` ledger program.

The program itself is an external contract. This module models exactly its
public surface:

  • the 7-field `Ticket` record account (`TicketRecord`),
  • the three instructions `create_ticket`, `list_ticket`, `buy_ticket`,
  • transaction submission/confirmation and program log extraction.

Layouts follow the Anchor conventions the program was built with: 8-byte
discriminators (`sha256("global:<ix>")[:8]`, `sha256("account:Ticket")[:8]`)
followed by Borsh-encoded fields.

`buy_ticket` is modeled for completeness; no workflow in this package submits
it.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from borsh_construct import Bool, CStruct, U8, U64
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ticketmint.core.constants import (
    LAMPORTS_PER_SOL,
    MAX_MARKUP_LIMIT,
    MAX_PRICE_LAMPORTS,
    PROGRAM_ERRORS,
    SYSTEM_PROGRAM_ID,
)
from ticketmint.core.errors import InvalidParameter, TransactionRejected

log = logging.getLogger(__name__)

# =============================================================================
# Layouts
# =============================================================================


def sighash(name: str) -> bytes:
    """Anchor instruction discriminator."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def account_discriminator(name: str) -> bytes:
    """Anchor account discriminator."""
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


TICKET_DISCRIMINATOR = account_discriminator("Ticket")

TicketLayout = CStruct(
    "owner" / U8[32],
    "price" / U64,
    "resale_allowed" / Bool,
    "max_markup" / U8,
    "original_price" / U64,
    "is_listed" / Bool,
    "mint" / U8[32],
)
CreateTicketLayout = CStruct(
    "price" / U64,
    "resale_allowed" / Bool,
    "max_markup" / U8,
    "mint" / U8[32],
)
ListTicketLayout = CStruct("new_price" / U64)


# =============================================================================
# Record
# =============================================================================


def max_resale_price(original_price: int, max_markup_pct: int) -> int:
    """Highest listing price the program accepts, in lamports.

    Mirrors the on-chain check ``original_price * (100 + max_markup) / 100``
    in unsigned integer arithmetic (floor division). The bound is inclusive.
    """
    return original_price * (100 + max_markup_pct) // 100


@dataclass(frozen=True)
class TicketRecord:
    """Decoded market record. Prices are lamports."""

    address: Pubkey
    owner: Pubkey
    price: int
    original_price: int
    resale_allowed: bool
    max_markup_pct: int
    is_listed: bool
    mint: Pubkey

    @property
    def max_allowed_price(self) -> int:
        return max_resale_price(self.original_price, self.max_markup_pct)

    def as_dict(self) -> dict[str, Any]:
        """JSON-friendly view with SOL-denominated prices alongside lamports."""
        return {
            "pda": str(self.address),
            "owner": str(self.owner),
            "price": self.price / LAMPORTS_PER_SOL,
            "price_lamports": self.price,
            "original_price": self.original_price / LAMPORTS_PER_SOL,
            "original_price_lamports": self.original_price,
            "resale_allowed": self.resale_allowed,
            "max_markup": self.max_markup_pct,
            "is_listed": self.is_listed,
            "mint": str(self.mint),
        }


def decode_ticket(address: Pubkey, data: bytes) -> TicketRecord:
    """Decode raw account data into a `TicketRecord`.

    Raises:
        ValueError: if the account is not a `Ticket` account.
    """
    if bytes(data[:8]) != TICKET_DISCRIMINATOR:
        raise ValueError(f"Account {address} is not a Ticket account")
    parsed = TicketLayout.parse(bytes(data[8:]))
    return TicketRecord(
        address=address,
        owner=Pubkey.from_bytes(bytes(parsed.owner)),
        price=parsed.price,
        original_price=parsed.original_price,
        resale_allowed=bool(parsed.resale_allowed),
        max_markup_pct=parsed.max_markup,
        is_listed=bool(parsed.is_listed),
        mint=Pubkey.from_bytes(bytes(parsed.mint)),
    )


def encode_ticket(record: TicketRecord) -> bytes:
    """Account bytes for `record`, discriminator included."""
    return TICKET_DISCRIMINATOR + TicketLayout.build(
        {
            "owner": list(bytes(record.owner)),
            "price": record.price,
            "resale_allowed": record.resale_allowed,
            "max_markup": record.max_markup_pct,
            "original_price": record.original_price,
            "is_listed": record.is_listed,
            "mint": list(bytes(record.mint)),
        }
    )


# =============================================================================
# Instructions
# =============================================================================


def check_price(price: int, name: str = "price", *, minimum: int = 1) -> None:
    """Raise `InvalidParameter` unless `minimum <= price` and `price` fits a u64."""
    if isinstance(price, bool) or not isinstance(price, int):
        raise InvalidParameter(name, price, "must be an integer number of lamports")
    if not minimum <= price <= MAX_PRICE_LAMPORTS:
        raise InvalidParameter(name, price, f"must be in [{minimum}..{MAX_PRICE_LAMPORTS}] lamports")


def check_ticket_terms(price: int, max_markup_pct: int) -> None:
    """Range checks for `create_ticket` arguments, run before anything is paid for."""
    check_price(price)
    if isinstance(max_markup_pct, bool) or not isinstance(max_markup_pct, int):
        raise InvalidParameter("max_markup", max_markup_pct, "must be an integer percentage")
    if not 0 <= max_markup_pct <= MAX_MARKUP_LIMIT:
        raise InvalidParameter("max_markup", max_markup_pct, f"must be in [0..{MAX_MARKUP_LIMIT}]")


def build_create_ticket_ix(
    program_id: Pubkey,
    ticket: Pubkey,
    organizer: Pubkey,
    *,
    price: int,
    resale_allowed: bool,
    max_markup_pct: int,
    mint: Pubkey,
) -> Instruction:
    check_ticket_terms(price, max_markup_pct)
    data = sighash("create_ticket") + CreateTicketLayout.build(
        {
            "price": price,
            "resale_allowed": resale_allowed,
            "max_markup": max_markup_pct,
            "mint": list(bytes(mint)),
        }
    )
    accounts = [
        AccountMeta(ticket, False, True),
        AccountMeta(organizer, True, True),
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
    ]
    return Instruction(program_id, data, accounts)


def build_list_ticket_ix(
    program_id: Pubkey, ticket: Pubkey, owner: Pubkey, *, new_price: int
) -> Instruction:
    check_price(new_price, "new_price", minimum=0)
    data = sighash("list_ticket") + ListTicketLayout.build({"new_price": new_price})
    accounts = [
        AccountMeta(ticket, False, True),
        AccountMeta(owner, True, False),
    ]
    return Instruction(program_id, data, accounts)


def build_buy_ticket_ix(
    program_id: Pubkey, ticket: Pubkey, owner: Pubkey, buyer: Pubkey
) -> Instruction:
    accounts = [
        AccountMeta(ticket, False, True),
        AccountMeta(owner, True, True),
        AccountMeta(buyer, True, True),
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
    ]
    return Instruction(program_id, sighash("buy_ticket"), accounts)


# =============================================================================
# RPC helpers
# =============================================================================


async def fetch_ticket(client: AsyncClient, address: Pubkey) -> TicketRecord | None:
    """Read and decode the record at `address`; None if no account exists."""
    resp = await client.get_account_info(address, commitment=Confirmed)
    if resp.value is None:
        return None
    return decode_ticket(address, resp.value.data)


def extract_logs(exc: BaseException) -> list[str]:
    """Pull program log lines out of an RPC/preflight error, if it carries any."""
    logs = getattr(exc, "logs", None)
    if logs:
        return list(logs)
    for arg in getattr(exc, "args", ()):
        data = arg.get("data") if isinstance(arg, dict) else getattr(arg, "data", None)
        found = data.get("logs") if isinstance(data, dict) else getattr(data, "logs", None)
        if found:
            return list(found)
    return []


_ERROR_NUMBER_RE = re.compile(r"Error Number:\s*(\d+)")
_CUSTOM_ERROR_RE = re.compile(r"custom program error:\s*0x([0-9a-fA-F]+)")


def program_error_from_logs(logs: Sequence[str]) -> tuple[int, str] | None:
    """Return (code, name) of a declared program error found in `logs`."""
    for line in logs:
        m = _ERROR_NUMBER_RE.search(line)
        code = int(m.group(1)) if m else None
        if code is None:
            m = _CUSTOM_ERROR_RE.search(line)
            code = int(m.group(1), 16) if m else None
        if code in PROGRAM_ERRORS:
            return code, PROGRAM_ERRORS[code][0]
    return None


def _rejection(message: str, logs: list[str]) -> TransactionRejected:
    known = program_error_from_logs(logs)
    if known:
        message = f"{message} [{known[1]} ({known[0]})]"
    return TransactionRejected(message, logs)


async def send_instructions(
    client: AsyncClient,
    instructions: Sequence[Instruction],
    signers: Sequence[Keypair],
) -> str:
    """
    Sign with `signers` (the first one pays), submit with preflight and wait
    for `confirmed`.

    Returns:
        The transaction signature (base58).

    Raises:
        TransactionRejected: on any submission, preflight or on-chain failure,
            with program log lines attached when available.
    """
    payer = signers[0]
    try:
        blockhash = (await client.get_latest_blockhash(Confirmed)).value.blockhash
        message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
        tx = Transaction(list(signers), message, blockhash)
        sig = (
            await client.send_transaction(
                tx, opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
            )
        ).value
        status = await client.confirm_transaction(sig, Confirmed)
    except Exception as e:  # noqa: BLE001
        raise _rejection(str(e), extract_logs(e)) from e

    statuses = getattr(status, "value", None) or []
    err = getattr(statuses[0], "err", None) if statuses else None
    if err is not None:
        raise _rejection(f"transaction {sig} failed: {err}", [])
    log.info("Confirmed transaction %s", sig)
    return str(sig)
