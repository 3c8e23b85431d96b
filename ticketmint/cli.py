# ticketmint/cli.py
# SPDX-License-Identifier: Apache-2.0
#
# Purpose
# -------
# Operator CLI for NFT event tickets backed by the `ticket_market` program:
#   issue     upload image + metadata, mint the NFT, register its market record
#   register  (re)create the market record for an already-minted NFT
#   list      list a ticket for resale, enforcing the markup cap locally first
#   info      print the market record for a mint
#   summary   markup analysis for a mint (current markup, remaining room)
#
# Usage
# -----
#   python -m ticketmint issue --image ./assets/ticket.png \
#     --name "VIP Concert Ticket #001" --description "VIP access" \
#     --event-date 2025-12-25T19:00:00Z --seat VIP-001 --price 0.1 \
#     --max-markup 25 --royalty-bps 500
#   python -m ticketmint list --price 0.12          # mint from last_mint.json
#   python -m ticketmint info --mint <MINT_ADDRESS>
#
# Conventions
# -----------
# * Prices are given in SOL and converted to lamports exactly.
# * Targets Solana **devnet** by default (override via .env).
# * Results are printed as JSON; failures exit non-zero after printing the
#   error and, when available, the program's transaction log lines.

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from solders.pubkey import Pubkey

from .core.clients import RpcConnection, StorageClient, connect_with_failover
from .core.config import settings
from .core.constants import DEFAULT_MAX_MARKUP_PCT, sol_to_lamports
from .core.errors import TicketMintError
from .core.keys import load_keypair, parse_pubkey
from .core.state import LastMintPointer
from .services.issuance import IssuanceOrchestrator, TicketRequest, register_ticket
from .services.market import MarketOperations
from .services.minting import TokenMetadataMinter
from .services.program import check_ticket_terms
from .services.storage import ContentUploader

log = logging.getLogger("ticketmint")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


async def _connect() -> RpcConnection:
    return await connect_with_failover(
        settings.rpc_endpoints,
        max_retries=settings.RPC_MAX_RETRIES,
        base_delay=settings.RPC_RETRY_DELAY,
        timeout=settings.RPC_TIMEOUT,
    )


def _resolve_mint(value: str | None) -> Pubkey:
    """--mint if given, else the pointer file written by the last `issue`."""
    if value:
        return parse_pubkey(value)
    mint = LastMintPointer(settings.LAST_MINT_PATH).read()
    if mint is None:
        raise SystemExit(
            "Could not determine mint address. Pass --mint or run `issue` first "
            f"so {settings.LAST_MINT_PATH} exists."
        )
    log.info("Using mint from %s: %s", settings.LAST_MINT_PATH, mint)
    return mint


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_issue(args: argparse.Namespace) -> dict[str, Any]:
    payer = load_keypair(settings.KEYPAIR_PATH)
    log.info("Wallet loaded. Public key: %s", payer.pubkey())
    request = TicketRequest(
        image_path=args.image,
        name=args.name,
        description=args.description,
        price=sol_to_lamports(args.price) if args.price else None,
        event_date=args.event_date,
        seat=args.seat,
        resale_allowed=not args.no_resale,
        max_markup_pct=args.max_markup,
        royalty_bps=args.royalty_bps,
    )
    IssuanceOrchestrator.validate(request)
    storage = StorageClient(
        settings.PINATA_JWT,
        settings.PINATA_GATEWAY,
        upload_url=settings.PINATA_UPLOAD_URL,
        max_retries=settings.UPLOAD_MAX_RETRIES,
        retry_delay=settings.UPLOAD_RETRY_DELAY,
    )
    conn = await _connect()
    try:
        orchestrator = IssuanceOrchestrator(
            conn,
            payer,
            ContentUploader(storage),
            TokenMetadataMinter(conn.client, payer),
            program_id=settings.PROGRAM_ID,
            min_balance=sol_to_lamports(settings.MIN_BALANCE_SOL),
            airdrop_lamports=sol_to_lamports(settings.AIRDROP_SOL),
            pointer=LastMintPointer(settings.LAST_MINT_PATH),
            external_url=settings.EVENT_EXTERNAL_URL,
        )
        session = await orchestrator.issue(request)
    finally:
        await conn.close()
    return session.as_dict()


async def cmd_register(args: argparse.Namespace) -> dict[str, Any]:
    payer = load_keypair(settings.KEYPAIR_PATH)
    mint = _resolve_mint(args.mint)
    price = sol_to_lamports(args.price)
    check_ticket_terms(price, args.max_markup)
    conn = await _connect()
    try:
        result = await register_ticket(
            conn.client,
            payer,
            settings.PROGRAM_ID,
            mint,
            price=price,
            resale_allowed=not args.no_resale,
            max_markup_pct=args.max_markup,
        )
    finally:
        await conn.close()
    return {
        "mint": str(mint),
        "ticket_pda": str(result.address),
        "signature": result.signature,
        "already_exists": result.already_exists,
        "record": result.record.as_dict() if result.record else None,
    }


async def cmd_list(args: argparse.Namespace) -> dict[str, Any]:
    owner = load_keypair(settings.KEYPAIR_PATH)
    mint = _resolve_mint(args.mint)
    conn = await _connect()
    try:
        market = MarketOperations(conn, program_id=settings.PROGRAM_ID, owner=owner)
        result = await market.list_for_resale(
            mint, sol_to_lamports(args.price), organizer=args.organizer
        )
    finally:
        await conn.close()
    return {
        "mint": str(mint),
        "signature": result.signature,
        "record": result.record.as_dict() if result.record else None,
    }


def _organizer(args: argparse.Namespace) -> Pubkey:
    if args.organizer:
        return parse_pubkey(args.organizer)
    return load_keypair(settings.KEYPAIR_PATH).pubkey()


async def cmd_info(args: argparse.Namespace) -> dict[str, Any]:
    organizer = _organizer(args)
    mint = _resolve_mint(args.mint)
    conn = await _connect()
    try:
        record = await MarketOperations(conn, program_id=settings.PROGRAM_ID).fetch(
            organizer, mint
        )
    finally:
        await conn.close()
    return record.as_dict()


async def cmd_summary(args: argparse.Namespace) -> dict[str, Any]:
    organizer = _organizer(args)
    mint = _resolve_mint(args.mint)
    conn = await _connect()
    try:
        summary = await MarketOperations(conn, program_id=settings.PROGRAM_ID).summary(
            organizer, mint
        )
    finally:
        await conn.close()
    return summary.as_dict()


Handler = Callable[[argparse.Namespace], Awaitable[dict[str, Any]]]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_resale_terms(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--no-resale", action="store_true", help="Forbid resale of this ticket"
    )
    p.add_argument(
        "--max-markup",
        type=int,
        default=DEFAULT_MAX_MARKUP_PCT,
        help="Maximum resale markup over the original price, in percent (0..255)",
    )


def _add_lookup(p: argparse.ArgumentParser) -> None:
    p.add_argument("--mint", help="NFT mint address; defaults to the last issued mint")
    p.add_argument(
        "--organizer", help="Organizer address; defaults to the local keypair"
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="ticketmint",
        description="Issue and manage NFT event tickets on Solana (devnet defaults).",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    issue = sub.add_parser(
        "issue",
        help="Upload, mint and register a new ticket",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    issue.add_argument("--image", default="./assets/ticket.png", help="Ticket image file")
    issue.add_argument("--name", help="NFT name, e.g. 'VIP Concert Ticket #001'")
    issue.add_argument("--description", help="Ticket description")
    issue.add_argument("--price", help="Original price in SOL, e.g. 0.1")
    issue.add_argument("--event-date", default="", help="Event date (ISO 8601)")
    issue.add_argument("--seat", default="", help="Seat label")
    issue.add_argument(
        "--royalty-bps", type=int, default=0, help="Creator royalty in basis points"
    )
    _add_resale_terms(issue)
    issue.set_defaults(handler=cmd_issue)

    register = sub.add_parser(
        "register",
        help="Create the market record for an already-minted ticket",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    register.add_argument("--mint", help="NFT mint address; defaults to the last issued mint")
    register.add_argument("--price", required=True, help="Original price in SOL")
    _add_resale_terms(register)
    register.set_defaults(handler=cmd_register)

    lst = sub.add_parser(
        "list",
        help="List a ticket for resale",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    _add_lookup(lst)
    lst.add_argument("--price", required=True, help="Resale price in SOL")
    lst.set_defaults(handler=cmd_list)

    info = sub.add_parser("info", help="Show a ticket's market record")
    _add_lookup(info)
    info.set_defaults(handler=cmd_info)

    summary = sub.add_parser("summary", help="Markup analysis for a ticket")
    _add_lookup(summary)
    summary.set_defaults(handler=cmd_summary)

    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entrypoint: dispatch the subcommand, print JSON, exit non-zero on failure."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s: %(message)s",
        stream=sys.stderr,
    )
    handler: Handler = args.handler
    try:
        out = asyncio.run(handler(args))
    except TicketMintError as e:
        if e.logs:
            print("Transaction logs:", file=sys.stderr)
            for line in e.logs:
                print(f"  {line}", file=sys.stderr)
        raise SystemExit(f"{args.cmd} failed: {type(e).__name__} [{e.code}]: {e.message}") from e
    except ValueError as e:
        raise SystemExit(f"{args.cmd} failed: {e}") from e
    print(json.dumps(out, indent=2))


if __name__ == "__main__":
    main()
