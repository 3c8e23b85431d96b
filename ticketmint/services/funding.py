# ticketmint/services/funding.py
# SPDX-License-Identifier: Apache-2.0
"""Make sure the paying account can afford an issuance before it starts.

Solana charges rent-exempt deposits for every account the issuance creates
(mint, token account, metadata, edition, market record) plus fees. Checking
up front avoids a half-finished workflow that fails on the second
transaction.

Behavior:
  1) Read the balance, retrying a fixed number of times on RPC errors.
  2) Below the minimum on a localnet/devnet/testnet endpoint: request one
     airdrop and wait for its confirmation. A failed airdrop is logged and
     ignored; the re-check below decides.
  3) Still below the minimum: raise `InsufficientFunds`.
"""

from __future__ import annotations

import asyncio
import logging

from solana.rpc.commitment import Confirmed
from solders.pubkey import Pubkey

from ticketmint.core.clients import RpcConnection, Sleep
from ticketmint.core.constants import LAMPORTS_PER_SOL, fmt_sol
from ticketmint.core.errors import InsufficientFunds

log = logging.getLogger(__name__)

#: Default test-network top-up (2 SOL).
DEFAULT_AIRDROP_LAMPORTS = 2 * LAMPORTS_PER_SOL
BALANCE_READ_RETRIES = 3
BALANCE_READ_DELAY = 2.0


async def read_balance(
    conn: RpcConnection,
    owner: Pubkey,
    *,
    retries: int = BALANCE_READ_RETRIES,
    delay: float = BALANCE_READ_DELAY,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Return the lamport balance of `owner`; re-raise the last error after `retries`."""
    for attempt in range(1, retries + 1):
        try:
            return (await conn.client.get_balance(owner, commitment=Confirmed)).value
        except Exception as e:  # noqa: BLE001
            if attempt == retries:
                raise
            log.warning(
                "Balance check failed, retrying... (%d attempts left): %s",
                retries - attempt,
                e,
            )
            await sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover


async def request_airdrop(conn: RpcConnection, owner: Pubkey, lamports: int) -> bool:
    """Request a test-network airdrop and wait for it; False if it failed."""
    log.info("Requesting airdrop of %s on %s", fmt_sol(lamports), conn.endpoint)
    try:
        sig = (await conn.client.request_airdrop(owner, lamports, commitment=Confirmed)).value
        await conn.client.confirm_transaction(sig, Confirmed)
    except Exception as e:  # noqa: BLE001
        log.warning("Airdrop failed (continuing): %s", e)
        return False
    log.info("Airdrop confirmed: %s", sig)
    return True


async def ensure_balance(
    conn: RpcConnection,
    owner: Pubkey,
    minimum: int,
    *,
    airdrop_lamports: int = DEFAULT_AIRDROP_LAMPORTS,
    read_retries: int = BALANCE_READ_RETRIES,
    read_delay: float = BALANCE_READ_DELAY,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """
    Ensure `owner` holds at least `minimum` lamports.

    Returns:
        The balance observed by the final check.

    Raises:
        InsufficientFunds: if the balance is still short after any top-up.
        Exception: the last balance-read error, if every read failed.
    """
    balance = await read_balance(
        conn, owner, retries=read_retries, delay=read_delay, sleep=sleep
    )
    log.info("Current balance: %s", fmt_sol(balance))
    if balance >= minimum:
        return balance

    if conn.is_test_network and airdrop_lamports > 0:
        if await request_airdrop(conn, owner, airdrop_lamports):
            balance = await read_balance(
                conn, owner, retries=read_retries, delay=read_delay, sleep=sleep
            )
            log.info("New balance: %s", fmt_sol(balance))

    if balance < minimum:
        raise InsufficientFunds(balance, minimum)
    return balance
