"""Shared test fixtures: an in-memory ledger standing in for the RPC client."""

from __future__ import annotations

import dataclasses
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ticketmint.core.clients import RpcConnection
from ticketmint.core.constants import DEFAULT_PROGRAM_ID, LAMPORTS_PER_SOL
from ticketmint.services.program import (
    CreateTicketLayout,
    ListTicketLayout,
    TicketRecord,
    decode_ticket,
    encode_ticket,
    sighash,
)

PROGRAM_ID = Pubkey.from_string(DEFAULT_PROGRAM_ID)
DEVNET = "https://api.devnet.solana.com"
MAINNET = "https://api.mainnet-beta.solana.com"


class FakeLedger:
    """
    Minimal async RPC client. Accounts live in a dict; `apply()` executes
    `create_ticket` / `list_ticket` the way the program does.
    """

    def __init__(self, balance: int = 10 * LAMPORTS_PER_SOL) -> None:
        self.accounts: dict[Pubkey, bytes] = {}
        self.get_slot = AsyncMock(return_value=SimpleNamespace(value=1))
        self.get_balance = AsyncMock(return_value=SimpleNamespace(value=balance))
        self.request_airdrop = AsyncMock(return_value=SimpleNamespace(value="airdrop-sig"))
        self.confirm_transaction = AsyncMock(return_value=SimpleNamespace(value=[None]))
        self.close = AsyncMock()

    async def get_account_info(self, address: Pubkey, commitment: object = None) -> SimpleNamespace:
        data = self.accounts.get(address)
        return SimpleNamespace(value=None if data is None else SimpleNamespace(data=data))

    def put(self, record: TicketRecord) -> None:
        self.accounts[record.address] = encode_ticket(record)

    def apply(self, ix) -> None:
        data = bytes(ix.data)
        address = ix.accounts[0].pubkey
        if data[:8] == sighash("create_ticket"):
            args = CreateTicketLayout.parse(data[8:])
            self.put(
                TicketRecord(
                    address=address,
                    owner=ix.accounts[1].pubkey,
                    price=args.price,
                    original_price=args.price,
                    resale_allowed=bool(args.resale_allowed),
                    max_markup_pct=args.max_markup,
                    is_listed=False,
                    mint=Pubkey.from_bytes(bytes(args.mint)),
                )
            )
        elif data[:8] == sighash("list_ticket"):
            args = ListTicketLayout.parse(data[8:])
            record = decode_ticket(address, self.accounts[address])
            self.put(dataclasses.replace(record, price=args.new_price, is_listed=True))


class FakeSender:
    """Replacement for `send_instructions` that applies instructions to a `FakeLedger`."""

    def __init__(self, ledger: FakeLedger) -> None:
        self.ledger = ledger
        self.calls: list[tuple[list, list]] = []
        self.error: BaseException | None = None

    async def __call__(self, client, instructions, signers) -> str:
        self.calls.append((list(instructions), list(signers)))
        if self.error is not None:
            raise self.error
        for ix in instructions:
            self.ledger.apply(ix)
        return f"sig-{len(self.calls)}"


def make_record(
    address: Pubkey,
    *,
    owner: Pubkey | None = None,
    price: int = LAMPORTS_PER_SOL,
    original_price: int = LAMPORTS_PER_SOL,
    resale_allowed: bool = True,
    max_markup_pct: int = 20,
    is_listed: bool = False,
    mint: Pubkey | None = None,
) -> TicketRecord:
    return TicketRecord(
        address=address,
        owner=owner or Keypair().pubkey(),
        price=price,
        original_price=original_price,
        resale_allowed=resale_allowed,
        max_markup_pct=max_markup_pct,
        is_listed=is_listed,
        mint=mint or Keypair().pubkey(),
    )


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def connection(ledger: FakeLedger) -> RpcConnection:
    return RpcConnection(client=ledger, endpoint=DEVNET)


@pytest.fixture
def organizer() -> Keypair:
    return Keypair()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def make_ticket():
    return make_record


@pytest.fixture
def sender(ledger: FakeLedger, monkeypatch: pytest.MonkeyPatch) -> FakeSender:
    fake = FakeSender(ledger)
    monkeypatch.setattr("ticketmint.services.issuance.send_instructions", fake)
    monkeypatch.setattr("ticketmint.services.market.send_instructions", fake)
    return fake
