"""Tests for the two-phase issuance workflow."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ticketmint.core.clients import RpcConnection
from ticketmint.core.constants import DEFAULT_PROGRAM_ID, LAMPORTS_PER_SOL
from ticketmint.core.errors import (
    InsufficientFunds,
    InvalidParameter,
    MintingFailed,
    MissingParameter,
    RegistrationFailed,
    TransactionRejected,
    UploadFailed,
)
from ticketmint.core.state import LastMintPointer
from ticketmint.services.addresses import derive_record_address
from ticketmint.services.issuance import IssuanceOrchestrator, IssuanceState, TicketRequest
from ticketmint.services.minting import MintReceipt

PROGRAM_ID = Pubkey.from_string(DEFAULT_PROGRAM_ID)
PRICE = LAMPORTS_PER_SOL // 10
MINT = Keypair().pubkey()


def _request(**overrides) -> TicketRequest:
    fields = dict(
        image_path="ticket.png",
        name="VIP Concert Ticket #001",
        description="VIP access",
        price=PRICE,
        event_date="2025-12-25T19:00:00Z",
        seat="VIP-001",
        max_markup_pct=25,
    )
    fields.update(overrides)
    return TicketRequest(**fields)


@pytest.fixture
def uploader() -> AsyncMock:
    fake = AsyncMock()
    fake.upload_image.return_value = "https://gw/ipfs/img"
    fake.upload_metadata.return_value = "https://gw/ipfs/meta"
    return fake


@pytest.fixture
def minter() -> AsyncMock:
    fake = AsyncMock()
    fake.mint.return_value = MintReceipt(mint=MINT, signature="mint-sig")
    return fake


@pytest.fixture
def pointer(tmp_path) -> LastMintPointer:
    return LastMintPointer(tmp_path / "last_mint.json")


@pytest.fixture
def orchestrator(connection, organizer, uploader, minter, pointer) -> IssuanceOrchestrator:
    return IssuanceOrchestrator(
        connection,
        organizer,
        uploader,
        minter,
        program_id=PROGRAM_ID,
        min_balance=LAMPORTS_PER_SOL // 20,
        pointer=pointer,
    )


class TestIssue:
    @pytest.mark.asyncio
    async def test_happy_path(self, orchestrator, organizer, sender, uploader, minter, pointer) -> None:
        session = await orchestrator.issue(_request())

        assert orchestrator.state is IssuanceState.DONE
        assert session.mint == MINT
        assert session.record_address == derive_record_address(PROGRAM_ID, organizer.pubkey(), MINT)
        assert session.mint_signature == "mint-sig"
        assert session.registration_signature == "sig-1"
        assert session.already_exists is False
        assert session.record.original_price == PRICE
        assert session.record.max_markup_pct == 25
        assert session.record.owner == organizer.pubkey()

        document = uploader.upload_metadata.await_args.args[0]
        assert document["image"] == "https://gw/ipfs/img"
        assert minter.mint.await_args.kwargs["metadata_uri"] == "https://gw/ipfs/meta"
        assert pointer.read() == MINT
        assert len(sender.calls) == 1
        assert json.dumps(session.as_dict())

    @pytest.mark.asyncio
    async def test_missing_fields(self, orchestrator, ledger) -> None:
        with pytest.raises(MissingParameter) as exc_info:
            await orchestrator.issue(_request(name="", price=None))
        assert exc_info.value.names == ("name", "price")
        assert orchestrator.state is IssuanceState.FAILED
        ledger.get_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insufficient_funds_before_upload(
        self, ledger, organizer, uploader, minter
    ) -> None:
        ledger.get_balance.return_value.value = 0
        conn = RpcConnection(client=ledger, endpoint="https://api.mainnet-beta.solana.com")
        orchestrator = IssuanceOrchestrator(
            conn, organizer, uploader, minter, program_id=PROGRAM_ID, min_balance=1000
        )
        with pytest.raises(InsufficientFunds):
            await orchestrator.issue(_request())
        uploader.upload_image.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_image_failure_stops_pipeline(self, orchestrator, uploader, minter) -> None:
        uploader.upload_image.side_effect = UploadFailed("ticket.png", "500")
        with pytest.raises(UploadFailed):
            await orchestrator.issue(_request())
        uploader.upload_metadata.assert_not_awaited()
        minter.mint.assert_not_awaited()
        assert orchestrator.state is IssuanceState.FAILED

    @pytest.mark.asyncio
    async def test_minting_failure_not_retried(self, orchestrator, sender, minter, pointer) -> None:
        minter.mint.side_effect = MintingFailed("blockhash expired", ["log"])
        with pytest.raises(MintingFailed):
            await orchestrator.issue(_request())
        assert minter.mint.await_count == 1
        assert sender.calls == []
        assert pointer.read() is None
        assert isinstance(orchestrator.failure, MintingFailed)

    @pytest.mark.asyncio
    async def test_registration_failure_keeps_mint(self, orchestrator, sender, pointer) -> None:
        sender.error = TransactionRejected("simulation failed", ["Program log: boom"])
        with pytest.raises(RegistrationFailed) as exc_info:
            await orchestrator.issue(_request())
        assert exc_info.value.mint == MINT
        assert exc_info.value.logs == ["Program log: boom"]
        assert pointer.read() == MINT
        assert orchestrator.state is IssuanceState.FAILED


    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"max_markup_pct": 300}, "max_markup"),
            ({"max_markup_pct": -1}, "max_markup"),
            ({"price": 2**64}, "price"),
            ({"royalty_bps": 10_001}, "royalty_bps"),
        ],
    )
    async def test_out_of_range_terms_cost_nothing(
        self, orchestrator, ledger, uploader, minter, sender, overrides, field
    ) -> None:
        with pytest.raises(InvalidParameter) as exc_info:
            await orchestrator.issue(_request(**overrides))
        assert exc_info.value.name == field
        assert orchestrator.state is IssuanceState.FAILED
        ledger.get_balance.assert_not_awaited()
        uploader.upload_image.assert_not_awaited()
        minter.mint.assert_not_awaited()
        assert sender.calls == []

    def test_boundary_terms_accepted(self) -> None:
        IssuanceOrchestrator.validate(_request(max_markup_pct=255, price=2**64 - 1, royalty_bps=10_000))
        IssuanceOrchestrator.validate(_request(max_markup_pct=0, price=1))

class TestRegister:
    @pytest.mark.asyncio
    async def test_idempotent(self, orchestrator, sender) -> None:
        first = await orchestrator.register(MINT, price=PRICE)
        second = await orchestrator.register(MINT, price=PRICE)
        assert first.already_exists is False
        assert second.already_exists is True
        assert second.signature is None
        assert second.address == first.address
        assert second.record == first.record
        assert len(sender.calls) == 1

    @pytest.mark.asyncio
    async def test_defaults(self, orchestrator, sender) -> None:
        result = await orchestrator.register(str(MINT), price=PRICE)
        assert result.record.resale_allowed is True
        assert result.record.max_markup_pct == 20
        assert result.record.is_listed is False
        assert result.record.price == result.record.original_price == PRICE

    @pytest.mark.asyncio
    async def test_out_of_range_markup_reads_nothing(self, orchestrator, ledger, sender) -> None:
        ledger.get_account_info = AsyncMock()
        with pytest.raises(InvalidParameter):
            await orchestrator.register(MINT, price=PRICE, max_markup_pct=256)
        ledger.get_account_info.assert_not_awaited()
        assert sender.calls == []

    @pytest.mark.asyncio
    async def test_read_failure_keeps_mint(self, orchestrator, ledger, sender) -> None:
        ledger.get_account_info = AsyncMock(side_effect=ConnectionError("rpc reset"))
        with pytest.raises(RegistrationFailed) as exc_info:
            await orchestrator.register(MINT, price=PRICE)
        assert exc_info.value.mint == MINT
        assert "rpc reset" in exc_info.value.message
        assert sender.calls == []

    @pytest.mark.asyncio
    async def test_reread_failure_keeps_mint(self, orchestrator, ledger, sender) -> None:
        ledger.get_account_info = AsyncMock(
            side_effect=[SimpleNamespace(value=None), ConnectionError("rpc reset")]
        )
        with pytest.raises(RegistrationFailed) as exc_info:
            await orchestrator.register(MINT, price=PRICE)
        assert exc_info.value.mint == MINT
        assert "sig-1" in exc_info.value.message
        assert len(sender.calls) == 1

    @pytest.mark.asyncio
    async def test_foreign_account_keeps_mint(self, orchestrator, ledger) -> None:
        ledger.get_account_info = AsyncMock(
            return_value=SimpleNamespace(value=SimpleNamespace(data=b"\x00" * 91))
        )
        with pytest.raises(RegistrationFailed) as exc_info:
            await orchestrator.register(MINT, price=PRICE)
        assert exc_info.value.mint == MINT

    @pytest.mark.asyncio
    async def test_issue_read_failure_is_registration_failed(
        self, orchestrator, ledger, pointer
    ) -> None:
        ledger.get_account_info = AsyncMock(side_effect=ConnectionError("rpc reset"))
        with pytest.raises(RegistrationFailed) as exc_info:
            await orchestrator.issue(_request())
        assert exc_info.value.mint == MINT
        assert pointer.read() == MINT
