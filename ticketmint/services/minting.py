# ticketmint/services/minting.py
# SPDX-License-Identifier: Apache-2.0
"""
Asset-minting interface and a Metaplex Token Metadata adapter.

The issuance workflow only depends on `AssetMinter`:

    mint(metadata_uri, name, royalty_bps, creators) -> MintReceipt

`TokenMetadataMinter` implements it with one transaction that
  1) creates a 0-decimal SPL mint owned by the token program,
  2) creates the payer's associated token account and mints exactly 1 token,
  3) attaches Metaplex metadata (CreateMetadataAccountV3),
  4) creates a master edition with max supply 0, which hands mint authority
     to the edition and fixes supply at one.

Minting is never retried here: resubmitting could create a second asset.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from borsh_construct import Bool, CStruct, Enum, Option, String, U8, U16, U64, Vec
from solana.rpc.async_api import AsyncClient
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from solders.sysvar import RENT
from spl.token.constants import MINT_LEN, TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeMintParams,
    MintToParams,
    create_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    mint_to,
)

from ticketmint.core.constants import NFT_SYMBOL, SYSTEM_PROGRAM_ID, TOKEN_METADATA_PROGRAM_ID
from ticketmint.core.errors import MintingFailed, TransactionRejected

from .addresses import derive_edition_address, derive_metadata_address
from .program import send_instructions

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Creator:
    address: Pubkey
    share: int
    verified: bool = True


@dataclass(frozen=True)
class MintReceipt:
    """Identity of the new asset and the signature of its creation transaction."""

    mint: Pubkey
    signature: str


class AssetMinter(Protocol):
    async def mint(
        self,
        *,
        metadata_uri: str,
        name: str,
        royalty_bps: int,
        creators: Sequence[Creator],
    ) -> MintReceipt: ...


# =============================================================================
# Token Metadata layouts
# =============================================================================

CREATE_METADATA_ACCOUNT_V3 = 33
CREATE_MASTER_EDITION_V3 = 17

CreatorLayout = CStruct("address" / U8[32], "verified" / Bool, "share" / U8)
CollectionLayout = CStruct("verified" / Bool, "key" / U8[32])
UsesLayout = CStruct(
    "use_method" / Enum("Burn", "Multiple", "Single", enum_name="UseMethod"),
    "remaining" / U64,
    "total" / U64,
)
CollectionDetailsLayout = Enum("V1" / CStruct("size" / U64), enum_name="CollectionDetails")
DataV2Layout = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CreatorLayout)),
    "collection" / Option(CollectionLayout),
    "uses" / Option(UsesLayout),
)
CreateMetadataV3Layout = CStruct(
    "data" / DataV2Layout,
    "is_mutable" / Bool,
    "collection_details" / Option(CollectionDetailsLayout),
)
CreateMasterEditionV3Layout = CStruct("max_supply" / Option(U64))


def build_create_metadata_ix(
    *,
    mint: Pubkey,
    authority: Pubkey,
    name: str,
    symbol: str,
    uri: str,
    royalty_bps: int,
    creators: Sequence[Creator],
) -> Instruction:
    data = bytes([CREATE_METADATA_ACCOUNT_V3]) + CreateMetadataV3Layout.build(
        {
            "data": {
                "name": name,
                "symbol": symbol,
                "uri": uri,
                "seller_fee_basis_points": royalty_bps,
                "creators": [
                    {"address": list(bytes(c.address)), "verified": c.verified, "share": c.share}
                    for c in creators
                ]
                or None,
                "collection": None,
                "uses": None,
            },
            "is_mutable": True,
            "collection_details": None,
        }
    )
    accounts = [
        AccountMeta(derive_metadata_address(mint), False, True),
        AccountMeta(mint, False, False),
        AccountMeta(authority, True, False),  # mint authority
        AccountMeta(authority, True, True),  # payer
        AccountMeta(authority, True, False),  # update authority
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        AccountMeta(RENT, False, False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, data, accounts)


def build_create_master_edition_ix(*, mint: Pubkey, authority: Pubkey) -> Instruction:
    data = bytes([CREATE_MASTER_EDITION_V3]) + CreateMasterEditionV3Layout.build(
        {"max_supply": 0}
    )
    accounts = [
        AccountMeta(derive_edition_address(mint), False, True),
        AccountMeta(mint, False, True),
        AccountMeta(authority, True, False),  # update authority
        AccountMeta(authority, True, False),  # mint authority
        AccountMeta(authority, True, True),  # payer
        AccountMeta(derive_metadata_address(mint), False, True),
        AccountMeta(TOKEN_PROGRAM_ID, False, False),
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        AccountMeta(RENT, False, False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, data, accounts)


# =============================================================================
# Minter
# =============================================================================


class TokenMetadataMinter:
    """Mint a one-of-one Metaplex NFT owned and paid for by `payer`."""

    def __init__(self, client: AsyncClient, payer: Keypair, *, symbol: str = NFT_SYMBOL) -> None:
        self.client = client
        self.payer = payer
        self.symbol = symbol

    async def build_instructions(
        self,
        mint: Pubkey,
        *,
        metadata_uri: str,
        name: str,
        royalty_bps: int,
        creators: Sequence[Creator],
    ) -> list[Instruction]:
        owner = self.payer.pubkey()
        rent = (await self.client.get_minimum_balance_for_rent_exemption(MINT_LEN)).value
        return [
            create_account(
                CreateAccountParams(
                    from_pubkey=owner,
                    to_pubkey=mint,
                    lamports=rent,
                    space=MINT_LEN,
                    owner=TOKEN_PROGRAM_ID,
                )
            ),
            initialize_mint(
                InitializeMintParams(
                    decimals=0,
                    mint=mint,
                    mint_authority=owner,
                    freeze_authority=owner,
                    program_id=TOKEN_PROGRAM_ID,
                )
            ),
            create_associated_token_account(owner, owner, mint),
            mint_to(
                MintToParams(
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    dest=get_associated_token_address(owner, mint),
                    mint_authority=owner,
                    amount=1,
                )
            ),
            build_create_metadata_ix(
                mint=mint,
                authority=owner,
                name=name,
                symbol=self.symbol,
                uri=metadata_uri,
                royalty_bps=royalty_bps,
                creators=creators,
            ),
            build_create_master_edition_ix(mint=mint, authority=owner),
        ]

    async def mint(
        self,
        *,
        metadata_uri: str,
        name: str,
        royalty_bps: int,
        creators: Sequence[Creator],
    ) -> MintReceipt:
        """
        Create the asset. Not retried.

        Raises:
            MintingFailed: with the program logs, on any failure.
        """
        mint_kp = Keypair()
        log.info("Generated mint address: %s", mint_kp.pubkey())
        try:
            ixs = await self.build_instructions(
                mint_kp.pubkey(),
                metadata_uri=metadata_uri,
                name=name,
                royalty_bps=royalty_bps,
                creators=creators,
            )
            signature = await send_instructions(self.client, ixs, [self.payer, mint_kp])
        except TransactionRejected as e:
            raise MintingFailed(e.message, e.logs) from e
        except Exception as e:  # noqa: BLE001
            raise MintingFailed(str(e)) from e
        log.info("NFT created: mint=%s tx=%s", mint_kp.pubkey(), signature)
        return MintReceipt(mint=mint_kp.pubkey(), signature=signature)
