# ticketmint/__init__.py
# SPDX-License-Identifier: Apache-2.0
"""NFT event tickets on Solana: issuance, market records, capped resale."""

__version__ = "0.1.0"
