# ticketmint/services/storage.py
# SPDX-License-Identifier: Apache-2.0
"""
Content upload pipeline: ticket image, then the metadata document.

The metadata document embeds the image URI, so `upload_metadata` is only ever
called with a URI returned by a successful `upload_image`. Both go through
`StorageClient.store()` and inherit its bounded retry policy.
"""

from __future__ import annotations

import json
import logging
import mimetypes
from pathlib import Path
from typing import Any

from solders.pubkey import Pubkey

from ticketmint.core.clients import StorageClient
from ticketmint.core.constants import NFT_SYMBOL, fmt_sol
from ticketmint.core.errors import UploadFailed

log = logging.getLogger(__name__)


class ContentUploader:
    """Uploads ticket artifacts and returns gateway retrieval URIs."""

    def __init__(self, storage: StorageClient) -> None:
        self.storage = storage

    async def upload_image(self, path: str | Path, name: str | None = None) -> str:
        """
        Upload a local image file.

        Raises:
            UploadFailed: if the file does not exist or every attempt failed.
        """
        p = Path(path)
        if not p.is_file():
            raise UploadFailed(str(p), "image file not found")
        content_type = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        log.info("Uploading image %s", p)
        cid = await self.storage.store(p.read_bytes(), name or p.name, content_type)
        return self.storage.gateway_uri(cid)

    async def upload_metadata(
        self, document: dict[str, Any], name: str = "metadata.json"
    ) -> str:
        """Upload a JSON metadata document."""
        log.info("Uploading JSON metadata %s", name)
        body = json.dumps(document).encode("utf-8")
        cid = await self.storage.store(body, name, "application/json")
        return self.storage.gateway_uri(cid)


def build_ticket_metadata(
    *,
    name: str,
    description: str,
    image_uri: str,
    creator: Pubkey,
    price_lamports: int,
    event_date: str = "",
    seat: str = "",
    resale_allowed: bool = True,
    max_markup_pct: int = 20,
    external_url: str = "",
    image_type: str = "image/png",
) -> dict[str, Any]:
    """Token-metadata JSON for a ticket: event attributes, resale terms, creators."""
    price = fmt_sol(price_lamports)
    return {
        "name": name,
        "symbol": NFT_SYMBOL,
        "description": f"{description}\nEvent: {event_date}\nSeat: {seat}\nPrice: {price}",
        "image": image_uri,
        "external_url": external_url,
        "attributes": [
            {"trait_type": "Event Date", "value": event_date},
            {"trait_type": "Seat", "value": seat},
            {"trait_type": "Ticket Type", "value": "Event Ticket"},
            {"trait_type": "Price", "value": price},
            {"trait_type": "Resale Allowed", "value": "Yes" if resale_allowed else "No"},
            {"trait_type": "Max Markup", "value": f"{max_markup_pct}%"},
        ],
        "properties": {
            "files": [{"uri": image_uri, "type": image_type}],
            "creators": [{"address": str(creator), "share": 100}],
            "category": "ticket",
        },
    }
