# ticketmint/core/clients.py
# SPDX-License-Identifier: Apache-2.0
"""
Resilient network clients for the ledger RPC and the content store.

This module exposes two retry policies:

- `connect_with_failover()` → `RpcConnection`
    Walks an **ordered** list of RPC endpoints. Each endpoint gets up to N
    liveness checks (`getSlot`) with linear backoff (`attempt * base_delay`).
    The first endpoint that answers becomes the active connection for the
    session; calls made on it afterwards are not re-checked.
- `StorageClient.store()` → content identifier
    One upload endpoint, retried a fixed number of times with a fixed delay.
    A response without a content identifier is treated as a retryable
    failure, exactly like a transport error.

Both policies take an injectable `sleep` so tests can count delays without
waiting for them.

Failure behavior:
  * Every endpoint exhausted → `NetworkExhausted` carrying the last error.
  * Every upload attempt failed → `UploadFailed` carrying the server's error
    payload when one was returned, else the transport error.
  * Failed upload attempts may leave orphaned objects in the store; only the
    identifier of the successful attempt is returned.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed

from .constants import TEST_NETWORK_MARKERS
from .errors import MissingParameter, NetworkExhausted, UploadFailed

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


# =============================================================================
# Ledger RPC
# =============================================================================


@dataclass
class RpcConnection:
    """The active RPC connection selected for one session."""

    client: AsyncClient
    endpoint: str

    @property
    def is_test_network(self) -> bool:
        """True for localnet/devnet/testnet endpoints, where airdrops exist."""
        url = self.endpoint.lower()
        host = urlparse(url).hostname or ""
        return any(marker in host or marker in url for marker in TEST_NETWORK_MARKERS)

    async def close(self) -> None:
        await self.client.close()


def _default_client_factory(endpoint: str, timeout: float) -> AsyncClient:
    return AsyncClient(endpoint, commitment=Confirmed, timeout=timeout)


async def connect_with_failover(
    endpoints: Sequence[str],
    *,
    max_retries: int = 3,
    base_delay: float = 2.0,
    timeout: float = 60.0,
    client_factory: Callable[[str, float], AsyncClient] = _default_client_factory,
    sleep: Sleep = asyncio.sleep,
) -> RpcConnection:
    """
    Try `endpoints` in order and return the first one that answers.

    Args:
        endpoints: Candidate RPC URLs, highest priority first.
        max_retries: Attempts per endpoint before moving on.
        base_delay: Linear backoff base; attempt *k* waits ``k * base_delay``
            seconds before attempt *k+1* on the same endpoint.
        timeout: Per-request timeout handed to the RPC client.

    Raises:
        NetworkExhausted: if no endpoint answered.
    """
    if not endpoints:
        raise NetworkExhausted([], None)
    last_error: BaseException | None = None
    for endpoint in endpoints:
        for attempt in range(1, max_retries + 1):
            log.info("Connecting to %s (attempt %d/%d)", endpoint, attempt, max_retries)
            client = client_factory(endpoint, timeout)
            try:
                slot = (await client.get_slot()).value
            except Exception as e:  # noqa: BLE001
                last_error = e
                log.warning("Connection to %s failed: %s", endpoint, e)
                await client.close()
                if attempt < max_retries:
                    await sleep(attempt * base_delay)
                continue
            log.info("Connected to %s at slot %s", endpoint, slot)
            return RpcConnection(client=client, endpoint=endpoint)
    raise NetworkExhausted(list(endpoints), last_error)


# =============================================================================
# Content storage
# =============================================================================


class _MissingContentId(Exception):
    """The store answered, but without a content identifier."""

    def __init__(self, payload: Any) -> None:
        self.payload = payload
        super().__init__(f"response missing CID: {json.dumps(payload, default=str)}")


def _payload(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class StorageClient:
    """
    Pinata v3 upload client with a bounded, fixed-delay retry policy.

    Exactly one remote object is created per attempt. The retrieval URI of a
    content identifier is a pure function of the configured gateway host.
    """

    def __init__(
        self,
        jwt: str,
        gateway: str,
        *,
        upload_url: str = "https://uploads.pinata.cloud/v3/files",
        max_retries: int = 3,
        retry_delay: float = 3.0,
        timeout: float = 60.0,
        network: str = "public",
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not jwt:
            raise MissingParameter("PINATA_JWT")
        self._jwt = jwt
        self.gateway = gateway
        self.upload_url = upload_url
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.network = network
        self._transport = transport
        self._sleep = sleep

    def gateway_uri(self, cid: str) -> str:
        """Deterministic retrieval URI for a content identifier."""
        return f"https://{self.gateway}/ipfs/{cid}"

    async def _post_once(
        self, http: httpx.AsyncClient, content: bytes, name: str, content_type: str
    ) -> str:
        resp = await http.post(
            self.upload_url,
            headers={"Authorization": f"Bearer {self._jwt}"},
            files={"file": (name, content, content_type)},
            data={
                "network": self.network,
                "name": name,
                "keyvalues": json.dumps({"purpose": "ticket", "uploadedBy": "ticketmint"}),
            },
        )
        resp.raise_for_status()
        payload = _payload(resp)
        data = payload.get("data") if isinstance(payload, dict) else None
        cid = data.get("cid") if isinstance(data, dict) else None
        if not cid:
            raise _MissingContentId(payload)
        return cid

    async def store(self, content: bytes, name: str, content_type: str) -> str:
        """
        Upload `content` and return its content identifier.

        Raises:
            UploadFailed: after `max_retries` failed attempts.
        """
        detail = "no attempt made"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as http:
            for attempt in range(1, self.max_retries + 1):
                try:
                    cid = await self._post_once(http, content, name, content_type)
                except httpx.HTTPStatusError as e:
                    detail = json.dumps(_payload(e.response), default=str)
                except _MissingContentId as e:
                    detail = str(e)
                except httpx.HTTPError as e:
                    detail = f"{type(e).__name__}: {e}"
                else:
                    log.info("Uploaded %s (cid=%s)", name, cid)
                    return cid
                remaining = self.max_retries - attempt
                log.warning(
                    "Upload of %s failed, retrying... (%d attempts left): %s",
                    name,
                    remaining,
                    detail,
                )
                if remaining:
                    await self._sleep(self.retry_delay)
        raise UploadFailed(name, detail)
