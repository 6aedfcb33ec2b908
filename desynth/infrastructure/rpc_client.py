"""JSON-RPC Transaction Verifier — read-only receipt + confirmation-depth lookup over httpx.

Invariants:
    - verify() NEVER raises: timeouts, HTTP errors, JSON-RPC error objects and malformed
      payloads all come back as TransactionVerification(verified=False, error=...)
    - Every call bounded twice: httpx timeout per request AND asyncio.wait_for overall
    - Missing credentials fail at construction (ConfigError), never per call
    - verified=True only for a receipt with status 0x1
    - The URL template is filled only with allowlisted network names; the API key never
      goes to a host chosen by request data

Design Decisions:
    - Two calls (eth_getTransactionReceipt, then eth_blockNumber): confirmations =
      head - receipt block, computed here so callers compare against a plain int
    - Injected httpx.AsyncClient optional: tests pass one built on httpx.MockTransport
    - No retry loop: confirm_escrow is idempotent on the tx hash, so the caller retries
"""

import asyncio
import logging
from collections.abc import Collection

import httpx

from desynth.config import Settings
from desynth.core.boundary_protocols import TransactionVerification
from desynth.core.errors import ConfigError

logger = logging.getLogger(__name__)

_RECEIPT_SUCCESS = "0x1"


class RpcResponseError(Exception):
    """JSON-RPC level failure (error object, HTTP status, malformed payload)."""


class JsonRpcTransactionVerifier:
    """TransactionVerifier backed by an Ethereum JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_urls: dict[str, str] | None = None,
        api_key: str | None = None,
        url_template: str = "https://eth-{network}.g.alchemy.com/v2/{api_key}",
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
        networks: Collection[str] = ("sepolia",),
    ):
        if not rpc_urls and not api_key:
            raise ConfigError(
                "Blockchain RPC credentials not configured "
                "(set RPC_API_KEY or RPC_URLS)",
                setting="rpc_api_key",
            )
        self._rpc_urls = dict(rpc_urls or {})
        self._api_key = api_key
        self._url_template = url_template
        self._networks = frozenset(networks)
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client
        self._request_id = 0

    def rpc_url(self, network: str) -> str | None:
        """Endpoint for a configured network; None for anything else."""
        if network in self._rpc_urls:
            return self._rpc_urls[network]
        if self._api_key and network in self._networks:
            return self._url_template.format(network=network, api_key=self._api_key)
        return None

    async def verify(self, tx_hash: str, network: str) -> TransactionVerification:
        """Look up the receipt for tx_hash on network. Never raises."""
        url = self.rpc_url(network)
        if url is None:
            logger.error(
                f"No RPC endpoint for network {network!r}",
                extra={"tx_hash": tx_hash, "network": network},
            )
            return TransactionVerification(
                verified=False, error=f"no RPC endpoint for network {network}",
            )
        try:
            return await asyncio.wait_for(
                self._verify(url, tx_hash), timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return self._failed(tx_hash, network, "RPC timeout")
        except httpx.HTTPError as e:
            return self._failed(tx_hash, network, f"RPC transport error: {e}")
        except RpcResponseError as e:
            return self._failed(tx_hash, network, str(e))

    async def _verify(self, url: str, tx_hash: str) -> TransactionVerification:
        if self._http_client is not None:
            return await self._verify_with(self._http_client, url, tx_hash)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await self._verify_with(client, url, tx_hash)

    async def _verify_with(
        self, client: httpx.AsyncClient, url: str, tx_hash: str,
    ) -> TransactionVerification:
        receipt = await self._call(client, url, "eth_getTransactionReceipt", [tx_hash])
        if receipt is None:
            return TransactionVerification(verified=False, error="receipt not found")
        if not isinstance(receipt, dict):
            raise RpcResponseError("malformed receipt")
        if receipt.get("status") != _RECEIPT_SUCCESS:
            return TransactionVerification(
                verified=False, error=f"transaction reverted (status {receipt.get('status')})",
            )

        tx_block = _parse_quantity(receipt.get("blockNumber"), "blockNumber")
        head = _parse_quantity(
            await self._call(client, url, "eth_blockNumber", []), "eth_blockNumber",
        )
        gas_used = receipt.get("gasUsed")
        return TransactionVerification(
            verified=True,
            block_number=tx_block,
            confirmations=head - tx_block,
            gas_used=_parse_quantity(gas_used, "gasUsed") if gas_used else None,
        )

    async def _call(
        self, client: httpx.AsyncClient, url: str, method: str, params: list,
    ):
        self._request_id += 1
        response = await client.post(
            url,
            json={
                "jsonrpc": "2.0", "id": self._request_id,
                "method": method, "params": params,
            },
            timeout=self.timeout_seconds,
        )
        if response.status_code >= 400:
            raise RpcResponseError(f"{method}: HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError:
            raise RpcResponseError(f"{method}: response is not JSON")
        if not isinstance(payload, dict):
            raise RpcResponseError(f"{method}: malformed response")
        if payload.get("error"):
            raise RpcResponseError(f"{method}: RPC error {payload['error']}")
        return payload.get("result")

    def _failed(self, tx_hash: str, network: str, reason: str) -> TransactionVerification:
        logger.warning(
            f"Transaction verification failed: {reason}",
            extra={"tx_hash": tx_hash, "network": network},
        )
        return TransactionVerification(verified=False, error=reason)


def _parse_quantity(value: object, name: str) -> int:
    """Hex-encoded JSON-RPC quantity -> int."""
    if not isinstance(value, str) or not value.startswith("0x"):
        raise RpcResponseError(f"malformed quantity for {name}: {value!r}")
    try:
        return int(value, 16)
    except ValueError:
        raise RpcResponseError(f"malformed quantity for {name}: {value!r}")


def build_transaction_verifier(settings: Settings) -> JsonRpcTransactionVerifier:
    """Construct the verifier from settings. Raises ConfigError without credentials."""
    return JsonRpcTransactionVerifier(
        rpc_urls=settings.rpc_urls,
        api_key=settings.rpc_api_key,
        url_template=settings.rpc_url_template,
        timeout_seconds=settings.rpc_timeout_seconds,
        networks=settings.networks(),
    )
