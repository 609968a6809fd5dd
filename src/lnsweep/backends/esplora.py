"""
Esplora REST API backend (blockstream.info, mempool.space or self-hosted).
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from lnsweep.backends.base import BlockchainBackend, ChainOutput, ChainTransaction
from lnsweep.config import NetworkParams
from lnsweep.errors import ChainLookupError
from lnsweep.models import UTXO
from lnsweep.wallet.address import address_to_scriptpubkey

DEFAULT_TIMEOUT = 30.0


class EsploraBackend(BlockchainBackend):
    """
    Blockchain backend using an Esplora HTTP API.

    Every transport or HTTP status failure surfaces as ChainLookupError,
    except a 404 on a transaction lookup which means "unknown".
    """

    def __init__(
        self,
        api_url: str,
        params: NetworkParams,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.params = params
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _request(self, method: str, endpoint: str, content: str | None = None) -> Any:
        url = f"{self.api_url}/{endpoint}"

        try:
            response = await self.client.request(method, url, content=content)
            response.raise_for_status()
            if response.headers.get("content-type", "").startswith("application/json"):
                return response.json()
            return response.text

        except httpx.HTTPStatusError:
            raise
        except httpx.HTTPError as e:
            logger.error(f"Esplora API call failed: {endpoint} - {e}")
            raise ChainLookupError(f"{method} {endpoint} failed: {e}") from e
        except ValueError as e:
            raise ChainLookupError(f"Malformed response from {endpoint}: {e}") from e

    async def get_unspent(self, address: str) -> list[UTXO]:
        script = address_to_scriptpubkey(address, self.params)
        try:
            result = await self._request("GET", f"address/{address}/utxo")
        except httpx.HTTPStatusError as e:
            raise ChainLookupError(
                f"UTXO lookup for {address} failed: HTTP {e.response.status_code}"
            ) from e

        if not isinstance(result, list):
            raise ChainLookupError(f"Unexpected UTXO response for {address}")

        utxos = []
        try:
            for entry in result:
                status = entry.get("status") or {}
                utxos.append(
                    UTXO(
                        txid=entry["txid"],
                        vout=entry["vout"],
                        value=entry["value"],
                        script_pubkey=script,
                        address=address,
                        height=status.get("block_height") if status.get("confirmed") else None,
                    )
                )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ChainLookupError(f"Malformed UTXO entry for {address}: {e!r}") from e

        if utxos:
            logger.debug(f"Found {len(utxos)} UTXO(s) for {address}")
        return utxos

    async def get_transaction(self, txid: str) -> ChainTransaction | None:
        try:
            result = await self._request("GET", f"tx/{txid}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise ChainLookupError(
                f"Transaction lookup for {txid} failed: HTTP {e.response.status_code}"
            ) from e

        if not isinstance(result, dict) or "vout" not in result:
            raise ChainLookupError(f"Unexpected transaction response for {txid}")

        try:
            outputs = [
                ChainOutput(
                    value=out["value"],
                    script_pubkey=bytes.fromhex(out["scriptpubkey"]),
                    address=out.get("scriptpubkey_address", ""),
                )
                for out in result["vout"]
            ]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ChainLookupError(f"Malformed transaction {txid}: {e!r}") from e

        status = result.get("status") or {}
        return ChainTransaction(
            txid=result.get("txid", txid),
            outputs=outputs,
            block_height=status.get("block_height") if status.get("confirmed") else None,
        )

    async def broadcast_transaction(self, tx_hex: str) -> str:
        try:
            txid = await self._request("POST", "tx", content=tx_hex)
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to broadcast transaction: {e.response.text}")
            raise ChainLookupError(
                f"Broadcast failed: HTTP {e.response.status_code} {e.response.text}"
            ) from e

        txid = str(txid).strip()
        logger.info(f"Broadcast transaction: {txid}")
        return txid

    async def close(self) -> None:
        """Close the HTTP client connection."""
        await self.client.aclose()
