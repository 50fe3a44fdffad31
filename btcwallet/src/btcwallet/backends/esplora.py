"""
Esplora HTTP API blockchain backend.
Works with blockstream.info, mempool.space or a self-hosted electrs/esplora.
"""

from __future__ import annotations

from typing import Any

import httpx
from btccore.transaction import CodecError, OutPoint, Transaction
from loguru import logger

from btcwallet.backends.base import BackendError, BlockchainBackend, ScannedTransaction, SyncResult
from btcwallet.progress import ProgressBridge
from btcwallet.wallet.keys import DerivationError, DescriptorProvider
from btcwallet.wallet.models import BlockTime, KeychainKind

# Esplora returns confirmed history in pages of this size
CHAIN_PAGE_SIZE = 25


class EsploraBackend(BlockchainBackend):
    """
    Blockchain backend using the Esplora REST API.

    Scanning walks each keychain in batches of ``stop_gap`` addresses and
    stops once the last ``stop_gap`` derived addresses have no history.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    async def _get(self, path: str) -> httpx.Response:
        try:
            response = await self.client.get(f"{self.base_url}{path}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Esplora request {path} failed: {e}")
            raise BackendError(f"Esplora request {path} failed: {e}") from e
        return response

    async def _get_json(self, path: str) -> Any:
        response = await self._get(path)
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Esplora returned invalid JSON for {path}: {e}") from e

    async def get_block_height(self) -> int:
        response = await self._get("/blocks/tip/height")
        try:
            height = int(response.text.strip())
        except ValueError as e:
            raise BackendError(f"Invalid tip height {response.text!r}") from e
        logger.debug(f"Current block height: {height}")
        return height

    async def get_address_history(self, address: str) -> list[dict[str, Any]]:
        """All transactions for ``address``: mempool first, then confirmed pages."""
        history = _check_history(address, await self._get_json(f"/address/{address}/txs"))

        confirmed = [tx for tx in history if tx["status"].get("confirmed")]
        page_size = len(confirmed)
        while page_size >= CHAIN_PAGE_SIZE:
            last_seen = confirmed[-1]["txid"]
            page = _check_history(
                address, await self._get_json(f"/address/{address}/txs/chain/{last_seen}")
            )
            history.extend(page)
            confirmed = page
            page_size = len(page)

        return history

    async def get_transaction(self, txid: str) -> Transaction:
        response = await self._get(f"/tx/{txid}/hex")
        try:
            tx = Transaction.from_hex(response.text.strip())
        except CodecError as e:
            raise BackendError(f"Esplora returned undecodable transaction {txid}: {e}") from e
        if tx.txid != txid:
            raise BackendError(f"Esplora returned transaction {tx.txid} for {txid}")
        return tx

    async def _scan_keychain(
        self,
        provider: DescriptorProvider,
        keychain: KeychainKind,
        stop_gap: int,
        progress: ProgressBridge,
        progress_base: float,
        found: dict[str, dict[str, Any]],
    ) -> int:
        """Scan one keychain, collecting tx JSON into ``found``. Returns the last used index."""
        last_used = -1
        start = 0

        while True:
            batch_end = start + stop_gap
            try:
                provider.ensure_derived(keychain, batch_end - 1)
                addresses = [
                    (i, provider.derive_address(keychain, i)) for i in range(start, batch_end)
                ]
            except DerivationError as e:
                logger.warning(f"Stopping {keychain.value} scan at index {start}: {e}")
                break

            for index, address in addresses:
                history = await self.get_address_history(address)
                if history:
                    last_used = index
                    for tx in history:
                        found[tx["txid"]] = tx

            progress.update(
                progress_base,
                f"Scanned {keychain.value} addresses {start}-{batch_end - 1}",
            )

            if batch_end - 1 - last_used >= stop_gap:
                break
            start = batch_end

        logger.debug(f"{keychain.value} keychain: last used index {last_used}")
        return last_used

    async def sync(
        self,
        provider: DescriptorProvider,
        stop_gap: int,
        progress: ProgressBridge,
    ) -> SyncResult:
        if stop_gap < 1:
            raise ValueError(f"stop_gap must be positive, got {stop_gap}")

        logger.info(f"Starting Esplora sync against {self.base_url} (stop_gap={stop_gap})")
        progress.update(0.0, "Starting sync")
        tip_height = await self.get_block_height()

        found: dict[str, dict[str, Any]] = {}
        await self._scan_keychain(provider, KeychainKind.EXTERNAL, stop_gap, progress, 25.0, found)
        await self._scan_keychain(provider, KeychainKind.INTERNAL, stop_gap, progress, 50.0, found)

        transactions: list[ScannedTransaction] = []
        total = len(found)
        for position, (txid, tx_json) in enumerate(found.items(), start=1):
            tx = await self.get_transaction(txid)
            try:
                scanned = ScannedTransaction(
                    transaction=tx,
                    confirmation_time=_parse_status(tx_json["status"]),
                    prevout_values=_parse_prevouts(tx_json),
                )
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise BackendError(f"Malformed Esplora data for transaction {txid}: {e}") from e
            transactions.append(scanned)
            progress.update(50.0 + 50.0 * position / total, f"Fetched transaction {txid}")

        progress.update(100.0, "Sync complete")
        logger.info(f"Esplora sync found {total} transactions at tip {tip_height}")
        return SyncResult(tip_height=tip_height, transactions=transactions)

    async def close(self) -> None:
        await self.client.aclose()


def _check_history(address: str, page: Any) -> list[dict[str, Any]]:
    """Validate an address history page: a list of objects with a txid and a status."""
    if not isinstance(page, list):
        raise BackendError(f"Esplora history for {address} is not a list")
    for entry in page:
        if (
            not isinstance(entry, dict)
            or not isinstance(entry.get("txid"), str)
            or not isinstance(entry.get("status"), dict)
        ):
            raise BackendError(f"Malformed Esplora history entry for {address}: {entry!r}")
    return page


def _parse_status(status: dict[str, Any]) -> BlockTime | None:
    if not status.get("confirmed"):
        return None
    return BlockTime(height=status["block_height"], timestamp=status.get("block_time", 0))


def _parse_prevouts(tx_json: dict[str, Any]) -> dict[OutPoint, int]:
    prevouts: dict[OutPoint, int] = {}
    for vin in tx_json.get("vin", []):
        if vin.get("is_coinbase"):
            continue
        prevout = vin.get("prevout")
        if prevout is None or "value" not in prevout:
            continue
        prevouts[OutPoint(vin["txid"], vin["vout"])] = prevout["value"]
    return prevouts
