from __future__ import annotations

import datetime as dt
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from pathtracer.config.settings import (
    ALCHEMY_API_KEY,
    ALCHEMY_BASE_URLS,
    ALCHEMY_REQUESTS_PER_SEC,
    ALCHEMY_TIMEOUT_SEC,
    ALCHEMY_MAX_RETRIES,
    ETHERSCAN_HISTORY_PAGE_SIZE,
)

from pathtracer.adapters.chain.rate_limiter import SimpleRateLimiter, backoff_sleep
from pathtracer.adapters.chain.units import hex_to_int, wei_to_gwei, wei_to_native
from pathtracer.core.dto import BlockWindow, HistoryWindow, RecentWindow, TxRecord
from pathtracer.core.errors import DataSourceError, RateLimitError, UnsupportedNetworkError
from pathtracer.ports.chain_data_port import ChainDataPort

logger = logging.getLogger(__name__)


def _iso_to_ms(value: Optional[str]) -> int:
    if not value:
        return int(time.time() * 1000)
    parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    return int(parsed.timestamp() * 1000)


class AlchemyChainAdapter(ChainDataPort):
    """
    Account-based networks through an Alchemy JSON-RPC node.

    Used as the fallback behind Etherscan. History comes from
    `alchemy_getAssetTransfers` (external transfers only).
    """

    def __init__(
        self,
        network: str = "ethereum",
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if network not in ALCHEMY_BASE_URLS:
            raise UnsupportedNetworkError(f"Alchemy has no endpoint for {network!r}")

        self._network = network
        key = api_key if api_key is not None else ALCHEMY_API_KEY
        self._url = f"{ALCHEMY_BASE_URLS[network]}/{key or ''}"
        self._timeout = ALCHEMY_TIMEOUT_SEC
        self._max_retries = ALCHEMY_MAX_RETRIES
        self._page_size = ETHERSCAN_HISTORY_PAGE_SIZE

        self._rl = SimpleRateLimiter(ALCHEMY_REQUESTS_PER_SEC)
        self._session = session or requests.Session()

    # ---------- internal ----------

    def _rpc(self, method: str, params: List[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        last_err: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                self._rl.wait()
                resp = self._session.post(self._url, json=body, timeout=self._timeout)

                if resp.status_code == 429:
                    last_err = RateLimitError(f"Alchemy rate limited on {method}")
                    backoff_sleep(attempt)
                    continue

                resp.raise_for_status()
                data = resp.json()

                err = data.get("error")
                if err:
                    raise DataSourceError(f"Alchemy {method} error: {err.get('message', err)}")
                return data.get("result")

            except (requests.RequestException, ValueError) as e:
                last_err = e
                logger.debug("alchemy call failed (attempt %d): %s", attempt + 1, e)
                backoff_sleep(attempt)

        raise DataSourceError(f"Alchemy failed after retries: {last_err}")

    def _transfer_to_record(self, t: Dict[str, Any]) -> TxRecord:
        raw = (t.get("rawContract") or {}).get("value")
        if raw:
            value = wei_to_native(hex_to_int(raw))
        else:
            value = str(t.get("value") or "0")
        return TxRecord(
            hash=t.get("hash", ""),
            network=self._network,
            from_address=(t.get("from") or "").lower(),
            to_address=(t.get("to") or "").lower(),
            value=value,
            block_number=hex_to_int(t.get("blockNum")),
            timestamp=_iso_to_ms((t.get("metadata") or {}).get("blockTimestamp")),
            status="success",
        )

    def _transfers(self, direction: str, address: str, start: int, end: Optional[int], count: int, order: str) -> List[TxRecord]:
        query: Dict[str, Any] = {
            "fromBlock": hex(start),
            "toBlock": hex(end) if end is not None else "latest",
            direction: address,
            "category": ["external"],
            "withMetadata": True,
            "excludeZeroValue": False,
            "maxCount": hex(count),
            "order": order,
        }
        result = self._rpc("alchemy_getAssetTransfers", [query]) or {}
        transfers = result.get("transfers") if isinstance(result, dict) else None
        if not isinstance(transfers, list):
            return []
        return [self._transfer_to_record(t) for t in transfers if isinstance(t, dict)]

    # ---------- port methods ----------

    def fetch_transaction(self, tx_hash: str, network: str) -> Optional[TxRecord]:
        tx = self._rpc("eth_getTransactionByHash", [tx_hash])
        if tx is None:
            return None
        if not isinstance(tx, dict):
            raise DataSourceError(f"Invalid tx payload for {tx_hash}")

        receipt = self._rpc("eth_getTransactionReceipt", [tx_hash])

        block_number = hex_to_int(tx.get("blockNumber"))
        timestamp = int(time.time() * 1000)
        if block_number > 0:
            block = self._rpc("eth_getBlockByNumber", [hex(block_number), False])
            if isinstance(block, dict):
                timestamp = hex_to_int(block.get("timestamp")) * 1000

        if not isinstance(receipt, dict):
            status, gas_used = "pending", "0"
        else:
            status = "success" if receipt.get("status") == "0x1" else "failed"
            gas_used = str(hex_to_int(receipt.get("gasUsed")))

        return TxRecord(
            hash=tx.get("hash") or tx_hash,
            network=self._network,
            from_address=(tx.get("from") or "").lower(),
            to_address=(tx.get("to") or "").lower(),
            value=wei_to_native(hex_to_int(tx.get("value"))),
            block_number=block_number,
            timestamp=timestamp,
            gas=str(hex_to_int(tx.get("gas"))),
            gas_price=wei_to_gwei(hex_to_int(tx.get("gasPrice"))),
            gas_used=gas_used,
            status=status,
            input=tx.get("input") or "",
        )

    def fetch_address_history(
        self,
        address: str,
        network: str,
        window: HistoryWindow,
    ) -> List[TxRecord]:
        items: List[TxRecord] = []
        for direction in ("fromAddress", "toAddress"):
            if isinstance(window, RecentWindow):
                items.extend(self._transfers(direction, address, 0, None, window.limit, "desc"))
            elif isinstance(window, BlockWindow):
                anchor = window.anchor_block
                if window.start_block < anchor < window.end_block:
                    before = self._transfers(direction, address, window.start_block, anchor, self._page_size, "desc")
                    items.extend(reversed(before))
                    items.extend(self._transfers(direction, address, anchor, window.end_block, self._page_size, "asc"))
                else:
                    items.extend(
                        self._transfers(direction, address, window.start_block, window.end_block, self._page_size, "asc")
                    )
            else:
                raise TypeError(f"Unknown history window: {window!r}")

        merged: Dict[str, TxRecord] = {}
        for t in items:
            merged.setdefault(t.hash, t)
        out = list(merged.values())

        if isinstance(window, RecentWindow):
            out.sort(key=lambda x: (x.block_number, x.timestamp), reverse=True)
            return out[: window.limit]
        out.sort(key=lambda x: (x.block_number, x.timestamp))
        return out
