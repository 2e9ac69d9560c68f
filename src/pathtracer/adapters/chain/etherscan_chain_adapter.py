from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from pathtracer.config.settings import (
    ETHERSCAN_API_KEY,
    ETHERSCAN_BASE_URL,
    ETHERSCAN_CHAIN_IDS,
    ETHERSCAN_REQUESTS_PER_SEC,
    ETHERSCAN_TIMEOUT_SEC,
    ETHERSCAN_MAX_RETRIES,
    ETHERSCAN_HISTORY_PAGE_SIZE,
)

from pathtracer.adapters.chain.rate_limiter import SimpleRateLimiter, backoff_sleep
from pathtracer.adapters.chain.units import dec_to_int, hex_to_int, wei_to_gwei, wei_to_native
from pathtracer.core.dto import BlockWindow, HistoryWindow, RecentWindow, TxRecord
from pathtracer.core.errors import DataSourceError, RateLimitError, UnsupportedNetworkError
from pathtracer.ports.chain_data_port import ChainDataPort

logger = logging.getLogger(__name__)

LATEST_BLOCK = 99999999


class EtherscanChainAdapter(ChainDataPort):
    """
    Account-based networks through the Etherscan v2 multichain API.

    One instance serves one network (chain id picked from settings).
    """

    def __init__(
        self,
        network: str = "ethereum",
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if network not in ETHERSCAN_CHAIN_IDS:
            raise UnsupportedNetworkError(f"Etherscan has no chain id for {network!r}")

        self._network = network
        self._api_key = api_key if api_key is not None else ETHERSCAN_API_KEY
        self._chainid = ETHERSCAN_CHAIN_IDS[network]
        self._base_url = ETHERSCAN_BASE_URL
        self._timeout = ETHERSCAN_TIMEOUT_SEC
        self._max_retries = ETHERSCAN_MAX_RETRIES
        self._page_size = ETHERSCAN_HISTORY_PAGE_SIZE

        self._rl = SimpleRateLimiter(ETHERSCAN_REQUESTS_PER_SEC)
        self._session = session or requests.Session()

        self._block_ts_cache: Dict[int, int] = {}

    # ---------- internal ----------

    def _call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        req = dict(params)
        req["apikey"] = self._api_key
        req["chainid"] = str(self._chainid)

        last_err: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                self._rl.wait()
                resp = self._session.get(
                    self._base_url,
                    params=req,
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                data = resp.json()

                status = str(data.get("status", "1"))
                message = str(data.get("message", "OK"))
                result = data.get("result")

                if status == "0" and (
                    "rate limit" in message.lower() or "rate limit" in str(result).lower()
                ):
                    last_err = RateLimitError(f"{message}: {result}")
                    logger.debug("etherscan rate limited (attempt %d)", attempt + 1)
                    backoff_sleep(attempt)
                    continue

                return data

            except (requests.RequestException, ValueError) as e:
                last_err = e
                logger.debug("etherscan call failed (attempt %d): %s", attempt + 1, e)
                backoff_sleep(attempt)

        raise DataSourceError(f"Etherscan failed after retries: {last_err}")

    def _proxy(self, action: str, **params: Any) -> Optional[Dict[str, Any]]:
        data = self._call({"module": "proxy", "action": action, **params})
        if "error" in data:
            raise DataSourceError(f"Etherscan {action} error: {data['error']}")
        res = data.get("result")
        if res is None:
            return None
        if not isinstance(res, dict):
            # NOTOK responses carry a message string in result
            raise DataSourceError(f"Invalid {action} result: {res!r}")
        return res

    def _block_timestamp_ms(self, block_number: int) -> int:
        if block_number in self._block_ts_cache:
            return self._block_ts_cache[block_number]

        block = self._proxy("eth_getBlockByNumber", tag=hex(block_number), boolean="false")
        if block is None:
            return int(time.time() * 1000)

        ts = hex_to_int(block.get("timestamp")) * 1000
        self._block_ts_cache[block_number] = ts
        return ts

    def _row_to_record(self, r: Dict[str, Any]) -> TxRecord:
        # account/txlist rows: decimal strings, timeStamp in seconds
        if str(r.get("isError", "0")) == "1" or str(r.get("txreceipt_status", "1")) == "0":
            status = "failed"
        else:
            status = "success"
        return TxRecord(
            hash=r.get("hash", ""),
            network=self._network,
            from_address=(r.get("from") or "").lower(),
            to_address=(r.get("to") or "").lower(),
            value=wei_to_native(dec_to_int(r.get("value"))),
            block_number=dec_to_int(r.get("blockNumber")),
            timestamp=dec_to_int(r.get("timeStamp")) * 1000,
            gas=str(dec_to_int(r.get("gas"))),
            gas_price=wei_to_gwei(dec_to_int(r.get("gasPrice"))),
            gas_used=str(dec_to_int(r.get("gasUsed"))),
            status=status,
            input=r.get("input") or "",
        )

    # ---------- port methods ----------

    def fetch_transaction(self, tx_hash: str, network: str) -> Optional[TxRecord]:
        tx = self._proxy("eth_getTransactionByHash", txhash=tx_hash)
        if tx is None:
            return None

        receipt = self._proxy("eth_getTransactionReceipt", txhash=tx_hash)

        block_number = hex_to_int(tx.get("blockNumber"))
        if block_number > 0:
            timestamp = self._block_timestamp_ms(block_number)
        else:
            timestamp = int(time.time() * 1000)

        if receipt is None:
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
        if isinstance(window, RecentWindow):
            return self._txlist(address, 0, LATEST_BLOCK, window.limit, "desc")
        if not isinstance(window, BlockWindow):
            raise TypeError(f"Unknown history window: {window!r}")

        anchor = window.anchor_block
        if not (window.start_block < anchor < window.end_block):
            return self._txlist(address, window.start_block, window.end_block, self._page_size, "asc")

        # one page each way from the anchor, so a busy address still returns
        # the txs closest to it instead of the oldest in the window
        before = self._txlist(address, window.start_block, anchor, self._page_size, "desc")
        after = self._txlist(address, anchor, window.end_block, self._page_size, "asc")

        merged: Dict[str, TxRecord] = {}
        for t in list(reversed(before)) + after:
            merged.setdefault(t.hash, t)
        return list(merged.values())

    def _txlist(
        self,
        address: str,
        start_block: int,
        end_block: int,
        offset: int,
        sort: str,
    ) -> List[TxRecord]:
        data = self._call({
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": start_block,
            "endblock": end_block,
            "page": 1,
            "offset": offset,
            "sort": sort,
        })
        rows = data.get("result")
        if not isinstance(rows, list):
            # "No transactions found" comes back as status 0 with an empty list;
            # a string result is an API error
            if str(data.get("status", "1")) == "0" and isinstance(rows, str):
                raise DataSourceError(f"Etherscan txlist error: {rows}")
            return []

        return [self._row_to_record(r) for r in rows if isinstance(r, dict)]
