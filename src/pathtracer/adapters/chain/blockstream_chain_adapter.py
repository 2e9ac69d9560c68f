from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from pathtracer.config.settings import (
    BLOCKSTREAM_BASE_URL,
    BLOCKSTREAM_REQUESTS_PER_SEC,
    BLOCKSTREAM_TIMEOUT_SEC,
    BLOCKSTREAM_MAX_RETRIES,
)

from pathtracer.adapters.chain.rate_limiter import SimpleRateLimiter, backoff_sleep
from pathtracer.core.dto import BlockWindow, HistoryWindow, RecentWindow, TxRecord
from pathtracer.core.errors import DataSourceError, RateLimitError
from pathtracer.core.models import BITCOIN
from pathtracer.ports.chain_data_port import ChainDataPort

logger = logging.getLogger(__name__)

SATS_PER_BTC = Decimal("100000000")


def sats_to_btc(sats: int) -> str:
    if not sats:
        return "0"
    return format((Decimal(sats) / SATS_PER_BTC).normalize(), "f")


class BlockstreamChainAdapter(ChainDataPort):
    """
    Bitcoin through the Blockstream Esplora REST API.

    UTXO transactions have no single sender/recipient; the record uses the
    first input's funding address as `from` and the first output as `to`.
    """

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self._base_url = BLOCKSTREAM_BASE_URL.rstrip("/")
        self._timeout = BLOCKSTREAM_TIMEOUT_SEC
        self._max_retries = BLOCKSTREAM_MAX_RETRIES

        self._rl = SimpleRateLimiter(BLOCKSTREAM_REQUESTS_PER_SEC)
        self._session = session or requests.Session()

    # ---------- internal ----------

    def _get(self, path: str) -> Optional[Any]:
        """GET a JSON resource; None on 404."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        last_err: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                self._rl.wait()
                resp = self._session.get(url, timeout=self._timeout)

                if resp.status_code == 404:
                    return None
                if resp.status_code == 429:
                    last_err = RateLimitError(f"Blockstream rate limited: {url}")
                    retry_after = resp.headers.get("Retry-After")
                    backoff_sleep(
                        attempt,
                        retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                    )
                    continue

                if 400 <= resp.status_code < 500:
                    # bad address / txid; retrying will not help
                    raise DataSourceError(f"Blockstream rejected {url}: HTTP {resp.status_code}")

                resp.raise_for_status()
                return resp.json()

            except (requests.RequestException, ValueError) as e:
                last_err = e
                logger.debug("blockstream call failed (attempt %d): %s", attempt + 1, e)
                backoff_sleep(attempt)

        raise DataSourceError(f"Blockstream failed after retries: {last_err}")

    @staticmethod
    def _to_record(tx: Dict[str, Any]) -> TxRecord:
        vin = tx.get("vin") or []
        vout = tx.get("vout") or []
        status = tx.get("status") or {}

        first_in = (vin[0].get("prevout") or {}) if vin else {}
        first_out = vout[0] if vout else {}
        total_out = sum(int(o.get("value") or 0) for o in vout)

        block_time = status.get("block_time")
        timestamp = int(block_time) * 1000 if block_time else int(time.time() * 1000)

        return TxRecord(
            hash=tx.get("txid", ""),
            network=BITCOIN,
            from_address=first_in.get("scriptpubkey_address") or "",
            to_address=first_out.get("scriptpubkey_address") or "",
            value=sats_to_btc(total_out),
            block_number=int(status.get("block_height") or 0),
            timestamp=timestamp,
            gas_used=str(tx.get("fee") or 0),
            status="success" if status.get("confirmed") else "pending",
        )

    # ---------- port methods ----------

    def fetch_transaction(self, tx_hash: str, network: str) -> Optional[TxRecord]:
        tx = self._get(f"tx/{tx_hash}")
        if tx is None:
            return None
        if not isinstance(tx, dict):
            raise DataSourceError(f"Invalid tx payload for {tx_hash}")
        return self._to_record(tx)

    def fetch_address_history(
        self,
        address: str,
        network: str,
        window: HistoryWindow,
    ) -> List[TxRecord]:
        if isinstance(window, BlockWindow):
            # esplora has no block-range filter for addresses
            raise TypeError("Blockstream history only supports RecentWindow")
        if not isinstance(window, RecentWindow):
            raise TypeError(f"Unknown history window: {window!r}")

        rows = self._get(f"address/{address}/txs")
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise DataSourceError(f"Invalid history payload for {address}")

        return [self._to_record(r) for r in rows[: window.limit] if isinstance(r, dict)]
