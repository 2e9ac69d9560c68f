from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests

from pathtracer.adapters.chain.rate_limiter import SimpleRateLimiter, backoff_sleep
from pathtracer.config import settings
from pathtracer.core.errors import DataSourceError, RateLimitError, UnsupportedNetworkError
from pathtracer.core.models import RISK_LEVELS, AddressRisk, MaliciousLink
from pathtracer.ports.address_risk_port import AddressRiskPort

logger = logging.getLogger(__name__)


class OKLinkRiskAdapter(AddressRiskPort):
    """Address risk level from the OKLink KYA tracker API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.OKLINK_API_KEY
        self._url = settings.OKLINK_RISK_URL
        self._timeout = settings.OKLINK_TIMEOUT_SEC
        self._max_retries = settings.OKLINK_MAX_RETRIES
        self._rl = SimpleRateLimiter(settings.OKLINK_REQUESTS_PER_SEC)
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Ok-Access-Key": self._api_key or "",
            "Content-Type": "application/json",
        }
        last_err: Optional[Exception] = None
        for attempt in range(self._max_retries):
            try:
                self._rl.wait()
                resp = self._session.get(self._url, params=params, headers=headers, timeout=self._timeout)
                if resp.status_code == 429:
                    last_err = RateLimitError("OKLink rate limited")
                    backoff_sleep(attempt)
                    continue
                resp.raise_for_status()
                data = resp.json()
                if not isinstance(data, dict):
                    raise DataSourceError(f"Invalid OKLink response: {data}")
                return data
            except (requests.RequestException, ValueError) as e:
                last_err = e
                logger.debug("oklink call failed (attempt %d): %s", attempt + 1, e)
                backoff_sleep(attempt)
        raise DataSourceError(f"OKLink failed after retries: {last_err}")

    @staticmethod
    def _dec(val: Any) -> Optional[Decimal]:
        if val is None or val == "":
            return None
        try:
            return Decimal(str(val))
        except InvalidOperation:
            return None

    def get_address_risk(self, address: str, network: str) -> Optional[AddressRisk]:
        if not self.configured:
            logger.warning("OKLINK_API_KEY not configured; skipping risk lookup for %s", address)
            return None

        chain = settings.OKLINK_NETWORKS.get(network)
        if chain is None:
            raise UnsupportedNetworkError(f"OKLink has no risk data for {network!r}")

        data = self._call({"network": chain, "address": address})
        if str(data.get("code", "0")) != "0":
            raise DataSourceError(f"OKLink error {data.get('code')}: {data.get('msg')}")

        rows = data.get("data")
        row = rows[0] if isinstance(rows, list) and rows else rows
        if not isinstance(row, dict):
            return None

        level = str(row.get("level") or "").upper()
        links = tuple(
            MaliciousLink(category=str(m.get("category") or ""), value=str(m.get("value") or ""))
            for m in (row.get("maliciousAddressList") or [])
            if isinstance(m, dict)
        )
        return AddressRisk(
            address=str(row.get("address") or address),
            network=network,
            level=level if level in RISK_LEVELS else "UNKNOWN",
            risk_score=self._dec(row.get("riskScore")),
            associate_black_addresses=str(row.get("associateBlackAddresses") or ""),
            interaction_time=str(row.get("interactionTime") or ""),
            amount=str(row.get("amount") or ""),
            malicious_links=links,
        )


__all__ = ["OKLinkRiskAdapter"]
