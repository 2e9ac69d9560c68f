from __future__ import annotations

import logging
from typing import Dict, List

from pathtracer.config import settings
from pathtracer.core.dto import TxRecord
from pathtracer.core.errors import TracerError
from pathtracer.core.models import AddressRisk
from pathtracer.ports.address_risk_port import AddressRiskPort

logger = logging.getLogger(__name__)


def path_addresses(path: List[TxRecord]) -> List[str]:
    """Distinct addresses in path order (sender before recipient)."""
    seen: Dict[str, None] = {}
    for t in path:
        for a in (t.from_address, t.to_address):
            if a:
                seen.setdefault(a, None)
    return list(seen)


def screen_path_addresses(
    path: List[TxRecord],
    network: str,
    risk: AddressRiskPort,
    max_addresses: int = settings.RISK_MAX_ADDRESSES,
) -> Dict[str, AddressRisk]:
    """
    Best-effort risk lookup for the addresses on a traced path.
    Lookup failures are logged and the address is left out.
    """
    out: Dict[str, AddressRisk] = {}
    for address in path_addresses(path)[:max_addresses]:
        try:
            found = risk.get_address_risk(address, network)
        except TracerError as e:
            logger.warning("risk lookup failed for %s on %s: %s", address, network, e)
            continue
        if found is not None:
            out[address] = found
    return out
