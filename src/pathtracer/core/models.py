from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from pathtracer.config import settings
from pathtracer.core.errors import UnsupportedNetworkError


# Networks

ETHEREUM = "ethereum"
BSC = "bsc"
BITCOIN = "bitcoin"

ACCOUNT_NETWORKS = frozenset({ETHEREUM, BSC})
LEDGER_NETWORKS = frozenset({BITCOIN})
SUPPORTED_NETWORKS = ACCOUNT_NETWORKS | LEDGER_NETWORKS

_NETWORK_ALIASES = {
    "eth": ETHEREUM,
    "btc": BITCOIN,
    "binance": BSC,
}


def normalize_network(network: str) -> str:
    tag = (network or "").strip().lower()
    tag = _NETWORK_ALIASES.get(tag, tag)
    if tag not in SUPPORTED_NETWORKS:
        raise UnsupportedNetworkError(f"Unsupported network: {network!r}")
    return tag


# Configuration model

@dataclass(frozen=True)
class TraceConfig:
    """
    Run configuration for one path trace.

    The heuristic knobs (fan-out, time window, value-ratio band) default to
    settings and can be overridden per run.
    """

    seed_hash: str
    network: str = ETHEREUM
    max_depth: int = settings.TRACE_MAX_DEPTH

    fan_out: int = settings.TRACE_FAN_OUT
    time_window_ms: int = settings.TRACE_TIME_WINDOW_MS
    min_value_ratio: Decimal = settings.TRACE_MIN_VALUE_RATIO
    max_value_ratio: Decimal = settings.TRACE_MAX_VALUE_RATIO

    # history window sizing
    block_window: int = settings.TRACE_BLOCK_WINDOW
    recent_limit: int = settings.TRACE_RECENT_LIMIT

    def __post_init__(self) -> None:
        if int(self.max_depth) < 1:
            raise ValueError("max_depth must be >= 1")
        if int(self.fan_out) < 1:
            raise ValueError("fan_out must be >= 1")
        if int(self.time_window_ms) <= 0:
            raise ValueError("time_window_ms must be > 0")
        if not (0 < Decimal(self.min_value_ratio) < Decimal(self.max_value_ratio)):
            raise ValueError("value ratio band must satisfy 0 < min < max")
        if int(self.block_window) < 0 or int(self.recent_limit) < 1:
            raise ValueError("history window must be non-negative with recent_limit >= 1")


# Address risk

RISK_LEVELS = ("LOW", "MEDIUM", "HIGH", "SEVERE")


@dataclass(frozen=True)
class MaliciousLink:
    category: str
    value: str


@dataclass(frozen=True)
class AddressRisk:

    address: str
    network: str
    level: str                      # one of RISK_LEVELS, "UNKNOWN" if the provider sent something else
    risk_score: Optional[Decimal] = None

    associate_black_addresses: str = ""
    interaction_time: str = ""
    amount: str = ""
    malicious_links: Tuple[MaliciousLink, ...] = field(default_factory=tuple)
