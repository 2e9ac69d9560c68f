from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Set

from pathtracer.config import settings
from pathtracer.core.dto import HistoryWindow, TxRecord
from pathtracer.core.errors import UnsupportedNetworkError
from pathtracer.core.models import TraceConfig, normalize_network
from pathtracer.ports.chain_data_port import ChainDataPort
from pathtracer.services.history_strategies import HistoryStrategy, strategy_for_network

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str, Dict[str, Any]], None]

# likelihood score weights
FORWARD_LINK_SCORE = 50.0
REFLUX_LINK_SCORE = 30.0
MAX_TIME_SCORE = 20.0
MAX_VALUE_SCORE = 10.0

MS_PER_MINUTE = 60_000


@dataclass(frozen=True)
class _hopItem:
    tx: TxRecord
    depth: int


def _noop_progress(event: str, data: Dict[str, Any]) -> None:
    return None


def parse_value(raw: Any) -> Optional[Decimal]:
    """Positive finite Decimal, or None for zero / negative / unparseable values."""
    try:
        v = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not v.is_finite() or v <= 0:
        return None
    return v


def _is_forward(parent: TxRecord, candidate: TxRecord) -> bool:
    return bool(parent.to_address) and parent.to_address == candidate.from_address


def _is_reflux(parent: TxRecord, candidate: TxRecord) -> bool:
    return bool(parent.from_address) and parent.from_address == candidate.to_address


def is_likely_chained(
    parent: TxRecord,
    candidate: TxRecord,
    time_window_ms: int = settings.TRACE_TIME_WINDOW_MS,
    min_value_ratio: Decimal = settings.TRACE_MIN_VALUE_RATIO,
    max_value_ratio: Decimal = settings.TRACE_MAX_VALUE_RATIO,
) -> bool:
    """
    True when `candidate` plausibly continues the flow of `parent`:

    - it spends from parent's recipient, or pays back parent's sender
    - it happened strictly less than `time_window_ms` away
    - candidate/parent value ratio lies strictly inside the band
    """
    if not candidate.hash or not candidate.from_address:
        return False

    if not (_is_forward(parent, candidate) or _is_reflux(parent, candidate)):
        return False

    if abs(candidate.timestamp - parent.timestamp) >= time_window_ms:
        return False

    parent_value = parse_value(parent.value)
    candidate_value = parse_value(candidate.value)
    if parent_value is None or candidate_value is None:
        return False

    ratio = candidate_value / parent_value
    return Decimal(min_value_ratio) < ratio < Decimal(max_value_ratio)


def chain_score(parent: TxRecord, candidate: TxRecord) -> float:
    """Ranking score for a candidate that already passed `is_likely_chained`."""
    score = 0.0

    if _is_forward(parent, candidate):
        score += FORWARD_LINK_SCORE
    if _is_reflux(parent, candidate):
        score += REFLUX_LINK_SCORE

    minutes_apart = abs(candidate.timestamp - parent.timestamp) / MS_PER_MINUTE
    score += max(0.0, MAX_TIME_SCORE - minutes_apart)

    v1 = parse_value(parent.value)
    v2 = parse_value(candidate.value)
    if v1 is not None and v2 is not None:
        score += MAX_VALUE_SCORE * float(min(v1, v2) / max(v1, v2))

    return score


class PathTracer:
    """
    Builds a best-effort chain of transactions that plausibly belong to one
    fund flow, starting at a seed transaction.

    - Traversal: depth-first over an explicit stack, highest score first
    - Data: per-address history around each hop (block window or recent N)
    - Bounds: max_depth, fan_out per node, one visit per tx hash
    - Failures: a missing seed yields []; a failed history lookup only
      prunes that branch
    """

    def __init__(self, chain: ChainDataPort) -> None:
        self.chain = chain

    def trace_path(
        self,
        seed_hash: str,
        network: str,
        max_depth: int = settings.TRACE_MAX_DEPTH,
    ) -> List[TxRecord]:
        return self.trace(TraceConfig(seed_hash=seed_hash, network=network, max_depth=max_depth))

    def trace(self, cfg: TraceConfig, on_progress: Optional[ProgressFn] = None) -> List[TxRecord]:
        report = on_progress or _noop_progress

        try:
            network = normalize_network(cfg.network)
        except UnsupportedNetworkError as e:
            logger.warning("cannot trace %s: %s", cfg.seed_hash, e)
            return []
        strategy = strategy_for_network(network, cfg)

        seed = self._resolve_seed(cfg.seed_hash, network)
        if seed is None:
            logger.info("seed tx %s not found on %s", cfg.seed_hash, network)
            return []

        report("start", {"seed": seed.hash, "network": network, "max_depth": cfg.max_depth})

        path: List[TxRecord] = []
        visited: Set[str] = set()
        stack: List[_hopItem] = [_hopItem(seed, 0)]

        while stack:
            item = stack.pop()
            tx, depth = item.tx, item.depth

            if depth >= cfg.max_depth or tx.hash in visited:
                continue

            visited.add(tx.hash)
            path.append(tx)
            report("visit", {"depth": depth, "pending": len(stack), "path": len(path)})

            # children would sit at max_depth and be dropped; skip the lookups
            if depth + 1 >= cfg.max_depth:
                continue

            candidates = self._candidates(tx, network, strategy, visited, report)
            chained = [
                c for c in candidates
                if is_likely_chained(
                    tx,
                    c,
                    time_window_ms=cfg.time_window_ms,
                    min_value_ratio=cfg.min_value_ratio,
                    max_value_ratio=cfg.max_value_ratio,
                )
            ]
            # stable: equal scores keep discovery order
            ranked = sorted(chained, key=lambda c: -chain_score(tx, c))
            logger.debug(
                "hop %s depth=%d candidates=%d chained=%d",
                tx.hash, depth, len(candidates), len(chained),
            )

            # push in reverse so the best candidate is expanded first
            for c in reversed(ranked[: cfg.fan_out]):
                stack.append(_hopItem(c, depth + 1))

        report("done", {"path": len(path)})
        return path

    # -------------------------
    # Collaborator calls
    # -------------------------

    def _resolve_seed(self, seed_hash: str, network: str) -> Optional[TxRecord]:
        try:
            return self.chain.fetch_transaction(seed_hash, network)
        except Exception as e:
            logger.warning("seed lookup failed for %s on %s: %s", seed_hash, network, e)
            return None

    def _candidates(
        self,
        tx: TxRecord,
        network: str,
        strategy: HistoryStrategy,
        visited: Set[str],
        report: ProgressFn,
    ) -> List[TxRecord]:
        window = strategy.window_for(tx)

        # dict keeps first-seen order: sender's history, then recipient's
        merged: Dict[str, TxRecord] = {}
        for address in dict.fromkeys((tx.from_address, tx.to_address)):
            if not address:
                continue
            for c in self._history(address, network, window, report):
                if not c.hash or c.hash == tx.hash or c.hash in visited or c.hash in merged:
                    continue
                merged[c.hash] = c

        return list(merged.values())

    def _history(
        self,
        address: str,
        network: str,
        window: HistoryWindow,
        report: ProgressFn,
    ) -> List[TxRecord]:
        report("fetch", {"address": address})
        try:
            items = list(self.chain.fetch_address_history(address, network, window))
        except Exception as e:
            logger.warning("history lookup failed for %s on %s: %s", address, network, e)
            return []
        report("fetch_done", {"address": address, "count": len(items)})
        return items
