from __future__ import annotations

from abc import ABC, abstractmethod

from pathtracer.core.dto import BlockWindow, HistoryWindow, RecentWindow, TxRecord
from pathtracer.core.errors import UnsupportedNetworkError
from pathtracer.core.models import ACCOUNT_NETWORKS, LEDGER_NETWORKS, TraceConfig


class HistoryStrategy(ABC):
    """Decides which slice of an address's history is relevant to a tx."""

    @abstractmethod
    def window_for(self, tx: TxRecord) -> HistoryWindow:
        raise NotImplementedError


class AccountHistoryStrategy(HistoryStrategy):
    """Block range centred on the tx; falls back to recent txs when the block is unknown."""

    def __init__(self, block_window: int, recent_limit: int) -> None:
        self.block_window = block_window
        self.recent_limit = recent_limit

    def window_for(self, tx: TxRecord) -> HistoryWindow:
        if tx.block_number <= 0:
            return RecentWindow(self.recent_limit)
        return BlockWindow(
            start_block=max(0, tx.block_number - self.block_window),
            end_block=tx.block_number + self.block_window,
            anchor_block=tx.block_number,
        )


class LedgerHistoryStrategy(HistoryStrategy):
    def __init__(self, recent_limit: int) -> None:
        self.recent_limit = recent_limit

    def window_for(self, tx: TxRecord) -> HistoryWindow:
        return RecentWindow(self.recent_limit)


def strategy_for_network(network: str, cfg: TraceConfig) -> HistoryStrategy:
    if network in ACCOUNT_NETWORKS:
        return AccountHistoryStrategy(cfg.block_window, cfg.recent_limit)
    if network in LEDGER_NETWORKS:
        return LedgerHistoryStrategy(cfg.recent_limit)
    raise UnsupportedNetworkError(f"No history strategy for {network!r}")
