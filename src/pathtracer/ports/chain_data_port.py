from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional
from pathtracer.core.dto import HistoryWindow, TxRecord

class ChainDataPort(ABC):
    """
    Abstract Class for fetching the transaction facts needed for path tracing.
    """

    # --- single transaction lookup ---

    @abstractmethod
    def fetch_transaction(self, tx_hash: str, network: str) -> Optional[TxRecord]:
        """Return the normalized transaction, or None when it does not exist."""
        raise NotImplementedError

    # --- per-address history ---

    @abstractmethod
    def fetch_address_history(
        self,
        address: str,
        network: str,
        window: HistoryWindow,
    ) -> List[TxRecord]:
        raise NotImplementedError
