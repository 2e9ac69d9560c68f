from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pathtracer.core.dto import HistoryWindow, TxRecord
from pathtracer.core.errors import DataSourceError, UnsupportedNetworkError
from pathtracer.core.models import normalize_network
from pathtracer.ports.chain_data_port import ChainDataPort

logger = logging.getLogger(__name__)


class RoutingChainAdapter(ChainDataPort):
    """Dispatches each call to the adapter registered for its network."""

    def __init__(self, adapters: Dict[str, ChainDataPort]) -> None:
        self._adapters = {normalize_network(k): v for k, v in adapters.items()}

    @property
    def networks(self) -> List[str]:
        return sorted(self._adapters)

    def _for(self, network: str) -> ChainDataPort:
        tag = normalize_network(network)
        try:
            return self._adapters[tag]
        except KeyError:
            raise UnsupportedNetworkError(f"No data source configured for {tag!r}") from None

    def fetch_transaction(self, tx_hash: str, network: str) -> Optional[TxRecord]:
        tag = normalize_network(network)
        return self._for(tag).fetch_transaction(tx_hash, tag)

    def fetch_address_history(
        self,
        address: str,
        network: str,
        window: HistoryWindow,
    ) -> List[TxRecord]:
        tag = normalize_network(network)
        return self._for(tag).fetch_address_history(address, tag, window)


class FallbackChainAdapter(ChainDataPort):
    """
    Tries adapters in order. A lookup falls through to the next adapter when
    the current one fails or does not know the transaction.
    """

    def __init__(self, *adapters: ChainDataPort) -> None:
        if not adapters:
            raise ValueError("FallbackChainAdapter needs at least one adapter")
        self._adapters = adapters

    def fetch_transaction(self, tx_hash: str, network: str) -> Optional[TxRecord]:
        last_err: Optional[DataSourceError] = None
        for adapter in self._adapters:
            try:
                tx = adapter.fetch_transaction(tx_hash, network)
            except DataSourceError as e:
                logger.warning("%s lookup of %s failed: %s", type(adapter).__name__, tx_hash, e)
                last_err = e
                continue
            if tx is not None:
                return tx
        if last_err is not None:
            raise last_err
        return None

    def fetch_address_history(
        self,
        address: str,
        network: str,
        window: HistoryWindow,
    ) -> List[TxRecord]:
        last_err: Optional[DataSourceError] = None
        for adapter in self._adapters:
            try:
                return adapter.fetch_address_history(address, network, window)
            except DataSourceError as e:
                logger.warning("%s history for %s failed: %s", type(adapter).__name__, address, e)
                last_err = e
        raise last_err
