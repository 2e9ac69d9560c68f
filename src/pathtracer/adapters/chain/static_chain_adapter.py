from pathtracer.ports.chain_data_port import ChainDataPort
from pathtracer.core.dto import BlockWindow, RecentWindow, TxRecord
from pathtracer.core.models import ACCOUNT_NETWORKS
from typing import Iterable, Optional, List

def _key(network: str, value: str) -> str:
    # hex addresses / hashes are case-insensitive; base58 ones are not
    return value.lower() if network in ACCOUNT_NETWORKS else value

class StaticChainAdapter(ChainDataPort):
    """In-memory transactions for dev/testing and CLI fixtures."""

    def __init__(self, transactions: Optional[Iterable[TxRecord]] = None):
        self._txs: List[TxRecord] = list(transactions or [])

    def add(self, tx: TxRecord) -> None:
        self._txs.append(tx)

    def fetch_transaction(self, tx_hash, network):
        h = _key(network, tx_hash)
        for t in self._txs:
            if t.network == network and _key(network, t.hash) == h:
                return t
        return None

    def fetch_address_history(self, address, network, window):
        if not address:
            return []
        ad = _key(network, address)
        items = [
            t for t in self._txs
            if t.network == network
            and (_key(network, t.from_address) == ad or _key(network, t.to_address) == ad)
        ]
        if isinstance(window, BlockWindow):
            items = [
                t for t in items
                if window.start_block <= t.block_number <= window.end_block
            ]
            items.sort(key=lambda x: (x.block_number, x.timestamp))
            return items
        if isinstance(window, RecentWindow):
            items.sort(key=lambda x: (x.block_number, x.timestamp), reverse=True)
            return items[: window.limit]
        raise TypeError(f"Unknown history window: {window!r}")
