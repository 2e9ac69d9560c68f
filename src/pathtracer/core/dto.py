from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class TxRecord:
    hash: str
    network: str
    from_address: str
    to_address: str         # empty for contract creation
    value: str              # decimal string, native unit (ETH / BNB / BTC)
    block_number: int       # 0 if unknown
    timestamp: int          # ms since epoch

    # carried through, not used for tracing
    gas: str = "0"
    gas_price: str = "0"
    gas_used: str = "0"
    status: str = "pending"
    input: str = ""


@dataclass(frozen=True)
class BlockWindow:
    start_block: int
    end_block: int
    # block of the tx being expanded; 0 = not set
    anchor_block: int = 0


@dataclass(frozen=True)
class RecentWindow:
    limit: int


HistoryWindow = Union[BlockWindow, RecentWindow]
