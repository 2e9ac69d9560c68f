from decimal import Decimal
import os
from dotenv import load_dotenv
load_dotenv()
# ---- Etherscan (v2 multichain) ----
ETHERSCAN_API_KEY = os.environ.get("ETHERSCAN_API_KEY")
BSCSCAN_API_KEY = os.environ.get("BSCSCAN_API_KEY") or ETHERSCAN_API_KEY
ETHERSCAN_BASE_URL = "https://api.etherscan.io/v2/api"
ETHERSCAN_CHAIN_IDS = {
    "ethereum": 1,
    "bsc": 56,
}

ETHERSCAN_REQUESTS_PER_SEC = 2.0
ETHERSCAN_TIMEOUT_SEC = 15
ETHERSCAN_MAX_RETRIES = 5
ETHERSCAN_HISTORY_PAGE_SIZE = 100

# ---- Alchemy (JSON-RPC fallback for account networks) ----
ALCHEMY_API_KEY = os.environ.get("ALCHEMY_API_KEY")
ALCHEMY_BASE_URLS = {
    "ethereum": "https://eth-mainnet.g.alchemy.com/v2",
}
ALCHEMY_REQUESTS_PER_SEC = 5.0
ALCHEMY_TIMEOUT_SEC = 15
ALCHEMY_MAX_RETRIES = 3

# ---- Blockstream (bitcoin) ----
BLOCKSTREAM_BASE_URL = os.environ.get("BLOCKSTREAM_BASE_URL", "https://blockstream.info/api")
BLOCKSTREAM_REQUESTS_PER_SEC = 2.0
BLOCKSTREAM_TIMEOUT_SEC = 15
BLOCKSTREAM_MAX_RETRIES = 3

# ---- OKLink (address risk) ----
OKLINK_API_KEY = os.environ.get("OKLINK_API_KEY")
OKLINK_RISK_URL = "https://www.oklink.com/api/v5/tracker/kya/address-risk-level"
OKLINK_NETWORKS = {
    "ethereum": "ETH",
    "bitcoin": "BTC",
    "bsc": "BSC",
}
OKLINK_REQUESTS_PER_SEC = 1.0
OKLINK_TIMEOUT_SEC = 15
OKLINK_MAX_RETRIES = 3
# cap on distinct path addresses screened per run
RISK_MAX_ADDRESSES = int(os.environ.get("RISK_MAX_ADDRESSES", "20"))

# ----- Path tracing heuristics -----
TRACE_MAX_DEPTH = int(os.environ.get("TRACE_MAX_DEPTH", "5"))
TRACE_FAN_OUT = int(os.environ.get("TRACE_FAN_OUT", "3"))
TRACE_TIME_WINDOW_MS = int(os.environ.get("TRACE_TIME_WINDOW_MS", "3600000"))  # 1 hour
TRACE_MIN_VALUE_RATIO = Decimal(os.environ.get("TRACE_MIN_VALUE_RATIO", "0.1"))
TRACE_MAX_VALUE_RATIO = Decimal(os.environ.get("TRACE_MAX_VALUE_RATIO", "10"))

# blocks either side of the parent tx (account-based networks)
TRACE_BLOCK_WINDOW = int(os.environ.get("TRACE_BLOCK_WINDOW", "1000"))
# most recent N txs per address (ledger-style networks)
TRACE_RECENT_LIMIT = int(os.environ.get("TRACE_RECENT_LIMIT", "25"))

# ----- Logging -----
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
