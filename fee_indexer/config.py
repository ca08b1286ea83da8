import os
from dataclasses import dataclass
from dotenv import load_dotenv
from web3 import Web3

from fee_indexer.errors import ConfigurationError

# always load from local file
load_dotenv(".env")

# -------- env / config --------
CHAIN          = os.getenv("CHAIN", "polygon").lower()
DB_PATH        = os.getenv("DB_PATH", "fee_events.sqlite")
LOG_LEVEL      = os.getenv("LOG_LEVEL", "INFO").upper()
MCP_HOST       = os.getenv("MCP_HOST", "0.0.0.0")
MCP_PORT       = int(os.getenv("MCP_PORT", "8000"))

# --- FeesCollected(address indexed token, address indexed integrator, uint256 integratorFee, uint256 lifiFee) ---
FEES_COLLECTED_SIGNATURE = "FeesCollected(address,address,uint256,uint256)"
FEES_COLLECTED_TOPIC0    = Web3.to_hex(Web3.keccak(text=FEES_COLLECTED_SIGNATURE))


@dataclass(frozen=True)
class ChainConfig:
    name: str
    chain_id: int
    rpc_url: str
    contract_address: str
    start_block: int

    @property
    def network(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class ScannerConfig:
    batch_size: int = 10_000
    interval_seconds: float = 300.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    batch_delay_seconds: float = 0.5

    def __post_init__(self):
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.interval_seconds <= 0:
            raise ConfigurationError(f"interval_seconds must be > 0, got {self.interval_seconds}")
        if self.retry_delay_seconds < 0 or self.batch_delay_seconds < 0:
            raise ConfigurationError("delays must be >= 0")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _chains() -> dict[str, ChainConfig]:
    return {
        "polygon": ChainConfig(
            name="Polygon",
            chain_id=137,
            rpc_url=os.getenv("POLYGON_RPC_URL", "https://polygon-rpc.com"),
            contract_address=os.getenv("FEE_COLLECTOR_ADDRESS", "0xbD6C7B0d2f68c2b7805d88388319cfB6EcB50eA9"),
            start_block=_int_env("STARTING_BLOCK", 70_000_000),
        ),
        # more networks go here, one engine per entry
    }


SUPPORTED_CHAINS = _chains()


def supported_chains() -> list[str]:
    return list(SUPPORTED_CHAINS)


def get_chain_config(name: str) -> ChainConfig:
    cfg = SUPPORTED_CHAINS.get(name.lower())
    if cfg is None:
        raise ConfigurationError(f"Unsupported chain: {name}")
    if not Web3.is_address(cfg.contract_address):
        raise ConfigurationError(f"Invalid contract address for {cfg.name}: {cfg.contract_address}")
    return cfg


def scanner_config() -> ScannerConfig:
    return ScannerConfig(
        batch_size=_int_env("SCAN_BATCH_SIZE", 10_000),
        interval_seconds=_float_env("SCAN_INTERVAL_SECONDS", 300.0),
        max_retries=_int_env("SCAN_MAX_RETRIES", 3),
        retry_delay_seconds=_float_env("SCAN_RETRY_DELAY_SECONDS", 1.0),
        batch_delay_seconds=_float_env("SCAN_BATCH_DELAY_SECONDS", 0.5),
    )
