"""Fakes and log builders shared by the test modules."""

from typing import Callable, Dict, List, Optional

from fee_indexer import config
from fee_indexer.config import ChainConfig
from fee_indexer.ledger import LedgerClient

CONTRACT = "0xbD6C7B0d2f68c2b7805d88388319cfB6EcB50eA9"
TOKEN = "0x2791bca1f2de4661ed88a30c99a7a9449aa84174"
INTEGRATOR = "0x1111111111111111111111111111111111111111"
OTHER_INTEGRATOR = "0x2222222222222222222222222222222222222222"
NOW = 1_700_000_000


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address.lower()[2:]


def make_log(block: int, tx: int, log_index: int = 0, token: str = TOKEN,
             integrator: str = INTEGRATOR, integrator_fee: int = 1000, lifi_fee: int = 50) -> dict:
    """Raw FeesCollected log shaped like eth_getLogs output."""
    return {
        "address": CONTRACT,
        "blockNumber": block,
        "transactionHash": "0x" + f"{tx:064x}",
        "logIndex": log_index,
        "topics": [config.FEES_COLLECTED_TOPIC0, address_topic(token), address_topic(integrator)],
        "data": "0x" + f"{integrator_fee:064x}{lifi_fee:064x}",
    }


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class FakeLedger:
    """
    Scripted stand-in for LedgerClient. Logs are keyed by block number;
    fetch failures are consumed one per fetch call.
    """

    def __init__(self, chain: ChainConfig, height: int = 0, logs: Optional[Dict[int, List[dict]]] = None):
        self.height = height
        self.logs = logs or {}
        self.fetch_calls: List[tuple] = []
        self.fetch_failures: List[Exception] = []
        self.height_calls = 0
        self.has_code = True
        self.on_fetch: Optional[Callable] = None
        self.on_height: Optional[Callable] = None
        self._decoder = LedgerClient(chain, w3=object())

    async def current_height(self) -> int:
        self.height_calls += 1
        if self.on_height:
            await self.on_height()
        return self.height

    async def fetch_raw_events(self, from_block: int, to_block: int):
        self.fetch_calls.append((from_block, to_block))
        if self.on_fetch:
            await self.on_fetch(from_block, to_block)
        if self.fetch_failures:
            raise self.fetch_failures.pop(0)
        return [lg for b in range(from_block, to_block + 1) for lg in self.logs.get(b, [])]

    def decode(self, raw):
        return self._decoder.decode(raw)

    async def block_timestamp(self, block_number: int) -> int:
        return NOW + block_number

    async def validate_endpoint(self) -> bool:
        return self.has_code
