import asyncio, time, logging
from collections import OrderedDict
from typing import Any, List, Mapping, Optional

from tenacity import AsyncRetrying, before_sleep_log, stop_after_attempt, wait_incrementing
from web3 import AsyncWeb3, AsyncHTTPProvider

from fee_indexer import config
from fee_indexer.config import ChainConfig
from fee_indexer.errors import MalformedEvent, RangeTooLarge, UpstreamUnavailable
from fee_indexer.helpers import to_hex, to_addr, hex_to_int, topic_to_address_from_32b, decode_fee_data
from fee_indexer.models import FeeEvent

logger = logging.getLogger(__name__)

HEIGHT_ATTEMPTS = 3
HEIGHT_RETRY_DELAY = 1.0
TIMESTAMP_CACHE_SIZE = 1024

# fragments providers use when refusing an eth_getLogs span
_RANGE_ERRORS = ("block range", "range too large", "range is too large", "more than", "limited to", "max range")


def _is_range_error(err: Exception) -> bool:
    msg = str(err).lower()
    return any(frag in msg for frag in _RANGE_ERRORS)


class LedgerClient:
    """
    Thin async adapter over the chain RPC for one FeeCollector deployment.
    Holds no scan state; only a small per-block timestamp cache.
    """

    def __init__(self, chain: ChainConfig, w3: Optional[AsyncWeb3] = None, sleep=asyncio.sleep):
        self.chain = chain
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(chain.rpc_url))
        self.contract_address = to_addr(chain.contract_address)
        self._sleep = sleep
        self._ts_cache: "OrderedDict[int, int]" = OrderedDict()

    # ---------- light wrappers ----------
    async def current_height(self) -> int:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(HEIGHT_ATTEMPTS),
                wait=wait_incrementing(start=HEIGHT_RETRY_DELAY, increment=HEIGHT_RETRY_DELAY),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    return int(await self.w3.eth.block_number)
        except Exception as e:
            raise UpstreamUnavailable(
                f"failed to get current block number after {HEIGHT_ATTEMPTS} attempts: {e}"
            ) from e

    async def fetch_raw_events(self, from_block: int, to_block: int) -> List[Mapping[str, Any]]:
        logger.debug(f"[{self.chain.network}] loading FeesCollected logs {from_block}-{to_block}")
        try:
            logs = await self.w3.eth.get_logs({
                "fromBlock": from_block,
                "toBlock": to_block,
                "address": self.contract_address,
                "topics": [config.FEES_COLLECTED_TOPIC0],
            })
        except Exception as e:
            if _is_range_error(e):
                raise RangeTooLarge(from_block, to_block, str(e)) from e
            raise UpstreamUnavailable(f"eth_getLogs {from_block}-{to_block} failed: {e}") from e
        logger.debug(f"[{self.chain.network}] found {len(logs)} FeesCollected logs in {from_block}-{to_block}")
        return list(logs)

    def decode(self, raw: Mapping[str, Any]) -> FeeEvent:
        """Decode one FeesCollected log. Timestamp and chain are left for the caller."""
        try:
            topics = [to_hex(t).lower() for t in raw["topics"]]
            if len(topics) != 3:
                raise MalformedEvent(f"expected 3 topics, got {len(topics)}")
            if topics[0] != config.FEES_COLLECTED_TOPIC0.lower():
                raise MalformedEvent(f"unexpected topic0 {topics[0]}")
            integrator_fee, lifi_fee = decode_fee_data(raw["data"])
            return FeeEvent(
                token=topic_to_address_from_32b(topics[1]),
                integrator=topic_to_address_from_32b(topics[2]),
                integrator_fee=str(integrator_fee),
                lifi_fee=str(lifi_fee),
                block_number=hex_to_int(raw["blockNumber"]),
                transaction_hash=to_hex(raw["transactionHash"]).lower(),
                log_index=hex_to_int(raw.get("logIndex") or 0),
            )
        except MalformedEvent:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedEvent(f"cannot decode log: {e!r}") from e

    async def block_timestamp(self, block_number: int) -> int:
        if block_number in self._ts_cache:
            return self._ts_cache[block_number]
        try:
            block = await self.w3.eth.get_block(block_number)
            ts = int(block["timestamp"])
        except Exception as e:
            # enrichment only; the event is still worth keeping
            logger.error(f"[{self.chain.network}] failed to get timestamp for block {block_number}: {e}")
            return int(time.time())
        self._ts_cache[block_number] = ts
        if len(self._ts_cache) > TIMESTAMP_CACHE_SIZE:
            self._ts_cache.popitem(last=False)
        return ts

    async def validate_endpoint(self) -> bool:
        try:
            code = await self.w3.eth.get_code(self.contract_address)
        except Exception as e:
            logger.error(f"[{self.chain.network}] failed to validate contract {self.contract_address}: {e}")
            return False
        return len(code or b"") > 0
