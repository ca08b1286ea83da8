import asyncio, time, logging
from dataclasses import replace
from enum import Enum
from typing import Optional, Tuple

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from fee_indexer.config import ChainConfig, ScannerConfig
from fee_indexer.db import EventStore, ProgressStore
from fee_indexer.errors import ConfigurationError, MalformedEvent, StorageError, UpstreamUnavailable
from fee_indexer.ledger import LedgerClient
from fee_indexer.models import ScanProgress, ScanResult, ScannerStats

logger = logging.getLogger(__name__)

# failures worth another attempt on the same block range
RETRYABLE = (UpstreamUnavailable, StorageError)


class EngineState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    STOPPED = "stopped"


class ScanEngine:
    """
    Scans one network's FeeCollector logs in block batches and stores them.

    Progress is only written after the batch's events are in the event store,
    and batches run strictly in ascending block order, so the stored
    last_scanned_block never passes a block whose events were not persisted.
    """

    def __init__(self, chain: ChainConfig, scanner: ScannerConfig, ledger: LedgerClient,
                 progress_store: ProgressStore, event_store: EventStore,
                 sleep=asyncio.sleep, clock=time.time):
        self.chain = chain
        self.scanner = scanner
        self.ledger = ledger
        self.progress_store = progress_store
        self.event_store = event_store
        self.network = chain.network
        self._sleep = sleep
        self._clock = clock
        self._stopped = False
        self._scanning = False
        self._progress: Optional[ScanProgress] = None
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> EngineState:
        if self._stopped:
            return EngineState.STOPPED
        return EngineState.SCANNING if self._scanning else EngineState.IDLE

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def _now(self) -> int:
        return int(self._clock())

    # ---------- lifecycle ----------
    async def initialize(self) -> ScanProgress:
        if not await self.ledger.validate_endpoint():
            raise ConfigurationError(
                f"no contract code at {self.chain.contract_address} on {self.chain.name}"
            )
        progress, created = self.progress_store.create_if_absent(
            self.network, self.chain.start_block - 1, self._now()
        )
        if created:
            logger.info(f"[{self.network}] initialized scan progress starting from block {self.chain.start_block}")
        else:
            logger.info(f"[{self.network}] resuming after block {progress.last_scanned_block}")
        self._progress = progress
        return progress

    def stop(self):
        """Stop future triggers. A batch already running is allowed to finish."""
        self._stopped = True
        self._stop_event.set()
        logger.info(f"[{self.network}] event scanner stopped")

    async def run_periodic(self):
        """Scan now, then every interval_seconds until stop()."""
        logger.info(
            f"[{self.network}] starting event scanner "
            f"(batch_size={self.scanner.batch_size}, interval={self.scanner.interval_seconds}s, "
            f"start_block={self.chain.start_block})"
        )
        while not self._stopped:
            try:
                await self.scan_once()
            except ConfigurationError:
                raise
            except Exception as e:
                logger.error(f"[{self.network}] periodic scan failed: {e}")
            if self._stopped:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.scanner.interval_seconds)
            except asyncio.TimeoutError:
                pass

    # ---------- scanning ----------
    async def scan_once(self) -> ScanResult:
        if self._stopped:
            logger.debug(f"[{self.network}] scanner stopped, ignoring scan request")
            return ScanResult()
        if self._scanning:
            logger.warning(f"[{self.network}] scan already in progress, skipping")
            return ScanResult()

        # no await between the check and the set
        self._scanning = True
        try:
            return await self._scan()
        except Exception as e:
            logger.error(f"[{self.network}] scan failed: {e}")
            raise
        finally:
            self._scanning = False

    async def _scan(self) -> ScanResult:
        started = time.monotonic()
        progress = self._load_progress()
        height = await self.ledger.current_height()

        if progress.last_scanned_block >= height:
            logger.debug(f"[{self.network}] already up to date (last_scanned={progress.last_scanned_block}, head={height})")
            return ScanResult()

        from_block = progress.last_scanned_block + 1
        events = blocks = batches = 0
        while from_block <= height:
            to_block = min(from_block + self.scanner.batch_size - 1, height)
            progress, inserted = await self._run_batch_with_retry(progress, from_block, to_block)
            self._progress = progress
            events += inserted
            blocks += to_block - from_block + 1
            batches += 1
            from_block = to_block + 1

            if self._stopped:
                logger.info(f"[{self.network}] stop requested, leaving scan after block {to_block}")
                break
            if from_block <= height and self.scanner.batch_delay_seconds:
                await self._sleep(self.scanner.batch_delay_seconds)

        duration = time.monotonic() - started
        logger.info(
            f"[{self.network}] scan completed: {events} events, {blocks} blocks in {batches} batches, "
            f"{duration:.1f}s ({blocks / duration if duration > 0 else float(blocks):.0f} blocks/s)"
        )
        return ScanResult(events=events, blocks=blocks, batches=batches)

    def _load_progress(self) -> ScanProgress:
        progress = self.progress_store.get(self.network)
        if progress is None:
            raise ConfigurationError(f"scan progress not found for {self.network}; call initialize() first")
        self._progress = progress
        return progress

    async def _run_batch_with_retry(self, progress: ScanProgress, from_block: int,
                                    to_block: int) -> Tuple[ScanProgress, int]:
        """
        Process and commit one range, retrying the whole range on transient
        failure. Rows written by a failed attempt come back as duplicates on the
        next one, so the new-row count is carried across attempts.
        """
        blocks = to_block - from_block + 1
        inserted = 0
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(RETRYABLE),
                stop=stop_after_attempt(self.scanner.max_retries + 1),
                wait=wait_exponential(multiplier=self.scanner.retry_delay_seconds),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    try:
                        inserted += await self._scan_batch(from_block, to_block)
                    except StorageError as e:
                        inserted += e.inserted
                        raise
                    advanced = progress.advanced(to_block, inserted, blocks, self._now())
                    self.progress_store.save(advanced)
                    return advanced, inserted
        except RETRYABLE as e:
            logger.error(f"[{self.network}] batch {from_block}-{to_block} failed after {self.scanner.max_retries} retries: {e}")
            raise

    async def _scan_batch(self, from_block: int, to_block: int) -> int:
        logger.debug(f"[{self.network}] scanning batch {from_block}-{to_block}")
        raw_logs = await self.ledger.fetch_raw_events(from_block, to_block)
        if not raw_logs:
            return 0

        decoded, skipped = [], 0
        for raw in raw_logs:
            try:
                ev = self.ledger.decode(raw)
            except MalformedEvent as e:
                skipped += 1
                logger.warning(f"[{self.network}] skipping undecodable log in {from_block}-{to_block}: {e}")
                continue
            ts = await self.ledger.block_timestamp(ev.block_number)
            decoded.append(replace(ev, timestamp=ts, chain=self.network))

        inserted = self.event_store.insert_batch_ignoring_duplicates(decoded)
        logger.debug(
            f"[{self.network}] batch {from_block}-{to_block}: {len(raw_logs)} logs, "
            f"{inserted} new, {len(decoded) - inserted} duplicates, {skipped} skipped"
        )
        return inserted

    # ---------- stats ----------
    def get_stats(self) -> ScannerStats:
        p = self._progress
        return ScannerStats(
            network=self.network,
            last_scanned_block=p.last_scanned_block if p else None,
            total_events=p.total_events_found if p else 0,
            total_blocks=p.total_blocks_scanned if p else 0,
            last_scan_time=p.last_scan_time if p else None,
            is_scanning=self.is_scanning,
            state=self.state.value,
        )
