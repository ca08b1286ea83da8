from dataclasses import dataclass, replace, asdict
from typing import Optional, Dict, Any

HIGH_VALUE_THRESHOLD = 10**18  # 1 ETH-equivalent in wei


@dataclass(frozen=True)
class FeeEvent:
    token: str
    integrator: str
    integrator_fee: str        # uint256 as decimal string
    lifi_fee: str              # uint256 as decimal string
    block_number: int
    transaction_hash: str
    log_index: int
    timestamp: Optional[int] = None    # block.timestamp, unix seconds
    chain: Optional[str] = None

    @property
    def key(self) -> tuple[str, int]:
        return self.transaction_hash, self.log_index

    def total_fee(self) -> str:
        return str(int(self.integrator_fee) + int(self.lifi_fee))

    def is_high_value(self, threshold: int = HIGH_VALUE_THRESHOLD) -> bool:
        return int(self.total_fee()) > int(threshold)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScanProgress:
    network: str
    last_scanned_block: int
    last_scan_time: int
    total_events_found: int = 0
    total_blocks_scanned: int = 0

    @classmethod
    def seed(cls, network: str, start_block: int, now: int) -> "ScanProgress":
        # nothing before start_block has been, or will be, scanned
        return cls(network=network, last_scanned_block=start_block - 1, last_scan_time=now)

    def advanced(self, to_block: int, events: int, blocks: int, now: int) -> "ScanProgress":
        return replace(
            self,
            last_scanned_block=max(self.last_scanned_block, to_block),
            last_scan_time=now,
            total_events_found=self.total_events_found + events,
            total_blocks_scanned=self.total_blocks_scanned + blocks,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScanResult:
    events: int = 0
    blocks: int = 0
    batches: int = 0


@dataclass(frozen=True)
class ScannerStats:
    network: str
    last_scanned_block: Optional[int]
    total_events: int
    total_blocks: int
    last_scan_time: Optional[int]
    is_scanning: bool
    state: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
