import math, sqlite3, logging
from contextlib import contextmanager
from typing import Dict, Any, Iterable, List, Optional, Tuple

from fee_indexer.errors import StorageError
from fee_indexer.models import FeeEvent, ScanProgress

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS scan_progress (
  network              TEXT PRIMARY KEY,
  last_scanned_block   INTEGER NOT NULL,
  last_scan_time       INTEGER NOT NULL,
  total_events_found   INTEGER NOT NULL DEFAULT 0,
  total_blocks_scanned INTEGER NOT NULL DEFAULT 0
);

-- FeesCollected events, one row per (tx_hash, log_index)
CREATE TABLE IF NOT EXISTS fee_events (
  transaction_hash TEXT    NOT NULL,
  log_index        INTEGER NOT NULL,
  block_number     INTEGER NOT NULL,
  token            TEXT    NOT NULL,   -- lowercase
  integrator       TEXT    NOT NULL,   -- lowercase
  integrator_fee   TEXT    NOT NULL,   -- uint256 as decimal string
  lifi_fee         TEXT    NOT NULL,   -- uint256 as decimal string
  timestamp        INTEGER,
  chain            TEXT    NOT NULL,
  created_at       INTEGER NOT NULL DEFAULT (strftime('%s','now')),
  PRIMARY KEY (transaction_hash, log_index)
);
CREATE INDEX IF NOT EXISTS idx_fee_integrator_block ON fee_events(integrator, block_number DESC);
CREATE INDEX IF NOT EXISTS idx_fee_token_block      ON fee_events(token, block_number DESC);
CREATE INDEX IF NOT EXISTS idx_fee_block            ON fee_events(block_number DESC);
"""

EVENT_COLUMNS = (
    "token", "integrator", "integrator_fee", "lifi_fee", "block_number",
    "transaction_hash", "log_index", "timestamp", "chain",
)
_COLS = ",".join(EVENT_COLUMNS)
_QMARKS = ",".join(["?"] * len(EVENT_COLUMNS))


def row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    return {k: row[k] for k in row.keys()}


@contextmanager
def _storage(op: str):
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(f"{op} failed: {e}") from e


class Database:
    """Owns one sqlite connection. Stores get it injected, nothing reaches for a global."""

    def __init__(self, path: str):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> "Database":
        if self._conn is not None:
            return self
        with _storage("connect"):
            conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            conn.executescript(SCHEMA)
        self._conn = conn
        logger.info(f"[db] connected to {self.path}")
        return self

    def disconnect(self):
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        logger.info(f"[db] disconnected from {self.path}")

    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError(f"database {self.path} is not connected")
        return self._conn

    def __enter__(self):
        return self.connect()

    def __exit__(self, *exc):
        self.disconnect()


def _progress_from_row(row) -> ScanProgress:
    return ScanProgress(
        network=row["network"],
        last_scanned_block=row["last_scanned_block"],
        last_scan_time=row["last_scan_time"],
        total_events_found=row["total_events_found"],
        total_blocks_scanned=row["total_blocks_scanned"],
    )


class ProgressStore:
    def __init__(self, database: Database):
        self.database = database

    def get(self, network: str) -> Optional[ScanProgress]:
        with _storage(f"read progress for {network}"):
            row = self.database.conn.execute(
                "SELECT * FROM scan_progress WHERE network=?", (network,)
            ).fetchone()
        return _progress_from_row(row) if row else None

    def create_if_absent(self, network: str, seed_block: int, now: int) -> Tuple[ScanProgress, bool]:
        """Insert the seed record unless one exists. Returns (stored record, created)."""
        seed = ScanProgress(network=network, last_scanned_block=seed_block, last_scan_time=now)
        with _storage(f"seed progress for {network}"):
            cur = self.database.conn.execute("""
                INSERT OR IGNORE INTO scan_progress
                (network, last_scanned_block, last_scan_time, total_events_found, total_blocks_scanned)
                VALUES (?,?,?,?,?)
            """, (seed.network, seed.last_scanned_block, seed.last_scan_time, 0, 0))
        created = cur.rowcount == 1
        return (seed if created else self.get(network)), created

    def save(self, progress: ScanProgress):
        with _storage(f"save progress for {progress.network}"):
            self.database.conn.execute("""
                INSERT INTO scan_progress
                (network, last_scanned_block, last_scan_time, total_events_found, total_blocks_scanned)
                VALUES (?,?,?,?,?)
                ON CONFLICT(network) DO UPDATE SET
                  last_scanned_block=MAX(scan_progress.last_scanned_block, excluded.last_scanned_block),
                  last_scan_time=excluded.last_scan_time,
                  total_events_found=excluded.total_events_found,
                  total_blocks_scanned=excluded.total_blocks_scanned
            """, (
                progress.network, progress.last_scanned_block, progress.last_scan_time,
                progress.total_events_found, progress.total_blocks_scanned,
            ))

    def all(self) -> List[ScanProgress]:
        with _storage("list progress"):
            rows = self.database.conn.execute(
                "SELECT * FROM scan_progress ORDER BY network"
            ).fetchall()
        return [_progress_from_row(r) for r in rows]


class EventStore:
    def __init__(self, database: Database):
        self.database = database

    def insert_batch_ignoring_duplicates(self, events: Iterable[FeeEvent]) -> int:
        """
        One INSERT OR IGNORE per event: each row lands atomically, collisions on
        (transaction_hash, log_index) are dropped and the rest still go in.
        Returns how many rows were actually inserted.
        """
        events = list(events)
        if not events:
            return 0
        inserted = 0
        conn = self.database.conn
        try:
            for ev in events:
                cur = conn.execute(f"""
                    INSERT OR IGNORE INTO fee_events ({_COLS})
                    VALUES ({_QMARKS})
                """, tuple(getattr(ev, c) for c in EVENT_COLUMNS))
                inserted += cur.rowcount
        except sqlite3.Error as e:
            raise StorageError(f"insert fee events failed after {inserted} rows: {e}", inserted=inserted) from e
        duplicates = len(events) - inserted
        if duplicates:
            logger.debug(f"[db] stored {inserted} new events ({duplicates} duplicates skipped)")
        else:
            logger.debug(f"[db] stored {inserted} new events")
        return inserted

    def count(self) -> int:
        with _storage("count fee events"):
            return self.database.conn.execute("SELECT COUNT(*) FROM fee_events").fetchone()[0]

    def get(self, transaction_hash: str, log_index: int) -> Optional[Dict[str, Any]]:
        with _storage("read fee event"):
            row = self.database.conn.execute(
                "SELECT * FROM fee_events WHERE transaction_hash=? AND log_index=?",
                (transaction_hash, log_index),
            ).fetchone()
        return row_to_dict(row) if row else None

    # ---------- read side ----------
    def query(self, integrator: Optional[str] = None, token: Optional[str] = None,
              from_block: Optional[int] = None, to_block: Optional[int] = None,
              page: int = 1, limit: int = 50) -> Tuple[List[Dict[str, Any]], int]:
        where, params = [], []
        if integrator:
            where.append("integrator = ?")
            params.append(integrator.lower())
        if token:
            where.append("token = ?")
            params.append(token.lower())
        if from_block is not None:
            where.append("block_number >= ?")
            params.append(int(from_block))
        if to_block is not None:
            where.append("block_number <= ?")
            params.append(int(to_block))
        clause = ("WHERE " + " AND ".join(where)) if where else ""
        offset = (page - 1) * limit

        with _storage("query fee events"):
            total = self.database.conn.execute(
                f"SELECT COUNT(*) FROM fee_events {clause}", params
            ).fetchone()[0]
            rows = self.database.conn.execute(f"""
                SELECT {_COLS} FROM fee_events {clause}
                ORDER BY block_number DESC, log_index DESC
                LIMIT ? OFFSET ?
            """, (*params, limit, offset)).fetchall()
        return [row_to_dict(r) for r in rows], total

    def integrator_stats(self, integrator: str) -> Dict[str, Any]:
        integrator = integrator.lower()
        with _storage("integrator stats"):
            agg = self.database.conn.execute("""
                SELECT COUNT(*) AS n, MIN(timestamp) AS first_ts, MAX(timestamp) AS last_ts
                FROM fee_events WHERE integrator = ?
            """, (integrator,)).fetchone()
            tokens = [r[0] for r in self.database.conn.execute(
                "SELECT DISTINCT token FROM fee_events WHERE integrator = ? ORDER BY token", (integrator,)
            )]
            # sqlite integers overflow past 2**63, so fees are summed here
            total_integrator, total_lifi = 0, 0
            for fee_i, fee_l in self.database.conn.execute(
                "SELECT integrator_fee, lifi_fee FROM fee_events WHERE integrator = ?", (integrator,)
            ):
                total_integrator += int(fee_i)
                total_lifi += int(fee_l)
        return {
            "total_transactions": agg["n"],
            "total_integrator_fees": str(total_integrator),
            "total_lifi_fees": str(total_lifi),
            "unique_tokens_count": len(tokens),
            "unique_tokens": tokens,
            "first_transaction": agg["first_ts"],
            "last_transaction": agg["last_ts"],
        }


def pages_for(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
