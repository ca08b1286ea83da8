"""
Pytest configuration and fixtures for fee_indexer tests
"""

import pytest

from fee_indexer.config import ChainConfig, ScannerConfig
from fee_indexer.db import Database, EventStore, ProgressStore
from fee_indexer.scanner import ScanEngine
from tests.fakes import CONTRACT, NOW, FakeLedger, RecordingSleep


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks tests as slow")


@pytest.fixture
def chain():
    return ChainConfig(name="Polygon", chain_id=137, rpc_url="http://localhost:8545",
                       contract_address=CONTRACT, start_block=1)


@pytest.fixture
def scanner_cfg():
    return ScannerConfig(batch_size=2, interval_seconds=0.01, max_retries=3,
                         retry_delay_seconds=1.0, batch_delay_seconds=0.5)


@pytest.fixture
def database():
    """
    In-memory sqlite database with the schema applied
    """
    db = Database(":memory:").connect()
    yield db
    db.disconnect()


@pytest.fixture
def progress_store(database):
    return ProgressStore(database)


@pytest.fixture
def event_store(database):
    return EventStore(database)


@pytest.fixture
def ledger(chain):
    return FakeLedger(chain)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_engine(chain, scanner_cfg, ledger, progress_store, event_store, sleep):
    """
    Build a ScanEngine wired to the fakes; any collaborator can be overridden
    """
    def _make(chain_cfg=None, scanner=None, **kw):
        return ScanEngine(
            chain_cfg or chain,
            scanner or scanner_cfg,
            kw.get("ledger", ledger),
            kw.get("progress_store", progress_store),
            kw.get("event_store", event_store),
            sleep=sleep,
            clock=lambda: NOW,
        )
    return _make
