import asyncio, logging, signal, sys
import uvloop

from fee_indexer import config
from fee_indexer.db import Database, EventStore, ProgressStore
from fee_indexer.errors import ConfigurationError, IndexerError
from fee_indexer.ledger import LedgerClient
from fee_indexer.scanner import ScanEngine

logger = logging.getLogger("fee_indexer")


def setup_logging(level: str = config.LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def main(chain_name: str = config.CHAIN) -> int:
    chain = config.get_chain_config(chain_name)
    scanner_cfg = config.scanner_config()

    database = Database(config.DB_PATH).connect()
    try:
        ledger = LedgerClient(chain)
        head = await ledger.current_height()
        logger.info(f"Connected to {chain.name} (chain_id={chain.chain_id}), head={head}")

        engine = ScanEngine(chain, scanner_cfg, ledger, ProgressStore(database), EventStore(database))
        await engine.initialize()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, engine.stop)

        # one scan at startup, then the interval
        await engine.run_periodic()
        logger.info(f"final stats: {engine.get_stats().to_dict()}")
        return 0
    finally:
        database.disconnect()


def run():
    setup_logging()
    try:
        sys.exit(uvloop.run(main()))
    except ConfigurationError as e:
        logger.error(f"configuration error: {e}")
        sys.exit(2)
    except IndexerError as e:
        logger.error(f"indexer failed to start: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
