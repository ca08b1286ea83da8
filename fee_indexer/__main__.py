from fee_indexer.main import run

run()
