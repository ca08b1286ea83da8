class IndexerError(Exception):
    """Base class for everything the indexer raises on purpose."""


class ConfigurationError(IndexerError):
    """Bad chain/contract settings or an unreachable endpoint. Fatal at startup."""


class UpstreamUnavailable(IndexerError):
    """Transient RPC failure; retried by the caller."""


class RangeTooLarge(UpstreamUnavailable):
    """The RPC refused the requested block span."""

    def __init__(self, from_block: int, to_block: int, detail: str = ""):
        self.from_block = from_block
        self.to_block = to_block
        super().__init__(f"block range {from_block}-{to_block} rejected: {detail}")


class MalformedEvent(IndexerError):
    """A single log entry could not be decoded."""


class StorageError(IndexerError):
    """sqlite read or write failed. `inserted` counts rows written before the failure."""

    def __init__(self, message: str, inserted: int = 0):
        self.inserted = inserted
        super().__init__(message)
