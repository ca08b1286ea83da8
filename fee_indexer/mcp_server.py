# mcp_server.py: HTTP query surface over the fee_events / scan_progress tables
from fastmcp import FastMCP

from fee_indexer import config, queries
from fee_indexer.db import Database, EventStore, ProgressStore
from fee_indexer.queries import EventQueryIn, IntegratorIn, IntegratorPageIn

database = Database(config.DB_PATH)
events = EventStore(database)
progress = ProgressStore(database)

mcp = FastMCP("fee-indexer-mcp", version="0.1.0")


def _db():
    if not database.is_connected():
        database.connect()


# ---------- Typed wrapper tools ----------
@mcp.tool(name="events_list")
def events_list_t(args: EventQueryIn):
    """FeesCollected events filtered by integrator, token and block range (newest first)."""
    _db()
    return queries.list_events(events, args.model_dump())

@mcp.tool(name="integrator_events")
def integrator_events_t(args: IntegratorPageIn):
    """All events for one integrator, paginated."""
    _db()
    return queries.integrator_events(events, args.model_dump())

@mcp.tool(name="integrator_stats")
def integrator_stats_t(args: IntegratorIn):
    """Aggregated fee statistics for one integrator."""
    _db()
    return queries.integrator_stats(events, args.model_dump())

@mcp.tool(name="scanner_status")
def scanner_status_t():
    """Scan progress for every network."""
    _db()
    return queries.scanner_status(progress)

@mcp.tool(name="health")
def health_t():
    """Database connectivity."""
    _db()
    return queries.health(database)


def main():
    mcp.run(transport="http", host=config.MCP_HOST, port=config.MCP_PORT)


if __name__ == "__main__":
    main()
