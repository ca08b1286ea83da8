"""
Read-only views over the indexed data. Plain functions so they can be called
directly or exposed as MCP tools (see mcp_server.py).
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from fee_indexer.db import Database, EventStore, ProgressStore, pages_for
from fee_indexer.helpers import is_valid_address

MAX_PAGE_SIZE = 100


def _check_address(value: Optional[str], what: str) -> Optional[str]:
    if value is None:
        return None
    if not is_valid_address(value):
        raise ValueError(f"Invalid {what} address")
    return value.lower()


# --------- Pydantic input models ----------
class EventQueryIn(BaseModel):
    integrator: Optional[str] = None
    token: Optional[str] = None
    from_block: Optional[int] = Field(None, ge=0)
    to_block: Optional[int] = Field(None, ge=0)
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("integrator")
    @classmethod
    def _integrator(cls, v):
        return _check_address(v, "integrator")

    @field_validator("token")
    @classmethod
    def _token(cls, v):
        return _check_address(v, "token")


class IntegratorIn(BaseModel):
    integrator: str

    @field_validator("integrator")
    @classmethod
    def _integrator(cls, v):
        return _check_address(v, "integrator")


class IntegratorPageIn(IntegratorIn):
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=MAX_PAGE_SIZE)


def _error(e: Exception) -> Dict[str, Any]:
    if isinstance(e, ValidationError):
        msg = e.errors()[0].get("msg", str(e))
        return {"success": False, "error": msg.removeprefix("Value error, ")}
    return {"success": False, "error": str(e)}


def _page(rows, total, page, limit) -> Dict[str, Any]:
    return {
        "success": True,
        "data": rows,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": pages_for(total, limit)},
    }


# ----------------- queries ------------------
def list_events(events: EventStore, value: Optional[dict] = None) -> Dict[str, Any]:
    """Events filtered by integrator/token/block range, newest first."""
    try:
        q = EventQueryIn(**(value or {}))
    except ValidationError as e:
        return _error(e)
    rows, total = events.query(
        integrator=q.integrator, token=q.token,
        from_block=q.from_block, to_block=q.to_block,
        page=q.page, limit=q.limit,
    )
    return _page(rows, total, q.page, q.limit)


def integrator_events(events: EventStore, value: dict) -> Dict[str, Any]:
    try:
        q = IntegratorPageIn(**value)
    except ValidationError as e:
        return _error(e)
    rows, total = events.query(integrator=q.integrator, page=q.page, limit=q.limit)
    return _page(rows, total, q.page, q.limit)


def integrator_stats(events: EventStore, value: dict) -> Dict[str, Any]:
    """Transaction count, exact fee totals, token set and first/last timestamps."""
    try:
        q = IntegratorIn(**value)
    except ValidationError as e:
        return _error(e)
    return {"success": True, "data": events.integrator_stats(q.integrator)}


def scanner_status(progress: ProgressStore) -> Dict[str, Any]:
    return {"success": True, "data": [p.to_dict() for p in progress.all()]}


def health(database: Database, scanner_running: Optional[bool] = None) -> Dict[str, Any]:
    return {
        "success": True,
        "data": {
            "status": "healthy" if database.is_connected() else "degraded",
            "database": database.is_connected(),
            "scanner": None if scanner_running is None else ("running" if scanner_running else "stopped"),
        },
    }
