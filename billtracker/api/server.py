"""
FastAPI server over the stored bill runs.
- GET /api/bills: latest run (status recomputed at read time).
- GET /api/bills/history: archived bills from earlier runs (?limit=, default 500).
- POST /api/bills/refresh: run every provider now (?force=true skips the cache) and store the result.
Docs: http://<host>:<port>/docs
"""
import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import FastAPI
from pydantic import BaseModel, ConfigDict

from billtracker.core.bill import compute_status
from billtracker.core.service import get_bill_history_records, get_latest_bill_records

logger = logging.getLogger(__name__)


class BillRecordResponse(BaseModel):
    """Pydantic view of BillRecord (latest run)."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    fetched_at: Optional[datetime] = None
    source: str
    category: str
    amount: float
    currency: str = "USD"
    due_date: datetime
    status: str
    last_updated: Optional[datetime] = None
    origin: Optional[str] = None
    pay_url: Optional[str] = None
    account_last4: Optional[str] = None


class BillHistoryResponse(BaseModel):
    """Pydantic view of BillHistory."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    fetched_at: Optional[datetime] = None
    source: str
    category: str
    amount: float
    currency: str = "USD"
    due_date: datetime
    status: str
    account_last4: Optional[str] = None


class SourceResponse(BaseModel):
    source: str
    origin: str
    error: Optional[str] = None


class BillsResponse(BaseModel):
    """Response for GET /api/bills."""

    bills: List[BillRecordResponse]


class BillsHistoryResponse(BaseModel):
    """Response for GET /api/bills/history."""

    bills: List[BillHistoryResponse]


class RefreshResponse(BaseModel):
    """Response for POST /api/bills/refresh."""

    all_failed: bool
    sources: List[SourceResponse]
    bills: List[BillRecordResponse]


def _current(record: BillRecordResponse) -> BillRecordResponse:
    return record.model_copy(update={"status": compute_status(record.due_date, status=record.status)})


def create_app(tracker_app: Any) -> FastAPI:
    """Create FastAPI app with routes that use the given BillTrackerApp instance."""
    app = FastAPI(title="Bill Tracker API", description="Latest bills, bill history, refresh")

    @app.get("/api/bills", response_model=BillsResponse)
    def get_bills() -> BillsResponse:
        """Return the latest stored run."""
        records = get_latest_bill_records()
        return BillsResponse(bills=[_current(BillRecordResponse.model_validate(r)) for r in records])

    @app.get("/api/bills/history", response_model=BillsHistoryResponse)
    def get_bills_history(limit: Optional[int] = 500) -> BillsHistoryResponse:
        """Return archived bills, newest first. Use ?limit= to cap (default 500)."""
        records = get_bill_history_records(limit=limit)
        return BillsHistoryResponse(bills=[BillHistoryResponse.model_validate(r) for r in records])

    @app.post("/api/bills/refresh", response_model=RefreshResponse)
    async def refresh_bills(force: bool = False) -> RefreshResponse:
        """Fetch from every selected provider, store the run and return it."""
        report = await tracker_app.refresh(force=force)
        origins = {}
        for outcome in report.outcomes:
            for bill in outcome.bills:
                origins[id(bill)] = outcome.origin
        bills = [
            _current(BillRecordResponse(**bill._asdict(), origin=origins.get(id(bill))))
            for bill in report.bills
        ]
        return RefreshResponse(
            all_failed=report.all_failed,
            sources=[SourceResponse(source=o.source, origin=o.origin, error=o.error) for o in report.outcomes],
            bills=bills,
        )

    return app


def run_api_server(tracker_app: Any) -> None:
    """Serve the API with uvicorn on api.host / api.port (blocks until stopped)."""
    import uvicorn

    host = tracker_app.config.api_host
    port = tracker_app.config.api_port
    fastapi_app = create_app(tracker_app)
    logger.info(f"API server listening at http://{host}:{port} (docs at /docs)")
    uvicorn.run(fastapi_app, host=host, port=port)
