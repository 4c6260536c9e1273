from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from brokercrm.api.errors import error_response
from brokercrm.core.database import get_db
from brokercrm.core.errors import DataAccessError
from brokercrm.reporting.leads.schemas import BrokerPerformanceReportRead, LeadConversionReportRead
from brokercrm.reporting.leads.service import LeadReportingService


router = APIRouter(prefix="/api/reports/leads", tags=["reports", "leads"])
reporting_service = LeadReportingService()


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _invalid_window(request: Request, start_date: datetime | None, end_date: datetime | None) -> JSONResponse | None:
    if start_date is not None and end_date is not None and start_date > end_date:
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="reports_invalid_window",
            message="start_date must not be after end_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    return None


def _data_unavailable(request: Request, exc: DataAccessError) -> JSONResponse:
    return error_response(
        request,
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code="reports_data_unavailable",
        message="report data could not be read",
        details={"operation": exc.operation},
    )


@router.get("/conversion", response_model=LeadConversionReportRead)
def lead_conversion_report(
    request: Request,
    organisation_id: int = Query(ge=1),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
) -> LeadConversionReportRead | JSONResponse:
    start_date, end_date = _as_utc(start_date), _as_utc(end_date)
    invalid = _invalid_window(request, start_date, end_date)
    if invalid is not None:
        return invalid
    try:
        return reporting_service.conversion_report(
            db,
            organisation_id,
            start_date=start_date,
            end_date=end_date,
        )
    except DataAccessError as exc:
        return _data_unavailable(request, exc)


@router.get("/broker-performance", response_model=list[BrokerPerformanceReportRead])
def broker_performance_reports(
    request: Request,
    organisation_id: int = Query(ge=1),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[BrokerPerformanceReportRead] | JSONResponse:
    start_date, end_date = _as_utc(start_date), _as_utc(end_date)
    invalid = _invalid_window(request, start_date, end_date)
    if invalid is not None:
        return invalid
    try:
        return reporting_service.broker_performance_reports(
            db,
            organisation_id,
            start_date=start_date,
            end_date=end_date,
        )
    except DataAccessError as exc:
        return _data_unavailable(request, exc)
