from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from brokercrm.api.errors import error_response
from brokercrm.core.database import get_db
from brokercrm.core.errors import DataAccessError
from brokercrm.crm.repositories import BrokerStore, DocumentStore, LeadStore, NotificationStore, OrganisationStore
from brokercrm.crm.schemas import (
    DocumentRead,
    LeadRead,
    LeadStatus,
    NotificationRead,
    OrganisationRead,
    UserRead,
    UserRole,
)


logger = logging.getLogger("brokercrm.crm.api")
ModelT = TypeVar("ModelT", bound=BaseModel)

router = APIRouter(prefix="/api/crm", tags=["crm"])
lead_store = LeadStore()
broker_store = BrokerStore()
organisation_store = OrganisationStore()
document_store = DocumentStore()
notification_store = NotificationStore()


def _rows(model: type[ModelT], items: Iterable[object], operation: str) -> list[ModelT]:
    try:
        return [model.model_validate(item) for item in items]
    except ValidationError as exc:
        logger.error("store.malformed_row", extra={"operation": operation, "error": str(exc)})
        raise DataAccessError(operation, f"stored row failed validation: {exc.error_count()} error(s)") from exc


def _failure(request: Request, exc: HTTPException | DataAccessError, code: str) -> JSONResponse:
    if isinstance(exc, DataAccessError):
        return error_response(
            request,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="crm_data_unavailable",
            message="crm data could not be read",
            details={"operation": exc.operation},
        )
    return error_response(
        request,
        status_code=exc.status_code,
        code=code,
        message=str(exc.detail),
        details=exc.detail,
    )


@router.get("/organisations", response_model=list[OrganisationRead])
def list_organisations(
    request: Request,
    db: Session = Depends(get_db),
) -> list[OrganisationRead] | JSONResponse:
    try:
        return _rows(OrganisationRead, organisation_store.list_organisations(db), "organisations.list")
    except DataAccessError as exc:
        return _failure(request, exc, "crm_organisation_list_failed")


@router.get("/organisations/{organisation_id}/users", response_model=list[UserRead])
def list_users_by_organisation(
    request: Request,
    organisation_id: int,
    role: UserRole | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[UserRead] | JSONResponse:
    try:
        users = broker_store.list_users_by_organisation(db, organisation_id, role=role, is_active=is_active)
        return _rows(UserRead, users, "users.list_by_organisation")
    except DataAccessError as exc:
        return _failure(request, exc, "crm_user_list_failed")


@router.get("/organisations/{organisation_id}/leads", response_model=list[LeadRead])
def list_leads_by_organisation(
    request: Request,
    organisation_id: int,
    status_filter: LeadStatus | None = Query(default=None, alias="status"),
    assigned_broker_id: int | None = Query(default=None),
    unassigned: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[LeadRead] | JSONResponse:
    try:
        if unassigned and assigned_broker_id is not None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="assigned_broker_id cannot be combined with unassigned",
            )
        leads = lead_store.list_leads_by_organisation(
            db,
            organisation_id,
            status=status_filter,
            assigned_broker_id=assigned_broker_id,
            unassigned=unassigned,
            limit=limit,
            offset=offset,
        )
        return _rows(LeadRead, leads, "leads.list_by_organisation")
    except (HTTPException, DataAccessError) as exc:
        return _failure(request, exc, "crm_lead_list_failed")


@router.get("/organisations/{organisation_id}/leads/due", response_model=list[LeadRead])
def list_due_leads(
    request: Request,
    organisation_id: int,
    db: Session = Depends(get_db),
) -> list[LeadRead] | JSONResponse:
    try:
        leads = lead_store.list_due_leads(db, organisation_id, datetime.now(timezone.utc))
        return _rows(LeadRead, leads, "leads.list_due")
    except DataAccessError as exc:
        return _failure(request, exc, "crm_due_lead_list_failed")


@router.get("/leads/{lead_id}", response_model=LeadRead)
def get_lead(
    request: Request,
    lead_id: int,
    db: Session = Depends(get_db),
) -> LeadRead | JSONResponse:
    try:
        lead = lead_store.get_lead(db, lead_id)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="lead not found")
        return _rows(LeadRead, [lead], "leads.get")[0]
    except (HTTPException, DataAccessError) as exc:
        return _failure(request, exc, "crm_lead_get_failed")


@router.get("/leads/{lead_id}/documents", response_model=list[DocumentRead])
def list_documents_by_lead(
    request: Request,
    lead_id: int,
    db: Session = Depends(get_db),
) -> list[DocumentRead] | JSONResponse:
    try:
        return _rows(DocumentRead, document_store.list_documents_by_lead(db, lead_id), "documents.list_by_lead")
    except DataAccessError as exc:
        return _failure(request, exc, "crm_document_list_failed")


@router.get("/users/{user_id}/notifications", response_model=list[NotificationRead])
def list_notifications_by_user(
    request: Request,
    user_id: int,
    is_read: bool | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[NotificationRead] | JSONResponse:
    try:
        notifications = notification_store.list_notifications_by_user(
            db,
            user_id,
            is_read=is_read,
            limit=limit,
            offset=offset,
        )
        return _rows(NotificationRead, notifications, "notifications.list_by_user")
    except DataAccessError as exc:
        return _failure(request, exc, "crm_notification_list_failed")
