from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brokercrm.core.errors import DataAccessError
from brokercrm.crm.models import Document, Lead, Notification, Organisation, User


logger = logging.getLogger("brokercrm.crm.store")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ReportWindow:
    """Optional inclusive bounds on ``Lead.created_at``."""

    start_date: datetime | None = None
    end_date: datetime | None = None

    def apply(self, stmt: Select[Any]) -> Select[Any]:
        if self.start_date is not None:
            stmt = stmt.where(Lead.created_at >= self.start_date)
        if self.end_date is not None:
            stmt = stmt.where(Lead.created_at <= self.end_date)
        return stmt


ALL_TIME = ReportWindow()


def _read(operation: str, query: Callable[[], T]) -> T:
    try:
        return query()
    except SQLAlchemyError as exc:
        logger.error("store.read_failed", extra={"operation": operation, "error": str(exc)})
        raise DataAccessError(operation, str(exc)) from exc


class LeadStore:
    def list_leads(self, session: Session, organisation_id: int, window: ReportWindow = ALL_TIME) -> Sequence[Lead]:
        stmt = window.apply(select(Lead).where(Lead.organisation_id == organisation_id))
        return _read("leads.list", lambda: session.scalars(stmt.order_by(Lead.id.asc())).all())

    def list_leads_for_brokers(
        self,
        session: Session,
        broker_ids: Sequence[int],
        window: ReportWindow = ALL_TIME,
    ) -> Sequence[Lead]:
        if not broker_ids:
            return []
        stmt = window.apply(select(Lead).where(Lead.assigned_broker_id.in_(list(broker_ids))))
        return _read("leads.list_for_brokers", lambda: session.scalars(stmt.order_by(Lead.id.asc())).all())

    def list_leads_for_broker(self, session: Session, broker_id: int, window: ReportWindow = ALL_TIME) -> Sequence[Lead]:
        return self.list_leads_for_brokers(session, [broker_id], window)

    def list_leads_by_organisation(
        self,
        session: Session,
        organisation_id: int,
        *,
        status: str | None = None,
        assigned_broker_id: int | None = None,
        unassigned: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Lead]:
        stmt = select(Lead).where(Lead.organisation_id == organisation_id)
        if status is not None:
            stmt = stmt.where(Lead.status == status)
        if unassigned:
            stmt = stmt.where(Lead.assigned_broker_id.is_(None))
        elif assigned_broker_id is not None:
            stmt = stmt.where(Lead.assigned_broker_id == assigned_broker_id)

        stmt = stmt.order_by(Lead.created_at.desc(), Lead.id.desc()).offset(offset).limit(limit)
        return _read("leads.list_by_organisation", lambda: session.scalars(stmt).all())

    def get_lead(self, session: Session, lead_id: int) -> Lead | None:
        return _read("leads.get", lambda: session.get(Lead, lead_id))

    def list_due_leads(self, session: Session, organisation_id: int, now: datetime) -> Sequence[Lead]:
        stmt = (
            select(Lead)
            .where(Lead.organisation_id == organisation_id)
            .where(Lead.due_date.is_not(None))
            .where(Lead.due_date <= now)
            .order_by(Lead.due_date.asc(), Lead.id.asc())
        )
        return _read("leads.list_due", lambda: session.scalars(stmt).all())


class BrokerStore:
    def list_active_brokers(self, session: Session, organisation_id: int) -> Sequence[User]:
        stmt = (
            select(User)
            .where(User.organisation_id == organisation_id)
            .where(User.role == "broker")
            .where(User.is_active.is_(True))
            .order_by(User.id.asc())
        )
        return _read("users.list_active_brokers", lambda: session.scalars(stmt).all())

    def list_users_by_organisation(
        self,
        session: Session,
        organisation_id: int,
        *,
        role: str | None = None,
        is_active: bool | None = None,
    ) -> Sequence[User]:
        stmt = select(User).where(User.organisation_id == organisation_id)
        if role is not None:
            stmt = stmt.where(User.role == role)
        if is_active is not None:
            stmt = stmt.where(User.is_active.is_(is_active))
        return _read("users.list_by_organisation", lambda: session.scalars(stmt.order_by(User.id.asc())).all())


class OrganisationStore:
    def list_organisations(self, session: Session) -> Sequence[Organisation]:
        stmt = select(Organisation).order_by(Organisation.id.asc())
        return _read("organisations.list", lambda: session.scalars(stmt).all())


class DocumentStore:
    def list_documents_by_lead(self, session: Session, lead_id: int) -> Sequence[Document]:
        stmt = select(Document).where(Document.lead_id == lead_id).order_by(Document.created_at.asc(), Document.id.asc())
        return _read("documents.list_by_lead", lambda: session.scalars(stmt).all())


class NotificationStore:
    def list_notifications_by_user(
        self,
        session: Session,
        user_id: int,
        *,
        is_read: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if is_read is not None:
            stmt = stmt.where(Notification.is_read.is_(is_read))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit)
        return _read("notifications.list_by_user", lambda: session.scalars(stmt).all())
