from __future__ import annotations

import logging
from collections.abc import Generator
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from brokercrm.core.database import Base
from brokercrm.core.errors import DataAccessError
from brokercrm.crm.models import Lead, Organisation, User
from brokercrm.crm.repositories import LeadStore, ReportWindow
from brokercrm.reporting.leads.service import LeadReportingService


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def service() -> LeadReportingService:
    return LeadReportingService()


def _utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def _organisation(session: Session, name: str = "Harbour Brokers") -> Organisation:
    organisation = Organisation(name=name, description=None)
    session.add(organisation)
    session.flush()
    return organisation


def _user(
    session: Session,
    organisation: Organisation,
    email: str,
    *,
    first_name: str = "Jane",
    last_name: str = "Smith",
    role: str = "broker",
    is_active: bool = True,
) -> User:
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        organisation_id=organisation.id,
        is_active=is_active,
    )
    session.add(user)
    session.flush()
    return user


def _lead(
    session: Session,
    organisation: Organisation,
    *,
    insurance_types: list[str],
    status: str = "new",
    source: str = "referral",
    estimated_value: str = "0",
    broker: User | None = None,
    created_at: datetime | None = None,
) -> Lead:
    lead = Lead(
        name=f"Lead {status} {source}",
        insurance_types=insurance_types,
        status=status,
        source=source,
        estimated_value=Decimal(estimated_value),
        organisation_id=organisation.id,
        assigned_broker_id=broker.id if broker is not None else None,
        created_at=created_at or _utc(2026, 3, 1),
    )
    session.add(lead)
    session.flush()
    return lead


def _seed_mixed_leads(session: Session, organisation: Organisation) -> None:
    _lead(session, organisation, insurance_types=["life", "health"], status="new", source="referral", estimated_value="1000.00")
    _lead(session, organisation, insurance_types=["auto"], status="converted", source="website", estimated_value="2000.50")
    _lead(session, organisation, insurance_types=["life"], status="converted", source="referral", estimated_value="1500.25")
    _lead(session, organisation, insurance_types=["business", "health"], status="lost", source="cold_call", estimated_value="5000.00")


def test_conversion_report_for_organisation_without_leads(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)

    report = service.conversion_report(db_session, organisation.id)

    assert report.organisation_id == organisation.id
    assert report.total_leads == 0
    assert report.converted_leads == 0
    assert report.conversion_rate == 0
    assert report.total_estimated_value == Decimal("0")
    assert report.converted_value == Decimal("0")
    assert report.by_source == []
    assert report.by_insurance_type == []


def test_conversion_report_totals_and_values(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    _seed_mixed_leads(db_session, organisation)

    report = service.conversion_report(db_session, organisation.id)

    assert report.total_leads == 4
    assert report.converted_leads == 2
    assert report.conversion_rate == 0.5
    assert report.total_estimated_value == Decimal("9500.75")
    assert report.converted_value == Decimal("3500.75")


def test_conversion_report_breakdowns(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    _seed_mixed_leads(db_session, organisation)

    report = service.conversion_report(db_session, organisation.id)

    by_source = {item.source: item for item in report.by_source}
    assert set(by_source) == {"referral", "website", "cold_call"}
    assert (by_source["referral"].total, by_source["referral"].converted) == (2, 1)
    assert by_source["referral"].conversion_rate == 0.5
    assert by_source["website"].conversion_rate == 1.0
    assert by_source["cold_call"].conversion_rate == 0
    assert sum(item.total for item in report.by_source) == report.total_leads

    by_type = {item.insurance_type: item for item in report.by_insurance_type}
    assert set(by_type) == {"life", "health", "auto", "business"}
    assert (by_type["life"].total, by_type["life"].converted, by_type["life"].conversion_rate) == (2, 1, 0.5)
    assert (by_type["health"].total, by_type["health"].converted, by_type["health"].conversion_rate) == (2, 0, 0)
    assert (by_type["auto"].total, by_type["auto"].converted) == (1, 1)
    assert sum(item.total for item in report.by_insurance_type) == 6


def test_conversion_report_counts_repeated_type_once_per_lead(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    _lead(db_session, organisation, insurance_types=["home", "home", "travel"], status="converted", estimated_value="10")

    report = service.conversion_report(db_session, organisation.id)

    by_type = {item.insurance_type: item for item in report.by_insurance_type}
    assert by_type["home"].total == 1
    assert by_type["travel"].total == 1


def test_conversion_report_keeps_cent_precision(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    for _ in range(10):
        _lead(db_session, organisation, insurance_types=["auto"], status="converted", estimated_value="0.10")
    _lead(db_session, organisation, insurance_types=["auto"], estimated_value="0.20")

    report = service.conversion_report(db_session, organisation.id)

    assert report.total_estimated_value == Decimal("1.20")
    assert report.converted_value == Decimal("1.00")
    assert report.converted_value <= report.total_estimated_value


def test_conversion_report_only_includes_requested_organisation(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    other = _organisation(db_session, "Other Brokers")
    _lead(db_session, organisation, insurance_types=["life"], status="converted", estimated_value="100")
    _lead(db_session, other, insurance_types=["auto"], status="converted", estimated_value="999")
    _lead(db_session, other, insurance_types=["home"], estimated_value="1")

    report = service.conversion_report(db_session, organisation.id)

    assert report.total_leads == 1
    assert report.total_estimated_value == Decimal("100.00")
    assert [item.insurance_type for item in report.by_insurance_type] == ["life"]


def test_conversion_report_date_window_is_inclusive(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    _lead(db_session, organisation, insurance_types=["life"], created_at=_utc(2026, 1, 31, 23))
    _lead(db_session, organisation, insurance_types=["life"], created_at=_utc(2026, 2, 1))
    _lead(db_session, organisation, insurance_types=["auto"], status="converted", created_at=_utc(2026, 2, 15))
    _lead(db_session, organisation, insurance_types=["home"], created_at=_utc(2026, 2, 28))
    _lead(db_session, organisation, insurance_types=["home"], created_at=_utc(2026, 2, 28, 1))

    report = service.conversion_report(
        db_session,
        organisation.id,
        start_date=_utc(2026, 2, 1),
        end_date=_utc(2026, 2, 28),
    )

    assert report.total_leads == 3
    assert report.converted_leads == 1

    open_ended = service.conversion_report(db_session, organisation.id, start_date=_utc(2026, 2, 15))
    assert open_ended.total_leads == 3


def test_conversion_report_is_idempotent(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    _seed_mixed_leads(db_session, organisation)

    first = service.conversion_report(db_session, organisation.id)
    second = service.conversion_report(db_session, organisation.id)

    assert first == second


def test_broker_performance_metrics(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    broker = _user(db_session, organisation, "john@example.com", first_name="John", last_name="Doe")
    _lead(db_session, organisation, insurance_types=["life"], status="converted", estimated_value="1000", broker=broker)
    _lead(db_session, organisation, insurance_types=["auto"], status="new", estimated_value="500", broker=broker)

    reports = service.broker_performance_reports(db_session, organisation.id)

    assert len(reports) == 1
    report = reports[0]
    assert report.broker_id == broker.id
    assert report.broker_name == "John Doe"
    assert report.total_leads == 2
    assert report.converted_leads == 1
    assert report.conversion_rate == 50
    assert report.total_estimated_value == Decimal("1500.00")
    assert report.converted_value == Decimal("1000.00")


def test_broker_performance_rate_is_rounded_percentage(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    third = _user(db_session, organisation, "third@example.com")
    two_thirds = _user(db_session, organisation, "two-thirds@example.com")
    for status in ("converted", "new", "lost"):
        _lead(db_session, organisation, insurance_types=["life"], status=status, broker=third)
    for status in ("converted", "converted", "lost"):
        _lead(db_session, organisation, insurance_types=["life"], status=status, broker=two_thirds)

    rates = {item.broker_id: item.conversion_rate for item in service.broker_performance_reports(db_session, organisation.id)}

    assert rates[third.id] == 33.33
    assert rates[two_thirds.id] == 66.67


def test_broker_performance_includes_brokers_without_leads(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    busy = _user(db_session, organisation, "busy@example.com")
    idle = _user(db_session, organisation, "idle@example.com", first_name="Idle", last_name="Broker")
    _lead(db_session, organisation, insurance_types=["auto"], broker=busy)

    reports = service.broker_performance_reports(db_session, organisation.id)

    assert [item.broker_id for item in reports] == [busy.id, idle.id]
    idle_report = reports[1]
    assert idle_report.broker_name == "Idle Broker"
    assert idle_report.total_leads == 0
    assert idle_report.converted_leads == 0
    assert idle_report.conversion_rate == 0
    assert idle_report.total_estimated_value == Decimal("0")
    assert idle_report.converted_value == Decimal("0")


def test_broker_performance_excludes_inactive_foreign_and_non_brokers(
    db_session: Session,
    service: LeadReportingService,
) -> None:
    organisation = _organisation(db_session)
    other = _organisation(db_session, "Other Brokers")
    active = _user(db_session, organisation, "active@example.com")
    inactive = _user(db_session, organisation, "inactive@example.com", is_active=False)
    admin = _user(db_session, organisation, "admin@example.com", role="admin")
    foreign = _user(db_session, other, "foreign@example.com")
    for user in (inactive, admin, foreign):
        _lead(db_session, organisation, insurance_types=["life"], status="converted", broker=user)

    reports = service.broker_performance_reports(db_session, organisation.id)

    assert [item.broker_id for item in reports] == [active.id]


def test_broker_performance_orders_by_total_leads(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    first = _user(db_session, organisation, "first@example.com")
    second = _user(db_session, organisation, "second@example.com")
    third = _user(db_session, organisation, "third@example.com")
    _lead(db_session, organisation, insurance_types=["life"], broker=first)
    for _ in range(3):
        _lead(db_session, organisation, insurance_types=["auto"], broker=second)
    _lead(db_session, organisation, insurance_types=["home"], broker=third)

    reports = service.broker_performance_reports(db_session, organisation.id)

    assert [item.broker_id for item in reports] == [second.id, first.id, third.id]


def test_broker_performance_window_filters_leads_not_brokers(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    in_window = _user(db_session, organisation, "in-window@example.com")
    out_of_window = _user(db_session, organisation, "out-of-window@example.com")
    _lead(db_session, organisation, insurance_types=["life"], status="converted", estimated_value="300", broker=in_window, created_at=_utc(2026, 2, 1))
    _lead(db_session, organisation, insurance_types=["life"], estimated_value="700", broker=in_window, created_at=_utc(2026, 5, 1))
    _lead(db_session, organisation, insurance_types=["auto"], estimated_value="50", broker=out_of_window, created_at=_utc(2025, 12, 1))

    reports = service.broker_performance_reports(
        db_session,
        organisation.id,
        start_date=_utc(2026, 1, 1),
        end_date=_utc(2026, 3, 31),
    )

    by_broker = {item.broker_id: item for item in reports}
    assert set(by_broker) == {in_window.id, out_of_window.id}
    assert by_broker[in_window.id].total_leads == 1
    assert by_broker[in_window.id].conversion_rate == 100
    assert by_broker[in_window.id].total_estimated_value == Decimal("300.00")
    assert by_broker[out_of_window.id].total_leads == 0


def test_broker_performance_counts_assigned_leads_from_other_organisations(
    db_session: Session,
    service: LeadReportingService,
) -> None:
    home = _organisation(db_session, "Home Brokers")
    other = _organisation(db_session, "Other Brokers")
    broker = _user(db_session, home, "john@example.com", first_name="John", last_name="Doe")
    _lead(db_session, home, insurance_types=["life"], status="converted", estimated_value="100.00", broker=broker)
    _lead(db_session, other, insurance_types=["auto"], estimated_value="50.00", broker=broker)

    [row] = service.broker_performance_reports(db_session, home.id)

    assert row.broker_id == broker.id
    assert row.total_leads == 2
    assert row.converted_leads == 1
    assert row.conversion_rate == 50.0
    assert row.total_estimated_value == Decimal("150.00")
    assert row.converted_value == Decimal("100.00")
    assert service.broker_performance_reports(db_session, other.id) == []


def test_broker_performance_for_organisation_without_brokers(db_session: Session, service: LeadReportingService) -> None:
    organisation = _organisation(db_session)
    _lead(db_session, organisation, insurance_types=["life"])

    assert service.broker_performance_reports(db_session, organisation.id) == []


class _FailingLeadStore(LeadStore):
    def list_leads(self, session: Session, organisation_id: int, window: ReportWindow = ReportWindow()):  # type: ignore[override]
        raise DataAccessError("leads.list", "connection reset")


def test_conversion_report_propagates_data_access_error(db_session: Session) -> None:
    organisation = _organisation(db_session)
    service = LeadReportingService(lead_store=_FailingLeadStore())

    with pytest.raises(DataAccessError) as exc_info:
        service.conversion_report(db_session, organisation.id)

    assert exc_info.value.operation == "leads.list"


def test_broker_performance_wraps_sqlalchemy_failures(
    db_session: Session,
    service: LeadReportingService,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    organisation = _organisation(db_session)
    _user(db_session, organisation, "broker@example.com")

    def _broken_scalars(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise OperationalError("SELECT", {}, Exception("server closed the connection"))

    monkeypatch.setattr(db_session, "scalars", _broken_scalars)

    with pytest.raises(DataAccessError) as exc_info:
        service.broker_performance_reports(db_session, organisation.id)

    assert exc_info.value.operation == "users.list_active_brokers"


def test_conversion_report_turns_malformed_stored_rows_into_data_access_error(
    db_session: Session,
    service: LeadReportingService,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO, logger="brokercrm.reporting")
    organisation = _organisation(db_session)
    _lead(db_session, organisation, insurance_types=["life", "pets"], status="converted", estimated_value="10.00")

    with pytest.raises(DataAccessError) as exc_info:
        service.conversion_report(db_session, organisation.id)

    assert exc_info.value.operation == "reports.lead_conversion"
    assert isinstance(exc_info.value.__cause__, ValidationError)
    messages = [record.getMessage() for record in caplog.records if record.name == "brokercrm.reporting"]
    assert "report.failed" in messages
    assert "report.generated" not in messages


@pytest.mark.parametrize(("field", "value"), [("source", "billboard"), ("status", "archived")])
def test_lead_columns_reject_values_outside_their_enumeration(db_session: Session, field: str, value: str) -> None:
    organisation = _organisation(db_session)

    with pytest.raises(IntegrityError):
        _lead(db_session, organisation, insurance_types=["life"], **{field: value})


def test_user_role_rejects_unknown_role(db_session: Session) -> None:
    organisation = _organisation(db_session)

    with pytest.raises(IntegrityError):
        _user(db_session, organisation, "owner@example.com", role="owner")
