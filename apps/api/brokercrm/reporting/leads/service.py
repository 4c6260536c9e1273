from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from opentelemetry import trace
from opentelemetry.trace import Span
from pydantic import ValidationError
from sqlalchemy.orm import Session

from brokercrm.core.errors import DataAccessError
from brokercrm.crm.models import Lead
from brokercrm.crm.repositories import BrokerStore, LeadStore, ReportWindow
from brokercrm.metrics import observe_report
from brokercrm.reporting.leads.schemas import (
    BrokerPerformanceReportRead,
    InsuranceTypeBreakdownRead,
    LeadConversionReportRead,
    SourceBreakdownRead,
)


logger = logging.getLogger("brokercrm.reporting")
tracer = trace.get_tracer("brokercrm.reporting")

CONVERTED_STATUS = "converted"

_CENT = Decimal("0.01")
_ZERO = Decimal("0")


@dataclass(slots=True)
class _Tally:
    total: int = 0
    converted: int = 0
    total_value: Decimal = _ZERO
    converted_value: Decimal = _ZERO

    def add(self, lead: Lead) -> None:
        value = Decimal(lead.estimated_value or 0)
        self.total += 1
        self.total_value += value
        if lead.status == CONVERTED_STATUS:
            self.converted += 1
            self.converted_value += value

    def fraction(self) -> float:
        return self.converted / self.total if self.total > 0 else 0.0

    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        rate = Decimal(self.converted) * 100 / Decimal(self.total)
        return float(rate.quantize(_CENT, rounding=ROUND_HALF_UP))


def _q(value: Decimal) -> Decimal:
    return value.quantize(_CENT)


def _lead_insurance_types(lead: Lead) -> Iterable[str]:
    # a lead counts once per distinct type it carries
    return dict.fromkeys(lead.insurance_types or [])


@dataclass(slots=True)
class LeadReportingService:
    lead_store: LeadStore = LeadStore()
    broker_store: BrokerStore = BrokerStore()

    def conversion_report(
        self,
        session: Session,
        organisation_id: int,
        *,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> LeadConversionReportRead:
        window = ReportWindow(start_date=start_date, end_date=end_date)
        with self._observed("lead_conversion", organisation_id) as span:
            leads = self.lead_store.list_leads(session, organisation_id, window)

            overall = _Tally()
            by_source: dict[str, _Tally] = {}
            by_type: dict[str, _Tally] = {}
            for lead in leads:
                overall.add(lead)
                by_source.setdefault(lead.source, _Tally()).add(lead)
                for insurance_type in _lead_insurance_types(lead):
                    by_type.setdefault(insurance_type, _Tally()).add(lead)

            report = LeadConversionReportRead(
                organisation_id=organisation_id,
                total_leads=overall.total,
                converted_leads=overall.converted,
                conversion_rate=overall.fraction(),
                total_estimated_value=_q(overall.total_value),
                converted_value=_q(overall.converted_value),
                by_source=[
                    SourceBreakdownRead(
                        source=source,
                        total=tally.total,
                        converted=tally.converted,
                        conversion_rate=tally.fraction(),
                    )
                    for source, tally in by_source.items()
                ],
                by_insurance_type=[
                    InsuranceTypeBreakdownRead(
                        insurance_type=insurance_type,
                        total=tally.total,
                        converted=tally.converted,
                        conversion_rate=tally.fraction(),
                    )
                    for insurance_type, tally in by_type.items()
                ],
            )

            span.set_attribute("lead_count", overall.total)
            logger.info(
                "report.generated",
                extra={"report": "lead_conversion", "organisation_id": organisation_id, "lead_count": overall.total},
            )
        return report

    def broker_performance_reports(
        self,
        session: Session,
        organisation_id: int,
        *,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[BrokerPerformanceReportRead]:
        """One row per active broker of the organisation, busiest first.

        Brokers drive the result: a broker without leads in the window still
        gets an all-zero row. The window only restricts which leads count.
        """
        window = ReportWindow(start_date=start_date, end_date=end_date)
        with self._observed("broker_performance", organisation_id) as span:
            brokers = self.broker_store.list_active_brokers(session, organisation_id)
            tallies: dict[int, _Tally] = {broker.id: _Tally() for broker in brokers}
            leads = self.lead_store.list_leads_for_brokers(session, list(tallies), window)
            for lead in leads:
                tallies[lead.assigned_broker_id].add(lead)

            rows = [
                BrokerPerformanceReportRead(
                    broker_id=broker.id,
                    broker_name=broker.full_name,
                    total_leads=tallies[broker.id].total,
                    converted_leads=tallies[broker.id].converted,
                    conversion_rate=tallies[broker.id].percentage(),
                    total_estimated_value=_q(tallies[broker.id].total_value),
                    converted_value=_q(tallies[broker.id].converted_value),
                )
                for broker in brokers
            ]
            # list.sort is stable, so equal counts keep broker id order
            rows.sort(key=lambda row: row.total_leads, reverse=True)

            span.set_attribute("broker_count", len(brokers))
            span.set_attribute("lead_count", len(leads))
            logger.info(
                "report.generated",
                extra={
                    "report": "broker_performance",
                    "organisation_id": organisation_id,
                    "broker_count": len(brokers),
                    "lead_count": len(leads),
                },
            )
        return rows

    @staticmethod
    @contextmanager
    def _observed(report: str, organisation_id: int) -> Iterator[Span]:
        """Span, metrics and failure logging around one report run.

        Stored rows that do not fit the report models surface as
        ``DataAccessError`` like any other failed read.
        """
        started = time.perf_counter()
        with tracer.start_as_current_span(f"reporting.{report}") as span:
            span.set_attribute("organisation_id", organisation_id)
            try:
                try:
                    yield span
                except ValidationError as exc:
                    raise DataAccessError(
                        f"reports.{report}",
                        f"stored lead data failed validation: {exc.error_count()} error(s)",
                    ) from exc
            except DataAccessError as exc:
                observe_report(report, "failed", time.perf_counter() - started)
                logger.warning(
                    "report.failed",
                    extra={
                        "report": report,
                        "organisation_id": organisation_id,
                        "operation": exc.operation,
                        "error": exc.message,
                    },
                )
                raise
        observe_report(report, "succeeded", time.perf_counter() - started)
