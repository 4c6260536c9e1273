from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from brokercrm.crm.schemas import InsuranceType, LeadSource


class SourceBreakdownRead(BaseModel):
    source: LeadSource
    total: int
    converted: int
    conversion_rate: float = Field(ge=0, le=1)


class InsuranceTypeBreakdownRead(BaseModel):
    insurance_type: InsuranceType
    total: int
    converted: int
    conversion_rate: float = Field(ge=0, le=1)


class LeadConversionReportRead(BaseModel):
    """Organisation-wide conversion figures; rates are fractions in [0, 1]."""

    organisation_id: int
    total_leads: int
    converted_leads: int
    conversion_rate: float = Field(ge=0, le=1)
    total_estimated_value: Decimal
    converted_value: Decimal
    by_source: list[SourceBreakdownRead]
    by_insurance_type: list[InsuranceTypeBreakdownRead]


class BrokerPerformanceReportRead(BaseModel):
    """Per-broker figures; ``conversion_rate`` is a percentage in [0, 100]."""

    broker_id: int
    broker_name: str
    total_leads: int
    converted_leads: int
    conversion_rate: float = Field(ge=0, le=100)
    total_estimated_value: Decimal
    converted_value: Decimal
