from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


UserRole = Literal["admin", "broker", "view_only"]
LeadStatus = Literal["new", "contacted", "qualified", "converted", "lost"]
LeadSource = Literal["referral", "website", "cold_call", "social_media", "advertisement", "other"]
InsuranceType = Literal["life", "auto", "health", "home", "business", "travel", "disability"]
NotificationType = Literal["due_date_reminder", "lead_assignment", "status_change", "document_upload"]


class OrganisationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    created_at: datetime
    updated_at: datetime


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    first_name: str
    last_name: str
    role: UserRole
    organisation_id: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: EmailStr | None
    phone: str | None
    insurance_types: list[InsuranceType] = Field(min_length=1)
    status: LeadStatus
    source: LeadSource
    estimated_value: Decimal
    notes: str | None
    due_date: datetime | None
    organisation_id: int
    assigned_broker_id: int | None
    parent_lead_id: int | None
    created_at: datetime
    updated_at: datetime


class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    original_filename: str
    file_size: int
    mime_type: str
    lead_id: int
    uploaded_by_user_id: int
    created_at: datetime


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: NotificationType
    title: str
    message: str
    user_id: int
    lead_id: int | None
    is_read: bool
    sent_at: datetime | None
    created_at: datetime
