"""
schemas/orders.py — Pydantic models for order records and order forms

Business Rules:
- OrderRecord mirrors one entry of the shared orders document; keys this
  model does not know are preserved (extra="allow") so a write never drops
  data another writer stored
- All timestamps are UTC-aware once loaded
- OrderForm is the payload of an interactive create/update; required-field
  checks live in the write coordinator so they run before any I/O

Called by: store/base.py, services/*, routers/orders.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import utc


class ValidationState(str, Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    BLOCKED = "BLOCKED"
    CANCELED = "CANCELED"
    DELETED = "DELETED"


class ActivationState(str, Enum):
    STUDY = "STUDY"
    TO_PROCESS = "TO_PROCESS"
    IN_PROGRESS = "IN_PROGRESS"
    INSTALLED = "INSTALLED"
    BILLED = "BILLED"
    BLOCKED = "BLOCKED"
    CANCELED = "CANCELED"


_TIMESTAMP_FIELDS = (
    "last_edited_at",
    "submitted_at",
    "entered_at",
    "processed_at",
    "validated_at",
    "activation_changed_at",
    "activation_completed_at",
    "serial_verified_at",
    "go_date",
)


class OrderRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = ""
    contract_ref: str = ""
    external_ref: str | None = None

    validation_state: ValidationState = ValidationState.PENDING
    activation_state: ActivationState = ActivationState.STUDY
    block_reason: str = ""
    activation_block_reason: str = ""

    manually_created: bool = False
    is_confirmed: bool = False
    last_edited_at: datetime | None = None

    company_name: str = ""
    phone: str = ""
    landline_number: str = ""
    city: str = ""
    offer: str = ""
    sales_agent: str = ""
    provider: str = ""
    serial_number: str = ""
    verified_serial_number: str = ""
    crm_link: str = ""

    submitted_at: datetime | None = None
    entered_at: datetime | None = None
    processed_at: datetime | None = None
    validated_at: datetime | None = None
    activation_changed_at: datetime | None = None
    activation_completed_at: datetime | None = None
    serial_verified_at: datetime | None = None
    go_date: datetime | None = None

    @field_validator("validation_state", "activation_state", mode="before")
    @classmethod
    def _upper_state(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator(*_TIMESTAMP_FIELDS, mode="before")
    @classmethod
    def _blank_timestamp(cls, v):
        return None if v == "" else v

    @field_validator(*_TIMESTAMP_FIELDS)
    @classmethod
    def _aware_timestamp(cls, v):
        return utc(v)

    def to_document(self) -> dict:
        """Serialize for the shared store (JSON-safe, extras included)."""
        return self.model_dump(mode="json")


class OrderForm(BaseModel):
    """Fields an interactive session may submit for create or update.

    Identity, provenance and processing timestamps are never taken from
    the form.
    """

    model_config = ConfigDict(extra="ignore")

    contract_ref: str | None = None
    external_ref: str | None = None
    company_name: str | None = None
    phone: str | None = None
    landline_number: str | None = None
    city: str | None = None
    offer: str | None = None
    sales_agent: str | None = None
    provider: str | None = None
    serial_number: str | None = None
    verified_serial_number: str | None = None
    serial_verified_at: datetime | None = None
    crm_link: str | None = None
    is_confirmed: bool | None = None
    validation_state: ValidationState | None = None
    activation_state: ActivationState | None = None
    block_reason: str | None = None
    activation_block_reason: str | None = None
    submitted_at: datetime | None = None
    validated_at: datetime | None = None
    activation_completed_at: datetime | None = None
    go_date: datetime | None = None


class OrderListResponse(BaseModel):
    total: int = 0
    duplicates_hidden: int = 0
    suppressed: bool = False
    orders: list[dict] = Field(default_factory=list)


class MutationResponse(BaseModel):
    ok: bool = True
    order: dict | None = None
    warnings: list[str] = Field(default_factory=list)


class SyncResponse(BaseModel):
    ok: bool = True
    added: int = 0
    total: int = 0
    orphaned: int = 0
    skipped: int = 0
