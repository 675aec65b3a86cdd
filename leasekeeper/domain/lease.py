from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class LeaseStatus(str, Enum):
    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    ACTIVE = "active"
    TERMINATED = "terminated"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[LeaseStatus] = frozenset(
    {LeaseStatus.TERMINATED, LeaseStatus.EXPIRED, LeaseStatus.CANCELLED}
)


class ApprovalStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SigningMethod(str, Enum):
    MANUAL = "manual"
    ELECTRONIC = "electronic"
    PENDING = "pending"


class ESignatureStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"
    DECLINED = "declined"
    VOIDED = "voided"


class LeaseType(str, Enum):
    FIXED_TERM = "fixed_term"
    MONTH_TO_MONTH = "month_to_month"


class _LeasePart(BaseModel):
    # Unknown keys in a change set must fail validation instead of being dropped.
    model_config = ConfigDict(extra="forbid")


class LeaseProperty(_LeasePart):
    id: str
    unit_id: str | None = None
    address: str | None = None


class LeaseFees(_LeasePart):
    monthly_rent: Decimal
    security_deposit: Decimal = Decimal("0")
    currency: str = "USD"
    rent_due_day: int = Field(default=1, ge=1, le=31)
    late_fee_amount: Decimal | None = None
    late_fee_days: int | None = None
    accepted_payment_method: str | None = None


class LeaseDuration(_LeasePart):
    start_date: date
    end_date: date | None = None
    move_in_date: date | None = None
    move_out_date: date | None = None
    termination_date: date | None = None


class ESignature(_LeasePart):
    provider: str
    status: ESignatureStatus = ESignatureStatus.DRAFT
    envelope_id: str | None = None
    sent_at: datetime | None = None
    completed_at: datetime | None = None
    declined_reason: str | None = None


class LeaseSignature(_LeasePart):
    user_id: str
    role: Literal["tenant", "co_tenant", "landlord", "property_manager"]
    signature_method: Literal["manual", "electronic"]
    signed_at: datetime
    provider_signature_id: str | None = None


class LeaseDocumentRef(_LeasePart):
    key: str
    filename: str
    uploaded_at: datetime | None = None


class PendingChanges(_LeasePart):
    # Deferred change set awaiting management approval; applied all-or-nothing.
    changes: dict[str, Any]
    proposed_by: str
    proposed_at: datetime
    display_name: str | None = None


class ApprovalEntry(_LeasePart):
    action: Literal["approved", "rejected"]
    actor: str
    timestamp: datetime
    notes: str | None = None


class Modification(_LeasePart):
    type: Literal["modified", "status_changed", "archived"]
    date: datetime
    performed_by: str
    changes: list[str] = Field(default_factory=list)


class Lease(_LeasePart):
    id: str
    # Client/organization isolation key; every lookup and decision is scoped by it.
    tenant_id: str
    lease_number: str
    status: LeaseStatus = LeaseStatus.DRAFT
    approval_status: ApprovalStatus = ApprovalStatus.DRAFT
    type: LeaseType = LeaseType.FIXED_TERM
    # The leaseholder user, not the client.
    tenant_user_id: str
    property: LeaseProperty
    fees: LeaseFees
    duration: LeaseDuration
    signing_method: SigningMethod = SigningMethod.PENDING
    e_signature: ESignature | None = None
    signatures: list[LeaseSignature] = Field(default_factory=list)
    signed_date: datetime | None = None
    documents: list[LeaseDocumentRef] = Field(default_factory=list)
    pending_changes: PendingChanges | None = None
    approval_details: list[ApprovalEntry] = Field(default_factory=list)
    modifications: list[Modification] = Field(default_factory=list)
    internal_notes: str | None = None
    renewal_options: dict[str, Any] | None = None
    pet_policy: dict[str, Any] | None = None
    utilities_included: list[str] = Field(default_factory=list)
    legal_terms: dict[str, Any] | None = None
    co_tenants: list[dict[str, Any]] = Field(default_factory=list)
    termination_reason: str | None = None
    created_by: str
    managed_by: str | None = None
    assigned_users: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None
    deleted_at: datetime | None = None
    version: int = 1

    def to_document(self) -> dict[str, Any]:
        # Unset optional fields are omitted so "absent" never round-trips as an empty value.
        return self.model_dump(mode="json", exclude_none=True)
