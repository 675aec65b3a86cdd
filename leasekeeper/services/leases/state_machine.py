from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from leasekeeper.core.errors import LeaseValidationError
from leasekeeper.domain.lease import ApprovalStatus, ESignatureStatus, Lease, LeaseStatus, SigningMethod


# Ordered so error messages list targets deterministically.
ALLOWED_TRANSITIONS: Mapping[LeaseStatus, tuple[LeaseStatus, ...]] = MappingProxyType(
    {
        LeaseStatus.DRAFT: (
            LeaseStatus.PENDING_SIGNATURE,
            LeaseStatus.ACTIVE,
            LeaseStatus.CANCELLED,
        ),
        LeaseStatus.PENDING_SIGNATURE: (LeaseStatus.ACTIVE, LeaseStatus.CANCELLED),
        LeaseStatus.ACTIVE: (LeaseStatus.TERMINATED, LeaseStatus.EXPIRED),
        LeaseStatus.TERMINATED: (),
        LeaseStatus.EXPIRED: (),
        LeaseStatus.CANCELLED: (),
    }
)


class ActivationRequirement(str, Enum):
    APPROVAL_REQUIRED = "approval_required"
    DOCUMENT_REQUIRED = "document_required"
    SIGNED_DATE_REQUIRED = "signed_date_required"
    SIGNING_METHOD_REQUIRED = "signing_method_required"
    ESIGNATURE_INCOMPLETE = "esignature_incomplete"
    TENANT_SIGNATURE_REQUIRED = "tenant_signature_required"


class TerminationRequirement(str, Enum):
    TERMINATION_DATE_REQUIRED = "termination_date_required"
    TERMINATION_REASON_REQUIRED = "termination_reason_required"


_REQUIREMENT_MESSAGES: dict[str, str] = {
    ActivationRequirement.APPROVAL_REQUIRED: "Lease must be approved first",
    ActivationRequirement.DOCUMENT_REQUIRED: "Lease document is required",
    ActivationRequirement.SIGNED_DATE_REQUIRED: "Signed date is required for active leases",
    ActivationRequirement.SIGNING_METHOD_REQUIRED: (
        "Signing method must be set to manual or electronic before activating lease"
    ),
    ActivationRequirement.ESIGNATURE_INCOMPLETE: (
        "Electronic signature must be completed (status: signed) before activating lease"
    ),
    ActivationRequirement.TENANT_SIGNATURE_REQUIRED: (
        "Tenant must sign the lease before it can be activated"
    ),
    TerminationRequirement.TERMINATION_DATE_REQUIRED: (
        "Termination date is required for terminated leases"
    ),
    TerminationRequirement.TERMINATION_REASON_REQUIRED: (
        "Termination reason is required for terminated leases"
    ),
}


def status_label(status: LeaseStatus) -> str:
    return status.name


def allowed_targets(current: LeaseStatus) -> tuple[LeaseStatus, ...]:
    return ALLOWED_TRANSITIONS.get(current, ())


def can_transition(current: LeaseStatus, target: LeaseStatus) -> bool:
    return current == target or target in allowed_targets(current)


def validate_transition(current: LeaseStatus, target: LeaseStatus) -> None:
    # Self-transitions are permitted no-ops.
    if current == target:
        return
    allowed = allowed_targets(current)
    if target in allowed:
        return
    allowed_text = ", ".join(status_label(status) for status in allowed) or "none (terminal state)"
    raise LeaseValidationError(
        f"Cannot transition from {status_label(current)} to {status_label(target)}. Allowed: {allowed_text}",
        reason="invalid_status_transition",
        details={
            "from": current.value,
            "to": target.value,
            "allowed": [status.value for status in allowed],
        },
    )


def pending_signature_failures(lease: Lease) -> list[ActivationRequirement]:
    failures: list[ActivationRequirement] = []
    if lease.approval_status != ApprovalStatus.APPROVED:
        failures.append(ActivationRequirement.APPROVAL_REQUIRED)
    if not lease.documents:
        failures.append(ActivationRequirement.DOCUMENT_REQUIRED)
    return failures


def activation_failures(lease: Lease) -> list[ActivationRequirement]:
    """Every unmet activation precondition, in a stable order."""
    failures = pending_signature_failures(lease)
    if lease.signed_date is None:
        failures.append(ActivationRequirement.SIGNED_DATE_REQUIRED)
    if lease.signing_method == SigningMethod.PENDING:
        failures.append(ActivationRequirement.SIGNING_METHOD_REQUIRED)
    if lease.signing_method == SigningMethod.ELECTRONIC and (
        lease.e_signature is None or lease.e_signature.status != ESignatureStatus.SIGNED
    ):
        failures.append(ActivationRequirement.ESIGNATURE_INCOMPLETE)
    tenant_signed = any(
        signature.role == "tenant" and signature.user_id == lease.tenant_user_id
        for signature in lease.signatures
    )
    if not tenant_signed:
        failures.append(ActivationRequirement.TENANT_SIGNATURE_REQUIRED)
    return failures


def termination_failures(lease: Lease) -> list[TerminationRequirement]:
    failures: list[TerminationRequirement] = []
    if lease.duration.termination_date is None:
        failures.append(TerminationRequirement.TERMINATION_DATE_REQUIRED)
    if not (lease.termination_reason or "").strip():
        failures.append(TerminationRequirement.TERMINATION_REASON_REQUIRED)
    return failures


def _raise_unmet(target: LeaseStatus, missing: list, reason: str) -> None:
    messages = [_REQUIREMENT_MESSAGES[item] for item in missing]
    raise LeaseValidationError(
        f"Cannot set lease status to {status_label(target)}: {'; '.join(messages)}",
        reason=reason,
        details={"status": target.value, "missing": [item.value for item in missing]},
    )


def validate_activation(lease: Lease) -> None:
    missing = activation_failures(lease)
    if missing:
        _raise_unmet(LeaseStatus.ACTIVE, missing, "activation_precondition_failed")


def validate_pending_signature(lease: Lease) -> None:
    missing = pending_signature_failures(lease)
    if missing:
        _raise_unmet(LeaseStatus.PENDING_SIGNATURE, missing, "pending_signature_precondition_failed")


def validate_termination(lease: Lease) -> None:
    missing = termination_failures(lease)
    if missing:
        _raise_unmet(LeaseStatus.TERMINATED, missing, "termination_precondition_failed")


def validate_status_invariants(lease: Lease) -> None:
    # Standing invariants for the status the lease is (or is about to be) in.
    if lease.status == LeaseStatus.ACTIVE:
        validate_activation(lease)
    elif lease.status == LeaseStatus.PENDING_SIGNATURE:
        validate_pending_signature(lease)
    elif lease.status == LeaseStatus.TERMINATED:
        validate_termination(lease)


def validate_candidate_transition(current: Lease, candidate: Lease) -> None:
    """Check ``current.status -> candidate.status`` and the target's preconditions.

    ``candidate`` is the lease as it would be stored, so termination fields written in the same
    transition count towards the preconditions.
    """
    validate_transition(current.status, candidate.status)
    if current.status == candidate.status:
        return
    validate_status_invariants(candidate)
