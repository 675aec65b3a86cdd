from __future__ import annotations

from datetime import date

import pytest

from leasekeeper.core.errors import LeaseValidationError
from leasekeeper.domain.lease import ESignature, ESignatureStatus, LeaseStatus, SigningMethod
from leasekeeper.services.leases.state_machine import (
    ALLOWED_TRANSITIONS,
    ActivationRequirement,
    activation_failures,
    can_transition,
    termination_failures,
    validate_activation,
    validate_candidate_transition,
    validate_transition,
)
from leasekeeper.tests.utils.leases import make_active_lease, make_lease, make_signed_lease


def test_transition_table_matches_lifecycle() -> None:
    assert ALLOWED_TRANSITIONS[LeaseStatus.DRAFT] == (
        LeaseStatus.PENDING_SIGNATURE,
        LeaseStatus.ACTIVE,
        LeaseStatus.CANCELLED,
    )
    for status in (LeaseStatus.TERMINATED, LeaseStatus.EXPIRED, LeaseStatus.CANCELLED):
        assert ALLOWED_TRANSITIONS[status] == ()
    assert can_transition(LeaseStatus.ACTIVE, LeaseStatus.ACTIVE)
    assert not can_transition(LeaseStatus.PENDING_SIGNATURE, LeaseStatus.DRAFT)


def test_invalid_transition_message_and_details() -> None:
    with pytest.raises(LeaseValidationError) as exc_info:
        validate_transition(LeaseStatus.PENDING_SIGNATURE, LeaseStatus.TERMINATED)

    assert exc_info.value.message == (
        "Cannot transition from PENDING_SIGNATURE to TERMINATED. Allowed: ACTIVE, CANCELLED"
    )
    assert exc_info.value.details == {
        "from": "pending_signature",
        "to": "terminated",
        "allowed": ["active", "cancelled"],
    }


def test_terminal_state_message() -> None:
    with pytest.raises(LeaseValidationError) as exc_info:
        validate_transition(LeaseStatus.EXPIRED, LeaseStatus.ACTIVE)

    assert exc_info.value.message == "Cannot transition from EXPIRED to ACTIVE. Allowed: none (terminal state)"


def test_electronic_signing_requires_completed_envelope() -> None:
    lease = make_signed_lease(
        signing_method=SigningMethod.ELECTRONIC,
        e_signature=ESignature(provider="docusign", status=ESignatureStatus.SENT),
    )

    assert activation_failures(lease) == [ActivationRequirement.ESIGNATURE_INCOMPLETE]
    with pytest.raises(LeaseValidationError) as exc_info:
        validate_activation(lease)
    assert "Electronic signature must be completed (status: signed) before activating lease" in exc_info.value.message

    signed = lease.model_copy(
        update={"e_signature": ESignature(provider="docusign", status=ESignatureStatus.SIGNED)}
    )
    assert activation_failures(signed) == []


def test_co_tenant_signature_does_not_count_as_tenant() -> None:
    lease = make_signed_lease()
    co_signed = lease.model_copy(
        update={"signatures": [lease.signatures[0].model_copy(update={"role": "co_tenant"})]}
    )

    assert ActivationRequirement.TENANT_SIGNATURE_REQUIRED in activation_failures(co_signed)


def test_termination_failures() -> None:
    lease = make_active_lease()

    assert [item.value for item in termination_failures(lease)] == [
        "termination_date_required",
        "termination_reason_required",
    ]


def test_candidate_transition_counts_fields_written_with_it() -> None:
    current = make_active_lease()
    candidate = current.model_copy(
        update={
            "status": LeaseStatus.TERMINATED,
            "termination_reason": "Relocation",
            "duration": current.duration.model_copy(update={"termination_date": date(2026, 12, 1)}),
        }
    )

    validate_candidate_transition(current, candidate)


def test_pending_signature_requires_approval_and_document() -> None:
    current = make_lease()
    candidate = current.model_copy(update={"status": LeaseStatus.PENDING_SIGNATURE})

    with pytest.raises(LeaseValidationError) as exc_info:
        validate_candidate_transition(current, candidate)

    assert exc_info.value.reason == "pending_signature_precondition_failed"
    assert exc_info.value.details["missing"] == ["approval_required", "document_required"]
