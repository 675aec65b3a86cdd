from __future__ import annotations

import pytest

from leasekeeper.core.errors import LeaseValidationError
from leasekeeper.domain.lease import LeaseStatus
from leasekeeper.services.leases.governance import (
    ChangeImpact,
    blocked_paths,
    classify,
    ensure_not_blocked,
    ensure_not_reserved,
    ensure_signatures_intact,
    path_under,
    reserved_paths,
)


def test_path_under_matches_root_and_children_only() -> None:
    assert path_under("fees", "fees")
    assert path_under("fees.monthly_rent", "fees")
    assert not path_under("fees_note", "fees")


def test_active_lease_blocks_nested_contract_paths() -> None:
    paths = ["fees.monthly_rent", "property.unit_id", "internal_notes", "type"]

    assert blocked_paths(LeaseStatus.ACTIVE, paths) == ["fees.monthly_rent", "property.unit_id", "type"]
    assert blocked_paths(LeaseStatus.DRAFT, paths) == []
    assert classify(LeaseStatus.ACTIVE, paths) == ChangeImpact.BLOCKED


@pytest.mark.parametrize(
    ("status", "paths", "expected"),
    [
        (LeaseStatus.DRAFT, ["fees.monthly_rent"], ChangeImpact.HIGH_IMPACT),
        (LeaseStatus.PENDING_SIGNATURE, ["duration.end_date"], ChangeImpact.HIGH_IMPACT),
        (LeaseStatus.DRAFT, ["internal_notes", "pet_policy.allowed"], ChangeImpact.LOW_IMPACT),
        (LeaseStatus.ACTIVE, ["renewal_options.auto_renew"], ChangeImpact.LOW_IMPACT),
        # Closed leases never route to approval.
        (LeaseStatus.TERMINATED, ["fees.monthly_rent"], ChangeImpact.LOW_IMPACT),
    ],
)
def test_classify_change_sets(status: LeaseStatus, paths: list[str], expected: ChangeImpact) -> None:
    assert classify(status, paths) == expected


def test_ensure_not_blocked_names_fields() -> None:
    with pytest.raises(LeaseValidationError) as exc_info:
        ensure_not_blocked(LeaseStatus.ACTIVE, ["duration.start_date", "tenant_user_id"])

    assert exc_info.value.reason == "immutable_fields"
    assert exc_info.value.details["fields"] == ["duration.start_date", "tenant_user_id"]
    assert exc_info.value.message.startswith(
        "The following fields cannot be modified on an ACTIVE lease: duration.start_date, tenant_user_id"
    )
    ensure_not_blocked(LeaseStatus.DRAFT, ["duration.start_date"])


def test_ensure_not_reserved_rejects_workflow_fields() -> None:
    with pytest.raises(LeaseValidationError) as exc_info:
        ensure_not_reserved(["approval_status", "internal_notes", "pending_changes.changes"])

    assert exc_info.value.reason == "reserved_fields"
    assert exc_info.value.details["fields"] == ["approval_status", "pending_changes.changes"]
    ensure_not_reserved(["internal_notes"])


def test_signature_evidence_is_reserved_for_everyone() -> None:
    paths = ["signatures", "signed_date", "signing_method", "e_signature.status", "documents", "internal_notes"]
    expected = ["signatures", "signed_date", "signing_method", "e_signature.status", "documents"]

    assert reserved_paths(paths) == expected
    assert reserved_paths(paths, management=True) == expected


def test_ownership_fields_are_reserved_unless_management() -> None:
    paths = ["managed_by", "assigned_users", "internal_notes"]

    assert reserved_paths(paths) == ["managed_by", "assigned_users"]
    assert reserved_paths(paths, management=True) == []
    ensure_not_reserved(paths, management=True)


def test_pending_signature_rejects_signed_terms() -> None:
    with pytest.raises(LeaseValidationError) as exc_info:
        ensure_signatures_intact(LeaseStatus.PENDING_SIGNATURE, ["fees.monthly_rent", "internal_notes", "type"])

    assert exc_info.value.reason == "signature_invalidating_fields"
    assert exc_info.value.details["fields"] == ["fees.monthly_rent", "type"]
    ensure_signatures_intact(LeaseStatus.DRAFT, ["fees.monthly_rent"])
    ensure_signatures_intact(LeaseStatus.PENDING_SIGNATURE, ["internal_notes"])
