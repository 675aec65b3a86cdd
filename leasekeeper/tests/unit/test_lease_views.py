from __future__ import annotations

from leasekeeper.domain.lease import PendingChanges
from leasekeeper.domain.principal import Role
from leasekeeper.services.leases.views import (
    can_view_pending_changes,
    changes_summary,
    field_label,
    filter_lease_by_role,
    pending_changes_preview,
)
from leasekeeper.tests.utils.leases import BASE_TIME, OTHER_STAFF_ID, STAFF_ID, make_actor, make_lease


def _lease_with_proposal():
    pending = PendingChanges(
        changes={"fees": {"monthly_rent": "1600.00"}, "duration": {"end_date": "2027-12-31"}},
        proposed_by=STAFF_ID,
        proposed_at=BASE_TIME,
        display_name="Sam Okafor",
    )
    return make_lease(pending_changes=pending)


def test_field_labels_and_summaries() -> None:
    assert field_label("fees.monthly_rent") == "Fees > Monthly Rent"
    assert changes_summary([]) == "No changes"
    assert changes_summary(["internal_notes"]) == "Modified Internal Notes"
    assert changes_summary(["fees.monthly_rent", "type"]) == "Modified Fees > Monthly Rent and Type"
    assert changes_summary(["a", "b", "c"]) == "Modified A, B, and C"


def test_tenant_view_hides_internal_fields() -> None:
    view = filter_lease_by_role(_lease_with_proposal(), make_actor(Role.TENANT))

    for hidden in ("internal_notes", "pending_changes", "approval_details", "created_by", "assigned_users"):
        assert hidden not in view
    assert view["fees"]["monthly_rent"] == "1450.00"


def test_staff_and_management_views() -> None:
    lease = _lease_with_proposal()

    staff_view = filter_lease_by_role(lease, make_actor(Role.STAFF))
    admin_view = filter_lease_by_role(lease, make_actor(Role.ADMIN))

    assert staff_view["internal_notes"] == "Guarantor on file"
    assert "version" not in staff_view
    assert admin_view["version"] == 1
    assert admin_view["pending_changes"]["proposed_by"] == STAFF_ID


def test_pending_preview_visibility() -> None:
    lease = _lease_with_proposal()

    assert can_view_pending_changes(make_actor(Role.MANAGER), lease)
    assert can_view_pending_changes(make_actor(Role.STAFF), lease)
    assert not can_view_pending_changes(make_actor(Role.STAFF, actor_id=OTHER_STAFF_ID), lease)
    assert pending_changes_preview(lease, make_actor(Role.TENANT)) is None

    preview = pending_changes_preview(lease, make_actor(Role.MANAGER))
    assert preview["updated_fields"] == ["fees.monthly_rent", "duration.end_date"]
    assert preview["summary"] == "Modified Fees > Monthly Rent and Duration > End Date"
    assert preview["proposed_at"] == BASE_TIME.isoformat()
    assert preview["display_name"] == "Sam Okafor"
