from __future__ import annotations

from leasekeeper.services.audit import sanitize_metadata


def test_audit_redacts_sensitive_keys() -> None:
    # Redact credential and banking fields in lease event metadata.
    payload = {
        "access_token": "secret-access",
        "nested": {"authorization": "Bearer abc", "bank_account_number": "000123"},
        "changed_fields": ["fees.monthly_rent"],
        "items": [{"password": "hunter2", "safe": 1}],
        "summary": "Modified Fees > Monthly Rent",
    }
    sanitized = sanitize_metadata(payload)
    assert sanitized["access_token"] == "[REDACTED]"
    assert sanitized["nested"]["authorization"] == "[REDACTED]"
    assert sanitized["nested"]["bank_account_number"] == "[REDACTED]"
    assert sanitized["items"][0] == {"password": "[REDACTED]", "safe": 1}
    assert sanitized["changed_fields"] == ["fees.monthly_rent"]
    assert sanitized["summary"] == "Modified Fees > Monthly Rent"
