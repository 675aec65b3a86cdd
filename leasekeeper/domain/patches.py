from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from leasekeeper.core.errors import LeaseValidationError
from leasekeeper.domain.lease import Lease, LeaseStatus


# Reference fields that must never be stored as empty strings.
_REFERENCE_FIELDS = frozenset({"managed_by", "updated_by"})


@dataclass(frozen=True)
class LeasePatch:
    # Storage-agnostic single write: dotted sets, dotted unsets, and list appends.
    set_fields: dict[str, Any] = field(default_factory=dict)
    unset_fields: tuple[str, ...] = ()
    push: dict[str, list[Any]] = field(default_factory=dict)
    # Write only if the stored envelope is still the one that was read.
    expect_pending_at: datetime | None = None
    # Write only if no envelope has appeared since the read.
    expect_no_pending: bool = False
    # Write only if the stored status is still the one that was read.
    expect_status: LeaseStatus | None = None

    @property
    def changed_paths(self) -> list[str]:
        return sorted({*self.set_fields, *self.unset_fields})

    @property
    def is_guarded(self) -> bool:
        return self.expect_pending_at is not None or self.expect_no_pending or self.expect_status is not None

    def merged(self, other: "LeasePatch") -> "LeasePatch":
        push = {key: list(values) for key, values in self.push.items()}
        for key, values in other.push.items():
            push.setdefault(key, []).extend(values)
        return LeasePatch(
            set_fields={**self.set_fields, **other.set_fields},
            unset_fields=tuple(dict.fromkeys((*self.unset_fields, *other.unset_fields))),
            push=push,
            expect_pending_at=other.expect_pending_at or self.expect_pending_at,
            expect_no_pending=self.expect_no_pending or other.expect_no_pending,
            expect_status=other.expect_status or self.expect_status,
        )


def flatten_changes(changes: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    # Nested objects become dotted paths so partial updates never overwrite siblings.
    flat: dict[str, Any] = {}
    for key, value in changes.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json", exclude_none=True)
        if isinstance(value, Mapping) and value:
            flat.update(flatten_changes(value, path))
        else:
            flat[path] = value
    return flat


def changed_paths(changes: Mapping[str, Any]) -> list[str]:
    return list(flatten_changes(changes))


def _is_reference_path(path: str) -> bool:
    leaf = path.rsplit(".", 1)[-1]
    return leaf == "id" or leaf.endswith("_id") or leaf in _REFERENCE_FIELDS


def sanitize_changes(changes: Mapping[str, Any]) -> LeasePatch:
    """Turn a raw change set into a patch.

    Blank reference fields (``property.unit_id: ""``) become unsets rather than empty strings,
    so a cleared unit never persists as a dangling reference.
    """
    set_fields: dict[str, Any] = {}
    unset_fields: list[str] = []
    for path, value in flatten_changes(changes).items():
        if _is_reference_path(path) and (value is None or (isinstance(value, str) and not value.strip())):
            unset_fields.append(path)
        else:
            set_fields[path] = value
    return LeasePatch(set_fields=set_fields, unset_fields=tuple(unset_fields))


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    return value


def _set_path(document: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    node = document
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = _jsonable(value)


def _unset_path(document: dict[str, Any], path: str) -> None:
    parts = path.split(".")
    node: Any = document
    for part in parts[:-1]:
        if not isinstance(node, dict) or part not in node:
            return
        node = node[part]
    if isinstance(node, dict):
        node.pop(parts[-1], None)


def apply_patch_to_document(document: dict[str, Any], patch: LeasePatch) -> dict[str, Any]:
    # Mutates and returns the document; callers pass a fresh copy.
    for path, value in patch.set_fields.items():
        _set_path(document, path, value)
    for path in patch.unset_fields:
        _unset_path(document, path)
    for path, entries in patch.push.items():
        existing = document.get(path)
        items = list(existing) if isinstance(existing, list) else []
        items.extend(_jsonable(entry) for entry in entries)
        document[path] = items
    return document


def preconditions_hold(lease: Lease, patch: LeasePatch) -> bool:
    # Compare-and-set checks shared by every repository implementation.
    if patch.expect_status is not None and lease.status != patch.expect_status:
        return False
    if patch.expect_no_pending and lease.pending_changes is not None:
        return False
    if patch.expect_pending_at is not None:
        pending = lease.pending_changes
        if pending is None or pending.proposed_at != patch.expect_pending_at:
            return False
    return True


def apply_patch(lease: Lease, patch: LeasePatch) -> Lease:
    # Build the post-write lease in memory; invalid values fail here, before any write.
    document = apply_patch_to_document(lease.to_document(), patch)
    try:
        return Lease.model_validate(document)
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
        raise LeaseValidationError(
            f"Invalid values for lease fields: {', '.join(fields)}",
            reason="invalid_field_value",
            details={"fields": fields},
        ) from exc
