from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
import logging
from types import MappingProxyType
from typing import Any, Final, Literal

from leasekeeper.domain.principal import EMPLOYEE_ROLES, Actor, Role


logger = logging.getLogger(__name__)


class ResourceType(str, Enum):
    LEASE = "lease"
    PROPERTY = "property"
    USER = "user"
    INVITATION = "invitation"
    VENDOR = "vendor"
    TENANT = "tenant"
    PAYMENT = "payment"
    NOTIFICATION = "notification"
    REPORT = "report"
    CLIENT = "client"
    MAINTENANCE = "maintenance"


class Action(str, Enum):
    READ = "read"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REVOKE = "revoke"
    RESEND = "resend"
    SETTINGS = "settings"


DEFAULT: Final = "default"

AccessRule = Callable[[Actor, Any], bool]
RuleKey = Role | Literal["default"]


def _field(resource: Any, name: str) -> Any:
    # Resources arrive as pydantic models, ORM rows, or plain dicts.
    if isinstance(resource, Mapping):
        return resource.get(name)
    return getattr(resource, name, None)


def _path(resource: Any, dotted: str) -> Any:
    node = resource
    for part in dotted.split("."):
        if node is None:
            return None
        node = _field(node, part)
    return node


def _same_id(value: Any, actor_id: str) -> bool:
    return value is not None and str(value) == actor_id


def _allow(actor: Actor, resource: Any) -> bool:
    return True


def _deny(actor: Actor, resource: Any) -> bool:
    return False


def _field_is_actor(name: str) -> AccessRule:
    # Ownership predicate: resource.<name> equals the caller's id.
    def rule(actor: Actor, resource: Any) -> bool:
        return _same_id(_path(resource, name), actor.id)

    return rule


def _any_field_is_actor(*names: str) -> AccessRule:
    def rule(actor: Actor, resource: Any) -> bool:
        return any(_same_id(_path(resource, name), actor.id) for name in names)

    return rule


def _actor_in(name: str) -> AccessRule:
    def rule(actor: Actor, resource: Any) -> bool:
        members = _field(resource, name) or []
        return actor.id in {str(member) for member in members}

    return rule


def _either(*rules: AccessRule) -> AccessRule:
    def rule(actor: Actor, resource: Any) -> bool:
        return any(candidate(actor, resource) for candidate in rules)

    return rule


def _same_client(actor: Actor, resource: Any) -> bool:
    return str(_field(resource, "tenant_id")) == actor.tenant_id


def _not_vendor(actor: Actor, resource: Any) -> bool:
    return actor.role is not Role.VENDOR


def _employee(actor: Actor, resource: Any) -> bool:
    return actor.role in EMPLOYEE_ROLES


@dataclass(frozen=True)
class ResourceAccessStrategy:
    """Per-resource table of ``action -> (role | default) -> predicate``.

    Resolution is exact role first, then ``default``, then deny. Unknown actions deny.
    """

    resource_type: ResourceType
    rules: Mapping[Action, Mapping[RuleKey, AccessRule]]

    def __post_init__(self) -> None:
        frozen: dict[Action, Mapping[RuleKey, AccessRule]] = {}
        for action, by_role in self.rules.items():
            if not isinstance(action, Action):
                raise ValueError(f"{self.resource_type.value}: unknown action {action!r}")
            for key in by_role:
                if key != DEFAULT and not isinstance(key, Role):
                    raise ValueError(
                        f"{self.resource_type.value}.{action.value}: rule key {key!r} is not a role"
                    )
            frozen[action] = MappingProxyType(dict(by_role))
        object.__setattr__(self, "rules", MappingProxyType(frozen))

    def rule_for(self, role: Role, action: Action | str) -> AccessRule | None:
        try:
            resolved = Action(action)
        except ValueError:
            return None
        by_role = self.rules.get(resolved)
        if not by_role:
            return None
        return by_role.get(role) or by_role.get(DEFAULT)

    def can_access(self, actor: Actor, action: Action | str, resource: Any) -> bool:
        rule = self.rule_for(actor.role, action)
        if rule is None:
            return False
        try:
            return bool(rule(actor, resource))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "access_rule_failed resource=%s action=%s role=%s",
                self.resource_type.value,
                action,
                actor.role.value,
                exc_info=exc,
            )
            return False


class AccessStrategyRegistry:
    """Immutable ``resource type -> strategy`` table injected into services."""

    def __init__(self, strategies: Iterable[ResourceAccessStrategy]) -> None:
        table: dict[ResourceType, ResourceAccessStrategy] = {}
        for strategy in strategies:
            if strategy.resource_type in table:
                raise ValueError(f"Duplicate access strategy for {strategy.resource_type.value}")
            table[strategy.resource_type] = strategy
        self._strategies: Mapping[ResourceType, ResourceAccessStrategy] = MappingProxyType(table)

    @property
    def resource_types(self) -> frozenset[ResourceType]:
        return frozenset(self._strategies)

    def strategy_for(self, resource_type: ResourceType | str) -> ResourceAccessStrategy | None:
        try:
            return self._strategies.get(ResourceType(resource_type))
        except ValueError:
            return None

    def can_access(
        self,
        actor: Actor,
        resource_type: ResourceType | str,
        action: Action | str,
        resource: Any,
    ) -> bool:
        # Unknown resource types and actions deny without revealing whether they exist.
        strategy = self.strategy_for(resource_type)
        if strategy is None:
            logger.debug("access_strategy_missing resource=%s", resource_type)
            return False
        # Client isolation precedes every role rule.
        if resource is not None and _field(resource, "tenant_id") is not None:
            if not _same_client(actor, resource):
                return False
        return strategy.can_access(actor, action, resource)


def _lease_strategy() -> ResourceAccessStrategy:
    manages_lease = _field_is_actor("managed_by")
    assigned_to_lease = _either(_actor_in("assigned_users"), _field_is_actor("created_by"))
    return ResourceAccessStrategy(
        ResourceType.LEASE,
        {
            Action.READ: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.STAFF: _either(assigned_to_lease, _field_is_actor("managed_by")),
                # Tenants read only the lease they hold.
                Role.TENANT: _field_is_actor("tenant_user_id"),
                DEFAULT: _deny,
            },
            Action.LIST: {
                Role.VENDOR: _deny,
                DEFAULT: _allow,
            },
            Action.CREATE: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                DEFAULT: _deny,
            },
            Action.UPDATE: {
                Role.ADMIN: _allow,
                Role.MANAGER: manages_lease,
                Role.STAFF: assigned_to_lease,
                DEFAULT: _deny,
            },
            Action.APPROVE: {
                Role.ADMIN: _allow,
                Role.MANAGER: manages_lease,
                DEFAULT: _deny,
            },
            Action.DELETE: {
                Role.ADMIN: _allow,
                DEFAULT: _deny,
            },
        },
    )


def _property_strategy() -> ResourceAccessStrategy:
    return ResourceAccessStrategy(
        ResourceType.PROPERTY,
        {
            # Anyone in the same client can read and list properties.
            Action.READ: {DEFAULT: _same_client},
            Action.LIST: {DEFAULT: _allow},
            Action.CREATE: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
            Action.UPDATE: {
                Role.ADMIN: _allow,
                Role.MANAGER: _any_field_is_actor("created_by", "managed_by"),
                Role.STAFF: _field_is_actor("managed_by"),
                DEFAULT: _deny,
            },
            Action.DELETE: {
                Role.ADMIN: _allow,
                Role.MANAGER: _field_is_actor("created_by"),
                DEFAULT: _deny,
            },
        },
    )


def _user_strategy() -> ResourceAccessStrategy:
    is_self = _field_is_actor("id")
    manages_user = _either(is_self, _field_is_actor("reports_to"))

    def vendor_colleague(actor: Actor, target: Any) -> bool:
        if is_self(actor, target):
            return True
        vendor_id = _field(target, "linked_vendor_id")
        return vendor_id is not None and actor.linked_vendor_id is not None and str(vendor_id) == actor.linked_vendor_id

    return ResourceAccessStrategy(
        ResourceType.USER,
        {
            Action.READ: {
                Role.ADMIN: _allow,
                Role.MANAGER: manages_user,
                Role.VENDOR: vendor_colleague,
                Role.TENANT: is_self,
                Role.STAFF: _allow,
                DEFAULT: is_self,
            },
            Action.UPDATE: {Role.ADMIN: _allow, Role.MANAGER: manages_user, DEFAULT: is_self},
            Action.DELETE: {Role.ADMIN: _allow, DEFAULT: _deny},
            Action.CREATE: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
            Action.LIST: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.STAFF: _allow,
                Role.VENDOR: _allow,
                Role.TENANT: _deny,
                DEFAULT: _deny,
            },
        },
    )


def _invitation_strategy() -> ResourceAccessStrategy:
    def addressed_to_actor(actor: Actor, invitation: Any) -> bool:
        email = _field(invitation, "email")
        return bool(email) and actor.email is not None and str(email).lower() == actor.email.lower()

    created_invitation = _field_is_actor("created_by")
    return ResourceAccessStrategy(
        ResourceType.INVITATION,
        {
            Action.CREATE: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
            Action.READ: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: addressed_to_actor},
            Action.REVOKE: {Role.ADMIN: _allow, Role.MANAGER: created_invitation, DEFAULT: _deny},
            Action.RESEND: {Role.ADMIN: _allow, Role.MANAGER: created_invitation, DEFAULT: _deny},
        },
    )


def _vendor_strategy() -> ResourceAccessStrategy:
    return ResourceAccessStrategy(
        ResourceType.VENDOR,
        {
            Action.READ: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _not_vendor},
            Action.UPDATE: {Role.ADMIN: _allow, DEFAULT: _deny},
            Action.LIST: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _not_vendor},
        },
    )


def _tenant_strategy() -> ResourceAccessStrategy:
    # Leaseholder profiles: employees manage them, a tenant sees and edits only their own.
    is_self = _field_is_actor("user_id")
    return ResourceAccessStrategy(
        ResourceType.TENANT,
        {
            Action.READ: {Role.TENANT: is_self, Role.VENDOR: _deny, DEFAULT: _employee},
            Action.LIST: {Role.TENANT: _deny, Role.VENDOR: _deny, DEFAULT: _employee},
            Action.CREATE: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
            Action.UPDATE: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.TENANT: is_self,
                DEFAULT: _deny,
            },
            Action.DELETE: {Role.ADMIN: _allow, DEFAULT: _deny},
        },
    )


def _payment_strategy() -> ResourceAccessStrategy:
    return ResourceAccessStrategy(
        ResourceType.PAYMENT,
        {
            Action.READ: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.TENANT: _field_is_actor("tenant_user_id"),
                DEFAULT: _deny,
            },
            Action.CREATE: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.TENANT: _allow,
                DEFAULT: _deny,
            },
            Action.UPDATE: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
            Action.DELETE: {Role.ADMIN: _allow, DEFAULT: _deny},
        },
    )


def _notification_strategy() -> ResourceAccessStrategy:
    is_recipient = _field_is_actor("recipient_id")
    return ResourceAccessStrategy(
        ResourceType.NOTIFICATION,
        {
            Action.READ: {Role.ADMIN: _either(is_recipient, _same_client), DEFAULT: is_recipient},
            Action.LIST: {DEFAULT: _allow},
            Action.CREATE: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
            # Marking as read is an update only the recipient may perform.
            Action.UPDATE: {DEFAULT: is_recipient},
            Action.DELETE: {Role.ADMIN: _allow, DEFAULT: is_recipient},
        },
    )


def _report_strategy() -> ResourceAccessStrategy:
    return ResourceAccessStrategy(
        ResourceType.REPORT,
        {
            Action.READ: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.STAFF: _field_is_actor("created_by"),
                DEFAULT: _deny,
            },
            Action.LIST: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
            Action.CREATE: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
            Action.DELETE: {Role.ADMIN: _allow, DEFAULT: _deny},
        },
    )


def _client_strategy() -> ResourceAccessStrategy:
    def own_client(actor: Actor, client: Any) -> bool:
        client_id = _field(client, "id")
        return client_id is not None and str(client_id) == actor.tenant_id

    return ResourceAccessStrategy(
        ResourceType.CLIENT,
        {
            Action.READ: {DEFAULT: own_client},
            Action.UPDATE: {Role.ADMIN: own_client, DEFAULT: _deny},
            Action.SETTINGS: {Role.ADMIN: own_client, Role.MANAGER: own_client, DEFAULT: _deny},
        },
    )


def _maintenance_strategy() -> ResourceAccessStrategy:
    assigned = _field_is_actor("assigned_to")
    return ResourceAccessStrategy(
        ResourceType.MAINTENANCE,
        {
            Action.READ: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.VENDOR: assigned,
                Role.TENANT: _field_is_actor("created_by"),
                DEFAULT: _deny,
            },
            Action.CREATE: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.TENANT: _allow,
                DEFAULT: _deny,
            },
            Action.UPDATE: {
                Role.ADMIN: _allow,
                Role.MANAGER: _allow,
                Role.VENDOR: assigned,
                DEFAULT: _deny,
            },
            Action.DELETE: {Role.ADMIN: _allow, Role.MANAGER: _allow, DEFAULT: _deny},
        },
    )


def default_strategies() -> list[ResourceAccessStrategy]:
    return [
        _lease_strategy(),
        _property_strategy(),
        _user_strategy(),
        _invitation_strategy(),
        _vendor_strategy(),
        _tenant_strategy(),
        _payment_strategy(),
        _notification_strategy(),
        _report_strategy(),
        _client_strategy(),
        _maintenance_strategy(),
    ]


def build_default_registry() -> AccessStrategyRegistry:
    # A fresh registry per call; tests build their own with fixture rules.
    return AccessStrategyRegistry(default_strategies())
