"""Tenant and role authority.

Every capability check in the service goes through :func:`authorize`, which
consults the single :data:`PERMISSIONS` matrix. Decisions are logged on the
``authz`` logger so that audit queries can reconstruct who tried what on
which tenant; nothing is mutated here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .domain import STAFF_ROLES, Role, UserStatus
from .errors import AccessDenied

logger = logging.getLogger("authz")


@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from a credential."""

    user_id: int
    role: Role
    tenant_id: int | None
    status: UserStatus = UserStatus.APPROVED
    name: str | None = None
    email: str | None = None

    @property
    def is_student(self) -> bool:
        return self.role is Role.STUDENT

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class Action(str, Enum):
    VIEW_MENU = "VIEW_MENU"
    MANAGE_MENU = "MANAGE_MENU"
    PLACE_ORDER = "PLACE_ORDER"
    VIEW_ORDER = "VIEW_ORDER"
    TRANSITION_ORDER = "TRANSITION_ORDER"
    SERVE_ORDER = "SERVE_ORDER"
    VIEW_KITCHEN = "VIEW_KITCHEN"
    MANAGE_USERS = "MANAGE_USERS"
    FORCE_LOGOUT = "FORCE_LOGOUT"


_ALL = frozenset(Role)

PERMISSIONS: dict[Action, frozenset[Role]] = {
    Action.VIEW_MENU: _ALL,
    Action.MANAGE_MENU: frozenset({Role.ADMIN, Role.MANAGER}),
    Action.PLACE_ORDER: frozenset({Role.STUDENT}),
    Action.VIEW_ORDER: _ALL,
    Action.TRANSITION_ORDER: frozenset({Role.ADMIN, Role.MANAGER}),
    Action.SERVE_ORDER: frozenset({Role.CATERER}),
    Action.VIEW_KITCHEN: STAFF_ROLES,
    Action.MANAGE_USERS: frozenset({Role.ADMIN, Role.MANAGER}),
    Action.FORCE_LOGOUT: frozenset({Role.ADMIN}),
}


def _deny(principal: Principal, action: Action, reason: str, **ctx) -> AccessDenied:
    logger.warning(
        "deny %s user=%s role=%s tenant=%s reason=%s ctx=%s",
        action.value,
        principal.user_id,
        principal.role.value,
        principal.tenant_id,
        reason,
        ctx,
        extra={"user": principal.user_id, "role": principal.role.value, "action": action.value},
    )
    return AccessDenied(
        f"{principal.role.value.lower()} may not {action.value.lower().replace('_', ' ')}",
        {"action": action.value, "reason": reason},
    )


def is_allowed(principal: Principal, action: Action) -> bool:
    """Return ``True`` when ``principal``'s role grants ``action`` at all."""

    return (
        principal.status is UserStatus.APPROVED
        and principal.role in PERMISSIONS[action]
    )


def authorize(
    principal: Principal,
    action: Action,
    resource_tenant_id: int | None = None,
    resource_owner_id: int | None = None,
    resource_id: object = None,
) -> None:
    """Raise :class:`AccessDenied` unless ``principal`` may perform ``action``.

    ADMIN acts across tenants. Every other role must belong to the resource's
    tenant; a resource without a tenant is out of their reach. A STUDENT may
    only touch resources it owns.
    """

    ctx = {
        "resource_tenant": resource_tenant_id,
        "resource_owner": resource_owner_id,
        "resource": resource_id,
    }
    if principal.status is not UserStatus.APPROVED:
        raise _deny(principal, action, "inactive", **ctx)
    if principal.role not in PERMISSIONS[action]:
        raise _deny(principal, action, "role", **ctx)
    if principal.role is not Role.ADMIN:
        if resource_tenant_id is None or principal.tenant_id != resource_tenant_id:
            raise _deny(principal, action, "tenant", **ctx)
    if principal.is_student and resource_owner_id is not None:
        if resource_owner_id != principal.user_id:
            raise _deny(principal, action, "owner", **ctx)
    logger.info(
        "allow %s user=%s role=%s tenant=%s ctx=%s",
        action.value,
        principal.user_id,
        principal.role.value,
        principal.tenant_id,
        ctx,
        extra={"user": principal.user_id, "role": principal.role.value, "action": action.value},
    )


def tenant_scope(principal: Principal, requested: int | None = None) -> int | None:
    """Return the tenant a listing should be restricted to.

    Non-admins are always pinned to their own tenant; an ADMIN may pass
    ``requested`` or ``None`` for every tenant.
    """

    if principal.role is Role.ADMIN:
        return requested
    return principal.tenant_id


__all__ = ["Action", "PERMISSIONS", "Principal", "authorize", "is_allowed", "tenant_scope"]
