import logging

import pytest

from api.app.authz import PERMISSIONS, Action, Principal, authorize, is_allowed, tenant_scope
from api.app.domain import Role, UserStatus
from api.app.errors import AccessDenied


def _p(role: Role, tenant: int | None = 1, user_id: int = 10, status=UserStatus.APPROVED):
    return Principal(user_id=user_id, role=role, tenant_id=tenant, status=status)


@pytest.mark.parametrize(
    "action,roles",
    [
        (Action.VIEW_MENU, set(Role)),
        (Action.MANAGE_MENU, {Role.ADMIN, Role.MANAGER}),
        (Action.PLACE_ORDER, {Role.STUDENT}),
        (Action.TRANSITION_ORDER, {Role.ADMIN, Role.MANAGER}),
        (Action.SERVE_ORDER, {Role.CATERER}),
        (Action.VIEW_KITCHEN, {Role.CATERER, Role.MANAGER, Role.ADMIN}),
        (Action.MANAGE_USERS, {Role.ADMIN, Role.MANAGER}),
        (Action.FORCE_LOGOUT, {Role.ADMIN}),
    ],
)
def test_permission_matrix(action, roles):
    assert set(PERMISSIONS[action]) == roles
    for role in Role:
        assert is_allowed(_p(role), action) is (role in roles)


def test_every_action_has_an_entry():
    assert set(PERMISSIONS) == set(Action)


def test_admin_crosses_tenants():
    authorize(_p(Role.ADMIN, tenant=None), Action.TRANSITION_ORDER, resource_tenant_id=2)


@pytest.mark.parametrize("role", [Role.MANAGER, Role.CATERER])
def test_staff_limited_to_own_tenant(role):
    action = Action.VIEW_KITCHEN
    authorize(_p(role, tenant=1), action, resource_tenant_id=1)
    with pytest.raises(AccessDenied) as exc:
        authorize(_p(role, tenant=1), action, resource_tenant_id=2)
    assert exc.value.details["reason"] == "tenant"


def test_staff_flag():
    staff = {role for role in Role if _p(role).is_staff}
    assert staff == {Role.CATERER, Role.MANAGER, Role.ADMIN}
    assert PERMISSIONS[Action.VIEW_KITCHEN] == staff


@pytest.mark.parametrize("role", [Role.MANAGER, Role.CATERER, Role.STUDENT])
def test_untenanted_resources_are_admin_only(role):
    with pytest.raises(AccessDenied) as exc:
        authorize(_p(role, tenant=1), Action.VIEW_ORDER, resource_tenant_id=None)
    assert exc.value.details["reason"] == "tenant"
    authorize(_p(Role.ADMIN, tenant=None), Action.VIEW_ORDER, resource_tenant_id=None)


def test_student_only_reads_own_resources():
    student = _p(Role.STUDENT, user_id=7)
    authorize(student, Action.VIEW_ORDER, resource_tenant_id=1, resource_owner_id=7)
    with pytest.raises(AccessDenied) as exc:
        authorize(student, Action.VIEW_ORDER, resource_tenant_id=1, resource_owner_id=8)
    assert exc.value.details["reason"] == "owner"


@pytest.mark.parametrize("status", [UserStatus.PENDING, UserStatus.REJECTED, UserStatus.SUSPENDED])
def test_unapproved_principals_are_denied(status):
    with pytest.raises(AccessDenied) as exc:
        authorize(_p(Role.ADMIN, status=status), Action.VIEW_MENU)
    assert exc.value.details["reason"] == "inactive"


def test_wrong_role_is_denied():
    with pytest.raises(AccessDenied) as exc:
        authorize(_p(Role.MANAGER), Action.SERVE_ORDER, resource_tenant_id=1)
    assert exc.value.details["reason"] == "role"


def test_decisions_are_logged(caplog):
    caplog.set_level(logging.INFO, logger="authz")
    authorize(_p(Role.CATERER), Action.SERVE_ORDER, resource_tenant_id=1, resource_id=5)
    with pytest.raises(AccessDenied):
        authorize(_p(Role.CATERER), Action.SERVE_ORDER, resource_tenant_id=2, resource_id=6)
    messages = [r.getMessage() for r in caplog.records if r.name == "authz"]
    assert messages[0].startswith("allow SERVE_ORDER")
    assert messages[1].startswith("deny SERVE_ORDER")


def test_tenant_scope():
    assert tenant_scope(_p(Role.MANAGER, tenant=3), 9) == 3
    assert tenant_scope(_p(Role.ADMIN, tenant=None), 9) == 9
    assert tenant_scope(_p(Role.ADMIN, tenant=None)) is None
