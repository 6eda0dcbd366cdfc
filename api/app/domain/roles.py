"""Principal roles and account statuses."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Roles a principal can hold; capabilities derive from the role alone."""

    STUDENT = "STUDENT"
    CATERER = "CATERER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class UserStatus(str, Enum):
    """Account lifecycle; only ``APPROVED`` principals may act."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


STAFF_ROLES: frozenset[Role] = frozenset({Role.CATERER, Role.MANAGER, Role.ADMIN})
