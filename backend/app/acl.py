"""Role based access control.

Each operation exposed by the API is mapped to the set of roles that may
perform it.  Keeping the table in one place makes it easy to audit and
update the security model.  ``is_allowed`` is a pure function with no side
effects; routes reach it through ``app.auth.require_role``.
"""

from enum import Enum

from app.models import UserRole

ROLE_PARENT = UserRole.parent.value
ROLE_VOLUNTEER = UserRole.volunteer.value
ROLE_VENDOR = UserRole.vendor.value
ROLE_ADMIN = UserRole.admin.value

STAFF_ROLES = (ROLE_VOLUNTEER, ROLE_ADMIN)

OP_CREATE_CHILD = "create_child"
OP_VIEW_OWN_CHILDREN = "view_own_children"
OP_CHECKIN = "checkin"
OP_WITHDRAW = "withdraw"
OP_DEPOSIT = "deposit"
OP_TOKEN_DEPOSIT = "token_deposit"
OP_VENDOR_RETURN = "vendor_return"
OP_VIEW_TURNINS = "view_turnins"
OP_LOOKUP_PARENTS = "lookup_parents"
OP_CREATE_QR_CODES = "create_qr_codes"
OP_LIST_QR_CODES = "list_qr_codes"
OP_PRINT_QR_CODES = "print_qr_codes"
OP_ASSIGN_QR_CODE = "assign_qr_code"
OP_REPORTS = "reports"
OP_MANAGE_USERS = "manage_users"

OPERATION_ROLES = {
    OP_CREATE_CHILD: {ROLE_PARENT, ROLE_VOLUNTEER, ROLE_ADMIN},
    OP_VIEW_OWN_CHILDREN: {ROLE_PARENT},
    OP_CHECKIN: set(STAFF_ROLES),
    OP_WITHDRAW: set(STAFF_ROLES),
    OP_DEPOSIT: set(STAFF_ROLES),
    OP_TOKEN_DEPOSIT: set(STAFF_ROLES),
    OP_VENDOR_RETURN: set(STAFF_ROLES),
    OP_VIEW_TURNINS: {ROLE_VENDOR, ROLE_ADMIN},
    OP_LOOKUP_PARENTS: set(STAFF_ROLES),
    OP_CREATE_QR_CODES: set(STAFF_ROLES),
    OP_LIST_QR_CODES: set(STAFF_ROLES),
    OP_PRINT_QR_CODES: set(STAFF_ROLES),
    OP_ASSIGN_QR_CODE: set(STAFF_ROLES),
    OP_REPORTS: {ROLE_ADMIN},
    OP_MANAGE_USERS: {ROLE_ADMIN},
}


def is_allowed(role: str | None, required_roles) -> bool:
    return role is not None and role in set(required_roles)


def roles_for(operation: str) -> set[str]:
    return OPERATION_ROLES.get(operation, set())


class ChildCreation(Enum):
    """How a caller may attach a new child to a family."""

    SELF = "self"  # parent adds their own child, parent_id is ignored
    ON_BEHALF = "on_behalf"  # staff must name the parent


def child_creation_capability(role: str) -> ChildCreation | None:
    if role == ROLE_PARENT:
        return ChildCreation.SELF
    if role in STAFF_ROLES:
        return ChildCreation.ON_BEHALF
    return None
