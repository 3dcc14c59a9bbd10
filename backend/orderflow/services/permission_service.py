# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Checking and Security Event Logging

Every engine operation (create_order, approve_order, update_packer_status, ...)
consults authorize() exactly once, through require_capability(). The
operation -> permission mapping lives in OPERATION_PERMISSIONS so call sites
never carry their own permission string lists.

DESIGN PRINCIPLES:
- Fail closed: unknown operations, unknown users and users of another
  organization are denied
- Log denials only: grants are not written to security_events
- Tenant isolation: denial events carry the org_id of the attempted call
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import User, UserRole, Role, RolePermission, Permission, SecurityEvent
from ..permissions import (
    PERMISSION_DEFINITIONS,
    DEFAULT_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
    validate_permission_code,
)
from orderflow.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    def __init__(self, message: str, result: "AuthorizationResult | None" = None):
        super().__init__(message)
        self.result = result


# Operation name -> permission codes; holding any one of them grants the operation.
OPERATION_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "view_orders": ("VIEW_ORDERS",),
    "create_order": ("CREATE_ORDERS",),
    "update_order": ("EDIT_ORDERS",),
    "approve_order": ("APPROVE_ORDERS",),
    "update_order_status": ("EDIT_ORDERS",),
    "update_payment_status": ("EDIT_ORDERS", "MANAGE_CREDIT"),
    "mark_order_prepared": ("PREPARE_ORDERS",),
    "delete_order": ("DELETE_ORDERS",),
    "update_packer_status": ("PREPARE_ORDERS",),
    "update_transporter_details": ("PREPARE_ORDERS", "MANAGE_DELIVERY"),
    "update_cargo_receipt": ("PREPARE_ORDERS", "MANAGE_DELIVERY"),
    "view_inventory": ("VIEW_INVENTORY",),
    "manage_inventory": ("MANAGE_INVENTORY",),
    "view_customers": ("VIEW_CUSTOMERS",),
    "manage_customers": ("MANAGE_CUSTOMERS",),
    "view_customer_accounts": ("VIEW_CUSTOMER_ACCOUNTS", "MANAGE_CREDIT"),
    "manage_credit": ("MANAGE_CREDIT",),
    "replay_intents": ("MANAGE_SYSTEM",),
}


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of a capability check for one engine operation."""
    allowed: bool
    operation: str
    required: tuple[str, ...]
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    org_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event to the audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - TENANT_CONTEXT_MISSING
    - CROSS_TENANT_ACCESS_DENIED
    """
    event = SecurityEvent(
        user_id=user_id,
        org_id=org_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user_id: int) -> set[str]:
    """Union of permission codes over all of the user's roles."""
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return {code for (code,) in rows}


def has_permission(user_id: int, permission_code: str) -> bool:
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")
    return permission_code in get_user_permissions(user_id)


def has_any_permission(user_id: int, permission_codes) -> bool:
    user_permissions = get_user_permissions(user_id)
    return any(code in user_permissions for code in permission_codes)


def authorize(user_id: int | None, operation: str, *, org_id: int) -> AuthorizationResult:
    """
    Decide whether user_id may run operation inside org_id.

    Returns a typed result instead of a bool so callers can report which
    permissions were required and why the check failed.
    """
    required = OPERATION_PERMISSIONS.get(operation)
    if required is None:
        return AuthorizationResult(False, operation, (), f"Unknown operation: {operation}")

    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or user.org_id != org_id:
        return AuthorizationResult(False, operation, required, "User not found in organization")
    if not user.is_active:
        return AuthorizationResult(False, operation, required, "User account is inactive")

    if not has_any_permission(user.id, required):
        return AuthorizationResult(
            False, operation, required, f"Missing permission: {' or '.join(required)}"
        )

    return AuthorizationResult(True, operation, required)


def require_capability(
    *,
    user_id: int | None,
    operation: str,
    org_id: int,
    resource: str | None = None,
    ip_address: str | None = None,
) -> AuthorizationResult:
    """
    Hard gate for an engine operation.

    Raises PermissionDeniedError (after logging a PERMISSION_DENIED event)
    when authorize() refuses; a missing permission is never a silent no-op.
    """
    result = authorize(user_id, operation, org_id=org_id)
    if not result.allowed:
        log_security_event(
            user_id=user_id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=resource or operation,
            action=operation,
            reason=result.reason,
            ip_address=ip_address,
            org_id=org_id,
        )
        raise PermissionDeniedError(f"Permission denied: {operation}", result)
    return result


def get_user_role_names(user_id: int) -> list[str]:
    """Get list of role names for a user."""
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name)
        .all()
    )
    return [name for (name,) in rows]


def initialize_permissions() -> int:
    """
    Create Permission rows for every code in PERMISSION_DEFINITIONS.

    Idempotent: safe to run multiple times.
    """
    created_count = 0

    for code, name, description, category in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(code=code).first()
        if not existing:
            db.session.add(Permission(code=code, name=name, description=description, category=category))
            created_count += 1

    db.session.commit()
    return created_count


def create_default_roles(org_id: int) -> int:
    """Create the standard roles for an organization if they don't exist."""
    created_count = 0
    for name, desc in DEFAULT_ROLES:
        existing = db.session.query(Role).filter_by(org_id=org_id, name=name).first()
        if not existing:
            db.session.add(Role(org_id=org_id, name=name, description=desc))
            created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions(org_id: int) -> int:
    """
    Link the organization's roles to their DEFAULT_ROLE_PERMISSIONS.

    Idempotent: existing links are skipped.
    """
    created_count = 0
    permissions = {p.code: p for p in db.session.query(Permission).all()}

    for role_name, permission_codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(org_id=org_id, name=role_name).first()
        if not role:
            continue

        for permission_code in permission_codes:
            permission = permissions.get(permission_code)
            if not permission:
                continue

            existing = db.session.query(RolePermission).filter_by(
                role_id=role.id, permission_id=permission.id
            ).first()
            if not existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                created_count += 1

    db.session.commit()
    return created_count


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign one of the user's organization roles to the user."""
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    role = db.session.query(Role).filter_by(org_id=user.org_id, name=role_name).first()
    if not role:
        raise ValueError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.commit()
    return user_role
