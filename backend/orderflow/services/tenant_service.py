"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Engine operations receive org_id explicitly; these helpers validate ids that
arrive from client input against that org_id. A record from another
organization is reported exactly like a missing one.

SECURITY INVARIANTS:
1. Every engine call carries an explicit org_id
2. Store ids from client input are validated against that org_id
3. Cross-tenant access attempts are logged as security events
"""

from flask import g, has_request_context, request

from ..extensions import db
from ..models import Store, Organization
from .permission_service import log_security_event


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


def require_store_in_org(store_id: int, org_id: int) -> Store:
    """
    Validate that a store belongs to the specified organization.

    Raises TenantAccessError if the store doesn't exist or belongs to a
    different org. Both cases produce the same message.
    """
    store = db.session.get(Store, store_id)

    if not store:
        _log_cross_tenant_attempt(f"Store {store_id} not found", org_id=org_id)
        raise TenantAccessError("Store not found")

    if store.org_id != org_id:
        _log_cross_tenant_attempt(
            f"Store {store_id} belongs to org {store.org_id}, not {org_id}",
            org_id=org_id,
        )
        raise TenantAccessError("Store not found")

    return store


def get_org_stores(org_id: int, active_only: bool = True) -> list[Store]:
    query = db.session.query(Store).filter_by(org_id=org_id)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Store.name).all()


def validate_org_active(org_id: int) -> Organization:
    """
    Validate that an organization exists and is active.

    Raises TenantAccessError otherwise.
    """
    org = db.session.get(Organization, org_id)

    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return org


def _log_cross_tenant_attempt(reason: str, org_id: int | None = None) -> None:
    user_id = None
    resource = action = ip_address = None
    if has_request_context():
        current_user = getattr(g, "current_user", None)
        user_id = current_user.id if current_user is not None else None
        resource = request.path
        action = request.method
        ip_address = request.remote_addr

    log_security_event(
        user_id=user_id,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        org_id=org_id,
    )
