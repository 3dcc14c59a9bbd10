# Overview: Flask CLI command groups for bootstrap, token issue, and ledger maintenance.

# backend/orderflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name"] [--org-code CODE] [--no-users]
#   Idempotent bootstrap: organization, main store, permissions, roles, default users.
#
# Users and tokens:
# - python -m flask users create --org-id 1 --username alice --email alice@example.com --role packer
# - python -m flask tokens issue --username admin [--org-id 1] [--ttl-hours 24]
#   Issue a bearer token for API calls (printed once, only the hash is stored).
# - python -m flask tokens revoke <token> [--reason "..."]
#
# Ledger maintenance:
# - python -m flask ledger failed [--org-id 1]
#   List FAILED stock/credit side effects.
# - python -m flask ledger replay [--org-id 1]
#   Re-apply FAILED side effects; effects that no longer apply are marked SUPERSEDED.
# - python -m flask stock check [--org-id 1]
#   Verify current >= 0, available >= 0 and available <= current on every stock row.

import sys
from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Store, User
from .permissions import DEFAULT_ROLES
from .services import (
    catalog_service,
    intent_service,
    permission_service,
    session_service,
    stock_service,
    tenant_service,
)


DEFAULT_USERS = [
    ("admin", "admin@orderflow.local", "admin"),
    ("sales", "sales@orderflow.local", "sales_rep"),
    ("packer", "packer@orderflow.local", "packer"),
    ("accountant", "accountant@orderflow.local", "accountant"),
]

ROLE_NAMES = [name for name, _ in DEFAULT_ROLES]


def _resolve_org(org_id):
    if org_id is not None:
        return db.session.get(Organization, org_id)
    return db.session.query(Organization).order_by(Organization.id).first()


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--users/--no-users', 'with_users', default=True, help='Create default users')
@with_appcontext
def init_system(org_name, org_code, with_users):
    """
    Initialize an organization: main store, permission catalogue, default
    roles with their permissions, and (optionally) one user per common role.
    """
    click.echo("START Initializing OrderFlow...")

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    store = db.session.query(Store).filter_by(org_id=org.id).order_by(Store.id).first()
    if not store:
        store = catalog_service.create_store(org_id=org.id, name="Main Store", code="MAIN")
        db.session.commit()
        click.echo(f"PASS Created store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    perm_count = permission_service.initialize_permissions()
    role_count = permission_service.create_default_roles(org.id)
    assignment_count = permission_service.assign_default_role_permissions(org.id)
    click.echo(
        f"PASS Created {perm_count} permissions, {role_count} roles, {assignment_count} role assignments"
    )

    if with_users:
        for username, email, role_name in DEFAULT_USERS:
            existing = db.session.query(User).filter_by(org_id=org.id, username=username).first()
            if existing:
                click.echo(f"WARN  User '{username}' already exists in org, skipping...")
                continue
            user = User(org_id=org.id, username=username, email=email, store_id=store.id)
            db.session.add(user)
            db.session.commit()
            permission_service.assign_role(user.id, role_name)
            click.echo(f"PASS Created user: {username} with role '{role_name}'")

    click.echo("DONE OrderFlow initialized. Issue a token with: flask tokens issue --username admin")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, help='Organization ID (first organization if omitted)')
@click.option('--username', required=True)
@click.option('--email', required=True)
@click.option('--display-name', default=None)
@click.option('--store-id', type=int, default=None)
@click.option('--role', type=click.Choice(ROLE_NAMES), required=True)
@with_appcontext
def create_user_cli(org_id, username, email, display_name, store_id, role):
    org = _resolve_org(org_id)
    if not org:
        click.echo("FAIL No organization found. Run: python -m flask system init")
        sys.exit(1)

    try:
        tenant_service.validate_org_active(org.id)
    except tenant_service.TenantAccessError as e:
        click.echo(f"FAIL {e}")
        sys.exit(1)

    if db.session.query(User).filter_by(org_id=org.id, username=username).first():
        click.echo(f"FAIL User '{username}' already exists in org {org.id}")
        sys.exit(1)

    if store_id is not None:
        try:
            tenant_service.require_store_in_org(store_id, org.id)
        except tenant_service.TenantAccessError as e:
            click.echo(f"FAIL {e}")
            sys.exit(1)

    user = User(org_id=org.id, username=username, email=email, display_name=display_name, store_id=store_id)
    db.session.add(user)
    db.session.commit()
    permission_service.assign_role(user.id, role)
    click.echo(f"PASS Created user: {username} (ID: {user.id}) with role '{role}'")


@click.group('tokens')
def tokens_group():
    """Session token commands."""


@tokens_group.command('issue')
@click.option('--username', required=True)
@click.option('--org-id', type=int, help='Organization ID (first organization if omitted)')
@click.option('--ttl-hours', type=int, default=24, show_default=True)
@with_appcontext
def issue_token(username, org_id, ttl_hours):
    """Issue a bearer token for a user."""
    org = _resolve_org(org_id)
    if not org:
        click.echo("FAIL No organization found")
        sys.exit(1)

    user = db.session.query(User).filter_by(org_id=org.id, username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found in org {org.id}")
        sys.exit(1)

    try:
        session, token = session_service.create_session(user.id, ttl=timedelta(hours=ttl_hours))
    except ValueError as e:
        click.echo(f"FAIL {e}")
        sys.exit(1)

    roles = ", ".join(permission_service.get_user_role_names(user.id)) or "none"
    click.echo(
        f"PASS Token for {user.username} (org {org.id}, roles: {roles}), expires {session.expires_at}:"
    )
    click.echo(token)


@tokens_group.command('revoke')
@click.argument('token')
@click.option('--reason', default='Revoked from CLI', show_default=True)
@with_appcontext
def revoke_token(token, reason):
    """Revoke a bearer token."""
    if not session_service.revoke_session(token, reason=reason):
        click.echo("FAIL Token not found or already revoked")
        sys.exit(1)
    click.echo("PASS Token revoked")


@click.group('ledger')
def ledger_group():
    """Stock and credit side-effect maintenance."""


@ledger_group.command('failed')
@click.option('--org-id', type=int, default=None)
@with_appcontext
def list_failed_intents(org_id):
    intents = intent_service.list_failed_intents(org_id)
    if not intents:
        click.echo("PASS No failed ledger side effects")
        return

    click.echo(f"{'ID':<6} {'Org':<5} {'Type':<16} {'Order':<12} {'Item':<6} {'Tries':<6} Error")
    for intent in intents:
        click.echo(
            f"{intent.id:<6} {intent.org_id:<5} {intent.intent_type:<16} {intent.reference or '-':<12} "
            f"{intent.order_item_id or '-':<6} {intent.attempts:<6} {intent.error_message or ''}"
        )


@ledger_group.command('replay')
@click.option('--org-id', type=int, default=None)
@with_appcontext
def replay_intents(org_id):
    """Re-apply FAILED side effects."""
    counts = intent_service.replay_failed_intents(org_id)
    db.session.commit()

    click.echo(
        f"PASS Replayed {counts['replayed']}: {counts['APPLIED']} applied, "
        f"{counts['SUPERSEDED']} superseded, {counts['FAILED']} still failing"
    )
    if counts["FAILED"]:
        sys.exit(1)


@click.group('stock')
def stock_group():
    """Stock ledger inspection."""


@stock_group.command('check')
@click.option('--org-id', type=int, default=None)
@with_appcontext
def check_stock(org_id):
    """Report stock rows that break the stock invariants."""
    if org_id is not None:
        orgs = [db.session.get(Organization, org_id)]
    else:
        orgs = db.session.query(Organization).order_by(Organization.id).all()

    problems = 0
    checked = 0
    for org in orgs:
        if org is None:
            continue
        for store in tenant_service.get_org_stores(org.id, active_only=False):
            for item in stock_service.list_stock(org.id, store_id=store.id):
                checked += 1
                for problem in stock_service.check_stock_invariants(item):
                    problems += 1
                    click.echo(
                        f"FAIL org {org.id} store '{store.name}' product {item.product_id}: {problem}"
                    )

    if problems:
        click.echo(f"FAIL {problems} problems in {checked} stock rows")
        sys.exit(1)
    click.echo(f"PASS {checked} stock rows consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(tokens_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(stock_group)
