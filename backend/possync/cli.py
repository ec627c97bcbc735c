# Overview: Flask CLI command groups for session, local store and sync maintenance.

# backend/possync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "possync:create_app" (PowerShell: $env:FLASK_APP="possync:create_app").
# - Use: python -m flask <group> <command> [options]
#
# Session:
# - python -m flask session login --company "Boutique Soa" --pos "Caisse 1"
#   Set the active company / point of sale for this till.
# - python -m flask session logout
#   Clear the active session.
# - python -m flask session show
#   Print the active session.
#
# Local store:
# - python -m flask store init
#   Upgrade the local database to the latest schema revision.
# - python -m flask store wipe --yes
#   Delete every synchronized record of the active scope (local only, nothing is pushed).
#
# Sync:
# - python -m flask sync status
#   Engine state, last flush and pending counts per kind.
# - python -m flask sync flush
#   Push pending changes now.

import json

import click
from flask import current_app
from flask.cli import with_appcontext
from flask_migrate import upgrade

from .errors import SessionInvalidError
from .extensions import db
from .models import SYNCED_MODELS
from .services.tenant_service import get_session_provider, scoped_query
from .services.sync_service import get_sync_engine
from .validation import ValidationError


@click.group('session')
def session_group():
    """Active company / point-of-sale session."""


@session_group.command('login')
@click.option('--company', 'company_name', required=True, help='Company name')
@click.option('--pos', 'pos_name', required=True, help='Point-of-sale name')
@with_appcontext
def session_login(company_name, pos_name):
    try:
        active = get_session_provider().login(company_name, pos_name)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Logged in: {active.company_id} / {active.pos_id}")


@session_group.command('logout')
@with_appcontext
def session_logout():
    get_session_provider().logout()
    click.echo("PASS Logged out")


@session_group.command('show')
@with_appcontext
def session_show():
    active = get_session_provider().current()
    if active is None:
        click.echo("No active session")
        return
    click.echo(f"Company: {active.company_name} ({active.company_id})")
    click.echo(f"POS:     {active.pos_name} ({active.pos_id})")


@click.group('store')
def store_group():
    """Local store maintenance."""


@store_group.command('init')
@with_appcontext
def store_init():
    """Upgrade the local database to the latest revision."""
    click.echo("BUILD  Upgrading local store schema...")
    upgrade(directory=current_app.extensions["migrate"].directory)
    click.echo("PASS Local store is at the latest revision")


@store_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def store_wipe(yes):
    """
    DANGER: Delete every synchronized record of the active scope.

    Local only: the deletions are not pushed, so records that were never
    synced are lost for good.
    """
    try:
        scope = get_session_provider().ensure_scope()
    except SessionInvalidError as e:
        raise click.ClickException(str(e))

    if not yes:
        click.confirm(
            f"WARN This will DELETE all local data of {scope.company_id}/{scope.pos_id}. Are you sure?",
            abort=True,
        )

    total_deleted = 0
    for kind, model in SYNCED_MODELS.items():
        count = scoped_query(model, scope, include_deleted=True).delete(synchronize_session=False)
        if count:
            click.echo(f"  DELETE {kind}: {count} rows")
            total_deleted += count
    db.session.commit()
    click.echo(f"PASS Wiped {total_deleted} rows")


@click.group('sync')
def sync_group():
    """Sync engine inspection."""


@sync_group.command('status')
@with_appcontext
def sync_status():
    click.echo(json.dumps(get_sync_engine().status(), indent=2))


@sync_group.command('flush')
@with_appcontext
def sync_flush():
    result = get_sync_engine().flush()
    click.echo(json.dumps(result.to_dict(), indent=2))
    if result.outcome == "failed":
        raise click.ClickException("Push failed; records stay pending")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(session_group)
    app.cli.add_command(store_group)
    app.cli.add_command(sync_group)
