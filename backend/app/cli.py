"""
cli.py — `flask autologin ...` administrative commands.

  install               create the endpoint if none exists (never overwrites)
  uninstall             delete the endpoint; every outstanding link stops working
  generate USER_ID      print a login link for any account
  existing USER_ID      print the account's live link, if one exists
  purge                 delete expired records from the transient store

Rotating the endpoint is `uninstall` followed by `install`.
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import AppGroup

from backend.app.extensions import db
from backend.app.schemas.link_schema import MAX_LINK_TTL, MIN_LINK_TTL
from backend.app.services import auth_service, endpoint_service, link_service, transient_service
from backend.app.services.link_service import NotInstalledError

autologin_cli = AppGroup("autologin", help="Manage password-less login links.")


def _extension():
    return current_app.extensions["autologin"]


@autologin_cli.command("install")
def install_command() -> None:
    """Create the login link endpoint if it does not exist yet."""
    endpoint, created = endpoint_service.install(
        db.session,
        current_app.config.get("AUTOLOGIN_ENDPOINT_BYTES", endpoint_service.DEFAULT_ENDPOINT_BYTES),
    )
    db.session.commit()
    _extension().reload()
    if created:
        current_app.logger.info("AutoLogin: endpoint installed")
        click.echo(f"Installed endpoint /{endpoint}/")
    else:
        click.echo(f"Endpoint already installed: /{endpoint}/")


@autologin_cli.command("uninstall")
@click.confirmation_option(prompt="Every outstanding login link will stop working. Continue?")
def uninstall_command() -> None:
    """Delete the login link endpoint."""
    removed = endpoint_service.uninstall(db.session)
    db.session.commit()
    _extension().reload()
    if removed:
        current_app.logger.info("AutoLogin: endpoint uninstalled")
        click.echo("Endpoint removed.")
    else:
        click.echo("Nothing to remove: no endpoint installed.")


@autologin_cli.command("generate")
@click.argument("user_id", type=click.IntRange(min=1))
@click.option("--redirect", default="/", show_default=True, help="Path to open after login.")
@click.option(
    "--ttl",
    type=click.IntRange(MIN_LINK_TTL, MAX_LINK_TTL),
    default=None,
    help="Link lifetime in seconds (defaults to AUTOLOGIN_DEFAULT_TTL).",
)
def generate_command(user_id: int, redirect: str, ttl: int | None) -> None:
    """Print a login link for USER_ID."""
    if auth_service.resolve_user(user_id, db.session) is None:
        raise click.ClickException(f"User {user_id} not found.")
    try:
        url = link_service.issue_link(
            user_id=user_id,
            session=db.session,
            settings=_extension().settings(),
            redirect=redirect,
            ttl=ttl,
        )
    except NotInstalledError as exc:
        raise click.ClickException(str(exc)) from exc
    db.session.commit()
    click.echo(url)


@autologin_cli.command("existing")
@click.argument("user_id", type=click.IntRange(min=1))
def existing_command(user_id: int) -> None:
    """Print the live login link of USER_ID, if any."""
    try:
        url = link_service.find_existing_link(user_id, db.session, _extension().settings())
    except NotInstalledError as exc:
        raise click.ClickException(str(exc)) from exc
    if url is None:
        raise click.ClickException(f"No live login link for user {user_id}.")
    click.echo(url)


@autologin_cli.command("purge")
def purge_command() -> None:
    """Delete expired records from the transient store."""
    removed = transient_service.purge_expired(db.session)
    db.session.commit()
    click.echo(f"Purged {removed} expired record(s).")
