"""Command line interface for the offboarding toolkit."""
from __future__ import annotations

import contextlib
import json
import logging
from pathlib import Path
from typing import Iterator, Optional, Tuple

import typer

from .ad_client import ADClient, DirectoryError
from .config import AppConfig, ConfigurationError, LoggingConfig, load_config
from .m365_client import M365Client
from .mailboxes import MailboxClient, set_address_list_visibility
from .models import OperationResult
from .offboarding import check_confirmation, offboard_user
from .photos import assign_photo, export_photo, show_photo
from .sync import run_sync_command

app = typer.Typer(help="Offboard Active Directory accounts and manage their profile photos.")
photo_app = typer.Typer(help="Show or replace the thumbnailPhoto of an account.")
app.add_typer(photo_app, name="photo")

CONFIG_OPTION = typer.Option(
    None, "--config", help="Path to a specific settings file (overrides default)."
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Log every step at debug level.")


def configure_logging(settings: LoggingConfig, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.format, force=True)
    # ldap3 is chatty at debug level.
    logging.getLogger("ldap3").setLevel(logging.WARNING)


def _load_configuration(config_path: Optional[Path], verbose: bool = False) -> AppConfig:
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    configure_logging(config.logging, verbose)
    return config


@contextlib.contextmanager
def _directory(config: AppConfig) -> Iterator[ADClient]:
    try:
        directory = ADClient(config.ldap)
    except DirectoryError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    try:
        yield directory
    finally:
        directory.close()


@contextlib.contextmanager
def _clients(config: AppConfig) -> Iterator[Tuple[ADClient, MailboxClient]]:
    """Directory plus mail clients; Graph is only reached from here."""

    with _directory(config) as directory:
        m365 = M365Client(config.m365) if config.m365.has_credentials else None
        yield directory, MailboxClient(directory, m365)


def _report(result: OperationResult, success_message: str, as_json: bool = False) -> None:
    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        for action in result.actions:
            typer.echo(f"- {action}")
        for warning in result.warnings:
            typer.echo(f"Warning: {warning}")

    if not result.ok:
        assert result.error is not None
        typer.echo(f"Error: {result.error.message}", err=True)
        raise typer.Exit(code=1)
    if not as_json:
        typer.echo(success_message)


@app.command("offboard")
def offboard(
    identifier: str = typer.Argument(..., help="sAMAccountName of the departing employee."),
    ticket: str = typer.Option(..., "--ticket", help="Ticket reference recorded in the description."),
    requested_by: str = typer.Option(..., "--requested-by", help="Who requested the offboarding."),
    confirm: Optional[str] = typer.Option(
        None, "--confirm", help="Type the confirmation literal (YES) to apply changes."
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would change."),
    sync: Optional[bool] = typer.Option(
        None, "--sync/--no-sync", help="Trigger the directory sync command afterwards."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
    config_path: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Disable an account, archive it, strip its groups and hide its mailbox."""

    config = _load_configuration(config_path, verbose)
    refused = check_confirmation(identifier, confirm, dry_run, config.offboard)
    if refused is not None:
        _report(refused, "", as_json)

    with _clients(config) as (directory, mailboxes):
        result = offboard_user(
            directory,
            mailboxes,
            identifier,
            ticket=ticket,
            requested_by=requested_by,
            confirm=confirm,
            dry_run=dry_run,
            settings=config.offboard,
        )

    if not as_json and "location" in result.details:
        details = result.details
        typer.echo(f"{details['display_name']} ({details['title'] or 'no title'}) at {details['location']}")

    should_sync = config.offboard.sync_after if sync is None else sync
    if result.ok and should_sync and not dry_run:
        try:
            if run_sync_command(config.sync):
                result.actions.append("triggered directory sync")
        except RuntimeError as exc:
            result.warnings.append(str(exc))

    _report(
        result,
        f"{identifier} {'would be offboarded' if dry_run else 'offboarded'} successfully.",
        as_json,
    )


@app.command("visibility")
def visibility(
    identifier: str = typer.Argument(..., help="sAMAccountName of the account."),
    hidden: bool = typer.Option(
        True, "--hidden/--visible", help="Hide from or show in address lists."
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would change."),
    config_path: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Hide or show an account in organisation-wide address lists."""

    config = _load_configuration(config_path, verbose)
    with _clients(config) as (_, mailboxes):
        result = set_address_list_visibility(mailboxes, identifier, hidden=hidden, dry_run=dry_run)
    _report(result, f"{identifier} is now {'hidden from' if hidden else 'shown in'} address lists.")


@photo_app.command("show")
def photo_show(
    identifier: str = typer.Argument(..., help="sAMAccountName of the account."),
    config_path: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Open the stored photo in a preview window."""

    config = _load_configuration(config_path, verbose)
    with _directory(config) as directory:
        result = show_photo(directory, identifier)
    _report(result, "Preview closed.")


@photo_app.command("export")
def photo_export(
    identifier: str = typer.Argument(..., help="sAMAccountName of the account."),
    destination: Path = typer.Argument(..., help="File to write the JPEG to."),
    config_path: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Save the stored photo to a file."""

    config = _load_configuration(config_path, verbose)
    with _directory(config) as directory:
        result = export_photo(directory, identifier, destination)
    _report(result, f"Photo of {identifier} saved to {destination}.")


@photo_app.command("set")
def photo_set(
    identifier: str = typer.Argument(..., help="sAMAccountName of the account."),
    source: Path = typer.Argument(..., help="Image file to resize and upload."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Render but do not upload."),
    config_path: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Resize an image to the thumbnail canvas and store it on the account."""

    config = _load_configuration(config_path, verbose)
    with _directory(config) as directory:
        result = assign_photo(directory, identifier, source, settings=config.photo, dry_run=dry_run)
    _report(result, f"Photo of {identifier} updated.")


def run():
    app()


if __name__ == "__main__":
    run()
