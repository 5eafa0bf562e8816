"""Offboarding workflow for departing employees.

The workflow runs strictly in order: resolve the account, disable it,
stamp the description, move it into the archival OU, strip group
memberships and finally hide it from address lists. Group removals are
isolated from each other; a missing archival OU only produces a warning.
Everything else that fails stops the run.

In dry-run mode lookups still hit the directory so that the reported plan
is accurate, while every mutating call is only recorded as an action.
"""
from __future__ import annotations

import fnmatch
import logging
from datetime import date
from typing import Iterable, Optional

from .ad_client import ADClient, DirectoryError
from .config import OffboardConfig
from .locations import LocationPathError, archive_location, parent_location, same_location
from .mailboxes import MailboxClient, set_address_list_visibility
from .models import ErrorKind, GroupMembership, OffboardResult

logger = logging.getLogger(__name__)


def build_description(
    ticket: str, requested_by: str, today: Optional[date] = None, date_format: str = "%d.%m.%Y"
) -> str:
    stamp = (today or date.today()).strftime(date_format)
    return f"Disabled {stamp} / Ticket#: {ticket} / Requested by: {requested_by}"


def is_excluded_group(name: str, excluded: Iterable[str]) -> bool:
    """Return True when ``name`` matches one of the protected group patterns."""

    lowered = name.lower()
    for pattern in excluded:
        pattern = pattern.lower()
        if lowered == pattern or fnmatch.fnmatchcase(lowered, pattern):
            return True
    return False


def is_confirmed(confirm: Optional[str], literal: str) -> bool:
    return bool(confirm) and confirm.strip().lower() == literal.strip().lower()


def check_confirmation(
    identifier: str, confirm: Optional[str], dry_run: bool, settings: OffboardConfig
) -> Optional[OffboardResult]:
    """Return a failed result when a real run lacks the confirmation literal."""

    if dry_run or is_confirmed(confirm, settings.confirm_literal):
        return None
    return OffboardResult(identifier=identifier).fail(
        ErrorKind.UNCONFIRMED,
        f"Offboarding '{identifier}' is irreversible. Pass --confirm {settings.confirm_literal} "
        "or run with --dry-run.",
    )


def offboard_user(
    directory: ADClient,
    mailboxes: MailboxClient,
    identifier: str,
    ticket: str,
    requested_by: str,
    confirm: Optional[str] = None,
    dry_run: bool = False,
    settings: Optional[OffboardConfig] = None,
    today: Optional[date] = None,
) -> OffboardResult:
    """Disable, archive and hide a directory account."""

    settings = settings or OffboardConfig()
    refused = check_confirmation(identifier, confirm, dry_run, settings)
    if refused is not None:
        return refused
    result = OffboardResult(identifier=identifier, dry_run=dry_run)
    if not identifier or not identifier.strip():
        return result.fail(ErrorKind.MISSING_IDENTIFIER, "An account identifier is required.")
    identifier = identifier.strip()
    result.identifier = identifier

    # 1. resolve
    identity = directory.get_identity(identifier)
    if identity is None:
        return result.fail(
            ErrorKind.NO_SUCH_IDENTITY, f"No account named '{identifier}' exists in the directory."
        )
    logger.info(
        "Offboarding %s: %s (%s) at %s",
        identifier,
        identity.display_name,
        identity.title or "no title",
        identity.distinguished_name,
    )
    result.details.update(
        {
            "distinguished_name": identity.distinguished_name,
            "location": identity.distinguished_name,
            "display_name": identity.display_name,
            "title": identity.title,
        }
    )

    prefix = "would " if dry_run else ""
    description = build_description(ticket, requested_by, today, settings.date_format)

    try:
        # 2. disable
        if not dry_run:
            directory.disable_user(identity)
        result.actions.append(f"{prefix}disable {identity.distinguished_name}")
        logger.info("%sDisabled %s", "[dry-run] " if dry_run else "", identifier)

        # 3. description
        if not dry_run:
            directory.set_description(identity.distinguished_name, description)
        result.actions.append(f"{prefix}set description '{description}'")

        # 4. archival location
        _relocate(directory, identity.distinguished_name, settings, result)
        if result.moved and not dry_run:
            identity.distinguished_name = result.details["distinguished_name"]

        # 5. group memberships
        _strip_memberships(directory, identity.distinguished_name, settings, result)
    except DirectoryError as exc:
        logger.error("Offboarding %s stopped: %s", identifier, exc)
        return result.fail(ErrorKind.DIRECTORY_ERROR, str(exc))

    # 6. address lists
    visibility = set_address_list_visibility(
        mailboxes, identifier, hidden=True, dry_run=dry_run, identity=identity
    )
    result.actions.extend(visibility.actions)
    if not visibility.ok:
        assert visibility.error is not None
        logger.error("Unable to hide %s from address lists: %s", identifier, visibility.error)
        return result.fail(visibility.error.kind, visibility.error.message)
    result.hidden = not dry_run

    # 7. done
    logger.info("%sOffboarded %s", "[dry-run] " if dry_run else "", identifier)
    return result


def _relocate(
    directory: ADClient, distinguished_name: str, settings: OffboardConfig, result: OffboardResult
) -> None:
    try:
        target = archive_location(distinguished_name, settings.users_marker, settings.archive_prefix)
    except LocationPathError as exc:
        _warn(result, f"Not moving {result.identifier}: {exc}")
        return

    result.target_location = target
    if same_location(parent_location(distinguished_name), target):
        logger.info("%s already resides in %s", result.identifier, target)
        return
    if not directory.location_exists(target):
        _warn(result, f"Archival location '{target}' does not exist; {result.identifier} was not moved.")
        return

    if result.dry_run:
        result.actions.append(f"would move {distinguished_name} to {target}")
        return
    new_dn = directory.move_user(distinguished_name, target)
    result.moved = True
    result.details["distinguished_name"] = new_dn
    result.actions.append(f"move {distinguished_name} to {target}")
    logger.info("Moved %s to %s", result.identifier, target)


def _strip_memberships(
    directory: ADClient, user_dn: str, settings: OffboardConfig, result: OffboardResult
) -> None:
    memberships: list[GroupMembership] = directory.get_group_memberships(user_dn)
    for group in memberships:
        if is_excluded_group(group.name, settings.excluded_groups):
            result.skipped_groups.append(group.name)
            continue
        if result.dry_run:
            result.actions.append(f"would remove from {group.name}")
            continue
        try:
            directory.remove_user_from_group(user_dn, group.distinguished_name)
        except DirectoryError as exc:
            result.failed_groups.append(group.name)
            _warn(result, f"Unable to remove {result.identifier} from {group.name}: {exc}")
            continue
        result.removed_groups.append(group.name)
        result.actions.append(f"remove from {group.name}")
        logger.info("Removed %s from %s", result.identifier, group.name)


def _warn(result: OffboardResult, message: str) -> None:
    logger.warning(message)
    result.warnings.append(message)


__all__ = [
    "build_description",
    "check_confirmation",
    "is_confirmed",
    "is_excluded_group",
    "offboard_user",
]
