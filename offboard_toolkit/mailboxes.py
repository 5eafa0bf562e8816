"""Mailbox lookup and address-list visibility."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .ad_client import ADClient, DirectoryError
from .m365_client import M365Client, M365ClientError
from .models import ErrorKind, Identity, Mailbox, OperationResult

logger = logging.getLogger(__name__)

MAILBOX_MARKERS = ("homeMDB", "msExchRecipientTypeDetails", "msExchMailboxGuid", "mailNickname")
ADMIN_HINT = (
    "Make sure the account is mail-enabled and that the Exchange schema "
    "attributes are readable with the configured administrative account."
)


class MailboxUnavailableError(RuntimeError):
    """Raised when no mailbox can be resolved for an identity."""


class NoSuchIdentityError(MailboxUnavailableError):
    """Raised when the identifier itself does not resolve."""


class MailboxClient:
    """Mail-system interface backed by the directory, optionally confirmed through Graph."""

    def __init__(self, directory: ADClient, m365: Optional[M365Client] = None):
        self.directory = directory
        self.m365 = m365

    def resolve_mailbox(self, identifier: str, identity: Optional[Identity] = None) -> Mailbox:
        identity = identity or self.directory.get_identity(identifier)
        if identity is None:
            raise NoSuchIdentityError(f"No account named '{identifier}' exists in the directory.")

        try:
            attributes = self.directory.get_mail_attributes(identity.distinguished_name)
        except DirectoryError as exc:
            raise MailboxUnavailableError(
                f"Unable to read mailbox attributes for '{identifier}': {exc} {ADMIN_HINT}"
            ) from exc

        if any(attributes.get(marker) for marker in MAILBOX_MARKERS):
            return self._mailbox(identity, attributes, "directory")

        if self.m365 is not None:
            principal = attributes.get("userPrincipalName") or attributes.get("mail") or identifier
            try:
                user = self.m365.find_user(str(principal), select="id,userPrincipalName,mail")
                if user:
                    self.m365.get_mailbox_settings(user["id"])
                    attributes.setdefault("mail", user.get("mail"))
                    return self._mailbox(identity, attributes, "graph")
            except M365ClientError as exc:
                logger.debug("Graph mailbox lookup for %s failed: %s", identifier, exc)
                raise MailboxUnavailableError(
                    f"No mailbox found for '{identifier}' ({exc}). {ADMIN_HINT}"
                ) from exc

        raise MailboxUnavailableError(f"No mailbox found for '{identifier}'. {ADMIN_HINT}")

    def set_visibility(self, identifier: str, hidden: bool, identity: Optional[Identity] = None) -> Mailbox:
        mailbox = self.resolve_mailbox(identifier, identity)
        try:
            self.directory.set_hidden_from_address_lists(mailbox.distinguished_name, hidden)
        except DirectoryError as exc:
            raise MailboxUnavailableError(
                f"Unable to change address-list visibility for '{identifier}': {exc} {ADMIN_HINT}"
            ) from exc
        mailbox.hidden = hidden
        return mailbox

    @staticmethod
    def _mailbox(identity: Identity, attributes: Dict[str, Any], source: str) -> Mailbox:
        hidden = attributes.get("msExchHideFromAddressLists")
        if isinstance(hidden, str):
            hidden = hidden.strip().upper() == "TRUE"
        return Mailbox(
            identifier=identity.identifier,
            distinguished_name=identity.distinguished_name,
            address=attributes.get("mail"),
            hidden=bool(hidden),
            source=source,
        )


def set_address_list_visibility(
    mailboxes: MailboxClient,
    identifier: str,
    hidden: bool = True,
    dry_run: bool = False,
    identity: Optional[Identity] = None,
) -> OperationResult:
    """Hide (or show) an identity in organisation-wide address lists."""

    result = OperationResult(operation="visibility", identifier=identifier, dry_run=dry_run)
    if not identifier:
        return result.fail(ErrorKind.MISSING_IDENTIFIER, "An account identifier is required.")

    verb = "hide" if hidden else "show"
    try:
        if dry_run:
            mailbox = mailboxes.resolve_mailbox(identifier, identity)
            result.actions.append(f"would {verb} {mailbox.distinguished_name} in address lists")
        else:
            mailbox = mailboxes.set_visibility(identifier, hidden, identity)
            result.actions.append(f"{verb} {mailbox.distinguished_name} in address lists")
            logger.info("Set msExchHideFromAddressLists=%s for %s", hidden, identifier)
    except NoSuchIdentityError as exc:
        return result.fail(ErrorKind.NO_SUCH_IDENTITY, str(exc))
    except MailboxUnavailableError as exc:
        return result.fail(ErrorKind.MAILBOX_UNAVAILABLE, str(exc))
    except DirectoryError as exc:
        return result.fail(ErrorKind.DIRECTORY_ERROR, str(exc))

    result.details.update({"hidden": hidden, "mailbox_source": mailbox.source})
    return result


__all__ = [
    "MailboxClient",
    "MailboxUnavailableError",
    "NoSuchIdentityError",
    "set_address_list_visibility",
]
