from unittest.mock import MagicMock

from offboard_toolkit.m365_client import M365Client, M365GraphError
from offboard_toolkit.mailboxes import (
    MailboxClient,
    MailboxUnavailableError,
    set_address_list_visibility,
)
from offboard_toolkit.models import ErrorKind

import pytest


def test_hide_and_show_mailbox(directory, mailboxes):
    hidden = set_address_list_visibility(mailboxes, "jdoe", hidden=True)

    assert hidden.ok
    assert hidden.details == {"hidden": True, "mailbox_source": "directory"}
    dn = directory.get_identity("jdoe").distinguished_name
    assert directory.get_mail_attributes(dn)["msExchHideFromAddressLists"] is True

    shown = set_address_list_visibility(mailboxes, "jdoe", hidden=False)

    assert shown.ok
    assert directory.get_mail_attributes(dn)["msExchHideFromAddressLists"] is False


def test_account_without_mailbox_fails(directory, mailboxes):
    result = set_address_list_visibility(mailboxes, "kiosk", hidden=True)

    assert not result.ok
    assert result.error.kind is ErrorKind.MAILBOX_UNAVAILABLE
    assert "mail-enabled" in result.error.message
    assert result.actions == []


def test_unknown_account(mailboxes):
    result = set_address_list_visibility(mailboxes, "ghost", hidden=True)

    assert result.error.kind is ErrorKind.NO_SUCH_IDENTITY


def test_dry_run_leaves_flag_untouched(directory, mailboxes):
    result = set_address_list_visibility(mailboxes, "jdoe", hidden=True, dry_run=True)

    assert result.ok
    assert result.actions[0].startswith("would hide")
    dn = directory.get_identity("jdoe").distinguished_name
    assert directory.get_mail_attributes(dn)["msExchHideFromAddressLists"] is False


def test_cloud_mailbox_is_confirmed_through_graph(directory):
    graph = MagicMock(spec=M365Client)
    graph.find_user.return_value = {"id": "0f1e", "mail": "kiosk@contoso.example"}
    graph.get_mailbox_settings.return_value = {"timeZone": "UTC"}

    mailbox = MailboxClient(directory, graph).resolve_mailbox("kiosk")

    assert mailbox.source == "graph"
    assert mailbox.address == "kiosk@contoso.example"
    graph.find_user.assert_called_once_with("kiosk@contoso.example", select="id,userPrincipalName,mail")
    graph.get_mailbox_settings.assert_called_once_with("0f1e")


def test_graph_without_mailbox_raises(directory):
    graph = MagicMock(spec=M365Client)
    graph.find_user.return_value = {"id": "0f1e"}
    graph.get_mailbox_settings.side_effect = M365GraphError(
        404, "MailboxNotEnabledForRESTAPI", "The mailbox is either inactive or soft-deleted."
    )

    with pytest.raises(MailboxUnavailableError, match="MailboxNotEnabledForRESTAPI"):
        MailboxClient(directory, graph).resolve_mailbox("kiosk")
