"""Active Directory helper client based on ldap3."""
from __future__ import annotations

import contextlib
import copy
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml
from ldap3 import ALL, BASE, MODIFY_REPLACE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPAttributeError, LDAPException
from ldap3.utils.conv import escape_filter_chars

from .config import LDAPConfig
from .locations import parent_location, relative_name, same_location
from .models import ACCOUNTDISABLE, GroupMembership, Identity

logger = logging.getLogger(__name__)

IDENTITY_ATTRIBUTES = (
    "sAMAccountName",
    "displayName",
    "title",
    "description",
    "userAccountControl",
)
MAIL_ATTRIBUTES = (
    "mail",
    "mailNickname",
    "homeMDB",
    "msExchRecipientTypeDetails",
    "msExchMailboxGuid",
    "msExchHideFromAddressLists",
    "userPrincipalName",
)
GROUP_PAGE_SIZE = 500


class DirectoryError(RuntimeError):
    """Raised when Active Directory rejects a request."""


class MockDirectory:
    """Lightweight directory emulator used when ldap3 connectivity isn't available."""

    def __init__(self, data_file: Optional[Path]):
        self.data_file = data_file
        self._data: Dict[str, Any] = {
            "tree": {"name": "", "children": []},
            "users": [],
            "groups": [],
        }
        self._load()

    def _load(self) -> None:
        if self.data_file and self.data_file.exists():
            with self.data_file.open("r", encoding="utf-8") as handle:
                self._data = yaml.safe_load(handle) or self._data
        self._data.setdefault("tree", {"name": "", "children": []})
        self._data.setdefault("users", [])
        self._data.setdefault("groups", [])

    def _save(self) -> None:
        if not self.data_file:
            return
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        with self.data_file.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(self._data, handle, sort_keys=False, indent=2)

    def _user_by_dn(self, distinguished_name: str) -> Optional[Dict[str, Any]]:
        for user in self._data.get("users", []):
            if same_location(str(user.get("distinguished_name") or ""), distinguished_name):
                return user
        return None

    def find_user(self, identifier: str, attributes: List[str]) -> Optional[Dict[str, Any]]:
        lowered = identifier.lower()
        for user in self._data.get("users", []):
            attrs = user.get("attributes", {})
            if str(attrs.get("sAMAccountName", "")).lower() == lowered:
                record = {"distinguishedName": user.get("distinguished_name")}
                for attribute in attributes:
                    if attribute in attrs:
                        record[attribute] = copy.deepcopy(attrs[attribute])
                return record
        return None

    def get_attributes(self, distinguished_name: str, attributes: List[str]) -> Optional[Dict[str, Any]]:
        user = self._user_by_dn(distinguished_name)
        if user is None:
            return None
        attrs = user.get("attributes", {})
        return {attribute: copy.deepcopy(attrs[attribute]) for attribute in attributes if attribute in attrs}

    def set_attribute(self, distinguished_name: str, attribute: str, value: Any) -> bool:
        user = self._user_by_dn(distinguished_name)
        if user is None:
            return False
        user.setdefault("attributes", {})[attribute] = value
        self._save()
        return True

    def location_exists(self, distinguished_name: str) -> bool:
        def _walk(node: Dict[str, Any]) -> bool:
            name = node.get("name")
            if name and same_location(str(name), distinguished_name):
                return True
            return any(_walk(child) for child in node.get("children", []))

        return _walk(self._data.get("tree") or {})

    def move_user(self, distinguished_name: str, new_distinguished_name: str) -> bool:
        user = self._user_by_dn(distinguished_name)
        if user is None:
            return False
        user["distinguished_name"] = new_distinguished_name
        for group in self._data.get("groups", []):
            members = group.get("members") or []
            group["members"] = [
                new_distinguished_name if same_location(member, distinguished_name) else member
                for member in members
            ]
        self._save()
        return True

    def get_user_groups(self, distinguished_name: str) -> List[Dict[str, str]]:
        user = self._user_by_dn(distinguished_name)
        if user is None:
            return []
        names = {
            str(group.get("distinguished_name")).lower(): str(group.get("name") or "")
            for group in self._data.get("groups", [])
        }
        groups: List[Dict[str, str]] = []
        for group_dn in user.get("attributes", {}).get("memberOf", []) or []:
            group_dn = str(group_dn)
            name = names.get(group_dn.lower()) or relative_name(group_dn).split("=", 1)[-1]
            groups.append({"name": name, "distinguishedName": group_dn})
        return groups

    def remove_user_from_group(self, distinguished_name: str, group_dn: str) -> bool:
        user = self._user_by_dn(distinguished_name)
        if user is None:
            return False
        attrs = user.setdefault("attributes", {})
        current = [str(value) for value in attrs.get("memberOf", []) or []]
        attrs["memberOf"] = [value for value in current if not same_location(value, group_dn)]
        self._save()
        return True


class ADClient:
    """Wrapper around ldap3 that exposes the directory operations used for offboarding."""

    def __init__(self, config: LDAPConfig):
        self.config = config
        self._mock_directory: Optional[MockDirectory] = None
        self.connection: Optional[Connection] = None

        if config.server_uri.startswith("mock://"):
            self._mock_directory = MockDirectory(config.mock_data_file)
        else:
            self.server = Server(config.server_uri, use_ssl=config.use_ssl, get_info=ALL)
            try:
                self.connection = Connection(
                    self.server,
                    user=config.user_dn,
                    password=config.password,
                    auto_bind=True,
                )
            except LDAPException as exc:
                raise DirectoryError(f"Unable to bind to {config.server_uri}: {exc}") from exc

    def close(self) -> None:
        if self.connection and self.connection.bound:
            self.connection.unbind()

    def __enter__(self) -> "ADClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    # Lookup --------------------------------------------------------------
    def get_identity(
        self, identifier: str, attributes: Optional[List[str]] = None
    ) -> Optional[Identity]:
        """Resolve a sAMAccountName to an :class:`Identity`."""

        attribute_list = list(dict.fromkeys([*IDENTITY_ATTRIBUTES, *(attributes or [])]))

        if self._mock_directory:
            record = self._mock_directory.find_user(identifier, attribute_list)
            if record is None:
                return None
            return Identity.from_attributes(str(record.pop("distinguishedName")), record)

        assert self.connection is not None
        filter_str = f"(&{self.config.user_search_filter}(sAMAccountName={escape_filter_chars(identifier)}))"
        self.connection.search(
            search_base=self.config.base_dn,
            search_filter=filter_str,
            search_scope=SUBTREE,
            attributes=attribute_list,
        )
        if not self.connection.entries:
            return None
        entry = self.connection.entries[0]
        payload = {
            attribute: entry[attribute].value for attribute in attribute_list if attribute in entry
        }
        return Identity.from_attributes(str(entry.entry_dn), payload)

    def get_mail_attributes(self, distinguished_name: str) -> Dict[str, Any]:
        """Return the Exchange recipient attributes stored on an account."""

        if self._mock_directory:
            record = self._mock_directory.get_attributes(distinguished_name, list(MAIL_ATTRIBUTES))
            if record is None:
                raise DirectoryError(f"No directory object at '{distinguished_name}'.")
            return record

        assert self.connection is not None
        try:
            self.connection.search(
                search_base=distinguished_name,
                search_filter="(objectClass=user)",
                search_scope=BASE,
                attributes=list(MAIL_ATTRIBUTES),
            )
        except LDAPAttributeError as exc:
            raise DirectoryError(
                f"The directory schema does not expose Exchange attributes ({exc})."
            ) from exc
        if not self.connection.entries:
            raise DirectoryError(f"No directory object at '{distinguished_name}'.")
        entry = self.connection.entries[0]
        return {
            attribute: entry[attribute].value
            for attribute in MAIL_ATTRIBUTES
            if attribute in entry and entry[attribute].value not in (None, [])
        }

    def location_exists(self, distinguished_name: str) -> bool:
        if self._mock_directory:
            return self._mock_directory.location_exists(distinguished_name)

        assert self.connection is not None
        found = self.connection.search(
            search_base=distinguished_name,
            search_filter="(objectClass=*)",
            search_scope=BASE,
            attributes=[],
        )
        return bool(found and self.connection.entries)

    def get_group_memberships(self, user_dn: str) -> List[GroupMembership]:
        if self._mock_directory:
            return [
                GroupMembership(name=group["name"], distinguished_name=group["distinguishedName"])
                for group in self._mock_directory.get_user_groups(user_dn)
            ]

        assert self.connection is not None
        base_dn = self.config.group_search_base or self.config.base_dn
        search_filter = f"(&(objectClass=group)(member={escape_filter_chars(user_dn)}))"
        results = self.connection.extend.standard.paged_search(
            search_base=base_dn,
            search_filter=search_filter,
            search_scope=SUBTREE,
            attributes=["cn", "name"],
            paged_size=GROUP_PAGE_SIZE,
            generator=True,
        )
        groups: List[GroupMembership] = []
        for entry in results:
            if entry.get("type") != "searchResEntry":
                continue
            dn = str(entry.get("dn", ""))
            attributes = entry.get("attributes", {})
            name = ""
            for attribute in ("name", "cn"):
                value = attributes.get(attribute)
                if isinstance(value, (list, tuple)):
                    value = value[0] if value else None
                if value:
                    name = str(value)
                    break
            groups.append(GroupMembership(name=name or dn, distinguished_name=dn))
        return groups

    # Mutations -----------------------------------------------------------
    def disable_user(self, identity: Identity) -> None:
        control = identity.user_account_control | ACCOUNTDISABLE
        self._replace(identity.distinguished_name, "userAccountControl", control, "disable-account")
        identity.user_account_control = control
        identity.enabled = False

    def set_description(self, distinguished_name: str, description: str) -> None:
        self._replace(distinguished_name, "description", description, "set-description")

    def set_hidden_from_address_lists(self, distinguished_name: str, hidden: bool) -> None:
        self._replace(
            distinguished_name, "msExchHideFromAddressLists", bool(hidden), "address-list visibility"
        )

    def set_thumbnail_photo(self, distinguished_name: str, data: bytes) -> None:
        self._replace(distinguished_name, "thumbnailPhoto", data, "set-photo")

    def move_user(self, distinguished_name: str, new_parent: str) -> str:
        """Move an account below ``new_parent`` and return its new DN."""

        rdn = relative_name(distinguished_name)
        new_dn = f"{rdn},{new_parent}"
        if same_location(parent_location(distinguished_name), new_parent):
            return distinguished_name

        if self._mock_directory:
            if not self._mock_directory.move_user(distinguished_name, new_dn):
                raise DirectoryError(f"No directory object at '{distinguished_name}'.")
            return new_dn

        assert self.connection is not None
        moved = self.connection.modify_dn(distinguished_name, rdn, new_superior=new_parent)
        if not moved:
            self._raise_rejected("move", distinguished_name)
        return new_dn

    def remove_user_from_group(self, user_dn: str, group_dn: str) -> None:
        if self._mock_directory:
            if not self._mock_directory.remove_user_from_group(user_dn, group_dn):
                raise DirectoryError(f"No directory object at '{user_dn}'.")
            return

        assert self.connection is not None
        removed = self.connection.extend.microsoft.remove_members_from_groups([user_dn], [group_dn])
        if not removed:
            self._raise_rejected(f"remove-membership ({group_dn})", user_dn)

    # Utilities -----------------------------------------------------------
    def _replace(self, distinguished_name: str, attribute: str, value: Any, action: str) -> None:
        logger.debug("Replacing %s on %s (%s)", attribute, distinguished_name, action)
        if self._mock_directory:
            if not self._mock_directory.set_attribute(distinguished_name, attribute, value):
                raise DirectoryError(f"No directory object at '{distinguished_name}'.")
            return

        assert self.connection is not None
        try:
            modified = self.connection.modify(
                distinguished_name, {attribute: [(MODIFY_REPLACE, [value])]}
            )
        except LDAPAttributeError as exc:
            raise DirectoryError(
                f"Active Directory does not know the attribute '{attribute}' ({exc})."
            ) from exc
        if not modified:
            self._raise_rejected(action, distinguished_name)

    def _raise_rejected(self, action: str, distinguished_name: str) -> None:
        assert self.connection is not None
        result = self.connection.result or {}
        description = result.get("description", "Unknown error")
        message = result.get("message")
        raise DirectoryError(
            f"Active Directory rejected the {action} request for {distinguished_name} ({description})."
            + (f" {message}" if message else "")
        )


@contextlib.contextmanager
def ad_client(config: LDAPConfig) -> Iterator[ADClient]:
    client = ADClient(config)
    try:
        yield client
    finally:
        client.close()


__all__ = ["ADClient", "DirectoryError", "MockDirectory", "ad_client"]
