"""Shared fixtures: a YAML-backed directory with a handful of accounts."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict
from unittest.mock import MagicMock, patch

import pytest
import yaml
from PIL import Image

from offboard_toolkit.ad_client import ADClient
from offboard_toolkit.config import LDAPConfig
from offboard_toolkit.mailboxes import MailboxClient

BASE_DN = "DC=corp,DC=local"
CONTOSO_USERS = "OU=Users,OU=Contoso,DC=corp,DC=local"
CONTOSO_ARCHIVE = "OU=NoLongerEmployed,OU=Users,OU=Contoso,DC=corp,DC=local"
FABRIKAM_USERS = "OU=Users,OU=Fabrikam,DC=corp,DC=local"

JDOE_DN = f"CN=Jane Doe,OU=Sales,{CONTOSO_USERS}"


def group_dn(name: str) -> str:
    return f"CN={name},OU=Groups,{BASE_DN}"


def _directory_payload() -> Dict[str, Any]:
    return {
        "tree": {
            "name": BASE_DN,
            "children": [
                {
                    "name": f"OU=Contoso,{BASE_DN}",
                    "children": [
                        {
                            "name": CONTOSO_USERS,
                            "children": [
                                {"name": f"OU=Sales,{CONTOSO_USERS}", "children": []},
                                {"name": CONTOSO_ARCHIVE, "children": []},
                            ],
                        }
                    ],
                },
                {
                    "name": f"OU=Fabrikam,{BASE_DN}",
                    "children": [{"name": FABRIKAM_USERS, "children": []}],
                },
                {"name": f"OU=Groups,{BASE_DN}", "children": []},
            ],
        },
        "groups": [
            {"name": name, "distinguished_name": group_dn(name)}
            for name in (
                "All Employees",
                "Domain Users",
                "Contoso-AllUserObjects-Sync",
                "Sales Team",
                "VPN Users",
                "Finance Share",
                "Fabrikam Staff",
            )
        ],
        "users": [
            {
                "distinguished_name": JDOE_DN,
                "attributes": {
                    "sAMAccountName": "jdoe",
                    "displayName": "Jane Doe",
                    "title": "Account Manager",
                    "userAccountControl": 512,
                    "description": "Sales",
                    "mail": "jane.doe@contoso.example",
                    "mailNickname": "jdoe",
                    "msExchHideFromAddressLists": False,
                    "memberOf": [
                        group_dn("All Employees"),
                        group_dn("Sales Team"),
                        group_dn("Contoso-AllUserObjects-Sync"),
                        group_dn("VPN Users"),
                        group_dn("Finance Share"),
                    ],
                },
            },
            {
                "distinguished_name": f"CN=Bob Smith,OU=Support,{FABRIKAM_USERS}",
                "attributes": {
                    "sAMAccountName": "bsmith",
                    "displayName": "Bob Smith",
                    "title": "Support Engineer",
                    "userAccountControl": 512,
                    "mailNickname": "bsmith",
                    "memberOf": [group_dn("Domain Users"), group_dn("Fabrikam Staff")],
                },
            },
            {
                "distinguished_name": f"CN=Kiosk,OU=Shared,{CONTOSO_USERS}",
                "attributes": {
                    "sAMAccountName": "kiosk",
                    "displayName": "Kiosk",
                    "userAccountControl": 512,
                    "userPrincipalName": "kiosk@contoso.example",
                    "memberOf": [group_dn("Sales Team")],
                },
            },
            {
                "distinguished_name": f"CN=Backup Service,OU=Service Accounts,{BASE_DN}",
                "attributes": {
                    "sAMAccountName": "svc-backup",
                    "displayName": "Backup Service",
                    "userAccountControl": 512,
                    "homeMDB": "CN=DB01,CN=Databases,CN=Exchange",
                    "memberOf": [],
                },
            },
        ],
    }


@pytest.fixture
def directory_file(tmp_path: Path) -> Path:
    path = tmp_path / "directory.yaml"
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(_directory_payload(), handle, sort_keys=False)
    return path


@pytest.fixture
def ldap_config(directory_file: Path) -> LDAPConfig:
    return LDAPConfig(
        server_uri="mock://",
        user_dn="",
        password="",
        base_dn=BASE_DN,
        mock_data_file=directory_file,
    )


@pytest.fixture
def directory(ldap_config: LDAPConfig) -> ADClient:
    with ADClient(ldap_config) as client:
        yield client


@pytest.fixture
def mailboxes(directory: ADClient) -> MailboxClient:
    return MailboxClient(directory)


@pytest.fixture
def landscape_image(tmp_path: Path) -> Path:
    path = tmp_path / "landscape.png"
    Image.new("RGB", (400, 300), (200, 20, 20)).save(path)
    return path


@pytest.fixture
def portrait_image(tmp_path: Path) -> Path:
    path = tmp_path / "portrait.png"
    Image.new("RGB", (300, 400), (200, 20, 20)).save(path)
    return path


@pytest.fixture
def fake_tk():
    """Stand-in tkinter and ImageTk modules so previews never open a window."""

    tk = MagicMock(name="tkinter")
    tk.TclError = type("TclError", (Exception,), {})
    image_tk = MagicMock(name="ImageTk")
    with patch.dict(sys.modules, {"tkinter": tk, "PIL.ImageTk": image_tk}), patch(
        "PIL.ImageTk", image_tk, create=True
    ):
        yield tk
