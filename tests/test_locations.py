import pytest

from offboard_toolkit.locations import (
    LocationPathError,
    archive_location,
    parent_location,
    relative_name,
    same_location,
)


@pytest.mark.parametrize(
    "path, expected",
    [
        (
            "CN=Jane Doe,OU=Sales,OU=Users,OU=Contoso,DC=corp,DC=local",
            "OU=NoLongerEmployed,OU=Users,OU=Contoso,DC=corp,DC=local",
        ),
        (
            "CN=Bob,OU=Users,DC=corp,DC=local",
            "OU=NoLongerEmployed,OU=Users,DC=corp,DC=local",
        ),
    ],
)
def test_archive_location_keeps_suffix_below_marker(path, expected):
    assert archive_location(path) == expected


def test_archive_location_is_prefix_plus_remainder():
    path = "CN=Jo,OU=Temps,OU=Users,OU=Branch 7,DC=corp,DC=local"
    remainder = path.split("OU=Users", 1)[1]

    assert archive_location(path) == "OU=NoLongerEmployed,OU=Users" + remainder


def test_archive_location_of_archived_account_is_its_own_container():
    path = "CN=Jane Doe,OU=NoLongerEmployed,OU=Users,OU=Contoso,DC=corp,DC=local"

    assert archive_location(path) == parent_location(path)


def test_archive_location_with_custom_names():
    assert (
        archive_location("CN=A,OU=Staff,DC=x", marker="OU=Staff", archive_prefix="OU=Leavers")
        == "OU=Leavers,OU=Staff,DC=x"
    )


def test_archive_location_requires_marker():
    with pytest.raises(LocationPathError, match="not located below"):
        archive_location("CN=Backup,OU=Service Accounts,DC=corp,DC=local")


def test_archive_location_rejects_repeated_marker():
    with pytest.raises(LocationPathError, match="2 times"):
        archive_location("CN=A,OU=Users,OU=Dept,OU=Users,DC=corp,DC=local")


def test_archive_location_rejects_empty_path():
    with pytest.raises(LocationPathError):
        archive_location("")


def test_relative_name_and_parent_location():
    dn = "CN=Jane Doe,OU=Sales,OU=Users,DC=corp,DC=local"

    assert relative_name(dn) == "CN=Jane Doe"
    assert parent_location(dn) == "OU=Sales,OU=Users,DC=corp,DC=local"


def test_same_location_ignores_case():
    assert same_location("ou=users,dc=corp,dc=local", "OU=Users,DC=corp,DC=local")
    assert not same_location("OU=Users,DC=corp,DC=local", "OU=Sales,DC=corp,DC=local")


def test_archive_location_matches_whole_components():
    with pytest.raises(LocationPathError, match="not located below"):
        archive_location("CN=Jo,OU=Users Canada,DC=corp,DC=local")

    assert (
        archive_location("CN=Jo,OU=Users,OU=Users Canada,DC=corp,DC=local")
        == "OU=NoLongerEmployed,OU=Users,OU=Users Canada,DC=corp,DC=local"
    )
