import pytest
import yaml

from offboard_toolkit.config import (
    DEFAULT_EXCLUDED_GROUPS,
    ConfigurationError,
    config_from_dict,
    ensure_default_config,
    load_config,
)


@pytest.fixture
def settings_path(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "ldap": {
                    "server_uri": "ldaps://dc01.corp.local",
                    "user_dn": "CN=svc,DC=corp,DC=local",
                    "password": "secret",
                    "base_dn": "DC=corp,DC=local",
                }
            }
        ),
        encoding="utf-8",
    )
    return path


def test_defaults(settings_path):
    config = load_config(settings_path)

    assert config.ldap.use_ssl is True
    assert config.offboard.users_marker == "OU=Users"
    assert config.offboard.archive_prefix == "OU=NoLongerEmployed"
    assert config.offboard.excluded_groups == DEFAULT_EXCLUDED_GROUPS
    assert config.photo.size == 96
    assert config.photo.quality == 80
    assert config.photo.temp_dir is None
    assert config.m365.has_credentials is False
    assert config.sync.command == ""


def test_environment_overrides(settings_path, monkeypatch):
    monkeypatch.setenv("OFFBOARD_PHOTO__QUALITY", "70")
    monkeypatch.setenv("OFFBOARD_OFFBOARD__EXCLUDED_GROUPS", "Staff, Everyone")
    monkeypatch.setenv("OFFBOARD_LDAP__USE_SSL", "no")

    config = load_config(settings_path)

    assert config.photo.quality == 70
    assert config.offboard.excluded_groups == ("Staff", "Everyone")
    assert config.ldap.use_ssl is False


def test_config_path_from_environment(settings_path, monkeypatch):
    monkeypatch.setenv("OFFBOARD_CONFIG", str(settings_path))

    assert load_config().ldap.server_uri == "ldaps://dc01.corp.local"


def test_missing_ldap_section():
    with pytest.raises(ConfigurationError, match="'ldap'"):
        config_from_dict({})


def test_missing_ldap_key():
    with pytest.raises(ConfigurationError, match="base_dn"):
        config_from_dict({"ldap": {"server_uri": "mock://"}})


@pytest.mark.parametrize("photo", [{"quality": 0}, {"quality": 101}, {"size": -1}, {"size": "big"}])
def test_invalid_photo_settings(photo):
    with pytest.raises(ConfigurationError):
        config_from_dict({"ldap": {"server_uri": "mock://", "base_dn": "DC=x"}, "photo": photo})


def test_empty_excluded_groups_keeps_baseline(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "ldap:\n"
        "  server_uri: mock://\n"
        "  base_dn: DC=corp,DC=local\n"
        "offboard:\n"
        "  excluded_groups:\n"
        "    # - Domain Users\n",
        encoding="utf-8",
    )

    assert load_config(path).offboard.excluded_groups == DEFAULT_EXCLUDED_GROUPS


def test_explicit_empty_excluded_groups():
    config = config_from_dict(
        {"ldap": {"server_uri": "mock://", "base_dn": "DC=x"}, "offboard": {"excluded_groups": []}}
    )

    assert config.offboard.excluded_groups == ()


def test_ensure_default_config_copies_template(tmp_path):
    template = tmp_path / "settings.example.yaml"
    template.write_text("ldap: {}\n", encoding="utf-8")
    target = tmp_path / "config" / "settings.yaml"

    assert ensure_default_config(target, template) == target
    assert target.read_text(encoding="utf-8") == "ldap: {}\n"
