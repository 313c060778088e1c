from __future__ import annotations

import pytest

from unifi_controller_client.config import ConnectionConfig, Mode
from unifi_controller_client.const import API_CLOUD_BASE_URL, DEFAULT_SITE, DEFAULT_TIMEOUT
from unifi_controller_client.errors import ConfigurationError


def test_from_mapping_trims_and_applies_defaults() -> None:
    config = ConnectionConfig.from_mapping(
        {"url": " 192.168.1.1/ ", "username": " admin ", "password": " pw ", "unused": 1}
    )

    assert config.mode is Mode.LOCAL
    assert config.base_url == "https://192.168.1.1"
    assert config.username == "admin"
    assert config.password == " pw "
    assert config.site == DEFAULT_SITE
    assert config.verify_ssl is True
    assert config.timeout == DEFAULT_TIMEOUT
    assert config.api_base_url == "https://192.168.1.1"


def test_from_mapping_coerces_flags_and_timeout() -> None:
    config = ConnectionConfig.from_mapping(
        {
            "url": "https://unifi.local:8443",
            "username": "admin",
            "password": "pw",
            "verify_ssl": "false",
            "timeout": "0",
            "site": "branch",
        }
    )

    assert config.verify_ssl is False
    assert config.timeout == 1
    assert config.site == "branch"


@pytest.mark.parametrize(
    "data",
    [
        {"url": "https://api.ui.com/v1", "api_key": "key"},
        {"api_key": "key"},
        {"mode": "site-manager", "api_key": "key"},
        {"mode": "local", "url": "https://api.ui.com", "api_key": "key"},
    ],
)
def test_cloud_mode_selection(data: dict) -> None:
    config = ConnectionConfig.from_mapping(data)

    assert config.mode is Mode.CLOUD
    assert config.is_cloud
    assert config.base_url is None
    assert config.api_base_url == API_CLOUD_BASE_URL


def test_cloud_default_base_url() -> None:
    assert ConnectionConfig.cloud("key").api_base_url == API_CLOUD_BASE_URL


def test_missing_local_fields_name_the_field() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        ConnectionConfig.from_mapping({"url": "https://unifi.local", "password": "pw"})

    assert excinfo.value.field == "username"
    assert "Missing connection details: username" in str(excinfo.value)


def test_invalid_value_reports_field() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        ConnectionConfig.from_mapping(
            {"url": "https://unifi.local", "username": "a", "password": "b", "timeout": "soon"}
        )

    assert excinfo.value.field == "timeout"
    assert "Invalid controller setting 'timeout'" in str(excinfo.value)


def test_unknown_mode_rejected() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        ConnectionConfig.from_mapping({"mode": "ftp", "api_key": "key"})

    assert excinfo.value.field == "mode"


def test_cloud_requires_api_key() -> None:
    config = ConnectionConfig(mode=Mode.CLOUD)

    assert not config.is_complete
    with pytest.raises(ConfigurationError, match="API key not set"):
        config.validate()


def test_local_requires_site() -> None:
    config = ConnectionConfig.local("https://unifi.local", "admin", "pw")
    blank_site = ConnectionConfig(
        mode=Mode.LOCAL, base_url="https://unifi.local", username="a", password="b", site=""
    )

    assert config.is_complete
    with pytest.raises(ConfigurationError, match="Site name is required"):
        blank_site.validate()


def test_local_api_base_url_requires_url() -> None:
    with pytest.raises(ConfigurationError):
        _ = ConnectionConfig(mode=Mode.LOCAL).api_base_url
