"""Tests for configuration — settings sources, dataclass normalization and environment overrides."""

import dataclasses
import logging
from ipaddress import ip_network

import pytest
from pydantic import ValidationError

from dovecot_client_ip.config import (
    ALLOW_PRIVATE_CLIENT_IP_ENV,
    ALLOW_PRIVATE_CLIENT_IP_KEY,
    TRUSTED_PROXIES_ENV,
    TRUSTED_PROXIES_KEY,
    ClientIpConfig,
    ClientIpSettings,
    ConfigError,
    load_config,
    split_proxy_list,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv(TRUSTED_PROXIES_ENV, raising=False)
    monkeypatch.delenv(ALLOW_PRIVATE_CLIENT_IP_ENV, raising=False)


class TestKeys:
    def test_setting_and_env_names(self):
        assert TRUSTED_PROXIES_KEY == "dovecot_client_ip_trusted_proxies"
        assert ALLOW_PRIVATE_CLIENT_IP_KEY == "dovecot_client_ip_proxy_allow_private_client_ip"
        assert TRUSTED_PROXIES_ENV == "DOVECOT_CLIENT_IP_TRUSTED_PROXIES"
        assert ALLOW_PRIVATE_CLIENT_IP_ENV == "DOVECOT_CLIENT_IP_PROXY_ALLOW_PRIVATE_CLIENT_IP"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestSplitProxyList:
    def test_comma_separated(self):
        assert split_proxy_list(" 10.0.0.0/8, ::1 ,,") == ("10.0.0.0/8", "::1")

    def test_list(self):
        assert split_proxy_list(["10.0.0.1", " ", "172.16.0.0/12 "]) == ("10.0.0.1", "172.16.0.0/12")

    def test_none(self):
        assert split_proxy_list(None) == ()


# ---------------------------------------------------------------------------
# ClientIpSettings
# ---------------------------------------------------------------------------


class TestClientIpSettings:
    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "On"])
    def test_env_bool_true(self, monkeypatch, value):
        monkeypatch.setenv(ALLOW_PRIVATE_CLIENT_IP_ENV, value)
        assert ClientIpSettings().proxy_allow_private_client_ip is True

    @pytest.mark.parametrize("value", ["0", "false", "No", "off"])
    def test_env_bool_false(self, monkeypatch, value):
        monkeypatch.setenv(ALLOW_PRIVATE_CLIENT_IP_ENV, value)
        assert ClientIpSettings(proxy_allow_private_client_ip=True).proxy_allow_private_client_ip is False

    def test_env_proxy_list_is_split_not_json_decoded(self, monkeypatch):
        monkeypatch.setenv(TRUSTED_PROXIES_ENV, "10.0.0.0/8, ::1")
        assert ClientIpSettings().trusted_proxies == ("10.0.0.0/8", "::1")

    def test_unrelated_env_ignored(self, monkeypatch):
        monkeypatch.setenv("DOVECOT_CLIENT_IP_SOMETHING_ELSE", "x")
        assert ClientIpSettings().trusted_proxies == ()


# ---------------------------------------------------------------------------
# ClientIpConfig
# ---------------------------------------------------------------------------


class TestClientIpConfig:
    def test_defaults(self):
        config = ClientIpConfig()
        assert config.trusted_proxies == ()
        assert config.allow_private_client_ip is False
        assert config.trusted_networks == ()

    def test_list_input_becomes_tuple(self):
        config = ClientIpConfig(trusted_proxies=["10.0.0.0/8", " ::1 "])
        assert config.trusted_proxies == ("10.0.0.0/8", "::1")

    def test_trusted_networks_parsed_once(self):
        config = ClientIpConfig(trusted_proxies=("10.0.0.0/8", "::1"))
        assert config.trusted_networks == (ip_network("10.0.0.0/8"), ip_network("::1/128"))

    def test_frozen(self):
        config = ClientIpConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.allow_private_client_ip = True

    def test_invalid_entry_kept_and_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dovecot_client_ip.config"):
            config = ClientIpConfig(trusted_proxies=("10.0.0.0/8", "not-an-ip"))
        assert config.trusted_proxies == ("10.0.0.0/8", "not-an-ip")
        assert config.trusted_networks == (ip_network("10.0.0.0/8"),)
        assert "not-an-ip" in caplog.text


# ---------------------------------------------------------------------------
# load_config
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_empty(self):
        config = load_config({})
        assert config == ClientIpConfig()

    def test_from_settings_list(self):
        config = load_config(
            {TRUSTED_PROXIES_KEY: ["10.0.0.0/8", "::1"], ALLOW_PRIVATE_CLIENT_IP_KEY: True},
        )
        assert config.trusted_proxies == ("10.0.0.0/8", "::1")
        assert config.allow_private_client_ip is True

    def test_from_settings_string(self):
        config = load_config({TRUSTED_PROXIES_KEY: "10.0.0.1, 10.0.0.2"})
        assert config.trusted_proxies == ("10.0.0.1", "10.0.0.2")

    def test_env_overrides_settings(self, monkeypatch):
        monkeypatch.setenv(TRUSTED_PROXIES_ENV, "172.18.0.0/16, fd00::/8")
        monkeypatch.setenv(ALLOW_PRIVATE_CLIENT_IP_ENV, "true")
        config = load_config(
            {TRUSTED_PROXIES_KEY: ["10.0.0.0/8"], ALLOW_PRIVATE_CLIENT_IP_KEY: False},
        )
        assert config.trusted_proxies == ("172.18.0.0/16", "fd00::/8")
        assert config.allow_private_client_ip is True

    def test_env_can_disable_private(self, monkeypatch):
        monkeypatch.setenv(ALLOW_PRIVATE_CLIENT_IP_ENV, "0")
        config = load_config({ALLOW_PRIVATE_CLIENT_IP_KEY: True})
        assert config.allow_private_client_ip is False

    def test_blank_env_does_not_override(self, monkeypatch):
        monkeypatch.setenv(TRUSTED_PROXIES_ENV, "")
        monkeypatch.setenv(ALLOW_PRIVATE_CLIENT_IP_ENV, "")
        config = load_config(
            {TRUSTED_PROXIES_KEY: ["10.0.0.0/8"], ALLOW_PRIVATE_CLIENT_IP_KEY: True},
        )
        assert config.trusted_proxies == ("10.0.0.0/8",)
        assert config.allow_private_client_ip is True

    def test_env_only(self, monkeypatch):
        monkeypatch.setenv(TRUSTED_PROXIES_ENV, "192.0.2.1")
        assert load_config().trusted_proxies == ("192.0.2.1",)

    def test_unprefixed_settings_ignored(self):
        config = load_config({"trusted_proxies": ["10.0.0.0/8"], "other_plugin_key": 1})
        assert config == ClientIpConfig()

    def test_invalid_env_bool_raises(self, monkeypatch):
        monkeypatch.setenv(ALLOW_PRIVATE_CLIENT_IP_ENV, "sometimes")
        with pytest.raises(ConfigError) as exc_info:
            load_config()
        assert exc_info.value.key == ALLOW_PRIVATE_CLIENT_IP_KEY
        assert isinstance(exc_info.value.__cause__, ValidationError)

    def test_invalid_setting_bool_raises(self):
        with pytest.raises(ConfigError, match=ALLOW_PRIVATE_CLIENT_IP_KEY):
            load_config({ALLOW_PRIVATE_CLIENT_IP_KEY: "maybe"})

    def test_invalid_proxy_type_raises(self):
        with pytest.raises(ConfigError, match="expected a list") as exc_info:
            load_config({TRUSTED_PROXIES_KEY: 42})
        assert exc_info.value.key == TRUSTED_PROXIES_KEY

    def test_null_private_flag_means_false(self):
        config = load_config({ALLOW_PRIVATE_CLIENT_IP_KEY: None})
        assert config.allow_private_client_ip is False

    def test_config_error_is_value_error(self, monkeypatch):
        monkeypatch.setenv(ALLOW_PRIVATE_CLIENT_IP_ENV, "2")
        with pytest.raises(ValueError):
            load_config()
