"""Client IP configuration — immutable settings snapshot and environment overrides."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Annotated

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, PydanticBaseSettingsSource, SettingsConfigDict

from dovecot_client_ip.cidr import InvalidNetworkSpecError, Network, parse_network_spec

logger = logging.getLogger("dovecot_client_ip.config")

NS = "dovecot_client_ip"
ENV_PREFIX = f"{NS.upper()}_"

TRUSTED_PROXIES_KEY = f"{NS}_trusted_proxies"
ALLOW_PRIVATE_CLIENT_IP_KEY = f"{NS}_proxy_allow_private_client_ip"

TRUSTED_PROXIES_ENV = TRUSTED_PROXIES_KEY.upper()
ALLOW_PRIVATE_CLIENT_IP_ENV = ALLOW_PRIVATE_CLIENT_IP_KEY.upper()


class ConfigError(ValueError):
    """Raised when a configuration value has the wrong type or format."""

    def __init__(self, key: str, message: str):
        self.key = key
        self.message = message
        super().__init__(f"{key}: {message}")


def split_proxy_list(value: str | Iterable[str] | None) -> tuple[str, ...]:
    """Normalize a comma-separated string or a list of specs into a stripped tuple.

    Empty entries are dropped; order is preserved.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        items: Iterable[str] = value.split(",")
    else:
        items = value
    return tuple(s.strip() for s in (str(item) for item in items) if s.strip())


class ClientIpSettings(BaseSettings):
    """Settings as read from a configuration file and the environment.

    Field names are the file keys without the ``dovecot_client_ip_`` prefix;
    environment variables use the upper-cased full key. Non-empty environment
    values take precedence over file values.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="ignore",
    )

    trusted_proxies: Annotated[tuple[str, ...], NoDecode] = ()
    proxy_allow_private_client_ip: bool = False

    @field_validator("trusted_proxies", mode="before")
    @classmethod
    def _split_trusted_proxies(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return ()
        if not isinstance(value, (str, list, tuple)):
            raise ValueError("expected a list or a comma-separated string")
        return split_proxy_list(value)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment first: it overrides values passed in from the config file.
        return env_settings, init_settings


@dataclass(frozen=True, slots=True)
class ClientIpConfig:
    """Settings for client IP resolution.

    ``trusted_networks`` holds the parsed form of every valid entry in
    ``trusted_proxies``; invalid entries are logged once here and never match.

    Example:
        ClientIpConfig()                                          # peer address only
        ClientIpConfig(trusted_proxies=("10.0.0.0/8", "::1"))     # behind a proxy
        ClientIpConfig(trusted_proxies=("10.0.0.1",), allow_private_client_ip=True)
    """

    trusted_proxies: tuple[str, ...] = ()
    allow_private_client_ip: bool = False
    trusted_networks: tuple[Network, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Normalize the proxy list and parse it once."""
        trusted_proxies = split_proxy_list(self.trusted_proxies)
        object.__setattr__(self, "trusted_proxies", trusted_proxies)

        networks: list[Network] = []
        for spec in trusted_proxies:
            try:
                networks.append(parse_network_spec(spec))
            except InvalidNetworkSpecError as e:
                logger.warning("Invalid trusted proxy '%s' will never match: %s", e.spec, e.reason)
        object.__setattr__(self, "trusted_networks", tuple(networks))


def load_config(settings: Mapping[str, object] | None = None) -> ClientIpConfig:
    """Build a ClientIpConfig from file-based settings, overridden by the environment.

    Args:
        settings: Values read from a configuration file, keyed by
            ``dovecot_client_ip_trusted_proxies`` and
            ``dovecot_client_ip_proxy_allow_private_client_ip``. Non-empty
            ``DOVECOT_CLIENT_IP_TRUSTED_PROXIES`` and
            ``DOVECOT_CLIENT_IP_PROXY_ALLOW_PRIVATE_CLIENT_IP`` environment
            variables take precedence.

    Raises:
        ConfigError: If a value cannot be interpreted.
    """
    prefix = f"{NS}_"
    file_values = {
        key[len(prefix):]: value
        for key, value in (settings or {}).items()
        if key.startswith(prefix) and value is not None
    }

    try:
        loaded = ClientIpSettings(**file_values)
    except ValidationError as e:
        error = e.errors()[0]
        field_name = error["loc"][0] if error["loc"] else ""
        raise ConfigError(f"{prefix}{field_name}", error["msg"]) from e

    return ClientIpConfig(
        trusted_proxies=loaded.trusted_proxies,
        allow_private_client_ip=loaded.proxy_allow_private_client_ip,
    )
