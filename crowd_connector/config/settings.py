"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from crowd_connector.core.exceptions import ConfigurationError

SECRETS_DIR = Path("/run/secrets")

DEFAULT_PAGE_SIZE = 50
DEFAULT_PROXY_PORT = 3128
DEFAULT_CONNECTION_TIMEOUT = 5000
DEFAULT_SOCKET_TIMEOUT = 600000


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = SECRETS_DIR / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            print(f"[settings] ✓ Loaded {env_var} from environment (fallback)")
            return secret_value

    return None


def _split_tokens(raw: str | None) -> list[str]:
    return [token.strip() for token in (raw or "").split(",") if token.strip()]


def _int_env(var_name: str, default: int) -> int:
    raw = os.environ.get(var_name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Environment variable {var_name} must be an integer, got '{raw}'")


@dataclass
class ConnectorConfig:
    """Crowd connector configuration container."""
    # Crowd server
    base_url: str = ""
    application_name: str = ""
    application_password: str = field(default="", repr=False)

    # Proxy
    http_proxy_host: str = ""
    http_proxy_port: int = DEFAULT_PROXY_PORT
    http_proxy_user: str = ""
    http_proxy_password: str = field(default="", repr=False)

    # Paging / timeouts
    default_query_page_size: int = DEFAULT_PAGE_SIZE
    connection_timeout_in_seconds: int = DEFAULT_CONNECTION_TIMEOUT
    socket_timeout_in_milliseconds: int = DEFAULT_SOCKET_TIMEOUT

    # Custom attributes ("name$string" / "name$stringArray")
    user_attributes_schema: list[str] = field(default_factory=list)
    group_attributes_schema: list[str] = field(default_factory=list)

    instance_name: str = "crowd"

    @property
    def rest_url(self) -> str:
        """Base URL of the usermanagement REST resource."""
        return f"{self.base_url.rstrip('/')}/rest/usermanagement/1"

    @property
    def proxy_url(self) -> Optional[str]:
        if not self.http_proxy_host:
            return None
        credentials = ""
        if self.http_proxy_user:
            credentials = f"{self.http_proxy_user}:{self.http_proxy_password}@"
        return f"http://{credentials}{self.http_proxy_host}:{self.http_proxy_port}"

    @property
    def timeouts(self) -> tuple[float, float]:
        """(connect, read) timeouts in seconds for requests."""
        return (
            self.connection_timeout_in_seconds / 1000.0,
            self.socket_timeout_in_milliseconds / 1000.0,
        )

    def validate(self) -> None:
        """Check required fields.

        Raises:
            ConfigurationError: If base URL, application name or password is missing
        """
        missing = [
            label
            for label, value in (
                ("CROWD_BASE_URL", self.base_url),
                ("CROWD_APPLICATION_NAME", self.application_name),
                ("CROWD_APPLICATION_PASSWORD", self.application_password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
        if self.default_query_page_size < 1:
            raise ConfigurationError("CROWD_DEFAULT_QUERY_PAGE_SIZE must be positive")


def load_settings() -> ConnectorConfig:
    """Load connector settings from environment and /run/secrets."""
    application_password = _load_secret_from_file(
        "crowd_application_password",
        "CROWD_APPLICATION_PASSWORD"
    ) or ""
    http_proxy_password = _load_secret_from_file(
        "crowd_http_proxy_password",
        "CROWD_HTTP_PROXY_PASSWORD"
    ) or ""

    config = ConnectorConfig(
        base_url=os.environ.get("CROWD_BASE_URL", "").strip(),
        application_name=os.environ.get("CROWD_APPLICATION_NAME", "").strip(),
        application_password=application_password,
        http_proxy_host=os.environ.get("CROWD_HTTP_PROXY_HOST", "").strip(),
        http_proxy_port=_int_env("CROWD_HTTP_PROXY_PORT", DEFAULT_PROXY_PORT),
        http_proxy_user=os.environ.get("CROWD_HTTP_PROXY_USER", "").strip(),
        http_proxy_password=http_proxy_password,
        default_query_page_size=_int_env("CROWD_DEFAULT_QUERY_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        connection_timeout_in_seconds=_int_env("CROWD_CONNECTION_TIMEOUT", DEFAULT_CONNECTION_TIMEOUT),
        socket_timeout_in_milliseconds=_int_env("CROWD_SOCKET_TIMEOUT", DEFAULT_SOCKET_TIMEOUT),
        user_attributes_schema=_split_tokens(os.environ.get("CROWD_USER_ATTRIBUTES_SCHEMA")),
        group_attributes_schema=_split_tokens(os.environ.get("CROWD_GROUP_ATTRIBUTES_SCHEMA")),
        instance_name=os.environ.get("CONNECTOR_INSTANCE_NAME", "crowd").strip() or "crowd",
    )

    print(
        f"[settings] Instance={config.instance_name}; base_url={config.base_url or '<unset>'}; "
        f"application={config.application_name or '<unset>'}; password=***"
    )
    return config
