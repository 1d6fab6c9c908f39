"""Strategy configuration and environment loading for OPSkins Auth."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_SCOPES = "identity"
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_READY_TIMEOUT = 30.0

# Environment variables read by load_config
ENV_SITE_NAME = "OPSKINS_SITE_NAME"
ENV_RETURN_URL = "OPSKINS_RETURN_URL"
ENV_API_KEY = "OPSKINS_API_KEY"
ENV_SCOPES = "OPSKINS_SCOPES"
ENV_MOBILE = "OPSKINS_MOBILE"
ENV_PERMANENT = "OPSKINS_PERMANENT"
ENV_HTTP_TIMEOUT = "OPSKINS_HTTP_TIMEOUT"
ENV_READY_TIMEOUT = "OPSKINS_READY_TIMEOUT"

ENV_SEARCH_PATHS = [Path(".env")]

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class StrategyConfig:
    """Immutable strategy configuration.

    Attributes:
        name: Site name the OAuth client is registered under
        return_url: Callback URL registered with OPSkins
        api_key: OPSkins API key used for client management
        scopes: Space-separated scopes to request
        mobile: Ask OPSkins for its mobile authorization page
        permanent: Request a permanent grant (with refresh token)
        http_timeout: Timeout in seconds for provider API calls
        ready_timeout: Seconds a request waits for client reconciliation
    """

    name: str
    return_url: str
    api_key: str
    scopes: str = DEFAULT_SCOPES
    mobile: bool = False
    permanent: bool = False
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    ready_timeout: float = DEFAULT_READY_TIMEOUT

    def __post_init__(self) -> None:
        if not self.name or not self.return_url or not self.api_key:
            raise ConfigurationError("Missing required name, return_url or api_key parameter.")
        if not self.scopes:
            object.__setattr__(self, "scopes", DEFAULT_SCOPES)

    @property
    def callback_path(self) -> str:
        """Path component of the return URL."""
        return urlparse(self.return_url).path or "/"

    def authorize_params(self) -> dict[str, str]:
        """Optional parameters appended to the authorize URL."""
        params: dict[str, str] = {}
        if self.mobile:
            params["mobile"] = "1"
        if self.permanent:
            params["duration"] = "permanent"
        return params

    def __repr__(self) -> str:
        return (
            f"StrategyConfig(name={self.name!r}, return_url={self.return_url!r}, "
            f"api_key='***', scopes={self.scopes!r}, mobile={self.mobile}, "
            f"permanent={self.permanent})"
        )


def _parse_bool(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


def _parse_float(name: str, value: str | None, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file to load."""
    if explicit_path:
        if explicit_path.exists():
            return explicit_path
        return None

    for path in ENV_SEARCH_PATHS:
        if path.exists():
            return path
    return None


def config_from_mapping(env: dict[str, Any]) -> StrategyConfig:
    """Build a StrategyConfig from OPSKINS_* variables.

    Raises:
        ConfigurationError: If required variables are missing or malformed
    """
    missing = [
        var for var in (ENV_SITE_NAME, ENV_RETURN_URL, ENV_API_KEY) if not env.get(var)
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)}.\n"
            f"Set them in the environment or in a .env file."
        )

    return StrategyConfig(
        name=env[ENV_SITE_NAME],
        return_url=env[ENV_RETURN_URL],
        api_key=env[ENV_API_KEY],
        scopes=env.get(ENV_SCOPES) or DEFAULT_SCOPES,
        mobile=_parse_bool(env.get(ENV_MOBILE)),
        permanent=_parse_bool(env.get(ENV_PERMANENT)),
        http_timeout=_parse_float(ENV_HTTP_TIMEOUT, env.get(ENV_HTTP_TIMEOUT), DEFAULT_HTTP_TIMEOUT),
        ready_timeout=_parse_float(ENV_READY_TIMEOUT, env.get(ENV_READY_TIMEOUT), DEFAULT_READY_TIMEOUT),
    )


def load_config(env_path: Path | None = None) -> StrategyConfig:
    """Load strategy configuration from the environment.

    A .env file (explicit path, else ./.env) is loaded first; variables
    already set in the environment take precedence.

    Args:
        env_path: Explicit path to a .env file (optional)

    Returns:
        StrategyConfig

    Raises:
        ConfigurationError: If required variables are missing or malformed
    """
    env_file = find_env_file(env_path)
    if env_file:
        load_dotenv(env_file)

    return config_from_mapping(dict(os.environ))
