"""OPSkins authentication strategy for host web applications.

Each inbound authentication request is handled in one of two ways:

- INITIATE: the request is not on the callback path. A state token is
  issued and the user-agent is redirected to the OPSkins authorize page.
- CALLBACK: the request is on the callback path. The state token is checked
  and consumed, the authorization code is exchanged for an access grant,
  the user's profile is fetched and handed to the host's verify callable.

The host receives a single outcome per request: ``Redirect``, ``Success``
or ``Failure``.

Usage:
    async def verify(profile):
        return await users.get_or_create(profile["id"])

    strategy = OpskinsStrategy(config, verify, store=JsonFileClientStore())
    async with strategy:
        outcome = await strategy.authenticate(AuthRequest.from_url(request_url))
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Protocol, Union
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from ..config import StrategyConfig
from ..errors import ConfigurationError, OpskinsAuthError, ProtocolError, StateMismatchError
from .api import AUTHORIZE_URL
from .clients import ClientRegistrationManager
from .exchange import exchange_code
from .exchange import refresh_access_token as _refresh_access_token
from .profile import fetch_profile
from .state import StateTokenRegistry
from .store import ClientStore, JsonFileClientStore
from .tokens import ClientRegistration

logger = logging.getLogger(__name__)


@dataclass
class AuthRequest:
    """The parts of an inbound request the strategy looks at.

    Attributes:
        path: URL path of the request
        query: Raw query string (without the leading "?")
    """

    path: str
    query: str = ""

    @classmethod
    def from_url(cls, url: str) -> "AuthRequest":
        """Build from a full or path-only request URL."""
        parsed = urlparse(url)
        return cls(path=parsed.path, query=parsed.query)

    def get_param(self, name: str) -> str | None:
        """First value of a query parameter, or None."""
        values = parse_qs(self.query).get(name, [])
        return values[0] if values else None


@dataclass
class Redirect:
    """Send the user-agent to ``url``."""

    url: str


@dataclass
class Success:
    """Authentication succeeded with the host's verify result."""

    result: Any


@dataclass
class Failure:
    """Authentication failed."""

    error: Exception


AuthOutcome = Union[Redirect, Success, Failure]

# Receives the profile (with "access" attached); may be sync or async.
# Returning a Failure or raising rejects the login.
VerifyCallback = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]


class HostCallbacks(Protocol):
    """Terminal callbacks a host framework exposes for one request."""

    def redirect(self, url: str) -> Any: ...

    def success(self, result: Any) -> Any: ...

    def fail(self, error: Exception) -> Any: ...


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class OpskinsStrategy:
    """Authorization code flow against OPSkins for one host application.

    Args:
        config: Strategy configuration
        verify: Host callable that turns a profile into the login result
        store: Persistence for the client registration
            (default: JSON file under ~/.cache/opskins-auth)
        http_client: Optional shared HTTP client; one is created otherwise
        state_registry: Optional state token registry

    Raises:
        ConfigurationError: If config is missing or verify is not callable
    """

    name = "opskins"

    def __init__(
        self,
        config: StrategyConfig,
        verify: VerifyCallback,
        *,
        store: ClientStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        state_registry: StateTokenRegistry | None = None,
    ):
        if not isinstance(config, StrategyConfig):
            raise ConfigurationError("A StrategyConfig with name, return_url and api_key is required.")
        if not callable(verify):
            raise ConfigurationError("verify must be callable")

        self.config = config
        self.verify = verify
        self.states = state_registry or StateTokenRegistry()

        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=config.http_timeout)

        self.clients = ClientRegistrationManager(
            config,
            store if store is not None else JsonFileClientStore(),
            http_client=self._http_client,
        )

    # Lifecycle

    def start(self) -> None:
        """Begin client reconciliation in the background."""
        self.clients.start()

    async def ready(self, timeout: float | None = None) -> ClientRegistration:
        """Wait until live client credentials are available.

        Starts reconciliation first if the host never called ``start()``.
        """
        self.clients.ensure_started()
        return await self.clients.wait_ready(timeout)

    async def aclose(self) -> None:
        """Stop background work and close the owned HTTP client."""
        await self.clients.aclose()
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "OpskinsStrategy":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # State injection

    def set_states(self, tokens: Iterable[str]) -> None:
        """Replace the live state tokens, e.g. with tokens shared from another worker."""
        self.states.replace(tokens)

    # Flow

    def login(self) -> str:
        """Issue a state token and build the authorize URL.

        Raises:
            NotReadyError: If client reconciliation has not completed
        """
        registration = self.clients.registration
        state = self.states.issue()

        params: dict[str, str] = {
            "response_type": "code",
            "state": state,
            "client_id": registration.client_id,
            "scope": self.config.scopes,
        }
        params.update(self.config.authorize_params())

        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def authenticate(self, request: AuthRequest) -> AuthOutcome:
        """Handle one inbound authentication request.

        Returns:
            Redirect for a new login, Success or Failure for a callback
        """
        try:
            await self.ready(self.config.ready_timeout)
        except OpskinsAuthError as e:
            logger.warning(f"Rejecting authentication request: {e}")
            return Failure(e)

        if request.path != self.config.callback_path:
            return Redirect(self.login())

        try:
            return await self._handle_callback(request)
        except Exception as e:
            logger.warning(f"Authentication failed: {type(e).__name__}: {e}")
            return Failure(e)

    async def _handle_callback(self, request: AuthRequest) -> AuthOutcome:
        if not self.states.consume(request.get_param("state")):
            raise StateMismatchError("Authentication did not originate from this server.")

        error = request.get_param("error")
        if error:
            description = request.get_param("error_description")
            detail = f"{error} - {description}" if description else error
            raise ProtocolError(f"Authorization failed: {detail}")

        code = request.get_param("code")
        if not code:
            raise ProtocolError("No authorization code in callback")

        grant = await exchange_code(
            self.clients.registration,
            code,
            http_client=self._http_client,
            timeout=self.config.http_timeout,
        )
        profile = await fetch_profile(
            grant.access_token,
            http_client=self._http_client,
            timeout=self.config.http_timeout,
        )

        user = dict(profile)
        user["access"] = grant.to_dict()

        result = await _maybe_await(self.verify(user))
        if isinstance(result, (Success, Failure)):
            return result
        return Success(result)

    async def handle(self, request: AuthRequest, host: HostCallbacks) -> AuthOutcome:
        """Authenticate and invoke exactly one of the host's callbacks."""
        outcome = await self.authenticate(request)

        if isinstance(outcome, Redirect):
            await _maybe_await(host.redirect(outcome.url))
        elif isinstance(outcome, Success):
            await _maybe_await(host.success(outcome.result))
        else:
            await _maybe_await(host.fail(outcome.error))

        return outcome

    async def refresh_access_token(self, refresh_token: str) -> str:
        """Exchange a refresh token for a new access token."""
        registration = await self.ready(self.config.ready_timeout)
        return await _refresh_access_token(
            registration,
            refresh_token,
            http_client=self._http_client,
            timeout=self.config.http_timeout,
        )
