"""OPSkins OAuth2 authorization code flow.

Main Components:
    OpskinsStrategy: Per-request orchestrator for host web applications
    ClientRegistrationManager: Reconciles the site's OAuth client with OPSkins
    StateTokenRegistry: Anti-forgery state tokens
    ClientStore implementations: Persistence for client credentials

Quick Start:
    from opskins_auth.config import load_config
    from opskins_auth.oauth import AuthRequest, OpskinsStrategy

    strategy = OpskinsStrategy(load_config(), verify)
    async with strategy:
        outcome = await strategy.authenticate(AuthRequest.from_url(url))
"""

from ..errors import (
    ConfigurationError,
    NotReadyError,
    OpskinsAuthError,
    ProtocolError,
    StateMismatchError,
    TransportError,
)
from .clients import ClientRegistrationManager
from .exchange import exchange_code, refresh_access_token
from .profile import fetch_profile
from .state import StateTokenRegistry, generate_state
from .store import (
    ClientStore,
    ClientStoreDecryptionError,
    ClientStoreError,
    EncryptedClientStore,
    JsonFileClientStore,
    MemoryClientStore,
)
from .strategy import (
    AuthOutcome,
    AuthRequest,
    Failure,
    HostCallbacks,
    OpskinsStrategy,
    Redirect,
    Success,
)
from .tokens import AccessGrant, ClientInfo, ClientRegistration

__all__ = [
    # Strategy (main entry point)
    "OpskinsStrategy",
    "AuthRequest",
    "AuthOutcome",
    "Redirect",
    "Success",
    "Failure",
    "HostCallbacks",
    # Client registration
    "ClientRegistrationManager",
    "ClientRegistration",
    "ClientInfo",
    # Grants
    "AccessGrant",
    "exchange_code",
    "refresh_access_token",
    "fetch_profile",
    # State
    "StateTokenRegistry",
    "generate_state",
    # Storage
    "ClientStore",
    "JsonFileClientStore",
    "EncryptedClientStore",
    "MemoryClientStore",
    "ClientStoreError",
    "ClientStoreDecryptionError",
    # Errors
    "OpskinsAuthError",
    "ConfigurationError",
    "TransportError",
    "ProtocolError",
    "StateMismatchError",
    "NotReadyError",
]
