"""OAuth data structures: client registrations and access grants."""

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientRegistration:
    """The site's OAuth client identity with OPSkins.

    Replaced wholesale on reconciliation, never partially updated.
    """

    client_id: str
    client_secret: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence."""
        return {"client_id": self.client_id, "client_secret": self.client_secret}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientRegistration":
        """Deserialize from persisted data.

        Raises:
            KeyError: If client_id or client_secret is missing
        """
        return cls(
            client_id=str(data["client_id"]),
            client_secret=str(data["client_secret"]),
        )

    @classmethod
    def from_create_response(cls, response: dict[str, Any]) -> "ClientRegistration":
        """Build from the CreateClient ``response`` object.

        The API returns ``{"client": {"client_id": ...}, "secret": ...}``.
        """
        return cls(
            client_id=str(response["client"]["client_id"]),
            client_secret=str(response["secret"]),
        )

    def __repr__(self) -> str:
        return f"ClientRegistration(client_id={self.client_id!r}, client_secret='***')"


@dataclass
class ClientInfo:
    """One entry of the provider's owned client list."""

    client_id: str
    name: str | None = None
    redirect_uri: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientInfo":
        return cls(
            client_id=str(data["client_id"]),
            name=data.get("name"),
            redirect_uri=data.get("redirect_uri"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "name": self.name,
            "redirect_uri": self.redirect_uri,
        }


# Token endpoint fields mapped onto AccessGrant attributes
_GRANT_FIELDS = ("access_token", "refresh_token", "expires_in", "token_type", "scope")


@dataclass
class AccessGrant:
    """Token bundle returned by the access_token endpoint.

    Attributes:
        access_token: The bearer token for API calls
        refresh_token: Present when a permanent duration was requested
        expires_in: Lifetime of the access token in seconds
        token_type: Token type as reported by the provider
        scope: Granted scopes
        code: The authorization code the grant was obtained with
        extra: Any other fields the provider returned
    """

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str | None = None
    scope: str | None = None
    code: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def has_refresh_token(self) -> bool:
        """Check if this grant carries a refresh token."""
        return self.refresh_token is not None and len(self.refresh_token) > 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting fields the provider did not send."""
        data: dict[str, Any] = dict(self.extra)
        data["access_token"] = self.access_token

        if self.refresh_token is not None:
            data["refresh_token"] = self.refresh_token
        if self.expires_in is not None:
            data["expires_in"] = self.expires_in
        if self.token_type is not None:
            data["token_type"] = self.token_type
        if self.scope is not None:
            data["scope"] = self.scope
        if self.code is not None:
            data["code"] = self.code

        return data

    @classmethod
    def from_token_response(
        cls,
        response: dict[str, Any],
        code: str | None = None,
    ) -> "AccessGrant":
        """Create an AccessGrant from the token endpoint body.

        Args:
            response: JSON body from the access_token endpoint
            code: The authorization code that was exchanged, if any

        Returns:
            AccessGrant instance

        Raises:
            KeyError: If access_token is missing
        """
        expires_in = response.get("expires_in")
        if expires_in is not None:
            try:
                expires_in = int(expires_in)
            except (TypeError, ValueError):
                logger.debug(f"Ignoring non-numeric expires_in: {expires_in!r}")
                expires_in = None

        return cls(
            access_token=response["access_token"],
            refresh_token=response.get("refresh_token"),
            expires_in=expires_in,
            token_type=response.get("token_type"),
            scope=response.get("scope"),
            code=code,
            extra={k: v for k, v in response.items() if k not in _GRANT_FIELDS},
        )
