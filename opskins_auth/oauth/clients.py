"""OAuth client registration lifecycle for OPSkins.

The site authenticates users through an OAuth client it owns on OPSkins.
At startup the manager reconciles the locally persisted client against the
provider's live client list:

1. Load the persisted registration (if any).
2. Fetch the clients owned by the API key.
3. If the persisted client is still live, adopt it.
4. Otherwise delete stale clients registered under the same site name or
   return URL, create a fresh client, adopt it and persist it.

Token exchange and profile calls need live credentials, so they wait on the
manager's readiness gate, which opens once reconciliation has finished.
"""

import asyncio
import logging

import httpx

from ..config import StrategyConfig
from ..errors import NotReadyError, ProtocolError, TransportError
from .api import (
    CREATE_CLIENT_URL,
    DELETE_CLIENT_URL,
    GET_OWNED_CLIENT_LIST_URL,
    basic_auth_header,
    open_client,
    parse_json,
    unwrap_envelope,
)
from .store import ClientStore, ClientStoreError
from .tokens import ClientInfo, ClientRegistration

logger = logging.getLogger(__name__)


class ClientRegistrationManager:
    """Owns the site's OAuth client credentials.

    Usage:
        manager = ClientRegistrationManager(config, store)
        manager.start()
        registration = await manager.wait_ready(timeout=30)
    """

    def __init__(
        self,
        config: StrategyConfig,
        store: ClientStore,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.store = store
        self._http_client = http_client

        self._registration: ClientRegistration | None = None
        self._error: BaseException | None = None
        self._ready = asyncio.Event()
        self._task: asyncio.Task[ClientRegistration | None] | None = None
        self._pending_deletes: set[asyncio.Task[bool]] = set()

    # Credential state

    @property
    def is_ready(self) -> bool:
        """Whether live credentials have been adopted."""
        return self._registration is not None

    @property
    def registration(self) -> ClientRegistration:
        """The adopted credentials.

        Raises:
            NotReadyError: If reconciliation has not completed
        """
        if self._registration is None:
            raise NotReadyError("OAuth client registration is still initializing")
        return self._registration

    def set_registration(self, registration: ClientRegistration) -> None:
        """Adopt credentials and open the readiness gate."""
        self._registration = registration
        self._error = None
        self._ready.set()

    # Provider client management API

    def _api_headers(self, content_type: str) -> dict[str, str]:
        return {
            "Authorization": basic_auth_header(self.config.api_key),
            "Content-Type": content_type,
        }

    async def list_clients(self) -> list[ClientInfo]:
        """Fetch every OAuth client owned by the API key.

        Raises:
            TransportError: On network failure
            ProtocolError: On invalid JSON or a non-success status
        """
        action = "get owned client list"
        http, should_close = open_client(self._http_client, self.config.http_timeout)

        try:
            response = await http.get(
                GET_OWNED_CLIENT_LIST_URL,
                headers=self._api_headers("application/json; charset=utf-8"),
            )
            body = unwrap_envelope(parse_json(response, action), action)
        except httpx.RequestError as e:
            raise TransportError(f"Network error while trying to {action}: {e}") from e
        finally:
            if should_close:
                await http.aclose()

        clients: list[ClientInfo] = []
        for entry in body.get("clients") or []:
            if not isinstance(entry, dict) or "client_id" not in entry:
                logger.debug(f"Skipping malformed client list entry: {entry!r}")
                continue
            clients.append(ClientInfo.from_dict(entry))

        logger.debug(f"Provider lists {len(clients)} owned client(s)")
        return clients

    async def create_client(self) -> ClientRegistration:
        """Register a new OAuth client for this site.

        Raises:
            TransportError: On network failure
            ProtocolError: On invalid JSON, a non-success status, or a
                response without client_id and secret
        """
        action = "create a client"
        http, should_close = open_client(self._http_client, self.config.http_timeout)

        try:
            response = await http.post(
                CREATE_CLIENT_URL,
                json={"name": self.config.name, "redirect_uri": self.config.return_url},
                headers=self._api_headers("application/json; charset=utf-8"),
            )
            data = parse_json(response, action)
        except httpx.RequestError as e:
            raise TransportError(f"Network error while trying to {action}: {e}") from e
        finally:
            if should_close:
                await http.aclose()

        body = unwrap_envelope(data, action)
        try:
            registration = ClientRegistration.from_create_response(body)
        except (KeyError, TypeError) as e:
            detail = data.get("message") or "missing client_id or secret"
            raise ProtocolError(f"Unexpected response while trying to {action}: {detail}") from e

        if not registration.client_id or not registration.client_secret:
            raise ProtocolError(f"Empty client_id or secret while trying to {action}")

        logger.info(f"Created OAuth client {registration.client_id} for {self.config.name}")
        return registration

    async def delete_client(self, client_id: str) -> bool:
        """Delete an OAuth client. Never raises.

        Returns:
            True if the provider reported success, False otherwise
        """
        action = "delete a client"
        http, should_close = open_client(self._http_client, self.config.http_timeout)

        try:
            response = await http.post(
                DELETE_CLIENT_URL,
                data={"client_id": client_id},
                headers=self._api_headers("application/x-www-form-urlencoded"),
            )
            unwrap_envelope(parse_json(response, action), action)
            logger.debug(f"Deleted stale OAuth client {client_id}")
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Network error deleting OAuth client {client_id}: {e}")
            return False
        except ProtocolError as e:
            logger.warning(f"Could not delete OAuth client {client_id}: {e}")
            return False
        finally:
            if should_close:
                await http.aclose()

    def _schedule_delete(self, client_id: str) -> None:
        task = asyncio.create_task(self.delete_client(client_id))
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)

    async def wait_for_cleanup(self) -> None:
        """Wait for scheduled stale-client deletions to finish."""
        if self._pending_deletes:
            await asyncio.gather(*self._pending_deletes, return_exceptions=True)

    # Reconciliation

    def _is_stale(self, client: ClientInfo) -> bool:
        return client.name == self.config.name or client.redirect_uri == self.config.return_url

    def _load_persisted(self) -> ClientRegistration | None:
        try:
            return self.store.load()
        except (ClientStoreError, OSError) as e:
            logger.warning(f"Ignoring unreadable persisted client registration: {e}")
            return None

    def _persist(self, registration: ClientRegistration) -> None:
        try:
            self.store.save(registration)
        except (ClientStoreError, OSError) as e:
            # The adopted client stays usable for this process; the next
            # startup finds it by name and replaces it.
            logger.warning(f"Could not persist client registration {registration.client_id}: {e}")

    async def reconcile(self) -> ClientRegistration:
        """Ensure exactly one live client exists for this site and adopt it.

        Returns:
            The adopted registration

        Raises:
            TransportError: If the provider cannot be reached
            ProtocolError: If listing or creating clients fails
        """
        if self._registration is None:
            self._ready.clear()
        self._error = None

        try:
            persisted = self._load_persisted()
            clients = await self.list_clients()

            if persisted is not None and any(c.client_id == persisted.client_id for c in clients):
                logger.info(f"Reusing persisted OAuth client {persisted.client_id}")
                self.set_registration(persisted)
                return persisted

            if persisted is not None:
                logger.info(
                    f"Persisted OAuth client {persisted.client_id} is no longer live, "
                    f"registering a new one"
                )

            for client in clients:
                if self._is_stale(client):
                    self._schedule_delete(client.client_id)

            registration = await self.create_client()
            self.set_registration(registration)
            self._persist(registration)
            return registration

        except Exception as e:
            logger.error(f"OAuth client reconciliation failed: {type(e).__name__}: {e}")
            if self._registration is None:
                self._error = e
                self._ready.set()
            raise

    def start(self) -> "asyncio.Task[ClientRegistration | None]":
        """Run reconciliation in the background.

        Must be called from a running event loop. Calling again while a
        reconciliation is in flight returns the existing task.
        """
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
        return self._task

    def ensure_started(self) -> None:
        """Start reconciliation unless it already ran or credentials were adopted."""
        if self._task is None and self._registration is None:
            self.start()

    async def _run(self) -> ClientRegistration | None:
        try:
            return await self.reconcile()
        except Exception:
            # Recorded on the gate; waiters re-raise it
            return None

    async def wait_ready(self, timeout: float | None = None) -> ClientRegistration:
        """Wait for reconciliation and return the adopted credentials.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Raises:
            NotReadyError: If credentials are not available within timeout
            Exception: Whatever made reconciliation fail (usually
                TransportError or ProtocolError)
        """
        if self._registration is not None:
            return self._registration

        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError as e:
            raise NotReadyError(
                "OAuth client registration is still initializing, try again shortly"
            ) from e

        if self._registration is None:
            if self._error is not None:
                raise self._error
            raise NotReadyError("OAuth client registration is not available")

        return self._registration

    async def aclose(self) -> None:
        """Cancel in-flight reconciliation and drain deletions."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self.wait_for_cleanup()
