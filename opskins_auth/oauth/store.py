"""Persistence for the site's OAuth client registration.

The registration manager only needs ``load()`` and ``save()``; any object
with those methods can be injected. Provided implementations:

- JsonFileClientStore: plain JSON file (0600 permissions)
- EncryptedClientStore: Fernet-encrypted file, key kept in the OS keyring
- MemoryClientStore: in-process only

File-backed stores take a lock file around reads and writes so several
worker processes sharing a store do not interleave.
"""

import base64
import hashlib
import json
import logging
import os
import stat
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Protocol

import keyring
from cryptography.fernet import Fernet, InvalidToken

from .tokens import ClientRegistration

logger = logging.getLogger(__name__)

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl


@contextmanager
def _locked(target: Path, shared: bool = False) -> Iterator[None]:
    """Hold ``<target>.lock`` for the duration of the block.

    Windows has no shared byte-range locks, so ``shared`` only applies on POSIX.
    """
    lock_path = target.parent / f"{target.name}.lock"
    lock_path.touch(exist_ok=True)

    with lock_path.open("r+") as handle:
        fd = handle.fileno()
        if sys.platform == "win32":
            msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
        else:
            fcntl.flock(fd, fcntl.LOCK_SH if shared else fcntl.LOCK_EX)
        try:
            yield
        finally:
            if sys.platform == "win32":
                try:
                    msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
                except OSError:
                    logger.debug(f"Lock on {lock_path} already released")
            else:
                fcntl.flock(fd, fcntl.LOCK_UN)


KEYRING_SERVICE = "opskins-auth"
KEYRING_USERNAME = "client-encryption-key"

DEFAULT_STORE_DIR = Path.home() / ".cache" / "opskins-auth"

CLIENT_FILE = "client.json"
ENCRYPTED_CLIENT_FILE = "client.enc"


class ClientStoreError(Exception):
    """Error in client registration storage."""

    pass


class ClientStoreDecryptionError(ClientStoreError):
    """Stored registration could not be decrypted.

    Usually the encryption key changed (keyring cleared, different machine).
    The registration manager treats this as "nothing persisted" and
    registers a fresh client.
    """

    pass


class ClientStore(Protocol):
    """Persistence collaborator used by the registration manager."""

    def load(self) -> ClientRegistration | None: ...

    def save(self, registration: ClientRegistration) -> None: ...


class MemoryClientStore:
    """Keeps the registration in memory for the life of the process."""

    def __init__(self, registration: ClientRegistration | None = None):
        self._registration = registration
        self.saves = 0

    def load(self) -> ClientRegistration | None:
        return self._registration

    def save(self, registration: ClientRegistration) -> None:
        self._registration = registration
        self.saves += 1

    def clear(self) -> None:
        self._registration = None


def _secure_dir(path: Path) -> None:
    """Create a directory readable by the owner only."""
    path.mkdir(parents=True, exist_ok=True)
    try:
        path.chmod(stat.S_IRWXU)
    except OSError as e:
        logger.warning(f"Could not set directory permissions: {e}")


def _write_private(filepath: Path, content: str) -> None:
    """Write a file under an exclusive lock with 0600 permissions."""
    with _locked(filepath):
        filepath.write_text(content)
        try:
            filepath.chmod(stat.S_IRUSR | stat.S_IWUSR)
        except OSError as e:
            logger.warning(f"Could not set file permissions: {e}")


def _parse_registration(raw: str, source: Path) -> ClientRegistration:
    try:
        data: dict[str, Any] = json.loads(raw)
        return ClientRegistration.from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise ClientStoreError(
            f"Client registration file {source} is corrupted"
        ) from e


class JsonFileClientStore:
    """Stores the registration as a plain JSON file.

    Args:
        path: File to use (default ~/.cache/opskins-auth/client.json)
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else DEFAULT_STORE_DIR / CLIENT_FILE

    def load(self) -> ClientRegistration | None:
        if not self.path.exists():
            return None

        with _locked(self.path, shared=True):
            raw = self.path.read_text()
        return _parse_registration(raw, self.path)

    def save(self, registration: ClientRegistration) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _write_private(self.path, json.dumps(registration.to_dict(), indent=2))
        logger.debug(f"Stored client registration in {self.path}")

    def clear(self) -> bool:
        """Delete the stored registration.

        Returns:
            True if a file was removed
        """
        if not self.path.exists():
            return False
        self.path.unlink()
        return True


def _machine_key() -> bytes:
    """Fernet key derived from this machine and user.

    Only used without a keyring backend. Anyone on the same account can
    rebuild it, but the client secret is still not stored in clear text.
    """
    seed = [str(Path.home()), os.environ.get("USER") or os.environ.get("USERNAME") or "opskins-auth"]

    machine_id = Path("/etc/machine-id")
    if machine_id.exists():
        seed.insert(0, machine_id.read_text().strip())

    digest = hashlib.sha256("|".join(seed).encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class EncryptedClientStore:
    """Stores the registration encrypted with Fernet (AES-128-CBC + HMAC).

    The encryption key lives in the OS keyring; when no keyring backend is
    available a machine-derived key is used instead.

    Args:
        store_dir: Directory for the encrypted file
            (default ~/.cache/opskins-auth)
    """

    def __init__(self, store_dir: Path | str | None = None):
        self.store_dir = Path(store_dir) if store_dir else DEFAULT_STORE_DIR
        _secure_dir(self.store_dir)
        self._cipher, self._keyring_backed = self._load_cipher()

    @property
    def path(self) -> Path:
        return self.store_dir / ENCRYPTED_CLIENT_FILE

    @staticmethod
    def _load_cipher() -> tuple[Fernet, bool]:
        try:
            stored = keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
            if stored is None:
                stored = Fernet.generate_key().decode("ascii")
                keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, stored)
                logger.debug(f"Created client encryption key in keyring service {KEYRING_SERVICE}")
            return Fernet(stored.encode("ascii")), True
        except Exception as e:
            # Any backend failure (missing D-Bus, locked keychain) means no keyring
            logger.warning(f"Keyring unavailable ({type(e).__name__}: {e}), using machine-derived key")
            return Fernet(_machine_key()), False

    def is_using_keyring(self) -> bool:
        """Whether the encryption key is held by the OS keyring."""
        return self._keyring_backed

    def load(self) -> ClientRegistration | None:
        if not self.path.exists():
            return None

        with _locked(self.path, shared=True):
            token = self.path.read_bytes()

        try:
            raw = self._cipher.decrypt(token).decode("utf-8")
        except InvalidToken as e:
            raise ClientStoreDecryptionError(
                f"Cannot decrypt {self.path}. The encryption key may have changed."
            ) from e

        return _parse_registration(raw, self.path)

    def save(self, registration: ClientRegistration) -> None:
        token = self._cipher.encrypt(json.dumps(registration.to_dict()).encode("utf-8"))
        _write_private(self.path, token.decode("ascii"))
        logger.debug(f"Stored encrypted client registration in {self.path}")

    def clear(self) -> bool:
        """Delete the stored registration.

        Returns:
            True if a file was removed
        """
        if not self.path.exists():
            return False
        self.path.unlink()
        return True
