"""Contains storage and validation of the Linear API credential.

The API key is encrypted at rest with Fernet, using a key derived with PBKDF2
from machine-specific details, so the stored record is useless when copied to
another machine or user account.
"""

import base64
import getpass
import platform
import socket
from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from mo_linear.linear.abc import LinearClientBase
from mo_linear.linear.exceptions import LinearAPIError
from mo_linear.schemas.config import AuthRecord
from mo_linear.schemas.linear import User
from mo_linear.store.json_store import JsonTaskStore

logger = structlog.get_logger(__name__)

KDF_SALT = b"mo-linear-credential-store"
KDF_ITERATIONS = 390_000

ClientFactory = Callable[[str], Awaitable[LinearClientBase]]


class AuthError(Exception):
    """Raised when no usable Linear credential is available."""

    pass


def _machine_identity() -> str:
    """Combine user, host and platform into a stable identity string."""
    try:
        username = getpass.getuser()
    except (KeyError, OSError):
        username = "unknown"
    return f"mo-linear-{username}-{socket.gethostname()}-{platform.system()}"


def derive_encryption_key(identity: str | None = None) -> bytes:
    """Derive a Fernet key from a machine identity string."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=KDF_SALT, iterations=KDF_ITERATIONS)
    material = (identity if identity is not None else _machine_identity()).encode("utf-8")
    return base64.urlsafe_b64encode(kdf.derive(material))


def encrypt_api_key(api_key: str, key: bytes) -> str:
    """Encrypt an API key for storage."""
    return Fernet(key).encrypt(api_key.encode("utf-8")).decode("ascii")


def decrypt_api_key(token: str, key: bytes) -> str:
    """Decrypt a stored API key.

    Raises:
        AuthError: If the token was not produced with ``key`` or is corrupted
    """
    try:
        return Fernet(key).decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, ValueError) as exc:
        raise AuthError("Stored Linear credential cannot be decrypted on this machine. Authenticate again.") from exc


class CredentialManager:
    """Owns the stored AuthRecord and the Linear client built from it.

    A key from the environment (``LINEAR_API_KEY``) is used when nothing has
    been stored, so the server can run headless without ``linear-auth``.
    """

    def __init__(
        self,
        store: JsonTaskStore,
        client_factory: ClientFactory,
        env_api_key: str | None = None,
        env_team_id: str | None = None,
        encryption_key: bytes | None = None,
    ) -> None:
        """Initialize the manager; the encryption key is derived lazily when not given."""
        self.store = store
        self.client_factory = client_factory
        self.env_api_key = env_api_key
        self.env_team_id = env_team_id
        self._encryption_key = encryption_key
        self._client: LinearClientBase | None = None
        self._client_key: str | None = None

    @property
    def encryption_key(self) -> bytes:
        """The Fernet key used for the stored credential."""
        if self._encryption_key is None:
            self._encryption_key = derive_encryption_key()
        return self._encryption_key

    async def get_auth(self) -> AuthRecord | None:
        """Get the stored auth record."""
        return await self.store.get_auth()

    async def get_api_key(self) -> str | None:
        """Get the active API key, preferring the stored one over the environment."""
        record = await self.store.get_auth()
        if record is not None:
            return decrypt_api_key(record.encrypted_api_key, self.encryption_key)
        return self.env_api_key or None

    async def is_authenticated(self) -> bool:
        """Whether a usable API key is available."""
        try:
            return await self.get_api_key() is not None
        except AuthError:
            return False

    async def get_default_team_id(self) -> str | None:
        """Get the default team, preferring the stored one over the environment."""
        record = await self.store.get_auth()
        if record is not None and record.default_team_id:
            return record.default_team_id
        return self.env_team_id or None

    async def get_client(self) -> LinearClientBase:
        """Get a Linear client for the active API key.

        Raises:
            AuthError: If no API key is available
        """
        api_key = await self.get_api_key()
        if not api_key:
            raise AuthError("Not authenticated with Linear. Run /mo linear-auth key:<your-api-key>.")
        if self._client is None or self._client_key != api_key:
            await self.close()
            self._client = await self.client_factory(api_key)
            self._client_key = api_key
        return self._client

    async def authenticate(self, api_key: str, team_id: str | None = None) -> User:
        """Validate an API key against Linear and store it.

        Raises:
            AuthError: If Linear rejects the key
        """
        client = await self.client_factory(api_key)
        try:
            user = await client.validate_api_key()
        except LinearAPIError as exc:
            logger.warning("Linear API key validation failed", error=str(exc))
            await _close_client(client)
            raise AuthError(f"Linear rejected the API key: {exc.message}") from exc
        previous = await self.store.get_auth()
        record = AuthRecord(
            encrypted_api_key=encrypt_api_key(api_key, self.encryption_key),
            default_team_id=team_id or (previous.default_team_id if previous else None),
            user_id=user.id,
            last_authenticated=datetime.now(timezone.utc),
        )
        await self.store.set_auth(record)
        await self.close()
        self._client = client
        self._client_key = api_key
        logger.info("Authenticated with Linear", user_id=user.id, user_name=user.name, team_id=record.default_team_id)
        return user

    async def set_default_team(self, team_id: str) -> None:
        """Change the default team of the stored auth record.

        Raises:
            AuthError: If no credential has been stored
        """
        record = await self.store.get_auth()
        if record is None:
            raise AuthError("Not authenticated with Linear. Run /mo linear-auth key:<your-api-key> first.")
        record.default_team_id = team_id
        await self.store.set_auth(record)
        logger.info("Changed default Linear team", team_id=team_id)

    async def logout(self) -> bool:
        """Destroy the stored auth record. Returns False if none was stored."""
        record = await self.store.get_auth()
        await self.close()
        if record is None:
            return False
        await self.store.set_auth(None)
        logger.info("Logged out of Linear", user_id=record.user_id)
        return True

    async def close(self) -> None:
        """Close the cached client, if any."""
        if self._client is not None:
            await _close_client(self._client)
        self._client = None
        self._client_key = None


async def _close_client(client: LinearClientBase) -> None:
    aclose = getattr(client, "aclose", None)
    if aclose is not None:
        await aclose()
