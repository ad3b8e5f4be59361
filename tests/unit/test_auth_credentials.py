"""Unit tests for credential storage and the Linear client lifecycle."""

import pytest
from cryptography.fernet import Fernet

from mo_linear.auth.credentials import AuthError, CredentialManager, decrypt_api_key, derive_encryption_key, encrypt_api_key
from mo_linear.linear.abc import LinearClientBase
from mo_linear.linear.exceptions import LinearAPIError
from mo_linear.store.json_store import JsonTaskStore
from tests.unit.fakes import FakeLinearClient


def make_manager(store: JsonTaskStore, client: FakeLinearClient, **kwargs: object) -> CredentialManager:
    """Build a manager whose factory returns the fake client."""

    async def factory(api_key: str) -> LinearClientBase:
        return client

    return CredentialManager(store, factory, encryption_key=Fernet.generate_key(), **kwargs)


def test_derived_key_depends_on_identity() -> None:
    """Test that the derived key is stable per identity and differs across identities."""
    key = derive_encryption_key("user-host-Linux")
    assert key == derive_encryption_key("user-host-Linux")
    assert key != derive_encryption_key("other-host-Linux")


def test_encrypted_key_cannot_be_read_with_another_key() -> None:
    """Test that a credential copied to another machine cannot be decrypted."""
    token = encrypt_api_key("lin_api_secret", Fernet.generate_key())
    assert "lin_api_secret" not in token
    with pytest.raises(AuthError):
        decrypt_api_key(token, Fernet.generate_key())


@pytest.mark.asyncio
async def test_authenticate_stores_encrypted_key(store: JsonTaskStore, fake_client: FakeLinearClient) -> None:
    """Test that a validated key is stored encrypted with the chosen team."""
    manager = make_manager(store, fake_client)
    user = await manager.authenticate("lin_api_secret", "team-eng")
    assert user.name == "Ada Lovelace"

    record = await store.get_auth()
    assert record is not None
    assert record.encrypted_api_key != "lin_api_secret"
    assert record.default_team_id == "team-eng"
    assert record.user_id == "user-1"
    assert await manager.get_api_key() == "lin_api_secret"
    assert await manager.get_client() is fake_client


@pytest.mark.asyncio
async def test_rejected_key_is_not_stored(store: JsonTaskStore, fake_client: FakeLinearClient) -> None:
    """Test that a key Linear rejects raises AuthError and leaves no record."""
    fake_client.failures["get_viewer"] = LinearAPIError("Authentication required", status_code=401)
    manager = make_manager(store, fake_client)
    with pytest.raises(AuthError, match="rejected"):
        await manager.authenticate("bad-key")
    assert await store.get_auth() is None
    assert fake_client.closed is True


@pytest.mark.asyncio
async def test_environment_key_is_used_when_nothing_is_stored(store: JsonTaskStore, fake_client: FakeLinearClient) -> None:
    """Test the fallback to LINEAR_API_KEY and LINEAR_TEAM_ID."""
    manager = make_manager(store, fake_client, env_api_key="lin_api_env", env_team_id="team-env")
    assert await manager.is_authenticated() is True
    assert await manager.get_api_key() == "lin_api_env"
    assert await manager.get_default_team_id() == "team-env"


@pytest.mark.asyncio
async def test_get_client_without_credential(store: JsonTaskStore, fake_client: FakeLinearClient) -> None:
    """Test that asking for a client without any key raises AuthError."""
    manager = make_manager(store, fake_client)
    assert await manager.is_authenticated() is False
    with pytest.raises(AuthError):
        await manager.get_client()


@pytest.mark.asyncio
async def test_set_default_team_requires_stored_credential(store: JsonTaskStore, fake_client: FakeLinearClient) -> None:
    """Test that the default team can only be changed after authenticating."""
    manager = make_manager(store, fake_client)
    with pytest.raises(AuthError):
        await manager.set_default_team("team-eng")
    await manager.authenticate("lin_api_secret")
    await manager.set_default_team("team-eng")
    assert await manager.get_default_team_id() == "team-eng"


@pytest.mark.asyncio
async def test_logout_removes_record_and_closes_client(store: JsonTaskStore, fake_client: FakeLinearClient) -> None:
    """Test that logging out destroys the record and releases the client."""
    manager = make_manager(store, fake_client)
    await manager.authenticate("lin_api_secret")
    fake_client.closed = False
    assert await manager.logout() is True
    assert fake_client.closed is True
    assert await store.get_auth() is None
    assert await manager.logout() is False


@pytest.mark.asyncio
async def test_undecryptable_record_counts_as_unauthenticated(store: JsonTaskStore, fake_client: FakeLinearClient) -> None:
    """Test that a record written on another machine is treated as missing."""
    await make_manager(store, fake_client).authenticate("lin_api_secret")
    other_machine = make_manager(store, fake_client)
    assert await other_machine.is_authenticated() is False
    with pytest.raises(AuthError):
        await other_machine.get_client()
