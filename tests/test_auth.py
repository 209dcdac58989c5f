from __future__ import annotations

import httpx
import pytest

from conftest import expired_tokens, live_tokens
from outlook_assistant.accounts import AccountRegistry
from outlook_assistant.auth import Authenticator, GraphClient
from outlook_assistant.exceptions import AuthenticationRequired
from outlook_assistant.storage import FileTokenStorage, MemoryTokenStorage
from outlook_assistant.token_store import TokenStore


@pytest.fixture
def legacy_file(settings) -> FileTokenStorage:
    return FileTokenStorage(settings.token_path)


@pytest.fixture
def authenticator(settings, refresher, legacy_file) -> Authenticator:
    registry = AccountRegistry(settings.accounts_dir, refresher)
    store = TokenStore(refresher, memory=MemoryTokenStorage(), file=legacy_file)
    return Authenticator(registry, store)


@pytest.mark.asyncio
async def test_force_new_always_requires_authentication(authenticator) -> None:
    authenticator.registry.add("a@contoso.com", tokens=live_tokens())
    authenticator.token_store.save(live_tokens("legacy"))

    with pytest.raises(AuthenticationRequired, match="Authentication required"):
        await authenticator.ensure_authenticated(None, True)


@pytest.mark.asyncio
async def test_explicit_account_is_used(authenticator) -> None:
    authenticator.registry.add("a@contoso.com", tokens=live_tokens("a-token"))
    b_id = authenticator.registry.add("b@contoso.com", tokens=live_tokens("b-token"))

    assert await authenticator.ensure_authenticated(b_id) == "b-token"


@pytest.mark.asyncio
async def test_explicit_account_does_not_fall_back(authenticator) -> None:
    authenticator.token_store.save(live_tokens("legacy"))

    with pytest.raises(AuthenticationRequired) as excinfo:
        await authenticator.ensure_authenticated("unknown-account")
    assert excinfo.value.account_id == "unknown-account"


@pytest.mark.asyncio
async def test_invalid_grant_for_account_requires_authentication(authenticator, token_endpoint) -> None:
    token_endpoint.fail_with(400, {"error": "invalid_grant"})
    account_id = authenticator.registry.add("a@contoso.com", tokens=expired_tokens())

    with pytest.raises(AuthenticationRequired, match="Authentication required"):
        await authenticator.ensure_authenticated(account_id)


@pytest.mark.asyncio
async def test_default_account_takes_precedence_over_legacy(authenticator) -> None:
    authenticator.registry.add("a@contoso.com", tokens=expired_tokens(refresh_token=None))
    authenticator.registry.add("b@contoso.com", tokens=live_tokens("b-token"))
    authenticator.token_store.save(live_tokens("legacy"))

    assert await authenticator.ensure_authenticated() == "b-token"


@pytest.mark.asyncio
async def test_legacy_file_is_used_when_no_accounts_exist(settings, refresher, legacy_file) -> None:
    legacy_file.write(live_tokens("legacy-from-disk").to_json())
    authenticator = Authenticator(
        AccountRegistry(settings.accounts_dir, refresher),
        TokenStore(refresher, memory=MemoryTokenStorage(), file=legacy_file),
    )

    assert await authenticator.ensure_authenticated() == "legacy-from-disk"


@pytest.mark.asyncio
async def test_legacy_is_used_when_accounts_are_stale(authenticator) -> None:
    authenticator.registry.add("a@contoso.com", tokens=expired_tokens(refresh_token=None))
    authenticator.token_store.save(live_tokens("legacy"))

    assert await authenticator.ensure_authenticated() == "legacy"


@pytest.mark.asyncio
async def test_malformed_legacy_refresh_requires_authentication(authenticator, token_endpoint) -> None:
    token_endpoint.fail_with(200, {"access_token": "a", "expires_in": "soon"})
    authenticator.token_store.save(expired_tokens(refresh_token="old-refresh"))

    with pytest.raises(AuthenticationRequired, match="Authentication required"):
        await authenticator.ensure_authenticated()
    assert len(token_endpoint.requests) == 1


@pytest.mark.asyncio
async def test_malformed_account_refresh_requires_authentication(authenticator, token_endpoint) -> None:
    token_endpoint.fail_with(200, {"access_token": 42})
    account_id = authenticator.registry.add("a@contoso.com", tokens=expired_tokens())

    with pytest.raises(AuthenticationRequired) as excinfo:
        await authenticator.ensure_authenticated(account_id)
    assert excinfo.value.account_id == account_id


@pytest.mark.asyncio
async def test_nothing_configured_requires_authentication(authenticator) -> None:
    with pytest.raises(AuthenticationRequired, match="no accounts configured"):
        await authenticator.ensure_authenticated()


def test_from_settings_memory_storage_skips_token_file(settings, refresher) -> None:
    memory_settings = settings.model_copy(update={"token_storage": "memory"})

    authenticator = Authenticator.from_settings(memory_settings, refresher)

    assert authenticator.token_store.file is None
    assert authenticator.registry.accounts_dir == settings.accounts_dir


@pytest.mark.asyncio
async def test_graph_client_sends_bearer_token_for_account(authenticator) -> None:
    account_id = authenticator.registry.add("a@contoso.com", tokens=live_tokens("a-token"))
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["authorization"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        return httpx.Response(200, json={"displayName": "Alice"})

    graph = GraphClient(authenticator)
    graph._client = httpx.AsyncClient(
        base_url="https://graph.microsoft.com/v1.0", transport=httpx.MockTransport(handler)
    )

    data = await graph.get("/me", account_id=account_id)

    assert data == {"displayName": "Alice"}
    assert seen == {"authorization": "Bearer a-token", "path": "/v1.0/me"}
    await graph.close()
