"""Authentication gate and Microsoft Graph API client."""

import logging
from typing import Optional

import httpx

from .accounts import AccountRegistry
from .config import Settings
from .exceptions import AuthenticationRequired
from .refresher import TokenRefresher
from .storage import FileTokenStorage, process_token_slot
from .token_store import TokenStore

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

logger = logging.getLogger("outlook_assistant")


# =============================================================================
# Authentication Gate
# =============================================================================

class Authenticator:
    """Resolves a bearer token for a tool call.

    Resolution order: the explicit account, then the registry's default
    account, then the legacy single-account token store.
    """

    def __init__(self, registry: AccountRegistry, token_store: TokenStore):
        self.registry = registry
        self.token_store = token_store

    @classmethod
    def from_settings(cls, settings: Settings, refresher: Optional[TokenRefresher] = None) -> "Authenticator":
        refresher = refresher or TokenRefresher(settings)
        file_storage = FileTokenStorage(settings.token_path) if settings.token_storage == "file" else None
        token_store = TokenStore(refresher, memory=process_token_slot(), file=file_storage)
        registry = AccountRegistry(settings.accounts_dir, refresher)
        return cls(registry, token_store)

    async def ensure_authenticated(self, account_id: Optional[str] = None, force_new: bool = False) -> str:
        """Return a usable access token or raise :class:`AuthenticationRequired`."""
        if force_new:
            raise AuthenticationRequired("Authentication required", account_id=account_id)

        if account_id:
            token = await self.registry.get_access_token(account_id)
            if not token:
                raise AuthenticationRequired(
                    f"Authentication required for account {account_id}", account_id=account_id
                )
            return token

        default = self.registry.get_default()
        if default is not None:
            token = await self.registry.get_access_token(default.id)
            if token:
                return token
            logger.info("Default account %s has no usable token, trying legacy token", default.id)

        token = await self.token_store.get_access_token_async()
        if not token:
            raise AuthenticationRequired("Authentication required - no accounts configured")
        return token


# =============================================================================
# Microsoft Graph API Client
# =============================================================================

class GraphClient:
    """Async HTTP client for Microsoft Graph API."""

    def __init__(self, authenticator: Authenticator):
        self.auth = authenticator
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=GRAPH_BASE_URL,
                timeout=30.0,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def request(
        self, method: str, endpoint: str, account_id: Optional[str] = None, **kwargs
    ) -> dict:
        """Make an authenticated request to the Graph API."""
        token = await self.auth.ensure_authenticated(account_id)
        client = await self._get_client()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        response = await client.request(
            method, endpoint, headers=headers, **kwargs
        )
        response.raise_for_status()
        if response.status_code in (202, 204):
            return {"status": "success"}
        return response.json()

    async def get(self, endpoint: str, params: Optional[dict] = None, account_id: Optional[str] = None) -> dict:
        return await self.request("GET", endpoint, account_id=account_id, params=params)

    async def post(self, endpoint: str, json_data: Optional[dict] = None, account_id: Optional[str] = None) -> dict:
        return await self.request("POST", endpoint, account_id=account_id, json=json_data)

    async def patch(self, endpoint: str, json_data: Optional[dict] = None, account_id: Optional[str] = None) -> dict:
        return await self.request("PATCH", endpoint, account_id=account_id, json=json_data)
