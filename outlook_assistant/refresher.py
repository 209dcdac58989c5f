"""OAuth2 refresh-token exchange against the Microsoft identity platform."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, TypeVar

import httpx
from pydantic import ValidationError

from .config import Settings
from .tokens import TokenRecord

logger = logging.getLogger("outlook_assistant")

T = TypeVar("T")


class SingleFlight:
    """Coalesces concurrent calls that share a key into one running task.

    The first caller for a key starts the task; callers arriving while it is
    in flight await the same result. The key is released once the task ends.
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._tasks

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda _t, k=key: self._tasks.pop(k, None))
        # Shield so one cancelled waiter does not cancel the shared exchange.
        return await asyncio.shield(task)


class TokenRefresher:
    """Exchanges refresh tokens for new token records.

    Failures never raise: an unusable response, a network error or a timeout
    all resolve to ``None`` so callers only need a null check.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = http_client
        self._owns_client = http_client is None
        self._config_error_logged = False

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.settings.refresh_timeout)
            self._owns_client = True
        return self._client

    async def aclose(self):
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    def _credentials_missing(self) -> bool:
        if self.settings.has_credentials:
            return False
        if not self._config_error_logged:
            logger.error(
                "Cannot refresh tokens: OUTLOOK_CLIENT_ID and OUTLOOK_CLIENT_SECRET must be set"
            )
            self._config_error_logged = True
        return True

    async def refresh(self, refresh_token: str) -> Optional[TokenRecord]:
        """Exchange ``refresh_token`` for a new token record, or return None."""
        if not refresh_token or self._credentials_missing():
            return None

        form = {
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "scope": " ".join(self.settings.scopes),
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        client = await self._get_client()
        try:
            response = await client.post(
                self.settings.token_endpoint,
                data=form,
                timeout=self.settings.refresh_timeout,
            )
        except httpx.TimeoutException:
            logger.warning("Token refresh timed out after %ss", self.settings.refresh_timeout)
            return None
        except httpx.HTTPError as e:
            logger.warning("Network error during token refresh: %s: %s", type(e).__name__, e)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Token refresh returned a non-JSON body (HTTP %s)", response.status_code)
            return None

        if response.status_code != 200 or not isinstance(payload, dict) or not payload.get("access_token"):
            error = payload.get("error", "unknown") if isinstance(payload, dict) else "unknown"
            description = payload.get("error_description", "") if isinstance(payload, dict) else ""
            logger.warning(
                "Token refresh failed (HTTP %s): %s %s",
                response.status_code, error, str(description).splitlines()[0] if description else "",
            )
            return None

        if not payload.get("refresh_token"):
            payload["refresh_token"] = refresh_token

        try:
            record = TokenRecord.issue(payload)
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Token refresh returned an unusable token response: %s", type(e).__name__)
            return None

        logger.info("Token refresh successful")
        return record
