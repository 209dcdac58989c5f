"""Legacy single-account token store.

Older deployments keep one token record in a JSON file (and, on hosts with an
ephemeral filesystem, in a process-wide memory slot). The account registry
takes precedence whenever it has a usable account; this store is the
fallback.
"""

import asyncio
import logging
import secrets
from typing import Optional, Set

from .refresher import SingleFlight, TokenRefresher
from .storage import TokenStorage, process_token_slot
from .tokens import REFRESH_WINDOW_MS, TokenRecord, now_ms

logger = logging.getLogger("outlook_assistant")

_FLIGHT_KEY = "legacy"


class TokenStore:
    """One bearer-token record with an in-process cache.

    The memory slot is always written on save and consulted first on load;
    the file backend, when configured, is best effort.
    """

    def __init__(
        self,
        refresher: TokenRefresher,
        memory: Optional[TokenStorage] = None,
        file: Optional[TokenStorage] = None,
    ):
        self.refresher = refresher
        self.memory = memory if memory is not None else process_token_slot()
        self.file = file
        self._cached: Optional[TokenRecord] = None
        self._flight = SingleFlight()
        self._background: Set[asyncio.Task] = set()
        self.background_failures = 0

    def _read_stored(self) -> Optional[TokenRecord]:
        data = self.memory.read()
        if data is not None:
            logger.debug("Loading legacy token from %s", self.memory.describe())
            record = TokenRecord.parse(data)
            if record is not None:
                return record
            logger.warning("Ignoring malformed token in %s", self.memory.describe())

        if self.file is None:
            return None
        data = self.file.read()
        if data is None:
            return None
        record = TokenRecord.parse(data)
        if record is None:
            logger.warning("Token file %s has no usable access_token", self.file.describe())
        return record

    async def load(self) -> Optional[TokenRecord]:
        """Return the stored record, refreshing it first if it has expired.

        An expired record without a refresh token yields None.
        """
        try:
            record = self._read_stored()
        except Exception:
            logger.exception("Unexpected error loading the legacy token")
            return None
        if record is None:
            return None

        if record.is_expired():
            if record.can_refresh:
                logger.info("Legacy token has expired, attempting refresh")
                return await self.refresh(record.refresh_token)
            logger.info("Legacy token has expired and has no refresh token")
            return None

        self._cached = record
        return record

    def save(self, record: TokenRecord) -> None:
        """Store ``record`` in memory, then try to write it to disk."""
        self._cached = record
        self.memory.write(record.to_json())
        if self.file is None:
            return
        try:
            self.file.write(record.to_json())
            logger.debug("Legacy token saved to %s", self.file.describe())
        except OSError as e:
            logger.error(
                "Failed to write legacy token to %s, keeping it in memory only: %s",
                self.file.describe(), e,
            )

    def clear(self) -> None:
        self._cached = None
        self.memory.clear()
        if self.file is not None:
            try:
                self.file.clear()
            except OSError as e:
                logger.error("Failed to delete token file %s: %s", self.file.describe(), e)

    async def refresh(self, refresh_token: str) -> Optional[TokenRecord]:
        """Refresh and save; concurrent callers share one exchange."""

        async def _exchange() -> Optional[TokenRecord]:
            record = await self.refresher.refresh(refresh_token)
            if record is not None:
                self.save(record)
            return record

        return await self._flight.run(_FLIGHT_KEY, _exchange)

    def get_access_token_sync(self) -> Optional[str]:
        """Return the cached access token without any I/O.

        When the token is inside the refresh window a background refresh is
        scheduled, but the current (possibly soon-to-expire) token is still
        returned. An expired token with no refresh token yields None. Use
        :meth:`get_access_token_async` for a guaranteed-fresh token.
        """
        record = self._cached
        if record is None:
            record = TokenRecord.parse(self.memory.read())
            if record is None:
                return None
            self._cached = record

        if record.expires_within(REFRESH_WINDOW_MS) and record.can_refresh:
            self._schedule_background_refresh(record.refresh_token)
        elif record.is_expired():
            logger.debug("Cached legacy token has expired and has no refresh token")
            return None

        return record.access_token

    def _schedule_background_refresh(self, refresh_token: str) -> None:
        if self._background or self._flight.in_flight(_FLIGHT_KEY):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; skipping background token refresh")
            return
        logger.info("Legacy token expires soon, refreshing in the background")
        task = loop.create_task(self.refresh(refresh_token))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.background_failures += 1
            logger.error("Background token refresh raised: %r", exc)
        elif task.result() is None:
            self.background_failures += 1
            logger.warning("Background token refresh failed; the cached token is unchanged")

    async def get_access_token_async(self) -> Optional[str]:
        """Return an access token that is not inside the refresh window."""
        record = await self.load()
        if record is None:
            return None

        if record.expires_within(REFRESH_WINDOW_MS) and record.can_refresh:
            logger.info("Legacy token expires soon, refreshing")
            record = await self.refresh(record.refresh_token)
            return record.access_token if record else None

        return record.access_token

    def create_test_token(self) -> TokenRecord:
        """Save a synthetic one-hour token; never contacts the identity provider."""
        stamp = now_ms()
        record = TokenRecord(
            access_token=f"test_access_token_{stamp}_{secrets.token_hex(4)}",
            refresh_token=f"test_refresh_token_{stamp}",
            expires_at=stamp + 3600 * 1000,
        )
        self.save(record)
        logger.info("Created test token (expires in 1 hour)")
        return record
