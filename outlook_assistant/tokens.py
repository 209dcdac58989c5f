"""Token and account records shared by the token store and the account registry."""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# Tokens expiring within this window are refreshed before use.
REFRESH_WINDOW_MS = 5 * 60 * 1000
DEFAULT_EXPIRES_IN = 3600


def now_ms() -> int:
    return int(time.time() * 1000)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class TokenRecord(BaseModel):
    """A bearer token with its refresh token and absolute expiry (epoch millis).

    Unknown provider fields (token_type, id_token, ...) are kept so a saved
    record round-trips unchanged.
    """
    model_config = ConfigDict(extra="allow")

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_at: int = 0
    scope: Optional[str] = None

    @classmethod
    def issue(cls, payload: dict, now: Optional[int] = None) -> "TokenRecord":
        """Build a record from a token endpoint response.

        ``expires_at`` is always recomputed from ``expires_in`` at issue time.
        """
        now = now_ms() if now is None else now
        expires_in = payload.get("expires_in") or DEFAULT_EXPIRES_IN
        data = dict(payload)
        data["expires_at"] = now + int(expires_in) * 1000
        return cls.model_validate(data)

    @classmethod
    def parse(cls, data: Any) -> Optional["TokenRecord"]:
        """Validate stored data, returning None for anything unusable."""
        if not isinstance(data, dict):
            return None
        try:
            return cls.model_validate(data)
        except ValidationError:
            return None

    def to_json(self) -> dict:
        return self.model_dump(exclude_none=True)

    def is_expired(self, now: Optional[int] = None) -> bool:
        now = now_ms() if now is None else now
        return now > self.expires_at

    def expires_within(self, window_ms: int = REFRESH_WINDOW_MS, now: Optional[int] = None) -> bool:
        now = now_ms() if now is None else now
        return now + window_ms > self.expires_at

    def is_valid(self, now: Optional[int] = None) -> bool:
        now = now_ms() if now is None else now
        return bool(self.access_token) and self.expires_at > now

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)


class Account(BaseModel):
    """An Outlook identity owned by the account registry."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_principal_name: str = Field(..., alias="userPrincipalName")
    display_name: str = Field(..., alias="displayName")
    created_at: str = Field(default_factory=utc_timestamp, alias="createdAt")
    last_used: str = Field(default_factory=utc_timestamp, alias="lastUsed")
    tokens: Optional[TokenRecord] = None

    def has_valid_tokens(self, now: Optional[int] = None) -> bool:
        return self.tokens is not None and self.tokens.is_valid(now)

    def index_entry(self) -> dict:
        """Account metadata as stored in the index file (no token material)."""
        return self.model_dump(by_alias=True, exclude={"tokens"})


class AccountSummary(BaseModel):
    """Read-only projection of an account returned by ``list_all``."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    user_principal_name: str = Field(..., alias="userPrincipalName")
    display_name: str = Field(..., alias="displayName")
    created_at: str = Field(..., alias="createdAt")
    last_used: str = Field(..., alias="lastUsed")
    has_valid_tokens: bool = Field(..., alias="hasValidTokens")
