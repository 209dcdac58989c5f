"""Environment-driven settings for the server, the token store and the account registry."""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import ConfigurationError

SERVER_NAME = "outlook-assistant"
SERVER_VERSION = "1.0.0"

TOKEN_ENDPOINT_AUTHORITY = "https://login.microsoftonline.com/common"

GRAPH_SCOPES = [
    "Mail.Read",
    "Mail.ReadWrite",
    "Mail.Send",
    "User.Read",
    "Calendars.Read",
    "Calendars.ReadWrite",
    "offline_access",
]


def _env(*names: str, default: str = "") -> str:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


class Settings(BaseModel):
    """Runtime configuration.

    Built from the environment by :meth:`from_env`; tests construct it
    directly with explicit paths.
    """
    model_config = ConfigDict(extra="forbid")

    client_id: str = ""
    client_secret: str = ""
    tenant_id: str = "common"
    authority: str = TOKEN_ENDPOINT_AUTHORITY
    scopes: List[str] = Field(default_factory=lambda: list(GRAPH_SCOPES))
    token_path: Path = Field(default_factory=lambda: Path.home() / ".outlook-mcp-tokens.json")
    accounts_dir: Path = Field(default_factory=lambda: Path.home() / ".outlook-mcp-accounts")
    token_storage: str = "file"
    refresh_timeout: float = Field(default=30.0, gt=0)
    redirect_uri: str = "http://localhost:5000/callback"
    download_dir: Path = Field(default_factory=lambda: Path.home() / "Downloads" / "outlook_attachments")
    shared_mailboxes: List[str] = Field(default_factory=list)
    test_mode: bool = False
    log_level: str = "INFO"

    @field_validator("token_storage")
    @classmethod
    def validate_token_storage(cls, v: str) -> str:
        if v.lower() not in ("file", "memory"):
            raise ValueError("token_storage must be 'file' or 'memory'")
        return v.lower()

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def require_credentials(self) -> None:
        if not self.has_credentials:
            raise ConfigurationError(
                "OUTLOOK_CLIENT_ID and OUTLOOK_CLIENT_SECRET must be set "
                "(MS_CLIENT_ID / MS_CLIENT_SECRET are also accepted)"
            )

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority.rstrip('/')}/oauth2/v2.0/token"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        values = {
            "client_id": _env("OUTLOOK_CLIENT_ID", "MS_CLIENT_ID"),
            "client_secret": _env("OUTLOOK_CLIENT_SECRET", "MS_CLIENT_SECRET"),
            "tenant_id": _env("OUTLOOK_TENANT_ID", default="common"),
            "token_storage": _env("OUTLOOK_TOKEN_STORAGE", default="file"),
            "refresh_timeout": float(_env("OUTLOOK_REFRESH_TIMEOUT", default="30")),
            "redirect_uri": _env("OUTLOOK_REDIRECT_URI", default="http://localhost:5000/callback"),
            "test_mode": _env("USE_TEST_MODE").lower() == "true",
            "log_level": _env("LOG_LEVEL", default="INFO").upper(),
        }
        token_path = _env("OUTLOOK_TOKEN_PATH")
        if token_path:
            values["token_path"] = Path(token_path).expanduser()
        accounts_dir = _env("OUTLOOK_ACCOUNTS_DIR")
        if accounts_dir:
            values["accounts_dir"] = Path(accounts_dir).expanduser()
        download_dir = _env("OUTLOOK_DOWNLOAD_PATH")
        if download_dir:
            values["download_dir"] = Path(download_dir).expanduser()
        shared = _env("OUTLOOK_SHARED_MAILBOXES")
        if shared:
            values["shared_mailboxes"] = [m.strip() for m in shared.split(",") if m.strip()]
        return cls(**values)
