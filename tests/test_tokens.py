from __future__ import annotations

import pytest

from outlook_assistant.config import Settings
from outlook_assistant.exceptions import ConfigurationError
from outlook_assistant.storage import FileTokenStorage, MemoryTokenStorage, process_token_slot
from outlook_assistant.tokens import REFRESH_WINDOW_MS, Account, TokenRecord
from outlook_assistant_auth import graph_scopes, token_record_from_msal


def test_issue_computes_absolute_expiry_from_expires_in() -> None:
    record = TokenRecord.issue({"access_token": "a", "expires_in": 120}, now=1_000)

    assert record.expires_at == 1_000 + 120_000


def test_issue_ignores_stale_expires_at_from_payload() -> None:
    record = TokenRecord.issue({"access_token": "a", "expires_in": 60, "expires_at": 5}, now=10_000)

    assert record.expires_at == 70_000


def test_expiry_predicates() -> None:
    record = TokenRecord(access_token="a", expires_at=1_000_000)

    assert not record.is_expired(now=1_000_000)
    assert record.is_expired(now=1_000_001)
    assert record.is_valid(now=999_999)
    assert not record.is_valid(now=1_000_000)
    assert record.expires_within(REFRESH_WINDOW_MS, now=1_000_000 - REFRESH_WINDOW_MS + 1)
    assert not record.expires_within(REFRESH_WINDOW_MS, now=1_000_000 - REFRESH_WINDOW_MS)


@pytest.mark.parametrize("data", [None, "token", {}, {"access_token": ""}, {"refresh_token": "r"}])
def test_parse_rejects_unusable_documents(data) -> None:
    assert TokenRecord.parse(data) is None


def test_parse_tolerates_missing_optional_fields() -> None:
    record = TokenRecord.parse({"access_token": "a"})

    assert record.refresh_token is None
    assert record.expires_at == 0
    assert not record.can_refresh


def test_account_index_entry_uses_camel_case_and_omits_tokens() -> None:
    account = Account(user_principal_name="a@contoso.com", display_name="A", tokens=TokenRecord(access_token="x"))

    entry = account.index_entry()

    assert set(entry) == {"id", "userPrincipalName", "displayName", "createdAt", "lastUsed"}


def test_memory_storage_returns_copies() -> None:
    storage = MemoryTokenStorage()
    storage.write({"access_token": "a"})

    storage.read()["access_token"] = "mutated"

    assert storage.read() == {"access_token": "a"}


def test_process_slot_is_shared() -> None:
    assert process_token_slot() is process_token_slot()


def test_file_storage_reads_non_object_as_none(tmp_path) -> None:
    path = tmp_path / "tokens.json"
    path.write_text("[]")

    assert FileTokenStorage(path).read() is None


def test_settings_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("OUTLOOK_CLIENT_ID", raising=False)
    monkeypatch.setenv("MS_CLIENT_ID", "ms-id")
    monkeypatch.setenv("OUTLOOK_CLIENT_SECRET", "secret")
    monkeypatch.setenv("OUTLOOK_ACCOUNTS_DIR", str(tmp_path / "accts"))
    monkeypatch.setenv("OUTLOOK_TOKEN_STORAGE", "Memory")
    monkeypatch.setenv("USE_TEST_MODE", "true")
    monkeypatch.setenv("OUTLOOK_DOWNLOAD_PATH", str(tmp_path / "downloads"))
    monkeypatch.setenv("OUTLOOK_SHARED_MAILBOXES", "info@contoso.com, ,sales@contoso.com")

    settings = Settings.from_env()

    assert settings.client_id == "ms-id"
    assert settings.has_credentials
    assert settings.accounts_dir == tmp_path / "accts"
    assert settings.token_storage == "memory"
    assert settings.test_mode is True
    assert settings.download_dir == tmp_path / "downloads"
    assert settings.shared_mailboxes == ["info@contoso.com", "sales@contoso.com"]
    assert settings.token_endpoint == "https://login.microsoftonline.com/common/oauth2/v2.0/token"


def test_settings_rejects_unknown_storage() -> None:
    with pytest.raises(ValueError):
        Settings(token_storage="redis")


def test_require_credentials() -> None:
    with pytest.raises(ConfigurationError):
        Settings().require_credentials()


def test_msal_result_becomes_token_record() -> None:
    record = token_record_from_msal(
        {
            "access_token": "a",
            "refresh_token": "r",
            "expires_in": 3599,
            "scope": ["Mail.Read", "User.Read"],
            "id_token_claims": {"preferred_username": "a@contoso.com"},
        }
    )

    assert record.scope == "Mail.Read User.Read"
    assert record.refresh_token == "r"
    assert "id_token_claims" not in record.to_json()


def test_msal_scopes_exclude_reserved_scopes() -> None:
    scopes = graph_scopes(Settings())

    assert "https://graph.microsoft.com/Mail.Read" in scopes
    assert not any(s.endswith("offline_access") for s in scopes)
