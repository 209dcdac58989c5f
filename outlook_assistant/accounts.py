"""Multi-account registry.

Accounts are persisted in a directory: ``accounts.json`` holds the index
(account metadata keyed by id, no secrets) and each account's token record
lives in ``<id>.tokens.json`` next to it.

The server and the sign-in script can both write the directory. Index
writes happen under ``accounts.json.lock`` and merge whatever another
process wrote since the last read; files are replaced atomically so a
reader never sees a partial document.
"""

import json
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from pydantic import ValidationError

from .refresher import SingleFlight, TokenRefresher
from .tokens import REFRESH_WINDOW_MS, Account, AccountSummary, TokenRecord, utc_timestamp

logger = logging.getLogger("outlook_assistant")

INDEX_FILENAME = "accounts.json"
LOCK_FILENAME = "accounts.json.lock"
LOCK_TIMEOUT = 5.0
STALE_LOCK_AGE = 30.0

FileSignature = Tuple[int, int, int]


def _atomic_write(path: Path, text: str) -> None:
    tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise


class AccountRegistry:
    """Named Outlook accounts, each with its own token lifecycle.

    Every mutation updates the in-memory map first and then writes the
    index and token files; write failures are logged and do not undo the
    in-memory change. Queries call :meth:`sync` so accounts added, removed
    or re-authenticated by another process show up without a restart.
    """

    def __init__(self, accounts_dir: Path, refresher: TokenRefresher):
        self.accounts_dir = Path(accounts_dir)
        self.index_path = self.accounts_dir / INDEX_FILENAME
        self.lock_path = self.accounts_dir / LOCK_FILENAME
        self.refresher = refresher
        self._accounts: Dict[str, Account] = {}
        # Ids present in the index as of the last read or write.
        self._known_on_disk: Set[str] = set()
        # Ids removed here whose removal has not reached the index yet.
        self._removed: Set[str] = set()
        self._index_signature: Optional[FileSignature] = None
        self._flight = SingleFlight()
        self.load()

    # -- persistence -----------------------------------------------------

    def token_path(self, account_id: str) -> Path:
        return self.accounts_dir / f"{account_id}.tokens.json"

    def _stat_index(self) -> Optional[FileSignature]:
        try:
            st = self.index_path.stat()
        except OSError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _read_index(self) -> dict:
        index = json.loads(self.index_path.read_text(encoding="utf-8"))
        if not isinstance(index, dict):
            raise ValueError("account index is not a JSON object")
        return index

    def load(self) -> None:
        """Read the index and every account's token file from disk."""
        self._accounts = {}
        self._known_on_disk = set()
        self._index_signature = self._stat_index()
        if not self.index_path.exists():
            return
        try:
            index = self._read_index()
            for account_id, info in index.items():
                account = Account.model_validate({**info, "id": account_id})
                account.tokens = self._load_tokens(account_id)
                self._accounts[account_id] = account
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.error("Error loading accounts from %s, starting empty: %s", self.index_path, e)
            self._accounts = {}
            return
        self._known_on_disk = set(self._accounts)
        logger.info("Loaded %d account(s) from %s", len(self._accounts), self.accounts_dir)

    def sync(self) -> bool:
        """Merge changes another process made to the index since the last read.

        Returns True when the index had changed and was merged.
        """
        signature = self._stat_index()
        if signature == self._index_signature:
            return False
        if signature is None:
            index = {}
        else:
            try:
                index = self._read_index()
            except (OSError, ValueError) as e:
                logger.warning("Could not re-read account index %s: %s", self.index_path, e)
                return False
        self._merge(index)
        self._index_signature = signature
        return True

    def _merge(self, index: dict) -> None:
        """Reconcile the in-memory map with an index read from disk.

        Accounts only on disk are adopted, accounts that vanished from disk
        after being seen there are dropped, and a token file newer than the
        in-memory record replaces it. Local additions not yet written are kept.
        """
        merged: Dict[str, Account] = {}
        for account_id, info in index.items():
            if account_id in self._removed:
                continue
            local = self._accounts.get(account_id)
            try:
                stored = Account.model_validate({**info, "id": account_id})
            except (TypeError, ValidationError) as e:
                logger.warning("Skipping malformed index entry %s: %s", account_id, e)
                if local is not None:
                    merged[account_id] = local
                continue

            tokens = self._load_tokens(account_id)
            if local is None:
                stored.tokens = tokens
                merged[account_id] = stored
                logger.info("Picked up account %s (%s) from %s", stored.display_name, account_id, self.index_path)
            elif tokens is not None and (local.tokens is None or tokens.expires_at > local.tokens.expires_at):
                merged[account_id] = local.model_copy(
                    update={"tokens": tokens, "last_used": max(local.last_used, stored.last_used)}
                )
                logger.debug("Using newer tokens from disk for account %s", account_id)
            else:
                merged[account_id] = local

        for account_id, account in self._accounts.items():
            if account_id in merged:
                continue
            if account_id in self._known_on_disk:
                logger.info("Account %s was removed from %s by another process", account_id, self.index_path)
                continue
            merged[account_id] = account

        self._accounts = merged
        self._known_on_disk = {account_id for account_id in index if account_id not in self._removed}

    @contextmanager
    def _index_lock(self) -> Iterator[None]:
        """Hold the advisory lock file that serializes index writers."""
        deadline = time.monotonic() + LOCK_TIMEOUT
        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                break
            except FileExistsError:
                if self._lock_is_stale():
                    logger.warning("Removing stale lock %s", self.lock_path)
                    try:
                        self.lock_path.unlink()
                    except FileNotFoundError:
                        pass
                    continue
                if time.monotonic() >= deadline:
                    raise TimeoutError(f"timed out waiting for {self.lock_path}")
                time.sleep(0.05)
        try:
            os.write(fd, str(os.getpid()).encode())
            yield
        finally:
            os.close(fd)
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                pass

    def _lock_is_stale(self) -> bool:
        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return True
        return age > STALE_LOCK_AGE

    def _load_tokens(self, account_id: str) -> Optional[TokenRecord]:
        path = self.token_path(account_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Error loading tokens for account %s: %s", account_id, e)
            return None

        tokens = TokenRecord.parse(data)
        if tokens is None:
            logger.warning("Token file for account %s has no usable access_token", account_id)
            return None
        if tokens.is_expired():
            logger.info("Tokens for account %s have expired", account_id)
            return None
        return tokens

    def _write_index(self) -> bool:
        """Merge the on-disk index under the lock, then replace it with ours."""
        try:
            self.accounts_dir.mkdir(parents=True, exist_ok=True)
            with self._index_lock():
                if self.index_path.exists():
                    try:
                        self._merge(self._read_index())
                    except ValueError as e:
                        logger.warning("Overwriting unreadable account index %s: %s", self.index_path, e)
                index = {account_id: account.index_entry() for account_id, account in self._accounts.items()}
                _atomic_write(self.index_path, json.dumps(index, indent=2))
                self._index_signature = self._stat_index()
        except OSError as e:
            logger.error("Failed to write account index %s: %s", self.index_path, e)
            return False
        self._known_on_disk = set(index)
        self._removed.clear()
        return True

    def _write_tokens(self, account_id: str, tokens: TokenRecord) -> bool:
        path = self.token_path(account_id)
        try:
            self.accounts_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write(path, json.dumps(tokens.to_json(), indent=2))
        except OSError as e:
            logger.error("Failed to write tokens for account %s to %s: %s", account_id, path, e)
            return False
        return True

    # -- mutations -------------------------------------------------------

    def add(
        self,
        user_principal_name: str,
        display_name: Optional[str] = None,
        tokens: Optional[TokenRecord] = None,
    ) -> str:
        """Register a new account and return its generated id."""
        now = utc_timestamp()
        account = Account(
            user_principal_name=user_principal_name,
            display_name=display_name or user_principal_name,
            created_at=now,
            last_used=now,
            tokens=tokens,
        )
        self._accounts[account.id] = account
        if tokens is not None:
            self._write_tokens(account.id, tokens)
        self._write_index()
        logger.info("Added account %s (%s)", account.display_name, account.id)
        return account.id

    def remove(self, account_id: str) -> bool:
        self.sync()
        account = self._accounts.pop(account_id, None)
        if account is None:
            return False
        self._removed.add(account_id)

        try:
            self.token_path(account_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to delete token file for account %s: %s", account_id, e)

        self._write_index()
        logger.info("Removed account %s (%s)", account.display_name, account_id)
        return True

    def update_tokens(self, account_id: str, tokens: TokenRecord) -> bool:
        """Replace an account's token record and mark it as used."""
        self.sync()
        account = self._accounts.get(account_id)
        if account is None:
            return False
        self._accounts[account_id] = account.model_copy(
            update={"tokens": tokens, "last_used": utc_timestamp()}
        )
        self._write_tokens(account_id, tokens)
        self._write_index()
        return True

    # -- queries ---------------------------------------------------------

    def get(self, account_id: str) -> Optional[Account]:
        self.sync()
        return self._accounts.get(account_id)

    def __len__(self) -> int:
        return len(self._accounts)

    async def get_access_token(self, account_id: str) -> Optional[str]:
        """Return a usable access token for the account, refreshing if needed."""
        account = self.get(account_id)
        if account is None or account.tokens is None:
            return None

        tokens = account.tokens
        if tokens.expires_within(REFRESH_WINDOW_MS) and tokens.can_refresh:
            logger.info("Refreshing token for account %s", account_id)
            refreshed = await self._refresh(account_id, tokens.refresh_token)
            return refreshed.access_token if refreshed else None

        return tokens.access_token

    async def _refresh(self, account_id: str, refresh_token: str) -> Optional[TokenRecord]:
        async def _exchange() -> Optional[TokenRecord]:
            tokens = await self.refresher.refresh(refresh_token)
            if tokens is None:
                logger.warning("Token refresh failed for account %s", account_id)
                return None
            if not self.update_tokens(account_id, tokens):
                logger.warning("Account %s was removed during token refresh", account_id)
            return tokens

        return await self._flight.run(account_id, _exchange)

    def find_by_email(self, email: str) -> Optional[Account]:
        self.sync()
        wanted = email.lower()
        for account in self._accounts.values():
            if account.user_principal_name.lower() == wanted:
                return account
        return None

    def get_default(self) -> Optional[Account]:
        """First account, in insertion order, whose tokens are present and unexpired."""
        self.sync()
        for account in self._accounts.values():
            if account.has_valid_tokens():
                return account
        return None

    def list_all(self) -> List[AccountSummary]:
        self.sync()
        return [
            AccountSummary(
                id=account.id,
                user_principal_name=account.user_principal_name,
                display_name=account.display_name,
                created_at=account.created_at,
                last_used=account.last_used,
                has_valid_tokens=account.has_valid_tokens(),
            )
            for account in self._accounts.values()
        ]
