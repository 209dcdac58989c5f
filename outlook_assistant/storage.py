"""Storage backends for the legacy single-account token record.

Two backends exist: a JSON file on disk and an in-process slot. The
process-wide slot lets a hosting environment with an ephemeral filesystem
inject a token without touching disk.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger("outlook_assistant")


class TokenStorage(Protocol):
    def read(self) -> Optional[dict]: ...

    def write(self, data: dict) -> None: ...

    def clear(self) -> None: ...

    def describe(self) -> str: ...


class MemoryTokenStorage:
    """Keeps one token document in process memory."""

    def __init__(self, data: Optional[dict] = None):
        self._data = dict(data) if data else None

    def read(self) -> Optional[dict]:
        return dict(self._data) if self._data else None

    def write(self, data: dict) -> None:
        self._data = dict(data)

    def clear(self) -> None:
        self._data = None

    def describe(self) -> str:
        return "process memory"


class FileTokenStorage:
    """Keeps one token document as pretty-printed JSON on disk.

    Reads are permissive: a missing or unparsable file reads as ``None``.
    Writes raise ``OSError`` so the caller can decide how loudly to fail.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> Optional[dict]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("Token file %s does not exist", self.path)
            return None
        except OSError as e:
            logger.warning("Could not read token file %s: %s", self.path, e)
            return None

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("Token file %s is not valid JSON: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Token file %s does not contain a JSON object", self.path)
            return None
        return data

    def write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def describe(self) -> str:
        return str(self.path)


_PROCESS_SLOT = MemoryTokenStorage()


def process_token_slot() -> MemoryTokenStorage:
    """Return the process-wide in-memory token slot."""
    return _PROCESS_SLOT
