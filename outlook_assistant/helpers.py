"""Formatting helpers and error-to-text conversion for tool responses."""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

import httpx

from .exceptions import AuthenticationRequired, ConfigurationError
from .tokens import AccountSummary

AUTH_GUIDANCE = (
    "Use the 'outlook_authenticate' tool, or run `python outlook_assistant_auth.py` "
    "to sign in and add an account."
)

# Images this small are almost always signature or tracking images.
INLINE_IMAGE_MAX_BYTES = 5000
FILE_ATTACHMENT = "#microsoft.graph.fileAttachment"


def make_recipients(addresses: List[str]) -> list:
    """Convert a list of email addresses to Graph API recipient format."""
    return [{"emailAddress": {"address": addr}} for addr in addresses]


def format_graph_datetime(dt_obj: dict) -> str:
    """Format Graph API datetime object."""
    dt_str = dt_obj.get("dateTime", "")
    tz = dt_obj.get("timeZone", "UTC")
    if not dt_str:
        return "Unknown"
    try:
        dt = datetime.fromisoformat(dt_str[:19])
    except ValueError:
        return f"{dt_str} ({tz})"
    return f"{dt.strftime('%Y-%m-%d %H:%M')} ({tz})"


def format_email_summary(msg: dict) -> str:
    sender = msg.get("from", {}).get("emailAddress", {})
    received = msg.get("receivedDateTime", "")
    if received:
        received = datetime.fromisoformat(received.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M UTC")
    status = "Read" if msg.get("isRead") else "Unread"
    attachments = " [attachments]" if msg.get("hasAttachments") else ""
    return (
        f"**{msg.get('subject') or '(no subject)'}**{attachments}\n"
        f"From: {sender.get('name', 'Unknown')} <{sender.get('address', '')}>\n"
        f"Date: {received} | {status} | Importance: {msg.get('importance', 'normal')}\n"
        f"ID: `{msg.get('id', '')}`"
    )


def format_event_summary(event: dict) -> str:
    location = event.get("location", {}).get("displayName") or "No location"
    organizer = event.get("organizer", {}).get("emailAddress", {})
    online = " (online)" if event.get("isOnlineMeeting") else ""
    return (
        f"**{event.get('subject') or '(no subject)'}**{online}\n"
        f"When: {format_graph_datetime(event.get('start', {}))} -> "
        f"{format_graph_datetime(event.get('end', {}))}\n"
        f"Location: {location}\n"
        f"Organizer: {organizer.get('name', '')} <{organizer.get('address', '')}>\n"
        f"ID: `{event.get('id', '')}`"
    )


def format_account_line(index: int, account: AccountSummary) -> str:
    status = "Ready" if account.has_valid_tokens else "Needs authentication"
    last_used = account.last_used[:10]
    return (
        f"{index}. {account.display_name} [{status}]\n"
        f"   Email: {account.user_principal_name}\n"
        f"   Last used: {last_used}\n"
        f"   Account ID: {account.id}"
    )


def handle_graph_error(e: Exception) -> str:
    """Format authentication and Graph API errors into actionable messages."""
    if isinstance(e, AuthenticationRequired):
        return f"{e}. {AUTH_GUIDANCE}"
    if isinstance(e, ConfigurationError):
        return f"Configuration error: {e}"
    if isinstance(e, httpx.HTTPStatusError):
        status = e.response.status_code
        try:
            error = e.response.json().get("error")
        except ValueError:
            error = None
        error_msg = error.get("message", str(e)) if isinstance(error, dict) else str(e)

        if status == 401:
            return (
                f"Error 401: Authentication failed. The token may have been revoked. "
                f"{AUTH_GUIDANCE}\nDetail: {error_msg}"
            )
        elif status == 403:
            return f"Error 403: Insufficient permissions. Check app registration scopes.\nDetail: {error_msg}"
        elif status == 404:
            return f"Error 404: Resource not found. Verify the ID is correct.\nDetail: {error_msg}"
        elif status == 429:
            retry_after = e.response.headers.get("Retry-After", "60")
            return f"Error 429: Rate limited. Retry after {retry_after} seconds."
        return f"Error {status}: {error_msg}"
    if isinstance(e, httpx.TimeoutException):
        return "Error: Request timed out. The Graph API may be slow. Please retry."
    return f"Error: {type(e).__name__}: {str(e)}"


def mailbox_path(shared_mailbox: Optional[str] = None) -> str:
    """Graph path prefix for the signed-in user's mailbox or a shared one."""
    return f"/users/{shared_mailbox}" if shared_mailbox else "/me"


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def is_inline_image(attachment: dict) -> bool:
    """True for images embedded in the body (signatures, logos) rather than attached files."""
    if not (attachment.get("contentType") or "").startswith("image/"):
        return False
    return bool(
        attachment.get("isInline")
        or attachment.get("contentId")
        or (attachment.get("size") or 0) < INLINE_IMAGE_MAX_BYTES
    )


def save_attachment_to_disk(directory: Path, filename: str, content_bytes: bytes) -> Path:
    """Save attachment bytes under ``directory`` without overwriting existing files.

    Raises:
        OSError: If the directory cannot be created or the file written.
    """
    directory.mkdir(parents=True, exist_ok=True)

    # Path(...).name drops any directory components the sender put in the name.
    safe_filename = Path(filename).name or "attachment"

    target_path = directory / safe_filename
    counter = 1
    while target_path.exists():
        stem = Path(safe_filename).stem
        suffix = Path(safe_filename).suffix
        target_path = directory / f"{stem}_{counter}{suffix}"
        counter += 1

    target_path.write_bytes(content_bytes)
    return target_path.absolute()
