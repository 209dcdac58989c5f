"""Pydantic input models for the MCP tools."""

from typing import Optional, List

from pydantic import BaseModel, Field, field_validator, ConfigDict


class AccountScopedInput(BaseModel):
    """Base for tools that act on behalf of one Outlook account."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    account_id: Optional[str] = Field(
        default=None,
        description="Account ID from list_accounts. Omit to use the default account."
    )


# =============================================================================
# Account / authentication tools
# =============================================================================

class AuthenticateInput(BaseModel):
    """Input for the authenticate tool."""
    model_config = ConfigDict(extra="forbid")

    force: bool = Field(default=False, description="Force re-authentication even if already authenticated")


class RemoveAccountInput(BaseModel):
    """Input for removing an account."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    account_id: str = Field(
        ...,
        description="The unique ID of the account to remove (use list_accounts to see IDs)",
        min_length=1,
    )


# =============================================================================
# Mail tools
# =============================================================================

class ListMailInput(AccountScopedInput):
    """Input for listing emails."""

    folder: str = Field(
        default="inbox",
        description="Mail folder: 'inbox', 'sentitems', 'drafts', 'deleteditems', 'junkemail', or folder ID"
    )
    top: int = Field(default=10, description="Number of messages to return", ge=1, le=50)
    skip: int = Field(default=0, description="Number of messages to skip (pagination)", ge=0)
    filter: Optional[str] = Field(
        default=None,
        description="OData filter, e.g. 'isRead eq false'"
    )
    search: Optional[str] = Field(
        default=None,
        description="Search query string to search across subject, body, and sender"
    )


class GetMailInput(AccountScopedInput):
    """Input for getting a specific email."""

    message_id: str = Field(..., description="The message ID to retrieve", min_length=1)
    include_body: bool = Field(default=True, description="Whether to include the full email body")


class SendMailInput(AccountScopedInput):
    """Input for sending an email."""

    to: List[str] = Field(..., description="List of recipient email addresses", min_length=1)
    subject: str = Field(..., description="Email subject line", min_length=1, max_length=500)
    body: str = Field(..., description="Email body content (HTML supported)")
    cc: Optional[List[str]] = Field(default=None, description="CC recipients")
    bcc: Optional[List[str]] = Field(default=None, description="BCC recipients")
    importance: str = Field(default="normal", description="'low', 'normal', or 'high'")
    is_html: bool = Field(default=True, description="Whether body is HTML (True) or plain text (False)")

    @field_validator("importance")
    @classmethod
    def validate_importance(cls, v: str) -> str:
        if v.lower() not in ("low", "normal", "high"):
            raise ValueError("importance must be 'low', 'normal', or 'high'")
        return v.lower()


class MailboxScopedInput(AccountScopedInput):
    """Base for mail tools that can act on a shared mailbox the account can access."""

    shared_mailbox: Optional[str] = Field(
        default=None,
        description="Shared mailbox address, e.g. 'info@contoso.com'. Omit for the account's own mailbox."
    )


class CreateDraftInput(MailboxScopedInput):
    """Input for creating a draft email."""

    to: List[str] = Field(..., description="List of recipient email addresses", min_length=1)
    subject: str = Field(..., description="Email subject line", min_length=1, max_length=500)
    body: str = Field(..., description="Email body content (HTML supported)")
    cc: Optional[List[str]] = Field(default=None, description="CC recipients")
    bcc: Optional[List[str]] = Field(default=None, description="BCC recipients")
    importance: str = Field(default="normal", description="'low', 'normal', or 'high'")
    is_html: bool = Field(default=True, description="Whether body is HTML (True) or plain text (False)")

    @field_validator("importance")
    @classmethod
    def validate_importance(cls, v: str) -> str:
        if v.lower() not in ("low", "normal", "high"):
            raise ValueError("importance must be 'low', 'normal', or 'high'")
        return v.lower()


class CreateReplyDraftInput(MailboxScopedInput):
    """Input for creating a reply draft."""

    message_id: str = Field(..., description="ID of the message to reply to", min_length=1)
    body: str = Field(..., description="Reply text, placed above the quoted original", min_length=1)
    reply_all: bool = Field(default=False, description="Reply to all recipients")


class MarkReadInput(MailboxScopedInput):
    """Input for marking emails as read or unread."""

    message_ids: List[str] = Field(..., description="IDs of the messages to update", min_length=1)
    is_read: bool = Field(default=True, description="True marks as read, False as unread")

    @field_validator("message_ids")
    @classmethod
    def drop_blank_ids(cls, v: List[str]) -> List[str]:
        ids = [i.strip() for i in v if i.strip()]
        if not ids:
            raise ValueError("at least one message ID is required")
        return ids


class DownloadAttachmentsInput(MailboxScopedInput):
    """Input for saving a message's attachments to disk."""

    message_id: str = Field(..., description="ID of the message whose attachments to save", min_length=1)


class ListSharedMailboxesInput(AccountScopedInput):
    """Input for checking which shared mailboxes are accessible."""

    mailboxes: Optional[List[str]] = Field(
        default=None,
        description="Mailbox addresses to check. Defaults to OUTLOOK_SHARED_MAILBOXES."
    )


class ListMailFoldersInput(AccountScopedInput):
    """Input for listing mail folders."""

    top: int = Field(default=20, description="Max folders to return", ge=1, le=50)


# =============================================================================
# Calendar tools
# =============================================================================

class ListEventsInput(AccountScopedInput):
    """Input for listing calendar events."""

    start_date: Optional[str] = Field(
        default=None,
        description="Start date in ISO format (YYYY-MM-DD). Defaults to today."
    )
    end_date: Optional[str] = Field(
        default=None,
        description="End date in ISO format (YYYY-MM-DD). Defaults to 7 days from today."
    )
    top: int = Field(default=20, description="Max events to return", ge=1, le=50)


class CreateEventInput(AccountScopedInput):
    """Input for creating a calendar event."""

    subject: str = Field(..., description="Event title/subject", min_length=1)
    start: str = Field(..., description="Start datetime in ISO format, e.g. '2025-06-15T10:00:00'")
    end: str = Field(..., description="End datetime in ISO format, e.g. '2025-06-15T11:00:00'")
    timezone: str = Field(default="UTC", description="Timezone for start/end, e.g. 'UTC', 'Europe/Rome'")
    body: Optional[str] = Field(default=None, description="Event description/body (HTML supported)")
    location: Optional[str] = Field(default=None, description="Event location name")
    attendees: Optional[List[str]] = Field(default=None, description="List of attendee email addresses")
