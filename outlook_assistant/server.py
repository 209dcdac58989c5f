"""
Outlook Assistant MCP Server - Tool definitions and server lifecycle.

Account management tools plus Outlook mail and calendar tools. Every Graph
call goes through the authentication gate, which picks the requested
account, the default account, or the legacy single-account token.
"""

import base64
import binascii
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from contextlib import asynccontextmanager

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.server import Context

from .auth import Authenticator, GraphClient
from .config import SERVER_NAME, SERVER_VERSION, Settings
from .exceptions import AuthenticationRequired, ConfigurationError
from .models import (
    AuthenticateInput, RemoveAccountInput,
    ListMailInput, GetMailInput, SendMailInput, ListMailFoldersInput,
    CreateDraftInput, CreateReplyDraftInput, MarkReadInput, DownloadAttachmentsInput,
    ListSharedMailboxesInput,
    ListEventsInput, CreateEventInput,
)
from .helpers import (
    AUTH_GUIDANCE, FILE_ATTACHMENT, make_recipients, format_email_summary, format_event_summary,
    format_graph_datetime, format_account_line, handle_graph_error,
    mailbox_path, format_size, is_inline_image, save_attachment_to_disk,
)
from .refresher import TokenRefresher

logger = logging.getLogger("outlook_assistant")


# =============================================================================
# MCP Server Setup
# =============================================================================

@asynccontextmanager
async def app_lifespan(app):
    """Build the token store, account registry and Graph client; close HTTP clients on shutdown."""
    settings = Settings.from_env()

    if not settings.has_credentials and not settings.test_mode:
        logger.warning(
            "OUTLOOK_CLIENT_ID and OUTLOOK_CLIENT_SECRET must be set. "
            "The server will start but token refresh will fail until configured."
        )

    refresher = TokenRefresher(settings)
    authenticator = Authenticator.from_settings(settings, refresher)
    graph = GraphClient(authenticator)
    logger.info(
        "Loaded %d account(s); legacy token storage: %s",
        len(authenticator.registry), settings.token_storage,
    )

    try:
        yield {"settings": settings, "auth": authenticator, "graph": graph}
    finally:
        await graph.close()
        await refresher.aclose()


mcp = FastMCP("Outlook_Assistant_MCP", lifespan=app_lifespan)


def _state(ctx: Context) -> Dict[str, Any]:
    return ctx.request_context.lifespan_context


def _get_graph(ctx: Context) -> GraphClient:
    """Extract GraphClient from context."""
    return _state(ctx)["graph"]


# =============================================================================
# ACCOUNT TOOLS
# =============================================================================

@mcp.tool(
    name="outlook_about",
    annotations={
        "title": "About This Server",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def outlook_about(ctx: Context = None) -> str:
    """Describe the server and its capabilities."""
    return (
        f"Outlook Assistant MCP Server v{SERVER_VERSION} ({SERVER_NAME})\n\n"
        "Provides access to Microsoft Outlook email and calendar through the "
        "Microsoft Graph API, for one or more signed-in accounts."
    )


@mcp.tool(
    name="outlook_authenticate",
    annotations={
        "title": "Authenticate with Microsoft",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def outlook_authenticate(params: AuthenticateInput, ctx: Context = None) -> str:
    """Authenticate with Microsoft Graph API to access Outlook data.

    In test mode a synthetic one-hour token is stored. Otherwise, returns
    instructions for signing in with the account setup script.

    Returns:
        str: Authentication status or sign-in instructions.
    """
    state = _state(ctx)
    settings: Settings = state["settings"]
    auth: Authenticator = state["auth"]

    if settings.test_mode:
        if params.force:
            auth.token_store.clear()
        auth.token_store.create_test_token()
        return "Successfully authenticated with Microsoft Graph API (test mode)"

    if not params.force:
        try:
            await auth.ensure_authenticated()
            return "Already authenticated. Use force=true to sign in again or add another account."
        except AuthenticationRequired:
            pass

    try:
        settings.require_credentials()
    except ConfigurationError as e:
        return handle_graph_error(e)

    return (
        "Authentication required. Run the account setup script on the machine "
        "hosting this server:\n\n"
        "    python outlook_assistant_auth.py\n\n"
        "It opens a Microsoft sign-in page and stores the account's tokens. "
        "Run it again to add more accounts."
    )


@mcp.tool(
    name="outlook_check_auth_status",
    annotations={
        "title": "Check Authentication Status",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def outlook_check_auth_status(ctx: Context = None) -> str:
    """Check the current authentication status for all configured accounts.

    Returns:
        str: Per-account readiness plus the legacy token status.
    """
    auth: Authenticator = _state(ctx)["auth"]
    accounts = auth.registry.list_all()
    legacy_token = auth.token_store.get_access_token_sync()

    if not accounts and not legacy_token:
        return f"No accounts configured. {AUTH_GUIDANCE}"

    lines = []
    for account in accounts:
        status = "Ready" if account.has_valid_tokens else "Needs authentication"
        lines.append(f"- {account.display_name} ({account.user_principal_name}): {status}")
    result = "**Account Status**\n\n" + ("\n".join(lines) if lines else "No named accounts.")
    result += f"\n\nTotal accounts: {len(accounts)}"
    result += f"\nLegacy token: {'present' if legacy_token else 'none'}"
    return result


@mcp.tool(
    name="outlook_list_accounts",
    annotations={
        "title": "List Outlook Accounts",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def outlook_list_accounts(ctx: Context = None) -> str:
    """List all configured Outlook accounts with their status.

    Returns:
        str: Numbered account list with emails, last use and account IDs.
    """
    auth: Authenticator = _state(ctx)["auth"]
    accounts = auth.registry.list_all()
    if not accounts:
        return f"No accounts configured. {AUTH_GUIDANCE}"

    body = "\n\n".join(format_account_line(i, a) for i, a in enumerate(accounts, start=1))
    return f"**Configured Accounts**\n\n{body}"


@mcp.tool(
    name="outlook_remove_account",
    annotations={
        "title": "Remove Outlook Account",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def outlook_remove_account(params: RemoveAccountInput, ctx: Context = None) -> str:
    """Remove an Outlook account and delete its stored tokens.

    Returns:
        str: Confirmation, or a hint when the account ID is unknown.
    """
    auth: Authenticator = _state(ctx)["auth"]
    account = auth.registry.get(params.account_id)
    if account is None:
        return (
            f"Account with ID '{params.account_id}' not found. "
            "Use outlook_list_accounts to see available accounts."
        )
    if not auth.registry.remove(params.account_id):
        return f"Failed to remove account with ID '{params.account_id}'"
    return f"Removed account: {account.display_name} ({account.user_principal_name})"


# =============================================================================
# EMAIL TOOLS
# =============================================================================

FOLDER_ALIASES = {
    "inbox": "inbox",
    "sentitems": "sentItems",
    "sent": "sentItems",
    "drafts": "drafts",
    "deleteditems": "deletedItems",
    "trash": "deletedItems",
    "junkemail": "junkEmail",
    "junk": "junkEmail",
    "archive": "archive",
}


@mcp.tool(
    name="outlook_list_mail",
    annotations={
        "title": "List Outlook Emails",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def outlook_list_mail(params: ListMailInput, ctx: Context = None) -> str:
    """List emails from an Outlook mailbox folder with filtering and search.

    Returns:
        str: Formatted list of email summaries with subject, sender, date, and IDs.
    """
    try:
        graph = _get_graph(ctx)
        folder = FOLDER_ALIASES.get(params.folder.lower(), params.folder)
        query: Dict[str, Any] = {
            "$top": params.top,
            "$select": "id,subject,from,receivedDateTime,isRead,importance,hasAttachments,bodyPreview",
        }
        if params.search:
            # Graph rejects $search combined with $orderby and $skip.
            query["$search"] = f'"{params.search}"'
        else:
            query["$skip"] = params.skip
            query["$orderby"] = "receivedDateTime desc"
        if params.filter:
            query["$filter"] = params.filter

        data = await graph.get(
            f"/me/mailFolders/{folder}/messages", params=query, account_id=params.account_id
        )
        messages = data.get("value", [])
        if not messages:
            return f"No messages found in '{params.folder}'"

        result = f"**{params.folder.title()}**: {len(messages)} messages (skip: {params.skip})\n\n"
        result += "\n\n---\n\n".join(format_email_summary(m) for m in messages)
        if data.get("@odata.nextLink"):
            result += f"\n\n*More messages available. Use skip={params.skip + params.top} for next page.*"
        return result
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_get_mail",
    annotations={
        "title": "Get Email Details",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def outlook_get_mail(params: GetMailInput, ctx: Context = None) -> str:
    """Get the full details of a specific email by its ID.

    Returns:
        str: Full email details in formatted text.
    """
    try:
        graph = _get_graph(ctx)
        select = "id,subject,from,toRecipients,ccRecipients,receivedDateTime,importance,isRead,hasAttachments"
        if params.include_body:
            select += ",body"
        data = await graph.get(
            f"/me/messages/{params.message_id}", params={"$select": select}, account_id=params.account_id
        )

        def _people(key: str) -> str:
            return ", ".join(
                f"{r['emailAddress'].get('name', '')} <{r['emailAddress'].get('address', '')}>"
                for r in data.get(key, [])
            )

        sender = data.get("from", {}).get("emailAddress", {})
        result = f"# {data.get('subject') or '(no subject)'}\n\n"
        result += f"**From:** {sender.get('name', '')} <{sender.get('address', '')}>\n"
        result += f"**To:** {_people('toRecipients')}\n"
        if data.get("ccRecipients"):
            result += f"**CC:** {_people('ccRecipients')}\n"
        result += f"**Date:** {data.get('receivedDateTime', '')}\n"
        result += f"**Importance:** {data.get('importance', 'normal')}\n"
        result += f"**Read:** {'Yes' if data.get('isRead') else 'No'}\n"
        result += f"**Has Attachments:** {'Yes' if data.get('hasAttachments') else 'No'}\n"

        if params.include_body:
            body = data.get("body", {})
            result += f"\n---\n\n**Body** ({body.get('contentType', 'text')}):\n\n{body.get('content', '')}"
        return result
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_send_mail",
    annotations={
        "title": "Send Email",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def outlook_send_mail(params: SendMailInput, ctx: Context = None) -> str:
    """Send an email through Outlook.

    Returns:
        str: Confirmation message with details.
    """
    try:
        graph = _get_graph(ctx)
        message: Dict[str, Any] = {
            "subject": params.subject,
            "body": {
                "contentType": "HTML" if params.is_html else "Text",
                "content": params.body,
            },
            "toRecipients": make_recipients(params.to),
            "importance": params.importance,
        }
        if params.cc:
            message["ccRecipients"] = make_recipients(params.cc)
        if params.bcc:
            message["bccRecipients"] = make_recipients(params.bcc)

        await graph.post(
            "/me/sendMail",
            json_data={"message": message, "saveToSentItems": True},
            account_id=params.account_id,
        )
        return f"Email sent successfully!\n**To:** {', '.join(params.to)}\n**Subject:** {params.subject}"
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_create_draft",
    annotations={
        "title": "Create Draft Email",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def outlook_create_draft(params: CreateDraftInput, ctx: Context = None) -> str:
    """Create a draft email in the Drafts folder without sending it.

    Creates a message via POST /me/messages (or /users/{mailbox}/messages for
    a shared mailbox). The draft can later be edited in Outlook or sent.

    Returns:
        str: Confirmation with draft ID for later reference.
    """
    try:
        graph = _get_graph(ctx)
        payload: Dict[str, Any] = {
            "subject": params.subject,
            "body": {
                "contentType": "HTML" if params.is_html else "Text",
                "content": params.body,
            },
            "toRecipients": make_recipients(params.to),
            "importance": params.importance,
        }
        if params.cc:
            payload["ccRecipients"] = make_recipients(params.cc)
        if params.bcc:
            payload["bccRecipients"] = make_recipients(params.bcc)

        result = await graph.post(
            f"{mailbox_path(params.shared_mailbox)}/messages",
            json_data=payload,
            account_id=params.account_id,
        )
        return (
            f"Draft created successfully!\n"
            f"**To:** {', '.join(params.to)}\n"
            f"**Subject:** {params.subject}\n"
            f"**Draft ID:** `{result.get('id', 'unknown')}`"
        )
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_create_reply_draft",
    annotations={
        "title": "Create Reply Draft",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def outlook_create_reply_draft(params: CreateReplyDraftInput, ctx: Context = None) -> str:
    """Create a draft reply (or reply-all) to an email without sending it.

    Returns:
        str: Confirmation with the draft ID, subject and recipients.
    """
    try:
        graph = _get_graph(ctx)
        action = "createReplyAll" if params.reply_all else "createReply"
        draft = await graph.post(
            f"{mailbox_path(params.shared_mailbox)}/messages/{params.message_id}/{action}",
            json_data={"comment": params.body},
            account_id=params.account_id,
        )
        recipients = ", ".join(
            r.get("emailAddress", {}).get("address", "") for r in draft.get("toRecipients", [])
        )
        mode = "Reply-all" if params.reply_all else "Reply"
        return (
            f"{mode} draft created successfully!\n"
            f"**To:** {recipients or 'N/A'}\n"
            f"**Subject:** {draft.get('subject') or '(no subject)'}\n"
            f"**Draft ID:** `{draft.get('id', 'unknown')}`"
        )
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_mark_read",
    annotations={
        "title": "Mark Emails Read or Unread",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def outlook_mark_read(params: MarkReadInput, ctx: Context = None) -> str:
    """Mark one or more emails as read or unread.

    Each message is updated on its own; one failure does not stop the rest.

    Returns:
        str: Per-message outcome plus success and failure counts.
    """
    try:
        graph = _get_graph(ctx)
        root = mailbox_path(params.shared_mailbox)
        state = "read" if params.is_read else "unread"
        lines = []
        failed = 0
        for message_id in params.message_ids:
            try:
                await graph.patch(
                    f"{root}/messages/{message_id}",
                    json_data={"isRead": params.is_read},
                    account_id=params.account_id,
                )
                lines.append(f"- `{message_id}`: marked as {state}")
            except httpx.HTTPError as e:
                failed += 1
                lines.append(f"- `{message_id}`: failed ({handle_graph_error(e).splitlines()[0]})")

        succeeded = len(params.message_ids) - failed
        return (
            f"**Read status update**: {succeeded} marked as {state}, {failed} failed\n\n"
            + "\n".join(lines)
        )
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_download_attachments",
    annotations={
        "title": "Download Email Attachments",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def outlook_download_attachments(params: DownloadAttachmentsInput, ctx: Context = None) -> str:
    """Save an email's file attachments to the local download directory.

    Inline images (signatures, logos) and attached Outlook items are listed
    but not saved. Files never overwrite existing ones; a numeric suffix is
    added instead.

    Returns:
        str: One entry per attachment with its outcome and saved path.
    """
    try:
        graph = _get_graph(ctx)
        settings: Settings = _state(ctx)["settings"]
        endpoint = f"{mailbox_path(params.shared_mailbox)}/messages/{params.message_id}/attachments"
        data = await graph.get(endpoint, account_id=params.account_id)
        attachments = data.get("value", [])
        if not attachments:
            return "No attachments found in this email."

        entries = []
        saved = 0
        for attachment in attachments:
            name = attachment.get("name") or f"attachment_{attachment.get('id', '')}"
            header = (
                f"**{name}** ({attachment.get('contentType') or 'unknown'}, "
                f"{format_size(attachment.get('size') or 0)})"
            )
            if attachment.get("@odata.type", FILE_ATTACHMENT) != FILE_ATTACHMENT:
                entries.append(f"{header}\n   Skipped: not a file attachment")
                continue
            if is_inline_image(attachment):
                entries.append(f"{header}\n   Skipped: inline image")
                continue

            try:
                content = attachment.get("contentBytes")
                if content is None:
                    full = await graph.get(f"{endpoint}/{attachment.get('id', '')}", account_id=params.account_id)
                    content = full.get("contentBytes")
                if not content:
                    entries.append(f"{header}\n   Failed: no content received")
                    continue
                path = save_attachment_to_disk(settings.download_dir, name, base64.b64decode(content))
            except (httpx.HTTPError, binascii.Error, OSError) as e:
                logger.warning("Failed to save attachment %s: %s", name, e)
                entries.append(f"{header}\n   Failed: {e}")
                continue
            saved += 1
            entries.append(f"{header}\n   Saved to: {path}")

        return (
            f"**Attachments**: {saved} of {len(attachments)} saved to {settings.download_dir}\n\n"
            + "\n\n".join(entries)
        )
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_list_shared_mailboxes",
    annotations={
        "title": "List Shared Mailboxes",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def outlook_list_shared_mailboxes(params: ListSharedMailboxesInput, ctx: Context = None) -> str:
    """Show the personal mailbox and which shared mailboxes the account can open.

    Graph has no endpoint that enumerates delegated mailboxes, so each
    candidate address is checked by reading its inbox folder.

    Returns:
        str: The personal mailbox plus accessible and inaccessible shared mailboxes.
    """
    try:
        graph = _get_graph(ctx)
        settings: Settings = _state(ctx)["settings"]
        me = await graph.get(
            "/me", params={"$select": "displayName,mail,userPrincipalName"}, account_id=params.account_id
        )
        result = "**Mailboxes**\n\n"
        result += (
            f"Personal mailbox: {me.get('displayName', 'N/A')} "
            f"({me.get('mail') or me.get('userPrincipalName', 'N/A')})\n"
        )

        candidates = params.mailboxes or settings.shared_mailboxes
        if not candidates:
            return result + (
                "\nNo shared mailboxes to check. Pass `mailboxes` or set OUTLOOK_SHARED_MAILBOXES "
                "to a comma-separated list of addresses."
            )

        accessible, denied = [], []
        for mailbox in candidates:
            try:
                await graph.get(
                    f"/users/{mailbox}/mailFolders/inbox",
                    params={"$select": "id,displayName"},
                    account_id=params.account_id,
                )
                accessible.append(mailbox)
            except httpx.HTTPStatusError as e:
                logger.debug("Shared mailbox %s not accessible: HTTP %s", mailbox, e.response.status_code)
                denied.append(mailbox)

        result += "\n**Accessible shared mailboxes:**\n"
        result += "\n".join(f"- {m}" for m in accessible) if accessible else "None"
        if denied:
            result += "\n\n**Not accessible:**\n" + "\n".join(f"- {m}" for m in denied)
        result += "\n\nPass `shared_mailbox` to the draft, reply-draft, mark-read and attachment tools to use one."
        return result
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_list_folders",
    annotations={
        "title": "List Mail Folders",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def outlook_list_folders(params: ListMailFoldersInput, ctx: Context = None) -> str:
    """List all mail folders in the mailbox.

    Returns:
        str: List of folders with names, IDs, and message counts.
    """
    try:
        graph = _get_graph(ctx)
        data = await graph.get(
            "/me/mailFolders",
            params={"$top": params.top, "$select": "id,displayName,totalItemCount,unreadItemCount"},
            account_id=params.account_id,
        )
        folders = data.get("value", [])
        if not folders:
            return "No mail folders found."

        result = "**Mail Folders**\n\n"
        for f in folders:
            unread = f.get("unreadItemCount", 0)
            unread_badge = f" ({unread} unread)" if unread else ""
            result += (
                f"- **{f['displayName']}**{unread_badge}: "
                f"{f.get('totalItemCount', 0)} items | ID: `{f['id']}`\n"
            )
        return result
    except Exception as e:
        return handle_graph_error(e)


# =============================================================================
# CALENDAR TOOLS
# =============================================================================

@mcp.tool(
    name="outlook_list_events",
    annotations={
        "title": "List Calendar Events",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def outlook_list_events(params: ListEventsInput, ctx: Context = None) -> str:
    """List calendar events within a date range (default: the next 7 days).

    Returns:
        str: Formatted list of calendar events with details.
    """
    try:
        graph = _get_graph(ctx)
        now = datetime.now(timezone.utc)
        start = params.start_date or now.strftime("%Y-%m-%dT00:00:00")
        end = params.end_date or (now + timedelta(days=7)).strftime("%Y-%m-%dT23:59:59")
        if "T" not in start:
            start += "T00:00:00"
        if "T" not in end:
            end += "T23:59:59"

        data = await graph.get(
            "/me/calendarView",
            params={
                "startDateTime": start,
                "endDateTime": end,
                "$top": params.top,
                "$orderby": "start/dateTime",
                "$select": "id,subject,start,end,location,organizer,isOnlineMeeting,isCancelled",
            },
            account_id=params.account_id,
        )
        events = [e for e in data.get("value", []) if not e.get("isCancelled")]
        if not events:
            return f"No events found between {start[:10]} and {end[:10]}"

        result = f"**Calendar Events** ({start[:10]} -> {end[:10]})\n\n"
        result += "\n\n---\n\n".join(format_event_summary(e) for e in events)
        return result
    except Exception as e:
        return handle_graph_error(e)


@mcp.tool(
    name="outlook_create_event",
    annotations={
        "title": "Create Calendar Event",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def outlook_create_event(params: CreateEventInput, ctx: Context = None) -> str:
    """Create a new calendar event with optional attendees.

    Returns:
        str: Confirmation with the new event ID and details.
    """
    try:
        graph = _get_graph(ctx)
        event_body: Dict[str, Any] = {
            "subject": params.subject,
            "start": {"dateTime": params.start, "timeZone": params.timezone},
            "end": {"dateTime": params.end, "timeZone": params.timezone},
        }
        if params.body:
            event_body["body"] = {"contentType": "HTML", "content": params.body}
        if params.location:
            event_body["location"] = {"displayName": params.location}
        if params.attendees:
            event_body["attendees"] = [
                {"emailAddress": {"address": email}, "type": "required"}
                for email in params.attendees
            ]

        data = await graph.post("/me/events", json_data=event_body, account_id=params.account_id)

        result = "Event created!\n"
        result += f"**Subject:** {params.subject}\n"
        result += (
            f"**When:** {format_graph_datetime(event_body['start'])} -> "
            f"{format_graph_datetime(event_body['end'])}\n"
        )
        if params.location:
            result += f"**Location:** {params.location}\n"
        result += f"**Event ID:** `{data.get('id', 'N/A')}`"
        return result
    except Exception as e:
        return handle_graph_error(e)


# =============================================================================
# USER INFO TOOL
# =============================================================================

@mcp.tool(
    name="outlook_get_profile",
    annotations={
        "title": "Get User Profile",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def outlook_get_profile(account_id: str = None, ctx: Context = None) -> str:
    """Get the profile of the signed-in user (default account unless account_id is given).

    Returns:
        str: User profile with name, email, job title, etc.
    """
    try:
        graph = _get_graph(ctx)
        data = await graph.get(
            "/me",
            params={"$select": "displayName,mail,userPrincipalName,jobTitle,department,officeLocation"},
            account_id=account_id,
        )
        result = "**User Profile**\n\n"
        result += f"**Name:** {data.get('displayName', 'N/A')}\n"
        result += f"**Email:** {data.get('mail') or data.get('userPrincipalName', 'N/A')}\n"
        result += f"**Job Title:** {data.get('jobTitle') or 'N/A'}\n"
        result += f"**Department:** {data.get('department') or 'N/A'}\n"
        result += f"**Office:** {data.get('officeLocation') or 'N/A'}\n"
        return result
    except Exception as e:
        return handle_graph_error(e)


# =============================================================================
# Entry Point
# =============================================================================

def main():
    """Run the MCP server (stdio or HTTP transport)."""
    settings = Settings.from_env()
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if "--http" in sys.argv:
        port = 8000
        for i, arg in enumerate(sys.argv):
            if arg == "--port" and i + 1 < len(sys.argv):
                port = int(sys.argv[i + 1])
        logger.info("Starting Outlook Assistant MCP server on http://localhost:%d", port)
        mcp.settings.port = port
        mcp.run(transport="streamable-http")
    else:
        mcp.run()  # stdio transport (default for Claude Desktop)


if __name__ == "__main__":
    main()
