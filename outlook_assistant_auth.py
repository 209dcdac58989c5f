"""
Outlook Assistant MCP - Account Setup
=====================================
Signs in to Microsoft in the browser and stores the account's tokens so the
MCP server can act on its behalf. Run it once per Outlook account.

Usage:
    python outlook_assistant_auth.py               # add an account
    python outlook_assistant_auth.py --legacy      # write the single-account token file
    python outlook_assistant_auth.py --list        # show configured accounts
    python outlook_assistant_auth.py --remove ID   # remove an account

Environment variables required:
    OUTLOOK_CLIENT_ID      - Azure AD App client ID
    OUTLOOK_CLIENT_SECRET  - Azure AD App client secret
    OUTLOOK_TENANT_ID      - Azure AD tenant ID (or 'common' for multi-tenant)
"""

import argparse
import sys
import webbrowser
from http.server import HTTPServer, BaseHTTPRequestHandler
from urllib.parse import urlparse, parse_qs

import msal

from outlook_assistant.accounts import AccountRegistry
from outlook_assistant.config import Settings
from outlook_assistant.exceptions import ConfigurationError
from outlook_assistant.refresher import TokenRefresher
from outlook_assistant.storage import FileTokenStorage, MemoryTokenStorage
from outlook_assistant.token_store import TokenStore
from outlook_assistant.tokens import TokenRecord

# msal adds offline_access itself and rejects it in the scope list.
RESERVED_SCOPES = {"offline_access", "openid", "profile"}


def graph_scopes(settings: Settings) -> list:
    return [
        f"https://graph.microsoft.com/{s}" for s in settings.scopes if s not in RESERVED_SCOPES
    ]


class CallbackHandler(BaseHTTPRequestHandler):
    """HTTP handler to capture the OAuth callback."""

    query = None

    def do_GET(self):
        params = parse_qs(urlparse(self.path).query)

        if "code" in params or "error" in params:
            CallbackHandler.query = {k: v[0] for k, v in params.items()}
            ok = "code" in params
            self.send_response(200 if ok else 400)
            self.send_header("Content-type", "text/html")
            self.end_headers()
            message = (
                "Authorization successful. You can close this window."
                if ok else f"Authorization failed: {params['error'][0]}"
            )
            self.wfile.write(
                f"<html><body style='font-family: system-ui; text-align: center; "
                f"margin-top: 100px;'><h1>{message}</h1></body></html>".encode()
            )
        else:
            self.send_response(404)
            self.end_headers()

    def log_message(self, format, *args):
        pass  # Suppress default logging


def token_record_from_msal(result: dict) -> TokenRecord:
    """Convert an msal token result into a stored token record."""
    scope = result.get("scope")
    if isinstance(scope, list):
        scope = " ".join(scope)
    payload = {
        "access_token": result["access_token"],
        "refresh_token": result.get("refresh_token"),
        "expires_in": result.get("expires_in"),
        "token_type": result.get("token_type", "Bearer"),
        "scope": scope,
    }
    return TokenRecord.issue({k: v for k, v in payload.items() if v is not None})


def sign_in(settings: Settings) -> dict:
    """Run the authorization-code flow and return the msal result."""
    app = msal.ConfidentialClientApplication(
        client_id=settings.client_id,
        client_credential=settings.client_secret,
        authority=f"https://login.microsoftonline.com/{settings.tenant_id}",
    )
    flow = app.initiate_auth_code_flow(
        scopes=graph_scopes(settings),
        redirect_uri=settings.redirect_uri,
        prompt="select_account",
    )
    if "auth_uri" not in flow:
        raise ConfigurationError(f"Failed to create authorization URL: {flow}")

    redirect = urlparse(settings.redirect_uri)
    print("Opening browser for Microsoft login...")
    print(f"If the browser doesn't open, visit:\n{flow['auth_uri']}\n")
    webbrowser.open(flow["auth_uri"])

    print(f"Waiting for authorization callback on {settings.redirect_uri} ...")
    server = HTTPServer((redirect.hostname or "localhost", redirect.port or 80), CallbackHandler)
    try:
        while CallbackHandler.query is None:
            server.handle_request()
    finally:
        server.server_close()

    return app.acquire_token_by_auth_code_flow(flow, CallbackHandler.query)


def list_accounts(registry: AccountRegistry) -> None:
    accounts = registry.list_all()
    if not accounts:
        print("No accounts configured.")
        return
    for account in accounts:
        status = "ready" if account.has_valid_tokens else "needs authentication"
        print(f"{account.id}  {account.user_principal_name}  ({account.display_name}, {status})")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Add or manage Outlook accounts for the MCP server.")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--legacy", action="store_true", help="store the token in the single-account token file")
    group.add_argument("--list", action="store_true", help="list configured accounts")
    group.add_argument("--remove", metavar="ACCOUNT_ID", help="remove an account and its tokens")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    refresher = TokenRefresher(settings)
    registry = AccountRegistry(settings.accounts_dir, refresher)

    if args.list:
        list_accounts(registry)
        return
    if args.remove:
        if not registry.remove(args.remove):
            print(f"No account with ID '{args.remove}'.")
            sys.exit(1)
        print(f"Removed account {args.remove}.")
        return

    try:
        settings.require_credentials()
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        print()
        print("Register an app at https://entra.microsoft.com with redirect URI")
        print(f"  {settings.redirect_uri}")
        print("and delegated Microsoft Graph permissions:")
        for scope in settings.scopes:
            print(f"  - {scope}")
        sys.exit(1)

    result = sign_in(settings)
    if "access_token" not in result:
        print("Authentication failed!")
        print(f"   Error: {result.get('error', 'unknown')}")
        print(f"   Description: {result.get('error_description', 'N/A')}")
        sys.exit(1)

    tokens = token_record_from_msal(result)
    claims = result.get("id_token_claims") or {}
    email = claims.get("preferred_username") or claims.get("email") or "unknown"
    name = claims.get("name")

    if args.legacy:
        TokenStore(refresher, memory=MemoryTokenStorage(), file=FileTokenStorage(settings.token_path)).save(tokens)
        print(f"Authentication successful. Token saved to {settings.token_path}")
        return

    existing = registry.find_by_email(email)
    if existing is not None:
        registry.update_tokens(existing.id, tokens)
        print(f"Re-authenticated {email}. Account ID: {existing.id}")
    else:
        account_id = registry.add(email, name, tokens)
        print(f"Added account {email}. Account ID: {account_id}")
    if not tokens.can_refresh:
        print("Warning: no refresh token was issued; the account will need to sign in again in about an hour.")


if __name__ == "__main__":
    main()
