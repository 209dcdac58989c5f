"""Exceptions raised at the authentication boundary."""


class OutlookAuthError(Exception):
    pass


class AuthenticationRequired(OutlookAuthError):
    """No usable bearer token could be produced for the request."""

    def __init__(self, message: str = "Authentication required", account_id: str = None):
        super().__init__(message)
        self.account_id = account_id


class ConfigurationError(OutlookAuthError):
    pass
