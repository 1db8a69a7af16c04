"""Errors raised along the login pipeline.

ProviderError and StorageError abort a login. DirectoryUnavailable and
AccountConflict are recovered by their callers (the group resolver and
the account reconciler respectively).
LoginRequired is an expected outcome of the authorization gate.
"""


class AuthError(Exception):
    """Base class for authentication failures."""


class ProviderError(AuthError):
    """The identity provider rejected or failed the code exchange."""


class DirectoryUnavailable(AuthError):
    """The guild member lookup failed or is not configured."""


class StorageError(AuthError):
    """A persistence failure other than a uniqueness conflict."""


class AccountConflict(StorageError):
    """An account with this external ID already exists."""

    def __init__(self, external_id: str) -> None:
        super().__init__(f"Account already exists for external id {external_id}")
        self.external_id = external_id


class LoginRequired(AuthError):
    """A protected route was requested without a valid session."""
