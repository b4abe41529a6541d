"""Errors raised by adapters when the backing store cannot be used."""


class AuthenticationError(Exception):
    """Raised when credentials are missing, expired or rejected."""

    pass


class RepositoryError(Exception):
    """Raised when a store cannot be reached or returns an unusable response."""

    pass
