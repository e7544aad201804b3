"""Exception hierarchy for the registration workflow.

Each failure kind also derives from the matching built-in exception so callers
that only know about ``LookupError`` or ``ConnectionError`` still catch it.
"""
from __future__ import annotations


class RegistrationError(Exception):
    """Base class for every failure the workflow knows how to recover from."""

    kind = "registration"


class CredentialLookupError(RegistrationError, LookupError):
    """A numeric verification code could not be exchanged for a payload."""

    kind = "lookup"


class CredentialDecodeError(RegistrationError, ValueError):
    """A payload could not be decrypted or parsed for the given user."""

    kind = "decode"


class ClientConnectionError(RegistrationError, ConnectionError):
    """The device client could not be provisioned or connected."""

    kind = "connection"


class AlreadyPublishedError(RegistrationError, RuntimeError):
    """The session already holds a published client."""

    kind = "publish"


__all__ = [
    "RegistrationError",
    "CredentialLookupError",
    "CredentialDecodeError",
    "ClientConnectionError",
    "AlreadyPublishedError",
]
