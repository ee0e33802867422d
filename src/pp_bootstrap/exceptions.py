"""
Error taxonomy for the bootstrap pipeline.

Every failure is fatal: library code raises one of these and the CLI turns it
into a red diagnostic and exit code 1. Nothing is retried or rolled back.
"""

from __future__ import annotations


class BootstrapError(Exception):
    """Base class for all bootstrap failures."""


class SetupError(BootstrapError):
    """A required client library is not importable."""


class AuthError(BootstrapError):
    """The service principal could not obtain a token."""


class ConnectionLookupError(BootstrapError):
    """Listing connections (or resolving the environment) failed."""


class ConnectionCreateError(BootstrapError):
    """The administrative API rejected a connection creation request."""


class SettingsFileError(BootstrapError):
    """The deployment settings file is missing, unreadable or unwritable."""


class SettingsParseError(BootstrapError):
    """The deployment settings file is not valid JSON or lacks ConnectionReferences."""
