"""
Authentication Errors
=====================
Structured exception hierarchy for the auth subsystem.

Every error carries a stable ``code`` (``AUTH001`` … ``AUTH008``) and a
``user_message()`` remediation hint for CLI output.  None of the messages
may ever contain a resolved credential value: errors only ever reference
role names, env-var *names*, URLs, selectors and file paths.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional


class AuthErrorCode(str, Enum):
    """Error codes surfaced to the CLI."""

    AUTH001 = "AUTH001"  # Authentication failed
    AUTH002 = "AUTH002"  # Login form not detected
    AUTH003 = "AUTH003"  # Session expired, re-auth failed
    AUTH004 = "AUTH004"  # Credentials not found
    AUTH005 = "AUTH005"  # Storage state not found
    AUTH006 = "AUTH006"  # Invalid auth config
    AUTH007 = "AUTH007"  # Credential leak detected
    AUTH008 = "AUTH008"  # Login URL unreachable


class AuthError(Exception):
    """Base class for all auth subsystem errors."""

    code: AuthErrorCode = AuthErrorCode.AUTH001

    def user_message(self) -> str:
        return f"{self.code.value}: {self}"


class AuthenticationError(AuthError):
    """Generic role authentication failure.

    Raised for unknown roles, unimplemented auth methods, failed form
    submissions, and as the wrapper for unexpected errors (the original
    exception is chained as ``__cause__``).
    """

    code = AuthErrorCode.AUTH001

    def __init__(self, message: str, role: str = ""):
        super().__init__(message)
        self.role = role

    def user_message(self) -> str:
        return (
            f"{self.code.value}: Authentication failed for role "
            f"'{self.role}'. {self}"
        )


class LoginFormNotFoundError(AuthError):
    """No usable password field under configured or detected selectors."""

    code = AuthErrorCode.AUTH002

    def __init__(self, login_url: str, attempted_selectors: Optional[List[str]] = None):
        super().__init__(f"Login form not detected at {login_url}")
        self.login_url = login_url
        self.attempted_selectors: List[str] = list(attempted_selectors or [])

    def user_message(self) -> str:
        attempted = ""
        if self.attempted_selectors:
            attempted = (
                f" Attempted selectors: {', '.join(self.attempted_selectors)}."
            )
        return (
            f"{self.code.value}: Login form not detected at {self.login_url}."
            f"{attempted} Provide manual selectors with --username-selector, "
            f"--password-selector, --submit-selector."
        )


class SessionExpiredError(AuthError):
    """Re-authentication attempts for a role are exhausted."""

    code = AuthErrorCode.AUTH003

    def __init__(self, role: str, reauth_attempts: int):
        super().__init__(
            f"Session expired for role '{role}' after {reauth_attempts} "
            f"re-authentication attempts"
        )
        self.role = role
        self.reauth_attempts = reauth_attempts

    def user_message(self) -> str:
        return (
            f"{self.code.value}: Session expired, re-authentication failed for "
            f"role '{self.role}' after {self.reauth_attempts} attempts. "
            f"Check if credentials are still valid."
        )


class CredentialsNotFoundError(AuthError):
    """Required credential env vars are not set (names only, never values)."""

    code = AuthErrorCode.AUTH004

    def __init__(self, role: str, missing_vars: List[str]):
        super().__init__(
            f"Credentials not found for role '{role}': "
            f"missing {', '.join(missing_vars)}"
        )
        self.role = role
        self.missing_vars: List[str] = list(missing_vars)

    def user_message(self) -> str:
        return (
            f"{self.code.value}: Credentials not found in environment. "
            f"Set {', '.join(self.missing_vars)} environment variable(s)."
        )


class StorageStateNotFoundError(AuthError):
    """A referenced storage-state snapshot file does not exist."""

    code = AuthErrorCode.AUTH005

    def __init__(self, path: str):
        super().__init__(f"Storage state file not found: {path}")
        self.path = path

    def user_message(self) -> str:
        return (
            f"{self.code.value}: Storage state file not found: {self.path}. "
            f"Run 'python -m rolecrawl login' or 'python -m rolecrawl "
            f"bootstrap' to create the state file."
        )


class AuthConfigError(AuthError):
    """The auth configuration is malformed."""

    code = AuthErrorCode.AUTH006

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.details = details

    def user_message(self) -> str:
        details = f" {self.details}" if self.details else ""
        return (
            f"{self.code.value}: Invalid auth config: {self}.{details} "
            f"See the config schema in the documentation."
        )


class CredentialLeakError(AuthError):
    """A registered secret was found verbatim in output text."""

    code = AuthErrorCode.AUTH007

    def __init__(self, message: str, location: str):
        super().__init__(message)
        self.location = location

    def user_message(self) -> str:
        return (
            f"{self.code.value}: SECURITY: Credential leak detected in "
            f"{self.location}. {self}"
        )


class LoginUrlUnreachableError(AuthError):
    """Navigation to the login page never succeeded.

    ``detail`` is a pre-scrubbed description of the last failure
    (e.g. ``HTTP 404 response``); it is never the raw exception text.
    """

    code = AuthErrorCode.AUTH008

    def __init__(self, login_url: str, detail: str = ""):
        super().__init__(f"Login URL unreachable: {login_url}")
        self.login_url = login_url
        self.detail = detail

    def user_message(self) -> str:
        detail = f": {self.detail}" if self.detail else ""
        return (
            f"{self.code.value}: Login URL unreachable or incorrect: "
            f"{self.login_url}{detail}. Verify the URL is correct and "
            f"accessible."
        )
