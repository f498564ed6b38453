"""
Authentication Module
=====================
Role-based authentication and session management for authenticated crawls.

Architecture:
    - ``Authenticator``       — orchestrator; one browser context per role
    - ``FormLoginMethod``     — username/password form login with retry
    - ``StorageStateMethod``  — saved-session injection / persistence
    - ``LoginDetector``       — heuristic login-form detection
    - ``SessionManager``      — session-expiry detection, bounded re-auth
    - ``CredentialGuard``     — keeps credential values out of all output

Usage::

    from rolecrawl.auth import Authenticator, SessionManager, load_auth_config

    config = load_auth_config("auth.json")
    auth = Authenticator(config, browser)
    context = await auth.authenticate("admin")
"""

from .config import (
    AuthConfig,
    LoginConfig,
    LoginSelectors,
    RoleConfig,
    SessionTimeoutConfig,
    load_auth_config,
    validate_auth_config,
)
from .credential_guard import CredentialGuard
from .errors import (
    AuthConfigError,
    AuthError,
    AuthErrorCode,
    AuthenticationError,
    CredentialLeakError,
    CredentialsNotFoundError,
    LoginFormNotFoundError,
    LoginUrlUnreachableError,
    SessionExpiredError,
    StorageStateNotFoundError,
)
from .login_detector import LoginDetector
from .methods import FormLoginMethod, ResolvedCredentials, StorageStateMethod
from .session_manager import SessionManager
from .authenticator import AuthEvent, AuthEventType, Authenticator

__all__ = [
    # Orchestration
    "Authenticator",
    "AuthEvent",
    "AuthEventType",
    "SessionManager",
    "CredentialGuard",
    # Methods
    "FormLoginMethod",
    "StorageStateMethod",
    "ResolvedCredentials",
    "LoginDetector",
    # Config
    "AuthConfig",
    "LoginConfig",
    "LoginSelectors",
    "RoleConfig",
    "SessionTimeoutConfig",
    "load_auth_config",
    "validate_auth_config",
    # Errors
    "AuthError",
    "AuthErrorCode",
    "AuthenticationError",
    "AuthConfigError",
    "CredentialLeakError",
    "CredentialsNotFoundError",
    "LoginFormNotFoundError",
    "LoginUrlUnreachableError",
    "SessionExpiredError",
    "StorageStateNotFoundError",
]
