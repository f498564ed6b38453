"""
Authenticator
=============
Top-level orchestrator for role-based authentication.

One ``BrowserContext`` per role is created on first ``authenticate`` and
cached until ``re_authenticate``, ``logout`` or ``close``.  The auth method
configured for the role decides how the context gets its session:

    - ``form-login``     → ``FormLoginMethod``
    - ``storage-state``  → ``StorageStateMethod``
    - ``cookie-injection`` / ``token-injection`` / ``custom-script``
                         → fail fast (not yet implemented)

Every completed operation appends an ``AuthEvent`` (append-only, in
completion order).  Error text in events is redacted through the
``CredentialGuard`` both when recorded and again when read.

Operations on the same role are serialized by a per-role ``asyncio.Lock``;
different roles authenticate concurrently.

Usage::

    auth = Authenticator(load_auth_config("auth.json"), browser)
    context = await auth.authenticate("admin")
    ...
    if session_manager.is_session_expired(response, login_url):
        session_manager.record_reauth_attempt("admin")
        context = await auth.re_authenticate("admin")
    ...
    await auth.close()
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from playwright.async_api import Browser, BrowserContext

from .config import (
    AuthConfig,
    CookieInjectionAuth,
    CustomScriptAuth,
    FormLoginAuth,
    RoleConfig,
    StorageStateAuth,
    TokenInjectionAuth,
)
from .credential_guard import CredentialGuard
from .errors import AuthError, AuthenticationError, CredentialsNotFoundError
from .login_detector import LoginDetector
from .methods.form_login import FormLoginMethod, ResolvedCredentials
from .methods.storage_state import StorageStateMethod

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class AuthEventType(str, Enum):
    LOGIN = "login"
    RE_AUTH = "re-auth"
    LOGOUT = "logout"
    AUTH_FAILURE = "auth-failure"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class AuthEvent:
    """One completed authentication operation."""
    type: AuthEventType
    role: str
    success: bool
    timestamp: str = dataclasses.field(default_factory=_utc_timestamp)
    error: Optional[str] = None
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "type": self.type.value,
            "role": self.role,
            "success": self.success,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.duration_ms is not None:
            data["durationMs"] = self.duration_ms
        return data


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


# ---------------------------------------------------------------------------
# Authenticator
# ---------------------------------------------------------------------------

class Authenticator:
    """Owns the role → context cache and the auth event log."""

    def __init__(
        self,
        config: AuthConfig,
        browser: Browser,
        *,
        guard: Optional[CredentialGuard] = None,
        context_options: Optional[Dict[str, Any]] = None,
        form_login: Optional[FormLoginMethod] = None,
        storage_state: Optional[StorageStateMethod] = None,
    ):
        """
        Args:
            config:          Validated auth configuration.
            browser:         Playwright browser used to create contexts.
            guard:           Shared credential guard (default: seeded from config).
            context_options: Extra ``browser.new_context()`` keyword arguments.
            form_login:      Form-login implementation override.
            storage_state:   Storage-state implementation override.
        """
        self.config = config
        self.browser = browser
        self.context_options: Dict[str, Any] = dict(context_options or {})
        self._guard = guard if guard is not None else CredentialGuard(config)
        self._log = self._guard.wrap_logger(logger)
        self._form_login = form_login or FormLoginMethod(LoginDetector(), guard=self._guard)
        self._storage_state = storage_state or StorageStateMethod()

        self._contexts: Dict[str, BrowserContext] = {}
        self._events: List[AuthEvent] = []
        self._locks: Dict[str, asyncio.Lock] = {}
        # bumped by close(); logins started under an older value are discarded
        self._generation = 0

    # ── Properties ────────────────────────────────────────────────

    @property
    def credential_guard(self) -> CredentialGuard:
        return self._guard

    @property
    def contexts(self) -> Dict[str, BrowserContext]:
        """Snapshot of the role → context mapping."""
        return dict(self._contexts)

    def get_context(self, role: str) -> Optional[BrowserContext]:
        return self._contexts.get(role)

    def role_hierarchy(self) -> List[str]:
        """Role names ordered by privilege, highest first."""
        from ..roles import create_role, sort_roles_by_privilege

        roles = sort_roles_by_privilege([create_role(rc) for rc in self.config.roles])
        return [r.name for r in roles]

    # ── Authentication ────────────────────────────────────────────

    async def authenticate(self, role: str) -> BrowserContext:
        """Return an authenticated context for *role*, logging in if needed.

        Raises:
            AuthenticationError: unknown role, unimplemented method, failed
                login, or any unexpected error (wrapped, message redacted).
            CredentialsNotFoundError, LoginFormNotFoundError,
            LoginUrlUnreachableError, StorageStateNotFoundError:
                passed through unchanged.
        """
        role_config = self._require_role(role)
        async with self._lock_for(role):
            return await self._authenticate_unlocked(role_config)

    async def re_authenticate(self, role: str) -> BrowserContext:
        """Discard the role's cached context and log in again.

        Always appends a ``re-auth`` event, in addition to the nested
        ``login`` / ``auth-failure`` event.
        """
        start = time.monotonic()
        try:
            role_config = self._require_role(role)
        except AuthenticationError as exc:
            self._record(
                AuthEventType.RE_AUTH, role, False,
                error=self._guard.redact(str(exc)), duration_ms=_elapsed_ms(start),
            )
            raise

        async with self._lock_for(role):
            self._log.info(f"[AUTH] Re-authenticating role '{role}'")

            existing = self._contexts.pop(role, None)
            if existing is not None:
                await self._safe_close(role, existing)

            try:
                context = await self._authenticate_unlocked(role_config)
            except Exception as exc:
                self._record(
                    AuthEventType.RE_AUTH, role, False,
                    error=self._guard.redact(str(exc) or type(exc).__name__),
                    duration_ms=_elapsed_ms(start),
                )
                raise

            self._record(AuthEventType.RE_AUTH, role, True, duration_ms=_elapsed_ms(start))
            return context

    async def logout(self, role: str) -> None:
        """Close and forget the role's context.  No-op if never authenticated."""
        if self.config.get_role(role) is None:
            return
        async with self._lock_for(role):
            context = self._contexts.pop(role, None)
            if context is None:
                return
            await context.close()
            self._record(AuthEventType.LOGOUT, role, True)
            self._log.info(f"[AUTH] Logged out role '{role}'")

    async def _authenticate_unlocked(self, role_config: RoleConfig) -> BrowserContext:
        name = role_config.name
        cached = self._contexts.get(name)
        if cached is not None:
            return cached

        start = time.monotonic()
        generation = self._generation
        context: Optional[BrowserContext] = None
        self._log.info(
            f"[AUTH] Authenticating role '{name}' via {role_config.auth_method.type}"
        )
        try:
            context = await self.browser.new_context(**self.context_options)
            await self._perform_authentication(context, role_config)
            # close() ran while this login was in flight
            if generation != self._generation:
                raise AuthenticationError(
                    "Authenticator was closed during authentication", name
                )
        except Exception as exc:
            if context is not None:
                await self._safe_close(name, context)
            message = self._guard.redact(str(exc) or type(exc).__name__)
            self._record(
                AuthEventType.AUTH_FAILURE, name, False,
                error=message, duration_ms=_elapsed_ms(start),
            )
            self._log.error(f"[AUTH] ❌ Authentication failed for role '{name}': {message}")
            if isinstance(exc, AuthError):
                raise
            raise AuthenticationError(message, name) from exc

        self._contexts[name] = context
        duration = _elapsed_ms(start)
        self._record(AuthEventType.LOGIN, name, True, duration_ms=duration)
        self._log.info(f"[AUTH] ✅ Role '{name}' authenticated ({duration}ms)")
        return context

    async def _perform_authentication(
        self, context: BrowserContext, role_config: RoleConfig
    ) -> None:
        name = role_config.name
        method = role_config.auth_method

        if isinstance(method, FormLoginAuth):
            if self.config.login is None:
                raise AuthenticationError(
                    "Login configuration required for form-login method", name
                )
            credentials = self.resolve_credentials(name)
            success = await self._form_login.login(
                context, self.config.login, credentials, role=name
            )
            if not success:
                raise AuthenticationError("Login form submission failed", name)

        elif isinstance(method, StorageStateAuth):
            await self._storage_state.apply(context, method.path, role=name)

        elif isinstance(method, CookieInjectionAuth):
            raise AuthenticationError("Cookie injection not yet implemented", name)

        elif isinstance(method, TokenInjectionAuth):
            raise AuthenticationError("Token injection not yet implemented", name)

        elif isinstance(method, CustomScriptAuth):
            raise AuthenticationError("Custom script not yet implemented", name)

        else:
            raise AuthenticationError(f"Unknown auth method: {method!r}", name)

    # ── Credentials ───────────────────────────────────────────────

    def resolve_credentials(self, role: str) -> ResolvedCredentials:
        """Read the role's credentials from the environment.

        Both values are registered with the guard before returning.

        Raises:
            CredentialsNotFoundError: naming every unset env var.
        """
        source = self._require_role(role).credentials
        identifier = os.environ.get(source.identifier_env_var, "")
        secret = os.environ.get(source.password_env_var, "")

        missing = []
        if not identifier:
            missing.append(source.identifier_env_var)
        if not secret:
            missing.append(source.password_env_var)
        if missing:
            raise CredentialsNotFoundError(role, missing)

        self._guard.add_secrets([identifier, secret])
        return ResolvedCredentials(identifier=identifier, secret=secret)

    # ── Session state ─────────────────────────────────────────────

    async def is_session_valid(self, role: str) -> bool:
        """Best-effort check: the role's context holds at least one cookie."""
        context = self._contexts.get(role)
        if context is None:
            return False
        try:
            cookies = await context.cookies()
        except Exception as e:
            self._log.debug(f"[AUTH] Cookie read failed for role '{role}': {e}")
            return False
        return len(cookies) > 0

    async def save_storage_state(self, role: str, path: Union[str, Path]) -> Path:
        """Persist the role's current session (owner-only permissions)."""
        context = self._contexts.get(role)
        if context is None:
            raise AuthenticationError(f"No authenticated context for role '{role}'", role)
        return await self._storage_state.save(context, path)

    def get_auth_events(self) -> List[AuthEvent]:
        """All events so far, with error text redacted."""
        return [
            dataclasses.replace(e, error=self._guard.redact(e.error)) if e.error else e
            for e in self._events
        ]

    async def close(self) -> None:
        """Close every cached context.  Individual close failures are ignored.

        Logins still in flight are not cached; their contexts are closed when
        they finish and they raise ``AuthenticationError``.
        """
        self._generation += 1
        for role, context in list(self._contexts.items()):
            await self._safe_close(role, context)
        self._contexts.clear()

    # ── Internal ──────────────────────────────────────────────────

    def _require_role(self, role: str) -> RoleConfig:
        role_config = self.config.get_role(role)
        if role_config is None:
            raise AuthenticationError(f"Role '{role}' not found in configuration", role)
        return role_config

    def _lock_for(self, role: str) -> asyncio.Lock:
        lock = self._locks.get(role)
        if lock is None:
            lock = self._locks[role] = asyncio.Lock()
        return lock

    async def _safe_close(self, role: str, context: BrowserContext) -> None:
        try:
            await context.close()
        except Exception as e:
            self._log.debug(f"[AUTH] Context close error for role '{role}': {e}")

    def _record(
        self,
        event_type: AuthEventType,
        role: str,
        success: bool,
        *,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        self._events.append(
            AuthEvent(
                type=event_type,
                role=role,
                success=success,
                error=error,
                duration_ms=duration_ms,
            )
        )
