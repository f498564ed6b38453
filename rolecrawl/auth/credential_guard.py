"""
Credential Guard
================
Keeps credential values out of every human-visible sink.

The guard owns the set of known secret values (resolved passwords,
identifiers, bearer tokens, cookie values).  Everything that can reach a
log line, an exception message or a generated artifact is routed through
it:

    - ``redact(text)``              — replace every secret with ``[REDACTED]``
    - ``validate_no_leaks(text)``   — raise ``CredentialLeakError`` on a hit
    - ``wrap_logger(logger)``       — ``LoggerAdapter`` that redacts its args
    - ``redacting_filter()``        — handler filter for whole-process logging

Secrets shorter than 4 characters are ignored so trivial substrings
(``"a"``, ``"123"``) don't shred unrelated output.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Pattern

from .errors import CredentialLeakError

if TYPE_CHECKING:
    from .config import AuthConfig

logger = logging.getLogger(__name__)

REDACTION_PLACEHOLDER = "[REDACTED]"

_MIN_SECRET_LENGTH = 4


class CredentialGuard:
    """Registry of secret values with redaction and leak detection.

    Usage::

        guard = CredentialGuard(auth_config)      # seeds from env vars
        guard.add_secrets([token])
        log = guard.wrap_logger(logging.getLogger(__name__))
        log.info(f"Response: {body}")             # secrets become [REDACTED]
        guard.validate_no_leaks(report_text, "docs/report.md")
    """

    def __init__(self, config: Optional["AuthConfig"] = None):
        self._secrets: set = set()
        self._lock = threading.Lock()
        self._pattern: Optional[Pattern[str]] = None
        if config is not None:
            self._load_secrets_from_config(config)

    # ── Registration ──────────────────────────────────────────────

    def add_secrets(self, secrets: Iterable[Optional[str]]) -> None:
        """Register secret values.  Empty, blank and short values are skipped."""
        with self._lock:
            added = 0
            for secret in secrets:
                if not secret or not secret.strip():
                    continue
                if len(secret) < _MIN_SECRET_LENGTH:
                    continue
                if secret not in self._secrets:
                    self._secrets.add(secret)
                    added += 1
            if added:
                self._pattern = None
                logger.debug(f"[GUARD] Registered {added} secret(s)")

    def _load_secrets_from_config(self, config: "AuthConfig") -> None:
        """Seed secrets from every env var the config references.

        Missing env vars are skipped: a role without credentials set simply
        contributes nothing here and fails later at authenticate-time.
        """
        from .config import CookieInjectionAuth, EnvVarCookies, TokenInjectionAuth

        for role in config.roles:
            creds = role.credentials
            self.add_secrets([
                os.environ.get(creds.identifier_env_var),
                os.environ.get(creds.password_env_var),
            ])

            method = role.auth_method
            if isinstance(method, TokenInjectionAuth):
                self.add_secrets([os.environ.get(method.token_env_var)])
            elif isinstance(method, CookieInjectionAuth) and isinstance(
                method.cookies, EnvVarCookies
            ):
                raw = os.environ.get(method.cookies.env_var)
                if raw:
                    self.add_secrets([raw])
                    self.add_secrets(_cookie_values(raw))

    # ── Redaction ─────────────────────────────────────────────────

    def _compiled(self) -> Optional[Pattern[str]]:
        with self._lock:
            if self._pattern is None and self._secrets:
                # Longest first: a secret embedded in a longer one must not
                # match before the longer one does.
                ordered = sorted(self._secrets, key=len, reverse=True)
                self._pattern = re.compile("|".join(re.escape(s) for s in ordered))
            return self._pattern

    def redact(self, text: str) -> str:
        """Replace every registered secret in *text* with the placeholder."""
        if not text:
            return text
        pattern = self._compiled()
        if pattern is None:
            return text
        return pattern.sub(REDACTION_PLACEHOLDER, text)

    def redact_value(self, value: Any) -> Any:
        """Redact strings inside arbitrarily nested dict/list/tuple/set data.

        Exceptions are rendered to their message and redacted; other
        scalars pass through unchanged.
        """
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, dict):
            return {
                self.redact_value(k): self.redact_value(v) for k, v in value.items()
            }
        if isinstance(value, (list, tuple, set, frozenset)):
            return type(value)(self.redact_value(v) for v in value)
        if isinstance(value, BaseException):
            return self.redact(str(value))
        return value

    # ── Leak detection ────────────────────────────────────────────

    def validate_no_leaks(self, output: str, location: str = "output") -> bool:
        """Raise ``CredentialLeakError`` if *output* contains any secret.

        The error names *location* only; the secret itself is never part
        of the message.
        """
        if not output:
            return True
        with self._lock:
            secrets = list(self._secrets)
        for secret in secrets:
            if secret in output:
                logger.error(f"[GUARD] Credential leak detected in {location}")
                raise CredentialLeakError(
                    f"Credential detected in {location}. Secret value was "
                    f"found in output.",
                    location,
                )
        return True

    # ── Logging integration ───────────────────────────────────────

    def wrap_logger(self, target: logging.Logger) -> "RedactingLoggerAdapter":
        """Return a logger that redacts its message and arguments."""
        return RedactingLoggerAdapter(target, self)

    def redacting_filter(self) -> "RedactingFilter":
        """Return a ``logging.Filter`` suitable for ``handler.addFilter``."""
        return RedactingFilter(self)

    # ── Introspection ─────────────────────────────────────────────

    @property
    def secret_count(self) -> int:
        with self._lock:
            return len(self._secrets)

    def clear(self) -> None:
        with self._lock:
            self._secrets.clear()
            self._pattern = None


class RedactingLoggerAdapter(logging.LoggerAdapter):
    """``LoggerAdapter`` that routes message and args through a guard."""

    def __init__(self, target: logging.Logger, guard: CredentialGuard):
        super().__init__(target, {})
        self.guard = guard

    def log(self, level, msg, *args, **kwargs):
        if not self.isEnabledFor(level):
            return
        msg = self.guard.redact_value(msg)
        args = tuple(self.guard.redact_value(a) for a in args)
        super().log(level, msg, *args, **kwargs)


class RedactingFilter(logging.Filter):
    """Handler filter that redacts fully formatted records.

    The message is formatted up-front (``getMessage``) so secrets hidden in
    ``%``-style args are caught, and any traceback text is pre-rendered and
    redacted into ``exc_text`` where formatters pick it up.
    """

    def __init__(self, guard: CredentialGuard):
        super().__init__()
        self.guard = guard

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.guard.redact(record.getMessage())
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self.guard.redact(record.exc_text)
        return True


def _cookie_values(raw_json: str) -> List[str]:
    """Extract ``value`` fields from a JSON cookie array (best effort)."""
    try:
        cookies = json.loads(raw_json)
    except json.JSONDecodeError:
        return []
    if not isinstance(cookies, list):
        return []
    return [
        c["value"]
        for c in cookies
        if isinstance(c, dict) and isinstance(c.get("value"), str)
    ]
