"""
Session Manager
===============
Detects expired sessions mid-crawl and bounds re-authentication.

Expiry signals (configured, OR-ed in order):
    - ``status-code``        — response status in a configured set
    - ``redirect-to-login``  — response landed on the login page
                               (scheme + host + path; query ignored)
    - ``element-visible``    — a "session expired" element on the page
                               (page-level only, see ``check_page_for_expiry``)

Re-authentication is counted per role.  Exceeding ``max_reauth_attempts``
raises ``SessionExpiredError``; the crawl loop must stop using the role
rather than retry.  A successful page load should call
``reset_reauth_counter``.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional
from urllib.parse import urlparse

from playwright.async_api import Page, Response

from .config import (
    ElementVisibleExpiry,
    ExpiryIndicator,
    RedirectToLoginExpiry,
    SessionTimeoutConfig,
    StatusCodeExpiry,
)
from .errors import SessionExpiredError

logger = logging.getLogger(__name__)


def _same_page(url_a: str, url_b: str) -> bool:
    a, b = urlparse(url_a), urlparse(url_b)
    if not a.netloc or not b.netloc:
        return False
    return (
        a.scheme.lower() == b.scheme.lower()
        and a.netloc.lower() == b.netloc.lower()
        and (a.path or "/") == (b.path or "/")
    )


class SessionManager:
    """Session-expiry detection plus a bounded per-role re-auth counter."""

    def __init__(self, config: Optional[SessionTimeoutConfig] = None):
        self.config = config or SessionTimeoutConfig()
        self._reauth_attempts: Dict[str, int] = {}

    @property
    def max_reauth_attempts(self) -> int:
        return self.config.max_reauth_attempts

    # ── Expiry detection ──────────────────────────────────────────

    def is_session_expired(self, response: Response, login_url: str) -> bool:
        """True if *response* indicates the session has expired."""
        status = response.status
        response_url = response.url

        for indicator in self.config.expiry_indicators:
            if self._check_indicator(indicator, status, response_url, login_url):
                logger.info(
                    f"[SESSION] Expiry detected ({indicator.type}) — "
                    f"HTTP {status} {response_url[:80]}"
                )
                return True
        return False

    @staticmethod
    def _check_indicator(
        indicator: ExpiryIndicator, status: int, response_url: str, login_url: str
    ) -> bool:
        if isinstance(indicator, StatusCodeExpiry):
            return status in indicator.codes
        if isinstance(indicator, RedirectToLoginExpiry):
            return _same_page(response_url, login_url)
        if isinstance(indicator, ElementVisibleExpiry):
            # Needs the page; handled by check_page_for_expiry()
            return False
        raise TypeError(f"Unknown expiry indicator: {indicator!r}")

    async def check_page_for_expiry(self, page: Page) -> bool:
        """True if any configured ``element-visible`` expiry selector matches."""
        for indicator in self.config.expiry_indicators:
            if not isinstance(indicator, ElementVisibleExpiry):
                continue
            try:
                if await page.locator(indicator.selector).count() > 0:
                    logger.info(
                        f"[SESSION] Expiry element visible: {indicator.selector}"
                    )
                    return True
            except Exception as e:
                logger.debug(f"[SESSION] Expiry selector check error: {e}")
        return False

    # ── Re-auth accounting ────────────────────────────────────────

    def record_reauth_attempt(self, role: str) -> int:
        """Count one re-authentication for *role*.

        Returns:
            The new attempt count.

        Raises:
            SessionExpiredError: the attempt would exceed the bound; the
                counter stays at the bound.
        """
        attempts = self._reauth_attempts.get(role, 0) + 1
        if attempts > self.max_reauth_attempts:
            logger.error(
                f"[SESSION] Max re-auth attempts ({self.max_reauth_attempts}) "
                f"exceeded for role '{role}'"
            )
            raise SessionExpiredError(role, self.max_reauth_attempts)

        self._reauth_attempts[role] = attempts
        logger.info(
            f"[SESSION] Re-auth attempt {attempts}/{self.max_reauth_attempts} "
            f"for role '{role}'"
        )
        return attempts

    def reset_reauth_counter(self, role: str) -> None:
        self._reauth_attempts.pop(role, None)

    def get_reauth_attempts(self, role: str) -> int:
        return self._reauth_attempts.get(role, 0)
