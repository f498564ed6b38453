"""
Login Detector
==============
Heuristic login-form detection and post-submit success evaluation.

Detection walks a prioritized selector bank per field category and takes
the first selector that resolves to at least one element:

    - password    — REQUIRED; no match means "no login form on this page"
    - identifier  — username / email input
    - submit      — sign-in button
    - form        — the form container

Configured selectors are re-checked with ``validate_selectors()`` before
they are trusted, so markup drift on the target site falls back to
auto-detection instead of failing outright.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlparse

from playwright.async_api import Page

from .config import (
    CookieAbsentIndicator,
    CookiePresentIndicator,
    ElementHiddenIndicator,
    ElementVisibleIndicator,
    LoginConfig,
    LoginSelectors,
    SuccessIndicator,
    UrlPatternIndicator,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Auto-detection selector banks (tried in order)
# ---------------------------------------------------------------------------

PASSWORD_SELECTORS: List[str] = [
    'input[type="password"]',
    '#password', '#pass', '#Password', '#pwd',
    'input[name="password"]', 'input[name="pass"]', 'input[name="pwd"]',
    'input[name="passwd"]',            # Microsoft
    'input[name="j_password"]',        # Java EE / SAML
    '[data-testid*="password"]',
    '[aria-label*="password" i]',
]

IDENTIFIER_SELECTORS: List[str] = [
    'input[type="email"]',
    '#email', '#username', '#user', '#user_login',
    'input[name="email"]', 'input[name="username"]',
    'input[name="user"]', 'input[name="login"]',
    'input[name="loginfmt"]',          # Microsoft / Azure AD
    'input[name="j_username"]',        # Java EE / SAML
    'input[type="text"][autocomplete="email"]',
    'input[type="text"][autocomplete="username"]',
    '[data-testid*="email"]',
    '[data-testid*="username"]',
    '[aria-label*="email" i]',
    '[aria-label*="username" i]',
]

SUBMIT_SELECTORS: List[str] = [
    'button[type="submit"]',
    '#login-button', '#login-btn', '#loginButton', '#submit',
    '#wp-submit',                      # WordPress
    'button:has-text("Sign in")',
    'button:has-text("Log in")',
    'button:has-text("Login")',
    'input[type="submit"]',
    '[data-testid*="login"]',
    '[data-testid*="submit"]',
]

FORM_SELECTORS: List[str] = [
    'form#login',
    'form#signin',
    'form.login-form',
    'form.signin-form',
    'form[action*="login"]',
    'form[action*="signin"]',
    '[data-testid*="login-form"]',
]


class LoginDetector:
    """Locates login form fields and evaluates success indicators.

    Stateless; one instance can be shared across roles.
    """

    async def detect(self, page: Page) -> Optional[LoginSelectors]:
        """Detect login form elements on *page*.

        Returns:
            The first match per category, or None when no password field
            exists (the only mandatory signal of a login form).
        """
        password = await self._first_match(page, PASSWORD_SELECTORS)
        if not password:
            logger.debug("[DETECT] No password field — no login form on page")
            return None

        identifier = await self._first_match(page, IDENTIFIER_SELECTORS)
        submit = await self._first_match(page, SUBMIT_SELECTORS)
        form = await self._first_match(page, FORM_SELECTORS)

        logger.debug(
            f"[DETECT] password={password} identifier={identifier} "
            f"submit={submit} form={form}"
        )
        return LoginSelectors(
            identifier=identifier, password=password, submit=submit, form=form
        )

    async def validate_selectors(self, page: Page, selectors: LoginSelectors) -> bool:
        """Check that the required selectors still resolve on *page*.

        Password must match; identifier and submit must match when given.
        The form selector is informational and not checked.
        """
        if not selectors.password:
            return False
        if not await self.selector_exists(page, selectors.password):
            logger.debug(f"[DETECT] Configured password selector missing: {selectors.password}")
            return False
        for name, sel in (("identifier", selectors.identifier), ("submit", selectors.submit)):
            if sel and not await self.selector_exists(page, sel):
                logger.debug(f"[DETECT] Configured {name} selector missing: {sel}")
                return False
        return True

    async def check_success(self, page: Page, config: LoginConfig) -> bool:
        """Decide whether the login attempt on *page* succeeded.

        Indicators are OR-ed in order; the first passing one wins.  With no
        indicators configured, success means the current URL no longer
        contains the login page's path.
        """
        if not config.success_indicators:
            login_path = urlparse(config.url).path or "/"
            return login_path not in page.url

        for indicator in config.success_indicators:
            if await self._check_indicator(page, indicator):
                logger.debug(f"[DETECT] Success indicator passed: {indicator.type}")
                return True
        return False

    async def _check_indicator(self, page: Page, indicator: SuccessIndicator) -> bool:
        if isinstance(indicator, UrlPatternIndicator):
            return indicator.pattern in page.url
        if isinstance(indicator, ElementVisibleIndicator):
            return await self.selector_exists(page, indicator.selector)
        if isinstance(indicator, ElementHiddenIndicator):
            return not await self.selector_exists(page, indicator.selector)
        if isinstance(indicator, (CookiePresentIndicator, CookieAbsentIndicator)):
            # Needs context-level cookie access; evaluated by FormLoginMethod.
            return False
        raise TypeError(f"Unknown success indicator: {indicator!r}")

    async def _first_match(self, page: Page, selectors: List[str]) -> Optional[str]:
        for sel in selectors:
            if await self.selector_exists(page, sel):
                return sel
        return None

    @staticmethod
    async def selector_exists(page: Page, selector: str) -> bool:
        """True if *selector* resolves to at least one element."""
        try:
            return await page.locator(selector).count() > 0
        except Exception:
            # Invalid selector for this engine / detached frame
            return False
