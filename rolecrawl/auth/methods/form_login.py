"""
Form Login
==========
Playwright-based username/password form login for one role.

Each attempt runs a fixed sequence:

    NAVIGATE (retry) → LOADED → SELECT → FILL → SUBMIT → VERIFY

    - NAVIGATE: ``page.goto`` with a per-attempt timeout.  Timeouts and
      HTTP 429/500/502/503/504 are retried (exponential backoff + jitter,
      capped at 30s); any other HTTP ≥ 400 or navigation error fails fast
      with ``LoginUrlUnreachableError``.
    - SELECT:   configured selectors if they still match the page, else
      ``LoginDetector`` auto-detection, else ``LoginFormNotFoundError``.
    - SUBMIT:   submit button → form container → Enter in password field.
    - VERIFY:   load settle + short grace delay, then success indicators.

Security:
    - Credential values are never logged.
    - Any error surfaced from here has the identifier and password
      replaced with ``[IDENTIFIER]`` / ``[PASSWORD]``.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Tuple

from playwright.async_api import BrowserContext, Page, Response
from playwright.async_api import TimeoutError as PlaywrightTimeout

from ..config import (
    CookieAbsentIndicator,
    CookiePresentIndicator,
    LoginConfig,
    LoginSelectors,
    SuccessIndicator,
)
from ..credential_guard import CredentialGuard
from ..errors import AuthenticationError, LoginFormNotFoundError, LoginUrlUnreachableError
from ..login_detector import IDENTIFIER_SELECTORS, PASSWORD_SELECTORS, LoginDetector

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_LOGIN_TIMEOUT_MS = 30_000
DEFAULT_MAX_RETRIES = 3

BASE_BACKOFF_MS = 1_000
MAX_BACKOFF_MS = 30_000

# Rate limiting + transient server errors
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Tolerates client-side redirects after submit
POST_SUBMIT_GRACE_MS = 500

_CSRF_SELECTORS: List[str] = [
    'input[name="_token"]',
    'input[name="csrf_token"]',
    'input[name="csrfmiddlewaretoken"]',
    'input[name="_csrf"]',
    'input[name="authenticity_token"]',
    'meta[name="csrf-token"]',
]

# Common login error banners, logged for diagnostics when verification fails
_ERROR_SELECTORS: List[str] = [
    '#login_error',                     # WordPress
    '.login-error', '.login_error',
    '#error-message', '.error-message',
    '.alert-danger', '.alert-error',
    '[data-testid="error-message"]',
]

_SUBMIT_FORM_JS = """el => {
    const form = el.tagName === 'FORM' ? el : (el.closest('form') || el.querySelector('form'));
    if (!form) { throw new Error('no form element to submit'); }
    if (form.requestSubmit) { form.requestSubmit(); } else { form.submit(); }
}"""


# ---------------------------------------------------------------------------
# Credentials + backoff helpers
# ---------------------------------------------------------------------------

@dataclass
class ResolvedCredentials:
    """Credential values resolved from the environment for one attempt.

    Never persisted; ``repr`` masks both values.
    """
    identifier: str
    secret: str

    def __repr__(self) -> str:
        return "ResolvedCredentials(identifier='***', secret='***')"

    def scrub(self, text: str) -> str:
        """Replace literal credential values in *text* with placeholders."""
        pairs = [(self.identifier, "[IDENTIFIER]"), (self.secret, "[PASSWORD]")]
        for value, placeholder in sorted(pairs, key=lambda p: len(p[0]), reverse=True):
            if value:
                text = text.replace(value, placeholder)
        return text


def backoff_delay_ms(attempt: int, base_ms: int = BASE_BACKOFF_MS) -> float:
    """Exponential backoff for retry *attempt* (0-indexed).

    ``min(base * 2**attempt + jitter, 30000)`` with jitter drawn uniformly
    from ``[0, 25%)`` of the exponential delay.
    """
    delay = base_ms * (2 ** attempt)
    jitter = delay * 0.25 * random.random()
    return min(delay + jitter, MAX_BACKOFF_MS)


async def _sleep_ms(delay_ms: float) -> None:
    await asyncio.sleep(delay_ms / 1000)


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, PlaywrightTimeout) or "timeout" in str(exc).lower()


# ---------------------------------------------------------------------------
# Form login method
# ---------------------------------------------------------------------------

class FormLoginMethod:
    """Performs one form-based login attempt in a browser context.

    Usage::

        method = FormLoginMethod(guard=guard)
        ok = await method.login(context, auth_config.login, creds, role="admin")
    """

    def __init__(
        self,
        detector: Optional[LoginDetector] = None,
        *,
        guard: Optional[CredentialGuard] = None,
        timeout_ms: int = DEFAULT_LOGIN_TIMEOUT_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        """
        Args:
            detector:    Login form detector (shared instance is fine).
            guard:       When given, this method's log lines are redacted.
            timeout_ms:  Per-attempt navigation timeout.
            max_retries: Additional navigation attempts on retryable failures.
        """
        self.detector = detector or LoginDetector()
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self._log = guard.wrap_logger(logger) if guard else logger

    async def login(
        self,
        context: BrowserContext,
        config: LoginConfig,
        credentials: ResolvedCredentials,
        role: str = "",
    ) -> bool:
        """Run the full login sequence.

        Returns:
            True if the post-submit success check passed.

        Raises:
            LoginUrlUnreachableError: navigation never succeeded.
            LoginFormNotFoundError:   no usable password field.
            AuthenticationError:      any other failure (message scrubbed).
        """
        page = context.pages[0] if context.pages else await context.new_page()

        try:
            # ── NAVIGATE ──────────────────────────────────────────────
            await self._navigate(page, config.url, credentials)

            # ── LOADED ────────────────────────────────────────────────
            await page.wait_for_load_state("domcontentloaded")

            # ── SELECT ────────────────────────────────────────────────
            selectors, attempted = await self._resolve_selectors(page, config)
            if selectors is None or not selectors.password:
                self._log.error(f"[FORM-LOGIN] Login form not detected at {config.url}")
                raise LoginFormNotFoundError(config.url, attempted)

            # ── FILL ──────────────────────────────────────────────────
            await self._fill(page, selectors, credentials)

            # ── SUBMIT ────────────────────────────────────────────────
            await self._submit(page, selectors)

            # ── VERIFY ────────────────────────────────────────────────
            success = await self._verify(page, context, config, credentials)

        except (LoginFormNotFoundError, LoginUrlUnreachableError):
            raise
        except Exception as exc:
            safe_message = credentials.scrub(str(exc).strip() or type(exc).__name__)
            raise AuthenticationError(safe_message, role) from exc

        if success:
            self._log.info(f"[FORM-LOGIN] ✅ Login successful for role '{role}'")
        else:
            self._log.warning(f"[FORM-LOGIN] ❌ Login verification failed for role '{role}'")
        return success

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def _navigate(
        self, page: Page, url: str, credentials: ResolvedCredentials
    ) -> Response:
        attempt = 0
        while True:
            self._log.info(f"[FORM-LOGIN] Navigating to login page: {url[:80]} (attempt {attempt + 1})")
            try:
                response = await page.goto(url, timeout=self.timeout_ms)
            except Exception as exc:
                if attempt < self.max_retries and _is_timeout(exc):
                    delay = backoff_delay_ms(attempt)
                    self._log.warning(
                        f"[FORM-LOGIN] Navigation timeout — retrying in {delay:.0f}ms"
                    )
                    await _sleep_ms(delay)
                    attempt += 1
                    continue
                detail = str(exc).strip().splitlines()[0] if str(exc).strip() else type(exc).__name__
                raise LoginUrlUnreachableError(url, credentials.scrub(detail)) from exc

            if response is None:
                raise LoginUrlUnreachableError(url, "no response received")

            status = response.status
            if status in RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                delay = backoff_delay_ms(attempt)
                self._log.warning(
                    f"[FORM-LOGIN] Login page returned HTTP {status} — "
                    f"retrying in {delay:.0f}ms"
                )
                await _sleep_ms(delay)
                attempt += 1
                continue

            if status >= 400:
                self._log.error(f"[FORM-LOGIN] Login page returned HTTP {status}")
                raise LoginUrlUnreachableError(url, f"HTTP {status} response")

            return response

    async def _resolve_selectors(
        self, page: Page, config: LoginConfig
    ) -> Tuple[Optional[LoginSelectors], List[str]]:
        """Pick configured selectors if they match, else auto-detect.

        Returns:
            ``(selectors or None, attempted selector descriptions)``.
        """
        attempted: List[str] = []
        configured = config.selectors

        if configured:
            for name in ("identifier", "password", "submit"):
                sel = getattr(configured, name)
                if sel:
                    attempted.append(f"{name}: {sel}")
            if await self.detector.validate_selectors(page, configured):
                self._log.debug("[FORM-LOGIN] Using configured selectors")
                return configured, attempted
            self._log.warning(
                "[FORM-LOGIN] Configured selectors no longer match — "
                "falling back to auto-detection"
            )

        detected = await self.detector.detect(page)
        if detected:
            self._log.debug(f"[FORM-LOGIN] Auto-detected password field: {detected.password}")
            return detected, attempted

        if not attempted:
            attempted.append(
                f"(auto-detect attempted: {len(PASSWORD_SELECTORS)} password, "
                f"{len(IDENTIFIER_SELECTORS)} identifier selectors)"
            )
        return None, attempted

    async def _fill(
        self, page: Page, selectors: LoginSelectors, credentials: ResolvedCredentials
    ) -> None:
        if selectors.identifier:
            await page.locator(selectors.identifier).first.fill(credentials.identifier)
            self._log.info("[FORM-LOGIN] Identifier filled")

        await page.locator(selectors.password).first.fill(credentials.secret)
        self._log.info("[FORM-LOGIN] Password filled")

        # Hidden CSRF inputs ride along with the native form submission
        if await self.detect_csrf_token(page):
            self._log.debug("[FORM-LOGIN] CSRF token field present")

    async def _submit(self, page: Page, selectors: LoginSelectors) -> None:
        if selectors.submit:
            await page.locator(selectors.submit).first.click()
            self._log.info("[FORM-LOGIN] Submit clicked")
        elif selectors.form:
            await page.locator(selectors.form).first.evaluate(_SUBMIT_FORM_JS)
            self._log.info("[FORM-LOGIN] Form submitted")
        else:
            self._log.info("[FORM-LOGIN] No submit control found — pressing Enter")
            await page.locator(selectors.password).first.press("Enter")

    async def _verify(
        self,
        page: Page,
        context: BrowserContext,
        config: LoginConfig,
        credentials: ResolvedCredentials,
    ) -> bool:
        try:
            await page.wait_for_load_state("domcontentloaded", timeout=self.timeout_ms)
        except PlaywrightTimeout:
            pass
        await page.wait_for_timeout(POST_SUBMIT_GRACE_MS)

        self._log.info(f"[FORM-LOGIN] Post-login URL: {credentials.scrub(page.url)[:120]}")

        if await self.detector.check_success(page, config):
            return True
        if await self._check_cookie_indicators(context, config.success_indicators):
            return True

        await self._log_login_error(page, credentials)
        return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _check_cookie_indicators(
        self, context: BrowserContext, indicators: List[SuccessIndicator]
    ) -> bool:
        """Evaluate cookie-present / cookie-absent indicators (OR-ed)."""
        cookie_indicators = [
            i for i in indicators
            if isinstance(i, (CookiePresentIndicator, CookieAbsentIndicator))
        ]
        if not cookie_indicators:
            return False

        names = {c.get("name") for c in await context.cookies()}
        for indicator in cookie_indicators:
            present = indicator.name in names
            if isinstance(indicator, CookiePresentIndicator) and present:
                self._log.info(f"[FORM-LOGIN] Auth cookie '{indicator.name}' present")
                return True
            if isinstance(indicator, CookieAbsentIndicator) and not present:
                self._log.info(f"[FORM-LOGIN] Cookie '{indicator.name}' absent")
                return True
        return False

    async def _log_login_error(self, page: Page, credentials: ResolvedCredentials) -> None:
        for sel in _ERROR_SELECTORS:
            try:
                loc = page.locator(sel)
                if await loc.count() == 0 or not await loc.first.is_visible():
                    continue
                text = (await loc.first.inner_text()).strip()[:200]
            except Exception:
                continue
            if text:
                self._log.error(f"[FORM-LOGIN] Login error on page ({sel}): {credentials.scrub(text)}")
                return

    async def detect_csrf_token(self, page: Page) -> Optional[str]:
        """Return the page's CSRF token value, or None if there is none."""
        for sel in _CSRF_SELECTORS:
            try:
                loc = page.locator(sel)
                if await loc.count() == 0:
                    continue
                element = loc.first
                value = await element.get_attribute("value") or await element.get_attribute("content")
            except Exception:
                continue
            if value:
                return value
        return None
