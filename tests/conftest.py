"""
Shared Playwright fakes.

Pages, contexts and browsers are ``MagicMock`` objects with ``AsyncMock``
coroutine methods.  A fake page "contains" exactly the selectors in its
``present`` set; ``page.locator(sel).count()`` reflects that set at call
time, so tests can mutate it to simulate DOM changes.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

LOGIN_URL = "https://app.example.com/login"
DASHBOARD_URL = "https://app.example.com/dashboard"


def _response(status=200, url=LOGIN_URL):
    response = MagicMock(name=f"response({status})")
    response.status = status
    response.url = url
    return response


def _page(present=(), url=LOGIN_URL):
    page = MagicMock(name="page")
    page.url = url
    page.present = set(present)
    locators = {}

    def locator(selector):
        if selector not in locators:
            loc = MagicMock(name=f"locator({selector})")
            loc.count = AsyncMock(side_effect=lambda: 1 if selector in page.present else 0)
            first = MagicMock(name=f"locator({selector}).first")
            first.fill = AsyncMock()
            first.click = AsyncMock()
            first.press = AsyncMock()
            first.evaluate = AsyncMock()
            first.get_attribute = AsyncMock(return_value=None)
            first.is_visible = AsyncMock(return_value=True)
            first.inner_text = AsyncMock(return_value="")
            loc.first = first
            locators[selector] = loc
        return locators[selector]

    page.locator = MagicMock(side_effect=locator)
    page.goto = AsyncMock(return_value=_response(200, url))
    page.wait_for_load_state = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.evaluate = AsyncMock()
    return page


def _context(page=None, cookies=None, state=None):
    context = MagicMock(name="context")
    context.pages = [page] if page is not None else []
    context.new_page = AsyncMock(return_value=page or _page())
    context.cookies = AsyncMock(return_value=list(cookies or []))
    context.add_cookies = AsyncMock()
    context.storage_state = AsyncMock(
        return_value=state if state is not None else {"cookies": [], "origins": []}
    )
    context.close = AsyncMock()
    return context


@pytest.fixture
def make_response():
    return _response


@pytest.fixture
def make_page():
    return _page


@pytest.fixture
def make_context():
    return _context


@pytest.fixture
def login_page():
    """Email + password + submit button; submit redirects to the dashboard."""
    page = _page(present={
        'input[type="email"]',
        'input[type="password"]',
        'button[type="submit"]',
    })

    def redirect():
        page.url = DASHBOARD_URL

    page.locator('button[type="submit"]').first.click.side_effect = redirect
    return page


@pytest.fixture
def no_sleep(monkeypatch):
    """Replace the form-login backoff sleep; records requested delays."""
    from rolecrawl.auth.methods import form_login

    sleeper = AsyncMock()
    monkeypatch.setattr(form_login, "_sleep_ms", sleeper)
    return sleeper
