"""Tests for login form detection and success indicators."""

from unittest.mock import AsyncMock

import pytest

from rolecrawl.auth.config import (
    CookieAbsentIndicator,
    CookiePresentIndicator,
    ElementHiddenIndicator,
    ElementVisibleIndicator,
    LoginConfig,
    LoginSelectors,
    UrlPatternIndicator,
)
from rolecrawl.auth.login_detector import LoginDetector

LOGIN_URL = "https://app.example.com/login"


@pytest.fixture
def detector():
    return LoginDetector()


class TestDetect:

    async def test_no_password_means_no_form(self, detector, make_page):
        page = make_page(present={'input[type="email"]', 'button[type="submit"]'})
        assert await detector.detect(page) is None

    async def test_first_match_per_category(self, detector, make_page):
        page = make_page(present={
            '#password', 'input[name="password"]',
            '#username', 'input[name="email"]',
            '#wp-submit',
            'form#login',
        })
        selectors = await detector.detect(page)
        assert selectors == LoginSelectors(
            identifier='#username', password='#password', submit='#wp-submit', form='form#login'
        )

    async def test_password_only(self, detector, make_page):
        selectors = await detector.detect(make_page(present={'input[type="password"]'}))
        assert selectors.password == 'input[type="password"]'
        assert selectors.identifier is None
        assert selectors.submit is None


class TestValidateSelectors:

    async def test_password_required(self, detector, make_page):
        page = make_page(present={"#user"})
        assert not await detector.validate_selectors(page, LoginSelectors(identifier="#user"))

    async def test_all_present(self, detector, make_page):
        page = make_page(present={"#user", "#pw", "#go"})
        sel = LoginSelectors(identifier="#user", password="#pw", submit="#go")
        assert await detector.validate_selectors(page, sel)

    async def test_missing_optional_selector_fails(self, detector, make_page):
        page = make_page(present={"#pw"})
        assert not await detector.validate_selectors(page, LoginSelectors(password="#pw", submit="#go"))

    async def test_form_selector_not_checked(self, detector, make_page):
        page = make_page(present={"#pw"})
        assert await detector.validate_selectors(page, LoginSelectors(password="#pw", form="form#gone"))


class TestCheckSuccess:

    async def test_default_heuristic_left_login_path(self, detector, make_page):
        page = make_page(url="https://app.example.com/home")
        assert await detector.check_success(page, LoginConfig(url=LOGIN_URL))

    async def test_default_heuristic_still_on_login(self, detector, make_page):
        page = make_page(url="https://app.example.com/login?error=1")
        assert not await detector.check_success(page, LoginConfig(url=LOGIN_URL))

    async def test_indicators_are_ored(self, detector, make_page):
        page = make_page(present={".user-menu"}, url=LOGIN_URL)
        cfg = LoginConfig(url=LOGIN_URL, success_indicators=[
            UrlPatternIndicator("/dashboard"),
            ElementVisibleIndicator(".user-menu"),
        ])
        assert await detector.check_success(page, cfg)

    async def test_element_hidden(self, detector, make_page):
        page = make_page(present=set(), url=LOGIN_URL)
        cfg = LoginConfig(url=LOGIN_URL, success_indicators=[ElementHiddenIndicator("#login-form")])
        assert await detector.check_success(page, cfg)
        page.present.add("#login-form")
        assert not await detector.check_success(page, cfg)

    async def test_cookie_indicators_are_noop_here(self, detector, make_page):
        page = make_page(url=LOGIN_URL)
        cfg = LoginConfig(url=LOGIN_URL, success_indicators=[
            CookiePresentIndicator("sid"),
            CookieAbsentIndicator("sid"),
        ])
        assert not await detector.check_success(page, cfg)


async def test_selector_error_counts_as_missing(detector, make_page):
    page = make_page()
    page.locator(":bogus(").count = AsyncMock(side_effect=ValueError("Unexpected token"))
    assert await LoginDetector.selector_exists(page, ":bogus(") is False
