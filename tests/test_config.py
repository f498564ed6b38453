"""Tests for auth config validation and loading."""

import argparse
import copy
import json
import os

import pytest

from rolecrawl.auth.config import (
    AuthConfig,
    CookieInjectionAuth,
    CookiePresentIndicator,
    CustomScriptAuth,
    ElementVisibleExpiry,
    ElementVisibleIndicator,
    EnvVarCookies,
    FileCookies,
    FormLoginAuth,
    LoginSelectors,
    RedirectToLoginExpiry,
    StatusCodeExpiry,
    StorageStateAuth,
    TokenInjectionAuth,
    UrlPatternIndicator,
    has_credentials_in_config,
    load_auth_config,
    validate_auth_config,
)
from rolecrawl.auth.errors import AuthConfigError

VALID = {
    "roles": [
        {
            "name": "admin",
            "credentials": {"identifierEnvVar": "ADMIN_EMAIL", "passwordEnvVar": "ADMIN_PASSWORD"},
            "authMethod": {"type": "form-login"},
            "privilegeLevel": 2,
        },
        {
            "name": "viewer",
            "credentials": {"identifierEnvVar": "VIEWER_EMAIL", "passwordEnvVar": "VIEWER_PASSWORD"},
            "authMethod": {"type": "storage-state", "path": "state/viewer.json"},
        },
    ],
    "login": {
        "url": "https://app.example.com/login",
        "selectors": {"identifier": "#email", "password": "#password"},
        "successIndicators": [
            {"type": "url-pattern", "pattern": "/dashboard"},
            {"type": "cookie-present", "name": "sid"},
        ],
    },
    "sessionTimeout": {
        "expiryIndicators": [
            {"type": "status-code", "codes": [401]},
            {"type": "redirect-to-login"},
            {"type": "element-visible", "selector": ".expired"},
        ],
        "maxReauthAttempts": 5,
    },
}


def _raw(**overrides):
    raw = copy.deepcopy(VALID)
    raw.update(overrides)
    return raw


class TestValidate:

    def test_valid_config(self):
        cfg = validate_auth_config(_raw())

        assert cfg.role_names == ["admin", "viewer"]
        admin = cfg.get_role("admin")
        assert admin.auth_method == FormLoginAuth()
        assert admin.privilege_level == 2
        assert admin.credentials.identifier_env_var == "ADMIN_EMAIL"
        assert cfg.get_role("viewer").auth_method == StorageStateAuth("state/viewer.json")
        assert cfg.get_role("viewer").privilege_level is None
        assert cfg.login.selectors == LoginSelectors(identifier="#email", password="#password")
        assert cfg.login.success_indicators == [UrlPatternIndicator("/dashboard"), CookiePresentIndicator("sid")]
        assert cfg.session_timeout.expiry_indicators == [
            StatusCodeExpiry((401,)), RedirectToLoginExpiry(), ElementVisibleExpiry(".expired"),
        ]
        assert cfg.session_timeout.max_reauth_attempts == 5

    def test_all_auth_methods(self):
        methods = [
            ({"type": "cookie-injection", "cookies": {"type": "env-var", "envVar": "C"}},
             CookieInjectionAuth(EnvVarCookies("C"))),
            ({"type": "cookie-injection", "cookies": {"type": "file", "path": "c.json"}},
             CookieInjectionAuth(FileCookies("c.json"))),
            ({"type": "token-injection", "header": "Authorization", "tokenEnvVar": "T"},
             TokenInjectionAuth("Authorization", "T")),
            ({"type": "custom-script", "scriptPath": "login.py"}, CustomScriptAuth("login.py")),
        ]
        for raw_method, expected in methods:
            raw = _raw()
            raw["roles"][0]["authMethod"] = raw_method
            assert validate_auth_config(raw).roles[0].auth_method == expected

    def test_empty_roles_allowed(self):
        assert validate_auth_config({"roles": []}).roles == []

    @pytest.mark.parametrize("mutate, message", [
        (lambda r: r["roles"][0].update(name="bad name"), "alphanumeric"),
        (lambda r: r["roles"][1].update(name="admin"), "Duplicate"),
        (lambda r: r["roles"][0]["credentials"].pop("passwordEnvVar"), "passwordEnvVar"),
        (lambda r: r["roles"][0].update(authMethod={"type": "oauth"}), "invalid type"),
        (lambda r: r["roles"][0].update(authMethod={"type": "storage-state"}), "path"),
        (lambda r: r["roles"][0].update(privilegeLevel=0), "privilegeLevel"),
        (lambda r: r["roles"][0].update(privilegeLevel=True), "privilegeLevel"),
        (lambda r: r["roles"][0].update(privilegeLevel=1.5), "privilegeLevel"),
        (lambda r: r["login"].update(url="not a url"), "valid URL"),
        (lambda r: r["login"]["selectors"].update(password=3), "selectors.password"),
        (lambda r: r["login"]["successIndicators"].append({"type": "magic"}), "invalid type"),
        (lambda r: r["sessionTimeout"]["expiryIndicators"].append({"type": "magic"}), "invalid type"),
        (lambda r: r["sessionTimeout"].update(maxReauthAttempts=0), "maxReauthAttempts"),
        (lambda r: r["sessionTimeout"]["expiryIndicators"][0].update(codes=[]), "codes"),
    ])
    def test_rejects(self, mutate, message):
        raw = _raw()
        mutate(raw)
        with pytest.raises(AuthConfigError, match=message):
            validate_auth_config(raw)

    @pytest.mark.parametrize("raw", [None, [], "roles", {"roles": {}}])
    def test_rejects_wrong_top_level(self, raw):
        with pytest.raises(AuthConfigError):
            validate_auth_config(raw)

    def test_error_code(self):
        with pytest.raises(AuthConfigError) as exc_info:
            validate_auth_config([])
        assert exc_info.value.user_message().startswith("AUTH006")


class TestLoad:

    def test_loads_file_and_dotenv(self, tmp_path, monkeypatch):
        # setenv first so teardown restores the original value
        monkeypatch.setenv("ADMIN_EMAIL", "unset")
        monkeypatch.delenv("ADMIN_EMAIL")
        (tmp_path / "auth.json").write_text(json.dumps(VALID), encoding="utf-8")
        (tmp_path / ".env").write_text("ADMIN_EMAIL=from-dotenv@example.com\n", encoding="utf-8")

        cfg = load_auth_config(tmp_path / "auth.json")

        assert cfg.role_names == ["admin", "viewer"]
        assert os.environ["ADMIN_EMAIL"] == "from-dotenv@example.com"

    def test_dotenv_does_not_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ADMIN_EMAIL", "already@example.com")
        (tmp_path / "auth.json").write_text(json.dumps(VALID), encoding="utf-8")
        env_file = tmp_path / "custom.env"
        env_file.write_text("ADMIN_EMAIL=other@example.com\n", encoding="utf-8")

        load_auth_config(tmp_path / "auth.json", dotenv_path=env_file)

        assert os.environ["ADMIN_EMAIL"] == "already@example.com"

    def test_missing_file(self, tmp_path):
        with pytest.raises(AuthConfigError, match="not found"):
            load_auth_config(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "auth.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(AuthConfigError, match="Invalid JSON"):
            load_auth_config(path)


class TestHasCredentialsInConfig:

    def test_env_var_names_only(self, tmp_path):
        path = tmp_path / "auth.json"
        path.write_text(json.dumps(VALID), encoding="utf-8")
        assert has_credentials_in_config(path) is False

    def test_literal_password(self, tmp_path):
        raw = _raw()
        raw["roles"][0]["credentials"]["password"] = "hunter22"
        path = tmp_path / "auth.json"
        path.write_text(json.dumps(raw), encoding="utf-8")
        assert has_credentials_in_config(path) is True

    def test_unreadable(self, tmp_path):
        assert has_credentials_in_config(tmp_path / "missing.json") is False


class TestFromCliArgs:

    def test_full(self):
        args = argparse.Namespace(
            auth_role="Admin User",
            login_url="https://app.example.com/login",
            username_selector="#u",
            password_selector="#p",
            submit_selector=None,
            auth_success_url="/home",
            auth_success_selector=".avatar",
            auth_success_cookie="sid",
        )
        cfg = AuthConfig.from_cli_args(args)

        role = cfg.roles[0]
        assert role.name == "admin-user"
        assert role.credentials.identifier_env_var == "ADMIN-USER_EMAIL"
        assert cfg.login.selectors == LoginSelectors(identifier="#u", password="#p")
        assert cfg.login.success_indicators == [
            UrlPatternIndicator("/home"), ElementVisibleIndicator(".avatar"), CookiePresentIndicator("sid"),
        ]

    def test_role_only(self):
        cfg = AuthConfig.from_cli_args(argparse.Namespace(auth_role="viewer"))
        assert cfg.login is None
        assert cfg.roles[0].credentials.password_env_var == "VIEWER_PASSWORD"

    def test_role_required(self):
        with pytest.raises(AuthConfigError):
            AuthConfig.from_cli_args(argparse.Namespace())
