"""
Auth Configuration
==================
Typed model of the authenticated-crawl configuration plus its validation
and loading.

The configuration only ever references credentials by environment-variable
*name*.  Actual values are resolved at authenticate-time by the
``Authenticator`` and never stored on these objects.

Closed variant sets (one frozen dataclass per variant):
    - ``AuthMethod``        — form-login | cookie-injection | token-injection
                              | storage-state | custom-script
    - ``SuccessIndicator``  — url-pattern | element-visible | element-hidden
                              | cookie-present | cookie-absent
    - ``ExpiryIndicator``   — status-code | redirect-to-login | element-visible

Unknown discriminators are rejected here, at validation time, so the rest
of the subsystem can dispatch on the variant classes exhaustively.

JSON schema (camelCase, as written by users)::

    {
      "roles": [
        {
          "name": "admin",
          "credentials": {"identifierEnvVar": "ADMIN_EMAIL",
                          "passwordEnvVar": "ADMIN_PASSWORD"},
          "authMethod": {"type": "form-login"},
          "privilegeLevel": 2
        }
      ],
      "login": {
        "url": "https://app.example.com/login",
        "selectors": {"identifier": "#email", "password": "#password"},
        "successIndicators": [{"type": "url-pattern", "pattern": "/dashboard"}]
      },
      "sessionTimeout": {
        "expiryIndicators": [{"type": "status-code", "codes": [401, 403]}],
        "maxReauthAttempts": 3
      }
    }
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import AuthConfigError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

ROLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

DEFAULT_MAX_REAUTH_ATTEMPTS = 3
DEFAULT_EXPIRY_STATUS_CODES: Tuple[int, ...] = (401, 403)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CredentialSource:
    """Env-var names holding a role's identifier and password."""
    identifier_env_var: str
    password_env_var: str


# ---------------------------------------------------------------------------
# Auth methods
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EnvVarCookies:
    """Cookies as a JSON array stored in an environment variable."""
    type: ClassVar[str] = "env-var"
    env_var: str


@dataclass(frozen=True)
class FileCookies:
    """Cookies stored in a Netscape or JSON cookie file."""
    type: ClassVar[str] = "file"
    path: str


CookieSource = Union[EnvVarCookies, FileCookies]


@dataclass(frozen=True)
class FormLoginAuth:
    type: ClassVar[str] = "form-login"


@dataclass(frozen=True)
class CookieInjectionAuth:
    type: ClassVar[str] = "cookie-injection"
    cookies: CookieSource


@dataclass(frozen=True)
class TokenInjectionAuth:
    type: ClassVar[str] = "token-injection"
    header: str
    token_env_var: str


@dataclass(frozen=True)
class StorageStateAuth:
    type: ClassVar[str] = "storage-state"
    path: str


@dataclass(frozen=True)
class CustomScriptAuth:
    type: ClassVar[str] = "custom-script"
    script_path: str


AuthMethod = Union[
    FormLoginAuth,
    CookieInjectionAuth,
    TokenInjectionAuth,
    StorageStateAuth,
    CustomScriptAuth,
]

AUTH_METHOD_TYPES: Tuple[str, ...] = (
    FormLoginAuth.type,
    CookieInjectionAuth.type,
    TokenInjectionAuth.type,
    StorageStateAuth.type,
    CustomScriptAuth.type,
)


# ---------------------------------------------------------------------------
# Login form + success indicators
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LoginSelectors:
    """CSS selectors for the login form fields.  ``None`` = auto-detect."""
    identifier: Optional[str] = None
    password: Optional[str] = None
    submit: Optional[str] = None
    form: Optional[str] = None


@dataclass(frozen=True)
class UrlPatternIndicator:
    type: ClassVar[str] = "url-pattern"
    pattern: str


@dataclass(frozen=True)
class ElementVisibleIndicator:
    type: ClassVar[str] = "element-visible"
    selector: str


@dataclass(frozen=True)
class ElementHiddenIndicator:
    type: ClassVar[str] = "element-hidden"
    selector: str


@dataclass(frozen=True)
class CookiePresentIndicator:
    type: ClassVar[str] = "cookie-present"
    name: str


@dataclass(frozen=True)
class CookieAbsentIndicator:
    type: ClassVar[str] = "cookie-absent"
    name: str


SuccessIndicator = Union[
    UrlPatternIndicator,
    ElementVisibleIndicator,
    ElementHiddenIndicator,
    CookiePresentIndicator,
    CookieAbsentIndicator,
]

SUCCESS_INDICATOR_TYPES: Tuple[str, ...] = (
    UrlPatternIndicator.type,
    ElementVisibleIndicator.type,
    ElementHiddenIndicator.type,
    CookiePresentIndicator.type,
    CookieAbsentIndicator.type,
)


@dataclass
class LoginConfig:
    """Form-login page configuration."""

    url: str
    """URL of the login page."""

    selectors: Optional[LoginSelectors] = None
    """Configured selectors.  Validated against the live page before use;
    auto-detection takes over when they no longer match (markup drift)."""

    success_indicators: List[SuccessIndicator] = field(default_factory=list)
    """Checks evaluated as a logical OR after submit.  Empty = URL heuristic."""


# ---------------------------------------------------------------------------
# Session expiry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StatusCodeExpiry:
    type: ClassVar[str] = "status-code"
    codes: Tuple[int, ...]


@dataclass(frozen=True)
class RedirectToLoginExpiry:
    type: ClassVar[str] = "redirect-to-login"


@dataclass(frozen=True)
class ElementVisibleExpiry:
    type: ClassVar[str] = "element-visible"
    selector: str


ExpiryIndicator = Union[StatusCodeExpiry, RedirectToLoginExpiry, ElementVisibleExpiry]

EXPIRY_INDICATOR_TYPES: Tuple[str, ...] = (
    StatusCodeExpiry.type,
    RedirectToLoginExpiry.type,
    ElementVisibleExpiry.type,
)


def _default_expiry_indicators() -> List[ExpiryIndicator]:
    return [StatusCodeExpiry(DEFAULT_EXPIRY_STATUS_CODES), RedirectToLoginExpiry()]


@dataclass
class SessionTimeoutConfig:
    """Session expiry detection settings."""
    expiry_indicators: List[ExpiryIndicator] = field(
        default_factory=_default_expiry_indicators
    )
    max_reauth_attempts: int = DEFAULT_MAX_REAUTH_ATTEMPTS


# ---------------------------------------------------------------------------
# Roles + root config
# ---------------------------------------------------------------------------

@dataclass
class RoleConfig:
    """A named identity the crawler authenticates as."""
    name: str
    credentials: CredentialSource
    auth_method: AuthMethod = field(default_factory=FormLoginAuth)
    privilege_level: Optional[int] = None


@dataclass
class AuthConfig:
    """Root configuration for authenticated crawling."""

    roles: List[RoleConfig] = field(default_factory=list)
    """Roles to crawl as (empty = unauthenticated only)."""

    login: Optional[LoginConfig] = None
    custom_login_script: Optional[str] = None
    session_timeout: Optional[SessionTimeoutConfig] = None

    def get_role(self, name: str) -> Optional[RoleConfig]:
        for role in self.roles:
            if role.name == name:
                return role
        return None

    @property
    def role_names(self) -> List[str]:
        return [role.name for role in self.roles]

    @classmethod
    def from_cli_args(cls, args) -> "AuthConfig":
        """Build a single-role form-login config from an argparse Namespace.

        Credential env vars are derived from the role name:
        ``--auth-role admin`` → ``ADMIN_EMAIL`` / ``ADMIN_PASSWORD``.
        """
        raw_role = getattr(args, "auth_role", "") or ""
        role_name = re.sub(r"[^a-z0-9_-]", "-", raw_role.lower())
        if not role_name:
            raise AuthConfigError("--auth-role is required")

        prefix = role_name.upper()
        cfg = cls(
            roles=[
                RoleConfig(
                    name=role_name,
                    credentials=CredentialSource(
                        identifier_env_var=f"{prefix}_EMAIL",
                        password_env_var=f"{prefix}_PASSWORD",
                    ),
                    auth_method=FormLoginAuth(),
                )
            ]
        )

        login_url = getattr(args, "login_url", None)
        if not login_url:
            return cfg

        selectors = None
        username_sel = getattr(args, "username_selector", None)
        password_sel = getattr(args, "password_selector", None)
        submit_sel = getattr(args, "submit_selector", None)
        if username_sel or password_sel or submit_sel:
            selectors = LoginSelectors(
                identifier=username_sel or None,
                password=password_sel or None,
                submit=submit_sel or None,
            )

        indicators: List[SuccessIndicator] = []
        if getattr(args, "auth_success_url", None):
            indicators.append(UrlPatternIndicator(args.auth_success_url))
        if getattr(args, "auth_success_selector", None):
            indicators.append(ElementVisibleIndicator(args.auth_success_selector))
        if getattr(args, "auth_success_cookie", None):
            indicators.append(CookiePresentIndicator(args.auth_success_cookie))

        cfg.login = LoginConfig(
            url=login_url, selectors=selectors, success_indicators=indicators
        )
        return cfg


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_auth_config(
    config_path: Union[str, Path], dotenv_path: Optional[Union[str, Path]] = None
) -> AuthConfig:
    """Load and validate an auth config JSON file.

    Loads ``dotenv_path`` (or a ``.env`` sitting next to the config file)
    into the process environment first, so credential env vars referenced
    by the config can live in a local, git-ignored file.  Existing env vars
    are never overridden.

    Raises:
        AuthConfigError: file missing, unreadable, invalid JSON or schema.
    """
    path = Path(config_path).resolve()
    if not path.exists():
        raise AuthConfigError(f"Config file not found: {path}")

    env_file = Path(dotenv_path) if dotenv_path else path.parent / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)
        logger.info(f"[AUTH-CONFIG] Loaded environment from {env_file}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise AuthConfigError(f"Cannot read config file: {exc}") from exc

    try:
        raw = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AuthConfigError(f"Invalid JSON in config file: {exc}") from exc

    cfg = validate_auth_config(raw)
    logger.info(
        f"[AUTH-CONFIG] Loaded {len(cfg.roles)} role(s) from {path.name}: "
        f"{', '.join(cfg.role_names) or '<none>'}"
    )
    return cfg


def has_credentials_in_config(config_path: Union[str, Path]) -> bool:
    """True if any role embeds literal credential values instead of env-var names.

    Used to emit a security warning; unreadable files simply return False.
    """
    try:
        raw = json.loads(Path(config_path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return False

    roles = raw.get("roles") if isinstance(raw, dict) else None
    if not isinstance(roles, list):
        return False

    for role in roles:
        if not isinstance(role, dict):
            continue
        creds = role.get("credentials")
        if isinstance(creds, dict) and any(
            creds.get(key) for key in ("identifier", "password", "email", "username")
        ):
            return True
    return False


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_auth_config(raw: Any) -> AuthConfig:
    """Validate a raw (JSON-decoded) config object and build ``AuthConfig``.

    Raises:
        AuthConfigError: on the first schema violation.
    """
    if not isinstance(raw, dict):
        raise AuthConfigError("Config must be an object")

    raw_roles = raw.get("roles")
    if not isinstance(raw_roles, list):
        raise AuthConfigError("'roles' must be an array")

    roles: List[RoleConfig] = []
    seen = set()
    for index, raw_role in enumerate(raw_roles):
        role = _validate_role(raw_role, index)
        if role.name in seen:
            raise AuthConfigError(f"Duplicate role name: '{role.name}'")
        seen.add(role.name)
        roles.append(role)

    login = None
    if raw.get("login") is not None:
        login = _validate_login(raw["login"])

    custom_script = raw.get("customLoginScript")
    if custom_script is not None and not isinstance(custom_script, str):
        raise AuthConfigError("'customLoginScript' must be a string path")

    session_timeout = None
    if raw.get("sessionTimeout") is not None:
        session_timeout = _validate_session_timeout(raw["sessionTimeout"])

    return AuthConfig(
        roles=roles,
        login=login,
        custom_login_script=custom_script,
        session_timeout=session_timeout,
    )


def _require_str(obj: Dict[str, Any], key: str, where: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value.strip():
        raise AuthConfigError(f"{where}: '{key}' is required and must be a string")
    return value.strip()


def _validate_role(raw_role: Any, index: int) -> RoleConfig:
    if not isinstance(raw_role, dict):
        raise AuthConfigError(f"Role at index {index} must be an object")

    name = raw_role.get("name")
    if not isinstance(name, str) or not name.strip():
        raise AuthConfigError(
            f"Role at index {index}: 'name' is required and must be non-empty"
        )
    name = name.strip()
    if not ROLE_NAME_PATTERN.match(name):
        raise AuthConfigError(
            f"Role '{name}': name must be alphanumeric with hyphens/underscores only"
        )

    creds = raw_role.get("credentials")
    if not isinstance(creds, dict):
        raise AuthConfigError(f"Role '{name}': 'credentials' is required")
    credentials = CredentialSource(
        identifier_env_var=_require_str(creds, "identifierEnvVar", f"Role '{name}' credentials"),
        password_env_var=_require_str(creds, "passwordEnvVar", f"Role '{name}' credentials"),
    )

    if not isinstance(raw_role.get("authMethod"), dict):
        raise AuthConfigError(f"Role '{name}': 'authMethod' is required")
    auth_method = _validate_auth_method(raw_role["authMethod"], name)

    privilege_level = raw_role.get("privilegeLevel")
    if privilege_level is not None:
        if (
            isinstance(privilege_level, bool)
            or not isinstance(privilege_level, int)
            or privilege_level < 1
        ):
            raise AuthConfigError(
                f"Role '{name}': privilegeLevel must be a positive integer"
            )

    return RoleConfig(
        name=name,
        credentials=credentials,
        auth_method=auth_method,
        privilege_level=privilege_level,
    )


def _validate_auth_method(raw: Dict[str, Any], role_name: str) -> AuthMethod:
    where = f"Role '{role_name}' authMethod"
    method_type = raw.get("type")
    if method_type not in AUTH_METHOD_TYPES:
        raise AuthConfigError(
            f"{where}: invalid type '{method_type}'. "
            f"Valid types: {', '.join(AUTH_METHOD_TYPES)}"
        )

    if method_type == FormLoginAuth.type:
        return FormLoginAuth()

    if method_type == CookieInjectionAuth.type:
        cookies = raw.get("cookies")
        if not isinstance(cookies, dict):
            raise AuthConfigError(f"{where}: cookie-injection requires 'cookies'")
        if cookies.get("type") == EnvVarCookies.type:
            return CookieInjectionAuth(EnvVarCookies(_require_str(cookies, "envVar", where)))
        if cookies.get("type") == FileCookies.type:
            return CookieInjectionAuth(FileCookies(_require_str(cookies, "path", where)))
        raise AuthConfigError(f"{where}: cookies.type must be 'env-var' or 'file'")

    if method_type == TokenInjectionAuth.type:
        return TokenInjectionAuth(
            header=_require_str(raw, "header", where),
            token_env_var=_require_str(raw, "tokenEnvVar", where),
        )

    if method_type == StorageStateAuth.type:
        return StorageStateAuth(path=_require_str(raw, "path", where))

    return CustomScriptAuth(script_path=_require_str(raw, "scriptPath", where))


def _validate_login(raw: Any) -> LoginConfig:
    if not isinstance(raw, dict):
        raise AuthConfigError("'login' must be an object")

    url = _require_str(raw, "url", "login")
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise AuthConfigError(f"login.url is not a valid URL: {url}")

    selectors = None
    raw_selectors = raw.get("selectors")
    if raw_selectors is not None:
        if not isinstance(raw_selectors, dict):
            raise AuthConfigError("login.selectors must be an object")
        values: Dict[str, Optional[str]] = {}
        for key in ("identifier", "password", "submit", "form"):
            value = raw_selectors.get(key)
            if value is not None and not isinstance(value, str):
                raise AuthConfigError(f"login.selectors.{key} must be a string")
            values[key] = value or None
        selectors = LoginSelectors(**values)

    indicators: List[SuccessIndicator] = []
    raw_indicators = raw.get("successIndicators")
    if raw_indicators is not None:
        if not isinstance(raw_indicators, list):
            raise AuthConfigError("login.successIndicators must be an array")
        indicators = [
            _validate_success_indicator(item, i) for i, item in enumerate(raw_indicators)
        ]

    return LoginConfig(url=url, selectors=selectors, success_indicators=indicators)


def _validate_success_indicator(raw: Any, index: int) -> SuccessIndicator:
    where = f"successIndicator at index {index}"
    if not isinstance(raw, dict):
        raise AuthConfigError(f"{where} must be an object")

    kind = raw.get("type")
    if kind not in SUCCESS_INDICATOR_TYPES:
        raise AuthConfigError(
            f"{where}: invalid type '{kind}'. "
            f"Valid types: {', '.join(SUCCESS_INDICATOR_TYPES)}"
        )

    if kind == UrlPatternIndicator.type:
        return UrlPatternIndicator(_require_str(raw, "pattern", where))
    if kind == ElementVisibleIndicator.type:
        return ElementVisibleIndicator(_require_str(raw, "selector", where))
    if kind == ElementHiddenIndicator.type:
        return ElementHiddenIndicator(_require_str(raw, "selector", where))
    if kind == CookiePresentIndicator.type:
        return CookiePresentIndicator(_require_str(raw, "name", where))
    return CookieAbsentIndicator(_require_str(raw, "name", where))


def _validate_session_timeout(raw: Any) -> SessionTimeoutConfig:
    if not isinstance(raw, dict):
        raise AuthConfigError("'sessionTimeout' must be an object")

    raw_indicators = raw.get("expiryIndicators")
    if not isinstance(raw_indicators, list):
        raise AuthConfigError("sessionTimeout.expiryIndicators must be an array")

    indicators: List[ExpiryIndicator] = []
    for index, item in enumerate(raw_indicators):
        where = f"expiryIndicator at index {index}"
        if not isinstance(item, dict):
            raise AuthConfigError(f"{where} must be an object")
        kind = item.get("type")
        if kind == StatusCodeExpiry.type:
            codes = item.get("codes")
            if (
                not isinstance(codes, list)
                or not codes
                or not all(isinstance(c, int) and not isinstance(c, bool) for c in codes)
            ):
                raise AuthConfigError(f"{where}: 'codes' must be a non-empty integer array")
            indicators.append(StatusCodeExpiry(tuple(codes)))
        elif kind == RedirectToLoginExpiry.type:
            indicators.append(RedirectToLoginExpiry())
        elif kind == ElementVisibleExpiry.type:
            indicators.append(ElementVisibleExpiry(_require_str(item, "selector", where)))
        else:
            raise AuthConfigError(
                f"{where}: invalid type '{kind}'. "
                f"Valid types: {', '.join(EXPIRY_INDICATOR_TYPES)}"
            )

    max_attempts = raw.get("maxReauthAttempts", DEFAULT_MAX_REAUTH_ATTEMPTS)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
        raise AuthConfigError("sessionTimeout.maxReauthAttempts must be a positive integer")

    return SessionTimeoutConfig(expiry_indicators=indicators, max_reauth_attempts=max_attempts)
