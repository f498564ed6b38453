"""
Storage State
=============
Applies and persists Playwright ``storage_state`` snapshots.

Snapshot format (Playwright)::

    {
      "cookies": [{"name": ..., "value": ..., "domain": ..., ...}],
      "origins": [{"origin": "https://app.example.com",
                   "localStorage": [{"name": ..., "value": ...}]}]
    }

Responsibilities:
    1. ``apply``     — restore cookies + per-origin localStorage into a context
    2. ``save``      — capture a context's state (owner-only file permissions)
    3. ``validate``  — shape + optional freshness check, no side effects
    4. ``summarize`` — counts and cookie domains for diagnostics (never values)
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from playwright.async_api import BrowserContext

from ..errors import AuthenticationError, StorageStateNotFoundError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_STATE_DIR_MODE = 0o700
_STATE_FILE_MODE = 0o600

_SET_LOCAL_STORAGE_JS = """items => {
    for (const item of items) {
        window.localStorage.setItem(item.name, item.value);
    }
}"""


def _read_state(path: PathLike) -> Dict[str, Any]:
    """Read and parse a snapshot file.

    Raises:
        StorageStateNotFoundError: file missing.
        AuthenticationError: unreadable, invalid JSON, or not an object.
    """
    state_path = Path(path)
    if not state_path.exists():
        raise StorageStateNotFoundError(str(path))

    try:
        data = json.loads(state_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise AuthenticationError(f"Invalid storage state file: {path}") from exc
    except OSError as exc:
        raise AuthenticationError(f"Cannot read storage state file: {path}") from exc

    if not isinstance(data, dict):
        raise AuthenticationError(f"Invalid storage state file: {path}")
    return data


class StorageStateMethod:
    """Session injection from a saved storage-state file."""

    async def apply(
        self, context: BrowserContext, path: PathLike, role: str = ""
    ) -> bool:
        """Restore a snapshot into *context*.

        Cookies are added directly.  localStorage can only be written from
        a page on the matching origin, so each origin is visited once.

        Raises:
            StorageStateNotFoundError: *path* does not exist.
            AuthenticationError: the file is not a valid snapshot.
        """
        try:
            state = _read_state(path)
        except AuthenticationError as exc:
            exc.role = role
            raise

        cookies = state.get("cookies") or []
        if cookies:
            await context.add_cookies(cookies)
            logger.info(f"[STORAGE-STATE] Restored {len(cookies)} cookie(s) from {path}")

        origins = [
            o for o in state.get("origins") or []
            if isinstance(o, dict) and o.get("origin") and o.get("localStorage")
        ]
        if origins:
            page = context.pages[0] if context.pages else await context.new_page()
            for entry in origins:
                origin = entry["origin"]
                try:
                    await page.goto(origin, wait_until="domcontentloaded")
                    await page.evaluate(_SET_LOCAL_STORAGE_JS, entry["localStorage"])
                except Exception as exc:
                    logger.warning(
                        f"[STORAGE-STATE] localStorage restore failed for {origin}: "
                        f"{type(exc).__name__}"
                    )
                    continue
                logger.info(
                    f"[STORAGE-STATE] Restored {len(entry['localStorage'])} "
                    f"localStorage item(s) for {origin}"
                )

        return True

    async def save(self, context: BrowserContext, path: PathLike) -> Path:
        """Write *context*'s storage state to *path* (dir 0700, file 0600).

        Returns:
            The path written.
        """
        state_path = Path(path)
        try:
            state_path.parent.mkdir(mode=_STATE_DIR_MODE, parents=True, exist_ok=True)
            state = await context.storage_state()
            state_path.write_text(json.dumps(state, indent=2), encoding="utf-8")
            os.chmod(state_path, _STATE_FILE_MODE)
        except OSError as exc:
            raise AuthenticationError(
                f"Failed to save storage state to {path}: {exc.strerror or type(exc).__name__}"
            ) from exc

        logger.info(
            f"[STORAGE-STATE] Session saved to {state_path} "
            f"({len(state.get('cookies', []))} cookies)"
        )
        return state_path

    def validate(self, path: PathLike, max_age_hours: Optional[float] = None) -> bool:
        """Check that *path* holds a usable snapshot.

        Validates:
            - File exists and is a JSON object
            - Has a ``cookies`` or ``origins`` array
            - File is not older than ``max_age_hours`` (when given)
        """
        try:
            state = _read_state(path)
        except (StorageStateNotFoundError, AuthenticationError):
            return False

        if not (isinstance(state.get("cookies"), list) or isinstance(state.get("origins"), list)):
            return False

        if max_age_hours is not None:
            age_hours = (time.time() - Path(path).stat().st_mtime) / 3600
            if age_hours > max_age_hours:
                logger.info(
                    f"[STORAGE-STATE] {path} is {age_hours:.1f}h old — expired "
                    f"(max {max_age_hours}h)"
                )
                return False
        return True

    def summarize(self, path: PathLike) -> Dict[str, Any]:
        """Describe a snapshot without exposing any cookie or storage value."""
        state = _read_state(path)
        cookies: List[Dict[str, Any]] = [
            c for c in state.get("cookies") or [] if isinstance(c, dict)
        ]
        origins = [o for o in state.get("origins") or [] if isinstance(o, dict)]
        return {
            "path": str(path),
            "cookies": len(cookies),
            "origins": len(origins),
            "domains": sorted({c.get("domain", "") for c in cookies if c.get("domain")}),
            "age_hours": round((time.time() - Path(path).stat().st_mtime) / 3600, 2),
        }
