"""
Session Bootstrap
=================
Headed browser for manual login, for sites automation cannot get through
(MFA prompts, CAPTCHA, SSO hops).

Workflow:
    1. Launch headed Chromium and open the login / portal URL
    2. Operator logs in by hand
    3. Operator presses Enter in the terminal (or the timeout elapses)
    4. ``StorageStateMethod.save`` writes the snapshot (owner-only)
    5. Cookie domains (never values) are printed as a sanity check

The snapshot is then referenced from the auth config::

    {"name": "admin", ..., "authMethod": {"type": "storage-state",
                                         "path": "auth_state.json"}}

Usage::

    python -m rolecrawl bootstrap https://app.example.com/login --output auth_state.json
"""

from __future__ import annotations

import asyncio
import logging

from playwright.async_api import async_playwright

from .methods.storage_state import StorageStateMethod

logger = logging.getLogger(__name__)

_BROWSER_ARGS = ["--no-sandbox", "--disable-dev-shm-usage", "--start-maximized"]


async def bootstrap_session(
    portal_url: str,
    output_path: str = "auth_state.json",
    timeout_minutes: int = 10,
    viewport_width: int = 1920,
    viewport_height: int = 1080,
) -> bool:
    """Launch a headed browser for manual login and save the session.

    Args:
        portal_url: URL of the login page / portal.
        output_path: Where to write the storage-state JSON.
        timeout_minutes: Maximum wait for the operator.
        viewport_width: Browser window width.
        viewport_height: Browser window height.

    Returns:
        True if a snapshot with at least one cookie was saved.
    """
    print("\n" + "=" * 60)
    print("  SESSION BOOTSTRAP")
    print("=" * 60)
    print(f"  Login URL:    {portal_url}")
    print(f"  Output file:  {output_path}")
    print(f"  Timeout:      {timeout_minutes} minutes")
    print("=" * 60)
    print()
    print("  A browser window will open. Log in manually, then press")
    print("  ENTER in this terminal to save the session.")
    print()

    store = StorageStateMethod()
    pw = await async_playwright().start()
    browser = None
    context = None

    try:
        browser = await pw.chromium.launch(headless=False, args=_BROWSER_ARGS)
        context = await browser.new_context(
            viewport={"width": viewport_width, "height": viewport_height},
        )
        page = await context.new_page()

        try:
            await page.goto(portal_url, wait_until="load", timeout=60_000)
        except Exception as e:
            logger.warning(f"[BOOTSTRAP] Initial navigation issue: {type(e).__name__}")

        print(f"  Browser opened. Current URL: {page.url[:100]}")
        print("  ➡  Log in now; press ENTER here when done.")
        print()

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, _wait_for_enter),
                timeout=timeout_minutes * 60,
            )
        except asyncio.TimeoutError:
            print(f"\n  ⏰ Timeout ({timeout_minutes} min) — saving current state anyway.")

        saved_path = await store.save(context, output_path)
        summary = store.summarize(saved_path)

        print(f"\n  Session saved: {saved_path}")
        print(f"  Cookies:       {summary['cookies']}")
        print(f"  Origins:       {summary['origins']}")

        if summary["cookies"]:
            print(f"  Domains:       {', '.join(summary['domains'][:10])}")
            print("\n  ✅ Session bootstrap complete!\n")
            return True

        print("\n  ⚠  No cookies saved — login may not have completed.\n")
        return False

    except Exception as e:
        logger.error(f"[BOOTSTRAP] Error: {type(e).__name__}: {e}")
        print(f"\n  ❌ Bootstrap failed: {e}")
        return False
    finally:
        if context:
            try:
                await context.close()
            except Exception:
                pass
        if browser:
            try:
                await browser.close()
            except Exception:
                pass
        await pw.stop()


def _wait_for_enter() -> str:
    """Block until the operator presses Enter (runs in executor)."""
    try:
        return input("  Press ENTER when login is complete → ")
    except (EOFError, KeyboardInterrupt):
        return ""
