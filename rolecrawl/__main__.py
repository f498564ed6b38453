#!/usr/bin/env python3
"""
rolecrawl CLI
=============
Session tooling for authenticated crawls.

    python -m rolecrawl login --config auth.json --role admin --save state/admin.json
    python -m rolecrawl bootstrap https://app.example.com/login --output state/admin.json
    python -m rolecrawl check-state state/admin.json --max-age-hours 8

Credentials are read from the env vars named in the config (a ``.env``
next to the config, or in the working directory, is loaded first).  Every
log line passes through the credential guard before it is printed.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv
from playwright.async_api import async_playwright

from .auth.authenticator import Authenticator
from .auth.config import has_credentials_in_config, load_auth_config
from .auth.credential_guard import CredentialGuard
from .auth.errors import AuthError
from .auth.methods.storage_state import StorageStateMethod
from .auth.session_bootstrap import bootstrap_session

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )


def install_redaction(guard: CredentialGuard) -> None:
    """Attach the guard's redacting filter to every root handler."""
    for handler in logging.getLogger().handlers:
        handler.addFilter(guard.redacting_filter())


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _login(args: argparse.Namespace) -> int:
    config = load_auth_config(args.config, dotenv_path=args.dotenv)
    if has_credentials_in_config(args.config):
        logger.warning(
            "[CLI] ⚠  Config file contains literal credentials — "
            "move them to environment variables"
        )

    guard = CredentialGuard(config)
    install_redaction(guard)

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=not args.headed)
        auth = Authenticator(config, browser, guard=guard)
        try:
            await auth.authenticate(args.role)
            if args.save:
                path = await auth.save_storage_state(args.role, args.save)
                print(f"  Session saved: {path}")
            print(f"  ✅ Role '{args.role}' authenticated")
            for event in auth.get_auth_events():
                logger.debug(f"[CLI] Event: {json.dumps(event.to_dict())}")
        finally:
            await auth.close()
            await browser.close()
    return EXIT_OK


def cmd_login(args: argparse.Namespace) -> int:
    try:
        return asyncio.run(_login(args))
    except AuthError as exc:
        logger.error(exc.user_message())
        return EXIT_FAILURE


def cmd_bootstrap(args: argparse.Namespace) -> int:
    url = args.url
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    ok = asyncio.run(bootstrap_session(
        portal_url=url,
        output_path=args.output,
        timeout_minutes=args.timeout,
    ))
    return EXIT_OK if ok else EXIT_FAILURE


def cmd_check_state(args: argparse.Namespace) -> int:
    store = StorageStateMethod()
    if not store.validate(args.path, max_age_hours=args.max_age_hours):
        print(f"  ❌ Invalid or expired storage state: {args.path}")
        return EXIT_FAILURE

    summary = store.summarize(args.path)
    print(f"  ✅ Valid storage state: {summary['path']}")
    print(f"  Cookies:  {summary['cookies']}")
    print(f"  Origins:  {summary['origins']}")
    print(f"  Age:      {summary['age_hours']}h")
    if summary['domains']:
        print(f"  Domains:  {', '.join(summary['domains'][:10])}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='rolecrawl',
        description='Role-based authentication tooling for authenticated crawls',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m rolecrawl login --config auth.json --role admin --save state/admin.json
  python -m rolecrawl bootstrap https://app.example.com/login --output state/admin.json
  python -m rolecrawl check-state state/admin.json --max-age-hours 8
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    login = sub.add_parser('login', help='Authenticate one role and optionally save its session')
    login.add_argument('--config', required=True, metavar='PATH', help='Auth config JSON file')
    login.add_argument('--role', required=True, help='Role name from the config')
    login.add_argument('--save', metavar='PATH', help='Write the storage state here on success')
    login.add_argument('--dotenv', metavar='PATH', help='.env file with credential env vars')
    login.add_argument('--headed', action='store_true', help='Show the browser window')
    login.set_defaults(func=cmd_login)

    bootstrap = sub.add_parser('bootstrap', help='Manual login in a headed browser (MFA, CAPTCHA)')
    bootstrap.add_argument('url', help='Login or portal URL')
    bootstrap.add_argument('--output', default='auth_state.json', metavar='PATH',
                           help='Storage state output file (default: auth_state.json)')
    bootstrap.add_argument('--timeout', type=int, default=10,
                           help='Minutes to wait for the manual login (default: 10)')
    bootstrap.set_defaults(func=cmd_bootstrap)

    check = sub.add_parser('check-state', help='Validate a saved storage-state file')
    check.add_argument('path', help='Storage state JSON file')
    check.add_argument('--max-age-hours', type=float, default=None,
                       help='Reject files older than this')
    check.set_defaults(func=cmd_check_state)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    load_dotenv()
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
