"""
rolecrawl
Role-based authentication and session handling for an authenticated web crawler.

CLI Usage:
    python -m rolecrawl <command> [options]

    Commands:
        login        Authenticate one configured role and save its session
        bootstrap    Headed browser for manual login (MFA, CAPTCHA)
        check-state  Validate a saved storage-state file
"""

from .roles import Role, create_role, infer_privilege_levels, sort_roles_by_privilege

__all__ = [
    'Role',
    'create_role',
    'infer_privilege_levels',
    'sort_roles_by_privilege',
]

__version__ = '0.1.0'
