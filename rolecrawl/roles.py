"""
Roles
=====
Runtime view of a configured role during an authenticated crawl.

A ``Role`` wraps its ``RoleConfig`` with crawl results: the URLs it could
reach, the URLs only it could reach, and an optional saved session.
Privilege levels come from configuration when given; otherwise they can be
inferred after the crawl from how much each role could see.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from .auth.config import RoleConfig

DEFAULT_PRIVILEGE_LEVEL = 1


@dataclass
class Role:
    config: RoleConfig
    privilege_level: int = DEFAULT_PRIVILEGE_LEVEL
    accessible_urls: Set[str] = field(default_factory=set)
    exclusive_urls: Set[str] = field(default_factory=set)
    storage_state: Optional[Dict[str, Any]] = None

    @property
    def name(self) -> str:
        return self.config.name

    def add_accessible_urls(self, urls: Iterable[str]) -> None:
        self.accessible_urls.update(urls)


def create_role(config: RoleConfig) -> Role:
    """Build a ``Role``; privilege defaults to the configured level or 1."""
    level = config.privilege_level if config.privilege_level is not None else DEFAULT_PRIVILEGE_LEVEL
    return Role(config=config, privilege_level=level)


def sort_roles_by_privilege(roles: Iterable[Role]) -> List[Role]:
    """Highest privilege first; ties keep their original order."""
    return sorted(roles, key=lambda r: r.privilege_level, reverse=True)


def infer_privilege_levels(roles: Iterable[Role]) -> List[Role]:
    """Assign privilege levels by accessible page count.

    Roles are ranked by ``len(accessible_urls)`` (descending); rank ``i`` of
    ``n`` gets level ``n - i``.  Explicitly configured levels are kept.

    Returns:
        The roles in ranked order (levels updated in place).
    """
    ranked = sorted(roles, key=lambda r: len(r.accessible_urls), reverse=True)
    total = len(ranked)
    for index, role in enumerate(ranked):
        configured = role.config.privilege_level
        role.privilege_level = configured if configured is not None else total - index
    return ranked


def compute_exclusive_urls(roles: Iterable[Role]) -> None:
    """Set each role's ``exclusive_urls``: reachable by it, by no lower role."""
    ordered = sort_roles_by_privilege(roles)
    for role in ordered:
        lower: Set[str] = set()
        for other in ordered:
            if other.privilege_level < role.privilege_level:
                lower |= other.accessible_urls
        role.exclusive_urls = role.accessible_urls - lower
