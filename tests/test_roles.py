"""Tests for the runtime role model."""

from rolecrawl.auth.config import CredentialSource, RoleConfig
from rolecrawl.roles import (
    compute_exclusive_urls,
    create_role,
    infer_privilege_levels,
    sort_roles_by_privilege,
)


def _config(name, level=None):
    return RoleConfig(name=name, credentials=CredentialSource(f"{name}_E", f"{name}_P"), privilege_level=level)


def test_create_role_defaults():
    role = create_role(_config("viewer"))
    assert role.privilege_level == 1
    assert role.name == "viewer"
    assert role.accessible_urls == set()
    assert create_role(_config("admin", 5)).privilege_level == 5


def test_sort_highest_first():
    roles = [create_role(_config("a", 1)), create_role(_config("b", 3)), create_role(_config("c", 2))]
    assert [r.name for r in sort_roles_by_privilege(roles)] == ["b", "c", "a"]


def test_infer_privilege_levels():
    small = create_role(_config("viewer"))
    small.add_accessible_urls(["/a"])
    big = create_role(_config("admin"))
    big.add_accessible_urls(["/a", "/b", "/c"])
    pinned = create_role(_config("auditor", 10))
    pinned.add_accessible_urls(["/a", "/b"])

    ranked = infer_privilege_levels([small, big, pinned])

    assert [r.name for r in ranked] == ["admin", "auditor", "viewer"]
    assert big.privilege_level == 3
    assert pinned.privilege_level == 10
    assert small.privilege_level == 1


def test_compute_exclusive_urls():
    viewer = create_role(_config("viewer", 1))
    viewer.add_accessible_urls(["/home", "/docs"])
    admin = create_role(_config("admin", 2))
    admin.add_accessible_urls(["/home", "/docs", "/admin"])

    compute_exclusive_urls([viewer, admin])

    assert admin.exclusive_urls == {"/admin"}
    assert viewer.exclusive_urls == {"/home", "/docs"}
