"""Tests for storage-state apply / save / validate / summarize."""

import json
import os
import stat
import time

import pytest

from rolecrawl.auth.errors import AuthenticationError, StorageStateNotFoundError
from rolecrawl.auth.methods.storage_state import StorageStateMethod

COOKIE = {
    "name": "sid", "value": "cookie-secret-value", "domain": "app.example.com",
    "path": "/", "expires": -1, "httpOnly": True, "secure": True, "sameSite": "Lax",
}


@pytest.fixture
def store():
    return StorageStateMethod()


def _write_state(path, cookies=(), origins=()):
    path.write_text(json.dumps({"cookies": list(cookies), "origins": list(origins)}), encoding="utf-8")
    return path


class TestApply:

    async def test_missing_file_raises_with_path(self, store, tmp_path, make_context):
        missing = str(tmp_path / "nope" / "state.json")
        with pytest.raises(StorageStateNotFoundError) as exc_info:
            await store.apply(make_context(), missing)
        assert exc_info.value.path == missing

    async def test_cookies_added(self, store, tmp_path, make_page, make_context):
        path = _write_state(tmp_path / "state.json", cookies=[COOKIE])
        context = make_context(make_page())

        assert await store.apply(context, path) is True
        context.add_cookies.assert_awaited_once_with([COOKIE])

    async def test_local_storage_restored_per_origin(self, store, tmp_path, make_page, make_context):
        items = [{"name": "token", "value": "abc"}]
        path = _write_state(
            tmp_path / "state.json",
            origins=[{"origin": "https://app.example.com", "localStorage": items}],
        )
        page = make_page()
        await store.apply(make_context(page), path)

        page.goto.assert_awaited_once_with("https://app.example.com", wait_until="domcontentloaded")
        page.evaluate.assert_awaited_once()
        assert page.evaluate.await_args.args[1] == items

    async def test_empty_origins_skip_navigation(self, store, tmp_path, make_page, make_context):
        path = _write_state(tmp_path / "state.json", cookies=[COOKIE],
                            origins=[{"origin": "https://app.example.com", "localStorage": []}])
        page = make_page()
        await store.apply(make_context(page), path)
        page.goto.assert_not_awaited()

    async def test_invalid_json(self, store, tmp_path, make_context):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(AuthenticationError) as exc_info:
            await store.apply(make_context(), path, role="viewer")
        assert exc_info.value.role == "viewer"


class TestSave:

    async def test_owner_only_permissions(self, store, tmp_path, make_context):
        target = tmp_path / "states" / "admin.json"
        context = make_context(state={"cookies": [COOKIE], "origins": []})

        written = await store.save(context, target)

        assert written == target
        assert json.loads(target.read_text(encoding="utf-8"))["cookies"] == [COOKIE]
        assert stat.S_IMODE(target.stat().st_mode) == 0o600
        assert stat.S_IMODE(target.parent.stat().st_mode) & 0o077 == 0


class TestValidate:

    def test_missing(self, store, tmp_path):
        assert store.validate(tmp_path / "missing.json") is False

    def test_valid(self, store, tmp_path):
        assert store.validate(_write_state(tmp_path / "s.json", cookies=[COOKIE]))

    def test_origins_only_is_valid(self, store, tmp_path):
        path = tmp_path / "s.json"
        path.write_text(json.dumps({"origins": []}), encoding="utf-8")
        assert store.validate(path)

    def test_wrong_shape(self, store, tmp_path):
        path = tmp_path / "s.json"
        path.write_text(json.dumps({"cookies": "nope"}), encoding="utf-8")
        assert store.validate(path) is False

    def test_corrupt(self, store, tmp_path):
        path = tmp_path / "s.json"
        path.write_text("[", encoding="utf-8")
        assert store.validate(path) is False

    def test_max_age(self, store, tmp_path):
        path = _write_state(tmp_path / "s.json", cookies=[COOKIE])
        old = time.time() - 10 * 3600
        os.utime(path, (old, old))
        assert store.validate(path, max_age_hours=8) is False
        assert store.validate(path, max_age_hours=12) is True
        assert store.validate(path) is True


def test_summarize_never_includes_values(store, tmp_path):
    path = _write_state(tmp_path / "s.json", cookies=[COOKIE],
                        origins=[{"origin": "https://app.example.com", "localStorage": []}])
    summary = store.summarize(path)

    assert summary["cookies"] == 1
    assert summary["origins"] == 1
    assert summary["domains"] == ["app.example.com"]
    assert "cookie-secret-value" not in json.dumps(summary)
