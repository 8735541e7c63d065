"""Tests for the on-disk LocalCache."""

import pytest

from smartreceipts.models import PersistedBundle, Receipt, SessionPointer, UserProfile
from smartreceipts.store.local import BUNDLE_KEY, SESSION_KEY, LocalCache


@pytest.fixture
def cache(tmp_path):
    return LocalCache(tmp_path / "cache")


def test_empty_cache(cache):
    assert cache.read_bundle() is None
    assert cache.read_session() is None


def test_write_and_read_bundle(cache):
    bundle = PersistedBundle(
        user_profile=UserProfile(email="a@x.com", monthly_budget=200),
        history=[Receipt(id="r1")],
        chat_history=[],
        is_cloud_enabled=False,
    )
    cache.write_bundle(bundle)
    loaded = cache.read_bundle()
    assert loaded.user_profile.monthly_budget == 200.0
    assert [r.id for r in loaded.history] == ["r1"]
    assert loaded.is_cloud_enabled is False


def test_creates_cache_dir(tmp_path):
    cache = LocalCache(tmp_path / "a" / "b")
    cache.write_session(SessionPointer(email="a@x.com"))
    assert (tmp_path / "a" / "b" / f"{SESSION_KEY}.json").exists()


def test_corrupt_bundle_reads_as_none(cache, tmp_path):
    cache.write_session(SessionPointer(email="a@x.com"))
    (tmp_path / "cache" / f"{BUNDLE_KEY}.json").write_text("{broken")
    assert cache.read_bundle() is None


def test_malformed_bundle_reads_as_none(cache, tmp_path):
    cache.write_session(SessionPointer(email="a@x.com"))
    (tmp_path / "cache" / f"{BUNDLE_KEY}.json").write_text('{"history": [42]}')
    assert cache.read_bundle() is None


def test_session_without_email_reads_as_none(cache, tmp_path):
    cache.write_session(SessionPointer(email="a@x.com"))
    (tmp_path / "cache" / f"{SESSION_KEY}.json").write_text("{}")
    assert cache.read_session() is None


def test_clear_all(cache):
    cache.write_session(SessionPointer(email="a@x.com"))
    cache.write_bundle(PersistedBundle(user_profile=UserProfile(email="a@x.com")))
    cache.clear_all()
    assert cache.read_session() is None
    assert cache.read_bundle() is None
    # clearing twice is fine
    cache.clear_all()
