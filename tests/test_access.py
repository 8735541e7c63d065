"""Tests for the access-code table."""

from smartreceipts.access import AccessGrant, is_admin, validate_code


def test_master_key_grants_active_user():
    grant = validate_code("MASTER_KEY")
    assert grant == AccessGrant(status="active", role="user", label="General key")


def test_code_is_case_and_space_insensitive():
    assert validate_code("  beta_tester ").status == "trial"


def test_owner_code():
    assert validate_code("OWNER_MASTER").role == "owner"


def test_unknown_code():
    assert validate_code("FREE_STUFF") is None
    assert validate_code("") is None
    assert validate_code(None) is None


def test_is_admin():
    assert is_admin(" Boss@Example.com", ["boss@example.com"]) is True
    assert is_admin("user@example.com", ["boss@example.com"]) is False
    assert is_admin("boss@example.com", []) is False
