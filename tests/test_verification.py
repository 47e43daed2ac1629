# tests/test_verification.py
"""Tests for the in-memory verification code store."""

from datetime import datetime, timedelta, timezone

from auth_service.utils import generate_verification_code
from auth_service.verification import InMemoryVerificationCodeStore

EMAIL = "someone@example.com"


def in_minutes(minutes: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


def test_code_can_only_be_verified_once():
    store = InMemoryVerificationCodeStore()
    store.set(EMAIL, "123456", in_minutes(10))

    assert store.verify(EMAIL, "123456") is True
    assert store.verify(EMAIL, "123456") is False, "A consumed code must not verify again"


def test_expired_code_never_verifies():
    store = InMemoryVerificationCodeStore()
    store.set(EMAIL, "000000", datetime.now(timezone.utc) - timedelta(seconds=1))

    assert store.verify(EMAIL, "000000") is False


def test_new_code_overwrites_previous_one():
    store = InMemoryVerificationCodeStore()
    store.set(EMAIL, "111111", in_minutes(10))
    store.set(EMAIL, "222222", in_minutes(10))

    assert store.verify(EMAIL, "111111") is False
    assert store.verify(EMAIL, "222222") is True


def test_wrong_code_does_not_consume_entry():
    store = InMemoryVerificationCodeStore()
    store.set(EMAIL, "123456", in_minutes(10))

    assert store.verify(EMAIL, "654321") is False
    assert store.verify(EMAIL, "123456") is True


def test_unknown_email_does_not_verify():
    store = InMemoryVerificationCodeStore()
    assert store.verify("nobody@example.com", "123456") is False


def test_get_drops_expired_entry():
    store = InMemoryVerificationCodeStore()
    store.set(EMAIL, "123456", datetime.now(timezone.utc) - timedelta(minutes=1))
    assert len(store) == 1

    assert store.get(EMAIL) is None
    assert len(store) == 0


def test_get_returns_live_entry():
    store = InMemoryVerificationCodeStore()
    expires_at = in_minutes(10)
    store.set(EMAIL, "123456", expires_at)

    entry = store.get(EMAIL)
    assert entry is not None
    assert entry.code == "123456"
    assert entry.expires_at == expires_at


def test_naive_expiry_is_read_as_utc():
    store = InMemoryVerificationCodeStore()
    naive_future = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(minutes=5)
    store.set(EMAIL, "123456", naive_future)

    assert store.verify(EMAIL, "123456") is True


def test_delete_removes_entry():
    store = InMemoryVerificationCodeStore()
    store.set(EMAIL, "123456", in_minutes(10))
    store.delete(EMAIL)
    store.delete(EMAIL)

    assert store.get(EMAIL) is None


def test_emails_are_independent():
    store = InMemoryVerificationCodeStore()
    store.set("a@example.com", "111111", in_minutes(10))
    store.set("b@example.com", "222222", in_minutes(10))

    assert store.verify("a@example.com", "222222") is False
    assert store.verify("b@example.com", "222222") is True
    assert store.verify("a@example.com", "111111") is True


def test_generated_codes_are_six_digits():
    for _ in range(200):
        code = generate_verification_code()
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) <= 999999
