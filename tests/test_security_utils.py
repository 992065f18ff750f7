"""Tests for secret encryption and helpers."""

from slotkeeper.security_utils import (
    constant_time_compare,
    decrypt_secret,
    encrypt_secret,
    get_cipher,
    mask_sensitive_data,
)


def test_secret_round_trip():
    token = encrypt_secret("refresh-token")
    assert token != "refresh-token"
    assert decrypt_secret(token) == "refresh-token"


def test_rotated_key_reads_as_missing():
    token = encrypt_secret("refresh-token", cipher=get_cipher("old-secret"))
    assert decrypt_secret(token, cipher=get_cipher("new-secret")) is None


def test_nothing_stored():
    assert decrypt_secret(None) is None
    assert decrypt_secret("") is None


def test_mask_sensitive_data():
    assert mask_sensitive_data("1234567890.apps.example") == "*******************mple"
    assert mask_sensitive_data("abc") == "***"


def test_constant_time_compare():
    assert constant_time_compare("admin-key", "admin-key")
    assert not constant_time_compare("admin-key", "admin-kez")
