"""Tests for payload encryption."""

import pytest

from portal_docs.crypto import PayloadCipher
from portal_docs.exceptions import CacheCorruptionError


def test_round_trip_preserves_value():
    cipher = PayloadCipher("secret")
    payload = [{"file_name": "Přednáška", "files": [{"type": "pdf"}]}]

    token = cipher.encrypt(payload)

    assert isinstance(token, str)
    assert "Přednáška" not in token
    assert cipher.decrypt(token) == payload


def test_same_secret_derives_same_key():
    token = PayloadCipher("secret").encrypt({"a": 1})

    assert PayloadCipher("secret").decrypt(token) == {"a": 1}


def test_wrong_key_raises_corruption():
    token = PayloadCipher("secret").encrypt({"a": 1})

    with pytest.raises(CacheCorruptionError) as exc_info:
        PayloadCipher("other").decrypt(token, key="files_ALG")

    assert exc_info.value.key == "files_ALG"


def test_non_token_payloads_raise_corruption():
    cipher = PayloadCipher("secret")

    for token in (None, 42, ["x"], "not-a-token", "Přednáška"):
        with pytest.raises(CacheCorruptionError):
            cipher.decrypt(token)


def test_missing_key_is_ephemeral():
    cipher = PayloadCipher()

    assert cipher.ephemeral
    assert not PayloadCipher("secret").ephemeral
    assert cipher.decrypt(cipher.encrypt("x")) == "x"
    with pytest.raises(CacheCorruptionError):
        PayloadCipher().decrypt(cipher.encrypt("x"))
