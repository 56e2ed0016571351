import base64
import time
from datetime import timedelta

import pytest

from turnkit.auth import (
    AuthHandler,
    LongTermAuthHandler,
    generate_auth_key,
    generate_long_term_credentials,
)

SRC = ("127.0.0.1", 5000)


def test_long_term_round_trip():
    handler = LongTermAuthHandler("secret")
    username, password = generate_long_term_credentials("secret", 60)
    key = handler.auth_handle(username, "example.org", SRC)
    assert key == generate_auth_key(username, "example.org", password)


def test_wrong_shared_secret_gives_different_key():
    handler = LongTermAuthHandler("placeholder")
    username, password = generate_long_term_credentials("secret", 60)
    key = handler.auth_handle(username, "example.org", SRC)
    assert key != generate_auth_key(username, "example.org", password)


def test_username_is_expiry_time():
    before = int(time.time())
    username, _ = generate_long_term_credentials("secret", 60)
    assert before + 60 <= int(username) <= int(time.time()) + 60


def test_timedelta_duration_accepted():
    before = int(time.time())
    username, _ = generate_long_term_credentials("secret", timedelta(minutes=1))
    assert before + 60 <= int(username) <= int(time.time()) + 60


def test_password_is_base64_sha1():
    _, password = generate_long_term_credentials("secret", 60)
    assert len(base64.b64decode(password)) == 20


def test_expired_username_rejected():
    handler = LongTermAuthHandler("secret")
    with pytest.raises(ValueError, match="Expired"):
        handler.auth_handle("0", "example.org", SRC)


def test_non_numeric_username_rejected():
    handler = LongTermAuthHandler("secret")
    with pytest.raises(ValueError):
        handler.auth_handle("alice", "example.org", SRC)


def test_auth_key_is_md5_sized_and_deterministic():
    a = generate_auth_key("user", "example.org", "password")
    b = generate_auth_key("user", "example.org", "password")
    assert len(a) == 16
    assert a == b


def test_auth_key_depends_on_realm():
    a = generate_auth_key("user", "example.org", "password")
    b = generate_auth_key("user", "example.net", "password")
    assert a != b


def test_auth_handler_is_abstract():
    with pytest.raises(TypeError):
        AuthHandler()


def test_custom_auth_handler():
    class StaticHandler(AuthHandler):
        def __init__(self, keys):
            self.keys = keys

        def auth_handle(self, username, realm, src_addr):
            return self.keys[username]

    key = generate_auth_key("user", "example.org", "password")
    handler = StaticHandler({"user": key})
    assert handler.auth_handle("user", "example.org", SRC) == key
    with pytest.raises(KeyError):
        handler.auth_handle("other", "example.org", SRC)