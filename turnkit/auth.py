"""TURN authentication helpers and handlers."""

from __future__ import annotations

import abc
import base64
import hashlib
import hmac
import logging
import re
import time
from datetime import timedelta

from turnkit.five_tuple import Address

log = logging.getLogger(__name__)

_USERNAME_RE = re.compile(r"\+?[0-9]+", re.ASCII)


class AuthHandler(abc.ABC):
    """Looks up the long-term key for a user."""

    @abc.abstractmethod
    def auth_handle(self, username: str, realm: str, src_addr: Address) -> bytes:
        """Return the key for ``username`` in ``realm`` or raise."""


def _long_term_credentials(username: str, shared_secret: str) -> str:
    digest = hmac.new(
        shared_secret.encode("utf-8"), username.encode("utf-8"), hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def generate_long_term_credentials(
    shared_secret: str, duration: float | timedelta
) -> tuple[str, str]:
    """Create a (username, password) pair valid for ``duration`` (seconds or timedelta)."""
    seconds = duration.total_seconds() if isinstance(duration, timedelta) else float(duration)
    username = str(int(time.time() + seconds))
    return username, _long_term_credentials(username, shared_secret)


def generate_auth_key(username: str, realm: str, password: str) -> bytes:
    """Return MD5(username:realm:password), the key format used by AuthHandler."""
    return hashlib.md5(f"{username}:{realm}:{password}".encode("utf-8")).digest()


class LongTermAuthHandler(AuthHandler):
    """Validates time-windowed usernames against a shared secret."""

    def __init__(self, shared_secret: str) -> None:
        self._shared_secret = shared_secret

    def auth_handle(self, username: str, realm: str, src_addr: Address) -> bytes:
        log.debug(
            "Authentication username=%s realm=%s src_addr=%s", username, realm, src_addr
        )
        if not _USERNAME_RE.fullmatch(username):
            raise ValueError(f"invalid time-windowed username {username!r}")
        if int(username) < time.time():
            raise ValueError(f"Expired time-windowed username {username}")
        password = _long_term_credentials(username, self._shared_secret)
        return generate_auth_key(username, realm, password)