"""HTTP Basic and Digest authentication helpers."""

from __future__ import annotations

import base64
import hashlib
import secrets

DEFAULT_REALM = "asyncesp"


def _md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def _random_md5() -> str:
    return _md5_hex(secrets.randbits(32).to_bytes(4, "little"))


def check_basic_authentication(hash: str | None, username: str | None, password: str | None) -> bool:
    """Return True if ``hash`` is base64("username:password")."""
    if hash is None or username is None or password is None:
        return False
    expected = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return hash == expected


def generate_digest_hash(username: str | None, password: str | None, realm: str | None) -> str:
    """Return "username:realm:" followed by MD5("username:realm:password").

    The result is meant to be stored instead of a clear-text password.
    """
    if username is None or password is None or realm is None:
        return ""
    prefix = f"{username}:{realm}:"
    return prefix + _md5_hex((prefix + password).encode("utf-8"))


def request_digest_authentication(realm: str | None) -> str:
    """Build the parameters of a ``WWW-Authenticate: Digest`` challenge."""
    return (
        f'realm="{DEFAULT_REALM if realm is None else realm}", qop="auth", '
        f'nonce="{_random_md5()}", opaque="{_random_md5()}"'
    )


def _digest_fields(header: str) -> list[tuple[str, str]] | None:
    """Split a Digest header into name/value pairs, or None when malformed."""
    segments = (header + ", ").split(",")[:-1]
    fields = []
    for position, segment in enumerate(segments):
        if position and not segment:
            break
        name, equals, value = segment.strip().partition("=")
        if not equals:
            return None
        if value.startswith('"') and len(value) > 1:
            value = value[1:-1]
        fields.append((name, value))
    return fields


def check_digest_authentication(
    header: str | None,
    method: str | None,
    username: str | None,
    password: str | None,
    realm: str | None,
    password_is_hash: bool,
    nonce: str | None,
    opaque: str | None,
    uri: str | None,
) -> bool:
    """Verify the parameters of an ``Authorization: Digest`` header."""
    if username is None or password is None or header is None or method is None:
        return False
    if "," not in header:
        return False
    fields = _digest_fields(header)
    if fields is None:
        return False

    required = {"username": username, "realm": realm, "nonce": nonce, "opaque": opaque, "uri": uri}
    values: dict[str, str] = {}
    for name, value in fields:
        wanted = required.get(name)
        if wanted is not None and value != wanted:
            return False
        values[name] = value

    def field(name: str) -> str:
        return values.get(name, "")

    if password_is_hash:
        ha1 = password
    else:
        ha1 = _md5_hex(f"{field('username')}:{field('realm')}:{password}".encode("utf-8"))
    ha2 = _md5_hex(f"{method}:{field('uri')}".encode("utf-8"))
    response = ":".join([ha1, field("nonce"), field("nc"), field("cnonce"), field("qop"), ha2])
    return field("response") == _md5_hex(response.encode("utf-8"))