import base64
import hashlib
import re

from asyncwebkit.auth import (
    check_basic_authentication,
    check_digest_authentication,
    generate_digest_hash,
    request_digest_authentication,
)


def _md5(text):
    return hashlib.md5(text.encode()).hexdigest()


def _digest_header(password, username="user", realm="home", nonce="abc123",
                   uri="/index.html", method="GET", opaque="xyz"):
    ha1 = _md5(f"{username}:{realm}:{password}")
    ha2 = _md5(f"{method}:{uri}")
    response = _md5(f"{ha1}:{nonce}:00000001:0a4f113b:auth:{ha2}")
    return (
        f'username="{username}", realm="{realm}", nonce="{nonce}", uri="{uri}", '
        f'qop=auth, nc=00000001, cnonce="0a4f113b", response="{response}", opaque="{opaque}"'
    )


def _basic(username, password):
    return base64.b64encode(f"{username}:{password}".encode()).decode()


def test_basic_accepts_matching_credentials():
    password = "password"
    assert check_basic_authentication(_basic("user", password), "user", password) is True


def test_basic_rejects_other_password():
    password = "password"
    assert check_basic_authentication(_basic("user", "secret"), "user", password) is False


def test_basic_rejects_missing_values():
    password = "password"
    assert check_basic_authentication(None, "user", password) is False
    assert check_basic_authentication(_basic("user", password), None, password) is False
    assert check_basic_authentication(_basic("user", password), "user", None) is False


def test_basic_rejects_wrong_length():
    password = "password"
    assert check_basic_authentication(_basic("user", password) + "=", "user", password) is False


def test_generate_digest_hash_shape():
    password = "password"
    result = generate_digest_hash("user", password, "home")
    assert result.startswith("user:home:")
    digest = result[len("user:home:"):]
    assert len(digest) == 32
    assert set(digest) <= set("0123456789abcdef")


def test_generate_digest_hash_missing_values():
    password = "password"
    assert generate_digest_hash(None, password, "home") == ""
    assert generate_digest_hash("user", password, None) == ""


def test_request_digest_default_realm():
    header = request_digest_authentication(None)
    fields = re.findall(r'(\w+)="([^"]*)"', header)
    assert [name for name, _ in fields] == ["realm", "qop", "nonce", "opaque"]
    values = dict(fields)
    assert values["realm"] == "asyncesp"
    assert values["qop"] == "auth"
    assert len(values["nonce"]) == 32
    assert set(values["nonce"]) <= set("0123456789abcdef")
    assert len(values["opaque"]) == 32
    assert set(values["opaque"]) <= set("0123456789abcdef")


def test_request_digest_named_realm():
    header = request_digest_authentication("home")
    assert header.startswith('realm="home", qop="auth", nonce="')


def test_digest_accepts_valid_response():
    password = "password"
    header = _digest_header(password)
    assert check_digest_authentication(header, "GET", "user", password, "home", False,
                                       "abc123", "xyz", "/index.html") is True


def test_digest_accepts_without_optional_checks():
    password = "password"
    header = _digest_header(password)
    assert check_digest_authentication(header, "GET", "user", password, None, False,
                                       None, None, None) is True


def test_digest_with_stored_hash():
    password = "password"
    stored = generate_digest_hash("user", password, "home")
    ha1 = stored[len("user:home:"):]
    header = _digest_header(password)
    assert check_digest_authentication(header, "GET", "user", ha1, "home", True,
                                       None, None, None) is True


def test_digest_rejects_wrong_password():
    password = "password"
    header = _digest_header("secret")
    assert check_digest_authentication(header, "GET", "user", password, None, False,
                                       None, None, None) is False


def test_digest_rejects_other_method():
    password = "password"
    header = _digest_header(password)
    assert check_digest_authentication(header, "POST", "user", password, None, False,
                                       None, None, None) is False


def test_digest_rejects_mismatched_fields():
    password = "password"
    header = _digest_header(password)
    assert check_digest_authentication(header, "GET", "admin", password, None, False, None, None, None) is False
    assert check_digest_authentication(header, "GET", "user", password, "other", False, None, None, None) is False
    assert check_digest_authentication(header, "GET", "user", password, None, False, "n0", None, None) is False
    assert check_digest_authentication(header, "GET", "user", password, None, False, None, "o0", None) is False
    assert check_digest_authentication(header, "GET", "user", password, None, False, None, None, "/x") is False


def test_digest_rejects_malformed_headers():
    password = "password"
    assert check_digest_authentication('username="user"', "GET", "user", password,
                                       None, False, None, None, None) is False
    assert check_digest_authentication('username="user", broken', "GET", "user", password,
                                       None, False, None, None, None) is False


def test_digest_rejects_missing_arguments():
    password = "password"
    header = _digest_header(password)
    assert check_digest_authentication(None, "GET", "user", password, None, False, None, None, None) is False
    assert check_digest_authentication(header, None, "user", password, None, False, None, None, None) is False
    assert check_digest_authentication(header, "GET", "user", None, None, False, None, None, None) is False