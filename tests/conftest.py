"""Shared fixtures: key material and request builders."""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa
from starlette.requests import Request


@pytest.fixture(scope="session")
def dsa_keys():
    """A freshly generated DSA key pair as (public PEM, private PEM)."""
    private_key = dsa.generate_private_key(key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return public_pem, private_pem


@pytest.fixture
def make_request():
    """Build a Starlette request without going through a server."""

    def _make(
        headers=None,
        cookies=None,
        scheme="http",
        client=("127.0.0.1", 52332),
        method="GET",
    ):
        raw_headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or {}).items()
        ]
        if cookies:
            cookie = "; ".join(f"{name}={value}" for name, value in cookies.items())
            raw_headers.append((b"cookie", cookie.encode("latin-1")))
        scope = {
            "type": "http",
            "method": method,
            "scheme": scheme,
            "server": ("local.com", 443 if scheme == "https" else 80),
            "path": "/",
            "root_path": "",
            "query_string": b"",
            "headers": raw_headers,
            "client": client,
        }
        return Request(scope)

    return _make
