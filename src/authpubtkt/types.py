"""Configuration types for ticket validation."""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Mapping, Optional


class CipherMethod(str, Enum):
    """AES block mode used for whole-ticket encryption."""

    ECB = "ecb"
    CBC = "cbc"


class TokenPolicy(str, Enum):
    """How required tokens are matched against the ticket tokens."""

    ALL_OF = "all-of"  # every required token must be present
    ANY_OF = "any-of"  # one matching token is enough


SUPPORTED_DIGESTS = ("sha1", "sha224", "sha256", "sha384", "sha512")

# mod_auth_pubtkt directive names -> option field names
DIRECTIVES = {
    "TKTAuthPublicKey": "public_key",
    "TKTAuthPrivateKey": "private_key",
    "TKTAuthCookieName": "cookie_name",
    "TKTAuthHeader": "header",
    "TKTCypherTicketsWithPasswd": "cipher_passphrase",
    "TKTCypherTicketsMethod": "cipher_method",
    "TKTCheckIpEnabled": "check_ip",
    "TKTCheckXForwardedIp": "check_x_forwarded_ip",
    "TKTAuthToken": "tokens",
    "TKTAuthTokenPolicy": "token_policy",
    "TKTAuthRequireSSL": "require_ssl",
    "TKTAuthDigest": "digest",
    "TKTAuthLoginURL": "login_url",
    "TKTAuthTimeoutURL": "timeout_url",
    "TKTAuthPostTimeoutURL": "post_timeout_url",
    "TKTAuthRefreshURL": "refresh_url",
    "TKTAuthUnauthURL": "unauth_url",
    "TKTAuthBackArgName": "back_arg_name",
    "TKTAuthFakeBasicAuth": "fake_basic_auth",
    "TKTAuthPassthruBasicAuth": "passthru_basic_auth",
    "TKTAuthPassthruBasicKey": "passthru_basic_key",
}

_LIST_FIELDS = ("header", "tokens")
_BOOL_FIELDS = (
    "check_ip",
    "check_x_forwarded_ip",
    "require_ssl",
    "fake_basic_auth",
    "passthru_basic_auth",
)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _to_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return list(value)


@dataclass
class AuthPubTktOptions:
    """Options for ticket validation and the middleware.

    Keys are PEM encoded. ``header`` is the ordered list of places a ticket
    is looked up in: the literal ``"cookie"`` reads the cookie named
    ``cookie_name``, anything else is read as a request header.
    """

    public_key: str = ""
    private_key: str = ""
    cookie_name: str = "auth_pubtkt"
    header: list[str] = field(default_factory=lambda: ["cookie"])
    cipher_passphrase: str = ""  # whole ticket encryption, disabled when empty
    cipher_method: CipherMethod = CipherMethod.ECB
    check_ip: bool = False
    check_x_forwarded_ip: bool = False  # take the client ip from X-Forwarded-For
    tokens: list[str] = field(default_factory=list)  # required tokens
    token_policy: TokenPolicy = TokenPolicy.ALL_OF
    require_ssl: bool = False
    digest: str = "sha1"
    login_url: str = ""
    timeout_url: str = ""
    post_timeout_url: str = ""
    refresh_url: str = ""
    unauth_url: str = ""
    back_arg_name: str = "back"
    fake_basic_auth: bool = False
    passthru_basic_auth: bool = False
    passthru_basic_key: str = ""  # aes key used to decrypt the bauth field

    def __post_init__(self):
        self.cipher_method = CipherMethod(self.cipher_method)
        self.token_policy = TokenPolicy(self.token_policy)
        self.digest = self.digest.lower()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthPubTktOptions":
        """
        Build options from a mapping.

        Keys may be mod_auth_pubtkt directive names (``TKTAuthPublicKey``,
        ``TKTAuthHeader``...) or field names. List options accept a comma
        separated string, boolean options accept the usual string spellings.

        Raises:
            ValueError: On an unknown key
        """
        names = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = DIRECTIVES.get(key, key)
            if name not in names:
                raise ValueError(f"Unknown option: {key!r}")
            if name in _LIST_FIELDS:
                value = _to_list(value)
            elif name in _BOOL_FIELDS:
                value = _to_bool(value)
            kwargs[name] = value
        return cls(**kwargs)

    def validate(self) -> None:
        """
        Check option consistency.

        Raises:
            ValueError: If the options cannot work together
        """
        if not self.header:
            raise ValueError("At least one ticket source must be configured in 'header'")
        if self.uses_cookie() and not self.cookie_name:
            raise ValueError("'cookie_name' is required when 'cookie' is a ticket source")
        if self.digest not in SUPPORTED_DIGESTS:
            raise ValueError(
                f"Unsupported digest {self.digest!r}, expected one of {', '.join(SUPPORTED_DIGESTS)}"
            )
        if self.passthru_basic_key and len(self.passthru_basic_key.encode()) not in (16, 24, 32):
            raise ValueError("'passthru_basic_key' must be 16, 24 or 32 bytes long")

    def uses_cookie(self) -> bool:
        return any(is_cookie_source(source) for source in self.header)

    def resolved_timeout_url(self, method: Optional[str] = None) -> str:
        """Timeout redirect target, honouring the POST specific URL."""
        timeout_url = self.timeout_url or self.login_url
        if method is not None and method.upper() == "POST":
            return self.post_timeout_url or timeout_url
        return timeout_url

    def resolved_refresh_url(self) -> str:
        return self.refresh_url or self.login_url

    def resolved_unauth_url(self) -> str:
        return self.unauth_url or self.login_url


def is_cookie_source(source: str) -> bool:
    return source.lower() == "cookie"
