"""authpubtkt - mod_auth_pubtkt compatible single-sign-on tickets for ASGI services."""

__version__ = "0.1.0"

from authpubtkt.cipher import OpenSSL, bauth_decrypt, bauth_encrypt
from authpubtkt.client import PubTktAuth
from authpubtkt.errors import (
    DecryptionError,
    ErrorKind,
    GracePeriodExpiredError,
    KeyLoadError,
    MalformedTicketError,
    NoValidTokenError,
    PubTktError,
    SignatureInvalidError,
    SigningError,
    TicketMissingError,
    TLSRequiredError,
    UnclassifiedError,
    ValidationExpiredError,
    WrongIpError,
)
from authpubtkt.middleware import (
    AuthPubTktMiddleware,
    ErrorPolicy,
    HandlerConfig,
    escalate_on_error,
    set_create_auth_pubtkt,
    set_status,
    show_error_details,
    ticket_from_request,
)
from authpubtkt.pubtkt import AuthPubTkt
from authpubtkt.signature import SignatureAlgorithm, SignatureEngine
from authpubtkt.ticket import Ticket, parse_ticket
from authpubtkt.types import AuthPubTktOptions, CipherMethod, TokenPolicy

__all__ = [
    "AuthPubTkt",
    "AuthPubTktMiddleware",
    "AuthPubTktOptions",
    "CipherMethod",
    "DecryptionError",
    "ErrorKind",
    "ErrorPolicy",
    "GracePeriodExpiredError",
    "HandlerConfig",
    "KeyLoadError",
    "MalformedTicketError",
    "NoValidTokenError",
    "OpenSSL",
    "PubTktAuth",
    "PubTktError",
    "SignatureAlgorithm",
    "SignatureEngine",
    "SignatureInvalidError",
    "SigningError",
    "TLSRequiredError",
    "Ticket",
    "TicketMissingError",
    "TokenPolicy",
    "UnclassifiedError",
    "ValidationExpiredError",
    "WrongIpError",
    "bauth_decrypt",
    "bauth_encrypt",
    "escalate_on_error",
    "parse_ticket",
    "set_create_auth_pubtkt",
    "set_status",
    "show_error_details",
    "ticket_from_request",
    "__version__",
]
