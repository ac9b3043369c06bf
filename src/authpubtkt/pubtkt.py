"""Ticket engine: decoding, signing and validation of mod_auth_pubtkt tickets."""

import logging
import time
from typing import Callable, Optional
from urllib.parse import quote_plus, unquote_plus

import httpx
from starlette.requests import HTTPConnection
from starlette.responses import Response

from .cipher import OpenSSL
from .errors import (
    DecryptionError,
    GracePeriodExpiredError,
    NoValidTokenError,
    SigningError,
    TicketMissingError,
    TLSRequiredError,
    ValidationExpiredError,
    WrongIpError,
)
from .signature import SignatureEngine
from .ticket import Ticket, parse_ticket
from .types import AuthPubTktOptions, TokenPolicy, is_cookie_source

log = logging.getLogger(__name__)

Clock = Callable[[], float]

_SECURE_SCHEMES = ("https", "wss")


def strip_port(address: str) -> str:
    """Remove a trailing port from ``host:port`` or ``[v6]:port``."""
    address = address.strip()
    if address.startswith("["):
        end = address.find("]")
        return address[1:end] if end > 0 else address
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


class AuthPubTkt:
    """
    Decode, sign and verify tickets according to ``options``.

    Key material is loaded once here; an instance holds no per-request state
    and can be shared between concurrent requests.

    Args:
        options: Validation options
        clock: Returns the current time as unix seconds (default: ``time.time``)

    Raises:
        ValueError: If the options are inconsistent
        KeyLoadError: If a configured key cannot be loaded
    """

    def __init__(self, options: AuthPubTktOptions, clock: Clock = time.time):
        options.validate()
        self.options = options
        self.clock = clock
        self.openssl = OpenSSL()
        self.signer = SignatureEngine(
            public_key=options.public_key or None,
            private_key=options.private_key or None,
            digest=options.digest,
        )

    # ============ CODEC ============

    def raw_to_ticket(self, raw: str) -> Ticket:
        """
        Decode a wire ticket, decrypting it first when a passphrase is set.

        Raises:
            DecryptionError: If the encrypted ticket cannot be decrypted
            MalformedTicketError: If the plaintext is not a ticket
        """
        plaintext = raw
        if self.options.cipher_passphrase:
            decrypted = self.openssl.decrypt_string(
                self.options.cipher_passphrase, raw, self.options.cipher_method
            )
            try:
                plaintext = decrypted.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecryptionError("decrypted ticket is not valid utf-8") from e
        return parse_ticket(plaintext)

    def sign_ticket(self, ticket: Ticket) -> None:
        """Recompute ``raw_data`` and ``sig`` from the current ticket fields."""
        if not ticket.uid:
            raise SigningError("ticket has no uid")
        ticket.raw_data = ticket.data_string()
        ticket.sig = self.signer.sign(ticket.raw_data)

    def ticket_to_raw(self, ticket: Ticket) -> str:
        """
        Sign ``ticket`` and render its wire form.

        With a passphrase configured the whole ``data;sig=...`` line is
        encrypted and the base64 ciphertext returned.
        """
        self.sign_ticket(ticket)
        raw = str(ticket)
        if self.options.cipher_passphrase:
            return self.openssl.encrypt_string(
                self.options.cipher_passphrase, raw, self.options.cipher_method
            )
        return raw

    # ============ VALIDATION ============

    def verify_ticket(self, ticket: Ticket, client_ip: str) -> None:
        """
        Run every enabled check against ``ticket``.

        Checks run in a fixed order: signature, expiry, grace period, client
        ip, tokens. The first failure is raised.

        Raises:
            SignatureInvalidError, ValidationExpiredError, GracePeriodExpiredError,
            WrongIpError, NoValidTokenError
        """
        self.signer.verify(ticket.signed_data(), ticket.sig)

        now = self.clock()
        if now > ticket.validuntil:
            raise ValidationExpiredError()
        if ticket.graceperiod and now > ticket.graceperiod:
            raise GracePeriodExpiredError()

        if self.options.check_ip and ticket.cip and ticket.cip != client_ip:
            raise WrongIpError(f"client ip {client_ip!r} does not match ticket ip {ticket.cip!r}")

        if self.options.tokens and not self.has_required_tokens(ticket):
            raise NoValidTokenError()

    def has_required_tokens(self, ticket: Ticket) -> bool:
        granted = set(ticket.tokens)
        required = self.options.tokens
        if self.options.token_policy == TokenPolicy.ANY_OF:
            return any(token in granted for token in required)
        return all(token in granted for token in required)

    # ============ REQUESTS ============

    def extract_raw_ticket(self, request: HTTPConnection) -> Optional[str]:
        """Return the first non-empty ticket value found in the configured sources."""
        for source in self.options.header:
            if is_cookie_source(source):
                value = request.cookies.get(self.options.cookie_name)
            else:
                value = request.headers.get(source)
            if value:
                log.debug("Ticket found in %s", source)
                return value
        return None

    def request_to_ticket(self, request: HTTPConnection) -> Ticket:
        """
        Extract and decode the request ticket, without validating it.

        Raises:
            TicketMissingError: If no source holds a ticket
        """
        raw = self.extract_raw_ticket(request)
        if not raw:
            raise TicketMissingError()
        return self.raw_to_ticket(unquote_plus(raw))

    def client_ip(self, request: HTTPConnection) -> str:
        if self.options.check_x_forwarded_ip:
            forwarded = request.headers.get("x-forwarded-for", "")
            if forwarded:
                return strip_port(forwarded.split(",")[0])
        if request.client is None:
            return ""
        return strip_port(request.client.host)

    def verify_from_request(self, request: HTTPConnection) -> Ticket:
        """
        Extract, decode and validate the ticket carried by ``request``.

        Returns:
            The validated ticket

        Raises:
            TLSRequiredError: If a secured connection is required and missing
            TicketMissingError: If the request carries no ticket
            PubTktError: Any other decoding or validation failure
        """
        if self.options.require_ssl and request.url.scheme not in _SECURE_SCHEMES:
            raise TLSRequiredError()
        ticket = self.request_to_ticket(request)
        self.verify_ticket(ticket, self.client_ip(request))
        return ticket

    # ============ PRODUCER SIDE ============

    def _target(self) -> str:
        return self.options.header[0]

    def ticket_in_request(self, request: httpx.Request, ticket: Ticket) -> None:
        """Sign ``ticket`` and attach it to an outgoing request."""
        value = quote_plus(self.ticket_to_raw(ticket))
        target = self._target()
        if is_cookie_source(target):
            cookie = f"{self.options.cookie_name}={value}"
            existing = request.headers.get("Cookie")
            request.headers["Cookie"] = f"{existing}; {cookie}" if existing else cookie
        else:
            request.headers[target] = value

    def ticket_in_response(self, response: Response, ticket: Ticket) -> None:
        """Sign ``ticket`` and hand it to the client through ``response``."""
        value = quote_plus(self.ticket_to_raw(ticket))
        target = self._target()
        if is_cookie_source(target):
            response.set_cookie(
                self.options.cookie_name, value, secure=self.options.require_ssl
            )
        else:
            response.headers[target] = value
