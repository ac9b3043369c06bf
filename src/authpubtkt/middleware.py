"""Starlette middleware guarding an application with mod_auth_pubtkt tickets.

Valid tickets are attached to the request state and the request is passed on,
optionally with a rewritten ``Authorization`` header. Rejected requests are
redirected to the URL matching the failure, answered with a fixed status, or
the error is re-raised to the server when escalation is configured.
"""

import base64
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence
from urllib.parse import quote_plus

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import HTTPConnection, Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response
from starlette.types import ASGIApp

from .cipher import bauth_decrypt
from .errors import ErrorKind, PubTktError, UnclassifiedError
from .pubtkt import AuthPubTkt
from .ticket import Ticket
from .types import AuthPubTktOptions

log = logging.getLogger(__name__)

TICKET_STATE_ATTR = "pubtkt_ticket"
FAKE_BASIC_AUTH_PASSWORD = "password"


class ErrorPolicy(str, Enum):
    """What to do with an error that has no dedicated redirect."""

    RESPOND_WITH_STATUS = "respond"
    ESCALATE = "escalate"


@dataclass
class HandlerConfig:
    """Middleware behaviour, built by applying handler options in order."""

    status_text: str = "Forbidden"
    status_code: int = 403
    show_error_details: bool = False
    error_policy: ErrorPolicy = ErrorPolicy.RESPOND_WITH_STATUS
    create_auth_pubtkt: Callable[[AuthPubTktOptions], Any] = AuthPubTkt


HandlerOption = Callable[[HandlerConfig], None]


def set_status(text: str, code: int) -> HandlerOption:
    """Body and status code sent for errors without a redirect."""

    def apply(config: HandlerConfig) -> None:
        config.status_text = text
        config.status_code = code

    return apply


def show_error_details() -> HandlerOption:
    """Append the error message to status responses."""

    def apply(config: HandlerConfig) -> None:
        config.show_error_details = True

    return apply


def escalate_on_error() -> HandlerOption:
    """Re-raise errors without a redirect instead of answering them."""

    def apply(config: HandlerConfig) -> None:
        config.error_policy = ErrorPolicy.ESCALATE

    return apply


def set_create_auth_pubtkt(factory: Callable[[AuthPubTktOptions], Any]) -> HandlerOption:
    """Replace the engine factory, the result must provide ``verify_from_request``."""

    def apply(config: HandlerConfig) -> None:
        config.create_auth_pubtkt = factory

    return apply


def build_handler_config(handler_options: Sequence[HandlerOption] = ()) -> HandlerConfig:
    config = HandlerConfig()
    for option in handler_options:
        option(config)
    return config


def ticket_from_request(request: HTTPConnection) -> Optional[Ticket]:
    """Ticket attached by ``AuthPubTktMiddleware``, or None."""
    return getattr(request.state, TICKET_STATE_ATTR, None)


def _encode_header_value(value: str) -> bytes:
    try:
        return value.encode("latin-1")
    except UnicodeEncodeError as e:
        raise UnclassifiedError("authorization value is not latin-1 encodable") from e


def _set_request_header(request: Request, name: str, value: bytes) -> None:
    """Replace header ``name``, an empty value removes it."""
    key = name.lower().encode("latin-1")
    headers = [(k, v) for k, v in request.scope["headers"] if k.lower() != key]
    if value:
        headers.append((key, value))
    request.scope["headers"] = headers


class AuthPubTktMiddleware(BaseHTTPMiddleware):
    """
    Require a valid ticket on every HTTP request.

    Usage:
        app.add_middleware(
            AuthPubTktMiddleware,
            options=AuthPubTktOptions(public_key=pem, login_url="https://sso.example.com/login"),
            handler_options=[set_status("Forbidden", 403), show_error_details()],
        )

    Args:
        app: Wrapped ASGI application
        options: Ticket validation options
        handler_options: Functional options tuning the rejection behaviour
    """

    def __init__(
        self,
        app: ASGIApp,
        options: AuthPubTktOptions,
        handler_options: Sequence[HandlerOption] = (),
    ):
        super().__init__(app)
        self.options = options
        self.config = build_handler_config(handler_options)
        self.auth_pubtkt = self.config.create_auth_pubtkt(options)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            ticket = self.auth_pubtkt.verify_from_request(request)
            authorization = self.authorization_for(ticket)
            header_value = None
            if authorization is not None:
                header_value = _encode_header_value(authorization)
        except PubTktError as err:
            return self.reject(request, err)
        except Exception as err:
            log.warning("Unrecognized error while checking ticket: %r", err)
            return self.status_response(err)

        setattr(request.state, TICKET_STATE_ATTR, ticket)
        if header_value is not None:
            _set_request_header(request, "authorization", header_value)
        return await call_next(request)

    def authorization_for(self, ticket: Ticket) -> Optional[str]:
        """
        Authorization header to forward.

        None leaves the client's header untouched. In passthrough mode the
        header always comes from the ticket, an empty ``bauth`` removes it.
        """
        if self.options.fake_basic_auth:
            credentials = f"{ticket.uid}:{FAKE_BASIC_AUTH_PASSWORD}".encode("utf-8")
            return "Basic " + base64.b64encode(credentials).decode("ascii")
        if self.options.passthru_basic_auth:
            if ticket.bauth and self.options.passthru_basic_key:
                return bauth_decrypt(ticket.bauth, self.options.passthru_basic_key)
            return ticket.bauth
        return None

    def redirect_url_for(self, request: Request, err: PubTktError) -> str:
        kind = err.kind
        if kind in (ErrorKind.SIGNATURE_INVALID, ErrorKind.TICKET_MISSING):
            return self.options.login_url
        if kind == ErrorKind.VALIDATION_EXPIRED:
            return self.options.resolved_timeout_url(request.method)
        if kind == ErrorKind.GRACE_PERIOD_EXPIRED:
            return self.options.resolved_refresh_url()
        if kind == ErrorKind.NO_VALID_TOKEN:
            return self.options.resolved_unauth_url()
        return ""

    def reject(self, request: Request, err: PubTktError) -> Response:
        url = self.redirect_url_for(request, err)
        if url:
            log.info("Ticket rejected (%s), redirecting to %s", err.kind.value, url)
            return self.redirect(request, url)
        return self.status_response(err)

    def redirect(self, request: Request, url: str) -> Response:
        separator = "&" if "?" in url else "?"
        back = quote_plus(str(request.url))
        return RedirectResponse(
            f"{url}{separator}{self.options.back_arg_name}={back}", status_code=302
        )

    def status_response(self, err: Exception) -> Response:
        kind = getattr(err, "kind", ErrorKind.UNCLASSIFIED)
        if self.config.error_policy == ErrorPolicy.ESCALATE:
            log.error("Ticket validation failed (%s): %s", kind.value, err)
            raise err
        log.info("Ticket rejected (%s): %s", kind.value, err)
        text = self.config.status_text
        if self.config.show_error_details:
            text += f"\nError details: {err}"
        return PlainTextResponse(text, status_code=self.config.status_code)
