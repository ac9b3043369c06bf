"""FastAPI dependency for mod_auth_pubtkt ticket verification."""

from typing import Optional

try:
    from fastapi import HTTPException, Request
except ImportError:
    raise ImportError(
        "FastAPI is not installed. Install it with: pip install 'authpubtkt[fastapi]'"
    )

from .errors import ErrorKind, PubTktError
from .middleware import ticket_from_request
from .pubtkt import AuthPubTkt
from .ticket import Ticket
from .types import AuthPubTktOptions

_FORBIDDEN_KINDS = (ErrorKind.WRONG_IP, ErrorKind.NO_VALID_TOKEN)


class AuthPubTktVerify:
    """
    FastAPI dependency returning the verified ticket of a request.

    A ticket already validated by ``AuthPubTktMiddleware`` is reused,
    otherwise the request is verified here.

    Usage:
        from authpubtkt.fastapi import AuthPubTktVerify

        pubtkt = AuthPubTktVerify(AuthPubTktOptions(public_key=pem))

        @app.get('/api/data')
        async def get_data(ticket: Ticket = Depends(pubtkt)):
            return {"user": ticket.uid}
    """

    def __init__(self, options: AuthPubTktOptions, auto_error: bool = True):
        """
        Initialize the ticket verification dependency.

        Args:
            options: Ticket validation options
            auto_error: If True, raise HTTPException on an invalid ticket.
                       If False, return None for invalid tickets.
        """
        self.auto_error = auto_error
        self.auth_pubtkt = AuthPubTkt(options)

    async def __call__(self, request: Request) -> Optional[Ticket]:
        """
        Verify the ticket carried by the request.

        Returns:
            Ticket if valid, None if invalid (when auto_error=False)

        Raises:
            HTTPException: 401 for missing or invalid tickets, 403 when the
                ticket is valid but not allowed (wrong ip, missing tokens)
        """
        ticket = ticket_from_request(request)
        if ticket is not None:
            return ticket

        try:
            return self.auth_pubtkt.verify_from_request(request)
        except PubTktError as err:
            if not self.auto_error:
                return None
            status_code = 403 if err.kind in _FORBIDDEN_KINDS else 401
            raise HTTPException(status_code=status_code, detail=str(err))


def verify_ticket_dependency(options: AuthPubTktOptions) -> AuthPubTktVerify:
    """
    Create a FastAPI dependency for ticket verification.

    Example:
        verify = verify_ticket_dependency(AuthPubTktOptions(public_key=pem))

        @app.get('/data')
        async def get_data(ticket: Ticket = Depends(verify)):
            return {"user": ticket.uid}
    """
    return AuthPubTktVerify(options)
