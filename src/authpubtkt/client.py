"""httpx authentication flow attaching a signed ticket to outgoing requests."""

from typing import Callable, Generator, Union

import httpx

from .pubtkt import AuthPubTkt
from .ticket import Ticket


class PubTktAuth(httpx.Auth):
    """
    Sign a ticket and attach it to every request sent by an httpx client.

    The ticket goes where the engine options say: the ticket cookie, or the
    first configured header.

    Example:
        >>> engine = AuthPubTkt(AuthPubTktOptions(private_key=pem, header=["X-Pub-Tkt"]))
        >>> auth = PubTktAuth(engine, lambda: Ticket(uid="svc", validuntil=int(time.time()) + 300))
        >>> async with httpx.AsyncClient(auth=auth) as client:
        ...     await client.get("https://api.example.com/data")

    Args:
        auth_pubtkt: Engine holding the private key
        ticket: A ticket, or a callable returning a fresh ticket per request
    """

    def __init__(self, auth_pubtkt: AuthPubTkt, ticket: Union[Ticket, Callable[[], Ticket]]):
        self.auth_pubtkt = auth_pubtkt
        self.ticket = ticket

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        ticket = self.ticket() if callable(self.ticket) else self.ticket
        self.auth_pubtkt.ticket_in_request(request, ticket)
        yield request
