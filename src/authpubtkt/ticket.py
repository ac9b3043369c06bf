"""Ticket model and its ``key=value;...;sig=...`` wire form."""

from dataclasses import dataclass, field

from .errors import MalformedTicketError

SIG_FIELD = "sig="


@dataclass
class Ticket:
    """A signed identity assertion."""

    uid: str = ""
    cip: str = ""  # client ip the ticket is bound to, empty when unbound
    validuntil: int = 0  # expiry, unix seconds
    graceperiod: int = 0  # soft expiry, unix seconds, 0 when unset
    tokens: list[str] = field(default_factory=list)
    udata: str = ""
    bauth: str = ""
    sig: str = ""
    raw_data: str = ""  # exact signed body, as received

    def data_string(self) -> str:
        return data_string(self)

    def signed_data(self) -> str:
        """The body a signature is checked against."""
        return self.raw_data or self.data_string()

    def __str__(self) -> str:
        return f"{self.data_string()};{SIG_FIELD}{self.sig}"


def data_string(ticket: Ticket) -> str:
    """Build the canonical signable body, skipping empty fields."""
    parts = []
    if ticket.uid:
        parts.append(f"uid={ticket.uid}")
    if ticket.cip:
        parts.append(f"cip={ticket.cip}")
    if ticket.validuntil:
        parts.append(f"validuntil={int(ticket.validuntil)}")
    if ticket.tokens:
        parts.append(f"tokens={','.join(ticket.tokens)}")
    if ticket.udata:
        parts.append(f"udata={ticket.udata}")
    if ticket.graceperiod:
        parts.append(f"graceperiod={int(ticket.graceperiod)}")
    if ticket.bauth:
        parts.append(f"bauth={ticket.bauth}")
    return ";".join(parts)


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise MalformedTicketError(f"field {name!r} is not an integer: {value!r}") from None


def parse_ticket(plaintext: str) -> Ticket:
    """
    Parse a plaintext ticket.

    Everything before ``;sig=`` is kept verbatim as ``raw_data``. Unknown
    fields are ignored.

    Raises:
        MalformedTicketError: If there is no signature or no uid
    """
    if plaintext.startswith(SIG_FIELD):
        raw_data, sig = "", plaintext[len(SIG_FIELD):]
    else:
        index = plaintext.rfind(";" + SIG_FIELD)
        if index < 0:
            raise MalformedTicketError("ticket has no signature field")
        raw_data, sig = plaintext[:index], plaintext[index + len(SIG_FIELD) + 1:]

    ticket = Ticket(sig=sig, raw_data=raw_data)
    for part in raw_data.split(";"):
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep:
            raise MalformedTicketError(f"field without value: {part!r}")
        if key == "uid":
            ticket.uid = value
        elif key == "cip":
            ticket.cip = value
        elif key == "validuntil":
            ticket.validuntil = _parse_int(key, value)
        elif key == "graceperiod":
            ticket.graceperiod = _parse_int(key, value)
        elif key == "tokens":
            ticket.tokens = value.split(",") if value else []
        elif key == "udata":
            ticket.udata = value
        elif key == "bauth":
            ticket.bauth = value

    if not ticket.uid:
        raise MalformedTicketError("ticket has no uid")
    return ticket
