"""Tests for the ticket engine: codec, validation and request handling."""

from http.cookies import SimpleCookie
from urllib.parse import quote_plus, unquote_plus

import httpx
import pytest
from starlette.responses import Response

from authpubtkt.errors import (
    DecryptionError,
    ErrorKind,
    GracePeriodExpiredError,
    KeyLoadError,
    MalformedTicketError,
    NoValidTokenError,
    SignatureInvalidError,
    SigningError,
    TicketMissingError,
    TLSRequiredError,
    ValidationExpiredError,
    WrongIpError,
)
from authpubtkt.pubtkt import AuthPubTkt, strip_port
from authpubtkt.ticket import Ticket
from authpubtkt.types import AuthPubTktOptions, CipherMethod, TokenPolicy

from .keys import RSA_PRIVATE_KEY, RSA_PUBLIC_KEY, SHA1_SIG

PLAIN_RAW = "uid=myuser;validuntil=1;tokens=token1,token2;sig=mysignature"
PLAIN_TICKET = Ticket(
    uid="myuser",
    validuntil=1,
    tokens=["token1", "token2"],
    sig="mysignature",
    raw_data="uid=myuser;validuntil=1;tokens=token1,token2",
)
SIGNED_DATA = "uid=myuser;cip=127.0.0.1;validuntil=1;tokens=token1,token2"


def fixed_clock(now):
    return lambda: now


@pytest.fixture
def ticket():
    return Ticket(uid="myuser", cip="127.0.0.1", validuntil=1, tokens=["token1", "token2"])


@pytest.fixture
def signed_ticket(ticket):
    ticket.sig = SHA1_SIG
    return ticket


def make_auth(clock=fixed_clock(0), **kwargs):
    kwargs.setdefault("public_key", RSA_PUBLIC_KEY)
    return AuthPubTkt(AuthPubTktOptions(**kwargs), clock=clock)


# ============ RAW TO TICKET ============


def test_raw_to_ticket_plain():
    assert make_auth().raw_to_ticket(PLAIN_RAW) == PLAIN_TICKET


def test_raw_to_ticket_encrypted():
    auth = make_auth(cipher_passphrase="mysuperpassphrase", cipher_method="cbc")
    raw = "NgJVDZTchnQ3CpQWRhLHExefvSPkFyLIaCyvnNy+XB/BHu+ah1ojR2ZBrALb0fIqKKdIpnVQ9OBuJl8MXa/NZw=="

    assert auth.raw_to_ticket(raw) == PLAIN_TICKET


def test_raw_to_ticket_encrypted_with_plain_input():
    auth = make_auth(cipher_passphrase="mysuperpassphrase")
    with pytest.raises(DecryptionError):
        auth.raw_to_ticket(PLAIN_RAW)


def test_raw_to_ticket_without_public_key():
    """Test that an engine without keys can still decode tickets."""
    auth = AuthPubTkt(AuthPubTktOptions())
    assert auth.raw_to_ticket(PLAIN_RAW) == PLAIN_TICKET


# ============ REQUEST TO TICKET ============


def test_request_to_ticket_from_cookie(make_request):
    auth = make_auth(header=["cookie"], cookie_name="pubtkt")
    request = make_request(cookies={"pubtkt": quote_plus(PLAIN_RAW)})

    assert auth.request_to_ticket(request) == PLAIN_TICKET


def test_request_to_ticket_from_header(make_request):
    auth = make_auth(header=["x-authpubtkt"])
    request = make_request(headers={"X-AuthPubTkt": PLAIN_RAW})

    assert auth.request_to_ticket(request) == PLAIN_TICKET


def test_request_to_ticket_cascades_to_cookie(make_request):
    auth = make_auth(header=["x-authpubtkt", "cookie"], cookie_name="pubtkt")
    request = make_request(cookies={"pubtkt": quote_plus(PLAIN_RAW)})

    assert auth.request_to_ticket(request) == PLAIN_TICKET


def test_request_to_ticket_first_source_wins(make_request):
    auth = make_auth(header=["x-authpubtkt", "cookie"], cookie_name="pubtkt")
    request = make_request(
        headers={"x-authpubtkt": PLAIN_RAW},
        cookies={"pubtkt": quote_plus(PLAIN_RAW.replace("myuser", "other"))},
    )

    assert auth.request_to_ticket(request).uid == "myuser"


def test_request_to_ticket_missing(make_request):
    auth = make_auth(header=["x-authpubtkt", "cookie"], cookie_name="pubtkt")

    with pytest.raises(TicketMissingError) as excinfo:
        auth.request_to_ticket(make_request())
    assert excinfo.value.kind == ErrorKind.TICKET_MISSING


def test_request_to_ticket_malformed(make_request):
    auth = make_auth(header=["x-authpubtkt"])
    with pytest.raises(MalformedTicketError) as excinfo:
        auth.request_to_ticket(make_request(headers={"x-authpubtkt": "uid=myuser"}))
    assert excinfo.value.kind == ErrorKind.UNCLASSIFIED


# ============ SIGNING ============


def test_sign_ticket_then_verify(ticket):
    auth = make_auth(private_key=RSA_PRIVATE_KEY)

    auth.sign_ticket(ticket)

    assert ticket.sig
    assert ticket.raw_data == SIGNED_DATA
    auth.verify_ticket(ticket, "127.0.0.1")


def test_sign_ticket_recomputes_after_change(ticket):
    auth = make_auth(private_key=RSA_PRIVATE_KEY)
    auth.sign_ticket(ticket)
    first = ticket.sig

    ticket.tokens.append("token3")
    auth.sign_ticket(ticket)

    assert ticket.sig != first
    assert ticket.raw_data.endswith("tokens=token1,token2,token3")


def test_sign_ticket_requires_uid():
    with pytest.raises(SigningError):
        make_auth(private_key=RSA_PRIVATE_KEY).sign_ticket(Ticket(validuntil=1))


def test_sign_ticket_requires_private_key(ticket):
    with pytest.raises(SigningError):
        make_auth().sign_ticket(ticket)


def test_ticket_to_raw_plain(ticket):
    auth = make_auth(private_key=RSA_PRIVATE_KEY)

    raw = auth.ticket_to_raw(ticket)
    decoded = auth.raw_to_ticket(raw)

    assert raw == f"{SIGNED_DATA};sig={SHA1_SIG}"
    assert decoded.sig
    assert decoded.data_string() == ticket.data_string()


@pytest.mark.parametrize("method", [CipherMethod.ECB, CipherMethod.CBC])
def test_ticket_to_raw_encrypted(ticket, method):
    auth = make_auth(
        private_key=RSA_PRIVATE_KEY, cipher_passphrase="mypassphrase", cipher_method=method
    )

    raw = auth.ticket_to_raw(ticket)
    decoded = auth.raw_to_ticket(raw)

    assert ticket.data_string() not in raw
    assert decoded.uid == ticket.uid
    assert decoded.cip == ticket.cip
    assert decoded.validuntil == ticket.validuntil
    assert decoded.tokens == ticket.tokens
    assert decoded.raw_data == ticket.data_string()
    auth.verify_ticket(decoded, "127.0.0.1")


# ============ VERIFY TICKET ============


def test_verify_ticket_bad_signature(ticket):
    ticket.sig = "mysignature"
    with pytest.raises(SignatureInvalidError):
        make_auth().verify_ticket(ticket, "")


def test_verify_ticket_tampered(signed_ticket):
    signed_ticket.uid = "admin"
    with pytest.raises(SignatureInvalidError):
        make_auth().verify_ticket(signed_ticket, "")


def test_verify_ticket_valid(signed_ticket):
    make_auth(check_ip=True, tokens=["token1"]).verify_ticket(signed_ticket, "127.0.0.1")


def test_verify_ticket_missing_token(signed_ticket):
    with pytest.raises(NoValidTokenError):
        make_auth(tokens=["requiredToken"]).verify_ticket(signed_ticket, "")


def test_verify_ticket_all_of_tokens(signed_ticket):
    auth = make_auth(tokens=["token1", "token3"])
    with pytest.raises(NoValidTokenError):
        auth.verify_ticket(signed_ticket, "")


def test_verify_ticket_any_of_tokens(signed_ticket):
    auth = make_auth(tokens=["token1", "token3"], token_policy=TokenPolicy.ANY_OF)
    auth.verify_ticket(signed_ticket, "")


def test_verify_ticket_wrong_ip(signed_ticket):
    with pytest.raises(WrongIpError):
        make_auth(check_ip=True).verify_ticket(signed_ticket, "fakeIP")


def test_verify_ticket_ip_not_checked_when_disabled(signed_ticket):
    make_auth(check_ip=False).verify_ticket(signed_ticket, "fakeIP")


def test_verify_ticket_unbound_ticket_skips_ip_check():
    auth = make_auth(private_key=RSA_PRIVATE_KEY, check_ip=True)
    ticket = Ticket(uid="myuser", validuntil=1)
    auth.sign_ticket(ticket)

    auth.verify_ticket(ticket, "10.1.2.3")


def test_verify_ticket_expired(signed_ticket):
    auth = make_auth(clock=fixed_clock(2), tokens=["token1"])
    with pytest.raises(ValidationExpiredError) as excinfo:
        auth.verify_ticket(signed_ticket, "")
    assert excinfo.value.kind == ErrorKind.VALIDATION_EXPIRED


def test_verify_ticket_valid_until_boundary(signed_ticket):
    """The ticket is still valid at exactly validuntil."""
    make_auth(clock=fixed_clock(1)).verify_ticket(signed_ticket, "")


def test_verify_ticket_grace_period():
    ticket = Ticket(uid="myuser", validuntil=100, graceperiod=50)
    make_auth(private_key=RSA_PRIVATE_KEY).sign_ticket(ticket)

    make_auth(clock=fixed_clock(50)).verify_ticket(ticket, "")
    with pytest.raises(GracePeriodExpiredError):
        make_auth(clock=fixed_clock(51)).verify_ticket(ticket, "")
    with pytest.raises(ValidationExpiredError):
        make_auth(clock=fixed_clock(101)).verify_ticket(ticket, "")


def test_verify_ticket_signature_checked_first(ticket):
    """An expired ticket with a bad signature is reported as a bad signature."""
    ticket.sig = "bad"
    with pytest.raises(SignatureInvalidError):
        make_auth(clock=fixed_clock(10)).verify_ticket(ticket, "")


def test_verify_ticket_dsa(dsa_keys):
    public_pem, private_pem = dsa_keys
    auth = make_auth(public_key=public_pem, private_key=private_pem)
    ticket = Ticket(uid="myuser", validuntil=1)

    decoded = auth.raw_to_ticket(auth.ticket_to_raw(ticket))

    auth.verify_ticket(decoded, "")


# ============ VERIFY FROM REQUEST ============


def test_verify_from_request_valid(make_request, signed_ticket):
    auth = make_auth(
        check_ip=True, require_ssl=True, cookie_name="pubtkt", tokens=["token1"], header=["cookie"]
    )
    request = make_request(
        scheme="https", cookies={"pubtkt": quote_plus(str(signed_ticket))}
    )

    result = auth.verify_from_request(request)

    signed_ticket.raw_data = SIGNED_DATA
    assert result == signed_ticket


def test_verify_from_request_x_forwarded_for(make_request, signed_ticket):
    auth = make_auth(
        check_ip=True, check_x_forwarded_ip=True, cookie_name="pubtkt", header=["cookie"]
    )
    request = make_request(
        headers={"X-Forwarded-For": "127.0.0.1:6060, 10.0.0.2"},
        cookies={"pubtkt": quote_plus(str(signed_ticket))},
        client=("10.0.0.2", 1234),
    )

    assert auth.verify_from_request(request).uid == "myuser"


def test_verify_from_request_tls_required(make_request, signed_ticket):
    auth = make_auth(require_ssl=True, header=["x-pub-tkt"])
    request = make_request(headers={"x-pub-tkt": quote_plus(str(signed_ticket))})

    with pytest.raises(TLSRequiredError):
        auth.verify_from_request(request)


def test_verify_from_request_tls_checked_before_lookup(make_request):
    auth = make_auth(require_ssl=True)
    with pytest.raises(TLSRequiredError):
        auth.verify_from_request(make_request())


def test_verify_from_request_wrong_remote_ip(make_request, signed_ticket):
    auth = make_auth(check_ip=True, cookie_name="pubtkt")
    request = make_request(
        cookies={"pubtkt": quote_plus(str(signed_ticket))}, client=("fakeip", 52332)
    )

    with pytest.raises(WrongIpError):
        auth.verify_from_request(request)


def test_verify_from_request_wrong_forwarded_ip(make_request, signed_ticket):
    auth = make_auth(check_ip=True, check_x_forwarded_ip=True, cookie_name="pubtkt")
    request = make_request(
        headers={"X-Forwarded-For": "fakeip:52332"},
        cookies={"pubtkt": quote_plus(str(signed_ticket))},
    )

    with pytest.raises(WrongIpError):
        auth.verify_from_request(request)


def test_verify_from_request_missing(make_request):
    with pytest.raises(TicketMissingError):
        make_auth().verify_from_request(make_request())


# ============ PRODUCER SIDE ============


def test_ticket_in_request_cookie(ticket):
    auth = make_auth(private_key=RSA_PRIVATE_KEY, cookie_name="fake", header=["cookie"])
    request = httpx.Request("GET", "http://local.com", headers={"Cookie": "other=1"})

    auth.ticket_in_request(request, ticket)

    cookie = SimpleCookie(request.headers["Cookie"])
    assert cookie["other"].value == "1"
    decoded = auth.raw_to_ticket(unquote_plus(cookie["fake"].value))
    assert decoded.data_string() == ticket.data_string()


def test_ticket_in_request_header(ticket):
    auth = make_auth(private_key=RSA_PRIVATE_KEY, header=["X-Pub-Tkt"])
    request = httpx.Request("GET", "http://local.com")

    auth.ticket_in_request(request, ticket)

    decoded = auth.raw_to_ticket(unquote_plus(request.headers["X-Pub-Tkt"]))
    assert decoded.data_string() == ticket.data_string()


def test_ticket_in_response_cookie(ticket):
    auth = make_auth(private_key=RSA_PRIVATE_KEY, cookie_name="fake", header=["cookie"])
    response = Response()

    auth.ticket_in_response(response, ticket)

    cookie = SimpleCookie(response.headers["set-cookie"])
    decoded = auth.raw_to_ticket(unquote_plus(cookie["fake"].value))
    assert decoded.data_string() == ticket.data_string()


def test_ticket_in_response_header(ticket):
    auth = make_auth(
        private_key=RSA_PRIVATE_KEY, header=["X-Pub-Tkt"], cipher_passphrase="mypassphrase"
    )
    response = Response()

    auth.ticket_in_response(response, ticket)

    decoded = auth.raw_to_ticket(unquote_plus(response.headers["X-Pub-Tkt"]))
    assert decoded.data_string() == ticket.data_string()


# ============ HELPERS AND OPTIONS ============


@pytest.mark.parametrize(
    "address,expected",
    [
        ("127.0.0.1:6060", "127.0.0.1"),
        ("127.0.0.1", "127.0.0.1"),
        ("[::1]:8080", "::1"),
        ("::1", "::1"),
        (" 10.0.0.1 ", "10.0.0.1"),
    ],
)
def test_strip_port(address, expected):
    assert strip_port(address) == expected


def test_options_from_directives():
    options = AuthPubTktOptions.from_dict(
        {
            "TKTAuthPublicKey": RSA_PUBLIC_KEY,
            "TKTAuthHeader": "X-Pub-Tkt, cookie",
            "TKTAuthToken": "admin,ops",
            "TKTCheckIpEnabled": "on",
            "TKTCypherTicketsMethod": "cbc",
            "back_arg_name": "next",
        }
    )

    assert options.header == ["X-Pub-Tkt", "cookie"]
    assert options.tokens == ["admin", "ops"]
    assert options.check_ip is True
    assert options.cipher_method == CipherMethod.CBC
    assert options.back_arg_name == "next"
    assert options.cookie_name == "auth_pubtkt"


def test_options_unknown_directive():
    with pytest.raises(ValueError):
        AuthPubTktOptions.from_dict({"TKTAuthNothing": "x"})


@pytest.mark.parametrize(
    "kwargs",
    [
        {"header": []},
        {"header": ["cookie"], "cookie_name": ""},
        {"digest": "md5"},
        {"passthru_basic_key": "tooshort"},
    ],
)
def test_invalid_options(kwargs):
    with pytest.raises(ValueError):
        AuthPubTkt(AuthPubTktOptions(**kwargs))


def test_invalid_public_key():
    with pytest.raises(KeyLoadError):
        AuthPubTkt(AuthPubTktOptions(public_key="fake"))
