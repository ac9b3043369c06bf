"""Error taxonomy for ticket validation.

Every failure raised by the engine is a ``PubTktError`` carrying an
``ErrorKind``. The middleware maps kinds to responses; anything it does not
recognise ends up in the ``UNCLASSIFIED`` bucket.
"""

from enum import Enum


class ErrorKind(Enum):
    """Distinct rejection categories."""

    TICKET_MISSING = "ticket_missing"
    SIGNATURE_INVALID = "signature_invalid"
    VALIDATION_EXPIRED = "validation_expired"
    GRACE_PERIOD_EXPIRED = "grace_period_expired"
    WRONG_IP = "wrong_ip"
    NO_VALID_TOKEN = "no_valid_token"
    TLS_REQUIRED = "tls_required"
    UNCLASSIFIED = "unclassified"


class PubTktError(Exception):
    """Base class for all ticket errors."""

    kind = ErrorKind.UNCLASSIFIED
    default_message = "ticket error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class TicketMissingError(PubTktError):
    kind = ErrorKind.TICKET_MISSING
    default_message = "no ticket found in request"


class SignatureInvalidError(PubTktError):
    kind = ErrorKind.SIGNATURE_INVALID
    default_message = "ticket signature is not valid"


class ValidationExpiredError(PubTktError):
    kind = ErrorKind.VALIDATION_EXPIRED
    default_message = "ticket has expired"


class GracePeriodExpiredError(PubTktError):
    kind = ErrorKind.GRACE_PERIOD_EXPIRED
    default_message = "ticket grace period has expired"


class WrongIpError(PubTktError):
    kind = ErrorKind.WRONG_IP
    default_message = "client ip does not match ticket ip"


class NoValidTokenError(PubTktError):
    kind = ErrorKind.NO_VALID_TOKEN
    default_message = "ticket does not carry the required tokens"


class TLSRequiredError(PubTktError):
    kind = ErrorKind.TLS_REQUIRED
    default_message = "a secured connection is required"


class UnclassifiedError(PubTktError):
    """Anything that is not one of the named rejection kinds."""


class MalformedTicketError(UnclassifiedError):
    default_message = "ticket is malformed"


class DecryptionError(UnclassifiedError):
    default_message = "decryption failed"


class KeyLoadError(UnclassifiedError):
    default_message = "unable to load key"


class SigningError(UnclassifiedError):
    default_message = "unable to sign ticket"
