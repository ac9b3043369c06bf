"""RSA and DSA ticket signatures.

The algorithm is picked once, from the type of the loaded key. RSA uses
PKCS#1 v1.5 padding, DSA produces DER encoded ``(r, s)`` pairs. Both hash the
signed data with the configured digest (SHA-1 unless told otherwise).
"""

import base64
import binascii
from enum import Enum
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, padding, rsa

from .errors import KeyLoadError, SignatureInvalidError, SigningError

_DIGESTS = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


class SignatureAlgorithm(Enum):
    RSA = "rsa"
    DSA = "dsa"


def algorithm_for_key(key) -> SignatureAlgorithm:
    """Map a loaded key to the signature algorithm it implies."""
    if isinstance(key, (rsa.RSAPublicKey, rsa.RSAPrivateKey)):
        return SignatureAlgorithm.RSA
    if isinstance(key, (dsa.DSAPublicKey, dsa.DSAPrivateKey)):
        return SignatureAlgorithm.DSA
    raise KeyLoadError(f"unsupported key type {type(key).__name__}, expected RSA or DSA")


def _pem(data: Union[str, bytes]) -> bytes:
    if isinstance(data, str):
        return data.strip().encode("ascii")
    return data.strip()


def load_public_key(pem: Union[str, bytes]):
    try:
        key = serialization.load_pem_public_key(_pem(pem))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyLoadError(f"unable to load public key: {e}") from e
    algorithm_for_key(key)
    return key


def load_private_key(pem: Union[str, bytes], password: Optional[bytes] = None):
    try:
        key = serialization.load_pem_private_key(_pem(pem), password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyLoadError(f"unable to load private key: {e}") from e
    algorithm_for_key(key)
    return key


class SignatureEngine:
    """
    Sign and verify ticket data.

    Either key may be omitted: an engine without a private key can only
    verify, one without a public key can only sign.

    Args:
        public_key: PEM public key (RSA or DSA)
        private_key: PEM private key (RSA or DSA)
        digest: Digest name, one of sha1, sha224, sha256, sha384, sha512
    """

    def __init__(
        self,
        public_key: Optional[Union[str, bytes]] = None,
        private_key: Optional[Union[str, bytes]] = None,
        digest: str = "sha1",
    ):
        try:
            self._hash = _DIGESTS[digest.lower()]
        except KeyError:
            raise KeyLoadError(f"unsupported digest {digest!r}") from None
        self.public_key = load_public_key(public_key) if public_key else None
        self.private_key = load_private_key(private_key) if private_key else None
        self.verify_algorithm = algorithm_for_key(self.public_key) if self.public_key else None
        self.sign_algorithm = algorithm_for_key(self.private_key) if self.private_key else None

    def sign(self, data: Union[str, bytes]) -> str:
        """
        Sign ``data`` with the private key.

        Returns:
            Base64 encoded signature

        Raises:
            SigningError: If no private key is configured
        """
        if self.private_key is None:
            raise SigningError("no private key configured")
        if isinstance(data, str):
            data = data.encode("utf-8")
        if self.sign_algorithm == SignatureAlgorithm.RSA:
            raw = self.private_key.sign(data, padding.PKCS1v15(), self._hash())
        else:
            raw = self.private_key.sign(data, self._hash())
        return base64.b64encode(raw).decode("ascii")

    def verify(self, data: Union[str, bytes], signature: str) -> None:
        """
        Check a base64 signature over ``data``.

        Raises:
            SignatureInvalidError: If the signature does not match, whatever the reason
            KeyLoadError: If no public key is configured
        """
        if self.public_key is None:
            raise KeyLoadError("no public key configured")
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            raw = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SignatureInvalidError(f"signature is not valid base64: {e}") from e
        try:
            if self.verify_algorithm == SignatureAlgorithm.RSA:
                self.public_key.verify(raw, data, padding.PKCS1v15(), self._hash())
            else:
                self.public_key.verify(raw, data, self._hash())
        except (InvalidSignature, ValueError) as e:
            raise SignatureInvalidError() from e
