"""OpenSSL compatible AES encryption.

``OpenSSL`` reads and writes the container produced by ``openssl enc
-aes-256-{ecb,cbc} -a -md md5``: an optional ``Salted__`` marker followed by
an 8 byte salt, then the ciphertext, all base64 encoded. A 32 byte key and a
16 byte IV are derived from the passphrase with the legacy ``EVP_BytesToKey``
scheme (MD5, one round). Plaintext is PKCS#7 padded.

``bauth_encrypt`` / ``bauth_decrypt`` handle the ``bauth`` ticket field:
AES-CBC with the key used as-is, a random IV prepended to the ciphertext and
NUL padding, as mod_auth_pubtkt writes it.
"""

import base64
import binascii
import hashlib
import os
from typing import Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DecryptionError
from .types import CipherMethod

SALT_MARKER = b"Salted__"
SALT_SIZE = 8
KEY_SIZE = 32
BLOCK_SIZE = 16


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


def bytes_to_key(passphrase: bytes, salt: bytes, key_len: int, iv_len: int) -> tuple[bytes, bytes]:
    """Derive a key and an IV the way OpenSSL's ``EVP_BytesToKey`` does."""
    derived = b""
    prev = b""
    while len(derived) < key_len + iv_len:
        prev = hashlib.md5(prev + passphrase + salt).digest()
        derived += prev
    return derived[:key_len], derived[key_len:key_len + iv_len]


def _pad(data: bytes) -> bytes:
    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    return padder.update(data) + padder.finalize()


def _unpad(data: bytes) -> bytes:
    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    try:
        return unpadder.update(data) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError("invalid padding") from e


def _b64decode(value: Union[str, bytes]) -> bytes:
    try:
        return base64.b64decode(_to_bytes(value), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"invalid base64 data: {e}") from e


class OpenSSL:
    """Passphrase based encryption compatible with ``openssl enc``."""

    def derive(self, passphrase: Union[str, bytes], salt: bytes, method: CipherMethod) -> Cipher:
        method = CipherMethod(method)
        key, iv = bytes_to_key(_to_bytes(passphrase), salt, KEY_SIZE, BLOCK_SIZE)
        if method == CipherMethod.CBC:
            mode = modes.CBC(iv)
        else:
            mode = modes.ECB()
        return Cipher(algorithms.AES(key), mode)

    def decrypt_string(
        self, passphrase: Union[str, bytes], encrypted: Union[str, bytes], method: CipherMethod
    ) -> bytes:
        """
        Decrypt a base64 encoded, optionally salted, ciphertext.

        Args:
            passphrase: Passphrase the key is derived from
            encrypted: Base64 ciphertext, with or without the ``Salted__`` header
            method: ``ecb`` or ``cbc``

        Returns:
            The plaintext bytes

        Raises:
            DecryptionError: On bad base64, truncated ciphertext or bad padding
        """
        data = _b64decode(encrypted)
        salt = b""
        if data.startswith(SALT_MARKER):
            salt = data[len(SALT_MARKER):len(SALT_MARKER) + SALT_SIZE]
            data = data[len(SALT_MARKER) + SALT_SIZE:]
            if len(salt) != SALT_SIZE:
                raise DecryptionError("truncated salt")
        if not data or len(data) % BLOCK_SIZE != 0:
            raise DecryptionError("ciphertext is not a multiple of the block size")

        decryptor = self.derive(passphrase, salt, method).decryptor()
        return _unpad(decryptor.update(data) + decryptor.finalize())

    def encrypt_string(
        self, passphrase: Union[str, bytes], plaintext: Union[str, bytes], method: CipherMethod
    ) -> str:
        """
        Encrypt ``plaintext`` with a fresh random salt.

        Returns:
            Base64 of ``Salted__`` + salt + ciphertext
        """
        salt = os.urandom(SALT_SIZE)
        encryptor = self.derive(passphrase, salt, method).encryptor()
        ciphertext = encryptor.update(_pad(_to_bytes(plaintext))) + encryptor.finalize()
        return base64.b64encode(SALT_MARKER + salt + ciphertext).decode("ascii")


def _zero_pad(data: bytes) -> bytes:
    if data and len(data) % BLOCK_SIZE == 0:
        return data
    return data + b"\x00" * (BLOCK_SIZE - len(data) % BLOCK_SIZE)


def bauth_encrypt(value: str, key: Union[str, bytes]) -> str:
    """Encrypt a basic auth value with AES-CBC, the IV is prepended."""
    iv = os.urandom(BLOCK_SIZE)
    encryptor = Cipher(algorithms.AES(_to_bytes(key)), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(_zero_pad(_to_bytes(value))) + encryptor.finalize()
    return base64.b64encode(iv + ciphertext).decode("ascii")


def bauth_decrypt(value: str, key: Union[str, bytes]) -> str:
    """
    Decrypt a value produced by ``bauth_encrypt``.

    Trailing NUL bytes are padding and are stripped.

    Raises:
        DecryptionError: If the value cannot be decrypted with ``key``
    """
    data = _b64decode(value)
    iv, ciphertext = data[:BLOCK_SIZE], data[BLOCK_SIZE:]
    if len(iv) != BLOCK_SIZE or not ciphertext or len(ciphertext) % BLOCK_SIZE != 0:
        raise DecryptionError("bauth ciphertext is truncated")
    try:
        cipher = Cipher(algorithms.AES(_to_bytes(key)), modes.CBC(iv))
    except ValueError as e:
        raise DecryptionError(f"invalid bauth key: {e}") from e
    decryptor = cipher.decryptor()
    plaintext = (decryptor.update(ciphertext) + decryptor.finalize()).rstrip(b"\x00")
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("bauth plaintext is not valid utf-8") from e
