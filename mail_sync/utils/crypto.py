"""
Cryptography utilities for mail account credentials.

This module encrypts and decrypts stored mail-account passwords. Values are
encrypted with Fernet using a key derived by PBKDF2HMAC from the configured
secret and a random per-value salt, so the same password never encrypts to
the same ciphertext twice.

Passwords written by the previous web frontend (CryptoJS ``AES.encrypt`` with
a passphrase, i.e. the OpenSSL ``Salted__`` format) can still be decrypted so
they can be migrated with the ``encrypt_credentials`` command.
"""

import base64
import binascii
import hashlib
import os

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from webmail_core.utils.logging import ContextLogger

from ..config import get_config
from ..exceptions import CryptoError

logger = ContextLogger(__name__)

# Layout of a current-format value: urlsafe_b64(VERSION + salt + fernet token)
FORMAT_VERSION = b"\x01"
SALT_SIZE = 16

# Base64 of the OpenSSL "Salted__" magic that prefixes CryptoJS ciphertexts.
LEGACY_PREFIX = "U2FsdGVkX1"
LEGACY_MAGIC = b"Salted__"


class CredentialCipher:
    """
    Symmetric encryption of mail-account passwords.

    The secret is taken from the ``key`` argument or, when omitted, from the
    process configuration (``ENCRYPTION_KEY``). It is never embedded in code.
    """

    def __init__(self, key=None, iterations=None):
        self._key = key
        self.iterations = iterations or get_config("KDF_ITERATIONS")

    def _secret(self, key=None):
        secret = key if key is not None else self._key
        if secret is None:
            secret = get_config("ENCRYPTION_KEY")
        if not secret:
            raise CryptoError("No encryption key configured")
        return secret.encode("utf-8") if isinstance(secret, str) else secret

    def derive_key(self, secret, salt):
        """
        Derive a Fernet key from the secret and salt.

        Returns:
            urlsafe base64-encoded 32-byte key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(secret))

    def encrypt(self, plaintext, key=None):
        """
        Encrypt a password.

        Args:
            plaintext: The password to protect
            key: Optional secret overriding the configured one

        Returns:
            Opaque ASCII ciphertext

        Raises:
            CryptoError: If no key is available
        """
        secret = self._secret(key)
        if plaintext is None:
            raise CryptoError("Nothing to encrypt")

        salt = os.urandom(SALT_SIZE)
        token = Fernet(self.derive_key(secret, salt)).encrypt(plaintext.encode("utf-8"))
        return base64.urlsafe_b64encode(FORMAT_VERSION + salt + token).decode("ascii")

    def decrypt(self, ciphertext, key=None):
        """
        Decrypt a password.

        Raises:
            CryptoError: If the key is missing or wrong, the value is malformed
                or the result is empty. Never returns an empty password.
        """
        secret = self._secret(key)
        if not ciphertext:
            raise CryptoError("Nothing to decrypt")
        if isinstance(ciphertext, bytes):
            try:
                ciphertext = ciphertext.decode("ascii")
            except UnicodeDecodeError:
                raise CryptoError("Ciphertext is malformed")
        if not isinstance(ciphertext, str):
            raise CryptoError("Ciphertext is malformed")

        if self.is_legacy(ciphertext):
            plaintext = self._decrypt_legacy(ciphertext, secret)
        else:
            plaintext = self._decrypt_current(ciphertext, secret)

        if not plaintext:
            logger.error("Decryption produced an empty value")
            raise CryptoError("Decryption produced an empty value")
        return plaintext

    @staticmethod
    def is_legacy(ciphertext):
        return isinstance(ciphertext, str) and ciphertext.startswith(LEGACY_PREFIX)

    def _decrypt_current(self, ciphertext, secret):
        try:
            raw = base64.urlsafe_b64decode(ciphertext.encode("ascii"))
        except (binascii.Error, ValueError, UnicodeEncodeError):
            logger.error("Decryption failed: value is not valid base64")
            raise CryptoError("Ciphertext is malformed")

        if len(raw) <= 1 + SALT_SIZE or raw[:1] != FORMAT_VERSION:
            logger.error("Decryption failed: unknown ciphertext format")
            raise CryptoError("Ciphertext is malformed")

        salt, token = raw[1 : 1 + SALT_SIZE], raw[1 + SALT_SIZE :]
        try:
            decrypted = Fernet(self.derive_key(secret, salt)).decrypt(token)
            return decrypted.decode("utf-8")
        except (InvalidToken, UnicodeDecodeError):
            logger.error("Decryption failed: key mismatch or corrupted value")
            raise CryptoError("Decryption failed")

    def _decrypt_legacy(self, ciphertext, secret):
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError):
            raise CryptoError("Legacy ciphertext is malformed")
        if len(raw) < 32 or raw[:8] != LEGACY_MAGIC:
            raise CryptoError("Legacy ciphertext is malformed")

        salt, body = raw[8:16], raw[16:]
        key, iv = evp_bytes_to_key(secret, salt)
        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(body) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            logger.error("Legacy decryption failed: key mismatch or corrupted value")
            raise CryptoError("Decryption failed")


def evp_bytes_to_key(secret, salt, key_size=32, iv_size=16):
    """OpenSSL EVP_BytesToKey with MD5, as used by CryptoJS passphrases."""
    derived = b""
    block = b""
    while len(derived) < key_size + iv_size:
        block = hashlib.md5(block + secret + salt).digest()  # nosec B324
        derived += block
    return derived[:key_size], derived[key_size : key_size + iv_size]


def encrypt_value(value, key=None):
    """
    Convenience function to encrypt a value with the configured key.
    """
    return CredentialCipher().encrypt(value, key)


def decrypt_value(encrypted_value, key=None):
    """
    Convenience function to decrypt a value with the configured key.
    """
    return CredentialCipher().decrypt(encrypted_value, key)
