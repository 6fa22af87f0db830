"""At-rest encryption of message text.

Text is encrypted with AES-256-CBC and stored as ``base64(iv):base64(ciphertext)``.
"""

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from dotenv import load_dotenv

from marketplace_chat.errors import DecodeError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MASTER_KEY = "default_master_key_32chars_min_len!!"
KEY_LENGTH_BYTES = 32
IV_LENGTH_BYTES = 16
ENVELOPE_DELIMITER = ":"


def derive_key(secret: str) -> bytes:
    """Truncate or zero-pad the configured secret to the AES-256 key size."""
    raw = secret.encode("utf-8")[:KEY_LENGTH_BYTES]
    return raw.ljust(KEY_LENGTH_BYTES, b"\0")


class EncryptionCodec:
    """Symmetric codec for message text envelopes."""

    def __init__(self, secret: str):
        self._key = derive_key(secret)

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt ``plaintext`` into an envelope. Empty or missing text is returned as-is."""
        if not plaintext:
            return plaintext

        iv = os.urandom(IV_LENGTH_BYTES)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return (
            base64.b64encode(iv).decode("ascii")
            + ENVELOPE_DELIMITER
            + base64.b64encode(ciphertext).decode("ascii")
        )

    def decrypt(self, envelope: Optional[str]) -> Optional[str]:
        """Decrypt an envelope produced by :meth:`encrypt`.

        Raises:
            DecodeError: if the envelope is malformed or does not decrypt
                under the configured key.
        """
        if not envelope:
            return envelope

        parts = envelope.split(ENVELOPE_DELIMITER)
        if len(parts) != 2:
            raise DecodeError(message="Envelope must contain exactly one delimiter")
        iv_b64, data_b64 = parts

        try:
            iv = base64.b64decode(iv_b64, validate=True)
            ciphertext = base64.b64decode(data_b64, validate=True)
        except binascii.Error as err:
            raise DecodeError(message=f"Invalid base64 in envelope: {err}") from err

        if len(iv) != IV_LENGTH_BYTES:
            raise DecodeError(message="Initialization vector must be 16 bytes")
        if not ciphertext or len(ciphertext) % IV_LENGTH_BYTES:
            raise DecodeError(message="Ciphertext is not block aligned")

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            raw = unpadder.update(padded) + unpadder.finalize()
            return raw.decode("utf-8")
        except ValueError as err:
            # bad padding or non-UTF-8 output: wrong key or corrupted data
            raise DecodeError(message=f"Envelope did not decrypt: {err}") from err


codec = EncryptionCodec(os.getenv("MASTER_KEY", DEFAULT_MASTER_KEY))


def encrypt_text(plaintext: Optional[str]) -> Optional[str]:
    return codec.encrypt(plaintext)


def decrypt_text(envelope: Optional[str]) -> Optional[str]:
    return codec.decrypt(envelope)


def safe_decrypt_text(value: Optional[str]) -> Optional[str]:
    """Decrypt for display, falling back to the stored value when it cannot be decoded."""
    try:
        return codec.decrypt(value)
    except DecodeError as err:
        logger.debug("Returning raw stored text, decrypt failed: %s", err)
        return value
