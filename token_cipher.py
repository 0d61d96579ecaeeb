"""Symmetric encryption of recognizer tokens kept in the credential store.

Ciphertext layout is ``IV || AES-CFB(plaintext)`` encoded as standard base64
without ``=`` padding. Every call to :meth:`TokenCipher.encrypt` draws a fresh
IV, so equal plaintexts produce different ciphertexts.
"""
import os
import base64
import binascii
from typing import Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

try:
    from cryptography.hazmat.decrepit.ciphers.modes import CFB
except ImportError:
    # releases before CFB moved to the decrepit package
    from cryptography.hazmat.primitives.ciphers.modes import CFB

BLOCK_SIZE = 16
_KEY_SIZES = (16, 24, 32)


class CryptoError(Exception):
    pass


class TokenCipher:
    def __init__(self, key: Optional[bytes]):
        if not key:
            raise CryptoError('cipher key is not configured')
        if len(key) not in _KEY_SIZES:
            raise CryptoError(f'cipher key must be 16, 24 or 32 bytes, got {len(key)}')
        self._algorithm = algorithms.AES(bytes(key))

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(self._algorithm, CFB(iv))

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(BLOCK_SIZE)
        enc = self._cipher(iv).encryptor()
        body = enc.update(plaintext.encode('utf-8')) + enc.finalize()
        return base64.b64encode(iv + body).decode('ascii').rstrip('=')

    def decrypt(self, text: str) -> str:
        if not isinstance(text, str):
            raise CryptoError('ciphertext must be text')
        try:
            raw = base64.b64decode(text + '=' * (-len(text) % 4), validate=True)
        except (binascii.Error, ValueError) as e:
            raise CryptoError('malformed ciphertext encoding') from e
        if len(raw) < BLOCK_SIZE:
            raise CryptoError('ciphertext shorter than IV')
        iv, body = raw[:BLOCK_SIZE], raw[BLOCK_SIZE:]
        dec = self._cipher(iv).decryptor()
        plain = dec.update(body) + dec.finalize()
        try:
            return plain.decode('utf-8')
        except UnicodeDecodeError as e:
            raise CryptoError('decrypted token is not valid utf-8') from e
