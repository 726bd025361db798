from __future__ import annotations
from typing import Tuple, Optional, Union
from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.exceptions import InvalidTag, InvalidSignature

from .constants import NONCE_SIZE, AMOUNT_WIDTH, SCALAR_WIDTH
from .errors import EncryptionError, DecryptionError, EncodingError
from .models import Algorithm, EncryptedData
from .utils import random_bytes
"""
vita_core.crypto
----------------
Cryptographic primitives for V1TA private positions:

- AES-GCM (128/256) authenticated encryption of byte payloads
- Fixed-width little-endian integer encoding (64 bytes for amounts,
  32 bytes for bounded values); values that do not fit raise EncodingError
- Ed25519 sign/verify for the session identity

The service keeps no key material of its own: keys live only in the
EncryptedData records handed back to the caller.
"""

Plaintext = Union[bytes, bytearray, str, int]

SUPPORTED_WIDTHS = (SCALAR_WIDTH, AMOUNT_WIDTH)


# --------- Ed25519 (sign/verify) ----------
def ed25519_generate() -> Tuple[bytes, bytes]:
    sk = ed25519.Ed25519PrivateKey.generate()
    pk = sk.public_key()
    return sk.private_bytes_raw(), pk.public_bytes_raw()

def ed25519_sign(priv_raw: bytes, data: bytes) -> bytes:
    sk = ed25519.Ed25519PrivateKey.from_private_bytes(priv_raw)
    return sk.sign(data)

def ed25519_verify(pub_raw: bytes, sig: bytes, data: bytes) -> bool:
    try:
        ed25519.Ed25519PublicKey.from_public_bytes(pub_raw).verify(sig, data)
        return True
    except InvalidSignature:
        return False


# --------- Integer encoding ----------
def encode_int(value: int, width: int = AMOUNT_WIDTH, signed: bool = False) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"expected int, got {type(value).__name__}", operation="encode")
    if width not in SUPPORTED_WIDTHS:
        raise EncodingError(f"unsupported width {width}, expected one of {SUPPORTED_WIDTHS}", operation="encode")
    try:
        return value.to_bytes(width, "little", signed=signed)
    except OverflowError as e:
        raise EncodingError(f"value does not fit in {width} bytes (signed={signed})", operation="encode") from e

def decode_int(data: bytes, signed: bool = False) -> int:
    if len(data) not in SUPPORTED_WIDTHS:
        raise EncodingError(f"encoded integer must be {SUPPORTED_WIDTHS} bytes, got {len(data)}", operation="decode")
    return int.from_bytes(data, "little", signed=signed)


# --------- AES-GCM ----------
def aead_encrypt(key: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> Tuple[bytes, bytes]:
    aes = AESGCM(key)
    nonce = random_bytes(NONCE_SIZE)
    ct = aes.encrypt(nonce, plaintext, aad)
    return nonce, ct

def aead_decrypt(key: bytes, nonce: bytes, ciphertext: bytes, aad: Optional[bytes] = None) -> bytes:
    aes = AESGCM(key)
    return aes.decrypt(nonce, ciphertext, aad)


class EncryptionService:
    """Stateless symmetric encryption; safe to share across threads and positions."""

    supported_algorithms = tuple(a.value for a in Algorithm)

    def __init__(self, default_algorithm: Algorithm = Algorithm.AES_256):
        self.default_algorithm = Algorithm(default_algorithm)

    @staticmethod
    def to_bytes(plaintext: Plaintext, width: int = AMOUNT_WIDTH) -> bytes:
        if isinstance(plaintext, (bytes, bytearray)):
            return bytes(plaintext)
        if isinstance(plaintext, str):
            return plaintext.encode("utf-8")
        return encode_int(plaintext, width)

    def generate_key(self, algorithm: Optional[Algorithm] = None) -> bytes:
        algorithm = Algorithm(algorithm or self.default_algorithm)
        return random_bytes(algorithm.key_size)

    def encrypt(
        self,
        plaintext: Plaintext,
        key: Optional[bytes] = None,
        algorithm: Optional[Algorithm] = None,
        *,
        width: int = AMOUNT_WIDTH,
        aad: Optional[bytes] = None,
    ) -> EncryptedData:
        algorithm = Algorithm(algorithm or self.default_algorithm)
        data = self.to_bytes(plaintext, width)

        if key is None:
            key = self.generate_key(algorithm)
        elif len(key) != algorithm.key_size:
            raise EncryptionError(
                f"{algorithm.value} requires a {algorithm.key_size}-byte key, got {len(key)}",
                operation="encrypt",
            )

        try:
            nonce, ct = aead_encrypt(key, data, aad=aad)
        except (ValueError, OverflowError) as e:
            raise EncryptionError(f"encryption failed: {e}", operation="encrypt") from e

        return EncryptedData(ciphertext=ct, key=bytes(key), nonce=nonce, algorithm=algorithm)

    def decrypt(self, enc: EncryptedData, aad: Optional[bytes] = None) -> bytes:
        algorithm = Algorithm(enc.algorithm)
        if len(enc.key) != algorithm.key_size:
            raise DecryptionError(
                f"key length {len(enc.key)} does not match {algorithm.value}",
                operation="decrypt",
            )
        if len(enc.nonce) != NONCE_SIZE:
            raise DecryptionError(f"nonce must be {NONCE_SIZE} bytes", operation="decrypt")
        try:
            return aead_decrypt(enc.key, enc.nonce, enc.ciphertext, aad=aad)
        except InvalidTag as e:
            raise DecryptionError("authentication failed", operation="decrypt") from e

    def decrypt_int(self, enc: EncryptedData, signed: bool = False) -> int:
        return decode_int(self.decrypt(enc), signed=signed)

    def decrypt_text(self, enc: EncryptedData) -> str:
        return self.decrypt(enc).decode("utf-8")
