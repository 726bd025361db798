"""
vita_core.session
-----------------
Explicit privacy session: identity plus initialization state.

Sessions are plain values; several may coexist (tests, multi-tenant hosts).
"""

from __future__ import annotations
from typing import Optional

from .crypto import ed25519_generate, ed25519_sign, ed25519_verify
from .errors import InitializationError
from .interfaces import IdentityProvider
from .logger import get_logger
from .utils import b64e

log = get_logger("Vita.Session")


class LocalIdentity(IdentityProvider):
    """Ed25519 identity held in process memory."""

    def __init__(self, priv_raw: bytes, pub_raw: bytes):
        self._priv = priv_raw
        self._pub = pub_raw

    @classmethod
    def generate(cls) -> "LocalIdentity":
        priv, pub = ed25519_generate()
        return cls(priv, pub)

    @property
    def public_key(self) -> str:
        return b64e(self._pub)

    def sign(self, payload: bytes) -> bytes:
        return ed25519_sign(self._priv, payload)

    def verify(self, sig: bytes, payload: bytes) -> bool:
        return ed25519_verify(self._pub, sig, payload)


class PrivacySession:
    def __init__(self, identity: Optional[IdentityProvider] = None):
        self.identity = identity
        self.is_initialized = False

    @classmethod
    def create(cls, identity: Optional[IdentityProvider] = None) -> "PrivacySession":
        session = cls(identity)
        session.initialize()
        return session

    def initialize(self, identity: Optional[IdentityProvider] = None) -> None:
        if identity is not None:
            self.identity = identity
        if self.identity is None:
            self.identity = LocalIdentity.generate()
        try:
            pub = self.identity.public_key
        except Exception as e:
            raise InitializationError(f"identity provider unusable: {e}", operation="initialize") from e
        self.is_initialized = True
        log.info({"event": "session_initialized", "public_key": pub})

    @property
    def public_key(self) -> Optional[str]:
        if not self.is_initialized or self.identity is None:
            return None
        return self.identity.public_key

    def require(self, operation: str) -> None:
        if not self.is_initialized:
            raise InitializationError("privacy session not initialized", operation=operation)

    def sign(self, payload: bytes) -> bytes:
        self.require("sign")
        return self.identity.sign(payload)
