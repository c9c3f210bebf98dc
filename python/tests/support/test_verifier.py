"""Test-only token verifier using a locally generated RSA keypair.

MockJwtVerifier runs the same claim validation as JwksVerifier (shared
decode_claims), only the key source differs. It is NOT part of the runtime
code and should not be imported in production.
"""

import threading
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from murmur.auth.verifier import decode_claims


class MockJwtVerifier:
    """Test token verifier using a locally generated RSA keypair.

    Usage:
        verifier = MockJwtVerifier()
        claims = verifier.verify(token)

        # To mint tokens, use the private key:
        private_key = MockJwtVerifier.get_private_key()
    """

    # Class-level RSA keypair (generated once per process)
    _private_key: bytes | None = None
    _public_key: bytes | None = None
    _lock = threading.Lock()

    def __init__(
        self,
        issuer: str = "test-issuer",
        audiences: list[str] | None = None,
    ):
        self.issuer = issuer
        self.audiences = audiences or ["test-audience"]
        self._ensure_keypair()

    @classmethod
    def _ensure_keypair(cls) -> None:
        with cls._lock:
            if cls._private_key is None:
                private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

                cls._private_key = private_key.private_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PrivateFormat.PKCS8,
                    encryption_algorithm=serialization.NoEncryption(),
                )
                cls._public_key = private_key.public_key().public_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PublicFormat.SubjectPublicKeyInfo,
                )

    @classmethod
    def get_private_key(cls) -> bytes:
        cls._ensure_keypair()
        assert cls._private_key is not None
        return cls._private_key

    @classmethod
    def get_public_key(cls) -> bytes:
        cls._ensure_keypair()
        assert cls._public_key is not None
        return cls._public_key

    def verify(self, token: str) -> dict[str, Any]:
        """Verify a test JWT token.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid.
        """
        return decode_claims(
            token,
            self.get_public_key(),
            algorithms=["RS256"],
            issuer=self.issuer,
            audiences=self.audiences,
        )
