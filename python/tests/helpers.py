"""Test helpers for authentication and common test operations.

Provides:
- Token minting for test authentication
- Header generation for test requests
- User id generation and conversation setup shortcuts
"""

import time
from uuid import uuid4

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.orm import Session

from murmur.db.models import Conversation
from murmur.services import conversations as conversations_store
from tests.support.test_verifier import MockJwtVerifier

# Default test token settings
DEFAULT_ISSUER = "test-issuer"
DEFAULT_AUDIENCE = "test-audience"
DEFAULT_EXPIRES_IN = 3600  # 1 hour


def mint_test_token(
    user_id: str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    issuer: str = DEFAULT_ISSUER,
    audience: str = DEFAULT_AUDIENCE,
    signing_key: bytes | None = None,
    **extra_claims,
) -> str:
    """Mint a signed test JWT with `sub` set to user_id.

    Args:
        user_id: The `sub` claim.
        expires_in: Token validity in seconds from now (negative = already expired).
        issuer: The `iss` claim value.
        audience: The `aud` claim value.
        signing_key: PEM private key; defaults to MockJwtVerifier's key.
        **extra_claims: Additional claims to include in the token.
    """
    now = int(time.time())
    payload = {
        "sub": user_id,
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        **extra_claims,
    }
    key = signing_key or MockJwtVerifier.get_private_key()
    return jwt.encode(payload, key, algorithm="RS256")


def mint_expired_token(user_id: str) -> str:
    """Mint a token that expired 1 hour ago."""
    return mint_test_token(user_id, expires_in=-3600)


def mint_token_with_bad_signature(user_id: str) -> str:
    """Mint a token signed with a key the test verifier does not trust."""
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = other_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return mint_test_token(user_id, signing_key=pem)


def auth_headers(user_id: str, **token_kwargs) -> dict[str, str]:
    """Return headers dict with valid Authorization for the given user."""
    token = mint_test_token(user_id, **token_kwargs)
    return {"Authorization": f"Bearer {token}"}


def create_test_user_id(prefix: str = "user") -> str:
    """Generate a unique opaque user id."""
    return f"{prefix}_{uuid4().hex[:12]}"


def create_conversation(db: Session, user_x: str, user_y: str) -> Conversation:
    """Get-or-create a conversation and commit it."""
    conversation, _ = conversations_store.get_or_create(db, user_x, user_y)
    db.commit()
    return conversation
