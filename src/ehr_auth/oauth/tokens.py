"""Token material: signed JWTs, opaque tokens and PKCE verification."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import uuid
from datetime import datetime
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization

from ehr_auth.common.config import AuthServerSettings
from ehr_auth.common.constants import AUTH_CODE_BYTES, REFRESH_TOKEN_BYTES

logger = logging.getLogger(__name__)


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def s256_challenge(code_verifier: str) -> str:
    """Compute the PKCE S256 challenge: BASE64URL(SHA256(code_verifier))."""
    return b64url(hashlib.sha256(code_verifier.encode("utf-8")).digest())


def constant_time_equals(expected: str, received: str) -> bool:
    """Compare two secrets without leaking timing information."""
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def verify_pkce(code_verifier: str, code_challenge: str) -> bool:
    return constant_time_equals(code_challenge, s256_challenge(code_verifier))


def generate_authorization_code() -> str:
    """URL-safe code carrying 256 bits of entropy."""
    return secrets.token_urlsafe(AUTH_CODE_BYTES)


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def _to_epoch(moment: datetime) -> int:
    return int(moment.timestamp())


def _load_verification_key(signing_key: str, algorithm: str) -> Any:
    """Derive the key used to verify our own signatures.

    HMAC algorithms share the secret; asymmetric ones verify with the public
    half of the configured private key.
    """
    if algorithm.startswith("HS"):
        return signing_key
    if "PRIVATE KEY" in signing_key:
        private_key = serialization.load_pem_private_key(
            signing_key.encode("utf-8"), password=None
        )
        return private_key.public_key()
    return signing_key


class TokenSigner:
    """Signs and verifies the server's JWTs."""

    def __init__(self, settings: AuthServerSettings) -> None:
        if not settings.signing_key:
            raise ValueError("signing_key must be configured to issue tokens")
        self._issuer = settings.issuer
        self._algorithm = settings.signing_algorithm
        self._key_id = settings.signing_key_id
        self._signing_key = settings.signing_key
        self._verification_key = _load_verification_key(
            settings.signing_key, settings.signing_algorithm
        )

    @property
    def issuer(self) -> str:
        return self._issuer

    def sign(
        self,
        claims: dict[str, Any],
        *,
        issued_at: datetime,
        expires_in: int,
        audience: str,
        with_jti: bool = True,
    ) -> str:
        """Sign ``claims`` with registered claims iss, aud, iat, exp (and jti)."""
        iat = _to_epoch(issued_at)
        payload: dict[str, Any] = {
            **claims,
            "iss": self._issuer,
            "aud": audience,
            "iat": iat,
            "exp": iat + expires_in,
        }
        if with_jti:
            payload["jti"] = str(uuid.uuid4())
        return jwt.encode(
            payload,
            self._signing_key,
            algorithm=self._algorithm,
            headers={"kid": self._key_id},
        )

    def decode_access_token(self, token: str) -> dict[str, Any] | None:
        """Verify signature, issuer, audience and expiry; None if any check fails."""
        try:
            return jwt.decode(
                token,
                self._verification_key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=self._issuer,
            )
        except jwt.PyJWTError as exc:
            logger.debug("JWT verification failed: %s", exc)
            return None

    def decode_id_token(self, token: str, client_id: str) -> dict[str, Any] | None:
        try:
            return jwt.decode(
                token,
                self._verification_key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=client_id,
            )
        except jwt.PyJWTError as exc:
            logger.debug("ID token verification failed: %s", exc)
            return None


__all__ = [
    "TokenSigner",
    "b64url",
    "s256_challenge",
    "constant_time_equals",
    "verify_pkce",
    "generate_authorization_code",
    "generate_refresh_token",
]
