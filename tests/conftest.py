"""Shared fixtures for authorization server and RBAC tests."""

from __future__ import annotations

import base64
import hashlib
import secrets
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ehr_auth.common.config import AuthServerSettings
from ehr_auth.oauth.models import LaunchContext, OAuthClient, OAuthUser
from ehr_auth.oauth.server import AuthorizationServer
from ehr_auth.oauth.stores import InMemoryTokenStore, InMemoryUserStore

ISSUER = "https://ehr.example.org/fhir"
REDIRECT_URI = "https://app.example.org/callback"
CONFIDENTIAL_SECRET = "s3cret-value-for-tests"
BACKEND_SECRET = "backend-secret-for-tests"


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def pkce_pair() -> tuple[str, str]:
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


@pytest.fixture(scope="session")
def rsa_private_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def settings(rsa_private_pem: str) -> AuthServerSettings:
    return AuthServerSettings(
        issuer=ISSUER,
        signing_key=rsa_private_pem,
        signing_key_id="test-key-1",
    )


@pytest.fixture
def clock() -> FakeClock:
    # Anchored at real time so signed JWTs pass exp/iat checks.
    return FakeClock(datetime.now(timezone.utc))


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def user_store() -> InMemoryUserStore:
    smart_scopes = [
        "launch", "openid", "fhirUser", "offline_access",
        "patient/*.read", "patient/Patient.read",
        "patient/Observation.read", "patient/Observation.write",
    ]
    return InMemoryUserStore(
        clients=[
            OAuthClient(
                client_id="public-app",
                client_name="Patient Viewer",
                redirect_uris=[REDIRECT_URI],
                grant_types=["authorization_code", "refresh_token"],
                scopes=smart_scopes,
                is_confidential=False,
            ),
            OAuthClient(
                client_id="confidential-app",
                client_secret=CONFIDENTIAL_SECRET,
                client_name="Clinician Portal",
                redirect_uris=[REDIRECT_URI],
                grant_types=["authorization_code", "refresh_token"],
                scopes=smart_scopes,
                is_confidential=True,
            ),
            OAuthClient(
                client_id="backend-service",
                client_secret=BACKEND_SECRET,
                client_name="Bulk Export",
                grant_types=["client_credentials"],
                scopes=["system/*.read", "system/Patient.read", "user/*.read"],
                is_confidential=True,
            ),
            OAuthClient(
                client_id="interactive-only",
                client_secret=BACKEND_SECRET,
                redirect_uris=[REDIRECT_URI],
                grant_types=["authorization_code"],
                scopes=["system/*.read"],
                is_confidential=True,
            ),
        ],
        users=[
            OAuthUser(
                id="user-1",
                username="dr.smith",
                name="Jane Smith",
                fhir_user="Practitioner/123",
                roles=["PHYSICIAN"],
            ),
        ],
        launch_contexts={
            "launch-123": LaunchContext(
                patient="456",
                encounter="enc-789",
                need_patient_banner=True,
                smart_style_url="https://ehr.example.org/smart-style.json",
            ),
        },
    )


@pytest.fixture
def server(
    settings: AuthServerSettings,
    token_store: InMemoryTokenStore,
    user_store: InMemoryUserStore,
    clock: FakeClock,
) -> AuthorizationServer:
    return AuthorizationServer(settings, token_store, user_store, clock=clock)
