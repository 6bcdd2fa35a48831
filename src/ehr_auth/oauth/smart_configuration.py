"""SMART on FHIR ``/.well-known/smart-configuration`` discovery document.

Reference: https://hl7.org/fhir/smart-app-launch/conformance.html
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ehr_auth.common.constants import PKCE_METHOD_S256, SMART_SCOPES

SMART_CAPABILITIES: tuple[str, ...] = (
    "launch-ehr",
    "launch-standalone",
    "client-public",
    "client-confidential-symmetric",
    "sso-openid-connect",
    "context-ehr-patient",
    "context-ehr-encounter",
    "context-standalone-patient",
    "permission-offline",
    "permission-patient",
    "permission-user",
    "permission-v2",
)


class SmartConfiguration(BaseModel):
    """Authorization server capabilities advertised to SMART apps."""

    issuer: str
    jwks_uri: str
    authorization_endpoint: str
    token_endpoint: str
    token_endpoint_auth_methods_supported: list[str] = Field(
        default_factory=lambda: ["client_secret_basic", "client_secret_post", "private_key_jwt"]
    )
    grant_types_supported: list[str] = Field(
        default_factory=lambda: ["authorization_code", "client_credentials", "refresh_token"]
    )
    registration_endpoint: str
    scopes_supported: list[str] = Field(default_factory=lambda: list(SMART_SCOPES))
    response_types_supported: list[str] = Field(default_factory=lambda: ["code"])
    introspection_endpoint: str
    revocation_endpoint: str
    capabilities: list[str] = Field(default_factory=lambda: list(SMART_CAPABILITIES))
    code_challenge_methods_supported: list[str] = Field(
        default_factory=lambda: [PKCE_METHOD_S256]
    )
    management_endpoint: str
    userinfo_endpoint: str


def generate_smart_configuration(base_url: str) -> SmartConfiguration:
    """Build the discovery document for a FHIR server base URL.

    Raises:
        ValueError: if ``base_url`` is empty.
    """
    if not base_url or not isinstance(base_url, str):
        raise ValueError("base_url must be a non-empty string")

    base = base_url.rstrip("/")
    return SmartConfiguration(
        issuer=base,
        jwks_uri=f"{base}/.well-known/jwks.json",
        authorization_endpoint=f"{base}/auth/authorize",
        token_endpoint=f"{base}/auth/token",
        registration_endpoint=f"{base}/auth/register",
        introspection_endpoint=f"{base}/auth/introspect",
        revocation_endpoint=f"{base}/auth/revoke",
        management_endpoint=f"{base}/auth/manage",
        userinfo_endpoint=f"{base}/auth/userinfo",
    )


__all__ = ["SMART_CAPABILITIES", "SmartConfiguration", "generate_smart_configuration"]
