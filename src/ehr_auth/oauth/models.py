"""Data models for the OAuth 2.0 / SMART on FHIR authorization server."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TokenType(StrEnum):
    """Kinds of persisted token records."""

    ACCESS = "access"
    REFRESH = "refresh"


class GrantType(StrEnum):
    """Grant types accepted at the token endpoint."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


class LaunchContext(BaseModel):
    """SMART launch parameters resolved from an EHR launch token."""

    model_config = ConfigDict(frozen=True, extra="allow")

    patient: str | None = None
    encounter: str | None = None
    intent: str | None = None
    need_patient_banner: bool | None = None
    smart_style_url: str | None = None


class OAuthClient(BaseModel):
    """A registered client application."""

    client_id: str
    client_secret: str | None = Field(default=None, repr=False)
    client_name: str = ""
    redirect_uris: list[str] = Field(default_factory=list)
    grant_types: list[str] = Field(default_factory=list)
    scopes: list[str] = Field(default_factory=list)
    is_confidential: bool = False
    jwks: dict[str, Any] | None = None


class OAuthUser(BaseModel):
    """An authenticated principal."""

    id: str
    username: str
    email: str | None = None
    name: str | None = None
    fhir_user: str | None = Field(
        default=None, description="FHIR reference, e.g. Practitioner/123"
    )
    roles: list[str] = Field(default_factory=list)


class AuthorizationCode(BaseModel):
    """Single-use grant artifact issued by the authorization endpoint."""

    code: str = Field(repr=False)
    client_id: str
    redirect_uri: str
    user_id: str
    scopes: list[str]
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    launch_context: LaunchContext | None = None
    nonce: str | None = None
    created_at: datetime
    expires_at: datetime
    used: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class TokenRecord(BaseModel):
    """A persisted access or refresh token."""

    token: str = Field(repr=False)
    token_type: TokenType
    client_id: str
    user_id: str
    scopes: list[str]
    launch_context: LaunchContext | None = None
    created_at: datetime
    expires_at: datetime
    revoked: bool = False

    def is_active(self, now: datetime) -> bool:
        """A token is active until revoked or past its expiry."""
        return not self.revoked and now <= self.expires_at


class AuthorizationRequest(BaseModel):
    """Parameters of a request to the authorization endpoint."""

    response_type: str
    client_id: str
    redirect_uri: str
    scope: str = ""
    state: str = ""
    launch: str | None = None
    aud: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    nonce: str | None = None


class AuthorizationResult(BaseModel):
    """Successful authorization: where to redirect and with what."""

    redirect_uri: str
    code: str = Field(repr=False)
    state: str

    @property
    def redirect_url(self) -> str:
        separator = "&" if "?" in self.redirect_uri else "?"
        query = urlencode({"code": self.code, "state": self.state})
        return f"{self.redirect_uri}{separator}{query}"


class TokenRequest(BaseModel):
    """Parameters of a request to the token endpoint."""

    grant_type: str
    code: str | None = None
    redirect_uri: str | None = None
    client_id: str | None = None
    client_secret: str | None = Field(default=None, repr=False)
    code_verifier: str | None = Field(default=None, repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    scope: str | None = None


class TokenResponse(BaseModel):
    """JSON body returned by the token endpoint."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str
    refresh_token: str | None = None
    id_token: str | None = None
    patient: str | None = None
    encounter: str | None = None
    need_patient_banner: bool | None = None
    smart_style_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class IntrospectionResponse(BaseModel):
    """RFC 7662 introspection response."""

    active: bool
    scope: str | None = None
    client_id: str | None = None
    username: str | None = None
    token_type: str | None = None
    exp: int | None = None
    iat: int | None = None
    sub: str | None = None
    aud: str | None = None
    iss: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class AccessTokenClaims(BaseModel):
    """Custom claims carried in a signed access token. No PHI allowed.

    Registered claims (iss, aud, exp, iat, jti) are added at signing time.
    """

    model_config = ConfigDict(populate_by_name=True)

    sub: str
    client_id: str
    scope: str
    username: str | None = None
    fhir_user: str | None = Field(default=None, alias="fhirUser")
    patient: str | None = None
    encounter: str | None = None

    @model_validator(mode="before")
    @classmethod
    def validate_no_phi(cls, data: Any) -> Any:
        """Ensure no PHI fields are present in the token payload."""
        phi_fields = {"patient_name", "mrn", "ssn", "dob", "address", "phone", "email"}
        if isinstance(data, dict):
            found = phi_fields & set(data.keys())
            if found:
                raise ValueError(f"PHI detected in token payload: {found}")
        return data

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "TokenType",
    "GrantType",
    "LaunchContext",
    "OAuthClient",
    "OAuthUser",
    "AuthorizationCode",
    "TokenRecord",
    "AuthorizationRequest",
    "AuthorizationResult",
    "TokenRequest",
    "TokenResponse",
    "IntrospectionResponse",
    "AccessTokenClaims",
]
