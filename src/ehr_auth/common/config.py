"""Authorization server configuration using Pydantic Settings."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from ehr_auth.common.constants import (
    DEFAULT_ACCESS_TOKEN_TTL,
    DEFAULT_AUTH_CODE_TTL,
    DEFAULT_ID_TOKEN_TTL,
    DEFAULT_REFRESH_TOKEN_TTL,
)

SigningAlgorithm = Literal[
    "RS256", "RS384", "RS512", "ES256", "ES384", "HS256", "HS384", "HS512"
]


class AuthServerSettings(BaseSettings):
    """Authorization server configuration loaded from environment variables."""

    environment: Literal["dev", "staging", "prod"] = "dev"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    issuer: str = "http://localhost:8080/fhir"
    signing_key: str = Field(default="", repr=False)
    signing_key_id: str = "default"
    signing_algorithm: SigningAlgorithm = "RS256"

    access_token_ttl: int = Field(default=DEFAULT_ACCESS_TOKEN_TTL, gt=0)
    refresh_token_ttl: int = Field(default=DEFAULT_REFRESH_TOKEN_TTL, gt=0)
    auth_code_ttl: int = Field(default=DEFAULT_AUTH_CODE_TTL, gt=0)
    id_token_ttl: int = Field(default=DEFAULT_ID_TOKEN_TTL, gt=0)

    model_config = {"env_prefix": "EHR_AUTH_", "case_sensitive": False}


__all__ = ["AuthServerSettings", "SigningAlgorithm"]
