"""OAuth 2.0 authorization server with SMART on FHIR launch and scopes."""

from ehr_auth.oauth.errors import OAuthError, OAuthErrorCode
from ehr_auth.oauth.models import (
    AuthorizationCode,
    AuthorizationRequest,
    AuthorizationResult,
    IntrospectionResponse,
    LaunchContext,
    OAuthClient,
    OAuthUser,
    TokenRecord,
    TokenRequest,
    TokenResponse,
)
from ehr_auth.oauth.scopes import ParsedSMARTScope, ScopeValidationResult, ScopeValidator
from ehr_auth.oauth.server import AuthorizationServer
from ehr_auth.oauth.smart_configuration import SmartConfiguration, generate_smart_configuration
from ehr_auth.oauth.stores import InMemoryTokenStore, InMemoryUserStore, TokenStore, UserStore

__all__ = [
    "AuthorizationServer",
    "OAuthError",
    "OAuthErrorCode",
    "OAuthClient",
    "OAuthUser",
    "AuthorizationCode",
    "LaunchContext",
    "TokenRecord",
    "AuthorizationRequest",
    "AuthorizationResult",
    "TokenRequest",
    "TokenResponse",
    "IntrospectionResponse",
    "ScopeValidator",
    "ParsedSMARTScope",
    "ScopeValidationResult",
    "SmartConfiguration",
    "generate_smart_configuration",
    "TokenStore",
    "UserStore",
    "InMemoryTokenStore",
    "InMemoryUserStore",
]
