"""OAuth 2.0 authorization server with SMART on FHIR support.

Implements the authorization code flow with PKCE, refresh token rotation,
client credentials, token introspection (RFC 7662) and revocation (RFC 7009),
plus SMART App Launch context parameters.

Lifecycle of a grant::

    CODE_ISSUED -> CODE_REDEEMED -> REFRESH_ROTATED* -> REVOKED | EXPIRED

All persistence goes through the injected ``TokenStore`` and ``UserStore``.
Writes that consume a grant happen only after every validation has passed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ehr_auth.common.config import AuthServerSettings
from ehr_auth.common.constants import PKCE_METHOD_S256
from ehr_auth.oauth.errors import OAuthError, OAuthErrorCode
from ehr_auth.oauth.models import (
    AccessTokenClaims,
    AuthorizationCode,
    AuthorizationRequest,
    AuthorizationResult,
    GrantType,
    IntrospectionResponse,
    LaunchContext,
    OAuthClient,
    OAuthUser,
    TokenRecord,
    TokenRequest,
    TokenResponse,
    TokenType,
)
from ehr_auth.oauth.scopes import ScopeValidator, split_scopes
from ehr_auth.oauth.smart_configuration import (
    SmartConfiguration,
    generate_smart_configuration,
)
from ehr_auth.oauth.stores import TokenStore, UserStore
from ehr_auth.oauth.tokens import (
    TokenSigner,
    constant_time_equals,
    generate_authorization_code,
    generate_refresh_token,
    verify_pkce,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthorizationServer:
    """OAuth 2.0 / SMART on FHIR authorization server."""

    def __init__(
        self,
        settings: AuthServerSettings,
        token_store: TokenStore,
        user_store: UserStore,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._token_store = token_store
        self._user_store = user_store
        self._signer = TokenSigner(settings)
        self._clock = clock or _utcnow

    @property
    def settings(self) -> AuthServerSettings:
        return self._settings

    @property
    def signer(self) -> TokenSigner:
        return self._signer

    def smart_configuration(self) -> SmartConfiguration:
        """Discovery document for ``/.well-known/smart-configuration``."""
        return generate_smart_configuration(self._settings.issuer)

    # --- Authorization endpoint ---

    async def authorize(
        self, request: AuthorizationRequest, authenticated_user_id: str
    ) -> AuthorizationResult:
        """Validate an authorization request and issue a code.

        Args:
            request: Parameters received at the authorization endpoint.
            authenticated_user_id: The user who has authenticated and consented.

        Raises:
            OAuthError: on any invalid parameter; no code is issued.
        """
        if request.response_type != "code":
            raise OAuthError(
                OAuthErrorCode.UNSUPPORTED_RESPONSE_TYPE,
                'Only "code" response_type is supported',
            )

        client = await self._user_store.get_client(request.client_id)
        if client is None:
            raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "Unknown client_id")

        if request.redirect_uri not in client.redirect_uris:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST,
                "redirect_uri is not registered for this client",
            )

        if not request.state:
            raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "state parameter is required")

        requested_scopes = split_scopes(request.scope)
        if not requested_scopes:
            raise OAuthError(OAuthErrorCode.INVALID_SCOPE, "At least one scope is required")
        scopes = self.validate_scopes(requested_scopes, client.scopes)

        if not client.is_confidential and not request.code_challenge:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST,
                "PKCE code_challenge is required for public clients",
            )
        if request.code_challenge and request.code_challenge_method != PKCE_METHOD_S256:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST,
                "Only S256 code_challenge_method is supported",
            )

        if request.aud and request.aud != self._settings.issuer:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST,
                f"aud parameter must match the FHIR server URL: {self._settings.issuer}",
            )

        launch_context: LaunchContext | None = None
        if request.launch:
            launch_context = await self._user_store.resolve_launch_context(request.launch)
            if launch_context is None:
                raise OAuthError(
                    OAuthErrorCode.INVALID_REQUEST, "Invalid or expired launch token"
                )

        now = self._clock()
        auth_code = AuthorizationCode(
            code=generate_authorization_code(),
            client_id=client.client_id,
            redirect_uri=request.redirect_uri,
            user_id=authenticated_user_id,
            scopes=scopes,
            code_challenge=request.code_challenge,
            code_challenge_method=request.code_challenge_method,
            launch_context=launch_context,
            nonce=request.nonce,
            created_at=now,
            expires_at=now + timedelta(seconds=self._settings.auth_code_ttl),
        )
        await self._token_store.save_authorization_code(auth_code)

        logger.info(
            "Issued authorization code: client=%s user=%s scopes=%d",
            client.client_id, authenticated_user_id, len(scopes),
        )
        return AuthorizationResult(
            redirect_uri=request.redirect_uri,
            code=auth_code.code,
            state=request.state,
        )

    # --- Token endpoint ---

    async def token(self, request: TokenRequest) -> TokenResponse:
        """Dispatch a token request by ``grant_type``."""
        if request.grant_type == GrantType.AUTHORIZATION_CODE:
            return await self._authorization_code_grant(request)
        if request.grant_type == GrantType.REFRESH_TOKEN:
            return await self._refresh_token_grant(request)
        if request.grant_type == GrantType.CLIENT_CREDENTIALS:
            return await self._client_credentials_grant(request)
        raise OAuthError(
            OAuthErrorCode.UNSUPPORTED_GRANT_TYPE,
            f"Unsupported grant_type: {request.grant_type}",
        )

    # --- Introspection (RFC 7662) ---

    async def introspect(self, token: str) -> IntrospectionResponse:
        """Describe a token; inactive for anything unknown, revoked or expired."""
        if not token:
            return IntrospectionResponse(active=False)

        record = await self._token_store.get_token(token)
        if record is None:
            return self._introspect_jwt(token)

        if not record.is_active(self._clock()):
            return IntrospectionResponse(active=False)

        username: str | None = None
        user = await self._user_store.get_user(record.user_id)
        if user is not None:
            username = user.username

        return IntrospectionResponse(
            active=True,
            scope=" ".join(record.scopes),
            client_id=record.client_id,
            username=username,
            token_type="Bearer",
            exp=int(record.expires_at.timestamp()),
            iat=int(record.created_at.timestamp()),
            sub=record.user_id,
            aud=self._settings.issuer,
            iss=self._settings.issuer,
        )

    def _introspect_jwt(self, token: str) -> IntrospectionResponse:
        # Self-contained tokens not present in the store
        claims = self._signer.decode_access_token(token)
        if claims is None:
            return IntrospectionResponse(active=False)
        aud = claims.get("aud")
        if isinstance(aud, list):
            aud = " ".join(aud)
        return IntrospectionResponse(
            active=True,
            scope=claims.get("scope"),
            client_id=claims.get("client_id"),
            username=claims.get("username"),
            token_type="Bearer",
            exp=claims.get("exp"),
            iat=claims.get("iat"),
            sub=claims.get("sub"),
            aud=aud,
            iss=claims.get("iss"),
        )

    # --- Revocation (RFC 7009) ---

    async def revoke(self, token: str) -> None:
        """Revoke an access or refresh token. Unknown tokens are ignored."""
        if not token:
            raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "token parameter is required")
        await self._token_store.revoke_token(token)
        logger.info("Token revocation processed")

    # --- Scope validation ---

    def validate_scopes(self, requested: list[str], allowed: list[str]) -> list[str]:
        """Require every requested scope to be valid and allowed for the client.

        The request fails as a whole; scopes are never silently dropped.
        """
        allowed_set = set(allowed)
        for scope in requested:
            if not ScopeValidator.is_valid_scope(scope):
                raise OAuthError(OAuthErrorCode.INVALID_SCOPE, f'Invalid scope: "{scope}"')
            if scope not in allowed_set:
                raise OAuthError(
                    OAuthErrorCode.INVALID_SCOPE,
                    f'Scope "{scope}" is not permitted for this client',
                )
        return list(requested)

    # --- Grants ---

    async def _authorization_code_grant(self, request: TokenRequest) -> TokenResponse:
        if not request.code:
            raise OAuthError(OAuthErrorCode.INVALID_REQUEST, "code parameter is required")
        if not request.redirect_uri:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST, "redirect_uri parameter is required"
            )

        auth_code = await self._token_store.get_authorization_code(request.code)
        if auth_code is None:
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Invalid authorization code")
        if auth_code.used:
            logger.warning(
                "Authorization code replay, revoking user tokens: client=%s user=%s",
                auth_code.client_id, auth_code.user_id,
            )
            await self._token_store.revoke_all_tokens_for_user(auth_code.user_id)
            raise OAuthError(
                OAuthErrorCode.INVALID_GRANT, "Authorization code has already been used"
            )
        if auth_code.is_expired(self._clock()):
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Authorization code has expired")
        if auth_code.redirect_uri != request.redirect_uri:
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "redirect_uri mismatch")

        client = await self._authenticate_client(
            request.client_id or auth_code.client_id, request.client_secret
        )
        if client.client_id != auth_code.client_id:
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "client_id mismatch")

        if auth_code.code_challenge:
            if not request.code_verifier:
                raise OAuthError(
                    OAuthErrorCode.INVALID_GRANT,
                    "code_verifier is required when PKCE was used in the authorization request",
                )
            if (auth_code.code_challenge_method or PKCE_METHOD_S256) != PKCE_METHOD_S256:
                raise OAuthError(
                    OAuthErrorCode.INVALID_REQUEST,
                    "Only S256 code_challenge_method is supported",
                )
            if not verify_pkce(request.code_verifier, auth_code.code_challenge):
                raise OAuthError(
                    OAuthErrorCode.INVALID_GRANT, "PKCE code_verifier validation failed"
                )

        user = await self._user_store.get_user(auth_code.user_id)
        if user is None:
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "User not found")

        # Point of no return: the store decides which concurrent redemption wins.
        if not await self._token_store.mark_authorization_code_used(request.code):
            logger.warning(
                "Concurrent authorization code redemption refused: client=%s",
                client.client_id,
            )
            raise OAuthError(
                OAuthErrorCode.INVALID_GRANT, "Authorization code has already been used"
            )

        now = self._clock()
        scopes = list(auth_code.scopes)
        launch = auth_code.launch_context

        access_token = await self._issue_access_token(client, user, scopes, launch, now)
        response = TokenResponse(
            access_token=access_token,
            expires_in=self._settings.access_token_ttl,
            scope=" ".join(scopes),
        )

        if "offline_access" in scopes:
            refresh_record = self._refresh_record(client, user.id, scopes, launch, now)
            await self._token_store.save_token(refresh_record)
            response.refresh_token = refresh_record.token

        self._apply_launch_context(response, launch)

        if "openid" in scopes:
            response.id_token = self.generate_id_token(user, client, now, auth_code.nonce)

        logger.info(
            "Authorization code redeemed: client=%s user=%s refresh=%s id_token=%s",
            client.client_id, user.id,
            response.refresh_token is not None, response.id_token is not None,
        )
        return response

    async def _refresh_token_grant(self, request: TokenRequest) -> TokenResponse:
        if not request.refresh_token:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST, "refresh_token parameter is required"
            )

        record = await self._token_store.get_token_by_refresh_token(request.refresh_token)
        if record is None or record.token_type != TokenType.REFRESH:
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Invalid refresh token")
        if record.revoked:
            logger.warning(
                "Revoked refresh token presented: client=%s user=%s",
                record.client_id, record.user_id,
            )
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Refresh token has been revoked")
        if self._clock() > record.expires_at:
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Refresh token has expired")

        client = await self._authenticate_client(
            request.client_id or record.client_id, request.client_secret
        )
        if client.client_id != record.client_id:
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "client_id mismatch")

        scopes = list(record.scopes)
        if request.scope:
            requested = split_scopes(request.scope)
            original = set(record.scopes)
            for scope in requested:
                if scope not in original:
                    raise OAuthError(
                        OAuthErrorCode.INVALID_SCOPE,
                        f'Scope "{scope}" was not in the original grant',
                    )
            scopes = requested

        user = await self._user_store.get_user(record.user_id)
        if user is None:
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "User not found")

        now = self._clock()
        launch = record.launch_context
        new_refresh: TokenRecord | None = None
        if "offline_access" in scopes:
            new_refresh = self._refresh_record(client, user.id, scopes, launch, now)

        # Revoke-old and save-new happen together or not at all.
        if not await self._token_store.rotate_refresh_token(request.refresh_token, new_refresh):
            logger.warning(
                "Concurrent refresh token reuse refused: client=%s user=%s",
                client.client_id, user.id,
            )
            raise OAuthError(OAuthErrorCode.INVALID_GRANT, "Refresh token has been revoked")

        access_token = await self._issue_access_token(client, user, scopes, launch, now)
        response = TokenResponse(
            access_token=access_token,
            expires_in=self._settings.access_token_ttl,
            scope=" ".join(scopes),
            refresh_token=new_refresh.token if new_refresh else None,
        )
        self._apply_launch_context(response, launch)

        if "openid" in scopes:
            response.id_token = self.generate_id_token(user, client, now)

        logger.info("Refresh token rotated: client=%s user=%s", client.client_id, user.id)
        return response

    async def _client_credentials_grant(self, request: TokenRequest) -> TokenResponse:
        if not request.client_id or not request.client_secret:
            raise OAuthError(
                OAuthErrorCode.INVALID_REQUEST,
                "client_id and client_secret are required for client_credentials grant",
            )

        client = await self._authenticate_client(request.client_id, request.client_secret)
        # Public clients have no verifiable secret and this grant has no PKCE.
        if not client.is_confidential:
            logger.warning(
                "Client credentials refused for public client: client=%s", client.client_id
            )
            raise OAuthError(
                OAuthErrorCode.UNAUTHORIZED_CLIENT,
                "Public clients may not use the client_credentials grant",
            )
        if GrantType.CLIENT_CREDENTIALS not in client.grant_types:
            raise OAuthError(
                OAuthErrorCode.UNAUTHORIZED_CLIENT,
                "Client is not authorized for client_credentials grant",
            )

        if request.scope:
            scopes = self.validate_scopes(split_scopes(request.scope), client.scopes)
        else:
            scopes = [s for s in client.scopes if s.startswith("system/")]

        now = self._clock()
        claims = AccessTokenClaims(
            sub=client.client_id,
            client_id=client.client_id,
            scope=" ".join(scopes),
        )
        access_token = self._signer.sign(
            claims.to_payload(),
            issued_at=now,
            expires_in=self._settings.access_token_ttl,
            audience=self._settings.issuer,
        )
        # The client acts as its own subject for backend services.
        await self._token_store.save_token(
            TokenRecord(
                token=access_token,
                token_type=TokenType.ACCESS,
                client_id=client.client_id,
                user_id=client.client_id,
                scopes=scopes,
                created_at=now,
                expires_at=now + timedelta(seconds=self._settings.access_token_ttl),
            )
        )

        logger.info("Client credentials token issued: client=%s", client.client_id)
        return TokenResponse(
            access_token=access_token,
            expires_in=self._settings.access_token_ttl,
            scope=" ".join(scopes),
        )

    # --- Token generation ---

    def generate_id_token(
        self,
        user: OAuthUser,
        client: OAuthClient,
        issued_at: datetime | None = None,
        nonce: str | None = None,
    ) -> str:
        """Sign an OIDC ID token for ``user`` addressed to ``client``."""
        issued_at = issued_at or self._clock()
        claims: dict[str, Any] = {
            "sub": user.id,
            "auth_time": int(issued_at.timestamp()),
        }
        if user.fhir_user:
            claims["fhirUser"] = user.fhir_user
        if nonce:
            claims["nonce"] = nonce
        if user.name:
            claims["name"] = user.name
        if user.email:
            claims["email"] = user.email
        if user.username:
            claims["preferred_username"] = user.username
        return self._signer.sign(
            claims,
            issued_at=issued_at,
            expires_in=self._settings.id_token_ttl,
            audience=client.client_id,
            with_jti=False,
        )

    async def _issue_access_token(
        self,
        client: OAuthClient,
        user: OAuthUser,
        scopes: list[str],
        launch: LaunchContext | None,
        now: datetime,
    ) -> str:
        claims = AccessTokenClaims(
            sub=user.id,
            client_id=client.client_id,
            scope=" ".join(scopes),
            username=user.username,
            fhir_user=user.fhir_user,
            patient=launch.patient if launch else None,
            encounter=launch.encounter if launch else None,
        )
        access_token = self._signer.sign(
            claims.to_payload(),
            issued_at=now,
            expires_in=self._settings.access_token_ttl,
            audience=self._settings.issuer,
        )
        await self._token_store.save_token(
            TokenRecord(
                token=access_token,
                token_type=TokenType.ACCESS,
                client_id=client.client_id,
                user_id=user.id,
                scopes=scopes,
                launch_context=launch,
                created_at=now,
                expires_at=now + timedelta(seconds=self._settings.access_token_ttl),
            )
        )
        return access_token

    def _refresh_record(
        self,
        client: OAuthClient,
        user_id: str,
        scopes: list[str],
        launch: LaunchContext | None,
        now: datetime,
    ) -> TokenRecord:
        return TokenRecord(
            token=generate_refresh_token(),
            token_type=TokenType.REFRESH,
            client_id=client.client_id,
            user_id=user_id,
            scopes=scopes,
            launch_context=launch,
            created_at=now,
            expires_at=now + timedelta(seconds=self._settings.refresh_token_ttl),
        )

    @staticmethod
    def _apply_launch_context(response: TokenResponse, launch: LaunchContext | None) -> None:
        if launch is None:
            return
        response.patient = launch.patient
        response.encounter = launch.encounter
        response.need_patient_banner = launch.need_patient_banner
        response.smart_style_url = launch.smart_style_url

    # --- Client authentication ---

    async def _authenticate_client(
        self, client_id: str, client_secret: str | None
    ) -> OAuthClient:
        """Authenticate via client_secret; public clients rely on PKCE instead."""
        client = await self._user_store.get_client(client_id)
        if client is None:
            raise OAuthError(OAuthErrorCode.INVALID_CLIENT, "Unknown client")

        if client.is_confidential:
            if not client_secret:
                raise OAuthError(
                    OAuthErrorCode.INVALID_CLIENT,
                    "Client authentication is required for confidential clients",
                )
            if not client.client_secret:
                raise OAuthError(
                    OAuthErrorCode.INVALID_CLIENT, "Client has no secret configured"
                )
            if not constant_time_equals(client.client_secret, client_secret):
                logger.warning("Client authentication failed: client=%s", client_id)
                raise OAuthError(
                    OAuthErrorCode.INVALID_CLIENT, "Client authentication failed"
                )

        return client


__all__ = ["AuthorizationServer", "Clock"]
