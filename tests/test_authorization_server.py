"""Tests for the OAuth 2.0 / SMART authorization server."""

from __future__ import annotations

import asyncio

import jwt
import pytest

from conftest import (
    BACKEND_SECRET,
    CONFIDENTIAL_SECRET,
    ISSUER,
    REDIRECT_URI,
    FakeClock,
    pkce_pair,
)
from ehr_auth.oauth.errors import OAuthError, OAuthErrorCode
from ehr_auth.oauth.models import AuthorizationRequest, OAuthClient, TokenRequest, TokenType
from ehr_auth.oauth.server import AuthorizationServer
from ehr_auth.oauth.stores import InMemoryTokenStore


# ── Helpers ──


def _auth_request(**overrides: object) -> AuthorizationRequest:
    base: dict = {
        "response_type": "code",
        "client_id": "public-app",
        "redirect_uri": REDIRECT_URI,
        "scope": "patient/Patient.read openid",
        "state": "xyz-state",
    }
    base.update(overrides)
    return AuthorizationRequest(**base)


async def _issue_code(
    server: AuthorizationServer,
    scope: str = "patient/Patient.read openid offline_access",
    client_id: str = "public-app",
    **overrides: object,
) -> tuple[str, str]:
    verifier, challenge = pkce_pair()
    result = await server.authorize(
        _auth_request(
            client_id=client_id,
            scope=scope,
            code_challenge=challenge,
            code_challenge_method="S256",
            **overrides,
        ),
        "user-1",
    )
    return result.code, verifier


def _code_request(code: str, verifier: str | None, **overrides: object) -> TokenRequest:
    base: dict = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": REDIRECT_URI,
        "client_id": "public-app",
        "code_verifier": verifier,
    }
    base.update(overrides)
    return TokenRequest(**base)


async def _assert_oauth_error(coro: object, code: OAuthErrorCode) -> OAuthError:
    with pytest.raises(OAuthError) as exc_info:
        await coro  # type: ignore[misc]
    assert exc_info.value.error_code == code
    return exc_info.value


# ── authorize ──


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_issues_code_and_echoes_state(self, server, token_store) -> None:
        _, challenge = pkce_pair()
        result = await server.authorize(
            _auth_request(code_challenge=challenge, code_challenge_method="S256", nonce="n-1"),
            "user-1",
        )
        assert result.state == "xyz-state"
        assert result.redirect_uri == REDIRECT_URI
        assert len(result.code) >= 43

        stored = await token_store.get_authorization_code(result.code)
        assert stored is not None
        assert stored.used is False
        assert stored.user_id == "user-1"
        assert stored.scopes == ["patient/Patient.read", "openid"]
        assert stored.nonce == "n-1"
        assert (stored.expires_at - stored.created_at).total_seconds() == 600

    @pytest.mark.asyncio
    async def test_codes_are_unique(self, server) -> None:
        first, _ = await _issue_code(server)
        second, _ = await _issue_code(server)
        assert first != second

    @pytest.mark.asyncio
    async def test_redirect_url(self, server) -> None:
        _, challenge = pkce_pair()
        result = await server.authorize(
            _auth_request(code_challenge=challenge, code_challenge_method="S256"), "user-1"
        )
        assert result.redirect_url.startswith(f"{REDIRECT_URI}?code=")
        assert "state=xyz-state" in result.redirect_url

    @pytest.mark.asyncio
    async def test_unsupported_response_type(self, server) -> None:
        await _assert_oauth_error(
            server.authorize(_auth_request(response_type="token"), "user-1"),
            OAuthErrorCode.UNSUPPORTED_RESPONSE_TYPE,
        )

    @pytest.mark.asyncio
    async def test_unknown_client(self, server) -> None:
        await _assert_oauth_error(
            server.authorize(_auth_request(client_id="nobody"), "user-1"),
            OAuthErrorCode.INVALID_REQUEST,
        )

    @pytest.mark.asyncio
    async def test_unregistered_redirect_uri(self, server) -> None:
        await _assert_oauth_error(
            server.authorize(_auth_request(redirect_uri="https://evil.example/cb"), "user-1"),
            OAuthErrorCode.INVALID_REQUEST,
        )

    @pytest.mark.asyncio
    async def test_state_required(self, server) -> None:
        await _assert_oauth_error(
            server.authorize(_auth_request(state=""), "user-1"),
            OAuthErrorCode.INVALID_REQUEST,
        )

    @pytest.mark.asyncio
    async def test_scope_required(self, server) -> None:
        await _assert_oauth_error(
            server.authorize(_auth_request(scope="   "), "user-1"),
            OAuthErrorCode.INVALID_SCOPE,
        )

    @pytest.mark.asyncio
    async def test_malformed_scope_rejected(self, server) -> None:
        await _assert_oauth_error(
            server.authorize(_auth_request(scope="patient/Bogus.read"), "user-1"),
            OAuthErrorCode.INVALID_SCOPE,
        )

    @pytest.mark.asyncio
    async def test_unpermitted_scope_fails_whole_request(
        self, server, user_store, token_store
    ) -> None:
        client = await user_store.get_client("public-app")
        user_store.add_client(
            client.model_copy(update={"scopes": ["patient/Patient.read", "openid"]})
        )
        _, challenge = pkce_pair()
        error = await _assert_oauth_error(
            server.authorize(
                _auth_request(
                    scope="patient/Patient.read launch openid",
                    code_challenge=challenge,
                    code_challenge_method="S256",
                ),
                "user-1",
            ),
            OAuthErrorCode.INVALID_SCOPE,
        )
        assert "launch" in error.message
        assert token_store._codes == {}

    @pytest.mark.asyncio
    async def test_public_client_requires_pkce(self, server) -> None:
        await _assert_oauth_error(
            server.authorize(_auth_request(), "user-1"),
            OAuthErrorCode.INVALID_REQUEST,
        )

    @pytest.mark.asyncio
    async def test_confidential_client_pkce_optional(self, server) -> None:
        result = await server.authorize(_auth_request(client_id="confidential-app"), "user-1")
        assert result.code

    @pytest.mark.asyncio
    async def test_plain_pkce_method_rejected(self, server) -> None:
        await _assert_oauth_error(
            server.authorize(
                _auth_request(code_challenge="abc", code_challenge_method="plain"), "user-1"
            ),
            OAuthErrorCode.INVALID_REQUEST,
        )

    @pytest.mark.asyncio
    async def test_aud_must_match_issuer(self, server) -> None:
        _, challenge = pkce_pair()
        await _assert_oauth_error(
            server.authorize(
                _auth_request(
                    code_challenge=challenge,
                    code_challenge_method="S256",
                    aud="https://other.example.org/fhir",
                ),
                "user-1",
            ),
            OAuthErrorCode.INVALID_REQUEST,
        )

    @pytest.mark.asyncio
    async def test_aud_matching_issuer_accepted(self, server) -> None:
        code, _ = await _issue_code(server, aud=ISSUER)
        assert code

    @pytest.mark.asyncio
    async def test_launch_context_attached(self, server, token_store) -> None:
        code, _ = await _issue_code(server, scope="launch patient/Patient.read", launch="launch-123")
        stored = await token_store.get_authorization_code(code)
        assert stored.launch_context is not None
        assert stored.launch_context.patient == "456"

    @pytest.mark.asyncio
    async def test_invalid_launch_token(self, server) -> None:
        _, challenge = pkce_pair()
        await _assert_oauth_error(
            server.authorize(
                _auth_request(
                    scope="launch patient/Patient.read",
                    code_challenge=challenge,
                    code_challenge_method="S256",
                    launch="expired-launch",
                ),
                "user-1",
            ),
            OAuthErrorCode.INVALID_REQUEST,
        )


# ── authorization_code grant ──


class TestAuthorizationCodeGrant:
    @pytest.mark.asyncio
    async def test_exchange_with_valid_verifier(self, server, settings) -> None:
        code, verifier = await _issue_code(server)
        response = await server.token(_code_request(code, verifier))

        assert response.token_type == "Bearer"
        assert response.expires_in == settings.access_token_ttl
        assert response.scope == "patient/Patient.read openid offline_access"
        assert response.refresh_token
        assert response.id_token

        claims = server.signer.decode_access_token(response.access_token)
        assert claims is not None
        assert claims["sub"] == "user-1"
        assert claims["client_id"] == "public-app"
        assert claims["username"] == "dr.smith"
        assert claims["fhirUser"] == "Practitioner/123"
        assert claims["iss"] == ISSUER
        assert "patient" not in claims

    @pytest.mark.asyncio
    async def test_access_token_header_has_kid(self, server) -> None:
        code, verifier = await _issue_code(server)
        response = await server.token(_code_request(code, verifier))
        header = jwt.get_unverified_header(response.access_token)
        assert header["kid"] == "test-key-1"
        assert header["alg"] == "RS256"

    @pytest.mark.asyncio
    async def test_mismatched_verifier(self, server) -> None:
        code, _ = await _issue_code(server)
        other_verifier, _ = pkce_pair()
        await _assert_oauth_error(
            server.token(_code_request(code, other_verifier)), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_failed_pkce_does_not_consume_code(self, server) -> None:
        code, verifier = await _issue_code(server)
        wrong, _ = pkce_pair()
        with pytest.raises(OAuthError):
            await server.token(_code_request(code, wrong))
        response = await server.token(_code_request(code, verifier))
        assert response.access_token

    @pytest.mark.asyncio
    async def test_missing_verifier(self, server) -> None:
        code, _ = await _issue_code(server)
        await _assert_oauth_error(
            server.token(_code_request(code, None)), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_code_redeemable_once(self, server) -> None:
        code, verifier = await _issue_code(server)
        await server.token(_code_request(code, verifier))
        await _assert_oauth_error(
            server.token(_code_request(code, verifier)), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_replay_revokes_tokens_from_first_redemption(self, server) -> None:
        code, verifier = await _issue_code(server)
        first = await server.token(_code_request(code, verifier))
        assert (await server.introspect(first.access_token)).active is True

        await _assert_oauth_error(
            server.token(_code_request(code, verifier)), OAuthErrorCode.INVALID_GRANT
        )

        assert (await server.introspect(first.access_token)).active is False
        assert (await server.introspect(first.refresh_token)).active is False
        await _assert_oauth_error(
            server.token(
                TokenRequest(
                    grant_type="refresh_token",
                    refresh_token=first.refresh_token,
                    client_id="public-app",
                )
            ),
            OAuthErrorCode.INVALID_GRANT,
        )

    @pytest.mark.asyncio
    async def test_concurrent_redemption_single_winner(self, server) -> None:
        code, verifier = await _issue_code(server)
        results = await asyncio.gather(
            *(server.token(_code_request(code, verifier)) for _ in range(10)),
            return_exceptions=True,
        )
        successes = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, OAuthError)]
        assert len(successes) == 1
        assert len(failures) == 9
        assert all(f.error_code == OAuthErrorCode.INVALID_GRANT for f in failures)

    @pytest.mark.asyncio
    async def test_unknown_code(self, server) -> None:
        await _assert_oauth_error(
            server.token(_code_request("no-such-code", "v")), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_expired_code(self, server, clock: FakeClock) -> None:
        code, verifier = await _issue_code(server)
        clock.advance(seconds=601)
        await _assert_oauth_error(
            server.token(_code_request(code, verifier)), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_redirect_uri_mismatch(self, server) -> None:
        code, verifier = await _issue_code(server)
        await _assert_oauth_error(
            server.token(_code_request(code, verifier, redirect_uri="https://other/cb")),
            OAuthErrorCode.INVALID_GRANT,
        )

    @pytest.mark.asyncio
    async def test_missing_code_parameter(self, server) -> None:
        await _assert_oauth_error(
            server.token(TokenRequest(grant_type="authorization_code", redirect_uri=REDIRECT_URI)),
            OAuthErrorCode.INVALID_REQUEST,
        )

    @pytest.mark.asyncio
    async def test_client_mismatch(self, server) -> None:
        code, verifier = await _issue_code(server)
        await _assert_oauth_error(
            server.token(
                _code_request(
                    code,
                    verifier,
                    client_id="confidential-app",
                    client_secret=CONFIDENTIAL_SECRET,
                )
            ),
            OAuthErrorCode.INVALID_GRANT,
        )

    @pytest.mark.asyncio
    async def test_confidential_client_requires_secret(self, server) -> None:
        code, verifier = await _issue_code(server, client_id="confidential-app")
        await _assert_oauth_error(
            server.token(_code_request(code, verifier, client_id="confidential-app")),
            OAuthErrorCode.INVALID_CLIENT,
        )

    @pytest.mark.asyncio
    async def test_confidential_client_wrong_secret(self, server) -> None:
        code, verifier = await _issue_code(server, client_id="confidential-app")
        error = await _assert_oauth_error(
            server.token(
                _code_request(
                    code, verifier, client_id="confidential-app", client_secret="wrong"
                )
            ),
            OAuthErrorCode.INVALID_CLIENT,
        )
        assert error.status_code == 401

    @pytest.mark.asyncio
    async def test_confidential_client_correct_secret(self, server) -> None:
        code, verifier = await _issue_code(server, client_id="confidential-app")
        response = await server.token(
            _code_request(
                code, verifier, client_id="confidential-app", client_secret=CONFIDENTIAL_SECRET
            )
        )
        assert response.access_token

    @pytest.mark.asyncio
    async def test_no_refresh_without_offline_access(self, server) -> None:
        code, verifier = await _issue_code(server, scope="patient/Patient.read openid")
        response = await server.token(_code_request(code, verifier))
        assert response.refresh_token is None

    @pytest.mark.asyncio
    async def test_id_token_only_with_openid(self, server) -> None:
        code, verifier = await _issue_code(server, scope="patient/Patient.read")
        response = await server.token(_code_request(code, verifier))
        assert response.id_token is None
        assert "id_token" not in response.to_dict()

    @pytest.mark.asyncio
    async def test_id_token_echoes_nonce(self, server) -> None:
        code, verifier = await _issue_code(server, nonce="nonce-abc")
        response = await server.token(_code_request(code, verifier))
        claims = server.signer.decode_id_token(response.id_token, "public-app")
        assert claims is not None
        assert claims["nonce"] == "nonce-abc"
        assert claims["sub"] == "user-1"
        assert claims["fhirUser"] == "Practitioner/123"
        assert claims["preferred_username"] == "dr.smith"

    @pytest.mark.asyncio
    async def test_launch_context_in_response_and_token(self, server) -> None:
        code, verifier = await _issue_code(
            server, scope="launch patient/Patient.read", launch="launch-123"
        )
        response = await server.token(_code_request(code, verifier))
        body = response.to_dict()
        assert body["patient"] == "456"
        assert body["encounter"] == "enc-789"
        assert body["need_patient_banner"] is True
        assert body["smart_style_url"] == "https://ehr.example.org/smart-style.json"

        claims = server.signer.decode_access_token(response.access_token)
        assert claims["patient"] == "456"
        assert claims["encounter"] == "enc-789"

    @pytest.mark.asyncio
    async def test_access_token_persisted(self, server, token_store) -> None:
        code, verifier = await _issue_code(server)
        response = await server.token(_code_request(code, verifier))
        record = await token_store.get_token(response.access_token)
        assert record is not None
        assert record.token_type == TokenType.ACCESS
        assert record.user_id == "user-1"

    @pytest.mark.asyncio
    async def test_unknown_user(self, server, token_store) -> None:
        verifier, challenge = pkce_pair()
        result = await server.authorize(
            _auth_request(code_challenge=challenge, code_challenge_method="S256"), "ghost"
        )
        await _assert_oauth_error(
            server.token(_code_request(result.code, verifier)), OAuthErrorCode.INVALID_GRANT
        )
        stored = await token_store.get_authorization_code(result.code)
        assert stored.used is False


# ── refresh_token grant ──


class TestRefreshTokenGrant:
    async def _tokens(self, server) -> dict:
        code, verifier = await _issue_code(server)
        response = await server.token(_code_request(code, verifier))
        return response.to_dict()

    def _refresh(self, refresh_token: str, **overrides: object) -> TokenRequest:
        base: dict = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": "public-app",
        }
        base.update(overrides)
        return TokenRequest(**base)

    @pytest.mark.asyncio
    async def test_rotation(self, server, token_store) -> None:
        tokens = await self._tokens(server)
        refreshed = await server.token(self._refresh(tokens["refresh_token"]))

        assert refreshed.refresh_token
        assert refreshed.refresh_token != tokens["refresh_token"]
        old = await token_store.get_token(tokens["refresh_token"])
        assert old.revoked is True

    @pytest.mark.asyncio
    async def test_old_token_unusable_new_usable(self, server) -> None:
        tokens = await self._tokens(server)
        refreshed = await server.token(self._refresh(tokens["refresh_token"]))

        await _assert_oauth_error(
            server.token(self._refresh(tokens["refresh_token"])), OAuthErrorCode.INVALID_GRANT
        )
        again = await server.token(self._refresh(refreshed.refresh_token))
        assert again.access_token

    @pytest.mark.asyncio
    async def test_concurrent_reuse_single_winner(self, server) -> None:
        tokens = await self._tokens(server)
        results = await asyncio.gather(
            *(server.token(self._refresh(tokens["refresh_token"])) for _ in range(5)),
            return_exceptions=True,
        )
        successes = [r for r in results if not isinstance(r, BaseException)]
        assert len(successes) == 1

    @pytest.mark.asyncio
    async def test_narrowed_scope(self, server) -> None:
        tokens = await self._tokens(server)
        refreshed = await server.token(
            self._refresh(tokens["refresh_token"], scope="patient/Patient.read")
        )
        assert refreshed.scope == "patient/Patient.read"
        assert refreshed.id_token is None

    @pytest.mark.asyncio
    async def test_narrowing_away_offline_access_ends_refresh_chain(
        self, server, token_store
    ) -> None:
        tokens = await self._tokens(server)
        refreshed = await server.token(
            self._refresh(tokens["refresh_token"], scope="patient/Patient.read openid")
        )
        assert refreshed.access_token
        assert refreshed.refresh_token is None
        assert "refresh_token" not in refreshed.to_dict()
        assert (await token_store.get_token(tokens["refresh_token"])).revoked is True

    @pytest.mark.asyncio
    async def test_narrowing_with_offline_access_rotates(self, server) -> None:
        tokens = await self._tokens(server)
        refreshed = await server.token(
            self._refresh(tokens["refresh_token"], scope="patient/Patient.read offline_access")
        )
        assert refreshed.refresh_token
        assert refreshed.refresh_token != tokens["refresh_token"]

    @pytest.mark.asyncio
    async def test_scope_escalation_rejected(self, server) -> None:
        tokens = await self._tokens(server)
        await _assert_oauth_error(
            server.token(
                self._refresh(tokens["refresh_token"], scope="patient/Patient.read patient/*.read")
            ),
            OAuthErrorCode.INVALID_SCOPE,
        )

    @pytest.mark.asyncio
    async def test_id_token_reissued_with_openid(self, server) -> None:
        tokens = await self._tokens(server)
        refreshed = await server.token(self._refresh(tokens["refresh_token"]))
        assert refreshed.id_token

    @pytest.mark.asyncio
    async def test_unknown_refresh_token(self, server) -> None:
        await _assert_oauth_error(
            server.token(self._refresh("nope")), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_access_token_not_accepted_as_refresh(self, server) -> None:
        tokens = await self._tokens(server)
        await _assert_oauth_error(
            server.token(self._refresh(tokens["access_token"])), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_revoked_refresh_token(self, server) -> None:
        tokens = await self._tokens(server)
        await server.revoke(tokens["refresh_token"])
        await _assert_oauth_error(
            server.token(self._refresh(tokens["refresh_token"])), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_expired_refresh_token(self, server, clock: FakeClock, settings) -> None:
        tokens = await self._tokens(server)
        clock.advance(seconds=settings.refresh_token_ttl + 1)
        await _assert_oauth_error(
            server.token(self._refresh(tokens["refresh_token"])), OAuthErrorCode.INVALID_GRANT
        )

    @pytest.mark.asyncio
    async def test_client_mismatch(self, server) -> None:
        tokens = await self._tokens(server)
        await _assert_oauth_error(
            server.token(
                self._refresh(
                    tokens["refresh_token"],
                    client_id="confidential-app",
                    client_secret=CONFIDENTIAL_SECRET,
                )
            ),
            OAuthErrorCode.INVALID_GRANT,
        )

    @pytest.mark.asyncio
    async def test_launch_context_carried(self, server) -> None:
        code, verifier = await _issue_code(
            server, scope="launch patient/Patient.read offline_access", launch="launch-123"
        )
        first = await server.token(_code_request(code, verifier))
        refreshed = await server.token(self._refresh(first.refresh_token))
        assert refreshed.patient == "456"
        assert refreshed.encounter == "enc-789"


# ── client_credentials grant ──


class TestClientCredentialsGrant:
    def _request(self, **overrides: object) -> TokenRequest:
        base: dict = {
            "grant_type": "client_credentials",
            "client_id": "backend-service",
            "client_secret": BACKEND_SECRET,
        }
        base.update(overrides)
        return TokenRequest(**base)

    @pytest.mark.asyncio
    async def test_defaults_to_system_scopes(self, server) -> None:
        response = await server.token(self._request())
        assert response.scope == "system/*.read system/Patient.read"
        assert response.refresh_token is None
        assert response.id_token is None

        claims = server.signer.decode_access_token(response.access_token)
        assert claims["sub"] == "backend-service"
        assert claims["client_id"] == "backend-service"

    @pytest.mark.asyncio
    async def test_explicit_scope(self, server) -> None:
        response = await server.token(self._request(scope="system/Patient.read"))
        assert response.scope == "system/Patient.read"

    @pytest.mark.asyncio
    async def test_unpermitted_scope(self, server) -> None:
        await _assert_oauth_error(
            server.token(self._request(scope="system/*.write")), OAuthErrorCode.INVALID_SCOPE
        )

    @pytest.mark.asyncio
    async def test_secret_required(self, server) -> None:
        await _assert_oauth_error(
            server.token(self._request(client_secret=None)), OAuthErrorCode.INVALID_REQUEST
        )

    @pytest.mark.asyncio
    async def test_wrong_secret(self, server) -> None:
        await _assert_oauth_error(
            server.token(self._request(client_secret="guess")), OAuthErrorCode.INVALID_CLIENT
        )

    @pytest.mark.asyncio
    async def test_public_client_refused(self, server, user_store) -> None:
        user_store.add_client(
            OAuthClient(
                client_id="public-backend",
                grant_types=["client_credentials"],
                scopes=["system/*.read"],
                is_confidential=False,
            )
        )
        await _assert_oauth_error(
            server.token(
                self._request(client_id="public-backend", client_secret="any-string-at-all")
            ),
            OAuthErrorCode.UNAUTHORIZED_CLIENT,
        )

    @pytest.mark.asyncio
    async def test_grant_type_not_registered(self, server) -> None:
        await _assert_oauth_error(
            server.token(self._request(client_id="interactive-only")),
            OAuthErrorCode.UNAUTHORIZED_CLIENT,
        )


class TestUnsupportedGrant:
    @pytest.mark.asyncio
    async def test_password_grant(self, server) -> None:
        await _assert_oauth_error(
            server.token(TokenRequest(grant_type="password")),
            OAuthErrorCode.UNSUPPORTED_GRANT_TYPE,
        )


# ── introspect / revoke ──


class TestIntrospectAndRevoke:
    @pytest.mark.asyncio
    async def test_active_token(self, server) -> None:
        code, verifier = await _issue_code(server)
        response = await server.token(_code_request(code, verifier))
        info = await server.introspect(response.access_token)
        assert info.active is True
        assert info.scope == response.scope
        assert info.client_id == "public-app"
        assert info.username == "dr.smith"
        assert info.sub == "user-1"
        assert info.iss == ISSUER
        assert info.aud == ISSUER
        assert info.exp - info.iat == 3600

    @pytest.mark.asyncio
    async def test_empty_and_unknown(self, server) -> None:
        assert (await server.introspect("")).active is False
        assert (await server.introspect("garbage")).active is False
        assert (await server.introspect("garbage")).to_dict() == {"active": False}

    @pytest.mark.asyncio
    async def test_revoked_token_inactive(self, server) -> None:
        code, verifier = await _issue_code(server)
        response = await server.token(_code_request(code, verifier))
        await server.revoke(response.access_token)
        assert (await server.introspect(response.access_token)).active is False

    @pytest.mark.asyncio
    async def test_expired_token_inactive(self, server, clock: FakeClock) -> None:
        code, verifier = await _issue_code(server)
        response = await server.token(_code_request(code, verifier))
        clock.advance(seconds=3601)
        assert (await server.introspect(response.access_token)).active is False

    @pytest.mark.asyncio
    async def test_unpersisted_jwt_falls_back_to_signature(
        self, settings, user_store, clock
    ) -> None:
        issuing = AuthorizationServer(settings, InMemoryTokenStore(), user_store, clock=clock)
        response = await issuing.token(
            TokenRequest(
                grant_type="client_credentials",
                client_id="backend-service",
                client_secret=BACKEND_SECRET,
            )
        )
        verifying = AuthorizationServer(settings, InMemoryTokenStore(), user_store, clock=clock)
        info = await verifying.introspect(response.access_token)
        assert info.active is True
        assert info.client_id == "backend-service"
        assert info.iss == ISSUER

    @pytest.mark.asyncio
    async def test_revoke_unknown_is_noop(self, server) -> None:
        await server.revoke("never-issued")

    @pytest.mark.asyncio
    async def test_revoke_requires_token(self, server) -> None:
        await _assert_oauth_error(server.revoke(""), OAuthErrorCode.INVALID_REQUEST)


class TestServerConfiguration:
    def test_smart_configuration_uses_issuer(self, server) -> None:
        config = server.smart_configuration()
        assert config.issuer == ISSUER
        assert config.token_endpoint == f"{ISSUER}/auth/token"

    def test_validate_scopes_returns_requested(self, server) -> None:
        assert server.validate_scopes(["openid"], ["openid", "launch"]) == ["openid"]
