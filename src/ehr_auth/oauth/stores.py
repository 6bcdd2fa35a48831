"""Persistence interfaces for the authorization server.

The server holds no state of its own. Atomicity of code redemption and refresh
rotation is the store's responsibility; the in-memory stores here satisfy that
contract with an ``asyncio.Lock`` and are intended for tests and local runs.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from ehr_auth.oauth.models import (
    AuthorizationCode,
    LaunchContext,
    OAuthClient,
    OAuthUser,
    TokenRecord,
    TokenType,
)


@runtime_checkable
class TokenStore(Protocol):
    """Store for authorization codes and token records."""

    async def save_authorization_code(self, code: AuthorizationCode) -> None: ...

    async def get_authorization_code(self, code: str) -> AuthorizationCode | None: ...

    async def mark_authorization_code_used(self, code: str) -> bool:
        """Atomically flag a code as used.

        Returns False if the code is unknown or was already used.
        """
        ...

    async def save_token(self, record: TokenRecord) -> None: ...

    async def get_token(self, token: str) -> TokenRecord | None: ...

    async def revoke_token(self, token: str) -> None: ...

    async def revoke_all_tokens_for_user(self, user_id: str) -> None: ...

    async def get_token_by_refresh_token(self, refresh_token: str) -> TokenRecord | None: ...

    async def rotate_refresh_token(
        self, old_token: str, new_record: TokenRecord | None
    ) -> bool:
        """Atomically revoke ``old_token`` and save ``new_record``.

        ``new_record`` is None when the narrowed grant drops ``offline_access``;
        the old token is still consumed. Returns False (saving nothing) if
        ``old_token`` was already revoked.
        """
        ...


@runtime_checkable
class UserStore(Protocol):
    """Store for registered clients and users."""

    async def get_client(self, client_id: str) -> OAuthClient | None: ...

    async def get_user(self, user_id: str) -> OAuthUser | None: ...

    async def get_user_by_username(self, username: str) -> OAuthUser | None: ...

    async def resolve_launch_context(self, launch_token: str) -> LaunchContext | None: ...


class InMemoryTokenStore:
    """Process-local ``TokenStore``."""

    def __init__(self) -> None:
        self._codes: dict[str, AuthorizationCode] = {}
        self._tokens: dict[str, TokenRecord] = {}
        self._lock = asyncio.Lock()

    async def save_authorization_code(self, code: AuthorizationCode) -> None:
        self._codes[code.code] = code.model_copy()

    async def get_authorization_code(self, code: str) -> AuthorizationCode | None:
        stored = self._codes.get(code)
        return stored.model_copy() if stored is not None else None

    async def mark_authorization_code_used(self, code: str) -> bool:
        async with self._lock:
            stored = self._codes.get(code)
            if stored is None or stored.used:
                return False
            self._codes[code] = stored.model_copy(update={"used": True})
            return True

    async def save_token(self, record: TokenRecord) -> None:
        self._tokens[record.token] = record.model_copy()

    async def get_token(self, token: str) -> TokenRecord | None:
        stored = self._tokens.get(token)
        return stored.model_copy() if stored is not None else None

    async def revoke_token(self, token: str) -> None:
        async with self._lock:
            stored = self._tokens.get(token)
            if stored is not None:
                self._tokens[token] = stored.model_copy(update={"revoked": True})

    async def revoke_all_tokens_for_user(self, user_id: str) -> None:
        async with self._lock:
            for token, record in self._tokens.items():
                if record.user_id == user_id and not record.revoked:
                    self._tokens[token] = record.model_copy(update={"revoked": True})

    async def get_token_by_refresh_token(self, refresh_token: str) -> TokenRecord | None:
        stored = self._tokens.get(refresh_token)
        if stored is None or stored.token_type != TokenType.REFRESH:
            return None
        return stored.model_copy()

    async def rotate_refresh_token(
        self, old_token: str, new_record: TokenRecord | None
    ) -> bool:
        async with self._lock:
            old = self._tokens.get(old_token)
            if old is None or old.revoked:
                return False
            self._tokens[old_token] = old.model_copy(update={"revoked": True})
            if new_record is not None:
                self._tokens[new_record.token] = new_record.model_copy()
            return True


class InMemoryUserStore:
    """Process-local ``UserStore`` seeded from plain collections."""

    def __init__(
        self,
        clients: list[OAuthClient] | None = None,
        users: list[OAuthUser] | None = None,
        launch_contexts: dict[str, LaunchContext] | None = None,
    ) -> None:
        self._clients = {c.client_id: c for c in clients or []}
        self._users = {u.id: u for u in users or []}
        self._launch_contexts = dict(launch_contexts or {})

    def add_client(self, client: OAuthClient) -> None:
        self._clients[client.client_id] = client

    def add_user(self, user: OAuthUser) -> None:
        self._users[user.id] = user

    def add_launch_context(self, launch_token: str, context: LaunchContext) -> None:
        self._launch_contexts[launch_token] = context

    async def get_client(self, client_id: str) -> OAuthClient | None:
        return self._clients.get(client_id)

    async def get_user(self, user_id: str) -> OAuthUser | None:
        return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> OAuthUser | None:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    async def resolve_launch_context(self, launch_token: str) -> LaunchContext | None:
        return self._launch_contexts.get(launch_token)


__all__ = [
    "TokenStore",
    "UserStore",
    "InMemoryTokenStore",
    "InMemoryUserStore",
]
