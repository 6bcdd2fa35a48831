"""Persistence interface for emergency access grants."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Protocol, runtime_checkable

from ehr_auth.rbac.models import EmergencyAccessGrant


@runtime_checkable
class EmergencyAccessStore(Protocol):
    async def save_grant(self, grant: EmergencyAccessGrant) -> None: ...

    async def get_grant(self, grant_id: str) -> EmergencyAccessGrant | None: ...

    async def get_active_grants_for_user(self, user_id: str) -> list[EmergencyAccessGrant]:
        """Grants for ``user_id`` that are not revoked.

        Callers still check ``expires_at``; stores are not required to filter by time.
        """
        ...

    async def revoke_grant(
        self, grant_id: str, revoked_by: str, revoked_at: datetime
    ) -> None: ...


class InMemoryEmergencyAccessStore:
    """Process-local ``EmergencyAccessStore``."""

    def __init__(self) -> None:
        self._grants: dict[str, EmergencyAccessGrant] = {}
        self._lock = asyncio.Lock()

    async def save_grant(self, grant: EmergencyAccessGrant) -> None:
        self._grants[grant.id] = grant.model_copy()

    async def get_grant(self, grant_id: str) -> EmergencyAccessGrant | None:
        grant = self._grants.get(grant_id)
        return grant.model_copy() if grant is not None else None

    async def get_active_grants_for_user(self, user_id: str) -> list[EmergencyAccessGrant]:
        return [
            g.model_copy()
            for g in self._grants.values()
            if g.user_id == user_id and not g.revoked
        ]

    async def revoke_grant(
        self, grant_id: str, revoked_by: str, revoked_at: datetime
    ) -> None:
        async with self._lock:
            grant = self._grants.get(grant_id)
            if grant is not None:
                self._grants[grant_id] = grant.model_copy(
                    update={"revoked": True, "revoked_at": revoked_at, "revoked_by": revoked_by}
                )


__all__ = ["EmergencyAccessStore", "InMemoryEmergencyAccessStore"]
