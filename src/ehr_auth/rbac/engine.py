"""Role-based access control enforcement with break-the-glass overrides.

Standard decisions come from the static ``ROLE_PERMISSIONS`` matrix. An
emergency grant can additionally authorize reads of one patient's record for
a fixed window; it never authorizes writes.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from ehr_auth.common.constants import (
    EMERGENCY_ACCESS_DURATION_MINUTES,
    MIN_EMERGENCY_REASON_LENGTH,
)
from ehr_auth.rbac.audit import AuditLogger, NullAuditLogger
from ehr_auth.rbac.models import (
    ROLE_PERMISSIONS,
    Action,
    ConditionType,
    EmergencyAccessGrant,
    Permission,
    PermissionCondition,
)
from ehr_auth.rbac.stores import EmergencyAccessStore

logger = logging.getLogger(__name__)

# Emergency grants only ever widen read access
EMERGENCY_ACTIONS: frozenset[str] = frozenset({Action.READ, Action.SEARCH})


class AccessDeniedError(Exception):
    """Raised when a user lacks the required permission."""

    def __init__(self, user_id: str, role: str, resource: str, action: str) -> None:
        self.user_id = user_id
        self.role = role
        self.resource = resource
        self.action = action
        super().__init__(
            f"Access denied: user={user_id} role={role} "
            f"lacks {action} on {resource}"
        )


class EmergencyAccessError(ValueError):
    """Invalid emergency access request or revocation."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PermissionEngine:
    """Evaluate RBAC permissions and manage emergency access grants."""

    def __init__(
        self,
        emergency_store: EmergencyAccessStore,
        audit_logger: AuditLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._emergency_store = emergency_store
        self._audit = audit_logger or NullAuditLogger()
        self._clock = clock or _utcnow

    # --- Static RBAC ---

    @staticmethod
    def check_permission(role: str, resource: str, action: str) -> bool:
        """Check the role matrix. Unknown roles are denied."""
        return any(p.matches(resource, action) for p in ROLE_PERMISSIONS.get(role, ()))

    @staticmethod
    def get_permissions(role: str) -> list[Permission]:
        """All permissions for a role, or an empty list if the role is unknown."""
        return list(ROLE_PERMISSIONS.get(role, ()))

    @staticmethod
    def get_conditions(role: str, resource: str, action: str) -> list[PermissionCondition]:
        """Conditions of the first matching permission, for row-level filtering."""
        for permission in ROLE_PERMISSIONS.get(role, ()):
            if permission.matches(resource, action):
                return list(permission.conditions)
        return []

    # --- Emergency access ---

    async def grant_emergency_access(
        self, user_id: str, reason: str, patient_id: str
    ) -> EmergencyAccessGrant:
        """Grant break-the-glass read access to one patient's record.

        Raises:
            EmergencyAccessError: missing user/patient or a justification
                shorter than the required minimum.
        """
        if not user_id:
            raise EmergencyAccessError("user_id is required")
        if not reason or not reason.strip():
            raise EmergencyAccessError("reason is required for emergency access")
        if len(reason.strip()) < MIN_EMERGENCY_REASON_LENGTH:
            raise EmergencyAccessError(
                "Emergency access reason must be at least "
                f"{MIN_EMERGENCY_REASON_LENGTH} characters"
            )
        if not patient_id:
            raise EmergencyAccessError("patient_id is required")

        now = self._clock()
        grant = EmergencyAccessGrant(
            id=str(uuid.uuid4()),
            user_id=user_id,
            patient_id=patient_id,
            reason=reason.strip(),
            granted_at=now,
            expires_at=now + timedelta(minutes=EMERGENCY_ACCESS_DURATION_MINUTES),
        )

        await self._emergency_store.save_grant(grant)
        await self._audit.log_emergency_access(grant)

        logger.warning(
            "Emergency access granted: grant=%s user=%s until=%s",
            grant.id, user_id, grant.expires_at.isoformat(),
        )
        return grant

    async def revoke_emergency_access(self, grant_id: str, revoked_by: str = "system") -> None:
        """Revoke a grant once.

        Raises:
            EmergencyAccessError: unknown grant or already revoked.
        """
        if not grant_id:
            raise EmergencyAccessError("grant_id is required")

        grant = await self._emergency_store.get_grant(grant_id)
        if grant is None:
            raise EmergencyAccessError(f"Emergency access grant not found: {grant_id}")
        if grant.revoked:
            raise EmergencyAccessError(f"Emergency access grant is already revoked: {grant_id}")

        await self._emergency_store.revoke_grant(grant_id, revoked_by, self._clock())
        await self._audit.log_emergency_revocation(grant_id, revoked_by)
        logger.info("Emergency access revoked: grant=%s by=%s", grant_id, revoked_by)

    async def has_emergency_access(self, user_id: str) -> bool:
        """True if the user holds at least one unexpired, unrevoked grant."""
        if not user_id:
            return False
        grants = await self._emergency_store.get_active_grants_for_user(user_id)
        now = self._clock()
        return any(g.is_active(now) for g in grants)

    # --- Composed check ---

    async def check_access(
        self,
        user_id: str,
        role: str,
        resource: str,
        action: str,
        patient_id: str | None = None,
        *,
        own_patient_id: str | None = None,
    ) -> bool:
        """Decide a request using RBAC, then emergency grants for reads.

        Conditions stay advisory unless ``own_patient_id`` is given: then an
        ``own_data`` permission only covers ``patient_id == own_patient_id``.
        Request middleware must pass ``own_patient_id`` for users bound to a
        patient record (the PATIENT role). Without it a patient is allowed to
        read any patient's data that the role matrix covers.
        Exactly one permission-check audit event is written per call.
        """
        allowed = self._rbac_allows(role, resource, action, patient_id, own_patient_id)

        if not allowed and patient_id and action in EMERGENCY_ACTIONS:
            grants = await self._emergency_store.get_active_grants_for_user(user_id)
            now = self._clock()
            allowed = any(g.patient_id == patient_id and g.is_active(now) for g in grants)
            if allowed:
                logger.info(
                    "Access allowed by emergency grant: user=%s resource=%s action=%s",
                    user_id, resource, action,
                )

        await self._audit.log_permission_check(user_id, role, resource, action, allowed)
        return allowed

    @staticmethod
    def _rbac_allows(
        role: str,
        resource: str,
        action: str,
        patient_id: str | None,
        own_patient_id: str | None,
    ) -> bool:
        for permission in ROLE_PERMISSIONS.get(role, ()):
            if not permission.matches(resource, action):
                continue
            if (
                own_patient_id is not None
                and patient_id
                and patient_id != own_patient_id
                and any(c.type == ConditionType.OWN_DATA for c in permission.conditions)
            ):
                continue
            return True
        return False

    async def require_access(
        self,
        user_id: str,
        role: str,
        resource: str,
        action: str,
        patient_id: str | None = None,
        *,
        own_patient_id: str | None = None,
    ) -> None:
        """Like ``check_access`` but raise ``AccessDeniedError`` on deny."""
        if not await self.check_access(
            user_id, role, resource, action, patient_id, own_patient_id=own_patient_id
        ):
            raise AccessDeniedError(
                user_id=user_id, role=role, resource=resource, action=action
            )


__all__ = [
    "PermissionEngine",
    "AccessDeniedError",
    "EmergencyAccessError",
    "EMERGENCY_ACTIONS",
]
