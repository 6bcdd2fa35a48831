"""Audit sinks for authorization decisions and emergency access.

The tamper-evident audit trail lives elsewhere; this module only defines the
interface the permission engine writes to, a null object, and a sink that
forwards events to the standard logging system.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from ehr_auth.rbac.models import EmergencyAccessGrant

AUDIT_LOGGER_NAME = "ehr_auth.audit"


@runtime_checkable
class AuditLogger(Protocol):
    """Receives every security-relevant RBAC event."""

    async def log_emergency_access(self, grant: EmergencyAccessGrant) -> None: ...

    async def log_emergency_revocation(self, grant_id: str, revoked_by: str) -> None: ...

    async def log_permission_check(
        self,
        user_id: str,
        role: str,
        resource: str,
        action: str,
        allowed: bool,
    ) -> None: ...


class NullAuditLogger:
    """Discards all events."""

    async def log_emergency_access(self, grant: EmergencyAccessGrant) -> None:
        return None

    async def log_emergency_revocation(self, grant_id: str, revoked_by: str) -> None:
        return None

    async def log_permission_check(
        self,
        user_id: str,
        role: str,
        resource: str,
        action: str,
        allowed: bool,
    ) -> None:
        return None


class LoggingAuditLogger:
    """Writes audit events to the ``ehr_auth.audit`` logger.

    Event fields are attached as ``extra`` so structured handlers can index
    them. Reasons are logged; patient identifiers are logged as given (callers
    pass opaque IDs, never demographics).
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    async def log_emergency_access(self, grant: EmergencyAccessGrant) -> None:
        self._logger.warning(
            "Emergency access granted: grant=%s user=%s patient=%s expires=%s",
            grant.id, grant.user_id, grant.patient_id, grant.expires_at.isoformat(),
            extra={
                "audit_event": "emergency_access",
                "grant_id": grant.id,
                "user_id": grant.user_id,
                "patient_id": grant.patient_id,
                "reason": grant.reason,
            },
        )

    async def log_emergency_revocation(self, grant_id: str, revoked_by: str) -> None:
        self._logger.info(
            "Emergency access revoked: grant=%s by=%s",
            grant_id, revoked_by,
            extra={
                "audit_event": "emergency_revocation",
                "grant_id": grant_id,
                "revoked_by": revoked_by,
            },
        )

    async def log_permission_check(
        self,
        user_id: str,
        role: str,
        resource: str,
        action: str,
        allowed: bool,
    ) -> None:
        self._logger.log(
            logging.INFO if allowed else logging.WARNING,
            "Permission check: user=%s role=%s resource=%s action=%s allowed=%s",
            user_id, role, resource, action, allowed,
            extra={
                "audit_event": "permission_check",
                "user_id": user_id,
                "role": role,
                "resource": resource,
                "action": action,
                "allowed": allowed,
            },
        )


__all__ = ["AUDIT_LOGGER_NAME", "AuditLogger", "NullAuditLogger", "LoggingAuditLogger"]
