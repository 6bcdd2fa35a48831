"""Role-based access control and break-the-glass emergency access."""

from ehr_auth.rbac.audit import AuditLogger, LoggingAuditLogger, NullAuditLogger
from ehr_auth.rbac.engine import AccessDeniedError, EmergencyAccessError, PermissionEngine
from ehr_auth.rbac.models import (
    ROLE_PERMISSIONS,
    Action,
    EmergencyAccessGrant,
    Permission,
    PermissionCondition,
    Resource,
    Role,
)
from ehr_auth.rbac.stores import EmergencyAccessStore, InMemoryEmergencyAccessStore

__all__ = [
    "PermissionEngine",
    "AccessDeniedError",
    "EmergencyAccessError",
    "Role",
    "Resource",
    "Action",
    "Permission",
    "PermissionCondition",
    "EmergencyAccessGrant",
    "ROLE_PERMISSIONS",
    "AuditLogger",
    "NullAuditLogger",
    "LoggingAuditLogger",
    "EmergencyAccessStore",
    "InMemoryEmergencyAccessStore",
]
