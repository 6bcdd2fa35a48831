"""Role-based access control models and the static permission matrix."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, Field


class Role(StrEnum):
    """User roles for role-based access control."""

    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    ADMIN = "ADMIN"
    PHYSICIAN = "PHYSICIAN"
    NURSE = "NURSE"
    MEDICAL_ASSISTANT = "MEDICAL_ASSISTANT"
    FRONT_DESK = "FRONT_DESK"
    BILLING = "BILLING"
    PATIENT = "PATIENT"


class Action(StrEnum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    SEARCH = "search"
    MANAGE = "manage"


class Resource(StrEnum):
    """Resource categories used in the permission matrix."""

    # Clinical
    PATIENT = "Patient"
    ENCOUNTER = "Encounter"
    CONDITION = "Condition"
    OBSERVATION = "Observation"
    PROCEDURE = "Procedure"
    MEDICATION_REQUEST = "MedicationRequest"
    MEDICATION_ADMINISTRATION = "MedicationAdministration"
    ALLERGY_INTOLERANCE = "AllergyIntolerance"
    IMMUNIZATION = "Immunization"
    DIAGNOSTIC_REPORT = "DiagnosticReport"
    DOCUMENT_REFERENCE = "DocumentReference"
    CARE_PLAN = "CarePlan"
    CARE_TEAM = "CareTeam"
    GOAL = "Goal"
    CLINICAL_NOTE = "ClinicalNote"
    DEVICE = "Device"

    # Administrative
    PRACTITIONER = "Practitioner"
    ORGANIZATION = "Organization"
    LOCATION = "Location"
    SCHEDULE = "Schedule"
    APPOINTMENT = "Appointment"
    SLOT = "Slot"

    # Billing
    COVERAGE = "Coverage"
    CLAIM = "Claim"
    CLAIM_RESPONSE = "ClaimResponse"
    EXPLANATION_OF_BENEFIT = "ExplanationOfBenefit"
    INVOICE = "Invoice"

    # System
    AUDIT_EVENT = "AuditEvent"
    CONSENT = "Consent"
    PROVENANCE = "Provenance"
    SYSTEM_CONFIG = "SystemConfig"
    USER_ACCOUNT = "UserAccount"

    # Communication
    COMMUNICATION = "Communication"
    MESSAGE = "Message"


class ConditionType(StrEnum):
    OWN_DATA = "own_data"
    DEPARTMENT = "department"
    CARE_TEAM = "care_team"
    ASSIGNED = "assigned"


WILDCARD_RESOURCE = "*"


@dataclass(frozen=True)
class PermissionCondition:
    """Row-level restriction for callers to apply (e.g. own_data)."""

    type: ConditionType
    value: str | None = None


@dataclass(frozen=True)
class Permission:
    """A grant of actions on one resource, optionally conditioned."""

    resource: str
    actions: frozenset[Action]
    conditions: tuple[PermissionCondition, ...] = ()

    def matches(self, resource: str, action: str) -> bool:
        return (
            self.resource == WILDCARD_RESOURCE or self.resource == resource
        ) and action in self.actions


class EmergencyAccessGrant(BaseModel):
    """A time-boxed break-the-glass grant for one patient's record."""

    id: str
    user_id: str
    patient_id: str
    reason: str
    granted_at: datetime
    expires_at: datetime
    revoked: bool = False
    revoked_at: datetime | None = None
    revoked_by: str | None = Field(default=None, description="User ID of the revoker")

    def is_active(self, now: datetime) -> bool:
        return not self.revoked and self.expires_at > now


# --- Permission matrix ---

ALL_ACTIONS = frozenset(Action)
CRUD = frozenset({Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.SEARCH})
READ_ONLY = frozenset({Action.READ, Action.SEARCH})
READ_UPDATE = frozenset({Action.READ, Action.UPDATE, Action.SEARCH})
CREATE_READ = frozenset({Action.CREATE, Action.READ, Action.SEARCH})
CREATE_READ_UPDATE = frozenset({Action.CREATE, Action.READ, Action.UPDATE, Action.SEARCH})

_OWN_DATA = (PermissionCondition(ConditionType.OWN_DATA),)


def _grants(actions: frozenset[Action], *resources: Resource) -> list[Permission]:
    return [Permission(resource=r, actions=actions) for r in resources]


def _own(actions: frozenset[Action], *resources: Resource) -> list[Permission]:
    return [Permission(resource=r, actions=actions, conditions=_OWN_DATA) for r in resources]


_R = Resource

ROLE_PERMISSIONS: Mapping[Role, tuple[Permission, ...]] = MappingProxyType({
    # Full access including system configuration
    Role.SYSTEM_ADMIN: (
        Permission(resource=WILDCARD_RESOURCE, actions=ALL_ACTIONS),
    ),
    # Full access except system configuration
    Role.ADMIN: tuple(
        _grants(
            ALL_ACTIONS,
            _R.PATIENT, _R.ENCOUNTER, _R.CONDITION, _R.OBSERVATION, _R.PROCEDURE,
            _R.MEDICATION_REQUEST, _R.MEDICATION_ADMINISTRATION, _R.ALLERGY_INTOLERANCE,
            _R.IMMUNIZATION, _R.DIAGNOSTIC_REPORT, _R.DOCUMENT_REFERENCE, _R.CARE_PLAN,
            _R.CARE_TEAM, _R.GOAL, _R.CLINICAL_NOTE, _R.PRACTITIONER, _R.ORGANIZATION,
            _R.LOCATION, _R.SCHEDULE, _R.APPOINTMENT, _R.SLOT, _R.COVERAGE, _R.CLAIM,
            _R.CLAIM_RESPONSE, _R.EXPLANATION_OF_BENEFIT, _R.INVOICE,
        )
        + _grants(READ_ONLY, _R.AUDIT_EVENT)
        + _grants(ALL_ACTIONS, _R.CONSENT)
        + _grants(READ_ONLY, _R.PROVENANCE)
        + _grants(ALL_ACTIONS, _R.USER_ACCOUNT, _R.COMMUNICATION, _R.MESSAGE)
    ),
    # Full clinical CRUD, read-only administrative data
    Role.PHYSICIAN: tuple(
        _grants(
            CRUD,
            _R.PATIENT, _R.ENCOUNTER, _R.CONDITION, _R.OBSERVATION, _R.PROCEDURE,
            _R.MEDICATION_REQUEST, _R.MEDICATION_ADMINISTRATION, _R.ALLERGY_INTOLERANCE,
            _R.IMMUNIZATION, _R.DIAGNOSTIC_REPORT, _R.DOCUMENT_REFERENCE, _R.CARE_PLAN,
            _R.CARE_TEAM, _R.GOAL, _R.CLINICAL_NOTE, _R.DEVICE,
        )
        + _grants(READ_ONLY, _R.PRACTITIONER, _R.ORGANIZATION, _R.LOCATION, _R.SCHEDULE)
        + _grants(CRUD, _R.APPOINTMENT)
        + _grants(READ_ONLY, _R.SLOT, _R.COVERAGE)
        + _grants(CRUD, _R.CONSENT, _R.COMMUNICATION, _R.MESSAGE)
    ),
    Role.NURSE: tuple(
        _grants(READ_UPDATE, _R.PATIENT, _R.ENCOUNTER)
        + _grants(READ_ONLY, _R.CONDITION)
        + _grants(CREATE_READ_UPDATE, _R.OBSERVATION)
        + _grants(READ_ONLY, _R.PROCEDURE, _R.MEDICATION_REQUEST)
        + _grants(CREATE_READ_UPDATE, _R.MEDICATION_ADMINISTRATION)
        + _grants(READ_UPDATE, _R.ALLERGY_INTOLERANCE)
        + _grants(CREATE_READ_UPDATE, _R.IMMUNIZATION)
        + _grants(READ_ONLY, _R.DIAGNOSTIC_REPORT)
        + _grants(CREATE_READ, _R.DOCUMENT_REFERENCE)
        + _grants(READ_UPDATE, _R.CARE_PLAN)
        + _grants(READ_ONLY, _R.CARE_TEAM)
        + _grants(READ_UPDATE, _R.GOAL)
        + _grants(CREATE_READ_UPDATE, _R.CLINICAL_NOTE)
        + _grants(READ_ONLY, _R.PRACTITIONER, _R.LOCATION, _R.SCHEDULE)
        + _grants(READ_UPDATE, _R.APPOINTMENT)
        + _grants(READ_ONLY, _R.CONSENT)
        + _grants(CRUD, _R.COMMUNICATION, _R.MESSAGE)
    ),
    # Vitals, demographics and scheduling
    Role.MEDICAL_ASSISTANT: tuple(
        _grants(READ_UPDATE, _R.PATIENT)
        + _grants(CREATE_READ, _R.ENCOUNTER)
        + _grants(CREATE_READ_UPDATE, _R.OBSERVATION)
        + _grants(READ_ONLY, _R.ALLERGY_INTOLERANCE)
        + _grants(CREATE_READ, _R.IMMUNIZATION)
        + _grants(READ_ONLY, _R.MEDICATION_REQUEST, _R.DIAGNOSTIC_REPORT)
        + _grants(CREATE_READ, _R.DOCUMENT_REFERENCE, _R.CLINICAL_NOTE)
        + _grants(READ_ONLY, _R.PRACTITIONER, _R.LOCATION)
        + _grants(CRUD, _R.SCHEDULE, _R.APPOINTMENT, _R.SLOT)
        + _grants(CREATE_READ, _R.COMMUNICATION, _R.MESSAGE)
    ),
    # Scheduling, demographics, insurance, check-in
    Role.FRONT_DESK: tuple(
        _grants(CREATE_READ_UPDATE, _R.PATIENT)
        + _grants(CREATE_READ, _R.ENCOUNTER)
        + _grants(CRUD, _R.COVERAGE)
        + _grants(READ_ONLY, _R.PRACTITIONER, _R.ORGANIZATION, _R.LOCATION)
        + _grants(CRUD, _R.SCHEDULE, _R.APPOINTMENT, _R.SLOT)
        + _grants(CREATE_READ, _R.COMMUNICATION, _R.MESSAGE)
    ),
    # Read clinical, full billing
    Role.BILLING: tuple(
        _grants(
            READ_ONLY,
            _R.PATIENT, _R.ENCOUNTER, _R.CONDITION, _R.PROCEDURE,
            _R.MEDICATION_REQUEST, _R.DIAGNOSTIC_REPORT,
        )
        + _grants(
            CRUD,
            _R.COVERAGE, _R.CLAIM, _R.CLAIM_RESPONSE, _R.EXPLANATION_OF_BENEFIT, _R.INVOICE,
        )
        + _grants(READ_ONLY, _R.PRACTITIONER, _R.ORGANIZATION)
        + _grants(CREATE_READ, _R.COMMUNICATION, _R.MESSAGE)
    ),
    # Own data only
    Role.PATIENT: tuple(
        _own(
            READ_ONLY,
            _R.PATIENT, _R.ENCOUNTER, _R.CONDITION, _R.OBSERVATION, _R.PROCEDURE,
            _R.MEDICATION_REQUEST, _R.ALLERGY_INTOLERANCE, _R.IMMUNIZATION,
            _R.DIAGNOSTIC_REPORT, _R.DOCUMENT_REFERENCE, _R.CARE_PLAN, _R.GOAL,
            _R.COVERAGE,
        )
        + _own(CREATE_READ, _R.APPOINTMENT)
        + _own(CREATE_READ_UPDATE, _R.CONSENT)
        + _own(CREATE_READ, _R.MESSAGE, _R.COMMUNICATION)
    ),
})


__all__ = [
    "Role",
    "Action",
    "Resource",
    "ConditionType",
    "WILDCARD_RESOURCE",
    "PermissionCondition",
    "Permission",
    "EmergencyAccessGrant",
    "ALL_ACTIONS",
    "CRUD",
    "READ_ONLY",
    "READ_UPDATE",
    "CREATE_READ",
    "CREATE_READ_UPDATE",
    "ROLE_PERMISSIONS",
]
