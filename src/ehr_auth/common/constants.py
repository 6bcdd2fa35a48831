"""Constants for SMART scopes, token lifetimes and emergency access."""

from typing import Final

# --- Token lifetimes (seconds) ---

DEFAULT_ACCESS_TOKEN_TTL: Final[int] = 3600
DEFAULT_REFRESH_TOKEN_TTL: Final[int] = 86400
DEFAULT_AUTH_CODE_TTL: Final[int] = 600
DEFAULT_ID_TOKEN_TTL: Final[int] = 3600

# 32 random bytes = 256 bits of entropy
AUTH_CODE_BYTES: Final[int] = 32
REFRESH_TOKEN_BYTES: Final[int] = 32

PKCE_METHOD_S256: Final[str] = "S256"

# --- Emergency ("break-the-glass") access ---

EMERGENCY_ACCESS_DURATION_MINUTES: Final[int] = 60
MIN_EMERGENCY_REASON_LENGTH: Final[int] = 10

# --- SMART on FHIR scope grammar ---

SCOPE_CONTEXTS: Final[frozenset[str]] = frozenset({"patient", "user", "system"})

FHIR_RESOURCE_TYPES: Final[frozenset[str]] = frozenset({
    "Patient", "Practitioner", "PractitionerRole", "Organization",
    "Encounter", "Condition", "Observation", "Procedure",
    "MedicationRequest", "MedicationAdministration", "MedicationDispense", "Medication",
    "AllergyIntolerance", "Immunization", "DiagnosticReport",
    "DocumentReference", "CarePlan", "CareTeam", "Goal",
    "ServiceRequest", "Coverage", "Claim", "ClaimResponse",
    "ExplanationOfBenefit", "Appointment", "Schedule", "Slot",
    "Location", "Device", "Consent", "Provenance",
    "AuditEvent", "Communication", "QuestionnaireResponse", "Questionnaire",
    "RelatedPerson", "Person", "Group", "Bundle",
    "OperationOutcome", "Binary", "Composition",
    "*",
})

# "cruds" and "*" are shorthands for the full interaction set
VALID_INTERACTIONS: Final[frozenset[str]] = frozenset({
    "read", "write", "create", "update", "delete", "search", "cruds", "*",
})

SPECIAL_SCOPES: Final[frozenset[str]] = frozenset({
    "launch",
    "launch/patient",
    "launch/encounter",
    "openid",
    "fhirUser",
    "profile",
    "offline_access",
    "online_access",
})

_PATIENT_SCOPE_RESOURCES: Final[tuple[str, ...]] = (
    "*", "Patient", "Observation", "Condition", "MedicationRequest",
    "AllergyIntolerance", "Immunization", "Procedure", "Encounter",
    "DiagnosticReport", "DocumentReference", "CarePlan", "CareTeam",
    "Goal", "Coverage",
)

_USER_SCOPE_RESOURCES: Final[tuple[str, ...]] = (
    "*", "Patient", "Practitioner", "Organization", "Observation",
    "Condition", "MedicationRequest", "Encounter", "AllergyIntolerance",
    "Immunization", "Procedure", "DiagnosticReport", "DocumentReference",
    "CarePlan", "CareTeam", "Appointment",
)


def _resource_scopes(
    context: str,
    resources: tuple[str, ...],
    interactions: tuple[str, ...] = ("read", "write", "cruds"),
) -> list[str]:
    return [f"{context}/{r}.{i}" for r in resources for i in interactions]


# Advertised in the SMART discovery document
SMART_SCOPES: Final[tuple[str, ...]] = tuple(
    [
        "launch", "launch/patient", "launch/encounter",
        "openid", "fhirUser", "profile",
        "offline_access", "online_access",
    ]
    + _resource_scopes("patient", _PATIENT_SCOPE_RESOURCES)
    + _resource_scopes("user", _USER_SCOPE_RESOURCES)
    + _resource_scopes("user", ("Schedule",), ("read", "write"))
    + _resource_scopes("system", ("*",))
    + _resource_scopes("system", ("Patient", "Observation"), ("read", "write"))
)

__all__ = [
    "DEFAULT_ACCESS_TOKEN_TTL",
    "DEFAULT_REFRESH_TOKEN_TTL",
    "DEFAULT_AUTH_CODE_TTL",
    "DEFAULT_ID_TOKEN_TTL",
    "AUTH_CODE_BYTES",
    "REFRESH_TOKEN_BYTES",
    "PKCE_METHOD_S256",
    "EMERGENCY_ACCESS_DURATION_MINUTES",
    "MIN_EMERGENCY_REASON_LENGTH",
    "SCOPE_CONTEXTS",
    "FHIR_RESOURCE_TYPES",
    "VALID_INTERACTIONS",
    "SPECIAL_SCOPES",
    "SMART_SCOPES",
]
