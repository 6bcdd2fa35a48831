"""SMART App Launch v2 scope parsing, validation and enforcement.

Resource scopes follow ``context/ResourceType.interaction`` where context is
one of patient, user or system. Special scopes (launch, openid, fhirUser,
offline_access, ...) carry no resource access and parse to ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from ehr_auth.common.constants import (
    FHIR_RESOURCE_TYPES,
    SCOPE_CONTEXTS,
    SPECIAL_SCOPES,
    VALID_INTERACTIONS,
)

_RESOURCE_SCOPE_RE = re.compile(
    r"^(" + "|".join(sorted(SCOPE_CONTEXTS)) + r")/([A-Za-z*]+)\.([a-z*]+)$"
)

_FULL_ACCESS: tuple[str, ...] = ("create", "read", "update", "delete", "search")

_EXPANSIONS: dict[str, tuple[str, ...]] = {
    "cruds": _FULL_ACCESS,
    "*": _FULL_ACCESS,
    "read": ("read", "search"),
    "write": ("create", "update", "delete"),
}


class ScopeError(ValueError):
    """Base class for malformed SMART scopes."""


class InvalidScopeFormat(ScopeError):
    """Scope does not match ``context/ResourceType.interaction``."""


class UnknownResourceType(ScopeError):
    """Scope names a resource type outside the FHIR allow-list."""


class InvalidInteraction(ScopeError):
    """Scope names an unsupported interaction."""


@dataclass(frozen=True)
class ParsedSMARTScope:
    """A resource scope broken into its components."""

    context: str  # "patient", "user" or "system"
    resource_type: str
    interactions: tuple[str, ...]
    raw: str

    def matches_resource(self, resource_type: str) -> bool:
        return self.resource_type == "*" or self.resource_type == resource_type

    def allows(self, resource_type: str, action: str) -> bool:
        return self.matches_resource(resource_type) and action in self.interactions


@dataclass(frozen=True)
class ScopeValidationResult:
    """Outcome of validating a space-delimited scope string."""

    valid: bool
    errors: tuple[str, ...] = ()


def split_scopes(scope_string: str | None) -> list[str]:
    """Split a space-delimited scope parameter, dropping empty entries."""
    return (scope_string or "").split()


class ScopeValidator:
    """Stateless SMART v2 scope validator.

    Every check re-parses its input; nothing is cached between calls.
    """

    @staticmethod
    def expand_interactions(interaction: str) -> tuple[str, ...]:
        """Expand shorthand interactions (cruds, *, read, write)."""
        return _EXPANSIONS.get(interaction, (interaction,))

    @staticmethod
    def parse_scope(scope: str) -> ParsedSMARTScope | None:
        """Parse a single scope.

        Returns:
            The parsed resource scope, or None for special scopes.

        Raises:
            InvalidScopeFormat: empty input or grammar mismatch.
            UnknownResourceType: resource type outside the allow-list.
            InvalidInteraction: interaction outside the supported set.
        """
        if not scope or not isinstance(scope, str) or not scope.strip():
            raise InvalidScopeFormat("Scope must be a non-empty string")

        trimmed = scope.strip()
        if trimmed in SPECIAL_SCOPES:
            return None

        match = _RESOURCE_SCOPE_RE.match(trimmed)
        if match is None:
            raise InvalidScopeFormat(
                f'Invalid SMART scope format: "{scope}". '
                "Expected format: context/ResourceType.interaction"
            )

        context, resource_type, interaction = match.groups()

        if resource_type not in FHIR_RESOURCE_TYPES:
            raise UnknownResourceType(
                f'Unknown FHIR resource type in scope: "{resource_type}"'
            )

        if interaction not in VALID_INTERACTIONS:
            raise InvalidInteraction(
                f'Invalid interaction in scope: "{interaction}". '
                f"Valid interactions: {', '.join(sorted(VALID_INTERACTIONS))}"
            )

        return ParsedSMARTScope(
            context=context,
            resource_type=resource_type,
            interactions=ScopeValidator.expand_interactions(interaction),
            raw=trimmed,
        )

    @staticmethod
    def is_valid_scope(scope: str) -> bool:
        """Check a single scope without raising."""
        try:
            ScopeValidator.parse_scope(scope)
        except ScopeError:
            return False
        return True

    @staticmethod
    def validate_scope_access(
        scopes: Iterable[str], resource_type: str, action: str
    ) -> bool:
        """Check whether any granted scope permits ``action`` on ``resource_type``.

        Unparseable and special scopes are skipped.
        """
        if not resource_type or not action:
            return False

        for scope in scopes or ():
            try:
                parsed = ScopeValidator.parse_scope(scope)
            except ScopeError:
                continue
            if parsed is not None and parsed.allows(resource_type, action):
                return True
        return False

    @staticmethod
    def validate_scope_string(scope_string: str) -> ScopeValidationResult:
        """Validate every scope in a space-delimited string, collecting all errors."""
        if not scope_string or not isinstance(scope_string, str) or not scope_string.strip():
            return ScopeValidationResult(
                valid=False, errors=("Scope string must be a non-empty string",)
            )

        errors = [
            f'Invalid scope: "{scope}"'
            for scope in split_scopes(scope_string)
            if not ScopeValidator.is_valid_scope(scope)
        ]
        return ScopeValidationResult(valid=not errors, errors=tuple(errors))

    @staticmethod
    def filter_resource(
        resource: dict[str, Any], scopes: Iterable[str]
    ) -> dict[str, Any] | None:
        """Return a shallow copy of ``resource`` if the scopes grant read or search on it."""
        if not isinstance(resource, dict):
            return None

        resource_type = resource.get("resourceType")
        if not resource_type:
            return None

        scopes = list(scopes or ())
        if not (
            ScopeValidator.validate_scope_access(scopes, resource_type, "read")
            or ScopeValidator.validate_scope_access(scopes, resource_type, "search")
        ):
            return None
        return dict(resource)


__all__ = [
    "ScopeError",
    "InvalidScopeFormat",
    "UnknownResourceType",
    "InvalidInteraction",
    "ParsedSMARTScope",
    "ScopeValidationResult",
    "ScopeValidator",
    "split_scopes",
]
