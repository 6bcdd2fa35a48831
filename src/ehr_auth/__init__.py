"""OAuth 2.0 / SMART on FHIR authorization and RBAC for the EHR API."""

__version__ = "0.1.0"
