"""
Error taxonomy for NAMASTE FHIR Gateway.

Every domain error carries the HTTP status, the FHIR OperationOutcome issue
code and a machine-readable error code, so the HTTP boundary can render it
without inspecting messages.
"""

from typing import Any, Dict, Optional


class NamasteServiceError(Exception):
    """Base class for all service errors surfaced to callers."""

    status_code: int = 500
    issue_code: str = "exception"
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.error_code, "message": self.message}


# Terminology errors
class ValidationFailed(NamasteServiceError):
    """Caller input is malformed."""
    status_code = 400
    issue_code = "invalid"
    error_code = "VALIDATION_FAILED"


class ConceptNotFound(NamasteServiceError):
    """Source concept does not exist (or is not active) in its code system."""
    status_code = 404
    issue_code = "not-found"
    error_code = "CONCEPT_NOT_FOUND"

    def __init__(self, code: str, system: str):
        super().__init__(
            f"Concept '{code}' not found in system '{system}'",
            {"code": code, "system": system}
        )
        self.code = code
        self.system = system


# Authentication errors
class AuthenticationError(NamasteServiceError):
    """Base class for token verification failures."""
    status_code = 401
    issue_code = "security"
    error_code = "ABHA_TOKEN_INVALID"


class TokenMalformed(AuthenticationError):
    error_code = "ABHA_TOKEN_MALFORMED"


class TokenExpired(AuthenticationError):
    error_code = "ABHA_TOKEN_EXPIRED"


class ClaimsInvalid(AuthenticationError):
    error_code = "ABHA_TOKEN_INVALID"


class KeyFetchFailed(NamasteServiceError):
    """Signing key could not be resolved for the token's key id."""
    status_code = 502
    issue_code = "exception"
    error_code = "ABHA_KEY_FETCH_FAILED"


class ServiceUnavailable(NamasteServiceError):
    """An upstream dependency timed out or refused the connection."""
    status_code = 503
    issue_code = "transient"
    error_code = "ABHA_SERVICE_UNAVAILABLE"


class AIProviderFailure(Exception):
    """
    Generative provider call failed.

    Never surfaced over HTTP: the AI fallback mapper converts it into a
    degraded result.
    """


class UserNotFound(NamasteServiceError):
    """Authenticated caller has no local user record yet."""
    status_code = 404
    issue_code = "not-found"
    error_code = "USER_NOT_FOUND"

    def __init__(self, abha_id: str):
        super().__init__(f"No local user for ABHA {abha_id}; log in first", {"abha_id": abha_id})
