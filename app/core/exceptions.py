"""
Error taxonomy for the privilege, quota and verification core.

Quota refusals and compare-and-swap conflicts are NOT exceptions: they are
ordinary outcomes returned by the ledger and the state machine, and callers
branch on them. What is raised here is either correctable by the caller
(ValidationError, NotFoundError, PermissionDenied) or a deployment fault
(ConfigurationMissing).
"""
from typing import Any, Dict, Optional


class CoreError(Exception):
    """Base exception for all core errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CoreError):
    """Malformed input or an unmet precondition."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class NotFoundError(CoreError):
    """Referenced actor or record is absent."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            code="NOT_FOUND",
            details={"resource": resource, "id": identifier},
        )


class PermissionDenied(CoreError):
    """Actor role or verification state does not allow the operation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="PERMISSION_DENIED", details=details)


class ConfigurationMissing(CoreError):
    """
    No override, plan default or compiled default exists for a key.

    Treated as fatal: substituting a guessed limit would either bypass a quota
    or lock actors out of it.
    """

    def __init__(self, category: str, key: str):
        super().__init__(
            f"No value configured for privilege {category}.{key}",
            code="CONFIGURATION_MISSING",
            details={"category": category, "key": key},
        )
