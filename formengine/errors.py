"""
Form engine error types.

Validation failures are never raised; they live in the runtime's error
map. These exceptions cover configuration, authoring, state-machine and
collaborator failures.
"""

from typing import Any, Optional


class FormEngineError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details


class FormConfigError(FormEngineError):
    """A serialized form configuration could not be loaded."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("form_config_error", message, details)


class FormStructureError(FormEngineError):
    """An authoring operation or save would break the form's structure."""

    def __init__(
        self,
        violations: list[str],
        missing: Optional[list[str]] = None,
        code: str = "form_structure_error",
    ):
        super().__init__(code, "; ".join(violations), {"violations": list(violations)})
        self.violations = list(violations)
        self.missing = list(missing or [])


class LockedFieldError(FormStructureError):
    def __init__(self, field_id: str, reason: str):
        super().__init__([f"Field '{field_id}' is locked: {reason}"], code="locked_field")
        self.field_id = field_id


class InvalidTransitionError(FormEngineError):
    """Raised when a runtime transition is not valid from the current state."""

    def __init__(self, message: str):
        super().__init__("invalid_transition", message)


class CollaboratorError(FormEngineError):
    """A remote collaborator (REST API, store) failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: str = "collaborator_error"):
        super().__init__(code, message, {"status_code": status_code} if status_code else None)
        self.status_code = status_code


class SubmissionRejected(CollaboratorError):
    """The submission sink refused the values (validation or conflict)."""

    def __init__(self, message: str, reason: str = "validation", status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, code=f"submission_{reason}")
        self.reason = reason
