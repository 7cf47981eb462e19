"""
Domain errors raised by the OD workflow services.

Every error is a ``ValueError`` so callers that only know about bad input
still catch it; ``main.py`` maps the concrete classes to HTTP status codes.
"""
from typing import Any, Dict, Optional


class ODFlowError(ValueError):
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"detail": self.message}
        if self.details:
            out["details"] = self.details
        return out


class SubmissionRejected(ODFlowError):
    """A new request failed one of the submission gates."""
    status_code = 422

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["code"] = self.code
        return out


class InvalidTransition(ODFlowError):
    status_code = 409


class MissingText(ODFlowError):
    status_code = 400


class NotFound(ODFlowError):
    status_code = 404


class ConflictError(ODFlowError):
    status_code = 409
