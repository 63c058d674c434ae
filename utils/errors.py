"""Error taxonomy shared by the services and the JSON error handler."""
from typing import Dict, List, Optional


class ComplaintDeskError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> Dict:
        return {"error": self.message}


class Unauthorized(ComplaintDeskError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ComplaintDeskError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ComplaintDeskError):
    status_code = 404
    default_message = "Not found"


class ValidationFailed(ComplaintDeskError):
    status_code = 400
    default_message = "Invalid request"

    def __init__(self, message: Optional[str] = None, fields: Optional[Dict[str, List[str]]] = None) -> None:
        super().__init__(message)
        self.fields = fields or {}

    def to_dict(self) -> Dict:
        payload = super().to_dict()
        if self.fields:
            payload["fields"] = self.fields
        return payload


class Conflict(ComplaintDeskError):
    status_code = 409
    default_message = "Conflict"


class InternalError(ComplaintDeskError):
    status_code = 500
    default_message = "Internal server error"


def first_form_error(errors: Dict[str, List[str]]) -> str:
    """Flatten WTForms errors into a single human-readable message."""
    for field_name, messages in errors.items():
        if messages:
            return f"{field_name}: {messages[0]}"
    return ValidationFailed.default_message
