"""Rejection types for public form submissions.

Every way a request can be refused is an exception deriving from
SubmissionRejected. Each carries the response status and the message shown to
the caller, and ``to_dict()`` renders the response body:

    {"error": "<message>"}                                   whole-request rejections
    {"error": "Validation failed", "fields": {name: message}} field validation

Only FieldValidationFailed carries per-field messages; everything raised
before field validation is a single, whole-request error.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional

from formgate.types import RejectionType


class SubmissionRejected(Exception):
    """Base class for refused requests.

    Attributes:
        message: Message returned to the caller
        status: HTTP-style status class of the rejection
        rejection_type: Category of the rejection
    """

    status: ClassVar[int] = 400
    rejection_type: ClassVar[RejectionType] = RejectionType.INTERNAL
    default_message: ClassVar[str] = "Request rejected"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the response body."""
        return {"error": self.message}


class SchemaLookupFailure(SubmissionRejected):
    """The form, site or field does not exist."""
    status = 404
    rejection_type = RejectionType.NOT_FOUND
    default_message = "Form not found"


class OriginRejected(SubmissionRejected):
    status = 403
    rejection_type = RejectionType.ORIGIN_REJECTED
    default_message = "Origin not allowed"


class RateLimited(SubmissionRejected):
    status = 429
    rejection_type = RejectionType.RATE_LIMITED
    default_message = "Rate limit exceeded"


class SubmissionWindowClosed(SubmissionRejected):
    """The form stopped accepting submissions (stop time or submission cap)."""
    status = 410
    rejection_type = RejectionType.WINDOW_CLOSED
    default_message = "This form is no longer accepting submissions."


class PayloadTooLarge(SubmissionRejected):
    status = 413
    rejection_type = RejectionType.PAYLOAD_TOO_LARGE
    default_message = "Payload too large"


class MalformedPayload(SubmissionRejected):
    status = 400
    rejection_type = RejectionType.MALFORMED_PAYLOAD
    default_message = "Invalid JSON"


class FieldValidationFailed(SubmissionRejected):
    """One or more fields failed validation.

    Attributes:
        fields: Field name -> message for every invalid field
    """
    status = 400
    rejection_type = RejectionType.VALIDATION_FAILED
    default_message = "Validation failed"

    def __init__(self, fields: Dict[str, str], message: Optional[str] = None):
        self.fields = dict(fields)
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "fields": dict(self.fields)}


class InternalFailure(SubmissionRejected):
    """Unexpected failure. The cause is logged; the caller gets a generic message."""
    status = 500
    rejection_type = RejectionType.INTERNAL
    default_message = "Internal server error"


@dataclass(frozen=True)
class SubmitResponse:
    """Response returned by the submission runtime.

    Attributes:
        status: HTTP-style status code
        body: JSON-serializable response body

    Examples:
        >>> SubmitResponse.success("sub_1").body
        {'success': True, 'id': 'sub_1'}
        >>> SubmitResponse.from_rejection(RateLimited()).status
        429
    """
    status: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def success(cls, submission_id: str) -> "SubmitResponse":
        return cls(status=200, body={"success": True, "id": submission_id})

    @classmethod
    def from_rejection(cls, error: SubmissionRejected) -> "SubmitResponse":
        return cls(status=error.status, body=error.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "body": dict(self.body)}


__all__ = [
    "SubmissionRejected",
    "SchemaLookupFailure",
    "OriginRejected",
    "RateLimited",
    "SubmissionWindowClosed",
    "PayloadTooLarge",
    "MalformedPayload",
    "FieldValidationFailed",
    "InternalFailure",
    "SubmitResponse",
]
