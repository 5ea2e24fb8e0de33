"""Core type definitions for the formgate submission engine.

This module defines the enumerations shared by every layer of the engine:
- FieldType: The closed set of form field types
- TextFormat / PhoneFormat: Per-type format rules
- NamePart / HiddenValueSource: Options for the NAME and HIDDEN types
- SubmissionStatus: Lifecycle of a persisted submission
- RejectionType: Categories of whole-request rejections
- EventType: Events emitted once a submission has been handled

Wire values match the JSON stored with each form definition, so every enum
is a ``str`` subclass and compares equal to its serialized form.
"""

from enum import Enum


class FieldType(str, Enum):
    """Form field types.

    The options/validation shape of a field is determined solely by its type
    (see formgate.fields).
    """
    TEXT = "TEXT"
    EMAIL = "EMAIL"
    TEXTAREA = "TEXTAREA"
    SELECT = "SELECT"
    CHECKBOX = "CHECKBOX"
    PHONE = "PHONE"
    DATE = "DATE"
    NAME = "NAME"
    HIDDEN = "HIDDEN"


class TextFormat(str, Enum):
    """Extra format checks available to TEXT and TEXTAREA fields.

    ALPHANUMERIC is the "no extra check" default and is never serialized.
    """
    ALPHANUMERIC = "alphanumeric"
    NUMBERS = "numbers"
    LETTERS = "letters"
    URL = "url"
    POSTAL_US = "postal-us"
    POSTAL_CA = "postal-ca"


class PhoneFormat(str, Enum):
    LENIENT = "lenient"
    STRICT = "strict"


class NamePart(str, Enum):
    """Parts a NAME field can collect. SINGLE excludes every other part."""
    FIRST = "first"
    LAST = "last"
    MIDDLE = "middle"
    MIDDLE_INITIAL = "middleInitial"
    SINGLE = "single"


class HiddenValueSource(str, Enum):
    """Where the embed widget reads a HIDDEN field's value from."""
    STATIC = "static"
    URL_PARAM = "urlParam"
    PAGE_URL = "pageUrl"
    REFERRER = "referrer"


class SubmissionStatus(str, Enum):
    """Submission lifecycle states.

    Records are created as NEW; READ and ARCHIVED are set by the admin side.
    """
    NEW = "NEW"
    READ = "READ"
    ARCHIVED = "ARCHIVED"


class RejectionType(str, Enum):
    """Whole-request rejection categories.

    Each category maps to one exception class in formgate.errors and one
    response status.
    """
    NOT_FOUND = "not_found"
    ORIGIN_REJECTED = "origin_rejected"
    RATE_LIMITED = "rate_limited"
    WINDOW_CLOSED = "window_closed"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    MALFORMED_PAYLOAD = "malformed_payload"
    VALIDATION_FAILED = "validation_failed"
    INTERNAL = "internal"


class EventType(str, Enum):
    """Events emitted by the submission runtime."""
    SUBMISSION_ACCEPTED = "submission.accepted"
    SUBMISSION_SPAM = "submission.spam"
    SUBMISSION_REJECTED = "submission.rejected"


__all__ = [
    "FieldType",
    "TextFormat",
    "PhoneFormat",
    "NamePart",
    "HiddenValueSource",
    "SubmissionStatus",
    "RejectionType",
    "EventType",
]
