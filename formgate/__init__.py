"""Formgate public form submission engine.

Formgate decides whether an untrusted submission to an embeddable web form
is accepted. It provides:
- Origin policy (per-form allow-lists and per-site domains, www/apex aware)
- Sliding-window rate limiting per hashed client IP
- Per-type field validation shared by the server and the embed client
- Cutoffs (stop time, submission cap) and honeypot spam flagging
- Submission assembly with hashed-IP metadata and fire-and-forget notification

Basic usage:
    >>> from formgate.fields import FieldDefinition
    >>> from formgate.types import FieldType
    >>> engine = ValidationEngine()
    >>> fields = [FieldDefinition(name="email", type=FieldType.EMAIL, label="Email", required=True)]
    >>> engine.validate(fields, {}).errors
    {'email': 'Email is required.'}
"""

__version__ = "0.1.0"
__author__ = "Formgate Team"

# Version info
VERSION = (0, 1, 0)

# Core exports
from formgate.origin import is_origin_allowed
from formgate.runtime import SubmissionRuntime
from formgate.validation import ValidationEngine, validate_submission

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "SubmissionRuntime",
    "ValidationEngine",
    "validate_submission",
    "is_origin_allowed",
]
