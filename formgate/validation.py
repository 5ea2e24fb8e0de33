"""Field validation engine shared by the server runtime and the embed client.

The engine checks an untrusted payload against a form's field definitions and
returns one message per invalid field plus a normalized copy of the payload.
Each field is evaluated on its own, in this order, and the first failing rule
wins for that field:

1. required check (CHECKBOX: falsy value; NAME: deferred to the part check)
2. empty and optional values skip every remaining rule (except NAME)
3. EMAIL format, then domain allow list, then domain block list
4. PHONE lenient/strict format (PHONE then skips the generic pass)
5. DATE parse, then noFuture, noPast, minDate, maxDate
6. NAME required parts (NAME then skips the generic pass)
7. SELECT option membership
8. generic pass: minLength, effective maxLength, TEXT/TEXTAREA format,
   owner pattern

Normalization (EMAIL ``normalize``, PHONE ``strict``) only reaches
``ValidationResult.data`` when every field passed, so messages always refer to
what the user actually typed. The input payload is never mutated.

The only clock dependence is DATE ``"today"``/noFuture/noPast; pass ``now`` to
make validation deterministic.
"""

import functools
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Pattern, Tuple
from urllib.parse import urlsplit

from dateutil import parser as date_parser
from typing_extensions import assert_never

from formgate.fields import (
    TODAY,
    DateValidation,
    EmailValidation,
    FieldDefinition,
    NameOptions,
    PhoneValidation,
    SelectOptions,
    TextValidation,
)
from formgate.types import FieldType, PhoneFormat, TextFormat

logger = logging.getLogger(__name__)

# Defaults apply when no maxLength is configured.
DEFAULT_MAX_LENGTHS: Dict[FieldType, int] = {
    FieldType.TEXT: 200,
    FieldType.EMAIL: 254,
    FieldType.TEXTAREA: 2000,
}

# Configured limits can tighten but never exceed these.
ABSOLUTE_MAX_LENGTHS: Dict[FieldType, int] = {
    FieldType.TEXT: 500,
    FieldType.EMAIL: 320,
    FieldType.TEXTAREA: 10000,
}

_LABEL = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
EMAIL_PATTERN = re.compile(
    r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@" + _LABEL + r"(?:\." + _LABEL + r")*"
)
LENIENT_PHONE_PATTERN = re.compile(r"[0-9\s\-()+.]{7,}")
US_PHONE_DIGITS = re.compile(r"[0-9]{10}")

# Partial dates without a reference day borrow their missing parts from here.
EPOCH_DATE = date(1970, 1, 1)

_FORMAT_PATTERNS: Dict[TextFormat, Pattern[str]] = {
    TextFormat.NUMBERS: re.compile(r"[0-9]+"),
    TextFormat.LETTERS: re.compile(r"[A-Za-z]+"),
    TextFormat.POSTAL_US: re.compile(r"[0-9]{5}(?:-[0-9]{4})?"),
    TextFormat.POSTAL_CA: re.compile(r"[A-Z][0-9][A-Z]\s?[0-9][A-Z][0-9]", re.IGNORECASE),
}

_FORMAT_MESSAGES: Dict[TextFormat, str] = {
    TextFormat.NUMBERS: "{label} must contain only numbers.",
    TextFormat.LETTERS: "{label} must contain only letters.",
    TextFormat.URL: "{label} must be a valid URL.",
    TextFormat.POSTAL_US: "{label} must be a valid US postal code (e.g., 12345 or 12345-6789).",
    TextFormat.POSTAL_CA: "{label} must be a valid Canadian postal code (e.g., K1A 0B1).",
}


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a submission payload.

    Attributes:
        errors: Field name -> message, one entry per invalid field
        data: Payload copy with normalized values applied (only when valid)

    Examples:
        >>> result = ValidationResult(errors={}, data={"email": "a@b.co"})
        >>> result.is_valid
        True
    """
    errors: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": dict(self.errors),
            "data": dict(self.data),
        }


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_empty(value: Any) -> bool:
    return value is None or _stringify(value).strip() == ""


def effective_max_length(field_def: FieldDefinition) -> Optional[int]:
    """Return the maximum length enforced for a field, or None for no limit.

    The configured maxLength (or the type default) is capped at the type's
    absolute ceiling.

    Examples:
        >>> from formgate.types import FieldType
        >>> effective_max_length(FieldDefinition(name="n", type=FieldType.TEXT))
        200
        >>> effective_max_length(FieldDefinition(
        ...     name="n", type=FieldType.TEXT, validation=TextValidation(max_length=9000)))
        500
    """
    configured = None
    if isinstance(field_def.validation, (TextValidation, EmailValidation)):
        configured = field_def.validation.max_length
    limit = configured if configured is not None else DEFAULT_MAX_LENGTHS.get(field_def.type)
    ceiling = ABSOLUTE_MAX_LENGTHS.get(field_def.type)
    if ceiling is None:
        return limit
    return min(limit if limit is not None else ceiling, ceiling)


def normalize_phone(value: Any) -> Optional[str]:
    """Canonicalize a US phone number to ``+1XXXXXXXXXX``.

    Returns None if the value is not a 10-digit US number. Idempotent on
    already-canonical values.

    Examples:
        >>> normalize_phone("+1 (415) 555-0100")
        '+14155550100'
        >>> normalize_phone("+14155550100")
        '+14155550100'
        >>> normalize_phone("+44 20 7946 0958") is None
        True
    """
    cleaned = re.sub(r"[^0-9+]", "", _stringify(value))
    if cleaned.startswith("+1"):
        cleaned = cleaned[2:]
    elif cleaned.startswith("+"):
        return None
    elif cleaned.startswith("1") and len(cleaned) == 11:
        cleaned = cleaned[1:]
    if not US_PHONE_DIGITS.fullmatch(cleaned):
        return None
    return f"+1{cleaned}"


def parse_date(value: Any, default: Optional[date] = None) -> Optional[date]:
    """Parse a submitted or configured date, returning None when unparseable.

    Args:
        value: ISO date or datetime string, or any text dateutil understands
        default: Fills the parts a partial date leaves out (``"March 3"``
            takes its year from here). Defaults to 1970-01-01 so the result
            never depends on the wall clock.

    Examples:
        >>> parse_date("2024-03-05")
        datetime.date(2024, 3, 5)
        >>> parse_date("March 3", default=date(2020, 6, 15))
        datetime.date(2020, 3, 3)
        >>> parse_date("9999-12-31T24:00") is None
        True
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _stringify(value).strip()
    if not text:
        return None
    try:
        return date_parser.isoparse(text).date()
    except (ValueError, OverflowError):
        pass
    base = datetime.combine(default or EPOCH_DATE, time())
    try:
        return date_parser.parse(text, default=base).date()
    except (ValueError, OverflowError):
        return None


@functools.lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> Optional[Pattern[str]]:
    try:
        return re.compile(pattern)
    except re.error:
        # Owner configuration mistakes must not block legitimate submissions.
        logger.debug("Skipping uncompilable field pattern %r", pattern)
        return None


def _is_valid_url(value: str) -> bool:
    candidate = value if value.startswith("http") else f"https://{value}"
    if any(ch.isspace() for ch in candidate):
        return False
    try:
        hostname = urlsplit(candidate).hostname
    except ValueError:
        return False
    return bool(hostname) and "." in hostname


class ValidationEngine:
    """Validates submission payloads against form field definitions.

    The same engine backs the server runtime (the authority) and the embed
    client (pre-validation for instant feedback).

    Attributes:
        clock: Returns the current time; only DATE rules consult it

    Examples:
        >>> from formgate.types import FieldType
        >>> engine = ValidationEngine()
        >>> fields = [FieldDefinition(name="email", type=FieldType.EMAIL, label="Email", required=True)]
        >>> engine.validate(fields, {"email": "not-an-email"}).errors
        {'email': 'Enter a valid email address'}
        >>> engine.validate(fields, {"email": "ada@example.com"}).is_valid
        True
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.clock = clock or datetime.now

    def validate(
        self,
        fields: Iterable[FieldDefinition],
        payload: Mapping[str, Any],
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Validate every field of a payload.

        Args:
            fields: Field definitions of the form, in order
            payload: Raw submission values keyed by field name
            now: Validation time for DATE rules (defaults to the clock)

        Returns:
            ValidationResult with per-field errors and the normalized payload
        """
        today = (now or self.clock()).date()
        errors: Dict[str, str] = {}
        normalized: Dict[str, Any] = {}

        for field_def in fields:
            message, value = self.validate_field(field_def, payload.get(field_def.name), today)
            if message is not None:
                errors[field_def.name] = message
            elif field_def.name in payload and value is not payload[field_def.name]:
                normalized[field_def.name] = value

        data = dict(payload)
        if not errors:
            data.update(normalized)
        return ValidationResult(errors=errors, data=data)

    def validate_field(
        self,
        field_def: FieldDefinition,
        value: Any,
        today: date,
    ) -> Tuple[Optional[str], Any]:
        """Validate a single field value.

        Returns:
            (error message or None, normalized value)
        """
        label = field_def.display_label
        field_type = field_def.type

        if field_def.required:
            if field_type is FieldType.CHECKBOX:
                if not value:
                    return f"{label} is required.", value
            elif field_type is not FieldType.NAME and _is_empty(value):
                return f"{label} is required.", value

        if field_type is not FieldType.NAME and _is_empty(value):
            return None, value

        if field_type is FieldType.EMAIL:
            message = self._check_email(field_def, value)
            if message is not None:
                return message, value
        elif field_type is FieldType.PHONE:
            return self._check_phone(field_def, value)
        elif field_type is FieldType.DATE:
            message = self._check_date(field_def, value, today)
            if message is not None:
                return message, value
        elif field_type is FieldType.NAME:
            return self._check_name(field_def, value), value
        elif field_type is FieldType.SELECT:
            message = self._check_select(field_def, value)
            if message is not None:
                return message, value
        elif field_type in (FieldType.TEXT, FieldType.TEXTAREA, FieldType.CHECKBOX, FieldType.HIDDEN):
            pass
        else:
            assert_never(field_type)

        message = self._check_length_and_format(field_def, value)
        if message is not None:
            return message, value

        if isinstance(field_def.validation, EmailValidation) and field_def.validation.normalize:
            return None, _stringify(value).lower()
        return None, value

    def _check_email(self, field_def: FieldDefinition, value: Any) -> Optional[str]:
        rules = field_def.validation if isinstance(field_def.validation, EmailValidation) else EmailValidation()
        text = _stringify(value)
        if not EMAIL_PATTERN.fullmatch(text):
            return rules.message or "Enter a valid email address"

        domain_rules = rules.domain_rules
        if domain_rules is None:
            return None
        domain = text.split("@", 1)[1].lower()
        label = field_def.display_label
        if domain_rules.allow and domain not in {d.lower() for d in domain_rules.allow}:
            return f"{label} must be from an allowed domain."
        if domain_rules.block and domain in {d.lower() for d in domain_rules.block}:
            return f"{label} domain is not allowed."
        return None

    def _check_phone(self, field_def: FieldDefinition, value: Any) -> Tuple[Optional[str], Any]:
        rules = field_def.validation if isinstance(field_def.validation, PhoneValidation) else PhoneValidation()
        label = field_def.display_label
        text = _stringify(value)

        if rules.format is PhoneFormat.STRICT:
            canonical = normalize_phone(text)
            if canonical is None:
                return rules.message or f"{label} must be a valid US phone number (10 digits).", value
            return None, canonical

        if not LENIENT_PHONE_PATTERN.fullmatch(text):
            return rules.message or f"{label} must be a valid phone number.", value
        return None, value

    def _check_date(self, field_def: FieldDefinition, value: Any, today: date) -> Optional[str]:
        rules = field_def.validation if isinstance(field_def.validation, DateValidation) else DateValidation()
        label = field_def.display_label

        submitted = parse_date(value, default=today)
        if submitted is None:
            return rules.message or f"{label} must be a valid date."

        if rules.no_future and submitted > today:
            return rules.message or f"{label} cannot be a future date."
        if rules.no_past and submitted < today:
            return rules.message or f"{label} cannot be a past date."

        min_date = self._resolve_bound(rules.min_date, today)
        if min_date is not None and submitted < min_date:
            return rules.message or f"{label} must be on or after {min_date.isoformat()}."

        max_date = self._resolve_bound(rules.max_date, today)
        if max_date is not None and submitted > max_date:
            return rules.message or f"{label} must be on or before {max_date.isoformat()}."
        return None

    @staticmethod
    def _resolve_bound(bound: Optional[str], today: date) -> Optional[date]:
        if not bound:
            return None
        if bound == TODAY:
            return today
        return parse_date(bound, default=today)

    def _check_name(self, field_def: FieldDefinition, value: Any) -> Optional[str]:
        options = field_def.options if isinstance(field_def.options, NameOptions) else NameOptions()
        parts = value if isinstance(value, Mapping) else {}

        for part in options.parts:
            if not options.is_part_required(part, field_def.required):
                continue
            if _is_empty(parts.get(part.value)):
                return f"{options.label_for(part)} is required."
        return None

    def _check_select(self, field_def: FieldDefinition, value: Any) -> Optional[str]:
        if not isinstance(field_def.options, SelectOptions) or not field_def.options.options:
            return None
        if _stringify(value) not in field_def.options.values:
            return f"{field_def.display_label} must be a valid option."
        return None

    def _check_length_and_format(self, field_def: FieldDefinition, value: Any) -> Optional[str]:
        rules = field_def.validation
        label = field_def.display_label
        text = _stringify(value)
        message = rules.message if isinstance(rules, (TextValidation, EmailValidation)) else None

        min_length = rules.min_length if isinstance(rules, (TextValidation, EmailValidation)) else None
        if min_length and len(text) < min_length:
            return message or f"{label} must be at least {min_length} characters."

        max_length = effective_max_length(field_def)
        if max_length is not None and len(text) > max_length:
            return message or f"{label} must be at most {max_length} characters."

        if not isinstance(rules, TextValidation):
            return None

        fmt = rules.format
        if fmt is not None and fmt is not TextFormat.ALPHANUMERIC:
            if fmt is TextFormat.URL:
                valid = _is_valid_url(text)
            else:
                valid = _FORMAT_PATTERNS[fmt].fullmatch(text) is not None
            if not valid:
                return message or _FORMAT_MESSAGES[fmt].format(label=label)

        if rules.pattern:
            compiled = _compile_pattern(rules.pattern)
            if compiled is not None and compiled.search(text) is None:
                return message or f"{label} is invalid."
        return None


_default_engine = ValidationEngine()


def validate_submission(
    fields: Iterable[FieldDefinition],
    payload: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> ValidationResult:
    """Validate a payload with a shared engine using the system clock."""
    return _default_engine.validate(fields, payload, now=now)


__all__ = [
    "ValidationEngine",
    "ValidationResult",
    "validate_submission",
    "effective_max_length",
    "normalize_phone",
    "parse_date",
    "DEFAULT_MAX_LENGTHS",
    "ABSOLUTE_MAX_LENGTHS",
    "EMAIL_PATTERN",
]
