"""Schema-time checks for field configurations.

Field definitions arrive as JSON (camelCase keys) from the form store. Before
they are turned into typed objects (see formgate.fields) their ``options`` and
``validation`` blobs are checked against one JSON Schema per field type, so a
malformed configuration is reported once, when the form is loaded or saved,
rather than surfacing as odd behaviour during validation.

Owner-supplied regular expressions (``validation.pattern``) are only checked
for being strings here. An uncompilable pattern is tolerated and skipped at
validation time instead.
"""

from typing import Any, Dict, Iterable, List, Optional

import jsonschema
from jsonschema import Draft7Validator

from formgate.types import FieldType, HiddenValueSource, NamePart, PhoneFormat, TextFormat


class FieldConfigError(ValueError):
    """Raised when a field or form configuration is malformed.

    Attributes:
        field_name: Name of the offending field, if known
        problems: Human-readable descriptions of every problem found
    """

    def __init__(self, message: str, field_name: Optional[str] = None, problems: Optional[List[str]] = None):
        self.field_name = field_name
        self.problems = problems or [message]
        super().__init__(message)


_OPTIONAL_STRING = {"type": ["string", "null"]}
_OPTIONAL_BOOL = {"type": ["boolean", "null"]}
_OPTIONAL_COUNT = {"type": ["integer", "null"], "minimum": 0}

_LENGTH_PROPERTIES: Dict[str, Any] = {
    "minLength": _OPTIONAL_COUNT,
    "maxLength": _OPTIONAL_COUNT,
    "message": _OPTIONAL_STRING,
}

FIELD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "type": {"enum": [t.value for t in FieldType]},
        "label": _OPTIONAL_STRING,
        "required": _OPTIONAL_BOOL,
        "placeholder": _OPTIONAL_STRING,
        "helpText": _OPTIONAL_STRING,
    },
    "required": ["name", "type"],
}

_SELECT_OPTION = {
    "type": "object",
    "properties": {
        "value": {"type": "string"},
        "label": _OPTIONAL_STRING,
    },
    "required": ["value"],
}

OPTIONS_SCHEMAS: Dict[FieldType, Dict[str, Any]] = {
    FieldType.SELECT: {
        # Older forms stored the option list directly.
        "oneOf": [
            {"type": "array", "items": _SELECT_OPTION},
            {
                "type": "object",
                "properties": {
                    "options": {"type": "array", "items": _SELECT_OPTION},
                    "defaultValue": _OPTIONAL_STRING,
                    "allowOther": _OPTIONAL_BOOL,
                },
                "required": ["options"],
                "additionalProperties": False,
            },
        ],
    },
    FieldType.NAME: {
        "type": "object",
        "properties": {
            "parts": {
                "type": "array",
                "items": {"enum": [p.value for p in NamePart]},
                "minItems": 1,
                "uniqueItems": True,
            },
            "partLabels": {"type": "object", "additionalProperties": {"type": "string"}},
            "partsRequired": {"type": "object", "additionalProperties": {"type": "boolean"}},
        },
        "additionalProperties": False,
    },
    FieldType.HIDDEN: {
        "type": "object",
        "properties": {
            "valueSource": {"enum": [s.value for s in HiddenValueSource]},
            "staticValue": _OPTIONAL_STRING,
            "paramName": _OPTIONAL_STRING,
        },
        "required": ["valueSource"],
        "additionalProperties": False,
    },
}

_TEXT_VALIDATION = {
    "type": "object",
    "properties": {
        **_LENGTH_PROPERTIES,
        "format": {"enum": [f.value for f in TextFormat] + [None]},
        "pattern": _OPTIONAL_STRING,
    },
    "additionalProperties": False,
}

VALIDATION_SCHEMAS: Dict[FieldType, Dict[str, Any]] = {
    FieldType.TEXT: _TEXT_VALIDATION,
    FieldType.TEXTAREA: _TEXT_VALIDATION,
    FieldType.EMAIL: {
        "type": "object",
        "properties": {
            **_LENGTH_PROPERTIES,
            "domainRules": {
                "type": ["object", "null"],
                "properties": {
                    "allow": {"type": "array", "items": {"type": "string"}},
                    "block": {"type": "array", "items": {"type": "string"}},
                },
                "additionalProperties": False,
            },
            "normalize": _OPTIONAL_BOOL,
        },
        "additionalProperties": False,
    },
    FieldType.PHONE: {
        "type": "object",
        "properties": {
            "format": {"enum": [f.value for f in PhoneFormat] + [None]},
            "message": _OPTIONAL_STRING,
        },
        "additionalProperties": False,
    },
    FieldType.DATE: {
        "type": "object",
        "properties": {
            "minDate": _OPTIONAL_STRING,
            "maxDate": _OPTIONAL_STRING,
            "noFuture": _OPTIONAL_BOOL,
            "noPast": _OPTIONAL_BOOL,
            "message": _OPTIONAL_STRING,
        },
        "additionalProperties": False,
    },
}

for _schema in (FIELD_SCHEMA, *OPTIONS_SCHEMAS.values(), *VALIDATION_SCHEMAS.values()):
    Draft7Validator.check_schema(_schema)

_FIELD_VALIDATOR = Draft7Validator(FIELD_SCHEMA)
_OPTIONS_VALIDATORS = {t: Draft7Validator(s) for t, s in OPTIONS_SCHEMAS.items()}
_VALIDATION_VALIDATORS = {t: Draft7Validator(s) for t, s in VALIDATION_SCHEMAS.items()}


def _describe(prefix: str, error: jsonschema.ValidationError) -> str:
    path = ".".join(str(p) for p in error.absolute_path)
    location = f"{prefix}.{path}" if path else prefix
    return f"{location}: {error.message}"


def _collect(validator: Draft7Validator, instance: Any, prefix: str) -> List[str]:
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(e.absolute_path))
    return [_describe(prefix, e) for e in errors]


def check_field_config(data: Dict[str, Any]) -> None:
    """Check a wire-format field definition.

    Args:
        data: Field definition dict (camelCase keys)

    Raises:
        FieldConfigError: Listing every problem found in the definition
    """
    name = data.get("name") if isinstance(data, dict) else None
    problems = _collect(_FIELD_VALIDATOR, data, "field")
    if problems:
        raise FieldConfigError(
            f"Invalid field definition {name!r}: {'; '.join(problems)}",
            field_name=name,
            problems=problems,
        )

    field_type = FieldType(data["type"])
    options = data.get("options")
    validation = data.get("validation")

    if options is not None:
        options_validator = _OPTIONS_VALIDATORS.get(field_type)
        if options_validator is None:
            problems.append(f"options: {field_type.value} fields take no options")
        else:
            problems.extend(_collect(options_validator, options, "options"))

    if validation is not None:
        validation_validator = _VALIDATION_VALIDATORS.get(field_type)
        if validation_validator is None:
            problems.append(f"validation: {field_type.value} fields take no validation rules")
        else:
            problems.extend(_collect(validation_validator, validation, "validation"))

    if field_type == FieldType.HIDDEN and options is None:
        problems.append("options: HIDDEN fields require a valueSource")

    if not problems:
        problems.extend(_semantic_problems(field_type, options))

    if problems:
        raise FieldConfigError(
            f"Invalid field definition {name!r}: {'; '.join(problems)}",
            field_name=name,
            problems=problems,
        )


def _semantic_problems(field_type: FieldType, options: Any) -> List[str]:
    """Checks JSON Schema cannot express cleanly."""
    problems: List[str] = []
    if field_type == FieldType.NAME and options:
        parts = options.get("parts") or []
        if NamePart.SINGLE.value in parts and len(parts) > 1:
            problems.append("options.parts: 'single' cannot be combined with other parts")
    elif field_type == FieldType.SELECT and options:
        items = options if isinstance(options, list) else options.get("options", [])
        values = [item["value"] for item in items]
        if len(values) != len(set(values)):
            problems.append("options.options: option values must be unique")
    elif field_type == FieldType.HIDDEN and options:
        source = options.get("valueSource")
        if source == HiddenValueSource.URL_PARAM.value and not options.get("paramName"):
            problems.append("options.paramName: required when valueSource is 'urlParam'")
    return problems


def check_unique_names(names: Iterable[str]) -> None:
    """Raise FieldConfigError if any field name repeats within a form."""
    seen = set()
    duplicates = []
    for name in names:
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    if duplicates:
        raise FieldConfigError(
            f"Duplicate field names: {', '.join(duplicates)}",
            field_name=duplicates[0],
        )


__all__ = [
    "FieldConfigError",
    "FIELD_SCHEMA",
    "OPTIONS_SCHEMAS",
    "VALIDATION_SCHEMAS",
    "check_field_config",
    "check_unique_names",
]
