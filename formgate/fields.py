"""Field and form definitions.

A field's ``options`` and ``validation`` shapes are determined solely by its
type. Each shape is a frozen dataclass and every field type accepts exactly
one options variant and one validation variant (or none):

    TEXT, TEXTAREA  -> TextValidation
    EMAIL           -> EmailValidation
    PHONE           -> PhoneValidation
    DATE            -> DateValidation
    SELECT          -> SelectOptions
    NAME            -> NameOptions
    HIDDEN          -> HiddenOptions
    CHECKBOX        -> (nothing)

Definitions are read from and written to the camelCase JSON the form store
keeps. ``from_dict`` runs the schema checks in formgate.schema first.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from dateutil import parser as date_parser

from formgate.schema import FieldConfigError, check_field_config, check_unique_names
from formgate.types import FieldType, HiddenValueSource, NamePart, PhoneFormat, TextFormat

DEFAULT_NAME_PARTS: Tuple[NamePart, ...] = (NamePart.FIRST, NamePart.LAST)

DEFAULT_PART_LABELS: Dict[NamePart, str] = {
    NamePart.FIRST: "First Name",
    NamePart.LAST: "Last Name",
    NamePart.MIDDLE: "Middle Name",
    NamePart.MIDDLE_INITIAL: "Middle Initial",
    NamePart.SINGLE: "Full Name",
}


def _prune(result: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in result.items() if v is not None}


@dataclass(frozen=True)
class TextValidation:
    """Validation rules for TEXT and TEXTAREA fields.

    Attributes:
        min_length: Minimum number of characters
        max_length: Maximum number of characters (capped by the type ceiling)
        format: Extra format check; ALPHANUMERIC means none
        pattern: Owner-supplied regular expression, searched in the value
        message: Replaces the default message of length/format/pattern checks
    """
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    format: Optional[TextFormat] = None
    pattern: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        fmt = self.format if self.format != TextFormat.ALPHANUMERIC else None
        return _prune({
            "minLength": self.min_length,
            "maxLength": self.max_length,
            "format": fmt.value if fmt else None,
            "pattern": self.pattern,
            "message": self.message,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextValidation":
        fmt = data.get("format")
        return cls(
            min_length=data.get("minLength"),
            max_length=data.get("maxLength"),
            format=TextFormat(fmt) if fmt else None,
            pattern=data.get("pattern"),
            message=data.get("message"),
        )


@dataclass(frozen=True)
class DomainRules:
    allow: Tuple[str, ...] = ()
    block: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.allow:
            result["allow"] = list(self.allow)
        if self.block:
            result["block"] = list(self.block)
        return result


@dataclass(frozen=True)
class EmailValidation:
    """Validation rules for EMAIL fields.

    Attributes:
        domain_rules: Allow/block lists matched case-insensitively on the domain
        normalize: Lower-case the stored value once the submission is valid
        min_length: Minimum number of characters
        max_length: Maximum number of characters (capped by the type ceiling)
        message: Replaces the default format and length messages
    """
    domain_rules: Optional[DomainRules] = None
    normalize: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        rules = self.domain_rules.to_dict() if self.domain_rules else None
        return _prune({
            "domainRules": rules or None,
            "normalize": True if self.normalize else None,
            "minLength": self.min_length,
            "maxLength": self.max_length,
            "message": self.message,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmailValidation":
        rules = data.get("domainRules")
        return cls(
            domain_rules=DomainRules(
                allow=tuple(rules.get("allow") or ()),
                block=tuple(rules.get("block") or ()),
            ) if rules else None,
            normalize=bool(data.get("normalize")),
            min_length=data.get("minLength"),
            max_length=data.get("maxLength"),
            message=data.get("message"),
        )


@dataclass(frozen=True)
class PhoneValidation:
    format: PhoneFormat = PhoneFormat.LENIENT
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _prune({"format": self.format.value, "message": self.message})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhoneValidation":
        return cls(
            format=PhoneFormat(data.get("format") or PhoneFormat.LENIENT.value),
            message=data.get("message"),
        )


TODAY = "today"


@dataclass(frozen=True)
class DateValidation:
    """Validation rules for DATE fields.

    ``min_date``/``max_date`` hold ISO dates or the token ``"today"``, which
    is resolved when a submission is validated rather than when the form is
    saved.
    """
    min_date: Optional[str] = None
    max_date: Optional[str] = None
    no_future: bool = False
    no_past: bool = False
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _prune({
            "minDate": self.min_date,
            "maxDate": self.max_date,
            "noFuture": True if self.no_future else None,
            "noPast": True if self.no_past else None,
            "message": self.message,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DateValidation":
        return cls(
            min_date=data.get("minDate"),
            max_date=data.get("maxDate"),
            no_future=bool(data.get("noFuture")),
            no_past=bool(data.get("noPast")),
            message=data.get("message"),
        )


@dataclass(frozen=True)
class SelectOption:
    value: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "label": self.label}


@dataclass(frozen=True)
class SelectOptions:
    """Options for SELECT fields.

    When ``allow_other`` is set the embed widget adds an "Other" choice with
    a companion free-text input and submits the free text in its place.
    """
    options: Tuple[SelectOption, ...] = ()
    default_value: Optional[str] = None
    allow_other: bool = False

    @property
    def values(self) -> List[str]:
        return [option.value for option in self.options]

    def to_dict(self) -> Dict[str, Any]:
        return _prune({
            "options": [o.to_dict() for o in self.options],
            "defaultValue": self.default_value,
            "allowOther": True if self.allow_other else None,
        })

    @classmethod
    def from_dict(cls, data: Union[Dict[str, Any], List[Dict[str, Any]]]) -> "SelectOptions":
        if isinstance(data, list):
            data = {"options": data}
        return cls(
            options=tuple(
                SelectOption(value=o["value"], label=o.get("label") or o["value"])
                for o in data.get("options", [])
            ),
            default_value=data.get("defaultValue"),
            allow_other=bool(data.get("allowOther")),
        )


@dataclass(frozen=True)
class NameOptions:
    """Options for NAME fields.

    Part labels and per-part required flags accept a dict and are kept as
    sorted ``(part, value)`` pairs so field definitions stay hashable.
    """
    parts: Tuple[NamePart, ...] = DEFAULT_NAME_PARTS
    part_labels: Tuple[Tuple[str, str], ...] = ()
    parts_required: Tuple[Tuple[str, bool], ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "part_labels", tuple(sorted(dict(self.part_labels).items())))
        object.__setattr__(self, "parts_required", tuple(sorted(dict(self.parts_required).items())))

    def label_for(self, part: NamePart) -> str:
        return dict(self.part_labels).get(part.value) or DEFAULT_PART_LABELS[part]

    def is_part_required(self, part: NamePart, field_required: bool) -> bool:
        return field_required or bool(dict(self.parts_required).get(part.value))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"parts": [p.value for p in self.parts]}
        if self.part_labels:
            result["partLabels"] = dict(self.part_labels)
        if self.parts_required:
            result["partsRequired"] = dict(self.parts_required)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NameOptions":
        parts = data.get("parts")
        return cls(
            parts=tuple(NamePart(p) for p in parts) if parts else DEFAULT_NAME_PARTS,
            part_labels=tuple((data.get("partLabels") or {}).items()),
            parts_required=tuple((data.get("partsRequired") or {}).items()),
        )


@dataclass(frozen=True)
class HiddenOptions:
    value_source: HiddenValueSource
    static_value: Optional[str] = None
    param_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _prune({
            "valueSource": self.value_source.value,
            "staticValue": self.static_value,
            "paramName": self.param_name,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HiddenOptions":
        return cls(
            value_source=HiddenValueSource(data["valueSource"]),
            static_value=data.get("staticValue"),
            param_name=data.get("paramName"),
        )


FieldOptions = Union[SelectOptions, NameOptions, HiddenOptions]
FieldValidation = Union[TextValidation, EmailValidation, PhoneValidation, DateValidation]

OPTIONS_TYPES: Dict[FieldType, type] = {
    FieldType.SELECT: SelectOptions,
    FieldType.NAME: NameOptions,
    FieldType.HIDDEN: HiddenOptions,
}

VALIDATION_TYPES: Dict[FieldType, type] = {
    FieldType.TEXT: TextValidation,
    FieldType.TEXTAREA: TextValidation,
    FieldType.EMAIL: EmailValidation,
    FieldType.PHONE: PhoneValidation,
    FieldType.DATE: DateValidation,
}


@dataclass(frozen=True)
class FieldDefinition:
    """A single form field.

    Attributes:
        name: Payload and storage key, unique within a form
        type: Field type; decides the options/validation variants
        label: Display label, also used in error messages
        required: Whether a value must be supplied
        placeholder: Optional input placeholder
        help_text: Optional help text rendered under the control
        options: Type-specific options variant (SELECT, NAME, HIDDEN)
        validation: Type-specific validation variant

    Examples:
        >>> f = FieldDefinition(name="email", type=FieldType.EMAIL, label="Email", required=True)
        >>> f.display_label
        'Email'
    """
    name: str
    type: FieldType
    label: str = ""
    required: bool = False
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options: Optional[FieldOptions] = None
    validation: Optional[FieldValidation] = None

    def __post_init__(self):
        if isinstance(self.type, str) and not isinstance(self.type, FieldType):
            object.__setattr__(self, "type", FieldType(self.type))
        if not self.name:
            raise FieldConfigError("Field name must not be empty")
        expected_options = OPTIONS_TYPES.get(self.type)
        if self.options is not None and not isinstance(self.options, expected_options or ()):
            raise FieldConfigError(
                f"{self.type.value} field {self.name!r} cannot take {type(self.options).__name__}",
                field_name=self.name,
            )
        expected_validation = VALIDATION_TYPES.get(self.type)
        if self.validation is not None and not isinstance(self.validation, expected_validation or ()):
            raise FieldConfigError(
                f"{self.type.value} field {self.name!r} cannot take {type(self.validation).__name__}",
                field_name=self.name,
            )

    @property
    def display_label(self) -> str:
        return self.label or self.name

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format."""
        result: Dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "label": self.label,
            "required": self.required,
        }
        if self.placeholder is not None:
            result["placeholder"] = self.placeholder
        if self.help_text is not None:
            result["helpText"] = self.help_text
        if self.options is not None:
            result["options"] = self.options.to_dict()
        if self.validation is not None:
            validation = self.validation.to_dict()
            if validation:
                result["validation"] = validation
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldDefinition":
        """Create a FieldDefinition from wire format.

        Raises:
            FieldConfigError: If the definition does not match its type's shape
        """
        check_field_config(data)
        field_type = FieldType(data["type"])

        options = None
        raw_options = data.get("options")
        if raw_options is not None:
            options = OPTIONS_TYPES[field_type].from_dict(raw_options)
        elif field_type == FieldType.NAME:
            options = NameOptions()

        validation = None
        raw_validation = data.get("validation")
        if raw_validation is not None:
            validation = VALIDATION_TYPES[field_type].from_dict(raw_validation)

        return cls(
            name=data["name"],
            type=field_type,
            label=data.get("label") or "",
            required=bool(data.get("required")),
            placeholder=data.get("placeholder"),
            help_text=data.get("helpText"),
            options=options,
            validation=validation,
        )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return date_parser.isoparse(value)


@dataclass(frozen=True)
class FormDefinition:
    """A form and everything the engine needs to accept submissions for it.

    Attributes:
        id: Form identifier
        name: Display name, passed to notifications
        fields: Ordered field definitions
        slug: Per-site slug for site-keyed endpoints
        site_id: Owning site, if any
        allowed_origins: Per-form origin allow-list (bare domains or origins)
        honeypot_field: Payload key that marks a submission as spam when filled
        stop_at: Submissions are refused from this instant on
        max_submissions: Cap on non-spam submissions
        notify_emails: Recipients notified of each accepted submission
        email_notifications_enabled: Notify the owning account as well
        account_email: Owner address used when owner notifications are on
        success_message: Shown by the widget after a successful submission
        redirect_url: Widget navigates here after a successful submission
        default_theme: Opaque theme settings passed through to the widget
    """
    id: str
    name: str
    fields: Tuple[FieldDefinition, ...] = ()
    slug: Optional[str] = None
    site_id: Optional[str] = None
    allowed_origins: Tuple[str, ...] = ()
    honeypot_field: Optional[str] = None
    stop_at: Optional[datetime] = None
    max_submissions: Optional[int] = None
    notify_emails: Tuple[str, ...] = ()
    email_notifications_enabled: bool = False
    account_email: Optional[str] = None
    success_message: Optional[str] = None
    redirect_url: Optional[str] = None
    default_theme: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "allowed_origins", tuple(self.allowed_origins))
        object.__setattr__(self, "notify_emails", tuple(self.notify_emails))
        check_unique_names(f.name for f in self.fields)

    def get_field(self, name: str) -> Optional[FieldDefinition]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def recipients(self) -> List[str]:
        """Everyone to notify about an accepted submission."""
        recipients = list(self.notify_emails)
        if self.email_notifications_enabled and self.account_email:
            if self.account_email not in recipients:
                recipients.append(self.account_email)
        return recipients

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
            "allowedOrigins": list(self.allowed_origins),
            "notifyEmails": list(self.notify_emails),
            "emailNotificationsEnabled": self.email_notifications_enabled,
        }
        optional = {
            "slug": self.slug,
            "siteId": self.site_id,
            "honeypotField": self.honeypot_field,
            "stopAt": self.stop_at.isoformat() if self.stop_at else None,
            "maxSubmissions": self.max_submissions,
            "accountEmail": self.account_email,
            "successMessage": self.success_message,
            "redirectUrl": self.redirect_url,
            "defaultTheme": self.default_theme,
        }
        result.update(_prune(optional))
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormDefinition":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            fields=tuple(FieldDefinition.from_dict(f) for f in data.get("fields", [])),
            slug=data.get("slug"),
            site_id=data.get("siteId"),
            allowed_origins=tuple(data.get("allowedOrigins") or ()),
            honeypot_field=(data.get("honeypotField") or "").strip() or None,
            stop_at=_parse_timestamp(data.get("stopAt")),
            max_submissions=data.get("maxSubmissions"),
            notify_emails=tuple(data.get("notifyEmails") or ()),
            email_notifications_enabled=bool(data.get("emailNotificationsEnabled")),
            account_email=data.get("accountEmail"),
            success_message=data.get("successMessage"),
            redirect_url=data.get("redirectUrl"),
            default_theme=data.get("defaultTheme"),
        )


@dataclass(frozen=True)
class SiteDefinition:
    """A site that embeds forms; its domain is the origin policy for site-keyed forms."""
    id: str
    domain: str
    api_key: str


__all__ = [
    "TextValidation",
    "DomainRules",
    "EmailValidation",
    "PhoneValidation",
    "DateValidation",
    "SelectOption",
    "SelectOptions",
    "NameOptions",
    "HiddenOptions",
    "FieldOptions",
    "FieldValidation",
    "FieldDefinition",
    "FormDefinition",
    "SiteDefinition",
    "DEFAULT_NAME_PARTS",
    "DEFAULT_PART_LABELS",
    "TODAY",
]
