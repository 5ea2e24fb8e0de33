"""Client-side render/collect engine for embedded forms.

This is the Python twin of the embed widget: it turns a public form
definition into a control tree, collects control values back into a
submission payload, pre-validates with the same ValidationEngine the server
uses and only then submits. Pre-validation exists to give instant feedback;
the server repeats every check and is the only authority.

Control naming inside the collected form state:

    <name>            plain controls, checkboxes, selects, hidden inputs
    <name>.<part>     NAME parts (e.g. ``full_name.first``)
    <name>__other     free text companion of a SELECT with allowOther
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import parse_qs, urlsplit

import httpx

from formgate.config import settings
from formgate.fields import (
    FieldDefinition,
    HiddenOptions,
    NameOptions,
    SelectOption,
    SelectOptions,
)
from formgate.types import FieldType, HiddenValueSource, NamePart
from formgate.validation import ValidationEngine

logger = logging.getLogger(__name__)

OTHER_VALUE = "__other__"
OTHER_LABEL = "Other"
OTHER_SUFFIX = "__other"

LOAD_FAILED_MESSAGE = "Unable to load form. Please try again later."
NOT_CONFIGURED_MESSAGE = "This form is not configured yet."
FIX_FIELDS_MESSAGE = "Please fix the highlighted fields."
SUBMIT_FAILED_MESSAGE = "Submission failed. Please try again."
DEFAULT_SUCCESS_MESSAGE = "Thanks for your submission!"

_INPUT_TYPES = {
    FieldType.EMAIL: "email",
    FieldType.PHONE: "tel",
    FieldType.DATE: "date",
}


class EmbedLoadError(Exception):
    """The form definition could not be fetched."""


class TransportError(Exception):
    """A submission could not reach the server."""


@dataclass(frozen=True)
class EmbedDefinition:
    """Public form definition served to the widget."""
    form_id: str
    fields: Tuple[FieldDefinition, ...] = ()
    slug: Optional[str] = None
    success_message: Optional[str] = None
    redirect_url: Optional[str] = None
    default_theme: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmbedDefinition":
        return cls(
            form_id=data["formId"],
            fields=tuple(FieldDefinition.from_dict(f) for f in data.get("fields") or []),
            slug=data.get("slug"),
            success_message=data.get("successMessage"),
            redirect_url=data.get("redirectUrl"),
            default_theme=data.get("defaultTheme"),
        )


@dataclass(frozen=True)
class Control:
    """One rendered input element.

    Attributes:
        name: Key of this control in the collected form state
        element_id: DOM id
        kind: input, textarea, select, checkbox or hidden
        input_type: type attribute for ``input`` controls
        label: Visible label (None for hidden inputs)
        required: Whether the required marker is shown
        placeholder: Placeholder text
        options: Choices for select controls
        default_value: Initially selected value
        rows: Visible rows for textareas
        part: NAME part collected by this control
    """
    name: str
    element_id: str
    kind: str
    input_type: Optional[str] = None
    label: Optional[str] = None
    required: bool = False
    placeholder: Optional[str] = None
    options: Tuple[SelectOption, ...] = ()
    default_value: Optional[str] = None
    rows: Optional[int] = None
    part: Optional[NamePart] = None


@dataclass(frozen=True)
class RenderedField:
    """Controls, label and error slot for one field.

    Hidden fields render without a wrapper, label or error slot.
    """
    field: FieldDefinition
    controls: Tuple[Control, ...]
    label: Optional[str]
    required_marker: bool
    help_text: Optional[str]
    error_id: Optional[str]
    wrapper: bool = True


@dataclass(frozen=True)
class RenderedForm:
    instance_id: str
    fields: Tuple[RenderedField, ...]
    submit_label: str = "Submit"
    theme: Optional[Dict[str, Any]] = None

    def control_names(self) -> List[str]:
        """Return the name of every control, in render order."""
        return [c.name for f in self.fields for c in f.controls]


@dataclass(frozen=True)
class PageContext:
    """The embedding page, as seen by the widget."""
    url: str = ""
    referrer: str = ""

    def query_param(self, name: str) -> str:
        """Return the first value of a query parameter on the page URL, or an empty string."""
        values = parse_qs(urlsplit(self.url).query).get(name)
        return values[0] if values else ""


@dataclass
class FormStatus:
    message: str = ""
    kind: str = "info"


def _render_field(field_def: FieldDefinition, instance_id: str) -> RenderedField:
    element_id = f"{instance_id}-{field_def.name}"
    error_id = f"{element_id}-error"
    label = field_def.display_label
    common = {"required": field_def.required, "placeholder": field_def.placeholder}
    field_type = field_def.type

    if field_type is FieldType.HIDDEN:
        control = Control(name=field_def.name, element_id=element_id, kind="hidden", input_type="hidden")
        return RenderedField(field_def, (control,), None, False, None, None, wrapper=False)

    controls: Tuple[Control, ...]
    if field_type is FieldType.TEXTAREA:
        controls = (Control(name=field_def.name, element_id=element_id, kind="textarea", rows=4, **common),)
    elif field_type is FieldType.SELECT:
        select_options = field_def.options if isinstance(field_def.options, SelectOptions) else SelectOptions()
        choices = select_options.options
        if select_options.allow_other:
            choices = choices + (SelectOption(value=OTHER_VALUE, label=OTHER_LABEL),)
        select = Control(
            name=field_def.name, element_id=element_id, kind="select",
            options=choices, default_value=select_options.default_value, **common,
        )
        if select_options.allow_other:
            other = Control(
                name=f"{field_def.name}{OTHER_SUFFIX}", element_id=f"{element_id}-other",
                kind="input", input_type="text", label=f"{label} ({OTHER_LABEL})",
            )
            controls = (select, other)
        else:
            controls = (select,)
    elif field_type is FieldType.CHECKBOX:
        # Checkboxes carry their label inline.
        controls = (Control(
            name=field_def.name, element_id=element_id, kind="checkbox",
            input_type="checkbox", label=label, required=field_def.required,
        ),)
        return RenderedField(field_def, controls, None, field_def.required, field_def.help_text, error_id)
    elif field_type is FieldType.NAME:
        name_options = field_def.options if isinstance(field_def.options, NameOptions) else NameOptions()
        controls = tuple(
            Control(
                name=f"{field_def.name}.{part.value}", element_id=f"{element_id}-{part.value}",
                kind="input", input_type="text", label=name_options.label_for(part),
                required=name_options.is_part_required(part, field_def.required), part=part,
            )
            for part in name_options.parts
        )
    else:
        input_type = _INPUT_TYPES.get(field_type, "text")
        controls = (Control(name=field_def.name, element_id=element_id, kind="input",
                            input_type=input_type, **common),)

    return RenderedField(field_def, controls, label, field_def.required, field_def.help_text, error_id)


def render_form(definition: EmbedDefinition, instance_id: str = "cof-0") -> RenderedForm:
    """Build the control tree for a form definition, in field order."""
    return RenderedForm(
        instance_id=instance_id,
        fields=tuple(_render_field(f, instance_id) for f in definition.fields),
        theme=definition.default_theme,
    )


def _checked(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "off", "0")
    return bool(value)


def _hidden_value(options: Optional[HiddenOptions], page: PageContext) -> str:
    if options is None:
        return ""
    source = options.value_source
    if source is HiddenValueSource.STATIC:
        return options.static_value or ""
    if source is HiddenValueSource.URL_PARAM:
        return page.query_param(options.param_name or "")
    if source is HiddenValueSource.PAGE_URL:
        return page.url
    if source is HiddenValueSource.REFERRER:
        return page.referrer
    return ""


def collect_values(
    rendered: RenderedForm,
    form_state: Mapping[str, Any],
    page: Optional[PageContext] = None,
) -> Dict[str, Any]:
    """Turn control values into a submission payload.

    Args:
        rendered: The rendered form
        form_state: Control name -> current control value
        page: Embedding page, used by HIDDEN value sources
    """
    page = page or PageContext()
    data: Dict[str, Any] = {}

    for rendered_field in rendered.fields:
        field_def = rendered_field.field
        name = field_def.name
        field_type = field_def.type

        if field_type is FieldType.CHECKBOX:
            data[name] = _checked(form_state.get(name))
        elif field_type is FieldType.NAME:
            data[name] = {
                c.part.value: str(form_state.get(c.name) or "")
                for c in rendered_field.controls if c.part is not None
            }
        elif field_type is FieldType.HIDDEN:
            options = field_def.options if isinstance(field_def.options, HiddenOptions) else None
            data[name] = _hidden_value(options, page)
        elif field_type is FieldType.SELECT:
            value = form_state.get(name)
            if value is None and isinstance(field_def.options, SelectOptions):
                value = field_def.options.default_value
            value = "" if value is None else str(value)
            if value == OTHER_VALUE:
                value = str(form_state.get(f"{name}{OTHER_SUFFIX}") or "")
            data[name] = value
        else:
            value = form_state.get(name)
            data[name] = "" if value is None else value
    return data


class Transport(Protocol):
    """How an EmbedForm reaches the server."""

    def fetch_definition(self) -> Dict[str, Any]:
        ...

    def submit(self, values: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        ...


class HttpTransport:
    """Talks to the public embed endpoints over HTTP.

    Forms are addressed either by id (``/api/embed/{form_id}``) or by site
    API key and slug (``/api/embed/{api_key}/{slug}``).
    """

    def __init__(
        self,
        form_id: Optional[str] = None,
        api_key: Optional[str] = None,
        slug: Optional[str] = None,
        base_url: Optional[str] = None,
        origin: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        if form_id:
            self.path = f"/api/embed/{form_id}"
        elif api_key and slug:
            self.path = f"/api/embed/{api_key}/{slug}"
        else:
            raise ValueError("Either form_id or api_key and slug are required")

        headers = {"Content-Type": "application/json"}
        if origin:
            headers["Origin"] = origin
        self._client = client or httpx.Client(
            base_url=base_url if base_url is not None else settings.embed_base_url,
            headers=headers,
            timeout=settings.embed_timeout_seconds,
        )
        if client is not None:
            self._client.headers.update(headers)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        """Close the underlying httpx client."""
        self._client.close()

    def fetch_definition(self) -> Dict[str, Any]:
        """Fetch the public form definition.

        Returns:
            Definition JSON as returned by the embed endpoint

        Raises:
            EmbedLoadError: Network failure or an HTTP error status
        """
        try:
            response = self._client.get(self.path)
        except httpx.HTTPError as e:
            raise EmbedLoadError(f"Failed to load form definition: {e}") from e
        if response.status_code >= 400:
            raise EmbedLoadError(f"Failed to load form definition: HTTP {response.status_code}")
        return response.json()

    def submit(self, values: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        """POST collected values to the form endpoint.

        Args:
            values: Payload built by collect_values()

        Returns:
            Tuple of (HTTP status, JSON body or {} when the body is not an object)

        Raises:
            TransportError: The request never got a response
        """
        try:
            response = self._client.post(self.path, json=values)
        except httpx.HTTPError as e:
            raise TransportError(str(e)) from e
        try:
            body = response.json()
        except ValueError:
            body = {}
        return response.status_code, body if isinstance(body, dict) else {}


class EmbedForm:
    """A stateful embedded form: load, render, pre-validate, submit.

    Attributes:
        status: Message shown above the form
        field_errors: Field name -> message currently displayed
        redirect_to: Set when a successful submission should navigate away

    Examples:
        >>> class Offline:
        ...     def fetch_definition(self):
        ...         raise EmbedLoadError("offline")
        >>> form = EmbedForm(Offline())
        >>> form.init()
        False
        >>> form.status.message
        'Unable to load form. Please try again later.'
    """

    _instance_ids = itertools.count()

    def __init__(
        self,
        transport: Transport,
        page: Optional[PageContext] = None,
        engine: Optional[ValidationEngine] = None,
    ):
        self.transport = transport
        self.page = page or PageContext()
        self.engine = engine or ValidationEngine()
        self.instance_id = f"cof-{next(EmbedForm._instance_ids)}"
        self.definition: Optional[EmbedDefinition] = None
        self.rendered: Optional[RenderedForm] = None
        self.status = FormStatus()
        self.field_errors: Dict[str, str] = {}
        self.redirect_to: Optional[str] = None
        self.submitting = False

    def init(self) -> bool:
        """Fetch and render the definition. Returns False if the form cannot be shown."""
        try:
            self.definition = EmbedDefinition.from_dict(self.transport.fetch_definition())
        except Exception:
            logger.exception("Unable to load form definition")
            self._set_status(LOAD_FAILED_MESSAGE, "error")
            return False

        if not self.definition.fields:
            self._set_status(NOT_CONFIGURED_MESSAGE, "error")
            return False

        self.rendered = render_form(self.definition, self.instance_id)
        return True

    def validate(self, form_state: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, str]]:
        """Collect and pre-validate without submitting."""
        if self.rendered is None or self.definition is None:
            raise RuntimeError("Form is not initialized")
        values = collect_values(self.rendered, form_state, self.page)
        result = self.engine.validate(self.definition.fields, values)
        return values, result.errors

    def submit(self, form_state: Mapping[str, Any]) -> bool:
        """Pre-validate and, if clean, send the submission.

        Returns:
            True if the server accepted the submission
        """
        if self.definition is None or self.rendered is None:
            return False

        self._set_status("", "info")
        values, errors = self.validate(form_state)
        self.field_errors = errors
        if errors:
            self._set_status(FIX_FIELDS_MESSAGE, "error")
            return False

        self.submitting = True
        try:
            status_code, body = self.transport.submit(values)
        except TransportError:
            logger.warning("Submission for form %s failed in transit", self.definition.form_id)
            self._set_status(SUBMIT_FAILED_MESSAGE, "error")
            return False
        finally:
            self.submitting = False

        if status_code >= 400:
            if isinstance(body.get("fields"), dict):
                self.field_errors = dict(body["fields"])
            self._set_status(body.get("error") or "Submission failed.", "error")
            return False

        if self.definition.redirect_url:
            self.redirect_to = self.definition.redirect_url
            return True

        self._set_status(self.definition.success_message or DEFAULT_SUCCESS_MESSAGE, "success")
        return True

    def _set_status(self, message: str, kind: str) -> None:
        self.status = FormStatus(message=message, kind=kind)


__all__ = [
    "OTHER_VALUE",
    "EmbedDefinition",
    "EmbedForm",
    "EmbedLoadError",
    "TransportError",
    "Control",
    "RenderedField",
    "RenderedForm",
    "PageContext",
    "FormStatus",
    "HttpTransport",
    "Transport",
    "render_form",
    "collect_values",
]
