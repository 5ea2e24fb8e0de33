"""Request-derived inputs for the submission runtime.

The runtime does not depend on a web framework. Adapters build an
InboundRequest from whatever their framework hands them; this module extracts
the origin, referer, client IP and the size-capped JSON body from it.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from formgate.errors import MalformedPayload, PayloadTooLarge

UNKNOWN_IP = "unknown"


@dataclass(frozen=True)
class InboundRequest:
    """A framework-neutral view of an inbound HTTP request.

    Header names are matched case-insensitively.

    Examples:
        >>> req = InboundRequest(headers={"Origin": "https://acme.com"}, body=b"{}")
        >>> req.header("origin")
        'https://acme.com'
    """
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Union[bytes, str] = b""
    method: str = "POST"

    def __post_init__(self):
        object.__setattr__(self, "headers", {k.lower(): v for k, v in self.headers.items()})

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def origin(self) -> Optional[str]:
        return self.header("origin")

    @property
    def referer(self) -> Optional[str]:
        return self.header("referer")

    @property
    def user_agent(self) -> Optional[str]:
        return self.header("user-agent")

    @property
    def content_type(self) -> str:
        return self.header("content-type") or ""


def get_client_ip(request: InboundRequest) -> str:
    """Client IP from X-Forwarded-For (first hop), X-Real-IP, else "unknown"."""
    forwarded_for = request.header("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = request.header("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return UNKNOWN_IP


def read_body(request: InboundRequest, max_bytes: int) -> str:
    """Return the request body as text, refusing anything over ``max_bytes``.

    The declared Content-Length is checked before the body is touched.

    Raises:
        PayloadTooLarge: Declared or actual size over the limit
        MalformedPayload: Body is not valid UTF-8
    """
    content_length = request.header("content-length")
    if content_length:
        try:
            declared = int(content_length)
        except ValueError:
            declared = 0
        if declared > max_bytes:
            raise PayloadTooLarge()

    raw = request.body
    size = len(raw) if isinstance(raw, bytes) else len(raw.encode("utf-8"))
    if size > max_bytes:
        raise PayloadTooLarge()
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedPayload("Invalid request body")
    return raw


def parse_json_object(request: InboundRequest, max_bytes: int) -> Dict[str, Any]:
    """Parse a size-capped JSON object body.

    Raises:
        PayloadTooLarge: Body over the limit
        MalformedPayload: Body is not a JSON object
    """
    text = read_body(request, max_bytes)
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        # Nesting deeper than the interpreter stack is malformed input too.
        raise MalformedPayload()
    if not isinstance(payload, dict):
        raise MalformedPayload()
    return payload


def parse_field_value(request: InboundRequest, max_bytes: int) -> Any:
    """Parse a single-field body.

    JSON bodies may be ``{"value": ...}`` or the value itself; any other
    content type is taken as plain text.
    """
    text = read_body(request, max_bytes)
    if "application/json" not in request.content_type:
        return text
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        raise MalformedPayload("Invalid request body")
    if isinstance(parsed, dict) and "value" in parsed:
        return parsed["value"]
    return parsed


__all__ = [
    "InboundRequest",
    "UNKNOWN_IP",
    "get_client_ip",
    "read_body",
    "parse_json_object",
    "parse_field_value",
]
