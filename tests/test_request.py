"""Tests for request-derived inputs: headers, client IP and body parsing."""

import pytest

from formgate.errors import MalformedPayload, PayloadTooLarge
from formgate.request import (
    InboundRequest,
    get_client_ip,
    parse_field_value,
    parse_json_object,
    read_body,
)


class TestInboundRequest:
    def test_headers_case_insensitive(self):
        req = InboundRequest(headers={"Origin": "https://acme.com", "User-Agent": "UA/1.0"})
        assert req.origin == "https://acme.com"
        assert req.header("ORIGIN") == "https://acme.com"
        assert req.user_agent == "UA/1.0"
        assert req.referer is None
        assert req.content_type == ""


class TestClientIp:
    """Test client IP extraction behind proxies."""

    def test_first_forwarded_hop(self):
        req = InboundRequest(headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "X-Real-IP": "10.0.0.2"})
        assert get_client_ip(req) == "203.0.113.9"

    def test_real_ip_fallback(self):
        assert get_client_ip(InboundRequest(headers={"X-Real-IP": " 198.51.100.4 "})) == "198.51.100.4"

    def test_unknown(self):
        assert get_client_ip(InboundRequest()) == "unknown"


class TestReadBody:
    """Test the payload size cap."""

    def test_declared_length_over_limit(self):
        """Should refuse on Content-Length before reading the body."""
        req = InboundRequest(headers={"Content-Length": "100000"}, body=b"{}")
        with pytest.raises(PayloadTooLarge):
            read_body(req, 1024)

    def test_actual_size_over_limit(self):
        req = InboundRequest(body=b"x" * 2048)
        with pytest.raises(PayloadTooLarge) as exc_info:
            read_body(req, 1024)
        assert exc_info.value.status == 413

    def test_size_counted_in_bytes(self):
        """Should count encoded bytes, not characters."""
        with pytest.raises(PayloadTooLarge):
            read_body(InboundRequest(body="é" * 600), 1024)

    def test_invalid_utf8(self):
        with pytest.raises(MalformedPayload):
            read_body(InboundRequest(body=b"\xff\xfe"), 1024)

    def test_within_limit(self):
        assert read_body(InboundRequest(body=b'{"a": 1}'), 1024) == '{"a": 1}'


class TestParseJsonObject:
    def test_object(self):
        assert parse_json_object(InboundRequest(body=b'{"email": "a@b.co"}'), 1024) == {"email": "a@b.co"}

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b'"text"', b""])
    def test_rejects_non_objects(self, body):
        with pytest.raises(MalformedPayload) as exc_info:
            parse_json_object(InboundRequest(body=body), 1024)
        assert exc_info.value.to_dict() == {"error": "Invalid JSON"}

    def test_deeply_nested_json(self):
        """Should treat nesting past the recursion limit as invalid JSON."""
        with pytest.raises(MalformedPayload) as exc_info:
            parse_json_object(InboundRequest(body=b"[" * 60000), 64 * 1024)
        assert exc_info.value.to_dict() == {"error": "Invalid JSON"}


class TestParseFieldValue:
    """Test single-field bodies."""

    def test_value_wrapper(self):
        req = InboundRequest(headers={"Content-Type": "application/json"}, body=b'{"value": "Ada"}')
        assert parse_field_value(req, 1024) == "Ada"

    def test_bare_json_value(self):
        req = InboundRequest(headers={"Content-Type": "application/json; charset=utf-8"}, body=b"true")
        assert parse_field_value(req, 1024) is True

    def test_plain_text(self):
        req = InboundRequest(headers={"Content-Type": "text/plain"}, body=b"hello")
        assert parse_field_value(req, 1024) == "hello"

    def test_bad_json(self):
        req = InboundRequest(headers={"Content-Type": "application/json"}, body=b"{oops")
        with pytest.raises(MalformedPayload):
            parse_field_value(req, 1024)

    def test_deeply_nested_json(self):
        req = InboundRequest(headers={"Content-Type": "application/json"}, body=b"[" * 60000)
        with pytest.raises(MalformedPayload):
            parse_field_value(req, 64 * 1024)
