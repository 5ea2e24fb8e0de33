"""Unit tests for the field validation engine.

Tests cover:
- Required handling for every field type
- EMAIL format, domain allow/block lists and normalization
- PHONE lenient and strict formats
- DATE parsing, relative bounds and "today"
- NAME part requirements and SELECT membership
- Length ceilings, text formats and owner patterns
- Result structure and determinism
"""

from datetime import date, datetime

import pytest

from formgate.fields import (
    DateValidation,
    DomainRules,
    EmailValidation,
    FieldDefinition,
    NameOptions,
    PhoneValidation,
    SelectOption,
    SelectOptions,
    TextValidation,
)
from formgate.types import FieldType, NamePart, PhoneFormat, TextFormat
from formgate.validation import (
    ValidationEngine,
    ValidationResult,
    effective_max_length,
    normalize_phone,
    parse_date,
    validate_submission,
)

NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def engine():
    return ValidationEngine(clock=lambda: NOW)


def text_field(name="name", label="Name", required=False, **rules):
    validation = TextValidation(**rules) if rules else None
    return FieldDefinition(name=name, type=FieldType.TEXT, label=label, required=required, validation=validation)


class TestRequired:
    """Test the required check for each field type."""

    def test_missing_required_text(self, engine):
        """Should report '<Label> is required.' for a missing value."""
        result = engine.validate([text_field(required=True)], {})
        assert result.errors == {"name": "Name is required."}

    def test_whitespace_only_counts_as_missing(self, engine):
        """Should treat whitespace-only strings as empty."""
        result = engine.validate([text_field(required=True)], {"name": "   "})
        assert result.errors == {"name": "Name is required."}

    def test_label_falls_back_to_name(self, engine):
        """Should use the field name when no label is configured."""
        field_def = FieldDefinition(name="company", type=FieldType.TEXT, required=True)
        result = engine.validate([field_def], {})
        assert result.errors == {"company": "company is required."}

    def test_optional_empty_field_skips_all_rules(self, engine):
        """Should not apply format rules to an empty optional field."""
        field_def = FieldDefinition(name="email", type=FieldType.EMAIL, label="Email")
        result = engine.validate([field_def], {"email": ""})
        assert result.is_valid is True

    def test_required_checkbox_must_be_checked(self, engine):
        """Should reject an unchecked required checkbox."""
        field_def = FieldDefinition(name="terms", type=FieldType.CHECKBOX, label="Terms", required=True)
        assert engine.validate([field_def], {"terms": False}).errors == {"terms": "Terms is required."}
        assert engine.validate([field_def], {"terms": True}).is_valid is True

    def test_optional_unchecked_checkbox_is_valid(self, engine):
        """Should accept an unchecked optional checkbox."""
        field_def = FieldDefinition(name="news", type=FieldType.CHECKBOX, label="Newsletter")
        assert engine.validate([field_def], {"news": False}).is_valid is True


class TestEmail:
    """Test EMAIL validation."""

    def test_invalid_format(self, engine):
        """Should reject values that are not email addresses."""
        field_def = FieldDefinition(name="email", type=FieldType.EMAIL, label="Email")
        result = engine.validate([field_def], {"email": "not-an-email"})
        assert result.errors == {"email": "Enter a valid email address"}

    def test_valid_format(self, engine):
        """Should accept a well-formed address."""
        field_def = FieldDefinition(name="email", type=FieldType.EMAIL, label="Email")
        assert engine.validate([field_def], {"email": "ada.lovelace+forms@example.co.uk"}).is_valid

    def test_custom_message_replaces_format_message(self, engine):
        """Should use the configured message for format failures."""
        field_def = FieldDefinition(
            name="email", type=FieldType.EMAIL, label="Email",
            validation=EmailValidation(message="Work email please"),
        )
        result = engine.validate([field_def], {"email": "nope"})
        assert result.errors == {"email": "Work email please"}

    def test_allow_list(self, engine):
        """Should require the domain to be on the allow list, case-insensitively."""
        field_def = FieldDefinition(
            name="email", type=FieldType.EMAIL, label="Email",
            validation=EmailValidation(domain_rules=DomainRules(allow=("Acme.com",))),
        )
        assert engine.validate([field_def], {"email": "ada@ACME.com"}).is_valid
        result = engine.validate([field_def], {"email": "ada@other.com"})
        assert result.errors == {"email": "Email must be from an allowed domain."}

    def test_block_list(self, engine):
        """Should reject blocked domains."""
        field_def = FieldDefinition(
            name="email", type=FieldType.EMAIL, label="Email",
            validation=EmailValidation(domain_rules=DomainRules(block=("spam.com",))),
        )
        result = engine.validate([field_def], {"email": "a@Spam.com"})
        assert result.errors == {"email": "Email domain is not allowed."}

    def test_allow_list_checked_before_block_list(self, engine):
        """Should report the allow-list failure first."""
        field_def = FieldDefinition(
            name="email", type=FieldType.EMAIL, label="Email",
            validation=EmailValidation(domain_rules=DomainRules(allow=("acme.com",), block=("spam.com",))),
        )
        result = engine.validate([field_def], {"email": "a@spam.com"})
        assert result.errors == {"email": "Email must be from an allowed domain."}

    def test_default_max_length(self, engine):
        """Should cap EMAIL values at 254 characters by default."""
        field_def = FieldDefinition(name="email", type=FieldType.EMAIL, label="Email")
        value = "a" * 250 + "@example.com"
        result = engine.validate([field_def], {"email": value})
        assert result.errors == {"email": "Email must be at most 254 characters."}

    def test_normalize_lowercases_stored_value(self, engine):
        """Should lower-case the stored value once everything is valid."""
        field_def = FieldDefinition(
            name="email", type=FieldType.EMAIL, label="Email",
            validation=EmailValidation(normalize=True),
        )
        result = engine.validate([field_def], {"email": "Ada@Example.COM"})
        assert result.data == {"email": "ada@example.com"}

    def test_normalize_waits_for_all_fields(self, engine):
        """Should leave the original value when another field fails."""
        email = FieldDefinition(
            name="email", type=FieldType.EMAIL, label="Email",
            validation=EmailValidation(normalize=True),
        )
        payload = {"email": "Ada@Example.COM"}
        result = engine.validate([email, text_field(required=True)], payload)
        assert result.errors == {"name": "Name is required."}
        assert result.data["email"] == "Ada@Example.COM"


class TestPhone:
    """Test PHONE validation."""

    def test_lenient_accepts_common_punctuation(self, engine):
        """Should accept digits with spaces, dashes, dots, parens and plus."""
        field_def = FieldDefinition(name="phone", type=FieldType.PHONE, label="Phone")
        for value in ("555-0100", "+44 20 7946 0958", "(415) 555.0100"):
            assert engine.validate([field_def], {"phone": value}).is_valid, value

    def test_lenient_rejects_letters_and_short_values(self, engine):
        """Should reject letters and fewer than seven characters."""
        field_def = FieldDefinition(name="phone", type=FieldType.PHONE, label="Phone")
        for value in ("call me", "12345"):
            result = engine.validate([field_def], {"phone": value})
            assert result.errors == {"phone": "Phone must be a valid phone number."}

    def test_strict_normalizes_us_numbers(self, engine):
        """Should store strict numbers as +1XXXXXXXXXX."""
        field_def = FieldDefinition(
            name="phone", type=FieldType.PHONE, label="Phone",
            validation=PhoneValidation(format=PhoneFormat.STRICT),
        )
        result = engine.validate([field_def], {"phone": "(415) 555-0100"})
        assert result.is_valid
        assert result.data == {"phone": "+14155550100"}

    def test_strict_rejects_non_us_numbers(self, engine):
        """Should reject numbers that are not ten US digits."""
        field_def = FieldDefinition(
            name="phone", type=FieldType.PHONE, label="Phone",
            validation=PhoneValidation(format=PhoneFormat.STRICT),
        )
        result = engine.validate([field_def], {"phone": "555-0100"})
        assert result.errors == {"phone": "Phone must be a valid US phone number (10 digits)."}

    def test_normalize_phone_is_idempotent(self):
        """Should leave canonical numbers unchanged."""
        assert normalize_phone("+14155550100") == "+14155550100"
        assert normalize_phone("1-415-555-0100") == "+14155550100"
        assert normalize_phone("+44 20 7946 0958") is None


class TestDate:
    """Test DATE validation."""

    def date_field(self, **rules):
        return FieldDefinition(
            name="when", type=FieldType.DATE, label="Date",
            validation=DateValidation(**rules) if rules else None,
        )

    def test_unparseable_date(self, engine):
        """Should reject values that are not dates."""
        result = engine.validate([self.date_field()], {"when": "banana"})
        assert result.errors == {"when": "Date must be a valid date."}

    def test_out_of_range_datetime_is_invalid(self, engine):
        """Should report an hour-24 overflow as an invalid date."""
        result = engine.validate([self.date_field()], {"when": "9999-12-31T24:00"})
        assert result.errors == {"when": "Date must be a valid date."}

    def test_partial_date_uses_validation_year(self, engine):
        """Should fill a missing year from the validation time, not the wall clock."""
        field_def = self.date_field(no_future=True)
        assert engine.validate([field_def], {"when": "March 3"}, now=datetime(2020, 6, 15)).is_valid

        result = engine.validate([field_def], {"when": "December 3"}, now=datetime(2020, 6, 15))
        assert result.errors == {"when": "Date cannot be a future date."}

    def test_parse_date_default(self):
        assert parse_date("March 3", default=date(2020, 6, 15)) == date(2020, 3, 3)
        assert parse_date("March 3") == date(1970, 3, 3)

    def test_no_future(self, engine):
        """Should reject dates after today."""
        field_def = self.date_field(no_future=True)
        assert engine.validate([field_def], {"when": "2024-06-15"}).is_valid
        result = engine.validate([field_def], {"when": "2024-06-16"})
        assert result.errors == {"when": "Date cannot be a future date."}

    def test_no_past(self, engine):
        """Should reject dates before today."""
        result = engine.validate([self.date_field(no_past=True)], {"when": "2024-06-14"})
        assert result.errors == {"when": "Date cannot be a past date."}

    def test_min_date_today_resolves_at_validation_time(self, engine):
        """Should resolve 'today' against the validation clock."""
        field_def = self.date_field(min_date="today")
        result = engine.validate([field_def], {"when": "2024-06-14"})
        assert result.errors == {"when": "Date must be on or after 2024-06-15."}

        later = engine.validate([field_def], {"when": "2024-06-14"}, now=datetime(2024, 6, 1))
        assert later.is_valid

    def test_max_date(self, engine):
        """Should reject dates after the configured maximum."""
        result = engine.validate([self.date_field(max_date="2024-12-31")], {"when": "2025-01-01"})
        assert result.errors == {"when": "Date must be on or before 2024-12-31."}

    def test_custom_message(self, engine):
        """Should use the configured message for range failures."""
        field_def = self.date_field(no_future=True, message="Pick an earlier day")
        result = engine.validate([field_def], {"when": "2030-01-01"})
        assert result.errors == {"when": "Pick an earlier day"}

    def test_parse_date(self):
        """Should parse ISO dates and datetimes."""
        assert parse_date("2024-02-29") == date(2024, 2, 29)
        assert parse_date("2024-02-29T10:00:00Z") == date(2024, 2, 29)
        assert parse_date("") is None


class TestName:
    """Test NAME validation."""

    def test_required_field_requires_every_part(self, engine):
        """Should report the first missing part by its label."""
        field_def = FieldDefinition(name="name", type=FieldType.NAME, label="Name", required=True)
        result = engine.validate([field_def], {"name": {"first": "", "last": "Doe"}})
        assert result.errors == {"name": "First Name is required."}

    def test_parts_required_on_optional_field(self, engine):
        """Should enforce partsRequired even when the field is optional."""
        field_def = FieldDefinition(
            name="name", type=FieldType.NAME, label="Name",
            options=NameOptions(parts_required={"last": True}),
        )
        result = engine.validate([field_def], {"name": {"first": "Ada"}})
        assert result.errors == {"name": "Last Name is required."}

    def test_custom_part_label(self, engine):
        """Should use configured part labels in messages."""
        field_def = FieldDefinition(
            name="name", type=FieldType.NAME, label="Name", required=True,
            options=NameOptions(parts=(NamePart.SINGLE,), part_labels={"single": "Your name"}),
        )
        result = engine.validate([field_def], {"name": {}})
        assert result.errors == {"name": "Your name is required."}

    def test_non_mapping_value_treated_as_empty(self, engine):
        """Should treat a plain string as having no parts."""
        field_def = FieldDefinition(name="name", type=FieldType.NAME, label="Name", required=True)
        result = engine.validate([field_def], {"name": "Ada Lovelace"})
        assert result.errors == {"name": "First Name is required."}

    def test_optional_name_may_be_absent(self, engine):
        """Should accept a missing optional NAME."""
        field_def = FieldDefinition(name="name", type=FieldType.NAME, label="Name")
        assert engine.validate([field_def], {}).is_valid


class TestSelect:
    """Test SELECT validation."""

    def test_value_must_be_an_option(self, engine):
        """Should reject values outside the configured options."""
        field_def = FieldDefinition(
            name="plan", type=FieldType.SELECT, label="Plan",
            options=SelectOptions(options=(SelectOption("a", "A"), SelectOption("b", "B"))),
        )
        assert engine.validate([field_def], {"plan": "a"}).is_valid
        result = engine.validate([field_def], {"plan": "c"})
        assert result.errors == {"plan": "Plan must be a valid option."}

    def test_no_options_accepts_anything(self, engine):
        """Should skip the membership check when no options are configured."""
        field_def = FieldDefinition(name="plan", type=FieldType.SELECT, label="Plan")
        assert engine.validate([field_def], {"plan": "anything"}).is_valid


class TestLengthAndFormat:
    """Test the generic length and text format pass."""

    def test_default_text_ceiling(self, engine):
        """Should cap TEXT at 200 characters by default."""
        result = engine.validate([text_field()], {"name": "x" * 201})
        assert result.errors == {"name": "Name must be at most 200 characters."}

    def test_configured_max_cannot_exceed_ceiling(self, engine):
        """Should never loosen past the absolute ceiling."""
        field_def = text_field(max_length=9000)
        assert effective_max_length(field_def) == 500
        assert engine.validate([field_def], {"name": "x" * 500}).is_valid
        result = engine.validate([field_def], {"name": "x" * 501})
        assert result.errors == {"name": "Name must be at most 500 characters."}

    def test_configured_max_tightens(self, engine):
        """Should honour a tighter configured maximum."""
        result = engine.validate([text_field(max_length=5)], {"name": "abcdef"})
        assert result.errors == {"name": "Name must be at most 5 characters."}

    def test_textarea_default(self):
        """Should default TEXTAREA to 2000 with a 10000 ceiling."""
        field_def = FieldDefinition(name="msg", type=FieldType.TEXTAREA)
        assert effective_max_length(field_def) == 2000
        capped = FieldDefinition(
            name="msg", type=FieldType.TEXTAREA, validation=TextValidation(max_length=50000),
        )
        assert effective_max_length(capped) == 10000

    def test_min_length(self, engine):
        """Should check minLength before maxLength."""
        result = engine.validate([text_field(min_length=3)], {"name": "ab"})
        assert result.errors == {"name": "Name must be at least 3 characters."}

    def test_custom_message_replaces_length_message(self, engine):
        """Should use the configured message for length failures."""
        result = engine.validate([text_field(min_length=5, message="Too short!")], {"name": "abc"})
        assert result.errors == {"name": "Too short!"}

    def test_numbers_format(self, engine):
        result = engine.validate([text_field(label="Zip", format=TextFormat.NUMBERS)], {"name": "12a"})
        assert result.errors == {"name": "Zip must contain only numbers."}

    def test_letters_format(self, engine):
        result = engine.validate([text_field(format=TextFormat.LETTERS)], {"name": "Ada1"})
        assert result.errors == {"name": "Name must contain only letters."}

    def test_postal_formats(self, engine):
        """Should accept US and Canadian postal codes in their formats."""
        us = text_field(label="Zip", format=TextFormat.POSTAL_US)
        assert engine.validate([us], {"name": "12345-6789"}).is_valid
        assert engine.validate([us], {"name": "1234"}).errors == {
            "name": "Zip must be a valid US postal code (e.g., 12345 or 12345-6789)."
        }
        ca = text_field(label="Postal", format=TextFormat.POSTAL_CA)
        assert engine.validate([ca], {"name": "K1A 0B1"}).is_valid
        assert not engine.validate([ca], {"name": "12345"}).is_valid

    def test_url_format(self, engine):
        """Should accept URLs with or without a scheme."""
        field_def = text_field(label="Website", format=TextFormat.URL)
        assert engine.validate([field_def], {"name": "example.com"}).is_valid
        assert engine.validate([field_def], {"name": "https://example.com/path"}).is_valid
        result = engine.validate([field_def], {"name": "not a url"})
        assert result.errors == {"name": "Website must be a valid URL."}

    def test_alphanumeric_is_no_check(self, engine):
        """Should apply no extra check for the alphanumeric default."""
        field_def = text_field(format=TextFormat.ALPHANUMERIC)
        assert engine.validate([field_def], {"name": "anything goes! 123"}).is_valid

    def test_owner_pattern(self, engine):
        """Should reject values that do not match the owner pattern."""
        field_def = text_field(label="Code", pattern=r"^[A-Z]{3}$")
        assert engine.validate([field_def], {"name": "ABC"}).is_valid
        assert engine.validate([field_def], {"name": "abc"}).errors == {"name": "Code is invalid."}

    def test_uncompilable_pattern_is_skipped(self, engine):
        """Should ignore owner patterns that do not compile."""
        field_def = text_field(pattern="[unclosed")
        assert engine.validate([field_def], {"name": "anything"}).is_valid


class TestValidationResult:
    """Test result structure, independence and determinism."""

    def test_every_invalid_field_reported(self, engine):
        """Should evaluate every field independently."""
        fields = [
            FieldDefinition(
                name="email", type=FieldType.EMAIL, label="Email",
                validation=EmailValidation(domain_rules=DomainRules(block=("spam.com",))),
            ),
            FieldDefinition(
                name="name", type=FieldType.NAME, label="Name", required=True,
                options=NameOptions(parts=(NamePart.FIRST, NamePart.LAST)),
            ),
        ]
        result = engine.validate(fields, {"email": "a@spam.com", "name": {"first": "", "last": "Doe"}})
        assert result.errors == {
            "email": "Email domain is not allowed.",
            "name": "First Name is required.",
        }

    def test_payload_is_not_mutated(self, engine):
        """Should return a copy and leave the input untouched."""
        field_def = FieldDefinition(
            name="email", type=FieldType.EMAIL, validation=EmailValidation(normalize=True),
        )
        payload = {"email": "ADA@EXAMPLE.COM"}
        result = engine.validate([field_def], payload)
        assert payload == {"email": "ADA@EXAMPLE.COM"}
        assert result.data is not payload

    def test_unknown_keys_are_kept(self, engine):
        """Should carry keys with no matching field through unchanged."""
        result = engine.validate([text_field()], {"name": "Ada", "utm_source": "ads"})
        assert result.data == {"name": "Ada", "utm_source": "ads"}

    def test_same_inputs_same_result(self, engine):
        """Should be deterministic for a fixed clock."""
        field_def = FieldDefinition(
            name="when", type=FieldType.DATE, label="Date", validation=DateValidation(min_date="today"),
        )
        payload = {"when": "2024-06-01"}
        first = engine.validate([field_def], payload)
        second = engine.validate([field_def], payload)
        assert first == second

    def test_to_dict(self):
        result = ValidationResult(errors={"a": "A is required."}, data={})
        assert result.to_dict() == {"isValid": False, "errors": {"a": "A is required."}, "data": {}}

    def test_validate_submission_helper(self):
        """Should validate with the shared engine."""
        result = validate_submission([text_field(required=True)], {"name": "Ada"}, now=NOW)
        assert result.is_valid
