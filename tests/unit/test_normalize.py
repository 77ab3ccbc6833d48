"""Unit tests for user_upload.normalize."""

import pytest

from user_upload.normalize import (
    FailureKind,
    NormalizedRow,
    ValidationFailure,
    capitalize_name,
    is_valid_email,
    normalize_email,
    trim,
    validate_row,
)


# ---------------------------------------------------------------------------
# trim
# ---------------------------------------------------------------------------

class TestTrim:
    def test_strips_whitespace(self):
        assert trim("  hello  ") == "hello"

    def test_empty_string_returns_none(self):
        assert trim("") is None

    def test_whitespace_only_returns_none(self):
        assert trim(" \t ") is None

    def test_none_returns_none(self):
        assert trim(None) is None


# ---------------------------------------------------------------------------
# capitalize_name
# ---------------------------------------------------------------------------

class TestCapitalizeName:
    def test_all_caps(self):
        assert capitalize_name("JOHN") == "John"

    def test_mixed_case(self):
        assert capitalize_name("jOHN") == "John"

    def test_trims(self):
        assert capitalize_name(" Doe ") == "Doe"

    def test_apostrophe_is_not_title_cased(self):
        assert capitalize_name("o'brien") == "O'brien"

    def test_hyphen_is_not_title_cased(self):
        assert capitalize_name("MARY-JANE") == "Mary-jane"

    def test_single_letter(self):
        assert capitalize_name("x") == "X"

    def test_multi_char_uppercase_left_alone(self):
        assert capitalize_name("ßTEFAN") == "ßtefan"

    def test_blank_returns_none(self):
        assert capitalize_name("   ") is None


# ---------------------------------------------------------------------------
# normalize_email / is_valid_email
# ---------------------------------------------------------------------------

class TestNormalizeEmail:
    def test_lowercases_and_trims(self):
        assert normalize_email("  User@Example.COM ") == "user@example.com"

    def test_empty(self):
        assert normalize_email("") is None


class TestIsValidEmail:
    @pytest.mark.parametrize("email", [
        "mo'connor@cat.net.nz",
        "sam!@walters.org",
        "user%example.com@example.org",
        "john.doe@example.com",
        "a+b-c_d@sub-domain.example.co.uk",
        "x{y}|z~@example.com",
        "admin@[192.168.0.1]",
    ])
    def test_accepted(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", [
        "edward@jikes@com.au",
        'just"not"right@example.com',
        "john..doe@example.com",
        ".john@example.com",
        "john.@example.com",
        "john@localhost",
        "john@-example.com",
        "john@example-.com",
        "john@example.123",
        "john@exa_mple.com",
        "@example.com",
        "john@",
        "johnexample.com",
        "john doe@example.com",
        "admin@[999.1.1.1]",
        "",
    ])
    def test_rejected(self, email):
        assert not is_valid_email(email)

    def test_local_part_too_long(self):
        assert not is_valid_email("a" * 65 + "@example.com")

    def test_local_part_at_limit(self):
        assert is_valid_email("a" * 64 + "@example.com")

    def test_label_too_long(self):
        assert not is_valid_email("a@" + "b" * 64 + ".com")

    def test_address_too_long(self):
        domain = ".".join(["d" * 60] * 5) + ".com"
        assert not is_valid_email("a@" + domain)


# ---------------------------------------------------------------------------
# validate_row
# ---------------------------------------------------------------------------

class TestValidateRow:
    def test_normalizes_all_fields(self):
        result = validate_row(["jOHN", " Doe ", " John.Doe@Example.COM "])
        assert result == NormalizedRow("John", "Doe", "john.doe@example.com")

    def test_too_few_columns(self):
        result = validate_row(["john", "doe"])
        assert isinstance(result, ValidationFailure)
        assert result.kind is FailureKind.TOO_FEW_COLUMNS

    def test_no_columns(self):
        result = validate_row([])
        assert isinstance(result, ValidationFailure)
        assert result.kind is FailureKind.TOO_FEW_COLUMNS

    def test_empty_name(self):
        result = validate_row(["  ", "doe", "john@example.com"])
        assert isinstance(result, ValidationFailure)
        assert result.kind is FailureKind.EMPTY_FIELD
        assert "name" in result.detail

    def test_empty_surname(self):
        result = validate_row(["john", "", "john@example.com"])
        assert isinstance(result, ValidationFailure)
        assert result.kind is FailureKind.EMPTY_FIELD
        assert "surname" in result.detail

    def test_invalid_email(self):
        result = validate_row(["edward", "jikes", "edward@jikes@com.au"])
        assert isinstance(result, ValidationFailure)
        assert result.kind is FailureKind.INVALID_EMAIL
        assert "edward@jikes@com.au" in str(result)

    def test_empty_email(self):
        result = validate_row(["john", "doe", " "])
        assert isinstance(result, ValidationFailure)
        assert result.kind is FailureKind.INVALID_EMAIL

    def test_extra_columns_are_kept_but_not_persisted(self):
        result = validate_row(["john", "doe", "john@example.com", "x", "y"])
        assert isinstance(result, NormalizedRow)
        assert result.extra == ("x", "y")
        assert result.as_params() == {
            "name": "John",
            "surname": "Doe",
            "email": "john@example.com",
        }

    def test_idempotent_on_normalized_row(self):
        first = validate_row(["mARY", "o'HARA", "Mary.OHara@Example.org"])
        assert isinstance(first, NormalizedRow)
        second = validate_row([first.name, first.surname, first.email])
        assert second == first

    def test_idempotent_on_non_ascii_names(self):
        first = validate_row(["ßtefan", "STRASSE", "a@b.com"])
        assert isinstance(first, NormalizedRow)
        assert first.name == "ßtefan"
        assert first.surname == "Strasse"
        second = validate_row([first.name, first.surname, first.email])
        assert second == first

    def test_accented_first_letter_is_upper_cased(self):
        result = validate_row(["élodie", "ÖZTÜRK", "e@example.com"])
        assert isinstance(result, NormalizedRow)
        assert (result.name, result.surname) == ("Élodie", "Öztürk")
