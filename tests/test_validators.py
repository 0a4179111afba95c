"""Tests for sign-in / sign-up form validation."""

import pytest

from fieldtrack.errors import ValidationError
from fieldtrack.shared.validators import require_text, validate_auth_form


class TestAuthForm:
    def test_valid_sign_in_normalizes_email(self):
        assert validate_auth_form("  Olivia@Example.com ", "secret1") == "olivia@example.com"

    def test_missing_fields(self):
        with pytest.raises(ValidationError, match="All fields are required."):
            validate_auth_form("", "secret1")

    def test_sign_up_requires_name(self):
        with pytest.raises(ValidationError, match="All fields are required."):
            validate_auth_form("a@b.co", "secret1", name="", is_sign_up=True)

    def test_short_name_reported_before_email(self):
        with pytest.raises(ValidationError, match="Name must be at least 2 characters long."):
            validate_auth_form("not-an-email", "secret1", name="A", is_sign_up=True)

    def test_bad_email(self):
        with pytest.raises(ValidationError, match="Please enter a valid email address."):
            validate_auth_form("olivia@", "secret1")

    def test_short_password(self):
        with pytest.raises(ValidationError, match="Password must be at least 6 characters long."):
            validate_auth_form("olivia@example.com", "12345")


class TestRequireText:
    def test_strips(self):
        assert require_text("  Drill ", "missing") == "Drill"

    def test_blank(self):
        with pytest.raises(ValidationError, match="Please provide a task title"):
            require_text("   ", "Please provide a task title")
