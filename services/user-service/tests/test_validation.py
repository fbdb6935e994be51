from __future__ import annotations

import pytest

from user_service.domain.validation import (
    EMAIL_MAX_LENGTH,
    email_violations,
    password_policy_violations,
)

from conftest import PASSWORD


def test_strong_password_has_no_violations():
    assert password_policy_violations(PASSWORD) == []


@pytest.mark.parametrize(
    "raw, fragment",
    [
        ("Sh0rt!", "between 8 and 72"),
        ("A" * 120 + "a1!" + "b" * 10, "between 8 and 72"),
        ("UPPERCASE1!", "lowercase"),
        ("lowercase1!", "uppercase"),
        ("NoDigitsHere!", "digit"),
        ("NoSpecial123", "one of @$!%*?&"),
        ("Bad#Char123!", "may only contain"),
    ],
)
def test_password_policy_reports_each_rule(raw, fragment):
    problems = password_policy_violations(raw)

    assert any(fragment in problem for problem in problems)


def test_password_length_is_capped_at_bcrypt_input_limit():
    at_limit = "Aa1!" + "x" * 68
    over_limit = at_limit + "y"

    assert password_policy_violations(at_limit) == []
    assert password_policy_violations(over_limit) == ["must be between 8 and 72 characters"]


def test_empty_password_breaks_every_class_rule():
    assert len(password_policy_violations("")) == 5


def test_email_checks():
    assert email_violations("a@b.com") == []
    assert email_violations("   ") == ["is required"]
    assert email_violations("x" * EMAIL_MAX_LENGTH + "@b.com") == [
        f"must not exceed {EMAIL_MAX_LENGTH} characters"
    ]


def test_password_hasher_salts_and_verifies(hasher):
    first = hasher.hash(PASSWORD)
    second = hasher.hash(PASSWORD)

    assert first != second
    assert hasher.verify(PASSWORD, first)
    assert not hasher.verify("Wrong123!", first)
    hasher.dummy_verify()
