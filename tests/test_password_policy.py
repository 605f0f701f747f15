from datetime import datetime, timedelta, timezone

import bcrypt
import pytest

from app.core.errors import ValidationError
from app.services import password as passwords

STRONG = "Xk7#mPq2vL"

SINGLE_RULE_VIOLATIONS = [
    ("Xk7#mPq", "Password must be at least 8 characters long"),
    (STRONG * 13, "Password must not exceed 128 characters"),
    ("xk7#mpq2vl", "Password must contain at least one uppercase letter"),
    ("XK7#MPQ2VL", "Password must contain at least one lowercase letter"),
    ("Xkz#mPqwvL", "Password must contain at least one number"),
    ("Xk7NmPq2vL", "Password must contain at least one special character"),
    ("Xk7#mmmmPq2vL", "Password must not have more than 3 repeated characters"),
    ("Xk7#Password", "Password contains common patterns that are easy to guess"),
]


def test_strong_password_scores_full_marks():
    result = passwords.validate_password(STRONG)
    assert result.is_valid
    assert result.errors == []
    assert result.score == 100
    assert result.strength == "strong"


@pytest.mark.parametrize("password,message", SINGLE_RULE_VIOLATIONS)
def test_each_rule_reports_only_its_own_violation(password, message):
    result = passwords.validate_password(password)
    assert not result.is_valid
    assert result.errors == [message]


def test_too_long_password_is_invalid_despite_full_score():
    result = passwords.validate_password(STRONG * 13)
    assert result.score == 100
    assert not result.is_valid


def test_three_repeats_are_allowed():
    assert passwords.validate_password("Xk7#mmmPq2vL").is_valid


@pytest.mark.parametrize(
    "password,strength,score",
    [
        ("xk7#mpq2vl", "good", 85),
        ("xkzmpqwv", "fair", 55),
        ("abc", "weak", 35),
    ],
)
def test_strength_bands(password, strength, score):
    result = passwords.validate_password(password)
    assert result.score == score
    assert result.strength == strength


def test_deny_list_is_case_insensitive():
    assert passwords.has_common_patterns("xxQWERTYxx")
    assert passwords.has_common_patterns("Zxcvbn")
    assert not passwords.has_common_patterns(STRONG)


def test_hash_and_verify_round_trip():
    hashed = passwords.hash_password(STRONG)
    assert hashed.startswith("$2b$")
    assert passwords.verify_password(STRONG, hashed)
    assert not passwords.verify_password("Wr0ng#Pass", hashed)


def test_hash_rejects_policy_violations():
    with pytest.raises(ValidationError) as excinfo:
        passwords.hash_password("short")
    assert excinfo.value.status_code == 400
    assert "Password must be at least 8 characters long" in excinfo.value.details["errors"]


def _spy_checkpw(monkeypatch):
    calls = []
    real_checkpw = bcrypt.checkpw

    def spy(password, hashed):
        calls.append(hashed)
        return real_checkpw(password, hashed)

    monkeypatch.setattr(passwords.bcrypt, "checkpw", spy)
    return calls


@pytest.mark.parametrize(
    "stored",
    [None, "", "short", "$2b$12$dummyhashtopreventtimingattacks1234567890"],
)
def test_verify_runs_dummy_comparison_for_missing_or_malformed_hash(monkeypatch, stored):
    calls = _spy_checkpw(monkeypatch)
    assert passwords.verify_password(STRONG, stored) is False
    assert calls == [passwords.dummy_hash()]


def test_verify_falls_back_to_dummy_when_bcrypt_rejects_hash(monkeypatch):
    hashed = passwords.hash_password(STRONG)
    calls = []
    real_checkpw = bcrypt.checkpw

    def flaky(password, candidate):
        calls.append(candidate)
        if candidate != passwords.dummy_hash():
            raise ValueError("Invalid salt")
        return real_checkpw(password, candidate)

    monkeypatch.setattr(passwords.bcrypt, "checkpw", flaky)
    assert passwords.verify_password(STRONG, hashed) is False
    assert calls == [hashed.encode("utf-8"), passwords.dummy_hash()]


def test_verify_with_real_hash_runs_single_comparison(monkeypatch):
    hashed = passwords.hash_password(STRONG)
    calls = _spy_checkpw(monkeypatch)
    assert passwords.verify_password(STRONG, hashed)
    assert calls == [hashed.encode("utf-8")]


def test_secure_compare():
    assert passwords.secure_compare("abc123", "abc123")
    assert not passwords.secure_compare("abc123", "abc124")
    assert not passwords.secure_compare("abc", "abcd")


def test_generate_secure_password_satisfies_policy():
    for _ in range(20):
        generated = passwords.generate_secure_password()
        assert len(generated) == 16
        assert passwords.validate_password(generated).is_valid
    with pytest.raises(ValueError):
        passwords.generate_secure_password(3)


def test_password_age_helpers():
    now = datetime.now(timezone.utc)
    assert passwords.is_password_expired(now - timedelta(days=91))
    assert not passwords.is_password_expired(now - timedelta(days=1))
    assert passwords.can_change_password(now - timedelta(days=2))
    assert not passwords.can_change_password(now - timedelta(hours=1))


def test_password_reset_token_is_random_hex():
    first = passwords.generate_password_reset_token()
    second = passwords.generate_password_reset_token()
    assert len(first) == 64
    assert first != second
    int(first, 16)


def test_dummy_hash_is_built_before_first_request():
    import app.main  # noqa: F401

    assert passwords.dummy_hash.cache_info().currsize == 1
    assert passwords._BCRYPT_RE.match(passwords.dummy_hash().decode())
