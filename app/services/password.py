"""Password policy, bcrypt hashing and constant-time comparison helpers."""
import hmac
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import bcrypt

from app.core.config import settings
from app.core.errors import ValidationError

SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    max_length: int = 128
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_numbers: bool = True
    require_special_chars: bool = True
    max_repeated_chars: int = 3
    min_password_age: timedelta = timedelta(hours=24)
    max_password_age: timedelta = timedelta(days=90)


PASSWORD_POLICY = PasswordPolicy()

# Matched case-insensitively as substrings.
COMMON_PATTERNS = (
    "123456",
    "password",
    "admin",
    "qwerty",
    "abc123",
    "111111",
    "000000",
    "letmein",
    "welcome",
    "monkey",
)
SEQUENTIAL_PATTERNS = (
    "012345",
    "234567",
    "345678",
    "456789",
    "567890",
    "abcdef",
    "bcdefg",
    "cdefgh",
)
KEYBOARD_PATTERNS = ("asdfgh", "zxcvbn")

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"\d")
_SPECIAL_RE = re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]")
_BCRYPT_RE = re.compile(r"^\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}$")

# bcrypt only consumes the first 72 bytes of its input.
BCRYPT_MAX_BYTES = 72


@dataclass
class PasswordValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    strength: str = "weak"
    score: int = 0


def validate_password(password: str) -> PasswordValidationResult:
    policy = PASSWORD_POLICY
    errors: list[str] = []
    score = 0

    if len(password) < policy.min_length:
        errors.append(
            f"Password must be at least {policy.min_length} characters long"
        )
    else:
        score += 20

    if len(password) > policy.max_length:
        errors.append(f"Password must not exceed {policy.max_length} characters")

    checks = (
        (
            policy.require_uppercase,
            _UPPER_RE,
            "Password must contain at least one uppercase letter",
        ),
        (
            policy.require_lowercase,
            _LOWER_RE,
            "Password must contain at least one lowercase letter",
        ),
        (
            policy.require_numbers,
            _DIGIT_RE,
            "Password must contain at least one number",
        ),
        (
            policy.require_special_chars,
            _SPECIAL_RE,
            "Password must contain at least one special character",
        ),
    )
    for required, pattern, message in checks:
        if pattern.search(password):
            score += 15
        elif required:
            errors.append(message)

    if has_repeated_characters(password, policy.max_repeated_chars):
        errors.append(
            "Password must not have more than "
            f"{policy.max_repeated_chars} repeated characters"
        )
    else:
        score += 10

    if has_common_patterns(password):
        errors.append("Password contains common patterns that are easy to guess")
    else:
        score += 10

    return PasswordValidationResult(
        is_valid=not errors,
        errors=errors,
        strength=_strength(score),
        score=min(100, score),
    )


def _strength(score: int) -> str:
    if score >= 90:
        return "strong"
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    return "weak"


def has_repeated_characters(password: str, max_repeated: int) -> bool:
    run = 1
    for previous, current in zip(password, password[1:]):
        if current == previous:
            run += 1
            if run > max_repeated:
                return True
        else:
            run = 1
    return False


def has_common_patterns(password: str) -> bool:
    lowered = password.lower()
    return any(
        pattern in lowered
        for pattern in COMMON_PATTERNS + SEQUENTIAL_PATTERNS + KEYBOARD_PATTERNS
    )


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    validation = validate_password(password)
    if not validation.is_valid:
        raise ValidationError(
            f"Password validation failed: {', '.join(validation.errors)}",
            details={"errors": validation.errors},
        )
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(_encode(password), salt).decode("utf-8")


@lru_cache
def dummy_hash() -> bytes:
    """A well-formed hash at the configured cost, for timing equalisation."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(secrets.token_bytes(16), salt)


def verify_password(password: str, password_hash: str | None) -> bool:
    """Check ``password`` against a stored bcrypt hash.

    Every path performs exactly one bcrypt comparison so that an unknown
    account or a corrupt hash costs the same as a wrong password.
    """
    candidate = _encode(password)
    if not password_hash or not _BCRYPT_RE.match(password_hash):
        bcrypt.checkpw(candidate, dummy_hash())
        return False
    try:
        return bcrypt.checkpw(candidate, password_hash.encode("utf-8"))
    except ValueError:
        bcrypt.checkpw(candidate, dummy_hash())
        return False


def secure_compare(a: str, b: str) -> bool:
    # Length mismatch returns early; only the length is leaked.
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def generate_secure_password(length: int = 16) -> str:
    if length < 4:
        raise ValueError("length must be at least 4")
    uppercase = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    lowercase = "abcdefghijklmnopqrstuvwxyz"
    numbers = "0123456789"
    alphabet = uppercase + lowercase + numbers + SPECIAL_CHARACTERS
    rng = secrets.SystemRandom()
    while True:
        chars = [
            secrets.choice(uppercase),
            secrets.choice(lowercase),
            secrets.choice(numbers),
            secrets.choice(SPECIAL_CHARACTERS),
        ]
        chars.extend(secrets.choice(alphabet) for _ in range(length - 4))
        rng.shuffle(chars)
        candidate = "".join(chars)
        in_policy_range = (
            PASSWORD_POLICY.min_length <= length <= PASSWORD_POLICY.max_length
        )
        if not in_policy_range or validate_password(candidate).is_valid:
            return candidate


def _age(last_changed: datetime) -> timedelta:
    if last_changed.tzinfo is None:
        last_changed = last_changed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - last_changed


def is_password_expired(last_changed: datetime) -> bool:
    return _age(last_changed) > PASSWORD_POLICY.max_password_age


def can_change_password(last_changed: datetime) -> bool:
    return _age(last_changed) > PASSWORD_POLICY.min_password_age


def generate_password_reset_token() -> str:
    return secrets.token_hex(32)
