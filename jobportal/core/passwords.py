"""Password strength and expiry policy.

Pure functions only; nothing here touches a store or hashes anything.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

MIN_LENGTH = 8
MAX_LENGTH = 16
SPECIAL_CHARACTERS = "@$!%*?&"

_LOWERCASE = re.compile(r"[a-z]")
_UPPERCASE = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")
_SPECIAL = re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]")

_CHECK_MESSAGES = {
    "length": f"Password must be between {MIN_LENGTH} and {MAX_LENGTH} characters",
    "lowercase": "Password must contain at least one lowercase letter",
    "uppercase": "Password must contain at least one uppercase letter",
    "numbers": "Password must contain at least one number",
    "special": f"Password must contain at least one special character ({SPECIAL_CHARACTERS})",
}
EMAIL_MATCH_MESSAGE = "Password cannot contain your email username"


@dataclass
class PasswordStrength:
    """Outcome of :func:`check_password_strength`."""

    score: int
    strength: str
    checks: Dict[str, bool]
    contains_email: bool = False
    messages: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.score == len(self.checks) and not self.contains_email

    def field_errors(self, field_name: str = "password") -> List[dict]:
        """Render failed checks as field-level validation errors."""
        return [{"field": field_name, "message": message} for message in self.messages]

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "strength": self.strength,
            "checks": dict(self.checks),
            "contains_email": self.contains_email,
            "is_valid": self.is_valid,
            "messages": list(self.messages),
        }


def classify_score(score: int) -> str:
    if score < 3:
        return "weak"
    if score < 5:
        return "medium"
    return "strong"


def email_local_part(email: Optional[str]) -> str:
    if not email:
        return ""
    return email.strip().lower().split("@", 1)[0]


def check_password_strength(password: str, email: Optional[str] = None) -> PasswordStrength:
    """Score ``password`` against the five character checks.

    The email local-part rule does not contribute to the score but makes the
    password invalid regardless of score.
    """
    checks = {
        "length": MIN_LENGTH <= len(password) <= MAX_LENGTH,
        "lowercase": bool(_LOWERCASE.search(password)),
        "uppercase": bool(_UPPERCASE.search(password)),
        "numbers": bool(_DIGIT.search(password)),
        "special": bool(_SPECIAL.search(password)),
    }
    score = sum(1 for passed in checks.values() if passed)
    messages = [_CHECK_MESSAGES[name] for name, passed in checks.items() if not passed]

    local_part = email_local_part(email)
    contains_email = bool(local_part) and local_part in password.lower()
    if contains_email:
        messages.append(EMAIL_MATCH_MESSAGE)

    return PasswordStrength(
        score=score,
        strength=classify_score(score),
        checks=checks,
        contains_email=contains_email,
        messages=messages,
    )


@dataclass
class PasswordExpiry:
    """Age of the current password relative to the expiry policy."""

    is_expired: bool
    days_until_expiry: int
    should_warn: bool

    def to_dict(self) -> dict:
        return {
            "is_expired": self.is_expired,
            "days_until_expiry": self.days_until_expiry,
            "should_warn": self.should_warn,
        }


def check_password_expiry(
    changed_at: datetime,
    now: datetime,
    expiry_days: int = 90,
    warning_days: int = 7,
) -> PasswordExpiry:
    days_since_change = (now - changed_at) // timedelta(days=1)
    return PasswordExpiry(
        is_expired=days_since_change >= expiry_days,
        days_until_expiry=expiry_days - days_since_change,
        should_warn=days_since_change >= expiry_days - warning_days,
    )
