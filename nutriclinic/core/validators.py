"""Input validators shared by request schemas and the HTTP client.

Every check here runs before any database or network call is made.
"""
import re
from typing import List

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{8,}$")
PROFILE_USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.]{3,30}$")
REGISTRATION_PASSWORD_PATTERN = re.compile(
    r"^(?=.*[A-Za-z])(?=.*\d)(?=.*[@$!%*#?&])[A-Za-z\d@$!%*#?&]{8,}$"
)
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
IP_PATTERN = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})(?:/(\d{1,2}))?$")

SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'
MIN_PASSWORD_LENGTH = 12
BANNED_PASSWORD_FRAGMENTS = ("password", "admin", "123456", "qwerty", "abc", "123", "xyz")


def password_problems(password: str) -> List[str]:
    """Return every reason ``password`` fails the administrative policy."""
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        problems.append("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("Password must contain a lowercase letter")
    if not re.search(r"\d", password):
        problems.append("Password must contain a digit")
    if not any(char in SPECIAL_CHARACTERS for char in password):
        problems.append("Password must contain a special character")

    lowered = password.lower()
    banned = [fragment for fragment in BANNED_PASSWORD_FRAGMENTS if fragment in lowered]
    if banned:
        problems.append(f"Password must not contain common sequences: {', '.join(banned)}")
    return problems


def validate_password(password: str) -> bool:
    return not password_problems(password)


def validate_registration_password(password: str) -> bool:
    return bool(REGISTRATION_PASSWORD_PATTERN.fullmatch(password))


def validate_username(username: str) -> bool:
    """Admin account usernames: 8+ letters, digits or underscores."""
    return bool(USERNAME_PATTERN.fullmatch(username))


def validate_profile_username(username: str) -> bool:
    return bool(PROFILE_USERNAME_PATTERN.fullmatch(username))


def validate_time(value: str) -> bool:
    return bool(TIME_PATTERN.fullmatch(value))


def validate_ip_address(value: str) -> bool:
    """Accept a dotted-quad IPv4 address with an optional CIDR suffix."""
    match = IP_PATTERN.fullmatch(value)
    if not match:
        return False

    octets = match.groups()[:4]
    if any(int(octet) > 255 for octet in octets):
        return False

    prefix = match.group(5)
    if prefix is not None and int(prefix) > 32:
        return False
    return True
