"""
Registration input validation
"""
import re

from event_scoring.categories import is_known_category
from event_scoring.errors import ValidationError

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{0,15}$')


def validate_email(email: str) -> bool:
    """Validate email format"""
    if not email:
        return False
    return EMAIL_PATTERN.match(email.strip()) is not None


def validate_phone(phone: str) -> bool:
    """Validate phone number (optional +, no leading zero, up to 16 digits)"""
    if not phone:
        return False
    return PHONE_PATTERN.match(re.sub(r'\s', '', phone)) is not None


def clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Please enter a name")
    return name


def check_contestant_fields(name: str, category: str, email: str, phone: str) -> None:
    clean_name(name)
    if not validate_email(email):
        raise ValidationError("Please enter a valid email")
    if not validate_phone(phone):
        raise ValidationError("Please enter a valid phone number")
    if not is_known_category(category):
        raise ValidationError(f"Unknown category: {category}")


def check_judge_fields(name: str, email: str, years_experience) -> int:
    clean_name(name)
    if not validate_email(email):
        raise ValidationError("Please enter a valid email")
    try:
        # "5", "5.0" and "5.7" all read as 5 whole years
        years = int(float(years_experience))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("Experience must be a number of years")
    if years < 1:
        raise ValidationError("Experience must be at least 1 year")
    return years
