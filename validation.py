"""Form validation rules shared by the API client and the registration endpoint."""

import re
from typing import Dict

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
SPECIAL_CHARACTERS = re.compile(r'[!@#$%^&*(),.?":{}|<>]')

MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2


def validate_name(name: str) -> str:
    """Return an error message, or '' when the name is acceptable."""
    if not name or not name.strip():
        return 'Name is required.'
    if len(name.strip()) < MIN_NAME_LENGTH:
        return 'Name must be at least 2 characters.'
    return ''


def validate_email(email: str) -> str:
    if not email or not email.strip():
        return 'Email is required.'
    if not EMAIL_PATTERN.match(email):
        return 'Please enter a valid email address.'
    return ''


def password_requirements(password: str) -> Dict[str, bool]:
    """Evaluate each registration password rule independently."""
    password = password or ''
    return {
        'length': len(password) >= MIN_PASSWORD_LENGTH,
        'uppercase': bool(re.search(r'[A-Z]', password)),
        'lowercase': bool(re.search(r'[a-z]', password)),
        'number': bool(re.search(r'[0-9]', password)),
        'special': bool(SPECIAL_CHARACTERS.search(password)),
    }


_PASSWORD_MESSAGES = (
    ('length', 'Password must be at least 6 characters.'),
    ('uppercase', 'Password must include at least one uppercase letter.'),
    ('lowercase', 'Password must include at least one lowercase letter.'),
    ('number', 'Password must include at least one number.'),
    ('special', 'Password must include at least one special character.'),
)


def validate_password(password: str) -> str:
    """Registration rules; the first failing rule wins."""
    if not password or not password.strip():
        return 'Password is required.'
    met = password_requirements(password)
    for rule, message in _PASSWORD_MESSAGES:
        if not met[rule]:
            return message
    return ''


def validate_login_password(password: str) -> str:
    if not password or not password.strip():
        return 'Password is required.'
    if len(password) < MIN_PASSWORD_LENGTH:
        return 'Password must be at least 6 characters.'
    return ''


def registration_errors(name: str, email: str, password: str) -> Dict[str, str]:
    errors = {
        'name': validate_name(name),
        'email': validate_email(email),
        'password': validate_password(password),
    }
    return {field: message for field, message in errors.items() if message}


def login_errors(email: str, password: str) -> Dict[str, str]:
    errors = {
        'email': validate_email(email),
        'password': validate_login_password(password),
    }
    return {field: message for field, message in errors.items() if message}
