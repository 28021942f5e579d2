import re

MIN_PASSWORD_LENGTH = 6


def normalize_email(value: str) -> str:
    normalized = (value or '').strip().lower()
    if not normalized or '@' not in normalized:
        raise ValueError('A valid email address is required.')
    return normalized


def validate_password_strength(password: str) -> str:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long.')
    if not re.search(r'[A-Z]', password) or not re.search(r'[a-z]', password) or not re.search(r'\d', password):
        raise ValueError('Password must contain an uppercase letter, a lowercase letter and a number.')
    return password
