"""
generator.py - Secure password generation using cryptographically secure randomness
"""
import secrets
import string
from typing import List, Optional

from .errors import InvalidInput
from .models import PasswordOptions

SPECIAL = "!@#$%^&*()_+-=[]{}|;:,.<>?"
# Visually similar characters
SIMILAR_CHARS = "0OIl1|"
# Characters that are awkward in some contexts (shells, URLs, CSV)
AMBIGUOUS_CHARS = "{}[]()\\/~,;.<>"

MAX_LENGTH = 1024


def _filter(chars: str, options: PasswordOptions) -> str:
    if options.exclude_similar:
        chars = "".join(c for c in chars if c not in SIMILAR_CHARS)
    if options.exclude_ambiguous:
        chars = "".join(c for c in chars if c not in AMBIGUOUS_CHARS)
    return chars


def character_classes(options: PasswordOptions) -> List[str]:
    """The enabled character classes after exclusions, empty ones dropped."""
    classes = []
    if options.include_uppercase:
        classes.append(string.ascii_uppercase)
    if options.include_lowercase:
        classes.append(string.ascii_lowercase)
    if options.include_numbers:
        classes.append(string.digits)
    if options.include_special:
        classes.append(SPECIAL)
    return [c for c in (_filter(chars, options) for chars in classes) if c]


def generate_password(options: Optional[PasswordOptions] = None) -> str:
    """
    Generate a cryptographically secure random password.

    At least one character from each enabled class is included whenever the
    length allows it, and the result is shuffled.

    Args:
        options: Length and character-class options (default: 16, all classes)

    Returns:
        A secure random password

    Raises:
        InvalidInput: If length is not positive or no character class is enabled
    """
    options = options or PasswordOptions()

    if options.length < 1:
        raise InvalidInput("Password length must be at least 1")
    if options.length > MAX_LENGTH:
        raise InvalidInput(f"Password length must be at most {MAX_LENGTH}")

    classes = character_classes(options)
    if not classes:
        raise InvalidInput("At least one character type must be selected")

    charset = "".join(classes)

    # One from each required class first, then fill from the full set
    password = [secrets.choice(chars) for chars in classes[: options.length]]
    while len(password) < options.length:
        password.append(secrets.choice(charset))

    secrets.SystemRandom().shuffle(password)
    return "".join(password)


def generate_simple_password(length: int) -> str:
    return generate_password(PasswordOptions.simple(length))


def generate_strong_password(length: int) -> str:
    return generate_password(PasswordOptions.strong(length))
