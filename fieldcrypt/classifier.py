"""
Heuristics for telling AES/Base64 ciphertext apart from plaintext.

There is no marker in the payload, so both checks are guesses. They are
intentionally not complements of each other: decrypting requires
looks_encrypted(), encrypting requires looks_plaintext(), and a value
that satisfies neither is left alone.
"""

import re

MIN_CIPHERTEXT_LENGTH = 16

BASE64_PATTERN = re.compile(r"[A-Za-z0-9+/]+=*")
PLAINTEXT_MARKERS = ("{", "[", '"', " ")


def _is_base64_alphabet(value: str) -> bool:
    return BASE64_PATTERN.fullmatch(value) is not None


def _mixes_character_classes(value: str) -> bool:
    """True when at least two of upper, lower and digit appear."""
    has_upper = any(c.isupper() for c in value)
    has_lower = any(c.islower() for c in value)
    has_digit = any(c.isdigit() for c in value)
    return (has_upper + has_lower + has_digit) >= 2


def looks_encrypted(value) -> bool:
    if not isinstance(value, str) or not value:
        return False
    if len(value) < MIN_CIPHERTEXT_LENGTH:
        return False
    if any(c.isspace() for c in value):
        return False
    if not _is_base64_alphabet(value):
        return False
    # real ciphertext almost never comes out case-uniform
    return _mixes_character_classes(value)


def looks_plaintext(value) -> bool:
    if not isinstance(value, str):
        return False
    if len(value) < MIN_CIPHERTEXT_LENGTH:
        return True
    if any(marker in value for marker in PLAINTEXT_MARKERS):
        return True
    return not _is_base64_alphabet(value)
