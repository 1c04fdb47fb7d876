"""
Short code generation strategies.

Generation never queries the store. Uniqueness is decided by the unique
constraint at insert time; the caller regenerates and retries when the
insert loses (see LinkService).
"""

import re
import secrets
import string
from abc import ABC, abstractmethod

from linklab.exceptions import InvalidAliasError


ALPHANUMERIC = string.ascii_letters + string.digits

_ALIAS_RE = re.compile(r"[A-Za-z0-9-]+")


class ShortCodeStrategy(ABC):
    """Abstract base class for short code generation strategies"""

    @abstractmethod
    def generate(self) -> str:
        """
        Produce a candidate short code.

        Returns:
            A URL-safe code. Not guaranteed unique; the insert decides.
        """
        pass


class RandomShortCodeStrategy(ShortCodeStrategy):
    """
    Fixed-length random draw from a case-sensitive alphanumeric alphabet.

    With the default length of 9 there are 62^9 (~1.3e16) codes, so the
    birthday bound stays well below 1% at tens of millions of links.
    """

    def __init__(self, length: int = 9, alphabet: str = ALPHANUMERIC):
        if length < 1:
            raise ValueError("length must be positive")
        self.length = length
        self.alphabet = alphabet

    def generate(self) -> str:
        return ''.join(secrets.choice(self.alphabet) for _ in range(self.length))


def validate_custom_alias(alias: str, max_length: int = 64) -> str:
    """
    Check a user-supplied alias before attempting to insert it.

    Availability is not checked here: a taken alias surfaces as a unique
    constraint violation on insert.

    Raises:
        InvalidAliasError: empty, too long, or outside [A-Za-z0-9-]
    """
    if not alias:
        raise InvalidAliasError("Custom alias must not be empty")
    if len(alias) > max_length:
        raise InvalidAliasError(
            f"Custom alias must be at most {max_length} characters"
        )
    if not _ALIAS_RE.fullmatch(alias):
        raise InvalidAliasError(
            "Custom alias may only contain letters, digits and '-'"
        )
    return alias


def is_valid_short_code(code: str, max_length: int = 64) -> bool:
    """Shape check for a code taken from a request path"""
    return bool(code) and len(code) <= max_length and bool(_ALIAS_RE.fullmatch(code))
