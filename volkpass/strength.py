"""
Password strength scoring.

The score is a pure function of the string, in [0, 100]:

    min(40, 2 * length)
    + 10 if any ASCII lowercase letter
    + 10 if any ASCII uppercase letter
    + 10 if any ASCII digit
    + 15 if any character outside [a-zA-Z0-9]
    + min(15, number of distinct characters)

clamped to 100. Stored credential strength labels depend on this exact
composition, so it must not change.
"""
import string
from typing import Union

from pydantic import SecretStr

from .models import StrengthLabel

STRONG_THRESHOLD = 70
MEDIUM_THRESHOLD = 40

_LOWER = frozenset(string.ascii_lowercase)
_UPPER = frozenset(string.ascii_uppercase)
_DIGITS = frozenset(string.digits)
_ALNUM = _LOWER | _UPPER | _DIGITS


def _plain(secret: Union[str, SecretStr, None]) -> str:
    if secret is None:
        return ""
    if isinstance(secret, SecretStr):
        return secret.get_secret_value()
    return secret


def score_strength(secret: Union[str, SecretStr, None]) -> int:
    """Score a secret from 0 (empty) to 100."""
    value = _plain(secret)
    if not value:
        return 0
    chars = set(value)
    score = min(40, len(value) * 2)
    if chars & _LOWER:
        score += 10
    if chars & _UPPER:
        score += 10
    if chars & _DIGITS:
        score += 10
    if chars - _ALNUM:
        score += 15
    score += min(15, len(chars))
    return min(100, score)


def classify(score: int) -> StrengthLabel:
    """Map a score to weak (<40), medium (40..69) or strong (>=70)."""
    if score >= STRONG_THRESHOLD:
        return StrengthLabel.STRONG
    if score >= MEDIUM_THRESHOLD:
        return StrengthLabel.MEDIUM
    return StrengthLabel.WEAK


def strength_of(secret: Union[str, SecretStr, None]) -> tuple[int, StrengthLabel]:
    """Return ``(score, label)`` for a secret."""
    score = score_strength(secret)
    return score, classify(score)
