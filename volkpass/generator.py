"""
Secure password generation.

Characters are drawn independently and uniformly, with replacement, from
the union of the enabled classes using the ``secrets`` CSPRNG. With every
class disabled the lowercase alphabet is used alone.

Security Note:
    Never log generated values.
"""
import string
import secrets
import logging
from typing import Optional

from .conf import CoreConfig
from .models import GeneratedPassword, GeneratorPolicy
from .strength import strength_of

logger = logging.getLogger("volkpass.generator")

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


def build_pool(policy: GeneratorPolicy) -> str:
    """Return the alphabet allowed by ``policy``."""
    pool = ""
    if policy.uppercase:
        pool += UPPERCASE
    if policy.lowercase:
        pool += LOWERCASE
    if policy.digits:
        pool += DIGITS
    if policy.symbols:
        pool += SYMBOLS
    return pool or LOWERCASE


def generate_password(policy: GeneratorPolicy) -> GeneratedPassword:
    """Generate one password for ``policy`` with its score and label."""
    pool = build_pool(policy)
    value = "".join(secrets.choice(pool) for _ in range(policy.length))
    score, label = strength_of(value)
    return GeneratedPassword(value=value, score=score, strength=label, policy=policy)


class PasswordGenerator:
    """Keeps the caller's current policy and the last generated password.

    Any policy change produces a fresh password immediately, so the value
    shown to the user always matches the settings next to it.
    """

    def __init__(
        self,
        policy: Optional[GeneratorPolicy] = None,
        config: Optional[CoreConfig] = None,
    ) -> None:
        if policy is None:
            config = config or CoreConfig()
            policy = GeneratorPolicy(length=config.generator_default_length)
        self._policy = policy
        self._current: Optional[GeneratedPassword] = None

    @property
    def policy(self) -> GeneratorPolicy:
        return self._policy

    @property
    def current(self) -> GeneratedPassword:
        """The last generated password, generating one on first access."""
        if self._current is None:
            return self.generate()
        return self._current

    def generate(self) -> GeneratedPassword:
        """Roll a new password with the current policy."""
        self._current = generate_password(self._policy)
        logger.debug(
            "Generated password: length=%d strength=%s",
            self._policy.length, self._current.strength.value,
        )
        return self._current

    def configure(self, **changes) -> GeneratedPassword:
        """Update policy fields and return a password matching the new policy.

        Raises:
            pydantic.ValidationError: If the new length is out of bounds.
        """
        policy = GeneratorPolicy(**{**self._policy.model_dump(), **changes})
        if policy != self._policy or self._current is None:
            self._policy = policy
            return self.generate()
        return self._current
