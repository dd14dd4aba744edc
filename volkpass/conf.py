"""
VolkPass Configuration — validated settings for the core.

Values come from keyword arguments or from environment variables:
    VOLKPASS_TOTP_DIGITS = <int, 6..8>
    VOLKPASS_TOTP_STEP = <seconds>
    VOLKPASS_TOTP_WINDOW = <steps accepted on either side>
    VOLKPASS_BACKUP_CODE_MIN_LENGTH / VOLKPASS_BACKUP_CODE_MAX_LENGTH
    VOLKPASS_BACKUP_CODE_COUNT = <codes issued per enrollment>
    VOLKPASS_MAX_SECOND_FACTOR_ATTEMPTS = <int, unset for unlimited>
    VOLKPASS_COLLABORATOR_TIMEOUT = <seconds>
    VOLKPASS_GENERATOR_DEFAULT_LENGTH = <int, 8..32>
    VOLKPASS_RECOVERY_TOKEN_TTL = <seconds>

Security Note:
    Configuration never carries secrets. Log values freely.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger("volkpass.config")

# Practical bounds for generated passwords.
GENERATOR_MIN_LENGTH = 8
GENERATOR_MAX_LENGTH = 32

_ENV_PREFIX = "VOLKPASS_"


class CoreConfig(BaseModel):
    """Validated core configuration."""

    totp_digits: int = Field(default=6, ge=6, le=8)
    totp_step: int = Field(default=30, ge=15, le=300)
    totp_window: int = Field(default=1, ge=0, le=5)
    backup_code_min_length: int = Field(default=8, ge=6)
    backup_code_max_length: int = Field(default=10, le=32)
    backup_code_count: int = Field(default=10, ge=1, le=50)
    max_second_factor_attempts: Optional[int] = Field(default=None, ge=1)
    collaborator_timeout: float = Field(default=10.0, gt=0)
    generator_default_length: int = Field(
        default=16, ge=GENERATOR_MIN_LENGTH, le=GENERATOR_MAX_LENGTH
    )
    recovery_token_ttl: int = Field(default=86400, ge=60)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_backup_code_bounds(self) -> "CoreConfig":
        """Ensure the backup code length range is not inverted."""
        if self.backup_code_min_length > self.backup_code_max_length:
            raise ValueError(
                f"backup_code_min_length ({self.backup_code_min_length}) "
                f"exceeds backup_code_max_length ({self.backup_code_max_length})"
            )
        return self

    @classmethod
    def from_env(cls) -> "CoreConfig":
        """Create CoreConfig from VOLKPASS_* environment variables.

        Unset variables keep their defaults. An empty
        VOLKPASS_MAX_SECOND_FACTOR_ATTEMPTS means unlimited.

        Returns:
            Populated CoreConfig instance.
        """
        values: dict = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            raw = raw.strip()
            if name == "max_second_factor_attempts" and not raw:
                values[name] = None
                continue
            values[name] = raw
        config = cls(**values)
        logger.debug(
            "Loaded core config from environment: %d override(s)", len(values)
        )
        return config
