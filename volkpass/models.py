"""
VolkPass Models — pydantic entities shared by the core components.

Session snapshots are frozen: the controller swaps a whole new snapshot on
every transition, so a reader never sees a half-applied state.

Security Note:
    Credential secrets are held as ``SecretStr`` so that ``repr()``, logging
    and JSON dumps show a mask instead of the plaintext.
"""
import uuid
from enum import Enum
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

import orjson
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from .conf import GENERATOR_MAX_LENGTH, GENERATOR_MIN_LENGTH


def utcnow() -> datetime:
    """Return the current aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_json(model: BaseModel) -> bytes:
    """Serialize a model to JSON bytes for the presentation layer."""
    return orjson.dumps(model.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class SessionPhase(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AWAITING_SECOND_FACTOR = "awaiting_second_factor"
    AUTHENTICATED = "authenticated"


class Principal(BaseModel):
    """An authenticated identity as reported by the account store."""

    id: Union[int, str]
    username: str
    role: str = "user"
    two_factor_enabled: bool = False

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Session(BaseModel):
    """Authentication state of one client.

    ``pending_username`` is set only while a second factor is awaited and
    ``principal`` only once authenticated; both are validated on creation.
    """

    phase: SessionPhase = SessionPhase.ANONYMOUS
    principal: Optional[Principal] = None
    pending_username: Optional[str] = None
    second_factor_failures: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_phase_attributes(self) -> "Session":
        awaiting = self.phase is SessionPhase.AWAITING_SECOND_FACTOR
        if (self.pending_username is not None) != awaiting:
            raise ValueError(
                f"pending_username must be set only in {SessionPhase.AWAITING_SECOND_FACTOR.value}"
            )
        authenticated = self.phase is SessionPhase.AUTHENTICATED
        if (self.principal is not None) != authenticated:
            raise ValueError(
                f"principal must be set only in {SessionPhase.AUTHENTICATED.value}"
            )
        return self

    @classmethod
    def anonymous(cls) -> "Session":
        return cls()

    @property
    def is_authenticated(self) -> bool:
        return self.phase is SessionPhase.AUTHENTICATED

    @property
    def requires_second_factor(self) -> bool:
        return self.phase is SessionPhase.AWAITING_SECOND_FACTOR

    @property
    def is_admin(self) -> bool:
        return self.principal is not None and self.principal.is_admin

    def as_json(self) -> bytes:
        return to_json(self)


class SecondFactorRequired(BaseModel):
    """Control signal: primary credentials were valid, a second factor is due."""

    username: str

    model_config = {"frozen": True}


class VerificationResult(BaseModel):
    """Outcome of a successful code or backup-code verification.

    ``consumed`` is the account store's acknowledgment that a backup code
    has been burned. It is ignored for time-based codes.
    """

    principal: Principal
    consumed: bool = False

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class StrengthLabel(str, Enum):
    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"


class CredentialDraft(BaseModel):
    """Input for creating a credential record."""

    site: str = Field(min_length=1)
    url: str = ""
    username: str = ""
    secret_value: SecretStr
    category: str = ""
    notes: str = ""
    compromised: bool = False

    @field_validator("secret_value")
    @classmethod
    def secret_not_empty(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("secret_value cannot be empty")
        return v


class CredentialRecord(BaseModel):
    """One stored secret, owned by the credential store.

    ``strength`` must always match the latest ``secret_value``; the
    credential service recomputes it before every write.
    """

    id: Union[int, str]
    site: str
    url: str = ""
    username: str = ""
    secret_value: SecretStr
    category: str = ""
    notes: str = ""
    compromised: bool = False
    strength: Optional[StrengthLabel] = None
    updated_at: datetime = Field(default_factory=utcnow)


class RiskSnapshot(BaseModel):
    """Point-in-time risk classification of a credential set.

    The three lists are independent and may share records. ``issue_count``
    adds their lengths without deduplication.
    """

    compromised: list[CredentialRecord] = Field(default_factory=list)
    reused: list[CredentialRecord] = Field(default_factory=list)
    weak: list[CredentialRecord] = Field(default_factory=list)

    @property
    def issue_count(self) -> int:
        return len(self.compromised) + len(self.reused) + len(self.weak)

    @property
    def is_clean(self) -> bool:
        return self.issue_count == 0

    def as_json(self) -> bytes:
        data = self.model_dump(mode="json")
        data["issue_count"] = self.issue_count
        return orjson.dumps(data)


# ---------------------------------------------------------------------------
# Password generation
# ---------------------------------------------------------------------------


class GeneratorPolicy(BaseModel):
    """Length and character classes for generated passwords."""

    length: int = Field(default=16, ge=GENERATOR_MIN_LENGTH, le=GENERATOR_MAX_LENGTH)
    uppercase: bool = True
    lowercase: bool = True
    digits: bool = True
    symbols: bool = True

    model_config = {"frozen": True}


class GeneratedPassword(BaseModel):
    """A freshly generated password with its strength feedback."""

    value: str = Field(repr=False)
    score: int
    strength: StrengthLabel
    policy: GeneratorPolicy

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------


class RecoveryKind(str, Enum):
    PASSWORD_RESET = "password_reset"
    SECOND_FACTOR_RESET = "second_factor_reset"


class RecoveryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class RecoveryDecision(str, Enum):
    APPROVE = "approve"
    DENY = "deny"

    @property
    def status(self) -> RecoveryStatus:
        if self is RecoveryDecision.APPROVE:
            return RecoveryStatus.APPROVED
        return RecoveryStatus.DENIED


class RecoveryRequest(BaseModel):
    """An admin-reviewable account recovery request.

    Requests are frozen. A decision produces a new copy; once the status
    leaves ``pending`` the request never changes again.
    """

    id: Union[int, str]
    user_id: Union[int, str]
    kind: RecoveryKind
    created_at: datetime
    token_expiry: datetime
    status: RecoveryStatus = RecoveryStatus.PENDING
    admin_notes: str = ""

    model_config = {"frozen": True}

    @field_validator("admin_notes", mode="before")
    @classmethod
    def notes_never_null(cls, v: Any) -> Any:
        return "" if v is None else v

    @classmethod
    def open(
        cls,
        user_id: Union[int, str],
        kind: RecoveryKind,
        *,
        ttl: int,
        request_id: Union[int, str, None] = None,
        now: Optional[datetime] = None,
    ) -> "RecoveryRequest":
        """Build a new pending request whose token expires ``ttl`` seconds from now."""
        created = now or utcnow()
        return cls(
            id=request_id if request_id is not None else uuid.uuid4().hex,
            user_id=user_id,
            kind=kind,
            created_at=created,
            token_expiry=created + timedelta(seconds=ttl),
        )

    @property
    def is_pending(self) -> bool:
        return self.status is RecoveryStatus.PENDING

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.token_expiry

    def is_actionable(self, now: Optional[datetime] = None) -> bool:
        return self.is_pending and not self.is_expired(now)
