"""VolkPass Core — authentication, second factor and credential risk logic.

Security Note (Threat Model):
    The core decides who is authenticated and how stored credentials are
    scored. It never stores secrets itself: account, credential and recovery
    persistence are injected collaborators (see ``volkpass.stores``).
    Plaintext credential values pass through process memory while they are
    scored or compared; they are held as ``SecretStr`` and never logged.
"""

from .version import __version__
from .conf import CoreConfig
from .exceptions import (
    VolkpassError,
    InvalidInput,
    AuthenticationFailed,
    SecondFactorInvalid,
    Unauthorized,
    Conflict,
    InvalidPhase,
    StaleTransition,
    Expired,
    CollaboratorUnavailable,
    RequestNotFound,
    RecordNotFound,
)
from .models import (
    Session,
    SessionPhase,
    Principal,
    SecondFactorRequired,
    VerificationResult,
    CredentialDraft,
    CredentialRecord,
    StrengthLabel,
    RiskSnapshot,
    GeneratorPolicy,
    GeneratedPassword,
    RecoveryRequest,
    RecoveryKind,
    RecoveryStatus,
    RecoveryDecision,
)
from .strength import score_strength, classify, strength_of
from .risk import compute_risk_snapshot, CredentialRiskEngine
from .generator import generate_password, PasswordGenerator
from .session import SessionController
from .credentials import CredentialService
from .recovery import RecoveryWorkflow

__all__ = [
    "__version__",
    "CoreConfig",
    "VolkpassError",
    "InvalidInput",
    "AuthenticationFailed",
    "SecondFactorInvalid",
    "Unauthorized",
    "Conflict",
    "InvalidPhase",
    "StaleTransition",
    "Expired",
    "CollaboratorUnavailable",
    "RequestNotFound",
    "RecordNotFound",
    "Session",
    "SessionPhase",
    "Principal",
    "SecondFactorRequired",
    "VerificationResult",
    "CredentialDraft",
    "CredentialRecord",
    "StrengthLabel",
    "RiskSnapshot",
    "GeneratorPolicy",
    "GeneratedPassword",
    "RecoveryRequest",
    "RecoveryKind",
    "RecoveryStatus",
    "RecoveryDecision",
    "score_strength",
    "classify",
    "strength_of",
    "compute_risk_snapshot",
    "CredentialRiskEngine",
    "generate_password",
    "PasswordGenerator",
    "SessionController",
    "CredentialService",
    "RecoveryWorkflow",
]
