"""Collaborator contracts and in-memory reference stores.

Security Note:
    The in-memory stores keep password hashes, TOTP keys and backup code
    digests in process memory only. They are meant for embedding and
    tests, not for multi-process deployments.
"""

from .protocols import (
    AccountStore,
    CredentialStore,
    RecoveryStore,
    FailureReporter,
    SessionLookup,
)
from .memory import (
    MemoryAccountStore,
    MemoryCredentialStore,
    MemoryRecoveryStore,
    TwoFactorEnrollment,
)

__all__ = [
    "AccountStore",
    "CredentialStore",
    "RecoveryStore",
    "FailureReporter",
    "SessionLookup",
    "MemoryAccountStore",
    "MemoryCredentialStore",
    "MemoryRecoveryStore",
    "TwoFactorEnrollment",
]
