"""
Collaborator contracts consumed by the core.

The core never implements persistence or transport. Anything satisfying
these protocols can be injected: a database-backed store, an HTTP client
for a remote account service, or the in-memory stores in
``volkpass.stores.memory``.

Error contract:
    ``AccountStore`` raises ``AuthenticationFailed`` for bad credentials and
    ``SecondFactorInvalid`` for bad codes. Any other exception is treated as
    a transport failure and surfaces as ``CollaboratorUnavailable``.
    ``RecoveryStore.decide`` must compare-and-set on ``pending`` and raise
    ``Conflict`` when another decision got there first.
"""
from collections.abc import Mapping, Sequence
from typing import Any, Optional, Protocol, Union, runtime_checkable

from ..models import (
    CredentialRecord,
    Principal,
    RecoveryRequest,
    RecoveryStatus,
    SecondFactorRequired,
    VerificationResult,
)


@runtime_checkable
class AccountStore(Protocol):
    """Verifies credentials and codes. May also implement ``SessionLookup``."""

    async def verify_credentials(
        self, username: str, secret: str, is_registration: bool
    ) -> Union[Principal, SecondFactorRequired]:
        ...

    async def verify_code(self, username: str, code: str) -> VerificationResult:
        ...

    async def verify_backup_code(self, username: str, code: str) -> VerificationResult:
        """Verify and burn a backup code; the result must carry ``consumed=True``."""
        ...

    async def logout(self) -> None:
        ...


@runtime_checkable
class SessionLookup(Protocol):
    """Optional account store capability: report the live server-side session.

    Returns the principal the service still considers signed in for this
    client, or ``None``.
    """

    async def current_principal(self) -> Optional[Principal]:
        ...


@runtime_checkable
class CredentialStore(Protocol):
    async def list(self) -> Sequence[CredentialRecord]:
        ...

    async def create(self, data: Mapping[str, Any]) -> CredentialRecord:
        ...

    async def update(self, record_id: Union[int, str], changes: Mapping[str, Any]) -> CredentialRecord:
        ...

    async def delete(self, record_id: Union[int, str]) -> None:
        ...


@runtime_checkable
class RecoveryStore(Protocol):
    async def get(self, request_id: Union[int, str]) -> RecoveryRequest | None:
        ...

    async def list_pending(self) -> Sequence[RecoveryRequest]:
        ...

    async def decide(
        self, request_id: Union[int, str], status: RecoveryStatus, notes: str
    ) -> RecoveryRequest:
        ...


@runtime_checkable
class FailureReporter(Protocol):
    """Lockout hook fed by the session controller.

    ``stage`` is ``"login"`` or ``"second_factor"``. Implementations may
    raise to block further attempts; the error reaches the caller as is.
    """

    async def record_failure(self, username: str, stage: str) -> None:
        ...

    async def record_success(self, username: str) -> None:
        ...
