"""
In-memory collaborators.

Reference implementations of the store protocols, used for embedding the
core in single-process tools and as test doubles. Nothing here survives a
restart.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Optional, Union

from ..conf import CoreConfig
from ..exceptions import (
    AuthenticationFailed,
    Conflict,
    InvalidInput,
    RecordNotFound,
    RequestNotFound,
    SecondFactorInvalid,
)
from ..models import (
    CredentialRecord,
    Principal,
    RecoveryKind,
    RecoveryRequest,
    RecoveryStatus,
    SecondFactorRequired,
    VerificationResult,
)
from . import crypto

logger = logging.getLogger("volkpass.stores")


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@dataclass
class _Account:
    id: int
    username: str
    password_hash: bytes
    role: str = "user"
    totp_key: Optional[bytes] = None
    backup_digests: set[bytes] = field(default_factory=set)
    # issued by setup_two_factor, active only once a code confirms them
    pending_totp_key: Optional[bytes] = None
    pending_backup_digests: set[bytes] = field(default_factory=set)

    def principal(self) -> Principal:
        return Principal(
            id=self.id,
            username=self.username,
            role=self.role,
            two_factor_enabled=self.totp_key is not None,
        )


@dataclass
class TwoFactorEnrollment:
    """Result of starting second factor setup. Shown to the user once."""

    key: bytes = field(repr=False)
    provisioning_uri: str = field(repr=False)
    backup_codes: list[str] = field(repr=False)


class MemoryAccountStore:
    """Account store with scrypt passwords, TOTP and single-use backup codes.

    Holds at most one live server-side session, like a cookie jar shared by
    the clients of one process: a successful login sets it, ``logout``
    clears it and ``current_principal`` reports it.
    """

    def __init__(self, config: Optional[CoreConfig] = None, issuer: str = "VolkPass") -> None:
        self._config = config or CoreConfig()
        self._issuer = issuer
        self._accounts: dict[str, _Account] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()
        self._current: Optional[str] = None
        # compared against when the username is unknown, so both paths cost the same
        self._decoy_hash = crypto.hash_secret(crypto.generate_backup_codes(1, 16)[0])
        self.logout_count = 0

    def add_user(self, username: str, secret: str, role: str = "user") -> Principal:
        """Create an account.

        Raises:
            InvalidInput: If the username is empty or already taken.
        """
        if not username or not secret:
            raise InvalidInput("Username and secret are required")
        return self._insert(username, crypto.hash_secret(secret), role)

    def _insert(self, username: str, password_hash: bytes, role: str = "user") -> Principal:
        if not username:
            raise InvalidInput("Username and secret are required")
        if username in self._accounts:
            raise InvalidInput(f"Username already exists: {username}")
        account = _Account(
            id=self._next_id,
            username=username,
            password_hash=password_hash,
            role=role,
        )
        self._accounts[username] = account
        self._next_id += 1
        logger.info("Account created: user=%s role=%s", username, role)
        return account.principal()

    def setup_two_factor(self, username: str) -> TwoFactorEnrollment:
        """Issue a TOTP key and backup codes for ``username``, pending confirmation.

        Nothing changes for logins until ``enable_two_factor`` confirms the
        key with a valid code. Calling this again replaces the pending set.
        """
        account = self._get(username)
        key = crypto.new_totp_key()
        codes = crypto.generate_backup_codes(
            self._config.backup_code_count, self._config.backup_code_max_length,
        )
        account.pending_totp_key = key
        account.pending_backup_digests = {
            crypto.digest_backup_code(username, code) for code in codes
        }
        logger.info("Second factor setup started: user=%s", username)
        return TwoFactorEnrollment(
            key=key,
            provisioning_uri=crypto.provisioning_uri(
                key, username, self._issuer,
                self._config.totp_digits, self._config.totp_step,
            ),
            backup_codes=codes,
        )

    def enable_two_factor(self, username: str, code: str, at: Optional[float] = None) -> Principal:
        """Activate the pending key once ``code`` proves the user can generate codes.

        Raises:
            InvalidInput: No setup is pending for ``username``.
            SecondFactorInvalid: The code does not match the pending key.
        """
        account = self._get(username)
        if account.pending_totp_key is None:
            raise InvalidInput(f"No second factor setup pending for {username}")
        if not crypto.verify_code(
            account.pending_totp_key, (code or "").strip(),
            self._config.totp_digits, self._config.totp_step, self._config.totp_window, at,
        ):
            logger.warning("Second factor confirmation failed: user=%s", username)
            raise SecondFactorInvalid("setup code mismatch")
        account.totp_key = account.pending_totp_key
        account.backup_digests = account.pending_backup_digests
        account.pending_totp_key = None
        account.pending_backup_digests = set()
        logger.info(
            "Second factor enabled: user=%s backup_codes=%d",
            username, len(account.backup_digests),
        )
        return account.principal()

    def current_code(self, username: str, at: Optional[float] = None) -> str:
        """The TOTP code an authenticator app would show right now."""
        account = self._get(username)
        if account.totp_key is None:
            raise InvalidInput(f"Second factor not enabled for {username}")
        return crypto.current_code(
            account.totp_key, self._config.totp_digits, self._config.totp_step, at,
        )

    def remaining_backup_codes(self, username: str) -> int:
        return len(self._get(username).backup_digests)

    def _get(self, username: str) -> _Account:
        try:
            return self._accounts[username]
        except KeyError:
            raise InvalidInput(f"Unknown account: {username}") from None

    def _signed_in(self, account: _Account) -> Principal:
        self._current = account.username
        return account.principal()

    # ------------------------------------------------------------------
    # AccountStore protocol
    # ------------------------------------------------------------------

    async def verify_credentials(
        self, username: str, secret: str, is_registration: bool
    ) -> Union[Principal, SecondFactorRequired]:
        if is_registration:
            password_hash = await asyncio.to_thread(crypto.hash_secret, secret)
            async with self._lock:
                if username in self._accounts:
                    raise AuthenticationFailed("registration for existing username")
                self._insert(username, password_hash)
                return self._signed_in(self._accounts[username])

        account = self._accounts.get(username)
        stored = account.password_hash if account else self._decoy_hash
        valid = await asyncio.to_thread(crypto.verify_secret, secret, stored)
        if account is None or not valid:
            raise AuthenticationFailed("bad username or secret")
        if account.totp_key is not None:
            return SecondFactorRequired(username=username)
        return self._signed_in(account)

    async def verify_code(self, username: str, code: str) -> VerificationResult:
        account = self._accounts.get(username)
        if account is None or account.totp_key is None:
            raise SecondFactorInvalid("no second factor enrolled")
        if not crypto.verify_code(
            account.totp_key, code,
            self._config.totp_digits, self._config.totp_step, self._config.totp_window,
        ):
            raise SecondFactorInvalid("code mismatch")
        return VerificationResult(principal=self._signed_in(account))

    async def verify_backup_code(self, username: str, code: str) -> VerificationResult:
        async with self._lock:
            account = self._accounts.get(username)
            if account is None:
                raise SecondFactorInvalid("no second factor enrolled")
            digest = crypto.digest_backup_code(username, code)
            if digest not in account.backup_digests:
                raise SecondFactorInvalid("unknown or used backup code")
            account.backup_digests.discard(digest)
        logger.info(
            "Backup code consumed: user=%s remaining=%d",
            username, len(account.backup_digests),
        )
        return VerificationResult(principal=self._signed_in(account), consumed=True)

    async def current_principal(self) -> Optional[Principal]:
        if self._current is None:
            return None
        return self._accounts[self._current].principal()

    async def logout(self) -> None:
        self._current = None
        self.logout_count += 1


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class MemoryCredentialStore:
    """Insertion-ordered credential records with integer ids."""

    def __init__(self, records: Optional[Sequence[CredentialRecord]] = None) -> None:
        self._records: dict[Union[int, str], CredentialRecord] = {}
        self._next_id = 1
        for record in records or ():
            self._records[record.id] = record
            if isinstance(record.id, int):
                self._next_id = max(self._next_id, record.id + 1)

    async def list(self) -> list[CredentialRecord]:
        return list(self._records.values())

    async def create(self, data: Mapping[str, Any]) -> CredentialRecord:
        record = CredentialRecord(id=self._next_id, **data)
        self._records[record.id] = record
        self._next_id += 1
        return record

    async def update(self, record_id: Union[int, str], changes: Mapping[str, Any]) -> CredentialRecord:
        current = self._records.get(record_id)
        if current is None:
            raise RecordNotFound(f"Credential record not found: {record_id}")
        record = CredentialRecord.model_validate(
            {**current.model_dump(), **changes, "id": record_id}
        )
        self._records[record_id] = record
        return record

    async def delete(self, record_id: Union[int, str]) -> None:
        if self._records.pop(record_id, None) is None:
            raise RecordNotFound(f"Credential record not found: {record_id}")


# ---------------------------------------------------------------------------
# Recovery requests
# ---------------------------------------------------------------------------

class MemoryRecoveryStore:
    """Recovery request queue with compare-and-set decisions.

    Requests are never deleted; decided requests stay for audit.
    """

    def __init__(self, config: Optional[CoreConfig] = None) -> None:
        self._config = config or CoreConfig()
        self._requests: dict[Union[int, str], RecoveryRequest] = {}
        self._lock = asyncio.Lock()

    def add(self, request: RecoveryRequest) -> RecoveryRequest:
        if request.id in self._requests:
            raise InvalidInput(f"Recovery request already exists: {request.id}")
        self._requests[request.id] = request
        return request

    def open(
        self,
        user_id: Union[int, str],
        kind: RecoveryKind,
        now: Optional[datetime] = None,
    ) -> RecoveryRequest:
        """File a new pending request with the configured token lifetime."""
        request = RecoveryRequest.open(
            user_id, kind, ttl=self._config.recovery_token_ttl, now=now,
        )
        logger.info(
            "Recovery request opened: id=%s user=%s kind=%s",
            request.id, user_id, kind.value,
        )
        return self.add(request)

    def all(self) -> list[RecoveryRequest]:
        return list(self._requests.values())

    async def get(self, request_id: Union[int, str]) -> RecoveryRequest | None:
        return self._requests.get(request_id)

    async def list_pending(self) -> list[RecoveryRequest]:
        pending = [r for r in self._requests.values() if r.is_pending]
        return sorted(pending, key=lambda r: r.created_at)

    async def decide(
        self, request_id: Union[int, str], status: RecoveryStatus, notes: str
    ) -> RecoveryRequest:
        async with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise RequestNotFound(f"Recovery request not found: {request_id}")
            if not current.is_pending:
                raise Conflict(f"Recovery request {request_id} already {current.status.value}")
            decided = current.model_copy(update={"status": status, "admin_notes": notes})
            self._requests[request_id] = decided
        return decided
