"""
Shared fixtures and collaborator doubles for the VolkPass core tests.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from volkpass.conf import CoreConfig
from volkpass.models import CredentialRecord, Principal, VerificationResult
from volkpass.session import SessionController
from volkpass.stores import crypto
from volkpass.stores.memory import (
    MemoryAccountStore,
    MemoryCredentialStore,
    MemoryRecoveryStore,
)


# --- Collaborator doubles ---

class GatedAccountStore:
    """Account store whose responses wait until the test releases them."""

    def __init__(self, result=None, code_result=None):
        self.result = result
        self.code_result = code_result
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls: list[tuple] = []
        self.logout_error: Exception | None = None
        self.logout_count = 0

    async def _respond(self, value):
        self.started.set()
        await self.release.wait()
        if isinstance(value, BaseException):
            raise value
        return value

    async def verify_credentials(self, username, secret, is_registration):
        self.calls.append(("credentials", username))
        return await self._respond(self.result)

    async def verify_code(self, username, code):
        self.calls.append(("code", username))
        return await self._respond(self.code_result)

    async def verify_backup_code(self, username, code):
        self.calls.append(("backup", username))
        return await self._respond(self.code_result)

    async def logout(self):
        self.logout_count += 1
        if self.logout_error is not None:
            raise self.logout_error


class GatedLookupStore(GatedAccountStore):
    """Gated account store that also reports a live server-side session."""

    def __init__(self, result=None, code_result=None, current=None):
        super().__init__(result, code_result)
        self.current = current

    async def current_principal(self):
        self.calls.append(("current", None))
        return await self._respond(self.current)


class RecordingReporter:
    """FailureReporter that remembers what it was told."""

    def __init__(self):
        self.failures: list[tuple[str, str]] = []
        self.successes: list[str] = []

    async def record_failure(self, username, stage):
        self.failures.append((username, stage))

    async def record_success(self, username):
        self.successes.append(username)


class RefusingReporter(RecordingReporter):
    """Reporter whose success hook fails, as a lockout service outage would."""

    async def record_success(self, username):
        raise RuntimeError("lockout service unavailable")


def wrong_code(accounts: MemoryAccountStore, username: str) -> str:
    """A six digit code outside the currently accepted window."""
    import time
    now = time.time()
    valid = {accounts.current_code(username, at=now + drift) for drift in (-60, -30, 0, 30, 60)}
    for candidate in ("000000", "111111", "222222", "333333", "444444", "555555"):
        if candidate not in valid:
            return candidate
    raise AssertionError("no invalid code found")


def make_record(record_id, secret, **fields) -> CredentialRecord:
    return CredentialRecord(
        id=record_id,
        site=fields.pop("site", f"site-{record_id}"),
        secret_value=secret,
        **fields,
    )


# --- Fixtures ---

@pytest.fixture
def config():
    return CoreConfig()


@pytest.fixture
def accounts(config):
    """Account store with a plain user, a 2FA user and an admin."""
    store = MemoryAccountStore(config=config)
    store.add_user("alice", "alice-secret")
    store.add_user("bob", "bob-secret")
    store.add_user("root", "root-secret", role="admin")
    return store


@pytest.fixture
def enrollment(accounts):
    """Confirmed second factor enrollment for bob."""
    enrollment = accounts.setup_two_factor("bob")
    accounts.enable_two_factor("bob", crypto.current_code(enrollment.key))
    return enrollment


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def controller(accounts, config, reporter):
    return SessionController(accounts, config=config, failure_reporter=reporter)


@pytest.fixture
def principal():
    return Principal(id=7, username="alice")


@pytest.fixture
def credential_store():
    return MemoryCredentialStore()


@pytest.fixture
def recovery_store(config):
    return MemoryRecoveryStore(config=config)


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def accepted(principal):
    return VerificationResult(principal=principal, consumed=True)
