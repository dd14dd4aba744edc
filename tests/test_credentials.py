"""
Tests for CredentialService: strength stamping, search and lazy risk snapshots.
"""
import asyncio

import pytest
from pydantic import SecretStr

from volkpass.credentials import CredentialService
from volkpass.exceptions import (
    CollaboratorUnavailable,
    InvalidInput,
    RecordNotFound,
    Unauthorized,
)
from volkpass.models import CredentialDraft, StrengthLabel
from volkpass.stores.memory import MemoryCredentialStore


class CountingStore(MemoryCredentialStore):
    """Memory store that counts list() calls."""

    def __init__(self, records=None):
        super().__init__(records)
        self.list_calls = 0

    async def list(self):
        self.list_calls += 1
        return await super().list()


class BrokenStore(MemoryCredentialStore):
    async def list(self):
        raise RuntimeError("database is locked")


class GatedListStore(MemoryCredentialStore):
    """Memory store whose list() holds its result until released."""

    def __init__(self, records=None):
        super().__init__(records)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def list(self):
        records = await super().list()
        self.started.set()
        await self.release.wait()
        return records


@pytest.fixture
async def signed_in(controller):
    await controller.login("alice", "alice-secret")
    return controller


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def service(signed_in, store):
    return CredentialService(signed_in, store)


def draft(site, secret, **fields):
    return CredentialDraft(site=site, secret_value=secret, **fields)


class TestWrites:
    """Tests for create/update/delete."""

    async def test_create_stamps_strength(self, service):
        record = await service.create(draft("example.com", "password"))
        assert record.id == 1
        assert record.strength is StrengthLabel.WEAK
        assert record.compromised is False
        assert record.secret_value.get_secret_value() == "password"

    async def test_create_from_mapping(self, service):
        record = await service.create({
            "site": "GitHub",
            "url": "https://github.com",
            "username": "alice",
            "secret_value": "Tr0ub4dor&3-Xq",
            "category": "Work",
        })
        assert record.strength is StrengthLabel.STRONG
        assert record.url == "https://github.com"

    @pytest.mark.parametrize("data", [
        {"site": "x"},
        {"site": "", "secret_value": "abc"},
        {"site": "x", "secret_value": ""},
    ])
    async def test_create_invalid(self, service, store, data):
        with pytest.raises(InvalidInput):
            await service.create(data)
        assert await store.list() == []

    async def test_update_secret_restamps(self, service):
        record = await service.create(draft("example.com", "password"))
        updated = await service.update(record.id, secret_value="Tr0ub4dor&3-Xq")
        assert updated.strength is StrengthLabel.STRONG
        assert updated.secret_value.get_secret_value() == "Tr0ub4dor&3-Xq"
        assert updated.updated_at >= record.updated_at

    async def test_update_accepts_secretstr(self, service):
        record = await service.create(draft("example.com", "Tr0ub4dor&3-Xq"))
        updated = await service.update(record.id, secret_value=SecretStr("abc"))
        assert updated.strength is StrengthLabel.WEAK

    async def test_update_other_fields_keeps_strength(self, service):
        record = await service.create(draft("example.com", "password"))
        updated = await service.update(record.id, notes="rotate soon", compromised=True)
        assert updated.strength is StrengthLabel.WEAK
        assert updated.notes == "rotate soon"
        assert updated.compromised is True

    async def test_update_rejects_unknown_and_derived_fields(self, service):
        record = await service.create(draft("example.com", "password"))
        with pytest.raises(InvalidInput):
            await service.update(record.id, strength=StrengthLabel.STRONG)
        with pytest.raises(InvalidInput):
            await service.update(record.id, secret_value="")

    async def test_update_missing_record(self, service):
        with pytest.raises(RecordNotFound):
            await service.update(99, notes="x")

    async def test_delete(self, service):
        record = await service.create(draft("example.com", "password"))
        await service.delete(record.id)
        assert await service.records() == []
        with pytest.raises(RecordNotFound):
            await service.delete(record.id)


class TestReads:
    """Tests for listing, search and category filters."""

    async def test_search_fields(self, service):
        await service.create(draft("GitHub", "a1", username="alice", category="Work"))
        await service.create(draft("Bank", "b2", notes="joint account", category="Finance"))
        await service.create(draft("Mail", "c3", url="https://mail.example.org"))
        assert [r.site for r in await service.search("git")] == ["GitHub"]
        assert [r.site for r in await service.search("JOINT")] == ["Bank"]
        assert [r.site for r in await service.search("example.org")] == ["Mail"]
        assert len(await service.search("  ")) == 3

    async def test_by_category(self, service):
        await service.create(draft("GitHub", "a1", category="Work"))
        await service.create(draft("Bank", "b2", category="Finance"))
        assert [r.site for r in await service.by_category("work")] == ["GitHub"]

    async def test_records_cached_until_write(self, service, store):
        await service.records()
        await service.records()
        assert store.list_calls == 1
        await service.create(draft("x", "y"))
        await service.records()
        assert store.list_calls == 2
        await service.records(refresh=True)
        assert store.list_calls == 3

    async def test_store_failure(self, signed_in):
        service = CredentialService(signed_in, BrokenStore())
        with pytest.raises(CollaboratorUnavailable):
            await service.records()


class TestRiskSnapshot:
    """Tests for the lazily recomputed risk view."""

    async def test_snapshot_reused_until_change(self, service):
        await service.create(draft("a", "password"))
        first = await service.risk_snapshot()
        assert await service.risk_snapshot() is first
        await service.create(draft("b", "password"))
        second = await service.risk_snapshot()
        assert second is not first
        assert [r.site for r in second.reused] == ["a", "b"]
        assert second.issue_count == 4

    async def test_compromised_flag_surfaces(self, service):
        record = await service.create(draft("a", "Tr0ub4dor&3-Xq"))
        assert (await service.risk_snapshot()).is_clean
        await service.update(record.id, compromised=True)
        snapshot = await service.risk_snapshot()
        assert [r.id for r in snapshot.compromised] == [record.id]


class TestAccess:
    """Tests for session gating."""

    async def test_requires_authentication(self, controller, store):
        service = CredentialService(controller, store)
        with pytest.raises(Unauthorized):
            await service.records()
        with pytest.raises(Unauthorized):
            await service.create(draft("a", "b"))

    async def test_logout_blocks_access(self, service, signed_in):
        await service.records()
        await signed_in.logout()
        with pytest.raises(Unauthorized):
            await service.risk_snapshot()

    async def test_cache_dropped_for_other_principal(self, service, signed_in, store):
        await service.records()
        await signed_in.logout()
        await signed_in.login("root", "root-secret")
        await service.records()
        assert store.list_calls == 2


class TestConcurrentWrites:
    """Tests for writes that land while a list is loading."""

    async def test_write_during_load_is_not_hidden(self, signed_in):
        store = GatedListStore()
        service = CredentialService(signed_in, store)
        loading = asyncio.create_task(service.records())
        await store.started.wait()
        await service.create(draft("x", "abc"))
        store.release.set()
        assert await loading == []
        assert [r.site for r in await service.records()] == ["x"]
        assert [r.site for r in (await service.risk_snapshot()).weak] == ["x"]

    async def test_snapshot_of_outdated_load_is_not_kept(self, signed_in):
        store = GatedListStore()
        service = CredentialService(signed_in, store)
        loading = asyncio.create_task(service.risk_snapshot())
        await store.started.wait()
        await service.create(draft("x", "abc"))
        store.release.set()
        assert (await loading).is_clean
        assert (await service.risk_snapshot()).issue_count == 1
