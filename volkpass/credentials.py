"""
CredentialService — the authenticated gateway to a user's credential records.

Stamps ``strength`` and ``updated_at`` on every write so the persisted
label always matches the latest secret, and keeps a risk snapshot that is
recomputed lazily after the record set changes.

Security Note:
    Never log secret values. Log record ids, sites and counts.
"""
import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from pydantic import SecretStr, ValidationError

from .exceptions import CollaboratorUnavailable, InvalidInput, VolkpassError
from .models import CredentialDraft, CredentialRecord, RiskSnapshot, utcnow
from .risk import CredentialRiskEngine
from .session import SessionController
from .stores.protocols import CredentialStore
from .strength import strength_of

logger = logging.getLogger("volkpass.credentials")

# Fields a caller may change through ``update``.
_MUTABLE_FIELDS = frozenset({
    "site", "url", "username", "secret_value", "category", "notes", "compromised",
})
_SEARCH_FIELDS = ("site", "url", "username", "category", "notes")


class CredentialService:
    """Credential CRUD with strength stamping, search and risk analysis.

    Every operation requires an authenticated session on the injected
    controller.
    """

    def __init__(
        self,
        session: SessionController,
        store: CredentialStore,
        engine: Optional[CredentialRiskEngine] = None,
    ) -> None:
        self._session = session
        self._store = store
        self._engine = engine or CredentialRiskEngine()
        self._records: Optional[list[CredentialRecord]] = None
        self._snapshot: Optional[RiskSnapshot] = None
        self._owner = None
        # bumped on every invalidation; a list() result older than this is not cached
        self._generation = 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _invalidate(self) -> None:
        self._generation += 1
        self._records = None
        self._snapshot = None

    async def _store_call(self, operation: str, awaitable) -> Any:
        try:
            return await awaitable
        except VolkpassError:
            raise
        except Exception as err:
            logger.error("Credential store %s failed: %s", operation, err)
            raise CollaboratorUnavailable(f"Credential store {operation} failed") from err

    @staticmethod
    def _stamp(secret: Union[str, SecretStr]) -> dict:
        _, label = strength_of(secret)
        return {"strength": label, "updated_at": utcnow()}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def records(self, refresh: bool = False) -> list[CredentialRecord]:
        """All records, cached until the next write or ``refresh``."""
        principal = self._session.require_authenticated()
        if principal.id != self._owner:
            # cached records never outlive the session that loaded them
            self._invalidate()
            self._owner = principal.id
        if self._records is not None and not refresh:
            return list(self._records)
        generation = self._generation
        records = list(await self._store_call("list", self._store.list()))
        if generation == self._generation:
            self._records = records
            self._snapshot = None
        else:
            logger.debug("Credential list changed while loading; not cached")
        return list(records)

    async def search(self, query: str) -> list[CredentialRecord]:
        """Case-insensitive substring match on site, url, username, category and notes."""
        records = await self.records()
        needle = (query or "").strip().lower()
        if not needle:
            return records
        return [
            record for record in records
            if any(needle in (getattr(record, name) or "").lower() for name in _SEARCH_FIELDS)
        ]

    async def by_category(self, category: str) -> list[CredentialRecord]:
        wanted = (category or "").strip().lower()
        return [r for r in await self.records() if r.category.lower() == wanted]

    async def risk_snapshot(self) -> RiskSnapshot:
        """Risk view over the current records, recomputed only after changes."""
        records = await self.records()
        if self._snapshot is not None:
            return self._snapshot
        snapshot = self._engine.snapshot(records)
        if self._records is not None:
            self._snapshot = snapshot
        return snapshot

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, draft: Union[CredentialDraft, Mapping[str, Any]]) -> CredentialRecord:
        """Store a new record with its strength computed from the secret.

        Raises:
            InvalidInput: The draft is missing a site or secret.
        """
        self._session.require_authenticated()
        if not isinstance(draft, CredentialDraft):
            try:
                draft = CredentialDraft.model_validate(draft)
            except ValidationError as err:
                raise InvalidInput(f"Invalid credential: {err.error_count()} error(s)") from err
        data = draft.model_dump()
        data.update(self._stamp(draft.secret_value))
        record = await self._store_call("create", self._store.create(data))
        self._invalidate()
        logger.info(
            "Credential created: id=%s site=%s strength=%s",
            record.id, record.site, data["strength"].value,
        )
        return record

    async def update(self, record_id: Union[int, str], **changes) -> CredentialRecord:
        """Change fields of a record; a new secret re-stamps its strength.

        Raises:
            InvalidInput: Unknown field or empty secret.
        """
        self._session.require_authenticated()
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise InvalidInput(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if "secret_value" in changes:
            secret = changes["secret_value"]
            if isinstance(secret, SecretStr):
                secret = secret.get_secret_value()
            if not secret:
                raise InvalidInput("Secret cannot be empty")
            changes["secret_value"] = SecretStr(secret)
            changes.update(self._stamp(secret))
        else:
            changes["updated_at"] = utcnow()
        record = await self._store_call("update", self._store.update(record_id, changes))
        self._invalidate()
        logger.info("Credential updated: id=%s fields=%s", record_id, sorted(changes))
        return record

    async def delete(self, record_id: Union[int, str]) -> None:
        self._session.require_authenticated()
        await self._store_call("delete", self._store.delete(record_id))
        self._invalidate()
        logger.info("Credential deleted: id=%s", record_id)
