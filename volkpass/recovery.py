"""
RecoveryWorkflow — admin review of account recovery requests.

A request starts ``pending`` and is decided exactly once, to ``approved``
or ``denied``. Expiry is derived from ``token_expiry`` and never stored:
an expired pending request cannot be reviewed. The store's decide call is a
compare-and-set on ``pending``; when two admins race, the loser gets
``Conflict``.
"""
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional, Union

from .exceptions import (
    CollaboratorUnavailable,
    Conflict,
    Expired,
    InvalidInput,
    RequestNotFound,
    VolkpassError,
)
from .models import RecoveryDecision, RecoveryRequest, utcnow
from .session import SessionController
from .stores.protocols import RecoveryStore

logger = logging.getLogger("volkpass.recovery")


class RecoveryWorkflow:
    """Admin-only review of recovery requests."""

    def __init__(
        self,
        session: SessionController,
        store: RecoveryStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session = session
        self._store = store
        self._clock = clock or utcnow

    async def _store_call(self, operation: str, awaitable):
        try:
            return await awaitable
        except VolkpassError:
            raise
        except Exception as err:
            logger.error("Recovery store %s failed: %s", operation, err)
            raise CollaboratorUnavailable(f"Recovery store {operation} failed") from err

    async def list_pending(self, include_expired: bool = False) -> list[RecoveryRequest]:
        """Pending requests, oldest first; expired ones only when asked.

        Raises:
            Unauthorized: Caller is not an admin.
        """
        self._session.require_admin()
        requests = await self._store_call("list", self._store.list_pending())
        if include_expired:
            return list(requests)
        now = self._clock()
        return [r for r in requests if not r.is_expired(now)]

    async def review(
        self,
        request_id: Union[int, str],
        decision: Union[RecoveryDecision, str],
        notes: Optional[str] = None,
    ) -> RecoveryRequest:
        """Approve or deny a pending, unexpired request.

        Raises:
            Unauthorized: Caller is not an admin (checked before anything else).
            InvalidInput: Unknown decision.
            RequestNotFound: No such request.
            Conflict: Already decided, or another admin decided first.
            Expired: The request's token has expired.
            CollaboratorUnavailable: Store failure.
        """
        admin = self._session.require_admin()
        try:
            decision = RecoveryDecision(decision)
        except ValueError:
            raise InvalidInput(f"Unknown decision: {decision!r}") from None

        request = await self._store_call("get", self._store.get(request_id))
        if request is None:
            raise RequestNotFound(f"Recovery request not found: {request_id}")
        if not request.is_pending:
            raise Conflict(f"Recovery request {request_id} already {request.status.value}")
        if request.is_expired(self._clock()):
            logger.warning("Rejected review of expired recovery request id=%s", request_id)
            raise Expired(f"Recovery request {request_id} expired at {request.token_expiry.isoformat()}")

        try:
            decided = await self._store_call(
                "decide", self._store.decide(request_id, decision.status, notes or ""),
            )
        except Conflict:
            logger.warning(
                "Recovery request id=%s decided concurrently; admin=%s lost",
                request_id, admin.username,
            )
            raise
        logger.info(
            "Recovery request id=%s %s by admin=%s",
            request_id, decided.status.value, admin.username,
        )
        return decided
