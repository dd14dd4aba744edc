"""
SessionController — authentication state machine for one client.

Phases::

    anonymous --login/restore--> authenticating --+--> authenticated
        ^                                         |
        |                                         +--> awaiting_second_factor
        |                                                  |  verify_second_factor
        |                                                  |  verify_backup_code
        +-------------------- logout <---------------------+--> authenticated

Every transition swaps in a new frozen ``Session`` snapshot. State changes
happen in synchronous sections between awaits, so within one event loop a
transition is applied whole or not at all. Calls that await the account
store capture an epoch when they start; a response is applied only if no
other transition happened meanwhile, otherwise it is discarded and
``StaleTransition`` is raised. Login, restore and logout bump the epoch
when they start, so the most recently issued of them always wins.

Security Note:
    Never log secrets, codes or backup codes. Log usernames and phases only.
"""
import asyncio
import logging
from collections import deque
from collections.abc import Awaitable
from typing import Any, Optional

from .conf import CoreConfig
from .exceptions import (
    AuthenticationFailed,
    CollaboratorUnavailable,
    InvalidInput,
    InvalidPhase,
    SecondFactorInvalid,
    StaleTransition,
    Unauthorized,
    VolkpassError,
)
from .models import (
    Principal,
    SecondFactorRequired,
    Session,
    SessionPhase,
    VerificationResult,
)
from .stores import crypto
from .stores.protocols import AccountStore, FailureReporter, SessionLookup

logger = logging.getLogger("volkpass.session")

STAGE_LOGIN = "login"
STAGE_SECOND_FACTOR = "second_factor"


class SessionController:
    """Owns the session of one client and drives it through login and MFA.

    Pass one instance to whatever needs the session (credential service,
    recovery workflow, presentation layer); there is no global instance.
    """

    def __init__(
        self,
        accounts: AccountStore,
        *,
        config: Optional[CoreConfig] = None,
        failure_reporter: Optional[FailureReporter] = None,
    ) -> None:
        self._accounts = accounts
        self._config = config or CoreConfig()
        self._reporter = failure_reporter
        self._session = Session.anonymous()
        self._epoch = 0
        # backup code digests seen consumed, per username; the most recent
        # backup_code_count per user are kept, older ones are left to the store
        self._burned: dict[str, deque[bytes]] = {}
        self._inflight: set[bytes] = set()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def phase(self) -> SessionPhase:
        return self._session.phase

    @property
    def is_admin(self) -> bool:
        return self._session.is_admin

    def require_authenticated(self) -> Principal:
        """Return the current principal or raise ``Unauthorized``."""
        principal = self._session.principal
        if principal is None:
            raise Unauthorized("Authentication required")
        return principal

    def require_admin(self) -> Principal:
        """Return the current principal if it has the admin role."""
        principal = self.require_authenticated()
        if not principal.is_admin:
            raise Unauthorized("Administrator role required")
        return principal

    # ------------------------------------------------------------------
    # Transition helpers
    # ------------------------------------------------------------------

    def _begin(self, session: Session) -> int:
        """Start a superseding transition and return its epoch."""
        self._epoch += 1
        self._session = session
        return self._epoch

    def _commit(self, epoch: int, session: Session) -> bool:
        """Apply ``session`` only if nothing else changed since ``epoch``."""
        if epoch != self._epoch:
            logger.warning(
                "Discarding stale transition to %s (started at epoch %d, now %d)",
                session.phase.value, epoch, self._epoch,
            )
            return False
        self._epoch += 1
        self._session = session
        return True

    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        """Await a collaborator, mapping transport failures to ``CollaboratorUnavailable``."""
        try:
            return await asyncio.wait_for(awaitable, self._config.collaborator_timeout)
        except VolkpassError:
            raise
        except asyncio.TimeoutError as err:
            raise CollaboratorUnavailable("Account service timed out") from err
        except Exception as err:
            raise CollaboratorUnavailable(f"Account service failed: {err}") from err

    async def _report_failure(self, username: str, stage: str) -> None:
        if self._reporter is not None:
            await self._reporter.record_failure(username, stage)

    async def _report_success(
        self, epoch: int, username: str, fallback: Optional[Session] = None
    ) -> None:
        """Report a success before it is applied.

        Skipped when the transition is already stale. If the reporter raises,
        the session moves to ``fallback`` (when given) and the error propagates.
        """
        if self._reporter is None or epoch != self._epoch:
            return
        try:
            await self._reporter.record_success(username)
        except BaseException:
            if fallback is not None:
                self._commit(epoch, fallback)
            raise

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(self, username: str, secret: str, is_registration: bool = False) -> Session:
        """Verify primary credentials.

        Returns the new session: ``authenticated`` or, for accounts with a
        second factor, ``awaiting_second_factor`` with ``pending_username``.

        Raises:
            InvalidInput: Empty username or secret.
            InvalidPhase: Already authenticated; log out first.
            AuthenticationFailed: Bad credentials (cause not disclosed).
            CollaboratorUnavailable: Account service failure; prior state kept.
            StaleTransition: Superseded by a later login or logout.
        """
        username = (username or "").strip()
        if not username or not secret:
            raise InvalidInput("Username and secret are required")
        if self._session.phase is SessionPhase.AUTHENTICATED:
            raise InvalidPhase("Already authenticated")

        prior = self._session
        if prior.phase is SessionPhase.AUTHENTICATING:
            prior = Session.anonymous()
        epoch = self._begin(Session(phase=SessionPhase.AUTHENTICATING))
        logger.debug("Login started: user=%s registration=%s", username, is_registration)

        try:
            result = await self._call(
                self._accounts.verify_credentials(username, secret, is_registration)
            )
        except AuthenticationFailed:
            self._commit(epoch, Session.anonymous())
            logger.warning("Login failed: user=%s", username)
            await self._report_failure(username, STAGE_LOGIN)
            raise
        except asyncio.CancelledError:
            self._commit(epoch, prior)
            raise
        except VolkpassError as err:
            self._commit(epoch, prior)
            logger.error("Login aborted: user=%s error=%s", username, err.message)
            raise

        if isinstance(result, SecondFactorRequired):
            session = Session(
                phase=SessionPhase.AWAITING_SECOND_FACTOR,
                pending_username=result.username,
            )
        elif isinstance(result, Principal):
            session = Session(phase=SessionPhase.AUTHENTICATED, principal=result)
        else:
            self._commit(epoch, prior)
            raise CollaboratorUnavailable(
                f"Unexpected account service response: {type(result).__name__}"
            )

        if session.is_authenticated:
            await self._report_success(epoch, username, fallback=prior)
        if not self._commit(epoch, session):
            raise StaleTransition()
        logger.info("Login succeeded: user=%s phase=%s", username, session.phase.value)
        return session

    async def restore(self) -> Session:
        """Resume a session the account service still holds for this client.

        Only runs from ``anonymous``. Stays anonymous when the service has no
        live session or does not implement ``current_principal``.

        Raises:
            InvalidPhase: Not anonymous.
            CollaboratorUnavailable: Account service failure; still anonymous.
            StaleTransition: Superseded by a login or logout.
        """
        if self._session.phase is not SessionPhase.ANONYMOUS:
            raise InvalidPhase("Restore only runs from an anonymous session")
        if not isinstance(self._accounts, SessionLookup):
            return self._session

        prior = self._session
        epoch = self._begin(Session(phase=SessionPhase.AUTHENTICATING))
        try:
            principal = await self._call(self._accounts.current_principal())
        except BaseException:
            self._commit(epoch, prior)
            raise

        if principal is None:
            session = Session.anonymous()
        elif isinstance(principal, Principal):
            session = Session(phase=SessionPhase.AUTHENTICATED, principal=principal)
        else:
            self._commit(epoch, prior)
            raise CollaboratorUnavailable(
                f"Unexpected account service response: {type(principal).__name__}"
            )
        if not self._commit(epoch, session):
            raise StaleTransition()
        if principal is not None:
            logger.info("Session restored: user=%s", principal.username)
        return session

    # ------------------------------------------------------------------
    # Second factor
    # ------------------------------------------------------------------

    def _challenge(self) -> tuple[int, str]:
        if self._session.phase is not SessionPhase.AWAITING_SECOND_FACTOR:
            raise InvalidPhase("No second factor challenge is pending")
        return self._epoch, self._session.pending_username

    async def _second_factor_failed(self, epoch: int, username: str) -> None:
        if epoch == self._epoch:
            failures = self._session.second_factor_failures + 1
            limit = self._config.max_second_factor_attempts
            if limit is not None and failures >= limit:
                logger.warning(
                    "Second factor attempts exhausted: user=%s attempts=%d", username, failures,
                )
                self._begin(Session.anonymous())
            else:
                # failure counting keeps the epoch so in-flight verifies stay valid
                self._session = Session(
                    phase=SessionPhase.AWAITING_SECOND_FACTOR,
                    pending_username=username,
                    second_factor_failures=failures,
                )
        logger.warning("Second factor rejected: user=%s", username)
        await self._report_failure(username, STAGE_SECOND_FACTOR)

    async def _second_factor_passed(
        self, epoch: int, username: str, result: VerificationResult
    ) -> Session:
        if result.principal.username != username:
            logger.error(
                "Account service verified %s for challenge of %s",
                result.principal.username, username,
            )
            raise SecondFactorInvalid("principal mismatch")
        session = Session(phase=SessionPhase.AUTHENTICATED, principal=result.principal)
        await self._report_success(epoch, username)
        if not self._commit(epoch, session):
            raise StaleTransition()
        logger.info("Second factor accepted: user=%s", username)
        return session

    async def verify_second_factor(self, code: str) -> Session:
        """Complete the challenge with a time-based numeric code.

        Raises:
            InvalidPhase: No challenge pending.
            InvalidInput: Code is not exactly ``totp_digits`` digits.
            SecondFactorInvalid: Wrong code; the challenge stays open.
            CollaboratorUnavailable: Account service failure; state unchanged.
            StaleTransition: Session changed while verifying.
        """
        epoch, username = self._challenge()
        code = (code or "").strip()
        if len(code) != self._config.totp_digits or not (code.isascii() and code.isdigit()):
            raise InvalidInput(f"Code must be {self._config.totp_digits} digits")

        try:
            result = await self._call(self._accounts.verify_code(username, code))
        except SecondFactorInvalid:
            await self._second_factor_failed(epoch, username)
            raise
        return await self._second_factor_passed(epoch, username, result)

    async def verify_backup_code(self, code: str) -> Session:
        """Complete the challenge with a single-use backup code.

        The last ``backup_code_count`` codes accepted for a user are refused
        locally on replay, whatever the account service would say. The
        service must acknowledge that it burned the code or the attempt is
        refused.

        Raises:
            InvalidPhase: No challenge pending.
            InvalidInput: Code length or alphabet is wrong.
            SecondFactorInvalid: Unknown, reused or unacknowledged code.
            CollaboratorUnavailable: Account service failure; state unchanged.
            StaleTransition: Session changed while verifying.
        """
        epoch, username = self._challenge()
        normalized = crypto.normalize_backup_code(code or "")
        low = self._config.backup_code_min_length
        high = self._config.backup_code_max_length
        if not (low <= len(normalized) <= high) or not (normalized.isascii() and normalized.isalnum()):
            raise InvalidInput(f"Backup code must be {low}-{high} letters or digits")

        digest = crypto.digest_backup_code(username, normalized)
        if digest in self._inflight or digest in self._burned.get(username, ()):
            await self._second_factor_failed(epoch, username)
            raise SecondFactorInvalid("backup code replay")

        self._inflight.add(digest)
        try:
            try:
                result = await self._call(
                    self._accounts.verify_backup_code(username, normalized)
                )
            except SecondFactorInvalid:
                await self._second_factor_failed(epoch, username)
                raise
            if not result.consumed:
                logger.error(
                    "Account service accepted a backup code without consuming it: user=%s",
                    username,
                )
                raise SecondFactorInvalid("consumption not acknowledged")
            burned = self._burned.setdefault(
                username, deque(maxlen=self._config.backup_code_count),
            )
            burned.append(digest)
        finally:
            self._inflight.discard(digest)
        return await self._second_factor_passed(epoch, username, result)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def logout(self) -> Session:
        """Reset to anonymous from any phase.

        Idempotent: when already anonymous nothing is called. Otherwise the
        local session is cleared first, then the account service is told.

        Raises:
            CollaboratorUnavailable: The account service could not be told;
                the local session is anonymous regardless.
        """
        previous = self._session.phase
        if previous is SessionPhase.ANONYMOUS:
            return self._session
        session = Session.anonymous()
        self._begin(session)
        logger.info("Logged out from phase=%s", previous.value)
        try:
            await self._call(self._accounts.logout())
        except CollaboratorUnavailable as err:
            logger.warning("Account service logout failed: %s", err.message)
            raise
        return session
