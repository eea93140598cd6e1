# src/checkout_bff/session_restorer.py

import asyncio
import time
import typing

from pydantic import BaseModel

from .auth_utils import AuthClientError, SupabaseAuthClient
from .config import settings
from .safe_logging import get_logger, redact_id
from .session_backup import SessionBackupStore
from .session_data import AuthUser, PaymentContext

logger = get_logger("session_restorer")

SleepFunc = typing.Callable[[float], typing.Awaitable[None]]


class RestoreResult(BaseModel):
    success: bool
    user: typing.Optional[AuthUser] = None
    context: typing.Optional[PaymentContext] = None
    restored_from_backup: bool = False
    error: typing.Optional[str] = None


class SessionRestorer:
    """
    Re-establishes the auth session after the PayPal round trip.

    Every call to the auth API's session-set operation bumps a counter kept
    in the storage areas, so a backup is replayed at most `max_attempts`
    times in total, however many times the return page is reloaded.
    """

    def __init__(
            self,
            store: SessionBackupStore,
            auth_client: SupabaseAuthClient,
            sleep: SleepFunc = asyncio.sleep,
            clock: typing.Callable[[], float] = time.time,
            max_attempts: int = settings.MAX_RESTORATION_ATTEMPTS,
            backoff_base: float = settings.RESTORATION_BACKOFF_BASE_SECONDS,
            backup_ttl_seconds: int = settings.SESSION_BACKUP_TTL_SECONDS,
    ):
        self.store = store
        self.auth_client = auth_client
        self.sleep = sleep
        self.clock = clock
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backup_ttl_seconds = backup_ttl_seconds

    def backoff_delay(self, attempt: int) -> float:
        """
        Wait before retry number `attempt` (1-based): base ** attempt.

        The first attempt runs immediately, so a budget of 5 attempts sleeps
        only before retries 1 to 4 (2, 4, 8 and 16 seconds with base 2). The
        32 second step would only follow a sixth attempt, which never runs.
        """
        return self.backoff_base ** attempt

    async def restore(self) -> RestoreResult:
        if self.store.get_attempt_count() >= self.max_attempts:
            logger.warning("restoration_budget_exhausted", max_attempts=self.max_attempts)
            self.store.cleanup(force=True)
            return RestoreResult(success=False, error="Maximum restoration attempts reached")

        try:
            live_session = await self.auth_client.get_session()
        except AuthClientError as e:
            logger.warning("live_session_check_failed", error=str(e))
            live_session = None
        if live_session is not None:
            logger.info("live_session_found", user_id=redact_id(live_session.user.id))
            context = self.store.get_payment_context()
            self.store.reset_attempt_count()
            self.store.cleanup()
            return RestoreResult(success=True, user=live_session.user, context=context)

        backup = self.store.get_session_backup()
        if backup is None:
            logger.info("no_session_backup")
            return RestoreResult(success=False, error="No session backup found")

        age_seconds = self.clock() - backup.timestamp / 1000
        if age_seconds > self.backup_ttl_seconds:
            logger.info("session_backup_expired", user_id=redact_id(backup.user_id), age_seconds=int(age_seconds))
            self.store.cleanup()
            return RestoreResult(success=False, error="Session backup expired")

        context = self.store.get_payment_context()
        attempt = 0
        last_error = None
        while attempt < self.max_attempts and self.store.get_attempt_count() < self.max_attempts:
            if attempt > 0:
                await self.sleep(self.backoff_delay(attempt))
            attempt += 1
            self.store.increment_attempt_count()
            try:
                restored = await self.auth_client.set_session(backup.access_token, backup.refresh_token)
            except AuthClientError as e:
                restored = None
                last_error = str(e)
            if restored is not None and restored.user is not None:
                logger.info("session_restored", user_id=redact_id(restored.user.id), attempt=attempt)
                self.store.reset_attempt_count()
                self.store.cleanup()
                return RestoreResult(success=True, user=restored.user, context=context, restored_from_backup=True)
            logger.warning("restoration_attempt_failed", attempt=attempt, error=last_error)

        logger.error("session_restoration_failed", user_id=redact_id(backup.user_id), attempts=attempt)
        self.store.cleanup()
        return RestoreResult(success=False, error=last_error or "Session restoration failed")
