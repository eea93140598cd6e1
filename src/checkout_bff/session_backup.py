# src/checkout_bff/session_backup.py
"""
Session backup taken right before the browser leaves for PayPal.

Tokens and payment intent are written to the local area first and to the
session area when the local one refuses the write. A minimal fallback
record goes to both areas regardless, since it is needed even when there
was no session to back up.
"""

import time
import typing

from pydantic import BaseModel, ValidationError

from .auth_utils import AuthClientError, SupabaseAuthClient
from .safe_logging import get_logger, redact_id
from .session_data import FallbackData, PaymentContext, SessionBackup
from .storage import RedundantStorage, StorageArea, StorageError

logger = get_logger("session_backup")

BACKUP_KEY = "paypal_session_backup"
CONTEXT_KEY = "paypal_payment_context"
FALLBACK_KEY = "paypal_fallback_data"
ATTEMPTS_KEY = "paypal_restoration_attempts"
PROVIDER_TOKEN = "paypal"

ModelT = typing.TypeVar("ModelT", bound=BaseModel)


class SessionBackupStore:
    def __init__(
            self,
            primary: StorageArea,
            secondary: StorageArea,
            auth_client: SupabaseAuthClient,
            clock: typing.Callable[[], float] = time.time,
    ):
        self.storage = RedundantStorage(primary, secondary)
        self.auth_client = auth_client
        self.clock = clock

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def backup(
            self,
            user_id: str,
            plan_id: str,
            order_id: typing.Optional[str] = None,
            user_email: typing.Optional[str] = None,
            browser_info: typing.Optional[str] = None,
    ) -> bool:
        timestamp = self.now_ms()
        written = False

        try:
            session = await self.auth_client.get_session()
        except AuthClientError as e:
            logger.warning("backup_session_read_failed", error=str(e))
            session = None

        if session is not None:
            backup = SessionBackup(
                access_token=session.access_token,
                refresh_token=session.refresh_token,
                user_id=user_id,
                timestamp=timestamp,
            )
            try:
                method = self.storage.write(BACKUP_KEY, backup.model_dump_json())
                context = PaymentContext(
                    user_id=user_id,
                    plan_id=plan_id,
                    order_id=order_id,
                    timestamp=timestamp,
                    user_email=user_email,
                    browser_info=browser_info,
                    backup_method=method,
                )
                self.storage.write(CONTEXT_KEY, context.model_dump_json(by_alias=True))
                # A fresh backup gets the full replay allowance
                self.reset_attempt_count()
                written = True
                logger.info("session_backed_up", user_id=redact_id(user_id), plan_id=plan_id, method=method)
            except StorageError as e:
                logger.error("session_backup_failed", user_id=redact_id(user_id), error=str(e))
        else:
            logger.info("no_session_to_back_up", user_id=redact_id(user_id))

        fallback = FallbackData(user_id=user_id, plan_id=plan_id, order_id=order_id, timestamp=timestamp)
        fallback_areas = self.storage.write_all(FALLBACK_KEY, fallback.model_dump_json(by_alias=True))
        if fallback_areas:
            written = True
        else:
            logger.error("fallback_data_not_written", user_id=redact_id(user_id))

        return written

    def get_session_backup(self) -> typing.Optional[SessionBackup]:
        return self._read_model(BACKUP_KEY, SessionBackup)

    def get_payment_context(self) -> typing.Optional[PaymentContext]:
        return self._read_model(CONTEXT_KEY, PaymentContext)

    def get_fallback_data(self) -> typing.Optional[FallbackData]:
        return self._read_model(FALLBACK_KEY, FallbackData)

    def has_backup(self) -> bool:
        return self.get_session_backup() is not None

    def has_any_recovery_data(self) -> bool:
        return (
            self.has_backup()
            or self.get_payment_context() is not None
            or self.get_fallback_data() is not None
        )

    # --- Restoration attempt counter ---

    def get_attempt_count(self) -> int:
        for raw in self.storage.read_each(ATTEMPTS_KEY):
            try:
                return max(int(raw), 0)
            except ValueError:
                continue
        return 0

    def increment_attempt_count(self) -> int:
        count = self.get_attempt_count() + 1
        try:
            self.storage.write(ATTEMPTS_KEY, str(count))
        except StorageError as e:
            logger.warning("attempt_counter_not_persisted", error=str(e))
        return count

    def reset_attempt_count(self) -> None:
        self.storage.remove(ATTEMPTS_KEY)

    def cleanup(self, force: bool = False) -> None:
        for key in (BACKUP_KEY, CONTEXT_KEY, FALLBACK_KEY):
            self.storage.remove(key)
        if force:
            self.storage.remove(ATTEMPTS_KEY)
            # Orphans left behind by older releases of the checkout page
            for key in self.storage.keys():
                if PROVIDER_TOKEN in key.lower():
                    self.storage.remove(key)
        logger.debug("backup_cleaned_up", force=force)

    def _read_model(self, key: str, model: typing.Type[ModelT]) -> typing.Optional[ModelT]:
        for raw in self.storage.read_each(key):
            try:
                return model.model_validate_json(raw)
            except ValidationError:
                logger.warning("unparseable_record", key=key)
        return None
