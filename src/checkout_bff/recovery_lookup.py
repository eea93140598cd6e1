# src/checkout_bff/recovery_lookup.py
"""
Last-resort recovery for users who paid but could not get their session back.

The completed transaction is looked up by whatever external identifiers
the callback carried, so the user can at least be told the outcome and
pointed at the right account to sign in with.
"""

import typing

from pydantic import BaseModel, ConfigDict, Field

from .auth_utils import AuthClientError, SupabaseAuthClient
from .safe_logging import get_logger, redact_email, redact_id
from .session_backup import SessionBackupStore
from .session_restorer import SessionRestorer
from .transaction_store import SupabaseTableClient, TransactionStoreError

logger = get_logger("payment_recovery")


class RecoveryData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    user_id: typing.Optional[str] = Field(default=None, alias="userId")
    plan_id: typing.Optional[str] = Field(default=None, alias="planId")
    transaction_id: typing.Optional[str] = Field(default=None, alias="transactionId")
    payment_id: typing.Optional[str] = Field(default=None, alias="paymentId")
    order_id: typing.Optional[str] = Field(default=None, alias="orderId")


class RecoveryResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    can_recover: bool = Field(alias="canRecover")
    needs_login: typing.Optional[bool] = Field(default=None, alias="needsLogin")
    user_email: typing.Optional[str] = Field(default=None, alias="userEmail")
    plan_name: typing.Optional[str] = Field(default=None, alias="planName")
    amount: typing.Optional[float] = None
    transaction_id: typing.Optional[str] = Field(default=None, alias="transactionId")
    subscription_active: typing.Optional[bool] = Field(default=None, alias="subscriptionActive")
    recovery_data: typing.Optional[RecoveryData] = Field(default=None, alias="recoveryData")

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


NOT_RECOVERABLE = RecoveryResult(can_recover=False, needs_login=True)


class PaymentRecoveryLookup:
    def __init__(
            self,
            tables: SupabaseTableClient,
            auth_client: SupabaseAuthClient,
            store: SessionBackupStore,
            restorer: SessionRestorer,
    ):
        self.tables = tables
        self.auth_client = auth_client
        self.store = store
        self.restorer = restorer

    async def lookup(
            self,
            order_id: typing.Optional[str] = None,
            payment_id: typing.Optional[str] = None,
            user_id: typing.Optional[str] = None,
            plan_id: typing.Optional[str] = None,
    ) -> RecoveryResult:
        logger.info(
            "payment_recovery_started",
            order_id=redact_id(order_id),
            payment_id=redact_id(payment_id),
            user_id=redact_id(user_id),
            plan_id=plan_id,
        )
        try:
            transaction = await self._find_transaction(order_id, payment_id, user_id, plan_id)
            if transaction is None:
                logger.info("no_completed_transaction_found")
                return NOT_RECOVERABLE.model_copy()

            plan = await self.tables.maybe_single(
                "subscription_plans",
                columns="name,price_usd",
                filters={"id": transaction.get("plan_id")},
            )
            subscription = await self.tables.maybe_single(
                "user_subscriptions",
                columns="id,status,created_at",
                filters={
                    "user_id": transaction.get("user_id"),
                    "plan_id": transaction.get("plan_id"),
                    "status": "active",
                },
            )
        except TransactionStoreError as e:
            logger.error("payment_recovery_failed", error=str(e))
            return NOT_RECOVERABLE.model_copy()

        user_email = None
        try:
            user = await self.auth_client.get_user_by_id(transaction["user_id"])
            user_email = user.email
        except (AuthClientError, KeyError) as e:
            logger.warning("recovery_email_unresolved", error=str(e))

        result = RecoveryResult(
            can_recover=True,
            user_email=user_email,
            plan_name=plan.get("name") if plan else None,
            amount=transaction.get("amount_usd"),
            transaction_id=transaction.get("id"),
            subscription_active=subscription is not None,
            needs_login=not user_email,
            recovery_data=RecoveryData(
                user_id=transaction.get("user_id"),
                plan_id=transaction.get("plan_id"),
                transaction_id=transaction.get("id"),
                payment_id=transaction.get("paypal_payment_id"),
                order_id=transaction.get("paypal_order_id"),
            ),
        )
        logger.info(
            "payment_recovery_succeeded",
            transaction_id=redact_id(result.transaction_id),
            email=redact_email(user_email),
            subscription_active=result.subscription_active,
        )
        return result

    async def attempt_auto_login(self, user_email: str) -> bool:
        """
        Tries to sign the user back in from the session backup.
        False means the caller has to fall back to a manual login prompt.
        """
        logger.info("auto_login_attempt", email=redact_email(user_email))
        if not self.store.has_any_recovery_data():
            logger.info("auto_login_no_recovery_data")
            return False
        result = await self.restorer.restore()
        if result.success and result.user is not None:
            logger.info("auto_login_succeeded", user_id=redact_id(result.user.id))
            return True
        logger.info("auto_login_failed", error=result.error)
        return False

    async def _find_transaction(self, order_id, payment_id, user_id, plan_id) -> typing.Optional[dict]:
        candidates = []
        if order_id:
            candidates.append({"paypal_order_id": order_id})
        if payment_id:
            candidates.append({"paypal_payment_id": payment_id})
        if user_id and plan_id:
            candidates.append({"user_id": user_id, "plan_id": plan_id})
        for filters in candidates:
            transaction = await self.tables.maybe_single(
                "transactions",
                columns="id,user_id,plan_id,amount_usd,status,paypal_order_id,paypal_payment_id,completed_at",
                filters={**filters, "status": "completed"},
                order_by="completed_at",
            )
            if transaction:
                return transaction
        return None
