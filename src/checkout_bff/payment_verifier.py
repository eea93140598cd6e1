# src/checkout_bff/payment_verifier.py

import typing

from pydantic import BaseModel

from .safe_logging import get_logger, redact_id
from .transaction_store import SupabaseTableClient, TransactionStoreError

logger = get_logger("payment_verifier")

UNDETERMINED_MESSAGE = "Payment status could not be determined"


class VerificationResult(BaseModel):
    is_successful: bool
    has_active_subscription: bool = False
    needs_authentication: bool = False
    subscription: typing.Optional[dict] = None
    transaction: typing.Optional[dict] = None
    error_message: typing.Optional[str] = None

    @property
    def is_undetermined(self) -> bool:
        return not self.is_successful and self.transaction is None and self.subscription is None


class PaymentStateVerifier:
    """
    Decides the outcome of a checkout from the database, subscription first.
    The PayPal callback itself is never trusted as proof of payment.
    """

    def __init__(self, tables: SupabaseTableClient):
        self.tables = tables

    async def verify(
            self,
            user_id: typing.Optional[str] = None,
            plan_id: typing.Optional[str] = None,
            order_id: typing.Optional[str] = None,
            payment_id: typing.Optional[str] = None,
    ) -> VerificationResult:
        logger.info(
            "verifying_payment_state",
            user_id=redact_id(user_id),
            plan_id=plan_id,
            order_id=redact_id(order_id),
            payment_id=redact_id(payment_id),
        )
        try:
            if user_id and plan_id:
                subscription = await self.tables.maybe_single(
                    "user_subscriptions",
                    columns="id,status,payment_id,transaction_id,created_at",
                    filters={"user_id": user_id, "plan_id": plan_id, "status": "active"},
                    order_by="created_at",
                )
                if subscription:
                    return VerificationResult(
                        is_successful=True,
                        has_active_subscription=True,
                        subscription=subscription,
                    )

            if order_id:
                transaction = await self.tables.maybe_single(
                    "transactions",
                    columns="id,status,user_id,plan_id,paypal_payment_id,created_at",
                    filters={"paypal_order_id": order_id},
                    order_by="created_at",
                )
                if transaction:
                    status = transaction.get("status")
                    if status == "completed":
                        subscription = await self.tables.maybe_single(
                            "user_subscriptions",
                            columns="id,status,payment_id",
                            filters={
                                "user_id": transaction.get("user_id"),
                                "plan_id": transaction.get("plan_id"),
                                "status": "active",
                                "transaction_id": transaction.get("id"),
                            },
                        )
                        return VerificationResult(
                            is_successful=True,
                            has_active_subscription=subscription is not None,
                            subscription=subscription,
                            transaction=transaction,
                            needs_authentication=not user_id or user_id != transaction.get("user_id"),
                        )
                    if status in ("failed", "cancelled"):
                        return VerificationResult(
                            is_successful=False,
                            transaction=transaction,
                            error_message=f"Payment {status}",
                        )
        except TransactionStoreError as e:
            logger.error("payment_verification_failed", error=str(e))
            return VerificationResult(
                is_successful=False,
                needs_authentication=True,
                error_message="Unable to verify payment status",
            )

        return VerificationResult(
            is_successful=False,
            needs_authentication=not user_id,
            error_message=UNDETERMINED_MESSAGE,
        )
