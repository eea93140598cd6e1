# src/checkout_bff/payment_flow.py

import typing

from .callback_params import CallbackParameterExtractor
from .navigator import NavigationTarget, PaymentNavigator
from .payment_verifier import PaymentStateVerifier
from .recovery_lookup import PaymentRecoveryLookup
from .safe_logging import get_logger, redact_id
from .session_backup import SessionBackupStore
from .session_restorer import SessionRestorer

logger = get_logger("payment_flow")

MISSING_PAYMENT_INFO_REASON = "Missing payment information in callback URL"
UNEXPECTED_ERROR_REASON = "An unexpected error occurred while processing your payment"


class PaymentCallbackHandler:
    """
    Handles one return from PayPal and picks the screen to send the browser to.

    Always produces a target: success, failure, or the recovery prompt.
    """

    def __init__(
            self,
            extractor: CallbackParameterExtractor,
            store: SessionBackupStore,
            restorer: SessionRestorer,
            verifier: PaymentStateVerifier,
            recovery: PaymentRecoveryLookup,
            navigator: typing.Optional[PaymentNavigator] = None,
    ):
        self.extractor = extractor
        self.store = store
        self.restorer = restorer
        self.verifier = verifier
        self.recovery = recovery
        self.navigator = navigator or PaymentNavigator()

    async def handle(self, query: typing.Mapping[str, str]) -> NavigationTarget:
        try:
            return await self._handle(query)
        except Exception as e:
            logger.exception("payment_callback_crashed", error=str(e))
            return self.navigator.failure(reason=UNEXPECTED_ERROR_REASON)

    async def _handle(self, query: typing.Mapping[str, str]) -> NavigationTarget:
        params = self.extractor.extract(query)
        plan_id, user_id = params.plan_id, params.user_id
        order_id, payment_id = params.order_id, params.payment_id

        if params.is_cancelled:
            logger.info("payment_cancelled", order_id=redact_id(order_id))
            self._finish()
            return self.navigator.cancelled(plan_id=plan_id)

        if not order_id and not payment_id:
            context = self.store.get_payment_context()
            if context is None or not context.order_id:
                logger.error("payment_identifiers_missing", plan_id=plan_id)
                self._finish()
                return self.navigator.failure(plan_id=plan_id, reason=MISSING_PAYMENT_INFO_REASON)
            logger.info("payment_identifiers_backfilled", order_id=redact_id(context.order_id))
            order_id = context.order_id

        restored = await self.restorer.restore()
        if restored.success and restored.user is not None:
            user_id = restored.user.id
            if restored.context is not None:
                plan_id = plan_id or restored.context.plan_id
                order_id = order_id or restored.context.order_id

        verification = await self.verifier.verify(
            user_id=user_id, plan_id=plan_id, order_id=order_id, payment_id=payment_id
        )
        if verification.is_successful and not restored.success:
            verification = verification.model_copy(update={"needs_authentication": True})

        if verification.is_undetermined and (order_id or payment_id):
            recovery = await self.recovery.lookup(
                order_id=order_id, payment_id=payment_id, user_id=user_id, plan_id=plan_id
            )
            if recovery.can_recover and recovery.recovery_data is not None:
                data = recovery.recovery_data
                self._finish()
                return self.navigator.success(
                    plan_id=data.plan_id or plan_id,
                    user_id=data.user_id,
                    payment_id=data.payment_id or payment_id,
                    order_id=data.order_id or order_id,
                    auth_required=not restored.success,
                    pending=not recovery.subscription_active,
                )
            # Preservation record is kept so the recovery screen can reuse it
            return self.navigator.recovery_prompt(
                plan_id=plan_id, user_id=user_id, payment_id=payment_id, order_id=order_id
            )

        self._finish()
        return self.navigator.for_verification(
            verification, plan_id=plan_id, user_id=user_id, payment_id=payment_id, order_id=order_id
        )

    def _finish(self) -> None:
        self.store.cleanup()
        self.extractor.clear_preservation()
