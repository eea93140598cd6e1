# src/checkout_bff/navigator.py

import typing
from urllib.parse import urlencode

from pydantic import BaseModel

from .payment_verifier import VerificationResult

SUCCESS_PATH = "/payment-success"
FAILED_PATH = "/payment-failed"
RECOVERY_PATH = "/payment-recovery"

DEFAULT_FAILURE_REASON = "Payment verification failed"
CANCELLED_REASON = "Payment was cancelled"


class NavigationTarget(BaseModel):
    path: str
    params: typing.Dict[str, str] = {}

    @property
    def url(self) -> str:
        if not self.params:
            return self.path
        return f"{self.path}?{urlencode(self.params)}"


def _present(pairs: typing.Iterable[typing.Tuple[str, typing.Optional[str]]]) -> typing.Dict[str, str]:
    # Missing values are dropped rather than sent empty
    return {key: value for key, value in pairs if value}


class PaymentNavigator:
    def for_verification(
            self,
            verification: VerificationResult,
            plan_id: typing.Optional[str] = None,
            user_id: typing.Optional[str] = None,
            payment_id: typing.Optional[str] = None,
            order_id: typing.Optional[str] = None,
    ) -> NavigationTarget:
        if not verification.is_successful:
            return self.failure(
                plan_id=plan_id,
                reason=verification.error_message,
                payment_id=payment_id,
                order_id=order_id,
            )
        if not verification.has_active_subscription and verification.needs_authentication:
            return self.success(
                plan_id=plan_id,
                payment_id=payment_id,
                order_id=order_id,
                auth_required=True,
            )
        if not verification.has_active_subscription:
            # Completed transaction whose subscription row has not landed yet
            return self.success(
                plan_id=plan_id,
                user_id=user_id,
                payment_id=payment_id,
                order_id=order_id,
                pending=True,
            )
        return self.success(plan_id=plan_id, user_id=user_id, payment_id=payment_id, order_id=order_id)

    def success(
            self,
            plan_id=None,
            user_id=None,
            payment_id=None,
            order_id=None,
            auth_required: bool = False,
            pending: bool = False,
    ) -> NavigationTarget:
        params = _present([
            ("planId", plan_id),
            ("userId", None if auth_required else user_id),
            ("payment_id", payment_id),
            ("order_id", order_id),
        ])
        if auth_required:
            params["auth_required"] = "true"
        if pending:
            params["pending"] = "true"
        return NavigationTarget(path=SUCCESS_PATH, params=params)

    def failure(self, plan_id=None, reason=None, payment_id=None, order_id=None) -> NavigationTarget:
        params = _present([
            ("planId", plan_id),
            ("reason", reason or DEFAULT_FAILURE_REASON),
            ("status", "FAILED"),
            ("payment_id", payment_id),
            ("order_id", order_id),
        ])
        return NavigationTarget(path=FAILED_PATH, params=params)

    def cancelled(self, plan_id=None) -> NavigationTarget:
        params = _present([
            ("planId", plan_id),
            ("reason", CANCELLED_REASON),
            ("status", "CANCELLED"),
        ])
        return NavigationTarget(path=FAILED_PATH, params=params)

    def recovery_prompt(self, plan_id=None, user_id=None, payment_id=None, order_id=None) -> NavigationTarget:
        params = _present([
            ("order_id", order_id),
            ("payment_id", payment_id),
            ("planId", plan_id),
            ("userId", user_id),
        ])
        return NavigationTarget(path=RECOVERY_PATH, params=params)
