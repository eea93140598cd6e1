# src/checkout_bff/callback_params.py
"""
Normalizes the query string PayPal sends the browser back with.

Different PayPal flows name the same identifiers differently, and some
return without the plan or user at all. Each logical field is read from
the first known spelling present in the URL; plan and user are then
backfilled from cached checkout context when the URL lacks them.
"""

import typing

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .safe_logging import get_logger, redact_id
from .session_backup import SessionBackupStore
from .session_data import CallbackPreservation, LegacyPendingPayment
from .storage import StorageArea, StorageError

logger = get_logger("callback_params")

PRESERVATION_KEY = "payment_callback_preservation"
LEGACY_KEY = "pending_payment"

PARAMETER_SPELLINGS: typing.Dict[str, typing.Tuple[str, ...]] = {
    "payment_id": ("paymentId", "payment_id", "paypal_payment_id", "capture_id"),
    "payer_id": ("PayerID", "payer_id", "PAYERID"),
    "order_id": ("token", "order_id", "orderId", "paypal_order_id"),
    "plan_id": ("plan_id", "planId"),
    "user_id": ("user_id", "userId"),
}

BACKFILLED_FIELDS = ("plan_id", "user_id")

Lookup = typing.Callable[[str], typing.Optional[str]]


class CallbackParameters(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: typing.Optional[str] = None
    payment_id: typing.Optional[str] = Field(default=None, alias="paymentId")
    payer_id: typing.Optional[str] = Field(default=None, alias="payerId")
    order_id: typing.Optional[str] = Field(default=None, alias="orderId")
    plan_id: typing.Optional[str] = Field(default=None, alias="planId")
    user_id: typing.Optional[str] = Field(default=None, alias="userId")
    token: typing.Optional[str] = None
    has_session_independent_data: bool = Field(default=False, alias="hasSessionIndependentData")
    is_valid_payment_callback: bool = Field(default=False, alias="isValidPaymentCallback")
    fallback_used: bool = Field(default=False, alias="fallbackUsed")

    @property
    def is_cancelled(self) -> bool:
        return self.success == "false"


def first_present(query: typing.Mapping[str, str], names: typing.Iterable[str]) -> typing.Optional[str]:
    for name in names:
        value = query.get(name)
        if value:
            return value
    return None


class CallbackParameterExtractor:
    def __init__(self, store: SessionBackupStore, session_area: StorageArea, legacy_area: StorageArea):
        self.store = store
        self.session_area = session_area
        self.legacy_area = legacy_area

    def lookup_strategies(self, query: typing.Mapping[str, str]) -> typing.List[typing.Tuple[str, Lookup]]:
        """Sources for plan and user, highest priority first."""
        return [
            ("url", lambda field: first_present(query, PARAMETER_SPELLINGS[field])),
            ("payment_context", lambda field: getattr(self.store.get_payment_context(), field, None)),
            ("fallback_data", lambda field: getattr(self.store.get_fallback_data(), field, None)),
            ("preservation", lambda field: getattr(self.get_preservation(), field, None)),
            ("legacy", lambda field: getattr(self.get_legacy_record(), field, None)),
        ]

    def resolve(self, field: str, query: typing.Mapping[str, str]) -> typing.Tuple[typing.Optional[str], typing.Optional[str]]:
        """Returns (value, source name) from the first strategy that yields a value."""
        for source, lookup in self.lookup_strategies(query):
            value = lookup(field)
            if value:
                return value, source
        return None, None

    def extract(self, query: typing.Mapping[str, str], persist: bool = True) -> CallbackParameters:
        """
        Normalizes `query`. With `persist`, also refreshes the preservation
        record and drops a superseded legacy record.
        """
        values = {
            field: first_present(query, PARAMETER_SPELLINGS[field])
            for field in ("payment_id", "payer_id", "order_id")
        }
        sources = {}
        for field in BACKFILLED_FIELDS:
            values[field], sources[field] = self.resolve(field, query)

        success = query.get("success")
        success_indicator = success is not None or bool(values["payer_id"])
        has_plan_or_user = bool(values["plan_id"] or values["user_id"])

        params = CallbackParameters(
            success=success,
            token=query.get("token"),
            has_session_independent_data=bool(
                values["order_id"] and has_plan_or_user and (success == "true" or values["payment_id"])
            ),
            is_valid_payment_callback=bool(
                (values["order_id"] or values["payment_id"]) and success_indicator and has_plan_or_user
            ),
            fallback_used=any(source not in (None, "url") for source in sources.values()),
            **values,
        )

        if persist:
            self._preserve(params)
            if self.get_legacy_record() is not None and all(
                    sources[field] not in (None, "legacy") for field in BACKFILLED_FIELDS):
                self.legacy_area.remove_item(LEGACY_KEY)
                logger.debug("legacy_record_removed")

        logger.info(
            "callback_parameters_extracted",
            order_id=redact_id(params.order_id),
            user_id=redact_id(params.user_id),
            plan_id=params.plan_id,
            sources=sources,
            valid=params.is_valid_payment_callback,
            session_independent=params.has_session_independent_data,
        )
        return params

    def get_preservation(self) -> typing.Optional[CallbackPreservation]:
        raw = self.session_area.get_item(PRESERVATION_KEY)
        if raw is None:
            return None
        try:
            return CallbackPreservation.model_validate_json(raw)
        except ValidationError:
            return None

    def get_legacy_record(self) -> typing.Optional[LegacyPendingPayment]:
        raw = self.legacy_area.get_item(LEGACY_KEY)
        if raw is None:
            return None
        try:
            return LegacyPendingPayment.model_validate_json(raw)
        except ValidationError:
            return None

    def clear_preservation(self) -> None:
        self.session_area.remove_item(PRESERVATION_KEY)

    def _preserve(self, params: CallbackParameters) -> None:
        previous = self.get_preservation()
        record = CallbackPreservation(
            plan_id=params.plan_id,
            user_id=params.user_id,
            order_id=params.order_id or (previous.order_id if previous else None),
        )
        if not (record.plan_id or record.user_id or record.order_id):
            return
        try:
            self.session_area.set_item(PRESERVATION_KEY, record.model_dump_json(by_alias=True))
        except StorageError as e:
            logger.warning("callback_preservation_failed", error=str(e))
