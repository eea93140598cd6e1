# src/checkout_bff/main.py

import asyncio
import time
import typing
import uuid

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

from .auth_utils import SupabaseAuthClient
from .callback_params import CallbackParameterExtractor
from .config import ENV_FILE_FOUND, ENV_FILE_PATH, settings
from .payment_flow import PaymentCallbackHandler
from .payment_verifier import PaymentStateVerifier
from .recovery_lookup import PaymentRecoveryLookup
from .safe_logging import get_logger, redact_email, redact_id
from .session_backup import SessionBackupStore
from .session_restorer import SessionRestorer
from .storage import StorageRegistry
from .transaction_store import SupabaseTableClient

logger = get_logger("main")

# --- Simple In-Memory Session Store Implementation ---
# Server-side session dicts keyed by the session cookie, plus the
# per-browser storage areas used during checkout.
_in_memory_session_data_storage: typing.Dict[str, dict] = {}
_storage_registry = StorageRegistry()

SESSION_COOKIE_NAME = "session_id"
SESSION_COOKIE_MAX_AGE = 60 * 60 * 4  # 4 hours
DEVICE_COOKIE_NAME = "device_id"
DEVICE_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days


class SessionMiddlewareCustom(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        if not session_id or session_id not in _in_memory_session_data_storage:
            session_id = str(uuid.uuid4())
            _in_memory_session_data_storage[session_id] = {}
        device_id = request.cookies.get(DEVICE_COOKIE_NAME) or str(uuid.uuid4())
        request.state.session_id = session_id
        request.state.session = _in_memory_session_data_storage[session_id]
        request.state.device_id = device_id
        response: StarletteResponse = await call_next(request)
        response.set_cookie(
            SESSION_COOKIE_NAME,
            session_id,
            max_age=SESSION_COOKIE_MAX_AGE,
            httponly=True,
            secure=settings.SECURE_COOKIES,
            samesite="lax",
        )
        response.set_cookie(
            DEVICE_COOKIE_NAME,
            device_id,
            max_age=DEVICE_COOKIE_MAX_AGE,
            httponly=True,
            secure=settings.SECURE_COOKIES,
            samesite="lax",
        )
        return response


# --- FastAPI App Setup ---
app = FastAPI(
    title="Checkout-BFF API",
    description="Backend-For-Frontend for the prompt marketplace checkout, handling the PayPal return and session recovery.",
    version="0.1.0"
)

app.add_middleware(
    SessionMiddlewareCustom,
)


# --- Dependencies ---
async def get_http_client() -> typing.AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        yield client


def get_storage_registry() -> StorageRegistry:
    return _storage_registry


def get_sleep() -> typing.Callable[[float], typing.Awaitable[None]]:
    return asyncio.sleep


def get_clock() -> typing.Callable[[], float]:
    return time.time


def get_auth_client(
        request: Request,
        http_client: httpx.AsyncClient = Depends(get_http_client),
        clock=Depends(get_clock),
) -> SupabaseAuthClient:
    return SupabaseAuthClient(request.state.session, http_client, clock=clock)


def get_table_client(http_client: httpx.AsyncClient = Depends(get_http_client)) -> SupabaseTableClient:
    return SupabaseTableClient(http_client)


def get_backup_store(
        request: Request,
        auth_client: SupabaseAuthClient = Depends(get_auth_client),
        registry: StorageRegistry = Depends(get_storage_registry),
        clock=Depends(get_clock),
) -> SessionBackupStore:
    return SessionBackupStore(
        registry.local_area(request.state.device_id),
        registry.session_area(request.state.session_id),
        auth_client,
        clock=clock,
    )


def get_restorer(
        store: SessionBackupStore = Depends(get_backup_store),
        auth_client: SupabaseAuthClient = Depends(get_auth_client),
        sleep=Depends(get_sleep),
        clock=Depends(get_clock),
) -> SessionRestorer:
    return SessionRestorer(store, auth_client, sleep=sleep, clock=clock)


def get_extractor(
        request: Request,
        store: SessionBackupStore = Depends(get_backup_store),
        registry: StorageRegistry = Depends(get_storage_registry),
) -> CallbackParameterExtractor:
    return CallbackParameterExtractor(
        store,
        session_area=registry.session_area(request.state.session_id),
        legacy_area=registry.local_area(request.state.device_id),
    )


def get_recovery_lookup(
        tables: SupabaseTableClient = Depends(get_table_client),
        auth_client: SupabaseAuthClient = Depends(get_auth_client),
        store: SessionBackupStore = Depends(get_backup_store),
        restorer: SessionRestorer = Depends(get_restorer),
) -> PaymentRecoveryLookup:
    return PaymentRecoveryLookup(tables, auth_client, store, restorer)


def get_callback_handler(
        extractor: CallbackParameterExtractor = Depends(get_extractor),
        store: SessionBackupStore = Depends(get_backup_store),
        restorer: SessionRestorer = Depends(get_restorer),
        tables: SupabaseTableClient = Depends(get_table_client),
        recovery: PaymentRecoveryLookup = Depends(get_recovery_lookup),
) -> PaymentCallbackHandler:
    return PaymentCallbackHandler(extractor, store, restorer, PaymentStateVerifier(tables), recovery)


# --- Dependency for checking authentication ---
async def get_authenticated_user(request: Request) -> dict:
    user_session_data = request.state.session.get("user")
    if not user_session_data:
        logger.info("not_authenticated", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user_session_data


def frontend_url(path_and_query: str) -> str:
    return f"{settings.FRONTEND_BASE_URL}{path_and_query}"


# --- Request Models ---
class BackupRequest(BaseModel):
    plan_id: str
    order_id: typing.Optional[str] = None
    user_email: typing.Optional[str] = None


class AutoLoginRequest(BaseModel):
    email: str


# --- Routes ---
@app.get("/api/health")
async def health():
    return {"status": "healthy"}


@app.get("/api/bff/userinfo")
async def get_user_info(user: dict = Depends(get_authenticated_user)):
    return {"user": user}


@app.post("/api/bff/payment/backup")
async def backup_before_paypal_redirect(
        request: Request,
        payload: BackupRequest,
        user: dict = Depends(get_authenticated_user),
        store: SessionBackupStore = Depends(get_backup_store),
):
    backed_up = await store.backup(
        user_id=user["id"],
        plan_id=payload.plan_id,
        order_id=payload.order_id,
        user_email=payload.user_email or user.get("email"),
        browser_info=request.headers.get("user-agent"),
    )
    return {"backed_up": backed_up}


@app.get("/payment/callback")
async def paypal_callback(
        request: Request,
        handler: PaymentCallbackHandler = Depends(get_callback_handler),
):
    target = await handler.handle(request.query_params)
    logger.info("payment_callback_routed", destination=target.path)
    return RedirectResponse(url=frontend_url(target.url), status_code=status.HTTP_302_FOUND)


@app.get("/api/bff/payment/params")
async def inspect_callback_params(
        request: Request,
        extractor: CallbackParameterExtractor = Depends(get_extractor),
):
    return extractor.extract(request.query_params, persist=False).model_dump(by_alias=True)


@app.get("/api/bff/payment/recovery")
async def recover_payment(
        order_id: typing.Optional[str] = None,
        payment_id: typing.Optional[str] = None,
        user_id: typing.Optional[str] = None,
        plan_id: typing.Optional[str] = None,
        recovery: PaymentRecoveryLookup = Depends(get_recovery_lookup),
):
    if not (order_id or payment_id or user_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide order_id, payment_id or user_id to look up a payment."
        )
    try:
        result = await recovery.lookup(
            order_id=order_id, payment_id=payment_id, user_id=user_id, plan_id=plan_id
        )
    except Exception as e:
        logger.exception("payment_recovery_crashed", order_id=redact_id(order_id), error=str(e))
        return {"canRecover": False, "needsLogin": True}
    return result.to_response()


@app.post("/api/bff/payment/recovery/auto-login")
async def recovery_auto_login(
        payload: AutoLoginRequest,
        recovery: PaymentRecoveryLookup = Depends(get_recovery_lookup),
):
    try:
        success = await recovery.attempt_auto_login(payload.email)
    except Exception as e:
        logger.exception("auto_login_crashed", email=redact_email(payload.email), error=str(e))
        success = False
    return {"success": success}


# --- Startup Event ---
@app.on_event("startup")
async def startup_event():
    logger.info(
        "checkout_bff_starting",
        env_file=str(ENV_FILE_PATH) if ENV_FILE_FOUND else None,
        supabase_url=settings.SUPABASE_URL,
        frontend_base_url=settings.FRONTEND_BASE_URL or "(relative)",
        backup_ttl_minutes=settings.SESSION_BACKUP_TTL_MINUTES,
        max_restoration_attempts=settings.MAX_RESTORATION_ATTEMPTS,
        service_role_key_set=bool(settings.SUPABASE_SERVICE_ROLE_KEY),
    )
    if not settings.SESSION_SECRET_KEY:
        logger.warning("session_secret_key_not_set")
