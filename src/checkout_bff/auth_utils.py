# src/checkout_bff/auth_utils.py
import time
import typing

import httpx
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import settings
from .safe_logging import get_logger, redact_id
from .session_data import AuthSession, AuthUser, SessionData

logger = get_logger("auth_client")

# Treat access tokens this close to expiry as already expired
EXPIRY_LEEWAY_SECONDS = 10


class AuthClientError(Exception):
    def __init__(self, message: str, status_code: typing.Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def get_token_expiry(access_token: str) -> typing.Optional[int]:
    """
    Reads the `exp` claim without verifying the signature.
    Only used to decide whether a refresh grant is needed; the auth API
    remains the authority on whether the token is valid.
    """
    try:
        claims = jwt.get_unverified_claims(access_token)
    except JWTError:
        return None
    exp = claims.get("exp")
    return int(exp) if isinstance(exp, (int, float)) else None


ModelT = typing.TypeVar("ModelT", bound=BaseModel)


def _parse(model: typing.Type[ModelT], data: dict) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise AuthClientError(f"Auth API returned an unexpected {model.__name__} payload: {e}") from e


class SupabaseAuthClient:
    """
    Auth API client bound to one BFF session.

    `get_session` reads the tokens held in the server-side session dict;
    `set_session` re-establishes them there from a pair of tokens, using the
    refresh grant when the access token is no longer usable.
    """

    def __init__(
            self,
            session: dict,
            http_client: httpx.AsyncClient,
            base_url: str = settings.AUTH_BASE_URL,
            anon_key: str = settings.SUPABASE_ANON_KEY,
            service_role_key: str = settings.SUPABASE_SERVICE_ROLE_KEY,
            clock: typing.Callable[[], float] = time.time,
    ):
        self.session = session
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.clock = clock

    async def get_session(self) -> typing.Optional[AuthSession]:
        return SessionData.model_validate(self.session).to_auth_session()

    async def set_session(self, access_token: str, refresh_token: str) -> AuthSession:
        expires_at = get_token_expiry(access_token)
        auth_session = None
        if expires_at is not None and expires_at > self.clock() + EXPIRY_LEEWAY_SECONDS:
            user = await self._get_user(access_token)
            if user is not None:
                auth_session = AuthSession(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_at=expires_at,
                    user=user,
                )
        if auth_session is None:
            auth_session = await self._refresh(refresh_token)
        self._store(auth_session)
        logger.info("session_set", user_id=redact_id(auth_session.user.id))
        return auth_session

    async def get_user_by_id(self, user_id: str) -> AuthUser:
        if not self.service_role_key:
            raise AuthClientError("Service role key is not configured; cannot look up users.")
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }
        data = await self._request("GET", f"/admin/users/{user_id}", headers=headers)
        return _parse(AuthUser, data)

    async def _get_user(self, access_token: str) -> typing.Optional[AuthUser]:
        headers = {"apikey": self.anon_key, "Authorization": f"Bearer {access_token}"}
        try:
            data = await self._request("GET", "/user", headers=headers)
        except AuthClientError as e:
            if e.status_code in (401, 403):
                # Revoked or rejected; the refresh grant may still work
                return None
            raise
        return _parse(AuthUser, data)

    async def _refresh(self, refresh_token: str) -> AuthSession:
        headers = {"apikey": self.anon_key}
        data = await self._request(
            "POST",
            "/token",
            headers=headers,
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        if not data.get("access_token") or not data.get("user"):
            raise AuthClientError("Refresh grant returned no session.")
        return _parse(AuthSession, data)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = await self.http_client.request(method, url, **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            detail = e.response.text
            try:
                body = e.response.json()
                if isinstance(body, dict):
                    detail = body.get("error_description") or body.get("msg") or body.get("message") or detail
            except ValueError:
                pass
            raise AuthClientError(
                f"Auth API {method} {path} failed: {detail}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise AuthClientError(f"Could not connect to auth API: {e}") from e
        except ValueError as e:
            raise AuthClientError(f"Auth API {method} {path} returned invalid JSON.") from e
        if not isinstance(data, dict):
            raise AuthClientError(f"Auth API {method} {path} returned {type(data).__name__}, expected an object.")
        return data

    def _store(self, auth_session: AuthSession) -> None:
        self.session["user"] = auth_session.user.model_dump()
        self.session["access_token"] = auth_session.access_token
        self.session["refresh_token"] = auth_session.refresh_token
        self.session["expires_at"] = auth_session.expires_at
