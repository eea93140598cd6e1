# src/checkout_bff/session_data.py

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    email: Optional[str] = None


class AuthSession(BaseModel):
    """A session as issued by the auth API (token grant response)."""
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None  # Epoch seconds
    user: AuthUser


class SessionData(BaseModel):
    """
    Represents the data stored server-side for a user session.
    Only a unique session ID will be stored in the browser cookie.
    """
    user: Optional[AuthUser] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    def to_auth_session(self) -> Optional[AuthSession]:
        if not (self.user and self.access_token and self.refresh_token):
            return None
        return AuthSession(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=self.expires_at,
            user=self.user,
        )


# --- Records kept in the per-browser storage areas during checkout ---

class SessionBackup(BaseModel):
    access_token: str
    refresh_token: str
    user_id: str
    timestamp: int  # Epoch milliseconds


class PaymentContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    plan_id: str = Field(alias="planId")
    order_id: Optional[str] = Field(default=None, alias="orderId")
    timestamp: int
    user_email: Optional[str] = Field(default=None, alias="userEmail")
    browser_info: Optional[str] = Field(default=None, alias="browserInfo")
    backup_method: Optional[str] = Field(default=None, alias="backupMethod")


class FallbackData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    plan_id: Optional[str] = Field(default=None, alias="planId")
    order_id: Optional[str] = Field(default=None, alias="orderId")
    timestamp: int


class CallbackPreservation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: Optional[str] = Field(default=None, alias="planId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    order_id: Optional[str] = Field(default=None, alias="orderId")


class LegacyPendingPayment(BaseModel):
    """The single-key record written by the old PayPal button."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    plan_id: Optional[str] = Field(default=None, alias="planId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    amount: Optional[float] = None
    timestamp: Optional[int] = None
