"""
Fakes shared across the checkout BFF test suite.

The auth client and table client fakes mirror the methods the services
call on the real httpx-backed clients, so services can be exercised
without any network.
"""

import typing

from jose import jwt

from checkout_bff.auth_utils import AuthClientError
from checkout_bff.session_data import AuthSession, AuthUser
from checkout_bff.transaction_store import TransactionStoreError

TEST_SIGNING_KEY = "test-signing-key"


def make_access_token(user_id: str = "user-1234567890", exp: int = 2_000_000_000) -> str:
    return jwt.encode({"sub": user_id, "exp": exp}, TEST_SIGNING_KEY, algorithm="HS256")


def make_auth_session(user_id: str = "user-1234567890", email: str = "buyer@example.com") -> AuthSession:
    return AuthSession(
        access_token=make_access_token(user_id),
        refresh_token=f"refresh-{user_id}",
        expires_at=2_000_000_000,
        user=AuthUser(id=user_id, email=email),
    )


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self, clock: typing.Optional[FakeClock] = None):
        self.delays: typing.List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class FakeAuthClient:
    """
    Scripted stand-in for SupabaseAuthClient.

    `set_session_outcomes` is consumed one entry per call: an AuthSession
    succeeds, None returns no session, an exception instance is raised.
    """

    def __init__(
            self,
            live_session: typing.Optional[AuthSession] = None,
            set_session_outcomes: typing.Optional[list] = None,
            users: typing.Optional[typing.Dict[str, AuthUser]] = None,
    ):
        self.live_session = live_session
        self.set_session_outcomes = list(set_session_outcomes or [])
        self.users = users or {}
        self.set_session_calls: typing.List[typing.Tuple[str, str]] = []

    async def get_session(self) -> typing.Optional[AuthSession]:
        return self.live_session

    async def set_session(self, access_token: str, refresh_token: str) -> typing.Optional[AuthSession]:
        self.set_session_calls.append((access_token, refresh_token))
        outcome = self.set_session_outcomes.pop(0) if self.set_session_outcomes else AuthClientError("rejected", 401)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            self.live_session = outcome
        return outcome

    async def get_user_by_id(self, user_id: str) -> AuthUser:
        if user_id not in self.users:
            raise AuthClientError("User not found", 404)
        return self.users[user_id]


class FakeTables:
    """In-memory stand-in for SupabaseTableClient with equality filters."""

    def __init__(self, tables: typing.Optional[typing.Dict[str, typing.List[dict]]] = None, fail: bool = False):
        self.tables = tables or {}
        self.fail = fail
        self.queries: typing.List[typing.Tuple[str, dict]] = []

    async def select(self, table, columns="*", filters=None, order_by=None, descending=True, limit=None):
        filters = filters or {}
        self.queries.append((table, dict(filters)))
        if self.fail:
            raise TransactionStoreError(f"Query on {table} failed: 500 - boom")
        rows = [
            row for row in self.tables.get(table, [])
            if all(row.get(column) == value for column, value in filters.items())
        ]
        if order_by:
            rows.sort(key=lambda row: row.get(order_by) or "", reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def maybe_single(self, table, **kwargs):
        rows = await self.select(table, limit=1, **kwargs)
        return rows[0] if rows else None
