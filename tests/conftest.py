"""
Checkout BFF test configuration and shared fixtures.

Services are built on in-memory storage areas, a fake clock and fake
auth/table clients; see helpers.py.
"""

import pytest

from checkout_bff.session_backup import SessionBackupStore
from checkout_bff.storage import LOCAL_AREA, SESSION_AREA, InMemoryStorage

from helpers import FakeAuthClient, FakeClock, RecordingSleep, make_auth_session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)


@pytest.fixture
def local_area():
    return InMemoryStorage(LOCAL_AREA)


@pytest.fixture
def session_area():
    return InMemoryStorage(SESSION_AREA)


@pytest.fixture
def auth_session():
    return make_auth_session()


@pytest.fixture
def auth_client(auth_session):
    """Auth client with a live session, as before the PayPal redirect."""
    return FakeAuthClient(live_session=auth_session)


@pytest.fixture
def store(local_area, session_area, auth_client, clock):
    return SessionBackupStore(local_area, session_area, auth_client, clock=clock)
