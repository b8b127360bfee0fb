"""Tests for housekeeping.session."""

from pathlib import Path
from unittest.mock import patch

import pytest

from housekeeping.session import USER_KEY, SessionError, SessionManager
from housekeeping.stores.base import CapacityExceeded
from housekeeping.stores.local import KeyValueCache


@pytest.fixture
def kv(tmp_path: Path) -> KeyValueCache:
    return KeyValueCache(tmp_path)


def test_login_persists_user(kv: KeyValueCache) -> None:
    user = SessionManager(kv).login("housekeeper", "HK3")
    assert user.name == "HK3"
    assert kv.get(USER_KEY) == {"id": "HK3", "type": "housekeeper", "name": "HK3"}


def test_session_survives_restart(kv: KeyValueCache) -> None:
    SessionManager(kv).login("admin", "Admin")
    restored = SessionManager(kv)
    assert restored.current().id == "Admin"
    assert restored.is_admin


@pytest.mark.parametrize("user_type, user_id", [
    ("housekeeper", "HK5"),
    ("housekeeper", "Admin"),
    ("admin", "HK1"),
])
def test_unknown_slot_rejected(kv: KeyValueCache, user_type, user_id) -> None:
    with pytest.raises(SessionError):
        SessionManager(kv).login(user_type, user_id)


def test_logout(kv: KeyValueCache) -> None:
    session = SessionManager(kv)
    session.login("housekeeper", "HK1")
    session.logout()
    assert session.current() is None
    assert kv.get(USER_KEY) is None
    assert not session.is_admin


def test_stored_garbage_discarded(kv: KeyValueCache) -> None:
    kv.set(USER_KEY, {"id": "HK1"})
    assert SessionManager(kv).current() is None
    assert kv.get(USER_KEY) is None


def test_stored_unknown_slot_discarded(kv: KeyValueCache) -> None:
    kv.set(USER_KEY, {"id": "HK9", "type": "housekeeper", "name": "HK9"})
    assert SessionManager(kv).current() is None
    assert kv.get(USER_KEY) is None


def test_login_survives_full_cache(kv: KeyValueCache) -> None:
    session = SessionManager(kv)
    with patch.object(kv, "set", side_effect=CapacityExceeded("full")):
        user = session.login("housekeeper", "HK2")
    assert session.current() == user
