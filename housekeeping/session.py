"""Login session for the current device.

The identity is one of five fixed slots: "Admin" or a housekeeper slot
HK1–HK4. It is kept under the "user" key of the key/value cache so it
survives restarts, and is never sent to a remote tier.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from housekeeping.models import ADMIN_SLOT, HOUSEKEEPER_SLOTS, User, UserType
from housekeeping.stores.base import StoreError
from housekeeping.stores.local import KeyValueCache

logger = logging.getLogger(__name__)

USER_KEY = "user"


class SessionError(Exception):
    pass


def _slots(user_type: UserType) -> tuple[str, ...]:
    return (ADMIN_SLOT,) if user_type == "admin" else HOUSEKEEPER_SLOTS


class SessionManager:
    def __init__(self, cache: KeyValueCache) -> None:
        self._cache = cache
        self._user: User | None = None
        self._loaded = False

    def login(self, user_type: UserType, user_id: str) -> User:
        if user_id not in _slots(user_type):
            raise SessionError(f"Unknown {user_type} slot {user_id!r}")
        user = User(id=user_id, type=user_type, name=user_id)
        self._user = user
        self._loaded = True
        try:
            self._cache.set(USER_KEY, user.to_wire())
        except StoreError as e:
            logger.warning("Session for %s not persisted: %s", user_id, e)
        logger.info("Logged in as %s", user_id)
        return user

    def logout(self) -> None:
        self._user = None
        self._loaded = True
        self._cache.remove(USER_KEY)

    def current(self) -> User | None:
        """The logged-in user, loading it from the cache on first use."""
        if not self._loaded:
            self._user = self._restore()
            self._loaded = True
        return self._user

    def _restore(self) -> User | None:
        raw = self._cache.get(USER_KEY)
        if raw is None:
            return None
        try:
            user = User.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding stored session that does not parse")
            self._cache.remove(USER_KEY)
            return None
        if user.id not in _slots(user.type):
            logger.warning("Discarding stored session for unknown slot %r", user.id)
            self._cache.remove(USER_KEY)
            return None
        return user

    @property
    def is_admin(self) -> bool:
        user = self.current()
        return user is not None and user.is_admin
