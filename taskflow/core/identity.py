"""
TaskFlow — Identity Provider.

Issues a stable anonymous identity at first use and upgrades it to a
durable (credential-based) identity when the user signs in. The
"durable identity" flag lives in the Local Cache and gates the cloud
mirror and the realtime listener.

Credential verification itself happens outside this module: callers
pass the account id that their sign-in flow produced.
"""

from __future__ import annotations

import contextlib
import logging
import secrets
from dataclasses import dataclass
from typing import Callable

from taskflow.data.cache import CacheKeys, LocalCache
from taskflow.data.models import utc_now_iso

logger = logging.getLogger(__name__)

IdentityCallback = Callable[["Identity", "Identity | None"], None]


@dataclass
class Identity:
    id: str
    is_durable: bool = False
    display_name: str = ""
    email: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = f"User {self.id[:6]}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.display_name,
            "email": self.email,
            "createdAt": self.created_at,
        }


def _new_anonymous_id() -> str:
    return f"anon_{secrets.token_hex(10)}"


class IdentityProvider:
    """Owns the current identity and notifies listeners on transitions."""

    def __init__(self, cache: LocalCache) -> None:
        self._cache = cache
        self._callbacks: list[IdentityCallback] = []
        self._identity = self._load()

    def _load(self) -> Identity:
        stored = self._cache.get(CacheKeys.USER)
        durable = self._cache.get(CacheKeys.IS_DURABLE_IDENTITY) is True
        if isinstance(stored, dict) and stored.get("id"):
            return Identity(
                id=str(stored["id"]),
                is_durable=durable,
                display_name=stored.get("name") or "",
                email=stored.get("email"),
                created_at=stored.get("createdAt") or "",
            )

        identity = Identity(id=_new_anonymous_id(), created_at=utc_now_iso())
        self._persist(identity)
        logger.info("Issued anonymous identity %s", identity.id)
        return identity

    def _persist(self, identity: Identity) -> None:
        self._cache.set(CacheKeys.USER, identity.to_dict())
        if identity.is_durable:
            self._cache.set(CacheKeys.IS_DURABLE_IDENTITY, True)
        else:
            self._cache.remove(CacheKeys.IS_DURABLE_IDENTITY)

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def identity_id(self) -> str:
        return self._identity.id

    @property
    def is_durable(self) -> bool:
        return self._identity.is_durable

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register callback(new, previous) for identity transitions."""
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._callbacks.remove(callback)

        return _unsubscribe

    def upgrade(
        self,
        identity_id: str,
        display_name: str = "",
        email: str | None = None,
    ) -> Identity:
        """Switch to a durable identity for the given account id."""
        if not identity_id:
            raise ValueError("identity_id must not be empty")

        previous = self._identity
        self._identity = Identity(
            id=identity_id,
            is_durable=True,
            display_name=display_name,
            email=email,
            created_at=utc_now_iso(),
        )
        self._persist(self._identity)
        logger.info("Identity upgraded to durable account %s", identity_id)
        self._notify(previous)
        return self._identity

    def sign_out(self) -> Identity:
        """Drop the durable identity and continue with a fresh anonymous one."""
        previous = self._identity
        self._identity = Identity(id=_new_anonymous_id(), created_at=utc_now_iso())
        self._persist(self._identity)
        logger.info("Signed out of %s; now anonymous %s", previous.id, self._identity.id)
        self._notify(previous)
        return self._identity

    def _notify(self, previous: Identity) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._identity, previous)
            except Exception:
                logger.exception("Identity change callback failed")
