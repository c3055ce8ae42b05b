"""Identity context consumed by the engine.

The host application supplies who is acting and whether that user holds
author (moderator) rights on the annotation repository.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from quorum.errors import ValidationError

_MAX_USERNAME_LEN = 64


def normalize_username(username: str | None) -> str:
    """Canonical form of a user handle: no leading '@', lowercase, <= 64 chars."""
    return str(username or "").strip().lstrip("@").strip().lower()[:_MAX_USERNAME_LEN]


def require_username(username: str | None) -> str:
    """Normalize a handle, rejecting blanks."""
    user = normalize_username(username)
    if not user:
        raise ValidationError("username required")
    return user


@runtime_checkable
class IdentityContext(Protocol):
    """What the engine needs to know about the acting user."""

    @property
    def current_user(self) -> str: ...

    def is_author(self, username: str | None = None) -> bool: ...


class StaticIdentity:
    """Fixed identity: one current user plus a set of author handles."""

    def __init__(
        self,
        current_user: str = "local",
        authors: Iterable[str] = (),
    ) -> None:
        self._current_user = normalize_username(current_user) or "local"
        self._authors = {normalize_username(a) for a in authors if normalize_username(a)}

    @property
    def current_user(self) -> str:
        return self._current_user

    def is_author(self, username: str | None = None) -> bool:
        user = normalize_username(username) if username else self._current_user
        return user in self._authors

    def switch_user(self, username: str) -> None:
        """Change the acting user (e.g. after sign-in)."""
        self._current_user = require_username(username)
