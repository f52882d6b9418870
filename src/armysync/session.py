"""Identity and sync-session state."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Identity(BaseModel):
    """Authenticated account handle supplied by the identity provider.

    Parameters
    ----------
    uid : str
        Stable account ID. All remote documents are scoped under it.
    id_token : str or None
        Bearer credential presented to the remote store.
    email : str or None
        Display only.
    created_at : float
        Monotonic timestamp when the identity was handed to us.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    uid: str
    id_token: str | None = None
    email: str | None = None
    created_at: float = Field(default_factory=time.monotonic)

    @field_validator("uid")
    @classmethod
    def _require_uid(cls, value: str) -> str:
        if not value:
            raise ValueError("uid must be non-empty")
        return value


class SyncSession:
    """Explicit sync context for one signed-in identity.

    Created on sign-in and closed on sign-out. Schedulers and the change
    detector hold a reference and check :attr:`active` before doing any
    work, so closing the session stops everything that still holds it,
    including callbacks of pushes that were already in flight.
    """

    def __init__(self, identity: Identity, *, enabled: bool = True) -> None:
        self._identity = identity
        self._enabled = enabled
        self._closed = False

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = bool(value)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active(self) -> bool:
        """Whether synchronization may run for this session."""
        return self._enabled and not self._closed

    def refresh_identity(self, identity: Identity) -> None:
        """Swap in a renewed identity (e.g. a refreshed token) for the same account."""
        if identity.uid != self._identity.uid:
            raise ValueError("refresh_identity cannot change the account uid")
        self._identity = identity

    def close(self) -> None:
        self._closed = True

    def __repr__(self) -> str:
        return f"SyncSession(uid={self._identity.uid!r}, enabled={self._enabled}, closed={self._closed})"
