"""Client configuration for armysync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from armysync._constants import (
    DEFAULT_DEBOUNCE_DELAY,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SYNC_INTERVAL,
    FIRESTORE_BASE_URL,
)
from armysync.exceptions import ArmySyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env_key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise ArmySyncConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Synchronization configuration.

    Parameters
    ----------
    project_id : str or None
        Firestore project hosting the per-user documents. Only required
        when the Firestore remote store is used.
    api_key : str or None
        Optional web API key appended to Firestore requests.
    base_url : str
        Firestore REST base URL.
    auto_sync : bool
        Whether change detection and the interval scheduler run while an
        identity is active. Manual push/pull work either way.
    debounce_delay : float
        Quiet period in seconds after the last observed change before a
        push is triggered.
    poll_interval : float
        Seconds between snapshot-diff polls of local storage.
    sync_interval : float
        Seconds between full pushes while an identity is active.
    request_timeout : float or None
        Total timeout for one remote HTTP request. ``None`` leaves the
        transport's own behaviour in charge.
    """

    project_id: str | None = None
    api_key: str | None = None
    base_url: str = FIRESTORE_BASE_URL
    auto_sync: bool = True
    debounce_delay: float = DEFAULT_DEBOUNCE_DELAY
    poll_interval: float = DEFAULT_POLL_INTERVAL
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    request_timeout: float | None = None

    def __post_init__(self) -> None:
        for name in ("debounce_delay", "poll_interval", "sync_interval"):
            value = getattr(self, name)
            if value <= 0:
                raise ArmySyncConfigError(f"{name} must be positive, got {value}")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ArmySyncConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads optional ``ARMYSYNC_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SyncConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "ARMYSYNC_PROJECT_ID": "project_id",
            "ARMYSYNC_API_KEY": "api_key",
            "ARMYSYNC_BASE_URL": "base_url",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "ARMYSYNC_DEBOUNCE_DELAY": "debounce_delay",
            "ARMYSYNC_POLL_INTERVAL": "poll_interval",
            "ARMYSYNC_SYNC_INTERVAL": "sync_interval",
            "ARMYSYNC_REQUEST_TIMEOUT": "request_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_float(env_key, val)

        if "auto_sync" not in overrides:
            config_kwargs["auto_sync"] = _env_bool(env.get("ARMYSYNC_AUTO_SYNC"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
