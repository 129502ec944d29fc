# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError

DEFAULT_WORKFLOW = "buildci_workflow.py"
DEFAULT_BUILD_SUBDIR = "build"
DEFAULT_CAPTURE_LIMIT = 64 * 1024
DEFAULT_KILL_GRACE = 5.0


def _float(env: Mapping[str, str], key: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Process-wide defaults, read from BUILDCI_* environment variables."""
    root: str | None = None
    workflow: str | None = None
    capture_limit: int = DEFAULT_CAPTURE_LIMIT
    kill_grace: float = DEFAULT_KILL_GRACE
    step_timeout: float | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env

        limit_raw = env.get("BUILDCI_CAPTURE_LIMIT")
        capture_limit = DEFAULT_CAPTURE_LIMIT
        if limit_raw:
            try:
                capture_limit = int(limit_raw)
            except ValueError:
                raise ConfigError(f"BUILDCI_CAPTURE_LIMIT must be an integer, got {limit_raw!r}") from None
            if capture_limit < 0:
                raise ConfigError("BUILDCI_CAPTURE_LIMIT must be >= 0")

        return cls(
            root=env.get("BUILDCI_ROOT") or None,
            workflow=env.get("BUILDCI_WORKFLOW") or None,
            capture_limit=capture_limit,
            kill_grace=_float(env, "BUILDCI_KILL_GRACE", DEFAULT_KILL_GRACE),
            step_timeout=_float(env, "BUILDCI_STEP_TIMEOUT", None),
        )
