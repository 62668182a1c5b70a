# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for scheduling, retry backoff, worker loop
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Defaults for the scheduler, the retry policy and the worker loop. Every
group can be overridden from environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
import socket
from dataclasses import dataclass, field
from typing import Optional, Tuple

from core.contracts import MAX_WORKER_NAME_LENGTH


def _split_env_list(name: str) -> Tuple[str, ...]:
    """Comma-separated env var -> tuple of non-empty, stripped items."""
    raw = os.getenv(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


def default_worker_name() -> str:
    return f"worker-{socket.gethostname()}"[:MAX_WORKER_NAME_LENGTH]


@dataclass(frozen=True)
class SchedulerDefaults:
    """
    Defaults for job selection.

    restricted_queues empty means "any queue".
    """
    worker_name: str = field(default_factory=default_worker_name)
    restricted_queues: Tuple[str, ...] = ()
    excluded_queues: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> "SchedulerDefaults":
        """Create from environment variables."""
        return cls(
            worker_name=os.getenv("JOBQUEUE_WORKER_NAME", default_worker_name()),
            restricted_queues=_split_env_list("JOBQUEUE_QUEUES"),
            excluded_queues=_split_env_list("JOBQUEUE_EXCLUDED_QUEUES"),
        )


@dataclass(frozen=True)
class RetryDefaults:
    """
    Defaults for retry backoff.

    backoff is one of "exponential", "linear", "fixed". base is the
    exponent base, the linear step, or the fixed delay (seconds).
    """
    backoff: str = "exponential"
    base: float = 5
    max_delay_seconds: Optional[float] = None

    @classmethod
    def from_env(cls) -> "RetryDefaults":
        """Create from environment variables."""
        return cls(
            backoff=os.getenv("JOBQUEUE_RETRY_BACKOFF", "exponential").lower(),
            base=float(os.getenv("JOBQUEUE_RETRY_BASE", 5)),
            max_delay_seconds=_optional_float("JOBQUEUE_RETRY_MAX_DELAY"),
        )


@dataclass(frozen=True)
class WorkerDefaults:
    """
    Defaults for the worker polling loop.
    """
    poll_interval_seconds: float = 1.0
    heartbeat_interval_seconds: float = 30.0
    max_jobs: Optional[int] = None  # None = run until stopped
    health_port: int = 8000

    @classmethod
    def from_env(cls) -> "WorkerDefaults":
        """Create from environment variables."""
        return cls(
            poll_interval_seconds=float(os.getenv("JOBQUEUE_POLL_INTERVAL", 1.0)),
            heartbeat_interval_seconds=float(os.getenv("JOBQUEUE_HEARTBEAT_INTERVAL", 30.0)),
            max_jobs=_optional_int("JOBQUEUE_MAX_JOBS"),
            health_port=int(os.getenv("HEALTH_PORT", 8000)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    scheduler: SchedulerDefaults = field(default_factory=SchedulerDefaults)
    retry: RetryDefaults = field(default_factory=RetryDefaults)
    worker: WorkerDefaults = field(default_factory=WorkerDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            scheduler=SchedulerDefaults.from_env(),
            retry=RetryDefaults.from_env(),
            worker=WorkerDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "SchedulerDefaults",
    "RetryDefaults",
    "WorkerDefaults",
    "Defaults",
    "default_worker_name",
    "get_defaults",
    "reset_defaults",
]
