# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the job queue.
"""

from core.config.defaults import (
    Defaults,
    RetryDefaults,
    SchedulerDefaults,
    WorkerDefaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "Defaults",
    "SchedulerDefaults",
    "RetryDefaults",
    "WorkerDefaults",
    "get_defaults",
    "reset_defaults",
]
