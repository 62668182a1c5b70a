# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for the job queue's pydantic models
# ============================================================================
"""
Models Module - Central Export Point

Job carries SQL metadata via __sql_* ClassVar attributes, read by
repositories.schema when building DDL.
"""

from core.models.job import Job
from core.models.job_result import JobResult

__all__ = [
    "Job",
    "JobResult",
]
