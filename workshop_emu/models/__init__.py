"""
Data Models Layer.

This package contains the item entity, install results, the remote
service's wire models and the application configuration.
"""

from .config import EmuConfig
from .item import Item, ItemState
from .job import JobRequest, JobStatus, JobSubmission
from .result import FailureKind, InstallResult

__all__ = [
    "EmuConfig",
    "FailureKind",
    "InstallResult",
    "Item",
    "ItemState",
    "JobRequest",
    "JobStatus",
    "JobSubmission",
]
