"""
Typed outcome of an install run.

The host only ever sees `success` and `app_id`; the failure kind is kept for
logging and for the CLI summary.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class FailureKind(Enum):
    """Which phase of the install pipeline failed."""

    SUBMIT = "submit"
    STALLED = "stalled"
    JOB_FAILED = "job_failed"
    FETCH = "fetch"
    EXTRACTION = "extraction"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class InstallResult:
    """Result of one install attempt."""

    success: bool
    app_id: int | None = None
    failure: FailureKind | None = None
    path: Path | None = None

    @classmethod
    def succeeded(
        cls, app_id: int | None = None, path: Path | None = None
    ) -> "InstallResult":
        return cls(success=True, app_id=app_id, path=path)

    @classmethod
    def failed(
        cls, failure: FailureKind, app_id: int | None = None
    ) -> "InstallResult":
        return cls(success=False, app_id=app_id, failure=failure)
