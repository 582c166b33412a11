"""
Drives one item through the remote job protocol and local extraction.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from workshop_emu.api.client import WorkshopAPIClient
from workshop_emu.exceptions import (
    ExtractionError,
    FetchError,
    InstallCancelledError,
    InstallError,
    JobFailedError,
    PollParseError,
    StallTimeout,
    SubmitError,
)
from workshop_emu.media import ArchiveExtractor, ArtifactDownloader
from workshop_emu.models.config import EmuConfig
from workshop_emu.models.result import FailureKind, InstallResult

log = logging.getLogger(__name__)

FAILURE_KINDS: dict[type[InstallError], FailureKind] = {
    SubmitError: FailureKind.SUBMIT,
    StallTimeout: FailureKind.STALLED,
    JobFailedError: FailureKind.JOB_FAILED,
    FetchError: FailureKind.FETCH,
    ExtractionError: FailureKind.EXTRACTION,
    InstallCancelledError: FailureKind.CANCELLED,
}


class DownloadOrchestrator:
    """
    Submits a download job, polls it until the archive is prepared, streams the
    archive and unpacks it.

    The orchestrator keeps no state between calls; everything it tracks while
    polling lives in the call itself.
    """

    def __init__(
        self,
        config: EmuConfig,
        api_client: WorkshopAPIClient,
        downloader: Optional[ArtifactDownloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
    ):
        self.config = config
        self.api_client = api_client
        self.downloader = downloader or ArtifactDownloader(
            api_client, config.storage_url_template
        )
        self.extractor = extractor or ArchiveExtractor()

    async def install(
        self,
        item_id: int,
        target_path: Path,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> InstallResult:
        """
        Downloads and extracts an item into `target_path`.

        The archive is kept next to the target as `<target>.zip` and is always
        deleted afterwards. Failures of any phase are reported through the
        returned result, never raised.
        """
        target_path = Path(target_path)
        archive = target_path.with_name(target_path.name + ".zip")
        app_id: Optional[int] = None

        try:
            app_id = await self.download(item_id, archive, cancel_event)
            self._check_cancelled(item_id, cancel_event)
            await self.extractor.extract(archive, target_path)
        except InstallError as e:
            kind = FAILURE_KINDS.get(type(e), FailureKind.FETCH)
            log.error(f"[red]✗ Install of item {item_id} failed ({kind.value}): {e}[/red]")
            return InstallResult.failed(kind, app_id=app_id)
        finally:
            await asyncio.to_thread(self.extractor.discard_archive, archive)

        return InstallResult.succeeded(app_id=app_id, path=target_path)

    async def download(
        self,
        item_id: int,
        archive_path: Path,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[int]:
        """
        Runs the submit/poll/fetch protocol and writes the archive to `archive_path`.

        Returns:
            The owning app ID parsed from the storage path, or None.

        Raises:
            SubmitError, StallTimeout, JobFailedError, FetchError,
            InstallCancelledError.
        """
        self._check_cancelled(item_id, cancel_event)
        job_id = await self.api_client.submit_job(item_id)
        log.debug(f"Item {item_id} submitted as job {job_id}.")

        last_change = time.monotonic()
        last_seen: Optional[tuple[str, int]] = None

        while True:
            await asyncio.sleep(self.config.poll_interval)
            self._check_cancelled(item_id, cancel_event)

            try:
                status = await self.api_client.fetch_status(job_id)
            except PollParseError as e:
                log.warning(f"[yellow]Item {item_id}: {e}[/yellow]")
            else:
                if status.fingerprint != last_seen:
                    last_seen = status.fingerprint
                    last_change = time.monotonic()
                    log.debug(
                        f"Item {item_id}: {status.status or 'unknown'} "
                        f"({status.progress}%)"
                    )

                if status.is_failed:
                    raise JobFailedError(
                        status.download_error
                        or f"The service reported job {job_id} as failed."
                    )

                if status.is_prepared:
                    self._check_cancelled(item_id, cancel_event)
                    await self.downloader.fetch_artifact(
                        status, job_id, archive_path, cancel_event
                    )
                    return status.owning_app_id()

            stalled_for = time.monotonic() - last_change
            if stalled_for > self.config.stall_timeout:
                raise StallTimeout(
                    f"No progress on job {job_id} for {stalled_for:.1f}s "
                    f"(limit {self.config.stall_timeout}s)."
                )

    @staticmethod
    def _check_cancelled(item_id: int, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise InstallCancelledError(f"Install of item {item_id} was cancelled.")
