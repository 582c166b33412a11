"""
Handles streaming a prepared item archive from the service's storage node to disk.
"""

import asyncio
import logging
import os
from typing import Optional

import aiofiles
import aiohttp

from workshop_emu.api.client import WorkshopAPIClient
from workshop_emu.exceptions import FetchError, InstallCancelledError
from workshop_emu.models.job import JobStatus

log = logging.getLogger(__name__)


class ArtifactDownloader:
    """A low-level archive downloader that writes the response body as it arrives."""

    CHUNK_SIZE = 131072  # 128 KB

    def __init__(
        self,
        api_client: WorkshopAPIClient,
        storage_url_template: str,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.api_client = api_client
        self.storage_url_template = storage_url_template
        self.chunk_size = chunk_size

    def build_url(self, status: JobStatus) -> str:
        """Builds the storage URL of a prepared job (without the uuid query)."""
        if not status.storage_node or not status.storage_path:
            raise FetchError("Prepared job did not report a storage node and path.")
        return self.storage_url_template.format(
            node=status.storage_node, path=status.storage_path
        )

    async def fetch_artifact(
        self,
        status: JobStatus,
        job_id: str,
        destination_path: str | os.PathLike,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> int:
        """Downloads the archive of a prepared job. Returns the number of bytes written."""
        url = self.build_url(status)
        return await self.download_file(
            url, destination_path, params={"uuid": job_id}, cancel_event=cancel_event
        )

    async def download_file(
        self,
        url: str,
        destination_path: str | os.PathLike,
        params: Optional[dict[str, str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Streams a URL into a file, overwriting any existing file.

        Raises:
            FetchError: On network errors, bad statuses or local write failures.
            InstallCancelledError: If the cancel event is set mid-stream.
        """
        bytes_downloaded = 0
        try:
            session = await self.api_client.get_session()
            async with session.get(url, params=params, allow_redirects=True) as response:
                response.raise_for_status()

                async with aiofiles.open(destination_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        if cancel_event is not None and cancel_event.is_set():
                            raise InstallCancelledError(
                                f"Download of '{os.path.basename(destination_path)}'"
                                " was cancelled."
                            )
                        await f.write(chunk)
                        bytes_downloaded += len(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise FetchError(
                f"Download of '{os.path.basename(destination_path)}' failed: {e}"
            ) from e

        log.debug(
            f"Downloaded {bytes_downloaded} bytes to "
            f"'{os.path.basename(destination_path)}'."
        )
        return bytes_downloaded
