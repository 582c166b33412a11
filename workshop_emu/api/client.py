"""
Async client for the remote workshop download service's JSON API.
"""

import asyncio
import json
import logging
import time
from typing import Any, Optional

import aiohttp
from pydantic import ValidationError

from workshop_emu.exceptions import PollParseError, SubmitError
from workshop_emu.models.config import EmuConfig
from workshop_emu.models.job import JobRequest, JobStatus, JobSubmission

log = logging.getLogger(__name__)


class WorkshopAPIClient:
    """
    Async client for the download service's two job endpoints.

    Features:
    - One pooled aiohttp session, shared with the artifact downloader
    - A per-request timeout on every JSON call, independent of the stall timer
    - Typed parsing of job submissions and status maps
    """

    USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"

    def __init__(self, config: EmuConfig):
        """
        Initializes the API client.

        Args:
            config: The validated application configuration. The base URL,
                download format, request timeout and concurrency limit are read
                from it.
        """
        self.base_url: str = config.api_base_url
        self.download_format: str = config.download_format
        self.request_timeout: float = config.request_timeout
        self.max_workers: int = config.max_concurrent_installs

        self._session: Optional[aiohttp.ClientSession] = None

    async def get_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available and returns it."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_workers * 2,
                limit_per_host=self.max_workers * 2,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            # No total limit: archive streams are long-lived. JSON calls pass
            # their own total timeout.
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": self.USER_AGENT},
                timeout=aiohttp.ClientTimeout(
                    total=None,
                    sock_connect=self.request_timeout,
                    sock_read=self.request_timeout,
                ),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def api_call(self, endpoint: str, payload: dict[str, Any]) -> Any:
        """
        POSTs a JSON payload to an API endpoint and returns the decoded body.

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError: On transport failures.
            ValueError: If the body is not valid JSON.
        """
        session = await self.get_session()
        start_time = time.monotonic()

        async with session.post(
            self.base_url + endpoint,
            json=payload,
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
        ) as r:
            duration_ms = (time.monotonic() - start_time) * 1000
            log.debug(f"POST {endpoint} -> {r.status} ({duration_ms:.0f} ms)")
            r.raise_for_status()
            body = await r.text()

        return json.loads(body)

    async def submit_job(self, item_id: int) -> str:
        """
        Asks the service to prepare an item and returns the job UUID.

        Raises:
            SubmitError: If the request fails or the response has no UUID.
        """
        request = JobRequest(
            published_file_id=item_id, download_format=self.download_format
        )
        try:
            data = await self.api_call("download/request", request.to_payload())
            return JobSubmission.model_validate(data).uuid
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SubmitError(f"Could not submit item {item_id}: {e}") from e
        except (ValidationError, ValueError) as e:
            raise SubmitError(
                f"Unexpected submit response for item {item_id}: {e}"
            ) from e

    async def fetch_status(self, job_id: str) -> JobStatus:
        """
        Fetches the current status of a single job.

        Raises:
            PollParseError: If the request fails or the status map does not
                contain a usable entry for the job.
        """
        try:
            data = await self.api_call("download/status", {"uuids": [job_id]})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PollParseError(f"Status request for job {job_id} failed: {e}") from e
        except ValueError as e:
            raise PollParseError(f"Status response is not valid JSON: {e}") from e

        if not isinstance(data, dict) or job_id not in data:
            raise PollParseError(f"Status response has no entry for job {job_id}.")

        try:
            return JobStatus.model_validate(data[job_id])
        except ValidationError as e:
            raise PollParseError(f"Malformed status entry for job {job_id}: {e}") from e
