"""
Pydantic models for the remote download service's JSON payloads.
"""

from pydantic import BaseModel, Field

PREPARED_STATUS = "prepared"
FAILED_STATUS = "failed"

# App IDs are unsigned 32-bit on the host platform
MAX_APP_ID = 2**32 - 1


class JobRequest(BaseModel):
    """Body of `POST download/request`."""

    published_file_id: int = Field(..., alias="publishedFileId", ge=0)
    download_format: str = Field("raw", alias="downloadFormat")
    hidden: bool = False
    auto_download: bool = Field(False, alias="autoDownload")

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class JobSubmission(BaseModel):
    """Response of `POST download/request`."""

    uuid: str = Field(..., min_length=1)


class JobStatus(BaseModel):
    """One entry of the `POST download/status` response map."""

    status: str = ""
    progress: int = 0
    progress_text: str | None = Field(None, alias="progressText")
    storage_node: str | None = Field(None, alias="storageNode")
    storage_path: str | None = Field(None, alias="storagePath")
    download_error: str | None = Field(None, alias="downloadError")
    bytes_size: int | None = None
    bytes_transmitted: int | None = None
    age: int | None = None

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True

    @property
    def is_prepared(self) -> bool:
        return self.status == PREPARED_STATUS and self.progress >= 100

    @property
    def is_failed(self) -> bool:
        return self.status == FAILED_STATUS

    @property
    def fingerprint(self) -> tuple[str, int]:
        """The values whose change resets the stall timer."""
        return self.status, self.progress

    def owning_app_id(self) -> int | None:
        """
        Parses the leading segment of the storage path as the owning app's ID.

        Storage paths look like `<appid>/<item>/<file>`; anything that does not
        start with a plain unsigned 32-bit number yields None.
        """
        if not self.storage_path:
            return None
        head, sep, _ = self.storage_path.partition("/")
        if not sep or not head.isascii() or not head.isdigit():
            return None
        app_id = int(head)
        return app_id if app_id <= MAX_APP_ID else None
