"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_API_BASE_URL = "https://node04.steamworkshopdownloader.io/prod/api/"
DEFAULT_STORAGE_URL_TEMPLATE = "https://{node}/prod//storage/{path}"


class EmuConfig(BaseModel):
    """A validated configuration model for the application."""

    # Storage
    items_path: str

    # Remote service
    api_base_url: str = DEFAULT_API_BASE_URL
    storage_url_template: str = DEFAULT_STORAGE_URL_TEMPLATE
    download_format: str = "raw"

    # Timing
    stall_timeout: float = 30.0
    request_timeout: float = 10.0
    poll_interval: float = 1.0

    # Concurrency
    max_concurrent_installs: int = 4
    unsubscribe_wait_attempts: int = 60
    unsubscribe_wait_interval: float = 1.0

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("items_path", "download_format")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Value cannot be empty.")
        return v

    @field_validator("api_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensures the API base URL is absolute and ends with a slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("API base URL must start with http:// or https://.")
        return v if v.endswith("/") else v + "/"

    @field_validator("storage_url_template")
    @classmethod
    def validate_storage_template(cls, v: str) -> str:
        if "{node}" not in v or "{path}" not in v:
            raise ValueError("Storage URL template must contain {node} and {path}.")
        return v

    @field_validator(
        "stall_timeout", "request_timeout", "poll_interval", "unsubscribe_wait_interval"
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts and intervals must be greater than zero.")
        return v

    @field_validator("max_concurrent_installs")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of concurrent installs."""
        if v < 1 or v > 32:
            raise ValueError("Max concurrent installs must be between 1 and 32.")
        return v

    @field_validator("unsubscribe_wait_attempts")
    @classmethod
    def validate_wait_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Unsubscribe wait attempts cannot be negative.")
        return v

    @model_validator(mode="after")
    def validate_timeouts(self) -> "EmuConfig":
        """Keeps a single request from outliving the stall window."""
        if self.request_timeout > self.stall_timeout:
            raise ValueError(
                f"request_timeout ({self.request_timeout}s) cannot exceed "
                f"stall_timeout ({self.stall_timeout}s)."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
