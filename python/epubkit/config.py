"""Settings loaded from environment variables.

Packaging Configuration:
    EPUBKIT_DEBUG_MODE: Omit the mimetype entry from built archives (default false)
    EPUBKIT_LANGUAGE: dc:language of generated packages (default en-US)
    EPUBKIT_PUBLISHER: dc:publisher, also the author fallback (default EpubKit)

Logging Configuration:
    EPUBKIT_LOG_JSON: Render logs as JSON (default true); console output otherwise

Image Fetch Configuration (HttpImageProcessor only):
    EPUBKIT_IMAGE_FETCH_TIMEOUT_S: HTTP timeout in seconds
    EPUBKIT_MAX_IMAGE_BYTES: Max bytes per fetched image
    EPUBKIT_MAX_IMAGE_DIMENSION: Max decoded width/height
    EPUBKIT_IMAGE_USER_AGENT: User-Agent for outbound requests
"""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Library configuration.

    Validation rules:
    - Image limits and the timeout must be positive
    - EPUBKIT_LANGUAGE and EPUBKIT_PUBLISHER must not be blank
    """

    debug_mode: bool = Field(default=False, alias="EPUBKIT_DEBUG_MODE")
    language: str = Field(default="en-US", alias="EPUBKIT_LANGUAGE")
    publisher: str = Field(default="EpubKit", alias="EPUBKIT_PUBLISHER")

    log_json: bool = Field(default=True, alias="EPUBKIT_LOG_JSON")

    image_fetch_timeout_s: float = Field(default=10.0, alias="EPUBKIT_IMAGE_FETCH_TIMEOUT_S")
    max_image_bytes: int = Field(
        default=10 * 1024 * 1024, alias="EPUBKIT_MAX_IMAGE_BYTES"
    )  # 10 MB
    max_image_dimension: int = Field(default=4096, alias="EPUBKIT_MAX_IMAGE_DIMENSION")
    image_user_agent: str = Field(default="EpubKit/1.0", alias="EPUBKIT_IMAGE_USER_AGENT")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject non-positive limits and blank metadata defaults."""
        limits = {
            "EPUBKIT_IMAGE_FETCH_TIMEOUT_S": self.image_fetch_timeout_s,
            "EPUBKIT_MAX_IMAGE_BYTES": self.max_image_bytes,
            "EPUBKIT_MAX_IMAGE_DIMENSION": self.max_image_dimension,
        }
        for name, value in limits.items():
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")

        if not self.language.strip():
            raise ValueError("EPUBKIT_LANGUAGE must not be blank")
        if not self.publisher.strip():
            raise ValueError("EPUBKIT_PUBLISHER must not be blank")

        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
