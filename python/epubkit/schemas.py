"""Pydantic schemas for caller-supplied book metadata."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookMetadata(BaseModel):
    """Book-level metadata supplied when a generator is constructed.

    `author` is optional; the package document falls back to the publisher.
    """

    title: str = Field(min_length=1)
    author: str | None = None

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    @field_validator("author")
    @classmethod
    def blank_author_is_none(cls, value: str | None) -> str | None:
        """Treat an empty author like a missing one."""
        if value is not None and not value.strip():
            return None
        return value
