"""Data models for the article digest service."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ArticleDocument(BaseModel):
    """Readable content pulled out of a single web page."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: Optional[str] = None
    published_at: Optional[str] = Field(
        None,
        alias="publishedAt",
        description="Raw publication date text exactly as found on the page.",
    )
    body: str = Field("", description="Main text with whitespace collapsed.")

    def to_payload(self) -> dict:
        """Boundary shape: empty fields become nulls."""
        return {
            "title": self.title or None,
            "publishedAt": self.published_at or None,
            "body": self.body or None,
        }

