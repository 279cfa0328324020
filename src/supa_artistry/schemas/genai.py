"""Pydantic schemas for user-facing notices and demo results."""

from typing import Optional

from pydantic import BaseModel, Field


class Notice(BaseModel):
    """A short message for the user, shown as a toast or a CLI line."""

    title: str
    description: str = ""
    variant: str = Field(default="default", pattern=r"^(default|destructive)$")

    @property
    def ok(self) -> bool:
        return self.variant != "destructive"


class DemoResult(BaseModel):
    feature: str = Field(..., pattern=r"^(text|image|multimodal|video)$")
    session_id: str
    content: str = ""
    video_url: Optional[str] = None
    vertexai: bool = False
    notice: Notice
