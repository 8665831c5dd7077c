from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class Outline(BaseModel):
    """A node of an OPML subscription tree: a feed reference or a grouping folder."""

    text: Optional[str] = None
    title: Optional[str] = None
    html_url: Optional[str] = None
    xml_url: Optional[str] = None
    type: Optional[str] = None
    children: List["Outline"] = Field(default_factory=list)

    @property
    def label(self) -> Optional[str]:
        return self.text or self.title


Outline.model_rebuild()
