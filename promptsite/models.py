from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

FileKind = Literal["html", "css", "js"]

_KIND_BY_EXTENSION = {
    "html": "html",
    "htm": "html",
    "css": "css",
    "js": "js",
    "mjs": "js",
}


def kind_for_name(name: str) -> Optional[str]:
    """Map a file path to its kind by extension; None for anything we cannot preview."""
    base = (name or "").rsplit("/", 1)[-1]
    if "." not in base:
        return None
    return _KIND_BY_EXTENSION.get(base.rsplit(".", 1)[-1].lower())


class ProjectFile(BaseModel):
    name: str = Field(..., min_length=1, description="Path; '/' separates folders")
    kind: FileKind
    content: str = ""


class CanonicalProject(BaseModel):
    files: List[ProjectFile] = Field(default_factory=list)

    def get(self, name: str) -> Optional[ProjectFile]:
        for f in self.files:
            if f.name == name:
                return f
        return None

    def content_of_kind(self, kind: str) -> str:
        return "\n".join(f.content for f in self.files if f.kind == kind)

    def serialize(self) -> str:
        return json.dumps([f.model_dump() for f in self.files], ensure_ascii=False)

    @classmethod
    def deserialize(cls, raw: Optional[str]) -> "CanonicalProject":
        if not raw:
            return cls()
        return cls(files=_FILE_LIST.validate_json(raw))


_FILE_LIST = TypeAdapter(List[ProjectFile])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(BaseModel):
    prompt: str = Field(..., min_length=10, description="Please describe your website in at least 10 characters")


class Generation(_CamelModel):
    id: str
    prompt: str
    generated_html: str
    generated_css: Optional[str] = None
    generated_js: Optional[str] = None
    files: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MessageType(str, Enum):
    NAVIGATE = "NAVIGATE"


class NavigateMessage(BaseModel):
    type: MessageType = MessageType.NAVIGATE
    href: str


class PreviewRequest(_CamelModel):
    files: List[ProjectFile]
    active_file: Optional[str] = None


class NavigateRequest(PreviewRequest):
    message: NavigateMessage


class FormatRequest(BaseModel):
    content: str
    kind: FileKind
