from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExportFormat(str, Enum):
    text = 'text'
    paged = 'paged'

    @classmethod
    def parse(cls, value: str | None) -> 'ExportFormat':
        token = str(value or '').strip().lower()
        if token in {'', 'text', 'md', 'markdown'}:
            return cls.text
        if token in {'pdf', 'paged'}:
            return cls.paged
        raise ValueError(f'unsupported export format: {value}')


class ExportRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_id: str
    format: ExportFormat = ExportFormat.text
    redact: bool = False
    include_links: bool = True

    @property
    def media_type(self) -> str:
        if self.format == ExportFormat.paged:
            return 'application/pdf'
        return 'text/markdown; charset=utf-8'

    @property
    def filename(self) -> str:
        suffix = 'pdf' if self.format == ExportFormat.paged else 'md'
        return f'journal-{self.entry_id}.{suffix}'


class JournalEntryView(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')

    id: str
    owner_id: str
    title: str = ''
    description: str | None = None
    occurred_at: datetime | None = None
    location: str | None = None
    safety_rating: int | None = Field(default=None, ge=1, le=5)
    mood_rating: int | None = Field(default=None, ge=1, le=10)
    categories: list[str] = Field(default_factory=list)
    emotional_state_before: str | None = None
    emotional_state_after: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('categories', mode='before')
    @classmethod
    def _coerce_categories(cls, value):
        if value is None:
            return []
        return value

    @property
    def display_date(self) -> datetime:
        return self.occurred_at or self.created_at


class EvidenceItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')

    id: str
    file_name: str = ''
    mime_type: str = 'application/octet-stream'
    caption: str | None = None
    uploaded_at: datetime = Field(default_factory=utcnow)
    transcript: str | None = None
    bytes_ref: str

    @property
    def display_name(self) -> str:
        return self.file_name or self.bytes_ref

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith('image/')

    @property
    def is_audio(self) -> bool:
        return self.mime_type.lower().startswith('audio/')


class ExportResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: bytes
    media_type: str
    filename: str
    page_count: int = 0

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'
