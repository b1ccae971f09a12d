from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Heading:
    text: str
    level: int = 2


@dataclass(frozen=True)
class Paragraph:
    # Embedded newlines are hard line breaks.
    text: str


@dataclass(frozen=True)
class ListItem:
    text: str


@dataclass(frozen=True)
class ImageBlock:
    name: str
    data: bytes | None
    caption: str | None = None

    def __repr__(self) -> str:
        size = len(self.data) if self.data is not None else 0
        return f'ImageBlock(name={self.name!r}, data=<{size} bytes>, caption={self.caption!r})'


@dataclass(frozen=True)
class AudioEvidence:
    name: str
    caption: str | None = None
    transcript_snippet: str | None = None
    link_url: str | None = None


ContentBlock = Union[Heading, Paragraph, ListItem, ImageBlock, AudioEvidence]


def block_texts(block: ContentBlock) -> list[str]:
    """Every display string carried by a block, for redaction checks and logging."""
    if isinstance(block, (Heading, Paragraph, ListItem)):
        return [block.text]
    if isinstance(block, ImageBlock):
        return [value for value in (block.name, block.caption) if value]
    return [value for value in (block.name, block.caption, block.transcript_snippet) if value]
