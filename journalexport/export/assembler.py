from __future__ import annotations

import logging
from datetime import datetime

from journalexport.adapters.blobs import BlobStore
from journalexport.config import Settings
from journalexport.errors import DegradedResourceError
from journalexport.types import EvidenceItem, ExportFormat, ExportRequest, JournalEntryView

from .blocks import AudioEvidence, ContentBlock, Heading, ImageBlock, ListItem, Paragraph
from .transcript import transcript_snippet


logger = logging.getLogger(__name__)

DEFAULT_TITLE = 'Journal Entry'


def format_display_datetime(value: datetime) -> str:
    return value.strftime('%Y-%m-%d %H:%M %Z').strip()


def _clean(value: str | None) -> str:
    return str(value or '').strip()


def _metadata_lines(entry: JournalEntryView, *, redact: bool) -> list[str]:
    lines = [f'Date: {format_display_datetime(entry.display_date)}']
    location = _clean(entry.location)
    if location and not redact:
        lines.append(f'Location: {location}')
    if entry.safety_rating is not None:
        lines.append(f'Safety: {entry.safety_rating}/5')
    if entry.mood_rating is not None:
        lines.append(f'Mood: {entry.mood_rating}/10')
    return lines


def _emotional_lines(entry: JournalEntryView) -> list[str]:
    lines: list[str] = []
    before = _clean(entry.emotional_state_before)
    after = _clean(entry.emotional_state_after)
    if before:
        lines.append(f'Before: {before}')
    if after:
        lines.append(f'After: {after}')
    return lines


def _image_block(item: EvidenceItem, *, request: ExportRequest, blobs: BlobStore, caption: str | None) -> ImageBlock | None:
    if request.format != ExportFormat.paged:
        return ImageBlock(name=item.display_name, data=None, caption=caption)
    try:
        data = blobs.download(item.bytes_ref)
    except DegradedResourceError as exc:
        logger.warning('Dropping image evidence %s: %s', item.display_name, exc)
        return None
    return ImageBlock(name=item.display_name, data=data, caption=caption)


def _audio_block(
    item: EvidenceItem,
    *,
    request: ExportRequest,
    blobs: BlobStore,
    settings: Settings,
    caption: str | None,
) -> AudioEvidence:
    snippet: str | None = None
    if not request.redact and _clean(item.transcript):
        snippet = transcript_snippet(
            item.transcript,
            max_lines=settings.transcript_max_lines,
            max_chars=settings.transcript_snippet_chars,
        ) or None

    link_url: str | None = None
    if request.format == ExportFormat.paged and request.include_links:
        try:
            link_url = blobs.signed_url(item.bytes_ref, ttl_seconds=settings.signed_url_ttl_seconds) or None
        except DegradedResourceError as exc:
            logger.warning('No listen link for %s: %s', item.display_name, exc)
    return AudioEvidence(name=item.display_name, caption=caption, transcript_snippet=snippet, link_url=link_url)


def _evidence_block(
    item: EvidenceItem,
    *,
    request: ExportRequest,
    blobs: BlobStore,
    settings: Settings,
) -> ContentBlock | None:
    caption = None if request.redact else (_clean(item.caption) or None)
    if item.is_image:
        return _image_block(item, request=request, blobs=blobs, caption=caption)
    if item.is_audio:
        return _audio_block(item, request=request, blobs=blobs, settings=settings, caption=caption)
    suffix = f' — {caption}' if caption else ''
    return ListItem(f'{item.display_name}{suffix}')


def assemble_blocks(
    entry: JournalEntryView,
    evidence: list[EvidenceItem],
    request: ExportRequest,
    *,
    blobs: BlobStore,
    settings: Settings,
) -> list[ContentBlock]:
    """Normalize an entry and its evidence into the ordered block stream.

    Redacted fields are dropped here, so no later stage ever sees them.
    Image bytes are fetched for the paged format only; a failed fetch drops that block.
    """
    blocks: list[ContentBlock] = [Heading(_clean(entry.title) or DEFAULT_TITLE, level=1)]
    blocks.append(Paragraph('\n'.join(_metadata_lines(entry, redact=request.redact))))

    description = _clean(entry.description)
    if description:
        blocks.append(Heading('What happened'))
        blocks.append(Paragraph(description))

    categories = [_clean(tag).replace('_', ' ') for tag in entry.categories if _clean(tag)]
    if categories:
        blocks.append(Heading('Behavior types'))
        blocks.extend(ListItem(tag) for tag in categories)

    if not request.redact:
        emotional = _emotional_lines(entry)
        if emotional:
            blocks.append(Heading('Emotional impact'))
            blocks.append(Paragraph('\n'.join(emotional)))

    evidence_blocks: list[ContentBlock] = []
    for item in evidence:
        block = _evidence_block(item, request=request, blobs=blobs, settings=settings)
        if block is not None:
            evidence_blocks.append(block)
    if evidence_blocks:
        blocks.append(Heading('Evidence'))
        blocks.extend(evidence_blocks)

    logger.info(
        'Assembled %d blocks for entry %s (%d evidence, redact=%s)',
        len(blocks),
        entry.id,
        len(evidence_blocks),
        request.redact,
    )
    return blocks
