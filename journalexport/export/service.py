from __future__ import annotations

import logging
import traceback
from datetime import datetime, timezone

from journalexport.adapters.blobs import BlobStore, build_blob_store, fetch_logo
from journalexport.config import Settings, get_settings
from journalexport.errors import DegradedResourceError, ExportError, ForbiddenError, RenderingError
from journalexport.storage import EntryStore
from journalexport.types import ExportFormat, ExportRequest, ExportResult

from .assembler import DEFAULT_TITLE, assemble_blocks, format_display_datetime
from .blocks import ContentBlock
from .finalizer import finalize_pages
from .fonts import resolve_fonts
from .layout import HeaderSpec, LayoutMetrics, layout_blocks, verify_layout
from .pdf_export import render_pdf
from .text_export import render_markdown


logger = logging.getLogger(__name__)


def paged_permitted(store: EntryStore, settings: Settings, caller_id: str) -> bool:
    return settings.can_export_paged(store.get_tier(caller_id))


def _load_logo(settings: Settings) -> bytes | None:
    try:
        return fetch_logo(settings)
    except DegradedResourceError as exc:
        logger.warning('Rendering header without logo: %s', exc)
        return None


def render_paged(
    blocks: list[ContentBlock],
    *,
    settings: Settings,
    title: str,
    logo: bytes | None = None,
    generated_at: datetime | None = None,
    include_links: bool = True,
) -> tuple[bytes, int]:
    """Lay out, finalize and serialize blocks; returns the PDF bytes and page count."""
    fonts = resolve_fonts(settings)
    metrics = LayoutMetrics.from_settings(settings)
    stamp = generated_at or datetime.now(timezone.utc)
    header = HeaderSpec(title=settings.brand_title, timestamp=format_display_datetime(stamp), logo=logo)

    pages = layout_blocks(
        blocks,
        metrics=metrics,
        fonts=fonts,
        header=header,
        bubble_max_lines=settings.bubble_max_lines,
        include_links=include_links,
    )
    verify_layout(pages, metrics)
    finalize_pages(pages, metrics=metrics, fonts=fonts, site_label=settings.brand_site_url)
    return render_pdf(pages, title=title), len(pages)


def run_export(
    request: ExportRequest,
    *,
    caller_id: str,
    store: EntryStore,
    blobs: BlobStore,
    settings: Settings,
    paged_allowed: bool | None = None,
    logo: bytes | None = None,
    generated_at: datetime | None = None,
) -> ExportResult:
    """Run one export end to end.

    Tier and ownership failures raise before any rendering work. Anything else that goes
    wrong after assembly surfaces as ``RenderingError``; no partial document is returned.
    """
    if request.format == ExportFormat.paged:
        allowed = paged_permitted(store, settings, caller_id) if paged_allowed is None else paged_allowed
        if not allowed:
            raise ForbiddenError(f'paged export not permitted for caller {caller_id}')

    entry = store.get_entry(request.entry_id, caller_id)
    evidence = store.list_evidence(request.entry_id)

    try:
        blocks = assemble_blocks(entry, evidence, request, blobs=blobs, settings=settings)
        if request.format == ExportFormat.text:
            content = render_markdown(blocks).encode('utf-8')
            page_count = 0
        else:
            content, page_count = render_paged(
                blocks,
                settings=settings,
                title=entry.title or DEFAULT_TITLE,
                logo=logo if logo is not None else _load_logo(settings),
                generated_at=generated_at,
                include_links=request.include_links,
            )
    except ExportError:
        raise
    except Exception as exc:
        logger.error('Export of entry %s failed: %s', request.entry_id, exc)
        logger.debug(traceback.format_exc())
        raise RenderingError(f'export failed: {type(exc).__name__}: {exc}') from exc

    logger.info(
        'Exported entry %s as %s (%d bytes, %d pages)',
        request.entry_id,
        request.format.value,
        len(content),
        page_count,
    )
    return ExportResult(
        content=content,
        media_type=request.media_type,
        filename=request.filename,
        page_count=page_count,
    )


def export_entry(request: ExportRequest, *, caller_id: str, settings: Settings | None = None) -> ExportResult:
    resolved = settings or get_settings()
    return run_export(
        request,
        caller_id=caller_id,
        store=EntryStore(resolved),
        blobs=build_blob_store(resolved),
        settings=resolved,
    )
