from __future__ import annotations

import io
import logging
from typing import Iterable

from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as pdf_canvas

from journalexport.errors import RenderingError

from .layout import Annotation, DrawOp, ImageOp, LineOp, Page, RectOp, TextOp


logger = logging.getLogger(__name__)

PRODUCER = 'Reclaim Journal Export'


def _draw_ops(canvas, page: Page, ops: Iterable[DrawOp]) -> None:
    height = page.height
    for op in ops:
        if isinstance(op, TextOp):
            canvas.setFillColorRGB(*op.color)
            canvas.setFont(op.font, op.size)
            canvas.drawString(op.x, height - op.baseline, op.text)
        elif isinstance(op, RectOp):
            rect = op.rect
            y = height - rect.bottom
            if op.fill is not None:
                canvas.setFillColorRGB(*op.fill)
            if op.stroke is not None:
                canvas.setStrokeColorRGB(*op.stroke)
                canvas.setLineWidth(op.stroke_width)
            canvas.rect(
                rect.x,
                y,
                rect.width,
                rect.height,
                stroke=1 if op.stroke is not None else 0,
                fill=1 if op.fill is not None else 0,
            )
        elif isinstance(op, LineOp):
            canvas.setStrokeColorRGB(*op.color)
            canvas.setLineWidth(op.width)
            canvas.line(op.x1, height - op.y1, op.x2, height - op.y2)
        elif isinstance(op, ImageOp):
            rect = op.rect
            canvas.drawImage(
                ImageReader(io.BytesIO(op.data)),
                rect.x,
                height - rect.bottom,
                width=rect.width,
                height=rect.height,
                mask='auto',
            )
        else:
            raise RenderingError(f'unsupported draw operation: {type(op).__name__}')


def _link_annotation(canvas, page: Page, annotation: Annotation) -> None:
    rect = annotation.rect
    canvas.linkURL(
        annotation.target_url,
        (rect.x, page.height - rect.bottom, rect.right, page.height - rect.y_top),
        relative=0,
        thickness=0,
    )


def render_pdf(pages: list[Page], *, title: str, author: str = PRODUCER, subject: str = 'Journal entry export') -> bytes:
    """Serialize finalized pages to one PDF byte string, or raise ``RenderingError``."""
    if not pages:
        raise RenderingError('no pages to serialize')

    buffer = io.BytesIO()
    try:
        first = pages[0]
        canvas = pdf_canvas.Canvas(buffer, pagesize=(first.width, first.height), pageCompression=1)
        canvas.setTitle(title)
        canvas.setAuthor(author)
        canvas.setSubject(subject)
        canvas.setProducer(PRODUCER)
        for page in pages:
            canvas.setPageSize((page.width, page.height))
            canvas.saveState()
            _draw_ops(canvas, page, page.header_ops)
            for item in page.placed:
                _draw_ops(canvas, page, item.ops)
                if item.annotation is not None:
                    _link_annotation(canvas, page, item.annotation)
            _draw_ops(canvas, page, page.footer_ops)
            canvas.restoreState()
            canvas.showPage()
        canvas.save()
    except RenderingError:
        raise
    except Exception as exc:
        logger.error('PDF serialization failed: %s', exc)
        raise RenderingError(f'PDF serialization failed: {exc}') from exc

    payload = buffer.getvalue()
    if not payload.startswith(b'%PDF'):
        raise RenderingError('serializer produced a malformed PDF stream')
    return payload
