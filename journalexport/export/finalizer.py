from __future__ import annotations

from .fonts import ReportFonts
from .layout import LayoutMetrics, Page, text_op

FOOTER_SIZE = 10.0
FOOTER_COLOR = (0.4, 0.4, 0.4)


def page_label(number: int, total: int) -> str:
    return f'Page {number} of {total}'


def finalize_pages(pages: list[Page], *, metrics: LayoutMetrics, fonts: ReportFonts, site_label: str) -> list[Page]:
    """Stamp every page's footer once the page count is final; body content is untouched."""
    total = len(pages)
    baseline = metrics.page_height - metrics.footer_offset
    for number, page in enumerate(pages, start=1):
        footer = []
        if site_label:
            footer.append(text_op(metrics.margin, baseline, site_label, fonts.body, FOOTER_SIZE, FOOTER_COLOR))
        right = text_op(0.0, baseline, page_label(number, total), fonts.body, FOOTER_SIZE, FOOTER_COLOR)
        footer.append(
            text_op(
                metrics.page_width - metrics.margin - right.width,
                baseline,
                right.text,
                fonts.body,
                FOOTER_SIZE,
                FOOTER_COLOR,
            )
        )
        page.footer_ops = footer
    return pages
