from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont

from journalexport.config import Settings


logger = logging.getLogger(__name__)

FONT_BODY_TTF_NAME = 'JE-Body'
FONT_BOLD_TTF_NAME = 'JE-Bold'
STANDARD_BODY_FONT = 'Helvetica'
STANDARD_BOLD_FONT = 'Helvetica-Bold'

_STANDARD_FONTS = set(pdfmetrics.standardFonts)


@dataclass(frozen=True)
class ReportFonts:
    body: str
    bold: str


_FONTS_CACHE: dict[tuple[str, str, str, str], ReportFonts] = {}


def _register_ttf_font(font_name: str, font_path: Path) -> bool:
    if font_name in pdfmetrics.getRegisteredFontNames():
        return True
    try:
        pdfmetrics.registerFont(TTFont(font_name, str(font_path)))
        return True
    except Exception as exc:
        logger.warning('Failed to register PDF font %s from %s: %s', font_name, font_path, exc)
        return False


def _resolve_one(name: str, path: Path | None, *, ttf_name: str, fallback: str) -> str:
    if path is not None:
        font_path = Path(path)
        if font_path.exists() and font_path.is_file() and _register_ttf_font(ttf_name, font_path):
            return ttf_name
        logger.warning('PDF font file %s unavailable; falling back to %s', font_path, name or fallback)
    token = str(name or '').strip()
    if token in _STANDARD_FONTS or token in pdfmetrics.getRegisteredFontNames():
        return token
    return fallback


def resolve_fonts(settings: Settings) -> ReportFonts:
    key = (
        settings.pdf_font_name,
        settings.pdf_bold_font_name,
        str(settings.pdf_font_path or ''),
        str(settings.pdf_bold_font_path or ''),
    )
    cached = _FONTS_CACHE.get(key)
    if cached is not None:
        return cached

    body = _resolve_one(
        settings.pdf_font_name,
        settings.pdf_font_path,
        ttf_name=FONT_BODY_TTF_NAME,
        fallback=STANDARD_BODY_FONT,
    )
    bold = _resolve_one(
        settings.pdf_bold_font_name,
        settings.pdf_bold_font_path,
        ttf_name=FONT_BOLD_TTF_NAME,
        fallback=STANDARD_BOLD_FONT,
    )
    fonts = ReportFonts(body=body, bold=bold)
    _FONTS_CACHE[key] = fonts
    return fonts


def measure_text(text: str, font_name: str, font_size: float) -> float:
    """Rendered width in points; the one width function behind wrapping, drawing and link rects."""
    if not text:
        return 0.0
    return float(pdfmetrics.stringWidth(text, font_name, float(font_size)))


def fit_text(text: str, font_name: str, font_size: float, max_width: float, *, ellipsis: str = '…') -> str:
    if measure_text(text, font_name, font_size) <= max_width:
        return text
    clipped = text
    while clipped and measure_text(clipped + ellipsis, font_name, font_size) > max_width:
        clipped = clipped[:-1]
    return (clipped.rstrip() + ellipsis) if clipped else ''
