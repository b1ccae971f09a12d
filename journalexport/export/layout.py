from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Union

from reportlab.lib.utils import ImageReader

from journalexport.config import Settings
from journalexport.errors import RenderingError

from .blocks import AudioEvidence, ContentBlock, Heading, ImageBlock, ListItem, Paragraph
from .fonts import ReportFonts, fit_text, measure_text


logger = logging.getLogger(__name__)

Color = tuple[float, float, float]

TEXT_COLOR: Color = (0.0, 0.0, 0.0)
BRAND_COLOR: Color = (0.15, 0.15, 0.3)
MUTED_COLOR: Color = (0.3, 0.3, 0.3)
DIVIDER_COLOR: Color = (0.85, 0.85, 0.9)
BUBBLE_FILL: Color = (0.96, 0.97, 1.0)
BUBBLE_BORDER: Color = (0.82, 0.86, 0.98)
BUBBLE_TITLE_COLOR: Color = (0.12, 0.12, 0.2)
BUBBLE_TEXT_COLOR: Color = (0.2, 0.2, 0.2)
LINK_COLOR: Color = (0.1, 0.35, 0.8)

# Baseline sits at this fraction of the line box, leaving room for descenders.
BASELINE_RATIO = 0.75

HEADER_HEIGHT = 52.0
HEADER_LOGO_HEIGHT = 22.0
HEADER_TITLE_SIZE = 16.0
HEADER_TIMESTAMP_SIZE = 10.0

IMAGE_GAP = 6.0
IMAGE_LABEL_GAP = 2.0

BUBBLE_PADDING = 10.0
BUBBLE_TITLE_BLOCK = 20.0
BUBBLE_TITLE_SIZE = 12.0
BUBBLE_LINK_BLOCK = 14.0
BUBBLE_LINK_SIZE = 10.0
BUBBLE_TEXT_SIZE = 11.0
BUBBLE_LINE_HEIGHT = 16.0
BUBBLE_CONTENT_PAD = 6.0
BUBBLE_GAP_AFTER = 10.0
LISTEN_LABEL = 'Click here to listen'
NO_TRANSCRIPT_TEXT = 'No transcript available.'
LINK_RECT_PADDING = 4.0


@dataclass(frozen=True)
class Rect:
    x: float
    y_top: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.y_top + self.height

    @property
    def right(self) -> float:
        return self.x + self.width


@dataclass(frozen=True)
class TextOp:
    x: float
    baseline: float
    text: str
    font: str
    size: float
    width: float
    color: Color = TEXT_COLOR


@dataclass(frozen=True)
class RectOp:
    rect: Rect
    fill: Color | None = None
    stroke: Color | None = None
    stroke_width: float = 1.0


@dataclass(frozen=True)
class LineOp:
    x1: float
    y1: float
    x2: float
    y2: float
    color: Color = DIVIDER_COLOR
    width: float = 1.0


@dataclass(frozen=True)
class ImageOp:
    rect: Rect
    data: bytes = field(repr=False)
    intrinsic_width: int = 0
    intrinsic_height: int = 0


DrawOp = Union[TextOp, RectOp, LineOp, ImageOp]


@dataclass(frozen=True)
class Annotation:
    rect: Rect
    target_url: str


@dataclass
class PlacedBlock:
    block_index: int
    block: ContentBlock
    rect: Rect
    ops: list[DrawOp] = field(default_factory=list)
    lines: list[str] = field(default_factory=list)
    annotation: Annotation | None = None


@dataclass
class Page:
    index: int
    width: float
    height: float
    cursor_y: float = 0.0
    placed: list[PlacedBlock] = field(default_factory=list)
    header_ops: list[DrawOp] = field(default_factory=list)
    footer_ops: list[DrawOp] = field(default_factory=list)

    @property
    def annotations(self) -> list[Annotation]:
        return [item.annotation for item in self.placed if item.annotation is not None]


@dataclass(frozen=True)
class LayoutMetrics:
    page_width: float
    page_height: float
    margin: float
    line_height: float
    block_gap: float
    section_gap: float
    body_size: float
    title_size: float
    heading_size: float
    footer_offset: float

    @classmethod
    def from_settings(cls, settings: Settings) -> 'LayoutMetrics':
        return cls(
            page_width=float(settings.pdf_page_width),
            page_height=float(settings.pdf_page_height),
            margin=float(settings.pdf_page_margin),
            line_height=float(settings.pdf_line_height),
            block_gap=float(settings.pdf_block_gap),
            section_gap=float(settings.pdf_section_gap),
            body_size=float(settings.pdf_body_font_size),
            title_size=float(settings.pdf_title_font_size),
            heading_size=float(settings.pdf_heading_font_size),
            footer_offset=float(settings.pdf_footer_offset),
        )

    @property
    def content_width(self) -> float:
        return self.page_width - self.margin * 2

    @property
    def bottom_limit(self) -> float:
        return self.page_height - self.margin

    @property
    def body_top(self) -> float:
        return self.margin + HEADER_HEIGHT

    @property
    def body_height(self) -> float:
        return self.bottom_limit - self.body_top

    def line_height_for(self, size: float) -> float:
        return max(self.line_height, round(size * 1.3, 2))


@dataclass(frozen=True)
class HeaderSpec:
    title: str
    timestamp: str
    logo: bytes | None = field(default=None, repr=False)


@dataclass(frozen=True)
class _DecodedImage:
    data: bytes = field(repr=False)
    width: int
    height: int


@dataclass
class RenderState:
    """Cursor and page list threaded through every placement call."""

    metrics: LayoutMetrics
    fonts: ReportFonts
    header: HeaderSpec
    pages: list[Page] = field(default_factory=list)
    current_page_index: int = -1
    cursor_y: float = 0.0
    logo: _DecodedImage | None = None

    @property
    def page(self) -> Page:
        if self.current_page_index < 0:
            raise RenderingError('no page allocated')
        return self.pages[self.current_page_index]

    @property
    def remaining(self) -> float:
        return self.metrics.bottom_limit - self.cursor_y

    @property
    def at_page_top(self) -> bool:
        return self.current_page_index >= 0 and self.cursor_y <= self.metrics.body_top


def text_op(x: float, baseline: float, text: str, font: str, size: float, color: Color = TEXT_COLOR) -> TextOp:
    return TextOp(
        x=x,
        baseline=baseline,
        text=text,
        font=font,
        size=size,
        width=measure_text(text, font, size),
        color=color,
    )


def link_label(x: float, baseline: float, label: str, font: str, size: float, url: str) -> tuple[TextOp, Annotation]:
    """The visible label and its clickable rect, both sized from one measurement."""
    op = text_op(x, baseline, label, font, size, LINK_COLOR)
    rect = Rect(x=x, y_top=baseline - size, width=op.width, height=size + LINK_RECT_PADDING)
    return op, Annotation(rect=rect, target_url=url)


def decode_image(data: bytes | None) -> _DecodedImage | None:
    if not data:
        return None
    try:
        reader = ImageReader(io.BytesIO(data))
        width, height = reader.getSize()
        # getSize only reads the header; a truncated body fails here instead of in the serializer.
        reader.getRGBData()
    except Exception as exc:
        logger.warning('Failed to decode image (%d bytes): %s', len(data), exc)
        return None
    if int(width) <= 0 or int(height) <= 0:
        logger.warning('Ignoring image with empty dimensions %sx%s', width, height)
        return None
    return _DecodedImage(data=data, width=int(width), height=int(height))


def _header_ops(state: RenderState, top: float) -> list[DrawOp]:
    metrics = state.metrics
    ops: list[DrawOp] = []
    left_x = metrics.margin
    if state.logo is not None:
        scale = HEADER_LOGO_HEIGHT / state.logo.height
        logo_width = state.logo.width * scale
        ops.append(
            ImageOp(
                rect=Rect(x=metrics.margin, y_top=top, width=logo_width, height=HEADER_LOGO_HEIGHT),
                data=state.logo.data,
                intrinsic_width=state.logo.width,
                intrinsic_height=state.logo.height,
            )
        )
        left_x = metrics.margin + logo_width + 10
    available = metrics.page_width - metrics.margin - left_x
    title = fit_text(state.header.title, state.fonts.bold, HEADER_TITLE_SIZE, available)
    ops.append(text_op(left_x, top + 18, title, state.fonts.bold, HEADER_TITLE_SIZE, BRAND_COLOR))
    timestamp = fit_text(state.header.timestamp, state.fonts.body, HEADER_TIMESTAMP_SIZE, available)
    ops.append(text_op(left_x, top + 34, timestamp, state.fonts.body, HEADER_TIMESTAMP_SIZE, MUTED_COLOR))
    divider_y = top + 40
    ops.append(LineOp(metrics.margin, divider_y, metrics.page_width - metrics.margin, divider_y))
    return ops


def new_page(state: RenderState) -> Page:
    """Allocate a page, draw the branded header and move the cursor below it."""
    metrics = state.metrics
    if state.current_page_index >= 0:
        state.page.cursor_y = state.cursor_y
    page = Page(index=len(state.pages), width=metrics.page_width, height=metrics.page_height)
    page.header_ops = _header_ops(state, metrics.margin)
    state.pages.append(page)
    state.current_page_index = page.index
    state.cursor_y = metrics.body_top
    page.cursor_y = state.cursor_y
    return page


def ensure_space(state: RenderState, needed: float) -> bool:
    """Start a new page unless ``needed`` points fit; a fresh page is never abandoned."""
    if state.current_page_index < 0:
        new_page(state)
        return True
    if state.cursor_y + needed <= state.metrics.bottom_limit:
        return False
    if state.at_page_top:
        return False
    new_page(state)
    return True


def wrap_text(text: str, font: str, size: float, max_width: float) -> list[str]:
    """Greedy word wrap; embedded newlines are hard breaks and overlong tokens stay whole."""
    lines: list[str] = []
    for hard_line in str(text or '').split('\n'):
        words = hard_line.split()
        if not words:
            lines.append('')
            continue
        current = ''
        for word in words:
            candidate = f'{current} {word}' if current else word
            if not current or measure_text(candidate, font, size) <= max_width:
                current = candidate
                continue
            lines.append(current)
            current = word
        lines.append(current)

    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    return lines


def place_text(
    state: RenderState,
    text: str,
    *,
    block_index: int,
    block: ContentBlock,
    font: str,
    size: float,
    color: Color = TEXT_COLOR,
    indent: float = 0.0,
    gap_after: float | None = None,
) -> list[PlacedBlock]:
    metrics = state.metrics
    line_height = metrics.line_height_for(size)
    x = metrics.margin + indent
    width = metrics.content_width - indent
    lines = wrap_text(text, font, size, width)

    fragments: list[PlacedBlock] = []
    current: PlacedBlock | None = None
    for line in lines:
        if ensure_space(state, line_height) or current is None:
            current = PlacedBlock(
                block_index=block_index,
                block=block,
                rect=Rect(x=x, y_top=state.cursor_y, width=width, height=0.0),
            )
            state.page.placed.append(current)
            fragments.append(current)
        if line:
            current.ops.append(text_op(x, state.cursor_y + line_height * BASELINE_RATIO, line, font, size, color))
        current.lines.append(line)
        current.rect = Rect(x=x, y_top=current.rect.y_top, width=width, height=current.rect.height + line_height)
        state.cursor_y += line_height

    state.cursor_y += metrics.block_gap if gap_after is None else gap_after
    state.page.cursor_y = state.cursor_y
    return fragments


def place_heading(state: RenderState, block: Heading, *, block_index: int) -> list[PlacedBlock]:
    metrics = state.metrics
    if block.level <= 1:
        return place_text(
            state,
            block.text,
            block_index=block_index,
            block=block,
            font=state.fonts.bold,
            size=metrics.title_size,
            gap_after=metrics.block_gap + 8,
        )
    # Keep a section heading on the same page as the first line that follows it.
    needed = (
        metrics.section_gap
        + metrics.line_height_for(metrics.heading_size)
        + metrics.block_gap
        + metrics.line_height_for(metrics.body_size)
    )
    ensure_space(state, needed)
    if not state.at_page_top:
        state.cursor_y += metrics.section_gap
    return place_text(
        state,
        block.text,
        block_index=block_index,
        block=block,
        font=state.fonts.bold,
        size=metrics.heading_size,
    )


def place_image(state: RenderState, block: ImageBlock, *, block_index: int, max_width: float) -> list[PlacedBlock]:
    """Name line, then the image scaled to ``max_width`` (never up); both share one page."""
    decoded = decode_image(block.data)
    if decoded is None:
        logger.warning('Skipping image evidence %s: undecodable data', block.name)
        return []

    metrics = state.metrics
    label = fit_text(f'• {block.name}', state.fonts.body, metrics.body_size, metrics.content_width)
    label_height = metrics.line_height_for(metrics.body_size) + IMAGE_LABEL_GAP

    scale = min(1.0, float(max_width) / decoded.width)
    if decoded.height * scale > metrics.body_height - label_height:
        scale = (metrics.body_height - label_height) / decoded.height
    draw_width = decoded.width * scale
    draw_height = decoded.height * scale

    ensure_space(state, label_height + draw_height)
    fragments = place_text(
        state,
        label,
        block_index=block_index,
        block=block,
        font=state.fonts.body,
        size=metrics.body_size,
        gap_after=IMAGE_LABEL_GAP,
    )
    rect = Rect(x=metrics.margin, y_top=state.cursor_y, width=draw_width, height=draw_height)
    placed = PlacedBlock(
        block_index=block_index,
        block=block,
        rect=rect,
        ops=[
            ImageOp(
                rect=rect,
                data=decoded.data,
                intrinsic_width=decoded.width,
                intrinsic_height=decoded.height,
            )
        ],
    )
    state.page.placed.append(placed)
    state.cursor_y += draw_height + IMAGE_GAP

    fragments.append(placed)
    if block.caption:
        fragments.extend(
            place_text(
                state,
                f'Caption: {block.caption}',
                block_index=block_index,
                block=block,
                font=state.fonts.body,
                size=metrics.body_size,
            )
        )
    state.cursor_y += IMAGE_GAP
    state.page.cursor_y = state.cursor_y
    return fragments


@dataclass(frozen=True)
class BubbleMetrics:
    width: float
    inner_width: float
    title: str
    lines: list[str]
    has_link: bool
    height: float

    @property
    def link_block(self) -> float:
        return (BUBBLE_LINK_BLOCK + 2) if self.has_link else 0.0

    @property
    def content_offset(self) -> float:
        return BUBBLE_PADDING + BUBBLE_TITLE_BLOCK + self.link_block


def _bubble_height(line_count: int, has_link: bool) -> float:
    link_block = (BUBBLE_LINK_BLOCK + 2) if has_link else 0.0
    return (
        BUBBLE_PADDING
        + BUBBLE_TITLE_BLOCK
        + link_block
        + line_count * BUBBLE_LINE_HEIGHT
        + BUBBLE_CONTENT_PAD
        + BUBBLE_PADDING
    )


def _bubble_title(block: AudioEvidence) -> str:
    caption = f' — {block.caption}' if block.caption else ''
    return f'• {block.name}{caption}'


def measure_bubble(
    block: AudioEvidence,
    *,
    metrics: LayoutMetrics,
    fonts: ReportFonts,
    max_lines: int,
    include_link: bool = True,
) -> BubbleMetrics:
    """Size an audio bubble from its wrapped contents; performs no drawing."""
    width = metrics.content_width
    inner_width = width - BUBBLE_PADDING * 2
    has_link = bool(include_link and block.link_url)

    snippet = block.transcript_snippet or NO_TRANSCRIPT_TEXT
    lines = wrap_text(snippet, fonts.body, BUBBLE_TEXT_SIZE, inner_width)[: max(1, int(max_lines))]
    while len(lines) > 1 and _bubble_height(len(lines), has_link) > metrics.body_height:
        lines = lines[:-1]

    title = fit_text(_bubble_title(block), fonts.bold, BUBBLE_TITLE_SIZE, inner_width)
    return BubbleMetrics(
        width=width,
        inner_width=inner_width,
        title=title,
        lines=lines,
        has_link=has_link,
        height=_bubble_height(len(lines), has_link),
    )


def draw_bubble(
    state: RenderState,
    bubble: BubbleMetrics,
    block: AudioEvidence,
    *,
    block_index: int,
) -> PlacedBlock:
    """Draw a bubble whose height was fixed by ``measure_bubble``."""
    metrics = state.metrics
    ensure_space(state, bubble.height)

    top = state.cursor_y
    left = metrics.margin
    inner_x = left + BUBBLE_PADDING
    rect = Rect(x=left, y_top=top, width=bubble.width, height=bubble.height)

    ops: list[DrawOp] = [
        RectOp(rect=rect, fill=BUBBLE_FILL),
        RectOp(rect=rect, stroke=BUBBLE_BORDER, stroke_width=1.0),
        text_op(
            inner_x,
            top + BUBBLE_PADDING + BUBBLE_TITLE_BLOCK * BASELINE_RATIO,
            bubble.title,
            state.fonts.bold,
            BUBBLE_TITLE_SIZE,
            BUBBLE_TITLE_COLOR,
        ),
    ]

    annotation: Annotation | None = None
    if bubble.has_link and block.link_url:
        baseline = top + BUBBLE_PADDING + BUBBLE_TITLE_BLOCK + BUBBLE_LINK_SIZE + 1
        label_op, annotation = link_label(
            inner_x,
            baseline,
            LISTEN_LABEL,
            state.fonts.body,
            BUBBLE_LINK_SIZE,
            block.link_url,
        )
        ops.append(label_op)

    content_top = top + bubble.content_offset
    for index, line in enumerate(bubble.lines):
        if not line:
            continue
        baseline = content_top + index * BUBBLE_LINE_HEIGHT + BUBBLE_LINE_HEIGHT * BASELINE_RATIO
        ops.append(text_op(inner_x, baseline, line, state.fonts.body, BUBBLE_TEXT_SIZE, BUBBLE_TEXT_COLOR))

    placed = PlacedBlock(
        block_index=block_index,
        block=block,
        rect=rect,
        ops=ops,
        lines=list(bubble.lines),
        annotation=annotation,
    )
    state.page.placed.append(placed)
    state.cursor_y = top + bubble.height + BUBBLE_GAP_AFTER
    state.page.cursor_y = state.cursor_y
    return placed


def place_block(
    state: RenderState,
    block: ContentBlock,
    *,
    block_index: int,
    bubble_max_lines: int,
    include_links: bool = True,
) -> list[PlacedBlock]:
    metrics = state.metrics
    if isinstance(block, Heading):
        return place_heading(state, block, block_index=block_index)
    if isinstance(block, Paragraph):
        return place_text(
            state,
            block.text,
            block_index=block_index,
            block=block,
            font=state.fonts.body,
            size=metrics.body_size,
        )
    if isinstance(block, ListItem):
        return place_text(
            state,
            f'• {block.text}',
            block_index=block_index,
            block=block,
            font=state.fonts.body,
            size=metrics.body_size,
        )
    if isinstance(block, ImageBlock):
        return place_image(state, block, block_index=block_index, max_width=metrics.content_width)
    if isinstance(block, AudioEvidence):
        bubble = measure_bubble(
            block,
            metrics=metrics,
            fonts=state.fonts,
            max_lines=bubble_max_lines,
            include_link=include_links,
        )
        return [draw_bubble(state, bubble, block, block_index=block_index)]
    raise RenderingError(f'unsupported content block: {type(block).__name__}')


def layout_blocks(
    blocks: list[ContentBlock],
    *,
    metrics: LayoutMetrics,
    fonts: ReportFonts,
    header: HeaderSpec,
    bubble_max_lines: int = 8,
    include_links: bool = True,
) -> list[Page]:
    state = RenderState(metrics=metrics, fonts=fonts, header=header, logo=decode_image(header.logo))
    if header.logo and state.logo is None:
        logger.warning('Header logo could not be decoded; rendering header without it.')
    new_page(state)
    for index, block in enumerate(blocks):
        place_block(
            state,
            block,
            block_index=index,
            bubble_max_lines=bubble_max_lines,
            include_links=include_links,
        )
    state.page.cursor_y = state.cursor_y
    return state.pages


def verify_layout(pages: list[Page], metrics: LayoutMetrics) -> None:
    """Raise ``RenderingError`` if any placed rectangle leaves the page body."""
    epsilon = 0.01
    for page in pages:
        for item in page.placed:
            if item.rect.bottom > metrics.bottom_limit + epsilon:
                raise RenderingError(
                    f'block {item.block_index} overflows page {page.index + 1}: '
                    f'{item.rect.bottom:.2f} > {metrics.bottom_limit:.2f}'
                )
            if item.rect.y_top < metrics.body_top - epsilon:
                raise RenderingError(f'block {item.block_index} collides with the header on page {page.index + 1}')
