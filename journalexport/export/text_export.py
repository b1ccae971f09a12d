from __future__ import annotations

from .blocks import AudioEvidence, ContentBlock, Heading, ImageBlock, ListItem, Paragraph


def _evidence_line(name: str, caption: str | None) -> str:
    suffix = f' — {caption}' if caption else ''
    return f'- {name}{suffix}'


def _is_list_like(block: ContentBlock) -> bool:
    return isinstance(block, (ListItem, ImageBlock, AudioEvidence))


def render_markdown(blocks: list[ContentBlock]) -> str:
    """Flat Markdown rendering of the block stream; no pagination applies."""
    lines: list[str] = []
    previous: ContentBlock | None = None

    for block in blocks:
        if previous is not None and _is_list_like(previous) and not _is_list_like(block):
            lines.append('')

        if isinstance(block, Heading):
            marker = '#' if block.level <= 1 else '##'
            lines.append(f'{marker} {block.text}')
            lines.append('')
        elif isinstance(block, Paragraph):
            lines.extend(line.rstrip() for line in block.text.split('\n'))
            lines.append('')
        elif isinstance(block, ListItem):
            lines.append(f'- {block.text}')
        elif isinstance(block, ImageBlock):
            lines.append(_evidence_line(block.name, block.caption))
        elif isinstance(block, AudioEvidence):
            lines.append(_evidence_line(block.name, block.caption))
            if block.transcript_snippet:
                snippet = '\n    '.join(part.strip() for part in block.transcript_snippet.split('\n') if part.strip())
                lines.append(f'  - Transcript: {snippet}')
        previous = block

    while lines and not lines[-1]:
        lines.pop()
    return '\n'.join(lines) + '\n'
