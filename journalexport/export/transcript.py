from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Union


logger = logging.getLogger(__name__)

DEFAULT_MAX_LINES = 12

_SPEAKER_MARKER_PATTERN = re.compile(r'Speaker_\d+\s*\(([^)]+)\)\s*\[([^\]]*)\]:\s*')
_WHITESPACE_PATTERN = re.compile(r'\s+')

_START_KEYS = ('start', 'start_time', 'from', 'time_begin')
_END_KEYS = ('end', 'end_time', 'to', 'time_end')
_TEXT_KEYS = ('text', 'transcript', 'transcription')


@dataclass(frozen=True)
class Segment:
    start: float
    end: float
    speaker: str
    text: str


@dataclass(frozen=True)
class StructuredTranscript:
    segments: list[Segment] = field(default_factory=list)


@dataclass(frozen=True)
class HeuristicTranscript:
    lines: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RawTranscript:
    text: str = ''


ParsedTranscript = Union[StructuredTranscript, HeuristicTranscript, RawTranscript]


def _first_number(row: dict[str, Any], keys: tuple[str, ...], default: float) -> float:
    for key in keys:
        value = row.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return max(0.0, float(value))
        except (TypeError, ValueError):
            continue
    return default


def _first_text(row: dict[str, Any]) -> str:
    for key in _TEXT_KEYS:
        value = row.get(key)
        if isinstance(value, str) and value.strip():
            return _WHITESPACE_PATTERN.sub(' ', value).strip()
    return ''


def _speaker_name(row: dict[str, Any]) -> str:
    speaker = row.get('speaker')
    is_user = bool(row.get('is_user'))
    if isinstance(speaker, dict):
        is_user = is_user or bool(speaker.get('is_user'))
        speaker = speaker.get('name') or speaker.get('label') or speaker.get('id')
    for candidate in (row.get('speaker_name'), row.get('speaker_label'), speaker):
        if candidate is None or isinstance(candidate, bool):
            continue
        token = str(candidate).strip()
        if not token:
            continue
        if isinstance(candidate, (int, float)):
            return f'Speaker {token}'
        return token
    return 'You' if is_user else 'Speaker'


def _segment_rows(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    if not isinstance(payload, dict):
        return []
    candidates: list[Any] = [payload.get('segments'), payload.get('prediction'), payload.get('utterances')]
    result = payload.get('result')
    if isinstance(result, dict):
        candidates.append(result.get('segments'))
        transcription = result.get('transcription')
        if isinstance(transcription, dict):
            candidates.append(transcription.get('utterances'))
    for candidate in candidates:
        if isinstance(candidate, list) and candidate:
            return [row for row in candidate if isinstance(row, dict)]
    return []


def _parse_structured(raw: str) -> StructuredTranscript | None:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return None

    segments: list[Segment] = []
    for row in _segment_rows(payload):
        text = _first_text(row)
        if not text:
            continue
        start = _first_number(row, _START_KEYS, 0.0)
        end = _first_number(row, _END_KEYS, start)
        segments.append(Segment(start=start, end=max(start, end), speaker=_speaker_name(row), text=text))
    if not segments:
        return None
    return StructuredTranscript(segments=segments)


def _parse_heuristic(raw: str) -> HeuristicTranscript | RawTranscript:
    text = raw.replace('\r\n', '\n').replace('\r', '\n').replace('\t', ' ')
    markers = list(_SPEAKER_MARKER_PATTERN.finditer(text))
    if not markers:
        cleaned = _WHITESPACE_PATTERN.sub(' ', text).strip()
        return RawTranscript(text=cleaned or raw)

    lines: list[str] = []
    preamble = _WHITESPACE_PATTERN.sub(' ', text[: markers[0].start()]).strip()
    if preamble:
        lines.append(preamble)
    for index, marker in enumerate(markers):
        stop = markers[index + 1].start() if index + 1 < len(markers) else len(text)
        body = _WHITESPACE_PATTERN.sub(' ', text[marker.end() : stop]).strip()
        name = marker.group(1).strip()
        lines.append(f'{name}: {body}'.rstrip())
    return HeuristicTranscript(lines=lines)


def parse_transcript(raw: str | None) -> ParsedTranscript:
    """Classify a raw transcript as structured diarization, marker text, or plain text."""
    if not isinstance(raw, str) or not raw.strip():
        return RawTranscript(text=raw if isinstance(raw, str) else '')
    try:
        structured = _parse_structured(raw)
        if structured is not None:
            return structured
        return _parse_heuristic(raw)
    except Exception as exc:
        logger.warning('Transcript parsing failed; using raw text: %s', exc)
        return RawTranscript(text=raw)


def format_timestamp(seconds: float) -> str:
    total = max(0, int(seconds))
    return f'{total // 60}:{total % 60:02d}'


def format_segment(segment: Segment) -> str:
    return f'{segment.speaker} [{format_timestamp(segment.start)}–{format_timestamp(segment.end)}]: {segment.text}'


def format_transcript(parsed: ParsedTranscript, *, max_lines: int = DEFAULT_MAX_LINES) -> list[str]:
    limit = max(1, int(max_lines))
    if isinstance(parsed, StructuredTranscript):
        return [format_segment(segment) for segment in parsed.segments[:limit]]
    if isinstance(parsed, HeuristicTranscript):
        return list(parsed.lines[:limit])
    return [parsed.text] if parsed.text else []


def transcript_lines(raw: str | None, *, max_lines: int = DEFAULT_MAX_LINES) -> list[str]:
    return format_transcript(parse_transcript(raw), max_lines=max_lines)


def transcript_snippet(raw: str | None, *, max_lines: int = DEFAULT_MAX_LINES, max_chars: int = 600) -> str:
    """Formatted transcript joined by newlines and cut to ``max_chars`` with an ellipsis."""
    formatted = '\n'.join(transcript_lines(raw, max_lines=max_lines))
    limit = max(1, int(max_chars))
    if len(formatted) <= limit:
        return formatted
    return formatted[:limit] + '…'
