"""Tests for transcript classification and formatting."""

from __future__ import annotations

import json

import pytest

from journalexport.export.transcript import (
    HeuristicTranscript,
    RawTranscript,
    StructuredTranscript,
    format_segment,
    format_timestamp,
    format_transcript,
    parse_transcript,
    transcript_lines,
    transcript_snippet,
)

from tests.conftest import diarization_json


class TestParseStructured:
    def test_segments_payload(self) -> None:
        parsed = parse_transcript(diarization_json(3))

        assert isinstance(parsed, StructuredTranscript)
        assert [segment.speaker for segment in parsed.segments] == ["Alex", "Sam", "Alex"]
        assert parsed.segments[1].start == 5.0
        assert parsed.segments[1].end == 9.5

    def test_bare_list_payload(self) -> None:
        raw = json.dumps([{"start": 0, "end": 2, "speaker": "A", "text": "hello"}])

        parsed = parse_transcript(raw)

        assert isinstance(parsed, StructuredTranscript)
        assert parsed.segments[0].text == "hello"

    def test_nested_result_utterances(self) -> None:
        raw = json.dumps(
            {
                "result": {
                    "transcription": {
                        "utterances": [
                            {"start": 1.2, "end": 3.4, "speaker": 0, "text": "first"},
                            {"start": 3.4, "end": 6.0, "speaker": 1, "text": "second"},
                        ]
                    }
                }
            }
        )

        parsed = parse_transcript(raw)

        assert isinstance(parsed, StructuredTranscript)
        assert [segment.speaker for segment in parsed.segments] == ["Speaker 0", "Speaker 1"]

    def test_speaker_fallbacks(self) -> None:
        raw = json.dumps(
            {
                "segments": [
                    {"start": 0, "end": 1, "text": "mine", "is_user": True},
                    {"start": 1, "end": 2, "text": "unknown"},
                    {"start": 2, "end": 3, "text": "named", "speaker": {"name": "Jordan"}},
                    {"start": 3, "end": 4, "text": "labelled", "speaker_label": "SPK_2"},
                ]
            }
        )

        parsed = parse_transcript(raw)

        assert isinstance(parsed, StructuredTranscript)
        assert [segment.speaker for segment in parsed.segments] == ["You", "Speaker", "Jordan", "SPK_2"]

    def test_segments_without_text_are_skipped(self) -> None:
        raw = json.dumps({"segments": [{"start": 0, "end": 1, "text": "  "}, {"start": 1, "end": 2, "text": "kept"}]})

        parsed = parse_transcript(raw)

        assert isinstance(parsed, StructuredTranscript)
        assert len(parsed.segments) == 1

    def test_json_without_segments_is_raw(self) -> None:
        parsed = parse_transcript('{"status": "done"}')

        assert isinstance(parsed, RawTranscript)
        assert parsed.text == '{"status": "done"}'


class TestParseHeuristic:
    def test_speaker_markers(self) -> None:
        raw = (
            "Recorded in the kitchen. "
            "Speaker_0 (Alex) [0:00-0:04]: Where were you? "
            "Speaker_1 (Sam)  [0:04-0:09]:   At work,\n  like I said."
        )

        parsed = parse_transcript(raw)

        assert isinstance(parsed, HeuristicTranscript)
        assert parsed.lines == [
            "Recorded in the kitchen.",
            "Alex: Where were you?",
            "Sam: At work, like I said.",
        ]


class TestParseRaw:
    def test_plain_text_collapses_whitespace(self) -> None:
        parsed = parse_transcript("just   some\n\ttext")

        assert parsed == RawTranscript(text="just some text")

    @pytest.mark.parametrize("raw", [None, "", "   ", "{", "[]", "[1, 2, 3]", "null", '{"segments": "nope"}'])
    def test_never_raises(self, raw) -> None:
        parsed = parse_transcript(raw)

        assert isinstance(parsed, (StructuredTranscript, HeuristicTranscript, RawTranscript))


class TestFormatting:
    def test_timestamp(self) -> None:
        assert format_timestamp(0) == "0:00"
        assert format_timestamp(65.9) == "1:05"
        assert format_timestamp(-3) == "0:00"
        assert format_timestamp(3600) == "60:00"

    def test_segment_line(self) -> None:
        parsed = parse_transcript(diarization_json(1))

        assert isinstance(parsed, StructuredTranscript)
        assert format_segment(parsed.segments[0]) == "Alex [0:00–0:04]: Line 1 Marigold said something here."

    def test_structured_capped_at_twelve_lines(self) -> None:
        lines = transcript_lines(diarization_json(20))

        assert len(lines) == 12
        assert lines[0].startswith("Alex [0:00–0:04]: Line 1 ")
        assert lines[-1].startswith("Sam [0:55–0:59]: Line 12 ")

    def test_custom_cap(self) -> None:
        assert len(format_transcript(parse_transcript(diarization_json(20)), max_lines=5)) == 5

    def test_raw_is_single_line(self) -> None:
        assert transcript_lines("one two") == ["one two"]

    def test_empty_raw_has_no_lines(self) -> None:
        assert transcript_lines(None) == []


class TestSnippet:
    def test_short_snippet_untouched(self) -> None:
        snippet = transcript_snippet(diarization_json(2))

        assert snippet.count("\n") == 1
        assert not snippet.endswith("…")

    def test_long_snippet_truncated_with_ellipsis(self) -> None:
        snippet = transcript_snippet("word " * 500)

        assert snippet.endswith("…")
        assert len(snippet) == 601

    def test_custom_char_limit(self) -> None:
        snippet = transcript_snippet("abcdefghij", max_chars=4)

        assert snippet == "abcd…"
