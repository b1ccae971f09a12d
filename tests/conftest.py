"""Shared fixtures: an isolated data dir, a seeded entry, generated images and fake blob stores."""

import io
import json
import os
from pathlib import Path

import pytest
from PIL import Image

from journalexport.adapters.blobs import LocalBlobStore, build_blob_store
from journalexport.config import Settings
from journalexport.errors import DegradedResourceError
from journalexport.export.fonts import resolve_fonts
from journalexport.export.layout import HeaderSpec, LayoutMetrics
from journalexport.storage import EntryStore

OWNER_ID = "user-owner"
OTHER_USER_ID = "user-other"
ENTRY_ID = "entry-001"
SECRET_LOCATION = "1428 Elm Street Apartment 5"
SECRET_BEFORE = "anxious and shaking"
SECRET_AFTER = "numb and exhausted"
SECRET_CAPTION = "hallway camera still"
SECRET_TRANSCRIPT_WORD = "Marigold"


def make_png(width: int = 120, height: int = 80, color: str = "red") -> bytes:
    """Solid-colour PNG of the given pixel size."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_truncated_png(width: int = 300, height: int = 300) -> bytes:
    """Noisy PNG cut in half: the header still reads, the pixel data does not."""
    buffer = io.BytesIO()
    Image.frombytes("RGB", (width, height), os.urandom(width * height * 3)).save(buffer, format="PNG")
    data = buffer.getvalue()
    return data[: len(data) // 2]


def diarization_json(segment_count: int) -> str:
    segments = []
    for index in range(segment_count):
        segments.append(
            {
                "start": index * 5.0,
                "end": index * 5.0 + 4.5,
                "speaker": "Alex" if index % 2 == 0 else "Sam",
                "text": f"Line {index + 1} {SECRET_TRANSCRIPT_WORD} said something here.",
            }
        )
    return json.dumps({"segments": segments})


def entry_row(**overrides) -> dict:
    row = {
        "id": ENTRY_ID,
        "user_id": OWNER_ID,
        "title": "Argument in the hallway",
        "description": "He raised his voice and blocked the door for several minutes.",
        "incident_date": "2026-03-14T18:30:00Z",
        "location": SECRET_LOCATION,
        "safety_rating": 2,
        "mood_rating": 3,
        "abuse_types": ["verbal_abuse", "intimidation"],
        "emotional_state_before": SECRET_BEFORE,
        "emotional_state_after": SECRET_AFTER,
        "created_at": "2026-03-14T19:00:00Z",
        "evidence": [
            {
                "id": "ev-photo",
                "file_name": "hallway.png",
                "file_type": "image/png",
                "caption": SECRET_CAPTION,
                "uploaded_at": "2026-03-14T19:05:00Z",
                "storage_bucket": "evidence",
                "storage_path": "user-owner/hallway.png",
            },
            {
                "id": "ev-audio",
                "file_name": "recording.m4a",
                "file_type": "audio/mp4",
                "caption": "voice memo",
                "uploaded_at": "2026-03-14T19:06:00Z",
                "storage_bucket": "evidence",
                "storage_path": "user-owner/recording.m4a",
                "transcription": diarization_json(3),
            },
            {
                "id": "ev-doc",
                "file_name": "police-report.pdf",
                "file_type": "application/pdf",
                "uploaded_at": "2026-03-14T19:07:00Z",
                "storage_bucket": "evidence",
                "storage_path": "user-owner/police-report.pdf",
            },
        ],
    }
    row.update(overrides)
    return row


class RecordingBlobStore:
    """In-memory blob store that records every call."""

    def __init__(self, files: dict[str, bytes] | None = None, *, fail_downloads: bool = False, fail_signing: bool = False):
        self.files = dict(files or {})
        self.fail_downloads = fail_downloads
        self.fail_signing = fail_signing
        self.downloads: list[str] = []
        self.signed: list[str] = []

    def signed_url(self, ref: str, *, ttl_seconds: int) -> str:
        self.signed.append(ref)
        if self.fail_signing:
            raise DegradedResourceError(f"cannot sign {ref}")
        return f"https://storage.example/{ref}?token=abc&ttl={ttl_seconds}"

    def download(self, ref: str) -> bytes:
        self.downloads.append(ref)
        if self.fail_downloads or ref not in self.files:
            raise DegradedResourceError(f"cannot download {ref}")
        return self.files[ref]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        brand_site_url="reclaim.example",
        blob_signing_secret="test-secret",
        public_base_url="http://testserver",
        blob_backend="local",
    )


@pytest.fixture
def store(settings: Settings) -> EntryStore:
    return EntryStore(settings)


@pytest.fixture
def local_blobs(settings: Settings) -> LocalBlobStore:
    blobs = build_blob_store(settings)
    assert isinstance(blobs, LocalBlobStore)
    return blobs


@pytest.fixture
def seeded(store: EntryStore, local_blobs: LocalBlobStore) -> dict:
    row = entry_row()
    store.save_entry(row)
    store.save_profile(OWNER_ID, subscription_tier="recovery")
    local_blobs.put("evidence/user-owner/hallway.png", make_png(400, 200))
    local_blobs.put("evidence/user-owner/recording.m4a", b"fake-audio")
    return row


@pytest.fixture
def fonts(settings: Settings):
    return resolve_fonts(settings)


@pytest.fixture
def metrics(settings: Settings) -> LayoutMetrics:
    return LayoutMetrics.from_settings(settings)


@pytest.fixture
def header() -> HeaderSpec:
    return HeaderSpec(title="Reclaim Journal Export", timestamp="2026-03-15 09:00 UTC")
