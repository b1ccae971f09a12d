from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import Settings, get_settings
from .errors import NotFoundError
from .types import EvidenceItem, JournalEntryView


logger = logging.getLogger(__name__)

_SAFE_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$')


def safe_id(value: str | None, *, kind: str = 'id') -> str:
    token = str(value or '').strip()
    if not token:
        raise ValueError(f'{kind} is required')
    if not _SAFE_ID_PATTERN.match(token):
        raise ValueError(f'invalid {kind}: {value}')
    return token


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2, default=str), encoding='utf-8')
    tmp.replace(path)


def read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding='utf-8'))


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        token = str(value).strip()
        if token.endswith('Z'):
            token = token[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(token)
        except ValueError:
            logger.warning('Ignoring unparseable timestamp %r', value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def entry_view_from_row(row: dict[str, Any]) -> JournalEntryView:
    """Project a stored journal row onto the read-only view the exporter consumes."""
    payload: dict[str, Any] = {
        'id': str(row.get('id') or ''),
        'owner_id': str(row.get('user_id') or row.get('owner_id') or ''),
        'title': str(row.get('title') or ''),
        'description': row.get('description') or None,
        'occurred_at': _parse_datetime(row.get('incident_date') or row.get('occurred_at')),
        'location': row.get('location') or None,
        'safety_rating': row.get('safety_rating') or None,
        'mood_rating': row.get('mood_rating'),
        'categories': row.get('abuse_types') or row.get('categories') or [],
        'emotional_state_before': row.get('emotional_state_before') or None,
        'emotional_state_after': row.get('emotional_state_after') or None,
    }
    created_at = _parse_datetime(row.get('created_at'))
    if created_at is not None:
        payload['created_at'] = created_at
    return JournalEntryView.model_validate(payload)


def evidence_item_from_row(row: dict[str, Any]) -> EvidenceItem:
    bucket = str(row.get('storage_bucket') or '').strip('/')
    path = str(row.get('storage_path') or '').strip('/')
    bytes_ref = row.get('bytes_ref') or (f'{bucket}/{path}' if bucket else path)
    payload: dict[str, Any] = {
        'id': str(row.get('id') or bytes_ref),
        'file_name': str(row.get('file_name') or ''),
        'mime_type': str(row.get('file_type') or row.get('mime_type') or 'application/octet-stream'),
        'caption': row.get('caption') or None,
        'transcript': row.get('transcription') or row.get('transcript') or None,
        'bytes_ref': bytes_ref,
    }
    uploaded_at = _parse_datetime(row.get('uploaded_at'))
    if uploaded_at is not None:
        payload['uploaded_at'] = uploaded_at
    return EvidenceItem.model_validate(payload)


class EntryStore:
    """JSON-file store holding journal entries, their evidence rows and profiles."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def entries_root(self) -> Path:
        root = self.settings.data_dir / 'entries'
        root.mkdir(parents=True, exist_ok=True)
        return root

    @property
    def profiles_root(self) -> Path:
        root = self.settings.data_dir / 'profiles'
        root.mkdir(parents=True, exist_ok=True)
        return root

    def entry_path(self, entry_id: str) -> Path:
        return self.entries_root / f'{safe_id(entry_id, kind="entry_id")}.json'

    def profile_path(self, user_id: str) -> Path:
        return self.profiles_root / f'{safe_id(user_id, kind="user_id")}.json'

    def _load_row(self, entry_id: str) -> dict[str, Any] | None:
        try:
            path = self.entry_path(entry_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        return read_json(path)

    def get_entry(self, entry_id: str, owner_id: str) -> JournalEntryView:
        row = self._load_row(entry_id)
        if row is None:
            raise NotFoundError(f'entry not found: {entry_id}')
        entry = entry_view_from_row({**row, 'id': row.get('id') or entry_id})
        if entry.owner_id != str(owner_id):
            # Foreign entries are indistinguishable from missing ones.
            raise NotFoundError(f'entry {entry_id} is not owned by caller')
        return entry

    def list_evidence(self, entry_id: str) -> list[EvidenceItem]:
        row = self._load_row(entry_id)
        if row is None:
            return []
        items = [evidence_item_from_row(item) for item in row.get('evidence') or [] if isinstance(item, dict)]
        return sorted(items, key=lambda item: item.uploaded_at)

    def get_tier(self, user_id: str) -> str:
        try:
            path = self.profile_path(user_id)
        except ValueError:
            return self.settings.default_tier
        if not path.exists():
            return self.settings.default_tier
        profile = read_json(path)
        return str(profile.get('subscription_tier') or self.settings.default_tier)

    def save_entry(self, row: dict[str, Any]) -> Path:
        path = self.entry_path(str(row.get('id') or ''))
        write_json_atomic(path, row)
        return path

    def save_profile(self, user_id: str, *, subscription_tier: str) -> Path:
        path = self.profile_path(user_id)
        write_json_atomic(path, {'id': user_id, 'subscription_tier': subscription_tier})
        return path
