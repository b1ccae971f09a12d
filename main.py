from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from journalexport.adapters.blobs import LocalBlobStore, build_blob_store
from journalexport.config import get_settings
from journalexport.errors import ExportError
from journalexport.export.service import export_entry
from journalexport.server import serve
from journalexport.storage import EntryStore, evidence_item_from_row, read_json
from journalexport.types import ExportFormat, ExportRequest


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


def cmd_export(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        export_request = ExportRequest(
            entry_id=args.entry_id,
            format=ExportFormat.parse(args.format),
            redact=bool(args.redact),
            include_links=not bool(args.no_links),
        )
    except ValueError as exc:
        _print_json({'status': 'error', 'message': str(exc)})
        return 2

    try:
        result = export_entry(export_request, caller_id=args.user_id, settings=settings)
    except ExportError as exc:
        _print_json({'status': 'error', 'code': exc.status_code, 'message': exc.public_message, 'detail': str(exc)})
        return 2

    output_path = Path(args.output) if args.output else Path(result.filename)
    output_path = output_path.expanduser().resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.content)
    _print_json(
        {
            'status': 'ok',
            'entry_id': export_request.entry_id,
            'format': export_request.format.value,
            'media_type': result.media_type,
            'bytes': len(result.content),
            'pages': result.page_count,
            'output_path': str(output_path),
        }
    )
    return 0


def cmd_import_entry(args: argparse.Namespace) -> int:
    settings = get_settings()
    source = Path(args.file).expanduser().resolve()
    if not source.exists() or not source.is_file():
        _print_json({'status': 'error', 'message': f'Entry file not found: {source}'})
        return 2

    row = read_json(source)
    if not str(row.get('id') or '').strip():
        _print_json({'status': 'error', 'message': 'Entry file must carry an "id"'})
        return 2

    store = EntryStore(settings)
    blobs = build_blob_store(settings)
    copied = 0
    for evidence_row in row.get('evidence') or []:
        local_file = evidence_row.pop('local_file', None) if isinstance(evidence_row, dict) else None
        if not local_file:
            continue
        if not isinstance(blobs, LocalBlobStore):
            _print_json({'status': 'error', 'message': 'local_file evidence requires the local blob backend'})
            return 2
        blob_path = (source.parent / local_file).resolve()
        if not blob_path.exists():
            _print_json({'status': 'error', 'message': f'Evidence file not found: {blob_path}'})
            return 2
        blobs.put(evidence_item_from_row(evidence_row).bytes_ref, blob_path.read_bytes())
        copied += 1

    profile = row.pop('profile', None)
    entry_path = store.save_entry(row)
    if isinstance(profile, dict) and row.get('user_id'):
        store.save_profile(
            str(row['user_id']),
            subscription_tier=str(profile.get('subscription_tier') or settings.default_tier),
        )

    _print_json({'status': 'ok', 'entry_id': row['id'], 'entry_path': str(entry_path), 'blobs_copied': copied})
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    serve(host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Journal entry export engine CLI')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    export = sub.add_parser('export', help='Export one journal entry')
    export.add_argument('--entry-id', required=True, help='Journal entry ID')
    export.add_argument('--user-id', required=True, help='Caller (entry owner) ID')
    export.add_argument('--format', choices=['text', 'md', 'pdf', 'paged'], default='text')
    export.add_argument('--redact', action='store_true', help='Withhold sensitive fields')
    export.add_argument('--no-links', action='store_true', help='Omit clickable listen links')
    export.add_argument('--output', required=False, help='Output path (default: journal-<id>.<ext>)')
    export.set_defaults(func=cmd_export)

    import_entry = sub.add_parser('import-entry', help='Load an entry JSON file into the local store')
    import_entry.add_argument('--file', required=True, help='Path to entry JSON')
    import_entry.set_defaults(func=cmd_import_entry)

    serve_cmd = sub.add_parser('serve', help='Run the HTTP export server')
    serve_cmd.add_argument('--host', required=False)
    serve_cmd.add_argument('--port', type=int, required=False)
    serve_cmd.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(bool(args.verbose))
    return int(args.func(args))


if __name__ == '__main__':
    raise SystemExit(main())
