"""
Journal Export Server - Flask front end for the export engine
=============================================================
Endpoints:
  - GET /api/journal/<entry_id>/export?format=text|md|pdf&redact=&includeLinks=
  - GET /blobs/<path>?expires=&signature=   (local blob backend only)
  - GET /health

Caller identity is resolved upstream; the authenticated user id arrives in the
``X-User-Id`` header.
"""

from __future__ import annotations

import logging
import mimetypes
import traceback

from flask import Flask, Response, jsonify, request

from journalexport.adapters.blobs import BlobStore, LocalBlobStore, build_blob_store
from journalexport.config import Settings, get_settings
from journalexport.errors import DegradedResourceError, ExportError
from journalexport.export.service import run_export
from journalexport.storage import EntryStore
from journalexport.types import ExportFormat, ExportRequest


logger = logging.getLogger(__name__)

USER_HEADER = 'X-User-Id'


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    token = value.strip().lower()
    if token in {'1', 'true', 'yes', 'on'}:
        return True
    if token in {'0', 'false', 'no', 'off'}:
        return False
    return default


def _build_request(entry_id: str) -> ExportRequest:
    return ExportRequest(
        entry_id=entry_id,
        format=ExportFormat.parse(request.args.get('format')),
        redact=_parse_bool(request.args.get('redact'), False),
        include_links=_parse_bool(request.args.get('includeLinks'), True),
    )


def create_app(
    settings: Settings | None = None,
    *,
    store: EntryStore | None = None,
    blobs: BlobStore | None = None,
) -> Flask:
    settings = settings or get_settings()
    store = store or EntryStore(settings)
    blobs = blobs or build_blob_store(settings)

    app = Flask(__name__)

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({'status': 'healthy', 'service': settings.app_name, 'blob_backend': settings.blob_backend})

    @app.route('/api/journal/<entry_id>/export', methods=['GET'])
    def export_journal_entry(entry_id: str):
        caller_id = str(request.headers.get(USER_HEADER) or '').strip()
        if not caller_id:
            return jsonify({'error': 'Unauthorized'}), 401

        try:
            export_request = _build_request(entry_id)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

        try:
            result = run_export(
                export_request,
                caller_id=caller_id,
                store=store,
                blobs=blobs,
                settings=settings,
            )
        except ExportError as e:
            if e.status_code >= 500:
                logger.error('Export failed for entry %s: %s', entry_id, e)
            else:
                logger.info('Export refused for entry %s: %s', entry_id, e)
            return jsonify({'error': e.public_message}), e.status_code
        except Exception as e:
            logger.error('Unexpected error in export endpoint: %s', e)
            logger.error(traceback.format_exc())
            return jsonify({'error': 'Unexpected error'}), 500

        response = Response(result.content, status=200, content_type=result.media_type)
        response.headers['Content-Disposition'] = result.content_disposition
        if export_request.format == ExportFormat.paged:
            response.headers['Content-Length'] = str(len(result.content))
        return response

    @app.route('/blobs/<path:ref>', methods=['GET'])
    def serve_blob(ref: str):
        if not isinstance(blobs, LocalBlobStore):
            return jsonify({'error': 'Not found'}), 404
        if not blobs.verify(ref, expires=request.args.get('expires'), signature=request.args.get('signature')):
            return jsonify({'error': 'Invalid or expired signature'}), 403
        try:
            data = blobs.download(ref)
        except DegradedResourceError:
            return jsonify({'error': 'Not found'}), 404
        content_type = mimetypes.guess_type(ref)[0] or 'application/octet-stream'
        return Response(data, status=200, content_type=content_type)

    return app


def serve(host: str | None = None, port: int | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    settings = get_settings()
    app = create_app(settings)
    bind_host = host or settings.server_host
    bind_port = int(port or settings.server_port)
    logger.info('Starting journal export server on http://%s:%s', bind_host, bind_port)
    app.run(host=bind_host, port=bind_port, debug=False, threaded=True)
