from __future__ import annotations


class ExportError(Exception):
    """Base class for failures surfaced by the export pipeline."""

    status_code = 500
    public_message = 'Unexpected error'


class NotFoundError(ExportError):
    """Entry does not exist or does not belong to the caller."""

    status_code = 404
    public_message = 'Entry not found'


class ForbiddenError(ExportError):
    """The caller's tier does not permit the requested format."""

    status_code = 403
    public_message = 'PDF export requires Recovery tier'


class DegradedResourceError(ExportError):
    """One evidence file could not be fetched or decoded.

    Raised by the blob adapters and caught per item; it never aborts an export.
    """


class RenderingError(ExportError):
    """Layout or encoding failed; no partial document is returned."""

    public_message = 'Unexpected error'
