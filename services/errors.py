"""Exception types raised by the relays and the aggregation job."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for failures of an external collaborator."""


class PublishError(PipelineError):
    """Publishing to the topic failed."""


class QueryError(PipelineError):
    """The analytical store could not be queried or returned a malformed row."""


class SerializationError(PipelineError):
    """A row could not be encoded as JSON."""


class UploadError(PipelineError):
    """Writing or finalising the exported object failed."""


class WatermarkStoreError(PipelineError):
    """The watermark record could not be read or written."""


class WatermarkConflictError(WatermarkStoreError):
    """The watermark changed between the read and the write of one run."""


class InvalidReadingError(ValueError):
    """Client supplied a reading that cannot be accepted."""
