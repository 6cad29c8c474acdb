"""
Exception hierarchy for the stamping pipeline.

Every failure the pipeline can surface derives from :class:`StampError` so the
API layer can translate them into HTTP responses in one place.
"""

from __future__ import annotations


class StampError(Exception):
    """Base class for all pipeline failures."""


class ValidationError(StampError):
    """The upload was rejected before any processing started."""


class MalformedDocumentError(StampError):
    """The uploaded bytes could not be parsed as a PDF document."""


class EncodingError(StampError):
    """The barcode symbology rejected an identifier."""


class SequenceOverflowError(StampError):
    """The identifier counter would exceed its configured digit width."""


class SerializationError(StampError):
    """The output document could not be serialized or written."""


class PersistenceError(StampError):
    """A bookkeeping record could not be saved or read."""
