"""
Exception hierarchy for the retrieval core.

A missing record is not an error: Store.get() returns None and
remove_index() is a no-op for unknown references.
"""


class CBIRError(Exception):
    """Base class for every error raised by this package."""


class ExtractionError(CBIRError):
    """Feature extraction failed (e.g. non-finite values in a vector)."""


class InvalidImage(ExtractionError):
    """Image bytes could not be decoded, or the buffer is unusable."""


class ConfigurationError(CBIRError, ValueError):
    """
    Settings out of range, or vectors computed under a different
    configuration than the one requested.
    """


class RecordFormatError(ConfigurationError):
    """A stored hash or blob is malformed and needs re-indexing."""


class StoreError(CBIRError):
    """The persistence backend failed. Never retried internally."""
