from __future__ import annotations


class StorageError(RuntimeError):
    """
    A write unit could not be committed. The unit was rolled back in full,
    so the caller may retry it as-is.
    """

    retryable = True


class InvalidQueryRange(ValueError):
    """Malformed date, window length or paging argument passed to a read path."""
