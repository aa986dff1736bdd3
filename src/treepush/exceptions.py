"""Exceptions for treepush."""

from __future__ import annotations


class TreePushError(Exception):
    """Base class for every error raised by treepush."""


class TransportError(TreePushError):
    """Raised when the object service cannot be reached (network, timeout).

    Never retried; the upload run stops at the first one.
    """


class ExternalServiceError(TreePushError):
    """Raised when the object service rejects a call.

    *status* carries the HTTP status code (or the equivalent code a local
    service reports, e.g. 404 for a missing object, 422 for a rejected
    non-fast-forward update) and *message* the response body.
    """

    def __init__(self, status: int | None, message: str):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}" if status is not None else message)


class InconsistentIndexError(TreePushError):
    """Raised when the remote tree index lacks an entry it must have.

    This is a logic fault, not a remote failure: the index was never loaded,
    or a directory has indexed descendants but no entry of its own.
    """
