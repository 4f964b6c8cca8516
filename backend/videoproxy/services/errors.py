"""Structured errors raised by the generation pipeline.

Each error carries the HTTP status the API boundary answers with, and a
retriable flag consulted by the completion poller.
"""

from __future__ import annotations


class GenerationError(Exception):
    """Base error with status code and retriable flag."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None, retriable: bool = False):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.retriable = retriable


class InvalidRequestError(GenerationError):
    """Local validation failure. Never retried."""

    status_code = 400


class ReferenceNotFoundError(InvalidRequestError):
    """A reference pointer names a file that is not in the references store."""

    status_code = 404


class UpstreamError(GenerationError):
    """A provider answered with an error or reported a failed job."""

    status_code = 502


class PollTimeoutError(GenerationError):
    """A job did not reach a terminal state before the polling deadline."""

    status_code = 504


class AssetWriteError(GenerationError):
    """Writing a downloaded asset to disk failed."""

    status_code = 500
