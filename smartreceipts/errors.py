"""Exceptions and the error codes surfaced in application state."""

from __future__ import annotations

USER_NOT_FOUND = "USER_NOT_FOUND"
USER_ALREADY_EXISTS = "USER_ALREADY_EXISTS"
INVALID_PROMO = "INVALID_PROMO"
CONNECTION_ERROR = "CONNECTION_ERROR"
PROCESSING_FAILED = "PROCESSING_FAILED"
CHAT_FAILED = "CHAT_FAILED"


class SmartReceiptsError(Exception):
    """Base class for errors raised by this package."""


class RemoteStoreError(SmartReceiptsError):
    """The remote document store could not be reached or rejected a call."""


class ExtractionError(SmartReceiptsError):
    """A receipt image could not be read or processed."""


class CoachError(SmartReceiptsError):
    """The conversational coach failed to produce a reply."""
