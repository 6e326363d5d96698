"""
Errors raised while styling an image, on either side of the wire.
"""
from typing import Optional


class StyleTransferError(Exception):
    """Base error. ``status_code`` is the remote HTTP status when one was observed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidInputError(StyleTransferError):
    pass


class DecodeError(StyleTransferError):
    pass


class ProtocolError(StyleTransferError):
    """The remote API answered with a shape we cannot use."""


class RemoteJobFailed(StyleTransferError):
    pass


class RemoteJobCanceled(StyleTransferError):
    pass


class StyleTransferTimeout(StyleTransferError):
    """Polling budget exhausted. The job may still be running remotely."""


class NetworkError(StyleTransferError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message, status_code)
        self.body = body
