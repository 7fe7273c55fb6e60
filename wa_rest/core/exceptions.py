"""Error taxonomy for the gateway"""

from typing import Any


class AppException(Exception):
    """Base exception for errors reported to HTTP clients."""

    code = "AppError"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotReadyError(AppException):
    code = "NotReady"

    def __init__(self, message: str = "WhatsApp client is not ready. Please scan QR code first."):
        super().__init__(message=message, status_code=400)


class InvalidArgumentError(AppException):
    code = "InvalidArgument"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=400, details=details)


class AlreadyConnectedError(AppException):
    code = "AlreadyConnected"

    def __init__(self, message: str = "WhatsApp is already connected. No QR code needed."):
        super().__init__(message=message, status_code=409)


class DeliveryFailedError(AppException):
    """The send primitive rejected the message. Never retried."""

    code = "DeliveryFailed"

    def __init__(self, message: str):
        super().__init__(message=message, status_code=500)


class UpstreamError(AppException):
    code = "UpstreamError"

    def __init__(self, message: str):
        super().__init__(message=message, status_code=500)


class TransientIOError(AppException):
    """Session construction failed; a retry has already been scheduled."""

    code = "TransientIO"

    def __init__(self, message: str):
        super().__init__(message=message, status_code=500)
