"""
Error taxonomy for capture, transport and gateway failures.

Each error carries a short ``kind`` string so orchestration code can store it
next to the message without keeping the exception object around.
"""

from typing import Optional


class VisionCaptionError(Exception):
    """Base class for all VisionCaption errors."""

    kind = 'error'

    def __init__(self, message: str = None, status: Optional[int] = None):
        super().__init__(message or self.default_message())
        self.status = status

    @property
    def message(self) -> str:
        return str(self)

    def default_message(self) -> str:
        return 'Unexpected error'


class PermissionDenied(VisionCaptionError):
    """Device access was refused by the OS or the user."""

    kind = 'permission_denied'

    def default_message(self) -> str:
        return 'Device access denied. Please allow camera/microphone permissions.'


class DeviceUnavailable(VisionCaptionError):
    """No device found, device busy, or backend library missing."""

    kind = 'device_unavailable'

    def default_message(self) -> str:
        return 'No camera or microphone available'


class RateLimited(VisionCaptionError):
    kind = 'rate_limited'

    def __init__(self, message: str = None, status: Optional[int] = 429):
        super().__init__(message, status)

    def default_message(self) -> str:
        return 'Rate limit exceeded, please slow down'


class PaymentRequired(VisionCaptionError):
    kind = 'payment_required'

    def __init__(self, message: str = None, status: Optional[int] = 402):
        super().__init__(message, status)

    def default_message(self) -> str:
        return 'Payment required'


class UpstreamFailure(VisionCaptionError):
    """Any other non-2xx response, network error or connection loss."""

    kind = 'upstream_failure'

    def default_message(self) -> str:
        return 'Failed to reach the analysis service'


class MalformedResponse(VisionCaptionError):
    kind = 'malformed_response'

    def default_message(self) -> str:
        return 'Unable to parse model output'


def error_for_status(status: int, message: str = None) -> VisionCaptionError:
    """Map an HTTP status code to the matching error class."""
    if status == 429:
        return RateLimited(message)
    if status == 402:
        return PaymentRequired(message)
    return UpstreamFailure(message, status=status)
