"""
Core components: error taxonomy, value types, result store and the polling
loop that ties capture to transport.
"""

from .errors import (
    VisionCaptionError,
    PermissionDenied,
    DeviceUnavailable,
    RateLimited,
    PaymentRequired,
    UpstreamFailure,
    MalformedResponse,
    error_for_status,
)
from .models import (
    DeviceKind,
    DeviceHandle,
    SampledBuffer,
    DetectedObject,
    Signal,
    AnalysisResult,
    TranscriptionResult,
    CaptionResult,
)
from .result_store import ResultStore
from .polling_loop import PollingLoop, LoopState, start_both, stop_all

__all__ = [
    'VisionCaptionError',
    'PermissionDenied',
    'DeviceUnavailable',
    'RateLimited',
    'PaymentRequired',
    'UpstreamFailure',
    'MalformedResponse',
    'error_for_status',
    'DeviceKind',
    'DeviceHandle',
    'SampledBuffer',
    'DetectedObject',
    'Signal',
    'AnalysisResult',
    'TranscriptionResult',
    'CaptionResult',
    'ResultStore',
    'PollingLoop',
    'LoopState',
    'start_both',
    'stop_all',
]
