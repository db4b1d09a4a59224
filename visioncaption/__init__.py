"""
VisionCaption - live camera/microphone capture analyzed by a multimodal AI gateway.

The visioncaption package provides:
- Device acquisition and sampling (MediaAcquisition, FrameSampler, AudioSampler)
- Transports to the analysis endpoints (HttpTransport, DuplexTransport)
- The periodic orchestrator (PollingLoop) and its ResultStore
- The server-side gateway client used by apps/web (GatewayClient)

Example usage:
    import asyncio
    from visioncaption import (
        PollingLoop, DeviceKind, MediaAcquisition, FrameSampler, HttpTransport,
    )

    async def run():
        loop = PollingLoop(
            'Vision', DeviceKind.CAMERA, MediaAcquisition(), FrameSampler(),
            HttpTransport('http://localhost:3000', kind='image'),
            config={'interval_ms': 2000},
        )
        async with loop:
            await asyncio.sleep(10)
        print(loop.store.result)

    asyncio.run(run())
"""

from .core import (
    VisionCaptionError,
    PermissionDenied,
    DeviceUnavailable,
    RateLimited,
    PaymentRequired,
    UpstreamFailure,
    MalformedResponse,
    DeviceKind,
    DeviceHandle,
    SampledBuffer,
    AnalysisResult,
    TranscriptionResult,
    CaptionResult,
    ResultStore,
    PollingLoop,
    LoopState,
    start_both,
    stop_all,
)
from .capture import MediaAcquisition, FrameSampler, AudioSampler, extract_video_frame
from .processing import HttpTransport, DuplexTransport, GatewayClient

__version__ = '0.1.0'

__all__ = [
    # Orchestration
    'PollingLoop',
    'LoopState',
    'start_both',
    'stop_all',
    'ResultStore',

    # Errors
    'VisionCaptionError',
    'PermissionDenied',
    'DeviceUnavailable',
    'RateLimited',
    'PaymentRequired',
    'UpstreamFailure',
    'MalformedResponse',

    # Data
    'DeviceKind',
    'DeviceHandle',
    'SampledBuffer',
    'AnalysisResult',
    'TranscriptionResult',
    'CaptionResult',

    # Capture
    'MediaAcquisition',
    'FrameSampler',
    'AudioSampler',
    'extract_video_frame',

    # Transports
    'HttpTransport',
    'DuplexTransport',
    'GatewayClient',
]
