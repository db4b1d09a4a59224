"""
Still-frame sampling from a live camera or a video file.
"""

import asyncio
import time
from pathlib import Path
from typing import Optional

from visioncaption.core.models import DeviceHandle, SampledBuffer

DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480
DEFAULT_JPEG_QUALITY = 0.6
VIDEO_SEEK_SECONDS = 2.0


def encode_jpeg(frame, quality: float = DEFAULT_JPEG_QUALITY) -> Optional[bytes]:
    """Encode a BGR frame as JPEG. Quality is 0-1, like canvas.toDataURL."""
    import cv2

    jpeg_quality = int(round(max(0.0, min(1.0, float(quality))) * 100))
    ok, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality])
    if not ok:
        return None
    return buffer.tobytes()


class FrameSampler:
    """Turns the current camera frame into a JPEG SampledBuffer."""

    def __init__(self, config: dict = None, verbose: bool = False):
        self.config = config or {}
        self.jpeg_quality = float(self.config.get('jpeg_quality', DEFAULT_JPEG_QUALITY))
        self.verbose = verbose

    def capture(self, handle: Optional[DeviceHandle]) -> Optional[SampledBuffer]:
        """
        Grab and encode one frame.

        Returns None when the handle is gone or no frame is available; the
        caller treats that as "skip this tick".
        """
        if handle is None or not handle.live or handle.stream is None:
            return None

        import cv2

        try:
            ok, frame = handle.stream.read()
        except Exception as e:
            if self.verbose:
                print(f"[Vision] Frame read error: {e}")
            return None
        if not ok or frame is None:
            return None

        width = handle.width or DEFAULT_WIDTH
        height = handle.height or DEFAULT_HEIGHT
        frame_height, frame_width = frame.shape[:2]
        if (frame_width, frame_height) != (width, height):
            frame = cv2.resize(frame, (width, height))

        payload = encode_jpeg(frame, self.jpeg_quality)
        if payload is None:
            return None
        return SampledBuffer(payload=payload, mime_type='image/jpeg', captured_at=time.time())

    async def sample(self, handle: DeviceHandle) -> Optional[SampledBuffer]:
        return await asyncio.to_thread(self.capture, handle)

    def stop(self):
        """Frames are instantaneous, nothing to interrupt."""


def extract_video_frame(video_path, quality: float = 0.92, capture_factory=None) -> SampledBuffer:
    """
    Pull a representative still out of a video file.

    Steps run in order: load metadata, seek to min(2s, duration/2), draw the
    frame at native size, encode as JPEG.

    Raises:
        ValueError: if the file cannot be opened or decoded
    """
    import cv2

    factory = capture_factory or cv2.VideoCapture
    capture = factory(str(Path(video_path)))
    try:
        if not capture.isOpened():
            raise ValueError('Error loading video')

        fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        duration = (frame_count / fps) if fps > 0 else 0.0

        seek_seconds = min(VIDEO_SEEK_SECONDS, duration / 2) if duration > 0 else 0.0
        capture.set(cv2.CAP_PROP_POS_MSEC, seek_seconds * 1000.0)

        ok, frame = capture.read()
        if not ok or frame is None:
            raise ValueError('Could not decode a frame from video')

        payload = encode_jpeg(frame, quality)
        if payload is None:
            raise ValueError('Could not encode video frame')
        return SampledBuffer(payload=payload, mime_type='image/jpeg')
    finally:
        capture.release()
