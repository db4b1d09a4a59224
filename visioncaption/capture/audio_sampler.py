"""
Fixed-duration clip recording from a microphone handle.

Recording runs as one coroutine: read chunks until the duration elapses or
stop() is called, then concatenate and encode as WAV.
"""

import asyncio
import io
import time
import wave
from typing import List, Optional

from visioncaption.core.models import DeviceHandle, SampledBuffer

DEFAULT_CLIP_MS = 3000
SAMPLE_WIDTH_BYTES = 2  # 16-bit PCM


def encode_wav(pcm: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap raw 16-bit PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(SAMPLE_WIDTH_BYTES)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


class AudioSampler:
    """Records clips from a microphone handle."""

    def __init__(self, config: dict = None, verbose: bool = False):
        self.config = config or {}
        self.clip_ms = max(250, int(self.config.get('clip_ms', DEFAULT_CLIP_MS)))
        self.verbose = verbose
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_recording(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def capture_clip(self, handle: Optional[DeviceHandle], duration_ms: int = None) -> Optional[SampledBuffer]:
        """
        Record for duration_ms (or until stop()) and return a WAV clip.

        Returns None if the device produced no data.
        """
        if handle is None or not handle.live or handle.stream is None:
            return None

        duration_ms = self.clip_ms if duration_ms is None else max(0, int(duration_ms))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration_ms / 1000.0
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        chunks: List[bytes] = []
        started_at = time.time()

        try:
            while loop.time() < deadline and not stop_event.is_set():
                chunk = await asyncio.to_thread(self._read_chunk, handle)
                if chunk:
                    chunks.append(chunk)
                elif chunk is None:
                    break
        finally:
            stop_event.set()
            if self._stop_event is stop_event:
                self._stop_event = None

        if not chunks:
            if self.verbose:
                print("[Audio] Clip produced no data")
            return None

        pcm = b''.join(chunks)
        if self.verbose:
            print(f"[Audio] Clip recorded: {len(pcm)} bytes ({len(chunks)} chunks)")
        return SampledBuffer(
            payload=encode_wav(pcm, handle.sample_rate, handle.channels),
            mime_type='audio/wav',
            captured_at=started_at,
        )

    async def sample(self, handle: DeviceHandle) -> Optional[SampledBuffer]:
        return await self.capture_clip(handle)

    def stop(self):
        """End an in-progress recording early; the partial clip is kept."""
        if self._stop_event is not None:
            self._stop_event.set()

    def _read_chunk(self, handle: DeviceHandle) -> Optional[bytes]:
        """Blocking read of one chunk. None means the stream is gone."""
        stream = handle.stream
        if stream is None or not handle.live:
            return None
        try:
            return stream.read(handle.chunk_size, exception_on_overflow=False)
        except OSError as e:
            if self.verbose:
                print(f"[Audio] Chunk read error: {e}")
            return None
