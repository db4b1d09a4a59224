"""
Tests for device acquisition, frame sampling and audio clip recording.
"""
import asyncio
import io
import wave

import cv2
import numpy as np
import pytest

from visioncaption.capture.audio_sampler import AudioSampler, encode_wav
from visioncaption.capture.frame_sampler import FrameSampler, encode_jpeg, extract_video_frame
from visioncaption.capture.media import PYAUDIO_AVAILABLE, MediaAcquisition
from visioncaption.core.errors import DeviceUnavailable, PermissionDenied
from visioncaption.core.models import DeviceHandle, DeviceKind
from visioncaption.tests.fakes import FakeCamera, FakeMicStream, FakePyAudio, FakeVideoFile


def decode(payload: bytes):
    return cv2.imdecode(np.frombuffer(payload, dtype=np.uint8), cv2.IMREAD_COLOR)


class TestMediaAcquisition:
    """Camera and microphone open/release."""

    @pytest.mark.asyncio
    async def test_camera_handle_reports_native_size(self):
        camera = FakeCamera(frame_shape=(480, 640, 3))
        media = MediaAcquisition(camera_factory=lambda index: camera)

        handle = await media.acquire(DeviceKind.CAMERA, {'width': 640, 'height': 480})

        assert handle.kind == DeviceKind.CAMERA
        assert handle.live
        assert (handle.width, handle.height) == (640, 480)
        assert camera.props[cv2.CAP_PROP_FRAME_WIDTH] == 640

    @pytest.mark.asyncio
    async def test_camera_not_opened_is_unavailable(self):
        media = MediaAcquisition(camera_factory=lambda index: FakeCamera(opened=False))

        with pytest.raises(DeviceUnavailable):
            await media.acquire(DeviceKind.CAMERA)

    @pytest.mark.asyncio
    async def test_camera_without_frames_is_released(self):
        camera = FakeCamera(readable=False)
        media = MediaAcquisition(camera_factory=lambda index: camera)

        with pytest.raises(DeviceUnavailable):
            await media.acquire(DeviceKind.CAMERA)
        assert camera.releases == 1

    @pytest.mark.asyncio
    async def test_camera_permission_error(self):
        def refuse(index):
            raise PermissionError('access denied')

        media = MediaAcquisition(camera_factory=refuse)

        with pytest.raises(PermissionDenied):
            await media.acquire(DeviceKind.CAMERA)

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self):
        camera = FakeCamera()
        media = MediaAcquisition(camera_factory=lambda index: camera)
        handle = await media.acquire(DeviceKind.CAMERA)

        media.release(handle)
        media.release(handle)
        media.release(None)

        assert camera.releases == 1
        assert not handle.live
        assert handle.stream is None

    @pytest.mark.skipif(not PYAUDIO_AVAILABLE, reason="PyAudio not installed")
    @pytest.mark.asyncio
    async def test_microphone_open_and_release(self):
        backend = FakePyAudio()
        media = MediaAcquisition(audio_factory=lambda: backend)

        handle = await media.acquire(DeviceKind.MICROPHONE, {'sample_rate': 16000})

        assert handle.kind == DeviceKind.MICROPHONE
        assert handle.sample_rate == 16000
        assert backend.open_kwargs['input_device_index'] == 2
        assert backend.open_kwargs['input'] is True

        media.release(handle)
        media.release(handle)

        assert backend.stream.stopped and backend.stream.closed
        assert backend.terminated == 1

    @pytest.mark.skipif(not PYAUDIO_AVAILABLE, reason="PyAudio not installed")
    @pytest.mark.asyncio
    async def test_no_microphone_is_unavailable(self):
        backend = FakePyAudio(default_index=None)
        media = MediaAcquisition(audio_factory=lambda: backend)

        with pytest.raises(DeviceUnavailable):
            await media.acquire(DeviceKind.MICROPHONE)
        assert backend.terminated == 1


class TestFrameSampler:
    """Still-frame capture and JPEG encoding."""

    def setup_method(self):
        self.sampler = FrameSampler()

    def test_capture_scales_to_handle_size(self):
        handle = DeviceHandle(kind=DeviceKind.CAMERA, stream=FakeCamera(frame_shape=(240, 320, 3)),
                              width=640, height=480)

        buffer = self.sampler.capture(handle)

        assert buffer.mime_type == 'image/jpeg'
        assert buffer.payload[:2] == b'\xff\xd8'
        assert decode(buffer.payload).shape == (480, 640, 3)

    def test_capture_without_handle_returns_none(self):
        assert self.sampler.capture(None) is None

    def test_capture_on_released_handle_returns_none(self):
        handle = DeviceHandle(kind=DeviceKind.CAMERA, stream=FakeCamera(), live=False)
        assert self.sampler.capture(handle) is None

    def test_capture_with_no_frame_returns_none(self):
        handle = DeviceHandle(kind=DeviceKind.CAMERA, stream=FakeCamera(readable=False))
        assert self.sampler.capture(handle) is None

    @pytest.mark.asyncio
    async def test_sample_runs_capture(self):
        handle = DeviceHandle(kind=DeviceKind.CAMERA, stream=FakeCamera(), width=320, height=240)
        buffer = await self.sampler.sample(handle)
        assert buffer is not None and buffer.is_image

    def test_lower_quality_gives_smaller_jpeg(self):
        rng = np.random.default_rng(0)
        frame = rng.integers(0, 255, size=(120, 160, 3), dtype=np.uint8)
        assert len(encode_jpeg(frame, 0.2)) < len(encode_jpeg(frame, 0.95))


class TestExtractVideoFrame:
    """Representative still from a video file."""

    def test_seeks_to_two_seconds_for_long_video(self):
        video = FakeVideoFile(fps=30.0, frame_count=300.0)

        buffer = extract_video_frame('clip.mp4', capture_factory=lambda path: video)

        assert (cv2.CAP_PROP_POS_MSEC, 2000.0) in video.set_calls
        assert buffer.mime_type == 'image/jpeg'
        assert video.releases == 1

    def test_seeks_to_middle_for_short_video(self):
        video = FakeVideoFile(fps=30.0, frame_count=30.0)

        extract_video_frame('short.mp4', capture_factory=lambda path: video)

        assert (cv2.CAP_PROP_POS_MSEC, 500.0) in video.set_calls

    def test_keeps_native_size(self):
        video = FakeVideoFile(frame_shape=(360, 480, 3))
        buffer = extract_video_frame('clip.mp4', capture_factory=lambda path: video)
        assert decode(buffer.payload).shape == (360, 480, 3)

    def test_unopenable_video_raises(self):
        video = FakeVideoFile(opened=False)

        with pytest.raises(ValueError, match='Error loading video'):
            extract_video_frame('broken.mp4', capture_factory=lambda path: video)
        assert video.releases == 1

    def test_undecodable_video_raises_and_releases(self):
        video = FakeVideoFile(readable=False)

        with pytest.raises(ValueError):
            extract_video_frame('broken.mp4', capture_factory=lambda path: video)
        assert video.releases == 1


class TestAudioSampler:
    """Fixed-duration clip recording."""

    def setup_method(self):
        self.sampler = AudioSampler({'clip_ms': 250})

    def make_handle(self, stream):
        return DeviceHandle(kind=DeviceKind.MICROPHONE, stream=stream, sample_rate=16000, chunk_size=160)

    def test_encode_wav_header(self):
        data = encode_wav(b'\x00\x00' * 1600, 16000, 1)
        with wave.open(io.BytesIO(data)) as wav_file:
            assert wav_file.getframerate() == 16000
            assert wav_file.getnchannels() == 1
            assert wav_file.getsampwidth() == 2
            assert wav_file.getnframes() == 1600

    @pytest.mark.asyncio
    async def test_clip_is_wav(self):
        stream = FakeMicStream()
        buffer = await self.sampler.capture_clip(self.make_handle(stream), duration_ms=50)

        assert buffer.mime_type == 'audio/wav'
        assert buffer.payload[:4] == b'RIFF'
        assert stream.reads > 0
        assert not self.sampler.is_recording

    @pytest.mark.asyncio
    async def test_no_data_returns_none(self):
        stream = FakeMicStream(chunk=b'')
        assert await self.sampler.capture_clip(self.make_handle(stream), duration_ms=30) is None

    @pytest.mark.asyncio
    async def test_read_error_returns_none(self):
        stream = FakeMicStream(fail=True)
        assert await self.sampler.capture_clip(self.make_handle(stream), duration_ms=30) is None

    @pytest.mark.asyncio
    async def test_missing_handle_returns_none(self):
        assert await self.sampler.sample(None) is None

    @pytest.mark.asyncio
    async def test_stop_ends_recording_early(self):
        stream = FakeMicStream()
        task = asyncio.create_task(self.sampler.capture_clip(self.make_handle(stream), duration_ms=5000))
        await asyncio.sleep(0.05)
        assert self.sampler.is_recording

        self.sampler.stop()
        buffer = await asyncio.wait_for(task, timeout=1.0)

        assert buffer is not None
        assert not self.sampler.is_recording
