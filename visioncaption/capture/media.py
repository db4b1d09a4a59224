"""
Camera and microphone acquisition.

Opening a device is blocking (OpenCV probes the camera, PortAudio enumerates
inputs), so acquire() runs the open in a worker thread and hands back a
DeviceHandle once the stream is producing data.
"""

import asyncio
import os
from typing import Callable, Optional

try:
    import pyaudio
    PYAUDIO_AVAILABLE = True
except ImportError:
    PYAUDIO_AVAILABLE = False

from visioncaption.core.errors import DeviceUnavailable, PermissionDenied
from visioncaption.core.models import DeviceHandle, DeviceKind

DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480
DEFAULT_SAMPLE_RATE = 16000


class MediaAcquisition:
    """
    Opens and releases camera/microphone streams.

    Usage:
        media = MediaAcquisition()
        handle = await media.acquire(DeviceKind.CAMERA, {'width': 640, 'height': 480})
        ...
        media.release(handle)
    """

    def __init__(self, camera_factory: Callable = None, audio_factory: Callable = None, verbose: bool = False):
        """
        Args:
            camera_factory: Callable(index) -> VideoCapture-like object (defaults to cv2.VideoCapture)
            audio_factory: Callable() -> PyAudio-like object (defaults to pyaudio.PyAudio)
            verbose: Enable verbose logging
        """
        self._camera_factory = camera_factory
        self._audio_factory = audio_factory
        self.verbose = verbose

    async def acquire(self, kind: DeviceKind, constraints: dict = None) -> DeviceHandle:
        """
        Open a device and return a live handle.

        Raises:
            PermissionDenied: the OS refused access
            DeviceUnavailable: no device, device busy, or backend missing
        """
        kind = DeviceKind(kind)
        constraints = constraints or {}
        if kind == DeviceKind.CAMERA:
            return await asyncio.to_thread(self._open_camera, constraints)
        return await asyncio.to_thread(self._open_microphone, constraints)

    def release(self, handle: Optional[DeviceHandle]):
        """Stop the underlying stream. Safe to call repeatedly."""
        if handle is None or not handle.live:
            return

        handle.live = False
        stream, backend = handle.stream, handle.backend
        handle.stream = None
        handle.backend = None

        if handle.kind == DeviceKind.CAMERA:
            if stream is not None:
                try:
                    stream.release()
                except Exception as e:
                    print(f"[Media] Camera release error: {e}")
            if self.verbose:
                print("[Media] Camera released")
            return

        if stream is not None:
            try:
                stream.stop_stream()
                stream.close()
            except Exception as e:
                print(f"[Media] Microphone close error: {e}")
        if backend is not None:
            try:
                backend.terminate()
            except Exception as e:
                print(f"[Media] PyAudio terminate error: {e}")
        if self.verbose:
            print("[Media] Microphone released")

    # =========================================================================
    # Camera
    # =========================================================================

    def _open_camera(self, constraints: dict) -> DeviceHandle:
        index = int(constraints.get('index', 0))
        width = int(constraints.get('width', DEFAULT_WIDTH))
        height = int(constraints.get('height', DEFAULT_HEIGHT))

        try:
            import cv2
        except ImportError:
            raise DeviceUnavailable('OpenCV not installed, camera unavailable')

        factory = self._camera_factory or cv2.VideoCapture
        try:
            capture = factory(index)
        except PermissionError as e:
            raise PermissionDenied(f'Failed to access camera: {e}')
        except OSError as e:
            raise DeviceUnavailable(f'Failed to open camera {index}: {e}')

        if capture is None or not capture.isOpened():
            raise DeviceUnavailable(f'Camera {index} not available')

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        # Warm-up read: the stream is playing and native size is known
        ok, frame = capture.read()
        if not ok or frame is None:
            capture.release()
            raise DeviceUnavailable(f'Camera {index} opened but returned no frames')

        native_height, native_width = frame.shape[:2]
        print(f"[Media] Camera {index} started ({native_width}x{native_height})")
        return DeviceHandle(
            kind=DeviceKind.CAMERA,
            stream=capture,
            width=int(native_width),
            height=int(native_height),
        )

    # =========================================================================
    # Microphone
    # =========================================================================

    def _open_microphone(self, constraints: dict) -> DeviceHandle:
        sample_rate = int(constraints.get('sample_rate', DEFAULT_SAMPLE_RATE))
        channels = int(constraints.get('channels', 1))
        chunk_size = int(constraints.get('chunk_size', 1024))
        device_index = constraints.get('device_index')

        if not PYAUDIO_AVAILABLE:
            raise DeviceUnavailable('PyAudio not installed, microphone unavailable')

        audio = self._init_pyaudio(self._audio_factory or pyaudio.PyAudio)
        try:
            if device_index is None:
                device_index = self._find_input_device(audio)
            if device_index is None:
                raise DeviceUnavailable('No microphone found')

            stream = audio.open(
                format=pyaudio.paInt16,
                channels=channels,
                rate=sample_rate,
                input=True,
                input_device_index=device_index,
                frames_per_buffer=chunk_size,
            )
        except PermissionError as e:
            audio.terminate()
            raise PermissionDenied(f'Failed to access microphone: {e}')
        except OSError as e:
            audio.terminate()
            raise DeviceUnavailable(f'Failed to open microphone: {e}')
        except DeviceUnavailable:
            audio.terminate()
            raise

        print(f"[Media] Microphone started ({sample_rate}Hz, chunk={chunk_size})")
        return DeviceHandle(
            kind=DeviceKind.MICROPHONE,
            stream=stream,
            sample_rate=sample_rate,
            channels=channels,
            chunk_size=chunk_size,
            backend=audio,
        )

    @staticmethod
    def _init_pyaudio(factory: Callable):
        """Create the PyAudio instance with ALSA chatter on stderr suppressed."""
        devnull = os.open(os.devnull, os.O_WRONLY)
        old_stderr = os.dup(2)
        os.dup2(devnull, 2)
        os.close(devnull)
        try:
            return factory()
        except OSError as e:
            raise DeviceUnavailable(f'Audio backend init failed: {e}')
        finally:
            os.dup2(old_stderr, 2)
            os.close(old_stderr)

    @staticmethod
    def _find_input_device(audio) -> Optional[int]:
        try:
            info = audio.get_default_input_device_info()
            return int(info['index'])
        except (OSError, IOError, KeyError):
            pass

        for i in range(audio.get_device_count()):
            info = audio.get_device_info_by_index(i)
            if info.get('maxInputChannels', 0) > 0:
                return i
        return None
