"""
One-shot captioning of an image or video file through the generate-caption endpoint.
"""

import asyncio
import mimetypes
from pathlib import Path

from visioncaption.capture.frame_sampler import extract_video_frame
from visioncaption.core.models import CaptionResult, SampledBuffer
from visioncaption.processing.transport import HttpTransport


def load_upload(path) -> SampledBuffer:
    """
    Read an image file, or extract a representative JPEG still from a video.

    Raises:
        ValueError: unsupported file type or unreadable video
        FileNotFoundError: path does not exist
    """
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)

    if mime_type and mime_type.startswith('video/'):
        return extract_video_frame(path)

    if not mime_type or not mime_type.startswith('image/'):
        raise ValueError(f'Unsupported file type: {path.name}')

    return SampledBuffer(payload=path.read_bytes(), mime_type=mime_type)


async def generate_caption(path, base_url: str = None, api_key: str = None,
                           transport: HttpTransport = None, verbose: bool = False) -> CaptionResult:
    """
    Upload a file (video files are reduced to one frame first) and return its caption.

    Raises:
        ValueError: unsupported or unreadable file
        RateLimited, PaymentRequired, UpstreamFailure: the endpoint refused
    """
    buffer = await asyncio.to_thread(load_upload, path)
    if verbose:
        print(f"[Caption] Uploading {Path(path).name} as {buffer.mime_type} ({len(buffer)} bytes)")

    if transport is None:
        transport = HttpTransport(base_url, kind='caption', api_key=api_key, verbose=verbose)

    await transport.connect()
    try:
        return await transport.send(buffer)
    finally:
        await transport.disconnect()
