"""
Device acquisition and sampling (camera frames, microphone clips, video stills).
"""

from .media import MediaAcquisition, PYAUDIO_AVAILABLE
from .frame_sampler import FrameSampler, encode_jpeg, extract_video_frame
from .audio_sampler import AudioSampler, encode_wav

__all__ = [
    'MediaAcquisition',
    'PYAUDIO_AVAILABLE',
    'FrameSampler',
    'encode_jpeg',
    'extract_video_frame',
    'AudioSampler',
    'encode_wav',
]
