"""
Processing module: transports to the analysis endpoints, model-output
parsing, and the server-side AI gateway client.
"""

from .response_parser import (
    strip_code_fences,
    parse_json_object,
    parse_analysis,
    parse_transcription,
)
from .transport import AnalysisTransport, HttpTransport, DuplexTransport
from .gateway import GatewayClient
from .captioning import generate_caption, load_upload
from .prompts import DEFAULT_PROMPTS, get_prompts

__all__ = [
    'strip_code_fences',
    'parse_json_object',
    'parse_analysis',
    'parse_transcription',
    'AnalysisTransport',
    'HttpTransport',
    'DuplexTransport',
    'GatewayClient',
    'generate_caption',
    'load_upload',
    'DEFAULT_PROMPTS',
    'get_prompts',
]
