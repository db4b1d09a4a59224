"""
Best-effort parsing of model output.

Models are asked for a bare JSON object but often wrap it in markdown code
fences or add a sentence around it. These helpers strip the fencing, fall back
to the outermost {...} span, and never raise on bad input.
"""

import json
import re

from visioncaption.core.errors import MalformedResponse
from visioncaption.core.models import AnalysisResult, TranscriptionResult

_FENCE_OPEN = re.compile(r'^```[a-zA-Z0-9_-]*\s*\n?')
_FENCE_CLOSE = re.compile(r'\n?```\s*$')

CAPTION_FALLBACK_CHARS = 200


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang line and a trailing ``` from model output."""
    stripped = (text or '').strip()
    if not stripped.startswith('```'):
        return stripped
    stripped = _FENCE_OPEN.sub('', stripped, count=1)
    stripped = _FENCE_CLOSE.sub('', stripped, count=1)
    return stripped.replace('```', '').strip()


def parse_json_object(text: str) -> dict:
    """
    Parse a JSON object out of model output.

    Raises:
        MalformedResponse: if no JSON object can be recovered
    """
    stripped = strip_code_fences(text)
    if not stripped:
        raise MalformedResponse('empty model output')

    try:
        parsed = json.loads(stripped)
    except ValueError:
        start = stripped.find('{')
        end = stripped.rfind('}')
        if start == -1 or end <= start:
            raise MalformedResponse('no JSON object in model output')
        try:
            parsed = json.loads(stripped[start:end + 1])
        except ValueError as e:
            raise MalformedResponse(f'invalid JSON in model output: {e}')

    if not isinstance(parsed, dict):
        raise MalformedResponse('model output is not a JSON object')
    return parsed


def parse_analysis(text: str) -> AnalysisResult:
    """Parse image-analysis output, degrading to a caption-only result."""
    try:
        return AnalysisResult.from_dict(parse_json_object(text))
    except MalformedResponse:
        return AnalysisResult.degraded(text, limit=CAPTION_FALLBACK_CHARS)


def parse_transcription(text: str) -> TranscriptionResult:
    """Parse transcription output, degrading to an empty transcription."""
    try:
        return TranscriptionResult.from_dict(parse_json_object(text))
    except MalformedResponse:
        return TranscriptionResult()
