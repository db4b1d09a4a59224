"""
Server-side client for the OpenAI-compatible AI gateway.

The OpenAI SDK client is created lazily on first use and owned by the
GatewayClient instance; close() tears it down. The API key never leaves the
server.
"""

import re

import openai

from visioncaption.core.errors import PaymentRequired, RateLimited, UpstreamFailure
from visioncaption.core.models import AnalysisResult, CaptionResult, TranscriptionResult
from visioncaption.processing.prompts import get_prompts
from visioncaption.processing.response_parser import parse_analysis, parse_transcription

DEFAULT_BASE_URL = 'https://ai.gateway.lovable.dev/v1'
DEFAULT_MODEL = 'google/gemini-2.5-flash'

_AUDIO_PREFIX = re.compile(r'^data:audio/([\w.+-]+)(;[^,]*)?;base64,')


class GatewayClient:
    """Chat-completions calls for frame analysis, captioning and transcription."""

    def __init__(self, config: dict = None, api_key: str = None, client=None, verbose: bool = False):
        self.config = config or {}
        self.base_url = str(self.config.get('base_url') or DEFAULT_BASE_URL).strip()
        self.model = str(self.config.get('model') or DEFAULT_MODEL)
        self.timeout = float(self.config.get('timeout_s', 60))
        self.max_tokens = self.config.get('max_tokens')
        self.prompts = get_prompts(self.config.get('prompts'))
        self.verbose = verbose

        self._api_key = (api_key or '').strip()
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def _get_client(self):
        if self._client is not None:
            return self._client

        if not self._api_key:
            raise RuntimeError("AI gateway API key missing")

        self._client = openai.OpenAI(api_key=self._api_key, base_url=self.base_url, timeout=self.timeout)
        return self._client

    def close(self):
        client = self._client
        self._client = None
        if client is not None and hasattr(client, 'close'):
            client.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def analyze_frame(self, frame_data_url: str) -> AnalysisResult:
        print("[Gateway] Analyzing frame...")
        text = self._complete([
            {'type': 'text', 'text': self.prompts['analyze_frame']},
            {'type': 'image_url', 'image_url': {'url': frame_data_url}},
        ])
        if self.verbose:
            print(f"[Gateway] AI response: {text}")

        result = parse_analysis(text)
        if not result.caption:
            result.caption = 'No description available'
        return result

    def generate_caption(self, image_data_url: str) -> CaptionResult:
        text = self._complete([
            {'type': 'text', 'text': self.prompts['generate_caption']},
            {'type': 'image_url', 'image_url': {'url': image_data_url}},
        ])
        print("[Gateway] Caption generated successfully")
        return CaptionResult(caption=text.strip() or 'No caption generated')

    def transcribe_audio(self, audio_data_url: str) -> TranscriptionResult:
        print("[Gateway] Transcribing audio...")
        match = _AUDIO_PREFIX.match(audio_data_url)
        audio_format = 'wav'
        encoded = audio_data_url.split(',', 1)[-1]
        if match:
            audio_format = self._audio_format(match.group(1))
            encoded = audio_data_url[match.end():]

        text = self._complete([
            {'type': 'text', 'text': self.prompts['transcribe_audio']},
            {'type': 'input_audio', 'input_audio': {'data': encoded, 'format': audio_format}},
        ])
        if self.verbose:
            print(f"[Gateway] Transcription response: {text}")
        return parse_transcription(text)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _audio_format(subtype: str) -> str:
        subtype = subtype.lower()
        if subtype in ('x-wav', 'wave', 'vnd.wave'):
            return 'wav'
        if subtype == 'mpeg':
            return 'mp3'
        return subtype

    def _complete(self, content: list) -> str:
        """
        Send one user message and return the text of the first choice.

        Raises:
            RateLimited, PaymentRequired, UpstreamFailure
        """
        client = self._get_client()
        kwargs = {
            'model': self.model,
            'messages': [{'role': 'user', 'content': content}],
        }
        if self.max_tokens:
            kwargs['max_tokens'] = int(self.max_tokens)

        try:
            response = client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            print(f"[Gateway] Rate limited: {e}")
            raise RateLimited()
        except openai.APIStatusError as e:
            print(f"[Gateway] AI error: {e.status_code} {e}")
            if e.status_code == 402:
                raise PaymentRequired()
            raise UpstreamFailure(f'AI gateway error (HTTP {e.status_code})', status=e.status_code)
        except openai.APIConnectionError as e:
            print(f"[Gateway] Connection error: {e}")
            raise UpstreamFailure('AI gateway unreachable', status=503)

        choices = getattr(response, 'choices', None) or []
        if not choices:
            return ''
        message = getattr(choices[0], 'message', None)
        return getattr(message, 'content', None) or ''
