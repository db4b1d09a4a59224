"""
Tests for the server-side AI gateway client.
"""
from types import SimpleNamespace

import httpx
import openai
import pytest

from visioncaption.core.errors import PaymentRequired, RateLimited, UpstreamFailure
from visioncaption.core.models import CaptionResult, TranscriptionResult
from visioncaption.processing.gateway import DEFAULT_MODEL, GatewayClient

REQUEST = httpx.Request('POST', 'https://gateway.test/v1/chat/completions')


def completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return completion(outcome)


class FakeOpenAI:
    def __init__(self, *outcomes):
        self.completions = FakeCompletions(outcomes)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    def close(self):
        self.closed = True


def status_error(cls, status):
    response = httpx.Response(status, request=REQUEST)
    return cls(f'HTTP {status}', response=response, body=None)


class TestGatewayClient:

    def make(self, *outcomes, config=None):
        self.client = FakeOpenAI(*outcomes)
        return GatewayClient(config, api_key='test-key', client=self.client)

    def last_content(self):
        return self.client.completions.calls[-1]['messages'][0]['content']

    def test_analyze_frame(self):
        gateway = self.make('```json\n{"caption": "A lab bench", "objects": [{"label": "beaker", "confidence": 0.7}]}\n```')

        result = gateway.analyze_frame('data:image/jpeg;base64,AAAA')

        assert result.caption == 'A lab bench'
        assert result.objects[0].label == 'beaker'
        call = self.client.completions.calls[0]
        assert call['model'] == DEFAULT_MODEL
        content = self.last_content()
        assert content[0]['type'] == 'text'
        assert content[1] == {'type': 'image_url', 'image_url': {'url': 'data:image/jpeg;base64,AAAA'}}

    def test_analyze_frame_degrades_on_prose(self):
        gateway = self.make('A lab bench with glassware.')
        result = gateway.analyze_frame('data:image/jpeg;base64,AAAA')
        assert result.caption == 'A lab bench with glassware.'
        assert result.objects == []

    def test_analyze_frame_without_caption(self):
        gateway = self.make('{"objects": []}')
        assert gateway.analyze_frame('data:image/jpeg;base64,AAAA').caption == 'No description available'

    def test_generate_caption(self):
        gateway = self.make('  A cat asleep on a sunny windowsill.\n')
        result = gateway.generate_caption('data:image/png;base64,AAAA')
        assert result == CaptionResult(caption='A cat asleep on a sunny windowsill.')

    def test_generate_caption_empty(self):
        gateway = self.make('')
        assert gateway.generate_caption('data:image/png;base64,AAAA').caption == 'No caption generated'

    def test_transcribe_audio_strips_prefix(self):
        gateway = self.make('{"original_text": "bonjour", "language": "French", "english_text": "hello", "confidence": 0.88}')

        result = gateway.transcribe_audio('data:audio/webm;codecs=opus;base64,UklGRg==')

        assert result == TranscriptionResult('bonjour', 'French', 'hello', 0.88)
        audio_part = self.last_content()[1]
        assert audio_part == {'type': 'input_audio', 'input_audio': {'data': 'UklGRg==', 'format': 'webm'}}

    @pytest.mark.parametrize('mime,expected', [('x-wav', 'wav'), ('wav', 'wav'), ('mpeg', 'mp3')])
    def test_audio_format_names(self, mime, expected):
        gateway = self.make('{"english_text": null}')
        gateway.transcribe_audio(f'data:audio/{mime};base64,AAAA')
        assert self.last_content()[1]['input_audio']['format'] == expected

    def test_rate_limit(self):
        gateway = self.make(status_error(openai.RateLimitError, 429))
        with pytest.raises(RateLimited):
            gateway.analyze_frame('data:image/jpeg;base64,AAAA')

    def test_payment_required(self):
        gateway = self.make(status_error(openai.APIStatusError, 402))
        with pytest.raises(PaymentRequired):
            gateway.analyze_frame('data:image/jpeg;base64,AAAA')

    def test_other_status(self):
        gateway = self.make(status_error(openai.InternalServerError, 500))
        with pytest.raises(UpstreamFailure) as exc:
            gateway.generate_caption('data:image/jpeg;base64,AAAA')
        assert exc.value.status == 500

    def test_connection_error(self):
        gateway = self.make(openai.APIConnectionError(request=REQUEST))
        with pytest.raises(UpstreamFailure) as exc:
            gateway.transcribe_audio('data:audio/wav;base64,AAAA')
        assert exc.value.status == 503

    def test_prompt_override(self):
        gateway = self.make('A caption.', config={'prompts': {'generate_caption': 'Describe briefly.'}})
        gateway.generate_caption('data:image/jpeg;base64,AAAA')
        assert self.last_content()[0]['text'] == 'Describe briefly.'

    def test_max_tokens_passed_when_configured(self):
        gateway = self.make('A caption.', config={'max_tokens': 64})
        gateway.generate_caption('data:image/jpeg;base64,AAAA')
        assert self.client.completions.calls[0]['max_tokens'] == 64

    def test_close_releases_client(self):
        gateway = self.make()
        gateway.close()
        assert self.client.closed

    def test_missing_key(self):
        gateway = GatewayClient({}, api_key='  ')
        assert not gateway.is_configured
        with pytest.raises(RuntimeError):
            gateway.analyze_frame('data:image/jpeg;base64,AAAA')

    def test_sdk_client_created_lazily(self):
        gateway = GatewayClient({'base_url': 'https://gateway.test/v1'}, api_key='test-key')
        assert gateway._client is None

        client = gateway._get_client()

        assert isinstance(client, openai.OpenAI)
        assert gateway._get_client() is client
        gateway.close()
        assert gateway._client is None
