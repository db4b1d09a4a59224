"""
Tests for model-output parsing and the result value types.
"""
import math

import pytest

from visioncaption.core.errors import MalformedResponse
from visioncaption.core.models import AnalysisResult, SampledBuffer, TranscriptionResult
from visioncaption.processing.response_parser import (
    parse_analysis,
    parse_json_object,
    parse_transcription,
    strip_code_fences,
)

PLAIN = '{"caption": "Two people talking", "sign_language": null, "objects": [], "signals": []}'


class TestStripCodeFences:

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_unfenced_text_is_only_trimmed(self):
        assert strip_code_fences('  {"a": 1}\n') == '{"a": 1}'

    def test_none(self):
        assert strip_code_fences(None) == ''


class TestParseJsonObject:

    def test_fenced_equals_plain(self):
        assert parse_json_object(f'```json\n{PLAIN}\n```') == parse_json_object(PLAIN)

    def test_object_embedded_in_prose(self):
        text = 'Here is the analysis:\n{"caption": "A dog"}\nHope that helps!'
        assert parse_json_object(text) == {'caption': 'A dog'}

    def test_array_is_rejected(self):
        with pytest.raises(MalformedResponse):
            parse_json_object('[1, 2, 3]')

    def test_empty_is_rejected(self):
        with pytest.raises(MalformedResponse):
            parse_json_object('   ')

    def test_prose_is_rejected(self):
        with pytest.raises(MalformedResponse):
            parse_json_object('A dog running on a beach.')


class TestParseAnalysis:

    def test_full_payload(self):
        result = parse_analysis(
            '{"caption": "A person signing", "sign_language": "hello",'
            ' "objects": [{"label": "hand", "confidence": 0.8}],'
            ' "signals": [{"type": "gesture", "message": "waving"}]}'
        )
        assert result.caption == 'A person signing'
        assert result.sign_language == 'hello'
        assert result.objects[0].label == 'hand'
        assert result.objects[0].confidence == pytest.approx(0.8)
        assert result.signals[0].message == 'waving'

    def test_malformed_degrades_to_truncated_caption(self):
        text = 'x' * 500
        result = parse_analysis(text)
        assert result.caption == 'x' * 200
        assert result.sign_language is None
        assert result.objects == []
        assert result.signals == []

    def test_empty_output_degrades_to_placeholder(self):
        assert parse_analysis('').caption == 'No description available'

    def test_missing_lists_default_to_empty(self):
        result = parse_analysis('{"caption": "A room"}')
        assert result.objects == []
        assert result.signals == []


class TestAnalysisResultFromDict:

    def test_confidence_is_clamped(self):
        result = AnalysisResult.from_dict({'objects': [
            {'label': 'a', 'confidence': 1.7},
            {'label': 'b', 'confidence': -0.2},
            {'label': 'c', 'confidence': 'high'},
            {'label': 'd', 'confidence': math.nan},
        ]})
        assert [o.confidence for o in result.objects] == [1.0, 0.0, 0.0, 0.0]

    def test_malformed_entries_are_dropped(self):
        result = AnalysisResult.from_dict({
            'objects': ['chair', {'confidence': 0.5}, {'label': 'lamp', 'confidence': 0.6}],
            'signals': [None, {'message': 'no type'}, {'type': 'motion', 'message': 'detected'}],
        })
        assert [o.label for o in result.objects] == ['lamp']
        assert [s.type for s in result.signals] == ['motion']

    def test_non_dict_input(self):
        assert AnalysisResult.from_dict(None).is_empty

    def test_to_dict_round_shape(self):
        data = AnalysisResult.from_dict({'caption': 'A'}).to_dict()
        assert data == {'caption': 'A', 'sign_language': None, 'objects': [], 'signals': []}


class TestParseTranscription:

    def test_translation(self):
        result = parse_transcription(
            '```json\n{"original_text": "hola", "language": "Spanish",'
            ' "english_text": "hello", "confidence": 0.92}\n```'
        )
        assert result == TranscriptionResult('hola', 'Spanish', 'hello', 0.92)
        assert not result.is_empty

    def test_silence_is_empty(self):
        result = parse_transcription(
            '{"original_text": null, "language": null, "english_text": null, "confidence": 0}'
        )
        assert result.is_empty

    def test_malformed_is_empty(self):
        assert parse_transcription('sorry, I could not hear anything').is_empty


class TestSampledBuffer:

    def test_data_url(self):
        buffer = SampledBuffer(payload=b'abc', mime_type='audio/wav')
        assert buffer.to_data_url() == 'data:audio/wav;base64,YWJj'
        assert len(buffer) == 3
        assert not buffer.is_image
