"""
Value types shared by the capture, transport and orchestration layers.

None of these are persisted. Results replace each other in a ResultStore and
buffers are dropped as soon as the transport has sent them.
"""

import base64
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class DeviceKind(Enum):
    CAMERA = "camera"
    MICROPHONE = "microphone"


@dataclass
class DeviceHandle:
    """An open camera or microphone stream."""
    kind: DeviceKind
    stream: Any = None
    live: bool = True
    width: int = 0
    height: int = 0
    sample_rate: int = 16000
    channels: int = 1
    chunk_size: int = 1024
    backend: Any = None  # owning library instance (PyAudio) to terminate on release


@dataclass
class SampledBuffer:
    """One still image or one audio clip ready to transmit."""
    payload: bytes
    mime_type: str
    captured_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.payload)

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith('image/')

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.payload).decode('utf-8')
        return f"data:{self.mime_type};base64,{encoded}"


def _coerce_confidence(value) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return max(0.0, min(1.0, confidence))


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class DetectedObject:
    label: str
    confidence: float = 0.0


@dataclass
class Signal:
    type: str
    message: str = ''


@dataclass
class AnalysisResult:
    """Structured output from the remote image analyzer."""
    caption: Optional[str] = None
    sign_language: Optional[str] = None
    objects: List[DetectedObject] = field(default_factory=list)
    signals: List[Signal] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.caption or self.sign_language or self.objects or self.signals)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalysisResult':
        """Build a result from untrusted JSON, dropping malformed entries."""
        data = data if isinstance(data, dict) else {}

        objects = []
        for item in data.get('objects') or []:
            if not isinstance(item, dict):
                continue
            label = _optional_text(item.get('label'))
            if label is None:
                continue
            objects.append(DetectedObject(label=label, confidence=_coerce_confidence(item.get('confidence'))))

        signals = []
        for item in data.get('signals') or []:
            if not isinstance(item, dict):
                continue
            signal_type = _optional_text(item.get('type'))
            if signal_type is None:
                continue
            signals.append(Signal(type=signal_type, message=str(item.get('message') or '')))

        return cls(
            caption=_optional_text(data.get('caption')),
            sign_language=_optional_text(data.get('sign_language')),
            objects=objects,
            signals=signals,
        )

    @classmethod
    def degraded(cls, raw_text: str, limit: int = 200) -> 'AnalysisResult':
        """Minimal result used when the model output is not valid JSON."""
        caption = (raw_text or '').strip()[:limit]
        return cls(caption=caption or 'No description available')

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TranscriptionResult:
    """Structured output from the remote audio analyzer."""
    original_text: Optional[str] = None
    language: Optional[str] = None
    english_text: Optional[str] = None
    confidence: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.english_text

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranscriptionResult':
        data = data if isinstance(data, dict) else {}
        return cls(
            original_text=_optional_text(data.get('original_text')),
            language=_optional_text(data.get('language')),
            english_text=_optional_text(data.get('english_text')),
            confidence=_coerce_confidence(data.get('confidence')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CaptionResult:
    """Single-sentence caption for an uploaded image."""
    caption: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
