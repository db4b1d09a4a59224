"""
Analysis transports: how a sampled buffer reaches the remote analyzer.

Two interchangeable strategies share one interface so the polling loop is
written once:

- HttpTransport: one request per sample, result returned from send()
- DuplexTransport: persistent Socket.IO connection, send() pushes and returns
  None, results arrive later through the bound on_result callback
"""

import asyncio
from typing import Any, Callable, Optional

import requests
import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from visioncaption.core.errors import (
    MalformedResponse,
    UpstreamFailure,
    VisionCaptionError,
    error_for_status,
)
from visioncaption.core.models import AnalysisResult, CaptionResult, SampledBuffer
from visioncaption.processing.response_parser import (
    CAPTION_FALLBACK_CHARS,
    parse_analysis,
    parse_json_object,
    parse_transcription,
)

ENDPOINTS = {
    'image': 'analyze-frame',
    'audio': 'transcribe-audio',
    'caption': 'generate-caption',
}

MODEL_LOADING_MESSAGE = 'Model is loading, please try again in a moment'


class AnalysisTransport:
    """Base interface. Subclasses override connect/send/disconnect."""

    push = False

    def __init__(self):
        self._on_result: Optional[Callable[[Any], None]] = None
        self._on_error: Optional[Callable[[VisionCaptionError, bool], None]] = None

    def bind(self, on_result: Callable = None, on_error: Callable = None):
        """
        Register delivery callbacks for asynchronous results.

        Args:
            on_result: called with a parsed result pushed by the server
            on_error: called with (error, fatal); fatal means the connection is gone
        """
        self._on_result = on_result
        self._on_error = on_error

    @property
    def is_connected(self) -> bool:
        return True

    async def connect(self):
        pass

    async def send(self, buffer: SampledBuffer):
        raise NotImplementedError

    async def disconnect(self):
        pass

    def _deliver_result(self, result):
        if self._on_result is not None:
            self._on_result(result)

    def _deliver_error(self, error: VisionCaptionError, fatal: bool = False):
        if self._on_error is not None:
            self._on_error(error, fatal)


class HttpTransport(AnalysisTransport):
    """Request/response transport against the /functions/v1/* handlers."""

    def __init__(self, base_url: str, kind: str = 'image', api_key: str = None,
                 timeout: float = 60.0, session: requests.Session = None, verbose: bool = False):
        super().__init__()
        if kind not in ENDPOINTS:
            raise ValueError(f"unknown analysis kind '{kind}'")
        self.base_url = (base_url or '').rstrip('/')
        self.kind = kind
        self.api_key = api_key
        self.timeout = timeout
        self.verbose = verbose
        self._session = session
        self._owns_session = session is None

    @property
    def url(self) -> str:
        return f"{self.base_url}/functions/v1/{ENDPOINTS[self.kind]}"

    async def connect(self):
        if self._session is None:
            self._session = requests.Session()
            self._owns_session = True

    async def send(self, buffer: SampledBuffer):
        """
        POST one sample and return the parsed result.

        Raises:
            RateLimited, PaymentRequired, UpstreamFailure
        """
        await self.connect()
        return await asyncio.to_thread(self._post, buffer)

    async def disconnect(self):
        session = self._session
        if session is not None and self._owns_session:
            self._session = None
            session.close()

    def _headers(self) -> dict:
        if not self.api_key:
            return {}
        return {
            'apikey': self.api_key,
            'Authorization': f'Bearer {self.api_key}',
        }

    def _post(self, buffer: SampledBuffer):
        try:
            if self.kind == 'caption':
                extension = buffer.mime_type.split('/')[-1]
                response = self._session.post(
                    self.url,
                    files={'image': (f'upload.{extension}', buffer.payload, buffer.mime_type)},
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            else:
                field = 'frame' if self.kind == 'image' else 'audio'
                response = self._session.post(
                    self.url,
                    json={field: buffer.to_data_url()},
                    headers=self._headers(),
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            raise UpstreamFailure(f'Network error: {e}')

        if not response.ok:
            raise self._error_from_response(response)

        if self.verbose:
            print(f"[Transport] {self.kind} response {response.status_code} ({len(response.text)} chars)")
        return self._parse_body(response.text)

    def _error_from_response(self, response) -> VisionCaptionError:
        message = None
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            if body.get('isLoading'):
                message = MODEL_LOADING_MESSAGE
            else:
                message = body.get('error')

        if not message:
            message = f'Failed to analyze {self.kind} (HTTP {response.status_code})'
        return error_for_status(response.status_code, message)

    def _parse_body(self, text: str):
        if self.kind == 'image':
            return parse_analysis(text)
        if self.kind == 'audio':
            return parse_transcription(text)
        try:
            caption = parse_json_object(text).get('caption')
        except MalformedResponse:
            caption = (text or '').strip()[:CAPTION_FALLBACK_CHARS]
        return CaptionResult(caption=str(caption or 'No caption generated'))


class DuplexTransport(AnalysisTransport):
    """
    Push transport over a persistent Socket.IO connection.

    Frames are emitted without waiting for the previous result. Results are
    matched purely by recency: whatever 'analysis' message arrives last wins.
    """

    push = True

    def __init__(self, base_url: str, namespace: str = '/stream', connect_timeout: float = 10.0,
                 client_factory: Callable = None, verbose: bool = False):
        super().__init__()
        self.base_url = (base_url or '').rstrip('/')
        self.namespace = namespace
        self.connect_timeout = connect_timeout
        self.verbose = verbose
        self._client_factory = client_factory or socketio.AsyncClient
        self._client = None
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.connected)

    async def connect(self):
        """Open the connection. No-op if it is already open."""
        if self.is_connected:
            return

        client = self._client_factory(reconnection=False)
        client.on('analysis', self._handle_analysis, namespace=self.namespace)
        client.on('analysis_error', self._handle_server_error, namespace=self.namespace)
        client.on('disconnect', self._handle_disconnect, namespace=self.namespace)

        self._closing = False
        try:
            await client.connect(
                self.base_url,
                namespaces=[self.namespace],
                wait_timeout=self.connect_timeout,
            )
        except SocketConnectionError as e:
            raise UpstreamFailure(f'Connection failed: {e}')

        self._client = client
        print(f"[Duplex] Connected to {self.base_url}{self.namespace}")

    async def send(self, buffer: SampledBuffer):
        if not self.is_connected:
            raise UpstreamFailure('Connection is not open')
        await self._client.emit('frame', {'frame': buffer.to_data_url()}, namespace=self.namespace)
        return None

    async def disconnect(self):
        """Always close and drop the client."""
        client = self._client
        self._client = None
        self._closing = True
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as e:
            print(f"[Duplex] Disconnect error: {e}")
        if self.verbose:
            print("[Duplex] Disconnected")

    async def _handle_analysis(self, data):
        if isinstance(data, dict):
            result = AnalysisResult.from_dict(data)
        else:
            result = parse_analysis(str(data))
        self._deliver_result(result)

    async def _handle_server_error(self, data):
        data = data if isinstance(data, dict) else {}
        status = int(data.get('status') or 500)
        self._deliver_error(error_for_status(status, data.get('error')), fatal=False)

    async def _handle_disconnect(self, *args):
        if self._closing:
            return
        self._client = None
        print("[Duplex] Connection lost")
        self._deliver_error(UpstreamFailure('Connection lost'), fatal=True)
