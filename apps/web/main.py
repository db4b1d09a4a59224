"""
VisionCaption Web Application

Flask handlers that forward media to the AI gateway:
- POST /functions/v1/analyze-frame      {frame: <image data URL>}
- POST /functions/v1/generate-caption   multipart 'image'
- POST /functions/v1/transcribe-audio   {audio: <audio data URL>}
- Socket.IO namespace /stream            'frame' -> 'analysis' | 'analysis_error'

The gateway API key is read here and never sent to clients.
"""

import base64
import os
import sys
from pathlib import Path

# Add parent directories to path for imports
ROOT_DIR = Path(__file__).parent.parent.parent
sys.path.insert(0, str(ROOT_DIR))

from visioncaption.utils.config import load_config, load_env, get_section
load_env(ROOT_DIR / '.env')

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO, emit

from visioncaption.core.errors import PaymentRequired, RateLimited, VisionCaptionError
from visioncaption.processing.gateway import GatewayClient

MAX_CAPTION_IMAGE_BYTES = 10 * 1024 * 1024
MAX_AUDIO_DATA_URL_CHARS = 20 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ('image/jpeg', 'image/png', 'image/gif', 'image/webp')
CORS_ALLOW_HEADERS = ['authorization', 'x-client-info', 'apikey', 'content-type']
STREAM_NAMESPACE = '/stream'

DEFAULT_CONFIG = {
    'gateway': {
        'api_key': '${LOVABLE_API_KEY}',
    },
}


def is_valid_audio_data_url(value) -> bool:
    """Shape check for a base64 audio data URL: 'data:audio/<type>;base64,<payload>'."""
    if not value or not isinstance(value, str):
        return False
    if len(value) > MAX_AUDIO_DATA_URL_CHARS:
        return False
    if not value.startswith('data:audio/'):
        return False

    parts = value.split(',')
    if len(parts) != 2:
        return False
    return 'base64' in parts[0]


def describe_error(error: VisionCaptionError, failure_message: str, messages: dict = None):
    """
    Map a gateway error to an (error message, HTTP status) pair.

    Rate limits and payment errors keep their status; everything else is a
    generic failure with the upstream status when it is a server error.
    """
    messages = messages or {}
    if isinstance(error, RateLimited):
        return messages.get(429, error.message), 429
    if isinstance(error, PaymentRequired):
        return messages.get(402, error.message), 402
    status = error.status if error.status and error.status >= 500 else 500
    return failure_message, status


def get_gateway(app: Flask) -> GatewayClient:
    return app.config['gateway']


def reset_gateway(app: Flask):
    """Close the gateway client; the next request builds a fresh SDK client."""
    gateway = app.config.get('gateway')
    if gateway is not None:
        gateway.close()


def create_app(config_path: str = None, gateway: GatewayClient = None):
    """
    Create and configure the Flask application.

    Returns:
        The Flask app. The SocketIO server is available as app.config['socketio'].
    """
    if config_path is None:
        config_path = Path(__file__).parent / 'config.yaml'
    config = load_config(config_path, defaults=DEFAULT_CONFIG)
    gateway_cfg = get_section(config, 'gateway')

    # Debug: confirm env loading (do not print secret values)
    api_key = gateway_cfg.get('api_key') or ''
    api_key = api_key.strip() if isinstance(api_key, str) else ''
    print(f"[env] cwd={os.getcwd()}")
    print(f"[env] .env path={ROOT_DIR / '.env'} exists={os.path.exists(ROOT_DIR / '.env')}")
    print(f"[env] gateway api key loaded={bool(api_key)} length={len(api_key)}")

    verbose = bool(gateway_cfg.get('verbose', False))
    if gateway is None:
        gateway_cfg = dict(gateway_cfg)
        gateway_cfg['prompts'] = get_section(config, 'prompts')
        gateway = GatewayClient(gateway_cfg, api_key=api_key, verbose=verbose)

    # Create Flask app
    app = Flask(__name__)
    app.config['gateway'] = gateway
    app.config['MAX_CONTENT_LENGTH'] = int(
        get_section(config, 'server').get('max_content_length', 32 * 1024 * 1024)
    )

    CORS(app, resources={r"/functions/*": {"origins": "*"}}, allow_headers=CORS_ALLOW_HEADERS,
         send_wildcard=True)
    socketio = SocketIO(app, cors_allowed_origins='*', async_mode='threading')
    app.config['socketio'] = socketio

    # ─────────────────────────────────────────────────────────────
    # Routes
    # ─────────────────────────────────────────────────────────────

    @app.route('/functions/v1/analyze-frame', methods=['POST'])
    def analyze_frame():
        """Analyze one camera frame: caption, sign language, objects, signals."""
        data = request.get_json(silent=True)
        data = data if isinstance(data, dict) else {}
        frame = data.get('frame')

        if not frame or not isinstance(frame, str):
            return jsonify({'error': 'No frame provided'}), 400

        gateway = get_gateway(app)
        if not gateway.is_configured:
            return jsonify({'error': 'API key not configured'}), 500

        try:
            result = gateway.analyze_frame(frame)
        except VisionCaptionError as e:
            message, status = describe_error(e, 'Failed to analyze frame')
            return jsonify({'error': message}), status
        except Exception as e:
            print(f"[Web] Error in analyze-frame: {e}")
            return jsonify({'error': str(e) or 'Unknown error'}), 500

        return jsonify(result.to_dict())

    @app.route('/functions/v1/generate-caption', methods=['POST'])
    def generate_caption():
        """Caption an uploaded image in one sentence."""
        upload = request.files.get('image')
        if upload is None:
            return jsonify({'error': 'No image file provided'}), 400

        mime_type = (upload.mimetype or '').lower()
        if mime_type not in ALLOWED_IMAGE_TYPES:
            return jsonify({'error': 'Invalid file type. Allowed types: JPEG, PNG, GIF, WebP'}), 400

        payload = upload.read()
        if len(payload) > MAX_CAPTION_IMAGE_BYTES:
            return jsonify({'error': 'File too large. Maximum size is 10MB'}), 400

        gateway = get_gateway(app)
        if not gateway.is_configured:
            return jsonify({'error': 'API key not configured'}), 500

        print(f"[Web] Processing image: {upload.filename} {mime_type} {len(payload)} bytes")
        data_url = f"data:{mime_type};base64,{base64.b64encode(payload).decode('utf-8')}"

        try:
            result = gateway.generate_caption(data_url)
        except VisionCaptionError as e:
            message, status = describe_error(e, 'Failed to generate caption', {
                429: 'Rate limit exceeded, please try again in a moment',
                402: 'Payment required, please add credits to your workspace',
            })
            return jsonify({'error': message}), status
        except Exception as e:
            print(f"[Web] Error in generate-caption: {e}")
            return jsonify({'error': 'An unexpected error occurred'}), 500

        return jsonify(result.to_dict())

    @app.route('/functions/v1/transcribe-audio', methods=['POST'])
    def transcribe_audio():
        """Transcribe an audio clip and translate it to English."""
        data = request.get_json(silent=True)
        data = data if isinstance(data, dict) else {}
        audio = data.get('audio')

        if not audio:
            return jsonify({'error': 'No audio provided'}), 400

        if not is_valid_audio_data_url(audio):
            print("[Web] Invalid audio format received")
            return jsonify({'error': 'Invalid audio format. Expected base64-encoded audio data URL'}), 400

        gateway = get_gateway(app)
        if not gateway.is_configured:
            return jsonify({'error': 'API key not configured'}), 500

        if verbose:
            print(f"[Web] Processing audio transcription, length: {len(audio)}")

        try:
            result = gateway.transcribe_audio(audio)
        except VisionCaptionError as e:
            message, status = describe_error(e, 'Failed to transcribe audio')
            return jsonify({'error': message}), status
        except Exception as e:
            print(f"[Web] Error in transcribe-audio: {e}")
            return jsonify({'error': 'An unexpected error occurred'}), 500

        return jsonify(result.to_dict())

    # ─────────────────────────────────────────────────────────────
    # Duplex stream
    # ─────────────────────────────────────────────────────────────

    @socketio.on('connect', namespace=STREAM_NAMESPACE)
    def stream_connect():
        print(f"[Stream] Client connected: {request.sid}")

    @socketio.on('disconnect', namespace=STREAM_NAMESPACE)
    def stream_disconnect(*args):
        print(f"[Stream] Client disconnected: {request.sid}")

    @socketio.on('frame', namespace=STREAM_NAMESPACE)
    def stream_frame(data):
        """Analyze a pushed frame and push the result back to the sender."""
        frame = data.get('frame') if isinstance(data, dict) else None
        if not frame or not isinstance(frame, str):
            emit('analysis_error', {'error': 'No frame provided', 'status': 400})
            return

        gateway = get_gateway(app)
        if not gateway.is_configured:
            emit('analysis_error', {'error': 'API key not configured', 'status': 500})
            return

        try:
            result = gateway.analyze_frame(frame)
        except VisionCaptionError as e:
            message, status = describe_error(e, 'Failed to analyze frame')
            emit('analysis_error', {'error': message, 'status': status})
            return
        except Exception as e:
            print(f"[Stream] Error analyzing frame: {e}")
            emit('analysis_error', {'error': str(e) or 'Unknown error', 'status': 500})
            return

        emit('analysis', result.to_dict())

    return app


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description='VisionCaption Web Server')
    parser.add_argument('--config', '-c', help='Path to config file')
    parser.add_argument('--port', '-p', type=int, default=3000, help='Port to listen on')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    args = parser.parse_args()

    app = create_app(args.config)
    socketio = app.config['socketio']

    print("=" * 60)
    print("VisionCaption Web Server")
    print("=" * 60)
    print(f"Running on http://{args.host}:{args.port}")
    print(f"Stream namespace: {STREAM_NAMESPACE}")
    print("=" * 60)

    try:
        socketio.run(app, host=args.host, port=args.port, debug=args.debug, allow_unsafe_werkzeug=True)
    finally:
        reset_gateway(app)


if __name__ == '__main__':
    main()
