"""
VisionCaption Live Client

Runs the camera loop, the microphone loop, or both against the web app and
prints every result as it arrives. `--mode caption FILE` captions a single
image or video file instead.
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directories to path for imports
ROOT_DIR = Path(__file__).parent.parent.parent
sys.path.insert(0, str(ROOT_DIR))

from visioncaption.utils.config import load_config, load_env, get_section
load_env(ROOT_DIR / '.env')

from visioncaption.capture import AudioSampler, FrameSampler, MediaAcquisition
from visioncaption.core import (
    AnalysisResult,
    DeviceKind,
    PollingLoop,
    ResultStore,
    TranscriptionResult,
    VisionCaptionError,
    start_both,
    stop_all,
)
from visioncaption.processing import DuplexTransport, HttpTransport, generate_caption

DEFAULT_BASE_URL = 'http://localhost:3000'
MODES = ('video', 'audio', 'both', 'caption')
TRANSPORTS = ('http', 'duplex')


def format_result(result) -> List[str]:
    """Render a result as console lines."""
    if isinstance(result, AnalysisResult):
        lines = [f"Caption: {result.caption or '-'}"]
        if result.sign_language:
            lines.append(f"Sign language: {result.sign_language}")
        if result.objects:
            objects = ', '.join(f"{o.label} ({o.confidence * 100:.0f}%)" for o in result.objects)
            lines.append(f"Objects: {objects}")
        for signal in result.signals:
            lines.append(f"Signal [{signal.type}]: {signal.message}")
        return lines

    if isinstance(result, TranscriptionResult):
        line = f"({result.language or 'unknown'}) {result.english_text}"
        if result.original_text and result.original_text != result.english_text:
            line += f"  <- \"{result.original_text}\""
        return [line, f"Confidence: {result.confidence * 100:.0f}%"]

    return [str(result)]


class ConsolePrinter:
    """ResultStore listener that prints results and errors."""

    def __init__(self, label: str):
        self.label = label
        self._last_result = None

    def __call__(self, store: ResultStore):
        if store.error:
            print(f"[{self.label}] {store.error_kind}: {store.error}")
            return

        # Clearing an error also notifies; only print new results
        if store.result is None or store.result is self._last_result:
            return
        self._last_result = store.result
        for line in format_result(store.result):
            print(f"[{self.label}] {line}")


class VisionCaptionLive:
    """Main application class for the live client."""

    def __init__(self, config_path: str = None, mode: str = 'video', transport: str = 'http',
                 interval_ms: int = None, duration_s: float = None, verbose: bool = False):
        """
        Initialize the application.

        Args:
            config_path: Path to config file
            mode: 'video', 'audio' or 'both'
            transport: 'http' or 'duplex' (duplex applies to the video loop only)
            interval_ms: Override both loop intervals
            duration_s: Stop after this many seconds (None runs until Ctrl+C)
            verbose: Enable verbose output
        """
        if config_path is None:
            config_path = Path(__file__).parent / 'config.yaml'
        self.config = load_config(config_path)
        self.mode = mode
        self.transport_name = transport
        self.interval_ms = interval_ms
        self.duration_s = duration_s
        self.verbose = verbose

        endpoint = get_section(self.config, 'endpoint')
        self.base_url = (endpoint.get('base_url') or DEFAULT_BASE_URL).strip()
        self.api_key = (endpoint.get('api_key') or '').strip() or None
        self.timeout = float(endpoint.get('timeout_s', 60))
        self.namespace = endpoint.get('namespace') or '/stream'

        self.media = MediaAcquisition(verbose=verbose)
        self.loops: List[PollingLoop] = []
        self.video_loop: Optional[PollingLoop] = None
        self.audio_loop: Optional[PollingLoop] = None

        if mode in ('video', 'both'):
            self.video_loop = self._build_video_loop()
            self.loops.append(self.video_loop)
        if mode in ('audio', 'both'):
            self.audio_loop = self._build_audio_loop()
            self.loops.append(self.audio_loop)

    def _loop_config(self, section: str) -> dict:
        loop_config = dict(get_section(self.config, section))
        loop_config.setdefault('rate_limit_cooldown_ms', self.config.get('rate_limit_cooldown_ms', 10000))
        if self.interval_ms is not None:
            loop_config['interval_ms'] = self.interval_ms
        return loop_config

    def _build_video_loop(self) -> PollingLoop:
        loop_config = self._loop_config('video')
        if self.transport_name == 'duplex':
            transport = DuplexTransport(self.base_url, namespace=self.namespace, verbose=self.verbose)
        else:
            transport = HttpTransport(self.base_url, kind='image', api_key=self.api_key,
                                      timeout=self.timeout, verbose=self.verbose)

        store = ResultStore('video')
        store.on_change(ConsolePrinter('Vision'))
        return PollingLoop('Vision', DeviceKind.CAMERA, self.media, FrameSampler(loop_config, self.verbose),
                           transport, store=store, config=loop_config, verbose=self.verbose)

    def _build_audio_loop(self) -> PollingLoop:
        loop_config = self._loop_config('audio')
        if self.transport_name == 'duplex':
            print("[Audio] Duplex stream carries frames only, audio uses HTTP")
        transport = HttpTransport(self.base_url, kind='audio', api_key=self.api_key,
                                  timeout=self.timeout, verbose=self.verbose)

        store = ResultStore('audio')
        store.on_change(ConsolePrinter('Audio'))
        return PollingLoop('Audio', DeviceKind.MICROPHONE, self.media, AudioSampler(loop_config, self.verbose),
                           transport, store=store, config=loop_config, verbose=self.verbose)

    # ─────────────────────────────────────────────────────────────
    # Main Loop
    # ─────────────────────────────────────────────────────────────

    async def run(self) -> int:
        """Start the loops and wait until they stop, time runs out, or Ctrl+C."""
        print("=" * 60)
        print("VisionCaption Live")
        print("=" * 60)
        print(f"Endpoint: {self.base_url}")
        print(f"Mode: {self.mode}")
        print(f"Transport: {self.transport_name}")
        for loop in self.loops:
            print(f"{loop.name} interval: {loop.interval_ms}ms")
        print("=" * 60)

        try:
            if self.video_loop and self.audio_loop:
                await start_both(self.video_loop, self.audio_loop)
            else:
                await self.loops[0].start()

            print("\nStreaming. Press Ctrl+C to exit.\n")
            await self._wait()
            return 0
        except VisionCaptionError as e:
            print(f"Error: {e.message}")
            return 1
        finally:
            await self.cleanup()

    async def _wait(self):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.duration_s if self.duration_s else None
        while any(polling.is_active for polling in self.loops):
            if deadline is not None and loop.time() >= deadline:
                break
            await asyncio.sleep(0.25)

    async def cleanup(self):
        """Stop every loop and release devices."""
        await stop_all(*self.loops)
        if self.verbose:
            for loop in self.loops:
                print(f"[{loop.name}] {loop.get_status()}")
        print("Goodbye!")


async def run_caption(config_path: str, file_path: str, verbose: bool = False) -> int:
    """Caption one image or video file and print the result."""
    if config_path is None:
        config_path = Path(__file__).parent / 'config.yaml'
    endpoint = get_section(load_config(config_path), 'endpoint')
    base_url = (endpoint.get('base_url') or DEFAULT_BASE_URL).strip()
    api_key = (endpoint.get('api_key') or '').strip() or None

    try:
        result = await generate_caption(file_path, base_url=base_url, api_key=api_key, verbose=verbose)
    except (ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1
    except VisionCaptionError as e:
        print(f"Error: {e.message}")
        return 1

    print(result.caption)
    return 0


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description='VisionCaption Live Client')
    parser.add_argument('file', nargs='?', help='Image or video file (caption mode)')
    parser.add_argument('--config', '-c', help='Path to config file')
    parser.add_argument('--mode', '-m', choices=MODES, default='video', help='What to capture')
    parser.add_argument('--transport', '-t', choices=TRANSPORTS, default='http', help='Frame transport')
    parser.add_argument('--interval-ms', type=int, help='Override the sampling interval')
    parser.add_argument('--duration', type=float, help='Stop after N seconds')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output')
    args = parser.parse_args()

    if args.mode == 'caption':
        if not args.file:
            parser.error('caption mode needs a file')
        sys.exit(asyncio.run(run_caption(args.config, args.file, verbose=args.verbose)))

    app = VisionCaptionLive(
        config_path=args.config,
        mode=args.mode,
        transport=args.transport,
        interval_ms=args.interval_ms,
        duration_s=args.duration,
        verbose=args.verbose,
    )
    try:
        sys.exit(asyncio.run(app.run()))
    except KeyboardInterrupt:
        print("\nShutting down...")


if __name__ == '__main__':
    main()
