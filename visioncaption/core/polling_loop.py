"""
Periodic capture-and-analyze loop.

One PollingLoop owns one device handle, one recurring timer and one result
slot. Everything runs on a single asyncio event loop; blocking device and
network work is pushed to worker threads by the samplers and transports.

State machine:
    INACTIVE --start()--> IDLE --tick--> BUSY --done--> IDLE ... --stop()--> INACTIVE

Invariants:
- At most one tick in flight per loop. A tick that fires while BUSY is
  dropped, never queued.
- Every start()/stop() bumps a generation counter. Completions carrying an
  older generation (late HTTP responses, duplex pushes, finally blocks) are
  discarded, so a stopped activation cannot touch a newer one.
- The device handle is released on every stop path, and only after the
  tick in flight has finished with it.
"""

import asyncio
import functools
from enum import Enum
from typing import Optional

from .errors import RateLimited, UpstreamFailure, VisionCaptionError
from .models import DeviceHandle, DeviceKind
from .result_store import ResultStore

MIN_INTERVAL_MS = 1000
DEFAULT_INTERVAL_MS = 2000
DEFAULT_RATE_LIMIT_COOLDOWN_MS = 10000


class LoopState(Enum):
    INACTIVE = "inactive"
    IDLE = "active-idle"
    BUSY = "active-busy"


class PollingLoop:
    """
    Orchestrates acquisition, sampling and transport on a fixed interval.

    Usage:
        loop = PollingLoop('Vision', DeviceKind.CAMERA, media, FrameSampler(), transport,
                           config={'interval_ms': 5000})
        async with loop:
            await asyncio.sleep(60)
        # or: await loop.start() ... await loop.stop()
    """

    def __init__(self, name: str, kind: DeviceKind, media, sampler, transport,
                 store: ResultStore = None, config: dict = None, verbose: bool = False):
        """
        Args:
            name: Log tag, e.g. 'Vision' or 'Audio'
            kind: Device kind to acquire
            media: object with async acquire(kind, constraints) and release(handle)
            sampler: object with async sample(handle) and stop()
            transport: AnalysisTransport implementation
            store: ResultStore to update (created if omitted)
            config: interval_ms, rate_limit_cooldown_ms, constraints
            verbose: Enable verbose logging
        """
        self.name = name
        self.kind = DeviceKind(kind)
        self.media = media
        self.sampler = sampler
        self.transport = transport
        self.store = store or ResultStore(name.lower())
        self.config = config or {}
        self.verbose = verbose

        self.interval_ms = max(MIN_INTERVAL_MS, int(self.config.get('interval_ms', DEFAULT_INTERVAL_MS)))
        self.rate_limit_cooldown_ms = max(
            0, int(self.config.get('rate_limit_cooldown_ms', DEFAULT_RATE_LIMIT_COOLDOWN_MS))
        )
        self.constraints = dict(self.config.get('constraints') or {})

        self._generation = 0
        self._active = False
        self._starting = False
        self._busy = False
        self._handle: Optional[DeviceHandle] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._cooldown_until = 0.0

        # Metrics
        self.ticks_fired = 0
        self.ticks_dropped = 0
        self.sends = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> LoopState:
        if not self._active:
            return LoopState.INACTIVE
        return LoopState.BUSY if self._busy else LoopState.IDLE

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def handle(self) -> Optional[DeviceHandle]:
        return self._handle

    @property
    def last_error(self) -> Optional[str]:
        return self.store.error

    def get_status(self) -> dict:
        return {
            'name': self.name,
            'state': self.state.value,
            'generation': self._generation,
            'interval_ms': self.interval_ms,
            'ticks_fired': self.ticks_fired,
            'ticks_dropped': self.ticks_dropped,
            'sends': self.sends,
            **self.store.snapshot(),
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> bool:
        """
        Acquire the device, connect the transport, start the timer and fire
        the first tick immediately.

        Returns:
            True if this call activated the loop, False if it was already
            active or was stopped while starting.

        Raises:
            PermissionDenied, DeviceUnavailable: acquisition failed
            UpstreamFailure: the transport could not connect
        """
        # A stop still draining the previous activation must finish first
        if self._shutdown_task is not None and not self._shutdown_task.done():
            await asyncio.shield(self._shutdown_task)

        if self._active or self._starting:
            print(f"[{self.name}] Already running")
            return False

        self._generation += 1
        generation = self._generation
        self._starting = True
        try:
            try:
                handle = await self.media.acquire(self.kind, self.constraints)
            except Exception as e:
                print(f"[{self.name}] Device acquisition failed: {e}")
                self.store.set_error(e)
                raise

            if generation != self._generation:
                await asyncio.to_thread(self.media.release, handle)
                return False
            self._handle = handle

            self.transport.bind(
                on_result=functools.partial(self._on_push_result, generation),
                on_error=functools.partial(self._on_push_error, generation),
            )
            try:
                await self.transport.connect()
            except Exception as e:
                print(f"[{self.name}] Transport connect failed: {e}")
                self._handle = None
                await asyncio.to_thread(self.media.release, handle)
                self.store.set_error(e)
                raise

            if generation != self._generation:
                await self.transport.disconnect()
                await asyncio.to_thread(self.media.release, handle)
                return False
        finally:
            self._starting = False

        self._active = True
        self._busy = False
        self._cooldown_until = 0.0
        self.store.clear_error()

        self._timer_task = asyncio.create_task(self._run_timer(generation))
        print(f"[{self.name}] Started (interval: {self.interval_ms}ms, generation {generation})")
        self._fire_tick()
        return True

    async def stop(self):
        """
        Cancel the timer, stop recording, disconnect and release. Idempotent.

        The tick in flight is awaited before the device is released and the
        transport disconnected, so no worker thread is still reading from the
        stream or posting on the session when they are closed. Its outcome is
        discarded by generation.
        """
        if self._shutdown_task is not None and not self._shutdown_task.done():
            await asyncio.shield(self._shutdown_task)
            return
        if not self._active and not self._starting and self._handle is None:
            return

        self._generation += 1
        self._active = False
        self._busy = False

        timer = self._timer_task
        self._timer_task = None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

        self.sampler.stop()

        tick = self._tick_task
        if tick is asyncio.current_task():
            tick = None

        handle = self._handle
        self._handle = None
        self._shutdown_task = asyncio.create_task(self._shutdown(tick, handle))
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self, tick: Optional[asyncio.Task], handle: Optional[DeviceHandle]):
        if tick is not None and not tick.done():
            await asyncio.wait({tick})

        await asyncio.to_thread(self.media.release, handle)

        try:
            await self.transport.disconnect()
        except Exception as e:
            print(f"[{self.name}] Transport disconnect error: {e}")

        print(f"[{self.name}] Stopped. ticks={self.ticks_fired} dropped={self.ticks_dropped} sends={self.sends}")

    async def wait_idle(self):
        """Wait for the tick currently in flight, if any."""
        task = self._tick_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def __aenter__(self) -> 'PollingLoop':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # =========================================================================
    # Timer and ticks
    # =========================================================================

    async def _run_timer(self, generation: int):
        interval = self.interval_ms / 1000.0
        while self._active and generation == self._generation:
            await asyncio.sleep(interval)
            if generation != self._generation:
                return
            self._fire_tick()

    def _fire_tick(self) -> Optional[asyncio.Task]:
        """Start a tick if the loop is IDLE; otherwise drop it."""
        if not self._active:
            return None

        if self._busy:
            self.ticks_dropped += 1
            if self.verbose:
                print(f"[{self.name}] Tick dropped (busy)")
            return None

        if asyncio.get_running_loop().time() < self._cooldown_until:
            self.ticks_dropped += 1
            if self.verbose:
                print(f"[{self.name}] Tick dropped (rate-limit cooldown)")
            return None

        # Claim BUSY before yielding so a double-fired timer cannot overlap
        self._busy = True
        self.ticks_fired += 1
        self._tick_task = asyncio.create_task(self._tick(self._generation, self._handle))
        return self._tick_task

    async def _tick(self, generation: int, handle: DeviceHandle):
        try:
            try:
                buffer = await self.sampler.sample(handle)
            except Exception as e:
                if self.verbose:
                    print(f"[{self.name}] Sampling failed, skipping tick: {e}")
                buffer = None

            if buffer is None or generation != self._generation:
                return

            self.sends += 1
            try:
                result = await self.transport.send(buffer)
            except VisionCaptionError as e:
                if generation == self._generation:
                    self._handle_error(e)
                return
            except Exception as e:
                if generation == self._generation:
                    self._handle_error(UpstreamFailure(str(e) or 'Failed to analyze'))
                return

            if generation != self._generation:
                if self.verbose:
                    print(f"[{self.name}] Discarding stale result (generation {generation})")
                return

            # Push transports deliver results through _on_push_result
            if result is not None:
                self._accept_result(result)
        finally:
            if generation == self._generation:
                self._busy = False

    # =========================================================================
    # Outcomes
    # =========================================================================

    def _accept_result(self, result):
        if getattr(result, 'is_empty', False):
            self.store.clear_error()
            return
        self.store.set_result(result)
        if self.verbose:
            print(f"[{self.name}] Result: {result}")

    def _handle_error(self, error: VisionCaptionError):
        print(f"[{self.name}] {error.kind}: {error.message}")
        self.store.set_error(error)
        if isinstance(error, RateLimited) and self.rate_limit_cooldown_ms:
            loop = asyncio.get_running_loop()
            self._cooldown_until = loop.time() + self.rate_limit_cooldown_ms / 1000.0

    def _on_push_result(self, generation: int, result):
        if generation != self._generation or not self._active:
            return
        self._accept_result(result)

    def _on_push_error(self, generation: int, error: VisionCaptionError, fatal: bool = False):
        if generation != self._generation or not self._active:
            return
        self._handle_error(error)
        if fatal:
            # Sends need an open connection; streaming cannot continue
            self._stop_task = asyncio.create_task(self.stop())


async def start_both(video_loop: PollingLoop, audio_loop: PollingLoop, stagger_ms: int = None):
    """
    Start the video loop, then the audio loop half an audio interval later so
    the two first ticks do not hit the API in the same instant.
    """
    if stagger_ms is None:
        stagger_ms = audio_loop.interval_ms // 2
    await video_loop.start()
    await asyncio.sleep(max(0, stagger_ms) / 1000.0)
    await audio_loop.start()


async def stop_all(*loops: PollingLoop):
    await asyncio.gather(*(loop.stop() for loop in loops))
