"""
beatglow - Session controller
Owns the capture handle, the tick loop and the per-frame pipeline:
amplitude -> peaks -> beat gate -> tempo, plus the spectrum for the renderer.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from amplitude import AmplitudeProcessor, AmplitudeReading
from audio_capture import AcquisitionError, SpectrumCapture
from beat_gate import BeatGate
from config import AudioParameters, Config, ConfigurationOutOfRange, validate_parameters
from frequency_utils import band_bin_range, ms_to_bin_distance
from logging_utils import log_event, log_throttled
from peak_detector import find_peaks
from scheduler import TickScheduler
from spectral_normalizer import SpectralNormalizer
from tempo import TempoEstimate, TempoEstimator

RECENT_BEATS_SHOWN = 5
BEAT_TIME_DISPLAY_MODULO = 10000


class SessionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"


class SessionAlreadyActive(RuntimeError):
    """start() was called while a session is running."""


@dataclass(frozen=True)
class Diagnostics:
    """Read-only debug view of the pipeline"""
    raw_volume: float = 0.0
    amplified_volume: float = 0.0
    loudness: float = 0.0
    raw_bpm: int = 0
    avg_interval_ms: float = 0.0
    recent_beats: tuple = ()          # Last beat times (ms) mod 10000
    beat_history_size: int = 0
    current_peaks: tuple = ()         # Peak bins found in the latest frame


@dataclass(frozen=True)
class RenderPacket:
    """Everything the renderer gets once per tick"""
    spectrum: np.ndarray       # float32, render.band_count values in [0, 1]
    beat_count: int            # Monotonic count of accepted beats
    last_beat_time_s: float    # Seconds from session start to the latest beat
    is_beat: bool              # Inside the flash window of the latest beat
    loudness: float
    is_clipping: bool
    bpm: int


class SessionController:
    """
    Idle -> start() -> Active -> stop() -> Idle.
    Exactly one session may be active; a second start() is rejected.
    """

    def __init__(
        self,
        config: Config,
        renderer: Optional[Callable[[RenderPacket], None]] = None,
        capture_factory: Callable = SpectrumCapture,
        scheduler=None,
        clock: Callable[[], float] = time.monotonic,
        reporter=None,
    ):
        self.config = config
        self.renderer = renderer
        self._capture_factory = capture_factory
        self._scheduler = scheduler or TickScheduler(config.render.target_fps)
        self._clock = clock
        self._reporter = reporter

        # Ticks run on the scheduler thread; start/stop/update come from the caller
        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._params: AudioParameters = validate_parameters(config.params)
        self._capture = None
        self._generation = 0
        self._started_at_ms = 0.0
        self.last_error: Optional[str] = None

        detection = config.detection
        self.amplitude = AmplitudeProcessor(detection.magnitude_ceiling)
        self.gate = BeatGate(detection.history_capacity, detection.beat_flash_ms)
        self.tempo_estimator = TempoEstimator()
        self.normalizer = SpectralNormalizer(config.render)
        self._reading = AmplitudeReading.silent()
        self._last_peaks: tuple = ()

        self._reset_session_stats()

    # ===== LIFECYCLE =====

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    def start(self, params: Optional[AudioParameters] = None) -> None:
        """Acquire the capture device and begin ticking.

        Raises SessionAlreadyActive, ConfigurationOutOfRange or AcquisitionError;
        on any failure the session stays Idle with nothing left open and the
        previous parameters in place.
        """
        with self._lock:
            if self._state is SessionState.ACTIVE:
                log_event("WARNING", "Session", "Start rejected, session already active")
                raise SessionAlreadyActive("Session already active; stop it first")

            session_params = self._params if params is None else validate_parameters(params)

            capture = self._capture_factory(self.config.capture, session_params)
            started = False
            try:
                capture.start()
                started = True
            except AcquisitionError as e:
                self.last_error = str(e)
                log_event("ERROR", "Session", "Audio acquisition failed", error=e)
                raise
            finally:
                if not started:
                    capture.stop()

            self._params = session_params
            self.config.params = session_params
            self._capture = capture
            self._state = SessionState.ACTIVE
            self._generation += 1
            self.last_error = None
            self._started_at_ms = self._now_ms()
            self._reset_session_stats()
            log_event("INFO", "Session", "Started",
                      fps=f"{self.config.render.target_fps:.0f}",
                      min_peak_distance_ms=session_params.min_peak_distance_ms,
                      peak_threshold=session_params.peak_threshold,
                      gain=session_params.gain_value)
            generation = self._generation
            self._scheduler.start(lambda: self._on_tick(generation))

    def stop(self) -> None:
        """Release capture, stop the tick loop and zero all derived state.

        Calling it again, or while Idle, changes nothing.
        """
        with self._lock:
            was_active = self._state is SessionState.ACTIVE
            self._state = SessionState.IDLE
            self._generation += 1
            self._scheduler.stop()

            capture, self._capture = self._capture, None
            try:
                if capture is not None:
                    capture.stop()
                if was_active:
                    self._finish_session()
                    log_event("INFO", "Session", "Stopped")
            finally:
                self.gate.reset()
                self.tempo_estimator.reset()
                self.normalizer.reset()
                self._reading = AmplitudeReading.silent()
                self._last_peaks = ()

    # ===== PARAMETERS =====

    @property
    def parameters(self) -> AudioParameters:
        return self._params

    def update_parameters(self, params: Optional[AudioParameters] = None, **changes) -> bool:
        """Swap in a new parameter snapshot.

        Either pass a full AudioParameters or keyword changes to the current one.
        Unknown keys and out-of-range values reject the update whole and the
        old snapshot is kept.
        """
        try:
            if params is None:
                updated = self._params.with_changes(**changes)
            else:
                updated = validate_parameters(params)
        except ConfigurationOutOfRange as e:
            self.last_error = str(e)
            bounds = e.bounds or (None, None)
            log_event("WARNING", "Session", "Parameter update rejected",
                      key=e.key, value=e.value, low=bounds[0], high=bounds[1])
            return False

        with self._lock:
            previous, self._params = self._params, updated
            self.config.params = updated
            if self._capture is not None:
                self._capture.update_parameters(updated)
        log_event("DEBUG", "Session", "Parameters updated", **previous.changed_fields(updated))
        return True

    # ===== TICK LOOP =====

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _on_tick(self, generation: int) -> None:
        with self._lock:
            if self._state is not SessionState.ACTIVE or generation != self._generation:
                return
            try:
                self.tick()
            except Exception as e:
                log_throttled("tick-failed", 1.0, "ERROR", "Session", "Tick failed", error=e)

    def tick(self) -> Optional[RenderPacket]:
        """Run the pipeline once on the newest frame. Returns None when Idle."""
        with self._lock:
            if self._state is not SessionState.ACTIVE or self._capture is None:
                return None

            params = self._params
            detection = self.config.detection
            frame = self._capture.get_latest_frame()
            now_ms = self._now_ms()

            reading = self.amplitude.process(frame.magnitudes, params)
            self._reading = reading

            low, high = band_bin_range(
                detection.band_low_hz, detection.band_high_hz,
                frame.sample_rate, frame.fft_size, frame.bin_count,
            )
            min_distance = ms_to_bin_distance(params.min_peak_distance_ms, frame.sample_rate, frame.fft_size)
            peaks = find_peaks(frame.magnitudes[low:high], min_distance,
                               params.peak_threshold * detection.magnitude_ceiling)
            self._last_peaks = tuple(low + p for p in peaks)

            event = self.gate.on_frame(peaks, now_ms, params.min_peak_distance_ms)
            if event is not None:
                tempo = self.tempo_estimator.estimate(self.gate.history)
                if tempo.is_valid:
                    log_event("DEBUG", "Tempo", "Tempo updated", bpm=tempo.bpm,
                              raw_bpm=tempo.raw_bpm, interval_ms=f"{tempo.avg_interval_ms:.1f}")

            spectrum = self.normalizer.normalize(frame.decibels, frame.sample_rate, frame.fft_size)
            self._update_session_stats(reading, event is not None)

            packet = RenderPacket(
                spectrum=spectrum,
                beat_count=self.gate.beat_count,
                last_beat_time_s=self._last_beat_time_s(),
                is_beat=self.gate.is_flashing(now_ms),
                loudness=reading.loudness,
                is_clipping=reading.is_clipping,
                bpm=self.tempo_estimator.current.bpm,
            )
            self._deliver(packet)
            return packet

    def _deliver(self, packet: RenderPacket) -> None:
        if self.renderer is None:
            return
        try:
            self.renderer(packet)
        except Exception as e:
            log_event("ERROR", "Render", "Renderer raised", error=e)

    def _last_beat_time_s(self) -> float:
        last = self.gate.last_beat_ms
        if last is None:
            return 0.0
        return max(0.0, (last - self._started_at_ms) / 1000.0)

    # ===== READ-ONLY STATE =====

    @property
    def tempo(self) -> TempoEstimate:
        return self.tempo_estimator.current

    @property
    def bpm(self) -> int:
        return self.tempo_estimator.current.bpm

    @property
    def loudness(self) -> float:
        return self._reading.loudness

    @property
    def is_clipping(self) -> bool:
        return self._reading.is_clipping

    @property
    def beat_count(self) -> int:
        return self.gate.beat_count

    @property
    def is_beat(self) -> bool:
        return self.gate.is_flashing(self._now_ms())

    def diagnostics(self) -> Diagnostics:
        with self._lock:
            tempo = self.tempo_estimator.current
            history = self.gate.history
            return Diagnostics(
                raw_volume=self._reading.raw_volume,
                amplified_volume=self._reading.amplified_volume,
                loudness=self._reading.loudness,
                raw_bpm=tempo.raw_bpm,
                avg_interval_ms=tempo.avg_interval_ms,
                recent_beats=tuple(int(t) % BEAT_TIME_DISPLAY_MODULO
                                   for t in history.recent(RECENT_BEATS_SHOWN)),
                beat_history_size=len(history),
                current_peaks=self._last_peaks,
            )

    # ===== SESSION STATS =====

    def _reset_session_stats(self) -> None:
        self._session_started_at = time.time()
        self._session_frame_count = 0
        self._session_beat_count = 0
        self._session_clipping_frames = 0
        self._session_volume_min: float | None = None
        self._session_volume_max: float | None = None
        self._session_volume_sum = 0.0
        self._session_bpm_min: int | None = None
        self._session_bpm_max: int | None = None

    def _update_session_stats(self, reading: AmplitudeReading, beat_accepted: bool) -> None:
        self._session_frame_count += 1
        self._session_volume_sum += reading.raw_volume
        if reading.is_clipping:
            self._session_clipping_frames += 1
        if self._session_volume_min is None or reading.raw_volume < self._session_volume_min:
            self._session_volume_min = reading.raw_volume
        if self._session_volume_max is None or reading.raw_volume > self._session_volume_max:
            self._session_volume_max = reading.raw_volume
        if beat_accepted:
            self._session_beat_count += 1
            bpm = self.tempo_estimator.current.bpm
            if bpm > 0:
                if self._session_bpm_min is None or bpm < self._session_bpm_min:
                    self._session_bpm_min = bpm
                if self._session_bpm_max is None or bpm > self._session_bpm_max:
                    self._session_bpm_max = bpm

    def _session_summary(self) -> dict:
        ended_at = time.time()
        frames = self._session_frame_count
        tempo = self.tempo_estimator.current
        return {
            "session_started_at": self._session_started_at,
            "session_ended_at": ended_at,
            "seconds": round(max(0.0, ended_at - self._session_started_at), 3),
            "frames": frames,
            "beats": self._session_beat_count,
            "clipping_frames": self._session_clipping_frames,
            "raw_volume_low": float(self._session_volume_min or 0.0),
            "raw_volume_high": float(self._session_volume_max or 0.0),
            "raw_volume_mean": self._session_volume_sum / frames if frames else 0.0,
            "bpm_low": self._session_bpm_min or 0,
            "bpm_high": self._session_bpm_max or 0,
            "final_bpm": tempo.bpm,
            "final_raw_bpm": tempo.raw_bpm,
            "final_avg_interval_ms": tempo.avg_interval_ms,
        }

    def _finish_session(self) -> None:
        if self._session_frame_count <= 0:
            return

        summary = self._session_summary()
        log_event(
            "INFO",
            "Session",
            "Shutdown levels summary",
            frames=summary["frames"],
            seconds=f"{summary['seconds']:.1f}",
            beats=summary["beats"],
            clipping_frames=summary["clipping_frames"],
            raw_volume_min=f"{summary['raw_volume_low']:.4f}",
            raw_volume_max=f"{summary['raw_volume_high']:.4f}",
            raw_volume_mean=f"{summary['raw_volume_mean']:.4f}",
            bpm=summary["final_bpm"],
        )

        if self._reporter is not None and self.config.report_generation_enabled:
            try:
                self._reporter.save_session(summary)
            except Exception as e:
                # A broken report never blocks shutdown
                log_event("ERROR", "Report", "Could not write session report", error=e)
