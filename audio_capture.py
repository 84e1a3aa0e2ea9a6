"""
beatglow - Audio capture
Captures input audio via sounddevice and serves analyser-style spectrum
frames: byte magnitudes plus the parallel decibel array.
"""

import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.signal import iirpeak, sosfilt, sosfilt_zi, tf2sos

from config import AudioParameters, CaptureConfig
from logging_utils import log_event, log_throttled


class AcquisitionError(RuntimeError):
    """Audio input could not be opened (missing device, permission denied)."""


@dataclass(frozen=True)
class FrequencyFrame:
    """One spectrum snapshot"""
    magnitudes: np.ndarray    # uint8 per-bin magnitude (0-255)
    decibels: np.ndarray      # float32 per-bin level in dB
    sample_rate: int
    fft_size: int

    @property
    def bin_count(self) -> int:
        return int(self.magnitudes.shape[0])


def list_input_devices() -> list[dict]:
    """Return index/name/inputs/sample_rate for every device with inputs."""
    import sounddevice as sd

    devices = []
    for i, d in enumerate(sd.query_devices()):
        if d['max_input_channels'] <= 0:
            continue
        devices.append({
            'index': i,
            'name': d['name'],
            'inputs': d['max_input_channels'],
            'sample_rate': d['default_samplerate'],
        })
    return devices


class SpectrumCapture:
    """
    Input stream -> gain -> band-pass pre-filter -> ring buffer.
    get_latest_frame() analyses whatever is in the buffer right now.
    """

    def __init__(self, config: CaptureConfig, params: Optional[AudioParameters] = None):
        self.config = config
        self.sample_rate = int(config.sample_rate)
        self.fft_size = int(config.fft_size)
        self.bin_count = self.fft_size // 2

        self.stream = None
        self.running = False

        # Ring buffer of the most recent fft_size samples
        self._buffer = np.zeros(self.fft_size, dtype=np.float32)
        self._buffer_lock = threading.Lock()

        self._window = np.blackman(self.fft_size)
        self._smoothed = np.zeros(self.bin_count, dtype=np.float64)

        # Live parameters (swapped whole by update_parameters)
        self._gain = 1.0
        self._smoothing = 0.85
        self._filter_sos = None
        self._filter_zi = None
        self._filter_primed = False
        self._filter_key: Optional[tuple[float, float]] = None
        self.update_parameters(params or AudioParameters())

    def update_parameters(self, params: AudioParameters) -> None:
        """Apply gain, smoothing and pre-filter settings from a snapshot."""
        key = (float(params.filter_frequency_hz), float(params.filter_q))
        sos, zi = self._filter_sos, self._filter_zi
        if key != self._filter_key:
            sos, zi = self._design_filter(*key)
        with self._buffer_lock:
            self._gain = float(params.gain_value)
            self._smoothing = float(params.smoothing_constant)
            if key != self._filter_key:
                self._filter_sos = sos
                self._filter_zi = zi
                self._filter_primed = False
                self._filter_key = key

    def _design_filter(self, center_hz: float, q: float):
        nyquist = self.sample_rate / 2
        center = min(max(center_hz, 1.0), nyquist * 0.95)
        try:
            b, a = iirpeak(center, q, fs=self.sample_rate)
            sos = tf2sos(b, a)
            zi = sosfilt_zi(sos)
            log_event("DEBUG", "Capture", "Band-pass pre-filter", center=f"{center:.0f}", q=f"{q:.2f}")
            return sos, zi
        except ValueError as e:
            log_event("ERROR", "Capture", "Failed to design pre-filter", error=e)
            return None, None

    def start(self) -> None:
        """Open the input stream. Raises AcquisitionError on any failure."""
        if self.running:
            return
        try:
            import sounddevice as sd

            self.stream = sd.InputStream(
                device=self.config.device_index,
                channels=self.config.channels,
                samplerate=self.sample_rate,
                blocksize=self.config.block_size,
                dtype="float32",
                callback=self._audio_callback,
            )
            self.stream.start()
        except Exception as e:
            log_event("ERROR", "Capture", "Failed to open input stream", error=e)
            self.stop()
            raise AcquisitionError("Microphone access denied") from e

        self.running = True
        log_event("INFO", "Capture", "Input capture started",
                  device=self.config.device_index if self.config.device_index is not None else "default",
                  sample_rate=self.sample_rate, fft_size=self.fft_size)

    def stop(self) -> None:
        """Close the input stream. Safe to call at any time."""
        self.running = False
        stream, self.stream = self.stream, None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as e:
                log_event("WARNING", "Capture", "Error while closing input stream", error=e)
        with self._buffer_lock:
            self._buffer[:] = 0.0
            self._smoothed[:] = 0.0
            if self._filter_sos is not None:
                self._filter_zi = sosfilt_zi(self._filter_sos)
            self._filter_primed = False

    def _audio_callback(self, indata, frames, time_info, status):
        if status:
            log_throttled("capture-status", 5.0, "WARNING", "Capture", "Stream status", status=status)
        # Mix to mono
        mono = np.asarray(indata, dtype=np.float32)
        if mono.ndim > 1:
            mono = mono.mean(axis=1)
        self._push_samples(mono)

    def _push_samples(self, samples: np.ndarray) -> None:
        samples = np.asarray(samples, dtype=np.float64).ravel()
        if samples.size == 0:
            return
        with self._buffer_lock:
            samples = samples * self._gain
            if self._filter_sos is not None and self._filter_zi is not None:
                # Fresh filter state is scaled to the first sample to avoid a step transient
                zi = self._filter_zi if self._filter_primed else self._filter_zi * samples[0]
                samples, self._filter_zi = sosfilt(self._filter_sos, samples, zi=zi)
                self._filter_primed = True
            samples = samples.astype(np.float32)
            n = samples.size
            if n >= self.fft_size:
                self._buffer[:] = samples[-self.fft_size:]
            else:
                self._buffer[:-n] = self._buffer[n:]
                self._buffer[-n:] = samples

    def get_latest_frame(self) -> FrequencyFrame:
        """Analyse the current buffer. Never waits for new audio."""
        with self._buffer_lock:
            block = self._buffer.astype(np.float64)
            smoothing = self._smoothing

        spectrum = np.abs(np.fft.rfft(block * self._window))[:self.bin_count] / self.fft_size
        with self._buffer_lock:
            self._smoothed = smoothing * self._smoothed + (1.0 - smoothing) * spectrum
            smoothed = self._smoothed.copy()

        with np.errstate(divide='ignore'):
            decibels = 20.0 * np.log10(smoothed)

        min_db = self.config.min_decibels
        max_db = self.config.max_decibels
        scaled = np.floor(255.0 / (max_db - min_db) * (decibels - min_db))
        magnitudes = np.clip(np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0), 0, 255)

        return FrequencyFrame(
            magnitudes=magnitudes.astype(np.uint8),
            decibels=decibels.astype(np.float32),
            sample_rate=self.sample_rate,
            fft_size=self.fft_size,
        )
