# beatglow Configuration
# All default values, parameter ranges and config migration

from dataclasses import dataclass, field, fields, is_dataclass, replace

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1

# Valid range for every live audio parameter (inclusive)
PARAMETER_RANGES = {
    'min_peak_distance_ms': (100.0, 1000.0),
    'peak_threshold': (0.1, 0.9),
    'smoothing_constant': (0.1, 0.99),
    'filter_frequency_hz': (60.0, 2000.0),
    'filter_q': (0.1, 5.0),
    'gain_value': (0.1, 5.0),
}


class ConfigurationOutOfRange(ValueError):
    """A parameter update named an unknown key or fell outside its declared range."""

    def __init__(self, key: str, value, bounds: tuple[float, float] | None):
        self.key = key
        self.value = value
        self.bounds = bounds
        if bounds is None:
            super().__init__(f"{key}={value} is not an audio parameter")
        else:
            super().__init__(f"{key}={value} outside [{bounds[0]}, {bounds[1]}]")


@dataclass(frozen=True)
class AudioParameters:
    """Live detection parameters. Replaced as a whole, never mutated."""
    min_peak_distance_ms: float = 350.0   # Debounce between beats (ms), also peak spacing in bins
    peak_threshold: float = 0.5           # Fraction of the magnitude ceiling a peak must exceed
    smoothing_constant: float = 0.85      # Analyser temporal smoothing (0-1)
    filter_frequency_hz: float = 500.0    # Band-pass pre-filter centre (Hz)
    filter_q: float = 1.5                 # Band-pass pre-filter Q
    gain_value: float = 1.0               # Input gain

    def with_changes(self, **changes) -> "AudioParameters":
        """Return a validated copy with ``changes`` applied."""
        for key, value in changes.items():
            if key not in PARAMETER_RANGES:
                raise ConfigurationOutOfRange(key, value, None)
        updated = replace(self, **changes)
        validate_parameters(updated)
        return updated

    def changed_fields(self, other: "AudioParameters") -> dict:
        """Fields whose value in ``other`` differs from this snapshot."""
        return {
            f.name: getattr(other, f.name)
            for f in fields(self)
            if getattr(self, f.name) != getattr(other, f.name)
        }


def validate_parameters(params: AudioParameters) -> AudioParameters:
    """Raise ConfigurationOutOfRange for the first field outside its range."""
    for name, (low, high) in PARAMETER_RANGES.items():
        value = getattr(params, name)
        try:
            numeric = float(value)
        except (TypeError, ValueError):
            raise ConfigurationOutOfRange(name, value, (low, high)) from None
        if not low <= numeric <= high:
            raise ConfigurationOutOfRange(name, value, (low, high))
    return params


@dataclass
class CaptureConfig:
    """Audio capture / spectral analysis settings"""
    sample_rate: int = 44100
    fft_size: int = 2048              # Analysis window; bin count is fft_size // 2
    block_size: int = 512             # Samples per sounddevice callback
    channels: int = 1
    # Device index - None means use system default input
    device_index: int | None = None
    # Byte conversion range for magnitude frames (dB)
    min_decibels: float = -100.0
    max_decibels: float = -30.0


@dataclass
class DetectionConfig:
    """Beat detection settings not exposed as live parameters"""
    band_low_hz: float = 60.0         # Lowest bin scanned for peaks (Hz)
    band_high_hz: float = 2000.0      # Highest bin scanned for peaks (Hz)
    history_capacity: int = 20        # Beat timestamps kept for tempo estimation
    beat_flash_ms: float = 100.0      # How long a beat stays "on" for the renderer
    magnitude_ceiling: float = 256.0  # Byte magnitudes are divided by this


@dataclass
class RenderConfig:
    """Spectrum normalization for the renderer"""
    band_count: int = 1024
    min_freq_hz: float = 20.0
    max_freq_hz: float = 20000.0
    min_db: float = -90.0
    max_db: float = -30.0
    compression: float = 1.5          # Power-law exponent applied after scaling
    smoothing: float = 0.7            # Weight of the previous output band
    target_fps: float = 60.0          # Tick rate of the session loop


@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    params: AudioParameters = field(default_factory=AudioParameters)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    # Global
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)
    report_generation_enabled: bool = True    # Write per-session reports on stop


def _is_frozen(obj) -> bool:
    return bool(getattr(getattr(obj, '__dataclass_params__', None), 'frozen', False))


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; frozen members are rebuilt and validated whole."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current) and _is_frozen(current):
            if isinstance(value, dict):
                setattr(target, key, _rebuild_frozen(key, current, value))
            continue

        if is_dataclass(current) and isinstance(value, dict):
            apply_dict_to_dataclass(current, value)
            continue

        setattr(target, key, value)


def _rebuild_frozen(key: str, current, data: dict):
    known = {f.name for f in fields(current)}
    changes = {k: v for k, v in data.items() if k in known and v is not None}
    try:
        updated = replace(current, **changes)
        if isinstance(updated, AudioParameters):
            validate_parameters(updated)
        return updated
    except (TypeError, ValueError) as e:
        log_event("WARNING", "Config", "Rejected stored snapshot, keeping defaults",
                  section=key, error=e)
        return current


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Restores defaults for missing/None values and bumps version."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    if version < 1:
        defaults = Config()
        for section in ('capture', 'detection', 'render'):
            current = getattr(config, section)
            default_section = getattr(defaults, section)
            for f in fields(current):
                if f.name == 'device_index':
                    continue
                if getattr(current, f.name) is None:
                    setattr(current, f.name, getattr(default_section, f.name))

    if getattr(config, 'log_level', None) is None:
        config.log_level = "INFO"
    if getattr(config, 'report_generation_enabled', True) is None:
        config.report_generation_enabled = True

    # Always clamp the history size and band count into usable ranges
    try:
        capacity = int(config.detection.history_capacity)
    except (TypeError, ValueError):
        capacity = 20
    config.detection.history_capacity = max(2, min(256, capacity))

    try:
        bands = int(config.render.band_count)
    except (TypeError, ValueError):
        bands = 1024
    config.render.band_count = max(1, min(4096, bands))

    config.version = CURRENT_CONFIG_VERSION


# Default config instance
DEFAULT_CONFIG = Config()
