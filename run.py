#!/usr/bin/env python3
"""
beatglow - live tempo estimation from an audio input

Listens to an input device, detects beats, estimates BPM and draws the
spectrum in the terminal.
"""

import argparse
import cProfile
import signal
import sys
import threading

from audio_capture import AcquisitionError, list_input_devices
from config import PARAMETER_RANGES, ConfigurationOutOfRange
from config_persistence import get_config_dir, load_config, save_config
from console_renderer import ConsoleRenderer
from logging_utils import log_event, set_log_level
from session import SessionController
from session_reporter import SessionReporter

# CLI flag -> AudioParameters field
PARAM_FLAGS = {
    'min_peak_distance': 'min_peak_distance_ms',
    'threshold': 'peak_threshold',
    'smoothing': 'smoothing_constant',
    'filter_freq': 'filter_frequency_hz',
    'filter_q': 'filter_q',
    'gain': 'gain_value',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run beatglow")
    parser.add_argument("--list-devices", action="store_true",
                        help="List audio input devices and exit")
    parser.add_argument("--device", type=int, default=None,
                        help="Input device index (default: system default)")
    for flag, field_name in PARAM_FLAGS.items():
        low, high = PARAMETER_RANGES[field_name]
        parser.add_argument(f"--{flag.replace('_', '-')}", dest=flag, type=float, default=None,
                            help=f"{field_name} ({low:g}-{high:g})")
    parser.add_argument("--fps", type=float, default=None,
                        help="Tick rate (default: from config, 60)")
    parser.add_argument("--seconds", type=float, default=None,
                        help="Stop after this many seconds (default: run until Ctrl+C)")
    parser.add_argument("--log-level", default=None,
                        help="DEBUG/INFO/WARNING/ERROR (default: from config)")
    parser.add_argument("--save-config", action="store_true",
                        help="Persist the effective parameters to the config file")
    parser.add_argument("--profile", action="store_true",
                        help="Enable cProfile and save stats to --profile-out")
    parser.add_argument("--profile-out", default="profile.prof",
                        help="Path to save cProfile stats (default: profile.prof)")
    return parser


def run_session(args: argparse.Namespace) -> int:
    config = load_config()
    set_log_level(args.log_level or config.log_level)

    if args.device is not None:
        config.capture.device_index = args.device
    if args.fps is not None:
        config.render.target_fps = args.fps

    changes = {
        field_name: getattr(args, flag)
        for flag, field_name in PARAM_FLAGS.items()
        if getattr(args, flag) is not None
    }
    try:
        params = config.params.with_changes(**changes)
    except ConfigurationOutOfRange as e:
        log_event("ERROR", "CLI", "Invalid parameter", error=e)
        return 2
    config.params = params

    if args.save_config:
        save_config(config)

    reporter = SessionReporter(get_config_dir()) if config.report_generation_enabled else None
    controller = SessionController(config, renderer=ConsoleRenderer(), reporter=reporter)

    done = threading.Event()

    def shutdown(sig, frame):
        done.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        controller.start(params)
    except AcquisitionError as e:
        log_event("ERROR", "CLI", str(e))
        return 1

    try:
        done.wait(timeout=args.seconds)
    finally:
        controller.stop()
        sys.stdout.write("\n")
    return 0


def main() -> None:
    args = build_parser().parse_args()

    if args.list_devices:
        for d in list_input_devices():
            print(f"[{d['index']}] {d['name']} ({d['inputs']} in, {d['sample_rate']:.0f} Hz)")
        sys.exit(0)

    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        exit_code = run_session(args)
        profiler.disable()
        profiler.dump_stats(args.profile_out)
    else:
        exit_code = run_session(args)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
