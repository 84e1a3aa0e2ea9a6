import threading
import time
from typing import Callable, Optional


class TickScheduler:
    """Fixed-rate tick loop on one worker thread.

    The callback runs, then the worker sleeps out the rest of the frame, so
    ticks never overlap. stop() only signals the loop; a tick already in
    progress finishes on its own.
    """

    def __init__(self, fps: float = 60.0):
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.interval_s = 1.0 / fps
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def start(self, callback: Callable[[], None]) -> None:
        """Begin calling ``callback`` once per frame. Restarts a running loop."""
        self.stop()
        # Each loop owns its event, so a stopped worker can never be revived
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._run, args=(callback, stop_event),
            name="beatglow-tick", daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the worker to exit. No-op from inside a tick."""
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self, callback: Callable[[], None], stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            t0 = time.monotonic()
            callback()
            # Sleep remainder of frame
            elapsed = time.monotonic() - t0
            stop_event.wait(max(0.0, self.interval_s - elapsed))
