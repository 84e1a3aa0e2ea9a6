"""Terminal renderer: one redrawn line of spectrum bars, beat marker and BPM."""

import sys

import numpy as np

from session import RenderPacket

BAR_CHARS = "▁▂▃▄▅▆▇█"


class ConsoleRenderer:
    """Draws each RenderPacket as a single carriage-return line."""

    def __init__(self, width: int = 64, stream=None):
        self.width = max(1, int(width))
        self.stream = stream if stream is not None else sys.stdout

    def format_line(self, packet: RenderPacket) -> str:
        bars = self._compress(packet.spectrum)
        bar_chars = "".join(
            BAR_CHARS[min(int(v * len(BAR_CHARS)), len(BAR_CHARS) - 1)] if v > 0 else " "
            for v in bars
        )
        beat = "●" if packet.is_beat else "○"
        bpm = f"{packet.bpm:3d} BPM" if packet.bpm > 0 else "--- BPM"
        line = f"\r|{bar_chars}| {beat} {bpm} vol {packet.loudness * 100:5.1f}%"
        if packet.is_clipping:
            line += " CLIPPING!"
        return line

    def _compress(self, spectrum: np.ndarray) -> np.ndarray:
        """Average the spectrum down to ``width`` columns."""
        values = np.asarray(spectrum, dtype=np.float64)
        if values.size == 0:
            return np.zeros(self.width)
        if values.size <= self.width:
            return values
        chunks = np.array_split(values, self.width)
        return np.array([chunk.mean() for chunk in chunks])

    def __call__(self, packet: RenderPacket) -> None:
        self.stream.write(self.format_line(packet))
        self.stream.flush()
