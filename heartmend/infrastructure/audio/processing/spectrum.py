"""
Frequency-domain energy for the live microphone visualizer.

``FrequencyAnalyser`` reproduces the byte spectrum of a browser
``AnalyserNode``: Blackman window, exponential smoothing over time and a
decibel range mapped onto 0-255.
"""
from typing import List, Sequence

import numpy as np

from ....config import FFT_SIZE, SMOOTHING_TIME_CONSTANT, MIN_DECIBELS, MAX_DECIBELS

BAR_GLYPHS = " ▁▂▃▄▅▆▇█"


class FrequencyAnalyser:
    """Rolling FFT over the most recent ``fft_size`` samples."""

    def __init__(self,
                 fft_size: int = FFT_SIZE,
                 smoothing: float = SMOOTHING_TIME_CONSTANT,
                 min_decibels: float = MIN_DECIBELS,
                 max_decibels: float = MAX_DECIBELS):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("smoothing must be in [0, 1)")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._buffer = np.zeros(fft_size, dtype=np.float32)
        self._window = np.blackman(fft_size).astype(np.float32)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, samples: np.ndarray) -> None:
        """Append new time-domain samples, keeping only the last ``fft_size``."""
        samples = np.asarray(samples, dtype=np.float32).ravel()
        if samples.size >= self.fft_size:
            self._buffer[:] = samples[-self.fft_size:]
        elif samples.size:
            self._buffer = np.roll(self._buffer, -samples.size)
            self._buffer[-samples.size:] = samples

    def byte_frequency_data(self) -> np.ndarray:
        """Current spectrum as ``frequency_bin_count`` unsigned bytes."""
        spectrum = np.fft.rfft(self._buffer * self._window)[:self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.nan_to_num((decibels - self.min_decibels) * scale, neginf=0.0)
        return np.clip(scaled, 0, 255).astype(np.uint8)


def render_bars(levels: Sequence[int], width: int) -> str:
    """
    Render byte levels as a single line of block characters.

    Bins are averaged into ``width`` columns; each column's height follows its
    mean level out of 255.
    """
    if width <= 0:
        return ""
    values = np.asarray(levels, dtype=np.float64)
    if values.size == 0:
        return " " * width

    columns: List[str] = []
    for bucket in np.array_split(values, width):
        level = float(bucket.mean()) if bucket.size else 0.0
        index = int(round(level / 255.0 * (len(BAR_GLYPHS) - 1)))
        columns.append(BAR_GLYPHS[max(0, min(index, len(BAR_GLYPHS) - 1))])
    return "".join(columns)
