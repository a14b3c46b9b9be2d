"""
Basic audio processing functions: channel mixing, DC removal, resampling and PCM16 conversion.
"""
from math import gcd

import numpy as np
from scipy.signal import resample_poly


def stereo_to_mono(x: np.ndarray) -> np.ndarray:
    """Convert multi-channel audio (frames x channels) to mono by averaging channels."""
    if x.ndim == 1:
        return x
    return np.mean(x, axis=1)


def remove_dc(x: np.ndarray) -> np.ndarray:
    """Remove DC offset from audio signal."""
    if x.size == 0:
        return x
    return x - np.mean(x)


def resample(mono: np.ndarray, sr_in: int, sr_out: int) -> np.ndarray:
    """Resample mono audio from ``sr_in`` to ``sr_out`` with a polyphase filter."""
    if sr_in == sr_out:
        return mono.astype(np.float32)
    factor = gcd(sr_in, sr_out)
    return resample_poly(mono, up=sr_out // factor, down=sr_in // factor).astype(np.float32)


def apply_gain(x: np.ndarray, gain: float) -> np.ndarray:
    """Scale audio and clip to [-1, 1]."""
    return np.clip(x * gain, -1.0, 1.0)


def to_pcm16(x: np.ndarray) -> bytes:
    """Convert float audio in [-1, 1] to little-endian PCM16 bytes."""
    return np.clip(x * 32767, -32768, 32767).astype("<i2").tobytes()


def pcm16_to_float(raw: bytes) -> np.ndarray:
    """Convert little-endian PCM16 bytes to float32 in [-1, 1]."""
    return np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
