"""
Microphone capture through PyAudio.

The stream runs in callback mode: PortAudio hands raw frames to ``_on_frames``
on its own thread and they are queued, so readers never touch the native
stream and ``close()`` is safe from any thread.
"""
import queue
import logging
from typing import Optional, Tuple, Any

import numpy as np

from .processing import stereo_to_mono, remove_dc, resample, apply_gain, to_pcm16, pcm16_to_float
from ..speech.stt import RecognitionError, RecognitionFailure
from ....config import CHANNELS, SAMPLE_RATE_CAPTURE, SAMPLE_RATE_TARGET, FRAME_MS, MIC_GAIN
from ....utils import import_quietly, with_suppressed_audio_warnings

logger = logging.getLogger("audio_capture")


def _load_pyaudio() -> Any:
    """Import PyAudio lazily so the package works without PortAudio installed."""
    try:
        return import_quietly("pyaudio")
    except ImportError as e:
        raise RecognitionError(RecognitionFailure.AUDIO_CAPTURE, f"PyAudio is not installed: {e}")


def _classify_open_error(error: Exception) -> RecognitionFailure:
    """Decide whether a failed open was a permission problem or a missing device."""
    text = str(error).lower()
    if isinstance(error, PermissionError) or "permission" in text or "denied" in text:
        return RecognitionFailure.NOT_ALLOWED
    return RecognitionFailure.AUDIO_CAPTURE


@with_suppressed_audio_warnings
def get_default_input_config(pa) -> Tuple[int, int]:
    """
    Find the default input device.

    Returns:
        (device_index, default_sample_rate)

    Raises:
        RecognitionError: AUDIO_CAPTURE when the system has no input device
    """
    try:
        info = pa.get_default_input_device_info()
    except (IOError, OSError) as e:
        raise RecognitionError(RecognitionFailure.AUDIO_CAPTURE, f"No input device available: {e}")

    index = int(info.get("index", 0))
    rate = int(info.get("defaultSampleRate") or SAMPLE_RATE_CAPTURE)
    logger.info("Default input device %d: %s @ %d Hz", index, info.get("name", "?"), rate)
    return index, rate


class MicrophoneStream:
    """Live microphone stream yielding mono float frames."""

    def __init__(self,
                 input_device: Optional[int] = None,
                 sr_capture: Optional[int] = None,
                 num_channels: int = CHANNELS,
                 frame_ms: int = FRAME_MS,
                 mic_gain: float = MIC_GAIN,
                 sr_target: int = SAMPLE_RATE_TARGET):
        self.input_device = input_device
        self.sr_capture = sr_capture
        self.num_channels = num_channels
        self.frame_ms = frame_ms
        self.mic_gain = mic_gain
        self.sr_target = sr_target
        self._pa = None
        self._stream = None
        self._frames: "queue.Queue[bytes]" = queue.Queue()
        self._continue_flag = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @with_suppressed_audio_warnings
    def open(self) -> None:
        """
        Open the capture device and start streaming.

        Raises:
            RecognitionError: NOT_ALLOWED or AUDIO_CAPTURE when the device cannot be opened
        """
        pyaudio = _load_pyaudio()
        self._continue_flag = pyaudio.paContinue
        self._pa = pyaudio.PyAudio()
        try:
            if self.input_device is None or self.sr_capture is None:
                device, rate = get_default_input_config(self._pa)
                if self.input_device is None:
                    self.input_device = device
                if self.sr_capture is None:
                    self.sr_capture = rate

            frames_per_buffer = int(self.sr_capture * self.frame_ms / 1000)
            logger.info("Opening microphone: device=%s channels=%d rate=%d frames=%d",
                        self.input_device, self.num_channels, self.sr_capture, frames_per_buffer)
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=self.num_channels,
                rate=self.sr_capture,
                input=True,
                input_device_index=self.input_device,
                frames_per_buffer=frames_per_buffer,
                stream_callback=self._on_frames,
            )
            self._stream.start_stream()
        except RecognitionError:
            self.close()
            raise
        except (IOError, OSError) as e:
            self.close()
            failure = _classify_open_error(e)
            logger.error("Failed to open microphone (%s): %s", failure.value, e)
            raise RecognitionError(failure, str(e)) from e

    def _on_frames(self, in_data, frame_count, time_info, status):
        self._frames.put(in_data)
        return (None, self._continue_flag)

    def read(self, timeout: float = 0.2) -> Optional[np.ndarray]:
        """Next mono float frame at the capture rate, or None if nothing arrived in time."""
        try:
            raw = self._frames.get(timeout=timeout)
        except queue.Empty:
            return None
        samples = pcm16_to_float(raw)
        if self.num_channels > 1:
            samples = stereo_to_mono(samples.reshape(-1, self.num_channels))
        return apply_gain(samples, self.mic_gain)

    def to_recognizer_chunk(self, frame: np.ndarray) -> bytes:
        """Convert a captured frame to 16 kHz PCM16 for the recognizer."""
        return to_pcm16(resample(remove_dc(frame), self.sr_capture, self.sr_target))

    def close(self) -> None:
        """Stop and release the device. Safe to call more than once."""
        stream, self._stream = self._stream, None
        pa, self._pa = self._pa, None
        if stream is not None:
            try:
                stream.stop_stream()
                stream.close()
            except (IOError, OSError) as e:
                logger.warning("Error closing microphone stream: %s", e)
        if pa is not None:
            pa.terminate()
            logger.info("Microphone released")
