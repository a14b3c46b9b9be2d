"""
Audio infrastructure: payload encoding, device handles, processing, spectrum
and player command lines.
"""
import numpy as np
import pytest

from heartmend.infrastructure.audio.encoding import encode_data_uri, decode_data_uri, extension_for
from heartmend.infrastructure.audio.resource import ResourceHandle, ResourceBusyError
from heartmend.infrastructure.audio.processing import (
    FrequencyAnalyser, render_bars, stereo_to_mono, resample, apply_gain, to_pcm16, pcm16_to_float
)
from heartmend.infrastructure.audio.playback import AudioPlayer, build_player_command


class TestDataUri:

    def test_decode(self):
        assert decode_data_uri(encode_data_uri(b"\x00\x01abc", "audio/wav")) == ("audio/wav", b"\x00\x01abc")

    @pytest.mark.parametrize("uri", [
        "http://example.com/a.mp3",
        "data:audio/mpeg,plain",
        "data:audio/mpeg;base64,***",
        "data:audio/mpeg;base64,",
    ])
    def test_rejects(self, uri):
        with pytest.raises(ValueError):
            decode_data_uri(uri)

    def test_extension(self):
        assert extension_for("audio/mpeg") == ".mp3"
        assert extension_for("AUDIO/WAV") == ".wav"
        assert extension_for("audio/flac") == ".bin"


class TestResourceHandle:

    def test_single_owner(self):
        handle = ResourceHandle("microphone")
        handle.acquire("capture")
        handle.acquire("capture")

        with pytest.raises(ResourceBusyError) as exc_info:
            handle.acquire("someone-else")
        assert exc_info.value.owner == "capture"

        assert not handle.release("someone-else")
        assert handle.release("capture")
        assert not handle.is_held()
        handle.acquire("someone-else")


class TestProcessing:

    def test_stereo_to_mono(self):
        stereo = np.array([[1.0, -1.0], [0.5, 0.5]])
        assert np.allclose(stereo_to_mono(stereo), [0.0, 0.5])

    def test_resample_48k_to_16k(self):
        out = resample(np.zeros(4800, dtype=np.float32), 48000, 16000)
        assert out.dtype == np.float32
        assert len(out) == 1600

    def test_gain_clips(self):
        assert np.allclose(apply_gain(np.array([0.5, -0.5]), 4.0), [1.0, -1.0])

    def test_pcm16(self):
        raw = to_pcm16(np.array([0.0, 1.0, -1.0], dtype=np.float32))
        assert len(raw) == 6
        back = pcm16_to_float(raw)
        assert back[0] == 0.0
        assert back[1] == pytest.approx(1.0, abs=1e-3)


class TestFrequencyAnalyser:

    def test_silence_is_zero(self):
        analyser = FrequencyAnalyser()
        analyser.push(np.zeros(512, dtype=np.float32))
        levels = analyser.byte_frequency_data()
        assert levels.dtype == np.uint8
        assert len(levels) == analyser.frequency_bin_count == 128
        assert levels.max() == 0

    def test_tone_peaks_at_its_bin(self):
        analyser = FrequencyAnalyser(smoothing=0.0)
        sample_rate = 16000
        t = np.arange(256) / sample_rate
        # bin 32 of a 256-point FFT at 16 kHz; quiet enough not to saturate
        analyser.push((0.01 * np.sin(2 * np.pi * 2000 * t)).astype(np.float32))
        levels = analyser.byte_frequency_data()
        assert int(np.argmax(levels)) == 32
        assert 100 < levels[32] < 255
        assert levels[0] == 0

    def test_short_pushes_roll_the_buffer(self):
        analyser = FrequencyAnalyser()
        analyser.push(np.ones(100, dtype=np.float32))
        analyser.push(np.full(50, 0.5, dtype=np.float32))
        assert np.allclose(analyser._buffer[-50:], 0.5)
        assert np.allclose(analyser._buffer[-150:-50], 1.0)

    @pytest.mark.parametrize("kwargs", [
        {"fft_size": 100}, {"smoothing": 1.0}, {"min_decibels": -10.0, "max_decibels": -20.0},
    ])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValueError):
            FrequencyAnalyser(**kwargs)


class TestRenderBars:

    def test_width_and_extremes(self):
        assert render_bars([0] * 128, 8) == " " * 8
        assert render_bars([255] * 128, 4) == "████"
        assert render_bars([], 3) == "   "
        assert render_bars([255], 0) == ""


class TestPlayerCommand:

    def test_ffplay(self):
        cmd = build_player_command("ffplay", "/tmp/a.mp3", 0.5, 1.25)
        assert cmd[0] == "ffplay"
        assert cmd[cmd.index("-volume") + 1] == "50"
        assert "atempo=1.25" in cmd
        assert cmd[-1] == "/tmp/a.mp3"

    def test_afplay(self):
        assert build_player_command("afplay", "a.mp3", 0.8, 2.0) == [
            "afplay", "-v", "0.8", "-r", "2", "-q", "1", "a.mp3"
        ]

    def test_unknown_player(self):
        with pytest.raises(ValueError):
            build_player_command("vlc", "a.mp3", 0.5, 1.0)

    def test_no_player_installed(self, monkeypatch):
        monkeypatch.setattr("heartmend.infrastructure.audio.playback.find_player", lambda: None)
        with pytest.raises(RuntimeError, match="No audio player"):
            AudioPlayer().start(b"abc", "audio/mpeg", 0.5, 1.0, on_finished=lambda rc: None)
