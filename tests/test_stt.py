"""
Google streaming recognition and microphone open failures.
"""
from unittest.mock import Mock

import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import speech

from heartmend.infrastructure.audio.speech.stt import (
    GoogleStreamingRecognizer, RecognitionError, RecognitionFailure
)
from heartmend.infrastructure.audio.processing.capture import _classify_open_error


def _response(*results):
    return speech.StreamingRecognizeResponse(results=[
        speech.StreamingRecognitionResult(
            alternatives=[speech.SpeechRecognitionAlternative(transcript=text)],
            is_final=is_final,
        )
        for text, is_final in results
    ])


def _recognizer(**streaming):
    client = Mock()
    if "side_effect" in streaming:
        client.streaming_recognize.side_effect = streaming["side_effect"]
    else:
        client.streaming_recognize.return_value = streaming["responses"]
    return GoogleStreamingRecognizer(client=client), client


class TestGoogleStreamingRecognizer:

    def test_final_results_are_joined(self):
        recognizer, client = _recognizer(responses=[
            _response(("I feel", False)),
            _response(("I feel lost", True)),
            _response(("and tired", False)),
            _response((" and tired ", True)),
        ])
        assert recognizer.recognize([b"\x00\x00"], sample_rate=16000) == "I feel lost and tired"

        config = client.streaming_recognize.call_args.kwargs["config"]
        assert config.single_utterance
        assert config.interim_results
        assert config.config.sample_rate_hertz == 16000
        assert config.config.language_code == "en-US"

    def test_nothing_final_is_empty(self):
        recognizer, _ = _recognizer(responses=[_response(("hmm", False))])
        assert recognizer.recognize([]) == ""

    @pytest.mark.parametrize("error, failure", [
        (google_exceptions.ServiceUnavailable("unreachable"), RecognitionFailure.NETWORK),
        (google_exceptions.DeadlineExceeded("too slow"), RecognitionFailure.NETWORK),
        (google_exceptions.InvalidArgument("bad audio"), RecognitionFailure.UNKNOWN),
        (google_exceptions.PermissionDenied("no api access"), RecognitionFailure.UNKNOWN),
    ])
    def test_api_errors_map_to_failures(self, error, failure):
        recognizer, _ = _recognizer(side_effect=error)
        with pytest.raises(RecognitionError) as exc_info:
            recognizer.recognize([b"\x00\x00"])
        assert exc_info.value.failure == failure


class TestMicrophoneOpenErrors:

    @pytest.mark.parametrize("error, failure", [
        (PermissionError("Operation not permitted"), RecognitionFailure.NOT_ALLOWED),
        (OSError("[Errno -9999] Access denied by the system"), RecognitionFailure.NOT_ALLOWED),
        (OSError("Microphone permission missing"), RecognitionFailure.NOT_ALLOWED),
        (OSError("[Errno -9996] Invalid input device (no default output device)"), RecognitionFailure.AUDIO_CAPTURE),
        (IOError("Device unavailable"), RecognitionFailure.AUDIO_CAPTURE),
    ])
    def test_classification(self, error, failure):
        assert _classify_open_error(error) == failure
