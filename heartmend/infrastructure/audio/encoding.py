"""
Base64 data URI helpers for synthesized speech payloads.
"""
import base64
import binascii
from typing import Tuple

_EXTENSIONS = {
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/ogg": ".ogg",
}


def encode_data_uri(audio: bytes, mime_type: str = "audio/mpeg") -> str:
    """Wrap raw audio bytes as ``data:<mime>;base64,<payload>``."""
    return f"data:{mime_type};base64,{base64.b64encode(audio).decode('ascii')}"


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """
    Split a base64 data URI into its MIME type and raw bytes.

    Raises:
        ValueError: If the string is not a base64 data URI
    """
    if not uri.startswith("data:"):
        raise ValueError("Audio payload is not a data URI")

    header, sep, payload = uri[5:].partition(",")
    if not sep or not header.endswith(";base64"):
        raise ValueError("Audio payload is not base64 encoded")

    mime_type = header[:-len(";base64")] or "application/octet-stream"
    try:
        audio = base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 audio payload: {e}")
    if not audio:
        raise ValueError("Audio payload is empty")
    return mime_type, audio


def extension_for(mime_type: str) -> str:
    """File extension to use when handing a payload to an external player."""
    return _EXTENSIONS.get(mime_type.lower(), ".bin")
