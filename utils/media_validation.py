"""Validation and conversion helpers for realtime audio payloads."""

import base64
import binascii
import io
import wave
from typing import Any, Iterable, Optional

import numpy as np


def flatten_audio_payload(audio: Any) -> np.ndarray:
    """Return the samples of an inbound ``audio`` message as one float32 array.

    Browsers serialize each captured ``Float32Array`` as an object keyed by
    sample index, so the payload is usually a list of ``{"0": v, "1": v}``
    dicts. Plain nested lists and flat lists of numbers are accepted too.
    """
    if audio is None:
        raise ValueError("Audio payload is required.")
    if isinstance(audio, dict):
        audio = [audio]
    if not isinstance(audio, (list, tuple)):
        raise ValueError("Audio payload must be a list of sample frames.")

    parts = []
    flat: list = []
    for frame in audio:
        if isinstance(frame, dict):
            parts.append(_dict_frame(frame))
        elif isinstance(frame, (list, tuple)):
            parts.append(np.asarray(frame, dtype=np.float32))
        elif isinstance(frame, (int, float)):
            flat.append(frame)
        else:
            raise ValueError(f"Unsupported audio frame type: {type(frame).__name__}")
    if flat:
        parts.append(np.asarray(flat, dtype=np.float32))
    if not parts:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate(parts).astype(np.float32, copy=False)


def _dict_frame(frame: dict) -> np.ndarray:
    try:
        ordered = sorted(frame.items(), key=lambda item: int(item[0]))
    except (TypeError, ValueError):
        ordered = list(frame.items())
    return np.fromiter((float(value) for _, value in ordered), dtype=np.float32, count=len(ordered))


def decode_audio_data(data: Any) -> Optional[bytes]:
    """Normalize a synthesized chunk to bytes.

    Accepts raw bytes, a list of byte values, or a base64 string. Returns
    ``None`` for shapes that cannot carry audio.
    """
    if data is None:
        return None
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        try:
            return base64.b64decode(data, validate=False)
        except (binascii.Error, ValueError):
            return None
    if isinstance(data, (list, tuple)):
        try:
            return bytes(bytearray(int(value) & 0xFF for value in data))
        except (TypeError, ValueError):
            return None
    return None


def rms(samples: np.ndarray) -> float:
    """Root mean square level of float samples in [-1, 1]."""
    if samples is None or len(samples) == 0:
        return 0.0
    values = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(np.square(values))))


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Convert float samples in [-1, 1] to little-endian 16-bit PCM."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def pcm16_wav_bytes(segments: Iterable[np.ndarray], sample_rate: int) -> bytes:
    """Wrap float sample segments into an in-memory mono WAV file."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        for segment in segments:
            wav.writeframes(float_to_pcm16(segment))
    return buffer.getvalue()
