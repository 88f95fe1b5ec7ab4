"""
Tests for audio payload helpers and the in-memory session store.
"""

import base64
import io
import wave

import numpy as np
import pytest

from services.realtime.errors import SessionNotFoundError
from utils.media_validation import (
    decode_audio_data,
    flatten_audio_payload,
    float_to_pcm16,
    pcm16_wav_bytes,
    rms,
)


def test_flatten_orders_browser_frames_by_index():
    samples = flatten_audio_payload([{"1": 0.5, "0": 0.25}, {"0": -0.5}])

    assert samples.dtype == np.float32
    assert samples.tolist() == [0.25, 0.5, -0.5]


def test_flatten_accepts_flat_lists():
    assert flatten_audio_payload([0.1, 0.2]).shape == (2,)


@pytest.mark.parametrize("payload", [None, "not audio", 42])
def test_flatten_rejects_other_shapes(payload):
    with pytest.raises(ValueError):
        flatten_audio_payload(payload)


def test_decode_audio_data_variants():
    raw = b"\x01\x02\x03"

    assert decode_audio_data(raw) == raw
    assert decode_audio_data(base64.b64encode(raw).decode()) == raw
    assert decode_audio_data([1, 2, 3]) == raw
    assert decode_audio_data({"chunk": raw}) is None
    assert decode_audio_data(None) is None


def test_rms_and_pcm_conversion():
    assert rms(np.zeros(10, dtype=np.float32)) == 0.0
    assert rms(np.full(10, 0.5, dtype=np.float32)) == pytest.approx(0.5)
    assert float_to_pcm16(np.array([0.0, 2.0, -2.0], dtype=np.float32)) == np.array(
        [0, 32767, -32767], dtype="<i2"
    ).tobytes()


def test_wav_wrapping():
    data = pcm16_wav_bytes([np.zeros(160, dtype=np.float32), np.zeros(160, dtype=np.float32)], 16_000)

    with wave.open(io.BytesIO(data)) as wav:
        assert wav.getnchannels() == 1
        assert wav.getsampwidth() == 2
        assert wav.getframerate() == 16_000
        assert wav.getnframes() == 320


def test_store_get_and_remove(store, conversation):
    connection = store.create("abc", conversation, "openai")

    assert store.get("abc") is connection
    assert "abc" in store
    assert list(store) == [connection]
    assert store.remove("abc") is connection
    assert store.was_removed("abc")
    assert store.find("abc") is None
    with pytest.raises(SessionNotFoundError):
        store.get("abc")


def test_recreated_session_is_no_longer_marked_removed(store, conversation):
    store.create("abc", conversation, "openai")
    store.remove("abc")
    store.create("abc", conversation, "openai")

    assert not store.was_removed("abc")


def test_add_message_appends_to_history(store, loaded_session):
    message = store.add_message("session-1", "assistant", "  Ho ho ho!  ")

    assert message.content == "Ho ho ho!"
    assert loaded_session.state.messages[-1] is message


def test_attach_transport_keeps_live_transport(store, loaded_session, transport):
    other = object()

    store.attach_transport("session-1", other)

    assert loaded_session.transport is transport
