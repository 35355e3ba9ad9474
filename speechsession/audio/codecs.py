from __future__ import annotations

import numpy as np
import soxr
from numpy.typing import NDArray

from speechsession.domain.exceptions import RecognitionError
from speechsession.domain.types import AudioEncoding

_MULAW_BIAS = 0x84


def _build_mulaw_table() -> NDArray[np.float32]:
    codes = ~np.arange(256, dtype=np.int32) & 0xFF
    sign = codes & 0x80
    exponent = (codes >> 4) & 0x07
    mantissa = codes & 0x0F
    magnitude = (((mantissa << 3) + _MULAW_BIAS) << exponent) - _MULAW_BIAS
    samples = np.where(sign != 0, -magnitude, magnitude)
    return (samples / 32768.0).astype(np.float32)


_MULAW_TABLE = _build_mulaw_table()


def pcm16_to_float32(pcm_bytes: bytes) -> NDArray[np.float32]:
    pcm_array = np.frombuffer(pcm_bytes, dtype="<i2")
    return pcm_array.astype(np.float32) / 32768.0


def mulaw_to_float32(mulaw_bytes: bytes) -> NDArray[np.float32]:
    codes = np.frombuffer(mulaw_bytes, dtype=np.uint8)
    return _MULAW_TABLE[codes]


def bytes_per_sample(encoding: AudioEncoding) -> int:
    if encoding is AudioEncoding.LINEAR16:
        return 2
    if encoding is AudioEncoding.MULAW:
        return 1
    raise RecognitionError(f"{encoding.name} audio is not supported by this recognizer")


def decode_samples(data: bytes, encoding: AudioEncoding) -> NDArray[np.float32]:
    if encoding is AudioEncoding.LINEAR16:
        return pcm16_to_float32(data)
    if encoding is AudioEncoding.MULAW:
        return mulaw_to_float32(data)
    raise RecognitionError(f"{encoding.name} audio is not supported by this recognizer")


class StreamResampler:
    """Resamples a chunked stream without clicks at chunk boundaries."""

    def __init__(self, source_rate: int, target_rate: int) -> None:
        self.source_rate = source_rate
        self.target_rate = target_rate
        self._stream = (
            soxr.ResampleStream(source_rate, target_rate, 1, dtype="float32")
            if source_rate != target_rate
            else None
        )

    def process(self, audio: NDArray[np.float32], last: bool = False) -> NDArray[np.float32]:
        if self._stream is None:
            return audio
        return self._stream.resample_chunk(audio, last=last).astype(np.float32)
