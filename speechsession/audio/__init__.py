from speechsession.audio.codecs import (
    StreamResampler,
    bytes_per_sample,
    decode_samples,
    mulaw_to_float32,
    pcm16_to_float32,
)

__all__ = [
    "StreamResampler",
    "bytes_per_sample",
    "decode_samples",
    "mulaw_to_float32",
    "pcm16_to_float32",
]
