from __future__ import annotations

MIN_SAMPLE_RATE = 8000
MAX_SAMPLE_RATE = 48000
AMR_SAMPLE_RATE = 8000
AMR_WB_SAMPLE_RATE = 16000

MAX_ALTERNATIVES_LIMIT = 30
MAX_PHRASES = 50
MAX_PHRASE_CHARS = 100

DEFAULT_LANGUAGE_CODE = "en-US"
DEFAULT_URI_SCHEMES: tuple[str, ...] = ("gs",)


def samples_to_ms(sample_count: int, sample_rate: int) -> int:
    return int(sample_count / sample_rate * 1000)


def ms_to_samples(duration_ms: int, sample_rate: int) -> int:
    return int(duration_ms * sample_rate / 1000)
