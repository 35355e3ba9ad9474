from __future__ import annotations

from collections.abc import Iterable

import numpy as np

from speechsession.application.config_validator import validate_session_config
from speechsession.application.ingest import AudioIngestQueue
from speechsession.application.session import RecognitionSession
from speechsession.domain.exceptions import SessionError
from speechsession.domain.types import (
    AudioChunk,
    AudioEncoding,
    DeliveryMode,
    PipelineEvent,
    RecognitionAlternative,
    RecognitionResult,
    RecognizeRequest,
    RecognizeResponse,
    SessionConfig,
)


class ScriptedPipeline:
    """Recognition pipeline that replays one list of events per processed chunk."""

    def __init__(
        self,
        steps: Iterable[Iterable[PipelineEvent]] = (),
        flush_events: Iterable[PipelineEvent] = (),
        error: Exception | None = None,
    ) -> None:
        self.steps = [list(step) for step in steps]
        self.flush_events = list(flush_events)
        self.error = error
        self.started_with: SessionConfig | None = None
        self.chunks: list[AudioChunk] = []
        self.flushed = False
        self.closed = False

    def start(self, config: SessionConfig) -> None:
        self.started_with = config

    def process(self, chunk: AudioChunk) -> list[PipelineEvent]:
        self.chunks.append(chunk)
        if self.error is not None:
            raise self.error
        return self.steps.pop(0) if self.steps else []

    def flush(self) -> list[PipelineEvent]:
        self.flushed = True
        return self.flush_events

    def close(self) -> None:
        self.closed = True


def make_config(**overrides) -> SessionConfig:
    values = {"encoding": AudioEncoding.LINEAR16, "sample_rate": 16000, "continuous": True}
    values.update(overrides)
    return SessionConfig(**values)


def final(text: str, confidence: float | None = None) -> RecognitionResult:
    return RecognitionResult(alternatives=(RecognitionAlternative(text, confidence),), is_final=True)


def interim(text: str, stability: float | None = None) -> RecognitionResult:
    return RecognitionResult(alternatives=(RecognitionAlternative(text),), is_final=False, stability=stability)


def audio(content: bytes = b"\x00\x01" * 160) -> RecognizeRequest:
    return RecognizeRequest(audio=AudioChunk(content=content))


def drive(
    session: RecognitionSession,
    requests: Iterable[RecognizeRequest],
    mode: DeliveryMode = DeliveryMode.STREAMING,
    close: bool = True,
) -> list[RecognizeResponse]:
    """Feed requests the way the transport thread does and collect what the session sends."""
    ingest = AudioIngestQueue(lambda config: validate_session_config(config, mode))
    for request in requests:
        try:
            ingest.submit(request)
        except SessionError as e:
            ingest.fail(e)
            break
    if close:
        ingest.close()
    return list(session.run(ingest))


def tone(duration_ms: int, sample_rate: int = 16000, amplitude: float = 0.3) -> np.ndarray:
    t = np.arange(int(duration_ms * sample_rate / 1000)) / sample_rate
    return (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


def silence(duration_ms: int, sample_rate: int = 16000) -> np.ndarray:
    return np.zeros(int(duration_ms * sample_rate / 1000), dtype=np.float32)


def to_pcm16(samples: np.ndarray) -> bytes:
    return (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2").tobytes()
