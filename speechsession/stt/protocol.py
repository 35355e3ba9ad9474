from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray

from speechsession.domain.types import AudioChunk, PipelineEvent, RecognitionAlternative, SessionConfig


@runtime_checkable
class RecognitionPipeline(Protocol):
    def start(self, config: SessionConfig) -> None: ...

    def process(self, chunk: AudioChunk) -> Iterable[PipelineEvent]: ...

    def flush(self) -> Iterable[PipelineEvent]: ...

    def close(self) -> None: ...


@runtime_checkable
class SpeechEngine(Protocol):
    def transcribe(
        self,
        audio: NDArray[np.float32],
        language: str,
        max_alternatives: int = 1,
        phrases: Sequence[str] = (),
    ) -> list[RecognitionAlternative]: ...

    def get_sample_rate(self) -> int: ...


@runtime_checkable
class SpeechEngineLifecycle(Protocol):
    def load(self) -> None: ...

    def unload(self) -> None: ...

    @property
    def is_loaded(self) -> bool: ...
