from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Literal, Union

from speechsession.domain.constants import DEFAULT_LANGUAGE_CODE
from speechsession.domain.exceptions import SessionError


class AudioEncoding(IntEnum):
    ENCODING_UNSPECIFIED = 0
    LINEAR16 = 1
    FLAC = 2
    MULAW = 3
    AMR = 4
    AMR_WB = 5


class EndpointerEvent(IntEnum):
    ENDPOINTER_EVENT_UNSPECIFIED = 0
    START_OF_SPEECH = 1
    END_OF_SPEECH = 2
    END_OF_AUDIO = 3
    END_OF_UTTERANCE = 4


class DeliveryMode(str, Enum):
    STREAMING = "streaming"
    BUFFERED = "buffered"


@dataclass(frozen=True)
class SessionConfig:
    encoding: AudioEncoding = AudioEncoding.ENCODING_UNSPECIFIED
    sample_rate: int = 0
    language_code: str = DEFAULT_LANGUAGE_CODE
    max_alternatives: int = 0
    profanity_filter: bool = False
    continuous: bool = False
    interim_results: bool = False
    enable_endpointer_events: bool = False
    output_uri: str | None = None
    phrases: tuple[str, ...] = ()

    @property
    def effective_max_alternatives(self) -> int:
        return max(1, self.max_alternatives)


@dataclass(frozen=True)
class AudioChunk:
    content: bytes | None = None
    uri: str | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.content)

    @property
    def has_uri(self) -> bool:
        return bool(self.uri)


@dataclass(frozen=True)
class RecognizeRequest:
    config: SessionConfig | None = None
    audio: AudioChunk | None = None


@dataclass(frozen=True)
class RecognitionAlternative:
    transcript: str
    # None means the recognizer did not report a confidence.
    confidence: float | None = None


@dataclass(frozen=True)
class RecognitionResult:
    alternatives: tuple[RecognitionAlternative, ...] = ()
    is_final: bool = False
    stability: float | None = None

    @property
    def transcript(self) -> str:
        return self.alternatives[0].transcript if self.alternatives else ""


@dataclass(frozen=True)
class LedgerUpdate:
    result_index: int
    results: tuple[RecognitionResult, ...]

    @property
    def final_result(self) -> RecognitionResult | None:
        if self.results and self.results[0].is_final:
            return self.results[0]
        return None


@dataclass(frozen=True)
class RecognizeResponse:
    results: tuple[RecognitionResult, ...] = ()
    result_index: int = 0
    endpoint: EndpointerEvent = EndpointerEvent.ENDPOINTER_EVENT_UNSPECIFIED
    error: SessionError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class SessionOutcome:
    error: SessionError | None = None
    responses: tuple[RecognizeResponse, ...] = ()
    results: tuple[RecognitionResult, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


# Events produced by a recognition pipeline for one session.


@dataclass(frozen=True)
class SpeechStarted:
    type: Literal["speech_started"] = "speech_started"
    timestamp_ms: int = 0


@dataclass(frozen=True)
class SpeechStopped:
    type: Literal["speech_stopped"] = "speech_stopped"
    timestamp_ms: int = 0


@dataclass(frozen=True)
class UtteranceEnded:
    type: Literal["utterance_ended"] = "utterance_ended"
    timestamp_ms: int = 0


@dataclass(frozen=True)
class RecognitionUpdate:
    type: Literal["recognition_update"] = "recognition_update"
    result_index: int = 0
    results: tuple[RecognitionResult, ...] = field(default_factory=tuple)
    end_ms: int = 0
    start_ms: int | None = None


PipelineEvent = Union[SpeechStarted, SpeechStopped, UtteranceEnded, RecognitionUpdate]
