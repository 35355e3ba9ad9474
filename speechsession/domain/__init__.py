from speechsession.domain.endpointer import EndpointerEmitter, EndpointerState
from speechsession.domain.exceptions import (
    IllegalEventSequence,
    InvalidAudioChunk,
    InvalidConfig,
    InvalidLedgerUpdate,
    RecognitionError,
    SessionCancelled,
    SessionError,
    UnexpectedConfig,
)
from speechsession.domain.ledger import ResultLedger
from speechsession.domain.types import (
    AudioChunk,
    AudioEncoding,
    DeliveryMode,
    EndpointerEvent,
    RecognitionAlternative,
    RecognitionResult,
    RecognizeRequest,
    RecognizeResponse,
    SessionConfig,
    SessionOutcome,
)

__all__ = [
    "EndpointerEmitter",
    "EndpointerState",
    "ResultLedger",
    "SessionError",
    "InvalidConfig",
    "UnexpectedConfig",
    "InvalidAudioChunk",
    "InvalidLedgerUpdate",
    "IllegalEventSequence",
    "SessionCancelled",
    "RecognitionError",
    "AudioChunk",
    "AudioEncoding",
    "DeliveryMode",
    "EndpointerEvent",
    "RecognitionAlternative",
    "RecognitionResult",
    "RecognizeRequest",
    "RecognizeResponse",
    "SessionConfig",
    "SessionOutcome",
]
