from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from speechsession.audio.codecs import StreamResampler, bytes_per_sample, decode_samples
from speechsession.domain.constants import ms_to_samples, samples_to_ms
from speechsession.domain.exceptions import RecognitionError, SessionError
from speechsession.domain.types import (
    AudioChunk,
    PipelineEvent,
    RecognitionAlternative,
    RecognitionResult,
    RecognitionUpdate,
    SessionConfig,
    SpeechStarted,
    SpeechStopped,
    UtteranceEnded,
)
from speechsession.infrastructure.storage import ObjectStore
from speechsession.stt.engine_manager import EngineManager
from speechsession.stt.partials import InterimHypothesis, PartialConfig
from speechsession.stt.vad import SpeechSegment, VADConfig, VADProcessor

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    vad_config: VADConfig = field(default_factory=VADConfig)
    partial_config: PartialConfig = field(default_factory=PartialConfig)


class VADRecognitionPipeline:
    """Segments audio with an energy VAD and transcribes each segment.

    Continuous sessions get one final result per speech segment, at
    consecutive result indexes. Single-utterance sessions only ever address
    slot 0 and stop producing events once the utterance is over.
    """

    def __init__(
        self,
        engine_manager: EngineManager,
        config: PipelineConfig | None = None,
        storage: ObjectStore | None = None,
    ) -> None:
        self._engine_manager = engine_manager
        self._config = config or PipelineConfig()
        self._storage = storage
        self._session_config: SessionConfig | None = None
        self._vad: VADProcessor | None = None
        self._resampler: StreamResampler | None = None
        self._partials = InterimHypothesis(self._config.partial_config)
        self._engine_rate = 0
        self._sample_width = 0
        self._leftover = b""
        self._result_index = 0
        self._interim_open = False
        self._utterance_done = False

    def start(self, config: SessionConfig) -> None:
        self._sample_width = bytes_per_sample(config.encoding)
        self._engine_rate = self._engine_sample_rate()
        self._session_config = config
        self._resampler = StreamResampler(config.sample_rate, self._engine_rate)
        self._vad = VADProcessor(self._engine_rate, self._config.vad_config)
        self._partials.reset()
        self._leftover = b""
        self._result_index = 0
        self._interim_open = False
        self._utterance_done = False
        logger.debug(
            f"Pipeline started: {config.encoding.name} {config.sample_rate} Hz -> engine {self._engine_rate} Hz"
        )

    def process(self, chunk: AudioChunk) -> list[PipelineEvent]:
        if self._utterance_done:
            return []
        resampler = self._require_started()
        data = chunk.content if chunk.has_content else self._read_uri(chunk.uri or "")
        audio = resampler.process(self._decode(data or b""))
        return self._advance(audio)

    def flush(self) -> list[PipelineEvent]:
        if self._utterance_done:
            return []
        resampler = self._require_started()
        if self._leftover:
            logger.debug(f"Discarding {len(self._leftover)} trailing byte(s) that do not form a sample")
            self._leftover = b""

        events = self._advance(resampler.process(np.array([], dtype=np.float32), last=True))
        assert self._vad is not None
        stopped = self._vad.flush()
        if stopped is not None:
            event, segment = stopped
            events.extend(self._on_speech_stopped(event, segment, flushing=True))
        return events

    def close(self) -> None:
        if self._vad is not None:
            self._vad.reset()
        self._vad = None
        self._resampler = None
        self._session_config = None

    def _advance(self, audio: NDArray[np.float32]) -> list[PipelineEvent]:
        assert self._vad is not None and self._session_config is not None
        events: list[PipelineEvent] = []
        for event, segment in self._vad.append(audio):
            if self._utterance_done:
                break
            if isinstance(event, SpeechStarted):
                self._partials.reset()
                events.append(event)
            else:
                events.extend(self._on_speech_stopped(event, segment))

        if self._session_config.interim_results and self._vad.speech_active and not self._utterance_done:
            events.extend(self._interim())
        return events

    def _on_speech_stopped(
        self,
        event: SpeechStopped,
        segment: SpeechSegment | None,
        flushing: bool = False,
    ) -> list[PipelineEvent]:
        config = self._session_config
        assert config is not None
        events: list[PipelineEvent] = [event]

        alternatives: list[RecognitionAlternative] = []
        if segment is not None and len(segment.audio) > 0:
            alternatives = self._transcribe(segment.audio, config.effective_max_alternatives)

        if alternatives:
            result = RecognitionResult(alternatives=tuple(alternatives), is_final=True)
            events.append(
                RecognitionUpdate(
                    result_index=self._result_index,
                    results=(result,),
                    end_ms=max(segment.end_ms if segment else 0, event.timestamp_ms),
                    start_ms=segment.start_ms if segment else None,
                )
            )
            if config.continuous:
                self._result_index += 1
        elif self._interim_open:
            events.append(RecognitionUpdate(result_index=self._result_index, results=(), end_ms=event.timestamp_ms))
        self._interim_open = False
        self._partials.reset()

        if not config.continuous and segment is not None:
            self._utterance_done = True
            if not alternatives and not flushing:
                events.append(UtteranceEnded(timestamp_ms=event.timestamp_ms))
        return events

    def _interim(self) -> list[PipelineEvent]:
        assert self._vad is not None
        speech_audio = self._vad.active_audio()
        speech_ms = samples_to_ms(len(speech_audio), self._engine_rate)
        if not self._partials.due(speech_ms):
            return []

        tail_samples = ms_to_samples(self._partials.tail_window_ms, self._engine_rate)
        hypothesis = self._partials.update(speech_ms, self._transcribe(speech_audio[-tail_samples:], 1))
        if hypothesis is None:
            return []

        alternative, stability = hypothesis
        self._interim_open = True
        result = RecognitionResult(alternatives=(alternative,), is_final=False, stability=stability)
        return [
            RecognitionUpdate(
                result_index=self._result_index,
                results=(result,),
                end_ms=self._vad.position_ms,
                start_ms=self._vad.state.audio_start_ms,
            )
        ]

    def _transcribe(self, audio: NDArray[np.float32], max_alternatives: int) -> list[RecognitionAlternative]:
        config = self._session_config
        assert config is not None
        try:
            with self._engine_manager.get_engine() as engine:
                alternatives = engine.transcribe(
                    audio,
                    language=config.language_code,
                    max_alternatives=max_alternatives,
                    phrases=config.phrases,
                )
        except SessionError:
            raise
        except Exception as e:
            logger.exception("Speech engine failed")
            raise RecognitionError(f"speech engine failed: {e}") from e
        return [a for a in alternatives if a.transcript][:max_alternatives]

    def _engine_sample_rate(self) -> int:
        try:
            with self._engine_manager.get_engine() as engine:
                return engine.get_sample_rate()
        except Exception as e:
            logger.exception("Speech engine could not be loaded")
            raise RecognitionError(f"speech engine unavailable: {e}") from e

    def _decode(self, data: bytes) -> NDArray[np.float32]:
        config = self._session_config
        assert config is not None
        data = self._leftover + data
        usable = len(data) - len(data) % self._sample_width
        self._leftover = data[usable:]
        return decode_samples(data[:usable], config.encoding)

    def _read_uri(self, uri: str) -> bytes:
        if self._storage is None:
            raise RecognitionError(f"cannot read {uri}: no object store is configured")
        try:
            return self._storage.read(uri)
        except (OSError, ValueError) as e:
            raise RecognitionError(f"cannot read {uri}: {e}") from e

    def _require_started(self) -> StreamResampler:
        if self._resampler is None or self._vad is None:
            raise RecognitionError("pipeline received audio before it was started")
        return self._resampler
