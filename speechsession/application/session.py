from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Iterator
from dataclasses import replace

from speechsession.application.ingest import (
    AudioIngestQueue,
    AudioItem,
    Cancelled,
    ConfigItem,
    EndOfStream,
    ErrorItem,
    IngestItem,
)
from speechsession.application.sequencer import ResponseSequencer
from speechsession.domain.endpointer import EndpointerEmitter, EndpointerState
from speechsession.domain.exceptions import (
    InvalidConfig,
    InvalidLedgerUpdate,
    RecognitionError,
    SessionCancelled,
    SessionError,
)
from speechsession.domain.ledger import ResultLedger
from speechsession.domain.profanity import DEFAULT_PROFANITIES, mask_profanity
from speechsession.domain.types import (
    AudioChunk,
    DeliveryMode,
    EndpointerEvent,
    PipelineEvent,
    RecognitionResult,
    RecognitionUpdate,
    RecognizeResponse,
    SessionConfig,
    SessionOutcome,
    SpeechStarted,
    SpeechStopped,
    UtteranceEnded,
)
from speechsession.stt.protocol import RecognitionPipeline

logger = logging.getLogger(__name__)

EventListener = Callable[[str], None]


class RecognitionSession:
    """Drives one recognition session from its ingest queue to outbound responses.

    The session is the single consumer of its queue, so the ledger, endpointer
    and sequencer are only ever touched from the thread iterating ``run``.
    ``cancel`` is the one method that may be called from another thread.
    """

    def __init__(
        self,
        pipeline: RecognitionPipeline,
        mode: DeliveryMode,
        profanity_words: Iterable[str] = DEFAULT_PROFANITIES,
        event_listener: EventListener | None = None,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._pipeline = pipeline
        self._mode = mode
        self._profanity_words = frozenset(profanity_words)
        self._event_listener = event_listener
        self._config: SessionConfig | None = None
        self._ledger: ResultLedger | None = None
        self._endpointer: EndpointerEmitter | None = None
        self._sequencer: ResponseSequencer | None = None
        self._ingest: AudioIngestQueue | None = None
        self._outcome: SessionOutcome | None = None
        self._released = False
        self._flushing = False
        self._chunks_processed = 0
        self._cancel_requested = threading.Event()

    @property
    def config(self) -> SessionConfig | None:
        return self._config

    @property
    def outcome(self) -> SessionOutcome | None:
        return self._outcome

    @property
    def results(self) -> tuple[RecognitionResult, ...]:
        return self._ledger.results if self._ledger is not None else ()

    def cancel(self) -> None:
        if self._cancel_requested.is_set():
            return
        self._cancel_requested.set()
        logger.info(f"[{self.session_id}] Cancellation requested")
        if self._ingest is not None:
            self._ingest.cancel()

    def run(self, ingest: AudioIngestQueue) -> Iterator[RecognizeResponse]:
        self._ingest = ingest
        if self._cancel_requested.is_set():
            ingest.cancel()
        try:
            for item in ingest:
                try:
                    self._handle_item(item)
                except SessionError as e:
                    self._fail(e)
                except Exception as e:
                    logger.exception(f"[{self.session_id}] Unexpected recognition failure")
                    self._fail(RecognitionError(f"Unexpected error: {e}"))
                yield from self._release()
                if self._outcome is not None:
                    break
        finally:
            if self._outcome is None:
                ingest.cancel()
            ingest.close()
            self._pipeline.close()

    def collect(self, ingest: AudioIngestQueue) -> SessionOutcome:
        for _ in self.run(ingest):
            pass
        if self._outcome is None:
            raise RuntimeError("session ended without an outcome")
        return self._outcome

    def _handle_item(self, item: IngestItem) -> None:
        if isinstance(item, ConfigItem):
            self._configure(item.config)
        elif isinstance(item, AudioItem):
            self._process_chunk(item.chunk, item.sequence)
        elif isinstance(item, EndOfStream):
            self._finish()
        elif isinstance(item, ErrorItem):
            self._fail(item.error)
        elif isinstance(item, Cancelled):
            self._fail(SessionCancelled("recognition was cancelled by the client"))

    def _configure(self, config: SessionConfig) -> None:
        self._config = config
        self._ledger = ResultLedger(max_alternatives=config.effective_max_alternatives)
        self._endpointer = EndpointerEmitter(
            continuous=config.continuous,
            enabled=config.enable_endpointer_events,
        )
        self._sequencer = ResponseSequencer(self._mode, interim_results=config.interim_results)
        self._pipeline.start(config)
        logger.info(
            f"[{self.session_id}] Session configured: encoding={config.encoding.name}, "
            f"sample_rate={config.sample_rate}, language={config.language_code}, "
            f"continuous={config.continuous}, mode={self._mode.value}"
        )
        self._notify(f"Session configured for {config.encoding.name} audio at {config.sample_rate} Hz")

    def _process_chunk(self, chunk: AudioChunk, sequence: int) -> None:
        endpointer, sequencer = self._require_configured()
        if not endpointer.accepts_audio:
            logger.debug(f"[{self.session_id}] Dropping chunk {sequence} after {endpointer.state.value}")
            return

        for event in self._pipeline.process(chunk):
            self._handle_pipeline_event(event)
        sequencer.barrier()
        self._chunks_processed += 1

        if endpointer.state is EndpointerState.UTTERANCE_ENDED:
            self._complete()

    def _handle_pipeline_event(self, event: PipelineEvent) -> None:
        endpointer, _ = self._require_configured()
        if endpointer.state is EndpointerState.UTTERANCE_ENDED:
            logger.debug(f"[{self.session_id}] Ignoring {event.type} after end of utterance")
            return

        if isinstance(event, SpeechStarted):
            self._endpoint(EndpointerEvent.START_OF_SPEECH, event.timestamp_ms)
        elif isinstance(event, SpeechStopped):
            self._endpoint(EndpointerEvent.END_OF_SPEECH, event.timestamp_ms)
        elif isinstance(event, UtteranceEnded):
            self._end_utterance(event.timestamp_ms)
        elif isinstance(event, RecognitionUpdate):
            self._apply_update(event)

    def _apply_update(self, event: RecognitionUpdate) -> None:
        config = self._config
        assert config is not None and self._ledger is not None and self._sequencer is not None

        if not config.continuous and (event.result_index != 0 or len(event.results) > 1):
            raise InvalidLedgerUpdate(
                f"single-utterance sessions carry at most one result at index 0, "
                f"got {len(event.results)} at index {event.result_index}"
            )

        results = event.results
        if config.profanity_filter:
            results = tuple(self._mask(r) for r in results)

        update = self._ledger.apply_update(event.result_index, results)
        self._sequencer.push_update(update, event.end_ms, event.start_ms)

        if update.final_result is not None:
            self._notify(f"Result {update.result_index} finalized")
            if not config.continuous and not self._flushing:
                self._end_utterance(event.end_ms)

    def _end_utterance(self, offset_ms: int) -> None:
        self._endpoint(EndpointerEvent.END_OF_UTTERANCE, offset_ms)
        if self._ingest is not None:
            self._ingest.stop_accepting()

    def _endpoint(self, event: EndpointerEvent, offset_ms: int | None) -> None:
        endpointer, sequencer = self._require_configured()
        emitted = endpointer.transition(event)
        self._notify(f"Endpointer event {event.name}")
        if emitted is not None:
            sequencer.push_event(emitted, offset_ms)

    def _finish(self) -> None:
        if self._config is None:
            raise InvalidConfig("stream ended before a session config was received")
        endpointer, _ = self._require_configured()

        self._flushing = True
        for event in self._pipeline.flush():
            self._handle_pipeline_event(event)
        if endpointer.speech_active:
            self._endpoint(EndpointerEvent.END_OF_SPEECH, None)
        if endpointer.state is not EndpointerState.UTTERANCE_ENDED:
            self._endpoint(EndpointerEvent.END_OF_AUDIO, None)
        self._complete()

    def _complete(self) -> None:
        assert self._ledger is not None and self._sequencer is not None
        self._outcome = self._sequencer.complete(self._ledger.results)
        logger.info(
            f"[{self.session_id}] Session complete: {self._chunks_processed} chunk(s), "
            f"{self._ledger.settled_count} final result(s)"
        )
        self._notify("Recognition complete")

    def _fail(self, error: SessionError) -> None:
        if self._outcome is not None:
            return
        if self._sequencer is not None and not self._sequencer.closed:
            self._outcome = self._sequencer.fail(error)
        else:
            self._outcome = SessionOutcome(error=error, responses=(RecognizeResponse(error=error),))
        if isinstance(error, SessionCancelled):
            logger.info(f"[{self.session_id}] Session cancelled")
        else:
            logger.warning(f"[{self.session_id}] Session failed with {type(error).__name__}: {error}")
        self._notify(f"Recognition failed: {type(error).__name__}: {error}")

    def _release(self) -> Iterator[RecognizeResponse]:
        if self._outcome is not None:
            if not self._released:
                self._released = True
                yield from self._outcome.responses
            return
        if self._sequencer is not None:
            yield from self._sequencer.drain()

    def _mask(self, result: RecognitionResult) -> RecognitionResult:
        alternatives = tuple(
            replace(a, transcript=mask_profanity(a.transcript, self._profanity_words)) for a in result.alternatives
        )
        return replace(result, alternatives=alternatives)

    def _notify(self, description: str) -> None:
        if self._event_listener is not None:
            self._event_listener(description)

    def _require_configured(self) -> tuple[EndpointerEmitter, ResponseSequencer]:
        if self._endpointer is None or self._sequencer is None:
            raise RecognitionError("session received audio before it was configured")
        return self._endpointer, self._sequencer
