from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass

from speechsession.domain.exceptions import SessionError
from speechsession.domain.types import (
    DeliveryMode,
    EndpointerEvent,
    LedgerUpdate,
    RecognitionResult,
    RecognizeResponse,
    SessionOutcome,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _HeldEvent:
    event: EndpointerEvent
    offset_ms: int


class ResponseSequencer:
    """Orders ledger updates and endpointer events into outbound responses.

    An event that refers to audio beyond what the sequenced updates cover is
    held until an update covers it or ``barrier`` is called. Buffered sessions
    release everything once, from ``complete``.
    """

    def __init__(self, mode: DeliveryMode, interim_results: bool) -> None:
        self._mode = mode
        self._interim_results = interim_results
        self._covered_ms = 0
        self._held: deque[_HeldEvent] = deque()
        self._pending: list[RecognizeResponse] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def covered_ms(self) -> int:
        return self._covered_ms

    def push_update(self, update: LedgerUpdate, end_ms: int, start_ms: int | None = None) -> None:
        self._ensure_open()
        if start_ms is not None:
            self._advance(start_ms)
        outbound = self._gate_interim(update)
        if outbound is not None:
            self._emit(RecognizeResponse(results=outbound.results, result_index=outbound.result_index))
        self._advance(end_ms)

    def push_event(self, event: EndpointerEvent, offset_ms: int | None = None) -> None:
        self._ensure_open()
        if offset_ms is None:
            self.barrier()
            self._emit(RecognizeResponse(endpoint=event))
            return
        if not self._held and offset_ms <= self._covered_ms:
            self._emit(RecognizeResponse(endpoint=event))
            return
        self._held.append(_HeldEvent(event=event, offset_ms=offset_ms))

    def barrier(self) -> None:
        self._ensure_open()
        while self._held:
            self._emit(RecognizeResponse(endpoint=self._held.popleft().event))

    def drain(self) -> list[RecognizeResponse]:
        if self._mode is DeliveryMode.BUFFERED:
            return []
        ready, self._pending = self._pending, []
        return ready

    def complete(self, results: Sequence[RecognitionResult]) -> SessionOutcome:
        self.barrier()
        self._closed = True
        responses, self._pending = tuple(self._pending), []
        logger.debug(f"Sequencer completed with {len(responses)} unreleased response(s)")
        return SessionOutcome(responses=responses, results=tuple(results))

    def fail(self, error: SessionError) -> SessionOutcome:
        discarded = len(self._pending) + len(self._held)
        if discarded:
            logger.debug(f"Discarding {discarded} unsent response(s) after {type(error).__name__}")
        self._held.clear()
        self._pending = []
        self._closed = True
        return SessionOutcome(error=error, responses=(RecognizeResponse(error=error),))

    def _advance(self, offset_ms: int) -> None:
        self._covered_ms = max(self._covered_ms, offset_ms)
        while self._held and self._held[0].offset_ms <= self._covered_ms:
            self._emit(RecognizeResponse(endpoint=self._held.popleft().event))

    def _gate_interim(self, update: LedgerUpdate) -> LedgerUpdate | None:
        if self._interim_results:
            return update
        final = update.final_result
        if final is None:
            return None
        return LedgerUpdate(result_index=update.result_index, results=(final,))

    def _emit(self, response: RecognizeResponse) -> None:
        self._pending.append(response)

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("sequencer is closed")
