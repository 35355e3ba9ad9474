from __future__ import annotations

import logging
from enum import Enum

from speechsession.domain.exceptions import IllegalEventSequence
from speechsession.domain.types import EndpointerEvent

logger = logging.getLogger(__name__)


class EndpointerState(str, Enum):
    IDLE = "idle"
    SPEECH_ACTIVE = "speech_active"
    SPEECH_ENDED = "speech_ended"
    AUDIO_ENDED = "audio_ended"
    UTTERANCE_ENDED = "utterance_ended"


_TRANSITIONS: dict[EndpointerEvent, tuple[frozenset[EndpointerState], EndpointerState]] = {
    EndpointerEvent.START_OF_SPEECH: (
        frozenset({EndpointerState.IDLE, EndpointerState.SPEECH_ENDED}),
        EndpointerState.SPEECH_ACTIVE,
    ),
    EndpointerEvent.END_OF_SPEECH: (
        frozenset({EndpointerState.SPEECH_ACTIVE}),
        EndpointerState.SPEECH_ENDED,
    ),
    EndpointerEvent.END_OF_AUDIO: (
        frozenset({EndpointerState.IDLE, EndpointerState.SPEECH_ENDED}),
        EndpointerState.AUDIO_ENDED,
    ),
    EndpointerEvent.END_OF_UTTERANCE: (
        frozenset(
            {
                EndpointerState.IDLE,
                EndpointerState.SPEECH_ACTIVE,
                EndpointerState.SPEECH_ENDED,
                EndpointerState.AUDIO_ENDED,
            }
        ),
        EndpointerState.UTTERANCE_ENDED,
    ),
}


class EndpointerEmitter:
    """Speech-boundary state machine for one session.

    State is tracked whether or not events are enabled, so the session can
    always tell when an utterance has ended. ``transition`` returns the event
    to send, or ``None`` when endpointer events are disabled.
    """

    def __init__(self, continuous: bool, enabled: bool) -> None:
        self._continuous = continuous
        self._enabled = enabled
        self._state = EndpointerState.IDLE

    @property
    def state(self) -> EndpointerState:
        return self._state

    @property
    def accepts_audio(self) -> bool:
        return self._state not in (EndpointerState.AUDIO_ENDED, EndpointerState.UTTERANCE_ENDED)

    @property
    def speech_active(self) -> bool:
        return self._state is EndpointerState.SPEECH_ACTIVE

    def transition(self, event: EndpointerEvent) -> EndpointerEvent | None:
        if event not in _TRANSITIONS:
            raise IllegalEventSequence(f"{event.name} is not a valid endpointer event")
        if event is EndpointerEvent.END_OF_UTTERANCE and self._continuous:
            raise IllegalEventSequence("END_OF_UTTERANCE is only valid when continuous is false")

        allowed_from, target = _TRANSITIONS[event]
        if self._state not in allowed_from:
            raise IllegalEventSequence(f"{event.name} is not valid in state {self._state.value}")

        logger.debug(f"Endpointer {self._state.value} -> {target.value} on {event.name}")
        self._state = target
        return event if self._enabled else None

