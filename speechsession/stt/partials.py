from __future__ import annotations

import logging
from dataclasses import dataclass, field

from speechsession.domain.types import RecognitionAlternative

logger = logging.getLogger(__name__)

DEFAULT_PARTIAL_WINDOW_MS = 1500
DEFAULT_PARTIAL_STRIDE_MS = 700
PARTIAL_OVERLAP_MS = 300


@dataclass
class PartialConfig:
    window_ms: int = DEFAULT_PARTIAL_WINDOW_MS
    stride_ms: int = DEFAULT_PARTIAL_STRIDE_MS


@dataclass
class PartialState:
    last_partial_ms: int = 0
    confirmed_words: list[str] = field(default_factory=list)


def deduplicate_words(text: str, confirmed_words: list[str]) -> tuple[list[str], list[str]]:
    """Split ``text`` into words already confirmed and words that are new.

    The longest suffix of ``confirmed_words`` that matches a prefix of the new
    words (case-insensitively) is treated as overlap.
    """
    words = [w for w in text.strip().split() if w]
    overlap = 0
    max_overlap = min(len(words), len(confirmed_words))
    for i in range(max_overlap, 0, -1):
        if [w.lower() for w in confirmed_words[-i:]] == [w.lower() for w in words[:i]]:
            overlap = i
            break
    return words[:overlap], words[overlap:]


def estimate_stability(previous_words: int, total_words: int) -> float | None:
    if total_words == 0 or previous_words == 0:
        return None
    return round(min(1.0, previous_words / total_words), 2)


class InterimHypothesis:
    """Builds a growing interim transcript for the current utterance.

    Each partial decode only covers the tail of the utterance, so the words it
    shares with the confirmed transcript are dropped and the rest appended.
    """

    def __init__(self, config: PartialConfig | None = None) -> None:
        self.config = config or PartialConfig()
        self.state = PartialState()

    @property
    def tail_window_ms(self) -> int:
        return self.config.window_ms + PARTIAL_OVERLAP_MS

    def due(self, speech_ms: int) -> bool:
        if speech_ms < self.config.window_ms:
            return False
        return speech_ms - self.state.last_partial_ms >= self.config.stride_ms

    def update(
        self,
        speech_ms: int,
        alternatives: list[RecognitionAlternative],
    ) -> tuple[RecognitionAlternative, float | None] | None:
        self.state.last_partial_ms = speech_ms
        if not alternatives:
            return None

        previous = len(self.state.confirmed_words)
        _, new_words = deduplicate_words(alternatives[0].transcript, self.state.confirmed_words)
        if not new_words:
            return None
        self.state.confirmed_words.extend(new_words)

        transcript = " ".join(self.state.confirmed_words)
        stability = estimate_stability(previous, len(self.state.confirmed_words))
        logger.debug(f"Interim hypothesis ({len(self.state.confirmed_words)} words, stability={stability})")
        return RecognitionAlternative(transcript=transcript, confidence=alternatives[0].confidence), stability

    def reset(self) -> None:
        self.state = PartialState()
