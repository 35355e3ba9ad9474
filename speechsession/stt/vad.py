from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray

from speechsession.domain.constants import ms_to_samples, samples_to_ms
from speechsession.domain.types import SpeechStarted, SpeechStopped

logger = logging.getLogger(__name__)

# Headroom kept in the ring buffer beyond the longest utterance.
BUFFER_MARGIN_MS = 4000


@dataclass
class VADConfig:
    energy_threshold: float = 0.01
    frame_ms: int = 30
    min_speech_duration_ms: int = 150
    min_silence_duration_ms: int = 500
    speech_pad_ms: int = 100
    min_audio_duration_ms: int = 300
    max_utterance_ms: int = 15000


@dataclass
class VADState:
    audio_start_ms: int | None = None
    audio_end_ms: int | None = None
    voiced_ms: int = 0
    silence_ms: int = 0


@dataclass
class SpeechSegment:
    audio: NDArray[np.float32]
    start_ms: int
    end_ms: int

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


VADEvent = tuple[Union[SpeechStarted, SpeechStopped], Optional[SpeechSegment]]


class AudioRingBuffer:
    __slots__ = ("_buffer", "_write_pos", "_length")

    def __init__(self, max_samples: int) -> None:
        self._buffer = np.zeros(max_samples, dtype=np.float32)
        self._write_pos = 0
        self._length = 0

    def append(self, audio: NDArray[np.float32]) -> None:
        n = len(audio)
        if n == 0:
            return

        if n >= len(self._buffer):
            self._buffer[:] = audio[-len(self._buffer):]
            self._write_pos = 0
            self._length = len(self._buffer)
            return

        end_pos = self._write_pos + n
        if end_pos <= len(self._buffer):
            self._buffer[self._write_pos:end_pos] = audio
        else:
            first_part = len(self._buffer) - self._write_pos
            self._buffer[self._write_pos:] = audio[:first_part]
            self._buffer[:n - first_part] = audio[first_part:]

        self._write_pos = end_pos % len(self._buffer)
        self._length = min(self._length + n, len(self._buffer))

    def get_last_n(self, n: int) -> NDArray[np.float32]:
        n = min(n, self._length)
        if n == 0:
            return np.array([], dtype=np.float32)
        return self.get_slice(self._length - n, self._length)

    def get_all(self) -> NDArray[np.float32]:
        return self.get_last_n(self._length)

    def get_slice(self, start_sample: int, end_sample: int) -> NDArray[np.float32]:
        start_sample = max(0, min(start_sample, self._length))
        end_sample = max(0, min(end_sample, self._length))
        if start_sample >= end_sample:
            return np.array([], dtype=np.float32)

        oldest_pos = (self._write_pos - self._length) % len(self._buffer)
        actual_start = (oldest_pos + start_sample) % len(self._buffer)
        actual_end = (oldest_pos + end_sample) % len(self._buffer)

        if actual_start < actual_end:
            return self._buffer[actual_start:actual_end].copy()
        return np.concatenate([self._buffer[actual_start:], self._buffer[:actual_end]])

    def __len__(self) -> int:
        return self._length

    def clear(self) -> None:
        self._write_pos = 0
        self._length = 0


def frame_energy(frame: NDArray[np.float32]) -> float:
    if len(frame) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(frame, dtype=np.float64))))


class VADProcessor:
    """Frame-energy voice activity detector over a mono float32 stream.

    Timestamps are milliseconds since the first sample appended after
    construction or ``reset``.
    """

    def __init__(self, sample_rate: int, config: VADConfig | None = None) -> None:
        self.config = config or VADConfig()
        self.sample_rate = sample_rate
        self.state = VADState()
        self._frame_samples = max(1, ms_to_samples(self.config.frame_ms, sample_rate))
        self._remainder = np.array([], dtype=np.float32)
        self._frames_seen = 0
        self._pending: list[NDArray[np.float32]] = []
        self.buffer = AudioRingBuffer(
            ms_to_samples(self.config.max_utterance_ms + BUFFER_MARGIN_MS, sample_rate)
        )

    @property
    def speech_active(self) -> bool:
        return self.state.audio_start_ms is not None

    @property
    def position_ms(self) -> int:
        return self._frames_seen * self.config.frame_ms

    def active_audio(self) -> NDArray[np.float32]:
        if not self.speech_active:
            return np.array([], dtype=np.float32)
        return self.buffer.get_all()

    def append(self, audio: NDArray[np.float32]) -> list[VADEvent]:
        if len(self._remainder):
            audio = np.concatenate([self._remainder, audio])
        usable = len(audio) - len(audio) % self._frame_samples
        self._remainder = audio[usable:].copy()

        events: list[VADEvent] = []
        for offset in range(0, usable, self._frame_samples):
            event = self._process_frame(audio[offset:offset + self._frame_samples])
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> VADEvent | None:
        if len(self._remainder) and self.speech_active:
            self.buffer.append(self._remainder)
        self._remainder = np.array([], dtype=np.float32)
        if not self.speech_active:
            return None
        end_ms = self.position_ms - self.state.silence_ms + min(self.state.silence_ms, self.config.speech_pad_ms)
        return self._stop(end_ms)

    def reset(self) -> None:
        self.buffer.clear()
        self.state = VADState()
        self._pending = []
        self._remainder = np.array([], dtype=np.float32)
        self._frames_seen = 0

    def _process_frame(self, frame: NDArray[np.float32]) -> VADEvent | None:
        self._frames_seen += 1
        is_speech = frame_energy(frame) >= self.config.energy_threshold
        frame_ms = self.config.frame_ms

        if not self.speech_active:
            if not is_speech:
                self.state.voiced_ms = 0
                self._pending = []
                return None
            self.state.voiced_ms += frame_ms
            self._pending.append(frame)
            if self.state.voiced_ms < self.config.min_speech_duration_ms:
                return None
            self.state.audio_start_ms = self.position_ms - self.state.voiced_ms
            self.state.silence_ms = 0
            for pending in self._pending:
                self.buffer.append(pending)
            self._pending = []
            return SpeechStarted(timestamp_ms=self.state.audio_start_ms), None

        self.buffer.append(frame)
        self.state.silence_ms = 0 if is_speech else self.state.silence_ms + frame_ms

        if self.state.silence_ms >= self.config.min_silence_duration_ms:
            end_ms = self.position_ms - self.state.silence_ms + min(self.state.silence_ms, self.config.speech_pad_ms)
            return self._stop(end_ms)

        assert self.state.audio_start_ms is not None
        if self.position_ms - self.state.audio_start_ms >= self.config.max_utterance_ms:
            logger.debug(f"Utterance reached {self.config.max_utterance_ms}ms, forcing a segment boundary")
            return self._stop(self.position_ms)

        return None

    def _stop(self, end_ms: int) -> VADEvent:
        assert self.state.audio_start_ms is not None
        self.state.audio_end_ms = end_ms
        segment = self._extract_segment()
        self._clear_buffer()

        stopped = SpeechStopped(timestamp_ms=end_ms)
        if segment.duration_ms < self.config.min_audio_duration_ms:
            logger.debug(f"Segment too short ({segment.duration_ms}ms), skipping STT")
            return stopped, None
        return stopped, segment

    def _extract_segment(self) -> SpeechSegment:
        if self.state.audio_start_ms is None or self.state.audio_end_ms is None:
            return SpeechSegment(audio=np.array([], dtype=np.float32), start_ms=0, end_ms=0)

        length_samples = ms_to_samples(self.state.audio_end_ms - self.state.audio_start_ms, self.sample_rate)
        audio = self.buffer.get_slice(0, length_samples)
        return SpeechSegment(
            audio=audio,
            start_ms=self.state.audio_start_ms,
            end_ms=self.state.audio_start_ms + samples_to_ms(len(audio), self.sample_rate),
        )

    def _clear_buffer(self) -> None:
        self.buffer.clear()
        self.state = VADState()
