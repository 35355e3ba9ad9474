from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Union

from speechsession.domain.constants import DEFAULT_URI_SCHEMES
from speechsession.domain.exceptions import InvalidAudioChunk, InvalidConfig, SessionError, UnexpectedConfig
from speechsession.domain.types import AudioChunk, RecognizeRequest, SessionConfig
from speechsession.domain.uris import parse_object_uri

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.1


@dataclass(frozen=True)
class ConfigItem:
    config: SessionConfig


@dataclass(frozen=True)
class AudioItem:
    chunk: AudioChunk
    sequence: int


@dataclass(frozen=True)
class ErrorItem:
    error: SessionError


@dataclass(frozen=True)
class EndOfStream:
    pass


@dataclass(frozen=True)
class Cancelled:
    pass


IngestItem = Union[ConfigItem, AudioItem, ErrorItem, EndOfStream, Cancelled]

ConfigValidator = Callable[[SessionConfig], SessionConfig]


def validate_audio_chunk(chunk: AudioChunk | None, allowed_uri_schemes: Iterable[str] = DEFAULT_URI_SCHEMES) -> AudioChunk:
    if chunk is None or (not chunk.has_content and not chunk.has_uri):
        raise InvalidAudioChunk("audio request must contain either content or uri")
    if chunk.has_content and chunk.has_uri:
        raise InvalidAudioChunk("audio request must not contain both content and uri")
    if chunk.has_uri:
        try:
            parse_object_uri(chunk.uri or "", allowed_uri_schemes)
        except ValueError as e:
            raise InvalidAudioChunk(str(e)) from e
    return chunk


class AudioIngestQueue:
    """Ordered hand-off of one session's inbound messages.

    The transport thread submits requests; the session is the only consumer.
    Submitting never blocks.
    """

    def __init__(
        self,
        validate_config: ConfigValidator,
        allowed_uri_schemes: Iterable[str] = DEFAULT_URI_SCHEMES,
    ) -> None:
        self._validate_config = validate_config
        self._allowed_uri_schemes = tuple(allowed_uri_schemes)
        self._queue: queue.Queue[IngestItem] = queue.Queue()
        self._lock = threading.Lock()
        self._configured = False
        self._config: SessionConfig | None = None
        self._terminated = False
        self._accepting = True
        self._cancelled = threading.Event()
        self._sequence = 0
        self._dropped = 0

    @property
    def configured(self) -> bool:
        with self._lock:
            return self._configured

    @property
    def config(self) -> SessionConfig | None:
        """The validated session config, once the first request was accepted."""
        with self._lock:
            return self._config

    @property
    def dropped_chunks(self) -> int:
        with self._lock:
            return self._dropped

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._terminated

    def submit(self, request: RecognizeRequest) -> None:
        with self._lock:
            if self._terminated:
                logger.debug("Ignoring request submitted after the stream terminated")
                return

            if not self._configured:
                if request.config is None:
                    raise InvalidConfig("the first request must contain a session config")
                config = self._validate_config(request.config)
                self._queue.put_nowait(ConfigItem(config))
                self._config = config
                self._configured = True
                if request.audio is not None:
                    self._put_chunk(request.audio)
                return

            if request.config is not None:
                raise UnexpectedConfig("session config may only be sent in the first request")
            self._put_chunk(request.audio)

    def put(self, chunk: AudioChunk) -> None:
        with self._lock:
            if not self._configured:
                raise InvalidConfig("audio received before the session was configured")
            if self._terminated:
                return
            self._put_chunk(chunk)

    def _put_chunk(self, chunk: AudioChunk | None) -> None:
        chunk = validate_audio_chunk(chunk, self._allowed_uri_schemes)
        if not self._accepting:
            self._dropped += 1
            return
        self._queue.put_nowait(AudioItem(chunk=chunk, sequence=self._sequence))
        self._sequence += 1

    def stop_accepting(self) -> None:
        with self._lock:
            self._accepting = False

    def close(self) -> None:
        self._terminate(EndOfStream())

    def fail(self, error: SessionError) -> None:
        self._terminate(ErrorItem(error))

    def cancel(self) -> None:
        self._cancelled.set()
        self._terminate(Cancelled(), force=True)

    def _terminate(self, item: IngestItem, force: bool = False) -> None:
        with self._lock:
            if self._terminated and not force:
                return
            self._terminated = True
            self._queue.put_nowait(item)

    def __iter__(self) -> Iterator[IngestItem]:
        while True:
            if self._cancelled.is_set():
                yield Cancelled()
                return
            try:
                item = self._queue.get(timeout=POLL_INTERVAL_S)
            except queue.Empty:
                continue
            yield item
            if isinstance(item, (EndOfStream, ErrorItem, Cancelled)):
                return
