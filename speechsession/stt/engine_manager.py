from __future__ import annotations

import gc
import importlib
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from speechsession.stt.protocol import SpeechEngine, SpeechEngineLifecycle

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ENGINE_FACTORY = "speechsession.stt.engines.parakeet:create_engine"

EngineFactory = Callable[[], SpeechEngine]


@dataclass
class EngineConfig:
    factory: str = DEFAULT_ENGINE_FACTORY
    ttl: int = 300


def resolve_factory(path: str) -> EngineFactory:
    """Import ``package.module:callable`` and return the callable."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"engine factory must look like 'package.module:callable', got {path!r}")
    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError as e:
        raise ValueError(f"module {module_name!r} has no attribute {attr!r}") from e
    if not callable(factory):
        raise ValueError(f"{path!r} is not callable")
    return factory


class ManagedEngine(Generic[T]):
    def __init__(
        self,
        engine_id: str,
        create_fn: Callable[[], T],
        ttl: float,
        engine_removed_callback: Callable[[str], None] | None = None,
    ) -> None:
        self.engine_id = engine_id
        self.create_fn = create_fn
        self.ttl = ttl
        self.engine_removed_callback = engine_removed_callback
        self.ref_count: int = 0
        self.rlock = threading.RLock()
        self.expire_timer: threading.Timer | None = None
        self.engine: T | None = None

    @property
    def loaded(self) -> bool:
        with self.rlock:
            return self.engine is not None

    def unload(self) -> None:
        with self.rlock:
            if self.engine is None or self.ref_count > 0:
                return
            if self.expire_timer:
                self.expire_timer.cancel()
                self.expire_timer = None
            if isinstance(self.engine, SpeechEngineLifecycle):
                self.engine.unload()
            self.engine = None
            gc.collect()
            logger.info(f"Engine {self.engine_id} unloaded")
            if self.engine_removed_callback is not None:
                self.engine_removed_callback(self.engine_id)

    def _load(self) -> None:
        with self.rlock:
            if self.engine is not None:
                return
            logger.info(f"Creating engine {self.engine_id}")
            start = time.perf_counter()
            self.engine = self.create_fn()
            if isinstance(self.engine, SpeechEngineLifecycle):
                self.engine.load()
            logger.info(f"Engine {self.engine_id} ready in {time.perf_counter() - start:.2f}s")

    def _increment_ref(self) -> None:
        with self.rlock:
            self.ref_count += 1
            if self.expire_timer:
                self.expire_timer.cancel()
                self.expire_timer = None

    def _decrement_ref(self) -> None:
        with self.rlock:
            self.ref_count -= 1
            if self.ref_count <= 0 and self.ttl > 0:
                logger.info(f"Engine {self.engine_id} idle, unloading in {self.ttl}s")
                self.expire_timer = threading.Timer(self.ttl, self.unload)
                self.expire_timer.daemon = True
                self.expire_timer.start()

    def __enter__(self) -> T:
        with self.rlock:
            if self.engine is None:
                self._load()
            self._increment_ref()
            assert self.engine is not None
            return self.engine

    def __exit__(self, *_args) -> None:
        self._decrement_ref()


class EngineManager:
    """Shares speech engines between sessions and unloads them after ``ttl`` idle seconds."""

    def __init__(self, config: EngineConfig, factory: EngineFactory | None = None) -> None:
        self.config = config
        self.engines: OrderedDict[str, ManagedEngine[SpeechEngine]] = OrderedDict()
        self._lock = threading.Lock()
        self._factory = factory

    def _handle_engine_removed(self, engine_id: str) -> None:
        with self._lock:
            self.engines.pop(engine_id, None)

    def _create_engine(self) -> SpeechEngine:
        if self._factory is None:
            self._factory = resolve_factory(self.config.factory)
        engine = self._factory()
        if not isinstance(engine, SpeechEngine):
            raise TypeError(f"{self.config.factory} returned {type(engine).__name__}, not a speech engine")
        return engine

    def get_engine(self, engine_id: str | None = None) -> ManagedEngine[SpeechEngine]:
        engine_id = engine_id or self.config.factory
        with self._lock:
            if engine_id in self.engines:
                return self.engines[engine_id]
            self.engines[engine_id] = ManagedEngine[SpeechEngine](
                engine_id,
                create_fn=self._create_engine,
                ttl=self.config.ttl,
                engine_removed_callback=self._handle_engine_removed,
            )
            return self.engines[engine_id]

    def preload(self) -> None:
        wrapper = self.get_engine()
        wrapper._load()
        wrapper._increment_ref()
        wrapper._decrement_ref()

    def loaded_count(self) -> int:
        with self._lock:
            wrappers = list(self.engines.values())
        return sum(1 for w in wrappers if w.loaded)

    def force_unload(self) -> None:
        with self._lock:
            wrappers = list(self.engines.values())
        for m in wrappers:
            with m.rlock:
                m.ref_count = 0
            m.unload()
        gc.collect()
