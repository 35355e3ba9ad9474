from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import ClassVar, Union

from speechsession.domain.exceptions import SessionError
from speechsession.domain.types import SessionConfig

logger = logging.getLogger(__name__)

MAX_TRACKED_OPERATIONS = 1000

_PAYLOAD_TYPES: dict[str, type] = {}


def register_payload(cls: type) -> type:
    """Make a payload class resolvable from the type name it is packed under."""
    type_name = getattr(cls, "type_name", None)
    if not type_name:
        raise TypeError(f"{cls.__name__} has no type_name")
    if type_name in _PAYLOAD_TYPES and _PAYLOAD_TYPES[type_name] is not cls:
        raise ValueError(f"payload type {type_name} is already registered to {_PAYLOAD_TYPES[type_name].__name__}")
    _PAYLOAD_TYPES[type_name] = cls
    return cls


def payload_type(type_name: str) -> type:
    try:
        return _PAYLOAD_TYPES[type_name]
    except KeyError:
        raise ValueError(f"unknown operation payload type {type_name!r}") from None


@register_payload
@dataclass(frozen=True)
class RecognizeJob:
    type_name: ClassVar[str] = "google.cloud.speech.v1.InitialRecognizeRequest"

    config: SessionConfig


@register_payload
@dataclass(frozen=True)
class RuntimeMetadata:
    type_name: ClassVar[str] = "google.protobuf.Struct"

    hostname: str = ""
    engine: str = ""
    worker: str = ""


OperationPayload = Union[RecognizeJob, RuntimeMetadata]


@dataclass(frozen=True)
class OperationEvent:
    description: str


@dataclass(frozen=True)
class OperationMetadata:
    operation_id: str
    project_id: str
    create_time: datetime
    end_time: datetime | None = None
    request: OperationPayload | None = None
    runtime_metadata: OperationPayload | None = None
    events: tuple[OperationEvent, ...] = ()
    error: str | None = None

    @property
    def done(self) -> bool:
        return self.end_time is not None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OperationTracker:
    """Thread-safe registry of long-running recognition jobs."""

    def __init__(self, project_id: str = "", max_operations: int = MAX_TRACKED_OPERATIONS) -> None:
        self.project_id = project_id
        self._max_operations = max_operations
        self._operations: OrderedDict[str, OperationMetadata] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def create(
        self,
        request: OperationPayload | None = None,
        runtime_metadata: OperationPayload | None = None,
    ) -> OperationMetadata:
        operation = OperationMetadata(
            operation_id=uuid.uuid4().hex,
            project_id=self.project_id,
            create_time=_now(),
            request=request,
            runtime_metadata=runtime_metadata,
        )
        with self._lock:
            self._operations[operation.operation_id] = operation
            self._evict()
        logger.info(f"Operation {operation.operation_id} created")
        return operation

    def add_event(self, operation_id: str, description: str) -> None:
        with self._lock:
            operation = self._require(operation_id)
            if operation.done:
                logger.debug(f"Ignoring event for finished operation {operation_id}: {description}")
                return
            self._operations[operation_id] = replace(
                operation, events=operation.events + (OperationEvent(description=description),)
            )

    def finish(self, operation_id: str, error: SessionError | None = None) -> OperationMetadata:
        with self._lock:
            operation = self._require(operation_id)
            if operation.done:
                return operation
            operation = replace(
                operation,
                end_time=_now(),
                error=f"{type(error).__name__}: {error}" if error is not None else None,
            )
            self._operations[operation_id] = operation
        if error is None:
            logger.info(f"Operation {operation_id} finished")
        else:
            logger.warning(f"Operation {operation_id} failed: {operation.error}")
        return operation

    def get(self, operation_id: str) -> OperationMetadata | None:
        with self._lock:
            return self._operations.get(operation_id)

    def listener(self, operation_id: str) -> Callable[[str], None]:
        return lambda description: self.add_event(operation_id, description)

    def _require(self, operation_id: str) -> OperationMetadata:
        operation = self._operations.get(operation_id)
        if operation is None:
            raise KeyError(f"unknown operation {operation_id}")
        return operation

    def _evict(self) -> None:
        while len(self._operations) > self._max_operations:
            for operation_id, operation in self._operations.items():
                if operation.done:
                    del self._operations[operation_id]
                    break
            else:
                return
