from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, runtime_checkable

from speechsession.domain.constants import DEFAULT_URI_SCHEMES
from speechsession.domain.uris import parse_object_uri

logger = logging.getLogger(__name__)


@runtime_checkable
class ObjectStore(Protocol):
    def read(self, uri: str) -> bytes: ...

    def write(self, uri: str, data: bytes) -> None: ...


class LocalObjectStore:
    """Object store backed by a directory: ``gs://bucket/a/b`` lives at ``<root>/bucket/a/b``."""

    def __init__(self, root: str | Path, schemes: Iterable[str] = DEFAULT_URI_SCHEMES) -> None:
        self.root = Path(root).resolve()
        self.schemes = tuple(schemes)
        self._write_lock = threading.Lock()

    def path_for(self, uri: str) -> Path:
        ref = parse_object_uri(uri, self.schemes)
        path = (self.root / ref.bucket / ref.name).resolve()
        if self.root not in path.parents:
            raise ValueError(f"URI {uri!r} resolves outside the storage root")
        return path

    def read(self, uri: str) -> bytes:
        path = self.path_for(uri)
        if not path.is_file():
            raise FileNotFoundError(f"object {uri} does not exist")
        data = path.read_bytes()
        logger.debug(f"Read {len(data)} bytes from {uri}")
        return data

    def write(self, uri: str, data: bytes) -> None:
        path = self.path_for(uri)
        with self._write_lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(f".{path.name}.tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        logger.info(f"Wrote {len(data)} bytes to {uri}")
