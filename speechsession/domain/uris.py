from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlsplit


@dataclass(frozen=True)
class ObjectRef:
    scheme: str
    bucket: str
    name: str

    def __str__(self) -> str:
        return f"{self.scheme}://{self.bucket}/{self.name}"


def parse_object_uri(uri: str, schemes: Iterable[str]) -> ObjectRef:
    """Parse ``<scheme>://bucket_name/object_name``, raising ValueError otherwise."""
    allowed = tuple(schemes)
    parts = urlsplit(uri)
    if parts.scheme not in allowed:
        raise ValueError(f"unsupported URI scheme in {uri!r}, expected one of {', '.join(allowed)}")
    name = parts.path.lstrip("/")
    if not parts.netloc or not name or parts.query or parts.fragment:
        raise ValueError(f"URI {uri!r} must have the form {allowed[0]}://bucket_name/object_name")
    return ObjectRef(scheme=parts.scheme, bucket=parts.netloc, name=name)
