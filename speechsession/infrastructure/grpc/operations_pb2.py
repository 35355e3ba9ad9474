"""Message classes for ``google.genomics.v1`` operation metadata."""
from __future__ import annotations

import grpc

PROTO_PATH = "speechsession/protos/operations.proto"

_protos = grpc.protos(PROTO_PATH)

DESCRIPTOR = _protos.DESCRIPTOR
PACKAGE = DESCRIPTOR.package

OperationMetadata = _protos.OperationMetadata
OperationEvent = _protos.OperationEvent
