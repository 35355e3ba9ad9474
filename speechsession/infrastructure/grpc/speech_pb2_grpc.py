"""Client and server classes for the ``google.cloud.speech.v1.Speech`` service."""
from __future__ import annotations

import grpc

from speechsession.infrastructure.grpc import speech_pb2

_services = grpc.services(speech_pb2.PROTO_PATH)

RECOGNIZE_METHOD = f"/{speech_pb2.SERVICE_NAME}/Recognize"
NON_STREAMING_RECOGNIZE_METHOD = f"/{speech_pb2.SERVICE_NAME}/NonStreamingRecognize"

SpeechStub = _services.SpeechStub
SpeechServicer = _services.SpeechServicer
add_SpeechServicer_to_server = _services.add_SpeechServicer_to_server
