"""Message classes for the ``google.cloud.speech.v1`` recognition API.

Compiled from ``speechsession/protos/cloud_speech.proto`` by grpcio-tools on
first import.
"""
from __future__ import annotations

import grpc

PROTO_PATH = "speechsession/protos/cloud_speech.proto"

_protos = grpc.protos(PROTO_PATH)

DESCRIPTOR = _protos.DESCRIPTOR
PACKAGE = DESCRIPTOR.package
SERVICE_NAME = DESCRIPTOR.services_by_name["Speech"].full_name

RecognizeRequest = _protos.RecognizeRequest
InitialRecognizeRequest = _protos.InitialRecognizeRequest
SpeechContext = _protos.SpeechContext
AudioRequest = _protos.AudioRequest
NonStreamingRecognizeResponse = _protos.NonStreamingRecognizeResponse
RecognizeResponse = _protos.RecognizeResponse
SpeechRecognitionResult = _protos.SpeechRecognitionResult
SpeechRecognitionAlternative = _protos.SpeechRecognitionAlternative
