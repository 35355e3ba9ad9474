from __future__ import annotations

import pytest

from speechsession.domain.types import AudioEncoding, EndpointerEvent
from speechsession.infrastructure.grpc import operations_pb2, speech_pb2, speech_pb2_grpc


class TestSpeechService:
    def test_service_name(self):
        assert speech_pb2.SERVICE_NAME == "google.cloud.speech.v1.Speech"
        assert speech_pb2_grpc.RECOGNIZE_METHOD == "/google.cloud.speech.v1.Speech/Recognize"

    def test_method_shapes(self):
        methods = speech_pb2.DESCRIPTOR.services_by_name["Speech"].methods_by_name

        recognize = methods["Recognize"]
        assert recognize.client_streaming and recognize.server_streaming
        non_streaming = methods["NonStreamingRecognize"]
        assert not non_streaming.client_streaming and not non_streaming.server_streaming
        assert non_streaming.output_type.name == "NonStreamingRecognizeResponse"

    def test_status_error_field(self):
        field = speech_pb2.RecognizeResponse.DESCRIPTOR.fields_by_name["error"]

        assert field.message_type.full_name == "google.rpc.Status"


class TestEnums:
    @pytest.mark.parametrize("encoding", list(AudioEncoding))
    def test_audio_encoding_numbers(self, encoding):
        assert speech_pb2.InitialRecognizeRequest.AudioEncoding.Value(encoding.name) == encoding.value

    @pytest.mark.parametrize("event", list(EndpointerEvent))
    def test_endpointer_event_numbers(self, event):
        assert speech_pb2.RecognizeResponse.EndpointerEvent.Value(event.name) == event.value


class TestOperationMessages:
    def test_field_numbers(self):
        fields = operations_pb2.OperationMetadata.DESCRIPTOR.fields_by_name

        assert {name: f.number for name, f in fields.items()} == {
            "project_id": 1,
            "create_time": 2,
            "end_time": 4,
            "request": 5,
            "events": 6,
            "runtime_metadata": 8,
        }
        assert operations_pb2.OperationEvent.DESCRIPTOR.fields_by_name["description"].number == 3
