from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import grpc
import pytest
from google.rpc import code_pb2

from speechsession.application.operations import OperationTracker, RecognizeJob, RuntimeMetadata
from speechsession.domain.types import RecognitionUpdate, SpeechStarted, SpeechStopped
from speechsession.infrastructure.grpc import speech_pb2, speech_pb2_grpc
from speechsession.infrastructure.grpc.servicer import OPERATION_ID_METADATA_KEY, SpeechServicer
from speechsession.infrastructure.storage import LocalObjectStore

from fakes import ScriptedPipeline, final

LINEAR16 = speech_pb2.InitialRecognizeRequest.LINEAR16


def initial(**fields) -> speech_pb2.RecognizeRequest:
    values = {"encoding": LINEAR16, "sample_rate": 16000}
    values.update(fields)
    return speech_pb2.RecognizeRequest(initial_request=speech_pb2.InitialRecognizeRequest(**values))


def audio_request(content: bytes = b"\x00\x01" * 160) -> speech_pb2.RecognizeRequest:
    return speech_pb2.RecognizeRequest(audio_request=speech_pb2.AudioRequest(content=content))


def scripted(*steps):
    pipelines = []

    def factory():
        pipeline = ScriptedPipeline(steps=steps)
        pipelines.append(pipeline)
        return pipeline

    factory.pipelines = pipelines
    return factory


HELLO = [SpeechStarted(timestamp_ms=0), RecognitionUpdate(results=(final("hello world", 0.9),), end_ms=1000)]


@pytest.fixture
def executor():
    executor = ThreadPoolExecutor(max_workers=1)
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture
def tracker():
    return OperationTracker(project_id="demo")


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStore(tmp_path)


def make_servicer(factory, executor, tracker, storage) -> SpeechServicer:
    return SpeechServicer(
        factory,
        executor,
        tracker,
        storage,
        runtime_metadata=RuntimeMetadata(hostname="test", engine="scripted", worker="1"),
    )


class TestRecognize:
    def test_streams_results_and_endpoints(self, executor, tracker, storage):
        servicer = make_servicer(scripted(HELLO), executor, tracker, storage)
        context = MagicMock()

        responses = list(
            servicer.Recognize(iter([initial(continuous=True, enable_endpointer_events=True), audio_request()]), context)
        )

        assert [r.endpoint for r in responses] == [
            speech_pb2.RecognizeResponse.START_OF_SPEECH,
            speech_pb2.RecognizeResponse.ENDPOINTER_EVENT_UNSPECIFIED,
            speech_pb2.RecognizeResponse.END_OF_SPEECH,
            speech_pb2.RecognizeResponse.END_OF_AUDIO,
        ]
        assert responses[1].results[0].alternatives[0].transcript == "hello world"
        assert responses[1].results[0].is_final
        context.add_callback.assert_called_once()

    def test_invalid_config_ends_with_error(self, executor, tracker, storage):
        factory = scripted()
        servicer = make_servicer(factory, executor, tracker, storage)

        responses = list(servicer.Recognize(iter([initial(sample_rate=7000), audio_request()]), MagicMock()))

        assert len(responses) == 1
        assert responses[0].error.code == code_pb2.INVALID_ARGUMENT
        assert factory.pipelines[0].started_with is None

    def test_output_uri_rejected_for_streaming(self, executor, tracker, storage):
        servicer = make_servicer(scripted(), executor, tracker, storage)

        responses = list(servicer.Recognize(iter([initial(output_uri="gs://b/o.json")]), MagicMock()))

        assert responses[0].error.code == code_pb2.INVALID_ARGUMENT
        assert "output_uri" in responses[0].error.message

    def test_second_config_rejected(self, executor, tracker, storage):
        servicer = make_servicer(scripted(HELLO), executor, tracker, storage)

        responses = list(servicer.Recognize(iter([initial(), initial()]), MagicMock()))

        assert responses[-1].error.code == code_pb2.INVALID_ARGUMENT

    def test_aborted_request_stream_cancels(self, executor, tracker, storage):
        def requests():
            yield initial()
            raise grpc.RpcError()

        servicer = make_servicer(scripted(), executor, tracker, storage)

        responses = list(servicer.Recognize(requests(), MagicMock()))

        assert responses[-1].error.code == code_pb2.CANCELLED


class TestNonStreamingRecognize:
    def test_returns_all_responses(self, executor, tracker, storage):
        servicer = make_servicer(scripted(HELLO), executor, tracker, storage)
        request = initial(continuous=True)
        request.audio_request.content = b"\x00\x01" * 160

        response = servicer.NonStreamingRecognize(request, MagicMock())

        assert len(response.responses) == 1
        assert response.responses[0].results[0].alternatives[0].transcript == "hello world"

    def test_config_error(self, executor, tracker, storage):
        servicer = make_servicer(scripted(), executor, tracker, storage)

        response = servicer.NonStreamingRecognize(audio_request(), MagicMock())

        assert len(response.responses) == 1
        assert response.responses[0].error.code == code_pb2.INVALID_ARGUMENT

    def test_missing_audio_rejected(self, executor, tracker, storage):
        factory = scripted(HELLO)
        servicer = make_servicer(factory, executor, tracker, storage)
        context = MagicMock()

        response = servicer.NonStreamingRecognize(initial(output_uri="gs://results/none.json"), context)

        assert len(response.responses) == 1
        assert response.responses[0].error.code == code_pb2.INVALID_ARGUMENT
        assert "audio" in response.responses[0].error.message
        context.set_trailing_metadata.assert_not_called()
        assert len(tracker) == 0
        assert factory.pipelines == []

    def test_operation_records_normalized_config(self, executor, tracker, storage):
        servicer = make_servicer(scripted(HELLO), executor, tracker, storage)
        context = MagicMock()
        request = initial(output_uri="gs://results/lang.json")
        request.audio_request.content = b"\x00\x01" * 160

        servicer.NonStreamingRecognize(request, context)
        executor.shutdown(wait=True)

        ((_, operation_id),) = context.set_trailing_metadata.call_args.args[0]
        assert tracker.get(operation_id).request.config.language_code == "en-US"

    def test_output_uri_runs_as_operation(self, executor, tracker, storage, tmp_path):
        servicer = make_servicer(scripted(HELLO), executor, tracker, storage)
        context = MagicMock()
        request = initial(continuous=True, output_uri="gs://results/job.json")
        request.audio_request.content = b"\x00\x01" * 160

        response = servicer.NonStreamingRecognize(request, context)
        executor.shutdown(wait=True)

        assert len(response.responses) == 0
        ((key, operation_id),) = context.set_trailing_metadata.call_args.args[0]
        assert key == OPERATION_ID_METADATA_KEY

        operation = tracker.get(operation_id)
        assert operation.done
        assert operation.error is None
        assert isinstance(operation.request, RecognizeJob)
        assert operation.request.config.output_uri == "gs://results/job.json"
        descriptions = [e.description for e in operation.events]
        assert "Recognition complete" in descriptions
        assert descriptions[-1] == "Results written to gs://results/job.json"

        body = json.loads((tmp_path / "results" / "job.json").read_text())
        assert body["responses"][0]["results"][0]["alternatives"][0]["transcript"] == "hello world"

    def test_failed_job_recorded(self, executor, tracker, storage, tmp_path):
        def factory():
            return ScriptedPipeline(error=RuntimeError("engine exploded"))

        servicer = make_servicer(factory, executor, tracker, storage)
        context = MagicMock()
        request = initial(output_uri="gs://results/failed.json")
        request.audio_request.content = b"\x00\x01" * 160

        servicer.NonStreamingRecognize(request, context)
        executor.shutdown(wait=True)

        ((_, operation_id),) = context.set_trailing_metadata.call_args.args[0]
        operation = tracker.get(operation_id)
        assert operation.done
        assert operation.error.startswith("RecognitionError")
        body = json.loads((tmp_path / "results" / "failed.json").read_text())
        assert body["responses"][0]["error"]["code"] == code_pb2.INTERNAL


class TestGrpcRoundTrip:
    @pytest.fixture
    def stub(self, executor, tracker, storage):
        server = grpc.server(ThreadPoolExecutor(max_workers=4))
        speech_pb2_grpc.add_SpeechServicer_to_server(make_servicer(scripted(HELLO), executor, tracker, storage), server)
        port = server.add_insecure_port("localhost:0")
        server.start()
        channel = grpc.insecure_channel(f"localhost:{port}")
        yield speech_pb2_grpc.SpeechStub(channel)
        channel.close()
        server.stop(grace=None)

    def test_streaming(self, stub):
        responses = list(stub.Recognize(iter([initial(continuous=True), audio_request()]), timeout=10))

        assert len(responses) == 1
        assert responses[0].results[0].alternatives[0].confidence == pytest.approx(0.9)

    def test_non_streaming_with_operation_id(self, stub):
        request = initial(continuous=True, output_uri="gs://results/rt.json")
        request.audio_request.content = b"\x00\x01" * 160

        response, call = stub.NonStreamingRecognize.with_call(request, timeout=10)

        assert len(response.responses) == 0
        metadata = dict(call.trailing_metadata())
        assert len(metadata[OPERATION_ID_METADATA_KEY]) == 32
