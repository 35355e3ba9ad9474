from __future__ import annotations

import logging
from collections.abc import Callable

from google.protobuf import any_pb2, json_format, struct_pb2
from google.protobuf.message import Message
from google.rpc import code_pb2, status_pb2

from speechsession.application.operations import (
    OperationMetadata,
    OperationPayload,
    RecognizeJob,
    RuntimeMetadata,
    payload_type,
)
from speechsession.domain.exceptions import (
    IllegalEventSequence,
    InvalidAudioChunk,
    InvalidConfig,
    InvalidLedgerUpdate,
    RecognitionError,
    SessionCancelled,
    UnexpectedConfig,
)
from speechsession.domain.types import (
    AudioChunk,
    AudioEncoding,
    EndpointerEvent,
    RecognitionAlternative,
    RecognitionResult,
    RecognizeRequest,
    RecognizeResponse,
    SessionConfig,
    SessionOutcome,
)
from speechsession.infrastructure.grpc import operations_pb2, speech_pb2

logger = logging.getLogger(__name__)

_ERROR_CODES: tuple[tuple[type[Exception], int], ...] = (
    (InvalidConfig, code_pb2.INVALID_ARGUMENT),
    (UnexpectedConfig, code_pb2.INVALID_ARGUMENT),
    (InvalidAudioChunk, code_pb2.INVALID_ARGUMENT),
    (SessionCancelled, code_pb2.CANCELLED),
    (InvalidLedgerUpdate, code_pb2.INTERNAL),
    (IllegalEventSequence, code_pb2.INTERNAL),
    (RecognitionError, code_pb2.INTERNAL),
)


class MessageMapper:
    @staticmethod
    def to_domain_session_config(pb_config: speech_pb2.InitialRecognizeRequest) -> SessionConfig:
        try:
            encoding = AudioEncoding(pb_config.encoding)
        except ValueError:
            raise InvalidConfig(f"unknown audio encoding {pb_config.encoding}") from None
        return SessionConfig(
            encoding=encoding,
            sample_rate=pb_config.sample_rate,
            language_code=pb_config.language_code,
            max_alternatives=pb_config.max_alternatives,
            profanity_filter=pb_config.profanity_filter,
            continuous=pb_config.continuous,
            interim_results=pb_config.interim_results,
            enable_endpointer_events=pb_config.enable_endpointer_events,
            output_uri=pb_config.output_uri or None,
            phrases=tuple(pb_config.speech_context.phrases),
        )

    @staticmethod
    def to_domain_audio_chunk(pb_audio: speech_pb2.AudioRequest) -> AudioChunk:
        return AudioChunk(content=pb_audio.content or None, uri=pb_audio.uri or None)

    @staticmethod
    def to_domain_request(pb_request: speech_pb2.RecognizeRequest) -> RecognizeRequest:
        config = None
        audio = None
        if pb_request.HasField("initial_request"):
            config = MessageMapper.to_domain_session_config(pb_request.initial_request)
        if pb_request.HasField("audio_request"):
            audio = MessageMapper.to_domain_audio_chunk(pb_request.audio_request)
        return RecognizeRequest(config=config, audio=audio)

    @staticmethod
    def to_grpc_session_config(config: SessionConfig) -> speech_pb2.InitialRecognizeRequest:
        return speech_pb2.InitialRecognizeRequest(
            encoding=int(config.encoding),
            sample_rate=config.sample_rate,
            language_code=config.language_code,
            max_alternatives=config.max_alternatives,
            profanity_filter=config.profanity_filter,
            continuous=config.continuous,
            interim_results=config.interim_results,
            enable_endpointer_events=config.enable_endpointer_events,
            output_uri=config.output_uri or "",
            speech_context=speech_pb2.SpeechContext(phrases=list(config.phrases)),
        )

    @staticmethod
    def to_grpc_error(error: Exception) -> status_pb2.Status:
        for error_type, code in _ERROR_CODES:
            if isinstance(error, error_type):
                return status_pb2.Status(code=code, message=str(error))
        logger.error("Unexpected recognition failure", exc_info=error)
        return status_pb2.Status(code=code_pb2.INTERNAL, message=f"Unexpected error: {error}")

    @staticmethod
    def to_grpc_alternative(alternative: RecognitionAlternative) -> speech_pb2.SpeechRecognitionAlternative:
        return speech_pb2.SpeechRecognitionAlternative(
            transcript=alternative.transcript,
            confidence=alternative.confidence or 0.0,
        )

    @staticmethod
    def to_grpc_result(result: RecognitionResult) -> speech_pb2.SpeechRecognitionResult:
        return speech_pb2.SpeechRecognitionResult(
            alternatives=[MessageMapper.to_grpc_alternative(a) for a in result.alternatives],
            is_final=result.is_final,
            stability=0.0 if result.is_final else (result.stability or 0.0),
        )

    @staticmethod
    def to_grpc_response(response: RecognizeResponse) -> speech_pb2.RecognizeResponse:
        if response.error is not None:
            return speech_pb2.RecognizeResponse(error=MessageMapper.to_grpc_error(response.error))
        if response.endpoint is not EndpointerEvent.ENDPOINTER_EVENT_UNSPECIFIED:
            return speech_pb2.RecognizeResponse(endpoint=int(response.endpoint))
        return speech_pb2.RecognizeResponse(
            results=[MessageMapper.to_grpc_result(r) for r in response.results],
            result_index=response.result_index,
        )

    @staticmethod
    def to_grpc_outcome(outcome: SessionOutcome) -> speech_pb2.NonStreamingRecognizeResponse:
        return speech_pb2.NonStreamingRecognizeResponse(
            responses=[MessageMapper.to_grpc_response(r) for r in outcome.responses]
        )

    @staticmethod
    def outcome_to_json(outcome: SessionOutcome) -> str:
        return json_format.MessageToJson(MessageMapper.to_grpc_outcome(outcome), preserving_proto_field_name=True)

    @staticmethod
    def to_grpc_operation(operation: OperationMetadata) -> operations_pb2.OperationMetadata:
        pb_operation = operations_pb2.OperationMetadata(
            project_id=operation.project_id,
            events=[operations_pb2.OperationEvent(description=e.description) for e in operation.events],
        )
        pb_operation.create_time.FromDatetime(operation.create_time)
        if operation.end_time is not None:
            pb_operation.end_time.FromDatetime(operation.end_time)
        if operation.request is not None:
            pb_operation.request.CopyFrom(MessageMapper.pack_payload(operation.request))
        if operation.runtime_metadata is not None:
            pb_operation.runtime_metadata.CopyFrom(MessageMapper.pack_payload(operation.runtime_metadata))
        return pb_operation

    @staticmethod
    def operation_to_json(operation: OperationMetadata) -> str:
        return json_format.MessageToJson(MessageMapper.to_grpc_operation(operation), preserving_proto_field_name=True)

    @staticmethod
    def pack_payload(payload: OperationPayload) -> any_pb2.Any:
        try:
            encode, _ = _PAYLOAD_CODECS[type(payload)]
        except KeyError:
            raise ValueError(f"no wire encoding for payload {type(payload).__name__}") from None
        packed = any_pb2.Any()
        packed.Pack(encode(payload))
        return packed

    @staticmethod
    def unpack_payload(packed: any_pb2.Any) -> OperationPayload:
        cls = payload_type(packed.TypeName())
        _, decode = _PAYLOAD_CODECS[cls]
        return decode(packed)


def _encode_job(payload: RecognizeJob) -> Message:
    return MessageMapper.to_grpc_session_config(payload.config)


def _decode_job(packed: any_pb2.Any) -> RecognizeJob:
    pb_config = speech_pb2.InitialRecognizeRequest()
    packed.Unpack(pb_config)
    return RecognizeJob(config=MessageMapper.to_domain_session_config(pb_config))


def _encode_runtime(payload: RuntimeMetadata) -> Message:
    struct = struct_pb2.Struct()
    struct.update({"hostname": payload.hostname, "engine": payload.engine, "worker": payload.worker})
    return struct


def _decode_runtime(packed: any_pb2.Any) -> RuntimeMetadata:
    struct = struct_pb2.Struct()
    packed.Unpack(struct)
    values = json_format.MessageToDict(struct)
    return RuntimeMetadata(
        hostname=values.get("hostname", ""),
        engine=values.get("engine", ""),
        worker=values.get("worker", ""),
    )


_PAYLOAD_CODECS: dict[type, tuple[Callable[..., Message], Callable[[any_pb2.Any], OperationPayload]]] = {
    RecognizeJob: (_encode_job, _decode_job),
    RuntimeMetadata: (_encode_runtime, _decode_runtime),
}
