from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor

import grpc

from speechsession.application.config_validator import validate_session_config
from speechsession.application.ingest import AudioIngestQueue
from speechsession.application.operations import OperationTracker, RecognizeJob, RuntimeMetadata
from speechsession.application.session import RecognitionSession
from speechsession.domain.constants import DEFAULT_URI_SCHEMES
from speechsession.domain.exceptions import InvalidAudioChunk, RecognitionError, SessionError
from speechsession.domain.types import DeliveryMode, RecognizeResponse, SessionOutcome
from speechsession.infrastructure.grpc import speech_pb2, speech_pb2_grpc
from speechsession.infrastructure.grpc.message_mapper import MessageMapper
from speechsession.infrastructure.storage import ObjectStore
from speechsession.stt.protocol import RecognitionPipeline

logger = logging.getLogger(__name__)

OPERATION_ID_METADATA_KEY = "operation-id"

PipelineFactory = Callable[[], RecognitionPipeline]


class SpeechServicer(speech_pb2_grpc.SpeechServicer):
    def __init__(
        self,
        pipeline_factory: PipelineFactory,
        executor: ThreadPoolExecutor,
        tracker: OperationTracker,
        storage: ObjectStore,
        allowed_uri_schemes: Iterable[str] = DEFAULT_URI_SCHEMES,
        runtime_metadata: RuntimeMetadata | None = None,
    ) -> None:
        self._pipeline_factory = pipeline_factory
        self._executor = executor
        self._tracker = tracker
        self._storage = storage
        self._allowed_uri_schemes = tuple(allowed_uri_schemes)
        self._runtime_metadata = runtime_metadata

    def _new_ingest(self, mode: DeliveryMode) -> AudioIngestQueue:
        schemes = self._allowed_uri_schemes
        return AudioIngestQueue(
            validate_config=lambda config: validate_session_config(config, mode, schemes),
            allowed_uri_schemes=schemes,
        )

    def _pump_requests(
        self,
        request_iterator: Iterable[speech_pb2.RecognizeRequest],
        ingest: AudioIngestQueue,
        session_id: str,
    ) -> None:
        try:
            for pb_request in request_iterator:
                if ingest.closed:
                    break
                ingest.submit(MessageMapper.to_domain_request(pb_request))
        except SessionError as e:
            logger.info(f"[{session_id}] Rejected request: {type(e).__name__}: {e}")
            ingest.fail(e)
        except grpc.RpcError as e:
            logger.info(f"[{session_id}] Request stream aborted: {e}")
            ingest.cancel()
        except Exception as e:
            logger.exception(f"[{session_id}] Failed reading recognition requests")
            ingest.fail(RecognitionError(f"Unexpected error: {e}"))
        finally:
            ingest.close()

    def Recognize(
        self,
        request_iterator: Iterable[speech_pb2.RecognizeRequest],
        context: grpc.ServicerContext,
    ) -> Iterator[speech_pb2.RecognizeResponse]:
        session = RecognitionSession(self._pipeline_factory(), DeliveryMode.STREAMING)
        ingest = self._new_ingest(DeliveryMode.STREAMING)
        if context is not None:
            context.add_callback(session.cancel)
        logger.info(f"[{session.session_id}] Streaming recognition started")

        reader = threading.Thread(
            target=self._pump_requests,
            args=(request_iterator, ingest, session.session_id),
            name=f"recognize-{session.session_id}",
            daemon=True,
        )
        reader.start()
        for response in session.run(ingest):
            yield MessageMapper.to_grpc_response(response)

    def NonStreamingRecognize(
        self,
        request: speech_pb2.RecognizeRequest,
        context: grpc.ServicerContext,
    ) -> speech_pb2.NonStreamingRecognizeResponse:
        ingest = self._new_ingest(DeliveryMode.BUFFERED)
        try:
            domain_request = MessageMapper.to_domain_request(request)
            ingest.submit(domain_request)
            if domain_request.audio is None:
                raise InvalidAudioChunk("non-streaming recognition needs both a session config and audio")
        except SessionError as e:
            logger.info(f"Rejected recognition request: {type(e).__name__}: {e}")
            return MessageMapper.to_grpc_outcome(SessionOutcome(error=e, responses=(RecognizeResponse(error=e),)))
        ingest.close()

        config = ingest.config
        assert config is not None
        if config.output_uri:
            operation_id = self._start_job(ingest, RecognizeJob(config=config), config.output_uri)
            if context is not None:
                context.set_trailing_metadata(((OPERATION_ID_METADATA_KEY, operation_id),))
            return speech_pb2.NonStreamingRecognizeResponse()

        session = RecognitionSession(self._pipeline_factory(), DeliveryMode.BUFFERED)
        if context is not None:
            context.add_callback(session.cancel)
        outcome = session.collect(ingest)
        return MessageMapper.to_grpc_outcome(outcome)

    def _start_job(self, ingest: AudioIngestQueue, job: RecognizeJob, output_uri: str) -> str:
        operation = self._tracker.create(request=job, runtime_metadata=self._runtime_metadata)
        session = RecognitionSession(
            self._pipeline_factory(),
            DeliveryMode.BUFFERED,
            event_listener=self._tracker.listener(operation.operation_id),
            session_id=operation.operation_id[:12],
        )
        self._executor.submit(self._run_job, session, ingest, operation.operation_id, output_uri)
        logger.info(f"[{session.session_id}] Recognition job queued, results go to {output_uri}")
        return operation.operation_id

    def _run_job(
        self,
        session: RecognitionSession,
        ingest: AudioIngestQueue,
        operation_id: str,
        output_uri: str,
    ) -> None:
        try:
            outcome = session.collect(ingest)
            self._storage.write(output_uri, MessageMapper.outcome_to_json(outcome).encode())
            self._tracker.add_event(operation_id, f"Results written to {output_uri}")
            self._tracker.finish(operation_id, outcome.error)
        except Exception as e:
            logger.exception(f"[{session.session_id}] Recognition job failed")
            self._tracker.finish(operation_id, RecognitionError(f"Unexpected error: {e}"))
