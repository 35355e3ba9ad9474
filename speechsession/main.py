from __future__ import annotations

import logging
import os
import resource
import signal
import socket
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import grpc

from speechsession.application.operations import OperationTracker, RuntimeMetadata
from speechsession.infrastructure.grpc import speech_pb2_grpc
from speechsession.infrastructure.grpc.message_mapper import MessageMapper
from speechsession.infrastructure.grpc.servicer import SpeechServicer
from speechsession.infrastructure.storage import LocalObjectStore
from speechsession.shared.utils import get_env, split_env_list, start_health_server
from speechsession.stt.engine_manager import DEFAULT_ENGINE_FACTORY, EngineConfig, EngineManager
from speechsession.stt.partials import PartialConfig
from speechsession.stt.pipeline import PipelineConfig, VADRecognitionPipeline
from speechsession.stt.vad import VADConfig

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    port: int = 50051
    grpc_workers: int = 10
    session_workers: int = 4
    health_port: int = 8081
    tls_cert: str = ""
    tls_key: str = ""
    storage_root: str = "./storage"
    allowed_uri_schemes: tuple[str, ...] = ("gs",)
    project_id: str = ""
    preload_engine: bool = True
    engine_config: EngineConfig = field(default_factory=EngineConfig)
    pipeline_config: PipelineConfig = field(default_factory=PipelineConfig)


def load_config() -> ServerConfig:
    return ServerConfig(
        port=get_env("GRPC_PORT", 50051),
        grpc_workers=get_env("GRPC_WORKERS", 10),
        session_workers=get_env("SESSION_WORKERS", 4),
        health_port=get_env("HEALTH_PORT", 8081),
        tls_cert=get_env("GRPC_TLS_CERT", ""),
        tls_key=get_env("GRPC_TLS_KEY", ""),
        storage_root=get_env("STORAGE_ROOT", "./storage"),
        allowed_uri_schemes=split_env_list(get_env("ALLOWED_URI_SCHEMES", "gs")),
        project_id=get_env("PROJECT_ID", ""),
        preload_engine=get_env("PRELOAD_STT", True),
        engine_config=EngineConfig(
            factory=get_env("STT_ENGINE", DEFAULT_ENGINE_FACTORY),
            ttl=get_env("STT_MODEL_TTL", 300),
        ),
        pipeline_config=PipelineConfig(
            vad_config=VADConfig(
                energy_threshold=get_env("VAD_ENERGY_THRESHOLD", 0.01),
                frame_ms=get_env("VAD_FRAME_MS", 30),
                min_speech_duration_ms=get_env("VAD_MIN_SPEECH_MS", 150),
                min_silence_duration_ms=get_env("VAD_SILENCE_MS", 500),
                speech_pad_ms=get_env("VAD_PAD_MS", 100),
                min_audio_duration_ms=get_env("VAD_MIN_AUDIO_MS", 300),
                max_utterance_ms=get_env("VAD_MAX_UTTERANCE_MS", 15000),
            ),
            partial_config=PartialConfig(
                window_ms=get_env("PARTIAL_WINDOW_MS", 1500),
                stride_ms=get_env("PARTIAL_STRIDE_MS", 700),
            ),
        ),
    )


def validate_config(config: ServerConfig) -> list[str]:
    errors = []
    for name, val in [
        ("GRPC_PORT", config.port),
        ("GRPC_WORKERS", config.grpc_workers),
        ("SESSION_WORKERS", config.session_workers),
        ("HEALTH_PORT", config.health_port),
        ("VAD_FRAME_MS", config.pipeline_config.vad_config.frame_ms),
        ("VAD_MAX_UTTERANCE_MS", config.pipeline_config.vad_config.max_utterance_ms),
        ("PARTIAL_WINDOW_MS", config.pipeline_config.partial_config.window_ms),
        ("PARTIAL_STRIDE_MS", config.pipeline_config.partial_config.stride_ms),
    ]:
        if val <= 0:
            errors.append(f"Invalid setting {name}={val} (must be > 0)")
    if not config.allowed_uri_schemes:
        errors.append("ALLOWED_URI_SCHEMES must name at least one scheme")
    if bool(config.tls_cert) != bool(config.tls_key):
        errors.append("GRPC_TLS_CERT and GRPC_TLS_KEY must be set together")
    return errors


def serve() -> None:
    try:
        config = load_config()
    except ValueError as e:
        logger.error(f"Invalid environment setting: {e}")
        sys.exit(1)
    errors = validate_config(config)
    for error in errors:
        logger.error(error)
    if errors:
        sys.exit(1)

    engine_manager = EngineManager(config.engine_config)
    storage = LocalObjectStore(config.storage_root, config.allowed_uri_schemes)
    tracker = OperationTracker(project_id=config.project_id)

    def pipeline_factory() -> VADRecognitionPipeline:
        return VADRecognitionPipeline(engine_manager, config.pipeline_config, storage)

    grpc_executor = ThreadPoolExecutor(max_workers=config.grpc_workers, thread_name_prefix="grpc")
    session_executor = ThreadPoolExecutor(max_workers=config.session_workers, thread_name_prefix="session")

    server = grpc.server(grpc_executor)
    speech_pb2_grpc.add_SpeechServicer_to_server(
        SpeechServicer(
            pipeline_factory,
            session_executor,
            tracker,
            storage,
            allowed_uri_schemes=config.allowed_uri_schemes,
            runtime_metadata=RuntimeMetadata(
                hostname=socket.gethostname(),
                engine=config.engine_config.factory,
                worker=str(os.getpid()),
            ),
        ),
        server,
    )
    if config.tls_cert and config.tls_key:
        with open(config.tls_cert, "rb") as f:
            cert = f.read()
        with open(config.tls_key, "rb") as f:
            key = f.read()
        server_credentials = grpc.ssl_server_credentials(((key, cert),))
        server.add_secure_port(f"[::]:{config.port}", server_credentials)
        logger.info("gRPC server using TLS")
    else:
        server.add_insecure_port(f"[::]:{config.port}")
        logger.info("gRPC server using insecure transport")

    logger.info(f"Starting gRPC server on port {config.port}")
    logger.info(f"STT engine: {config.engine_config.factory}")
    logger.info(f"VAD energy threshold: {config.pipeline_config.vad_config.energy_threshold}")
    logger.info(f"Storage root: {storage.root}, URI schemes: {', '.join(config.allowed_uri_schemes)}")
    logger.info(f"gRPC workers: {config.grpc_workers}, session workers: {config.session_workers}")
    logger.info(f"Health server on :{config.health_port}")

    if config.preload_engine:
        logger.info("Preloading STT engine...")
        engine_manager.preload()

    def metrics_fn() -> str:
        rss_kb = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        return "\n".join([
            f"speechsession_rss_kb {rss_kb}",
            f"speechsession_loaded_engines {engine_manager.loaded_count()}",
            f"speechsession_tracked_operations {len(tracker)}",
        ]) + "\n"

    def operation_fn(operation_id: str) -> str | None:
        operation = tracker.get(operation_id)
        return MessageMapper.operation_to_json(operation) if operation is not None else None

    health_server = start_health_server(config.health_port, metrics_fn=metrics_fn, operation_fn=operation_fn)

    def shutdown(*_args) -> None:
        logger.info("Shutting down gRPC server...")
        server.stop(grace=5)
        session_executor.shutdown(wait=False, cancel_futures=True)
        grpc_executor.shutdown(wait=False, cancel_futures=True)
        health_server.shutdown()
        engine_manager.force_unload()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    server.start()
    server.wait_for_termination()


def cli() -> None:
    serve()


if __name__ == "__main__":
    cli()
