from speechsession.stt.engine_manager import EngineConfig, EngineManager, ManagedEngine
from speechsession.stt.partials import InterimHypothesis, PartialConfig
from speechsession.stt.pipeline import PipelineConfig, VADRecognitionPipeline
from speechsession.stt.protocol import RecognitionPipeline, SpeechEngine, SpeechEngineLifecycle
from speechsession.stt.vad import SpeechSegment, VADConfig, VADProcessor

__all__ = [
    "EngineConfig",
    "EngineManager",
    "ManagedEngine",
    "InterimHypothesis",
    "PartialConfig",
    "PipelineConfig",
    "VADRecognitionPipeline",
    "RecognitionPipeline",
    "SpeechEngine",
    "SpeechEngineLifecycle",
    "SpeechSegment",
    "VADConfig",
    "VADProcessor",
]
