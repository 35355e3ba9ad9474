from __future__ import annotations

import logging
import tempfile
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import onnx_asr
import soundfile as sf
from numpy.typing import NDArray

from speechsession.domain.types import RecognitionAlternative
from speechsession.shared.utils import get_env

logger = logging.getLogger(__name__)

PARAKEET_SAMPLE_RATE = 16000
DEFAULT_MODEL_ID = "nemo-parakeet-tdt-0.6b-v3"


def _normalize_model_id(model_id: str) -> str:
    if model_id.startswith("nvidia/"):
        model_id = model_id.replace("nvidia/", "nemo-")
    return model_id


def _get_providers(device: str) -> list[str]:
    if device == "cuda":
        import onnxruntime as ort

        if "CUDAExecutionProvider" in ort.get_available_providers():
            return ["CUDAExecutionProvider", "CPUExecutionProvider"]
        logger.warning("CUDA requested but CUDAExecutionProvider not available, falling back to CPU")
    return ["CPUExecutionProvider"]


@dataclass
class ParakeetConfig:
    model_id: str = DEFAULT_MODEL_ID
    device: str = "cpu"


class ParakeetEngine:
    def __init__(self, config: ParakeetConfig | None = None) -> None:
        self._config = config or ParakeetConfig()
        self._model: onnx_asr.adapters.TextResultsAsrAdapter | None = None

    def load(self) -> None:
        if self._model is not None:
            return
        model_id = _normalize_model_id(self._config.model_id)
        logger.info(f"Loading Parakeet ONNX model: {model_id}")
        start = time.perf_counter()
        self._model = onnx_asr.load_model(model_id, providers=_get_providers(self._config.device))
        logger.info(f"Parakeet model loaded in {time.perf_counter() - start:.2f}s")

    def unload(self) -> None:
        self._model = None
        logger.info("Parakeet engine unloaded")

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def transcribe(
        self,
        audio: NDArray[np.float32],
        language: str,
        max_alternatives: int = 1,
        phrases: Sequence[str] = (),
    ) -> list[RecognitionAlternative]:
        if not language.lower().startswith("en"):
            logger.warning(f"Parakeet only supports English, ignoring language={language}")
        if phrases:
            logger.debug(f"Parakeet has no phrase biasing, ignoring {len(phrases)} phrase(s)")

        self.load()
        assert self._model is not None

        if len(audio) == 0:
            return []

        start = time.perf_counter()
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as f:
            sf.write(f.name, audio, PARAKEET_SAMPLE_RATE)
            temp_path = Path(f.name)
        try:
            text = self._model.recognize(str(temp_path))
        finally:
            temp_path.unlink(missing_ok=True)

        audio_duration_ms = int(len(audio) / PARAKEET_SAMPLE_RATE * 1000)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        text = text.strip() if text else ""
        if not text:
            logger.debug(f"Empty transcription result for {audio_duration_ms}ms audio")
            return []
        logger.info(f"Transcribed {audio_duration_ms}ms audio in {elapsed_ms}ms: {text[:50]}...")
        return [RecognitionAlternative(transcript=text)]

    def get_sample_rate(self) -> int:
        return PARAKEET_SAMPLE_RATE


def create_engine() -> ParakeetEngine:
    return ParakeetEngine(
        ParakeetConfig(
            model_id=get_env("PARAKEET_MODEL_ID", DEFAULT_MODEL_ID),
            device=get_env("STT_DEVICE", "cpu"),
        )
    )
