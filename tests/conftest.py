from __future__ import annotations

import pytest
from unittest.mock import MagicMock

from speechsession.domain.types import RecognitionAlternative
from speechsession.stt.engine_manager import EngineConfig, EngineManager


@pytest.fixture
def speech_engine():
    engine = MagicMock()
    engine.get_sample_rate.return_value = 16000
    engine.transcribe.return_value = [RecognitionAlternative(transcript="hello world", confidence=0.9)]
    return engine


@pytest.fixture
def engine_manager(speech_engine):
    return EngineManager(EngineConfig(factory="tests:fake_engine", ttl=0), factory=lambda: speech_engine)
