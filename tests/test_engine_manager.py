from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

import pytest

from speechsession.stt.engine_manager import (
    DEFAULT_ENGINE_FACTORY,
    EngineConfig,
    EngineManager,
    ManagedEngine,
    resolve_factory,
)
from speechsession.stt.protocol import SpeechEngineLifecycle


class TestEngineConfig:
    def test_default_values(self):
        config = EngineConfig()

        assert config.factory == DEFAULT_ENGINE_FACTORY
        assert config.ttl == 300


class TestResolveFactory:
    def test_resolves_callable(self):
        import math

        assert resolve_factory("math:sqrt") is math.sqrt

    @pytest.mark.parametrize("path", ["math", "math:", ":sqrt", ""])
    def test_rejects_malformed_path(self, path):
        with pytest.raises(ValueError, match="package.module:callable"):
            resolve_factory(path)

    def test_missing_attribute(self):
        with pytest.raises(ValueError, match="no attribute"):
            resolve_factory("math:no_such_engine")

    def test_not_callable(self):
        with pytest.raises(ValueError, match="not callable"):
            resolve_factory("math:pi")

    def test_missing_module(self):
        with pytest.raises(ImportError):
            resolve_factory("speechsession.no_such_module:create_engine")


class TestManagedEngine:
    def test_context_manager_loads_engine(self):
        create_fn = MagicMock(return_value="engine")
        managed = ManagedEngine("test", create_fn, ttl=300)

        with managed as engine:
            assert engine == "engine"
            assert managed.ref_count == 1
            assert managed.loaded

        create_fn.assert_called_once()

    def test_nested_use_shares_engine(self):
        create_fn = MagicMock(return_value="engine")
        managed = ManagedEngine("test", create_fn, ttl=-1)

        with managed as outer:
            with managed as inner:
                assert managed.ref_count == 2
                assert outer is inner
            assert managed.ref_count == 1

        assert managed.ref_count == 0
        create_fn.assert_called_once()

    def test_unload_with_refs_does_nothing(self):
        managed = ManagedEngine("test", MagicMock(return_value=MagicMock()), ttl=-1)

        managed._load()
        managed._increment_ref()
        managed.unload()

        assert managed.loaded

    def test_ttl_schedules_unload(self):
        managed = ManagedEngine("test", MagicMock(return_value="engine"), ttl=0.1)

        with managed:
            pass

        time.sleep(0.3)
        assert not managed.loaded

    def test_reuse_cancels_pending_unload(self):
        managed = ManagedEngine("test", MagicMock(return_value="engine"), ttl=0.2)

        with managed:
            pass
        with managed:
            time.sleep(0.3)
            assert managed.loaded

    def test_lifecycle_methods_called(self):
        engine = MagicMock(spec=SpeechEngineLifecycle)
        callback = MagicMock()
        managed = ManagedEngine("test", MagicMock(return_value=engine), ttl=-1, engine_removed_callback=callback)

        with managed:
            engine.load.assert_called_once()

        managed.unload()

        engine.unload.assert_called_once()
        callback.assert_called_once_with("test")


class TestEngineManager:
    def test_get_engine_keyed_by_factory(self, speech_engine):
        manager = EngineManager(EngineConfig(factory="tests:engine", ttl=-1), factory=lambda: speech_engine)

        wrapper = manager.get_engine()

        assert "tests:engine" in manager.engines
        assert manager.get_engine() is wrapper

    def test_custom_engine_id(self, engine_manager):
        engine_manager.get_engine("other")

        assert list(engine_manager.engines) == ["other"]

    def test_engine_created_lazily(self):
        factory = MagicMock()
        manager = EngineManager(EngineConfig(ttl=-1), factory=factory)

        manager.get_engine()

        factory.assert_not_called()
        assert manager.loaded_count() == 0

    def test_factory_resolved_from_config(self, speech_engine):
        manager = EngineManager(EngineConfig(factory="engines:create", ttl=-1))

        with patch("speechsession.stt.engine_manager.resolve_factory", return_value=lambda: speech_engine) as resolve:
            with manager.get_engine() as engine:
                assert engine is speech_engine

        resolve.assert_called_once_with("engines:create")

    def test_rejects_non_engine(self):
        manager = EngineManager(EngineConfig(ttl=-1), factory=lambda: object())

        with pytest.raises(TypeError, match="not a speech engine"):
            with manager.get_engine():
                pass

    def test_preload(self, engine_manager, speech_engine):
        engine_manager.preload()

        assert engine_manager.loaded_count() == 1
        speech_engine.load.assert_called_once()

    def test_force_unload(self, engine_manager, speech_engine):
        with engine_manager.get_engine():
            pass

        engine_manager.force_unload()

        assert engine_manager.loaded_count() == 0
        assert engine_manager.engines == {}
        speech_engine.unload.assert_called_once()
