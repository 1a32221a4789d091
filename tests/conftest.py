"""
Shared pytest fixtures.

Qt tests run on the offscreen platform; the qt_cleanup fixture flushes pending
events after each of them so dangling Qt objects never leak between tests.
"""
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from unittest.mock import MagicMock

import pytest

from dictaflow.core.asr.bindings import EngineCandidate, NativeBinding


def make_candidate(name: str, variant_tag: str, priority: int) -> EngineCandidate:
    return EngineCandidate(name=name, variant_tag=variant_tag, priority=priority)


@pytest.fixture
def cuda_candidate():
    return make_candidate("sherpa-onnx-cuda", "cuda", 0)


@pytest.fixture
def cpu_candidate():
    return make_candidate("sherpa-onnx-cpu", "cpu", 100)


@pytest.fixture
def fake_loader():
    """Loader that always succeeds with a mock binding module."""

    def loader(candidate: EngineCandidate) -> NativeBinding:
        return NativeBinding(candidate, MagicMock(name=f"module-{candidate.name}"))

    return loader


@pytest.fixture
def qt_cleanup(qtbot):
    yield

    from PySide6.QtWidgets import QApplication

    app = QApplication.instance()
    if app:
        app.processEvents()
