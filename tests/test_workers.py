"""Tests for background load tasks: every outcome reaches the view."""

import pytest
from PySide6.QtCore import QCoreApplication

from core.errors import ReferenceLoadError
from ui.workers import LoadTask


@pytest.fixture(scope="module", autouse=True)
def qt_app():
    return QCoreApplication.instance() or QCoreApplication([])


def run_task(fn):
    done, failed = [], []
    task = LoadTask(fn)
    task.signals.done.connect(done.append)
    task.signals.failed.connect(failed.append)
    task.run()
    return done, failed


def test_result_is_delivered():
    done, failed = run_task(lambda: {"total": 3})
    assert done == [{"total": 3}]
    assert failed == []


def test_app_error_is_delivered():
    def boom():
        raise ReferenceLoadError("origines")

    done, failed = run_task(boom)
    assert done == []
    assert str(failed[0]) == "Erreur lors du chargement des origines"


@pytest.mark.parametrize("exc", [KeyError("numeroDossier"), TypeError("x"), AttributeError("y")])
def test_unexpected_error_is_delivered(exc):
    def boom():
        raise exc

    done, failed = run_task(boom)
    assert done == []
    assert failed == [exc]
