from __future__ import annotations
import logging
from typing import Any, Callable

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal

from core.errors import SmartFretError
from core.services.load_guard import LoadGuard

logger = logging.getLogger(__name__)


class _Signals(QObject):
    done = Signal(object)
    failed = Signal(object)


class LoadTask(QRunnable):
    """Exécute fn() dans le pool Qt ; résultat / erreur livrés par signal au thread UI."""

    def __init__(self, fn: Callable[[], Any]):
        super().__init__()
        self.fn = fn
        self.signals = _Signals()

    def run(self) -> None:
        try:
            result = self.fn()
        except SmartFretError as e:
            logger.warning("Chargement en échec: %s", e)
            self.signals.failed.emit(e)
            return
        except Exception as e:
            # frontière du thread : toute erreur doit revenir à la vue
            logger.exception("Erreur inattendue pendant le chargement")
            self.signals.failed.emit(e)
            return
        self.signals.done.emit(result)


def run_load(guard: LoadGuard, fn: Callable[[], Any],
             on_done: Callable[[Any], None], on_error: Callable[[Exception], None]) -> LoadTask:
    """Lance un chargement ; les callbacks sont ignorés si la vue est fermée entre-temps."""
    task = LoadTask(fn)
    task.signals.done.connect(guard.bind(on_done))
    task.signals.failed.connect(guard.bind(on_error))
    QThreadPool.globalInstance().start(task)
    return task
