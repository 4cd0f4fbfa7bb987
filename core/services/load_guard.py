# core/services/load_guard.py
from __future__ import annotations
import threading
from typing import Any, Callable, Optional


class LoadGuard:
    """
    Drapeau de vie d'une vue : une fois fermé, les callbacks de chargement
    arrivés en retard ne font plus rien.
    """

    def __init__(self) -> None:
        self._alive = True
        self._lock = threading.Lock()

    @property
    def alive(self) -> bool:
        with self._lock:
            return self._alive

    def close(self) -> None:
        with self._lock:
            self._alive = False

    def bind(self, callback: Callable[..., Any]) -> Callable[..., Optional[Any]]:
        def guarded(*args: Any, **kwargs: Any) -> Optional[Any]:
            if not self.alive:
                return None
            return callback(*args, **kwargs)
        return guarded


class LoadSequence:
    """
    Suite de chargements d'une même vue : chaque nouveau chargement ferme
    le garde du précédent, dont le résultat tardif est alors ignoré.
    """

    def __init__(self) -> None:
        self._current: Optional[LoadGuard] = None
        self._lock = threading.Lock()

    def next(self) -> LoadGuard:
        guard = LoadGuard()
        with self._lock:
            previous, self._current = self._current, guard
        if previous is not None:
            previous.close()
        return guard

    def close(self) -> None:
        with self._lock:
            previous, self._current = self._current, None
        if previous is not None:
            previous.close()
