# core/services/reference_service.py
from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type

from pydantic import ValidationError

from core import settings
from core.errors import ReferenceLoadError
from core.models.reference import (
    Armateur, Navire, Origine, ReferenceItem, TypeDossier, names_by_id, normalize_ref,
)
from core.storage.json_repo import JsonRepository

logger = logging.getLogger(__name__)

ORIGINES = "origines"
ARMATEURS = "armateurs"
TYPES = "types"
NAVIRES = "navires"

# kind -> (modèle, fichier JSON, libellé des messages d'erreur)
KINDS: Dict[str, tuple] = {
    ORIGINES: (Origine, "origines.json", "origines"),
    ARMATEURS: (Armateur, "armateurs.json", "armateurs"),
    TYPES: (TypeDossier, "types_dossier.json", "types de dossier"),
    NAVIRES: (Navire, "navires.json", "navires"),
}

Loader = Callable[[], Iterable[Mapping[str, Any]]]


class ReferenceService:
    """
    Listes de référence (origines, armateurs, types, navires).
    Chaque liste est chargée une fois puis servie depuis le cache ;
    une liste vide est rechargée au prochain appel.
    """

    def __init__(self, data_dir: Optional[Path | str] = None,
                 loaders: Optional[Mapping[str, Loader]] = None):
        base = Path(data_dir) if data_dir else settings.data_dir()
        self._loaders: Dict[str, Loader] = {}
        for kind, (_, filename, _) in KINDS.items():
            if loaders and kind in loaders:
                self._loaders[kind] = loaders[kind]
            else:
                self._loaders[kind] = JsonRepository(base / filename, entity_name=kind).list_all
        self._cache: Dict[str, List[ReferenceItem]] = {}
        self._lock = threading.Lock()

    def _fetch(self, kind: str) -> List[ReferenceItem]:
        model: Type[ReferenceItem]
        model, _, label = KINDS[kind]
        with self._lock:
            cached = self._cache.get(kind)
            if cached:
                return cached
            try:
                raw = list(self._loaders[kind]() or [])
            except (OSError, ValueError) as e:
                logger.warning("Chargement des %s impossible: %s", label, e)
                raise ReferenceLoadError(label, e) from e

            items: List[ReferenceItem] = []
            for d in raw:
                try:
                    items.append(model.model_validate(d))
                except ValidationError:
                    logger.warning("%s: entrée ignorée %r", kind, d)
                    continue
            self._cache[kind] = items
            return items

    # ----------- listes -----------
    def origines(self) -> List[Origine]:
        return self._fetch(ORIGINES)

    def armateurs(self) -> List[Armateur]:
        return self._fetch(ARMATEURS)

    def types(self) -> List[TypeDossier]:
        return self._fetch(TYPES)

    def navires(self) -> List[Navire]:
        return self._fetch(NAVIRES)

    def get(self, kind: str) -> List[ReferenceItem]:
        if kind not in KINDS:
            raise KeyError(kind)
        return self._fetch(kind)

    # ----------- lookups -----------
    def names(self, kind: str) -> Dict[str, str]:
        """{id: nom} pour la résolution des libellés."""
        return names_by_id(self.get(kind))

    def resolve(self, kind: str, raw: Any) -> str:
        return normalize_ref(raw, self.get(kind))

    def refresh(self, kind: Optional[str] = None) -> None:
        with self._lock:
            if kind is None:
                self._cache.clear()
            else:
                self._cache.pop(kind, None)
