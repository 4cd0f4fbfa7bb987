from __future__ import annotations
from typing import Dict, List, Mapping, Sequence, Union


class SmartFretError(Exception):
    """Erreur de base de l'application."""


class DossierNotFoundError(SmartFretError):
    def __init__(self, dossier_id: str):
        super().__init__(f"Dossier {dossier_id} introuvable")
        self.dossier_id = dossier_id


class DossierValidationError(SmartFretError):
    """Erreurs de validation par champ : {"numeroDossier": ["..."]}."""

    def __init__(self, errors: Mapping[str, Union[str, Sequence[str]]]):
        self.errors: Dict[str, List[str]] = {
            k: ([v] if isinstance(v, str) else list(v)) for k, v in errors.items()
        }
        super().__init__("Erreur de validation : " + ", ".join(self.errors))


class ReferenceLoadError(SmartFretError):
    def __init__(self, kind: str, cause: Exception | None = None):
        super().__init__(f"Erreur lors du chargement des {kind}")
        self.kind = kind
        self.cause = cause


class ExportError(SmartFretError):
    pass
