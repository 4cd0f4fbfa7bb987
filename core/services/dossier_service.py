# core/services/dossier_service.py
from __future__ import annotations
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from core import settings
from core.errors import DossierNotFoundError, DossierValidationError, ReferenceLoadError
from core.models.common import gen_id, to_number
from core.models.dossier import Dossier, DossierPage
from core.models.reference import ReferenceItem, normalize_ref
from core.services.reference_service import ARMATEURS, NAVIRES, ORIGINES, TYPES, ReferenceService
from core.storage.json_repo import JsonRepository

logger = logging.getLogger(__name__)

RefLists = Mapping[str, Sequence[ReferenceItem]]

# champs de référence -> liste d'options correspondante
_REF_FIELDS = {"origine": ORIGINES, "armateur": ARMATEURS, "navire": NAVIRES, "type": TYPES}

MSG_NUMERO_REQUIS = "Le numéro de dossier est requis"
MSG_DESIGNATION_REQUISE = "La désignation est requise"
MSG_CONTENEUR_REQUIS = "Le numéro du conteneur est requis"


def sanitize_dossier(raw: Mapping[str, Any], refs: Optional[RefLists] = None) -> Dossier:
    """
    Dossier issu du stockage -> modèle propre :
    nombres coercés, blocs manquants par défaut, références ramenées à un id
    (objet embarqué, id nu ou libellé connu des listes de référence).
    """
    data = dict(raw)
    for field, kind in _REF_FIELDS.items():
        options = (refs or {}).get(kind, ())
        data[field] = normalize_ref(data.get(field), options)
    return Dossier.model_validate(data)


def validate_dossier(dossier: Dossier) -> Dict[str, List[str]]:
    """Erreurs par champ (noms JSON, ex. 'items.0.designation')."""
    errors: Dict[str, List[str]] = {}
    if not dossier.numero_dossier.strip():
        errors["numeroDossier"] = [MSG_NUMERO_REQUIS]
    for i, it in enumerate(dossier.items):
        if not it.designation.strip():
            errors[f"items.{i}.designation"] = [MSG_DESIGNATION_REQUISE]
    for i, pr in enumerate(dossier.prix_reviens):
        if not pr.designation.strip():
            errors[f"prixReviens.{i}.designation"] = [MSG_DESIGNATION_REQUISE]
    for i, t in enumerate(dossier.teus):
        if not t.numero.strip():
            errors[f"teus.{i}.numero"] = [MSG_CONTENEUR_REQUIS]
    return errors


def build_payload(dossier: Dossier, names: Optional[Mapping[str, Mapping[str, str]]] = None) -> Dict[str, Any]:
    """
    Payload persisté. Une origine / un type tenu en id numérique devient
    {"id": int, "nom": ...} / {"id": int, "libelle": ...}.
    """
    names = names or {}
    payload = dossier.to_payload()
    if payload.get("origine", "").isdigit():
        oid = payload["origine"]
        payload["origine"] = {"id": int(oid), "nom": names.get(ORIGINES, {}).get(oid, "")}
    if payload.get("type", "").isdigit():
        tid = payload["type"]
        payload["type"] = {"id": int(tid), "libelle": names.get(TYPES, {}).get(tid, "")}
    return payload


def _sort_key(value: Any):
    # nombres avant textes ; vides en fin de tri croissant
    if value in (None, ""):
        return (2, 0.0, "")
    n = to_number(value) if not isinstance(value, str) else None
    if n is not None:
        return (0, n, "")
    return (1, 0.0, str(value))


class DossierService:
    def __init__(self, path: os.PathLike | str | None = None,
                 references: Optional[ReferenceService] = None):
        self.repo = JsonRepository(path or settings.data_dir() / "dossiers.json",
                                   entity_name="dossier", key="id")
        self.references = references

    # ----------- lecture -----------
    def list_dossiers(self, page: int = 1, per_page: int = 10,
                      sort_by: str = "created_at", sort_order: str = "desc") -> DossierPage:
        rows = self.repo.list_all()
        rows.sort(key=lambda r: _sort_key(r.get(sort_by)), reverse=(sort_order == "desc"))

        page = max(1, int(page))
        per_page = max(1, int(per_page))
        start = (page - 1) * per_page

        out: List[Dossier] = []
        for d in rows[start:start + per_page]:
            try:
                out.append(Dossier.model_validate(d))
            except ValidationError:
                logger.warning("Dossier %s invalide, ignoré", d.get("id"))
                continue
        return DossierPage(total=len(rows), data=out)

    def get_dossier(self, dossier_id: str, refs: Optional[RefLists] = None) -> Dossier:
        raw = self.repo.get_by_id(dossier_id)
        if raw is None:
            raise DossierNotFoundError(dossier_id)
        return sanitize_dossier(raw, refs)

    # ----------- écriture -----------
    def _ref_names(self) -> Dict[str, Dict[str, str]]:
        if self.references is None:
            return {}
        out: Dict[str, Dict[str, str]] = {}
        for kind in (ORIGINES, TYPES):
            try:
                out[kind] = self.references.names(kind)
            except ReferenceLoadError as e:
                logger.warning("Libellés %s indisponibles pour l'enregistrement: %s", kind, e)
        return out

    def _check(self, dossier: Dossier) -> None:
        errors = validate_dossier(dossier)
        if errors:
            raise DossierValidationError(errors)

    def create_dossier(self, dossier: Dossier) -> Dossier:
        self._check(dossier)
        payload = build_payload(dossier, self._ref_names())
        payload["id"] = dossier.id or gen_id()
        payload["created_at"] = dossier.created_at or datetime.now().isoformat(timespec="seconds")
        record = self.repo.add(payload)
        logger.info("Dossier créé: %s", record["id"])
        return sanitize_dossier(record)

    def update_dossier(self, dossier_id: str, dossier: Dossier) -> Dossier:
        existing = self.repo.get_by_id(dossier_id)
        if existing is None:
            raise DossierNotFoundError(dossier_id)
        self._check(dossier)
        payload = build_payload(dossier, self._ref_names())
        payload["id"] = dossier_id
        payload["created_at"] = existing.get("created_at") or dossier.created_at
        record = self.repo.update(payload)
        logger.info("Dossier mis à jour: %s", dossier_id)
        return sanitize_dossier(record)
