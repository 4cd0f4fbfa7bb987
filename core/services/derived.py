# core/services/derived.py
from __future__ import annotations
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from core.models.common import to_number
from core.models.dossier import Dossier, DossierItem, PrixRevient, Reglement, Teu

# champs gérés par les méthodes dédiées (nbreTEU est dérivé)
_COLLECTIONS = ("teus", "reglements", "items", "prix_reviens", "nbre_teu")


# ----------------- Fonctions pures ----------------- #

def recompute_container_count(containers: Optional[Sequence[Any]]) -> int:
    return len(containers) if containers else 0


def _read(payment: Any, *keys: str) -> Any:
    for k in keys:
        if isinstance(payment, Mapping):
            if k in payment:
                return payment[k]
        elif isinstance(payment, BaseModel) and hasattr(payment, k):
            return getattr(payment, k)
    return None


def recompute_payment_cfa(payment: Any, dossier_cours: Any) -> float:
    """
    Montant CFA d'un règlement = montant devise x cours.
    Le cours propre au règlement prime s'il est fini, sinon cours du dossier.
    Entrée malformée -> 0, jamais d'exception.
    """
    override = to_number(_read(payment, "cours_devise", "coursDevise"))
    rate = override if override is not None else to_number(dossier_cours)
    amount = to_number(_read(payment, "montant_devise", "montantDevise")) or 0.0
    if rate is None:
        return 0.0
    result = amount * rate
    return result if math.isfinite(result) else 0.0


def recompute_payments(payments: Iterable[Reglement], dossier_cours: Any) -> List[Reglement]:
    out = list(payments or [])
    for p in out:
        p.montant_cfa = recompute_payment_cfa(p, dossier_cours)
    return out


# ----------------- État du formulaire ----------------- #

class DossierFormState:
    """
    Propriétaire en mémoire d'un dossier en cours d'édition.
    Chaque mutation relance les recalculs qui en dépendent (nbreTEU, montants CFA).
    """

    def __init__(self, dossier: Optional[Dossier] = None):
        self.dossier = dossier or Dossier()
        self.errors: Dict[str, List[str]] = {}
        self._sync_teus()
        self._sync_payments()

    # --- recalculs ---
    def _sync_teus(self) -> None:
        self.dossier.nbre_teu = float(recompute_container_count(self.dossier.teus))

    def _sync_payments(self) -> None:
        recompute_payments(self.dossier.reglements, self.dossier.cours)

    # --- conteneurs ---
    def add_teu(self, numero: str = "") -> Teu:
        row = Teu(numero=numero)
        self.dossier.teus.append(row)
        self._sync_teus()
        return row

    def remove_teu(self, row_id: str) -> None:
        self.dossier.teus = [t for t in self.dossier.teus if t.id != row_id]
        self._sync_teus()

    # --- cours / règlements ---
    def set_cours(self, value: Any) -> None:
        self.dossier.cours = to_number(value) or 0.0
        # cascade sur tous les règlements sans cours propre
        self._sync_payments()

    def add_reglement(self, **fields: Any) -> Reglement:
        row = Reglement.model_validate(fields)
        row.montant_cfa = recompute_payment_cfa(row, self.dossier.cours)
        self.dossier.reglements.append(row)
        return row

    def remove_reglement(self, row_id: str) -> None:
        self.dossier.reglements = [r for r in self.dossier.reglements if r.id != row_id]

    def set_reglement_field(self, row_id: str, name: str, value: Any) -> Optional[Reglement]:
        row = next((r for r in self.dossier.reglements if r.id == row_id), None)
        if row is None:
            return None
        if name == "cours_devise":
            setattr(row, name, to_number(value))
        elif name in ("montant_devise", "montant_tps", "frais_bancaires"):
            setattr(row, name, to_number(value) or 0.0)
        elif name in Reglement.model_fields and name not in ("id", "montant_cfa"):
            setattr(row, name, "" if value is None else str(value))
        row.montant_cfa = recompute_payment_cfa(row, self.dossier.cours)
        return row

    # --- articles / prix de revient ---
    def add_item(self, **fields: Any) -> DossierItem:
        row = DossierItem.model_validate(fields)
        self.dossier.items.append(row)
        return row

    def remove_item(self, row_id: str) -> None:
        self.dossier.items = [i for i in self.dossier.items if i.id != row_id]

    def add_prix_revient(self, **fields: Any) -> PrixRevient:
        row = PrixRevient.model_validate(fields)
        self.dossier.prix_reviens.append(row)
        return row

    def remove_prix_revient(self, row_id: str) -> None:
        self.dossier.prix_reviens = [p for p in self.dossier.prix_reviens if p.id != row_id]

    # --- champs simples ---
    def set_field(self, name: str, value: Any) -> None:
        if name == "cours":
            self.set_cours(value)
            return
        if name not in Dossier.model_fields or name in _COLLECTIONS:
            raise KeyError(name)
        # validation isolée du champ (coercition numérique, référence normalisée)
        validated = Dossier.model_validate({name: value})
        setattr(self.dossier, name, getattr(validated, name))
        self.errors.pop(Dossier.field_alias(name), None)

    # --- erreurs par champ ---
    def apply_errors(self, errors: Mapping[str, Sequence[str]]) -> None:
        self.errors = {k: list(v) for k, v in errors.items()}

    def clear_errors(self) -> None:
        self.errors = {}
