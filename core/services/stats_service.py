# core/services/stats_service.py
from __future__ import annotations
import logging
import math
import unicodedata
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ValidationError

from core.models.common import to_number
from core.models.dossier import Dossier
from core.models.reference import normalize_ref
from core.models.stats import DashboardSummary, GroupBy, Metric, SortOrder, StatRow

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Inconnu"
RECENT_COUNT = 5

Record = Union[Dossier, Mapping[str, Any]]


# ---------- Formats ----------
def format_number_fr(value: Any, sep: str = "\u202f") -> str:
    """12345.5 -> '12 345,5' (séparateur de milliers fr-FR, 3 décimales max)."""
    v = to_number(value) or 0.0
    txt = f"{abs(v):,.3f}".rstrip("0").rstrip(".")
    if txt in ("", "0"):
        return "0"
    int_part, _, frac = txt.partition(".")
    out = int_part.replace(",", sep)
    if frac:
        out += "," + frac
    return ("-" if v < 0 else "") + out


def collation_key(label: str) -> Tuple[str, str]:
    """Clé de tri insensible à la casse et aux accents ("Égypte" entre "Chine" et "France")."""
    decomposed = unicodedata.normalize("NFKD", label or "")
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return base.casefold(), label or ""


# ---------- Extraction ----------
def _child(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    if isinstance(obj, BaseModel):
        for name, field in type(obj).model_fields.items():
            if key in (name, field.alias):
                return getattr(obj, name)
    return None


def metric_value(record: Record, metric: Union[Metric, str]) -> float:
    """Valeur numérique de la métrique sur un dossier (clé inconnue / illisible -> 0)."""
    try:
        m = Metric(metric)
    except ValueError:
        return 0.0
    node: Any = record
    for key in m.path:
        node = _child(node, key)
    return to_number(node) or 0.0


def _raw_group_id(record: Record, group_by: GroupBy) -> str:
    return normalize_ref(_child(record, GroupBy(group_by).value))


def resolve_label(record: Record, group_by: GroupBy, names: Optional[Mapping[str, str]] = None) -> str:
    """Nom d'affichage via la table de correspondance, sinon id brut, sinon 'Inconnu'."""
    raw = _raw_group_id(record, group_by)
    if not raw:
        return UNKNOWN_LABEL
    return (names or {}).get(raw) or raw


# ---------- Agrégation ----------
def sort_rows(rows: Iterable[StatRow], sort: Union[SortOrder, str] = SortOrder.DESC) -> List[StatRow]:
    sign = -1 if SortOrder(sort) is SortOrder.DESC else 1
    return sorted(rows, key=lambda r: (sign * r.value, collation_key(r.label)))


def aggregate(
    records: Iterable[Record],
    group_by: Union[GroupBy, str],
    metric: Union[Metric, str],
    sort: Union[SortOrder, str] = SortOrder.DESC,
    names: Optional[Mapping[str, str]] = None,
) -> List[StatRow]:
    """Somme de la métrique par origine / armateur, triée (valeur puis libellé)."""
    sums: Dict[str, float] = {}
    for rec in records or []:
        label = resolve_label(rec, GroupBy(group_by), names)
        val = metric_value(rec, metric)
        sums[label] = sums.get(label, 0.0) + (val if math.isfinite(val) else 0.0)
    return sort_rows((StatRow(label=k, value=v) for k, v in sums.items()), sort)


def top_n(rows: Sequence[StatRow], n: Optional[int]) -> List[StatRow]:
    """Tronque une liste déjà triée (None -> tout)."""
    if n is None:
        return list(rows)
    return list(rows[: max(0, int(n))])


def teu_stats(
    records: Iterable[Record],
    group_by: Union[GroupBy, str],
    names: Optional[Mapping[str, str]] = None,
) -> List[StatRow]:
    """Somme des nbreTEU par origine / armateur ; dossiers sans référence ignorés."""
    sums: Dict[str, float] = {}
    for rec in records or []:
        if not _raw_group_id(rec, GroupBy(group_by)):
            continue
        label = resolve_label(rec, GroupBy(group_by), names)
        sums[label] = sums.get(label, 0.0) + (to_number(_child(rec, "nbreTEU")) or 0.0)
    return sort_rows((StatRow(label=k, value=v) for k, v in sums.items()), SortOrder.DESC)


def total_metric(records: Iterable[Record], metric: Union[Metric, str]) -> float:
    return sum(metric_value(r, metric) for r in records or [])


def _as_dossier(rec: Record) -> Optional[Dossier]:
    if isinstance(rec, Dossier):
        return rec
    try:
        return Dossier.model_validate(rec)
    except ValidationError as e:
        logger.warning("Dossier ignoré pour le tableau de bord (%s)", e.error_count())
        return None


def dashboard_summary(
    records: Sequence[Record],
    total: Optional[int],
    metric: Union[Metric, str],
    names: Optional[Mapping[str, str]] = None,
) -> DashboardSummary:
    """Indicateurs du tableau de bord calculés sur l'échantillon (déjà trié du plus récent au plus ancien)."""
    dossiers = [d for d in (_as_dossier(r) for r in records or []) if d is not None]
    tm = total_metric(dossiers, metric)

    origin_counts: Dict[str, int] = {}
    for d in dossiers:
        key = resolve_label(d, GroupBy.ORIGINE, names)
        origin_counts[key] = origin_counts.get(key, 0) + 1

    return DashboardSummary(
        total_dossiers=total if total is not None else len(dossiers),
        total_metric=tm,
        formatted_total_metric=format_number_fr(tm),
        unique_origines=len({d.origine for d in dossiers if d.origine}),
        unique_vendeurs=len({d.vendeur for d in dossiers if d.vendeur}),
        recent=dossiers[:RECENT_COUNT],
        origin_counts=origin_counts,
    )
