from __future__ import annotations
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .dossier import Dossier


class Metric(str, Enum):
    BSC = "bsc"
    FACTURE = "facture"
    CFA = "cfa"
    ASSURANCE = "assurance"
    TRANSIT = "transit"
    TVA_DOUANE = "tva_douane"
    TS_DOUANE = "ts_douane"
    TVA_FACT_TRANS = "tva_fact_trans"
    TVA_INTERV = "tva_interv"
    FRET = "fret"
    TRANSPORT = "transport"
    CHANGE = "change"
    SURESTAIRE = "surestaire"
    MAGASINAGE = "magasinage"

    @property
    def path(self) -> Tuple[str, ...]:
        return METRIC_PATHS[self]

    @property
    def label(self) -> str:
        return METRIC_LABELS[self]


# chemin (noms JSON) du champ lu pour chaque métrique
METRIC_PATHS: Dict[Metric, Tuple[str, ...]] = {
    Metric.BSC: ("montantBSC",),
    Metric.FACTURE: ("montantFacture",),
    Metric.CFA: ("montantCFA",),
    Metric.ASSURANCE: ("montantAssurance",),
    Metric.TRANSIT: ("montantTransit",),
    Metric.TVA_DOUANE: ("montantTVADouane",),
    Metric.TS_DOUANE: ("montantTSDouane",),
    Metric.TVA_FACT_TRANS: ("montantTVAFactTrans",),
    Metric.TVA_INTERV: ("montantTVAInterv",),
    Metric.FRET: ("fret", "montant"),
    Metric.TRANSPORT: ("transport", "montant"),
    Metric.CHANGE: ("change", "montant"),
    Metric.SURESTAIRE: ("surestaire", "montant"),
    Metric.MAGASINAGE: ("magasinage", "montant"),
}

METRIC_LABELS: Dict[Metric, str] = {
    Metric.BSC: "BSC",
    Metric.FACTURE: "Facture",
    Metric.CFA: "CFA",
    Metric.ASSURANCE: "Assurance",
    Metric.TRANSIT: "Transit",
    Metric.TVA_DOUANE: "TVA Douane",
    Metric.TS_DOUANE: "TS Douane",
    Metric.TVA_FACT_TRANS: "TVA Facture Trans.",
    Metric.TVA_INTERV: "TVA Interv.",
    Metric.FRET: "Fret",
    Metric.TRANSPORT: "Transport",
    Metric.CHANGE: "Change",
    Metric.SURESTAIRE: "Surestaire",
    Metric.MAGASINAGE: "Magasinage",
}


class GroupBy(str, Enum):
    ORIGINE = "origine"
    ARMATEUR = "armateur"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class StatRow(BaseModel):
    label: str
    value: float = 0.0


class DashboardSummary(BaseModel):
    total_dossiers: int = 0
    total_metric: float = 0.0
    formatted_total_metric: str = "0"
    unique_origines: int = 0
    unique_vendeurs: int = 0
    recent: List[Dossier] = Field(default_factory=list)
    origin_counts: Dict[str, int] = Field(default_factory=dict)


class ReportRow(BaseModel):
    label: str
    formatted_value: str
    percent: int = 0


class Report(BaseModel):
    """Contenu du rapport PDF (en-tête répété sur chaque page + tableau)."""
    title: str = "Rapport Dashboard"
    generated_on: str
    metric: Metric
    group_by: GroupBy
    sample_size: int = 0
    total_dossiers: int = 0
    total_metric: float = 0.0
    formatted_total_metric: str = "0"
    username: str = "—"
    logo_uri: Optional[str] = None
    primary_color: str = "#3b82f6"
    rows: List[ReportRow] = Field(default_factory=list)

    @property
    def value_header(self) -> str:
        return f"Somme {self.metric.value.upper()}"
