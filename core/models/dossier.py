from __future__ import annotations
from typing import Annotated, Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .common import num_or_zero, temp_id, text_or_empty, to_number
from .reference import normalize_ref


def _dict_or_empty(v: Any) -> Any:
    return {} if v is None else v


def _rows(v: Any) -> List[Any]:
    # lignes partiellement saisies / valeurs parasites -> ignorées
    if not isinstance(v, (list, tuple)):
        return []
    return [r for r in v if isinstance(r, (dict, BaseModel))]


Num = Annotated[float, BeforeValidator(num_or_zero)]
OptNum = Annotated[Optional[float], BeforeValidator(to_number)]
Text = Annotated[str, BeforeValidator(text_or_empty)]
Ref = Annotated[str, BeforeValidator(lambda v: normalize_ref(v))]


class _Wire(BaseModel):
    """Champs Python en snake_case, JSON en camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class _Row(_Wire):
    row_prefix: ClassVar[str] = "row"

    # identité de ligne côté UI, jamais sérialisée
    id: Text = Field(default="", exclude=True)

    def model_post_init(self, __context: Any) -> None:
        if not self.id:
            self.id = temp_id(self.row_prefix)


class DossierItem(_Row):
    row_prefix: ClassVar[str] = "item"

    quantite: Num = 0.0
    designation: Text = ""
    fob: Num = 0.0


class PrixRevient(_Row):
    row_prefix: ClassVar[str] = "prix"

    designation: Text = ""
    quantite: Num = 0.0
    fob: Num = 0.0
    cfa: Num = 0.0
    percentage: Num = 0.0
    prix_revient: Num = 0.0


class Reglement(_Row):
    row_prefix: ClassVar[str] = "reglement"

    date: Text = ""
    reference: Text = ""
    mode_paiement: Text = "Virement"
    banque: Text = ""
    montant_devise: Num = 0.0
    devise: Text = "USD"
    cours_devise: OptNum = None  # None -> cours du dossier
    montant_cfa: Num = Field(0.0, alias="montantCFA")
    montant_tps: Num = Field(0.0, alias="montantTPS")
    frais_bancaires: Num = 0.0

    @field_validator("mode_paiement")
    @classmethod
    def _default_mode(cls, v: str) -> str:
        return v or "Virement"

    @field_validator("devise")
    @classmethod
    def _default_devise(cls, v: str) -> str:
        return v or "USD"


class Teu(_Row):
    row_prefix: ClassVar[str] = "teu"

    numero: Text = ""


class DetailAdministratif(_Wire):
    nom: Text = ""
    num_facture: Text = ""
    date: Text = ""
    num_cc: Text = Field("", alias="numCC")
    montant: Num = 0.0
    montant_taxable: Num = 0.0
    montant_tva: Num = Field(0.0, alias="montantTVA")


Detail = Annotated[DetailAdministratif, BeforeValidator(_dict_or_empty)]

DETAIL_BLOCKS: Dict[str, str] = {
    "aconnier": "Aconnier",
    "fret": "Fret",
    "transport": "Transport",
    "change": "Change",
    "surestaire": "Surestaire",
    "magasinage": "Magasinage",
}


class Dossier(_Wire):
    id: Text = ""
    numero_dossier: Text = ""
    origine: Ref = ""
    num_fri: Text = Field("", alias="numFRI")
    num_bsc: Text = Field("", alias="numBSC")
    montant_bsc: Num = Field(0.0, alias="montantBSC")
    num_bl: Text = Field("", alias="numBL")
    date: Text = ""
    armateur: Ref = ""
    navire: Ref = ""
    date_eta: Text = Field("", alias="dateETA")
    num_facture_vendeur: Text = ""
    date_facture_vendeur: Text = ""
    montant_facture: Num = 0.0
    devise: Text = ""
    cours: Num = 0.0
    montant_cfa: Num = Field(0.0, alias="montantCFA")
    montant_assurance: Num = 0.0
    incoterm: Text = ""
    type: Ref = ""
    qte: Num = 0.0
    nbre_teu: Num = Field(0.0, alias="nbreTEU")
    vendeur: Text = ""

    items: Annotated[List[DossierItem], BeforeValidator(_rows)] = Field(default_factory=list)
    prix_reviens: Annotated[List[PrixRevient], BeforeValidator(_rows)] = Field(default_factory=list)

    # transit / douane
    nom_transit: Text = ""
    num_facture_transit: Text = ""
    date_facture_transit: Text = ""
    montant_transit: Num = 0.0
    droit_douane: Num = 0.0
    droit_d_taxe: Num = 0.0
    montant_tva_douane: Num = Field(0.0, alias="montantTVADouane")
    montant_ts_douane: Num = Field(0.0, alias="montantTSDouane")
    frais_phyto: Num = 0.0
    frais_depotage: Num = 0.0
    num_cc_transit: Text = Field("", alias="numCCTransit")
    num_dos_tran: Text = ""
    num_declarant: Text = ""
    date_declarant: Text = ""
    montant_tva_fact_trans: Num = Field(0.0, alias="montantTVAFactTrans")
    montant_tva_interv: Num = Field(0.0, alias="montantTVAInterv")

    # détails administratifs
    aconnier: Detail = Field(default_factory=DetailAdministratif)
    fret: Detail = Field(default_factory=DetailAdministratif)
    transport: Detail = Field(default_factory=DetailAdministratif)
    change: Detail = Field(default_factory=DetailAdministratif)
    surestaire: Detail = Field(default_factory=DetailAdministratif)
    magasinage: Detail = Field(default_factory=DetailAdministratif)

    reglements: Annotated[List[Reglement], BeforeValidator(_rows)] = Field(default_factory=list)
    teus: Annotated[List[Teu], BeforeValidator(_rows)] = Field(default_factory=list)

    created_at: Text = Field("", alias="created_at")

    @property
    def display_ref(self) -> str:
        return self.numero_dossier or self.num_bl or self.id

    def to_payload(self) -> Dict[str, Any]:
        """Payload JSON (alias camelCase, sans les ids de lignes)."""
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def field_alias(cls, name: str) -> str:
        f = cls.model_fields[name]
        return f.alias or to_camel(name)


class DossierPage(BaseModel):
    total: int = 0
    data: List[Dossier] = Field(default_factory=list)
