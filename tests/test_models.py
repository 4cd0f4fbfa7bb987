"""Tests for the dossier field model: coercion, references, wire names."""

import re

import pytest

from core.models.common import temp_id, to_number
from core.models.dossier import Dossier, Reglement, Teu
from core.models.reference import (
    Origine,
    RefByLabel,
    RefById,
    RefEmbedded,
    TypeDossier,
    normalize_ref,
    parse_ref,
)


# ---------------------------------------------------------------------------
# to_number
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [
    (12, 12.0),
    ("12,5", 12.5),
    ("1 234,5", 1234.5),
    ("1 000", 1000.0),
    ("", None),
    (None, None),
    ("abc", None),
    (float("nan"), None),
    (float("inf"), None),
    (True, None),
])
def test_to_number(raw, expected):
    assert to_number(raw) == expected


def test_temp_id_shape():
    assert re.fullmatch(r"temp-teu-\d+-[a-z0-9]{6}", temp_id("teu"))


# ---------------------------------------------------------------------------
# références
# ---------------------------------------------------------------------------

def test_parse_ref_variants():
    assert parse_ref(None) is None
    assert parse_ref("  ") is None
    assert parse_ref(3) == RefById("3")
    assert parse_ref(3.0) == RefById("3")
    assert parse_ref("12") == RefById("12")
    assert parse_ref("France") == RefByLabel("France")
    assert parse_ref({"id": 1, "nom": "France"}) == RefEmbedded(id="1", label="France")
    assert parse_ref({"libelle": "Import"}) == RefEmbedded(id="", label="Import")


def test_normalize_ref_against_options():
    options = [Origine(idOrigine=1, nomPays="France"), Origine(idOrigine=2, nomPays="Côte d'Ivoire")]
    assert normalize_ref("france", options) == "1"
    assert normalize_ref({"nom": "Côte d'Ivoire"}, options) == "2"
    assert normalize_ref({"id": 9, "nom": "France"}, options) == "9"
    assert normalize_ref("Mali", options) == "Mali"
    assert normalize_ref({}, options) == ""
    assert normalize_ref("", options) == ""


def test_type_dossier_aliases():
    assert TypeDossier.model_validate({"idType": 4, "libelle": "Export"}).name == "Export"


# ---------------------------------------------------------------------------
# Dossier
# ---------------------------------------------------------------------------

def test_dossier_defaults():
    d = Dossier()
    assert d.items == [] and d.reglements == [] and d.teus == []
    assert d.aconnier.montant == 0
    assert d.origine == ""


def test_dossier_reads_json_names():
    d = Dossier.model_validate({
        "numeroDossier": "D-1",
        "numBL": "BL9",
        "montantBSC": "10",
        "nbreTEU": "2",
        "montantTVADouane": 3,
        "origine": {"idOrigine": 5, "nomPays": "Bénin"},
        "aconnier": {"numCC": "CC1", "montantTVA": "4,5"},
    })
    assert d.numero_dossier == "D-1"
    assert d.num_bl == "BL9"
    assert d.montant_bsc == 10
    assert d.nbre_teu == 2
    assert d.montant_tva_douane == 3
    assert d.origine == "5"
    assert d.aconnier.num_cc == "CC1"
    assert d.aconnier.montant_tva == 4.5


def test_payload_aliases():
    payload = Dossier(numero_dossier="D-1", montant_cfa=5).to_payload()
    for key in ("numeroDossier", "montantCFA", "nbreTEU", "numCCTransit", "montantTVAInterv",
                "prixReviens", "created_at"):
        assert key in payload
    assert payload["aconnier"]["numCC"] == ""


def test_field_alias():
    assert Dossier.field_alias("numero_dossier") == "numeroDossier"
    assert Dossier.field_alias("montant_bsc") == "montantBSC"


def test_reglement_defaults():
    r = Reglement.model_validate({"modePaiement": "", "devise": None})
    assert r.mode_paiement == "Virement"
    assert r.devise == "USD"
    assert r.cours_devise is None
    assert r.id.startswith("temp-reglement-")


def test_row_ids_are_unique_and_not_serialized():
    a, b = Teu(numero="A"), Teu(numero="B")
    assert a.id != b.id
    assert a.model_dump(by_alias=True) == {"numero": "A"}
