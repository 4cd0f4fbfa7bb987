"""Tests for dossier sanitisation, validation, payload building and persistence."""

import json

import pytest

from core.errors import DossierNotFoundError, DossierValidationError
from core.models.dossier import Dossier
from core.models.reference import Armateur, Origine
from core.services.dossier_service import (
    MSG_CONTENEUR_REQUIS,
    MSG_DESIGNATION_REQUISE,
    MSG_NUMERO_REQUIS,
    DossierService,
    build_payload,
    sanitize_dossier,
    validate_dossier,
)
from core.services.reference_service import ARMATEURS, ORIGINES, TYPES, ReferenceService


def make_refs():
    return ReferenceService(loaders={
        ORIGINES: lambda: [{"idOrigine": 1, "nomPays": "France"}, {"idOrigine": 2, "nomPays": "Chine"}],
        ARMATEURS: lambda: [{"IdArmat": 7, "NomArmat": "MSC"}],
        TYPES: lambda: [{"id": 4, "typeDossier": "Import"}],
        "navires": lambda: [],
    })


@pytest.fixture
def service(tmp_path):
    return DossierService(tmp_path / "dossiers.json", references=make_refs())


# ---------------------------------------------------------------------------
# validate_dossier
# ---------------------------------------------------------------------------

def test_validate_requires_numero():
    errors = validate_dossier(Dossier())
    assert errors == {"numeroDossier": [MSG_NUMERO_REQUIS]}


def test_validate_row_errors_keyed_by_index():
    d = Dossier.model_validate({
        "numeroDossier": "D-1",
        "items": [{"designation": "Riz"}, {"designation": "  "}],
        "prixReviens": [{"designation": ""}],
        "teus": [{"numero": "MSCU1"}, {"numero": ""}],
    })
    assert validate_dossier(d) == {
        "items.1.designation": [MSG_DESIGNATION_REQUISE],
        "prixReviens.0.designation": [MSG_DESIGNATION_REQUISE],
        "teus.1.numero": [MSG_CONTENEUR_REQUIS],
    }


def test_valid_dossier_has_no_errors():
    assert validate_dossier(Dossier(numero_dossier="D-1")) == {}


# ---------------------------------------------------------------------------
# sanitize_dossier
# ---------------------------------------------------------------------------

def test_sanitize_normalizes_references():
    refs = make_refs()
    lists = {ORIGINES: refs.origines(), ARMATEURS: refs.armateurs(), TYPES: refs.types()}
    d = sanitize_dossier({
        "origine": {"id": 2, "nom": "Chine"},
        "armateur": "msc",
        "type": "Import",
        "navire": 12,
    }, lists)
    assert d.origine == "2"
    assert d.armateur == "7"
    assert d.type == "4"
    assert d.navire == "12"


def test_sanitize_unknown_label_kept():
    d = sanitize_dossier({"armateur": "Maersk"}, {ARMATEURS: [Armateur(IdArmat=7, NomArmat="MSC")]})
    assert d.armateur == "Maersk"


def test_sanitize_defaults_and_junk_rows():
    d = sanitize_dossier({
        "montantBSC": "1 500,5",
        "fret": None,
        "teus": [{"numero": "A"}, None, "x", 3],
        "reglements": "pas une liste",
    })
    assert d.montant_bsc == 1500.5
    assert d.fret.montant == 0
    assert [t.numero for t in d.teus] == ["A"]
    assert d.reglements == []
    assert d.items == [] and d.prix_reviens == []


# ---------------------------------------------------------------------------
# build_payload
# ---------------------------------------------------------------------------

def test_payload_expands_numeric_origine_and_type():
    d = Dossier(numero_dossier="D-1", origine="1", type="4", armateur="7")
    names = {ORIGINES: {"1": "France"}, TYPES: {"4": "Import"}}
    payload = build_payload(d, names)
    assert payload["origine"] == {"id": 1, "nom": "France"}
    assert payload["type"] == {"id": 4, "libelle": "Import"}
    assert payload["armateur"] == "7"


def test_payload_keeps_label_and_empty_references():
    payload = build_payload(Dossier(origine="Inde"))
    assert payload["origine"] == "Inde"
    assert payload["type"] == ""


def test_payload_uses_json_names_without_row_ids():
    d = Dossier.model_validate({
        "numeroDossier": "D-1",
        "reglements": [{"montantDevise": 10}],
        "teus": [{"numero": "A"}],
    })
    payload = build_payload(d)
    assert payload["numeroDossier"] == "D-1"
    assert payload["nbreTEU"] == 0
    assert "id" not in payload["teus"][0]
    assert "id" not in payload["reglements"][0]
    assert payload["reglements"][0]["montantCFA"] == 0


# ---------------------------------------------------------------------------
# DossierService
# ---------------------------------------------------------------------------

def test_create_and_get_roundtrip(service, tmp_path):
    created = service.create_dossier(Dossier(numero_dossier="D-1", origine="1", teus=[{"numero": "A"}]))
    assert created.id
    assert created.created_at

    stored = json.loads((tmp_path / "dossiers.json").read_text(encoding="utf-8"))
    assert stored[0]["origine"] == {"id": 1, "nom": "France"}
    assert "id" not in stored[0]["teus"][0]

    again = service.get_dossier(created.id)
    assert again.numero_dossier == "D-1"
    assert again.origine == "1"


def test_create_invalid_raises_with_field_errors(service):
    with pytest.raises(DossierValidationError) as exc:
        service.create_dossier(Dossier(items=[{"designation": ""}]))
    assert exc.value.errors["numeroDossier"] == [MSG_NUMERO_REQUIS]
    assert exc.value.errors["items.0.designation"] == [MSG_DESIGNATION_REQUISE]
    assert service.list_dossiers().total == 0


def test_get_missing_raises(service):
    with pytest.raises(DossierNotFoundError):
        service.get_dossier("nope")


def test_get_with_reference_lists(service, tmp_path):
    (tmp_path / "dossiers.json").write_text(json.dumps([
        {"id": "d1", "numeroDossier": "D-1", "armateur": "MSC", "teus": [{"numero": "A"}, None]},
    ]), encoding="utf-8")
    refs = make_refs()
    d = service.get_dossier("d1", {ARMATEURS: refs.armateurs()})
    assert d.armateur == "7"
    assert len(d.teus) == 1


def test_update_keeps_created_at(service):
    created = service.create_dossier(Dossier(numero_dossier="D-1", created_at="2024-01-01T10:00:00"))
    updated = service.update_dossier(created.id, Dossier(numero_dossier="D-1 bis"))
    assert updated.numero_dossier == "D-1 bis"
    assert updated.created_at == "2024-01-01T10:00:00"
    assert updated.id == created.id


def test_update_missing_raises(service):
    with pytest.raises(DossierNotFoundError):
        service.update_dossier("nope", Dossier(numero_dossier="X"))


def test_list_sorted_and_paginated(service):
    for i in range(5):
        service.create_dossier(Dossier(numero_dossier=f"D-{i}", created_at=f"2024-01-0{i + 1}"))
    page = service.list_dossiers(page=1, per_page=2)
    assert page.total == 5
    assert [d.numero_dossier for d in page.data] == ["D-4", "D-3"]

    last = service.list_dossiers(page=3, per_page=2)
    assert [d.numero_dossier for d in last.data] == ["D-0"]

    asc = service.list_dossiers(per_page=10, sort_by="numeroDossier", sort_order="asc")
    assert [d.numero_dossier for d in asc.data] == [f"D-{i}" for i in range(5)]


def test_reference_failure_does_not_block_save(tmp_path):
    def broken():
        raise OSError("réseau indisponible")

    refs = ReferenceService(loaders={ORIGINES: broken, TYPES: broken, ARMATEURS: list, "navires": list})
    svc = DossierService(tmp_path / "dossiers.json", references=refs)
    created = svc.create_dossier(Dossier(numero_dossier="D-1", origine=Origine(idOrigine=3).id))
    assert created.origine == "3"
