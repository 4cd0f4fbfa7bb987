"""Tests for the JSON collection store."""

import json

import pytest

from core.storage.json_repo import JsonRepository


@pytest.fixture
def repo(tmp_path):
    return JsonRepository(tmp_path / "dossiers.json", entity_name="dossier")


def test_new_file_is_empty_list(repo):
    assert repo.list_all() == []
    assert json.loads(repo.filepath.read_text(encoding="utf-8")) == []


def test_add_generates_id_and_rejects_duplicates(repo):
    rec = repo.add({"numeroDossier": "D-1"})
    assert rec["id"]
    assert repo.get_by_id(rec["id"])["numeroDossier"] == "D-1"
    with pytest.raises(ValueError):
        repo.add({"id": rec["id"]})


def test_update_merges(repo):
    repo.add({"id": "a", "numeroDossier": "D-1", "vendeur": "V"})
    merged = repo.update({"id": "a", "numeroDossier": "D-2"})
    assert merged == {"id": "a", "numeroDossier": "D-2", "vendeur": "V"}


def test_update_errors(repo):
    with pytest.raises(ValueError):
        repo.update({"numeroDossier": "x"})
    with pytest.raises(KeyError):
        repo.update({"id": "absent"})


def test_corrupt_file_is_set_aside(tmp_path):
    path = tmp_path / "dossiers.json"
    path.write_text("{pas du json", encoding="utf-8")
    repo = JsonRepository(path)
    assert repo.list_all() == []
    assert (tmp_path / "dossiers.corrupt.json").exists()


def test_non_dict_entries_ignored(tmp_path):
    path = tmp_path / "dossiers.json"
    path.write_text(json.dumps([{"id": "a"}, 3, "x", None]), encoding="utf-8")
    assert JsonRepository(path).list_all() == [{"id": "a"}]


def test_backups_rotate(tmp_path):
    repo = JsonRepository(tmp_path / "dossiers.json", backup_keep=2)
    for i in range(4):
        repo.add({"id": str(i)})
    assert len(list(tmp_path.glob("dossiers.*.bak.json"))) == 2


def test_unchanged_content_is_not_rewritten(tmp_path):
    repo = JsonRepository(tmp_path / "dossiers.json")
    repo.add({"id": "a", "n": 1})
    before = list(tmp_path.glob("*.bak.json"))
    repo.update({"id": "a", "n": 1})
    assert list(tmp_path.glob("*.bak.json")) == before
