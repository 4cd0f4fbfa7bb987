import pytest


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Chaque test travaille dans ses propres dossiers data/ et exports/."""
    data = tmp_path / "data"
    exports = tmp_path / "exports"
    monkeypatch.setenv("SMARTFRET_DATA_DIR", str(data))
    monkeypatch.setenv("SMARTFRET_EXPORTS_DIR", str(exports))
    for key in ("SMARTFRET_PRIMARY_COLOR", "SMARTFRET_LOGO", "SMARTFRET_USER", "WKHTMLTOPDF_PATH"):
        monkeypatch.delenv(key, raising=False)
    return data, exports
