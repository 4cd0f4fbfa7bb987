"""Tests for CSV / PNG / PDF exports of the grouped sums."""

from datetime import date
from io import BytesIO

import pytest
from PIL import Image

from core.models.stats import GroupBy, Metric, StatRow
from core.services import export_service
from core.services.export_service import (
    ExportService,
    build_report,
    export_filename,
    percent_of_total,
    render_csv,
    render_png,
    render_report_html,
)

TODAY = date(2024, 5, 1)


def rows(*pairs):
    return [StatRow(label=label, value=value) for label, value in pairs]


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def test_csv_empty_is_header_only():
    assert render_csv([]) == "Libellé;Valeur\n"


def test_csv_rows_and_escaping():
    out = render_csv(rows(("Chine", 30), ("A;B\nC", 12.5)))
    assert out == "Libellé;Valeur\nChine;30\nA,B C;12.5"


def test_csv_export_writes_named_file(tmp_path):
    svc = ExportService(tmp_path)
    path = svc.export_csv(rows(("France", 1)), Metric.BSC, GroupBy.ORIGINE, today=TODAY)
    assert path.name == "somme_bsc_origine_2024-05-01.csv"
    assert path.read_text(encoding="utf-8") == "Libellé;Valeur\nFrance;1"


# ---------------------------------------------------------------------------
# PNG
# ---------------------------------------------------------------------------

def _png(data: bytes) -> Image.Image:
    return Image.open(BytesIO(data)).convert("RGB")


def test_png_empty_has_no_bars():
    img = _png(render_png([], Metric.BSC, GroupBy.ORIGINE))
    assert img.size == (900, 80)


def test_png_height_grows_with_rows():
    img = _png(render_png(rows(("a", 1), ("b", 2), ("c", 3)), "fret", "armateur"))
    assert img.size == (900, 40 + 3 * 36 + 40)


def test_png_bars_scaled_to_max_with_minimum_width():
    img = _png(render_png(rows(("Grand", 100), ("Zero", 0)), Metric.CFA, GroupBy.ORIGINE))
    palette = export_service._palette(2)
    # première barre pleine largeur, deuxième réduite au minimum (2 px)
    assert img.getpixel((461, 50)) == palette[0]
    assert img.getpixel((720, 50)) == palette[0]
    assert img.getpixel((461, 90)) == palette[1]
    assert img.getpixel((470, 90)) == (255, 255, 255)


def test_png_export_writes_named_file(tmp_path):
    path = ExportService(tmp_path).export_png(rows(("x", 1)), Metric.FRET, GroupBy.ARMATEUR, today=TODAY)
    assert path.name == "somme_fret_armateur_2024-05-01.png"
    assert _png(path.read_bytes()).size[0] == 900


def test_label_truncation():
    assert export_service._truncate("x" * 40) == "x" * 40
    cut = export_service._truncate("y" * 45)
    assert len(cut) == 40 and cut.endswith("…")


# ---------------------------------------------------------------------------
# Rapport PDF
# ---------------------------------------------------------------------------

def test_percent_of_total_rounding():
    assert percent_of_total(1, 3) == 33
    assert percent_of_total(2, 3) == 67
    assert percent_of_total(0.5, 100) == 1
    assert percent_of_total(5, 0) == 500


def test_report_percentages_use_pre_truncation_total():
    all_rows = rows(("A", 50), ("B", 20), ("C", 10), ("D", 10), ("E", 10))
    total = sum(r.value for r in all_rows)
    report = build_report(all_rows[:3], Metric.BSC, GroupBy.ORIGINE, total, 10, 42, today=TODAY)
    percents = [r.percent for r in report.rows]
    assert percents == [50, 20, 10]
    assert sum(percents) < 100


def test_report_header_fields(monkeypatch):
    monkeypatch.setenv("SMARTFRET_PRIMARY_COLOR", "#ff0000")
    report = build_report(rows(("A&B", 1500)), "tva_douane", "armateur", 3000, 25, 120, today=TODAY)
    assert report.primary_color == "#ff0000"
    assert report.username == "—"
    assert report.formatted_total_metric == "3\u202f000"
    assert report.value_header == "Somme TVA_DOUANE"
    assert report.logo_uri is None

    html = render_report_html(report)
    assert "Rapport Dashboard" in html
    assert "Date: 2024-05-01" in html
    assert "Échantillon: 25" in html
    assert "Total dossiers: 120" in html
    assert "Utilisateur: —" in html
    assert "counter(page)" in html
    assert "A&amp;B" in html
    assert "50%" in html
    assert "#ff0000" in html


def test_report_html_for_wkhtmltopdf_has_no_page_boxes():
    report = build_report(rows(("A", 1)), Metric.BSC, GroupBy.ORIGINE, 1, 10, 1, username="alice", today=TODAY)
    html = render_report_html(report, engine="wkhtmltopdf")
    assert "counter(page)" not in html
    assert 'class="report-header"' not in html
    header = export_service.render_report_header_html(report)
    assert "Rapport Dashboard" in header and "<html" in header


def test_report_empty_rows():
    report = build_report([], Metric.BSC, GroupBy.ORIGINE, 0, 10, 0, today=TODAY)
    assert report.rows == []
    html = render_report_html(report)
    # seule la ligne d'en-tête du tableau
    assert html.count("<tr") == 1
    assert "Libellé" in html


def test_report_logo_from_existing_file(tmp_path):
    logo = tmp_path / "logo.png"
    Image.new("RGB", (8, 8), "#000000").save(logo)
    report = build_report([], Metric.BSC, GroupBy.ORIGINE, 0, 10, 0, logo_path=str(logo), today=TODAY)
    assert report.logo_uri.startswith("file://")


@pytest.fixture
def fake_weasyprint(monkeypatch):
    calls = []

    def _render(html, out_path, base_url):
        calls.append(html)
        out_path.write_bytes(b"%PDF-1.7 fake")

    monkeypatch.setattr(export_service, "_render_pdf_with_weasyprint", _render)
    return calls


def test_pdf_export_falls_back_to_weasyprint(tmp_path, monkeypatch, fake_weasyprint):
    monkeypatch.setattr(export_service, "_find_wkhtmltopdf", lambda: None)
    report = build_report(rows(("A", 1)), Metric.BSC, GroupBy.ORIGINE, 1, 10, 1, today=TODAY)
    path = ExportService(tmp_path).export_pdf(report)
    assert path.name == "rapport_bsc_origine_2024-05-01.pdf"
    assert path.read_bytes().startswith(b"%PDF")
    assert len(fake_weasyprint) == 1 and "counter(page)" in fake_weasyprint[0]


def test_pdf_export_wkhtmltopdf_failure_uses_fallback(tmp_path, monkeypatch, fake_weasyprint):
    monkeypatch.setattr(export_service, "_find_wkhtmltopdf", lambda: "/usr/bin/wkhtmltopdf")

    def _boom(report, out_path, wkhtml):
        raise OSError("wkhtmltopdf exited with non-zero code 1")

    monkeypatch.setattr(export_service, "_render_pdf_with_wkhtmltopdf", _boom)
    report = build_report([], Metric.CFA, GroupBy.ARMATEUR, 0, 10, 0, today=TODAY)
    path = ExportService(tmp_path).export_pdf(report)
    assert path.exists()
    assert len(fake_weasyprint) == 1


def test_export_filename():
    assert export_filename("somme", "cfa", "armateur", "csv", TODAY) == "somme_cfa_armateur_2024-05-01.csv"
