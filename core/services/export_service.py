# core/services/export_service.py
from __future__ import annotations
import colorsys
import logging
import math
import os
import tempfile
from datetime import date
from io import BytesIO
from pathlib import Path
from shutil import which
from typing import Iterable, List, Optional, Sequence, Union

import pdfkit  # utilisé si wkhtmltopdf dispo
from jinja2 import Environment, FileSystemLoader, select_autoescape
from PIL import Image, ImageDraw, ImageFont

from core import settings
from core.errors import ExportError
from core.models.stats import GroupBy, Metric, Report, ReportRow, StatRow
from core.services.stats_service import format_number_fr

logger = logging.getLogger(__name__)

# ---------- Géométrie du graphique PNG ----------
PNG_WIDTH = 900
PNG_PADDING = 20
PNG_BAR_HEIGHT = 24
PNG_GAP = 12
PNG_LABEL_WIDTH = 440
PNG_VALUE_WIDTH = 140
PNG_MAX_LABEL_CHARS = 40


# ---------- Formats ----------
def _raw_number(value: float) -> str:
    v = float(value)
    if math.isfinite(v) and v.is_integer():
        return str(int(v))
    return repr(v)


def _csv_label(label: str) -> str:
    return str(label).replace("\r\n", " ").replace("\n", " ").replace("\r", " ").replace(";", ",")


def _truncate(label: str, limit: int = PNG_MAX_LABEL_CHARS) -> str:
    label = str(label)
    return label if len(label) <= limit else label[: limit - 1] + "…"


def _palette(n: int) -> List[tuple]:
    """Dégradé bleu/indigo/violet : hsl(210 + 30 i, 80 %, 60 %)."""
    out = []
    for i in range(n):
        hue = ((210 + i * 30) % 360) / 360.0
        r, g, b = colorsys.hls_to_rgb(hue, 0.60, 0.80)
        out.append((round(r * 255), round(g * 255), round(b * 255)))
    return out


def _font(size: int, bold: bool = False):
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default()


def export_filename(prefix: str, metric: Union[Metric, str], group_by: Union[GroupBy, str],
                    ext: str, today: Optional[date] = None) -> str:
    d = (today or date.today()).isoformat()
    return f"{prefix}_{Metric(metric).value}_{GroupBy(group_by).value}_{d}.{ext}"


# ---------- Rendus en mémoire ----------
def render_csv(rows: Iterable[StatRow]) -> str:
    """Texte 'Libellé;Valeur' ; ';' et retours ligne des libellés neutralisés."""
    body = "\n".join(f"{_csv_label(r.label)};{_raw_number(r.value)}" for r in rows)
    return "Libellé;Valeur\n" + body


def render_png(rows: Sequence[StatRow], metric: Union[Metric, str], group_by: Union[GroupBy, str]) -> bytes:
    """Barres horizontales, une par ligne, proportionnelles au max des lignes affichées."""
    rows = list(rows)
    height = PNG_PADDING * 2 + len(rows) * (PNG_BAR_HEIGHT + PNG_GAP) + 40
    img = Image.new("RGB", (PNG_WIDTH, height), "#ffffff")
    draw = ImageDraw.Draw(img)

    title = f"Somme {Metric(metric).value.upper()} par {GroupBy(group_by).value}"
    draw.text((PNG_PADDING, PNG_PADDING - 12), title, fill="#334155", font=_font(16, bold=True))

    font = _font(14)
    vmax = max([r.value for r in rows] + [1])
    bar_x = PNG_PADDING + PNG_LABEL_WIDTH
    full_w = PNG_WIDTH - PNG_PADDING - bar_x - PNG_VALUE_WIDTH - 10
    y = PNG_PADDING + 28
    for r, color in zip(rows, _palette(len(rows))):
        text_y = y + PNG_BAR_HEIGHT - 20
        draw.text((PNG_PADDING, text_y), _truncate(r.label), fill="#1f2937", font=font)

        val = format_number_fr(r.value, sep=" ")
        val_w = draw.textlength(val, font=font)
        draw.text((PNG_WIDTH - PNG_PADDING - val_w, text_y), val, fill="#475569", font=font)

        bar_w = max(2.0, (r.value / vmax) * full_w)
        draw.rectangle([bar_x, y, bar_x + bar_w, y + PNG_BAR_HEIGHT - 1], fill=color)
        y += PNG_BAR_HEIGHT + PNG_GAP

    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def percent_of_total(value: float, total: float) -> int:
    # arrondi demi-supérieur
    return int(math.floor((value or 0) / (total or 1) * 100 + 0.5))


def _logo_uri(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    p = Path(path)
    if not p.is_file():
        logger.warning("Logo introuvable: %s", path)
        return None
    return p.resolve().as_uri()


def build_report(
    rows: Sequence[StatRow],
    metric: Union[Metric, str],
    group_by: Union[GroupBy, str],
    total_metric: float,
    sample_size: int,
    total_dossiers: int,
    *,
    username: Optional[str] = None,
    logo_path: Optional[str] = None,
    primary_color: Optional[str] = None,
    today: Optional[date] = None,
) -> Report:
    """
    Modèle du rapport PDF. Les pourcentages sont calculés sur total_metric,
    le total de tout l'échantillon (avant troncature top-N) : ils ne somment
    donc pas forcément à 100 %.
    """
    return Report(
        generated_on=(today or date.today()).isoformat(),
        metric=Metric(metric),
        group_by=GroupBy(group_by),
        sample_size=sample_size,
        total_dossiers=total_dossiers,
        total_metric=total_metric,
        formatted_total_metric=format_number_fr(total_metric),
        username=username or "—",
        logo_uri=_logo_uri(logo_path),
        primary_color=primary_color or settings.primary_color(),
        rows=[
            ReportRow(label=str(r.label), formatted_value=format_number_fr(r.value),
                      percent=percent_of_total(r.value, total_metric))
            for r in rows
        ],
    )


def _jinja_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(settings.TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )


def render_report_html(report: Report, engine: str = "weasyprint") -> str:
    """
    HTML du rapport via Jinja2 : templates/pdf/report.html.
    engine="weasyprint" : en-tête/pied via @page ; "wkhtmltopdf" : corps seul.
    """
    tpl = _jinja_env().get_template("report.html")
    return tpl.render(report=report, engine=engine)


def render_report_header_html(report: Report) -> str:
    return _jinja_env().get_template("header.html").render(report=report)


# ---------- PDF helpers ----------
def _clean_path(p: str) -> str:
    """Corrige 'C\\:\\Program Files\\...' -> 'C:\\Program Files\\...' et normalise."""
    if not p:
        return ""
    p = p.strip().strip('"').strip("'")
    p = p.replace("\\:", ":")
    return os.path.normpath(p)


def _find_wkhtmltopdf() -> Optional[str]:
    """
    Localise wkhtmltopdf :
    - Variable d'env WKHTMLTOPDF_PATH
    - data/settings.json -> pdf.wkhtmltopdf_path
    - chemins Windows connus
    - PATH
    """
    val = os.environ.get("WKHTMLTOPDF_PATH")
    if val and Path(_clean_path(val)).is_file():
        return _clean_path(val)

    wk = settings.get_setting("pdf.wkhtmltopdf_path")
    if wk and Path(_clean_path(wk)).is_file():
        return _clean_path(wk)

    for c in (
        r"C:\Program Files\wkhtmltopdf\bin\wkhtmltopdf.exe",
        r"C:\Program Files (x86)\wkhtmltopdf\bin\wkhtmltopdf.exe",
    ):
        if Path(c).is_file():
            return c

    found = which("wkhtmltopdf")
    return _clean_path(found) if found else None


def _render_pdf_with_wkhtmltopdf(report: Report, out_path: Path, wkhtml: str) -> None:
    html = render_report_html(report, engine="wkhtmltopdf")
    css_path = str((settings.TEMPLATES_DIR / "stylesheet.css").resolve())
    with tempfile.NamedTemporaryFile("w", suffix=".html", encoding="utf-8", delete=False) as fh:
        fh.write(render_report_header_html(report))
        header_path = fh.name
    try:
        options = {
            "enable-local-file-access": None,
            "quiet": "",
            "encoding": "UTF-8",
            "page-size": "A4",
            "margin-top": "45mm",
            "margin-bottom": "20mm",
            "header-html": header_path,
            "header-spacing": "4",
            "footer-left": f"Utilisateur: {report.username}",
            "footer-right": "Page [page]",
            "footer-font-size": "9",
        }
        config = pdfkit.configuration(wkhtmltopdf=wkhtml)
        pdfkit.from_string(html, str(out_path), options=options, configuration=config, css=css_path)
    finally:
        Path(header_path).unlink(missing_ok=True)


def _render_pdf_with_weasyprint(html: str, out_path: Path, base_url: Optional[str]) -> None:
    """Fallback WeasyPrint (si wkhtmltopdf absent)."""
    try:
        from weasyprint import CSS, HTML
    except (ImportError, OSError) as e:
        raise ExportError(
            "Aucun wkhtmltopdf trouvé et WeasyPrint n'est pas utilisable. "
            "Installe WeasyPrint (pip install weasyprint) ou configure wkhtmltopdf.\n"
            f"Détails: {e}"
        ) from e

    css_file = settings.TEMPLATES_DIR / "stylesheet.css"
    styles = [CSS(filename=str(css_file))] if css_file.exists() else None
    HTML(string=html, base_url=base_url).write_pdf(str(out_path), stylesheets=styles)


# ---------- Service ----------
class ExportService:
    def __init__(self, out_dir: os.PathLike | str | None = None):
        self.out_dir = Path(out_dir) if out_dir else settings.exports_dir()

    def _target(self, filename: str) -> Path:
        self.out_dir.mkdir(parents=True, exist_ok=True)
        return self.out_dir / filename

    def export_csv(self, rows: Sequence[StatRow], metric: Union[Metric, str],
                   group_by: Union[GroupBy, str], today: Optional[date] = None) -> Path:
        out_path = self._target(export_filename("somme", metric, group_by, "csv", today))
        try:
            out_path.write_bytes(render_csv(rows).encode("utf-8"))
        except OSError as e:
            raise ExportError(f"Écriture impossible: {out_path}") from e
        logger.info("Export CSV: %s (%d lignes)", out_path, len(rows))
        return out_path

    def export_png(self, rows: Sequence[StatRow], metric: Union[Metric, str],
                   group_by: Union[GroupBy, str], today: Optional[date] = None) -> Path:
        out_path = self._target(export_filename("somme", metric, group_by, "png", today))
        try:
            out_path.write_bytes(render_png(rows, metric, group_by))
        except OSError as e:
            raise ExportError(f"Écriture impossible: {out_path}") from e
        logger.info("Export PNG: %s (%d barres)", out_path, len(rows))
        return out_path

    def export_pdf(self, report: Report) -> Path:
        """
        Génère le rapport PDF.
        Essaie wkhtmltopdf (pdfkit) en priorité, sinon fallback WeasyPrint.
        """
        today = date.fromisoformat(report.generated_on)
        out_path = self._target(export_filename("rapport", report.metric, report.group_by, "pdf", today))

        # 1) wkhtmltopdf d'abord
        wkhtml = _find_wkhtmltopdf()
        if wkhtml:
            try:
                _render_pdf_with_wkhtmltopdf(report, out_path, wkhtml)
                logger.info("Export PDF (wkhtmltopdf): %s", out_path)
                return out_path
            except OSError as e:
                logger.warning("Échec wkhtmltopdf (%s). Fallback WeasyPrint...", e)

        # 2) Fallback WeasyPrint
        html = render_report_html(report, engine="weasyprint")
        _render_pdf_with_weasyprint(html, out_path, base_url=str(settings.TEMPLATES_DIR.resolve()))
        logger.info("Export PDF (WeasyPrint): %s", out_path)
        return out_path
