from __future__ import annotations
import logging
from typing import Dict, List, Optional

from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QGridLayout, QLabel, QComboBox, QSpinBox,
    QPushButton, QTableWidget, QTableWidgetItem, QHeaderView, QGroupBox, QMessageBox,
    QProgressBar,
)
from PySide6.QtCore import Qt

from core import settings
from core.errors import ExportError, ReferenceLoadError, SmartFretError
from core.models.dossier import Dossier
from core.models.stats import DashboardSummary, GroupBy, Metric, SortOrder, StatRow
from core.services.dossier_service import DossierService
from core.services.export_service import ExportService, build_report, percent_of_total
from core.services.load_guard import LoadSequence
from core.services.reference_service import ARMATEURS, ORIGINES, ReferenceService
from core.services.stats_service import (
    aggregate, dashboard_summary, format_number_fr, teu_stats, top_n, total_metric,
)
from ui.workers import run_load

logger = logging.getLogger(__name__)

SAMPLE_SIZES = (10, 25, 50)


def _fill_table(tbl: QTableWidget, rows: List[List[str]]) -> None:
    tbl.setRowCount(0)
    for values in rows:
        r = tbl.rowCount(); tbl.insertRow(r)
        for c, v in enumerate(values):
            it = QTableWidgetItem(v)
            if c > 0:
                it.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
            tbl.setItem(r, c, it)
    tbl.resizeRowsToContents()


def _table(headers: List[str]) -> QTableWidget:
    tbl = QTableWidget(0, len(headers))
    tbl.setHorizontalHeaderLabels(headers)
    tbl.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
    tbl.setEditTriggers(tbl.EditTrigger.NoEditTriggers)
    tbl.verticalHeader().setVisible(False)
    return tbl


class DashboardWidget(QWidget):
    def __init__(self, parent=None, dossier_service: Optional[DossierService] = None,
                 references: Optional[ReferenceService] = None,
                 export_service: Optional[ExportService] = None):
        super().__init__(parent)
        self.references = references or ReferenceService()
        self.dossier_service = dossier_service or DossierService(references=self.references)
        self.export_service = export_service or ExportService()

        # un chargement remplacé (changement d'échantillon) ne doit plus rien appliquer
        self._loads = LoadSequence()
        loads = self._loads
        self.destroyed.connect(lambda *_: loads.close())
        self._task = None

        self._sample: List[Dossier] = []
        self._total = 0
        self._names: Dict[str, Dict[str, str]] = {ORIGINES: {}, ARMATEURS: {}}

        # --- contrôles ---
        self.cb_sample = QComboBox()
        for n in SAMPLE_SIZES:
            self.cb_sample.addItem(f"{n} derniers", n)
        self.cb_metric = QComboBox()
        for m in Metric:
            self.cb_metric.addItem(m.label, m.value)
        self.cb_group = QComboBox()
        self.cb_group.addItem("Origine", GroupBy.ORIGINE.value)
        self.cb_group.addItem("Armateur", GroupBy.ARMATEUR.value)
        self.sp_top = QSpinBox(); self.sp_top.setRange(1, 100); self.sp_top.setValue(10)
        self.cb_sort = QComboBox()
        self.cb_sort.addItem("Décroissant", SortOrder.DESC.value)
        self.cb_sort.addItem("Croissant", SortOrder.ASC.value)
        btn_reload = QPushButton("Actualiser")

        bar = QHBoxLayout()
        for label, w in (("Afficher", self.cb_sample), ("Métrique", self.cb_metric),
                         ("Grouper par", self.cb_group), ("Top", self.sp_top), ("Tri", self.cb_sort)):
            bar.addWidget(QLabel(label)); bar.addWidget(w)
        bar.addStretch(1); bar.addWidget(btn_reload)

        # --- cartes ---
        self.lab_total = QLabel("…")
        self.lab_metric = QLabel("…")
        self.lab_origines = QLabel("…")
        self.lab_vendeurs = QLabel("…")
        self.lab_status = QLabel("")
        self.lab_status.setStyleSheet("color: #b91c1c;")
        self.box_metric = QGroupBox("Total")
        cards = QHBoxLayout()
        for box, lab in ((QGroupBox("Dossiers"), self.lab_total), (self.box_metric, self.lab_metric),
                         (QGroupBox("Origines"), self.lab_origines), (QGroupBox("Vendeurs"), self.lab_vendeurs)):
            lab.setStyleSheet("font-size: 20px; font-weight: bold;")
            QVBoxLayout(box).addWidget(lab)
            cards.addWidget(box)

        # --- tableaux ---
        self.tbl_recent = _table(["N° Dossier", "Vendeur", "Date"])
        self.tbl_top_armateurs = _table(["Armateur", "TEU"])
        self.tbl_origines = _table(["Origine", "TEU"])
        self.tbl_armateurs = _table(["Armateur", "TEU"])
        self.tbl_bars = _table(["Libellé", "Valeur", "%"])
        self.bar_chart = QVBoxLayout()

        btn_csv = QPushButton("Exporter CSV")
        btn_png = QPushButton("Exporter PNG")
        btn_pdf = QPushButton("Exporter PDF")

        g_recent = QGroupBox("Dossiers récents"); QVBoxLayout(g_recent).addWidget(self.tbl_recent)
        g_top = QGroupBox("Top armateurs (TEU)"); QVBoxLayout(g_top).addWidget(self.tbl_top_armateurs)
        g_orig = QGroupBox("Répartition par origine (TEU)"); QVBoxLayout(g_orig).addWidget(self.tbl_origines)
        g_arm = QGroupBox("Répartition par armateur (TEU)"); QVBoxLayout(g_arm).addWidget(self.tbl_armateurs)

        g_bars = QGroupBox("Somme par groupe")
        bars_lay = QVBoxLayout(g_bars)
        exp = QHBoxLayout(); exp.addStretch(1); exp.addWidget(btn_csv); exp.addWidget(btn_png); exp.addWidget(btn_pdf)
        bars_lay.addLayout(exp)
        bars_lay.addLayout(self.bar_chart)
        bars_lay.addWidget(self.tbl_bars)

        grid = QGridLayout()
        grid.addWidget(g_recent, 0, 0); grid.addWidget(g_top, 0, 1)
        grid.addWidget(g_orig, 1, 0); grid.addWidget(g_arm, 1, 1)

        root = QVBoxLayout(self)
        root.addLayout(bar)
        root.addWidget(self.lab_status)
        root.addLayout(cards)
        root.addLayout(grid)
        root.addWidget(g_bars, 1)

        btn_reload.clicked.connect(self.reload)
        self.cb_sample.currentIndexChanged.connect(self.reload)
        for w in (self.cb_metric, self.cb_group, self.cb_sort):
            w.currentIndexChanged.connect(self._render)
        self.sp_top.valueChanged.connect(self._render)
        btn_csv.clicked.connect(self._export_csv)
        btn_png.clicked.connect(self._export_png)
        btn_pdf.clicked.connect(self._export_pdf)

        self.reload()

    # ---------- sélection courante ----------
    @property
    def metric(self) -> Metric:
        return Metric(self.cb_metric.currentData())

    @property
    def group_by(self) -> GroupBy:
        return GroupBy(self.cb_group.currentData())

    @property
    def sample_size(self) -> int:
        return int(self.cb_sample.currentData())

    def _names_for(self, group_by: GroupBy) -> Dict[str, str]:
        return self._names[ORIGINES if group_by is GroupBy.ORIGINE else ARMATEURS]

    # ---------- chargement ----------
    def _load(self, per_page: int):
        page = self.dossier_service.list_dossiers(page=1, per_page=per_page,
                                                  sort_by="created_at", sort_order="desc")
        names: Dict[str, Dict[str, str]] = {}
        for kind in (ORIGINES, ARMATEURS):
            try:
                names[kind] = self.references.names(kind)
            except ReferenceLoadError as e:
                logger.warning("%s", e)
                names[kind] = {}
        return page, names

    def reload(self):
        self.lab_status.setText("Chargement…")
        per_page = self.sample_size
        guard = self._loads.next()
        self._task = run_load(guard, lambda: self._load(per_page), self._on_loaded, self._on_load_error)

    def _on_loaded(self, result):
        page, names = result
        self._sample = list(page.data)
        self._total = page.total or len(page.data)
        self._names = names
        self.lab_status.setText("")
        self._render()

    def _on_load_error(self, err: Exception):
        msg = str(err) if isinstance(err, SmartFretError) else ""
        self.lab_status.setText(msg or "Erreur lors du chargement des données")

    # ---------- rendu ----------
    def _summary(self) -> DashboardSummary:
        return dashboard_summary(self._sample, self._total, self.metric, self._names[ORIGINES])

    def _rows(self) -> List[StatRow]:
        sort = SortOrder(self.cb_sort.currentData())
        rows = aggregate(self._sample, self.group_by, self.metric, sort, self._names_for(self.group_by))
        return top_n(rows, self.sp_top.value())

    def _render(self):
        s = self._summary()
        self.lab_total.setText(str(s.total_dossiers))
        self.box_metric.setTitle(f"Total {self.metric.label}")
        self.lab_metric.setText(s.formatted_total_metric)
        self.lab_origines.setText(str(s.unique_origines))
        self.lab_vendeurs.setText(str(s.unique_vendeurs))

        _fill_table(self.tbl_recent, [[d.display_ref, d.vendeur, d.date] for d in s.recent])

        arm = teu_stats(self._sample, GroupBy.ARMATEUR, self._names[ARMATEURS])
        orig = teu_stats(self._sample, GroupBy.ORIGINE, self._names[ORIGINES])
        _fill_table(self.tbl_top_armateurs, [[r.label, format_number_fr(r.value)] for r in top_n(arm, 5)])
        _fill_table(self.tbl_origines, [[r.label, format_number_fr(r.value)] for r in top_n(orig, 10)])
        _fill_table(self.tbl_armateurs, [[r.label, format_number_fr(r.value)] for r in top_n(arm, 10)])

        rows = self._rows()
        total = s.total_metric
        _fill_table(self.tbl_bars, [
            [r.label, format_number_fr(r.value), f"{percent_of_total(r.value, total)}%"] for r in rows
        ])
        self._render_bars(rows)

    def _render_bars(self, rows: List[StatRow]):
        while self.bar_chart.count():
            item = self.bar_chart.takeAt(0)
            if item.widget():
                item.widget().deleteLater()
        vmax = max([r.value for r in rows] + [1])
        for r in rows:
            pb = QProgressBar()
            pb.setRange(0, 1000)
            pb.setValue(int(max(0.0, r.value) / vmax * 1000))
            pb.setFormat(f"{r.label} – {format_number_fr(r.value)}")
            pb.setTextVisible(True)
            self.bar_chart.addWidget(pb)

    # ---------- exports ----------
    def _export_csv(self):
        try:
            path = self.export_service.export_csv(self._rows(), self.metric, self.group_by)
        except ExportError as e:
            QMessageBox.critical(self, "Export CSV", str(e)); return
        QMessageBox.information(self, "Export CSV", f"Fichier enregistré :\n{path}")

    def _export_png(self):
        try:
            path = self.export_service.export_png(self._rows(), self.metric, self.group_by)
        except ExportError as e:
            QMessageBox.critical(self, "Export PNG", str(e)); return
        QMessageBox.information(self, "Export PNG", f"Fichier enregistré :\n{path}")

    def _export_pdf(self):
        report = build_report(
            self._rows(), self.metric, self.group_by,
            total_metric=total_metric(self._sample, self.metric),
            sample_size=self.sample_size,
            total_dossiers=self._total,
            username=settings.current_username(),
            logo_path=settings.logo_path(),
        )
        try:
            path = self.export_service.export_pdf(report)
        except (SmartFretError, OSError) as e:
            QMessageBox.critical(self, "Export PDF", str(e)); return
        QMessageBox.information(self, "Export PDF", f"Fichier enregistré :\n{path}")

    def closeEvent(self, event):
        self._loads.close()
        super().closeEvent(event)
